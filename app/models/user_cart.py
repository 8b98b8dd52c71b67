from datetime import datetime
from typing import List

from sqlmodel import SQLModel, Field
from sqlalchemy import Column, JSON


class UserCart(SQLModel, table=True):
    __tablename__ = "user_cart"
    user_id: int = Field(primary_key=True)

    items: List[dict] = Field(default_factory=list, sa_column=Column(JSON))
    selected: List[int] = Field(default_factory=list, sa_column=Column(JSON))

    updated_at: datetime = Field(default_factory=datetime.utcnow)
