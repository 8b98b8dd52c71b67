from sqlmodel import SQLModel, Field, Relationship
from typing import List, Optional
from datetime import datetime

from app.models.order_item import OrderItem


class Order(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: Optional[int] = Field(default=None, index=True)

    status: str = Field(default="processing")
    status_step: int = Field(default=1)

    # customer snapshot
    customer_name: str
    customer_phone: str
    customer_address: str
    customer_email: Optional[str] = None
    note: Optional[str] = None

    payment_method: str = Field(default="cod")
    coupon_code: Optional[str] = None

    subtotal: float
    shipping: float
    discount: float = 0
    total: float

    created_at: datetime = Field(default_factory=datetime.utcnow)

    items: List["OrderItem"] = Relationship(back_populates="order")
