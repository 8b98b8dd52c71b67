from sqlalchemy import CheckConstraint
from sqlmodel import SQLModel, Field
from typing import Optional
from datetime import datetime


class Book(SQLModel, table=True):
    __table_args__ = (CheckConstraint("stock >= 0", name="ck_book_stock_non_negative"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    title: str
    author: str

    #Image
    cover_image: str = Field(default="/uploads/book_covers/placeholder.jpg")

    #Shop Details
    price: float
    discount_price: Optional[float] = None
    offer_price: Optional[float] = None
    stock: int = Field(default=0)

    #timestamps
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def effective_price(self) -> float:
        # offer > discount > regular
        return self.offer_price or self.discount_price or self.price

    @property
    def in_stock(self) -> bool:
        return self.stock is not None and self.stock > 0
