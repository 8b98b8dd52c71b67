from sqlmodel import SQLModel, Field , Relationship
from typing import Optional , TYPE_CHECKING

if TYPE_CHECKING:
    from app.models.order import Order

class OrderItem(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    order_id: int = Field(foreign_key="order.id")
    book_id: int = Field(foreign_key="book.id")

    # frozen at purchase time, never recomputed from Book
    book_title: str
    price: float
    quantity: int
    cover_image: Optional[str] = None

    order: Optional["Order"] = Relationship(back_populates="items")
