from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, Field
from sqlmodel import SQLModel


class CartLine(BaseModel):
    book_id: int
    title: str
    author: str = ""
    cover: Optional[str] = None
    unit_price: float
    quantity: int = Field(default=1, ge=1)

    @property
    def line_total(self) -> float:
        return self.unit_price * self.quantity


class AddDiagnosticType(str, Enum):
    OUT_OF_STOCK = "OUT_OF_STOCK"
    AT_MAX_IN_CART = "AT_MAX_IN_CART"
    PARTIAL_AVAILABLE = "PARTIAL_AVAILABLE"


class AddResult(BaseModel):
    added: bool
    book_id: int
    quantity_in_cart: int
    diagnostic: Optional[AddDiagnosticType] = None
    available: Optional[int] = None
    # units that can still be added, set for PARTIAL_AVAILABLE
    remaining: Optional[int] = None


class CartEventKind(str, Enum):
    added = "added"
    removed = "removed"
    quantity_changed = "quantity_changed"
    selection_changed = "selection_changed"
    reconciled = "reconciled"
    cleared = "cleared"
    replaced = "replaced"


class CartEvent(BaseModel):
    kind: CartEventKind
    book_id: Optional[int] = None
    origin: Optional[Any] = None


class CartView(BaseModel):
    items: List[CartLine]
    selected: List[int]
    count: int


# request bodies

class CartAddRequest(SQLModel):
    book_id: int
    quantity: int = 1

class CartUpdateRequest(SQLModel):
    delta: int

class CartToggleAllRequest(SQLModel):
    select_all: bool
