# app/schemas/checkout_schemas.py
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from app.errors import ErrorCode
from app.models.coupon import CouponType


class StockSnapshot(BaseModel):
    book_id: int
    available_quantity: int
    price: Optional[float] = None
    title: Optional[str] = None
    cover: Optional[str] = None
    observed_at: datetime = Field(default_factory=datetime.utcnow)


class ViolationType(str, Enum):
    OUT_OF_STOCK = "OUT_OF_STOCK"
    INSUFFICIENT = "INSUFFICIENT_STOCK"


class StockViolation(BaseModel):
    book_id: int
    title: str
    type: ViolationType
    available_quantity: int
    requested_quantity: int


class LineChange(BaseModel):
    book_id: int
    title: str
    before: int
    after: Optional[int] = None   # None when the line was removed
    reason: ViolationType

    @property
    def removed(self) -> bool:
        return self.after is None

    @property
    def message(self) -> str:
        if self.removed:
            return f"{self.title}: out of stock"
        return f"{self.title}: only {self.after} left (was {self.before})"


class StockReport(BaseModel):
    violations: List[StockViolation] = []
    changes: List[LineChange] = []

    @property
    def is_valid(self) -> bool:
        return not self.violations


class AppliedCoupon(BaseModel):
    code: str
    type: CouponType
    value: float


class PricingSummary(BaseModel):
    items: int                # selected lines
    subtotal: float
    shipping: float
    discount: float
    grand_total: float
    coupon_code: Optional[str] = None


class PaymentMethod(str, Enum):
    cod = "cod"
    online = "online"


class CustomerInfo(BaseModel):
    name: str = ""
    phone: str = ""
    address: str = ""
    email: Optional[str] = None
    note: Optional[str] = None

    def missing_fields(self) -> List[str]:
        return [
            field for field in ("name", "phone", "address")
            if not (getattr(self, field) or "").strip()
        ]


class CheckoutState(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    COMMITTING = "committing"
    SUCCESS = "success"
    REJECTED = "rejected"
    FAILED = "failed"


class CommitResult(BaseModel):
    state: CheckoutState
    order_id: Optional[int] = None
    error: Optional[ErrorCode] = None
    message: Optional[str] = None
    violations: List[StockViolation] = []
    changes: List[LineChange] = []
    summary: Optional[PricingSummary] = None

    @property
    def ok(self) -> bool:
        return self.state == CheckoutState.SUCCESS


class PlaceOrderRequest(BaseModel):
    customer: CustomerInfo
    payment_method: PaymentMethod = PaymentMethod.cod


class ApplyCouponRequest(BaseModel):
    code: str
