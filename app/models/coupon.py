from sqlmodel import SQLModel, Field
from typing import Optional
from datetime import date, datetime
from enum import Enum


class CouponType(str, Enum):
    percentage = "percentage"
    fixed = "fixed"


class Coupon(SQLModel, table=True):
    code: str = Field(primary_key=True)  # stored upper-cased
    discount_type: CouponType = CouponType.percentage
    discount_value: float

    min_order_value: float = 0
    usage_limit: int = 1
    used_count: int = 0
    expiry_date: date
    is_active: bool = True

    updated_at: Optional[datetime] = Field(default_factory=datetime.utcnow)
