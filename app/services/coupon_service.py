import logging
from datetime import date
from typing import Optional

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from app.errors import ErrorCode, NetworkFailureError
from app.models.coupon import Coupon
from app.schemas.checkout_schemas import AppliedCoupon

logger = logging.getLogger(__name__)


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


def coupon_problem(coupon: Optional[Coupon], subtotal: float, today: date) -> Optional[ErrorCode]:
    if coupon is None or not coupon.is_active:
        return ErrorCode.COUPON_INVALID
    if coupon.expiry_date < today:
        return ErrorCode.COUPON_EXPIRED
    if (coupon.used_count or 0) >= coupon.usage_limit:
        return ErrorCode.COUPON_INVALID
    if subtotal < coupon.min_order_value:
        return ErrorCode.COUPON_BELOW_MIN
    return None


def increment_usage(session: Session, code: str) -> bool:
    """Bump used_count inside the caller's transaction, refusing past usage_limit."""
    result = session.execute(
        update(Coupon)
        .where(Coupon.code == normalize_code(code), Coupon.used_count < Coupon.usage_limit)
        .values(used_count=Coupon.used_count + 1)
    )
    return result.rowcount == 1


class SqlCouponRepository:
    def __init__(self, engine, clock=date.today):
        self.engine = engine
        self.clock = clock

    def _load(self, code: str) -> Optional[Coupon]:
        code = normalize_code(code)
        if not code:
            return None
        try:
            with Session(self.engine) as session:
                return session.get(Coupon, code)
        except SQLAlchemyError as e:
            logger.error(f"Coupon lookup failed for {code}: {e}")
            raise NetworkFailureError("Could not check the coupon, please retry") from e

    def rejection_reason(self, code: str, subtotal: float) -> Optional[ErrorCode]:
        return coupon_problem(self._load(code), subtotal, self.clock())

    def validate_coupon(self, code: str, subtotal: float) -> Optional[AppliedCoupon]:
        coupon = self._load(code)
        if coupon_problem(coupon, subtotal, self.clock()):
            return None
        return AppliedCoupon(
            code=coupon.code,
            type=coupon.discount_type,
            value=coupon.discount_value,
        )
