from typing import List, Optional

from app.config import settings
from app.models.coupon import CouponType
from app.schemas.cart_schemas import CartLine
from app.schemas.checkout_schemas import AppliedCoupon, PricingSummary


def shipping_fee(subtotal: float, has_items: bool = True) -> float:
    if not has_items or subtotal >= settings.free_shipping_threshold:
        return 0
    return settings.flat_shipping_fee


def coupon_discount(subtotal: float, coupon: Optional[AppliedCoupon]) -> float:
    if not coupon or subtotal <= 0:
        return 0

    if coupon.type == CouponType.percentage:
        discount = subtotal * coupon.value / 100
    else:
        discount = coupon.value

    # never more than the goods themselves
    return round(min(max(discount, 0), subtotal), 2)


def calculate_pricing(lines: List[CartLine], coupon: Optional[AppliedCoupon] = None) -> PricingSummary:
    """Totals for the lines being checked out (callers pass the selected subset)."""
    subtotal = round(sum(line.unit_price * line.quantity for line in lines), 2)
    shipping = shipping_fee(subtotal, has_items=bool(lines))
    discount = coupon_discount(subtotal, coupon)

    return PricingSummary(
        items=len(lines),
        subtotal=subtotal,
        shipping=shipping,
        discount=discount,
        grand_total=round(max(0, subtotal + shipping - discount), 2),
        coupon_code=coupon.code if coupon else None,
    )
