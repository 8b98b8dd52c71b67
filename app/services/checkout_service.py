import logging
import threading
from typing import Optional, Union

from app.config import settings
from app.errors import CheckoutInProgressError, CouponError, ErrorCode
from app.schemas.checkout_schemas import (
    AppliedCoupon,
    CheckoutState,
    CommitResult,
    CustomerInfo,
    PaymentMethod,
    PricingSummary,
    StockReport,
)
from app.services.coupon_service import normalize_code
from app.services.order_finalizer import OrderFinalizer
from app.services.pricing_service import calculate_pricing
from app.services.stock_validator import check_batch

logger = logging.getLogger(__name__)

COUPON_ERRORS = {ErrorCode.COUPON_INVALID, ErrorCode.COUPON_EXPIRED, ErrorCode.COUPON_BELOW_MIN}


class CheckoutService:
    """Checkout for one shopper session: coupon, totals, stock checks and commit."""

    def __init__(
        self,
        cart,
        inventory,
        coupons,
        orders,
        event_log=None,
        stock_timeout: float = None,
    ):
        self.cart = cart
        self.inventory = inventory
        self.coupons = coupons
        self.orders = orders
        self.event_log = event_log
        self.stock_timeout = stock_timeout if stock_timeout is not None else settings.stock_check_timeout

        self.applied_coupon: Optional[AppliedCoupon] = None
        self.last_result: Optional[CommitResult] = None
        self._lock = threading.Lock()
        self._committing = False

    @property
    def is_committing(self) -> bool:
        return self._committing

    def validate_before_checkout(self) -> StockReport:
        """Check the whole cart on entering checkout and auto-correct it."""
        violations = check_batch(self.inventory, self.cart.lines, self.stock_timeout)
        changes = self.cart.apply_reconciliation(violations)
        return StockReport(violations=violations, changes=changes)

    def apply_coupon(self, code: str) -> AppliedCoupon:
        subtotal = calculate_pricing(self.cart.selected_lines).subtotal
        coupon = self.coupons.validate_coupon(code, subtotal)
        if coupon is None:
            reason = self.coupons.rejection_reason(code, subtotal) or ErrorCode.COUPON_INVALID
            raise CouponError(normalize_code(code), reason)

        self.applied_coupon = coupon
        logger.info(f"Coupon {coupon.code} applied")
        return coupon

    def remove_coupon(self):
        self.applied_coupon = None

    def summary(self) -> PricingSummary:
        return calculate_pricing(self.cart.selected_lines, self.applied_coupon)

    def commit_order(
        self,
        customer_info: Union[CustomerInfo, dict],
        payment_method: Union[PaymentMethod, str] = PaymentMethod.cod,
    ) -> CommitResult:
        if isinstance(customer_info, dict):
            customer_info = CustomerInfo(**customer_info)

        with self._lock:
            if self._committing:
                raise CheckoutInProgressError()
            self._committing = True

        try:
            finalizer = OrderFinalizer(
                self.cart,
                self.inventory,
                self.orders,
                coupons=self.coupons,
                event_log=self.event_log,
                stock_timeout=self.stock_timeout,
            )
            result = finalizer.run(
                customer_info,
                PaymentMethod(payment_method),
                self.applied_coupon,
                self.cart.user_id,
            )
        finally:
            self._committing = False

        if result.state == CheckoutState.SUCCESS or result.error in COUPON_ERRORS:
            self.applied_coupon = None

        self.last_result = result
        return result
