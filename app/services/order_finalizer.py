import logging
from typing import Callable, List, Optional

from app.errors import CheckoutError, ErrorCode
from app.models.order import Order
from app.models.order_item import OrderItem
from app.schemas.cart_schemas import CartLine
from app.schemas.checkout_schemas import (
    AppliedCoupon,
    CheckoutState,
    CommitResult,
    CustomerInfo,
    LineChange,
    PaymentMethod,
    PricingSummary,
    StockViolation,
    ViolationType,
)
from app.services.order_event_service import ORDER_FAILED, ORDER_REJECTED
from app.services.pricing_service import calculate_pricing
from app.services.stock_validator import check_batch

logger = logging.getLogger(__name__)

TERMINAL_STATES = {CheckoutState.SUCCESS, CheckoutState.REJECTED, CheckoutState.FAILED}

ALLOWED_TRANSITIONS = {
    CheckoutState.IDLE: [CheckoutState.VALIDATING, CheckoutState.REJECTED],
    CheckoutState.VALIDATING: [CheckoutState.COMMITTING, CheckoutState.REJECTED, CheckoutState.FAILED],
    CheckoutState.COMMITTING: [CheckoutState.SUCCESS, CheckoutState.FAILED],
    CheckoutState.SUCCESS: [],
    CheckoutState.REJECTED: [],
    CheckoutState.FAILED: [],
}


class OrderFinalizer:
    """One checkout attempt: Idle -> Validating -> Committing -> Success.

    Rejected means stock (or the coupon) changed before anything was written;
    the cart is reconciled so a retry needs no extra shopper action. Failed
    means the store refused the commit itself; the cart is left untouched.
    An instance runs once, a retry uses a fresh one.
    """

    def __init__(
        self,
        cart,
        inventory,
        orders,
        coupons=None,
        event_log: Optional[Callable] = None,
        stock_timeout: float = None,
    ):
        self.cart = cart
        self.inventory = inventory
        self.orders = orders
        self.coupons = coupons
        self.event_log = event_log
        self.stock_timeout = stock_timeout

        self.state = CheckoutState.IDLE
        self.history: List[CheckoutState] = [CheckoutState.IDLE]

    def _move(self, state: CheckoutState):
        if state not in ALLOWED_TRANSITIONS[self.state]:
            raise RuntimeError(f"Invalid checkout transition {self.state.value} -> {state.value}")
        self.state = state
        self.history.append(state)

    def _log(self, event_type: str, label: str, meta: dict):
        if self.event_log:
            self.event_log(event_type, label, meta)

    def _reject(
        self,
        error: ErrorCode,
        message: str,
        violations: List[StockViolation] = None,
        changes: List[LineChange] = None,
    ) -> CommitResult:
        self._move(CheckoutState.REJECTED)
        logger.info(f"Checkout rejected ({error.value}): {message}")
        self._log(ORDER_REJECTED, message, {"error": error.value})
        return CommitResult(
            state=CheckoutState.REJECTED,
            error=error,
            message=message,
            violations=violations or [],
            changes=changes or [],
        )

    def _fail(self, error: CheckoutError, summary: PricingSummary = None) -> CommitResult:
        self._move(CheckoutState.FAILED)
        logger.warning(f"Checkout failed ({error.code.value}): {error.message}")
        self._log(ORDER_FAILED, error.message, {"error": error.code.value})
        return CommitResult(
            state=CheckoutState.FAILED,
            error=error.code,
            message=error.message,
            summary=summary,
        )

    def run(
        self,
        customer: CustomerInfo,
        payment_method: PaymentMethod = PaymentMethod.cod,
        coupon: Optional[AppliedCoupon] = None,
        user_id: Optional[int] = None,
    ) -> CommitResult:
        if self.state != CheckoutState.IDLE:
            raise RuntimeError("A finalizer runs once; start a new one to retry")

        missing = customer.missing_fields()
        if missing:
            return self._reject(ErrorCode.MISSING_SHIPPING_INFO, "Missing shipping info: " + ", ".join(missing))

        lines: List[CartLine] = self.cart.selected_lines
        if not lines:
            return self._reject(ErrorCode.EMPTY_SELECTION, "No items selected for checkout")

        # Validating
        self._move(CheckoutState.VALIDATING)
        try:
            violations = check_batch(self.inventory, lines, self.stock_timeout)
        except CheckoutError as e:
            return self._fail(e)

        if violations:
            changes = self.cart.apply_reconciliation(violations)
            sold_out = any(v.type == ViolationType.OUT_OF_STOCK for v in violations)
            return self._reject(
                ErrorCode.OUT_OF_STOCK if sold_out else ErrorCode.INSUFFICIENT_STOCK,
                "Stock changed: " + ", ".join(v.title for v in violations),
                violations,
                changes,
            )

        summary = calculate_pricing(lines, coupon)

        if coupon and self.coupons is not None:
            try:
                reason = self.coupons.rejection_reason(coupon.code, summary.subtotal)
            except CheckoutError as e:
                return self._fail(e, summary)
            if reason:
                return self._reject(reason, f"Coupon {coupon.code} no longer applies")

        # Committing
        self._move(CheckoutState.COMMITTING)
        order = Order(
            user_id=user_id,
            status="processing",
            status_step=1,
            customer_name=customer.name.strip(),
            customer_phone=customer.phone.strip(),
            customer_address=customer.address.strip(),
            customer_email=customer.email,
            note=customer.note,
            payment_method=PaymentMethod(payment_method).value,
            coupon_code=coupon.code if coupon else None,
            subtotal=summary.subtotal,
            shipping=summary.shipping,
            discount=summary.discount,
            total=summary.grand_total,
        )
        items = [
            OrderItem(
                book_id=line.book_id,
                book_title=line.title,
                price=line.unit_price,
                quantity=line.quantity,
                cover_image=line.cover,
            )
            for line in lines
        ]

        try:
            created = self.orders.create_order(order, items, order.coupon_code)
        except CheckoutError as e:
            return self._fail(e, summary)

        self.cart.remove_lines([line.book_id for line in lines])
        self._move(CheckoutState.SUCCESS)
        logger.info(f"Checkout committed order {created.id}")
        return CommitResult(state=CheckoutState.SUCCESS, order_id=created.id, summary=summary)
