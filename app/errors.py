from enum import Enum
from typing import List, Optional


class ErrorCode(str, Enum):
    OUT_OF_STOCK = "OUT_OF_STOCK"
    INSUFFICIENT_STOCK = "INSUFFICIENT_STOCK"
    COUPON_INVALID = "COUPON_INVALID"
    COUPON_EXPIRED = "COUPON_EXPIRED"
    COUPON_BELOW_MIN = "COUPON_BELOW_MIN"
    MISSING_SHIPPING_INFO = "MISSING_SHIPPING_INFO"
    NETWORK_FAILURE = "NETWORK_FAILURE"
    EMPTY_SELECTION = "EMPTY_SELECTION"
    CHECKOUT_IN_PROGRESS = "CHECKOUT_IN_PROGRESS"


class CheckoutError(Exception):
    """Base for every typed failure raised by the cart and checkout core."""

    code: ErrorCode = ErrorCode.NETWORK_FAILURE
    retryable = False

    def __init__(self, message: str, code: Optional[ErrorCode] = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class StockConflictError(CheckoutError):
    """A conditional stock decrement was refused by the store."""

    code = ErrorCode.OUT_OF_STOCK
    retryable = True

    def __init__(self, titles: List[str], book_ids: Optional[List[int]] = None):
        self.titles = list(titles)
        self.book_ids = list(book_ids or [])
        super().__init__(
            "Stock changed while placing the order: " + ", ".join(self.titles)
        )


class CouponError(CheckoutError):
    code = ErrorCode.COUPON_INVALID

    def __init__(self, coupon_code: str, code: ErrorCode = ErrorCode.COUPON_INVALID):
        self.coupon_code = coupon_code
        super().__init__(f"Coupon {coupon_code} cannot be applied ({code.value})", code)


class MissingShippingInfoError(CheckoutError):
    code = ErrorCode.MISSING_SHIPPING_INFO

    def __init__(self, missing: List[str]):
        self.missing = list(missing)
        super().__init__("Missing shipping info: " + ", ".join(self.missing))


class NetworkFailureError(CheckoutError):
    code = ErrorCode.NETWORK_FAILURE
    retryable = True


class CheckoutInProgressError(CheckoutError):
    """Raised when a commit is requested while another one is running."""

    code = ErrorCode.CHECKOUT_IN_PROGRESS

    def __init__(self):
        super().__init__("A checkout attempt is already in progress")
