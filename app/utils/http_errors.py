from fastapi import HTTPException

from app.errors import (
    CheckoutError,
    CheckoutInProgressError,
    CouponError,
    MissingShippingInfoError,
    NetworkFailureError,
    StockConflictError,
)


def to_http_exception(error: CheckoutError) -> HTTPException:
    if isinstance(error, (StockConflictError, CheckoutInProgressError)):
        status = 409
    elif isinstance(error, (CouponError, MissingShippingInfoError)):
        status = 400
    elif isinstance(error, NetworkFailureError):
        status = 503
    else:
        status = 400

    return HTTPException(
        status_code=status,
        detail={"code": error.code.value, "message": error.message},
    )
