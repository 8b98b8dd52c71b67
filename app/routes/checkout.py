from fastapi import APIRouter, Depends, HTTPException
from app.dependencies.cart import get_checkout
from app.errors import CheckoutError
from app.schemas.checkout_schemas import ApplyCouponRequest, CheckoutState, PlaceOrderRequest
from app.services.checkout_service import CheckoutService
from app.utils.http_errors import to_http_exception

router = APIRouter()

# Entering checkout - stock check + auto-correction

@router.post("/validate")
def validate_cart(checkout: CheckoutService = Depends(get_checkout)):
    try:
        report = checkout.validate_before_checkout()
    except CheckoutError as e:
        raise to_http_exception(e)

    return {
        "is_valid": report.is_valid,
        "violations": report.violations,
        "changes": [change.message for change in report.changes],
        "cart": checkout.cart.view(),
        "summary": checkout.summary(),
    }


@router.get("/summary")
def checkout_summary(checkout: CheckoutService = Depends(get_checkout)):
    return checkout.summary()

# Coupons

@router.post("/coupon")
def apply_coupon(data: ApplyCouponRequest, checkout: CheckoutService = Depends(get_checkout)):
    try:
        coupon = checkout.apply_coupon(data.code)
    except CheckoutError as e:
        raise to_http_exception(e)

    return {"message": "Coupon applied", "coupon": coupon, "summary": checkout.summary()}


@router.delete("/coupon")
def remove_coupon(checkout: CheckoutService = Depends(get_checkout)):
    checkout.remove_coupon()
    return {"message": "Coupon removed", "summary": checkout.summary()}

# Place order

@router.post("/place-order")
def place_order(data: PlaceOrderRequest, checkout: CheckoutService = Depends(get_checkout)):
    try:
        result = checkout.commit_order(data.customer, data.payment_method)
    except CheckoutError as e:
        raise to_http_exception(e)

    if result.state == CheckoutState.SUCCESS:
        return {"message": "Order placed", "order_id": result.order_id, "summary": result.summary}

    raise HTTPException(
        status_code=409 if result.state == CheckoutState.FAILED else 422,
        detail={
            "state": result.state.value,
            "code": result.error.value if result.error else None,
            "message": result.message,
            "changes": [change.message for change in result.changes],
            "retryable": True,
        },
    )
