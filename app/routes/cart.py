from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session
from app.database import get_session
from app.dependencies.cart import get_checkout
from app.errors import CheckoutError
from app.models.book import Book
from app.schemas.cart_schemas import CartAddRequest, CartToggleAllRequest, CartUpdateRequest
from app.services.checkout_service import CheckoutService
from app.utils.http_errors import to_http_exception


router = APIRouter()

# View Cart

@router.get("/")
def get_cart(checkout: CheckoutService = Depends(get_checkout)):
    return {
        "cart": checkout.cart.view(),
        "summary": checkout.summary(),
    }

# Add to Cart

@router.post("/add")
def add_to_cart(
    data: CartAddRequest,
    session: Session = Depends(get_session),
    checkout: CheckoutService = Depends(get_checkout),
):
    book = session.get(Book, data.book_id)
    if not book:
        raise HTTPException(status_code=404, detail="Book not found")

    if data.quantity < 1:
        raise HTTPException(status_code=400, detail="Quantity must be at least 1")

    try:
        result = checkout.cart.add_line(book, data.quantity)
    except CheckoutError as e:
        raise to_http_exception(e)

    if not result.added:
        raise HTTPException(
            status_code=409,
            detail={
                "code": result.diagnostic.value,
                "available": result.available,
                "remaining": result.remaining,
            },
        )

    return {"message": "Added to cart", "result": result, "cart": checkout.cart.view()}

# Update Cart

@router.put("/update/{book_id}")
def update_cart_item(
    book_id: int,
    data: CartUpdateRequest,
    checkout: CheckoutService = Depends(get_checkout),
):
    line = checkout.cart.set_quantity(book_id, data.delta)
    if line is None:
        raise HTTPException(404, "Cart item not found")

    return {"message": "Quantity updated", "item": line}

# Remove Cart

@router.delete("/remove/{book_id}")
def remove_item(book_id: int, checkout: CheckoutService = Depends(get_checkout)):
    if not checkout.cart.remove_line(book_id):
        raise HTTPException(404, "Item not found")

    return {"message": "Item removed from cart"}

# Selection

@router.post("/toggle/{book_id}")
def toggle_item(book_id: int, checkout: CheckoutService = Depends(get_checkout)):
    if checkout.cart.get_line(book_id) is None:
        raise HTTPException(404, "Item not found")

    selected = checkout.cart.toggle_selection(book_id)
    return {"book_id": book_id, "selected": selected}


@router.post("/toggle-all")
def toggle_all(data: CartToggleAllRequest, checkout: CheckoutService = Depends(get_checkout)):
    checkout.cart.toggle_all(data.select_all)
    return {"selected": checkout.cart.selected_ids}

# Clear Cart

@router.delete("/clear")
def clear_cart_endpoint(checkout: CheckoutService = Depends(get_checkout)):
    checkout.cart.clear()
    return {"message": "Cart cleared"}
