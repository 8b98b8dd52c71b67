import logging

from fastapi import FastAPI
from app.database import create_db_and_tables
from app.config import settings
from app.dependencies.cart import registry
from app.routes import cart, checkout, health

from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Run DB creation ONLY in local
    if settings.ENV == "local":
        create_db_and_tables()
    yield
    registry.close()

app = FastAPI(title="Bookstore Checkout API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:5173",
        "http://localhost:3000",
        "http://127.0.0.1:5173",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(cart.router, prefix="/cart", tags=["Cart"])
app.include_router(checkout.router, prefix="/checkout", tags=["Checkout"])
app.include_router(health.router, prefix="/health", tags=["Health"])

@app.get("/")
def root():
    return {
        "cart": [
            "/cart", "/cart/add", "/cart/update/{book_id}",
            "/cart/remove/{book_id}", "/cart/toggle/{book_id}",
            "/cart/toggle-all", "/cart/clear"
        ],
        "checkout": [
            "/checkout/validate", "/checkout/summary",
            "/checkout/coupon", "/checkout/place-order"
        ],
        "health": ["/health/check"]
    }
