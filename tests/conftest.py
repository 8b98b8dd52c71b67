from datetime import date, timedelta

import pytest
from sqlmodel import Session

from app.database import build_engine, create_db_and_tables
from app.models import Book, Coupon, CouponType
from app.services.cart_service import CartService
from app.services.cart_storage import MemoryCartStorage
from app.services.checkout_service import CheckoutService
from app.services.coupon_service import SqlCouponRepository
from app.services.inventory_service import SqlInventory
from app.services.order_event_service import record_checkout_event
from app.services.order_service import SqlOrderRepository


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'bookstore.db'}")
    create_db_and_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def books(engine):
    seeded = {
        "X": Book(id=1, title="Book X", author="Author X", price=100000, stock=5),
        "Y": Book(id=2, title="Book Y", author="Author Y", price=50000, stock=2),
        "Z": Book(id=3, title="Book Z", author="Author Z", price=80000, stock=0),
        "W": Book(id=4, title="Book W", author="Author W", price=120000, stock=1),
        "S": Book(id=5, title="Book S", author="Author S", price=200000, offer_price=150000, stock=10),
    }
    with Session(engine, expire_on_commit=False) as session:
        for book in seeded.values():
            session.add(book)
        session.commit()
    return seeded


@pytest.fixture
def coupons(engine):
    future = date.today() + timedelta(days=30)
    seeded = [
        Coupon(code="SAVE10", discount_type=CouponType.percentage, discount_value=10,
               usage_limit=100, expiry_date=future),
        Coupon(code="BIGFIXED", discount_type=CouponType.fixed, discount_value=1_000_000,
               usage_limit=100, expiry_date=future),
        Coupon(code="MIN300K", discount_type=CouponType.fixed, discount_value=30000,
               min_order_value=300000, usage_limit=100, expiry_date=future),
        Coupon(code="OLD", discount_type=CouponType.percentage, discount_value=50,
               usage_limit=100, expiry_date=date.today() - timedelta(days=1)),
        Coupon(code="USEDUP", discount_type=CouponType.percentage, discount_value=5,
               usage_limit=1, used_count=1, expiry_date=future),
    ]
    with Session(engine, expire_on_commit=False) as session:
        for coupon in seeded:
            session.add(coupon)
        session.commit()
    return {coupon.code for coupon in seeded}


@pytest.fixture
def inventory(engine):
    return SqlInventory(engine)


@pytest.fixture
def coupon_repo(engine):
    return SqlCouponRepository(engine)


@pytest.fixture
def order_repo(engine):
    return SqlOrderRepository(engine)


@pytest.fixture
def storage():
    return MemoryCartStorage()


@pytest.fixture
def cart(inventory, storage):
    return CartService(inventory, storage=storage, stock_timeout=0)


@pytest.fixture
def checkout(cart, inventory, coupon_repo, order_repo, engine):
    def event_log(event_type, label, meta):
        record_checkout_event(engine, event_type, label, meta)

    return CheckoutService(cart, inventory, coupon_repo, order_repo, event_log=event_log, stock_timeout=0)

