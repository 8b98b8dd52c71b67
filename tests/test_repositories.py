"""Tests for the coupon and order repositories against SQLite."""

from datetime import date, timedelta

import pytest
from sqlmodel import Session

from app.errors import CouponError, ErrorCode, StockConflictError
from app.models import Coupon, Order, OrderItem
from app.services.coupon_service import SqlCouponRepository
from fakes import order_count, stock_of


def make_order(total=100000):
    return Order(
        customer_name="Lan",
        customer_phone="0900000000",
        customer_address="1 Book St",
        subtotal=total,
        shipping=0,
        total=total,
    )


class TestSqlCouponRepository:
    def test_validate_is_case_insensitive(self, coupon_repo, coupons):
        applied = coupon_repo.validate_coupon(" save10 ", 1000)
        assert applied.code == "SAVE10"
        assert applied.value == 10

    def test_invalid_returns_none(self, coupon_repo, coupons):
        assert coupon_repo.validate_coupon("OLD", 1000) is None
        assert coupon_repo.rejection_reason("OLD", 1000) == ErrorCode.COUPON_EXPIRED

    def test_unknown_code(self, coupon_repo, coupons):
        assert coupon_repo.rejection_reason("", 1000) == ErrorCode.COUPON_INVALID

    def test_expiry_uses_clock(self, engine, coupons):
        later = SqlCouponRepository(engine, clock=lambda: date.today() + timedelta(days=60))
        assert later.rejection_reason("SAVE10", 1000) == ErrorCode.COUPON_EXPIRED



class TestSqlOrderRepository:
    def test_coupon_usage_limit(self, order_repo, coupons):
        assert order_repo.increment_coupon_usage("USEDUP") is False
        assert order_repo.increment_coupon_usage("save10") is True

    def test_create_decrements_stock(self, order_repo, books, engine):
        order = order_repo.create_order(
            make_order(),
            [OrderItem(book_id=1, book_title="Book X", price=100000, quantity=2)],
        )

        assert order.id is not None
        assert stock_of(engine, 1) == 3
        assert [i.quantity for i in order_repo.get_order_items(order.id)] == [2]

    def test_refuses_to_go_negative(self, order_repo, books, engine):
        with pytest.raises(StockConflictError) as exc:
            order_repo.create_order(
                make_order(),
                [
                    OrderItem(book_id=1, book_title="Book X", price=100000, quantity=1),
                    OrderItem(book_id=2, book_title="Book Y", price=50000, quantity=3),
                ],
            )

        assert exc.value.titles == ["Book Y"]
        assert exc.value.retryable
        assert stock_of(engine, 1) == 5
        assert order_count(engine) == 0

    def test_exhausted_coupon_rolls_back(self, order_repo, books, coupons, engine):
        with pytest.raises(CouponError):
            order_repo.create_order(
                make_order(),
                [OrderItem(book_id=1, book_title="Book X", price=100000, quantity=1)],
                coupon_code="USEDUP",
            )

        assert stock_of(engine, 1) == 5
        assert order_count(engine) == 0
        with Session(engine) as session:
            assert session.get(Coupon, "USEDUP").used_count == 1
