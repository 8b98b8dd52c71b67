"""Tests for the commit state machine and the end-to-end checkout scenarios."""

import threading

import pytest
from sqlmodel import Session, select

from app.errors import CheckoutInProgressError, CouponError, ErrorCode
from app.models import Book, Coupon, Order, OrderEvent, OrderItem
from app.schemas.checkout_schemas import CheckoutState, CustomerInfo, PaymentMethod
from app.services.cart_service import CartService
from app.services.checkout_service import CheckoutService
from app.services.order_finalizer import OrderFinalizer
from fakes import order_count, stock_of

CUSTOMER = CustomerInfo(name="Lan", phone="0900000000", address="1 Book St", email="lan@example.com")


class BarrierInventory:
    """Holds every stock read until all racing shoppers have validated."""

    def __init__(self, inner, barrier):
        self.inner = inner
        self.barrier = barrier

    def get_stock_batch(self, book_ids):
        snapshot = self.inner.get_stock_batch(book_ids)
        self.barrier.wait(timeout=10)
        return snapshot


class RacingInventory:
    """Another buyer takes stock right after this shopper validated."""

    def __init__(self, inner, engine, book_id, left):
        self.inner = inner
        self.engine = engine
        self.book_id = book_id
        self.left = left

    def get_stock_batch(self, book_ids):
        snapshot = self.inner.get_stock_batch(book_ids)
        with Session(self.engine) as session:
            book = session.get(Book, self.book_id)
            book.stock = self.left
            session.add(book)
            session.commit()
        return snapshot


class TestCommitSuccess:
    def test_scenario_a(self, checkout, cart, books, engine):
        cart.add_line(books["X"], 3)

        result = checkout.commit_order(CUSTOMER, PaymentMethod.cod)

        assert result.state == CheckoutState.SUCCESS
        assert result.order_id is not None
        assert stock_of(engine, 1) == 2
        assert cart.get_line(1) is None
        assert cart.selected_ids == []

    def test_only_selected_lines_are_committed(self, checkout, cart, books, engine):
        cart.add_line(books["X"], 1)
        cart.add_line(books["Y"], 1)
        cart.toggle_selection(2)

        result = checkout.commit_order(CUSTOMER)

        assert result.ok
        assert [l.book_id for l in cart.lines] == [2]
        assert stock_of(engine, 2) == 2
        items = checkout.orders.get_order_items(result.order_id)
        assert [i.book_id for i in items] == [1]

    def test_order_snapshot(self, checkout, cart, books, engine):
        cart.add_line(books["X"], 2)

        result = checkout.commit_order(CUSTOMER, "online")

        order = checkout.orders.get_order(result.order_id)
        assert order.status == "processing"
        assert order.status_step == 1
        assert order.payment_method == "online"
        assert order.customer_name == "Lan"
        assert order.subtotal == 200000
        assert order.total == result.summary.grand_total

    def test_order_prices_stay_frozen(self, checkout, cart, books, engine):
        cart.add_line(books["X"], 1)
        result = checkout.commit_order(CUSTOMER)

        with Session(engine) as session:
            book = session.get(Book, 1)
            book.price = 999999
            session.add(book)
            session.commit()

        [item] = checkout.orders.get_order_items(result.order_id)
        assert item.price == 100000
        assert item.book_title == "Book X"

    def test_coupon_usage_incremented(self, checkout, cart, books, coupons, engine):
        cart.add_line(books["X"], 2)
        checkout.apply_coupon("save10")

        result = checkout.commit_order(CUSTOMER)

        assert result.ok
        assert result.summary.discount == 20000
        assert checkout.applied_coupon is None
        with Session(engine) as session:
            assert session.get(Coupon, "SAVE10").used_count == 1
            assert session.get(Order, result.order_id).coupon_code == "SAVE10"

    def test_created_event_logged(self, checkout, cart, books, engine):
        cart.add_line(books["X"], 1)
        result = checkout.commit_order(CUSTOMER)

        with Session(engine) as session:
            events = session.exec(select(OrderEvent).where(OrderEvent.order_id == result.order_id)).all()
        assert [e.event_type for e in events] == ["ORDER_CREATED"]


class TestRejected:
    def test_insufficient_stock_is_reconciled(self, checkout, cart, books, engine, inventory):
        cart.add_line(books["X"], 4)
        with Session(engine) as session:
            book = session.get(Book, 1)
            book.stock = 2
            session.add(book)
            session.commit()

        result = checkout.commit_order(CUSTOMER)

        assert result.state == CheckoutState.REJECTED
        assert result.error == ErrorCode.INSUFFICIENT_STOCK
        assert cart.get_line(1).quantity == 2
        assert order_count(engine) == 0

        retry = checkout.commit_order(CUSTOMER)
        assert retry.ok
        assert stock_of(engine, 1) == 0

    def test_sold_out_line_removed(self, checkout, cart, books, engine):
        cart.add_line(books["W"], 1)
        with Session(engine) as session:
            book = session.get(Book, 4)
            book.stock = 0
            session.add(book)
            session.commit()

        result = checkout.commit_order(CUSTOMER)

        assert result.state == CheckoutState.REJECTED
        assert result.error == ErrorCode.OUT_OF_STOCK
        assert cart.lines == []
        assert result.changes[0].removed

    def test_missing_shipping_info(self, checkout, cart, books, engine):
        cart.add_line(books["X"], 1)

        result = checkout.commit_order({"name": "Lan", "phone": "", "address": " "})

        assert result.state == CheckoutState.REJECTED
        assert result.error == ErrorCode.MISSING_SHIPPING_INFO
        assert "phone" in result.message and "address" in result.message
        assert cart.get_line(1).quantity == 1

    def test_empty_selection(self, checkout, cart, books):
        cart.add_line(books["X"], 1)
        cart.toggle_all(False)

        result = checkout.commit_order(CUSTOMER)

        assert result.error == ErrorCode.EMPTY_SELECTION

    def test_coupon_no_longer_qualifies(self, checkout, cart, books, coupons, engine):
        cart.add_line(books["X"], 3)
        checkout.apply_coupon("MIN300K")
        cart.set_quantity(1, -1)

        result = checkout.commit_order(CUSTOMER)

        assert result.state == CheckoutState.REJECTED
        assert result.error == ErrorCode.COUPON_BELOW_MIN
        assert checkout.applied_coupon is None
        assert checkout.commit_order(CUSTOMER).ok


class TestFailed:
    def test_race_lost_during_commit_leaves_cart(self, cart, books, engine, inventory, coupon_repo, order_repo, coupons):
        racing = RacingInventory(inventory, engine, book_id=1, left=1)
        checkout = CheckoutService(cart, racing, coupon_repo, order_repo, stock_timeout=0)
        cart.add_line(books["X"], 3)
        cart.add_line(books["Y"], 1)
        checkout.apply_coupon("SAVE10")
        before = [(l.book_id, l.quantity) for l in cart.lines]

        result = checkout.commit_order(CUSTOMER)

        assert result.state == CheckoutState.FAILED
        assert result.error == ErrorCode.OUT_OF_STOCK
        assert "Book X" in result.message
        assert [(l.book_id, l.quantity) for l in cart.lines] == before
        assert cart.selected_ids == [1, 2]
        assert order_count(engine) == 0
        # nothing half-applied
        assert stock_of(engine, 2) == 2
        with Session(engine) as session:
            assert session.get(Coupon, "SAVE10").used_count == 0
            assert session.exec(select(OrderItem)).all() == []

    def test_scenario_e_last_unit(self, engine, books, coupon_repo, order_repo, inventory):
        barrier = threading.Barrier(2)
        shoppers = []
        for _ in range(2):
            cart = CartService(inventory, stock_timeout=0)
            cart.add_line(books["W"], 1)
            shoppers.append(CheckoutService(
                cart, BarrierInventory(inventory, barrier), coupon_repo, order_repo, stock_timeout=0,
            ))

        results = [None, None]

        def buy(i):
            results[i] = shoppers[i].commit_order(CUSTOMER)

        threads = [threading.Thread(target=buy, args=(i,)) for i in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=30)

        states = sorted(r.state.value for r in results)
        assert states == ["failed", "success"]
        failed = next(r for r in results if r.state == CheckoutState.FAILED)
        assert failed.error == ErrorCode.OUT_OF_STOCK
        assert failed.order_id is None
        assert order_count(engine) == 1
        assert stock_of(engine, 4) == 0


class TestStateMachine:
    def test_success_path(self, cart, books, inventory, order_repo):
        cart.add_line(books["X"], 1)
        finalizer = OrderFinalizer(cart, inventory, order_repo)

        finalizer.run(CUSTOMER)

        assert finalizer.history == [
            CheckoutState.IDLE,
            CheckoutState.VALIDATING,
            CheckoutState.COMMITTING,
            CheckoutState.SUCCESS,
        ]

    def test_single_use(self, cart, books, inventory, order_repo):
        cart.add_line(books["X"], 1)
        finalizer = OrderFinalizer(cart, inventory, order_repo)
        finalizer.run(CUSTOMER)

        with pytest.raises(RuntimeError):
            finalizer.run(CUSTOMER)

    def test_commit_disabled_while_in_flight(self, checkout, cart, books):
        cart.add_line(books["X"], 1)
        checkout._committing = True

        with pytest.raises(CheckoutInProgressError):
            checkout.commit_order(CUSTOMER)


class TestCheckoutEntry:
    def test_scenario_b(self, checkout, cart, books, engine):
        cart.add_line(books["X"], 4)
        with Session(engine) as session:
            book = session.get(Book, 1)
            book.stock = 2
            session.add(book)
            session.commit()

        report = checkout.validate_before_checkout()

        [violation] = report.violations
        assert violation.type.value == "INSUFFICIENT_STOCK"
        assert violation.available_quantity == 2
        assert cart.get_line(1).quantity == 2
        assert not report.is_valid

    def test_scenario_c(self, checkout, cart, books, engine):
        cart.add_line(books["W"], 1)
        with Session(engine) as session:
            book = session.get(Book, 4)
            book.stock = 0
            session.add(book)
            session.commit()

        report = checkout.validate_before_checkout()

        assert cart.get_line(4) is None
        assert report.changes[0].message == "Book W: out of stock"

    def test_clean_cart(self, checkout, cart, books):
        cart.add_line(books["X"], 1)
        report = checkout.validate_before_checkout()
        assert report.is_valid
        assert report.changes == []


class TestCoupons:
    def test_apply_and_remove(self, checkout, cart, books, coupons):
        cart.add_line(books["X"], 2)

        checkout.apply_coupon("SAVE10")
        assert checkout.summary().discount == 20000

        checkout.remove_coupon()
        assert checkout.summary().discount == 0

    @pytest.mark.parametrize("code, expected", [
        ("NOPE", ErrorCode.COUPON_INVALID),
        ("OLD", ErrorCode.COUPON_EXPIRED),
        ("MIN300K", ErrorCode.COUPON_BELOW_MIN),
        ("USEDUP", ErrorCode.COUPON_INVALID),
    ])
    def test_rejections(self, checkout, cart, books, coupons, code, expected):
        cart.add_line(books["X"], 1)

        with pytest.raises(CouponError) as exc:
            checkout.apply_coupon(code)

        assert exc.value.code == expected
        assert checkout.applied_coupon is None

    def test_fixed_coupon_never_negative(self, checkout, cart, books, coupons):
        cart.add_line(books["Y"], 1)
        checkout.apply_coupon("BIGFIXED")

        summary = checkout.summary()

        assert summary.discount == summary.subtotal
        assert summary.grand_total >= 0
