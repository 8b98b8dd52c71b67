import logging
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional

from app.config import settings
from app.errors import CheckoutError
from app.schemas.cart_schemas import (
    AddDiagnosticType,
    AddResult,
    CartEvent,
    CartEventKind,
    CartLine,
    CartView,
)
from app.schemas.checkout_schemas import LineChange, StockViolation
from app.services.cart_reconciler import reconcile
from app.services.cart_storage import MemoryCartStorage, deserialize_cart, serialize_cart
from app.services.stock_validator import check_book_stock

logger = logging.getLogger(__name__)


class MergeStrategy(str, Enum):
    remote_wins = "remote_wins"        # a non-empty remote cart replaces the local one
    local_wins = "local_wins"          # a non-empty local cart is kept as is
    sum_quantities = "sum_quantities"  # union of both, quantities added per book


def merge_carts(local: List[CartLine], remote: List[CartLine], strategy: MergeStrategy) -> List[CartLine]:
    strategy = MergeStrategy(strategy)

    if strategy == MergeStrategy.remote_wins:
        return list(remote) if remote else list(local)
    if strategy == MergeStrategy.local_wins:
        return list(local) if local else list(remote)

    merged: Dict[int, CartLine] = {line.book_id: line for line in local}
    for line in remote:
        if line.book_id in merged:
            current = merged[line.book_id]
            merged[line.book_id] = current.model_copy(
                update={"quantity": current.quantity + line.quantity}
            )
        else:
            merged[line.book_id] = line
    return list(merged.values())


def line_from_book(book, quantity: int) -> CartLine:
    price = getattr(book, "effective_price", None) or book.price
    return CartLine(
        book_id=book.id,
        title=book.title,
        author=getattr(book, "author", "") or "",
        cover=getattr(book, "cover_image", None) or getattr(book, "cover", None),
        unit_price=price,
        quantity=quantity,
    )


class CartService:
    """The shopper's in-progress cart and the subset selected for checkout.

    Every mutation is written to local storage, mirrored to the user's remote
    cart when signed in, and announced to subscribers.
    """

    def __init__(
        self,
        inventory,
        storage=None,
        storage_key: str = None,
        user_carts=None,
        sync_worker=None,
        stock_timeout: float = None,
    ):
        self.inventory = inventory
        self.storage = storage if storage is not None else MemoryCartStorage()
        self.storage_key = storage_key or settings.cart_storage_key
        self.user_carts = user_carts
        self.sync_worker = sync_worker
        self.stock_timeout = stock_timeout if stock_timeout is not None else settings.stock_check_timeout

        self.user_id: Optional[int] = None
        self._mirroring = False
        self._observers: List[Callable[[CartEvent], None]] = []

        lines, selected = deserialize_cart(self.storage.read(self.storage_key))
        self._lines: Dict[int, CartLine] = {line.book_id: line for line in lines}
        self._selected = set(selected)

    # ---------------------------------------------------------------------
    # reads
    # ---------------------------------------------------------------------

    @property
    def lines(self) -> List[CartLine]:
        return list(self._lines.values())

    @property
    def selected_ids(self) -> List[int]:
        return [book_id for book_id in self._lines if book_id in self._selected]

    @property
    def selected_lines(self) -> List[CartLine]:
        return [line for line in self._lines.values() if line.book_id in self._selected]

    @property
    def count(self) -> int:
        return sum(line.quantity for line in self._lines.values())

    def get_line(self, book_id: int) -> Optional[CartLine]:
        return self._lines.get(book_id)

    def is_selected(self, book_id: int) -> bool:
        return book_id in self._selected

    def view(self) -> CartView:
        return CartView(items=self.lines, selected=self.selected_ids, count=self.count)

    # ---------------------------------------------------------------------
    # mutations
    # ---------------------------------------------------------------------

    def add_line(self, book, quantity: int = 1, origin=None) -> AddResult:
        if quantity < 1:
            raise ValueError("quantity must be at least 1")

        existing = self._lines.get(book.id)
        current = existing.quantity if existing else 0

        check = check_book_stock(self.inventory, book.id, current + quantity, self.stock_timeout)
        if not check.can_fulfill:
            result = AddResult(
                added=False,
                book_id=book.id,
                quantity_in_cart=current,
                available=check.available,
            )
            if check.available == 0:
                result.diagnostic = AddDiagnosticType.OUT_OF_STOCK
            elif current >= check.available:
                result.diagnostic = AddDiagnosticType.AT_MAX_IN_CART
            else:
                result.diagnostic = AddDiagnosticType.PARTIAL_AVAILABLE
                result.remaining = check.available - current
            logger.info(f"Add to cart refused for book {book.id}: {result.diagnostic.value}")
            return result

        if existing:
            self._lines[book.id] = existing.model_copy(update={"quantity": current + quantity})
        else:
            self._lines[book.id] = line_from_book(book, quantity)
        self._selected.add(book.id)

        self._changed(CartEvent(kind=CartEventKind.added, book_id=book.id, origin=origin))
        return AddResult(
            added=True,
            book_id=book.id,
            quantity_in_cart=current + quantity,
            available=check.available,
        )

    def remove_line(self, book_id: int) -> bool:
        if self._lines.pop(book_id, None) is None:
            return False
        self._selected.discard(book_id)
        self._changed(CartEvent(kind=CartEventKind.removed, book_id=book_id))
        return True

    def remove_lines(self, book_ids: Iterable[int]) -> int:
        removed = 0
        for book_id in list(book_ids):
            if self._lines.pop(book_id, None) is not None:
                removed += 1
            self._selected.discard(book_id)
        if removed:
            self._changed(CartEvent(kind=CartEventKind.removed))
        return removed

    def set_quantity(self, book_id: int, delta: int) -> Optional[CartLine]:
        # stock is checked at the checkout checkpoints, not here
        line = self._lines.get(book_id)
        if line is None:
            return None
        updated = line.model_copy(update={"quantity": max(1, line.quantity + delta)})
        self._lines[book_id] = updated
        self._changed(CartEvent(kind=CartEventKind.quantity_changed, book_id=book_id))
        return updated

    def toggle_selection(self, book_id: int) -> bool:
        if book_id not in self._lines:
            return False
        if book_id in self._selected:
            self._selected.discard(book_id)
        else:
            self._selected.add(book_id)
        self._changed(CartEvent(kind=CartEventKind.selection_changed, book_id=book_id))
        return book_id in self._selected

    def toggle_all(self, select_all: bool):
        self._selected = set(self._lines) if select_all else set()
        self._changed(CartEvent(kind=CartEventKind.selection_changed))

    def clear(self):
        self._lines.clear()
        self._selected.clear()
        self._changed(CartEvent(kind=CartEventKind.cleared))

    def clear_selected(self) -> int:
        return self.remove_lines(self.selected_ids)

    def apply_reconciliation(self, violations: List[StockViolation]) -> List[LineChange]:
        if not violations:
            return []

        lines, changes = reconcile(self.lines, violations)
        if changes:
            self._lines = {line.book_id: line for line in lines}
            self._selected &= set(self._lines)
            self._changed(CartEvent(kind=CartEventKind.reconciled))
            logger.info("Cart reconciled: " + "; ".join(change.message for change in changes))
        return changes

    # ---------------------------------------------------------------------
    # session
    # ---------------------------------------------------------------------

    def sign_in(self, user_id: int, strategy: Optional[MergeStrategy] = None) -> List[CartLine]:
        """Fetch the remote cart, merge it in and start mirroring.

        If the fetch fails the cart stays signed out with the local lines kept,
        so the remote copy is never overwritten with a cart it was not merged
        with. Calling sign_in again retries the fetch.
        """
        strategy = MergeStrategy(strategy or settings.default_merge_strategy)
        self.user_id = None
        self._mirroring = False

        if self.user_carts is not None:
            try:
                remote, remote_selected = self.user_carts.get_user_cart(user_id)
            except CheckoutError as e:
                logger.warning(f"Remote cart for user {user_id} unavailable: {e.message}")
                raise

            merged = merge_carts(self.lines, remote, strategy)
            ids = {line.book_id for line in merged}
            self._lines = {line.book_id: line for line in merged}
            self._selected = (self._selected | set(remote_selected)) & ids

        self.user_id = user_id
        self._mirroring = True
        self._changed(CartEvent(kind=CartEventKind.replaced))
        logger.info(f"User {user_id} signed in, cart merged with {strategy.value}")
        return self.lines

    def sign_out(self):
        """Stop mirroring and shut down the sync worker after its last write."""
        self.user_id = None
        self._mirroring = False
        if self.sync_worker is not None:
            self.sync_worker.stop()
            self.sync_worker = None

    def subscribe(self, callback: Callable[[CartEvent], None]) -> Callable[[], None]:
        self._observers.append(callback)

        def unsubscribe():
            if callback in self._observers:
                self._observers.remove(callback)

        return unsubscribe

    def _changed(self, event: CartEvent):
        self.storage.write(self.storage_key, serialize_cart(self.lines, self.selected_ids))

        if self._mirroring and self.user_id is not None and self.sync_worker is not None:
            self.sync_worker.submit(self.user_id, self.lines, self.selected_ids)

        for callback in list(self._observers):
            try:
                callback(event)
            except Exception:
                logger.exception(f"Cart observer failed on {event.kind.value}")
