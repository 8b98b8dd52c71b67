import logging
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeout
from typing import Dict, Iterable, List, NamedTuple

from app.errors import NetworkFailureError
from app.schemas.cart_schemas import CartLine
from app.schemas.checkout_schemas import StockSnapshot, StockViolation, ViolationType

logger = logging.getLogger(__name__)


class StockCheck(NamedTuple):
    available: int
    can_fulfill: bool


def read_stock(inventory, book_ids: Iterable[int], timeout: float = None) -> Dict[int, StockSnapshot]:
    """Batch stock read that gives up after `timeout` seconds instead of hanging."""
    book_ids = list(book_ids)
    if not timeout:
        return inventory.get_stock_batch(book_ids)

    pool = ThreadPoolExecutor(max_workers=1)
    try:
        return pool.submit(inventory.get_stock_batch, book_ids).result(timeout=timeout)
    except FuturesTimeout as e:
        logger.warning(f"Stock check timed out after {timeout}s for {book_ids}")
        raise NetworkFailureError("Stock check timed out, please retry") from e
    finally:
        pool.shutdown(wait=False)


def check_book_stock(inventory, book_id: int, requested: int, timeout: float = None) -> StockCheck:
    snapshot = read_stock(inventory, [book_id], timeout).get(book_id)
    available = snapshot.available_quantity if snapshot else 0
    return StockCheck(available=available, can_fulfill=available >= requested)


def violation_for(line: CartLine, available: int):
    if available <= 0:
        kind = ViolationType.OUT_OF_STOCK
        available = 0
    elif available < line.quantity:
        kind = ViolationType.INSUFFICIENT
    else:
        return None

    return StockViolation(
        book_id=line.book_id,
        title=line.title,
        type=kind,
        available_quantity=available,
        requested_quantity=line.quantity,
    )


def check_batch(inventory, lines: List[CartLine], timeout: float = None) -> List[StockViolation]:
    """Compare requested quantities with current stock. Reads only."""
    if not lines:
        return []

    stock = read_stock(inventory, [line.book_id for line in lines], timeout)

    violations = []
    for line in lines:
        snapshot = stock.get(line.book_id)
        violation = violation_for(line, snapshot.available_quantity if snapshot else 0)
        if violation:
            violations.append(violation)

    if violations:
        logger.info(
            "Stock violations: "
            + ", ".join(f"{v.book_id}={v.type.value}({v.available_quantity}/{v.requested_quantity})" for v in violations)
        )
    return violations
