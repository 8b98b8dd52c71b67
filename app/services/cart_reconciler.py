from typing import List, Tuple

from app.schemas.cart_schemas import CartLine
from app.schemas.checkout_schemas import LineChange, StockViolation, ViolationType


def reconcile(lines: List[CartLine], violations: List[StockViolation]) -> Tuple[List[CartLine], List[LineChange]]:
    """Return a corrected copy of `lines` and the changes that were made.

    Out-of-stock lines are dropped and insufficient lines are clamped to the
    available quantity. Lines without a violation come back untouched, and
    applying the same violations twice changes nothing the second time.
    """
    by_id = {v.book_id: v for v in violations}
    result, changes = [], []

    for line in lines:
        violation = by_id.get(line.book_id)
        if violation is None:
            result.append(line)
            continue

        available = max(violation.available_quantity, 0)
        if violation.type == ViolationType.OUT_OF_STOCK or available < 1:
            changes.append(LineChange(
                book_id=line.book_id,
                title=line.title,
                before=line.quantity,
                after=None,
                reason=ViolationType.OUT_OF_STOCK,
            ))
            continue

        if line.quantity <= available:
            result.append(line)
            continue

        result.append(line.model_copy(update={"quantity": available}))
        changes.append(LineChange(
            book_id=line.book_id,
            title=line.title,
            before=line.quantity,
            after=available,
            reason=violation.type,
        ))

    return result, changes
