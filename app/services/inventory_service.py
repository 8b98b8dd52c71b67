# app/services/inventory_service.py
import logging
from datetime import datetime
from typing import Dict, Iterable

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from app.errors import NetworkFailureError
from app.models.book import Book
from app.schemas.checkout_schemas import StockSnapshot

logger = logging.getLogger(__name__)


def _snapshot(book_id: int, book) -> StockSnapshot:
    if not book:
        # unknown books read as sold out
        return StockSnapshot(book_id=book_id, available_quantity=0)

    return StockSnapshot(
        book_id=book.id,
        available_quantity=max(book.stock or 0, 0),
        price=book.effective_price,
        title=book.title,
        cover=book.cover_image,
        observed_at=datetime.utcnow(),
    )


class SqlInventory:
    """Read side of the authoritative stock counts."""

    def __init__(self, engine):
        self.engine = engine

    def get_stock(self, book_id: int) -> StockSnapshot:
        return self.get_stock_batch([book_id])[book_id]

    def get_stock_batch(self, book_ids: Iterable[int]) -> Dict[int, StockSnapshot]:
        ids = list(dict.fromkeys(book_ids))
        if not ids:
            return {}

        try:
            with Session(self.engine) as session:
                books = session.exec(select(Book).where(Book.id.in_(ids))).all()
        except SQLAlchemyError as e:
            logger.error(f"Stock lookup failed for {ids}: {e}")
            raise NetworkFailureError("Could not read stock, please retry") from e

        by_id = {book.id: book for book in books}
        return {book_id: _snapshot(book_id, by_id.get(book_id)) for book_id in ids}


def decrement_stock(session: Session, book_id: int, quantity: int) -> bool:
    """Conditional check-and-decrement. Returns False when stock would go negative.

    Runs inside the caller's transaction; nothing is committed here.
    """
    result = session.execute(
        update(Book)
        .where(Book.id == book_id, Book.stock >= quantity)
        .values(stock=Book.stock - quantity, updated_at=datetime.utcnow())
    )
    logger.info(f"Decrement book {book_id} by {quantity}: {result.rowcount} row(s)")
    return result.rowcount == 1
