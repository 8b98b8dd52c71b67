import logging
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from app.errors import NetworkFailureError
from app.models.user_cart import UserCart
from app.schemas.cart_schemas import CartLine

logger = logging.getLogger(__name__)


class SqlUserCartRepository:
    """Per-user remote mirror of the cart."""

    def __init__(self, engine):
        self.engine = engine

    def get_user_cart(self, user_id: int) -> Tuple[List[CartLine], List[int]]:
        try:
            with Session(self.engine) as session:
                row = session.get(UserCart, user_id)
        except SQLAlchemyError as e:
            raise NetworkFailureError("Could not load the saved cart") from e

        if not row:
            return [], []

        lines = []
        for raw in row.items or []:
            try:
                lines.append(CartLine(**raw))
            except (TypeError, ValueError):
                logger.warning(f"Skipping malformed remote cart line for user {user_id}: {raw}")
        return lines, list(row.selected or [])

    def sync_user_cart(self, user_id: int, lines: List[CartLine], selected: Optional[List[int]] = None):
        with Session(self.engine) as session:
            row = session.get(UserCart, user_id) or UserCart(user_id=user_id)
            row.items = [line.model_dump() for line in lines]
            row.selected = list(selected or [])
            row.updated_at = datetime.utcnow()
            session.add(row)
            session.commit()
