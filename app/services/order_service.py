import logging
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from app.errors import CheckoutError, CouponError, NetworkFailureError, StockConflictError
from app.models.order import Order
from app.models.order_item import OrderItem
from app.services.coupon_service import increment_usage
from app.services.inventory_service import decrement_stock
from app.services.order_event_service import ORDER_CREATED, log_order_event

logger = logging.getLogger(__name__)


class SqlOrderRepository:
    """Writes orders. Decrement, order insert and coupon usage share one transaction."""

    def __init__(self, engine):
        self.engine = engine

    def create_order(
        self,
        order: Order,
        items: List[OrderItem],
        coupon_code: Optional[str] = None,
    ) -> Order:
        with Session(self.engine, expire_on_commit=False) as session:
            try:
                conflicts = [
                    item for item in items
                    if not decrement_stock(session, item.book_id, item.quantity)
                ]
                if conflicts:
                    raise StockConflictError(
                        [item.book_title for item in conflicts],
                        [item.book_id for item in conflicts],
                    )

                session.add(order)
                session.flush()

                for item in items:
                    item.order_id = order.id
                    session.add(item)

                if coupon_code and not increment_usage(session, coupon_code):
                    raise CouponError(coupon_code)

                log_order_event(
                    session,
                    order.id,
                    ORDER_CREATED,
                    f"Order #{order.id} placed",
                    meta={"items": len(items), "total": order.total},
                )
                session.commit()

            except CheckoutError as e:
                session.rollback()
                logger.warning(f"Order rolled back: {e.message}")
                raise
            except SQLAlchemyError as e:
                session.rollback()
                logger.error(f"Order commit failed: {e}")
                raise NetworkFailureError("Could not place the order, please retry") from e

        logger.info(f"Order {order.id} created with {len(items)} item(s)")
        return order

    def get_order(self, order_id: int) -> Optional[Order]:
        with Session(self.engine, expire_on_commit=False) as session:
            return session.get(Order, order_id)

    def get_order_items(self, order_id: int) -> List[OrderItem]:
        with Session(self.engine, expire_on_commit=False) as session:
            return list(session.exec(
                select(OrderItem).where(OrderItem.order_id == order_id)
            ).all())

    def increment_coupon_usage(self, code: str) -> bool:
        with Session(self.engine) as session:
            updated = increment_usage(session, code)
            session.commit()
        if not updated:
            logger.warning(f"Coupon {code} usage not incremented (limit reached or unknown)")
        return updated
