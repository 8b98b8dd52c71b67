# app/services/order_event_service.py

import logging
from datetime import datetime
from typing import Optional
from uuid import uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from app.models.order_event import OrderEvent

logger = logging.getLogger(__name__)

ORDER_CREATED = "ORDER_CREATED"
ORDER_FAILED = "ORDER_FAILED"
ORDER_REJECTED = "ORDER_REJECTED"


def log_order_event(
    session: Session,
    order_id: Optional[int],
    event_type: str,
    label: str,
    created_by: str = "system",
    meta: Optional[dict] = None,
):
    """
    Append-only event log for order timeline
    """

    event = OrderEvent(
        id=str(uuid4()),
        order_id=order_id,
        event_type=event_type,
        label=label,
        meta=meta,
        created_by=created_by,
        created_at=datetime.utcnow(),
    )

    session.add(event)


def record_checkout_event(engine, event_type: str, label: str, meta: Optional[dict] = None):
    """Log an attempt that produced no order, in its own transaction."""
    try:
        with Session(engine) as session:
            log_order_event(session, None, event_type, label, meta=meta)
            session.commit()
    except SQLAlchemyError:
        logger.exception(f"Could not record {event_type} event")
