import logging
import threading
import time
from collections import OrderedDict
from typing import Dict, List, Optional

from fastapi import Depends, Header

from app.config import settings
from app.database import engine
from app.errors import CheckoutError
from app.services.cart_service import CartService
from app.services.cart_storage import FileCartStorage
from app.services.cart_sync import CartSyncWorker
from app.services.checkout_service import CheckoutService
from app.services.coupon_service import SqlCouponRepository
from app.services.inventory_service import SqlInventory
from app.services.order_event_service import record_checkout_event
from app.services.order_service import SqlOrderRepository
from app.services.user_cart_service import SqlUserCartRepository
from app.utils.http_errors import to_http_exception

logger = logging.getLogger(__name__)


class SessionRegistry:
    """One cart and checkout per shopper session, sharing the repositories.

    Sessions idle for longer than ``idle_ttl`` seconds are evicted, and the
    least recently seen ones go first once ``max_sessions`` is reached. An
    evicted cart is rebuilt from local storage on the next request.
    """

    def __init__(self, engine, storage=None, idle_ttl: float = None, max_sessions: int = None, clock=time.monotonic):
        self.engine = engine
        self.inventory = SqlInventory(engine)
        self.coupons = SqlCouponRepository(engine)
        self.orders = SqlOrderRepository(engine)
        self.user_carts = SqlUserCartRepository(engine)
        self.storage = storage if storage is not None else FileCartStorage(settings.cart_storage_path)
        self.idle_ttl = idle_ttl if idle_ttl is not None else settings.session_idle_ttl
        self.max_sessions = max_sessions if max_sessions is not None else settings.max_sessions
        self.clock = clock
        self._sessions: "OrderedDict[str, CheckoutService]" = OrderedDict()
        self._last_seen: Dict[str, float] = {}
        self._lock = threading.Lock()

    def __len__(self):
        return len(self._sessions)

    def _event_log(self, event_type, label, meta):
        record_checkout_event(self.engine, event_type, label, meta)

    def _create(self, session_id: str) -> CheckoutService:
        cart = CartService(
            self.inventory,
            storage=self.storage,
            storage_key=f"{settings.cart_storage_key}:{session_id}",
            user_carts=self.user_carts,
        )
        return CheckoutService(
            cart,
            self.inventory,
            self.coupons,
            self.orders,
            event_log=self._event_log,
        )

    def _evict(self, now: float) -> List[CheckoutService]:
        # caller holds the lock; _sessions is ordered oldest seen first
        evicted = []
        for session_id in list(self._sessions):
            if now - self._last_seen[session_id] <= self.idle_ttl:
                break
            evicted.append(self._pop(session_id))
        while len(self._sessions) >= self.max_sessions:
            evicted.append(self._pop(next(iter(self._sessions))))
        return evicted

    def _pop(self, session_id: str) -> CheckoutService:
        self._last_seen.pop(session_id, None)
        return self._sessions.pop(session_id)

    def checkout_for(self, session_id: str, user_id: Optional[int] = None) -> CheckoutService:
        now = self.clock()
        with self._lock:
            checkout = self._sessions.get(session_id)
            if checkout is None:
                evicted = self._evict(now)
                checkout = self._sessions[session_id] = self._create(session_id)
            else:
                evicted = []
                self._sessions.move_to_end(session_id)
            self._last_seen[session_id] = now

        for stale in evicted:
            stale.cart.sign_out()
        if evicted:
            logger.info(f"Evicted {len(evicted)} idle cart sessions")

        cart = checkout.cart
        if user_id is not None and cart.user_id != user_id:
            if cart.sync_worker is None:
                cart.sync_worker = CartSyncWorker(self.user_carts)
            cart.sign_in(user_id)
        elif user_id is None and cart.user_id is not None:
            cart.sign_out()
        return checkout

    def close(self):
        with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
            self._last_seen.clear()
        for checkout in sessions:
            checkout.cart.sign_out()


registry = SessionRegistry(engine)


def get_registry() -> SessionRegistry:
    return registry


def get_checkout(
    x_session_id: str = Header(...),
    x_user_id: Optional[int] = Header(None),
    registry: SessionRegistry = Depends(get_registry),
) -> CheckoutService:
    try:
        return registry.checkout_for(x_session_id, x_user_id)
    except CheckoutError as e:
        raise to_http_exception(e)
