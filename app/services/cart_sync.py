import logging
import random
import threading
import time
from typing import List, Optional

from app.config import settings
from app.schemas.cart_schemas import CartLine

logger = logging.getLogger(__name__)


class CartSyncWorker:
    """Mirrors the local cart to the per-user remote store in the background.

    Only the newest snapshot is kept; a write that fails is retried with
    exponential backoff and then dropped. Failures never touch the local cart.
    """

    def __init__(
        self,
        repository,
        max_retries: int = None,
        backoff_base: float = None,
        sleep=time.sleep,
    ):
        self.repository = repository
        self.max_retries = max_retries if max_retries is not None else settings.cart_sync_max_retries
        self.backoff_base = backoff_base if backoff_base is not None else settings.cart_sync_backoff_base
        self.sleep = sleep

        self.last_error: Optional[str] = None
        self.synced = 0

        self._cond = threading.Condition()
        self._pending = None
        self._busy = False
        self._stopped = False
        self._thread = threading.Thread(target=self._run, name="cart-sync", daemon=True)
        self._thread.start()

    def submit(self, user_id: int, lines: List[CartLine], selected: List[int]):
        snapshot = (user_id, [line.model_copy() for line in lines], list(selected))
        with self._cond:
            if self._stopped:
                return
            self._pending = snapshot
            self._cond.notify()

    def wait_idle(self, timeout: float = 5.0) -> bool:
        deadline = time.monotonic() + timeout
        with self._cond:
            while self._pending is not None or self._busy:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return False
                self._cond.wait(remaining)
        return True

    def stop(self):
        with self._cond:
            self._stopped = True
            self._cond.notify_all()
        self._thread.join(timeout=1)

    def _run(self):
        while True:
            with self._cond:
                while self._pending is None and not self._stopped:
                    self._cond.wait()
                if self._stopped and self._pending is None:
                    return
                snapshot, self._pending = self._pending, None
                self._busy = True
            try:
                self._push(*snapshot)
            finally:
                with self._cond:
                    self._busy = False
                    self._cond.notify_all()

    def _push(self, user_id, lines, selected):
        for attempt in range(1, self.max_retries + 1):
            try:
                self.repository.sync_user_cart(user_id, lines, selected)
                self.last_error = None
                self.synced += 1
                return True
            except Exception as e:
                self.last_error = str(e)
                logger.warning(f"Cart sync attempt {attempt} for user {user_id} failed: {e}")

            with self._cond:
                # a newer snapshot supersedes this one
                if self._pending is not None or self._stopped:
                    return False

            if attempt < self.max_retries:
                self.sleep((2 ** attempt) * self.backoff_base + random.random() * self.backoff_base)

        logger.error(f"Cart sync for user {user_id} gave up: {self.last_error}")
        return False
