import json
import logging
import os
import tempfile
import threading
from typing import List, Tuple

from pydantic import ValidationError

from app.schemas.cart_schemas import CartLine

logger = logging.getLogger(__name__)


def serialize_cart(lines: List[CartLine], selected: List[int]) -> dict:
    return {
        "items": [line.model_dump() for line in lines],
        "selected": list(selected),
    }


def deserialize_cart(payload) -> Tuple[List[CartLine], List[int]]:
    """Parse a stored cart, skipping lines that no longer match CartLine."""
    if not isinstance(payload, dict):
        return [], []

    lines, seen = [], set()
    for raw in payload.get("items") or []:
        try:
            line = CartLine(**raw)
        except (TypeError, ValidationError):
            logger.warning(f"Dropping unreadable stored cart line: {raw!r}")
            continue
        if line.book_id in seen:
            continue
        seen.add(line.book_id)
        lines.append(line)

    selected = [i for i in payload.get("selected") or [] if i in seen]
    return lines, selected


class MemoryCartStorage:
    def __init__(self, data: dict = None):
        self.data = dict(data or {})

    def read(self, key: str):
        return self.data.get(key)

    def write(self, key: str, payload: dict):
        self.data[key] = json.loads(json.dumps(payload))


class FileCartStorage:
    """Key/value JSON file, one namespaced key per cart."""

    def __init__(self, path: str):
        self.path = path
        self._lock = threading.Lock()

    def _read_all(self) -> dict:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Cart storage {self.path} unreadable, starting empty: {e}")
            return {}

    def read(self, key: str):
        with self._lock:
            return self._read_all().get(key)

    def write(self, key: str, payload: dict):
        with self._lock:
            data = self._read_all()
            data[key] = payload
            directory = os.path.dirname(os.path.abspath(self.path))
            fd, tmp = tempfile.mkstemp(dir=directory, suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f)
            os.replace(tmp, self.path)
