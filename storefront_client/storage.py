"""
Durable client storage for the cart.

``JsonFileStorage`` keeps several keyed documents in one JSON file; a
missing or corrupt file reads as empty.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Optional, Protocol

logger = logging.getLogger("storefront-client-storage")

CART_STORAGE_KEY = "lunia-cart"


class CartStorage(Protocol):
    def load(self) -> list[dict[str, Any]]:
        ...

    def save(self, items: list[dict[str, Any]]) -> None:
        ...


class MemoryStorage:
    """Keeps the cart for the life of the process."""

    def __init__(self, items: Optional[list[dict[str, Any]]] = None) -> None:
        self._items = [dict(i) for i in items or []]

    def load(self) -> list[dict[str, Any]]:
        return [dict(i) for i in self._items]

    def save(self, items: list[dict[str, Any]]) -> None:
        self._items = [dict(i) for i in items]


class JsonFileStorage:
    """Stores the cart under ``key`` in a JSON file."""

    def __init__(self, path: Optional[str] = None, key: str = CART_STORAGE_KEY) -> None:
        default = Path(os.environ.get("STOREFRONT_DATA_DIR", os.path.expanduser("~/.lunia"))) / "client.json"
        self.path = Path(path) if path else default
        self.key = key

    def _read_all(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Ignoring unreadable cart storage %s: %s", self.path, e)
            return {}
        return data if isinstance(data, dict) else {}

    def load(self) -> list[dict[str, Any]]:
        entry = self._read_all().get(self.key) or {}
        items = entry.get("items", [])
        return [i for i in items if isinstance(i, dict)]

    def save(self, items: list[dict[str, Any]]) -> None:
        data = self._read_all()
        data[self.key] = {"items": items}
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, default=str)
            os.replace(tmp, self.path)
        except OSError as e:
            logger.error("Failed to persist cart to %s: %s", self.path, e)
            if os.path.exists(tmp):
                os.unlink(tmp)
