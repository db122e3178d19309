"""Durable local storage for cart and checkout state."""

import fcntl
import json
import logging
import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Iterator

from .errors import InvalidSchemaVersionError

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1
STATE_FILE = "state.json"
LOCK_FILE = ".state.lock"

# Keys of the persisted document
CART_ITEMS = "cart_items"
BUY_NOW_ITEM = "buy_now_item"
CHECKOUT = "checkout"
SHIPPING_ADDRESS = "shipping_address"
PAYMENT_METHOD = "payment_method"
PENDING_PAYMENT = "pending_payment"
PLACED_ORDER = "placed_order"


def _empty_state() -> dict[str, Any]:
    return {
        "schema_version": SCHEMA_VERSION,
        CART_ITEMS: [],
        BUY_NOW_ITEM: None,
        CHECKOUT: None,
        SHIPPING_ADDRESS: None,
        PAYMENT_METHOD: None,
        PENDING_PAYMENT: None,
        PLACED_ORDER: None,
    }


class StateStore:
    """Reads and writes the shopper's state document.

    The document is a single JSON file with a schema version tag. Writes go
    to a temp file that is renamed over the original, under an exclusive
    file lock, so the CLI and the local server never interleave a write.
    """

    def __init__(self, data_dir: Path):
        """
        Initialize StateStore.

        Args:
            data_dir: Directory holding the state file (created on first write).
        """
        self.data_dir = Path(data_dir)
        self.state_path = self.data_dir / STATE_FILE

    def _ensure_dir(self) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)

    @contextmanager
    def _lock(self) -> Iterator[None]:
        """Acquire exclusive lock on the state file for read-modify-write operations."""
        self._ensure_dir()
        lock_path = self.data_dir / LOCK_FILE
        with open(lock_path, "w") as lock_file:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)

    def exists(self) -> bool:
        """Check if the state file exists."""
        return self.state_path.exists()

    def load(self) -> dict[str, Any]:
        """
        Load the state document. A missing file is an empty state.

        Raises:
            InvalidSchemaVersionError: If schema version is unsupported.
        """
        if not self.exists():
            return _empty_state()

        try:
            with open(self.state_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            corrupt = self.state_path.with_suffix(".corrupt")
            logger.warning("Unreadable state file %s (%s), moved to %s", self.state_path, e, corrupt)
            os.replace(self.state_path, corrupt)
            return _empty_state()

        version = data.get("schema_version", 0)
        if version != SCHEMA_VERSION:
            raise InvalidSchemaVersionError(version, SCHEMA_VERSION)

        state = _empty_state()
        state.update(data)
        return state

    def save(self, data: dict[str, Any]) -> None:
        """
        Save the state document atomically.

        Uses write-to-temp-then-rename for atomicity.
        """
        self._ensure_dir()
        data = dict(data, schema_version=SCHEMA_VERSION)

        fd, temp_path = tempfile.mkstemp(dir=self.data_dir, prefix=".state_", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
                f.write("\n")
            os.replace(temp_path, self.state_path)
        except Exception:
            try:
                os.unlink(temp_path)
            except OSError:
                pass
            raise

    def get(self, key: str, default: Any = None) -> Any:
        value = self.load().get(key)
        return default if value is None else value

    def update(self, **values: Any) -> None:
        """Write one or more keys in a single locked read-modify-write."""
        with self._lock():
            data = self.load()
            data.update(values)
            self.save(data)

    def set(self, key: str, value: Any) -> None:
        self.update(**{key: value})

    def modify(self, key: str, change: Callable[[Any], Any]) -> Any:
        """
        Replace one key with ``change(current_value)`` under the file lock.

        The current value is read from disk inside the lock, so concurrent
        writers never lose each other's edits. Nothing is written when the
        value is unchanged or when ``change`` raises.

        Returns:
            The value now stored under ``key``.
        """
        with self._lock():
            data = self.load()
            current = data.get(key)
            new_value = change(current)
            if new_value == current:
                return current
            data[key] = new_value
            self.save(data)
            return new_value

    def delete(self, *keys: str) -> None:
        """Reset keys to their empty value."""
        empty = _empty_state()
        self.update(**{key: empty[key] for key in keys})

    def reset(self) -> None:
        """Drop all persisted state."""
        with self._lock():
            self.save(_empty_state())
