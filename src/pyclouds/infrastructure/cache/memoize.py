"""Thread-safe memoization with expiry."""

import threading
import time
from collections.abc import Callable, Hashable
from typing import Generic, Optional, TypeVar

from pyclouds.infrastructure.logging.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")
K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class MemoizedSupplier(Generic[T]):
    """
    Call ``supplier`` once and reuse the value until ``ttl`` seconds pass.

    A ``ttl`` of None never expires. Exceptions from the supplier propagate
    and leave nothing cached, so the next ``get`` calls it again.
    """

    def __init__(self, supplier: Callable[[], T], ttl: Optional[float] = None) -> None:
        if ttl is not None and ttl <= 0:
            raise ValueError("ttl must be positive")
        self._supplier = supplier
        self._ttl = ttl
        self._lock = threading.RLock()
        self._value: Optional[T] = None
        self._expires_at: Optional[float] = None
        self._loaded = False

    def get(self) -> T:
        with self._lock:
            if self._loaded and not self._expired():
                return self._value  # type: ignore[return-value]
            value = self._supplier()
            self._value = value
            self._loaded = True
            self._expires_at = None if self._ttl is None else time.monotonic() + self._ttl
            return value

    __call__ = get

    def _expired(self) -> bool:
        return self._expires_at is not None and time.monotonic() >= self._expires_at

    def invalidate(self) -> None:
        with self._lock:
            self._value = None
            self._loaded = False
            self._expires_at = None

    invalidate_all = invalidate

    def __repr__(self) -> str:
        return f"MemoizedSupplier({self._supplier!r}, ttl={self._ttl})"


class ExpiringCache(Generic[K, V]):
    """
    Keyed cache that loads missing or expired entries through ``loader``.

    Used to hold authentication responses keyed by credentials; retry
    handlers call ``invalidate_all`` when a token is rejected.
    """

    def __init__(self, loader: Callable[[K], V], ttl: Optional[float] = None) -> None:
        if ttl is not None and ttl <= 0:
            raise ValueError("ttl must be positive")
        self._loader = loader
        self._ttl = ttl
        self._lock = threading.RLock()
        self._entries: dict[K, tuple[V, Optional[float]]] = {}

    def get(self, key: K) -> V:
        with self._lock:
            entry = self._entries.get(key)
            now = time.monotonic()
            if entry is not None and (entry[1] is None or now < entry[1]):
                return entry[0]
            value = self._loader(key)
            expires_at = None if self._ttl is None else now + self._ttl
            self._entries[key] = (value, expires_at)
            return value

    def get_if_present(self, key: K) -> Optional[V]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or (entry[1] is not None and time.monotonic() >= entry[1]):
                return None
            return entry[0]

    def invalidate(self, key: K) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def invalidate_all(self) -> None:
        with self._lock:
            if self._entries:
                logger.debug("Invalidating %d cached entries", len(self._entries))
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
