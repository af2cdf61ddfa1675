# This module wraps the durable key-value store behind the prayer time caches.
import logging
import threading
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from redis import exceptions as redis_exceptions

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """A durable store operation failed. Callers treat this as best-effort."""


class StorageQuotaExceeded(StorageError):
    """The store refused a write because it is full."""


class KeyValueStore(ABC):
    """
    String key-value store. Every operation may fail with StorageError.
    """

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        pass

    @abstractmethod
    def keys(self, prefix: str = "") -> List[str]:
        pass


class MemoryStore(KeyValueStore):
    """
    In-process store with an optional capacity in bytes (keys plus values).
    Used for tests and for running without Redis.
    """

    def __init__(self, capacity_bytes: Optional[int] = None):
        self.capacity_bytes = capacity_bytes
        self._data: Dict[str, str] = {}
        self._lock = threading.Lock()

    def _size(self) -> int:
        return sum(len(k) + len(v) for k, v in self._data.items())

    def get(self, key):
        with self._lock:
            return self._data.get(key)

    def set(self, key, value):
        with self._lock:
            if self.capacity_bytes is not None:
                current = self._size() - (len(key) + len(self._data[key]) if key in self._data else 0)
                if current + len(key) + len(value) > self.capacity_bytes:
                    raise StorageQuotaExceeded(f"Store capacity of {self.capacity_bytes} bytes exceeded writing '{key}'")
            self._data[key] = value

    def delete(self, key):
        with self._lock:
            self._data.pop(key, None)

    def keys(self, prefix=""):
        with self._lock:
            return [k for k in self._data if k.startswith(prefix)]


class RedisStore(KeyValueStore):
    """Durable tier backed by Redis. Redis errors surface as StorageError."""

    def __init__(self, client):
        self.client = client

    @staticmethod
    def _translate(e: redis_exceptions.RedisError, action: str, key: str) -> StorageError:
        if isinstance(e, redis_exceptions.ResponseError) and str(e).startswith("OOM"):
            return StorageQuotaExceeded(f"Redis is out of memory during {action} for key {key}: {e}")
        return StorageError(f"Redis {action} failed for key {key}: {e}")

    def get(self, key):
        try:
            value = self.client.get(key)
        except redis_exceptions.RedisError as e:
            raise self._translate(e, "GET", key) from e
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return value

    def set(self, key, value):
        try:
            self.client.set(key, value)
        except redis_exceptions.RedisError as e:
            raise self._translate(e, "SET", key) from e

    def delete(self, key):
        try:
            self.client.delete(key)
        except redis_exceptions.RedisError as e:
            raise self._translate(e, "DEL", key) from e

    def keys(self, prefix=""):
        try:
            found = self.client.scan_iter(match=f"{prefix}*")
            return [k.decode("utf-8") if isinstance(k, bytes) else k for k in found]
        except redis_exceptions.RedisError as e:
            raise self._translate(e, "SCAN", prefix) from e


def create_store(config, redis_client=None) -> KeyValueStore:
    """Builds the durable store selected by DURABLE_STORE_BACKEND."""
    backend = config.get('DURABLE_STORE_BACKEND', 'redis')
    if backend == 'memory':
        logger.info("Using in-process memory store for the durable cache tier.")
        return MemoryStore(capacity_bytes=config.get('MEMORY_STORE_CAPACITY_BYTES'))
    if backend == 'redis':
        if redis_client is None:
            raise ValueError("DURABLE_STORE_BACKEND is 'redis' but no Redis client was provided.")
        return RedisStore(redis_client)
    raise ValueError(f"Unsupported durable store backend: {backend}")
