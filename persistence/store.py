"""
BehaviorGuard Document Store

Key-value store with ``get(key, default)`` / ``set(key, value)`` /
``delete(key)`` semantics over JSON documents.

Key Schema:
    {namespace}:settings      → MonitorSettings JSON
    {namespace}:profile       → BehaviorProfile JSON (schema v3.0)
    {namespace}:training      → TrainingSnapshot JSON
    {namespace}:alerts        → Alert list JSON (newest first)
    {namespace}:passwordData  → opaque, owned by the lock screen
"""

from __future__ import annotations

import json
import logging
import threading
from typing import Any, Dict, Optional, Protocol

import redis

from .connection import get_redis_client


logger = logging.getLogger(__name__)


DEFAULT_NAMESPACE = "behaviorguard"


class DocumentStore(Protocol):
    """Minimal document store contract the guard depends on."""

    def get(self, key: str, default: Any = None) -> Any: ...

    def set(self, key: str, value: Any) -> None: ...

    def delete(self, key: str) -> None: ...


class RedisDocumentStore:
    """
    JSON documents stored as Redis strings.

    Redis and decoding errors propagate; the repository decides how to
    degrade.
    """

    def __init__(
        self,
        client: Optional[redis.Redis] = None,
        namespace: str = DEFAULT_NAMESPACE,
    ) -> None:
        self.client = client if client is not None else get_redis_client()
        self.namespace = namespace

    def _key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    def get(self, key: str, default: Any = None) -> Any:
        data = self.client.get(self._key(key))
        if data is None:
            return default
        return json.loads(data)

    def set(self, key: str, value: Any) -> None:
        self.client.set(self._key(key), json.dumps(value))

    def delete(self, key: str) -> None:
        self.client.delete(self._key(key))


class MemoryDocumentStore:
    """
    Process-local store for tests and offline runs.

    Values are JSON round-tripped so callers see the same document
    semantics as with Redis.
    """

    def __init__(self, initial: Optional[Dict[str, Any]] = None) -> None:
        self._lock = threading.Lock()
        self._data: Dict[str, str] = {}
        for key, value in (initial or {}).items():
            self.set(key, value)

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            data = self._data.get(key)
        if data is None:
            return default
        return json.loads(data)

    def set(self, key: str, value: Any) -> None:
        encoded = json.dumps(value)
        with self._lock:
            self._data[key] = encoded

    def set_raw(self, key: str, data: str) -> None:
        """Store an undecoded payload (used to simulate corrupt documents)."""
        with self._lock:
            self._data[key] = data

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._data
