"""
BehaviorGuard Persistence Layer

Public exports for the Redis connection, document stores and repository.
"""

from .connection import get_redis_client
from .repository import GuardRepository
from .store import DocumentStore, MemoryDocumentStore, RedisDocumentStore

__all__ = [
    "get_redis_client",
    "GuardRepository",
    "DocumentStore",
    "MemoryDocumentStore",
    "RedisDocumentStore",
]
