"""Storage layer - Firestore and in-memory implementations."""

from omnidesk.storage.base import StorageBackend
from omnidesk.storage.firestore import FirestoreStorage
from omnidesk.storage.memory import InMemoryStorage

__all__ = ["StorageBackend", "FirestoreStorage", "InMemoryStorage"]
