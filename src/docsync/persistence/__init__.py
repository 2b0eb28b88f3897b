"""
docsync Persistence Module

Document-store drivers consumed by the connection manager: the abstract
driver interfaces, a MongoDB adapter and an in-memory store.
"""

from .base import CollectionHandle, Cursor, DatabaseHandle, Document, DocumentDriver, DriverClient
from .memory import MemoryDriver, MemoryStore
from .mongo import MongoDriver

__all__ = [
    "Document",
    "DocumentDriver",
    "DriverClient",
    "DatabaseHandle",
    "CollectionHandle",
    "Cursor",
    "MemoryDriver",
    "MemoryStore",
    "MongoDriver",
]
