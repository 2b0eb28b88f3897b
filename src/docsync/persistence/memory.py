"""
docsync Persistence Layer - Memory Driver

In-process document store implementing the driver interfaces, for
development and testing. Data lives in a MemoryStore that outlives the
clients opened on it, the way a server outlives its connections.
"""

import asyncio
import copy
import logging
from typing import Any, Dict, List, Optional, Tuple

from bson import ObjectId

from ..core.errors import DuplicateKeyError, StorageError
from .base import CollectionHandle, Cursor, DatabaseHandle, Document, DocumentDriver, DriverClient

logger = logging.getLogger(__name__)


class MemoryStore:
    """
    Shared storage for memory clients.

    Keeps ``database -> collection -> {_id: document}`` plus an operation log
    of ``(operation, database, collection)`` tuples.
    """

    def __init__(self):
        self.databases: Dict[str, Dict[str, Dict[Any, Document]]] = {}
        self.operations: List[Tuple[str, Optional[str], Optional[str]]] = []

    def documents(self, database: str, collection: str) -> Dict[Any, Document]:
        return self.databases.setdefault(database, {}).setdefault(collection, {})

    def record(self, operation: str, database: Optional[str] = None, collection: Optional[str] = None):
        self.operations.append((operation, database, collection))

    def count(self, operation: str) -> int:
        """Number of logged calls of one operation."""
        return sum(1 for logged in self.operations if logged[0] == operation)

    def clear(self) -> None:
        self.databases.clear()
        self.operations.clear()


def matches(document: Document, filter: Document) -> bool:
    """Check a document against an equality / ``$in`` / ``$ne`` filter."""
    for key, expected in filter.items():
        actual = document.get(key)
        if isinstance(expected, dict) and any(k.startswith("$") for k in expected):
            for op, operand in expected.items():
                if op == "$in":
                    if actual not in operand:
                        return False
                elif op == "$ne":
                    if actual == operand:
                        return False
                else:
                    raise StorageError(f"Unsupported query operator: {op}")
        elif actual != expected:
            return False
    return True


def _is_operator_document(update: Document) -> bool:
    return bool(update) and all(key.startswith("$") for key in update)


class MemoryCursor(Cursor):
    """Cursor over a snapshot of matching documents."""

    def __init__(self, collection: 'MemoryCollection', filter: Document, options: Dict[str, Any]):
        self._collection = collection
        self._filter = filter
        self._options = options

    async def to_list(self) -> List[Document]:
        await self._collection._pause()
        found = [copy.deepcopy(doc) for doc in self._collection._documents.values()
                 if matches(doc, self._filter)]

        # missing fields sort as null, before any value
        for key, direction in reversed(self._options.get("sort") or []):
            found.sort(key=lambda doc: (doc.get(key) is not None, doc.get(key)),
                       reverse=direction < 0)

        skip = self._options.get("skip") or 0
        limit = self._options.get("limit")
        found = found[skip:]
        return found[:limit] if limit else found


class MemoryCollection(CollectionHandle):
    """One collection of a MemoryStore."""

    def __init__(self, client: 'MemoryClient', database: str, name: str):
        self._client = client
        self.database_name = database
        self.name = name

    @property
    def _documents(self) -> Dict[Any, Document]:
        return self._client.store.documents(self.database_name, self.name)

    async def _pause(self) -> None:
        if self._client.closed:
            raise StorageError("Client is closed")
        await asyncio.sleep(self._client.latency)

    def _record(self, operation: str) -> None:
        self._client.store.record(operation, self.database_name, self.name)

    def _first(self, filter: Document) -> Optional[Document]:
        for doc in self._documents.values():
            if matches(doc, filter):
                return doc
        return None

    async def insert(self, docs: List[Document], write_options: Dict[str, Any]) -> List[Document]:
        self._record("insert")
        await self._pause()

        prepared = []
        seen = set()
        for doc in docs:
            doc = copy.deepcopy(doc)
            if doc.get("_id") is None:
                doc["_id"] = ObjectId()
            key = doc["_id"]
            if key in self._documents or key in seen:
                raise DuplicateKeyError(key, f"{self.database_name}.{self.name}")
            seen.add(key)
            prepared.append(doc)

        for doc in prepared:
            self._documents[doc["_id"]] = doc

        logger.debug(f"Inserted {len(prepared)} documents into {self.database_name}.{self.name}")
        return [copy.deepcopy(doc) for doc in prepared]

    async def update(self, filter: Document, update: Document,
                     write_options: Dict[str, Any]) -> Optional[int]:
        self._record("update")
        await self._pause()

        operator = _is_operator_document(update)
        current = self._first(filter)

        if current is None:
            if not write_options.get("upsert"):
                return self._ack(write_options, 0)
            created = {k: v for k, v in filter.items() if not isinstance(v, dict)}
            created.update(update.get("$set", {}) if operator else update)
            if created.get("_id") is None:
                created["_id"] = ObjectId()
            self._documents[created["_id"]] = copy.deepcopy(created)
            return self._ack(write_options, 1)

        if operator:
            replacement = dict(current)
            for op, fields in update.items():
                if op == "$set":
                    replacement.update(fields)
                elif op == "$unset":
                    for key in fields:
                        replacement.pop(key, None)
                else:
                    raise StorageError(f"Unsupported update operator: {op}")
        else:
            replacement = dict(update)
            replacement["_id"] = current["_id"]

        if replacement == current:
            return self._ack(write_options, 0)

        self._documents[current["_id"]] = copy.deepcopy(replacement)
        return self._ack(write_options, 1)

    async def remove(self, filter: Document, write_options: Dict[str, Any]) -> Optional[int]:
        self._record("remove")
        await self._pause()

        doomed = [key for key, doc in self._documents.items() if matches(doc, filter)]
        for key in doomed:
            del self._documents[key]
        return self._ack(write_options, len(doomed))

    def find(self, filter: Document, query_options: Optional[Dict[str, Any]] = None) -> Cursor:
        self._record("find")
        return MemoryCursor(self, filter or {}, query_options or {})

    async def find_one(self, filter: Document) -> Optional[Document]:
        self._record("find_one")
        await self._pause()
        found = self._first(filter)
        return copy.deepcopy(found) if found is not None else None

    @staticmethod
    def _ack(write_options: Dict[str, Any], count: int) -> Optional[int]:
        return None if write_options.get("w") == 0 else count


class MemoryDatabase(DatabaseHandle):
    """One logical database of a MemoryStore."""

    def __init__(self, client: 'MemoryClient', name: str):
        self._client = client
        self.name = name

    def collection(self, name: str) -> MemoryCollection:
        return MemoryCollection(self._client, self.name, name)


class MemoryClient(DriverClient):
    """Open connection to a MemoryStore."""

    def __init__(self, store: MemoryStore, latency: float = 0.0):
        self.store = store
        self.latency = latency
        self.closed = False

    def database(self, name: str) -> MemoryDatabase:
        return MemoryDatabase(self, name)

    async def close(self) -> None:
        self.store.record("close")
        self.closed = True


class MemoryDriver(DocumentDriver):
    """
    Driver opening MemoryClients on a shared MemoryStore.

    Args:
        store: Store to open clients on; a fresh one by default
        latency: Seconds every storage call sleeps, to exercise interleaving
    """

    def __init__(self, store: Optional[MemoryStore] = None, latency: float = 0.0):
        self.store = store or MemoryStore()
        self.latency = latency

    async def open(self, host: str, port: int, options: Optional[Dict[str, Any]] = None) -> MemoryClient:
        self.store.record("open")
        await asyncio.sleep(self.latency)
        logger.debug(f"Opened memory client for {host}:{port}")
        return MemoryClient(self.store, self.latency)


__all__ = [
    "MemoryStore",
    "MemoryDriver",
    "MemoryClient",
    "MemoryDatabase",
    "MemoryCollection",
    "MemoryCursor",
    "matches",
]
