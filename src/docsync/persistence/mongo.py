"""
docsync Persistence Layer - MongoDB Driver

Adapter from the driver interfaces onto pymongo's asyncio client.
Errors raised by pymongo (duplicate keys, write concern timeouts, network
failures) are not wrapped; they reach the dispatch's Deferred verbatim.
"""

import logging
from typing import Any, Dict, List, Optional

from pymongo import AsyncMongoClient, WriteConcern

from .base import CollectionHandle, Cursor, DatabaseHandle, Document, DocumentDriver, DriverClient

logger = logging.getLogger(__name__)


class MongoCursor(Cursor):
    """Wraps a pymongo AsyncCursor."""

    def __init__(self, cursor):
        self._cursor = cursor

    async def to_list(self) -> List[Document]:
        return await self._cursor.to_list(None)


class MongoCollection(CollectionHandle):
    """Collection handle over a pymongo AsyncCollection."""

    def __init__(self, collection):
        self._collection = collection
        self.name = collection.name
        self.database_name = collection.database.name

    def _with_concern(self, write_options: Dict[str, Any]):
        if "w" not in write_options:
            return self._collection
        return self._collection.with_options(write_concern=WriteConcern(w=write_options["w"]))

    async def insert(self, docs: List[Document], write_options: Dict[str, Any]) -> List[Document]:
        # insert_many sets the generated _id on each document in place
        await self._with_concern(write_options).insert_many(docs)
        return docs

    async def update(self, filter: Document, update: Document,
                     write_options: Dict[str, Any]) -> Optional[int]:
        collection = self._with_concern(write_options)
        upsert = bool(write_options.get("upsert"))

        if update and all(key.startswith("$") for key in update):
            result = await collection.update_one(filter, update, upsert=upsert)
        else:
            result = await collection.replace_one(filter, update, upsert=upsert)

        if not result.acknowledged:
            return None
        return result.modified_count + (1 if result.upserted_id is not None else 0)

    async def remove(self, filter: Document, write_options: Dict[str, Any]) -> Optional[int]:
        result = await self._with_concern(write_options).delete_many(filter)
        return result.deleted_count if result.acknowledged else None

    def find(self, filter: Document, query_options: Optional[Dict[str, Any]] = None) -> Cursor:
        query_options = query_options or {}
        kwargs = {}
        if query_options.get("limit"):
            kwargs["limit"] = query_options["limit"]
        if query_options.get("skip"):
            kwargs["skip"] = query_options["skip"]
        if query_options.get("sort"):
            kwargs["sort"] = list(query_options["sort"])
        return MongoCursor(self._collection.find(filter, **kwargs))

    async def find_one(self, filter: Document) -> Optional[Document]:
        return await self._collection.find_one(filter)


class MongoDatabase(DatabaseHandle):
    """Database handle over a pymongo AsyncDatabase."""

    def __init__(self, database):
        self._database = database
        self.name = database.name

    def collection(self, name: str) -> MongoCollection:
        return MongoCollection(self._database[name])


class MongoClient(DriverClient):
    """Open pymongo AsyncMongoClient."""

    def __init__(self, client: AsyncMongoClient):
        self._client = client

    def database(self, name: str) -> MongoDatabase:
        return MongoDatabase(self._client[name])

    async def close(self) -> None:
        await self._client.close()


class MongoDriver(DocumentDriver):
    """Opens pymongo asyncio clients."""

    async def open(self, host: str, port: int, options: Optional[Dict[str, Any]] = None) -> MongoClient:
        client = AsyncMongoClient(host, port, **(options or {}))
        try:
            # The client connects lazily; ping so open failures surface here.
            await client.admin.command("ping")
        except Exception:
            await client.close()
            raise
        logger.info(f"Connected to MongoDB at {host}:{port}")
        return MongoClient(client)


__all__ = ["MongoDriver", "MongoClient", "MongoDatabase", "MongoCollection", "MongoCursor"]
