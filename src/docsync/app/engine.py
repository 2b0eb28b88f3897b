"""
Sync Engine

Runs one CRUD dispatch for an entity or a record-set:

    connect -> validate -> before hooks -> storage call -> after hooks

and delivers ``(error, result)`` through a Deferred. Every client owns its
own engine, and entities are bound to it, so independently configured
engines can coexist.
"""

import logging
from typing import Any, Dict, List, Optional

from bson import ObjectId

from ..core.collection import EntitySet
from ..core.defer import Deferred, defer_task, join_all
from ..core.errors import ConfigurationError, UnsupportedMethodError
from ..persistence.base import CollectionHandle, Document
from .connection import ConnectionManager

logger = logging.getLogger(__name__)


class SyncEngine:
    """
    CRUD dispatcher bound to one ConnectionManager.

    Args:
        connections: Connection manager providing collection handles
        write_concern: Default ``w`` for create, update, patch and delete
    """

    CRUD = ("create", "read", "update", "patch", "delete")
    VALIDATED = ("create", "update", "patch")

    def __init__(self, connections: ConnectionManager, write_concern: Any = 1):
        self.connections = connections
        self.write_concern = write_concern

    def dispatch(self, action: str, entity: Any, options: Optional[Dict[str, Any]] = None) -> Deferred:
        """
        Dispatch ``action`` for ``entity``.

        Never raises; every failure (unknown action, missing database,
        validation, driver error) is delivered through the Deferred.

        Args:
            action: One of create, read, update, patch, delete
            entity: An Entity or an EntitySet
            options: ``w``, ``upsert``, and for reads ``filter``, ``limit``,
                ``skip``, ``sort``

        Returns:
            Deferred receiving ``(error, result)``
        """
        deferred = Deferred()
        if action not in self.CRUD:
            deferred.next(UnsupportedMethodError(action))
            return deferred

        options = self._prepare_options(action, options)
        # Members are keyed by the identifier they had when the dispatch began.
        identifiers = [member.id for member in entity.members()]
        return defer_task(self._dispatch(action, entity, options, identifiers), deferred)

    def validate(self, entity: Any) -> Deferred:
        """Run the validate pseudo-action for ``entity``."""
        return entity.hooks.validate(entity)

    def _prepare_options(self, action: str, options: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        options = dict(options or {})
        if action == "read":
            options.pop("w", None)
        else:
            options.setdefault("w", self.write_concern)
        return options

    @staticmethod
    def _skips_read(entity: Any, options: Dict[str, Any]) -> bool:
        if options.get("filter") is not None:
            return False
        if isinstance(entity, EntitySet):
            return len(entity) > 0 and not entity.stored
        return not entity.stored

    async def _dispatch(self, action: str, entity: Any, options: Dict[str, Any],
                        identifiers: List[Any]) -> Any:
        name = type(entity).__name__
        if action == "read" and self._skips_read(entity, options):
            logger.debug(f"Skipping read of unstored {name}")
            return None

        try:
            if not entity.collection_name:
                raise ConfigurationError(f"{name} has no collection; set url or define('url', ...)")

            collection = await self.connections.connect(entity.database_name, entity.collection_name)

            if action in self.VALIDATED:
                await entity.hooks.validate(entity)

            logger.debug(f"Dispatching {action} for {name} on {entity.database_name}.{entity.collection_name}")
            await entity.hooks.run("before", action, entity)

            if action == "create":
                result = await self._create(collection, entity, options)
            elif action == "read":
                result = await self._read(collection, entity, options, identifiers)
            elif action == "delete":
                result = await self._delete(collection, entity, options, identifiers)
            else:
                result = await self._update(collection, entity, options, identifiers,
                                            replace=action == "update" or bool(options.get("upsert")))

            await entity.hooks.run("after", action, entity)
        except Exception as error:
            logger.error(f"{action} failed for {name}: {error!r}")
            entity.trigger("error", entity, error)
            raise

        entity.trigger("sync", entity, result)
        return result

    @staticmethod
    def _write_options(options: Dict[str, Any]) -> Dict[str, Any]:
        return {"w": options.get("w"), "upsert": bool(options.get("upsert"))}

    async def _create(self, collection: CollectionHandle, entity: Any,
                      options: Dict[str, Any]) -> List[Document]:
        members = entity.members()
        if not members:
            return []

        inserted = await collection.insert([member.attributes for member in members],
                                           self._write_options(options))
        for member, document in zip(members, inserted):
            member.set("_id", document["_id"])
            member.stored = True
            member.mark_synced()
        return inserted

    async def _read(self, collection: CollectionHandle, entity: Any,
                    options: Dict[str, Any], identifiers: List[Any]) -> Any:
        if isinstance(entity, EntitySet):
            query = {key: options[key] for key in ("limit", "skip", "sort")
                     if options.get(key) is not None}
            documents = await collection.find(options.get("filter") or {}, query).to_list()
            entity.merge(documents)
            entity.mark_synced()
            return documents

        filter = options.get("filter") or {"_id": identifiers[0]}
        document = await collection.find_one(filter)
        if document is None:
            entity.stored = False
            return None

        entity.set(document)
        entity.stored = True
        entity.mark_synced()
        return document

    async def _update(self, collection: CollectionHandle, entity: Any, options: Dict[str, Any],
                      identifiers: List[Any], replace: bool) -> Optional[int]:
        write_options = self._write_options(options)

        async def update_member(member: Any, identifier: Any) -> Optional[int]:
            if identifier is None and write_options["upsert"]:
                identifier = ObjectId()
                member.set("_id", identifier)

            if replace:
                document = member.attributes
                document.pop("_id", None)
            else:
                changed = member.changed_attributes()
                changed.pop("_id", None)
                document = {"$set": changed}

            modified = await collection.update({"_id": identifier}, document, write_options)
            if modified:
                member.stored = True
            member.mark_synced()
            return modified

        results = await join_all(update_member(member, identifier)
                                 for member, identifier in zip(entity.members(), identifiers))
        if isinstance(entity, EntitySet):
            return sum(result or 0 for result in results)
        return results[0]

    async def _delete(self, collection: CollectionHandle, entity: Any, options: Dict[str, Any],
                      identifiers: List[Any]) -> Optional[int]:
        write_options = self._write_options(options)

        async def remove_member(member: Any, identifier: Any) -> Optional[int]:
            removed = await collection.remove({"_id": identifier}, write_options)
            member.stored = False
            return removed

        results = await join_all(remove_member(member, identifier)
                                 for member, identifier in zip(entity.members(), identifiers))
        if isinstance(entity, EntitySet):
            return sum(result or 0 for result in results)
        return results[0]


__all__ = ["SyncEngine"]
