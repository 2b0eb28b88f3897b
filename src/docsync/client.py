"""
docsync Client

The top-level object applications create: it owns the connection manager
and the sync engine, hands out engine-bound entities and hosts plugins.
"""

import logging
from typing import Any, Callable, Dict, Iterable, Optional, Type

from .app.bus import EventBus
from .app.connection import ConnectionManager
from .app.engine import SyncEngine
from .config import ClientConfig
from .core.collection import EntitySet
from .core.defer import Deferred, defer_task
from .core.entity import Entity
from .persistence.base import DatabaseHandle, DocumentDriver
from .persistence.mongo import MongoDriver

logger = logging.getLogger(__name__)

Plugin = Callable[['DocSync', Callable[..., Any]], Any]


class DocSync:
    """
    Client facade over one ConnectionManager and one SyncEngine.

    Args:
        config: Client configuration; built from ``options`` when omitted
        driver: Storage driver, MongoDriver by default
        bus: Optional event bus for connection lifecycle notifications
        **options: Queryable client options (``host``, ``port``, ...)

    Example:
        db = DocSync(host="127.0.0.1")
        user = db.entity(User, username="ada").use("app")
        await user.save()
        await db.close()
    """

    def __init__(self, config: Optional[ClientConfig] = None, driver: Optional[DocumentDriver] = None,
                 bus: Optional[EventBus] = None, **options: Any):
        self.options: Dict[str, Any] = dict(options)
        self.config = config or ClientConfig.from_dict(self.options)
        self.plugins: Dict[str, Any] = {}

        self.connections = ConnectionManager(driver or MongoDriver(),
                                             host=self.config.host,
                                             port=self.config.port,
                                             options=self.config.driver_options,
                                             bus=bus)
        self.engine = SyncEngine(self.connections, write_concern=self.config.write_concern)

    @classmethod
    def create(cls, **options: Any) -> 'DocSync':
        """Create a client with default settings."""
        return cls(**options)

    def option(self, key: str, default: Any = None) -> Any:
        """Read a client option as passed to the constructor."""
        return self.options.get(key, default)

    def merge_options(self, options: Dict[str, Any]) -> 'DocSync':
        """Add options, e.g. on behalf of a plugin."""
        self.options.update(options)
        return self

    def use(self, name: str, plugin: Plugin) -> 'DocSync':
        """
        Register a plugin.

        The plugin is stored under ``name`` and then called with the client
        and the ``option`` reader.

        Raises:
            TypeError: If the name is not a string or the plugin not callable
        """
        if not isinstance(name, str):
            raise TypeError("Plugin names should be a string")
        if not callable(plugin):
            raise TypeError("Plugin should be a function")

        self.plugins[name] = plugin
        plugin(self, self.option)
        logger.debug(f"Registered plugin {name!r}")
        return self

    # Connection

    def connect(self, database: Optional[str], collection: Optional[str] = None) -> Deferred:
        return self.connections.connect(database, collection)

    def switch(self, database: Optional[str], collection: Optional[str] = None) -> Deferred:
        return self.connections.switch(database, collection)

    def open(self) -> Deferred:
        return self.connections.open()

    async def close(self) -> None:
        await self.connections.close()

    def collection(self, database: DatabaseHandle, name: str) -> Deferred:
        """Select collection ``name`` on an already connected database handle."""
        async def select():
            return database.collection(name)
        return defer_task(select())

    # Entities

    def entity(self, cls: Type[Entity] = Entity, **attributes: Any) -> Entity:
        """Build an entity bound to this client's engine."""
        return cls(**attributes).bind(self.engine)

    def entity_set(self, cls: Type[EntitySet] = EntitySet, models: Optional[Iterable[Any]] = None,
                   **settings: Any) -> EntitySet:
        """Build a record-set bound to this client's engine; ``settings`` are database/url."""
        return cls(models, engine=self.engine, **settings)


__all__ = ["DocSync"]
