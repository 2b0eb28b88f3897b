"""
PersistenceMixin: sync operations through an injected SyncEngine.

This mixin provides the entity-facing persistence surface (use, define,
client, sync, save, fetch, destroy). It holds no storage logic itself;
every call is dispatched to the SyncEngine the entity is bound to.
"""

from typing import TYPE_CHECKING, Any, Dict, Optional

from ..defer import Deferred
from ..errors import ConfigurationError

if TYPE_CHECKING:
    from ...app.engine import SyncEngine


def _failed(error: Exception) -> Deferred:
    deferred = Deferred()
    deferred.next(error)
    return deferred


class PersistenceMixin:
    """
    Persistence operations mixin.

    Instances need ``_options`` (per-instance settings) and ``_engine``;
    classes may set ``database`` and ``url`` (the collection name).
    """

    def bind(self, engine: 'SyncEngine') -> 'PersistenceMixin':
        """Inject the SyncEngine used by every persistence call."""
        self._engine = engine
        return self

    @property
    def sync_engine(self) -> Optional['SyncEngine']:
        return self._engine

    def use(self, database: str) -> 'PersistenceMixin':
        """Select the database used to store this entity."""
        self._options["database"] = database
        return self

    def define(self, name: str, value: Any) -> 'PersistenceMixin':
        """Set a non-attribute property, e.g. ``define("url", "users")``."""
        self._options[name] = value
        return self

    @property
    def database_name(self) -> Optional[str]:
        return self._options.get("database") or type(self).database

    @property
    def collection_name(self) -> Optional[str]:
        return self._options.get("url") or type(self).url

    def client(self) -> Deferred:
        """Get a collection handle for this entity's database and collection."""
        if self._engine is None:
            return _failed(ConfigurationError(f"{type(self).__name__} is not bound to a SyncEngine"))
        return self._engine.connections.connect(self.database_name, self.collection_name)

    def sync(self, action: str = "create", options: Optional[Dict[str, Any]] = None) -> Deferred:
        """
        Dispatch one CRUD action for this entity.

        Returns:
            Deferred receiving ``(error, result)``
        """
        if self._engine is None:
            return _failed(ConfigurationError(f"{type(self).__name__} is not bound to a SyncEngine"))
        return self._engine.dispatch(action, self, options)

    def save(self, options: Optional[Dict[str, Any]] = None, patch: bool = False) -> Deferred:
        """Create the entity when it is not stored yet, otherwise update (or patch) it."""
        if not self.stored:
            return self.sync("create", options)
        return self.sync("patch" if patch else "update", options)

    def fetch(self, options: Optional[Dict[str, Any]] = None) -> Deferred:
        return self.sync("read", options)

    def destroy(self, options: Optional[Dict[str, Any]] = None) -> Deferred:
        return self.sync("delete", options)

    def run_validation(self) -> Deferred:
        """Run the validate pseudo-action (hooks and validator) without syncing."""
        if self._engine is None:
            return _failed(ConfigurationError(f"{type(self).__name__} is not bound to a SyncEngine"))
        return self._engine.validate(self)
