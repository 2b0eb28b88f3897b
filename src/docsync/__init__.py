"""
docsync - Document Synchronization for Observable Entities

Maps in-memory entities and record-sets onto a document store with CRUD
semantics, attribute-scoped lifecycle hooks and a shared, queued connection.
"""

from .app import ConnectionManager, ConnectionState, EventBus, InProcessBus, SyncEngine
from .client import DocSync
from .config import ClientConfig, LoggingConfig, configure_logging
from .core import (
    ConfigurationError,
    Deferred,
    DeferredError,
    DocSyncError,
    DuplicateKeyError,
    Entity,
    EntitySet,
    HookPipeline,
    Observable,
    StorageError,
    UnsupportedMethodError,
    ValidationError,
    defer_task,
)
from .persistence import MemoryDriver, MemoryStore, MongoDriver

__version__ = "0.1.0"

__all__ = [
    # Client
    'DocSync',
    'ClientConfig',
    'LoggingConfig',
    'configure_logging',

    # Entities
    'Entity',
    'EntitySet',
    'Observable',
    'HookPipeline',

    # Engine
    'SyncEngine',
    'ConnectionManager',
    'ConnectionState',
    'Deferred',
    'defer_task',
    'EventBus',
    'InProcessBus',

    # Drivers
    'MongoDriver',
    'MemoryDriver',
    'MemoryStore',

    # Errors
    'DocSyncError',
    'ConfigurationError',
    'UnsupportedMethodError',
    'ValidationError',
    'StorageError',
    'DuplicateKeyError',
    'DeferredError',
]
