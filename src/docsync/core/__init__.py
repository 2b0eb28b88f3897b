"""
docsync Core Module

Entities, record-sets, hooks, the Deferred completion cell and the error
hierarchy. Nothing in here talks to a store directly.
"""

from .collection import EntitySet
from .defer import Deferred, DeferredState, defer_task, join_all
from .entity import Entity
from .errors import (
    ConfigurationError,
    DeferredError,
    DocSyncError,
    DuplicateKeyError,
    StorageError,
    UnsupportedMethodError,
    ValidationError,
)
from .hooks import ACTIONS, PHASES, HookPipeline, HookRegistration
from .mixins import Observable, ObservableMixin, PersistenceMixin

__all__ = [
    "Entity",
    "EntitySet",
    "Observable",
    "ObservableMixin",
    "PersistenceMixin",
    "Deferred",
    "DeferredState",
    "defer_task",
    "join_all",
    "HookPipeline",
    "HookRegistration",
    "PHASES",
    "ACTIONS",
    "DocSyncError",
    "ConfigurationError",
    "UnsupportedMethodError",
    "ValidationError",
    "StorageError",
    "DuplicateKeyError",
    "DeferredError",
]
