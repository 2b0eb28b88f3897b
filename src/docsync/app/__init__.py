"""
Application Service Layer

- connection: the single managed driver connection and its request queue
- engine: CRUD dispatch around hooks and storage calls
- bus: optional side channel for connection lifecycle notifications
"""

from .bus import EventBus, InProcessBus
from .connection import ConnectionManager, ConnectionState, PendingRequest
from .engine import SyncEngine

__all__ = [
    'ConnectionManager',
    'ConnectionState',
    'PendingRequest',
    'SyncEngine',
    'EventBus',
    'InProcessBus',
]
