"""
Connection Manager

Owns the single driver connection of a client. Requests arriving while the
connection opens are queued and answered in submission order once it is
open; requests arriving afterwards are rebound to their database and
collection on the next loop tick.

The ``state`` field is the only gate deciding who may start ``open()``:
idle -> connecting -> open, and back to idle on close or failed open.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from ..core.defer import Deferred, defer_task
from ..core.errors import ConfigurationError
from ..persistence.base import DocumentDriver, DriverClient
from .bus import EventBus

logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    """Lifecycle of the managed connection"""
    IDLE = "idle"
    CONNECTING = "connecting"
    OPEN = "open"


@dataclass
class PendingRequest:
    """A connect or open call waiting for the connection."""
    database: Optional[str]
    collection: Optional[str] = None
    deferred: Deferred = field(default_factory=Deferred)
    bind: bool = True


class ConnectionManager:
    """
    Opens, reuses and queues access to one driver connection.

    Args:
        driver: Driver used to open the connection
        host: Server host
        port: Server port
        options: Driver client options
        bus: Optional event bus receiving open/close/error notifications
    """

    def __init__(self, driver: DocumentDriver, host: str = "localhost", port: int = 27017,
                 options: Optional[Dict[str, Any]] = None, bus: Optional[EventBus] = None):
        self.driver = driver
        self.host = host
        self.port = port
        self.options = options or {}
        self.bus = bus

        self.state = ConnectionState.IDLE
        self.queue: List[PendingRequest] = []
        self.client: Optional[DriverClient] = None
        self._opening: Optional[asyncio.Task] = None

    @property
    def connecting(self) -> bool:
        return self.state is ConnectionState.CONNECTING

    def connect(self, database: Optional[str], collection: Optional[str] = None) -> Deferred:
        """
        Get a handle on ``database`` (and ``collection``, if given).

        Never raises: a missing database name, a failed open or a driver error
        while selecting the database are all delivered through the Deferred.

        Returns:
            Deferred receiving ``(error, handle)``
        """
        request = PendingRequest(database, collection)
        if not database:
            self._soon(request.deferred.next,
                       ConfigurationError("Provide database name with #use before saving."))
            return request.deferred
        return self._submit(request)

    def switch(self, database: Optional[str], collection: Optional[str] = None) -> Deferred:
        """Rebind the shared connection to another database/collection."""
        return self.connect(database, collection)

    def open(self) -> Deferred:
        """
        Open the connection, or join the open already in progress.

        Returns:
            Deferred receiving ``(error, client)``
        """
        return self._submit(PendingRequest(None, bind=False))

    async def close(self) -> None:
        """Close the connection. Closing an idle manager does nothing."""
        if self.state is ConnectionState.CONNECTING and self._opening is not None:
            await self._opening

        if self.state is not ConnectionState.OPEN:
            return

        client, self.client = self.client, None
        self.state = ConnectionState.IDLE
        await client.close()
        logger.info(f"Closed connection to {self.host}:{self.port}")
        self._publish({"event": "close", "host": self.host, "port": self.port})

    def _submit(self, request: PendingRequest) -> Deferred:
        if self.state is ConnectionState.OPEN:
            self._soon(self._deliver, request)
        elif self.state is ConnectionState.CONNECTING:
            self.queue.append(request)
            logger.debug(f"Queued request for {request.database} ({len(self.queue)} waiting)")
        else:
            self.state = ConnectionState.CONNECTING
            self.queue.append(request)
            self._opening = asyncio.get_running_loop().create_task(self._open())
        return request.deferred

    async def _open(self) -> None:
        logger.info(f"Opening connection to {self.host}:{self.port}")
        try:
            client = await self.driver.open(self.host, self.port, self.options)
        except Exception as error:
            self.state = ConnectionState.IDLE
            waiting, self.queue = self.queue, []
            logger.error(f"Failed to open connection to {self.host}:{self.port}: {error!r}")
            self._publish({"event": "error", "error": error, "host": self.host, "port": self.port})
            for request in waiting:
                self._complete(request, error)
            return

        self.client = client
        self.state = ConnectionState.OPEN
        self._publish({"event": "open", "host": self.host, "port": self.port})

        while self.queue:
            self._deliver(self.queue.pop(0))

    def _deliver(self, request: PendingRequest) -> None:
        if self.state is not ConnectionState.OPEN:
            # closed between scheduling and delivery: start over
            self._submit(request)
            return

        try:
            handle: Any = self.client
            if request.bind:
                handle = self.client.database(request.database)
                if request.collection:
                    handle = handle.collection(request.collection)
        except Exception as error:
            self._complete(request, error)
            return

        self._complete(request, None, handle)

    @staticmethod
    def _complete(request: PendingRequest, *args: Any) -> None:
        try:
            request.deferred.next(*args)
        except Exception:
            # a broken consumer must not starve the requests queued behind it
            logger.exception(f"Connection consumer for {request.database} raised")

    @staticmethod
    def _soon(fn: Callable[..., Any], *args: Any) -> None:
        asyncio.get_running_loop().call_soon(fn, *args)

    def _publish(self, event: Dict[str, Any]) -> None:
        if self.bus is not None:
            defer_task(self.bus.publish(event))


__all__ = ["ConnectionManager", "ConnectionState", "PendingRequest"]
