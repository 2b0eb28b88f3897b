"""
docsync Persistence Layer - Driver Interfaces

This module provides the abstract interfaces a document-store driver must
implement to be used by the ConnectionManager and SyncEngine.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

Document = Dict[str, Any]


class Cursor(ABC):
    """Lazily evaluated result of a ``find`` call."""

    @abstractmethod
    async def to_list(self) -> List[Document]:
        """Materialize every matching document."""
        pass


class CollectionHandle(ABC):
    """
    Abstract handle on one collection of one database.

    Write methods accept ``write_options`` with at least ``w`` (write concern)
    and ``upsert`` keys; implementations ignore keys they do not understand.
    """

    name: str

    @abstractmethod
    async def insert(self, docs: List[Document], write_options: Dict[str, Any]) -> List[Document]:
        """
        Insert documents in one batch.

        Args:
            docs: Documents to insert; missing ``_id`` values are generated
            write_options: Write concern options

        Returns:
            The inserted documents, each carrying its ``_id``
        """
        pass

    @abstractmethod
    async def update(self, filter: Document, update: Document,
                     write_options: Dict[str, Any]) -> Optional[int]:
        """
        Update the first document matching ``filter``.

        ``update`` is either an operator document (``{"$set": {...}}``) or a
        full replacement document.

        Returns:
            Number of modified documents (upserts count as modified), or None
            for unacknowledged writes
        """
        pass

    @abstractmethod
    async def remove(self, filter: Document, write_options: Dict[str, Any]) -> Optional[int]:
        """
        Remove every document matching ``filter``.

        Returns:
            Number of removed documents, or None for unacknowledged writes
        """
        pass

    @abstractmethod
    def find(self, filter: Document, query_options: Optional[Dict[str, Any]] = None) -> Cursor:
        """Query documents; ``query_options`` may hold ``limit``, ``skip`` and ``sort``."""
        pass

    @abstractmethod
    async def find_one(self, filter: Document) -> Optional[Document]:
        """Return the first document matching ``filter`` or None."""
        pass


class DatabaseHandle(ABC):
    """Abstract handle on one logical database."""

    name: str

    @abstractmethod
    def collection(self, name: str) -> CollectionHandle:
        """Select a collection of this database."""
        pass


class DriverClient(ABC):
    """An open connection to the backing store."""

    @abstractmethod
    def database(self, name: str) -> DatabaseHandle:
        """Select a logical database on the open connection."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close the underlying connection."""
        pass


class DocumentDriver(ABC):
    """
    Abstract base class for document-store drivers.

    A driver only knows how to open a client; connection reuse and request
    queueing are handled by the ConnectionManager.
    """

    @abstractmethod
    async def open(self, host: str, port: int, options: Optional[Dict[str, Any]] = None) -> DriverClient:
        """
        Open a connection.

        Args:
            host: Server host name
            port: Server port
            options: Driver specific client options

        Returns:
            An open DriverClient
        """
        pass
