"""
docsync Error Taxonomy

Every failure of a dispatch is delivered through its Deferred as one of these
exceptions (or, for storage failures, the driver's own exception verbatim).
"""

from typing import Any, Optional


class DocSyncError(Exception):
    """Base exception for docsync operations"""
    pass


class ConfigurationError(DocSyncError):
    """Raised when an entity or client is missing required configuration"""
    pass


class UnsupportedMethodError(DocSyncError):
    """Raised when a dispatch names an action outside the CRUD set"""

    def __init__(self, action: Any):
        super().__init__(f"Method not found: {action!r}")
        self.action = action


class ValidationError(DocSyncError):
    """Raised when an entity's validator rejects its attributes"""

    def __init__(self, result: Any):
        super().__init__(str(result))
        self.result = result


class StorageError(DocSyncError):
    """Base exception for errors raised by the bundled storage drivers"""
    pass


class DuplicateKeyError(StorageError):
    """Raised when an insert reuses an existing identifier"""

    def __init__(self, key: Any, collection: Optional[str] = None):
        where = f" in {collection}" if collection else ""
        super().__init__(f"Duplicate key{where}: {key!r}")
        self.key = key


class DeferredError(DocSyncError):
    """Raised when a Deferred is completed or consumed twice"""
    pass


__all__ = [
    "DocSyncError",
    "ConfigurationError",
    "UnsupportedMethodError",
    "ValidationError",
    "StorageError",
    "DuplicateKeyError",
    "DeferredError",
]
