"""
ObservableMixin: attribute access, change tracking and events.

This mixin implements the Observable capability the SyncEngine works
against. Concrete classes provide the attribute storage through
``_read_attribute``, ``_write_attribute`` and ``attributes``.
"""

import inspect
from typing import Any, Callable, Dict, List, Optional, Protocol, runtime_checkable

from ..defer import defer_task

_MISSING = object()


@runtime_checkable
class Observable(Protocol):
    """What the SyncEngine and HookPipeline need from an entity."""

    def get(self, key: str, default: Any = None) -> Any: ...

    def set(self, key: Any, value: Any = None, silent: bool = False) -> Any: ...

    def on(self, event: str, handler: Callable[..., Any]) -> Any: ...

    def off(self, event: str, handler: Optional[Callable[..., Any]] = None) -> Any: ...

    def trigger(self, event: str, *args: Any) -> Any: ...

    def changed_attributes(self) -> Dict[str, Any]: ...

    def previous_attributes(self) -> Dict[str, Any]: ...

    def members(self) -> List[Any]: ...


class ObservableMixin:
    """
    Observable capability mixin.

    Instances need ``_events``, ``_changed`` and ``_previous`` dicts.
    """

    @property
    def attributes(self) -> Dict[str, Any]:
        raise NotImplementedError

    def _read_attribute(self, key: str, default: Any = None) -> Any:
        raise NotImplementedError

    def _write_attribute(self, key: str, value: Any) -> None:
        raise NotImplementedError

    def get(self, key: str, default: Any = None) -> Any:
        """Get the live value of an attribute."""
        return self._read_attribute(key, default)

    def has(self, key: str) -> bool:
        return self._read_attribute(key, _MISSING) is not _MISSING

    def set(self, key: Any, value: Any = None, silent: bool = False) -> 'ObservableMixin':
        """
        Set one attribute, or several from a mapping.

        Changed keys are remembered until the next successful sync and
        announced as ``change:<key>`` followed by ``change``, unless silent.

        Args:
            key: Attribute name, or a mapping of names to values
            value: New value when ``key`` is a name
            silent: Suppress change events

        Returns:
            The entity itself
        """
        updates = dict(key) if isinstance(key, dict) else {key: value}
        self._previous = self.attributes

        changes = {}
        for name, new in updates.items():
            current = self._read_attribute(name, _MISSING)
            if current is not _MISSING and current is new:
                continue
            if current is not _MISSING and type(current) is type(new) and current == new:
                continue
            self._write_attribute(name, new)
            changes[name] = new

        self._changed.update(changes)
        if changes and not silent:
            for name, new in changes.items():
                self.trigger(f"change:{name}", self, new)
            self.trigger("change", self)
        return self

    def changed_attributes(self) -> Dict[str, Any]:
        """Attributes changed since the last successful sync."""
        return dict(self._changed)

    def previous_attributes(self) -> Dict[str, Any]:
        """Attributes as they were right before the latest ``set``."""
        return dict(self._previous)

    def has_changed(self, key: Optional[str] = None) -> bool:
        return bool(self._changed) if key is None else key in self._changed

    def mark_synced(self) -> None:
        """Forget tracked changes; called after a successful sync."""
        self._changed.clear()

    # Events

    def on(self, event: str, handler: Callable[..., Any]) -> 'ObservableMixin':
        """Subscribe ``handler`` to ``event`` (e.g. ``before:create``, ``change:name``)."""
        self._events.setdefault(event, []).append(handler)
        return self

    def off(self, event: str, handler: Optional[Callable[..., Any]] = None) -> 'ObservableMixin':
        if handler is None:
            self._events.pop(event, None)
        elif handler in self._events.get(event, []):
            self._events[event].remove(handler)
        return self

    def trigger(self, event: str, *args: Any) -> 'ObservableMixin':
        """Call the handlers of ``event`` in subscription order."""
        for handler in list(self._events.get(event, [])):
            result = handler(*args)
            if inspect.isawaitable(result):
                defer_task(result)
        return self

    def members(self) -> List[Any]:
        """Records taking part in a dispatch of this entity."""
        return [self]
