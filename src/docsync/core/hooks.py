"""
Hook Pipeline

Ordered ``before``/``after`` handlers per action, optionally scoped to one
attribute, executed with fan-out/join semantics around a storage call.

Ordering: registration order decides only the order in which handlers are
*started*. All handlers of a phase start together and may complete in any
order. An attribute-scoped handler reads the live attribute value when it
starts, so it sees writes made by handlers that started (and ran) before it.
This is read-after-start, not sequential composition.

Handler styles:

- one positional parameter, plain or ``async``: called with the value;
  a non-None return value replaces the attribute (attribute-scoped only)
- two positional parameters ``(value, done)``: must call
  ``done(error=None, value=None)`` exactly once
- a string: name of a method looked up on the target entity
"""

import inspect
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Union

from .defer import Deferred, defer_task, join_all
from .errors import ValidationError

logger = logging.getLogger(__name__)

PHASES = ("before", "after")
ACTIONS = ("create", "read", "update", "patch", "delete", "validate")

Handler = Union[Callable[..., Any], str]


@dataclass(frozen=True)
class HookRegistration:
    """One handler bound to a phase, an action and optionally an attribute."""
    phase: str
    action: str
    handler: Handler
    attribute: Optional[str] = None


def _takes_continuation(handler: Callable[..., Any]) -> bool:
    try:
        parameters = inspect.signature(handler).parameters.values()
    except (TypeError, ValueError):
        return False

    # only required positionals count: (value, fallback=None) is single-argument
    required = 0
    for parameter in parameters:
        if parameter.kind is inspect.Parameter.VAR_POSITIONAL:
            return False
        if (parameter.kind in (inspect.Parameter.POSITIONAL_ONLY,
                               inspect.Parameter.POSITIONAL_OR_KEYWORD)
                and parameter.default is inspect.Parameter.empty):
            required += 1
    return required == 2


class HookPipeline:
    """Registry and executor of hook registrations."""

    def __init__(self, registrations: Optional[List[HookRegistration]] = None):
        self._registrations: List[HookRegistration] = list(registrations or [])

    @classmethod
    def from_tables(cls, before: Optional[Dict[str, Any]] = None,
                    after: Optional[Dict[str, Any]] = None) -> 'HookPipeline':
        """
        Build a pipeline from conventional hook tables.

        Keys are ``"<action>"`` or ``"<action> <attribute>"``; values are a
        handler or a list of handlers. Unknown actions are skipped.

        Example:
            HookPipeline.from_tables(before={"create username": "normalize"})
        """
        pipeline = cls()
        for phase, table in (("before", before), ("after", after)):
            for key, handlers in (table or {}).items():
                action, _, attribute = key.strip().partition(" ")
                if action not in ACTIONS:
                    logger.debug(f"Ignoring unknown {phase} hook {key!r}")
                    continue
                if not isinstance(handlers, (list, tuple)):
                    handlers = [handlers]
                for handler in handlers:
                    pipeline.register(phase, action, handler, attribute.strip() or None)
        return pipeline

    def register(self, phase: str, action: str, handler: Handler,
                 attribute: Optional[str] = None) -> HookRegistration:
        """
        Register a handler.

        Raises:
            ValueError: On an unknown phase or action
            TypeError: If the handler is neither callable nor a method name
        """
        if phase not in PHASES:
            raise ValueError(f"Unknown hook phase {phase!r}, expected one of {PHASES}")
        if action not in ACTIONS:
            raise ValueError(f"Unknown hook action {action!r}, expected one of {ACTIONS}")
        if not (callable(handler) or isinstance(handler, str)):
            raise TypeError(f"Hook handler must be callable or a method name, got {handler!r}")

        registration = HookRegistration(phase, action, handler, attribute)
        self._registrations.append(registration)
        return registration

    def registrations(self, phase: str, action: str) -> List[HookRegistration]:
        return [r for r in self._registrations if r.phase == phase and r.action == action]

    def __len__(self) -> int:
        return len(self._registrations)

    def run(self, phase: str, action: str, entity: Any) -> Deferred:
        """
        Run every handler of ``(phase, action)`` against ``entity``.

        Returns:
            Deferred receiving ``(error,)`` on the first handler failure,
            otherwise ``(None, None)``
        """
        return defer_task(self.execute(phase, action, entity))

    def validate(self, entity: Any) -> Deferred:
        """Run the validate pseudo-action; see ``execute_validation``."""
        return defer_task(self.execute_validation(entity))

    async def execute(self, phase: str, action: str, entity: Any) -> None:
        invocations = []
        for registration in self.registrations(phase, action):
            # attribute-scoped hooks apply to every record of a record-set
            targets = entity.members() if registration.attribute else [entity]
            invocations.extend(self._invoke(registration, target) for target in targets)

        if invocations:
            logger.debug(f"Running {len(invocations)} {phase}:{action} hooks")
            await join_all(invocations)
        entity.trigger(f"{phase}:{action}", entity)

    async def execute_validation(self, entity: Any) -> None:
        """
        Run before:validate, the entity's validator, then after:validate.

        after:validate always runs, also when the validator rejected the
        attributes.

        Raises:
            ValidationError: When the validator returned something other than None
        """
        result = None
        try:
            await self.execute("before", "validate", entity)
            result = entity.validate_attributes(entity.attributes)
            if inspect.isawaitable(result):
                result = await result
        finally:
            await self.execute("after", "validate", entity)

        if result is not None:
            entity.trigger("invalid", entity, result)
            raise ValidationError(result)

    async def _invoke(self, registration: HookRegistration, target: Any) -> None:
        handler = registration.handler
        if isinstance(handler, str):
            handler = getattr(target, handler, None)
            if not callable(handler):
                raise TypeError(f"{type(target).__name__} has no hook method {registration.handler!r}")

        value = target if registration.attribute is None else target.get(registration.attribute)

        if _takes_continuation(handler):
            continuation = Deferred()

            def done(error=None, value=None):
                continuation.next(error, value)

            started = handler(value, done)
            if inspect.isawaitable(started):
                await started
            result = await continuation
        else:
            result = handler(value)
            if inspect.isawaitable(result):
                result = await result

        if registration.attribute is not None and result is not None:
            target.set(registration.attribute, result)


__all__ = ["HookPipeline", "HookRegistration", "PHASES", "ACTIONS"]
