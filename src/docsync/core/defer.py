"""
Deferred Completion Cell

A Deferred decouples the producer of an ``(error, result...)`` tuple from its
consumer regardless of which side arrives first. It holds either the buffered
arguments or the registered consumer, never both, and goes inert after the
single delivery.

Deferreds are not thread safe; they are meant for a single asyncio loop where
callbacks never preempt each other.
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Iterable, List, Optional, Set, Tuple

from .errors import DeferredError, DocSyncError

logger = logging.getLogger(__name__)

# Strong references to running background tasks so they are not collected.
_background_tasks: Set[asyncio.Task] = set()


class DeferredState(Enum):
    """Lifecycle of a Deferred"""
    EMPTY = "empty"
    BUFFERED = "result-buffered"
    REGISTERED = "consumer-registered"
    SETTLED = "settled"


class Deferred:
    """
    Single-producer, single-consumer completion cell.

    The producer calls ``next(error, *results)`` once, the consumer calls
    ``done(fn)`` once. Whichever comes second triggers ``fn(error, *results)``.
    A Deferred can also be awaited from a coroutine.
    """

    def __init__(self):
        self._state = DeferredState.EMPTY
        self._stack: Optional[Tuple[Any, ...]] = None
        self._then: Optional[Callable[..., Any]] = None

    @property
    def state(self) -> DeferredState:
        return self._state

    @property
    def settled(self) -> bool:
        return self._state is DeferredState.SETTLED

    def done(self, fn: Callable[..., Any]) -> 'Deferred':
        """
        Register the consumer.

        Args:
            fn: Callback receiving ``(error, *results)``; invoked immediately
                if the result is already buffered.

        Returns:
            The Deferred itself
        """
        if self._state is DeferredState.BUFFERED:
            args = self._stack
            self._stack = None
            self._state = DeferredState.SETTLED
            fn(*args)
        elif self._state is DeferredState.EMPTY:
            self._then = fn
            self._state = DeferredState.REGISTERED
        else:
            raise DeferredError("Deferred already has a consumer")
        return self

    def next(self, *args: Any) -> None:
        """
        Complete the Deferred with ``(error, *results)``.

        The registered consumer is called right away; without one the
        arguments are buffered until ``done`` is called.
        """
        if self._state is DeferredState.REGISTERED:
            fn = self._then
            self._then = None
            self._state = DeferredState.SETTLED
            fn(*args)
        elif self._state is DeferredState.EMPTY:
            self._stack = args
            self._state = DeferredState.BUFFERED
        else:
            raise DeferredError("Deferred was already completed")

    def __await__(self):
        loop = asyncio.get_running_loop()
        future = loop.create_future()

        def settle(error=None, *results):
            if future.done():
                return
            if error is not None:
                # producers may report a failure as a plain message
                if not isinstance(error, BaseException):
                    error = DocSyncError(str(error))
                future.set_exception(error)
            elif not results:
                future.set_result(None)
            elif len(results) == 1:
                future.set_result(results[0])
            else:
                future.set_result(results)

        self.done(settle)
        return future.__await__()

    def __repr__(self) -> str:
        return f"Deferred({self._state.value})"


def defer_task(coro: Awaitable[Any], deferred: Optional[Deferred] = None) -> Deferred:
    """
    Run a coroutine in the background and deliver its outcome through a Deferred.

    Args:
        coro: Coroutine to run on the current event loop
        deferred: Optional Deferred to complete instead of a fresh one

    Returns:
        Deferred receiving ``(error,)`` on failure or ``(None, result)``
    """
    deferred = deferred or Deferred()

    async def runner():
        try:
            result = await coro
        except Exception as error:
            deferred.next(error)
        else:
            deferred.next(None, result)

    task = asyncio.get_running_loop().create_task(runner())
    _background_tasks.add(task)
    task.add_done_callback(_forget_task)
    return deferred


def _forget_task(task: asyncio.Task) -> None:
    _background_tasks.discard(task)
    if not task.cancelled() and task.exception() is not None:
        logger.error(f"Deferred consumer raised: {task.exception()!r}")


async def join_all(coros: Iterable[Awaitable[Any]]) -> List[Any]:
    """
    Start every coroutine at once and wait for all of them.

    Tasks are started in iteration order; completion order is whatever the
    loop makes of it. The first failure (in completion order) is raised, but
    only after every sibling has finished; sibling results are then dropped.

    Returns:
        Results in iteration order
    """
    tasks = [asyncio.ensure_future(coro) for coro in coros]
    if not tasks:
        return []

    done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
    failure = next((task.exception() for task in tasks
                    if task in done and task.exception() is not None), None)
    if pending:
        await asyncio.wait(pending)

    for task in tasks:
        error = task.exception()
        if failure is None and error is not None:
            failure = error
    if failure is not None:
        raise failure
    return [task.result() for task in tasks]


__all__ = ["Deferred", "DeferredState", "defer_task", "join_all"]
