"""Deferred Tasks and Generation-Based Cancellation.

Every scheduled timer (matchmaking delay, simulated reply delay) is a
DeferredTask tagged with the generation that was current when it was
scheduled. Any state-changing action calls cancel(), which advances the
generation and aborts outstanding tasks.

A task that wakes up anyway (its sleep already resolved when the abort
arrived) checks its generation before running and is discarded when stale.
Stale tasks are logged and counted, never surfaced to callers.
"""

import asyncio
import inspect
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable

from pairchat.observability.logging import SessionLogger
from pairchat.observability.metrics import record_stale_timer


class CancelReason(Enum):
    """Reasons for invalidating outstanding timers."""

    USER_START = "USER_START"
    USER_NEXT = "USER_NEXT"
    USER_END = "USER_END"
    SHUTDOWN = "SHUTDOWN"


@dataclass
class CancelMessage:
    """Record of one generation advance."""

    session_id: str
    reason: CancelReason
    generation: int
    aborted_tasks: int

    def to_dict(self) -> dict:
        """Convert to dictionary for logging."""
        return {
            "session_id": self.session_id,
            "type": "CANCEL",
            "reason": self.reason.value,
            "generation": self.generation,
            "aborted_tasks": self.aborted_tasks,
        }


TaskCallback = Callable[[], Awaitable[Any] | Any]


@dataclass(eq=False)
class DeferredTask:
    """A single-shot timer bound to the generation it was scheduled in."""

    name: str
    generation: int
    delay_ms: int
    task: asyncio.Task | None = field(default=None, repr=False)
    fired: bool = False

    @property
    def done(self) -> bool:
        """Whether the timer has finished (fired, discarded or aborted)."""
        return self.task is None or self.task.done()

    def abort(self) -> bool:
        """Abort the underlying asyncio task if it is still sleeping."""
        if self.task is not None and not self.task.done():
            self.task.cancel()
            return True
        return False


class CancellationController:
    """Schedules deferred tasks and invalidates them by generation.

    Usage:
        controller = CancellationController(session_id="session-123")

        # Schedule a timer in the current generation
        controller.schedule("connect", 3200, on_connected)

        # On end/next: abort outstanding timers and advance the generation
        await controller.cancel(CancelReason.USER_END)

        # Wait for every outstanding timer to fire or be discarded
        await controller.drain()
    """

    def __init__(self, session_id: str) -> None:
        self._session_id = session_id
        self._generation: int = 0
        self._pending: set[DeferredTask] = set()
        self._last_cancel: CancelMessage | None = None
        self._logger = SessionLogger(session_id)

    @property
    def session_id(self) -> str:
        """Session ID for this controller."""
        return self._session_id

    @property
    def generation(self) -> int:
        """Current generation."""
        return self._generation

    @property
    def pending_count(self) -> int:
        """Number of timers that have not finished yet."""
        return len(self._pending)

    @property
    def last_cancel(self) -> CancelMessage | None:
        """Last generation advance."""
        return self._last_cancel

    def is_current(self, generation: int) -> bool:
        """Whether a task scheduled in `generation` may still apply its effect."""
        return generation == self._generation

    def advance(self) -> int:
        """Invalidate outstanding tasks without aborting them.

        Returns:
            The new generation
        """
        self._generation += 1
        return self._generation

    def schedule(
        self,
        name: str,
        delay_ms: int,
        callback: TaskCallback,
    ) -> DeferredTask:
        """Run `callback` after `delay_ms` unless the generation moves on.

        Must be called from within a running event loop.

        Args:
            name: Task label for logs and metrics (e.g. "connect", "reply")
            delay_ms: Delay before firing
            callback: Sync or async callable with no arguments

        Returns:
            The scheduled DeferredTask
        """
        deferred = DeferredTask(
            name=name,
            generation=self._generation,
            delay_ms=delay_ms,
        )
        deferred.task = asyncio.create_task(
            self._run(deferred, callback),
            name=f"{self._session_id}:{name}:{deferred.generation}",
        )
        self._pending.add(deferred)
        return deferred

    async def _run(self, deferred: DeferredTask, callback: TaskCallback) -> None:
        try:
            await asyncio.sleep(deferred.delay_ms / 1000.0)

            if not self.is_current(deferred.generation):
                self._logger.stale_timer_discarded(
                    task=deferred.name,
                    generation=deferred.generation,
                    current_generation=self._generation,
                )
                record_stale_timer(deferred.name)
                return

            deferred.fired = True
            result = callback()
            if inspect.isawaitable(result):
                await result
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._logger.callback_failed(callback=deferred.name, error=str(e))
        finally:
            self._pending.discard(deferred)

    async def cancel(self, reason: CancelReason) -> CancelMessage:
        """Advance the generation and abort every outstanding timer.

        Waits for aborted tasks to unwind so no stale callback is still
        running when the caller mutates session state.

        Args:
            reason: Reason for cancellation

        Returns:
            CancelMessage describing the advance
        """
        generation = self.advance()

        current = asyncio.current_task()
        aborted = []
        for deferred in list(self._pending):
            if deferred.task is current:
                continue
            if deferred.abort():
                aborted.append(deferred.task)
            self._pending.discard(deferred)

        if aborted:
            await asyncio.gather(*aborted, return_exceptions=True)

        message = CancelMessage(
            session_id=self._session_id,
            reason=reason,
            generation=generation,
            aborted_tasks=len(aborted),
        )
        self._last_cancel = message
        return message

    async def drain(self) -> None:
        """Wait until every outstanding timer has fired or been discarded."""
        current = asyncio.current_task()
        while True:
            # A task aborted before its first step never reaches its finally
            self._pending = {d for d in self._pending if not d.done}
            tasks = [
                d.task for d in self._pending
                if d.task is not None and d.task is not current
            ]
            if not tasks:
                return
            await asyncio.gather(*tasks, return_exceptions=True)
