"""Session State Machine - 3-phase FSM for matchmaking.

Phases:
- IDLE: No pairing; waiting for the user to start
- CONNECTING: Looking for a counterpart (simulated 2-5s delay)
- CONNECTED: Paired; messages may be exchanged

Transitions:
- IDLE -> CONNECTING (start)
- CONNECTING -> CONNECTED (connect timer fired)
- CONNECTED -> CONNECTING (next)
- CONNECTING | CONNECTED -> IDLE (end)

The connect timer runs as a DeferredTask; every user action advances the
cancellation generation so a timer from an ended or skipped pairing can
never resurrect the session.
"""

import asyncio
import inspect
import random
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable

from pairchat.config.constants import CHAT
from pairchat.exceptions import SessionStateError
from pairchat.observability.logging import SessionLogger
from pairchat.observability.metrics import record_message
from pairchat.orchestrator.cancellation import (
    CancellationController,
    CancelMessage,
    CancelReason,
    DeferredTask,
)
from pairchat.orchestrator.messages import MessageLog, MessageOrigin


def monotonic_ms() -> int:
    """Monotonic milliseconds for transition timestamps."""
    return time.monotonic_ns() // 1_000_000


class ConnectionPhase(Enum):
    """Coarse connection state of a session."""

    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"


# Valid phase transitions
VALID_TRANSITIONS: dict[ConnectionPhase, set[ConnectionPhase]] = {
    ConnectionPhase.IDLE: {ConnectionPhase.CONNECTING},
    ConnectionPhase.CONNECTING: {ConnectionPhase.CONNECTED, ConnectionPhase.IDLE},
    ConnectionPhase.CONNECTED: {ConnectionPhase.CONNECTING, ConnectionPhase.IDLE},
}


@dataclass
class StateTransition:
    """Record of a phase transition."""

    old_state: ConnectionPhase
    new_state: ConnectionPhase
    t_ms: int
    reason: str
    metadata: dict = field(default_factory=dict)


StateChangeCallback = Callable[[StateTransition], None]
AsyncStateChangeCallback = Callable[[StateTransition], asyncio.Future]


class SessionStateMachine:
    """Connection phase FSM with randomized matchmaking timers.

    Usage:
        fsm = SessionStateMachine("session-123", MessageLog())
        fsm.on_enter(ConnectionPhase.CONNECTED, handle_connected)

        await fsm.start()   # IDLE -> CONNECTING, connect timer scheduled
        ...                 # timer fires: CONNECTED + greeting
        await fsm.next()    # CONNECTED -> CONNECTING, messages cleared
        await fsm.end()     # -> IDLE
    """

    def __init__(
        self,
        session_id: str,
        messages: MessageLog,
        cancellation: CancellationController | None = None,
        rng: random.Random | None = None,
        connect_delay_ms: tuple[int, int] = (
            CHAT.CONNECT_DELAY_MIN_MS,
            CHAT.CONNECT_DELAY_MAX_MS,
        ),
        greeting_text: str = CHAT.GREETING_TEXT,
    ) -> None:
        self._session_id = session_id
        self._state = ConnectionPhase.IDLE
        self._messages = messages
        self._cancellation = cancellation or CancellationController(session_id)
        self._rng = rng or random.Random()
        self._connect_delay_ms = connect_delay_ms
        self._greeting_text = greeting_text
        self._logger = SessionLogger(session_id)

        self._connection_count: int = 0
        self._connect_task: DeferredTask | None = None
        self._connecting_since_ms: int = 0

        # Callback registries
        self._on_change_callbacks: list[StateChangeCallback | AsyncStateChangeCallback] = []
        self._on_enter_callbacks: dict[ConnectionPhase, list[Callable]] = {
            s: [] for s in ConnectionPhase
        }
        self._on_exit_callbacks: dict[ConnectionPhase, list[Callable]] = {
            s: [] for s in ConnectionPhase
        }

        # Transition history
        self._history: list[StateTransition] = []
        self._max_history = CHAT.MAX_TRANSITION_HISTORY

    @property
    def state(self) -> ConnectionPhase:
        """Current connection phase."""
        return self._state

    @property
    def session_id(self) -> str:
        """Session identifier."""
        return self._session_id

    @property
    def connection_count(self) -> int:
        """Completed CONNECTING -> CONNECTED transitions."""
        return self._connection_count

    @property
    def cancellation(self) -> CancellationController:
        """Cancellation controller."""
        return self._cancellation

    @property
    def connect_task(self) -> DeferredTask | None:
        """Most recently scheduled connect timer."""
        return self._connect_task

    def on_state_change(
        self, callback: StateChangeCallback | AsyncStateChangeCallback
    ) -> None:
        """Register callback for any phase change."""
        self._on_change_callbacks.append(callback)

    def on_enter(self, state: ConnectionPhase, callback: Callable) -> None:
        """Register callback for entering a specific phase."""
        self._on_enter_callbacks[state].append(callback)

    def on_exit(self, state: ConnectionPhase, callback: Callable) -> None:
        """Register callback for exiting a specific phase."""
        self._on_exit_callbacks[state].append(callback)

    async def transition_to(
        self,
        new_state: ConnectionPhase,
        reason: str = "",
        metadata: dict | None = None,
        apply: Callable[[], None] | None = None,
    ) -> StateTransition:
        """Transition to a new phase.

        Low-level: performs no timer or message bookkeeping. Prefer
        start(), next() and end().

        Args:
            new_state: Target phase
            reason: Free-form reason for logs and history
            metadata: Extra fields carried on the StateTransition
            apply: Runs right after the phase changes and before enter and
                change callbacks, so callbacks observe its effects

        Raises:
            SessionStateError: If the transition is not in VALID_TRANSITIONS,
                or another transition happened while exit callbacks ran
        """
        old_state = self._state
        self._check_transition(old_state, new_state)

        transition = StateTransition(
            old_state=old_state,
            new_state=new_state,
            t_ms=monotonic_ms(),
            reason=reason,
            metadata=metadata or {},
        )

        await self._call_callbacks(self._on_exit_callbacks[old_state], transition)

        # An async exit callback may have yielded to another action
        if self._state != old_state:
            raise SessionStateError(
                f"Transition superseded: {old_state.value} → {new_state.value}",
                session_id=self._session_id,
                current_state=self._state.value,
                target_state=new_state.value,
            )

        self._state = new_state
        if apply is not None:
            apply()

        await self._call_callbacks(self._on_enter_callbacks[new_state], transition)
        await self._call_callbacks(self._on_change_callbacks, transition)

        self._history.append(transition)
        if len(self._history) > self._max_history:
            self._history.pop(0)

        return transition

    def _check_transition(
        self, old_state: ConnectionPhase, new_state: ConnectionPhase
    ) -> None:
        if new_state not in VALID_TRANSITIONS.get(old_state, set()):
            raise SessionStateError(
                f"Invalid transition: {old_state.value} → {new_state.value}",
                session_id=self._session_id,
                current_state=old_state.value,
                target_state=new_state.value,
            )

    async def start(self) -> StateTransition | None:
        """Begin looking for a counterpart.

        Only valid from IDLE; otherwise ignored.
        """
        if self._state != ConnectionPhase.IDLE:
            self._logger.action_ignored("start", self._state.value)
            return None

        cancel = await self._cancellation.cancel(CancelReason.USER_START)
        if self._superseded("start", cancel, ConnectionPhase.IDLE):
            return None

        self._messages.clear()
        return await self._begin_connecting("user_start")

    async def next(self) -> StateTransition | None:
        """Skip the current counterpart and look for a new one.

        Only valid from CONNECTED; otherwise ignored.
        """
        if self._state != ConnectionPhase.CONNECTED:
            self._logger.action_ignored("next", self._state.value)
            return None

        cancel = await self._cancellation.cancel(CancelReason.USER_NEXT)
        if self._superseded("next", cancel, ConnectionPhase.CONNECTED):
            return None

        self._messages.clear()
        return await self._begin_connecting("user_next")

    async def end(self) -> StateTransition | None:
        """End the session from any phase.

        Always cancels pending timers and clears messages. Returns None
        when already IDLE. Actions that slip in while end() is waiting
        are cancelled in turn; the session always ends up IDLE.
        """
        while True:
            cancel = await self._cancellation.cancel(CancelReason.USER_END)
            if not self._cancellation.is_current(cancel.generation):
                continue

            self._connect_task = None
            self._messages.clear()

            if self._state == ConnectionPhase.IDLE:
                return None

            transition = await self._try_transition(
                "end", ConnectionPhase.IDLE, "user_end"
            )
            if transition is not None:
                return transition

    def _superseded(
        self,
        action: str,
        cancel: CancelMessage,
        expected: ConnectionPhase,
    ) -> bool:
        """Whether another action ran while `cancel` awaited aborted timers."""
        if self._cancellation.is_current(cancel.generation) and self._state == expected:
            return False
        self._logger.action_ignored(action, self._state.value)
        return True

    async def _try_transition(
        self,
        action: str,
        new_state: ConnectionPhase,
        reason: str,
        metadata: dict | None = None,
        apply: Callable[[], None] | None = None,
    ) -> StateTransition | None:
        """transition_to() for user actions and timers: ignore, never raise."""
        try:
            return await self.transition_to(new_state, reason, metadata, apply)
        except SessionStateError:
            self._logger.action_ignored(action, self._state.value)
            return None

    async def _begin_connecting(self, reason: str) -> StateTransition | None:
        low, high = self._connect_delay_ms
        delay_ms = self._rng.randint(low, high)

        transition = await self._try_transition(
            reason,
            ConnectionPhase.CONNECTING,
            reason,
            metadata={"delay_ms": delay_ms},
        )
        if transition is None:
            return None

        self._connecting_since_ms = transition.t_ms
        self._connect_task = self._cancellation.schedule(
            "connect", delay_ms, self._complete_connection
        )
        return transition

    async def _complete_connection(self) -> None:
        # Generation already checked by the controller; the phase check
        # covers direct transition_to() calls made in between.
        if self._state != ConnectionPhase.CONNECTING:
            return

        self._connect_task = None
        wait_ms = monotonic_ms() - self._connecting_since_ms
        await self._try_transition(
            "connect",
            ConnectionPhase.CONNECTED,
            "match_found",
            metadata={"wait_ms": wait_ms},
            apply=self._seat_counterpart,
        )

    def _seat_counterpart(self) -> None:
        """Count the pairing and seed the counterpart's greeting."""
        self._connection_count += 1
        greeting = self._messages.append(self._greeting_text, MessageOrigin.REMOTE)
        self._logger.message_appended(
            message_id=greeting.id,
            origin=greeting.origin.value,
            length=len(greeting.text),
        )
        record_message(greeting.origin.value)

    async def _call_callbacks(
        self,
        callbacks: list[Callable],
        transition: StateTransition,
    ) -> None:
        """Call list of callbacks with transition."""
        for callback in callbacks:
            try:
                if inspect.iscoroutinefunction(callback):
                    await callback(transition)
                else:
                    callback(transition)
            except Exception as e:
                # Don't let callback errors break state machine
                self._logger.callback_failed(
                    callback=getattr(callback, "__name__", repr(callback)),
                    error=str(e),
                )

    @property
    def history(self) -> list[StateTransition]:
        """Transition history (most recent last)."""
        return self._history.copy()

    def get_state_duration_ms(self) -> int:
        """Get time spent in current phase (ms)."""
        if not self._history:
            return 0

        return monotonic_ms() - self._history[-1].t_ms
