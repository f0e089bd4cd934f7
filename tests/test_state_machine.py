"""Tests for Session State Machine.

Tests the 3-phase matchmaking FSM and its connect timer.
"""

import asyncio
import random

import pytest

from pairchat.exceptions import SessionStateError
from pairchat.orchestrator.cancellation import CancellationController
from pairchat.orchestrator.messages import MessageLog, MessageOrigin
from pairchat.orchestrator.state_machine import (
    ConnectionPhase,
    SessionStateMachine,
    StateTransition,
    VALID_TRANSITIONS,
)


def make_fsm(
    session_id: str = "test-fsm",
    connect_delay_ms: tuple[int, int] = (5, 15),
    seed: int = 42,
) -> SessionStateMachine:
    return SessionStateMachine(
        session_id,
        MessageLog(),
        rng=random.Random(seed),
        connect_delay_ms=connect_delay_ms,
    )


async def settle(fsm: SessionStateMachine) -> None:
    await fsm.cancellation.drain()


class TestConnectionPhase:
    """Tests for ConnectionPhase enum."""

    def test_all_phases_exist(self):
        """All 3 phases exist."""
        assert ConnectionPhase.IDLE.value == "idle"
        assert ConnectionPhase.CONNECTING.value == "connecting"
        assert ConnectionPhase.CONNECTED.value == "connected"

    def test_phase_count(self):
        """Exactly 3 phases exist."""
        assert len(ConnectionPhase) == 3


class TestValidTransitions:
    """Tests for the transition table."""

    def test_idle_transitions(self):
        """IDLE can only go to CONNECTING."""
        assert VALID_TRANSITIONS[ConnectionPhase.IDLE] == {ConnectionPhase.CONNECTING}

    def test_connecting_transitions(self):
        """CONNECTING can go to CONNECTED or IDLE."""
        assert VALID_TRANSITIONS[ConnectionPhase.CONNECTING] == {
            ConnectionPhase.CONNECTED,
            ConnectionPhase.IDLE,
        }

    def test_connected_transitions(self):
        """CONNECTED can go to CONNECTING (skip) or IDLE (end)."""
        assert VALID_TRANSITIONS[ConnectionPhase.CONNECTED] == {
            ConnectionPhase.CONNECTING,
            ConnectionPhase.IDLE,
        }


class TestStateTransition:
    """Tests for StateTransition dataclass."""

    def test_create_transition(self):
        transition = StateTransition(
            old_state=ConnectionPhase.IDLE,
            new_state=ConnectionPhase.CONNECTING,
            t_ms=12345,
            reason="test",
        )
        assert transition.old_state == ConnectionPhase.IDLE
        assert transition.new_state == ConnectionPhase.CONNECTING
        assert transition.t_ms == 12345
        assert transition.metadata == {}


class TestTransitionTo:
    """Tests for the low-level transition guard."""

    @pytest.fixture
    def fsm(self):
        return make_fsm()

    def test_init(self, fsm):
        """FSM initializes in IDLE with no connections."""
        assert fsm.state == ConnectionPhase.IDLE
        assert fsm.session_id == "test-fsm"
        assert fsm.connection_count == 0
        assert fsm.history == []

    @pytest.mark.asyncio
    async def test_valid_transition(self, fsm):
        transition = await fsm.transition_to(ConnectionPhase.CONNECTING, "test")

        assert transition.old_state == ConnectionPhase.IDLE
        assert fsm.state == ConnectionPhase.CONNECTING
        assert len(fsm.history) == 1

    @pytest.mark.asyncio
    async def test_invalid_transition_raises(self, fsm):
        """IDLE can't go directly to CONNECTED."""
        with pytest.raises(SessionStateError, match="Invalid transition"):
            await fsm.transition_to(ConnectionPhase.CONNECTED, "invalid")

        assert fsm.state == ConnectionPhase.IDLE

    @pytest.mark.asyncio
    async def test_invalid_transition_details(self, fsm):
        with pytest.raises(SessionStateError) as exc_info:
            await fsm.transition_to(ConnectionPhase.IDLE, "invalid")

        assert exc_info.value.details["current_state"] == "idle"
        assert exc_info.value.details["target_state"] == "idle"
        assert exc_info.value.session_id == "test-fsm"

    @pytest.mark.asyncio
    async def test_history_limit(self, fsm):
        for _ in range(60):
            await fsm.transition_to(ConnectionPhase.CONNECTING, "test")
            await fsm.transition_to(ConnectionPhase.IDLE, "reset")

        assert len(fsm.history) == fsm._max_history


class TestStateCallbacks:
    """Tests for phase change callbacks."""

    @pytest.fixture
    def fsm(self):
        return make_fsm("test-callbacks")

    @pytest.mark.asyncio
    async def test_on_state_change_callback(self, fsm):
        received = []
        fsm.on_state_change(received.append)

        await fsm.start()
        await settle(fsm)

        assert [t.new_state for t in received] == [
            ConnectionPhase.CONNECTING,
            ConnectionPhase.CONNECTED,
        ]

    @pytest.mark.asyncio
    async def test_on_enter_and_exit(self, fsm):
        entered = []
        exited = []
        fsm.on_enter(ConnectionPhase.CONNECTED, entered.append)
        fsm.on_exit(ConnectionPhase.IDLE, exited.append)

        await fsm.start()
        await settle(fsm)

        assert len(entered) == 1
        assert len(exited) == 1

    @pytest.mark.asyncio
    async def test_async_callback(self, fsm):
        received = []

        async def callback(transition):
            received.append(transition)

        fsm.on_state_change(callback)
        await fsm.start()

        assert len(received) == 1

    @pytest.mark.asyncio
    async def test_failing_callback_does_not_break_fsm(self, fsm):
        def broken(transition):
            raise RuntimeError("boom")

        fsm.on_state_change(broken)
        await fsm.start()
        await settle(fsm)

        assert fsm.state == ConnectionPhase.CONNECTED


class TestStart:
    """Tests for start()."""

    @pytest.mark.asyncio
    async def test_start_enters_connecting(self):
        fsm = make_fsm()

        transition = await fsm.start()

        assert transition is not None
        assert fsm.state == ConnectionPhase.CONNECTING
        assert fsm.connect_task is not None
        await fsm.end()

    @pytest.mark.asyncio
    async def test_connect_delay_within_default_bounds(self):
        """Matchmaking delay is sampled from 2000-5000ms."""
        for seed in range(20):
            fsm = SessionStateMachine(
                "test-bounds", MessageLog(), rng=random.Random(seed)
            )
            await fsm.start()
            assert 2000 <= fsm.connect_task.delay_ms <= 5000
            await fsm.end()

    @pytest.mark.asyncio
    async def test_timer_completion_connects_with_greeting(self):
        fsm = make_fsm()

        await fsm.start()
        await settle(fsm)

        assert fsm.state == ConnectionPhase.CONNECTED
        assert fsm.connection_count == 1
        assert len(fsm._messages) == 1
        assert fsm._messages[0].origin == MessageOrigin.REMOTE
        assert fsm._messages[0].text == "Hi there! 👋"

    @pytest.mark.asyncio
    async def test_start_ignored_when_not_idle(self):
        fsm = make_fsm()
        await fsm.start()
        generation = fsm.cancellation.generation

        assert await fsm.start() is None
        assert fsm.state == ConnectionPhase.CONNECTING
        assert fsm.cancellation.generation == generation
        await fsm.end()

    @pytest.mark.asyncio
    async def test_start_clears_messages(self):
        fsm = make_fsm()
        fsm._messages.append("left over", MessageOrigin.LOCAL)

        await fsm.start()

        assert len(fsm._messages) == 0
        await fsm.end()


class TestNext:
    """Tests for next()."""

    @pytest.mark.asyncio
    async def test_next_only_from_connected(self):
        fsm = make_fsm()
        assert await fsm.next() is None

        await fsm.start()
        assert await fsm.next() is None
        assert fsm.state == ConnectionPhase.CONNECTING
        await fsm.end()

    @pytest.mark.asyncio
    async def test_next_clears_and_reconnects(self):
        fsm = make_fsm()
        await fsm.start()
        await settle(fsm)
        fsm._messages.append("hello", MessageOrigin.LOCAL)

        transition = await fsm.next()

        assert transition.old_state == ConnectionPhase.CONNECTED
        assert transition.new_state == ConnectionPhase.CONNECTING
        assert len(fsm._messages) == 0

        await settle(fsm)

        assert fsm.state == ConnectionPhase.CONNECTED
        assert fsm.connection_count == 2
        assert len(fsm._messages) == 1
        assert fsm._messages[0].origin == MessageOrigin.REMOTE


class TestEnd:
    """Tests for end()."""

    @pytest.mark.asyncio
    async def test_end_from_idle_returns_none(self):
        fsm = make_fsm()

        assert await fsm.end() is None
        assert fsm.state == ConnectionPhase.IDLE

    @pytest.mark.asyncio
    async def test_end_while_connecting_cancels_timer(self):
        fsm = make_fsm()
        await fsm.start()

        await fsm.end()
        await settle(fsm)

        assert fsm.state == ConnectionPhase.IDLE
        assert fsm.connection_count == 0
        assert len(fsm._messages) == 0

    @pytest.mark.asyncio
    async def test_end_from_connected(self):
        fsm = make_fsm()
        await fsm.start()
        await settle(fsm)

        transition = await fsm.end()

        assert transition.old_state == ConnectionPhase.CONNECTED
        assert fsm.state == ConnectionPhase.IDLE
        assert len(fsm._messages) == 0
        assert fsm.connection_count == 1

    @pytest.mark.asyncio
    async def test_restart_after_end(self):
        fsm = make_fsm()
        await fsm.start()
        await fsm.end()

        await fsm.start()
        await settle(fsm)

        assert fsm.state == ConnectionPhase.CONNECTED
        assert fsm.connection_count == 1


class TestRandomSequences:
    """Property-style checks over random action sequences."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("seed", range(5))
    async def test_phase_and_count_invariants(self, seed):
        actions = random.Random(seed)
        fsm = make_fsm(connect_delay_ms=(0, 3), seed=seed)
        last_count = 0

        for _ in range(25):
            action = actions.choice(["start", "next", "end", "settle"])
            if action == "settle":
                await settle(fsm)
            else:
                await getattr(fsm, action)()

            assert fsm.state in set(ConnectionPhase)
            assert fsm.connection_count >= last_count
            assert fsm.connection_count - last_count <= 1
            last_count = fsm.connection_count

            if action == "end":
                assert fsm.state == ConnectionPhase.IDLE
                assert len(fsm._messages) == 0

        await fsm.end()
        await settle(fsm)


class TestSharedController:
    """The FSM honours an injected cancellation controller."""

    @pytest.mark.asyncio
    async def test_external_advance_discards_connect(self):
        controller = CancellationController("test-shared")
        fsm = SessionStateMachine(
            "test-shared",
            MessageLog(),
            cancellation=controller,
            connect_delay_ms=(5, 5),
        )
        await fsm.start()

        controller.advance()
        await settle(fsm)

        assert fsm.state == ConnectionPhase.CONNECTING
        assert fsm.connection_count == 0


class TestStateDuration:
    """Tests for get_state_duration_ms()."""

    def test_zero_before_first_transition(self):
        assert make_fsm().get_state_duration_ms() == 0

    @pytest.mark.asyncio
    async def test_duration_after_transition(self):
        fsm = make_fsm(connect_delay_ms=(1000, 1000))
        await fsm.start()

        assert fsm.get_state_duration_ms() >= 0
        await fsm.end()


class TestConnectBookkeeping:
    """Callbacks on entering CONNECTED see the completed pairing."""

    @pytest.mark.asyncio
    async def test_enter_callback_sees_count_and_greeting(self):
        fsm = make_fsm()
        seen = []

        async def on_connected(transition):
            seen.append((fsm.connection_count, [m.text for m in fsm._messages]))
            await asyncio.sleep(0)

        fsm.on_enter(ConnectionPhase.CONNECTED, on_connected)
        await fsm.start()
        await settle(fsm)

        assert seen == [(1, ["Hi there! 👋"])]


class TestOverlappingActions:
    """Actions interleaved at an await never corrupt the phase."""

    @pytest.mark.asyncio
    async def test_end_wins_over_next_during_exit_callbacks(self):
        fsm = make_fsm()
        await fsm.start()
        await settle(fsm)

        async def slow_exit(transition):
            await asyncio.sleep(0)

        fsm.on_exit(ConnectionPhase.CONNECTED, slow_exit)

        await asyncio.gather(fsm.next(), fsm.end())
        await settle(fsm)

        assert fsm.state == ConnectionPhase.IDLE
        assert len(fsm._messages) == 0
        assert fsm.connection_count == 1

    @pytest.mark.asyncio
    async def test_superseded_transition_raises_at_low_level(self):
        fsm = make_fsm()
        await fsm.transition_to(ConnectionPhase.CONNECTING, "test")

        async def slow_exit(transition):
            await asyncio.sleep(0)

        fsm.on_exit(ConnectionPhase.CONNECTING, slow_exit)

        results = await asyncio.gather(
            fsm.transition_to(ConnectionPhase.CONNECTED, "a"),
            fsm.transition_to(ConnectionPhase.IDLE, "b"),
            return_exceptions=True,
        )

        assert isinstance(results[1], SessionStateError)
        assert results[1].message.startswith("Transition superseded")
        assert results[1].current_state == "connected"
        assert results[1].target_state == "idle"
        assert fsm.state == ConnectionPhase.CONNECTED

    @pytest.mark.asyncio
    async def test_user_actions_never_raise_when_overlapping(self):
        fsm = make_fsm(connect_delay_ms=(0, 2))
        actions = random.Random(8)

        for _ in range(20):
            names = [actions.choice(["start", "next", "end"]) for _ in range(3)]
            await asyncio.gather(*(getattr(fsm, name)() for name in names))
            await settle(fsm)
            assert fsm.state in (ConnectionPhase.IDLE, ConnectionPhase.CONNECTED)

        await fsm.end()
