"""Orchestrator module - Session and state management.

Provides:
- ChatSession: Application-lifetime chat session container
- SessionStateMachine: 3-phase matchmaking FSM
- MessageExchangeSimulator: Simulated counterpart replies
- CancellationController: Generation-guarded deferred tasks
"""

from pairchat.orchestrator.cancellation import (
    CancellationController,
    CancelReason,
    DeferredTask,
)
from pairchat.orchestrator.exchange import REPLY_CORPUS, MessageExchangeSimulator
from pairchat.orchestrator.messages import Message, MessageLog, MessageOrigin
from pairchat.orchestrator.session import ChatSession, SessionConfig, SessionSnapshot
from pairchat.orchestrator.state_machine import ConnectionPhase, SessionStateMachine

__all__ = [
    # Session
    "ChatSession",
    "SessionConfig",
    "SessionSnapshot",
    # State machine
    "ConnectionPhase",
    "SessionStateMachine",
    # Messages
    "Message",
    "MessageLog",
    "MessageOrigin",
    "MessageExchangeSimulator",
    "REPLY_CORPUS",
    # Timers
    "CancellationController",
    "CancelReason",
    "DeferredTask",
]
