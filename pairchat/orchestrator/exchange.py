"""Message Exchange Simulator - Canned counterpart replies.

There is no real counterpart: after each local message a reply is scheduled
with probability REPLY_PROBABILITY, fires after a uniform 1-3s delay and
carries a line drawn uniformly from REPLY_CORPUS. Replies share the session's
cancellation generation, so a reply pending when the user skips or ends is
dropped instead of landing in the next conversation.
"""

import random
from typing import Callable

from pairchat.config.constants import CHAT
from pairchat.observability.logging import SessionLogger
from pairchat.observability.metrics import record_message, record_reply_scheduled
from pairchat.orchestrator.cancellation import CancellationController, DeferredTask
from pairchat.orchestrator.messages import Message, MessageLog, MessageOrigin

REPLY_CORPUS: tuple[str, ...] = (
    "That's interesting!",
    "Tell me more about that",
    "I agree!",
    "Hmm, what do you think about...",
    "Nice! Where are you from?",
    "Cool! I'm from [location]",
    "What are your hobbies?",
    "Haha, that's funny!",
    "Really? That's amazing!",
    "I see, interesting perspective",
)


class MessageExchangeSimulator:
    """Appends local messages and schedules simulated replies.

    Args:
        session_id: Session identifier (log correlation)
        messages: Conversation log shared with the state machine
        cancellation: Controller whose generation guards reply timers
        is_connected: Returns True while the session is CONNECTED
        rng: Random source for reply chance, delay and text
    """

    def __init__(
        self,
        session_id: str,
        messages: MessageLog,
        cancellation: CancellationController,
        is_connected: Callable[[], bool],
        rng: random.Random | None = None,
        reply_probability: float = CHAT.REPLY_PROBABILITY,
        reply_delay_ms: tuple[int, int] = (
            CHAT.REPLY_DELAY_MIN_MS,
            CHAT.REPLY_DELAY_MAX_MS,
        ),
        max_length: int = CHAT.MAX_MESSAGE_LENGTH,
        corpus: tuple[str, ...] = REPLY_CORPUS,
    ) -> None:
        self._messages = messages
        self._cancellation = cancellation
        self._is_connected = is_connected
        self._rng = rng or random.Random()
        self._reply_probability = reply_probability
        self._reply_delay_ms = reply_delay_ms
        self._max_length = max_length
        self._corpus = corpus
        self._logger = SessionLogger(session_id)
        self._last_reply_task: DeferredTask | None = None

    @property
    def last_reply_task(self) -> DeferredTask | None:
        """Most recently scheduled reply timer, if any."""
        return self._last_reply_task

    def validate(self, text: str) -> str | None:
        """Trim `text` and return it if it may be sent, else None."""
        trimmed = text.strip()
        if not trimmed or len(trimmed) > self._max_length:
            return None
        return trimmed

    def send_local(self, text: str) -> Message | None:
        """Append a local message and maybe schedule a reply.

        Ignored (returns None) unless CONNECTED with valid text.
        """
        if not self._is_connected():
            return None

        trimmed = self.validate(text)
        if trimmed is None:
            return None

        message = self._messages.append(trimmed, MessageOrigin.LOCAL)
        self._record(message)

        self._last_reply_task = None
        if self._rng.random() < self._reply_probability:
            low, high = self._reply_delay_ms
            delay_ms = self._rng.randint(low, high)
            self._last_reply_task = self._cancellation.schedule(
                "reply", delay_ms, self._deliver_reply
            )
            self._logger.reply_scheduled(
                delay_ms=delay_ms,
                generation=self._last_reply_task.generation,
            )
            record_reply_scheduled()

        return message

    def _deliver_reply(self) -> Message | None:
        if not self._is_connected():
            return None
        text = self._rng.choice(self._corpus)
        message = self._messages.append(text, MessageOrigin.REMOTE)
        self._record(message)
        return message

    def _record(self, message: Message) -> None:
        self._logger.message_appended(
            message_id=message.id,
            origin=message.origin.value,
            length=len(message.text),
        )
        record_message(message.origin.value)
