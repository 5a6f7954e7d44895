"""Conversation transcript state shared between the controller and views."""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from PyQt6.QtCore import QObject, pyqtSignal

from ..logging import log_call


logger = logging.getLogger(__name__)

TYPING_INDICATOR_ID = "typing-bubble-999"
SYSTEM_BANNER_ID = "system-0"

NEGATIVE_FEEDBACK_PLACEHOLDER = (
    "Please be specific: What was incorrect? What should the correct answer be? "
    "Include article numbers or references if possible..."
)
POSITIVE_FEEDBACK_PLACEHOLDER = "Tell us what you liked about this response (optional)..."


class Role(Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class FeedbackPhase(Enum):
    """Steps of the per-message feedback workflow."""

    NONE = "none"
    COLLECTING = "collecting"
    SUBMITTING = "submitting"
    RESOLVED = "resolved"
    FAILED = "failed"


class FeedbackPolarity(Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"


@dataclass(frozen=True)
class FeedbackState:
    """Feedback sub-record owned by a single assistant message."""

    phase: FeedbackPhase = FeedbackPhase.NONE
    polarity: FeedbackPolarity | None = None
    comment: str = ""

    @property
    def is_open(self) -> bool:
        return self.phase in {FeedbackPhase.COLLECTING, FeedbackPhase.SUBMITTING}

    @property
    def is_submitting(self) -> bool:
        return self.phase is FeedbackPhase.SUBMITTING

    @property
    def prompt_label(self) -> str:
        if self.polarity is FeedbackPolarity.NEGATIVE:
            return "👎 Help us improve"
        if self.polarity is FeedbackPolarity.POSITIVE:
            return "👍 Positive feedback"
        return ""

    @property
    def placeholder(self) -> str:
        if self.polarity is FeedbackPolarity.NEGATIVE:
            return NEGATIVE_FEEDBACK_PLACEHOLDER
        if self.polarity is FeedbackPolarity.POSITIVE:
            return POSITIVE_FEEDBACK_PLACEHOLDER
        return ""

    @property
    def rows(self) -> int:
        return 4 if self.polarity is FeedbackPolarity.NEGATIVE else 2


def _timestamp() -> str:
    return datetime.now().strftime("%H:%M")


@dataclass(frozen=True)
class Message:
    """A single entry of the conversation transcript."""

    id: str
    role: Role
    raw_content: str = ""
    rendered_content: str = ""
    is_typing: bool = False
    has_annotated_references: bool = False
    feedback: FeedbackState | None = None
    feedback_given: bool = False
    timestamp: str = field(default_factory=_timestamp)

    @classmethod
    def typing_placeholder(cls) -> "Message":
        return cls(id=TYPING_INDICATOR_ID, role=Role.ASSISTANT, is_typing=True)

    @property
    def bubble_class(self) -> str:
        if self.role is Role.USER:
            return "bubble-user"
        if self.role is Role.SYSTEM:
            return "bubble-system"
        return "bubble-ai"

    @property
    def show_actions(self) -> bool:
        return self.role is Role.ASSISTANT and not self.is_typing


class MessageStore(QObject):
    """Ordered transcript that publishes a new snapshot on every change.

    Snapshots are tuples of frozen :class:`Message` records, so a snapshot
    handed out earlier never changes underneath its holder.
    """

    messages_changed = pyqtSignal(object)

    def __init__(self) -> None:
        super().__init__()
        self._messages: tuple[Message, ...] = ()

    # ------------------------------------------------------------------
    @property
    def snapshot(self) -> tuple[Message, ...]:
        return self._messages

    @property
    def typing_message(self) -> Message | None:
        return self.get(TYPING_INDICATOR_ID)

    def get(self, message_id: str) -> Message | None:
        for message in self._messages:
            if message.id == message_id:
                return message
        return None

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(self._messages)

    # ------------------------------------------------------------------
    @log_call(logger=logger, include_args=False)
    def append(self, message: Message) -> tuple[Message, ...]:
        """Append ``message``; a new placeholder replaces the existing one."""

        messages = self._messages
        if message.is_typing:
            self._check_placeholder(message)
            messages = self._without_placeholder(messages)
        elif message.id == TYPING_INDICATOR_ID:
            raise ValueError("The placeholder identity is reserved for typing messages")
        elif self.get(message.id) is not None:
            raise ValueError(f"Duplicate message id: {message.id!r}")
        return self._publish(messages + (message,))

    @log_call(logger=logger, include_args=False)
    def replace_typing(self, message: Message) -> tuple[Message, ...]:
        """Drop the placeholder and append ``message`` in a single snapshot."""

        if message.is_typing:
            raise ValueError("replace_typing expects a final message")
        if message.id == TYPING_INDICATOR_ID:
            raise ValueError("The placeholder identity is reserved for typing messages")
        messages = self._without_placeholder(self._messages)
        if any(existing.id == message.id for existing in messages):
            raise ValueError(f"Duplicate message id: {message.id!r}")
        return self._publish(messages + (message,))

    @log_call(logger=logger)
    def update_by_id(self, message_id: str, **patch: Any) -> tuple[Message, ...]:
        """Merge ``patch`` into the message ``message_id``.

        Unknown ids are ignored and leave the snapshot untouched.
        """

        if "id" in patch or "is_typing" in patch:
            raise ValueError("Message identity fields cannot be patched")
        for index, message in enumerate(self._messages):
            if message.id != message_id:
                continue
            if message.is_typing and patch.get("feedback") is not None:
                raise ValueError("The typing placeholder cannot carry feedback")
            updated = dataclasses.replace(message, **patch)
            messages = self._messages[:index] + (updated,) + self._messages[index + 1 :]
            return self._publish(messages)
        logger.debug("Ignoring update for unknown message", extra={"message_id": message_id})
        return self._messages

    @log_call(logger=logger, include_args=False)
    def reset(self, seed: Message | None = None) -> tuple[Message, ...]:
        """Drop every message, optionally starting over with ``seed``."""

        if seed is not None and seed.is_typing:
            raise ValueError("A conversation cannot start with the typing placeholder")
        return self._publish((seed,) if seed is not None else ())

    # ------------------------------------------------------------------
    @staticmethod
    def _check_placeholder(message: Message) -> None:
        if message.id != TYPING_INDICATOR_ID or message.feedback is not None:
            raise ValueError("Typing messages must use the placeholder identity")

    @staticmethod
    def _without_placeholder(messages: tuple[Message, ...]) -> tuple[Message, ...]:
        return tuple(message for message in messages if message.id != TYPING_INDICATOR_ID)

    def _publish(self, messages: tuple[Message, ...]) -> tuple[Message, ...]:
        self._messages = messages
        logger.debug(
            "Transcript updated",
            extra={
                "message_count": len(messages),
                "typing": any(message.is_typing for message in messages),
            },
        )
        self.messages_changed.emit(messages)
        return messages


__all__ = [
    "FeedbackPhase",
    "FeedbackPolarity",
    "FeedbackState",
    "Message",
    "MessageStore",
    "Role",
    "SYSTEM_BANNER_ID",
    "TYPING_INDICATOR_ID",
]
