"""Per-widget conversation session: transcript, session id and message ids."""

from __future__ import annotations

import itertools
import logging
import uuid

from .formatter import escape_html
from .message_store import SYSTEM_BANNER_ID, Message, MessageStore, Role


logger = logging.getLogger(__name__)


def new_session_id() -> str:
    return uuid.uuid4().hex


class ConversationSession:
    """State owned by one chat widget instance.

    The message id counter survives :meth:`renew` so ids are never reused
    while the widget lives; only the session id changes.
    """

    def __init__(self, store: MessageStore | None = None) -> None:
        self.store = store if store is not None else MessageStore()
        self.session_id = new_session_id()
        self._message_ids = itertools.count(1)

    def next_message_id(self) -> str:
        return f"msg-{next(self._message_ids)}"

    def is_current(self, session_id: str) -> bool:
        return session_id == self.session_id

    def renew(self, banner: str) -> str:
        """Start a new session whose transcript holds only ``banner``."""

        previous = self.session_id
        self.session_id = new_session_id()
        self.store.reset(self.banner_message(banner))
        logger.info(
            "Conversation session renewed",
            extra={"previous_session_id": previous, "session_id": self.session_id},
        )
        return self.session_id

    # ------------------------------------------------------------------
    @staticmethod
    def banner_message(text: str) -> Message:
        return Message(
            id=SYSTEM_BANNER_ID,
            role=Role.SYSTEM,
            raw_content=text,
            rendered_content=escape_html(text),
        )

    def user_message(self, text: str) -> Message:
        return Message(
            id=self.next_message_id(),
            role=Role.USER,
            raw_content=text,
            rendered_content=escape_html(text),
        )

    def system_message(self, text: str) -> Message:
        return Message(
            id=self.next_message_id(),
            role=Role.SYSTEM,
            raw_content=text,
            rendered_content=escape_html(text),
        )

    def append_system(self, text: str) -> Message:
        message = self.system_message(text)
        self.store.append(message)
        return message


__all__ = ["ConversationSession", "new_session_id"]
