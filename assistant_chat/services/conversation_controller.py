"""Coordinate user input, backend replies and the conversation transcript."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from ..config import AssistantSettings
from ..logging import log_call
from .assistant_client import AssistantError
from .feedback import FeedbackWorkflow
from .formatter import format_markdown
from .message_store import FeedbackState, Message, MessageStore, Role
from .notification_service import NotificationService
from .references import (
    ArticleAnnotator,
    ArticleLink,
    has_article_references,
    parse_article_links,
)
from .session import ConversationSession


logger = logging.getLogger(__name__)

CLEARED_BANNER = "Conversation cleared."
CLEAR_PROMPT = "Clear conversation history?"


class ConversationController:
    """Own a chat session and drive it from UI events.

    ``client`` must provide the coroutine methods ``get_chat_response``,
    ``get_knowledge_article_ids`` and ``submit_chat_feedback`` (see
    :class:`~assistant_chat.services.assistant_client.AssistantClient`).
    ``confirm`` is asked before the conversation is cleared.

    Replies that arrive after the conversation was cleared belong to a
    session that no longer exists and are dropped.
    """

    def __init__(
        self,
        client: Any,
        *,
        settings: AssistantSettings | None = None,
        notifier: NotificationService | None = None,
        confirm: Callable[[str], bool] | None = None,
        session: ConversationSession | None = None,
    ) -> None:
        self.client = client
        self.settings = settings or AssistantSettings()
        self.notifier = notifier
        self._confirm = confirm
        self.session = session or ConversationSession()
        self.annotator = ArticleAnnotator(client.get_knowledge_article_ids)
        self.feedback = FeedbackWorkflow(self.session, client, notifier)
        self._user_input = ""
        self._is_loading = False
        self.store.reset(self.session.banner_message(self.settings.welcome_message))

    # ------------------------------------------------------------------
    @property
    def store(self) -> MessageStore:
        return self.session.store

    @property
    def messages(self) -> tuple[Message, ...]:
        return self.store.snapshot

    @property
    def session_id(self) -> str:
        return self.session.session_id

    @property
    def is_loading(self) -> bool:
        return self._is_loading

    @property
    def user_input(self) -> str:
        return self._user_input

    def set_user_input(self, text: str) -> None:
        self._user_input = text or ""

    @property
    def has_messages(self) -> bool:
        return len(self.store) > 1

    @property
    def show_welcome(self) -> bool:
        return len(self.store) == 1 and not self._is_loading

    @property
    def send_disabled(self) -> bool:
        return not self._user_input.strip() or self._is_loading

    # ------------------------------------------------------------------
    async def handle_key_down(self, key: str, *, shift: bool = False) -> Message | None:
        """Send on Enter; Shift+Enter is left to the input for a newline."""

        if key == "Enter" and not shift:
            return await self.send()
        return None

    @log_call(logger=logger, include_args=False)
    async def send(self, text: str | None = None) -> Message | None:
        """Submit the pending input (or ``text``) and append the reply.

        Returns the assistant message that replaced the typing placeholder,
        or ``None`` when nothing was sent or the reply was discarded.
        """

        if text is not None:
            self.set_user_input(text)
        if self.send_disabled:
            return None
        user_text = self._user_input.strip()
        self._user_input = ""

        self.store.append(self.session.user_message(user_text))
        self.store.append(Message.typing_placeholder())
        self._is_loading = True
        session_id = self.session.session_id
        try:
            try:
                reply = await self.client.get_chat_response(user_text, session_id)
            except Exception as exc:
                if self._is_stale(session_id):
                    return None
                logger.error(
                    "Chat request failed",
                    extra={"session_id": session_id, "error": str(exc)},
                    exc_info=not isinstance(exc, AssistantError),
                )
                message = self._assistant_message(
                    self.settings.fallback_message,
                    format_markdown(self.settings.fallback_message),
                )
                self.store.replace_typing(message)
                self._notify("Error", str(exc) or "Failed to reach AI service", "error")
                return message

            message = await self.build_assistant_message(reply)
            if self._is_stale(session_id):
                return None
            self.store.replace_typing(message)
            return message
        finally:
            self._is_loading = False

    async def build_assistant_message(self, raw_text: str) -> Message:
        """Format, annotate and wrap ``raw_text`` as an assistant message."""

        formatted = format_markdown(raw_text)
        rendered = await self.annotator.annotate(formatted, raw_text)
        return self._assistant_message(
            raw_text, rendered, has_references=has_article_references(raw_text)
        )

    @log_call(logger=logger)
    def clear(self, *, confirm: bool = True) -> bool:
        """Reset the transcript and start a new session id."""

        if confirm and self._confirm is not None and not self._confirm(CLEAR_PROMPT):
            logger.debug("Conversation clear declined")
            return False
        self._user_input = ""
        self.session.renew(CLEARED_BANNER)
        return True

    # ------------------------------------------------------------------
    def raw_text(self, message_id: str) -> str | None:
        """Return the original text of a message, e.g. for copying."""

        message = self.store.get(message_id)
        return message.raw_content if message is not None else None

    def article_links(self, message_id: str) -> list[ArticleLink]:
        message = self.store.get(message_id)
        if message is None or not message.has_annotated_references:
            return []
        return parse_article_links(message.rendered_content)

    @log_call(logger=logger)
    def activate_article_link(self, article_id: str) -> bool:
        """Forward a clicked article link to the navigation collaborator."""

        if not article_id:
            return False
        if self.notifier is not None:
            self.notifier.request_article(article_id)
        return True

    # ------------------------------------------------------------------
    def _assistant_message(
        self, raw_text: str, rendered: str, *, has_references: bool = False
    ) -> Message:
        return Message(
            id=self.session.next_message_id(),
            role=Role.ASSISTANT,
            raw_content=raw_text,
            rendered_content=rendered,
            has_annotated_references=has_references,
            feedback=FeedbackState(),
        )

    def _is_stale(self, session_id: str) -> bool:
        if self.session.is_current(session_id):
            return False
        logger.info(
            "Discarding chat response for a cleared conversation",
            extra={"session_id": session_id, "current_session_id": self.session_id},
        )
        return True

    def _notify(self, title: str, message: str, level: str) -> None:
        if self.notifier is not None:
            self.notifier.notify(title, message, level=level)


__all__ = ["CLEARED_BANNER", "ConversationController"]
