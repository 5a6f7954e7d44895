"""Per-message feedback workflow for assistant replies."""

from __future__ import annotations

import dataclasses
import logging
from typing import Any

from ..logging import log_call
from .assistant_client import AssistantError, FeedbackResult
from .message_store import (
    FeedbackPhase,
    FeedbackPolarity,
    FeedbackState,
    Message,
    MessageStore,
    Role,
)
from .notification_service import NotificationService
from .session import ConversationSession


logger = logging.getLogger(__name__)


class FeedbackWorkflow:
    """Drive ``none → collecting → submitting → resolved | failed``.

    Feedback lives in the :class:`FeedbackState` of the rated message and is
    addressed by message id. Operations that do not apply to the current
    phase are logged and ignored.
    """

    def __init__(
        self,
        session: ConversationSession,
        client: Any,
        notifier: NotificationService | None = None,
    ) -> None:
        self._session = session
        self._client = client
        self._notifier = notifier

    @property
    def _store(self) -> MessageStore:
        return self._session.store

    def state(self, message_id: str) -> FeedbackState | None:
        message = self._store.get(message_id)
        return message.feedback if message is not None else None

    # ------------------------------------------------------------------
    @log_call(logger=logger)
    def open(self, message_id: str, polarity: FeedbackPolarity | str) -> bool:
        """Start collecting ``polarity`` feedback for ``message_id``."""

        polarity = FeedbackPolarity(polarity)
        message = self._rateable(message_id)
        if message is None:
            return False
        phase = message.feedback.phase if message.feedback else FeedbackPhase.NONE
        if phase not in {FeedbackPhase.NONE, FeedbackPhase.COLLECTING}:
            logger.info(
                "Feedback already in progress",
                extra={"message_id": message_id, "phase": phase.value},
            )
            return False
        self._store.update_by_id(
            message_id,
            feedback=FeedbackState(phase=FeedbackPhase.COLLECTING, polarity=polarity),
        )
        return True

    @log_call(logger=logger, include_args=False)
    def edit_comment(self, message_id: str, comment: str) -> bool:
        feedback = self.state(message_id)
        if feedback is None or feedback.phase is not FeedbackPhase.COLLECTING:
            logger.debug("Ignoring comment edit", extra={"message_id": message_id})
            return False
        self._store.update_by_id(
            message_id, feedback=dataclasses.replace(feedback, comment=comment)
        )
        return True

    @log_call(logger=logger)
    def cancel(self, message_id: str) -> bool:
        feedback = self.state(message_id)
        if feedback is None or feedback.phase is not FeedbackPhase.COLLECTING:
            logger.debug("Ignoring feedback cancel", extra={"message_id": message_id})
            return False
        self._store.update_by_id(message_id, feedback=FeedbackState())
        return True

    async def handle_key_down(self, message_id: str, key: str) -> FeedbackPhase | None:
        """Submit on Enter, mirroring the comment box behaviour."""

        if key != "Enter":
            return None
        return await self.submit(message_id)

    @log_call(logger=logger)
    async def submit(self, message_id: str) -> FeedbackPhase | None:
        """Send the collected feedback and report the outcome.

        Returns the terminal phase reached, or ``None`` when the call was
        ignored or its response belonged to a session that has since been
        cleared.
        """

        feedback = self.state(message_id)
        if feedback is None:
            logger.info("Ignoring feedback submit for unknown message", extra={"message_id": message_id})
            return None
        if feedback.phase is FeedbackPhase.SUBMITTING:
            logger.info("Feedback submission already pending", extra={"message_id": message_id})
            return None
        if feedback.phase is not FeedbackPhase.COLLECTING or feedback.polarity is None:
            logger.info(
                "Ignoring feedback submit outside collecting",
                extra={"message_id": message_id, "phase": feedback.phase.value},
            )
            return None

        polarity = feedback.polarity
        comment = feedback.comment
        session_id = self._session.session_id
        self._store.update_by_id(
            message_id, feedback=dataclasses.replace(feedback, phase=FeedbackPhase.SUBMITTING)
        )
        try:
            try:
                result = await self._client.submit_chat_feedback(
                    message_id=message_id,
                    user_feedback=polarity.value,
                    session_id=session_id,
                    comment=comment or "",
                )
                if not isinstance(result, FeedbackResult):
                    result = FeedbackResult.from_payload(result)
            except Exception as exc:
                if self._is_stale(session_id, message_id):
                    return None
                logger.warning(
                    "Feedback submission failed",
                    extra={"message_id": message_id, "error": str(exc)},
                    exc_info=not isinstance(exc, AssistantError),
                )
                self._mark(message_id, FeedbackPhase.FAILED)
                self._session.append_system(f"❌ Error sending feedback: {exc}")
                self._notify("Error", "Could not submit feedback", "error")
                return FeedbackPhase.FAILED

            if self._is_stale(session_id, message_id):
                return None
            return self._apply_result(message_id, result, polarity, comment)
        finally:
            self._store.update_by_id(message_id, feedback=FeedbackState())

    # ------------------------------------------------------------------
    def _apply_result(
        self,
        message_id: str,
        result: FeedbackResult,
        polarity: FeedbackPolarity,
        comment: str,
    ) -> FeedbackPhase:
        if not result.success:
            logger.warning(
                "Feedback service rejected submission",
                extra={"message_id": message_id, "reason": result.message},
            )
            reason = result.message or "Could not submit feedback"
            self._mark(message_id, FeedbackPhase.FAILED)
            self._session.append_system(f"❌ Error sending feedback: {reason}")
            self._notify("Error", reason, "error")
            return FeedbackPhase.FAILED

        echoed = result.user_feedback or polarity.value
        self._store.update_by_id(
            message_id,
            feedback=FeedbackState(phase=FeedbackPhase.RESOLVED),
            feedback_given=True,
        )
        if result.status == "ok":
            label = "👍 positive" if echoed == FeedbackPolarity.POSITIVE.value else "👎 negative"
            echoed_comment = result.comment or comment
            comment_text = f" ({echoed_comment})" if echoed_comment else ""
            self._session.append_system(f"✅ Feedback received: {label}{comment_text}")
        else:
            # Acknowledged without being recorded; the rating still counts as given.
            logger.warning(
                "Feedback acknowledged with unexpected status",
                extra={"message_id": message_id, "status": result.status},
            )
            self._session.append_system(f"❌ Feedback failed: {echoed}")
        self._notify("Thank you", "Feedback submitted successfully", "success")
        logger.info(
            "Feedback recorded",
            extra={"message_id": message_id, "polarity": echoed},
        )
        return FeedbackPhase.RESOLVED

    def _rateable(self, message_id: str) -> Message | None:
        message = self._store.get(message_id)
        if message is None or message.role is not Role.ASSISTANT or message.feedback is None:
            logger.info("Message does not accept feedback", extra={"message_id": message_id})
            return None
        return message

    def _mark(self, message_id: str, phase: FeedbackPhase) -> None:
        feedback = self.state(message_id)
        if feedback is not None:
            self._store.update_by_id(message_id, feedback=dataclasses.replace(feedback, phase=phase))

    def _is_stale(self, session_id: str, message_id: str) -> bool:
        if self._session.is_current(session_id):
            return False
        logger.info(
            "Discarding feedback response for a cleared conversation",
            extra={"message_id": message_id, "session_id": session_id},
        )
        return True

    def _notify(self, title: str, message: str, level: str) -> None:
        if self._notifier is not None:
            self._notifier.notify(title, message, level=level)


__all__ = ["FeedbackWorkflow"]
