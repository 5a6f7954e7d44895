"""Tests for the per-message feedback state machine."""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

pytest.importorskip("PyQt6")

from assistant_chat.services.assistant_client import AssistantConnectionError
from assistant_chat.services.conversation_controller import ConversationController
from assistant_chat.services.message_store import (
    FeedbackPhase,
    FeedbackPolarity,
    FeedbackState,
    Role,
)
from assistant_chat.services.notification_service import Notification, NotificationService


@pytest.fixture()
def notifications() -> tuple[NotificationService, list[Notification]]:
    service = NotificationService()
    received: list[Notification] = []
    service.subscribe(received.append)
    return service, received


def _controller_with_reply(fake_client, notifier=None) -> tuple[ConversationController, str]:
    controller = ConversationController(fake_client, notifier=notifier)
    fake_client.chat_replies = ["Here is how to reset your password."]
    message = asyncio.run(controller.send("How do I reset my password?"))
    assert message is not None
    return controller, message.id


def test_negative_feedback_with_comment_is_resolved(fake_client, notifications) -> None:
    notifier, received = notifications
    controller, message_id = _controller_with_reply(fake_client, notifier)
    phases: list[FeedbackPhase] = []

    def record(snapshot) -> None:
        for message in snapshot:
            if message.id == message_id and message.feedback is not None:
                phases.append(message.feedback.phase)

    controller.store.messages_changed.connect(record)
    fake_client.feedback_replies = [
        {"success": True, "status": "ok", "user_feedback": "negative"}
    ]

    assert controller.feedback.open(message_id, "negative")
    state = controller.feedback.state(message_id)
    assert state is not None and state.rows == 4
    assert controller.feedback.edit_comment(message_id, "missing steps")
    outcome = asyncio.run(controller.feedback.submit(message_id))

    assert outcome is FeedbackPhase.RESOLVED
    assert fake_client.feedback_calls == [
        {
            "message_id": message_id,
            "user_feedback": "negative",
            "session_id": controller.session_id,
            "comment": "missing steps",
        }
    ]
    system = controller.messages[-1]
    assert system.role is Role.SYSTEM
    assert "negative" in system.raw_content
    assert "missing steps" in system.raw_content
    assert system.raw_content == "✅ Feedback received: 👎 negative (missing steps)"
    rated = controller.store.get(message_id)
    assert rated is not None
    assert rated.feedback == FeedbackState()
    assert rated.feedback_given is True
    assert phases[-4:] == [
        FeedbackPhase.SUBMITTING,
        FeedbackPhase.RESOLVED,
        FeedbackPhase.RESOLVED,
        FeedbackPhase.NONE,
    ]
    assert received[-1] == Notification("Thank you", "Feedback submitted successfully", "success")


def test_positive_feedback_echoes_service_comment(fake_client) -> None:
    controller, message_id = _controller_with_reply(fake_client)
    fake_client.feedback_replies = [
        {"success": True, "status": "ok", "user_feedback": "positive", "comment": "clear"}
    ]

    controller.feedback.open(message_id, FeedbackPolarity.POSITIVE)
    asyncio.run(controller.feedback.submit(message_id))

    assert controller.messages[-1].raw_content == "✅ Feedback received: 👍 positive (clear)"


def test_cancel_clears_polarity_and_comment(fake_client) -> None:
    controller, message_id = _controller_with_reply(fake_client)

    controller.feedback.open(message_id, "positive")
    controller.feedback.edit_comment(message_id, "great")
    assert controller.feedback.cancel(message_id)

    assert controller.feedback.state(message_id) == FeedbackState()
    assert not controller.feedback.edit_comment(message_id, "late edit")
    assert not controller.feedback.cancel(message_id)


def test_submit_outside_collecting_is_a_noop(fake_client) -> None:
    controller, message_id = _controller_with_reply(fake_client)
    before = controller.messages

    assert asyncio.run(controller.feedback.submit(message_id)) is None
    assert asyncio.run(controller.feedback.submit("msg-404")) is None

    assert fake_client.feedback_calls == []
    assert controller.messages is before


def test_feedback_only_applies_to_assistant_messages(fake_client) -> None:
    controller, _ = _controller_with_reply(fake_client)
    user_message = next(m for m in controller.messages if m.role is Role.USER)

    assert user_message.feedback is None
    assert not controller.feedback.open(user_message.id, "positive")
    assert not controller.feedback.open("msg-404", "positive")
    with pytest.raises(ValueError):
        controller.feedback.open(user_message.id, "neutral")


def test_only_one_submission_per_message_in_flight(fake_client) -> None:
    controller, message_id = _controller_with_reply(fake_client)
    fake_client.feedback_replies = [
        {"success": True, "status": "ok", "user_feedback": "positive"}
    ]
    controller.feedback.open(message_id, "positive")

    async def scenario():
        fake_client.feedback_gate = asyncio.Event()
        first = asyncio.create_task(controller.feedback.submit(message_id))
        await asyncio.sleep(0)
        state = controller.feedback.state(message_id)
        assert state is not None and state.phase is FeedbackPhase.SUBMITTING
        assert not controller.feedback.open(message_id, "negative")
        second = await controller.feedback.submit(message_id)
        fake_client.feedback_gate.set()
        return second, await first

    second, first = asyncio.run(scenario())

    assert second is None
    assert first is FeedbackPhase.RESOLVED
    assert len(fake_client.feedback_calls) == 1


def test_service_reported_failure(fake_client, notifications) -> None:
    notifier, received = notifications
    controller, message_id = _controller_with_reply(fake_client, notifier)
    fake_client.feedback_replies = [{"success": False, "message": "Quota exceeded"}]

    controller.feedback.open(message_id, "negative")
    outcome = asyncio.run(controller.feedback.submit(message_id))

    assert outcome is FeedbackPhase.FAILED
    assert controller.messages[-1].raw_content == "❌ Error sending feedback: Quota exceeded"
    assert received[-1] == Notification("Error", "Quota exceeded", "error")
    rated = controller.store.get(message_id)
    assert rated is not None and rated.feedback == FeedbackState()
    assert rated.feedback_given is False


def test_transport_failure(fake_client, notifications) -> None:
    notifier, received = notifications
    controller, message_id = _controller_with_reply(fake_client, notifier)
    fake_client.feedback_replies = [AssistantConnectionError("offline")]

    controller.feedback.open(message_id, "positive")
    outcome = asyncio.run(controller.feedback.handle_key_down(message_id, "Enter"))

    assert outcome is FeedbackPhase.FAILED
    assert controller.messages[-1].raw_content == "❌ Error sending feedback: offline"
    assert received[-1] == Notification("Error", "Could not submit feedback", "error")
    assert controller.feedback.state(message_id) == FeedbackState()


def test_unexpected_exception_marks_feedback_failed(fake_client, notifications) -> None:
    notifier, received = notifications
    controller, message_id = _controller_with_reply(fake_client, notifier)
    fake_client.feedback_replies = [ConnectionResetError("reset")]

    controller.feedback.open(message_id, "negative")
    outcome = asyncio.run(controller.feedback.submit(message_id))

    assert outcome is FeedbackPhase.FAILED
    assert controller.messages[-1].raw_content == "❌ Error sending feedback: reset"
    assert received[-1] == Notification("Error", "Could not submit feedback", "error")
    rated = controller.store.get(message_id)
    assert rated is not None and rated.feedback == FeedbackState()
    assert rated.feedback_given is False


def test_rejection_without_message_uses_generic_reason(fake_client, notifications) -> None:
    notifier, received = notifications
    controller, message_id = _controller_with_reply(fake_client, notifier)
    fake_client.feedback_replies = [{"success": False}]

    controller.feedback.open(message_id, "positive")
    outcome = asyncio.run(controller.feedback.submit(message_id))

    assert outcome is FeedbackPhase.FAILED
    assert controller.messages[-1].raw_content == (
        "❌ Error sending feedback: Could not submit feedback"
    )
    assert received[-1] == Notification("Error", "Could not submit feedback", "error")


def test_acknowledged_with_unexpected_status(fake_client, notifications) -> None:
    notifier, received = notifications
    controller, message_id = _controller_with_reply(fake_client, notifier)
    fake_client.feedback_replies = [
        {"success": True, "status": "queued", "user_feedback": "positive"}
    ]

    controller.feedback.open(message_id, "positive")
    outcome = asyncio.run(controller.feedback.submit(message_id))

    assert outcome is FeedbackPhase.RESOLVED
    assert controller.messages[-1].raw_content == "❌ Feedback failed: positive"
    assert not any(
        message.raw_content.startswith("✅") for message in controller.messages
    )
    assert received[-1] == Notification("Thank you", "Feedback submitted successfully", "success")
    rated = controller.store.get(message_id)
    assert rated is not None and rated.feedback_given is True
    assert rated.feedback == FeedbackState()


def test_other_keys_do_not_submit(fake_client) -> None:
    controller, message_id = _controller_with_reply(fake_client)
    controller.feedback.open(message_id, "positive")

    assert asyncio.run(controller.feedback.handle_key_down(message_id, "a")) is None
    assert fake_client.feedback_calls == []


def test_feedback_response_after_clear_is_discarded(fake_client, notifications) -> None:
    notifier, received = notifications
    controller, message_id = _controller_with_reply(fake_client, notifier)
    old_session = controller.session_id
    fake_client.feedback_replies = [
        {"success": True, "status": "ok", "user_feedback": "positive"}
    ]
    controller.feedback.open(message_id, "positive")

    async def scenario():
        fake_client.feedback_gate = asyncio.Event()
        task = asyncio.create_task(controller.feedback.submit(message_id))
        await asyncio.sleep(0)
        controller.clear()
        fake_client.feedback_gate.set()
        return await task

    outcome = asyncio.run(scenario())

    assert outcome is None
    assert fake_client.feedback_calls[0]["session_id"] == old_session
    assert [m.raw_content for m in controller.messages] == ["Conversation cleared."]
    assert received == []
