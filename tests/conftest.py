"""Shared fixtures: deterministic assistant service stubs."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest


class FakeAssistantClient:
    """In-memory stand-in for :class:`AssistantClient`.

    ``chat_gate``/``feedback_gate`` hold the corresponding call until the
    test sets the event, which lets a test interleave other operations
    while a request is in flight.
    """

    def __init__(self) -> None:
        self.chat_replies: list[Any] = []
        self.article_ids: dict[str, str] = {}
        self.feedback_replies: list[Any] = []
        self.chat_calls: list[tuple[str, str]] = []
        self.article_calls: list[list[str]] = []
        self.feedback_calls: list[dict[str, Any]] = []
        self.chat_gate: asyncio.Event | None = None
        self.feedback_gate: asyncio.Event | None = None

    async def get_chat_response(self, message: str, session_id: str) -> str:
        self.chat_calls.append((message, session_id))
        if self.chat_gate is not None:
            await self.chat_gate.wait()
        reply = self.chat_replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

    async def get_knowledge_article_ids(self, article_numbers: list[str]) -> dict[str, str]:
        self.article_calls.append(list(article_numbers))
        return {key: value for key, value in self.article_ids.items() if key in article_numbers}

    async def submit_chat_feedback(self, **payload: Any) -> Any:
        self.feedback_calls.append(payload)
        if self.feedback_gate is not None:
            await self.feedback_gate.wait()
        reply = self.feedback_replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


@pytest.fixture()
def fake_client() -> FakeAssistantClient:
    return FakeAssistantClient()
