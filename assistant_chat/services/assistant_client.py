"""HTTP client for the assistant chat, feedback and knowledge services."""

from __future__ import annotations

import asyncio
import http.client
import json
import logging
import socket
import time
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any
from urllib import error, request

from ..config import AssistantSettings
from ..logging import log_call


logger = logging.getLogger(__name__)


class AssistantError(RuntimeError):
    """Base exception for assistant service failures."""


class AssistantConnectionError(AssistantError):
    """Raised when an assistant service cannot be reached."""


class AssistantResponseError(AssistantError):
    """Raised when an assistant service returns an invalid response."""


@dataclass(frozen=True)
class FeedbackResult:
    """Acknowledgement returned by the feedback service."""

    success: bool
    status: str | None = None
    user_feedback: str | None = None
    comment: str | None = None
    message: str | None = None

    @classmethod
    def from_payload(cls, data: Any) -> "FeedbackResult":
        if not isinstance(data, dict):
            raise AssistantResponseError("Feedback response must be a JSON object")

        def _text(key: str) -> str | None:
            value = data.get(key)
            if value is None:
                return None
            return str(value)

        return cls(
            success=bool(data.get("success")),
            status=_text("status"),
            user_feedback=_text("user_feedback"),
            comment=_text("comment"),
            message=_text("message"),
        )


class AssistantClient:
    """JSON-over-HTTP client for the conversational backend.

    Requests are blocking :mod:`urllib` calls; the public coroutine methods
    run them in a worker thread so the event loop driving the UI stays free.
    """

    @log_call(logger=logger)
    def __init__(self, settings: AssistantSettings | None = None) -> None:
        self.configure(settings or AssistantSettings())

    @property
    def base_url(self) -> str:
        return self._settings.base_url

    @property
    def settings(self) -> AssistantSettings:
        return self._settings

    @log_call(logger=logger)
    def configure(self, settings: AssistantSettings) -> None:
        """Swap connection settings without recreating the client."""

        self._settings = settings
        self.max_retries = max(settings.max_retries, 0)
        self.retry_backoff = settings.retry_backoff

    # ------------------------------------------------------------------
    @log_call(logger=logger, include_result=True)
    async def get_chat_response(self, message: str, session_id: str) -> str:
        """Send ``message`` for ``session_id`` and return the assistant reply."""

        logger.info(
            "Dispatching chat request",
            extra={"session_id": session_id, "message_length": len(message)},
        )
        data = await asyncio.to_thread(
            self._request_json,
            "POST",
            self._settings.chat_path,
            {"message": message, "sessionId": session_id},
        )
        return self._parse_chat_response(data)

    @log_call(logger=logger, include_result=True)
    async def get_knowledge_article_ids(
        self, article_numbers: Sequence[str]
    ) -> dict[str, str]:
        """Resolve article numbers to knowledge article ids.

        Unknown numbers are simply missing from the returned mapping.
        """

        data = await asyncio.to_thread(
            self._request_json,
            "POST",
            self._settings.articles_path,
            {"articleNumbers": list(article_numbers)},
        )
        if not isinstance(data, dict):
            raise AssistantResponseError("Article lookup response must be a JSON object")
        return {
            str(number): article_id
            for number, article_id in data.items()
            if isinstance(article_id, str) and article_id
        }

    @log_call(logger=logger, include_result=True)
    async def submit_chat_feedback(
        self,
        *,
        message_id: str,
        user_feedback: str,
        session_id: str,
        comment: str = "",
    ) -> FeedbackResult:
        """Submit a rating for ``message_id``."""

        data = await asyncio.to_thread(
            self._request_json,
            "POST",
            self._settings.feedback_path,
            {
                "messageId": message_id,
                "userFeedback": user_feedback,
                "sessionId": session_id,
                "comment": comment,
            },
        )
        return FeedbackResult.from_payload(data)

    # ------------------------------------------------------------------
    def _request(
        self,
        method: str,
        path: str,
        payload: dict[str, Any] | None = None,
    ) -> bytes:
        url = f"{self._settings.base_url}{path}"
        data: bytes | None = None
        headers = {"Accept": "application/json"}
        if payload is not None:
            data = json.dumps(payload).encode("utf-8")
            headers["Content-Type"] = "application/json"
        request_obj = request.Request(url, data=data, headers=headers, method=method)
        last_error: AssistantError | None = None
        for attempt in range(self.max_retries + 1):
            try:
                logger.debug(
                    "Assistant request attempt",
                    extra={"method": method, "url": url, "attempt": attempt + 1},
                )
                with request.urlopen(request_obj, timeout=self._settings.timeout) as response:
                    status = response.getcode()
                    body = response.read()
                if status >= 400:
                    raise AssistantResponseError(
                        self._build_http_error_message(status, body)
                    )
                return body
            except error.HTTPError as exc:
                body = exc.read() if hasattr(exc, "read") else b""
                last_error = AssistantResponseError(
                    self._build_http_error_message(getattr(exc, "code", None), body)
                )
                if not self._should_retry(exc.code):
                    break
            except error.URLError as exc:
                if isinstance(exc.reason, (TimeoutError, socket.timeout)):
                    last_error = AssistantConnectionError("Assistant request timed out")
                else:
                    last_error = AssistantConnectionError(str(exc.reason))
            except TimeoutError:
                last_error = AssistantConnectionError("Assistant request timed out")
            except (OSError, http.client.HTTPException) as exc:
                last_error = AssistantConnectionError(str(exc) or type(exc).__name__)
            if attempt < self.max_retries:
                logger.warning(
                    "Assistant request failed, retrying",
                    extra={
                        "method": method,
                        "url": url,
                        "attempt": attempt + 1,
                        "error": str(last_error),
                    },
                )
                time.sleep(self.retry_backoff * (2**attempt))
        if last_error is not None:
            raise last_error
        raise AssistantError("Unexpected assistant request failure")

    def _request_json(
        self, method: str, path: str, payload: dict[str, Any] | None = None
    ) -> Any:
        body = self._request(method, path, payload)
        if not body:
            raise AssistantResponseError("Empty response from assistant service")
        try:
            return json.loads(body.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise AssistantResponseError("Invalid JSON from assistant service") from exc

    @staticmethod
    def _should_retry(status: int | None) -> bool:
        if status is None:
            return True
        return status in {408, 429, 500, 502, 503, 504}

    @staticmethod
    def _parse_chat_response(data: Any) -> str:
        if isinstance(data, str):
            return data
        if isinstance(data, dict):
            reply = data.get("response")
            if isinstance(reply, str):
                return reply
        raise AssistantResponseError("Chat response did not contain a reply")

    @staticmethod
    def _build_http_error_message(status: int | None, body: bytes | str | None) -> str:
        summary = AssistantClient._summarize_error_body(body)
        if status is not None:
            if summary:
                return f"Assistant service returned HTTP {status}: {summary}"
            return f"Assistant service returned HTTP {status}"
        return summary or "Assistant request failed"

    @staticmethod
    def _summarize_error_body(body: bytes | str | None) -> str:
        if body is None:
            return ""
        if isinstance(body, bytes):
            text = body.decode("utf-8", errors="replace")
        else:
            text = str(body)
        text = text.strip()
        if not text:
            return ""
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            return " ".join(text.split())
        if isinstance(data, dict):
            buckets = [data.get("body"), data.get("error"), data]
            for bucket in buckets:
                if not isinstance(bucket, dict):
                    continue
                message = bucket.get("message") or bucket.get("detail")
                if message:
                    return " ".join(str(message).split())
        return " ".join(text.split())


__all__ = [
    "AssistantClient",
    "AssistantConnectionError",
    "AssistantError",
    "AssistantResponseError",
    "FeedbackResult",
]
