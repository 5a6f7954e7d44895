"""Toast and navigation requests emitted by the chat controller."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable

from PyQt6.QtCore import QObject, pyqtSignal

from ..logging import log_call


logger = logging.getLogger(__name__)


@dataclass(slots=True)
class Notification:
    """A user-facing toast message."""

    title: str
    message: str
    level: str = "info"


class NotificationService(QObject):
    """Publish toasts and article navigation requests to the host view.

    The service never presents anything itself; a view connects to the
    signals (or subscribes a callback) and decides how to show them.
    """

    toast_requested = pyqtSignal(str, str, str)
    article_requested = pyqtSignal(str)

    @log_call(logger=logger)
    def __init__(self) -> None:
        super().__init__()
        self._subscriptions: list[Callable[[Notification], None]] = []

    # ------------------------------------------------------------------
    @log_call(logger=logger)
    def subscribe(self, callback: Callable[[Notification], None]) -> None:
        """Subscribe ``callback`` to every notification."""

        if callback not in self._subscriptions:
            self._subscriptions.append(callback)

    @log_call(logger=logger)
    def unsubscribe(self, callback: Callable[[Notification], None]) -> None:
        if callback in self._subscriptions:
            self._subscriptions.remove(callback)

    # ------------------------------------------------------------------
    @log_call(logger=logger)
    def notify(self, title: str, message: str, *, level: str = "info") -> None:
        """Request a toast notification."""

        notification = Notification(title=title, message=message, level=level)
        logger.info(
            "Toast notification requested",
            extra={"title": title, "toast_message": message, "level": level},
        )
        self.toast_requested.emit(title, message, level)
        for callback in list(self._subscriptions):
            callback(notification)

    @log_call(logger=logger)
    def request_article(self, article_id: str) -> None:
        """Ask the host to open the knowledge article ``article_id``."""

        logger.info("Knowledge article requested", extra={"article_id": article_id})
        self.article_requested.emit(article_id)


__all__ = ["Notification", "NotificationService"]
