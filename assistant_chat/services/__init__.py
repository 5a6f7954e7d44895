"""Conversation services for the AssistantChat widget."""

from .assistant_client import (
    AssistantClient,
    AssistantConnectionError,
    AssistantError,
    AssistantResponseError,
    FeedbackResult,
)
from .conversation_controller import CLEARED_BANNER, ConversationController
from .feedback import FeedbackWorkflow
from .formatter import escape_html, format_markdown
from .message_store import (
    SYSTEM_BANNER_ID,
    TYPING_INDICATOR_ID,
    FeedbackPhase,
    FeedbackPolarity,
    FeedbackState,
    Message,
    MessageStore,
    Role,
)
from .notification_service import Notification, NotificationService
from .references import (
    ArticleAnnotator,
    ArticleLink,
    CitationKind,
    CitationOccurrence,
    CitationPattern,
    extract_article_numbers,
    find_citations,
    has_article_references,
    parse_article_links,
)
from .session import ConversationSession

__all__ = [
    "ArticleAnnotator",
    "ArticleLink",
    "AssistantClient",
    "AssistantConnectionError",
    "AssistantError",
    "AssistantResponseError",
    "CLEARED_BANNER",
    "CitationKind",
    "CitationOccurrence",
    "CitationPattern",
    "ConversationController",
    "ConversationSession",
    "FeedbackPhase",
    "FeedbackPolarity",
    "FeedbackResult",
    "FeedbackState",
    "FeedbackWorkflow",
    "Message",
    "MessageStore",
    "Notification",
    "NotificationService",
    "Role",
    "SYSTEM_BANNER_ID",
    "TYPING_INDICATOR_ID",
    "escape_html",
    "extract_article_numbers",
    "find_citations",
    "format_markdown",
    "has_article_references",
    "parse_article_links",
]
