"""Escape raw chat text and apply the small inline markdown subset."""

from __future__ import annotations

import html
import re

_BOLD_STAR_RE = re.compile(r"\*\*(.*?)\*\*")
_BOLD_UNDERSCORE_RE = re.compile(r"__(.*?)__")
_ITALIC_STAR_RE = re.compile(r"\*(.*?)\*")
_ITALIC_UNDERSCORE_RE = re.compile(r"_(.*?)_")
_INLINE_CODE_RE = re.compile(r"`(.*?)`")

# Bold runs before italic so ``**`` is never read as two empty italics.
_INLINE_RULES: tuple[tuple[re.Pattern[str], str], ...] = (
    (_BOLD_STAR_RE, r"<strong>\1</strong>"),
    (_BOLD_UNDERSCORE_RE, r"<strong>\1</strong>"),
    (_ITALIC_STAR_RE, r"<em>\1</em>"),
    (_ITALIC_UNDERSCORE_RE, r"<em>\1</em>"),
    (_INLINE_CODE_RE, r"<code class='inline'>\1</code>"),
)


def escape_html(text: str | None) -> str:
    """Escape ``& < > " '`` so ``text`` can be embedded as markup."""

    if not text:
        return ""
    return html.escape(text, quote=True)


def format_markdown(text: str | None) -> str:
    """Return markup for an assistant reply.

    Escaping happens before any tag is generated. The transform is not
    idempotent: feeding its own output back in escapes the generated tags,
    so it must run exactly once per raw message.
    """

    if not text:
        return ""
    formatted = html.escape(text, quote=False)
    for pattern, replacement in _INLINE_RULES:
        formatted = pattern.sub(replacement, formatted)
    return formatted.replace("\n", "<br/>")


__all__ = ["escape_html", "format_markdown"]
