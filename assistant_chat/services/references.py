"""Detect knowledge-article citations and rewrite them into links.

Assistant replies cite knowledge articles by their 9-digit article number in
a handful of textual forms. Each form is described once by a
:class:`CitationPattern`; the same ordered tuple drives key extraction,
reference detection and link rewriting so the three never drift apart.
"""

from __future__ import annotations

import html
import logging
import re
from collections.abc import Awaitable, Callable, Iterator, Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from html.parser import HTMLParser

from ..logging import log_call


logger = logging.getLogger(__name__)

ARTICLE_LINK_CLASS = "knowledge-article-link"

_ARTICLE_NUMBER_RE = re.compile(r"^\d{9}$")

# Formatted replies carry line breaks as <br/>, so they count as whitespace.
_LINE_BREAK = "<br/>"
_SPACE = r"(?:\s|<br/>)"
_NUMBER_LIST = r"((?:[\d,\s]|<br/>)+)"

ArticleResolver = Callable[[list[str]], Awaitable[Mapping[str, str]]]


class CitationKind(Enum):
    """Surface forms an article citation can take."""

    SINGLE = "single"  # (Article 000005262)
    LEGACY_LIST = "legacy_list"  # (Article 000005262, 000005263)
    LABELLED = "labelled"  # Article: 000005262
    NUMBERS_LIST = "numbers_list"  # (Article Numbers: 000005262, 000005218)
    NUMBER = "number"  # (Article Number: 000006196)


@dataclass(frozen=True)
class CitationPattern:
    """How to find one citation form and how to rewrite it.

    ``template`` receives the rewritten body through ``{body}``; for single
    key forms ``label`` is the visible link text and receives ``{number}``.
    """

    kind: CitationKind
    regex: re.Pattern[str]
    template: str
    label: str = "{number}"
    multi: bool = False
    skip_markers: tuple[str, ...] = ()
    is_reference: bool = True

    def keys(self, match: re.Match[str]) -> list[str]:
        if not self.multi:
            return [match.group(1)]
        return [
            number for number in _split_numbers(match.group(1)) if _ARTICLE_NUMBER_RE.match(number)
        ]


def _split_numbers(body: str) -> list[str]:
    return [part.strip() for part in body.replace(_LINE_BREAK, " ").split(",")]


CITATION_PATTERNS: tuple[CitationPattern, ...] = (
    CitationPattern(
        kind=CitationKind.SINGLE,
        regex=re.compile(rf"\(Article{_SPACE}+(\d{{9}})\)"),
        template="({body})",
        label="Article {number}",
    ),
    CitationPattern(
        kind=CitationKind.LEGACY_LIST,
        regex=re.compile(rf"\(Article{_SPACE}+{_NUMBER_LIST}\)"),
        template="(Article {body})",
        multi=True,
        skip_markers=("Number:", "Numbers:"),
        is_reference=False,
    ),
    CitationPattern(
        kind=CitationKind.LABELLED,
        regex=re.compile(rf"Article:{_SPACE}+(\d{{9}})"),
        template="Article: {body}",
    ),
    CitationPattern(
        kind=CitationKind.NUMBERS_LIST,
        regex=re.compile(rf"\(Article{_SPACE}+Numbers:{_SPACE}*{_NUMBER_LIST}\)"),
        template="(Article Numbers: {body})",
        multi=True,
    ),
    CitationPattern(
        kind=CitationKind.NUMBER,
        regex=re.compile(rf"\(Article{_SPACE}+Number:{_SPACE}*(\d{{9}})\)"),
        template="(Article Number: {body})",
    ),
)


@dataclass(frozen=True)
class CitationOccurrence:
    """A single article number found in a text."""

    kind: CitationKind
    key: str
    span: tuple[int, int]


@dataclass(frozen=True)
class ArticleLink:
    """A rendered knowledge-article link."""

    article_id: str
    article_number: str


def find_citations(
    text: str | None, patterns: Sequence[CitationPattern] = CITATION_PATTERNS
) -> Iterator[CitationOccurrence]:
    """Yield every citation occurrence in ``text``, pattern by pattern."""

    if not text:
        return
    for pattern in patterns:
        for match in pattern.regex.finditer(text):
            for key in pattern.keys(match):
                yield CitationOccurrence(pattern.kind, key, match.span())


def extract_article_numbers(text: str | None) -> list[str]:
    """Return the distinct article numbers cited in ``text``.

    The legacy list form overlaps the others; that is harmless here since
    only membership matters.
    """

    return list(dict.fromkeys(occurrence.key for occurrence in find_citations(text)))


def has_article_references(text: str | None) -> bool:
    """Return ``True`` when ``text`` contains a non-legacy citation form."""

    if not text:
        return False
    return any(
        pattern.regex.search(text) for pattern in CITATION_PATTERNS if pattern.is_reference
    )


def render_article_link(article_id: str, article_number: str, label: str) -> str:
    return (
        f'<a href="#" data-article-id="{html.escape(article_id, quote=True)}" '
        f'data-article-number="{article_number}" class="{ARTICLE_LINK_CLASS}">'
        f"{html.escape(label, quote=False)}</a>"
    )


def rewrite_citations(
    text: str,
    article_ids: Mapping[str, str],
    patterns: Sequence[CitationPattern] = CITATION_PATTERNS,
) -> str:
    """Replace resolved citations in ``text`` with article links.

    Patterns are applied in order. A match without any resolved number is
    left exactly as it was.
    """

    for pattern in patterns:

        def _replace(match: re.Match[str], pattern: CitationPattern = pattern) -> str:
            original = match.group(0)
            if any(marker in original for marker in pattern.skip_markers):
                return original
            if not pattern.multi:
                number = match.group(1)
                article_id = article_ids.get(number)
                if not article_id:
                    return original
                label = pattern.label.format(number=number)
                return pattern.template.format(
                    body=render_article_link(article_id, number, label)
                )

            parts = _split_numbers(match.group(1))
            linked = False
            pieces: list[str] = []
            for number in parts:
                article_id = article_ids.get(number)
                if article_id and _ARTICLE_NUMBER_RE.match(number):
                    pieces.append(render_article_link(article_id, number, number))
                    linked = True
                else:
                    pieces.append(number)
            if not linked:
                return original
            return pattern.template.format(body=", ".join(pieces))

        text = pattern.regex.sub(_replace, text)
    return text


class ArticleAnnotator:
    """Turn citations in formatted replies into activatable article links."""

    def __init__(self, resolver: ArticleResolver) -> None:
        self._resolver = resolver

    @log_call(logger=logger, include_args=False)
    async def annotate(self, formatted_text: str, raw_text: str) -> str:
        """Return ``formatted_text`` with resolvable citations linked.

        Numbers are collected from ``raw_text`` and resolved in a single
        batch. Resolution failures leave the text unchanged.
        """

        article_numbers = extract_article_numbers(raw_text)
        if not article_numbers:
            logger.debug("No article references found")
            return formatted_text

        try:
            article_ids = await self._resolver(article_numbers)
            resolved = {
                number: article_id
                for number, article_id in dict(article_ids or {}).items()
                if isinstance(number, str) and isinstance(article_id, str) and article_id
            }
        except Exception:
            logger.warning(
                "Article resolution failed; leaving citations unlinked",
                extra={"article_numbers": article_numbers},
                exc_info=True,
            )
            return formatted_text

        logger.info(
            "Resolved article references",
            extra={
                "requested": len(article_numbers),
                "resolved": len(resolved),
            },
        )
        if not resolved:
            return formatted_text
        return rewrite_citations(formatted_text, resolved)


class _ArticleLinkParser(HTMLParser):
    """Collect knowledge-article anchors from rendered markup."""

    def __init__(self) -> None:
        super().__init__()
        self.links: list[ArticleLink] = []

    def handle_starttag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:  # noqa: D401
        if tag.lower() != "a":
            return
        values = dict(attrs)
        classes = (values.get("class") or "").split()
        article_id = values.get("data-article-id")
        if ARTICLE_LINK_CLASS not in classes or not article_id:
            return
        self.links.append(
            ArticleLink(article_id, values.get("data-article-number") or "")
        )


def parse_article_links(markup: str | None) -> list[ArticleLink]:
    """Return the article links embedded in ``markup`` in document order."""

    if not markup:
        return []
    parser = _ArticleLinkParser()
    parser.feed(markup)
    parser.close()
    return parser.links


__all__ = [
    "ARTICLE_LINK_CLASS",
    "CITATION_PATTERNS",
    "ArticleAnnotator",
    "ArticleLink",
    "ArticleResolver",
    "CitationKind",
    "CitationOccurrence",
    "CitationPattern",
    "extract_article_numbers",
    "find_citations",
    "has_article_references",
    "parse_article_links",
    "render_article_link",
    "rewrite_citations",
]
