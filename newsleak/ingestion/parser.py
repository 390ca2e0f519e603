"""
Feed Parser
===========

Turns raw RSS 2.0 / Atom / RDF bytes into ``RawItem`` records using
feedparser's loose parser, so malformed documents still yield whatever
entries can be recovered. HTML sanitization is disabled: embedded ``<meta>``
and ``<img>`` markup must survive for image resolution.

Per item, the first matching source wins:

- title: ``<title>``, whitespace-collapsed
- link: ``<link>``, trimmed (relative links resolved against the feed link)
- published: first of ``pubDate``/``published``, ``updated``, ``created``
- content: ``content:encoded`` / ``<content>``, else ``<description>``
- author: ``<author>`` / ``<dc:creator>``

Items without a title or link are skipped with an ``ItemError``.
"""

import io
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, List, Optional, Tuple, Union
from urllib.parse import urljoin, urlparse

import feedparser
from bs4 import BeautifulSoup

from ..database.models import RawItem
from ..utils.exceptions import ParseError, ItemError, ErrorCode
from ..utils.logging import get_logger_for_component
from ..utils.validators import normalize_whitespace

# Date-like fields in priority order: (raw key, parsed key)
DATE_FIELDS = (
    ("published", "published_parsed"),
    ("updated", "updated_parsed"),
    ("created", "created_parsed"),
)


@dataclass
class ParsedFeed:
    """Result of parsing one feed document."""

    title: Optional[str]
    link: Optional[str]
    items: List[RawItem] = field(default_factory=list)
    skipped: List[ItemError] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    version: Optional[str] = None

    @property
    def item_count(self) -> int:
        return len(self.items)


class FeedParser:
    """Loose RSS/Atom parser producing ``RawItem`` records."""

    def __init__(self):
        self.logger = get_logger_for_component("parser")

    def parse(self, content: Union[bytes, str], feed_url: Optional[str] = None) -> ParsedFeed:
        """Parse a feed document.

        Args:
            content: Raw document body
            feed_url: Source URL, used for logging and relative links

        Returns:
            ParsedFeed with the usable items and the skipped ones

        Raises:
            ParseError: If the document yields no entries and is not well-formed
        """
        if content is None or not content.strip():
            raise ParseError("Empty feed document", feed_url=feed_url)

        if isinstance(content, str):
            content = content.encode("utf-8")

        # A stream keeps feedparser from treating the body as a path or URL
        data = feedparser.parse(io.BytesIO(content), sanitize_html=False)
        entries = data.get("entries") or []
        warnings = []

        if data.get("bozo"):
            reason = str(data.get("bozo_exception") or "malformed document")
            if not entries:
                raise ParseError(
                    f"Feed parse error: {reason}",
                    feed_url=feed_url,
                    error_code=ErrorCode.FEED_PARSE_ERROR,
                )
            warnings.append(f"Document not well-formed, recovered {len(entries)} entries: {reason}")
            self.logger.info(f"Feed has parse warnings but contains entries: {feed_url}")
        elif not entries and not data.get("version"):
            raise ParseError(
                "Document is not an RSS or Atom feed",
                feed_url=feed_url,
                error_code=ErrorCode.FEED_PARSE_ERROR,
            )

        feed_meta = data.get("feed") or {}
        feed_link = (feed_meta.get("link") or feed_url or "").strip() or None

        parsed = ParsedFeed(
            title=normalize_whitespace(feed_meta.get("title") or "") or None,
            link=feed_link,
            warnings=warnings,
            version=data.get("version") or None,
        )

        for position, entry in enumerate(entries, start=1):
            try:
                parsed.items.append(self.parse_entry(entry, feed_link))
            except ItemError as e:
                e.context.setdefault("position", position)
                if feed_url:
                    e.context.setdefault("feed_url", feed_url)
                parsed.skipped.append(e)
                self.logger.warning(f"Skipping item {position} in {feed_url}: {e}")

        self.logger.debug(
            f"Parsed {len(parsed.items)} items ({len(parsed.skipped)} skipped) from {feed_url}"
        )
        return parsed

    def parse_entry(self, entry: Any, feed_link: Optional[str] = None) -> RawItem:
        """Extract one ``RawItem`` from a feedparser entry.

        Raises:
            ItemError: If the entry has no title or no link
        """
        title = self._clean_title(entry.get("title"))
        link = (entry.get("link") or "").strip()

        if not title:
            raise ItemError(
                "Item has no title",
                item_link=link or None,
                error_code=ErrorCode.ITEM_MISSING_FIELD,
            )
        if not link:
            raise ItemError(
                "Item has no link",
                item_title=title,
                error_code=ErrorCode.ITEM_MISSING_FIELD,
            )

        if feed_link and not urlparse(link).scheme:
            link = urljoin(feed_link, link)

        published_raw, published_at = self._extract_date(entry)

        return RawItem(
            title=title,
            link=link,
            published_raw=published_raw,
            published_at=published_at,
            description_html=entry.get("summary") or "",
            content_html=self._extract_content(entry),
            author=normalize_whitespace(entry.get("author") or "") or None,
            categories=self._extract_categories(entry),
            media_content=[dict(m) for m in entry.get("media_content") or []],
            media_thumbnails=[dict(m) for m in entry.get("media_thumbnail") or []],
            enclosures=[dict(e) for e in entry.get("enclosures") or []],
        )

    @staticmethod
    def _clean_title(raw: Optional[str]) -> str:
        if not raw:
            return ""
        if "<" in raw:
            raw = BeautifulSoup(raw, "html.parser").get_text(" ")
        return normalize_whitespace(raw)

    @staticmethod
    def _extract_content(entry: Any) -> str:
        contents = entry.get("content") or []
        for item in contents:
            value = item.get("value") if isinstance(item, dict) else None
            if value and value.strip():
                return value
        return ""

    @staticmethod
    def _extract_date(entry: Any) -> Tuple[Optional[str], Optional[datetime]]:
        """First date-like field present wins, parsed or not."""
        for raw_key, parsed_key in DATE_FIELDS:
            # dict.__contains__ skips feedparser's updated->published aliasing
            if not dict.__contains__(entry, raw_key):
                continue

            raw = entry.get(raw_key)
            parsed = entry.get(parsed_key) if dict.__contains__(entry, parsed_key) else None
            published_at = None
            if parsed:
                try:
                    published_at = datetime(*parsed[:6], tzinfo=timezone.utc)
                except (TypeError, ValueError):
                    published_at = None
            return raw, published_at

        return None, None

    @staticmethod
    def _extract_categories(entry: Any) -> List[str]:
        categories = []
        for tag in entry.get("tags") or []:
            term = tag.get("term") if isinstance(tag, dict) else str(tag)
            term = normalize_whitespace(term or "")
            if term:
                categories.append(term)
        return categories
