"""
Article Normalizer
==================

Builds the canonical ``Article`` from a parsed item, its resolved image,
its category and the feed it came from.
"""

import html
from datetime import datetime
from typing import Optional

from bs4 import BeautifulSoup

from ..config.settings import ProcessingSettings
from ..database.models import Article, Feed, RawItem, article_id_for_link, utc_now
from ..utils.exceptions import ItemError, ValidationError, ErrorCode
from ..utils.validators import (
    URLValidator,
    ContentValidator,
    normalize_whitespace,
    truncate_text,
)


def html_to_text(markup: str) -> str:
    """Plain text of an HTML fragment with entities decoded."""
    if not markup:
        return ""
    if "<" in markup:
        markup = BeautifulSoup(markup, "html.parser").get_text(" ")
    return normalize_whitespace(html.unescape(markup))


class ArticleNormalizer:
    """Converts ``RawItem`` records into ``Article`` models."""

    def __init__(self, max_summary_length: int = 300, max_content_length: int = 20000):
        self.max_summary_length = max_summary_length
        self.max_content_length = max_content_length

    @classmethod
    def from_settings(cls, settings: ProcessingSettings) -> "ArticleNormalizer":
        return cls(
            max_summary_length=settings.max_summary_length,
            max_content_length=settings.max_content_length,
        )

    def normalize(
        self,
        item: RawItem,
        feed: Feed,
        image: Optional[str],
        category: str,
        now: Optional[datetime] = None,
    ) -> Article:
        """Build the article for ``item``.

        Args:
            item: Parsed feed item
            feed: Feed the item came from
            image: Resolved image URL or None
            category: Assigned category
            now: Ingestion time; also the publication time of undated items

        Raises:
            ItemError: If the item's title or link cannot be normalized
        """
        now = now or utc_now()

        try:
            link = URLValidator.canonicalize_article_url(item.link)
            title = ContentValidator.validate_article_title(item.title)
        except ValidationError as e:
            raise ItemError(
                f"Cannot normalize item: {e}",
                item_link=item.link,
                item_title=item.title,
                error_code=ErrorCode.ITEM_INVALID,
            )

        return Article(
            id=article_id_for_link(link),
            feed_id=feed.id,
            title=title,
            link=link,
            summary=self.build_summary(item),
            content=self.build_content(item),
            image=image,
            source=feed.source,
            category=category,
            author=item.author,
            published_at=item.published_at or now,
            is_published=True,
            created_at=now,
            updated_at=now,
        )

    def build_summary(self, item: RawItem) -> str:
        """Bounded plain-text summary, preferring the description."""
        text = html_to_text(item.description_html) or html_to_text(item.content_html)
        return truncate_text(text, self.max_summary_length)

    def build_content(self, item: RawItem) -> str:
        """Bounded HTML body, preferring full content over the description."""
        body = (item.content_html or item.description_html or "").strip()
        if len(body) > self.max_content_length:
            body = body[: self.max_content_length]
        return body
