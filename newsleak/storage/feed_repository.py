"""
Feed Repository
===============

Feed registry over a ``RecordStore``: CRUD for feed sources plus the fetch
bookkeeping written by the ingestion orchestrator.
"""

from typing import List, Optional, Dict, Any

from ..database.models import Feed, utc_now, to_iso
from ..utils.logging import get_logger_for_component
from ..utils.exceptions import (
    StoreError,
    ValidationError,
    DuplicateFeedError,
    ErrorCode,
)
from ..utils.validators import URLValidator, ContentValidator
from .record_store import RecordStore

FEEDS_TABLE = "feeds"

# Longest error message kept on a feed row
MAX_ERROR_LENGTH = 500


class FeedRepository:
    """Repository for managing RSS feed sources."""

    UPDATABLE_FIELDS = {
        "url",
        "source",
        "category",
        "description",
        "website_url",
        "enabled",
    }

    def __init__(self, store: RecordStore):
        """Initialize feed repository.

        Args:
            store: Record store backend
        """
        self.store = store
        self.logger = get_logger_for_component("feed_repository")

    def create_feed(self, feed: Feed) -> Feed:
        """Register a new feed.

        Args:
            feed: Feed to create (``id`` is ignored)

        Returns:
            The stored feed with its assigned id

        Raises:
            ValidationError: If URL or source name is invalid
            DuplicateFeedError: If a feed with the same URL already exists
            StoreError: If the store rejects the write
        """
        url = URLValidator.validate_feed_url(feed.url)
        source = ContentValidator.validate_source_name(feed.source)
        category = ContentValidator.validate_category(feed.category)

        existing = self.get_feed_by_url(url)
        if existing:
            raise DuplicateFeedError(url, existing_id=existing.id)

        record = feed.model_copy(
            update={"id": None, "url": url, "source": source, "category": category}
        ).to_record()

        try:
            stored = self.store.insert(FEEDS_TABLE, record)
        except StoreError as e:
            if e.error_code == ErrorCode.STORE_CONSTRAINT:
                raise DuplicateFeedError(url)
            self.logger.error(f"Failed to create feed {url}: {e}")
            raise

        self.logger.info(f"Created feed {stored['id']}: {url}")
        return Feed.from_record(stored)

    def get_feed(self, feed_id: int) -> Optional[Feed]:
        """Get feed by ID."""
        row = self.store.get(FEEDS_TABLE, "id", feed_id)
        return Feed.from_record(row) if row else None

    def get_feed_by_url(self, url: str) -> Optional[Feed]:
        """Get feed by URL (normalized the same way as on creation)."""
        try:
            url = URLValidator.validate_feed_url(url)
        except ValidationError:
            return None

        row = self.store.get(FEEDS_TABLE, "url", url)
        return Feed.from_record(row) if row else None

    def list_feeds(self, enabled_only: bool = False) -> List[Feed]:
        """List feeds in registration order.

        Args:
            enabled_only: If True, only return enabled feeds
        """
        filters = {"enabled": True} if enabled_only else None
        rows = self.store.select(FEEDS_TABLE, filters, order_by="id")
        return [Feed.from_record(row) for row in rows]

    def update_feed(self, feed_id: int, **kwargs) -> bool:
        """Update admin-editable feed fields.

        Returns:
            True if the feed exists and was updated

        Raises:
            ValidationError: If a field value is invalid
            DuplicateFeedError: If the new URL belongs to another feed
        """
        patch = {k: v for k, v in kwargs.items() if k in self.UPDATABLE_FIELDS}
        ignored = set(kwargs) - set(patch)
        if ignored:
            self.logger.warning(f"Ignoring non-editable feed fields: {sorted(ignored)}")

        if not patch:
            return False

        if "url" in patch:
            patch["url"] = URLValidator.validate_feed_url(patch["url"])
            other = self.get_feed_by_url(patch["url"])
            if other and other.id != feed_id:
                raise DuplicateFeedError(patch["url"], existing_id=other.id)
        if "source" in patch:
            patch["source"] = ContentValidator.validate_source_name(patch["source"])
        if "category" in patch:
            patch["category"] = ContentValidator.validate_category(patch["category"])
        if "enabled" in patch:
            patch["enabled"] = bool(patch["enabled"])

        updated = self.store.update(FEEDS_TABLE, {"id": feed_id}, patch)
        if updated:
            self.logger.info(f"Updated feed {feed_id}: {sorted(patch)}")
        else:
            self.logger.warning(f"No feed found with ID {feed_id}")
        return updated > 0

    def set_enabled(self, feed_id: int, enabled: bool) -> bool:
        """Enable or disable polling of a feed."""
        return self.update_feed(feed_id, enabled=enabled)

    def delete_feed(self, feed_id: int) -> bool:
        """Delete a feed. Its articles are kept."""
        deleted = self.store.delete(FEEDS_TABLE, {"id": feed_id})
        if deleted:
            self.logger.info(f"Deleted feed {feed_id}")
        else:
            self.logger.warning(f"No feed found with ID {feed_id}")
        return deleted > 0

    def record_success(self, feed_id: int) -> bool:
        """Reset error bookkeeping after a successful fetch."""
        return self.store.update(
            FEEDS_TABLE,
            {"id": feed_id},
            {
                "consecutive_error_count": 0,
                "last_error": None,
                "last_fetched_at": to_iso(utc_now()),
            },
        ) > 0

    def record_error(self, feed_id: int, message: str) -> bool:
        """Count a failed fetch and keep its message."""
        message = (message or "unknown error")[:MAX_ERROR_LENGTH]
        return self.store.increment(
            FEEDS_TABLE,
            {"id": feed_id},
            "consecutive_error_count",
            {"last_error": message, "last_fetched_at": to_iso(utc_now())},
        ) > 0

    def get_feed_statistics(self) -> Dict[str, Any]:
        """Aggregate registry health figures."""
        feeds = self.list_feeds()
        fetched = [f.last_fetched_at for f in feeds if f.last_fetched_at]
        return {
            "total_feeds": len(feeds),
            "enabled_feeds": sum(1 for f in feeds if f.enabled),
            "feeds_with_errors": sum(1 for f in feeds if f.consecutive_error_count > 0),
            "healthy_feeds": sum(1 for f in feeds if f.is_healthy()),
            "never_fetched": sum(1 for f in feeds if f.last_fetched_at is None),
            "avg_error_count": (
                sum(f.consecutive_error_count for f in feeds) / len(feeds) if feeds else 0.0
            ),
            "last_fetch": to_iso(max(fetched)) if fetched else None,
        }
