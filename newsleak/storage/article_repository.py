"""
Article Repository
==================

Article store over a ``RecordStore``. Articles are keyed by canonical link:
re-ingesting a link updates the row in place and never changes its id or
owning feed.
"""

from datetime import timedelta
from typing import List, Optional, Dict

from ..database.models import Article, UpsertOutcome, utc_now, to_iso
from ..utils.logging import get_logger_for_component
from ..utils.exceptions import ValidationError
from ..utils.validators import URLValidator
from .record_store import RecordStore, Contains, Gte

ARTICLES_TABLE = "articles"


class ArticleRepository:
    """Repository for Article writes and reads."""

    # Columns refreshed when an already-stored link is ingested again
    UPDATE_FIELDS = (
        "title",
        "summary",
        "content",
        "image",
        "category",
        "author",
        "source",
        "is_published",
        "updated_at",
    )

    def __init__(self, store: RecordStore):
        """Initialize article repository.

        Args:
            store: Record store backend
        """
        self.store = store
        self.logger = get_logger_for_component("article_repository")

    def upsert(self, article: Article) -> UpsertOutcome:
        """Insert the article or update the row that shares its link.

        ``published_at`` only moves forward; ``id``, ``feed_id`` and
        ``created_at`` are kept from the first write.

        Raises:
            StoreError: If the store rejects the write
        """
        created = self.store.upsert(
            ARTICLES_TABLE,
            article.to_record(),
            conflict_key="link",
            update_fields=self.UPDATE_FIELDS,
            keep_newest=("published_at",),
        )
        outcome = UpsertOutcome.CREATED if created else UpsertOutcome.UPDATED
        self.logger.debug(f"{outcome.value} article {article.id}: {article.link}")
        return outcome

    def get_article(self, article_id: str) -> Optional[Article]:
        """Get article by ID."""
        row = self.store.get(ARTICLES_TABLE, "id", article_id)
        return Article.from_record(row) if row else None

    def find_by_link(self, link: str) -> Optional[Article]:
        """Get article by link; tracking parameters are ignored."""
        try:
            link = URLValidator.canonicalize_article_url(link)
        except ValidationError:
            return None

        row = self.store.get(ARTICLES_TABLE, "link", link)
        return Article.from_record(row) if row else None

    def list_all(self, limit: int = 50) -> List[Article]:
        """Latest published articles across all categories."""
        rows = self.store.select(
            ARTICLES_TABLE,
            {"is_published": True},
            order_by="published_at",
            descending=True,
            limit=limit,
        )
        return [Article.from_record(row) for row in rows]

    def list_by_category(self, category: str, limit: int = 50) -> List[Article]:
        """Latest published articles in one category."""
        rows = self.store.select(
            ARTICLES_TABLE,
            {"category": category, "is_published": True},
            order_by="published_at",
            descending=True,
            limit=limit,
        )
        return [Article.from_record(row) for row in rows]

    def list_recent(self, hours: int = 24, limit: int = 50) -> List[Article]:
        """Articles published within the last ``hours``."""
        since = to_iso(utc_now() - timedelta(hours=hours))
        rows = self.store.select(
            ARTICLES_TABLE,
            {"published_at": Gte(since), "is_published": True},
            order_by="published_at",
            descending=True,
            limit=limit,
        )
        return [Article.from_record(row) for row in rows]

    def search(self, text: str, limit: int = 20) -> List[Article]:
        """Case-insensitive match on title or summary, newest first."""
        text = (text or "").strip()
        if not text:
            return []

        matches: Dict[str, dict] = {}
        for column in ("title", "summary"):
            for row in self.store.select(
                ARTICLES_TABLE,
                {column: Contains(text), "is_published": True},
                order_by="published_at",
                descending=True,
                limit=limit,
            ):
                matches.setdefault(row["id"], row)

        rows = sorted(matches.values(), key=lambda r: r["published_at"], reverse=True)
        return [Article.from_record(row) for row in rows[:limit]]

    def count(self) -> int:
        """Total number of stored articles."""
        return self.store.count(ARTICLES_TABLE)

    def count_by_category(self) -> Dict[str, int]:
        """Number of stored articles per category."""
        return self.store.count_by(ARTICLES_TABLE, "category")

    def delete_article(self, article_id: str) -> bool:
        """Remove an article (manual admin action)."""
        deleted = self.store.delete(ARTICLES_TABLE, {"id": article_id})
        if deleted:
            self.logger.info(f"Deleted article {article_id}")
        return deleted > 0
