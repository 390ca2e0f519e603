"""
Ingestion Orchestrator
======================

Runs Fetch -> Parse -> Image -> Classify -> Normalize -> Upsert for every
enabled feed under a bounded worker pool and aggregates a ``RunSummary``.

Failures are contained where they happen: a bad item is skipped, a bad feed
is marked errored, and only an unreachable store aborts the run.
"""

import asyncio
import inspect
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from ..config.settings import NewsleakSettings
from ..database.models import Article, Feed, RawItem, UpsertOutcome, utc_now, to_iso
from ..storage.article_repository import ArticleRepository
from ..storage.feed_repository import FeedRepository
from ..utils.exceptions import (
    NewsleakError,
    FeedError,
    ItemError,
    StoreError,
    StoreUnavailableError,
    handle_exception,
)
from ..utils.logging import get_logger_for_component, get_ingestion_logger, PerformanceLogger
from .classifier import CategoryClassifier
from .image_resolver import ImageResolver
from .normalizer import ArticleNormalizer
from .parser import FeedParser
from .transport import FetchTransport

ArticleCallback = Callable[[Article], Any]


class FeedState(str, Enum):
    """Per-feed progress within a run."""
    PENDING = "pending"
    FETCHING = "fetching"
    PARSING = "parsing"
    PROCESSING = "processing"
    UPSERTING = "upserting"
    DONE = "done"
    ERRORED = "errored"


@dataclass
class RunLogEntry:
    """One line of the run log."""
    level: str
    message: str
    feed_id: Optional[int] = None
    feed_url: Optional[str] = None
    item_link: Optional[str] = None
    error_code: Optional[str] = None
    timestamp: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "level": self.level,
            "message": self.message,
            "feed_id": self.feed_id,
            "feed_url": self.feed_url,
            "item_link": self.item_link,
            "error_code": self.error_code,
            "timestamp": to_iso(self.timestamp),
        }


@dataclass
class FeedRunResult:
    """Outcome of one feed within a run."""
    feed_id: Optional[int]
    url: str
    source: str
    state: FeedState = FeedState.PENDING
    items_found: int = 0
    items_upserted: int = 0
    items_created: int = 0
    items_skipped: int = 0
    error: Optional[str] = None
    duration_seconds: float = 0.0

    @property
    def failed(self) -> bool:
        return self.state == FeedState.ERRORED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "feed_id": self.feed_id,
            "url": self.url,
            "source": self.source,
            "state": self.state.value,
            "items_found": self.items_found,
            "items_upserted": self.items_upserted,
            "items_created": self.items_created,
            "items_skipped": self.items_skipped,
            "error": self.error,
            "duration_seconds": round(self.duration_seconds, 3),
        }


@dataclass
class RunSummary:
    """Structured result of one ingestion run."""
    run_id: str
    started_at: datetime = field(default_factory=utc_now)
    finished_at: Optional[datetime] = None
    feeds: List[FeedRunResult] = field(default_factory=list)
    log: List[RunLogEntry] = field(default_factory=list)

    @property
    def feeds_processed(self) -> int:
        return len(self.feeds)

    @property
    def feeds_failed(self) -> int:
        return sum(1 for f in self.feeds if f.failed)

    @property
    def items_found(self) -> int:
        return sum(f.items_found for f in self.feeds)

    @property
    def items_upserted(self) -> int:
        return sum(f.items_upserted for f in self.feeds)

    @property
    def items_created(self) -> int:
        return sum(f.items_created for f in self.feeds)

    @property
    def items_skipped(self) -> int:
        return sum(f.items_skipped for f in self.feeds)

    @property
    def duration_seconds(self) -> float:
        end = self.finished_at or utc_now()
        return (end - self.started_at).total_seconds()

    def add_log(self, level: str, message: str, **kwargs) -> RunLogEntry:
        entry = RunLogEntry(level=level, message=message, **kwargs)
        self.log.append(entry)
        return entry

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "started_at": to_iso(self.started_at),
            "finished_at": to_iso(self.finished_at),
            "duration_seconds": round(self.duration_seconds, 3),
            "feeds_processed": self.feeds_processed,
            "feeds_failed": self.feeds_failed,
            "items_found": self.items_found,
            "items_upserted": self.items_upserted,
            "items_created": self.items_created,
            "items_skipped": self.items_skipped,
            "feeds": [f.to_dict() for f in self.feeds],
            "log": [entry.to_dict() for entry in self.log],
        }


class IngestionOrchestrator:
    """Drives one ingestion run over the registered feeds."""

    def __init__(
        self,
        feed_repository: FeedRepository,
        article_repository: ArticleRepository,
        transport: FetchTransport,
        parser: Optional[FeedParser] = None,
        image_resolver: Optional[ImageResolver] = None,
        classifier: Optional[CategoryClassifier] = None,
        normalizer: Optional[ArticleNormalizer] = None,
        parallel_feeds: int = 5,
        item_limit_per_feed: int = 50,
        on_article_created: Optional[ArticleCallback] = None,
    ):
        """Initialize orchestrator.

        Args:
            feed_repository: Feed registry
            article_repository: Article store
            transport: Transport used to fetch feed documents
            parser: Feed parser
            image_resolver: Image heuristic (page scraping off unless configured)
            classifier: Category classifier (trust mode by default)
            normalizer: Article normalizer
            parallel_feeds: Max feeds processed concurrently
            item_limit_per_feed: Items taken from each feed, in document order
            on_article_created: Called once for every newly created article
        """
        self.feeds = feed_repository
        self.articles = article_repository
        self.transport = transport
        self.parser = parser or FeedParser()
        self.image_resolver = image_resolver or ImageResolver()
        self.classifier = classifier or CategoryClassifier()
        self.normalizer = normalizer or ArticleNormalizer()
        self.parallel_feeds = max(1, parallel_feeds)
        self.item_limit_per_feed = item_limit_per_feed
        self.on_article_created = on_article_created
        self.logger = get_logger_for_component("orchestrator")

    @classmethod
    def from_settings(
        cls,
        settings: NewsleakSettings,
        feed_repository: FeedRepository,
        article_repository: ArticleRepository,
        transport: FetchTransport,
        on_article_created: Optional[ArticleCallback] = None,
    ) -> "IngestionOrchestrator":
        return cls(
            feed_repository=feed_repository,
            article_repository=article_repository,
            transport=transport,
            parser=FeedParser(),
            image_resolver=ImageResolver.from_settings(settings.images, transport),
            classifier=CategoryClassifier.from_settings(settings.classification),
            normalizer=ArticleNormalizer.from_settings(settings.processing),
            parallel_feeds=settings.processing.parallel_feeds,
            item_limit_per_feed=settings.processing.item_limit_per_feed,
            on_article_created=on_article_created,
        )

    async def run(self, feeds: Optional[List[Feed]] = None) -> RunSummary:
        """Ingest ``feeds`` (default: every enabled feed).

        Returns:
            RunSummary with one result per feed

        Raises:
            StoreUnavailableError: If the store cannot be reached
            asyncio.CancelledError: If the run is cancelled; pending feed
                tasks are cancelled and awaited first
        """
        summary = RunSummary(run_id=uuid.uuid4().hex[:12])
        logger = get_logger_for_component("orchestrator", run_id=summary.run_id)

        # Fatal precondition: nothing is fetched if the store is down
        self.articles.store.ping()

        if feeds is None:
            feeds = self.feeds.list_feeds(enabled_only=True)

        summary.feeds = [
            FeedRunResult(feed_id=feed.id, url=feed.url, source=feed.source)
            for feed in feeds
        ]
        self.image_resolver.reset_budget()
        semaphore = asyncio.Semaphore(self.parallel_feeds)

        logger.info(f"Starting ingestion run over {len(feeds)} feeds")

        with PerformanceLogger(logger, "ingestion run", feeds=len(feeds)):
            tasks = [
                asyncio.ensure_future(self._run_feed(feed, result, summary, semaphore))
                for feed, result in zip(feeds, summary.feeds)
            ]
            try:
                await asyncio.gather(*tasks)
            except BaseException:
                for task in tasks:
                    task.cancel()
                await asyncio.gather(*tasks, return_exceptions=True)
                summary.finished_at = utc_now()
                logger.warning("Ingestion run aborted; pending feeds cancelled")
                raise

        summary.finished_at = utc_now()
        logger.info(
            f"Run finished: {summary.feeds_processed} feeds, {summary.feeds_failed} failed, "
            f"{summary.items_upserted} articles upserted ({summary.items_created} new)",
            extra={"run_summary": {k: v for k, v in summary.to_dict().items() if k not in ("feeds", "log")}},
        )
        return summary

    async def _run_feed(
        self,
        feed: Feed,
        result: FeedRunResult,
        summary: RunSummary,
        semaphore: asyncio.Semaphore,
    ) -> None:
        async with semaphore:
            logger = get_ingestion_logger(feed.id, feed.url)
            started = utc_now()
            try:
                await self._ingest_feed(feed, result, summary, logger)
            finally:
                result.duration_seconds = (utc_now() - started).total_seconds()

    async def _ingest_feed(self, feed: Feed, result: FeedRunResult, summary: RunSummary, logger) -> None:
        now = utc_now()

        try:
            result.state = FeedState.FETCHING
            response = await self.transport.fetch(feed.url)

            result.state = FeedState.PARSING
            parsed = self.parser.parse(response.body, feed_url=feed.url)
        except FeedError as e:
            self._fail_feed(feed, result, summary, e, logger)
            return
        except StoreUnavailableError:
            raise
        except Exception as e:
            error = handle_exception(e, logger, "ingest_feed", {"feed_url": feed.url})
            self._fail_feed(feed, result, summary, error, logger)
            return

        for warning in parsed.warnings:
            summary.add_log("warning", warning, feed_id=feed.id, feed_url=feed.url)

        result.items_found = len(parsed.items) + len(parsed.skipped)
        for skipped in parsed.skipped:
            self._skip_item(result, summary, feed, skipped, skipped.context.get("item_link"))

        dropped = len(parsed.items) - self.item_limit_per_feed
        if dropped > 0:
            summary.add_log(
                "info",
                f"Item limit {self.item_limit_per_feed} reached; {dropped} items not processed",
                feed_id=feed.id,
                feed_url=feed.url,
            )

        result.state = FeedState.PROCESSING
        for item in parsed.items[: self.item_limit_per_feed]:
            await self._ingest_item(item, feed, result, summary, now, logger)

        result.state = FeedState.DONE
        try:
            self.feeds.record_success(feed.id)
        except StoreUnavailableError:
            raise
        except StoreError as e:
            summary.add_log("error", f"Could not record feed success: {e}", feed_id=feed.id, feed_url=feed.url)

        logger.info(
            f"Feed done: {result.items_upserted}/{result.items_found} upserted, "
            f"{result.items_created} new, {result.items_skipped} skipped"
        )

    async def _ingest_item(
        self,
        item: RawItem,
        feed: Feed,
        result: FeedRunResult,
        summary: RunSummary,
        now: datetime,
        logger,
    ) -> None:
        try:
            image = await self.image_resolver.resolve(item)
            category = self.classifier.classify(item.title, item.body_html, feed.category)
            article = self.normalizer.normalize(item, feed, image, category, now=now)

            result.state = FeedState.UPSERTING
            outcome = self.articles.upsert(article)
        except StoreUnavailableError:
            raise
        except (ItemError, StoreError) as e:
            self._skip_item(result, summary, feed, e, item.link)
            return
        except Exception as e:
            error = handle_exception(e, logger, "ingest_item", {"item_link": item.link})
            self._skip_item(result, summary, feed, error, item.link)
            return
        finally:
            if result.state == FeedState.UPSERTING:
                result.state = FeedState.PROCESSING

        result.items_upserted += 1
        if outcome == UpsertOutcome.CREATED:
            result.items_created += 1
            await self._notify_created(article, summary, feed)

    def _skip_item(
        self,
        result: FeedRunResult,
        summary: RunSummary,
        feed: Feed,
        error: NewsleakError,
        item_link: Optional[str],
    ) -> None:
        result.items_skipped += 1
        summary.add_log(
            "warning",
            f"Item skipped: {error}",
            feed_id=feed.id,
            feed_url=feed.url,
            item_link=item_link,
            error_code=error.error_code.value if error.error_code else None,
        )

    def _fail_feed(
        self,
        feed: Feed,
        result: FeedRunResult,
        summary: RunSummary,
        error: NewsleakError,
        logger,
    ) -> None:
        result.state = FeedState.ERRORED
        result.error = str(error)
        summary.add_log(
            "error",
            f"Feed failed: {error}",
            feed_id=feed.id,
            feed_url=feed.url,
            error_code=error.error_code.value if error.error_code else None,
        )
        logger.warning(f"Feed failed: {error}", extra=error.to_dict())

        try:
            self.feeds.record_error(feed.id, str(error))
        except StoreUnavailableError:
            raise
        except StoreError as e:
            summary.add_log("error", f"Could not record feed error: {e}", feed_id=feed.id, feed_url=feed.url)

    async def _notify_created(self, article: Article, summary: RunSummary, feed: Feed) -> None:
        if self.on_article_created is None:
            return
        try:
            outcome = self.on_article_created(article)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as e:
            self.logger.warning(f"on_article_created failed for {article.link}: {e}")
            summary.add_log(
                "warning",
                f"Notification hook failed: {e}",
                feed_id=feed.id,
                feed_url=feed.url,
                item_link=article.link,
            )
