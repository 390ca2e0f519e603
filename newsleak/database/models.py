"""
Newsleak Data Models
====================

Pydantic models for persisted records (feeds, articles) and dataclasses for
pipeline-internal values. Persisted models convert to and from plain store
records, with timestamps serialized as ISO-8601 UTC strings.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional, Dict, Any

from pydantic import BaseModel, Field, field_validator


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_iso(value: Optional[datetime]) -> Optional[str]:
    """Serialize a datetime in the fixed-width form used by the store."""
    if value is None:
        return None
    return ensure_utc(value).isoformat(timespec="microseconds")


def from_iso(value: Any) -> Optional[datetime]:
    """Parse a stored timestamp back into an aware UTC datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    return ensure_utc(datetime.fromisoformat(str(value).replace("Z", "+00:00")))


def article_id_for_link(link: str) -> str:
    """Deterministic article id for a canonical link."""
    return str(uuid.uuid5(uuid.NAMESPACE_URL, link))


class UpsertOutcome(str, Enum):
    """Result of writing an article to the store."""
    CREATED = "created"
    UPDATED = "updated"


class Feed(BaseModel):
    """Registered RSS/Atom feed source."""
    id: Optional[int] = Field(default=None, description="Database primary key")
    url: str = Field(..., min_length=1, description="RSS feed URL")
    source: str = Field(..., min_length=1, max_length=255, description="Display name of the publisher")
    category: Optional[str] = Field(default=None, max_length=64, description="Configured feed category")
    description: Optional[str] = Field(default=None, max_length=1000, description="Feed description")
    website_url: Optional[str] = Field(default=None, description="Publisher homepage")
    enabled: bool = Field(default=True, description="Whether the feed is polled")
    last_fetched_at: Optional[datetime] = Field(default=None, description="Last fetch attempt")
    consecutive_error_count: int = Field(default=0, ge=0, description="Consecutive failed fetches")
    last_error: Optional[str] = Field(default=None, description="Last fetch error message")
    created_at: datetime = Field(default_factory=utc_now)

    def is_healthy(self) -> bool:
        """Check if feed is considered healthy."""
        return self.enabled and self.consecutive_error_count < 5

    def to_record(self) -> Dict[str, Any]:
        """Convert to a store record."""
        record = {
            "url": self.url,
            "source": self.source,
            "category": self.category,
            "description": self.description,
            "website_url": self.website_url,
            "enabled": self.enabled,
            "last_fetched_at": to_iso(self.last_fetched_at),
            "consecutive_error_count": self.consecutive_error_count,
            "last_error": self.last_error,
            "created_at": to_iso(self.created_at),
        }
        if self.id is not None:
            record["id"] = self.id
        return record

    @classmethod
    def from_record(cls, row: Dict[str, Any]) -> "Feed":
        """Create Feed from a store record."""
        data = dict(row)
        data["enabled"] = bool(data.get("enabled", True))
        data["last_fetched_at"] = from_iso(data.get("last_fetched_at"))
        data["created_at"] = from_iso(data.get("created_at")) or utc_now()
        return cls(**data)

    def __str__(self) -> str:
        return f"Feed({self.source}:{self.url})"


class Article(BaseModel):
    """Normalized article keyed by its canonical link."""
    id: str = Field(..., description="UUIDv5 of the canonical link")
    feed_id: Optional[int] = Field(default=None, description="Feed that first ingested the link")
    title: str = Field(..., min_length=1, max_length=1000, description="Article title")
    link: str = Field(..., min_length=1, description="Canonical article URL")
    summary: str = Field(default="", description="Plain-text summary")
    content: str = Field(default="", description="Article HTML")
    image: Optional[str] = Field(default=None, description="Representative image URL")
    source: str = Field(..., min_length=1, description="Publisher display name")
    category: str = Field(..., min_length=1, description="Assigned category")
    author: Optional[str] = Field(default=None, description="Article author")
    published_at: datetime = Field(..., description="Publication time (UTC)")
    is_published: bool = Field(default=True, description="Visible to readers")
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @field_validator('published_at', 'created_at', 'updated_at')
    @classmethod
    def normalize_timezone(cls, v):
        """Store every timestamp as UTC."""
        return ensure_utc(v)

    def to_record(self) -> Dict[str, Any]:
        """Convert to a store record."""
        return {
            "id": self.id,
            "feed_id": self.feed_id,
            "title": self.title,
            "link": self.link,
            "summary": self.summary,
            "content": self.content,
            "image": self.image,
            "source": self.source,
            "category": self.category,
            "author": self.author,
            "published_at": to_iso(self.published_at),
            "is_published": self.is_published,
            "created_at": to_iso(self.created_at),
            "updated_at": to_iso(self.updated_at),
        }

    @classmethod
    def from_record(cls, row: Dict[str, Any]) -> "Article":
        """Create Article from a store record."""
        data = dict(row)
        data["is_published"] = bool(data.get("is_published", True))
        for key in ("published_at", "created_at", "updated_at"):
            data[key] = from_iso(data.get(key))
        return cls(**data)

    def __str__(self) -> str:
        return f"Article({self.title[:50]})"


@dataclass
class RawItem:
    """A single feed entry as extracted by the parser. Never persisted."""
    title: str
    link: str
    published_raw: Optional[str] = None
    published_at: Optional[datetime] = None
    description_html: str = ""
    content_html: str = ""
    author: Optional[str] = None
    categories: List[str] = field(default_factory=list)
    media_content: List[Dict[str, Any]] = field(default_factory=list)
    media_thumbnails: List[Dict[str, Any]] = field(default_factory=list)
    enclosures: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def body_html(self) -> str:
        """Richest HTML body available for the item."""
        return self.content_html or self.description_html


# Type aliases for store records
FeedDict = Dict[str, Any]
ArticleDict = Dict[str, Any]
