"""
Newsleak Storage Layer
======================

Repository pattern implementations over a pluggable record store.

This module provides:
- Record store interface with in-memory and SQLite backends
- Feed repository for the feed registry
- Article repository for upserts and reads
"""

from .record_store import (
    RecordStore,
    InMemoryRecordStore,
    SQLiteRecordStore,
    In,
    Gte,
    Contains,
)
from .article_repository import ArticleRepository
from .feed_repository import FeedRepository

__all__ = [
    "RecordStore",
    "InMemoryRecordStore",
    "SQLiteRecordStore",
    "In",
    "Gte",
    "Contains",
    "ArticleRepository",
    "FeedRepository",
]
