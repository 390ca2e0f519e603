"""
Newsleak Database Schema
========================

SQLite schema for the ingestion pipeline:
- feeds: registered RSS/Atom sources and their fetch bookkeeping
- articles: normalized articles, unique by canonical link

Timestamps are stored as ISO-8601 UTC strings so that lexical order matches
chronological order.
"""

import sqlite3
import logging
from pathlib import Path

logger = logging.getLogger(__name__)


class DatabaseSchema:
    """Database schema manager for the Newsleak SQLite database."""

    TABLES = ("feeds", "articles")

    def __init__(self, db_path: str = "data/newsleak.db"):
        """Initialize database schema manager.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def create_tables(self) -> None:
        """Create all database tables and indexes."""
        with sqlite3.connect(self.db_path) as conn:
            conn.execute("PRAGMA foreign_keys = ON")

            self._create_feeds_table(conn)
            self._create_articles_table(conn)
            self._create_indexes(conn)

            conn.commit()
            logger.info("Database schema created successfully")

    def _create_feeds_table(self, conn: sqlite3.Connection) -> None:
        """Create feeds table for RSS/Atom sources."""
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS feeds (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                url TEXT UNIQUE NOT NULL,
                source TEXT NOT NULL,
                category TEXT,
                description TEXT,
                website_url TEXT,
                enabled INTEGER NOT NULL DEFAULT 1,
                last_fetched_at TEXT,
                consecutive_error_count INTEGER NOT NULL DEFAULT 0,
                last_error TEXT,
                created_at TEXT NOT NULL
            )
        """
        )

    def _create_articles_table(self, conn: sqlite3.Connection) -> None:
        """Create articles table keyed by canonical link."""
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS articles (
                id TEXT PRIMARY KEY,
                feed_id INTEGER,
                title TEXT NOT NULL,
                link TEXT UNIQUE NOT NULL,
                summary TEXT NOT NULL DEFAULT '',
                content TEXT NOT NULL DEFAULT '',
                image TEXT,
                source TEXT NOT NULL,
                category TEXT NOT NULL,
                author TEXT,
                published_at TEXT NOT NULL,
                is_published INTEGER NOT NULL DEFAULT 1,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """
        )

    def _create_indexes(self, conn: sqlite3.Connection) -> None:
        """Create indexes for the read paths."""
        indexes = [
            # Feed indexes
            "CREATE INDEX IF NOT EXISTS idx_feeds_enabled ON feeds(enabled)",
            "CREATE INDEX IF NOT EXISTS idx_feeds_error_count ON feeds(consecutive_error_count)",
            # Article indexes
            "CREATE INDEX IF NOT EXISTS idx_articles_published ON articles(published_at)",
            "CREATE INDEX IF NOT EXISTS idx_articles_category_published ON articles(category, published_at)",
            "CREATE INDEX IF NOT EXISTS idx_articles_feed ON articles(feed_id)",
        ]

        for index_sql in indexes:
            conn.execute(index_sql)

    def verify_schema(self) -> bool:
        """Verify all expected tables exist."""
        try:
            with sqlite3.connect(self.db_path) as conn:
                cursor = conn.execute(
                    """
                    SELECT name FROM sqlite_master
                    WHERE type='table' AND name NOT LIKE 'sqlite_%'
                """
                )
                tables = {row[0] for row in cursor.fetchall()}

                missing = set(self.TABLES) - tables
                if missing:
                    logger.error(f"Missing tables: {sorted(missing)}")
                    return False

                logger.info("Database schema verification passed")
                return True

        except sqlite3.Error as e:
            logger.error(f"Schema verification failed: {e}")
            return False


def create_tables(db_path: str = "data/newsleak.db") -> None:
    """Convenience function to create database tables."""
    DatabaseSchema(db_path).create_tables()
