"""
Tests for Record Stores
=======================

Both backends run the same contract tests; backend-specific behavior is
covered at the bottom.
"""

from datetime import datetime, timezone

import pytest

from newsleak.storage.record_store import In, Gte, Contains
from newsleak.utils.exceptions import StoreError, StoreUnavailableError, ErrorCode

ARTICLE_UPDATE_FIELDS = ("title", "summary", "updated_at")


@pytest.fixture(params=["memory_store", "sqlite_store"])
def store(request):
    """Each contract test runs against both backends."""
    return request.getfixturevalue(request.param)


def feed_record(url: str, source: str = "Example", **overrides):
    record = {
        "url": url,
        "source": source,
        "category": None,
        "description": None,
        "website_url": None,
        "enabled": True,
        "last_fetched_at": None,
        "consecutive_error_count": 0,
        "last_error": None,
        "created_at": "2025-01-06T12:00:00.000000+00:00",
    }
    record.update(overrides)
    return record


class TestRecordStoreContract:
    """Behavior shared by every backend."""

    def test_ping(self, store):
        store.ping()

    def test_insert_assigns_id_and_get(self, store):
        first = store.insert("feeds", feed_record("https://a.example.com/rss"))
        second = store.insert("feeds", feed_record("https://b.example.com/rss"))

        assert first["id"] != second["id"]
        row = store.get("feeds", "id", first["id"])
        assert row["url"] == "https://a.example.com/rss"
        assert store.get("feeds", "id", 9999) is None

    def test_unique_violation(self, store):
        store.insert("feeds", feed_record("https://a.example.com/rss"))

        with pytest.raises(StoreError) as exc_info:
            store.insert("feeds", feed_record("https://a.example.com/rss"))

        assert exc_info.value.error_code == ErrorCode.STORE_CONSTRAINT

    def test_upsert_creates_then_updates(self, store, make_article):
        article = make_article(title="First title")

        assert store.upsert(
            "articles", article.to_record(), "link", ARTICLE_UPDATE_FIELDS, ("published_at",)
        ) is True

        changed = make_article(title="Second title", feed_id=99)
        assert store.upsert(
            "articles", changed.to_record(), "link", ARTICLE_UPDATE_FIELDS, ("published_at",)
        ) is False

        rows = store.select("articles")
        assert len(rows) == 1
        assert rows[0]["title"] == "Second title"
        assert rows[0]["feed_id"] == 1

    def test_upsert_keep_newest(self, store, make_article):
        newer = make_article(published_at=datetime(2025, 3, 1, tzinfo=timezone.utc))
        older = make_article(published_at=datetime(2024, 3, 1, tzinfo=timezone.utc))

        store.upsert("articles", newer.to_record(), "link", ARTICLE_UPDATE_FIELDS, ("published_at",))
        store.upsert("articles", older.to_record(), "link", ARTICLE_UPDATE_FIELDS, ("published_at",))
        assert store.select("articles")[0]["published_at"].startswith("2025-03-01")

        newest = make_article(published_at=datetime(2025, 4, 1, tzinfo=timezone.utc))
        store.upsert("articles", newest.to_record(), "link", ARTICLE_UPDATE_FIELDS, ("published_at",))
        assert store.select("articles")[0]["published_at"].startswith("2025-04-01")

    def test_select_filters_and_ordering(self, store):
        for i, category in enumerate(["Politics", "Sports", "Politics", "Business"], start=1):
            store.insert(
                "feeds",
                feed_record(f"https://f{i}.example.com/rss", source=f"Source {i}", category=category),
            )

        politics = store.select("feeds", {"category": "Politics"}, order_by="id")
        assert [row["source"] for row in politics] == ["Source 1", "Source 3"]

        some = store.select("feeds", {"category": In(["Sports", "Business"])}, order_by="id")
        assert [row["source"] for row in some] == ["Source 2", "Source 4"]

        assert store.select("feeds", {"category": In([])}) == []

        newest_first = store.select("feeds", order_by="id", descending=True, limit=2)
        assert [row["source"] for row in newest_first] == ["Source 4", "Source 3"]

        later = store.select("feeds", {"id": Gte(newest_first[1]["id"])})
        assert len(later) == 2

    def test_contains_is_case_insensitive(self, store):
        store.insert("feeds", feed_record("https://a.example.com/rss", source="Daily Herald"))
        store.insert("feeds", feed_record("https://b.example.com/rss", source="Evening Post"))

        rows = store.select("feeds", {"source": Contains("hERald")})
        assert [row["source"] for row in rows] == ["Daily Herald"]

        # LIKE wildcards are matched literally
        assert store.select("feeds", {"source": Contains("%")}) == []

    def test_none_filter_matches_null(self, store):
        store.insert("feeds", feed_record("https://a.example.com/rss", category="Sports"))
        store.insert("feeds", feed_record("https://b.example.com/rss"))

        rows = store.select("feeds", {"category": None})
        assert [row["url"] for row in rows] == ["https://b.example.com/rss"]

    def test_update_and_increment(self, store):
        row = store.insert("feeds", feed_record("https://a.example.com/rss"))

        assert store.update("feeds", {"id": row["id"]}, {"last_error": "boom"}) == 1
        assert store.increment(
            "feeds", {"id": row["id"]}, "consecutive_error_count", {"last_error": "again"}
        ) == 1
        assert store.increment("feeds", {"id": row["id"]}, "consecutive_error_count") == 1

        stored = store.get("feeds", "id", row["id"])
        assert stored["consecutive_error_count"] == 2
        assert stored["last_error"] == "again"

        assert store.update("feeds", {"id": 12345}, {"last_error": "x"}) == 0

    def test_delete_count_and_count_by(self, store):
        for i, category in enumerate(["Politics", "Sports", "Politics"], start=1):
            store.insert("feeds", feed_record(f"https://f{i}.example.com/rss", category=category))

        assert store.count("feeds") == 3
        assert store.count_by("feeds", "category") == {"Politics": 2, "Sports": 1}

        assert store.delete("feeds", {"category": "Politics"}) == 2
        assert store.count("feeds") == 1
        assert store.count("feeds", {"category": "Politics"}) == 0


class TestInMemoryRecordStore:
    """In-memory specifics."""

    def test_unavailable_store_raises(self, memory_store):
        memory_store.set_available(False)

        with pytest.raises(StoreUnavailableError):
            memory_store.ping()
        with pytest.raises(StoreUnavailableError):
            memory_store.select("feeds")

        memory_store.set_available(True)
        memory_store.ping()

    def test_select_returns_copies(self, memory_store):
        memory_store.insert("feeds", feed_record("https://a.example.com/rss"))

        memory_store.select("feeds")[0]["source"] = "Mutated"

        assert memory_store.select("feeds")[0]["source"] == "Example"

    def test_update_rejects_unique_collision(self, memory_store):
        memory_store.insert("feeds", feed_record("https://a.example.com/rss"))
        second = memory_store.insert("feeds", feed_record("https://b.example.com/rss"))

        with pytest.raises(StoreError):
            memory_store.update("feeds", {"id": second["id"]}, {"url": "https://a.example.com/rss"})


class TestSQLiteRecordStore:
    """SQLite specifics."""

    def test_missing_table_is_schema_error(self, sqlite_store):
        with pytest.raises(StoreError) as exc_info:
            sqlite_store.select("missing_table")

        assert exc_info.value.error_code == ErrorCode.STORE_SCHEMA

    def test_invalid_identifier_rejected(self, sqlite_store):
        with pytest.raises(StoreError):
            sqlite_store.select("feeds; DROP TABLE feeds")

    def test_ping_on_fresh_database(self, tmp_path):
        from newsleak.database.connection import DatabaseConnection
        from newsleak.storage.record_store import SQLiteRecordStore

        connection = DatabaseConnection(str(tmp_path / "ok.db"), pool_size=1)
        store = SQLiteRecordStore(connection)
        store.ping()
        connection.close_all_connections()
