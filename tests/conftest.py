"""
PyTest Configuration and Fixtures
=================================

Shared fixtures and configuration for Newsleak tests.

- In-memory record store for unit and pipeline tests
- File-backed SQLite store per test (each pooled connection to ``:memory:``
  would see its own empty database)
- Scripted fetch transport and RSS document builder
"""

import os
import sys
from pathlib import Path
from typing import Dict, List, Optional, Union

import pytest

# Add project root to Python path
sys.path.insert(0, str(Path(__file__).parent.parent))

# Set test environment variables before any imports
os.environ["NEWSLEAK_LOGGING__FILE_PATH"] = ""
os.environ["NEWSLEAK_LOGGING__CONSOLE_LOGGING"] = "false"
os.environ["NEWSLEAK_STORAGE__BACKEND"] = "memory"

from newsleak.ingestion.transport import FetchTransport, FetchResponse  # noqa: E402
from newsleak.utils.exceptions import TransportError, ErrorCode  # noqa: E402


# ============================================================================
# Fake transport
# ============================================================================


class FakeTransport(FetchTransport):
    """Scripted ``FetchTransport``: URL -> body bytes or exception."""

    def __init__(self):
        self.responses: Dict[str, Union[bytes, Exception]] = {}
        self.calls: List[str] = []
        self.closed = False

    def add(self, url: str, body: Union[str, bytes, Exception]) -> None:
        if isinstance(body, str):
            body = body.encode("utf-8")
        self.responses[url] = body

    async def fetch(self, url: str, *, accept=None, timeout=None, retry=True):
        self.calls.append(url)
        body = self.responses.get(url)
        if body is None:
            raise TransportError(
                "HTTP 404: Not Found",
                feed_url=url,
                status=404,
                error_code=ErrorCode.FEED_NOT_FOUND,
            )
        if isinstance(body, Exception):
            raise body
        return FetchResponse(url=url, status=200, body=body, content_type="application/rss+xml")

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_transport():
    """Transport that serves registered documents and 404s everything else."""
    return FakeTransport()


# ============================================================================
# Feed documents
# ============================================================================


def build_rss(items: List[Dict[str, Optional[str]]], title: str = "Test Feed",
              link: str = "https://news.example.com/") -> str:
    """Render a minimal RSS 2.0 document.

    Item keys: title, link, pubDate, description (CDATA), content (CDATA),
    thumbnail (media:thumbnail url), author.
    """
    parts = []
    for item in items:
        fields = []
        if item.get("title") is not None:
            fields.append(f"<title>{item['title']}</title>")
        if item.get("link") is not None:
            fields.append(f"<link>{item['link']}</link>")
        if item.get("pubDate") is not None:
            fields.append(f"<pubDate>{item['pubDate']}</pubDate>")
        if item.get("author") is not None:
            fields.append(f"<dc:creator>{item['author']}</dc:creator>")
        if item.get("description") is not None:
            fields.append(f"<description><![CDATA[{item['description']}]]></description>")
        if item.get("content") is not None:
            fields.append(f"<content:encoded><![CDATA[{item['content']}]]></content:encoded>")
        if item.get("thumbnail") is not None:
            fields.append(f'<media:thumbnail url="{item["thumbnail"]}" />')
        parts.append("<item>" + "".join(fields) + "</item>")

    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<rss version="2.0" xmlns:media="http://search.yahoo.com/mrss/" '
        'xmlns:content="http://purl.org/rss/1.0/modules/content/" '
        'xmlns:dc="http://purl.org/dc/elements/1.1/">'
        f"<channel><title>{title}</title><link>{link}</link>"
        "<description>Test channel</description>"
        + "".join(parts)
        + "</channel></rss>"
    )


@pytest.fixture
def rss_builder():
    """``build_rss`` as a fixture."""
    return build_rss


@pytest.fixture
def sample_rss():
    """Five items; the third has no title."""
    return build_rss(
        [
            {"title": "Election results announced", "link": "https://news.example.com/a1",
             "pubDate": "Mon, 06 Jan 2025 10:00:00 GMT", "description": "<p>The vote count is in.</p>"},
            {"title": "Striker signs new deal", "link": "https://news.example.com/a2",
             "pubDate": "Mon, 06 Jan 2025 11:00:00 GMT", "description": "<p>Football news.</p>"},
            {"link": "https://news.example.com/a3",
             "pubDate": "Mon, 06 Jan 2025 12:00:00 GMT", "description": "<p>No headline.</p>"},
            {"title": "Markets rally", "link": "https://news.example.com/a4",
             "pubDate": "Mon, 06 Jan 2025 13:00:00 GMT", "description": "<p>The stock market closed higher.</p>"},
            {"title": "New smartphone launched", "link": "https://news.example.com/a5",
             "pubDate": "Mon, 06 Jan 2025 14:00:00 GMT", "description": "<p>Tech news.</p>"},
        ]
    )


SAMPLE_ATOM = """<?xml version="1.0" encoding="utf-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <title>Atom Example</title>
  <link href="https://atom.example.com/"/>
  <updated>2025-01-06T12:00:00Z</updated>
  <id>urn:uuid:60a76c80-d399-11d9-b93C-0003939e0af6</id>
  <entry>
    <title>Atom entry one</title>
    <link href="https://atom.example.com/posts/1"/>
    <id>urn:uuid:1225c695-cfb8-4ebb-aaaa-80da344efa6a</id>
    <updated>2025-01-06T12:00:00Z</updated>
    <author><name>Jane Reporter</name></author>
    <content type="html">&lt;p&gt;Full &lt;b&gt;body&lt;/b&gt;&lt;/p&gt;</content>
  </entry>
</feed>
"""


@pytest.fixture
def sample_atom():
    return SAMPLE_ATOM


# ============================================================================
# Store and repository fixtures
# ============================================================================


@pytest.fixture
def memory_store():
    """Fresh in-memory record store."""
    from newsleak.storage.record_store import InMemoryRecordStore

    return InMemoryRecordStore()


@pytest.fixture
def sqlite_store(tmp_path):
    """SQLite record store over a temporary database file."""
    from newsleak.database.connection import DatabaseConnection
    from newsleak.database.schema import DatabaseSchema
    from newsleak.storage.record_store import SQLiteRecordStore

    db_path = str(tmp_path / "newsleak_test.db")
    DatabaseSchema(db_path).create_tables()

    connection = DatabaseConnection(db_path, pool_size=2)
    yield SQLiteRecordStore(connection)

    connection.close_all_connections()


@pytest.fixture
def feed_repo(memory_store):
    from newsleak.storage.feed_repository import FeedRepository

    return FeedRepository(memory_store)


@pytest.fixture
def article_repo(memory_store):
    from newsleak.storage.article_repository import ArticleRepository

    return ArticleRepository(memory_store)


@pytest.fixture
def make_feed(feed_repo):
    """Register a feed and return it."""
    from newsleak.database.models import Feed

    def _make(url: str, source: str = "Example News", category: Optional[str] = None, **kwargs):
        return feed_repo.create_feed(Feed(url=url, source=source, category=category, **kwargs))

    return _make


@pytest.fixture
def make_article():
    """Build an Article with sensible defaults."""
    from datetime import datetime, timezone
    from newsleak.database.models import Article, article_id_for_link

    def _make(link: str = "https://news.example.com/story", **overrides):
        data = {
            "id": article_id_for_link(link),
            "feed_id": 1,
            "title": "Story",
            "link": link,
            "summary": "Summary",
            "content": "<p>Body</p>",
            "source": "Example News",
            "category": "General",
            "published_at": datetime(2025, 1, 6, 12, 0, tzinfo=timezone.utc),
        }
        data.update(overrides)
        return Article(**data)

    return _make
