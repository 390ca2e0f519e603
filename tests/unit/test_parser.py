"""
Tests for FeedParser
====================

RSS 2.0 and Atom extraction, item skipping, and date handling.
"""

from datetime import datetime, timezone

import pytest

from newsleak.ingestion.parser import FeedParser, ParsedFeed
from newsleak.utils.exceptions import ParseError, ItemError, ErrorCode


class TestFeedParser:
    """Test suite for FeedParser."""

    @pytest.fixture
    def parser(self):
        return FeedParser()

    def test_parse_rss_items_in_document_order(self, parser, sample_rss):
        parsed = parser.parse(sample_rss, feed_url="https://news.example.com/rss")

        assert isinstance(parsed, ParsedFeed)
        assert parsed.title == "Test Feed"
        assert [item.link for item in parsed.items] == [
            "https://news.example.com/a1",
            "https://news.example.com/a2",
            "https://news.example.com/a4",
            "https://news.example.com/a5",
        ]
        assert parsed.item_count == 4

    def test_untitled_item_is_skipped_with_item_error(self, parser, sample_rss):
        parsed = parser.parse(sample_rss, feed_url="https://news.example.com/rss")

        assert len(parsed.skipped) == 1
        skipped = parsed.skipped[0]
        assert isinstance(skipped, ItemError)
        assert skipped.error_code == ErrorCode.ITEM_MISSING_FIELD
        assert skipped.context["position"] == 3
        assert skipped.context["item_link"] == "https://news.example.com/a3"

    def test_item_without_link_is_skipped(self, parser, rss_builder):
        document = rss_builder([
            {"title": "No link here", "description": "text"},
            {"title": "Linked", "link": "https://news.example.com/ok"},
        ])

        parsed = parser.parse(document)

        assert [item.title for item in parsed.items] == ["Linked"]
        assert parsed.skipped[0].context["item_title"] == "No link here"

    def test_pub_date_parsed_as_utc(self, parser, sample_rss):
        item = parser.parse(sample_rss).items[0]

        assert item.published_raw == "Mon, 06 Jan 2025 10:00:00 GMT"
        assert item.published_at == datetime(2025, 1, 6, 10, 0, tzinfo=timezone.utc)

    def test_unparseable_date_keeps_raw_value(self, parser, rss_builder):
        document = rss_builder([
            {"title": "Odd date", "link": "https://news.example.com/odd", "pubDate": "not-a-date"},
        ])

        item = parser.parse(document).items[0]

        assert item.published_raw == "not-a-date"
        assert item.published_at is None

    def test_description_and_content_extracted(self, parser, rss_builder):
        document = rss_builder([
            {
                "title": "Rich item",
                "link": "https://news.example.com/rich",
                "description": "<p>Short teaser</p>",
                "content": "<p>Full <b>article</b> body</p>",
                "author": "Ada Writer",
            },
        ])

        item = parser.parse(document).items[0]

        assert "Short teaser" in item.description_html
        assert "<b>article</b>" in item.content_html
        assert item.body_html == item.content_html
        assert item.author == "Ada Writer"

    def test_media_thumbnail_extracted(self, parser, rss_builder):
        document = rss_builder([
            {
                "title": "With thumbnail",
                "link": "https://news.example.com/thumb",
                "thumbnail": "https://cdn.example.com/thumb.jpg",
            },
        ])

        item = parser.parse(document).items[0]

        assert item.media_thumbnails[0]["url"] == "https://cdn.example.com/thumb.jpg"

    def test_parse_atom(self, parser, sample_atom):
        parsed = parser.parse(sample_atom, feed_url="https://atom.example.com/feed")

        assert parsed.title == "Atom Example"
        assert len(parsed.items) == 1

        entry = parsed.items[0]
        assert entry.title == "Atom entry one"
        assert entry.link == "https://atom.example.com/posts/1"
        assert entry.author == "Jane Reporter"
        assert "<b>body</b>" in entry.content_html
        assert entry.published_at == datetime(2025, 1, 6, 12, 0, tzinfo=timezone.utc)

    def test_bytes_input(self, parser, sample_rss):
        parsed = parser.parse(sample_rss.encode("utf-8"))
        assert parsed.item_count == 4

    @pytest.mark.parametrize("content", ["", "   ", b""])
    def test_empty_document_raises(self, parser, content):
        with pytest.raises(ParseError):
            parser.parse(content, feed_url="https://news.example.com/rss")

    def test_garbage_document_raises(self, parser):
        with pytest.raises(ParseError) as exc_info:
            parser.parse("<html><body>Service Unavailable", feed_url="https://news.example.com/rss")

        assert exc_info.value.error_code == ErrorCode.FEED_PARSE_ERROR
        assert exc_info.value.feed_url == "https://news.example.com/rss"

    def test_title_whitespace_collapsed(self, parser, rss_builder):
        document = rss_builder([
            {"title": "  Spaced \n   out   title ", "link": "https://news.example.com/spaced"},
        ])

        assert parser.parse(document).items[0].title == "Spaced out title"
