"""
Tests for ArticleNormalizer
===========================
"""

from datetime import datetime, timezone

import pytest

from newsleak.database.models import Feed, RawItem, article_id_for_link
from newsleak.ingestion.normalizer import ArticleNormalizer, html_to_text
from newsleak.utils.exceptions import ItemError

NOW = datetime(2025, 2, 1, 9, 30, tzinfo=timezone.utc)


@pytest.fixture
def feed():
    return Feed(id=7, url="https://news.example.com/rss", source="Example News", category="Politics")


@pytest.fixture
def normalizer():
    return ArticleNormalizer(max_summary_length=60, max_content_length=1000)


def make_item(**kwargs) -> RawItem:
    kwargs.setdefault("title", "Headline")
    kwargs.setdefault("link", "https://news.example.com/story")
    return RawItem(**kwargs)


class TestArticleNormalizer:
    """Test suite for ArticleNormalizer."""

    def test_normalize_basic_fields(self, normalizer, feed):
        item = make_item(
            description_html="<p>Teaser &amp; more</p>",
            content_html="<p>Full body</p>",
            author="Ada Writer",
            published_at=datetime(2025, 1, 31, 8, 0, tzinfo=timezone.utc),
        )

        article = normalizer.normalize(item, feed, "https://cdn.example.com/a.jpg", "Politics", now=NOW)

        assert article.id == article_id_for_link("https://news.example.com/story")
        assert article.feed_id == 7
        assert article.title == "Headline"
        assert article.summary == "Teaser & more"
        assert article.content == "<p>Full body</p>"
        assert article.image == "https://cdn.example.com/a.jpg"
        assert article.source == "Example News"
        assert article.category == "Politics"
        assert article.author == "Ada Writer"
        assert article.published_at == datetime(2025, 1, 31, 8, 0, tzinfo=timezone.utc)
        assert article.is_published is True
        assert article.created_at == NOW
        assert article.updated_at == NOW

    def test_missing_date_falls_back_to_ingestion_time(self, normalizer, feed):
        item = make_item(published_raw="not-a-date", published_at=None)

        article = normalizer.normalize(item, feed, None, "General", now=NOW)

        assert article.published_at == NOW

    def test_tracking_parameters_removed_from_link(self, normalizer, feed):
        item = make_item(link="https://News.Example.com/story?id=4&utm_source=rss&utm_medium=feed")

        article = normalizer.normalize(item, feed, None, "General", now=NOW)

        assert article.link == "https://news.example.com/story?id=4"
        assert article.id == article_id_for_link("https://news.example.com/story?id=4")

    def test_summary_is_truncated(self, normalizer, feed):
        item = make_item(description_html="<p>" + "word " * 50 + "</p>")

        summary = normalizer.normalize(item, feed, None, "General", now=NOW).summary

        assert len(summary) <= 60
        assert summary.endswith("...")

    def test_summary_falls_back_to_content(self, normalizer, feed):
        item = make_item(content_html="<div>Only <em>content</em></div>")

        article = normalizer.normalize(item, feed, None, "General", now=NOW)

        assert article.summary == "Only content"
        assert article.content == "<div>Only <em>content</em></div>"

    def test_content_falls_back_to_description(self, normalizer, feed):
        item = make_item(description_html="<p>Description body</p>")

        assert normalizer.normalize(item, feed, None, "General", now=NOW).content == "<p>Description body</p>"

    def test_content_is_capped(self, feed):
        normalizer = ArticleNormalizer(max_content_length=500)
        item = make_item(content_html="x" * 2000)

        assert len(normalizer.normalize(item, feed, None, "General", now=NOW).content) == 500

    @pytest.mark.parametrize("link", ["/relative/path", "ftp://files.example.com/a", ""])
    def test_unusable_link_raises_item_error(self, normalizer, feed, link):
        with pytest.raises(ItemError) as exc_info:
            normalizer.normalize(make_item(link=link), feed, None, "General", now=NOW)

        assert exc_info.value.recoverable is True

    def test_blank_title_raises_item_error(self, normalizer, feed):
        with pytest.raises(ItemError):
            normalizer.normalize(make_item(title="   "), feed, None, "General", now=NOW)


class TestHtmlToText:

    @pytest.mark.parametrize("markup, expected", [
        ("", ""),
        ("plain &amp; simple", "plain & simple"),
        ("<p>One</p><p>Two</p>", "One Two"),
        ("<p>Line\n\n  break</p>", "Line break"),
    ])
    def test_html_to_text(self, markup, expected):
        assert html_to_text(markup) == expected
