"""
Tests for ImageResolver
=======================

Image source precedence, pixel filtering, and the budgeted page scrape.
"""

import pytest

from newsleak.database.models import RawItem
from newsleak.ingestion.image_resolver import (
    ImageResolver,
    absolutize,
    is_tracking_pixel,
    extract_og_image,
    extract_first_image,
)

LINK = "https://news.example.com/story"
OG_HTML = '<meta property="og:image" content="https://cdn.example.com/og.jpg"><p>Body</p>'


def make_item(**kwargs) -> RawItem:
    kwargs.setdefault("title", "Story")
    kwargs.setdefault("link", LINK)
    return RawItem(**kwargs)


class TestHelpers:
    """Test suite for the HTML helpers."""

    def test_absolutize_relative_and_protocol_relative(self):
        assert absolutize("/img/a.jpg", LINK) == "https://news.example.com/img/a.jpg"
        assert absolutize("//cdn.example.com/a.jpg", LINK) == "https://cdn.example.com/a.jpg"
        assert absolutize("data:image/png;base64,AAAA", LINK) is None
        assert absolutize("  ", LINK) is None

    @pytest.mark.parametrize("url, width, height, expected", [
        ("https://cdn.example.com/spacer.gif", None, None, True),
        ("https://track.example.com/pixel.gif", None, None, True),
        ("https://cdn.example.com/photo.jpg", "1", "1", True),
        ("https://cdn.example.com/photo.jpg", "1px", None, True),
        ("https://cdn.example.com/photo.jpg", "640", "480", False),
        ("https://cdn.example.com/photo.jpg", None, None, False),
    ])
    def test_is_tracking_pixel(self, url, width, height, expected):
        assert is_tracking_pixel(url, width, height) is expected

    def test_extract_og_image(self):
        assert extract_og_image(OG_HTML, LINK) == "https://cdn.example.com/og.jpg"
        assert extract_og_image("<p>No meta</p>", LINK) is None

    def test_extract_first_image_skips_pixels(self):
        html = (
            '<img src="https://track.example.com/pixel.gif">'
            '<img src="/beacon.gif" width="1" height="1">'
            '<img src="/photos/lead.jpg">'
        )
        assert extract_first_image(html, LINK) == "https://news.example.com/photos/lead.jpg"


class TestImageResolver:
    """Test suite for ImageResolver precedence and scraping."""

    @pytest.fixture
    def resolver(self):
        return ImageResolver()

    def test_media_content_wins(self, resolver):
        item = make_item(
            media_content=[{"url": "https://cdn.example.com/media.jpg", "medium": "image"}],
            media_thumbnails=[{"url": "https://cdn.example.com/thumb.jpg"}],
            description_html=OG_HTML,
        )
        assert resolver.resolve_from_item(item) == "https://cdn.example.com/media.jpg"

    def test_video_media_content_ignored(self, resolver):
        item = make_item(
            media_content=[{"url": "https://cdn.example.com/clip.mp4", "medium": "video"}],
            media_thumbnails=[{"url": "https://cdn.example.com/thumb.jpg"}],
        )
        assert resolver.resolve_from_item(item) == "https://cdn.example.com/thumb.jpg"

    def test_thumbnail_beats_og_image(self, resolver):
        item = make_item(
            media_thumbnails=[{"url": "https://cdn.example.com/thumb.jpg"}],
            description_html=OG_HTML,
        )
        assert resolver.resolve_from_item(item) == "https://cdn.example.com/thumb.jpg"

    def test_image_enclosure(self, resolver):
        item = make_item(
            enclosures=[
                {"href": "https://cdn.example.com/episode.mp3", "type": "audio/mpeg"},
                {"href": "https://cdn.example.com/cover.png", "type": "image/png"},
            ],
        )
        assert resolver.resolve_from_item(item) == "https://cdn.example.com/cover.png"

    def test_og_image_in_content_before_first_img(self, resolver):
        item = make_item(
            content_html='<img src="https://cdn.example.com/inline.jpg">',
            description_html=OG_HTML,
        )
        assert resolver.resolve_from_item(item) == "https://cdn.example.com/og.jpg"

    def test_first_img_fallback(self, resolver):
        item = make_item(description_html='<p>Text</p><img src="/lead.jpg" width="800">')
        assert resolver.resolve_from_item(item) == "https://news.example.com/lead.jpg"

    def test_no_source_returns_none(self, resolver):
        item = make_item(description_html="<p>Plain text only</p>")
        assert resolver.resolve_from_item(item) is None

    @pytest.mark.asyncio
    async def test_resolve_without_scraping_never_fetches(self, fake_transport):
        resolver = ImageResolver(transport=fake_transport, page_scrape_enabled=False)

        assert await resolver.resolve(make_item()) is None
        assert fake_transport.calls == []

    @pytest.mark.asyncio
    async def test_page_scrape_finds_og_image(self, fake_transport):
        fake_transport.add(LINK, f"<html><head>{OG_HTML}</head></html>")
        resolver = ImageResolver(transport=fake_transport, page_scrape_enabled=True)

        assert await resolver.resolve(make_item()) == "https://cdn.example.com/og.jpg"
        assert resolver.scrapes_left == resolver.page_scrape_budget - 1

    @pytest.mark.asyncio
    async def test_page_scrape_failure_returns_none(self, fake_transport):
        resolver = ImageResolver(transport=fake_transport, page_scrape_enabled=True)

        # Unregistered URL: the fake transport answers 404
        assert await resolver.resolve(make_item()) is None

    @pytest.mark.asyncio
    async def test_page_scrape_without_og_image_returns_none(self, fake_transport):
        fake_transport.add(LINK, "<html><body>No meta</body></html>")
        resolver = ImageResolver(transport=fake_transport, page_scrape_enabled=True)

        assert await resolver.resolve(make_item()) is None

    @pytest.mark.asyncio
    async def test_page_scrape_budget(self, fake_transport):
        other = "https://news.example.com/other"
        fake_transport.add(LINK, OG_HTML)
        fake_transport.add(other, OG_HTML)
        resolver = ImageResolver(
            transport=fake_transport, page_scrape_enabled=True, page_scrape_budget=1
        )

        assert await resolver.resolve(make_item()) is not None
        assert await resolver.resolve(make_item(link=other)) is None
        assert fake_transport.calls == [LINK]

        resolver.reset_budget()
        assert await resolver.resolve(make_item(link=other)) is not None

    @pytest.mark.asyncio
    async def test_item_image_skips_scrape(self, fake_transport):
        resolver = ImageResolver(transport=fake_transport, page_scrape_enabled=True)
        item = make_item(media_thumbnails=[{"url": "https://cdn.example.com/thumb.jpg"}])

        assert await resolver.resolve(item) == "https://cdn.example.com/thumb.jpg"
        assert fake_transport.calls == []
