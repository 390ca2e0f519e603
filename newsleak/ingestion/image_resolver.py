"""
Image Resolution
================

Best-effort representative image for a feed item. Sources are tried in
order and the first usable URL wins:

1. ``media:content``
2. ``media:thumbnail``
3. ``<enclosure>`` with an ``image/*`` type
4. ``og:image`` meta tag embedded in the item HTML (content, then description)
5. first ``<img src>`` in the item HTML, skipping tracking pixels
6. ``og:image`` of the article page itself (optional, budgeted)

No source means no image: ``None`` is returned, never a placeholder.
"""

import asyncio
from typing import Any, Dict, Iterable, Optional
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup

from ..config.settings import ImageSettings
from ..database.models import RawItem
from ..utils.exceptions import ImageResolutionError
from ..utils.logging import get_logger_for_component
from .transport import FetchTransport, PAGE_ACCEPT

OG_IMAGE_KEYS = ("og:image", "og:image:url", "og:image:secure_url")
PIXEL_MARKERS = ("spacer", "pixel.", "1x1")
NON_IMAGE_MEDIA = ("video", "audio")


def absolutize(url: Optional[str], base_url: Optional[str]) -> Optional[str]:
    """Resolve relative and protocol-relative URLs; reject non-http(s)."""
    url = (url or "").strip()
    if not url:
        return None

    if url.startswith("//"):
        scheme = urlparse(base_url or "").scheme or "https"
        url = f"{scheme}:{url}"
    elif not urlparse(url).scheme and base_url:
        url = urljoin(base_url, url)

    if urlparse(url).scheme not in ("http", "https"):
        return None
    return url


def is_tracking_pixel(url: str, width: Any = None, height: Any = None) -> bool:
    """Spacer GIFs and 1x1 beacons are never article images."""
    lowered = url.lower()
    if any(marker in lowered for marker in PIXEL_MARKERS):
        return True
    return _dimension(width) == 1 or _dimension(height) == 1


def _dimension(value: Any) -> Optional[int]:
    if value is None:
        return None
    text = str(value).strip().lower().rstrip("px").strip()
    try:
        return int(float(text))
    except ValueError:
        return None


def extract_og_image(html: str, base_url: Optional[str] = None) -> Optional[str]:
    """``og:image`` meta content from an HTML fragment or page."""
    if not html or "<meta" not in html.lower():
        return None

    soup = BeautifulSoup(html, "html.parser")
    for meta in soup.find_all("meta"):
        key = (meta.get("property") or meta.get("name") or "").strip().lower()
        if key in OG_IMAGE_KEYS:
            url = absolutize(meta.get("content"), base_url)
            if url:
                return url
    return None


def extract_first_image(html: str, base_url: Optional[str] = None) -> Optional[str]:
    """First non-pixel ``<img src>`` in an HTML fragment."""
    if not html or "<img" not in html.lower():
        return None

    soup = BeautifulSoup(html, "html.parser")
    for img in soup.find_all("img"):
        url = absolutize(img.get("src"), base_url)
        if url and not is_tracking_pixel(url, img.get("width"), img.get("height")):
            return url
    return None


class ImageResolver:
    """Ordered image heuristic with an optional page-scrape fallback."""

    def __init__(
        self,
        transport: Optional[FetchTransport] = None,
        page_scrape_enabled: bool = False,
        page_scrape_budget: int = 20,
        page_scrape_concurrency: int = 3,
        page_scrape_timeout: float = 5.0,
    ):
        """Initialize resolver.

        Args:
            transport: Transport used for page scraping
            page_scrape_enabled: Fetch article pages when the item has no image
            page_scrape_budget: Max page fetches between ``reset_budget`` calls
            page_scrape_concurrency: Max simultaneous page fetches
            page_scrape_timeout: Per-page timeout in seconds
        """
        self.transport = transport
        self.page_scrape_enabled = page_scrape_enabled and transport is not None
        self.page_scrape_budget = page_scrape_budget
        self.page_scrape_timeout = page_scrape_timeout
        self._semaphore = asyncio.Semaphore(page_scrape_concurrency)
        self._scrapes_left = page_scrape_budget
        self.logger = get_logger_for_component("image_resolver")

    @classmethod
    def from_settings(
        cls, settings: ImageSettings, transport: Optional[FetchTransport] = None
    ) -> "ImageResolver":
        return cls(
            transport=transport,
            page_scrape_enabled=settings.page_scrape_enabled,
            page_scrape_budget=settings.page_scrape_budget,
            page_scrape_concurrency=settings.page_scrape_concurrency,
            page_scrape_timeout=settings.page_scrape_timeout,
        )

    def reset_budget(self) -> None:
        """Restore the page-scrape budget (called at the start of each run)."""
        self._scrapes_left = self.page_scrape_budget

    @property
    def scrapes_left(self) -> int:
        return self._scrapes_left

    async def resolve(self, item: RawItem) -> Optional[str]:
        """Full chain, including the page scrape when enabled."""
        image = self.resolve_from_item(item)
        if image or not self.page_scrape_enabled:
            return image

        if self._scrapes_left <= 0:
            self.logger.debug(f"Page scrape budget exhausted, no image for {item.link}")
            return None
        self._scrapes_left -= 1

        try:
            return await self.scrape_page(item.link)
        except ImageResolutionError as e:
            self.logger.debug(f"Page scrape gave no image for {item.link}: {e}")
        except Exception as e:
            self.logger.debug(f"Page scrape failed for {item.link}: {e}")
        return None

    def resolve_from_item(self, item: RawItem) -> Optional[str]:
        """Steps 1-5: everything that needs no network access."""
        base = item.link

        image = self._first_media_url(item.media_content, base)
        if image:
            return image

        image = self._first_media_url(item.media_thumbnails, base)
        if image:
            return image

        for enclosure in item.enclosures:
            if str(enclosure.get("type") or "").lower().startswith("image/"):
                image = absolutize(enclosure.get("href") or enclosure.get("url"), base)
                if image:
                    return image

        for html in (item.content_html, item.description_html):
            image = extract_og_image(html, base)
            if image:
                return image

        for html in (item.content_html, item.description_html):
            image = extract_first_image(html, base)
            if image:
                return image

        return None

    async def scrape_page(self, url: str) -> str:
        """``og:image`` of the article page.

        Raises:
            ImageResolutionError: If the page has no usable og:image
            TransportError: If the page cannot be fetched
        """
        async with self._semaphore:
            response = await self.transport.fetch(
                url,
                accept=PAGE_ACCEPT,
                timeout=self.page_scrape_timeout,
                retry=False,
            )

        image = extract_og_image(response.text, url)
        if not image:
            raise ImageResolutionError("Page has no og:image", page_url=url)
        return image

    @staticmethod
    def _first_media_url(media: Iterable[Dict[str, Any]], base: str) -> Optional[str]:
        for entry in media:
            medium = str(entry.get("medium") or entry.get("type") or "").lower()
            if medium.startswith(NON_IMAGE_MEDIA):
                continue
            url = absolutize(entry.get("url"), base)
            if url:
                return url
        return None
