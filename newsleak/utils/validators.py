"""
Newsleak Input Validators
=========================

Validation and normalization utilities for feed URLs, article links, and
article text fields.
"""

import re
from urllib.parse import urlparse, urlunparse, parse_qsl, urlencode
from typing import Optional

from .exceptions import ValidationError, ErrorCode


class URLValidator:
    """URL validation and sanitization utilities."""

    ALLOWED_SCHEMES = {"http", "https"}

    RSS_PATTERNS = [
        r"\.rss$", r"\.xml$", r"\.atom$",
        r"/rss/?$", r"/feed/?$", r"/feeds/?$",
        r"/atom/?$", r"/rss\.xml$", r"/feed\.xml$",
    ]

    # Query parameters that never change the article being addressed
    TRACKING_PARAMS = {
        "utm_source", "utm_medium", "utm_campaign", "utm_term", "utm_content",
        "utm_id", "fbclid", "gclid", "dclid", "mc_cid", "mc_eid", "_ga", "_gl",
    }

    @classmethod
    def validate_feed_url(cls, url: str) -> str:
        """Validate and normalize an RSS feed URL.

        Args:
            url: URL to validate

        Returns:
            Normalized URL

        Raises:
            ValidationError: If URL is invalid
        """
        if not url or not isinstance(url, str):
            raise ValidationError(
                "URL is required and must be a string",
                error_code=ErrorCode.VALIDATION_REQUIRED_FIELD,
                field_name="url",
            )

        url = url.strip()

        try:
            parsed = urlparse(url)
        except ValueError as e:
            raise ValidationError(
                f"Invalid URL format: {str(e)}",
                error_code=ErrorCode.VALIDATION_INVALID_FORMAT,
                field_name="url",
            )

        if parsed.scheme.lower() not in cls.ALLOWED_SCHEMES:
            raise ValidationError(
                f"URL scheme must be {' or '.join(sorted(cls.ALLOWED_SCHEMES))}",
                error_code=ErrorCode.VALIDATION_INVALID_FORMAT,
                field_name="url",
            )

        if not parsed.netloc:
            raise ValidationError(
                "URL must include a hostname",
                error_code=ErrorCode.VALIDATION_INVALID_FORMAT,
                field_name="url",
            )

        if cls._has_suspicious_patterns(parsed.netloc):
            raise ValidationError(
                "URL points at a local or private host",
                error_code=ErrorCode.VALIDATION_INVALID_FORMAT,
                field_name="url",
            )

        return urlunparse(
            parsed._replace(
                scheme=parsed.scheme.lower(),
                netloc=parsed.netloc.lower(),
                path=parsed.path or "/",
                fragment="",
            )
        )

    @classmethod
    def _has_suspicious_patterns(cls, netloc: str) -> bool:
        """Check for hosts a public feed should never live on."""
        suspicious_patterns = [
            r"^localhost",
            r"^127\.0\.0\.1",
            r"^10\.\d+\.\d+\.\d+",
            r"^192\.168\.\d+\.\d+",
            r"^0\.0\.0\.0",
        ]

        host = netloc.lower().rsplit("@", 1)[-1]
        return any(re.search(pattern, host) for pattern in suspicious_patterns)

    @classmethod
    def canonicalize_article_url(cls, url: str) -> str:
        """Return the canonical form of an article link used as dedup key.

        Lower-cases scheme and host, drops tracking parameters, and keeps
        everything else (path, remaining query, fragment) untouched.

        Raises:
            ValidationError: If the link is not an absolute http(s) URL
        """
        if not url or not isinstance(url, str):
            raise ValidationError(
                "Link is required",
                error_code=ErrorCode.VALIDATION_REQUIRED_FIELD,
                field_name="link",
            )

        url = url.strip()
        parsed = urlparse(url)

        if parsed.scheme.lower() not in cls.ALLOWED_SCHEMES or not parsed.netloc:
            raise ValidationError(
                f"Link is not an absolute http(s) URL: {url}",
                error_code=ErrorCode.VALIDATION_INVALID_FORMAT,
                field_name="link",
            )

        query = parsed.query
        if query:
            pairs = parse_qsl(query, keep_blank_values=True)
            kept = [(k, v) for k, v in pairs if k.lower() not in cls.TRACKING_PARAMS]
            # Untouched queries keep their original encoding
            if len(kept) != len(pairs):
                query = urlencode(kept, doseq=True)

        return urlunparse(
            parsed._replace(
                scheme=parsed.scheme.lower(),
                netloc=parsed.netloc.lower(),
                query=query,
            )
        )

    @classmethod
    def is_likely_feed_url(cls, url: str) -> bool:
        """Check if URL is likely an RSS/Atom feed."""
        url_lower = url.lower()
        return any(re.search(pattern, url_lower) for pattern in cls.RSS_PATTERNS)


class ContentValidator:
    """Content validation and sanitization utilities."""

    MAX_TITLE_LENGTH = 1000
    MAX_SOURCE_LENGTH = 255
    MAX_CATEGORY_LENGTH = 64

    @classmethod
    def validate_article_title(cls, title: Optional[str]) -> str:
        """Validate and sanitize article title.

        Raises:
            ValidationError: If title is missing or blank
        """
        if not title or not isinstance(title, str):
            raise ValidationError(
                "Title is required",
                error_code=ErrorCode.VALIDATION_REQUIRED_FIELD,
                field_name="title",
            )

        title = normalize_whitespace(title)

        if not title:
            raise ValidationError(
                "Title cannot be empty",
                error_code=ErrorCode.VALIDATION_REQUIRED_FIELD,
                field_name="title",
            )

        if len(title) > cls.MAX_TITLE_LENGTH:
            title = title[: cls.MAX_TITLE_LENGTH].rstrip()

        return title

    @classmethod
    def validate_source_name(cls, source: Optional[str]) -> str:
        """Validate a feed display name."""
        source = normalize_whitespace(source or "")
        if not source:
            raise ValidationError(
                "Source name is required",
                error_code=ErrorCode.VALIDATION_REQUIRED_FIELD,
                field_name="source",
            )
        if len(source) > cls.MAX_SOURCE_LENGTH:
            raise ValidationError(
                f"Source name cannot exceed {cls.MAX_SOURCE_LENGTH} characters",
                error_code=ErrorCode.VALIDATION_OUT_OF_RANGE,
                field_name="source",
            )
        return source

    @classmethod
    def validate_category(cls, category: Optional[str]) -> Optional[str]:
        """Normalize a category label; blank becomes None."""
        category = normalize_whitespace(category or "")
        if not category:
            return None
        if len(category) > cls.MAX_CATEGORY_LENGTH:
            raise ValidationError(
                f"Category cannot exceed {cls.MAX_CATEGORY_LENGTH} characters",
                error_code=ErrorCode.VALIDATION_OUT_OF_RANGE,
                field_name="category",
            )
        return category


def normalize_whitespace(text: str) -> str:
    """Collapse runs of whitespace and strip control characters."""
    text = re.sub(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]", "", text)
    return re.sub(r"\s+", " ", text).strip()


def truncate_text(text: str, max_length: int, suffix: str = "...") -> str:
    """Truncate text at a word boundary when possible."""
    if len(text) <= max_length:
        return text

    cut = text[: max_length - len(suffix)]
    boundary = cut.rfind(" ")
    if boundary > max_length // 2:
        cut = cut[:boundary]
    return cut.rstrip() + suffix
