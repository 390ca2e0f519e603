"""
Newsleak Custom Exceptions
==========================

Exception hierarchy for the ingestion pipeline with error codes, context
information, and user-friendly messages. Errors are contained at the
granularity they occur (item, feed) and only store unavailability is fatal
for a whole ingestion run.
"""

from typing import Optional, Dict, Any
from enum import Enum


class ErrorCode(str, Enum):
    """Error codes for categorizing exceptions."""

    # Configuration errors (C001-C099)
    CONFIG_INVALID = "C001"
    CONFIG_MISSING = "C002"

    # Store errors (D001-D099)
    STORE_UNAVAILABLE = "D001"
    STORE_SCHEMA = "D002"
    STORE_CONSTRAINT = "D003"
    STORE_TRANSACTION = "D004"
    STORE_WRITE_REJECTED = "D005"
    STORE_ERROR = "D006"

    # Feed transport errors (F001-F099)
    FEED_INVALID_URL = "F001"
    FEED_FETCH_TIMEOUT = "F002"
    FEED_PARSE_ERROR = "F003"
    FEED_NETWORK_ERROR = "F004"
    FEED_ACCESS_DENIED = "F005"
    FEED_NOT_FOUND = "F006"
    FEED_HTTP_ERROR = "F007"
    FEED_RATE_LIMITED = "F008"

    # Item processing errors (P001-P099)
    ITEM_INVALID = "P001"
    ITEM_MISSING_FIELD = "P002"
    IMAGE_RESOLUTION_FAILED = "P003"

    # Validation errors (V001-V099)
    VALIDATION_REQUIRED_FIELD = "V001"
    VALIDATION_INVALID_FORMAT = "V002"
    VALIDATION_OUT_OF_RANGE = "V003"
    VALIDATION_DUPLICATE = "V004"

    # Resource management errors (R001-R099)
    DUPLICATE_RESOURCE = "R001"
    RESOURCE_NOT_FOUND = "R002"


class NewsleakError(Exception):
    """Base exception for all Newsleak errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[ErrorCode] = None,
        context: Optional[Dict[str, Any]] = None,
        user_message: Optional[str] = None,
        recoverable: bool = False,
    ):
        """Initialize Newsleak error.

        Args:
            message: Technical error message for logging
            error_code: Categorized error code
            context: Additional context information
            user_message: User-friendly error message
            recoverable: Whether the error is recoverable
        """
        super().__init__(message)
        self.error_code = error_code
        self.context = context or {}
        self.user_message = user_message or message
        self.recoverable = recoverable

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code.value if self.error_code else None,
            "error_message": str(self),
            "user_message": self.user_message,
            "context": self.context,
            "recoverable": self.recoverable,
        }

    def __str__(self) -> str:
        """String representation with error code."""
        if self.error_code:
            return f"[{self.error_code.value}] {super().__str__()}"
        return super().__str__()


def _passthrough(kwargs: Dict[str, Any], *consumed: str) -> Dict[str, Any]:
    return {k: v for k, v in kwargs.items() if k not in consumed}


class ConfigurationError(NewsleakError):
    """Configuration-related errors."""

    def __init__(self, message: str, config_key: Optional[str] = None, **kwargs):
        context = kwargs.get("context", {})
        if config_key:
            context["config_key"] = config_key

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.CONFIG_INVALID),
            context=context,
            user_message=kwargs.get("user_message", f"Configuration error: {message}"),
            **_passthrough(kwargs, "context", "error_code", "user_message"),
        )


class StoreError(NewsleakError):
    """Record store errors (rejected reads or writes)."""

    def __init__(
        self,
        message: str,
        table: Optional[str] = None,
        query: Optional[str] = None,
        **kwargs,
    ):
        """Initialize store error.

        Args:
            message: Error message
            table: Table the operation targeted
            query: SQL statement that caused the error, if any
            **kwargs: Additional arguments for NewsleakError
        """
        context = kwargs.get("context", {})
        if table:
            context["table"] = table
        if query:
            context["query"] = query

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.STORE_ERROR),
            context=context,
            user_message=kwargs.get("user_message", "Store operation failed"),
            recoverable=kwargs.get("recoverable", True),
            **_passthrough(
                kwargs, "context", "error_code", "user_message", "recoverable"
            ),
        )


class StoreUnavailableError(StoreError):
    """The record store cannot be reached at all."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("error_code", ErrorCode.STORE_UNAVAILABLE)
        kwargs.setdefault("user_message", "Article store is unavailable")
        kwargs.setdefault("recoverable", False)
        super().__init__(message, **kwargs)


class FeedError(NewsleakError):
    """Feed-level ingestion errors."""

    def __init__(self, message: str, feed_url: Optional[str] = None, **kwargs):
        """Initialize feed error.

        Args:
            message: Error message
            feed_url: Feed URL that caused the error
            **kwargs: Additional arguments for NewsleakError
        """
        context = kwargs.get("context", {})
        if feed_url:
            context["feed_url"] = feed_url

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.FEED_NETWORK_ERROR),
            context=context,
            user_message=kwargs.get(
                "user_message", f"Feed processing failed: {message}"
            ),
            recoverable=kwargs.get("recoverable", True),
            **_passthrough(
                kwargs, "context", "error_code", "user_message", "recoverable"
            ),
        )
        self.feed_url = feed_url


class TransportError(FeedError):
    """DNS, connect, timeout, or non-2xx failures while fetching a feed."""

    def __init__(
        self,
        message: str,
        feed_url: Optional[str] = None,
        status: Optional[int] = None,
        **kwargs,
    ):
        context = kwargs.get("context", {})
        if status is not None:
            context["status"] = status
        kwargs["context"] = context
        super().__init__(message, feed_url=feed_url, **kwargs)
        self.status = status


class ParseError(FeedError):
    """Feed document could not be parsed at all."""

    def __init__(self, message: str, feed_url: Optional[str] = None, **kwargs):
        kwargs.setdefault("error_code", ErrorCode.FEED_PARSE_ERROR)
        super().__init__(message, feed_url=feed_url, **kwargs)


class ItemError(NewsleakError):
    """A single feed item is malformed and was skipped."""

    def __init__(
        self,
        message: str,
        item_link: Optional[str] = None,
        item_title: Optional[str] = None,
        **kwargs,
    ):
        context = kwargs.get("context", {})
        if item_link:
            context["item_link"] = item_link
        if item_title:
            context["item_title"] = item_title

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.ITEM_INVALID),
            context=context,
            user_message=kwargs.get("user_message", "Feed item skipped"),
            recoverable=kwargs.get("recoverable", True),
            **_passthrough(
                kwargs, "context", "error_code", "user_message", "recoverable"
            ),
        )


class ImageResolutionError(NewsleakError):
    """Image lookup failed. Never surfaced past the image resolver."""

    def __init__(self, message: str, page_url: Optional[str] = None, **kwargs):
        context = kwargs.get("context", {})
        if page_url:
            context["page_url"] = page_url

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.IMAGE_RESOLUTION_FAILED),
            context=context,
            recoverable=True,
            **_passthrough(kwargs, "context", "error_code", "recoverable"),
        )


class ValidationError(NewsleakError):
    """Data validation errors."""

    def __init__(self, message: str, field_name: Optional[str] = None, **kwargs):
        context = kwargs.get("context", {})
        if field_name:
            context["field_name"] = field_name

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.VALIDATION_INVALID_FORMAT),
            context=context,
            user_message=kwargs.get(
                "user_message", f"Invalid {field_name or 'input'}: {message}"
            ),
            recoverable=kwargs.get("recoverable", False),
            **_passthrough(
                kwargs, "context", "error_code", "user_message", "recoverable"
            ),
        )


class DuplicateFeedError(ValidationError):
    """A feed with the same URL is already registered."""

    def __init__(self, url: str, existing_id: Optional[int] = None, **kwargs):
        context = kwargs.get("context", {})
        context["url"] = url
        if existing_id is not None:
            context["existing_feed_id"] = existing_id
        kwargs["context"] = context
        kwargs.setdefault("error_code", ErrorCode.DUPLICATE_RESOURCE)
        kwargs.setdefault("user_message", f"Feed already registered: {url}")
        super().__init__(f"Feed URL already registered: {url}", field_name="url", **kwargs)
        self.existing_id = existing_id


# Exception handling utilities


def handle_exception(
    exception: Exception,
    logger,
    operation: str,
    context: Optional[Dict[str, Any]] = None,
) -> NewsleakError:
    """Convert generic exceptions to Newsleak exceptions with proper logging.

    Args:
        exception: Original exception
        logger: Logger instance for error logging
        operation: Operation that was being performed
        context: Additional context information

    Returns:
        Newsleak exception with proper categorization
    """
    context = context or {}
    context["operation"] = operation
    context["original_exception_type"] = type(exception).__name__

    if isinstance(exception, NewsleakError):
        logger.error(f"Operation '{operation}' failed", extra=exception.to_dict())
        return exception

    elif isinstance(exception, (ConnectionError, TimeoutError)):
        error = TransportError(
            message=f"Network error during {operation}: {str(exception)}",
            error_code=ErrorCode.FEED_NETWORK_ERROR,
            context=context,
            user_message="Network connection failed",
        )

    elif isinstance(exception, FileNotFoundError):
        error = ConfigurationError(
            message=f"Required file not found during {operation}: {str(exception)}",
            error_code=ErrorCode.CONFIG_MISSING,
            context=context,
            user_message="Configuration file missing",
        )

    else:
        error = NewsleakError(
            message=f"Unexpected error during {operation}: {str(exception)}",
            context=context,
            user_message="An unexpected error occurred",
            recoverable=True,
        )

    logger.error(f"Operation '{operation}' failed", extra=error.to_dict())
    return error


def is_retryable_error(exception: NewsleakError) -> bool:
    """Check if an error is worth retrying within the same run.

    Args:
        exception: Newsleak exception to check

    Returns:
        True if the error is potentially transient
    """
    if not exception.recoverable:
        return False

    retryable_codes = {
        ErrorCode.FEED_NETWORK_ERROR,
        ErrorCode.FEED_FETCH_TIMEOUT,
        ErrorCode.FEED_RATE_LIMITED,
    }

    if exception.error_code == ErrorCode.FEED_HTTP_ERROR:
        status = getattr(exception, "status", None)
        return status is not None and status >= 500

    return exception.error_code in retryable_codes


def get_user_friendly_message(exception: Exception) -> str:
    """Get user-friendly error message for any exception."""
    if isinstance(exception, NewsleakError):
        return exception.user_message

    return "An unexpected error occurred. Please try again later."
