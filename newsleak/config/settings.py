"""
Newsleak Configuration System
=============================

Configuration management with environment variables and Pydantic models.
Environment variables (``NEWSLEAK_`` prefix, ``__`` for nested sections)
override Field defaults.
"""

from pathlib import Path
from typing import List, Dict, Optional
from enum import Enum

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings

from ..utils.exceptions import ConfigurationError, ErrorCode


class LogLevel(str, Enum):
    """Available log levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class StorageBackend(str, Enum):
    """Available article store backends."""
    SQLITE = "sqlite"
    MEMORY = "memory"


class ClassificationModeSetting(str, Enum):
    """How article categories are assigned."""
    TRUST = "trust"   # Use the feed's configured category
    AUTO = "auto"     # Keyword rules over title + content


class ProcessingSettings(BaseModel):
    """Ingestion pipeline configuration."""
    parallel_feeds: int = Field(default=5, ge=1, le=20, description="Concurrent feed fetches")
    max_summary_length: int = Field(default=300, ge=50, le=2000, description="Max plain-text summary length")
    max_content_length: int = Field(default=20000, ge=500, le=200000, description="Max stored HTML content length")
    item_limit_per_feed: int = Field(default=50, ge=1, le=500, description="Items taken from each feed per run")


class ClassificationSettings(BaseModel):
    """Category classification configuration."""
    mode: ClassificationModeSetting = Field(
        default=ClassificationModeSetting.TRUST,
        description="trust the feed category or auto-detect from keywords"
    )
    default_category: str = Field(default="General", min_length=1, description="Category when nothing matches")
    keyword_rules: Optional[Dict[str, List[str]]] = Field(
        default=None,
        description="Ordered category -> keywords table; None uses the built-in rules"
    )

    @field_validator('keyword_rules')
    @classmethod
    def validate_keyword_rules(cls, v):
        """Reject categories with no keywords."""
        if v is None:
            return v
        for category, keywords in v.items():
            if not category.strip():
                raise ValueError("keyword_rules contains an empty category name")
            if not [k for k in keywords if k and k.strip()]:
                raise ValueError(f"keyword_rules['{category}'] has no keywords")
        return v


class ImageSettings(BaseModel):
    """Image resolution configuration."""
    page_scrape_enabled: bool = Field(default=False, description="Fetch article pages for og:image as last resort")
    page_scrape_budget: int = Field(default=20, ge=0, le=1000, description="Max page scrapes per run")
    page_scrape_concurrency: int = Field(default=3, ge=1, le=20, description="Concurrent page scrapes")
    page_scrape_timeout: float = Field(default=5.0, gt=0, le=60, description="Page scrape timeout in seconds")


class TransportSettings(BaseModel):
    """Feed fetch configuration."""
    use_relay: bool = Field(default=False, description="Route requests through a CORS relay")
    relay_url_template: str = Field(
        default="https://api.allorigins.win/raw?url={url}",
        description="Relay URL; {url} is replaced by the URL-encoded target"
    )
    user_agent: str = Field(default="Newsleak RSS Fetcher/1.0 (+https://newsleak.app)", description="User-Agent header")
    request_timeout: float = Field(default=30.0, gt=0, le=300, description="Request timeout in seconds")
    max_attempts: int = Field(default=2, ge=1, le=10, description="Fetch attempts for transient failures")
    base_delay: float = Field(default=1.0, ge=0, le=60, description="Initial retry delay in seconds")
    max_delay: float = Field(default=10.0, ge=0, le=300, description="Retry delay cap in seconds")

    @field_validator('relay_url_template')
    @classmethod
    def validate_relay_template(cls, v):
        """Relay template must carry the target placeholder."""
        if "{url}" not in v:
            raise ValueError("relay_url_template must contain '{url}'")
        if not v.startswith(("http://", "https://")):
            raise ValueError("relay_url_template must be an http(s) URL")
        return v


class StorageSettings(BaseModel):
    """Article store configuration."""
    backend: StorageBackend = Field(default=StorageBackend.SQLITE, description="Record store backend")
    path: str = Field(default="data/newsleak.db", description="SQLite database file path")
    pool_size: int = Field(default=5, ge=1, le=20, description="Connection pool size")


class ScheduleSettings(BaseModel):
    """Periodic refresh configuration."""
    refresh_interval_minutes: int = Field(default=30, ge=1, le=1440, description="Minutes between refresh runs")


class LoggingSettings(BaseModel):
    """Logging configuration."""
    level: LogLevel = Field(default=LogLevel.INFO, description="Global log level")
    file_path: Optional[str] = Field(default="logs/newsleak.log", description="Log file path")
    max_file_size_mb: int = Field(default=10, ge=1, le=100, description="Max log file size in MB")
    backup_count: int = Field(default=5, ge=1, le=20, description="Number of log backup files")
    structured_logging: bool = Field(default=False, description="Use structured JSON logging")
    console_logging: bool = Field(default=True, description="Enable console logging")

    @field_validator('file_path')
    @classmethod
    def blank_path_disables_file(cls, v):
        if v is not None and not v.strip():
            return None
        return v


class NewsleakSettings(BaseSettings):
    """Main application settings."""

    processing: ProcessingSettings = Field(default_factory=ProcessingSettings)
    classification: ClassificationSettings = Field(default_factory=ClassificationSettings)
    images: ImageSettings = Field(default_factory=ImageSettings)
    transport: TransportSettings = Field(default_factory=TransportSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    schedule: ScheduleSettings = Field(default_factory=ScheduleSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    # Application metadata
    app_name: str = Field(default="Newsleak", description="Application name")
    version: str = Field(default="1.0.0", description="Application version")
    debug: bool = Field(default=False, description="Enable debug mode")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "env_nested_delimiter": "__",
        "env_prefix": "NEWSLEAK_",
        "extra": "ignore",
    }

    def validate_configuration(self) -> None:
        """Validate complete configuration."""
        errors = []

        if self.storage.backend == StorageBackend.SQLITE:
            try:
                db_path = Path(self.storage.path)
                db_path.parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                errors.append(f"Invalid database path: {e}")

        if self.logging.file_path:
            try:
                log_path = Path(self.logging.file_path)
                log_path.parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                errors.append(f"Invalid log file path: {e}")

        if self.transport.base_delay > self.transport.max_delay:
            errors.append("transport.base_delay cannot exceed transport.max_delay")

        if errors:
            raise ConfigurationError(
                f"Configuration validation failed: {'; '.join(errors)}",
                error_code=ErrorCode.CONFIG_INVALID
            )

    def get_effective_log_level(self) -> str:
        """Get effective log level considering debug mode."""
        if self.debug:
            return "DEBUG"
        return self.logging.level.value


def load_settings() -> NewsleakSettings:
    """Load settings from environment variables and defaults.

    Returns:
        Loaded and validated settings

    Raises:
        ConfigurationError: If configuration is invalid
    """
    from dotenv import load_dotenv
    load_dotenv()

    try:
        settings = NewsleakSettings()
        settings.validate_configuration()
        return settings

    except ConfigurationError:
        raise
    except Exception as e:
        raise ConfigurationError(
            f"Failed to initialize settings: {e}",
            error_code=ErrorCode.CONFIG_INVALID
        )


# Global settings instance
_settings: Optional[NewsleakSettings] = None


def get_settings(reload: bool = False) -> NewsleakSettings:
    """Get global settings instance (singleton pattern).

    Args:
        reload: Force reload of settings

    Returns:
        Global settings instance
    """
    global _settings

    if _settings is None or reload:
        _settings = load_settings()

    return _settings
