"""
Newsleak - RSS/Atom News Ingestion
==================================

Pulls articles from registered RSS/Atom feeds, normalizes them, and stores
them deduplicated by canonical link.

Main Components:
- Storage: record store (SQLite or in-memory) with feed and article repositories
- Configuration: environment variables with Pydantic validation
- Ingestion: transport, parser, image resolver, classifier, normalizer
- Orchestration: bounded-concurrency runs with per-feed isolation
"""

__version__ = "1.0.0"
__author__ = "Newsleak Development Team"
__description__ = "RSS/Atom news ingestion pipeline"

# Core imports for easy access
from .config.settings import get_settings
from .database.connection import get_db_manager
from .database.schema import DatabaseSchema
from .utils.logging import configure_application_logging, get_logger_for_component
from .utils.exceptions import NewsleakError

__all__ = [
    "get_settings",
    "get_db_manager",
    "DatabaseSchema",
    "configure_application_logging",
    "get_logger_for_component",
    "NewsleakError",
]
