"""
Newsleak Ingestion Module
=========================

RSS/Atom ingestion pipeline components.

This module handles:
- Fetching feed documents directly or through a CORS relay
- Loose parsing of RSS 2.0 / Atom / RDF documents
- Image resolution, category classification and article normalization
- Orchestrating runs over all feeds with per-feed isolation
"""

from .transport import FetchTransport, FetchResponse, DirectTransport, RelayTransport, create_transport
from .parser import FeedParser, ParsedFeed
from .image_resolver import ImageResolver
from .classifier import CategoryClassifier, ClassificationMode, DEFAULT_CATEGORY
from .normalizer import ArticleNormalizer
from .orchestrator import IngestionOrchestrator, RunSummary, FeedRunResult, FeedState

__all__ = [
    "FetchTransport",
    "FetchResponse",
    "DirectTransport",
    "RelayTransport",
    "create_transport",
    "FeedParser",
    "ParsedFeed",
    "ImageResolver",
    "CategoryClassifier",
    "ClassificationMode",
    "DEFAULT_CATEGORY",
    "ArticleNormalizer",
    "IngestionOrchestrator",
    "RunSummary",
    "FeedRunResult",
    "FeedState",
]
