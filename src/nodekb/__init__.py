"""
nodekb — node knowledge base

File: src/nodekb/__init__.py

Purpose
- Package root. Exposes the in-process API: the configuration validator, the search
  engine, the property filter and the knowledge service facade.

Functional requirements
- Must not have side effects at import time (no config loading, no logging init).
"""

from nodekb.domain.models import (
    SearchMode,
    SearchOptions,
    SearchResponse,
    SearchSource,
    ValidationMode,
    ValidationProfile,
    ValidationResult,
)
from nodekb.persistence.repositories import NodeNotFoundError
from nodekb.properties import get_essentials, search_properties
from nodekb.search import SearchEngine
from nodekb.service import InvalidRequestError, NodeKnowledgeService
from nodekb.validation import ConfigValidator, validate_minimal, validate_with_mode

__version__ = "0.1.0"

__all__ = [
    "ConfigValidator",
    "InvalidRequestError",
    "NodeKnowledgeService",
    "NodeNotFoundError",
    "SearchEngine",
    "SearchMode",
    "SearchOptions",
    "SearchResponse",
    "SearchSource",
    "ValidationMode",
    "ValidationProfile",
    "ValidationResult",
    "__version__",
    "get_essentials",
    "search_properties",
    "validate_minimal",
    "validate_with_mode",
]
