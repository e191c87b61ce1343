"""Domain types shared across layers: node schemas, validation results, search results."""

from nodekb.domain.models import (
    DisplayOptions,
    FindingType,
    JSONValue,
    NodeConfig,
    NodeProperty,
    NodeRecord,
    NodeSummary,
    NodeVersion,
    PropertyType,
    SearchCandidate,
    SearchMode,
    SearchOptions,
    SearchResponse,
    SearchSource,
    TemplateExample,
    ValidationFinding,
    ValidationMode,
    ValidationProfile,
    ValidationResult,
)

__all__ = [
    "DisplayOptions",
    "FindingType",
    "JSONValue",
    "NodeConfig",
    "NodeProperty",
    "NodeRecord",
    "NodeSummary",
    "NodeVersion",
    "PropertyType",
    "SearchCandidate",
    "SearchMode",
    "SearchOptions",
    "SearchResponse",
    "SearchSource",
    "TemplateExample",
    "ValidationFinding",
    "ValidationMode",
    "ValidationProfile",
    "ValidationResult",
]
