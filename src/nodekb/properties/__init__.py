"""Property schema views: essentials, nested property search and type hints."""

from nodekb.properties.dependencies import (
    DependencyAnalysis,
    VisibilityImpact,
    analyze_dependencies,
    visibility_impact,
)
from nodekb.properties.filter import (
    Essentials,
    PropertyMatch,
    default_config,
    get_essentials,
    search_properties,
    simplify_property,
)
from nodekb.properties.type_info import describe_properties, type_info

__all__ = [
    "DependencyAnalysis",
    "Essentials",
    "PropertyMatch",
    "VisibilityImpact",
    "analyze_dependencies",
    "default_config",
    "describe_properties",
    "get_essentials",
    "search_properties",
    "simplify_property",
    "type_info",
    "visibility_impact",
]
