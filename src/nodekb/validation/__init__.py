"""
nodekb — configuration validation

File: src/nodekb/validation/__init__.py

Purpose
- Visibility evaluation, type structure catalog, rule catalog and the
  mode/profile driven configuration validator.
"""

from nodekb.validation.config_validator import (
    PROFILE_POLICIES,
    ConfigValidator,
    ProfilePolicy,
    validate_minimal,
    validate_with_mode,
)
from nodekb.validation.rules import RuleCatalog, default_rule_catalog, load_rule_catalog
from nodekb.validation.type_structures import (
    StructureCategory,
    TypeStructureDescriptor,
    TypeStructureRegistry,
    default_registry,
    get_structure,
    is_complex_type,
    is_expression,
    is_primitive_type,
    known_types,
    load_type_structures,
)
from nodekb.validation.visibility import (
    condition_matches,
    is_visible,
    visibility_reason,
    visible_properties,
)

__all__ = [
    "PROFILE_POLICIES",
    "ConfigValidator",
    "ProfilePolicy",
    "RuleCatalog",
    "StructureCategory",
    "TypeStructureDescriptor",
    "TypeStructureRegistry",
    "condition_matches",
    "default_registry",
    "default_rule_catalog",
    "get_structure",
    "is_complex_type",
    "is_expression",
    "is_primitive_type",
    "is_visible",
    "known_types",
    "load_rule_catalog",
    "load_type_structures",
    "validate_minimal",
    "validate_with_mode",
    "visibility_reason",
    "visible_properties",
]
