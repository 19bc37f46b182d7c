"""
Triage Domain Layer
===================

Domain layer for complaint classification.

Contains:
- Entities: ClassificationResult
- Value Objects: ClassificationPromptBuilder, DEPARTMENT_MAPPINGS
- Parsing rules: parse_classification

This layer is framework-agnostic and contains pure business logic.
"""

from dcms.triage.domain.entities import (
    DEPARTMENT_MAPPINGS,
    ClassificationPromptBuilder,
    ClassificationResult,
    extract_json,
    parse_classification,
)

__all__ = [
    "DEPARTMENT_MAPPINGS",
    "ClassificationPromptBuilder",
    "ClassificationResult",
    "extract_json",
    "parse_classification",
]
