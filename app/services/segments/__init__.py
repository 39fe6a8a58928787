"""
Audience segmentation.

Structure:
- types: rule model, Segment and enums
- compiler: rules -> predicate tree
- evaluator: counts/materializes a predicate against customers
- service: segment CRUD and preview
"""
from app.services.segments.compiler import Predicate, compile_rules
from app.services.segments.types import (
    LogicalOperator,
    Rule,
    RuleField,
    RuleOperator,
    Segment,
    parse_rules,
)

__all__ = [
    "Predicate",
    "compile_rules",
    "LogicalOperator",
    "Rule",
    "RuleField",
    "RuleOperator",
    "Segment",
    "parse_rules",
]
