"""
Audience rule compiler.

Turns an ordered rule list into a Predicate tree. A predicate can be
evaluated in-process against a customer row (memory backend) or rendered
onto a Supabase/PostgREST query (chained filters for AND, an `or=(...)`
filter string for OR).

Combination is deliberately flat: the first rule's logicalOperator decides
for the whole list. Operators on later rules are ignored, and a warning is
logged when they disagree with the first.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, List, Optional, Sequence, Tuple

from app.core.timezone import parse_datetime, to_utc, utc_now
from app.services.segments.types import (
    TIER_RANGES,
    CustomerTier,
    LogicalOperator,
    Rule,
    RuleField,
    RuleOperator,
    parse_rules,
)

logger = logging.getLogger(__name__)

# Rule field -> customer row attribute (dotted path for nested JSON)
FIELD_ATTRIBUTES = {
    RuleField.TOTAL_SPENT: "total_spent",
    RuleField.VISIT_COUNT: "visit_count",
    RuleField.CITY: "location.city",
}

OPERATOR_FILTERS = {
    RuleOperator.GT: "gt",
    RuleOperator.LT: "lt",
    RuleOperator.GTE: "gte",
    RuleOperator.LTE: "lte",
    RuleOperator.EQ: "eq",
    RuleOperator.NEQ: "neq",
    RuleOperator.IN: "in",
    RuleOperator.NOT_IN: "not_in",
}

# A larger "days since" is an earlier date, so the direction flips
DAYS_SINCE_INVERTED = {
    RuleOperator.GT: "lt",
    RuleOperator.LT: "gt",
    RuleOperator.GTE: "lte",
    RuleOperator.LTE: "gte",
}

# Characters with meaning inside a PostgREST logic tree
_RESERVED_CHARS = set(',()":')


def _column(attribute: str) -> str:
    """Dotted attribute -> PostgREST column (JSON paths use ->>)."""
    if "." in attribute:
        root, key = attribute.split(".", 1)
        return f"{root}->>{key}"
    return attribute


def _format_value(value: Any) -> str:
    if isinstance(value, datetime):
        return to_utc(value).isoformat().replace("+00:00", "Z")
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _quote(value: Any) -> str:
    text = _format_value(value)
    if any(ch in _RESERVED_CHARS for ch in text) or text != text.strip():
        escaped = text.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'
    return text


def _lookup(row: dict, attribute: str) -> Any:
    current: Any = row
    for part in attribute.split("."):
        if not isinstance(current, dict):
            return None
        current = current.get(part)
    return current


class Predicate(ABC):
    """Compiled audience condition."""

    @abstractmethod
    def matches(self, row: dict) -> bool:
        """Evaluate against one customer row."""

    @abstractmethod
    def apply(self, query):
        """Add this predicate's filters to a PostgREST query builder."""

    @abstractmethod
    def to_filter(self) -> str:
        """Render as a PostgREST logic-tree expression."""


@dataclass(frozen=True)
class MatchAll(Predicate):
    """Empty rule list: every customer matches."""

    def matches(self, row: dict) -> bool:
        return True

    def apply(self, query):
        return query

    def to_filter(self) -> str:
        return "id.not.is.null"


@dataclass(frozen=True)
class Condition(Predicate):
    """
    Single comparison on a customer attribute.

    Missing (None) attributes never match, the same as SQL NULL.
    """

    attribute: str
    op: str
    value: Any

    def matches(self, row: dict) -> bool:
        actual = _lookup(row, self.attribute)
        if actual is None:
            return False

        if self.op in ("in", "not_in"):
            member = actual in self.value
            return member if self.op == "in" else not member

        expected = self.value
        if isinstance(expected, datetime):
            actual = parse_datetime(actual)

        try:
            if self.op == "eq":
                return actual == expected
            if self.op == "neq":
                return actual != expected
            if self.op == "gt":
                return actual > expected
            if self.op == "lt":
                return actual < expected
            if self.op == "gte":
                return actual >= expected
            if self.op == "lte":
                return actual <= expected
        except TypeError:
            # e.g. a string column compared with a number
            return False
        raise ValueError(f"Unknown operator: {self.op}")

    def apply(self, query):
        column = _column(self.attribute)
        if self.op == "in":
            return query.in_(column, [_format_value(v) for v in self.value])
        if self.op == "not_in":
            return query.not_.in_(column, [_format_value(v) for v in self.value])
        return getattr(query, self.op)(column, _format_value(self.value))

    def to_filter(self) -> str:
        column = _column(self.attribute)
        if self.op in ("in", "not_in"):
            values = ",".join(_quote(v) for v in self.value)
            prefix = "not.in" if self.op == "not_in" else "in"
            return f"{column}.{prefix}.({values})"
        return f"{column}.{self.op}.{_quote(self.value)}"


@dataclass(frozen=True)
class AllOf(Predicate):
    """Conjunction."""

    conditions: Tuple[Predicate, ...]

    def matches(self, row: dict) -> bool:
        return all(c.matches(row) for c in self.conditions)

    def apply(self, query):
        for condition in self.conditions:
            query = condition.apply(query)
        return query

    def to_filter(self) -> str:
        return f"and({','.join(c.to_filter() for c in self.conditions)})"


@dataclass(frozen=True)
class AnyOf(Predicate):
    """Disjunction."""

    conditions: Tuple[Predicate, ...]

    def matches(self, row: dict) -> bool:
        return any(c.matches(row) for c in self.conditions)

    def apply(self, query):
        return query.or_(",".join(c.to_filter() for c in self.conditions))

    def to_filter(self) -> str:
        return f"or({','.join(c.to_filter() for c in self.conditions)})"


def _days_since_condition(rule: Rule, now: datetime) -> Predicate:
    cutoff = now - timedelta(days=rule.value)
    if rule.operator == RuleOperator.EQ:
        # the 24h window starting at the cutoff
        return AllOf((
            Condition("last_visit", "gte", cutoff),
            Condition("last_visit", "lt", cutoff + timedelta(days=1)),
        ))
    return Condition("last_visit", DAYS_SINCE_INVERTED[rule.operator], cutoff)


def _tier_condition(rule: Rule) -> Predicate:
    lower, upper = TIER_RANGES[CustomerTier(rule.value)]
    if upper is None:
        return Condition("total_spent", "gt", lower)
    lower_op = "gte" if lower == 0 else "gt"
    return AllOf((
        Condition("total_spent", lower_op, lower),
        Condition("total_spent", "lte", upper),
    ))


def compile_rule(rule: Rule, now: Optional[datetime] = None) -> Predicate:
    """
    Compile one rule into its raw condition.

    Args:
        rule: Validated rule
        now: Reference instant for relative dates (default: utc now)

    Returns:
        Predicate for this rule alone
    """
    if rule.field == RuleField.DAYS_SINCE_LAST_VISIT:
        return _days_since_condition(rule, to_utc(now) if now else utc_now())

    if rule.field == RuleField.CUSTOMER_TIER:
        return _tier_condition(rule)

    value = rule.value
    if rule.operator.is_membership:
        value = tuple(value if isinstance(value, list) else [value])
    return Condition(FIELD_ATTRIBUTES[rule.field], OPERATOR_FILTERS[rule.operator], value)


def compile_rules(rules: Sequence[Any], now: Optional[datetime] = None) -> Predicate:
    """
    Compile an ordered rule list into a single predicate.

    - empty list: match-all
    - one rule: its condition, unwrapped
    - otherwise: OR if the first rule says OR, AND for anything else

    Args:
        rules: Rule models or raw dicts (validated here)
        now: Reference instant for daysSinceLastVisit

    Returns:
        Predicate

    Raises:
        ValidationError: if any rule is malformed
    """
    parsed: List[Rule] = parse_rules(list(rules or []))
    if not parsed:
        return MatchAll()

    now = to_utc(now) if now else utc_now()
    conditions = tuple(compile_rule(rule, now) for rule in parsed)

    if len(conditions) == 1:
        return conditions[0]

    combinator = parsed[0].logical_operator
    ignored = {
        rule.logical_operator.value
        for rule in parsed[1:]
        if rule.logical_operator != combinator
    }
    if ignored:
        logger.warning(
            f"[RuleCompiler] Combining {len(parsed)} rules with {combinator.value} "
            f"(first rule); ignoring per-rule operators {sorted(ignored)}"
        )

    if combinator == LogicalOperator.OR:
        return AnyOf(conditions)
    return AllOf(conditions)
