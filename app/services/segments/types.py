"""
Types and enums for audience segments.

Rules arrive as JSON (dashboard or the rules assistant) and are validated
here before any segment is stored or evaluated.
"""
import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from app.core.config import DispatchConfig
from app.core.exceptions import ValidationError
from app.core.timezone import parse_datetime


class RuleField(str, Enum):
    """Customer attributes a rule can target."""

    TOTAL_SPENT = "totalSpent"
    VISIT_COUNT = "visitCount"
    DAYS_SINCE_LAST_VISIT = "daysSinceLastVisit"
    CUSTOMER_TIER = "customerTier"
    CITY = "location.city"

    @property
    def is_numeric(self) -> bool:
        return self in (
            RuleField.TOTAL_SPENT,
            RuleField.VISIT_COUNT,
            RuleField.DAYS_SINCE_LAST_VISIT,
        )


class RuleOperator(str, Enum):
    """Comparison operators."""

    GT = ">"
    LT = "<"
    GTE = ">="
    LTE = "<="
    EQ = "="
    NEQ = "!="
    IN = "in"
    NOT_IN = "not_in"

    @property
    def is_membership(self) -> bool:
        return self in (RuleOperator.IN, RuleOperator.NOT_IN)


class LogicalOperator(str, Enum):
    AND = "AND"
    OR = "OR"


class CustomerTier(str, Enum):
    """Tiers derived from totalSpent."""

    BRONZE = "BRONZE"
    SILVER = "SILVER"
    GOLD = "GOLD"
    PREMIUM = "PREMIUM"


# (lower, upper] except BRONZE, which includes 0. None = unbounded.
TIER_RANGES = {
    CustomerTier.BRONZE: (0, 5000),
    CustomerTier.SILVER: (5000, 20000),
    CustomerTier.GOLD: (20000, 50000),
    CustomerTier.PREMIUM: (50000, None),
}

# daysSinceLastVisit only supports ordering and equality
DAYS_SINCE_OPERATORS = (
    RuleOperator.GT,
    RuleOperator.LT,
    RuleOperator.GTE,
    RuleOperator.LTE,
    RuleOperator.EQ,
)


def _to_number(value: Any) -> Union[int, float]:
    if isinstance(value, bool):
        raise ValueError("boolean is not a number")
    if isinstance(value, str):
        parsed = float(value.strip())
        value = int(parsed) if parsed.is_integer() else parsed
    if not isinstance(value, (int, float)):
        raise ValueError(f"expected a number, got {type(value).__name__}")
    if not math.isfinite(value):
        raise ValueError(f"expected a finite number, got {value}")
    return value


class Rule(BaseModel):
    """
    One audience rule.

    Only the first rule's logicalOperator decides how the list is combined;
    see compile_rules().
    """

    model_config = ConfigDict(populate_by_name=True, use_enum_values=False)

    field: RuleField
    operator: RuleOperator
    value: Union[float, int, str, List[Union[float, int, str]]]
    logical_operator: LogicalOperator = Field(
        default=LogicalOperator.AND, alias="logicalOperator"
    )

    @field_validator("logical_operator", mode="before")
    @classmethod
    def _upper_logical_operator(cls, value):
        if isinstance(value, str):
            return value.strip().upper()
        return value

    @model_validator(mode="after")
    def _check_value(self) -> "Rule":
        if self.operator.is_membership:
            values = self.value if isinstance(self.value, list) else [self.value]
            if not values:
                raise ValueError(f"'{self.operator.value}' needs at least one value")
        elif isinstance(self.value, list):
            raise ValueError(f"'{self.operator.value}' does not accept a list")
        else:
            values = [self.value]

        if self.field == RuleField.CUSTOMER_TIER:
            if self.operator != RuleOperator.EQ:
                raise ValueError("customerTier only supports '='")
            label = str(self.value).strip().upper()
            if label not in CustomerTier.__members__:
                raise ValueError(f"unknown customer tier: {self.value}")
            self.value = label
            return self

        if self.field == RuleField.DAYS_SINCE_LAST_VISIT:
            if self.operator not in DAYS_SINCE_OPERATORS:
                raise ValueError(
                    f"daysSinceLastVisit does not support '{self.operator.value}'"
                )

        if self.field.is_numeric:
            numbers = [_to_number(v) for v in values]
            if self.field == RuleField.DAYS_SINCE_LAST_VISIT and not (
                0 <= numbers[0] <= DispatchConfig.DAYS_SINCE_MAX
            ):
                raise ValueError(
                    f"daysSinceLastVisit must be between 0 and {DispatchConfig.DAYS_SINCE_MAX}"
                )
            values = numbers
        else:
            values = [str(v) for v in values]

        self.value = values if self.operator.is_membership else values[0]
        return self

    def to_dict(self) -> dict:
        """JSON shape used in storage and API responses."""
        return {
            "field": self.field.value,
            "operator": self.operator.value,
            "value": self.value,
            "logicalOperator": self.logical_operator.value,
        }


def parse_rules(raw_rules: List[Any]) -> List[Rule]:
    """
    Validate a raw rule list.

    Raises:
        ValidationError: first invalid rule, with its index
    """
    rules = []
    for index, raw in enumerate(raw_rules or []):
        if isinstance(raw, Rule):
            rules.append(raw)
            continue
        try:
            rules.append(Rule.model_validate(raw))
        except PydanticValidationError as e:
            raise ValidationError(
                "Invalid rule",
                {
                    "index": index,
                    "errors": [err["msg"] for err in e.errors()],
                },
                original_error=e,
            )
    return rules


class SegmentRequest(BaseModel):
    """Input for creating a segment."""

    name: str = Field(
        min_length=DispatchConfig.NAME_MIN_CHARS,
        max_length=DispatchConfig.NAME_MAX_CHARS,
    )
    description: Optional[str] = Field(
        default=None, max_length=DispatchConfig.DESCRIPTION_MAX_CHARS
    )
    rules: List[Rule] = Field(min_length=1)

    @field_validator("name", mode="before")
    @classmethod
    def _strip_name(cls, value):
        return value.strip() if isinstance(value, str) else value


@dataclass
class Segment:
    """Persisted segment with its audience snapshot."""

    id: str
    name: str
    rules: List[Rule] = field(default_factory=list)
    description: Optional[str] = None
    audience_size: int = 0
    last_calculated: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_db_row(cls, row: dict) -> "Segment":
        """Build from a segments row."""
        return cls(
            id=str(row["id"]),
            name=row.get("name", ""),
            rules=parse_rules(row.get("rules") or []),
            description=row.get("description"),
            audience_size=row.get("audience_size", 0) or 0,
            last_calculated=parse_datetime(row.get("last_calculated")),
            created_at=parse_datetime(row.get("created_at")),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "rules": [rule.to_dict() for rule in self.rules],
            "audienceSize": self.audience_size,
            "lastCalculated": self.last_calculated.isoformat() if self.last_calculated else None,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }


def customer_projection(row: dict) -> dict:
    """Fixed projection returned by segment materialization."""
    last_visit = parse_datetime(row.get("last_visit"))
    return {
        "id": str(row["id"]),
        "name": row.get("name") or "",
        "email": row.get("email"),
        "totalSpent": row.get("total_spent") or 0,
        "visitCount": row.get("visit_count") or 0,
        "lastVisit": last_visit.isoformat() if last_visit else None,
    }
