"""
Types and enums for campaigns and their delivery logs.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple

from pydantic import BaseModel, Field, field_validator

from app.core.config import DispatchConfig
from app.core.timezone import parse_datetime


class CampaignStatus(str, Enum):
    """Lifecycle of a campaign."""

    DRAFT = "DRAFT"
    SCHEDULED = "SCHEDULED"  # reserved for scheduling, never set by dispatch
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"  # reserved, dispatch always ends in COMPLETED


class LogStatus(str, Enum):
    """
    Delivery lifecycle of one message.

    PENDING -> SENT | FAILED -> DELIVERED -> OPENED -> CLICKED
    FAILED is absorbing; no transition ever goes backwards.
    """

    PENDING = "PENDING"
    SENT = "SENT"
    FAILED = "FAILED"
    DELIVERED = "DELIVERED"
    OPENED = "OPENED"
    CLICKED = "CLICKED"

    @property
    def rank(self) -> int:
        return _LOG_STATUS_RANK[self]

    def sources(self) -> Tuple["LogStatus", ...]:
        """Statuses a log may move from to reach this one."""
        return tuple(
            status
            for status in LogStatus
            if status.rank < self.rank and status != LogStatus.FAILED
        )


_LOG_STATUS_RANK = {
    LogStatus.PENDING: 0,
    LogStatus.SENT: 1,
    LogStatus.FAILED: 1,
    LogStatus.DELIVERED: 2,
    LogStatus.OPENED: 3,
    LogStatus.CLICKED: 4,
}


class Channel(str, Enum):
    EMAIL = "EMAIL"
    SMS = "SMS"
    PUSH = "PUSH"


class Priority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class CampaignStat(str, Enum):
    """Aggregate counters; each maps to a stats_<name> column."""

    SENT = "sent"
    FAILED = "failed"
    DELIVERED = "delivered"
    OPENED = "opened"
    CLICKED = "clicked"

    @property
    def column(self) -> str:
        return f"stats_{self.value}"


class CampaignRequest(BaseModel):
    """Input for creating a campaign."""

    name: str = Field(
        min_length=DispatchConfig.NAME_MIN_CHARS,
        max_length=DispatchConfig.NAME_MAX_CHARS,
    )
    segment_id: str = Field(alias="segmentId", min_length=1)
    message: str = Field(
        min_length=DispatchConfig.MESSAGE_MIN_CHARS,
        max_length=DispatchConfig.MESSAGE_MAX_CHARS,
    )

    model_config = {"populate_by_name": True}

    @field_validator("name", mode="before")
    @classmethod
    def _strip_name(cls, value):
        return value.strip() if isinstance(value, str) else value


@dataclass
class CampaignStats:
    sent: int = 0
    failed: int = 0
    delivered: int = 0
    opened: int = 0
    clicked: int = 0

    def to_dict(self) -> dict:
        return {
            "sent": self.sent,
            "failed": self.failed,
            "delivered": self.delivered,
            "opened": self.opened,
            "clicked": self.clicked,
        }


@dataclass
class Campaign:
    """A campaign and its aggregate delivery stats."""

    id: str
    name: str
    segment_id: str
    message: str
    audience_size: int = 0
    status: CampaignStatus = CampaignStatus.DRAFT
    stats: CampaignStats = field(default_factory=CampaignStats)
    scheduled_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @classmethod
    def from_db_row(cls, row: dict) -> "Campaign":
        """Build from a campaigns row."""
        return cls(
            id=str(row["id"]),
            name=row.get("name", ""),
            segment_id=str(row.get("segment_id", "")),
            message=row.get("message", ""),
            audience_size=row.get("audience_size", 0) or 0,
            status=CampaignStatus(row.get("status", CampaignStatus.DRAFT.value)),
            stats=CampaignStats(
                **{stat.value: row.get(stat.column, 0) or 0 for stat in CampaignStat}
            ),
            scheduled_at=parse_datetime(row.get("scheduled_at")),
            created_at=parse_datetime(row.get("created_at")),
            started_at=parse_datetime(row.get("started_at")),
            completed_at=parse_datetime(row.get("completed_at")),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "segmentId": self.segment_id,
            "message": self.message,
            "audienceSize": self.audience_size,
            "status": self.status.value,
            "stats": self.stats.to_dict(),
            "scheduledAt": _iso(self.scheduled_at),
            "createdAt": _iso(self.created_at),
            "startedAt": _iso(self.started_at),
            "completedAt": _iso(self.completed_at),
        }


@dataclass
class CommunicationLog:
    """One send attempt for a (campaign, customer) pair."""

    id: str
    campaign_id: str
    customer_id: str
    message: str
    vendor_message_id: str
    status: LogStatus = LogStatus.PENDING
    channel: Channel = Channel.EMAIL
    priority: Priority = Priority.MEDIUM
    sent_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    failure_reason: Optional[str] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_db_row(cls, row: dict) -> "CommunicationLog":
        return cls(
            id=str(row["id"]),
            campaign_id=str(row["campaign_id"]),
            customer_id=str(row["customer_id"]),
            message=row.get("message", ""),
            vendor_message_id=row["vendor_message_id"],
            status=LogStatus(row.get("status", LogStatus.PENDING.value)),
            channel=Channel(row.get("channel") or Channel.EMAIL.value),
            priority=Priority(row.get("priority") or Priority.MEDIUM.value),
            sent_at=parse_datetime(row.get("sent_at")),
            delivered_at=parse_datetime(row.get("delivered_at")),
            failure_reason=row.get("failure_reason"),
            created_at=parse_datetime(row.get("created_at")),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "campaignId": self.campaign_id,
            "customerId": self.customer_id,
            "message": self.message,
            "vendorMessageId": self.vendor_message_id,
            "status": self.status.value,
            "channel": self.channel.value,
            "priority": self.priority.value,
            "sentAt": _iso(self.sent_at),
            "deliveredAt": _iso(self.delivered_at),
            "failureReason": self.failure_reason,
            "createdAt": _iso(self.created_at),
        }


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None
