"""
Campaign dispatch and delivery tracking.

Structure:
- types: Campaign, CommunicationLog and enums
- tracker: log/stat bookkeeping with conditional transitions
- dispatcher: launch and fan-out to the vendor
- reconciler: delivery receipt ingestion
"""
from app.services.campaigns.types import (
    Campaign,
    CampaignStat,
    CampaignStats,
    CampaignStatus,
    CommunicationLog,
    LogStatus,
)

__all__ = [
    "Campaign",
    "CampaignStat",
    "CampaignStats",
    "CampaignStatus",
    "CommunicationLog",
    "LogStatus",
]
