"""
Delivery tracker.

Single place where communication logs and campaign stats change. Every
write is a conditional transition or an atomic increment, so dispatch
tasks and receipts can interleave freely:

- a stat is incremented only by the caller whose transition succeeded
- a log never moves to a lower-ranked status, and FAILED is final
"""
import logging
from datetime import datetime
from typing import Optional

from app.core.exceptions import DatabaseError
from app.core.timezone import utc_now
from app.repositories.base import CampaignRepository, CommunicationLogRepository
from app.services.campaigns.types import (
    Campaign,
    CampaignStat,
    CampaignStatus,
    Channel,
    CommunicationLog,
    LogStatus,
    Priority,
)

logger = logging.getLogger(__name__)

# Stats counted when a log reaches these statuses through a receipt
RECEIPT_STATS = {
    LogStatus.DELIVERED: CampaignStat.DELIVERED,
    LogStatus.OPENED: CampaignStat.OPENED,
    LogStatus.CLICKED: CampaignStat.CLICKED,
}

STAT_INCREMENT_ATTEMPTS = 3

# Statuses a log can be in before the vendor confirmed delivery
NOT_YET_DELIVERED = (LogStatus.PENDING, LogStatus.SENT)


class DeliveryTracker:
    """Applies dispatch outcomes and receipts to logs and campaign stats."""

    def __init__(self, campaigns: CampaignRepository, logs: CommunicationLogRepository):
        self.campaigns = campaigns
        self.logs = logs

    async def open_log(
        self,
        campaign: Campaign,
        customer_id: str,
        message: str,
        vendor_message_id: str,
    ) -> CommunicationLog:
        """Create the PENDING log for one recipient."""
        return await self.logs.create({
            "campaign_id": campaign.id,
            "customer_id": customer_id,
            "message": message,
            "vendor_message_id": vendor_message_id,
            "status": LogStatus.PENDING.value,
            "channel": Channel.EMAIL.value,
            "priority": Priority.MEDIUM.value,
        })

    async def mark_sent(
        self, log: CommunicationLog, at: Optional[datetime] = None
    ) -> Optional[CommunicationLog]:
        """Move the log to SENT while it is still PENDING. Counts nothing."""
        return await self.logs.transition(
            log.vendor_message_id,
            (LogStatus.PENDING,),
            LogStatus.SENT,
            {"sent_at": at or utc_now()},
        )

    async def mark_failed(
        self, log: CommunicationLog, reason: str
    ) -> Optional[CommunicationLog]:
        """Move the log to FAILED while it is still PENDING. Counts nothing."""
        updated = await self.logs.transition(
            log.vendor_message_id,
            (LogStatus.PENDING,),
            LogStatus.FAILED,
            {"failure_reason": reason},
        )
        if updated is None:
            logger.warning(
                f"[DeliveryTracker] {log.vendor_message_id} failed after leaving PENDING"
            )
        return updated

    async def count(self, campaign_id: str, stat: CampaignStat) -> None:
        """
        Atomic +1 on a campaign stat.

        Storage errors are retried up to STAT_INCREMENT_ATTEMPTS times; the
        last one propagates.
        """
        for attempt in range(1, STAT_INCREMENT_ATTEMPTS + 1):
            try:
                await self.campaigns.increment_stat(campaign_id, stat)
                return
            except DatabaseError as e:
                if attempt == STAT_INCREMENT_ATTEMPTS:
                    raise
                logger.warning(
                    f"[DeliveryTracker] Increment of {stat.value} for campaign "
                    f"{campaign_id} failed (attempt {attempt}): {e}"
                )

    async def record_sent(
        self, log: CommunicationLog, at: Optional[datetime] = None
    ) -> None:
        """
        Vendor accepted the message.

        `sent` is counted even when a receipt already moved the log past
        SENT; the log itself is only touched while still PENDING.
        """
        await self.mark_sent(log, at)
        await self.count(log.campaign_id, CampaignStat.SENT)

    async def record_failed(self, log: CommunicationLog, reason: str) -> None:
        """Vendor rejected the message (or the send raised)."""
        await self.mark_failed(log, reason)
        await self.count(log.campaign_id, CampaignStat.FAILED)

    async def apply_receipt(
        self,
        vendor_message_id: str,
        status: LogStatus,
        at: Optional[datetime] = None,
    ) -> Optional[CommunicationLog]:
        """
        Move a log forward to a receipt status.

        A receipt that skips DELIVERED (OPENED/CLICKED straight from SENT)
        still counts the delivery once.

        Args:
            vendor_message_id: Vendor correlation id
            status: DELIVERED, OPENED or CLICKED
            at: Receipt timestamp, stored as deliveredAt

        Returns:
            Updated log, or None when nothing moved (unknown id, duplicate,
            out of order, or FAILED)
        """
        if status not in RECEIPT_STATS:
            raise ValueError(f"not a receipt status: {status}")
        at = at or utc_now()

        updated = await self.logs.transition(
            vendor_message_id,
            NOT_YET_DELIVERED,
            status,
            {"delivered_at": at},
        )
        if updated is not None:
            await self.count(updated.campaign_id, CampaignStat.DELIVERED)
            if status != LogStatus.DELIVERED:
                await self.count(updated.campaign_id, RECEIPT_STATS[status])
            return updated

        if status == LogStatus.DELIVERED:
            return None

        later_sources = tuple(s for s in status.sources() if s not in NOT_YET_DELIVERED)
        updated = await self.logs.transition(vendor_message_id, later_sources, status)
        if updated is not None:
            await self.count(updated.campaign_id, RECEIPT_STATS[status])
        return updated

    async def start_campaign(
        self, campaign_id: str, audience_size: Optional[int] = None
    ) -> Optional[Campaign]:
        """DRAFT -> RUNNING; None if the campaign was not a DRAFT."""
        changes = {"started_at": utc_now()}
        if audience_size is not None:
            changes["audience_size"] = audience_size
        return await self.campaigns.transition(
            campaign_id,
            (CampaignStatus.DRAFT,),
            CampaignStatus.RUNNING,
            changes,
        )

    async def complete_campaign(self, campaign_id: str) -> Optional[Campaign]:
        """RUNNING -> COMPLETED."""
        return await self.campaigns.transition(
            campaign_id,
            (CampaignStatus.RUNNING,),
            CampaignStatus.COMPLETED,
            {"completed_at": utc_now()},
        )
