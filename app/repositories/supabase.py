"""
Supabase storage backend.

Conditional transitions are single UPDATE ... WHERE status IN (...) calls,
and stats counters go through the campaign_increment_stat RPC
(see migrations/001_campaign_engine.sql), so concurrent writers never
overwrite each other.
"""
import logging
from typing import Iterable, List, Optional

from app.core.exceptions import DatabaseError
from app.repositories.base import (
    CampaignRepository,
    CommunicationLogRepository,
    CustomerRepository,
    SegmentRepository,
)
from app.services.campaigns.types import (
    Campaign,
    CampaignStat,
    CampaignStatus,
    CommunicationLog,
    LogStatus,
)
from app.services.segments.compiler import Predicate
from app.services.segments.types import Segment

logger = logging.getLogger(__name__)

CUSTOMER_COLUMNS = "id,name,email,total_spent,visit_count,last_visit"

# PostgREST caps rows per request; unbounded reads are paged
PAGE_SIZE = 1000


def _serialize(data: dict) -> dict:
    """Datetimes -> ISO strings for the JSON body."""
    return {
        key: value.isoformat() if hasattr(value, "isoformat") else value
        for key, value in data.items()
    }


class SupabaseCustomerRepository(CustomerRepository):

    async def count_matching(self, predicate: Predicate) -> int:
        try:
            query = self.db.table(self.table_name).select("id", count="exact")
            response = predicate.apply(query).execute()
            return response.count or 0
        except Exception as e:
            logger.error(f"Error counting segment customers: {e}")
            raise DatabaseError("Failed to count customers", original_error=e)

    async def find_matching(
        self, predicate: Predicate, limit: Optional[int] = None
    ) -> List[dict]:
        rows: List[dict] = []
        start = 0
        try:
            while True:
                page_size = PAGE_SIZE if limit is None else min(PAGE_SIZE, limit - len(rows))
                if page_size <= 0:
                    break
                query = self.db.table(self.table_name).select(CUSTOMER_COLUMNS)
                response = (
                    predicate.apply(query)
                    .order("id")
                    .range(start, start + page_size - 1)
                    .execute()
                )
                page = response.data or []
                rows.extend(page)
                if len(page) < page_size:
                    break
                start += page_size
        except Exception as e:
            logger.error(f"Error fetching segment customers: {e}")
            raise DatabaseError("Failed to fetch customers", original_error=e)
        return rows


class SupabaseSegmentRepository(SegmentRepository):

    async def get(self, segment_id: str) -> Optional[Segment]:
        try:
            response = (
                self.db.table(self.table_name).select("*").eq("id", segment_id).execute()
            )
        except Exception as e:
            logger.error(f"Error fetching segment {segment_id}: {e}")
            raise DatabaseError("Failed to fetch segment", original_error=e)
        if not response.data:
            return None
        return Segment.from_db_row(response.data[0])

    async def create(self, data: dict) -> Segment:
        try:
            response = self.db.table(self.table_name).insert(_serialize(data)).execute()
        except Exception as e:
            logger.error(f"Error creating segment: {e}")
            raise DatabaseError("Failed to create segment", original_error=e)
        if not response.data:
            raise DatabaseError("Insert returned no segment")
        return Segment.from_db_row(response.data[0])

    async def list(self, limit: int = 50) -> List[Segment]:
        try:
            response = (
                self.db.table(self.table_name)
                .select("*")
                .order("created_at", desc=True)
                .limit(limit)
                .execute()
            )
        except Exception as e:
            logger.error(f"Error listing segments: {e}")
            raise DatabaseError("Failed to list segments", original_error=e)
        return [Segment.from_db_row(row) for row in (response.data or [])]


class SupabaseCampaignRepository(CampaignRepository):

    async def get(self, campaign_id: str) -> Optional[Campaign]:
        try:
            response = (
                self.db.table(self.table_name).select("*").eq("id", campaign_id).execute()
            )
        except Exception as e:
            logger.error(f"Error fetching campaign {campaign_id}: {e}")
            raise DatabaseError("Failed to fetch campaign", original_error=e)
        if not response.data:
            return None
        return Campaign.from_db_row(response.data[0])

    async def create(self, data: dict) -> Campaign:
        try:
            response = self.db.table(self.table_name).insert(_serialize(data)).execute()
        except Exception as e:
            logger.error(f"Error creating campaign: {e}")
            raise DatabaseError("Failed to create campaign", original_error=e)
        if not response.data:
            raise DatabaseError("Insert returned no campaign")
        return Campaign.from_db_row(response.data[0])

    async def list(self, limit: int = 50) -> List[Campaign]:
        try:
            response = (
                self.db.table(self.table_name)
                .select("*")
                .order("created_at", desc=True)
                .limit(limit)
                .execute()
            )
        except Exception as e:
            logger.error(f"Error listing campaigns: {e}")
            raise DatabaseError("Failed to list campaigns", original_error=e)
        return [Campaign.from_db_row(row) for row in (response.data or [])]

    async def transition(
        self,
        campaign_id: str,
        sources: Iterable[CampaignStatus],
        target: CampaignStatus,
        changes: Optional[dict] = None,
    ) -> Optional[Campaign]:
        payload = _serialize({**(changes or {}), "status": target.value})
        try:
            response = (
                self.db.table(self.table_name)
                .update(payload)
                .eq("id", campaign_id)
                .in_("status", [s.value for s in sources])
                .execute()
            )
        except Exception as e:
            logger.error(f"Error updating status of campaign {campaign_id}: {e}")
            raise DatabaseError("Failed to update campaign status", original_error=e)
        if not response.data:
            return None
        return Campaign.from_db_row(response.data[0])

    async def increment_stat(
        self, campaign_id: str, stat: CampaignStat, amount: int = 1
    ) -> None:
        try:
            self.db.rpc(
                "campaign_increment_stat",
                {
                    "p_campaign_id": campaign_id,
                    "p_stat": stat.value,
                    "p_amount": amount,
                },
            ).execute()
        except Exception as e:
            logger.error(f"Error incrementing {stat.value} for campaign {campaign_id}: {e}")
            raise DatabaseError("Failed to increment campaign stat", original_error=e)


class SupabaseCommunicationLogRepository(CommunicationLogRepository):

    async def create(self, data: dict) -> CommunicationLog:
        try:
            response = self.db.table(self.table_name).insert(_serialize(data)).execute()
        except Exception as e:
            logger.error(f"Error creating communication log: {e}")
            raise DatabaseError("Failed to create communication log", original_error=e)
        if not response.data:
            raise DatabaseError("Insert returned no communication log")
        return CommunicationLog.from_db_row(response.data[0])

    async def get_by_vendor_message_id(
        self, vendor_message_id: str
    ) -> Optional[CommunicationLog]:
        try:
            response = (
                self.db.table(self.table_name)
                .select("*")
                .eq("vendor_message_id", vendor_message_id)
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.error(f"Error fetching log {vendor_message_id}: {e}")
            raise DatabaseError("Failed to fetch communication log", original_error=e)
        if not response.data:
            return None
        return CommunicationLog.from_db_row(response.data[0])

    async def transition(
        self,
        vendor_message_id: str,
        sources: Iterable[LogStatus],
        target: LogStatus,
        changes: Optional[dict] = None,
    ) -> Optional[CommunicationLog]:
        payload = _serialize({**(changes or {}), "status": target.value})
        try:
            response = (
                self.db.table(self.table_name)
                .update(payload)
                .eq("vendor_message_id", vendor_message_id)
                .in_("status", [s.value for s in sources])
                .execute()
            )
        except Exception as e:
            logger.error(f"Error updating log {vendor_message_id}: {e}")
            raise DatabaseError("Failed to update communication log", original_error=e)
        if not response.data:
            return None
        return CommunicationLog.from_db_row(response.data[0])

    async def list_by_campaign(
        self, campaign_id: str, limit: Optional[int] = None
    ) -> List[CommunicationLog]:
        try:
            query = (
                self.db.table(self.table_name)
                .select("*")
                .eq("campaign_id", campaign_id)
                .order("created_at", desc=True)
            )
            if limit is not None:
                query = query.limit(limit)
            response = query.execute()
        except Exception as e:
            logger.error(f"Error listing logs for campaign {campaign_id}: {e}")
            raise DatabaseError("Failed to list communication logs", original_error=e)
        return [CommunicationLog.from_db_row(row) for row in (response.data or [])]
