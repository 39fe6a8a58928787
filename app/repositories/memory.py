"""
In-process storage backend.

Used with STORAGE_BACKEND=memory (single process, local development) and
by the test suite. Every mutation runs under one asyncio.Lock, which
serializes writers the same way a single UPDATE statement does in Postgres.
"""
import asyncio
import copy
import uuid
from collections import defaultdict
from typing import Iterable, List, Optional

from app.core.timezone import parse_datetime, utc_now
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


class MemoryDatabase:
    """Tables keyed by id, plus the lock that serializes writes."""

    def __init__(self):
        self.tables: dict = defaultdict(dict)
        self.lock = asyncio.Lock()

    def seed(self, table: str, rows: Iterable[dict]) -> None:
        """Insert rows as-is (ids generated when missing)."""
        for row in rows:
            row = dict(row)
            row.setdefault("id", str(uuid.uuid4()))
            self.tables[table][str(row["id"])] = row

    async def insert(self, table: str, data: dict, unique_on: Optional[str] = None) -> dict:
        async with self.lock:
            if unique_on is not None and any(
                r.get(unique_on) == data[unique_on] for r in self.tables[table].values()
            ):
                raise ValueError(f"duplicate {unique_on}: {data[unique_on]}")
            row = dict(data)
            row.setdefault("id", str(uuid.uuid4()))
            row.setdefault("created_at", utc_now())
            self.tables[table][str(row["id"])] = row
            return copy.deepcopy(row)

    def rows(self, table: str) -> List[dict]:
        return [copy.deepcopy(row) for row in self.tables[table].values()]


def _newest_first(rows: List[dict]) -> List[dict]:
    # insertion order breaks created_at ties
    ordered = sorted(
        enumerate(rows),
        key=lambda pair: (parse_datetime(pair[1].get("created_at")) or utc_now(), pair[0]),
        reverse=True,
    )
    return [row for _, row in ordered]


class MemoryCustomerRepository(CustomerRepository):

    async def count_matching(self, predicate: Predicate) -> int:
        return sum(1 for row in self.db.tables[self.table_name].values() if predicate.matches(row))

    async def find_matching(
        self, predicate: Predicate, limit: Optional[int] = None
    ) -> List[dict]:
        matched = sorted(
            (row for row in self.db.rows(self.table_name) if predicate.matches(row)),
            key=lambda r: str(r["id"]),
        )
        return matched if limit is None else matched[:limit]


class MemorySegmentRepository(SegmentRepository):

    async def get(self, segment_id: str) -> Optional[Segment]:
        row = self.db.tables[self.table_name].get(str(segment_id))
        return Segment.from_db_row(row) if row else None

    async def create(self, data: dict) -> Segment:
        return Segment.from_db_row(await self.db.insert(self.table_name, data))

    async def list(self, limit: int = 50) -> List[Segment]:
        rows = _newest_first(self.db.rows(self.table_name))[:limit]
        return [Segment.from_db_row(row) for row in rows]


class MemoryCampaignRepository(CampaignRepository):

    async def get(self, campaign_id: str) -> Optional[Campaign]:
        row = self.db.tables[self.table_name].get(str(campaign_id))
        return Campaign.from_db_row(row) if row else None

    async def create(self, data: dict) -> Campaign:
        data = dict(data)
        for stat in CampaignStat:
            data.setdefault(stat.column, 0)
        data.setdefault("status", CampaignStatus.DRAFT.value)
        return Campaign.from_db_row(await self.db.insert(self.table_name, data))

    async def list(self, limit: int = 50) -> List[Campaign]:
        rows = _newest_first(self.db.rows(self.table_name))[:limit]
        return [Campaign.from_db_row(row) for row in rows]

    async def transition(
        self,
        campaign_id: str,
        sources: Iterable[CampaignStatus],
        target: CampaignStatus,
        changes: Optional[dict] = None,
    ) -> Optional[Campaign]:
        allowed = {s.value for s in sources}
        async with self.db.lock:
            row = self.db.tables[self.table_name].get(str(campaign_id))
            if row is None or row.get("status") not in allowed:
                return None
            row.update(changes or {})
            row["status"] = target.value
            return Campaign.from_db_row(copy.deepcopy(row))

    async def increment_stat(
        self, campaign_id: str, stat: CampaignStat, amount: int = 1
    ) -> None:
        async with self.db.lock:
            row = self.db.tables[self.table_name].get(str(campaign_id))
            if row is None:
                return
            row[stat.column] = (row.get(stat.column) or 0) + amount


class MemoryCommunicationLogRepository(CommunicationLogRepository):

    def _find(self, vendor_message_id: str) -> Optional[dict]:
        for row in self.db.tables[self.table_name].values():
            if row.get("vendor_message_id") == vendor_message_id:
                return row
        return None

    async def create(self, data: dict) -> CommunicationLog:
        data = {"status": LogStatus.PENDING.value, **data}
        row = await self.db.insert(self.table_name, data, unique_on="vendor_message_id")
        return CommunicationLog.from_db_row(row)

    async def get_by_vendor_message_id(
        self, vendor_message_id: str
    ) -> Optional[CommunicationLog]:
        row = self._find(vendor_message_id)
        return CommunicationLog.from_db_row(copy.deepcopy(row)) if row else None

    async def transition(
        self,
        vendor_message_id: str,
        sources: Iterable[LogStatus],
        target: LogStatus,
        changes: Optional[dict] = None,
    ) -> Optional[CommunicationLog]:
        allowed = {s.value for s in sources}
        async with self.db.lock:
            row = self._find(vendor_message_id)
            if row is None or row.get("status") not in allowed:
                return None
            row.update(changes or {})
            row["status"] = target.value
            return CommunicationLog.from_db_row(copy.deepcopy(row))

    async def list_by_campaign(
        self, campaign_id: str, limit: Optional[int] = None
    ) -> List[CommunicationLog]:
        rows = _newest_first([
            row for row in self.db.rows(self.table_name)
            if str(row.get("campaign_id")) == str(campaign_id)
        ])
        if limit is not None:
            rows = rows[:limit]
        return [CommunicationLog.from_db_row(row) for row in rows]
