"""
Base Repository - common interface for every storage backend.

Each entity has an abstract repository here and two implementations:
- app.repositories.supabase: PostgREST queries + RPC functions
- app.repositories.memory: in-process tables, for local runs and tests

Status changes and counters are never read-modify-write. Backends expose
conditional transitions (update only if the current status is one of the
allowed sources) and atomic increments instead.
"""
from abc import ABC, abstractmethod
from typing import Any, Iterable, List, Optional

from app.services.campaigns.types import (
    Campaign,
    CampaignStat,
    CampaignStatus,
    CommunicationLog,
    LogStatus,
)
from app.services.segments.compiler import Predicate
from app.services.segments.types import Segment


class BaseRepository(ABC):
    """
    Common base for repositories.

    Attributes:
        db: Database client (Supabase client or MemoryDatabase)
    """

    def __init__(self, db_client: Any):
        """
        Args:
            db_client: Database client (Supabase, MemoryDatabase, etc.)
        """
        self.db = db_client

    @property
    @abstractmethod
    def table_name(self) -> str:
        """Table name in the database."""
        pass


class CustomerRepository(BaseRepository):
    """Read-only access to the customer population."""

    @property
    def table_name(self) -> str:
        return "customers"

    @abstractmethod
    async def count_matching(self, predicate: Predicate) -> int:
        """Count customers satisfying the predicate."""
        pass

    @abstractmethod
    async def find_matching(
        self, predicate: Predicate, limit: Optional[int] = None
    ) -> List[dict]:
        """
        Fetch matching customer rows ordered by id.

        Args:
            predicate: Compiled audience predicate
            limit: Maximum rows, None for all

        Returns:
            Rows with id, name, email, total_spent, visit_count, last_visit
        """
        pass


class SegmentRepository(BaseRepository):

    @property
    def table_name(self) -> str:
        return "segments"

    @abstractmethod
    async def get(self, segment_id: str) -> Optional[Segment]:
        pass

    @abstractmethod
    async def create(self, data: dict) -> Segment:
        pass

    @abstractmethod
    async def list(self, limit: int = 50) -> List[Segment]:
        """Newest first."""
        pass


class CampaignRepository(BaseRepository):

    @property
    def table_name(self) -> str:
        return "campaigns"

    @abstractmethod
    async def get(self, campaign_id: str) -> Optional[Campaign]:
        pass

    @abstractmethod
    async def create(self, data: dict) -> Campaign:
        pass

    @abstractmethod
    async def list(self, limit: int = 50) -> List[Campaign]:
        """Newest first."""
        pass

    @abstractmethod
    async def transition(
        self,
        campaign_id: str,
        sources: Iterable[CampaignStatus],
        target: CampaignStatus,
        changes: Optional[dict] = None,
    ) -> Optional[Campaign]:
        """
        Move a campaign to `target` only if its status is in `sources`.

        Returns:
            Updated campaign, or None if missing or not in a source status
        """
        pass

    @abstractmethod
    async def increment_stat(
        self, campaign_id: str, stat: CampaignStat, amount: int = 1
    ) -> None:
        """Atomically add `amount` to one stats counter."""
        pass


class CommunicationLogRepository(BaseRepository):

    @property
    def table_name(self) -> str:
        return "communication_logs"

    @abstractmethod
    async def create(self, data: dict) -> CommunicationLog:
        pass

    @abstractmethod
    async def get_by_vendor_message_id(
        self, vendor_message_id: str
    ) -> Optional[CommunicationLog]:
        pass

    @abstractmethod
    async def transition(
        self,
        vendor_message_id: str,
        sources: Iterable[LogStatus],
        target: LogStatus,
        changes: Optional[dict] = None,
    ) -> Optional[CommunicationLog]:
        """
        Move a log to `target` only if its status is in `sources`.

        Returns:
            Updated log, or None if missing or not in a source status
        """
        pass

    @abstractmethod
    async def list_by_campaign(
        self, campaign_id: str, limit: Optional[int] = None
    ) -> List[CommunicationLog]:
        """Newest first."""
        pass
