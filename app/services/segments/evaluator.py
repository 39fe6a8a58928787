"""
Segment evaluator: applies a compiled predicate to the customer population.
"""
import logging
from enum import Enum
from typing import List, Optional, Union

from app.core.config import settings
from app.repositories.base import CustomerRepository
from app.services.segments.compiler import Predicate
from app.services.segments.types import customer_projection

logger = logging.getLogger(__name__)


class EvaluationMode(str, Enum):
    PREVIEW = "preview"
    MATERIALIZE = "materialize"


class SegmentEvaluator:
    """Counts or materializes the audience of a predicate."""

    def __init__(self, customers: CustomerRepository):
        self.customers = customers

    async def preview(self, predicate: Predicate) -> int:
        """Number of matching customers, nothing materialized."""
        return await self.customers.count_matching(predicate)

    async def materialize(
        self, predicate: Predicate, limit: Optional[int] = None
    ) -> List[dict]:
        """
        Matching customers with the fixed projection, ordered by id.

        Args:
            predicate: Compiled predicate
            limit: Maximum records (default SEGMENT_CUSTOMERS_LIMIT)

        Returns:
            Records with id, name, email, totalSpent, visitCount, lastVisit
        """
        limit = settings.SEGMENT_CUSTOMERS_LIMIT if limit is None else limit
        rows = await self.customers.find_matching(predicate, limit=limit)
        return [customer_projection(row) for row in rows]

    async def materialize_all(self, predicate: Predicate) -> List[dict]:
        """Unbounded materialization, used by campaign dispatch."""
        rows = await self.customers.find_matching(predicate, limit=None)
        logger.debug(f"[SegmentEvaluator] Materialized {len(rows)} customers")
        return [customer_projection(row) for row in rows]

    async def evaluate(
        self,
        predicate: Predicate,
        mode: Union[EvaluationMode, str] = EvaluationMode.PREVIEW,
        limit: Optional[int] = None,
    ) -> Union[int, List[dict]]:
        """Dispatch to preview() or materialize() by mode."""
        if EvaluationMode(mode) == EvaluationMode.PREVIEW:
            return await self.preview(predicate)
        return await self.materialize(predicate, limit=limit)
