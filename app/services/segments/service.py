"""
Segment service: validates rules, previews audiences and stores segments.
"""
import logging
from typing import Any, List, Optional

from pydantic import ValidationError as PydanticValidationError

from app.core.exceptions import NotFoundError, ValidationError
from app.core.timezone import utc_now
from app.repositories.base import SegmentRepository
from app.services.segments.compiler import compile_rules
from app.services.segments.evaluator import SegmentEvaluator
from app.services.segments.types import Segment, SegmentRequest, parse_rules

logger = logging.getLogger(__name__)


class SegmentService:
    """Manages customer segments used as campaign audiences."""

    def __init__(self, segments: SegmentRepository, evaluator: SegmentEvaluator):
        self.segments = segments
        self.evaluator = evaluator

    async def preview_rules(self, rules: List[Any]) -> int:
        """
        Audience size for a rule list, without storing anything.

        Raises:
            ValidationError: malformed rule
        """
        predicate = compile_rules(parse_rules(rules))
        return await self.evaluator.preview(predicate)

    async def create_segment(
        self,
        name: str,
        rules: List[Any],
        description: Optional[str] = None,
    ) -> Segment:
        """
        Validate, count once and store a segment.

        The audience size is a snapshot taken here; it is never refreshed.

        Raises:
            ValidationError: invalid name, description or rules
        """
        try:
            request = SegmentRequest(
                name=name,
                description=description,
                rules=parse_rules(rules),
            )
        except PydanticValidationError as e:
            raise ValidationError(
                "Invalid segment",
                {"errors": [err["msg"] for err in e.errors()]},
                original_error=e,
            )

        audience_size = await self.evaluator.preview(compile_rules(request.rules))

        segment = await self.segments.create({
            "name": request.name,
            "description": request.description,
            "rules": [rule.to_dict() for rule in request.rules],
            "audience_size": audience_size,
            "last_calculated": utc_now(),
        })

        logger.info(
            f"[Segments] Segment {segment.id} '{segment.name}' created "
            f"({len(request.rules)} rules, audience={audience_size})"
        )
        return segment

    async def get_segment(self, segment_id: str) -> Segment:
        """
        Raises:
            NotFoundError: segment does not exist
        """
        segment = await self.segments.get(segment_id)
        if segment is None:
            raise NotFoundError("Segment", segment_id)
        return segment

    async def list_segments(self, limit: int = 50) -> List[Segment]:
        return await self.segments.list(limit=limit)

    async def segment_customers(
        self, segment_id: str, limit: Optional[int] = None
    ) -> List[dict]:
        """Materialize a stored segment (bounded)."""
        segment = await self.get_segment(segment_id)
        return await self.evaluator.materialize(compile_rules(segment.rules), limit=limit)
