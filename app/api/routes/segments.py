"""
Segment endpoints: rule preview, creation and audience lookup.
"""
from typing import Any, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from app.services.deps import get_segment_service
from app.services.segments.service import SegmentService

router = APIRouter(prefix="/segments", tags=["segments"])


class PreviewBody(BaseModel):
    rules: List[Any] = []


class CreateSegmentBody(BaseModel):
    # validated by SegmentService so errors carry the rule index
    name: Any = None
    description: Optional[str] = None
    rules: List[Any] = []


@router.post("/preview")
async def preview_segment(
    body: PreviewBody,
    service: SegmentService = Depends(get_segment_service),
):
    """Audience size for a rule list; nothing is stored."""
    audience_size = await service.preview_rules(body.rules)
    return {"audienceSize": audience_size}


@router.post("", status_code=201)
async def create_segment(
    body: CreateSegmentBody,
    service: SegmentService = Depends(get_segment_service),
):
    segment = await service.create_segment(body.name, body.rules, body.description)
    return {"message": "Segment created successfully", "segment": segment.to_dict()}


@router.get("")
async def list_segments(
    limit: int = Query(50, ge=1, le=500),
    service: SegmentService = Depends(get_segment_service),
):
    segments = await service.list_segments(limit=limit)
    return {"segments": [segment.to_dict() for segment in segments]}


@router.get("/{segment_id}")
async def get_segment(
    segment_id: str,
    service: SegmentService = Depends(get_segment_service),
):
    segment = await service.get_segment(segment_id)
    return {"segment": segment.to_dict()}


@router.get("/{segment_id}/customers")
async def segment_customers(
    segment_id: str,
    limit: Optional[int] = Query(None, ge=1, le=1000),
    service: SegmentService = Depends(get_segment_service),
):
    """Current members of a segment (default SEGMENT_CUSTOMERS_LIMIT)."""
    customers = await service.segment_customers(segment_id, limit=limit)
    return {"customers": customers, "count": len(customers)}
