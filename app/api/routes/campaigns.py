"""
Campaign endpoints: create/launch, queries and the vendor receipt webhook.
"""
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from app.services.campaigns.dispatcher import CampaignDispatcher
from app.services.campaigns.reconciler import ReceiptOutcome, ReceiptReconciler
from app.services.deps import get_dispatcher, get_reconciler

router = APIRouter(prefix="/campaigns", tags=["campaigns"])


class DeliveryReceiptBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    vendor_message_id: str = Field(alias="vendorMessageId")
    status: str
    delivered_at: Optional[str] = Field(default=None, alias="deliveredAt")


@router.post("", status_code=201)
async def create_and_launch_campaign(
    payload: Dict[str, Any] = Body(...),
    dispatcher: CampaignDispatcher = Depends(get_dispatcher),
):
    """Create a campaign and dispatch it right away."""
    campaign = await dispatcher.create_and_launch(payload)
    return {
        "message": "Campaign created and launched successfully",
        "campaign": campaign.to_dict(),
    }


@router.post("/drafts", status_code=201)
async def create_draft_campaign(
    payload: Dict[str, Any] = Body(...),
    dispatcher: CampaignDispatcher = Depends(get_dispatcher),
):
    campaign = await dispatcher.create_draft(payload)
    return {"message": "Draft campaign created", "campaign": campaign.to_dict()}


# Declared before /{campaign_id} routes so the literal path wins
@router.post("/delivery-receipt")
async def delivery_receipt(
    body: DeliveryReceiptBody,
    reconciler: ReceiptReconciler = Depends(get_reconciler),
):
    """Vendor callback. Unknown vendorMessageId -> 404, state untouched."""
    result = await reconciler.ingest(body.vendor_message_id, body.status, body.delivered_at)
    if result.outcome == ReceiptOutcome.NOT_FOUND:
        return JSONResponse(
            status_code=404,
            content={
                "error": "NotFoundError",
                "message": "Communication log not found",
                "details": {"vendorMessageId": body.vendor_message_id},
            },
        )
    return {"message": "Delivery receipt processed", **result.to_dict()}


@router.post("/{campaign_id}/launch")
async def launch_campaign(
    campaign_id: str,
    dispatcher: CampaignDispatcher = Depends(get_dispatcher),
):
    campaign = await dispatcher.launch(campaign_id)
    return {"message": "Campaign launched successfully", "campaign": campaign.to_dict()}


@router.get("")
async def list_campaigns(
    limit: int = Query(50, ge=1, le=500),
    dispatcher: CampaignDispatcher = Depends(get_dispatcher),
):
    campaigns = await dispatcher.list_campaigns(limit=limit)
    return {"campaigns": [campaign.to_dict() for campaign in campaigns]}


@router.get("/{campaign_id}")
async def get_campaign(
    campaign_id: str,
    dispatcher: CampaignDispatcher = Depends(get_dispatcher),
):
    """Campaign with its latest communication logs (CAMPAIGN_LOGS_LIMIT)."""
    campaign = await dispatcher.get_campaign(campaign_id)
    logs = await dispatcher.campaign_logs(campaign_id)
    return {"campaign": campaign.to_dict(), "logs": [log.to_dict() for log in logs]}
