"""
Campaign dispatcher.

Resolves a campaign's segment, creates one communication log per
recipient and sends through the vendor with bounded concurrency.
Dispatch returns once every attempt has settled (SENT or FAILED); it does
not wait for delivery receipts.
"""
import asyncio
import itertools
import logging
import time
from typing import Any, List, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from app.core.config import settings
from app.core.exceptions import (
    EmptyAudienceError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from app.core.timezone import utc_now
from app.repositories.base import CampaignRepository
from app.services.campaigns.tracker import DeliveryTracker
from app.services.campaigns.types import (
    Campaign,
    CampaignRequest,
    CampaignStat,
    CampaignStatus,
    CommunicationLog,
)
from app.services.segments.compiler import compile_rules
from app.services.segments.evaluator import SegmentEvaluator
from app.services.segments.service import SegmentService
from app.services.vendor.base import MessagingVendor, VendorSendResult

logger = logging.getLogger(__name__)

NAME_TOKEN = "{name}"
VENDOR_ERROR = "Vendor API error"

_message_sequence = itertools.count()


def personalize(template: str, name: Optional[str]) -> str:
    """Replace every {name} token; a missing name becomes empty."""
    return template.replace(NAME_TOKEN, name or "")


def build_vendor_message_id(campaign_id: str, customer_id: str) -> str:
    """
    msg_<campaign>_<customer>_<time_ns>_<seq>

    The process-wide sequence keeps ids unique when two sends share a
    clock tick.
    """
    return f"msg_{campaign_id}_{customer_id}_{time.time_ns()}_{next(_message_sequence)}"


class CampaignDispatcher:
    """Creates, launches and queries campaigns."""

    def __init__(
        self,
        campaigns: CampaignRepository,
        segment_service: SegmentService,
        evaluator: SegmentEvaluator,
        tracker: DeliveryTracker,
        vendor: MessagingVendor,
        max_concurrency: Optional[int] = None,
    ):
        self.campaigns = campaigns
        self.segment_service = segment_service
        self.evaluator = evaluator
        self.tracker = tracker
        self.vendor = vendor
        self.max_concurrency = max_concurrency or settings.DISPATCH_MAX_CONCURRENCY

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def create_draft(self, request: Union[CampaignRequest, dict]) -> Campaign:
        """
        Store a DRAFT campaign for an existing segment.

        Raises:
            ValidationError: invalid name/message/segmentId
            NotFoundError: segment does not exist
        """
        request = _parse_request(request)
        segment = await self.segment_service.get_segment(request.segment_id)

        campaign = await self.campaigns.create({
            "name": request.name,
            "segment_id": segment.id,
            "message": request.message,
            "audience_size": segment.audience_size,
            "status": CampaignStatus.DRAFT.value,
        })
        logger.info(
            f"[Dispatcher] Draft campaign {campaign.id} created for segment {segment.id}",
            extra={"campaign_id": campaign.id, "segment_id": segment.id},
        )
        return campaign

    async def launch(self, campaign_id: str) -> Campaign:
        """
        Launch a DRAFT campaign and dispatch to its whole audience.

        Raises:
            NotFoundError: campaign or segment missing
            InvalidStateError: campaign is not a DRAFT (includes a concurrent launch)
            EmptyAudienceError: segment currently matches nobody
        """
        campaign = await self.get_campaign(campaign_id)
        if campaign.status != CampaignStatus.DRAFT:
            raise InvalidStateError(
                "Only DRAFT campaigns can be launched",
                {"id": campaign.id, "status": campaign.status.value},
            )

        customers = await self._resolve_audience(campaign.segment_id)

        started = await self.tracker.start_campaign(campaign.id, audience_size=len(customers))
        if started is None:
            raise InvalidStateError(
                "Campaign was launched concurrently", {"id": campaign.id}
            )

        return await self._dispatch(started, customers)

    async def create_and_launch(self, request: Union[CampaignRequest, dict]) -> Campaign:
        """
        One-call flow: validate, resolve, create as RUNNING and dispatch.

        Nothing is stored when validation fails or the audience is empty.
        """
        request = _parse_request(request)
        segment = await self.segment_service.get_segment(request.segment_id)
        customers = await self._resolve_audience(segment.id)

        campaign = await self.campaigns.create({
            "name": request.name,
            "segment_id": segment.id,
            "message": request.message,
            "audience_size": len(customers),
            "status": CampaignStatus.RUNNING.value,
            "started_at": utc_now(),
        })
        return await self._dispatch(campaign, customers)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_campaign(self, campaign_id: str) -> Campaign:
        campaign = await self.campaigns.get(campaign_id)
        if campaign is None:
            raise NotFoundError("Campaign", campaign_id)
        return campaign

    async def list_campaigns(self, limit: int = 50) -> List[Campaign]:
        return await self.campaigns.list(limit=limit)

    async def campaign_logs(
        self, campaign_id: str, limit: Optional[int] = None
    ) -> List[CommunicationLog]:
        """Latest logs of a campaign, newest first."""
        await self.get_campaign(campaign_id)
        limit = settings.CAMPAIGN_LOGS_LIMIT if limit is None else limit
        return await self.tracker.logs.list_by_campaign(campaign_id, limit=limit)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _resolve_audience(self, segment_id: str) -> List[dict]:
        segment = await self.segment_service.get_segment(segment_id)
        customers = await self.evaluator.materialize_all(compile_rules(segment.rules))
        if not customers:
            raise EmptyAudienceError(segment.id)
        return customers

    async def _dispatch(self, campaign: Campaign, customers: List[dict]) -> Campaign:
        logger.info(
            f"[Dispatcher] Campaign {campaign.id}: dispatching to {len(customers)} customers "
            f"(concurrency={self.max_concurrency})",
            extra={"campaign_id": campaign.id},
        )
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def bounded(customer: dict) -> None:
            async with semaphore:
                stat = CampaignStat.FAILED
                try:
                    stat = await self._send_one(campaign, customer)
                except Exception as e:
                    logger.error(
                        f"[Dispatcher] Campaign {campaign.id}: send to "
                        f"{customer.get('id')} raised: {e}",
                        exc_info=True,
                        extra={"campaign_id": campaign.id, "customer_id": customer.get("id")},
                    )
                try:
                    await self.tracker.count(campaign.id, stat)
                except Exception as e:
                    logger.error(
                        f"[Dispatcher] Campaign {campaign.id}: could not count "
                        f"{stat.value} for {customer.get('id')}: {e}",
                        extra={"campaign_id": campaign.id, "customer_id": customer.get("id")},
                    )

        await asyncio.gather(*(bounded(customer) for customer in customers))

        completed = await self.tracker.complete_campaign(campaign.id)
        result = completed or await self.get_campaign(campaign.id)
        logger.info(
            f"[Dispatcher] Campaign {campaign.id} {result.status.value}: "
            f"sent={result.stats.sent} failed={result.stats.failed}",
            extra={"campaign_id": campaign.id},
        )
        return result

    async def _send_one(self, campaign: Campaign, customer: dict) -> CampaignStat:
        """
        Send to one recipient and move its log.

        Returns the stat the caller counts (SENT or FAILED). A storage error
        while moving the log leaves it PENDING but does not change the stat.
        """
        customer_id = customer["id"]
        message = personalize(campaign.message, customer.get("name"))
        vendor_message_id = build_vendor_message_id(campaign.id, customer_id)

        try:
            log = await self.tracker.open_log(campaign, customer_id, message, vendor_message_id)
        except Exception as e:
            logger.error(
                f"[Dispatcher] Could not create log for {customer_id} "
                f"in campaign {campaign.id}: {e}"
            )
            return CampaignStat.FAILED

        try:
            result = await self.vendor.send(customer_id, message, vendor_message_id)
        except Exception as e:
            logger.error(
                f"[Dispatcher] Vendor error for {vendor_message_id}: {e}",
                extra={"campaign_id": campaign.id, "vendor_message_id": vendor_message_id},
            )
            result = VendorSendResult(False, vendor_message_id, VENDOR_ERROR)

        try:
            if result.success:
                await self.tracker.mark_sent(log)
            else:
                await self.tracker.mark_failed(log, result.error or VENDOR_ERROR)
        except Exception as e:
            logger.error(
                f"[Dispatcher] Could not update log {vendor_message_id}: {e}",
                extra={"campaign_id": campaign.id, "vendor_message_id": vendor_message_id},
            )

        return CampaignStat.SENT if result.success else CampaignStat.FAILED


def _parse_request(request: Union[CampaignRequest, dict, Any]) -> CampaignRequest:
    if isinstance(request, CampaignRequest):
        return request
    try:
        return CampaignRequest.model_validate(request)
    except PydanticValidationError as e:
        raise ValidationError(
            "Validation failed",
            {"errors": [err["msg"] for err in e.errors()]},
            original_error=e,
        )
