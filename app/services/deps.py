"""
Service wiring for FastAPI Depends and the workers.

Every getter returns a process-wide singleton built over
app.repositories.deps; tests replace them through
app.dependency_overrides or build the services directly.
"""
from functools import lru_cache

from app.core.config import settings
from app.core.exceptions import ConfigurationError
from app.repositories.deps import get_repositories
from app.services.campaigns.dispatcher import CampaignDispatcher
from app.services.campaigns.reconciler import ReceiptReconciler
from app.services.campaigns.tracker import DeliveryTracker
from app.services.segments.evaluator import SegmentEvaluator
from app.services.segments.service import SegmentService
from app.services.vendor.base import MessagingVendor
from app.services.vendor.receipts import (
    DirectReceiptPublisher,
    ReceiptPublisher,
    RedisStreamReceiptPublisher,
)
from app.services.vendor.simulator import VendorSimulator


@lru_cache()
def get_evaluator() -> SegmentEvaluator:
    return SegmentEvaluator(get_repositories().customers)


@lru_cache()
def get_segment_service() -> SegmentService:
    return SegmentService(get_repositories().segments, get_evaluator())


@lru_cache()
def get_tracker() -> DeliveryTracker:
    repos = get_repositories()
    return DeliveryTracker(repos.campaigns, repos.logs)


@lru_cache()
def get_reconciler() -> ReceiptReconciler:
    return ReceiptReconciler(get_tracker())


@lru_cache()
def get_receipt_publisher() -> ReceiptPublisher:
    """Publisher for RECEIPT_TRANSPORT (redis | direct)."""
    transport = settings.RECEIPT_TRANSPORT.lower()
    if transport == "redis":
        from app.services.redis import redis_client

        return RedisStreamReceiptPublisher(redis_client, settings.RECEIPT_STREAM)
    if transport == "direct":
        return DirectReceiptPublisher(get_reconciler())
    raise ConfigurationError(
        "Unknown RECEIPT_TRANSPORT", {"receipt_transport": settings.RECEIPT_TRANSPORT}
    )


@lru_cache()
def get_vendor() -> MessagingVendor:
    return VendorSimulator(get_receipt_publisher())


@lru_cache()
def get_dispatcher() -> CampaignDispatcher:
    return CampaignDispatcher(
        campaigns=get_repositories().campaigns,
        segment_service=get_segment_service(),
        evaluator=get_evaluator(),
        tracker=get_tracker(),
        vendor=get_vendor(),
    )
