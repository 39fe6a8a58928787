"""
Delivery receipt reconciliation.

Receipts arrive on their own stream (Redis worker or webhook), correlated
with dispatch only by vendorMessageId. Reconciling the same receipt twice
is a no-op.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Union

from app.core.exceptions import ValidationError
from app.core.timezone import parse_datetime
from app.services.campaigns.tracker import RECEIPT_STATS, DeliveryTracker
from app.services.campaigns.types import CommunicationLog, LogStatus

logger = logging.getLogger(__name__)


class ReceiptOutcome(str, Enum):
    APPLIED = "applied"
    DUPLICATE = "duplicate"  # known id, log did not move
    NOT_FOUND = "not_found"


@dataclass
class ReceiptResult:
    """Result of ingesting one receipt."""

    outcome: ReceiptOutcome
    vendor_message_id: str
    status: LogStatus
    log: Optional[CommunicationLog] = None

    @property
    def found(self) -> bool:
        return self.outcome != ReceiptOutcome.NOT_FOUND

    def to_dict(self) -> dict:
        return {
            "outcome": self.outcome.value,
            "vendorMessageId": self.vendor_message_id,
            "status": self.status.value,
            "log": self.log.to_dict() if self.log else None,
        }


def parse_receipt_status(value: Union[str, LogStatus]) -> LogStatus:
    """
    Raises:
        ValidationError: not DELIVERED, OPENED or CLICKED
    """
    try:
        status = LogStatus(str(getattr(value, "value", value)).strip().upper())
    except ValueError:
        status = None
    if status not in RECEIPT_STATS:
        raise ValidationError(
            "Invalid receipt status",
            {"status": str(value), "accepted": [s.value for s in RECEIPT_STATS]},
        )
    return status


class ReceiptReconciler:
    """Applies vendor receipts through the delivery tracker."""

    def __init__(self, tracker: DeliveryTracker):
        self.tracker = tracker

    async def ingest(
        self,
        vendor_message_id: str,
        status: Union[str, LogStatus],
        delivered_at: Union[str, datetime, None] = None,
    ) -> ReceiptResult:
        """
        Reconcile one receipt.

        Args:
            vendor_message_id: Correlation id assigned at dispatch
            status: DELIVERED, OPENED or CLICKED (case-insensitive)
            delivered_at: Vendor timestamp (default: now)

        Returns:
            ReceiptResult with APPLIED, DUPLICATE or NOT_FOUND

        Raises:
            ValidationError: missing id, bad status or bad timestamp
        """
        if not vendor_message_id:
            raise ValidationError("vendorMessageId is required")
        receipt_status = parse_receipt_status(status)
        try:
            at = parse_datetime(delivered_at)
        except (TypeError, ValueError, AttributeError) as e:
            raise ValidationError(
                "Invalid deliveredAt", {"deliveredAt": str(delivered_at)}, original_error=e
            )

        updated = await self.tracker.apply_receipt(vendor_message_id, receipt_status, at)
        if updated is not None:
            logger.debug(
                f"[Receipts] {vendor_message_id} -> {receipt_status.value}"
            )
            return ReceiptResult(
                ReceiptOutcome.APPLIED, vendor_message_id, receipt_status, updated
            )

        existing = await self.tracker.logs.get_by_vendor_message_id(vendor_message_id)
        if existing is None:
            logger.warning(
                f"[Receipts] Unknown vendorMessageId {vendor_message_id}",
                extra={"vendor_message_id": vendor_message_id},
            )
            return ReceiptResult(ReceiptOutcome.NOT_FOUND, vendor_message_id, receipt_status)

        logger.debug(
            f"[Receipts] {vendor_message_id} ignored: "
            f"{existing.status.value} -> {receipt_status.value}"
        )
        return ReceiptResult(
            ReceiptOutcome.DUPLICATE, vendor_message_id, receipt_status, existing
        )
