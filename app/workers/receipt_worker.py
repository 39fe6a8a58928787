"""
Worker that reconciles delivery receipts from the Redis Stream.

Runs as a member of RECEIPT_CONSUMER_GROUP, so several workers can share
the stream. An entry is acknowledged once processed, including unknown
ids and malformed entries; only storage errors leave it pending, and the
pending list is walked again until it drains.
"""
import asyncio
import logging
import os
import socket
from typing import Any, Iterable, NamedTuple, Optional, Tuple

from redis.exceptions import ResponseError

from app.core.config import settings
from app.core.exceptions import DatabaseError, ValidationError
from app.services.campaigns.reconciler import ReceiptReconciler
from app.services.vendor.receipts import DeliveryReceipt

logger = logging.getLogger(__name__)

BATCH_SIZE = 100
BLOCK_MS = 5000
ERROR_BACKOFF_SECONDS = 5


def default_consumer_name() -> str:
    return f"{socket.gethostname()}-{os.getpid()}"


async def ensure_group(redis_client: Any, stream: str, group: str) -> None:
    """Create the consumer group (and stream); existing groups are fine."""
    try:
        await redis_client.xgroup_create(stream, group, id="0", mkstream=True)
        logger.info(f"[ReceiptWorker] Created consumer group {group} on {stream}")
    except ResponseError as e:
        if "BUSYGROUP" not in str(e):
            raise


def _entries(response: Any) -> Iterable[Tuple[str, dict]]:
    """Flatten XREADGROUP output (RESP2 list or RESP3 dict)."""
    if not response:
        return []
    streams = response.items() if isinstance(response, dict) else response
    entries = []
    for _stream, messages in streams:
        for entry_id, fields in messages or []:
            entries.append((entry_id, fields or {}))
    return entries


class BatchResult(NamedTuple):
    """Outcome of one XREADGROUP batch."""

    read: int
    acked: int
    last_id: Optional[str] = None

    @property
    def left_pending(self) -> int:
        return self.read - self.acked


async def process_batch(
    redis_client: Any,
    reconciler: ReceiptReconciler,
    stream: str,
    group: str,
    consumer: str,
    pending: bool = False,
    start_id: str = "0",
    count: int = BATCH_SIZE,
    block_ms: Optional[int] = BLOCK_MS,
) -> BatchResult:
    """
    Read and reconcile one batch.

    Args:
        pending: Re-read this consumer's unacknowledged entries (after
            start_id) instead of new ones
    """
    response = await redis_client.xreadgroup(
        group,
        consumer,
        {stream: start_id if pending else ">"},
        count=count,
        block=None if pending else block_ms,
    )

    read = acked = 0
    last_id = None
    for entry_id, fields in _entries(response):
        read += 1
        last_id = entry_id
        try:
            receipt = DeliveryReceipt.from_fields(fields)
            result = await reconciler.ingest(
                receipt.vendor_message_id, receipt.status, receipt.delivered_at
            )
            logger.debug(
                f"[ReceiptWorker] {entry_id} {receipt.vendor_message_id}: {result.outcome.value}"
            )
        except (KeyError, ValueError, ValidationError) as e:
            logger.warning(f"[ReceiptWorker] Malformed entry {entry_id} {fields}: {e}")
        except DatabaseError as e:
            logger.error(
                f"[ReceiptWorker] Storage error on {entry_id}, left pending: {e}",
                extra={"vendor_message_id": receipt.vendor_message_id},
            )
            continue

        await redis_client.xack(stream, group, entry_id)
        acked += 1

    return BatchResult(read, acked, last_id)


async def recover_pending(
    redis_client: Any,
    reconciler: ReceiptReconciler,
    stream: str,
    group: str,
    consumer: str,
    count: int = BATCH_SIZE,
) -> BatchResult:
    """
    Walk this consumer's whole pending list once, batch by batch.

    Entries that fail again stay pending and are skipped by the cursor,
    so the walk always ends.
    """
    start_id = "0"
    read = acked = 0
    while True:
        batch = await process_batch(
            redis_client, reconciler, stream, group, consumer,
            pending=True, start_id=start_id, count=count,
        )
        if not batch.read:
            return BatchResult(read, acked)
        read += batch.read
        acked += batch.acked
        start_id = batch.last_id


async def consume_receipts(
    redis_client: Any = None,
    reconciler: Optional[ReceiptReconciler] = None,
    consumer: Optional[str] = None,
    stop_event: Optional[asyncio.Event] = None,
) -> None:
    """
    Consume the receipt stream until stop_event is set (or forever).

    The pending list is walked at start and again after any batch that
    left entries pending, until it drains.
    """
    if redis_client is None:
        from app.services.redis import redis_client
    if reconciler is None:
        from app.services.deps import get_reconciler

        reconciler = get_reconciler()

    stream = settings.RECEIPT_STREAM
    group = settings.RECEIPT_CONSUMER_GROUP
    consumer = consumer or default_consumer_name()

    await ensure_group(redis_client, stream, group)
    logger.info(f"[ReceiptWorker] Consuming {stream} as {group}/{consumer}")

    # entries left pending by a previous run of this consumer
    retry_pending = True

    while stop_event is None or not stop_event.is_set():
        try:
            if retry_pending:
                recovered = await recover_pending(
                    redis_client, reconciler, stream, group, consumer
                )
                if recovered.acked:
                    logger.info(f"[ReceiptWorker] Recovered {recovered.acked} pending receipts")
                retry_pending = recovered.left_pending > 0
                if retry_pending:
                    await asyncio.sleep(ERROR_BACKOFF_SECONDS)
                    continue

            batch = await process_batch(redis_client, reconciler, stream, group, consumer)
            if batch.left_pending:
                retry_pending = True
                await asyncio.sleep(ERROR_BACKOFF_SECONDS)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"[ReceiptWorker] Loop error: {e}", exc_info=True)
            retry_pending = True
            await asyncio.sleep(ERROR_BACKOFF_SECONDS)

    logger.info("[ReceiptWorker] Stopped")
