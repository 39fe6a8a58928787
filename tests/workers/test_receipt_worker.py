"""
Tests for the Redis Stream receipt worker.
"""
import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ResponseError

from app.core.exceptions import DatabaseError
from app.services.campaigns.reconciler import ReceiptOutcome, ReceiptResult
from app.services.campaigns.types import LogStatus
from app.workers import receipt_worker
from app.workers.receipt_worker import (
    BATCH_SIZE,
    consume_receipts,
    ensure_group,
    process_batch,
    recover_pending,
)

STREAM = "vendor:receipts"
GROUP = "receipt-reconciler"


def stream_response(*entries):
    return [[STREAM, list(entries)]]


def stub_reconciler(outcome=ReceiptOutcome.APPLIED):
    reconciler = MagicMock()
    reconciler.ingest = AsyncMock(
        return_value=ReceiptResult(outcome, "msg-1", LogStatus.DELIVERED)
    )
    return reconciler


def receipt_fields(vendor_message_id, status="DELIVERED"):
    return {"vendorMessageId": vendor_message_id, "status": status}


def _id_key(entry_id):
    return tuple(int(part) for part in entry_id.split("-"))


class PendingStream:
    """Enough of XREADGROUP/XACK to model one consumer's pending list."""

    def __init__(self, pending=(), new=()):
        self.pending = dict(pending)
        self.new = list(new)
        self.xgroup_create = AsyncMock(return_value=True)

    async def xreadgroup(self, group, consumer, streams, count=None, block=None):
        (stream, start), = streams.items()
        if start == ">":
            batch, self.new = self.new[:count], self.new[count:]
            self.pending.update(batch)
        else:
            batch = [
                (entry_id, fields) for entry_id, fields in self.pending.items()
                if _id_key(entry_id) > _id_key(start)
            ][:count]
        return [[stream, batch]] if batch else []

    async def xack(self, stream, group, entry_id):
        return 1 if self.pending.pop(entry_id, None) is not None else 0


class TestEnsureGroup:

    @pytest.mark.asyncio
    async def test_creates_group_with_stream(self, mock_redis):
        await ensure_group(mock_redis, STREAM, GROUP)

        mock_redis.xgroup_create.assert_awaited_once_with(STREAM, GROUP, id="0", mkstream=True)

    @pytest.mark.asyncio
    async def test_existing_group_is_fine(self, mock_redis):
        mock_redis.xgroup_create.side_effect = ResponseError(
            "BUSYGROUP Consumer Group name already exists"
        )

        await ensure_group(mock_redis, STREAM, GROUP)

    @pytest.mark.asyncio
    async def test_other_errors_propagate(self, mock_redis):
        mock_redis.xgroup_create.side_effect = ResponseError("WRONGTYPE")

        with pytest.raises(ResponseError):
            await ensure_group(mock_redis, STREAM, GROUP)


class TestProcessBatch:

    @pytest.mark.asyncio
    async def test_ingests_and_acks(self, mock_redis):
        mock_redis.xreadgroup.return_value = stream_response(
            ("1-0", {"vendorMessageId": "msg-1", "status": "DELIVERED",
                     "deliveredAt": "2025-06-01T12:00:00+00:00"}),
        )
        reconciler = stub_reconciler()

        batch = await process_batch(mock_redis, reconciler, STREAM, GROUP, "worker-1")

        assert batch.acked == 1
        args = reconciler.ingest.await_args.args
        assert args[0] == "msg-1"
        assert args[1] == "DELIVERED"
        mock_redis.xack.assert_awaited_once_with(STREAM, GROUP, "1-0")

    @pytest.mark.asyncio
    async def test_unknown_ids_are_acked(self, mock_redis):
        mock_redis.xreadgroup.return_value = stream_response(
            ("1-0", {"vendorMessageId": "msg-x", "status": "DELIVERED"}),
        )

        batch = await process_batch(
            mock_redis, stub_reconciler(ReceiptOutcome.NOT_FOUND), STREAM, GROUP, "w"
        )

        assert batch.acked == 1

    @pytest.mark.asyncio
    async def test_malformed_entries_are_acked(self, mock_redis):
        mock_redis.xreadgroup.return_value = stream_response(
            ("1-0", {"status": "DELIVERED"}),
            ("2-0", {"vendorMessageId": "msg-1", "status": "DELIVERED", "deliveredAt": "soon"}),
        )
        reconciler = stub_reconciler()

        batch = await process_batch(mock_redis, reconciler, STREAM, GROUP, "w")

        assert batch.acked == 2
        reconciler.ingest.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_storage_errors_stay_pending(self, mock_redis):
        mock_redis.xreadgroup.return_value = stream_response(
            ("1-0", {"vendorMessageId": "msg-1", "status": "DELIVERED"}),
        )
        reconciler = MagicMock()
        reconciler.ingest = AsyncMock(side_effect=DatabaseError("down"))

        batch = await process_batch(mock_redis, reconciler, STREAM, GROUP, "w")

        assert batch.acked == 0
        assert batch.left_pending == 1
        mock_redis.xack.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_pending_mode_reads_from_zero(self, mock_redis):
        await process_batch(mock_redis, stub_reconciler(), STREAM, GROUP, "w", pending=True)

        mock_redis.xreadgroup.assert_awaited_once_with(
            GROUP, "w", {STREAM: "0"}, count=100, block=None
        )

    @pytest.mark.asyncio
    async def test_resp3_dict_response(self, mock_redis):
        mock_redis.xreadgroup.return_value = {
            STREAM: [("1-0", {"vendorMessageId": "msg-1", "status": "OPENED"})]
        }

        assert (await process_batch(mock_redis, stub_reconciler(), STREAM, GROUP, "w")).acked == 1


class TestConsumeLoop:

    @pytest.mark.asyncio
    async def test_stops_when_event_set(self, mock_redis):
        stop = asyncio.Event()
        calls = {"n": 0}

        async def read(*args, **kwargs):
            calls["n"] += 1
            if calls["n"] >= 3:
                stop.set()
            return []

        mock_redis.xreadgroup.side_effect = read

        await asyncio.wait_for(
            consume_receipts(mock_redis, stub_reconciler(), consumer="w", stop_event=stop),
            timeout=2,
        )

        mock_redis.xgroup_create.assert_awaited_once()
        assert calls["n"] == 3


class TestPendingRecovery:

    @pytest.mark.asyncio
    async def test_walks_more_than_one_batch(self):
        total = BATCH_SIZE + 50
        stream = PendingStream(
            pending=[(f"{i}-0", receipt_fields(f"msg-{i}")) for i in range(1, total + 1)]
        )
        reconciler = stub_reconciler()

        result = await recover_pending(stream, reconciler, STREAM, GROUP, "w")

        assert result.acked == total
        assert stream.pending == {}
        assert reconciler.ingest.await_count == total

    @pytest.mark.asyncio
    async def test_still_failing_entries_end_the_walk(self):
        stream = PendingStream(
            pending=[(f"{i}-0", receipt_fields(f"msg-{i}")) for i in range(1, 151)]
        )
        reconciler = MagicMock()
        reconciler.ingest = AsyncMock(side_effect=DatabaseError("down"))

        result = await recover_pending(stream, reconciler, STREAM, GROUP, "w")

        assert (result.read, result.acked, result.left_pending) == (150, 0, 150)
        assert len(stream.pending) == 150

    @pytest.mark.asyncio
    async def test_startup_drains_whole_pending_list(self):
        stream = PendingStream(
            pending=[(f"{i}-0", receipt_fields(f"msg-{i}")) for i in range(1, 151)]
        )
        stop = asyncio.Event()
        reconciler = stub_reconciler()

        async def read_new(*args, **kwargs):
            stop.set()
            return []

        original_read = stream.xreadgroup

        async def xreadgroup(group, consumer, streams, **kwargs):
            if list(streams.values()) == [">"]:
                return await read_new()
            return await original_read(group, consumer, streams, **kwargs)

        stream.xreadgroup = xreadgroup

        await asyncio.wait_for(
            consume_receipts(stream, reconciler, consumer="w", stop_event=stop), timeout=2
        )

        assert stream.pending == {}
        assert reconciler.ingest.await_count == 150

    @pytest.mark.asyncio
    async def test_storage_error_at_runtime_is_retried(self, monkeypatch):
        monkeypatch.setattr(receipt_worker, "ERROR_BACKOFF_SECONDS", 0)
        stream = PendingStream(new=[("1-0", receipt_fields("msg-1"))])
        stop = asyncio.Event()
        applied = ReceiptResult(ReceiptOutcome.APPLIED, "msg-1", LogStatus.DELIVERED)
        calls = {"n": 0}

        def ingest(*args, **kwargs):
            calls["n"] += 1
            if calls["n"] == 1:
                raise DatabaseError("down")
            stop.set()
            return applied

        reconciler = MagicMock()
        reconciler.ingest = AsyncMock(side_effect=ingest)

        await asyncio.wait_for(
            consume_receipts(stream, reconciler, consumer="w", stop_event=stop), timeout=2
        )

        assert calls["n"] == 2
        assert stream.pending == {}
