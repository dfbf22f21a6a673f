import asyncio
import os

import pytest

from ethstorage_sdk.constants import MAX_CALLDATA_CHUNK_SIZE, OP_BLOB_DATA_SIZE, UploadType
from ethstorage_sdk.errors import CapabilityError, RpcError, TxError, ValidationError
from ethstorage_sdk.types import (
    UploadCallback,
    UploadFailed,
    UploadFinished,
    UploadProgress,
    UploadRequest,
)
from ethstorage_sdk.upload.orchestrator import UploadOrchestrator, prefetch

from tests.fakes import GAS_COST, FakeFlatDirectory, FakeUploader, fake_engine

KEY = "site/index.bin"
COST = 1000
# 7 chunks -> batches [0,1,2] [3,4,5] [6]
DATA = os.urandom(OP_BLOB_DATA_SIZE * 6 + 1000)


def make(contract=None, **kw):
    contract = contract or FakeFlatDirectory(cost=COST)
    uploader = FakeUploader(contract)
    kw.setdefault("concurrency", 3)
    orch = UploadOrchestrator(contract, uploader, fake_engine(), **kw)
    return contract, uploader, orch


async def collect(orch, **kw):
    kw.setdefault("key", KEY)
    kw.setdefault("content", DATA)
    return [ev async for ev in orch.stream(UploadRequest(**kw))]


def progress(events):
    return [(e.index, e.total, e.written) for e in events if isinstance(e, UploadProgress)]


def stored(contract, key=KEY):
    return b"".join(contract.data[key])


# --------------------------------- blob mode ---------------------------------


@pytest.mark.asyncio
async def test_fresh_blob_upload_sequential():
    contract, uploader, orch = make()
    events = await collect(orch)

    assert progress(events) == [(2, 7, True), (5, 7, True), (6, 7, True)]
    assert events[-1] == UploadFinished(7, len(DATA), COST * 7 + GAS_COST * 3)
    assert not any(isinstance(e, UploadFailed) for e in events)
    assert uploader.names() == ["writeChunksByBlobs"] * 3
    assert uploader.confirm_flags == [True, True, True]
    assert stored(contract) == DATA
    assert contract.modes[KEY] is UploadType.BLOB


@pytest.mark.asyncio
async def test_unchanged_reupload_writes_nothing():
    contract, uploader, orch = make()
    await collect(orch)
    sent = len(uploader.calls)

    events = await collect(orch)

    assert progress(events) == [(2, 7, False), (5, 7, False), (6, 7, False)]
    assert events[-1] == UploadFinished(0, 0, 0)
    assert len(uploader.calls) == sent


@pytest.mark.asyncio
async def test_only_changed_batch_is_rewritten():
    contract, uploader, orch = make()
    await collect(orch)
    changed = bytearray(DATA)
    changed[OP_BLOB_DATA_SIZE * 4 + 7] ^= 0xFF
    changed = bytes(changed)
    sent = len(uploader.calls)

    events = await collect(orch, content=changed)

    assert progress(events) == [(2, 7, False), (5, 7, True), (6, 7, False)]
    new_calls = uploader.calls[sent:]
    assert [list(args[1]) for _, args in new_calls] == [[3, 4, 5]]
    assert events[-1] == UploadFinished(3, OP_BLOB_DATA_SIZE * 3, COST * 3 + GAS_COST)
    assert stored(contract) == changed


@pytest.mark.asyncio
async def test_shrink_truncates_before_any_write():
    contract, uploader, orch = make()
    await collect(orch)
    sent = len(uploader.calls)
    smaller = os.urandom(OP_BLOB_DATA_SIZE + 10)

    events = await collect(orch, content=smaller)

    assert uploader.names()[sent:] == ["truncate", "writeChunksByBlobs"]
    assert progress(events) == [(1, 2, True)]
    assert len(contract.hashes[KEY]) == 2
    assert stored(contract) == smaller


@pytest.mark.asyncio
async def test_failed_truncate_aborts_upload():
    contract, uploader, orch = make()
    await collect(orch)
    uploader.revert_ids.add(-1)  # truncate/remove carry no chunk id
    sent = len(uploader.calls)

    events = await collect(orch, content=b"tiny")

    assert isinstance(events[-2], UploadFailed)
    assert isinstance(events[-2].error, TxError)
    assert events[-1] == UploadFinished(0, 0, 0)
    assert uploader.names()[sent:] == ["truncate"]


@pytest.mark.asyncio
async def test_concurrent_settlement_out_of_order_progress_in_order():
    contract, uploader, orch = make(confirm_nonce=False)
    uploader.settle_delays = {0: 0.05, 3: 0.02}

    events = await collect(orch)

    assert progress(events) == [(2, 7, True), (5, 7, True), (6, 7, True)]
    assert uploader.nonces == [0, 1, 2]
    assert uploader.confirm_flags == [False, False, False]
    # gas limit of the first batch is reused for the others
    assert len(set(uploader.sent_gas)) == 1
    assert events[-1] == UploadFinished(7, len(DATA), COST * 7 + GAS_COST * 3)
    assert stored(contract) == DATA


@pytest.mark.asyncio
async def test_request_overrides_confirm_nonce():
    contract, uploader, orch = make(confirm_nonce=True)
    await collect(orch, confirm_nonce=False)
    assert uploader.confirm_flags == [False, False, False]


@pytest.mark.asyncio
async def test_concurrent_send_failure_stops_dispatch():
    contract, uploader, orch = make(confirm_nonce=False)
    uploader.send_failures = {3}

    events = await collect(orch)

    assert progress(events) == [(2, 7, True)]
    assert isinstance(events[-2], UploadFailed)
    assert isinstance(events[-2].error, RpcError)
    assert events[-1] == UploadFinished(3, OP_BLOB_DATA_SIZE * 3, COST * 3 + GAS_COST)
    assert len(uploader.calls) == 1


@pytest.mark.asyncio
async def test_sequential_revert_stops_further_sends():
    contract, uploader, orch = make()
    uploader.revert_ids = {3}

    events = await collect(orch)

    assert progress(events) == [(2, 7, True)]
    assert isinstance(events[-2].error, TxError)
    assert events[-1] == UploadFinished(3, OP_BLOB_DATA_SIZE * 3, COST * 3 + GAS_COST)
    assert len(uploader.calls) == 2


@pytest.mark.asyncio
async def test_blob_upload_into_calldata_key_is_rejected():
    contract = FakeFlatDirectory(cost=COST)
    contract.store(KEY, [b"old"], UploadType.CALLDATA)
    _, uploader, orch = make(contract)

    events = await collect(orch)

    assert len(events) == 2
    assert isinstance(events[0].error, CapabilityError)
    assert events[1] == UploadFinished(0, 0, 0)
    assert uploader.calls == []


@pytest.mark.asyncio
async def test_blob_upload_without_blob_support():
    _, uploader, orch = make(support_blob=False)
    events = await collect(orch)
    assert isinstance(events[0].error, CapabilityError)
    assert uploader.calls == []


@pytest.mark.asyncio
async def test_validation_failures_surface_as_events():
    _, _, orch = make()
    events = await collect(orch, key="")
    assert isinstance(events[0].error, ValidationError)
    assert events[-1] == UploadFinished(0, 0, 0)


@pytest.mark.asyncio
async def test_empty_content_truncates_stored_file():
    contract, uploader, orch = make()
    await collect(orch)
    sent = len(uploader.calls)

    events = await collect(orch, content=b"")

    assert events == [UploadFinished(0, 0, 0)]
    assert uploader.names()[sent:] == ["truncate"]
    assert uploader.calls[-1][1] == (KEY.encode(), 0)
    assert contract.hashes[KEY] == []


@pytest.mark.asyncio
async def test_empty_content_on_new_key_sends_nothing():
    _, uploader, orch = make()
    events = await collect(orch, content=b"")
    assert events == [UploadFinished(0, 0, 0)]
    assert uploader.calls == []


@pytest.mark.asyncio
async def test_run_without_callback_raises_failure():
    _, uploader, orch = make()
    uploader.revert_ids = {0}
    with pytest.raises(TxError):
        await orch.run(UploadRequest(key=KEY, content=DATA))


@pytest.mark.asyncio
async def test_run_with_callback_reports_failure_and_partial_totals():
    _, uploader, orch = make()
    uploader.revert_ids = {3}
    failures = []

    result = await orch.run(
        UploadRequest(key=KEY, content=DATA, callback=UploadCallback(on_fail=failures.append))
    )

    assert [type(e) for e in failures] == [TxError]
    assert result.total_chunks == 3


@pytest.mark.asyncio
async def test_run_dispatches_to_callback():
    _, _, orch = make()
    seen = {"progress": [], "fail": [], "finish": []}
    cb = UploadCallback(
        on_progress=lambda i, t, w: seen["progress"].append((i, t, w)),
        on_fail=seen["fail"].append,
        on_finish=lambda *a: seen["finish"].append(a),
    )

    result = await orch.run(UploadRequest(key=KEY, content=DATA, callback=cb))

    assert seen["progress"] == [(2, 7, True), (5, 7, True), (6, 7, True)]
    assert seen["fail"] == []
    assert seen["finish"] == [(7, len(DATA), result.total_cost)]
    assert result.total_chunks == 7


# ------------------------------- calldata mode -------------------------------


CALLDATA = os.urandom(MAX_CALLDATA_CHUNK_SIZE * 2 + 5)


@pytest.mark.asyncio
async def test_calldata_upload_and_reupload():
    contract, uploader, orch = make()

    events = await collect(orch, content=CALLDATA, mode=UploadType.CALLDATA)
    assert progress(events) == [(0, 3, True), (1, 3, True), (2, 3, True)]
    assert events[-1] == UploadFinished(3, len(CALLDATA), GAS_COST * 3)
    assert uploader.names() == ["writeChunkByCalldata"] * 3
    assert stored(contract) == CALLDATA

    events = await collect(orch, content=CALLDATA, mode=UploadType.CALLDATA)
    assert progress(events) == [(0, 3, False), (1, 3, False), (2, 3, False)]
    assert len(uploader.calls) == 3


@pytest.mark.asyncio
async def test_calldata_small_file_is_one_chunk():
    contract, uploader, orch = make()
    events = await collect(orch, content=b"<html></html>", mode=UploadType.CALLDATA)
    assert progress(events) == [(0, 1, True)]
    assert contract.data[KEY] == [b"<html></html>"]


@pytest.mark.asyncio
async def test_calldata_into_blob_key_is_rejected():
    contract, uploader, orch = make()
    await collect(orch)
    sent = len(uploader.calls)
    events = await collect(orch, content=b"abc", mode=UploadType.CALLDATA)
    assert isinstance(events[0].error, CapabilityError)
    assert len(uploader.calls) == sent


@pytest.mark.asyncio
async def test_calldata_revert_raises_tx_error_event():
    contract, uploader, orch = make()
    uploader.revert_ids = {1}
    events = await collect(orch, content=CALLDATA, mode=UploadType.CALLDATA)
    assert progress(events) == [(0, 3, True)]
    assert isinstance(events[-2].error, TxError)
    assert events[-1].total_chunks == 1


# --------------------------------- prefetch ----------------------------------


@pytest.mark.asyncio
async def test_prefetch_keeps_input_order_and_window():
    running = {"now": 0, "max": 0}

    async def prepare(x):
        running["now"] += 1
        running["max"] = max(running["max"], running["now"])
        await asyncio.sleep(0.01 * (5 - x))
        running["now"] -= 1
        return x * 10

    out = [r async for r in prefetch(range(5), prepare, 2)]
    assert out == [0, 10, 20, 30, 40]
    assert running["max"] <= 2
