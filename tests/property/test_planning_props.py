"""
Property tests for upload planning, hash paging and fee arithmetic.
"""
from __future__ import annotations

from ethstorage_sdk.constants import (
    BLOB_GASPRICE_UPDATE_FRACTION,
    MAX_BLOB_COUNT,
    MAX_CHUNKS,
    OP_BLOB_DATA_SIZE,
    UploadType,
)
from ethstorage_sdk.tx.fees import blob_gas_price, bump, fake_exponential
from ethstorage_sdk.upload.diff import batch_unchanged, hash_pages
from ethstorage_sdk.upload.ordering import OrderedBuffer
from ethstorage_sdk.upload.planner import plan_upload

from tests.property import given, st


@given(st.integers(min_value=1, max_value=50 * OP_BLOB_DATA_SIZE))
def test_blob_plan_covers_content_exactly(length):
    plan = plan_upload(UploadType.BLOB, length)
    assert plan.chunk_count == -(-length // OP_BLOB_DATA_SIZE)
    assert sum(c.size for c in plan.chunks) == length
    assert all(0 < c.size <= OP_BLOB_DATA_SIZE for c in plan.chunks)
    assert plan.chunks[-1].size == length - OP_BLOB_DATA_SIZE * (plan.chunk_count - 1)

    ids = [i for b in plan.batches for i in b.chunk_ids]
    assert ids == list(range(plan.chunk_count))
    assert all(1 <= len(b) <= MAX_BLOB_COUNT for b in plan.batches)
    assert all(len(b) == MAX_BLOB_COUNT for b in plan.batches[:-1])


@given(st.integers(min_value=0, max_value=200_000), st.integers(min_value=1, max_value=30_000))
def test_calldata_plan_covers_content(length, unit):
    plan = plan_upload(UploadType.CALLDATA, length, calldata_chunk_size=unit)
    assert sum(c.size for c in plan.chunks) == length
    assert plan.chunk_count == max(1, -(-length // unit))
    assert all(len(b) == 1 for b in plan.batches)


@given(st.dictionaries(st.text(min_size=1, max_size=8), st.integers(min_value=0, max_value=400), max_size=8))
def test_hash_pages_partition_every_id_once(counts):
    pages = hash_pages(counts)
    assert all(0 < sum(len(ids) for _, ids in p) <= MAX_CHUNKS for p in pages)
    seen = {}
    for page in pages:
        for key, ids in page:
            seen.setdefault(key, []).extend(ids)
    assert seen == {k: list(range(n)) for k, n in counts.items() if n > 0}


@given(
    st.lists(st.binary(min_size=24, max_size=24), min_size=0, max_size=10),
    st.integers(min_value=0, max_value=12),
    st.integers(min_value=1, max_value=3),
)
def test_batch_unchanged_only_on_full_match(remote, first, n):
    local = [remote[i] if i < len(remote) else b"\xff" * 24 for i in range(first, first + n)]
    expected = first + n <= len(remote)
    assert batch_unchanged(first, local, remote) is expected


@given(st.permutations(list(range(12))))
def test_ordered_buffer_releases_in_index_order(order):
    buf = OrderedBuffer()
    out = []
    for i in order:
        out.extend(buf.put(i, i))
    assert out == list(range(12))
    assert buf.pending == 0


@given(
    st.integers(min_value=0, max_value=10 * BLOB_GASPRICE_UPDATE_FRACTION),
    st.integers(min_value=0, max_value=BLOB_GASPRICE_UPDATE_FRACTION),
)
def test_blob_price_is_monotonic_in_excess_gas(excess, delta):
    assert blob_gas_price(excess) <= blob_gas_price(excess + delta)
    assert fake_exponential(1, excess, BLOB_GASPRICE_UPDATE_FRACTION) >= 1


@given(st.integers(min_value=0, max_value=10**30), st.integers(min_value=0, max_value=500))
def test_bump_never_lowers_a_fee(value, pct):
    bumped = bump(value, pct)
    assert bumped >= value
    assert bumped == value * (100 + pct) // 100
