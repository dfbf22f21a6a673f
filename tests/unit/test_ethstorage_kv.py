from typing import Any, Dict, List

import pytest
from eth_utils import to_checksum_address

from ethstorage_sdk.blobs.codec import decode_op_blob
from ethstorage_sdk.config import SDKConfig
from ethstorage_sdk.constants import (
    BLOB_SIZE,
    DUMMY_VERSIONED_COMMITMENT_HASH,
    ETHSTORAGE_MAPPING,
    OP_BLOB_DATA_SIZE,
    SEPOLIA_CHAIN_ID,
    DecodeType,
)
from ethstorage_sdk.contracts.abi import ETHSTORAGE_FUNCTIONS, decode_call
from ethstorage_sdk.contracts.ethstorage import EthStorageContract
from ethstorage_sdk.errors import CapabilityError, EthStorageError, RpcError, ValidationError
from ethstorage_sdk.ethstorage import EthStorage, resolve_ethstorage_address
from ethstorage_sdk.rpc.eth import FeeData
from ethstorage_sdk.tx.build import PreparedTx
from ethstorage_sdk.types import TxResult
from ethstorage_sdk.utils.hash import key_hash

from tests.fakes import SENDER

UPFRONT = 1_500


class FakeKvContract(EthStorageContract):
    def __init__(self) -> None:
        super().__init__(eth=None, address=ETHSTORAGE_MAPPING[SEPOLIA_CHAIN_ID])  # type: ignore[arg-type]
        self.values: Dict[tuple, bytes] = {}
        self.reads: List[tuple] = []

    async def upfront_payment(self) -> int:
        return UPFRONT

    async def size(self, key: bytes, *, owner: str) -> int:
        return len(self.values.get((owner, key), b""))

    async def get(self, key, decode_type, offset, length, *, owner):
        self.reads.append((owner, key, decode_type, offset, length))
        return self.values[(owner, key)][offset : offset + length]


class FakeEstimateEth:
    def __init__(self) -> None:
        self.requests: List[Dict[str, Any]] = []

    async def estimate_gas(self, tx):
        self.requests.append(tx)
        return 80_000


class FakeBuilder:
    def __init__(self) -> None:
        self.eth = FakeEstimateEth()

    async def get_blob_gas_price(self):
        return 3

    async def get_gas_price(self):
        return FeeData(max_fee_per_gas=20, max_priority_fee_per_gas=1, gas_price=10)


class FakeKvUploader:
    address = SENDER

    def __init__(self) -> None:
        self.builder = FakeBuilder()
        self.sent: List[PreparedTx] = []
        self.fail_send = False

    async def prepare_blob_tx(self, base_tx, blobs, commitments=None, *, gas_inc_pct=0):
        return PreparedTx(tx=dict(base_tx), blobs=tuple(blobs))

    async def send_tx_locked(self, prepared, *, confirm_nonce=True):
        if self.fail_send:
            raise RpcError("insufficient funds for blob fee", code=-32000)
        self.sent.append(prepared)
        return "0x" + "ab" * 32

    async def get_transaction_result(self, tx_hash):
        return TxResult(tx_hash=tx_hash, success=True, cost=99, block_number=1)


def _kv(read=True):
    contract = FakeKvContract()
    uploader = FakeKvUploader()
    es = EthStorage(
        SDKConfig(private_key="0x" + "01" * 32),
        contract=contract,
        uploader=uploader,  # type: ignore[arg-type]
        read_contract=contract if read else None,
    )
    return es, contract, uploader


def test_resolve_address():
    assert resolve_ethstorage_address(None, SEPOLIA_CHAIN_ID) == ETHSTORAGE_MAPPING[SEPOLIA_CHAIN_ID]
    custom = "0x" + "ab" * 20
    assert resolve_ethstorage_address(custom, 1).lower() == custom
    with pytest.raises(CapabilityError):
        resolve_ethstorage_address(None, 1)


@pytest.mark.asyncio
async def test_write_single_blob():
    es, _, uploader = _kv()
    result = await es.write("profile", b"hello kv")

    assert result.success
    (prepared,) = uploader.sent
    name, args = decode_call(ETHSTORAGE_FUNCTIONS, prepared.tx["data"])
    assert name == "putBlob"
    assert args == (key_hash("profile"), 0, 8)
    assert prepared.tx["value"] == UPFRONT
    assert decode_op_blob(prepared.blobs[0]) == b"hello kv"


@pytest.mark.asyncio
async def test_write_blobs_batch():
    es, _, uploader = _kv()
    result = await es.write_blobs(["a", "b", "c"], [b"1", b"22", b"333"])

    assert result.success
    (prepared,) = uploader.sent
    name, args = decode_call(ETHSTORAGE_FUNCTIONS, prepared.tx["data"])
    assert name == "putBlobs"
    assert list(args[0]) == [key_hash(k) for k in "abc"]
    assert list(args[1]) == [0, 1, 2]
    assert list(args[2]) == [1, 2, 3]
    assert prepared.tx["value"] == UPFRONT * 3
    assert [decode_op_blob(b) for b in prepared.blobs] == [b"1", b"22", b"333"]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "keys, data",
    [
        (["a"], [b"1", b"2"]),
        ([], []),
        (list("abcdefg"), [b"x"] * 7),
        (["a"], [b""]),
        ([""], [b"x"]),
    ],
)
async def test_write_blobs_validation(keys, data):
    es, _, uploader = _kv()
    with pytest.raises(ValidationError):
        await es.write_blobs(keys, data)
    assert uploader.sent == []


@pytest.mark.asyncio
async def test_write_validation():
    es, _, _ = _kv()
    with pytest.raises(ValidationError):
        await es.write("k", b"")
    with pytest.raises(ValidationError):
        await es.write("k", b"x" * (OP_BLOB_DATA_SIZE + 1))
    with pytest.raises(ValidationError):
        await es.write("k", "text")  # type: ignore[arg-type]
    with pytest.raises(ValidationError):
        await es.write("", b"x")


@pytest.mark.asyncio
async def test_send_failure_returns_unsuccessful_result():
    es, _, uploader = _kv()
    uploader.fail_send = True
    result = await es.write("k", b"x")
    assert result == TxResult(tx_hash="0x", success=False, cost=0)


@pytest.mark.asyncio
async def test_estimate_cost_uses_dummy_versioned_hash():
    es, _, uploader = _kv()
    cost = await es.estimate_cost("k", b"x" * 10)

    assert cost.storage_cost == UPFRONT
    assert cost.gas_cost == (20 + 1) * 80_000 + 3 * BLOB_SIZE
    (req,) = uploader.builder.eth.requests
    assert req["blobVersionedHashes"] == [DUMMY_VERSIONED_COMMITMENT_HASH]
    assert req["from"] == SENDER
    assert req["type"] == 3


@pytest.mark.asyncio
async def test_read_own_and_foreign_values():
    es, contract, _ = _kv()
    other = to_checksum_address("0x" + "cd" * 20)
    contract.values[(SENDER, key_hash("k"))] = b"mine"
    contract.values[(other, key_hash("k"))] = b"theirs"

    assert await es.read("k") == b"mine"
    assert await es.read("k", DecodeType.RAW_DATA, address=other) == b"theirs"
    assert contract.reads[-1][2] is DecodeType.RAW_DATA

    with pytest.raises(EthStorageError):
        await es.read("missing")


@pytest.mark.asyncio
async def test_read_needs_read_endpoint():
    es, _, _ = _kv(read=False)
    with pytest.raises(ValidationError):
        await es.read("k")


@pytest.mark.asyncio
async def test_close_is_idempotent():
    class Res:
        closed = 0

        async def close(self):
            Res.closed += 1

    es = EthStorage(
        SDKConfig(private_key="0x" + "01" * 32),
        contract=FakeKvContract(),
        uploader=FakeKvUploader(),  # type: ignore[arg-type]
        resources=[Res(), Res()],
    )
    async with es:
        pass
    await es.close()
    assert Res.closed == 2
