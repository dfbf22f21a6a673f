"""EthStorage key/value contract binding (putBlob / putBlobs / get / size)."""

from __future__ import annotations

from typing import Any, Dict, Sequence

from ..constants import DecodeType
from ..rpc.eth import EthRpc
from .abi import ETHSTORAGE_FUNCTIONS as FNS

__all__ = ["EthStorageContract"]


class EthStorageContract:
    def __init__(self, eth: EthRpc, address: str) -> None:
        self.eth = eth
        self.address = address

    async def upfront_payment(self) -> int:
        f = FNS["upfrontPayment"]
        (v,) = f.decode_output(await self.eth.call(self.address, f.encode_call()))
        return int(v)

    async def size(self, key: bytes, *, owner: str) -> int:
        """Stored size for `key` under `owner`; 0 when nothing is stored."""
        f = FNS["size"]
        out = await self.eth.call(self.address, f.encode_call(key), sender=owner)
        (n,) = f.decode_output(out)
        return int(n)

    async def get(
        self, key: bytes, decode_type: DecodeType, offset: int, length: int, *, owner: str
    ) -> bytes:
        f = FNS["get"]
        out = await self.eth.call(
            self.address,
            f.encode_call(key, int(decode_type), int(offset), int(length)),
            sender=owner,
        )
        (data,) = f.decode_output(out)
        return bytes(data)

    def put_blob(self, key: bytes, blob_idx: int, length: int, *, value: int) -> Dict[str, Any]:
        return {
            "to": self.address,
            "data": FNS["putBlob"].encode_call(key, int(blob_idx), int(length)),
            "value": int(value),
        }

    def put_blobs(
        self,
        keys: Sequence[bytes],
        blob_idxs: Sequence[int],
        lengths: Sequence[int],
        *,
        value: int,
    ) -> Dict[str, Any]:
        return {
            "to": self.address,
            "data": FNS["putBlobs"].encode_call(list(keys), list(blob_idxs), list(lengths)),
            "value": int(value),
        }
