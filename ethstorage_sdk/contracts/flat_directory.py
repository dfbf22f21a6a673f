"""
FlatDirectory contract binding.

Reads are `eth_call`s decoded with eth-abi; writes are returned as unsigned
transaction requests ({"to", "data", "value"}) for the `Uploader` to price,
sign and submit. File names are the UTF-8 bytes of the key.
"""

from __future__ import annotations

from typing import Any, Dict, List, Sequence, Tuple

from eth_abi.exceptions import DecodingError

from ..constants import UploadType
from ..rpc.eth import EthRpc
from ..types import UploadInfo
from .abi import FLAT_DIRECTORY_FUNCTIONS as FNS

__all__ = ["FlatDirectoryContract", "name_bytes"]


def name_bytes(key: str) -> bytes:
    return key.encode("utf-8")


class FlatDirectoryContract:
    def __init__(self, eth: EthRpc, address: str) -> None:
        self.eth = eth
        self.address = address

    async def _call(self, fn: str, *args: Any) -> Tuple[Any, ...]:
        f = FNS[fn]
        out = await self.eth.call(self.address, f.encode_call(*args))
        return f.decode_output(out)

    def _tx(self, fn: str, *args: Any, value: int = 0) -> Dict[str, Any]:
        return {"to": self.address, "data": FNS[fn].encode_call(*args), "value": int(value)}

    # ------------------------------ capabilities -------------------------------

    async def is_support_blob(self) -> bool:
        """False when the contract answers with empty return data (pre-blob deployment)."""
        try:
            (ok,) = await self._call("isSupportBlob")
        except DecodingError:
            return False
        return bool(ok)

    async def version(self) -> str:
        """"0" when the contract predates `version()`."""
        try:
            (v,) = await self._call("version")
        except DecodingError:
            return "0"
        return str(v)

    # -------------------------------- reads ----------------------------------

    async def get_upload_info(self, key: str) -> UploadInfo:
        mode, count, cost = await self._call("getUploadInfo", name_bytes(key))
        return UploadInfo(mode=UploadType(int(mode)), chunk_count=int(count), cost=int(cost))

    async def count_chunks(self, key: str) -> int:
        (n,) = await self._call("countChunks", name_bytes(key))
        return int(n)

    async def get_chunk_counts_batch(self, keys: Sequence[str]) -> List[int]:
        (counts,) = await self._call("getChunkCountsBatch", [name_bytes(k) for k in keys])
        return [int(c) for c in counts]

    async def get_chunk_hashes_batch(
        self, file_chunks: Sequence[Tuple[str, Sequence[int]]]
    ) -> List[bytes]:
        """Hashes for (key, chunk ids) pairs, flattened in request order."""
        arg = [(name_bytes(k), [int(i) for i in ids]) for k, ids in file_chunks]
        (hashes,) = await self._call("getChunkHashesBatch", arg)
        return [bytes(h) for h in hashes]

    async def read_chunk(self, key: str, chunk_id: int) -> bytes:
        data, _ = await self._call("readChunk", name_bytes(key), int(chunk_id))
        return bytes(data)

    # ------------------------------ tx builders ------------------------------

    def write_chunks_by_blobs(
        self, key: str, chunk_ids: Sequence[int], sizes: Sequence[int], *, value: int
    ) -> Dict[str, Any]:
        return self._tx(
            "writeChunksByBlobs", name_bytes(key), list(chunk_ids), list(sizes), value=value
        )

    def write_chunk_by_calldata(
        self, key: str, chunk_id: int, data: bytes, *, value: int
    ) -> Dict[str, Any]:
        return self._tx("writeChunkByCalldata", name_bytes(key), int(chunk_id), bytes(data), value=value)

    def truncate(self, key: str, chunk_count: int) -> Dict[str, Any]:
        return self._tx("truncate", name_bytes(key), int(chunk_count))

    def remove(self, key: str) -> Dict[str, Any]:
        return self._tx("remove", name_bytes(key))

    def set_default(self, name: str) -> Dict[str, Any]:
        return self._tx("setDefault", name_bytes(name))
