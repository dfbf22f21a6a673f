"""
Contract ABI fragments and call codecs (eth-abi).

Only the entry points this SDK calls are described. Each `ContractFunction`
knows its 4-byte selector and how to encode inputs / decode outputs; the
reverse lookup `decode_call` maps raw calldata back to (name, args), which is
handy for logging and for in-memory contract fakes.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Tuple

from eth_abi import decode, encode
from eth_utils import function_signature_to_4byte_selector

from ..errors import ValidationError

__all__ = [
    "ContractFunction",
    "FLAT_DIRECTORY_FUNCTIONS",
    "ETHSTORAGE_FUNCTIONS",
    "decode_call",
]


@dataclass(frozen=True)
class ContractFunction:
    name: str
    inputs: Tuple[str, ...] = ()
    outputs: Tuple[str, ...] = ()

    @property
    def signature(self) -> str:
        return f"{self.name}({','.join(self.inputs)})"

    @property
    def selector(self) -> bytes:
        return function_signature_to_4byte_selector(self.signature)

    def encode_call(self, *args: Any) -> bytes:
        if len(args) != len(self.inputs):
            raise ValidationError(
                f"{self.name} expects {len(self.inputs)} arguments, got {len(args)}"
            )
        return self.selector + encode(list(self.inputs), list(args))

    def decode_input(self, data: bytes) -> Tuple[Any, ...]:
        if data[:4] != self.selector:
            raise ValidationError(f"calldata is not a {self.name} call")
        return tuple(decode(list(self.inputs), data[4:]))

    def decode_output(self, data: bytes) -> Tuple[Any, ...]:
        return tuple(decode(list(self.outputs), data))


def _fns(*items: ContractFunction) -> Dict[str, ContractFunction]:
    return {f.name: f for f in items}


FLAT_DIRECTORY_FUNCTIONS: Mapping[str, ContractFunction] = _fns(
    ContractFunction("version", (), ("string",)),
    ContractFunction("isSupportBlob", (), ("bool",)),
    ContractFunction("getChunkHash", ("bytes", "uint256"), ("bytes32",)),
    ContractFunction("writeChunkByCalldata", ("bytes", "uint256", "bytes")),
    ContractFunction("writeChunksByBlobs", ("bytes", "uint256[]", "uint256[]")),
    ContractFunction("remove", ("bytes",), ("uint256",)),
    ContractFunction("setDefault", ("bytes",)),
    ContractFunction("truncate", ("bytes", "uint256"), ("uint256",)),
    ContractFunction("readChunk", ("bytes", "uint256"), ("bytes", "bool")),
    ContractFunction("countChunks", ("bytes",), ("uint256",)),
    ContractFunction("getUploadInfo", ("bytes",), ("uint8", "uint256", "uint256")),
    ContractFunction("getChunkHashesBatch", ("(bytes,uint256[])[]",), ("bytes32[]",)),
    ContractFunction("getChunkCountsBatch", ("bytes[]",), ("uint256[]",)),
)

ETHSTORAGE_FUNCTIONS: Mapping[str, ContractFunction] = _fns(
    ContractFunction("putBlobs", ("bytes32[]", "uint256[]", "uint256[]")),
    ContractFunction("putBlob", ("bytes32", "uint256", "uint256")),
    ContractFunction("get", ("bytes32", "uint8", "uint256", "uint256"), ("bytes",)),
    ContractFunction("size", ("bytes32",), ("uint256",)),
    ContractFunction("upfrontPayment", (), ("uint256",)),
)


def decode_call(
    functions: Mapping[str, ContractFunction], data: bytes
) -> Tuple[str, Tuple[Any, ...]]:
    """Map raw calldata to (function name, decoded args)."""
    selector = bytes(data[:4])
    for fn in functions.values():
        if fn.selector == selector:
            return fn.name, fn.decode_input(bytes(data))
    raise ValidationError(f"unknown selector 0x{selector.hex()}")
