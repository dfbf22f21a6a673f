"""
EthStorage SDK constants.

Protocol-level geometry for EIP-4844 blobs, payload capacities of the two blob
encodings, batching/paging limits and the built-in network table. These values
are dependency-free and safe to import from anywhere.

Runtime configuration (endpoints, keys, concurrency) lives in
`ethstorage_sdk.config`.
"""

from __future__ import annotations

from enum import IntEnum
from typing import Dict

# ------------------------------- blob geometry -------------------------------

#: Size of one field element slot inside a blob.
BYTES_PER_FIELD_ELEMENT: int = 32
#: Number of field elements per blob.
FIELD_ELEMENTS_PER_BLOB: int = 4096
#: Total blob size (131,072 bytes).
BLOB_SIZE: int = BYTES_PER_FIELD_ELEMENT * FIELD_ELEMENTS_PER_BLOB

#: Usable bytes per field element in the legacy (padded) encoding.
LEGACY_BYTES_PER_FIELD_ELEMENT: int = 31
#: Payload capacity of one legacy-encoded blob.
LEGACY_BLOB_DATA_SIZE: int = LEGACY_BYTES_PER_FIELD_ELEMENT * FIELD_ELEMENTS_PER_BLOB

#: Encode/decode rounds of the compact encoding (4 field elements per round).
COMPACT_ROUNDS: int = 1024
#: Version byte written at the head of a compact-encoded blob.
COMPACT_ENCODING_VERSION: int = 0
#: Payload capacity of one compact-encoded blob (130,044 bytes).
OP_BLOB_DATA_SIZE: int = (4 * 31 + 3) * 1024 - 4

# --------------------------------- batching ----------------------------------

#: Hard protocol ceiling of blobs carried by one chunk-write transaction.
MAX_BLOB_COUNT: int = 3
#: Ceiling of independent key->blob writes in one KV `putBlobs` transaction.
BLOB_COUNT_LIMIT: int = 6
#: Max chunk ids per `getChunkHashesBatch` eth_call (30M read-gas ceiling).
MAX_CHUNKS: int = 120

# -------------------------------- calldata -----------------------------------

#: Fixed ABI/tx overhead reserved inside a 24 KiB calldata chunk.
CALLDATA_OVERHEAD: int = 326
#: Practical calldata ceiling used as the chunk unit in calldata mode.
MAX_CALLDATA_CHUNK_SIZE: int = 24 * 1024 - CALLDATA_OVERHEAD

# ----------------------------------- fees ------------------------------------

MIN_BLOB_GASPRICE: int = 1
BLOB_GASPRICE_UPDATE_FRACTION: int = 3338477
#: Default priority fee when the node does not answer eth_maxPriorityFeePerGas.
DEFAULT_PRIORITY_FEE: int = 1_000_000_000
WEI_PER_ETHER: int = 10**18

# -------------------------------- concurrency --------------------------------

#: Fixed fan-out ceiling for upload batch preparation.
UPLOAD_FANOUT: int = 4
#: Clamp range for download chunk fetch concurrency.
DOWNLOAD_CONCURRENCY_MIN: int = 2
DOWNLOAD_CONCURRENCY_MAX: int = 20
#: Concurrency for hash page fetches in `fetch_hashes`.
HASH_FETCH_CONCURRENCY: int = 5

# --------------------------------- contract ----------------------------------

#: FlatDirectory contract version this SDK speaks.
FLAT_DIRECTORY_CONTRACT_VERSION: str = "1.0.0"

#: Fixed dummy versioned hash used to estimate `putBlob` gas without a real blob.
DUMMY_VERSIONED_COMMITMENT_HASH: str = (
    "0x01f32ebe6ad26adca597cdb198f041f5d96fc197e3de72e299e86fbf1f5817c8"
)

SEPOLIA_CHAIN_ID: int = 11155111
QUARKCHAIN_L2_DEVNET_CHAIN_ID: int = 42069
QUARKCHAIN_L2_TESTNET_CHAIN_ID: int = 3335

#: chain id -> EthStorage contract address
ETHSTORAGE_MAPPING: Dict[int, str] = {
    SEPOLIA_CHAIN_ID: "0x804C520d3c084C805E37A35E90057Ac32831F96f",
    QUARKCHAIN_L2_DEVNET_CHAIN_ID: "0x90a708C0dca081ca48a9851a8A326775155f87Fd",
    QUARKCHAIN_L2_TESTNET_CHAIN_ID: "0x64003adbdf3014f7E38FC6BE752EB047b95da89A",
}


class UploadType(IntEnum):
    """Storage mode of a key, as reported by `getUploadInfo`."""

    UNDEFINED = 0
    CALLDATA = 1
    BLOB = 2


class DecodeType(IntEnum):
    """Server-side decoding applied by the KV contract `get`."""

    RAW_DATA = 0
    PADDING_PER_31_BYTES = 1
    OPTIMISM_COMPACT = 2


__all__ = [
    "BYTES_PER_FIELD_ELEMENT",
    "FIELD_ELEMENTS_PER_BLOB",
    "BLOB_SIZE",
    "LEGACY_BYTES_PER_FIELD_ELEMENT",
    "LEGACY_BLOB_DATA_SIZE",
    "COMPACT_ROUNDS",
    "COMPACT_ENCODING_VERSION",
    "OP_BLOB_DATA_SIZE",
    "MAX_BLOB_COUNT",
    "BLOB_COUNT_LIMIT",
    "MAX_CHUNKS",
    "CALLDATA_OVERHEAD",
    "MAX_CALLDATA_CHUNK_SIZE",
    "MIN_BLOB_GASPRICE",
    "BLOB_GASPRICE_UPDATE_FRACTION",
    "DEFAULT_PRIORITY_FEE",
    "WEI_PER_ETHER",
    "UPLOAD_FANOUT",
    "DOWNLOAD_CONCURRENCY_MIN",
    "DOWNLOAD_CONCURRENCY_MAX",
    "HASH_FETCH_CONCURRENCY",
    "FLAT_DIRECTORY_CONTRACT_VERSION",
    "DUMMY_VERSIONED_COMMITMENT_HASH",
    "ETHSTORAGE_MAPPING",
    "UploadType",
    "DecodeType",
]
