"""
EthStorage SDK (Python)
Convenience exports for the most common client APIs.
"""

from .version import __version__  # noqa: F401

# Core config & errors
from .config import SDKConfig  # noqa: F401
from .errors import (  # noqa: F401
    EthStorageError,
    ValidationError,
    CapabilityError,
    CodecError,
    ConfigError,
    ErrorKind,
    RpcError,
    RetryError,
    TxError,
)
from .constants import (  # noqa: F401
    BLOB_SIZE,
    OP_BLOB_DATA_SIZE,
    LEGACY_BLOB_DATA_SIZE,
    MAX_BLOB_COUNT,
    UploadType,
    DecodeType,
)

# Data model
from .types import (  # noqa: F401
    CostEstimate,
    UploadResult,
    TxResult,
    UploadRequest,
    EstimateRequest,
    DownloadRequest,
    UploadProgress,
    UploadFailed,
    UploadFinished,
    DownloadChunk,
    DownloadFailed,
    DownloadFinished,
    UploadCallback,
    DownloadCallback,
)

# Codec & commitments
from .blobs.codec import (  # noqa: F401
    encode_blobs,
    decode_blob,
    decode_blobs,
    encode_op_blob,
    encode_op_blobs,
    decode_op_blob,
    decode_op_blobs,
)
from .kzg.engine import CommitmentEngine, versioned_hash, storage_hash  # noqa: F401

# Content sources
from .content import BytesContent, FileContent  # noqa: F401

# Facades
from .flat_directory import FlatDirectory  # noqa: F401
from .ethstorage import EthStorage  # noqa: F401

__all__ = [
    "__version__",
    # Core
    "SDKConfig",
    "EthStorageError", "ValidationError", "CapabilityError", "CodecError",
    "ConfigError", "ErrorKind", "RpcError", "RetryError", "TxError",
    "BLOB_SIZE", "OP_BLOB_DATA_SIZE", "LEGACY_BLOB_DATA_SIZE", "MAX_BLOB_COUNT",
    "UploadType", "DecodeType",
    # Data model
    "CostEstimate", "UploadResult", "TxResult",
    "UploadRequest", "EstimateRequest", "DownloadRequest",
    "UploadProgress", "UploadFailed", "UploadFinished",
    "DownloadChunk", "DownloadFailed", "DownloadFinished",
    "UploadCallback", "DownloadCallback",
    # Codec & commitments
    "encode_blobs", "decode_blob", "decode_blobs",
    "encode_op_blob", "encode_op_blobs", "decode_op_blob", "decode_op_blobs",
    "CommitmentEngine", "versioned_hash", "storage_hash",
    # Content
    "BytesContent", "FileContent",
    # Facades
    "FlatDirectory", "EthStorage",
]
