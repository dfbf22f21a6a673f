from .codec import (
    decode_blob,
    decode_blobs,
    decode_op_blob,
    decode_op_blobs,
    encode_blobs,
    encode_op_blob,
    encode_op_blobs,
    split_blobs,
)

__all__ = [
    "encode_blobs",
    "decode_blob",
    "decode_blobs",
    "encode_op_blob",
    "encode_op_blobs",
    "decode_op_blob",
    "decode_op_blobs",
    "split_blobs",
]
