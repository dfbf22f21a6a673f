"""
Signing identity.

`Wallet` turns a private key into an address and signs EIP-1559 (type 2) and
EIP-4844 (type 3) transactions with eth-account. Blob transactions are signed
over their payload only; the network form

    0x03 || rlp([tx_payload_body, blobs, commitments, proofs])

is assembled here from the commitments and proofs computed by the
`CommitmentEngine`, so KZG work is never done twice.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Sequence

import rlp
from eth_account import Account
from eth_utils import to_checksum_address

from .errors import ValidationError
from .utils.bytes import ensure_bytes, to_hex

__all__ = ["SignedTx", "Wallet"]

BLOB_TX_TYPE = 3


@dataclass(frozen=True)
class SignedTx:
    raw: bytes
    tx_hash: str
    nonce: int


class Wallet:
    def __init__(self, private_key: str) -> None:
        try:
            self._account = Account.from_key(private_key)
        except (ValueError, TypeError) as e:
            raise ValidationError(f"invalid private key: {e}") from e

    @property
    def address(self) -> str:
        return to_checksum_address(self._account.address)

    def sign(self, tx: Dict[str, Any]) -> SignedTx:
        """Sign a type-2 transaction dict (wallet-style camelCase keys)."""
        signed = self._account.sign_transaction(tx)
        return SignedTx(raw=bytes(signed.raw_transaction), tx_hash=to_hex(signed.hash), nonce=int(tx["nonce"]))

    def sign_blob_tx(
        self,
        tx: Dict[str, Any],
        blobs: Sequence[bytes],
        commitments: Sequence[bytes],
        proofs: Sequence[bytes],
    ) -> SignedTx:
        """
        Sign a type-3 transaction and wrap it with its sidecar.

        `tx` must already carry `blobVersionedHashes` and `maxFeePerBlobGas`.
        """
        if not (len(blobs) == len(commitments) == len(proofs)):
            raise ValidationError("blobs, commitments and proofs must have equal length")
        body = {k: v for k, v in tx.items() if k != "blobs"}
        body["type"] = BLOB_TX_TYPE
        signed = self._account.sign_transaction(body)
        payload = bytes(signed.raw_transaction)
        if payload[0] != BLOB_TX_TYPE:
            raise ValidationError(f"unexpected signed tx type {payload[0]}")
        fields = rlp.decode(payload[1:])
        wrapped = rlp.encode(
            [
                fields,
                [ensure_bytes(b) for b in blobs],
                [ensure_bytes(c) for c in commitments],
                [ensure_bytes(p) for p in proofs],
            ]
        )
        return SignedTx(
            raw=bytes([BLOB_TX_TYPE]) + wrapped,
            tx_hash=to_hex(signed.hash),
            nonce=int(tx["nonce"]),
        )
