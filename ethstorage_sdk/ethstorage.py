"""
`EthStorage`: single-blob key/value store on the EthStorage contract.

Keys are hashed (keccak256 of the UTF-8 key) and scoped to the writing
account; each value must fit in one compact-encoded blob. Writes and
estimates go to `rpc_url`, reads to `ethstorage_rpc_url`.

The contract address comes from `config.address`, else from the built-in
chain id table; other networks are rejected.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, List, Optional, Sequence

from eth_utils import to_checksum_address

from .blobs.codec import encode_op_blob
from .config import SDKConfig
from .constants import (
    BLOB_COUNT_LIMIT,
    BLOB_SIZE,
    DUMMY_VERSIONED_COMMITMENT_HASH,
    ETHSTORAGE_MAPPING,
    OP_BLOB_DATA_SIZE,
    DecodeType,
)
from .contracts.ethstorage import EthStorageContract
from .errors import CapabilityError, EthStorageError, ValidationError
from .kzg.engine import CommitmentEngine
from .rpc.eth import EthRpc
from .tx.build import TransactionBuilder
from .tx.send import Uploader
from .types import CostEstimate, TxResult
from .utils.bytes import BytesLike
from .utils.hash import key_hash
from .wallet import Wallet

__all__ = ["EthStorage", "resolve_ethstorage_address"]


def resolve_ethstorage_address(address: Optional[str], chain_id: int) -> str:
    if address:
        return to_checksum_address(address)
    try:
        return ETHSTORAGE_MAPPING[chain_id]
    except KeyError:
        raise CapabilityError(f"EthStorage: network {chain_id} not supported yet") from None


def _check_data(data: BytesLike) -> bytes:
    if not isinstance(data, (bytes, bytearray, memoryview)):
        raise ValidationError(f"invalid data of type {type(data).__name__}")
    data = bytes(data)
    if not 0 < len(data) <= OP_BLOB_DATA_SIZE:
        raise ValidationError(
            f"the length of data should be > 0 and <= {OP_BLOB_DATA_SIZE}, got {len(data)}"
        )
    return data


def _check_key(key: str) -> bytes:
    if not key or not isinstance(key, str):
        raise ValidationError("key must be a non-empty string")
    return key_hash(key)


class EthStorage:
    def __init__(
        self,
        config: SDKConfig,
        *,
        contract: EthStorageContract,
        uploader: Uploader,
        read_contract: Optional[EthStorageContract] = None,
        resources: Sequence[Any] = (),
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.config = config
        self.contract = contract
        self.uploader = uploader
        self.read_contract = read_contract
        self.log = logger or logging.getLogger("ethstorage_sdk.ethstorage")
        self._resources = list(resources)
        self._closed = False

    @classmethod
    async def create(
        cls,
        config: Optional[SDKConfig] = None,
        *,
        engine: Optional[CommitmentEngine] = None,
        logger: Optional[logging.Logger] = None,
        **rpc_kwargs: Any,
    ) -> "EthStorage":
        config = config or SDKConfig.from_env()
        if config.read_only:
            raise ValidationError("EthStorage needs a private key")
        wallet = Wallet(config.private_key)  # type: ignore[arg-type]

        rpc_kwargs.setdefault("headers", config.http_headers())
        resources: List[Any] = []
        try:
            eth = EthRpc.from_url(config.rpc_url, timeout=config.request_timeout, **rpc_kwargs)
            resources.append(eth)
            read_contract: Optional[EthStorageContract] = None
            chain_id = config.chain_id or await eth.chain_id()
            address = resolve_ethstorage_address(config.address, chain_id)
            if config.ethstorage_rpc_url:
                es_eth = EthRpc.from_url(
                    config.ethstorage_rpc_url, timeout=config.request_timeout, **rpc_kwargs
                )
                resources.append(es_eth)
                read_contract = EthStorageContract(es_eth, address)
            if engine is None:
                engine = CommitmentEngine.from_settings(
                    workers=config.kzg_workers, trusted_setup=config.trusted_setup
                )
                resources.append(engine)
        except BaseException:
            for r in reversed(resources):
                await r.close()
            raise

        builder = TransactionBuilder(eth, engine, sender=wallet.address, chain_id=chain_id)
        return cls(
            config,
            contract=EthStorageContract(eth, address),
            uploader=Uploader(eth, wallet, builder),
            read_contract=read_contract,
            resources=resources,
            logger=logger,
        )

    @property
    def address(self) -> str:
        return self.contract.address

    @property
    def sender(self) -> str:
        return self.uploader.address

    # ------------------------------- estimate --------------------------------

    async def estimate_cost(self, key: str, data: BytesLike) -> CostEstimate:
        hashed = _check_key(key)
        data = _check_data(data)
        builder = self.uploader.builder
        storage_cost, blob_gas_price, fee = await asyncio.gather(
            self.contract.upfront_payment(),
            builder.get_blob_gas_price(),
            builder.get_gas_price(),
        )
        tx = self.contract.put_blob(hashed, 0, len(data), value=storage_cost)
        tx.update(
            {
                "from": self.sender,
                "type": 3,
                "maxFeePerBlobGas": blob_gas_price,
                "blobVersionedHashes": [DUMMY_VERSIONED_COMMITMENT_HASH],
            }
        )
        gas_limit = await builder.eth.estimate_gas(tx)
        gas_cost = (fee.max_fee_per_gas + fee.max_priority_fee_per_gas) * gas_limit
        gas_cost += blob_gas_price * BLOB_SIZE
        return CostEstimate(storage_cost=storage_cost, gas_cost=gas_cost)

    # -------------------------------- writes ---------------------------------

    async def _send_blobs(self, base_tx: dict, blobs: List[bytes], what: str) -> TxResult:
        try:
            prepared = await self.uploader.prepare_blob_tx(
                base_tx, blobs, gas_inc_pct=self.config.gas_inc_pct
            )
            tx_hash = await self.uploader.send_tx_locked(
                prepared, confirm_nonce=self.config.confirm_nonce
            )
            self.log.info("EthStorage: tx hash is %s", tx_hash)
            return await self.uploader.get_transaction_result(tx_hash)
        except Exception as e:
            self.log.error("EthStorage: %s failed: %s", what, e)
            return TxResult(tx_hash="0x", success=False, cost=0)

    async def write(self, key: str, data: BytesLike) -> TxResult:
        """Store `data` under `key` in one blob. Submission failures return success=False."""
        hashed = _check_key(key)
        data = _check_data(data)
        storage_cost = await self.contract.upfront_payment()
        base_tx = self.contract.put_blob(hashed, 0, len(data), value=storage_cost)
        return await self._send_blobs(base_tx, [encode_op_blob(data)], "write blob")

    async def write_blobs(self, keys: Sequence[str], data: Sequence[BytesLike]) -> TxResult:
        """Store up to BLOB_COUNT_LIMIT independent values, one blob each, in one transaction."""
        if len(keys) != len(data):
            raise ValidationError("keys and data must have the same length")
        if not 0 < len(keys) <= BLOB_COUNT_LIMIT:
            raise ValidationError(f"the number of blobs should be > 0 and <= {BLOB_COUNT_LIMIT}")
        hashed = [_check_key(k) for k in keys]
        values = [_check_data(d) for d in data]

        storage_cost = await self.contract.upfront_payment()
        base_tx = self.contract.put_blobs(
            hashed,
            list(range(len(values))),
            [len(v) for v in values],
            value=storage_cost * len(values),
        )
        return await self._send_blobs(base_tx, [encode_op_blob(v) for v in values], "write blobs")

    # --------------------------------- reads ---------------------------------

    async def read(
        self,
        key: str,
        decode_type: DecodeType = DecodeType.OPTIMISM_COMPACT,
        address: Optional[str] = None,
    ) -> bytes:
        """
        Value stored under `key` by `address` (default: this wallet).

        Raises EthStorageError when nothing is stored for that key and owner.
        """
        hashed = _check_key(key)
        if self.read_contract is None:
            raise ValidationError("reading content needs ethstorage_rpc_url")
        owner = to_checksum_address(address) if address else self.sender
        size = await self.read_contract.size(hashed, owner=owner)
        if size == 0:
            raise EthStorageError(f"there is no data for key {key!r} under address {owner}")
        return await self.read_contract.get(hashed, DecodeType(decode_type), 0, size, owner=owner)

    # ------------------------------- lifecycle -------------------------------

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        for r in reversed(self._resources):
            await r.close()

    async def __aenter__(self) -> "EthStorage":
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()
