"""
ethstorage_sdk.flat_directory
=============================

`FlatDirectory`: a chunked key -> content store on a FlatDirectory contract.

    async with await FlatDirectory.create(SDKConfig.from_env()) as fd:
        result = await fd.upload(UploadRequest(key="index.html", content=b"..."))
        data = await fd.download_bytes("index.html")

Writes go to `rpc_url` and need a private key. Reads (`download`) go to
`ethstorage_rpc_url`. A config without a private key yields a read-only
directory, which needs both `ethstorage_rpc_url` and `address`.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

from eth_utils import to_checksum_address

from .config import SDKConfig
from .constants import FLAT_DIRECTORY_CONTRACT_VERSION
from .contracts.flat_directory import FlatDirectoryContract
from .download import DownloadOrchestrator
from .errors import CapabilityError, ValidationError
from .kzg.engine import CommitmentEngine
from .rpc.eth import EthRpc
from .tx.build import TransactionBuilder
from .tx.send import Uploader
from .types import (
    CostEstimate,
    DownloadChunk,
    DownloadEvent,
    DownloadFailed,
    DownloadRequest,
    EstimateRequest,
    UploadEvent,
    UploadRequest,
    UploadResult,
)
from .upload.diff import DiffEngine
from .upload.estimate import CostEstimator
from .upload.orchestrator import UploadOrchestrator
from .wallet import Wallet

__all__ = ["FlatDirectory"]


class FlatDirectory:
    def __init__(
        self,
        config: SDKConfig,
        *,
        contract: FlatDirectoryContract,
        engine: CommitmentEngine,
        read_contract: Optional[FlatDirectoryContract] = None,
        uploader: Optional[Uploader] = None,
        support_blob: bool = False,
        resources: Sequence[Any] = (),
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.config = config
        self.contract = contract
        self.read_contract = read_contract
        self.engine = engine
        self.uploader = uploader
        self.support_blob = support_blob
        self.log = logger or logging.getLogger("ethstorage_sdk.flat_directory")
        self._resources = list(resources)
        self._closed = False

    # ------------------------------- factory ---------------------------------

    @classmethod
    async def create(
        cls,
        config: Optional[SDKConfig] = None,
        *,
        engine: Optional[CommitmentEngine] = None,
        logger: Optional[logging.Logger] = None,
        **rpc_kwargs: Any,
    ) -> "FlatDirectory":
        """
        Connect, query the contract capabilities and wire the upload/download pipeline.

        The contract must report version FLAT_DIRECTORY_CONTRACT_VERSION; a
        contract answering `isSupportBlob()` with empty data is calldata-only.
        Extra keyword arguments (e.g. `transport`) go to the RPC clients.
        """
        config = config or SDKConfig.from_env()
        log = logger or logging.getLogger("ethstorage_sdk.flat_directory")
        if not config.address:
            raise ValidationError("FlatDirectory needs a contract address")
        if config.read_only and not config.ethstorage_rpc_url:
            raise ValidationError("a read-only FlatDirectory needs ethstorage_rpc_url")
        address = to_checksum_address(config.address)

        rpc_kwargs.setdefault("headers", config.http_headers())
        resources: List[Any] = []
        try:
            eth = EthRpc.from_url(config.rpc_url, timeout=config.request_timeout, **rpc_kwargs)
            resources.append(eth)
            es_eth: Optional[EthRpc] = None
            if config.ethstorage_rpc_url:
                es_eth = EthRpc.from_url(
                    config.ethstorage_rpc_url, timeout=config.request_timeout, **rpc_kwargs
                )
                resources.append(es_eth)
            if engine is None:
                engine = CommitmentEngine.from_settings(
                    workers=config.kzg_workers, trusted_setup=config.trusted_setup
                )
                resources.append(engine)

            info_eth = es_eth if config.read_only and es_eth is not None else eth
            info = FlatDirectoryContract(info_eth, address)
            support_blob, version = await asyncio.gather(info.is_support_blob(), info.version())
            if version != FLAT_DIRECTORY_CONTRACT_VERSION:
                raise CapabilityError(
                    f"FlatDirectory contract version {version!r} is not supported; "
                    f"expected {FLAT_DIRECTORY_CONTRACT_VERSION}"
                )

            uploader: Optional[Uploader] = None
            if not config.read_only:
                wallet = Wallet(config.private_key)  # type: ignore[arg-type]
                chain_id = config.chain_id or await eth.chain_id()
                builder = TransactionBuilder(eth, engine, sender=wallet.address, chain_id=chain_id)
                uploader = Uploader(eth, wallet, builder)
        except BaseException:
            for r in reversed(resources):
                await r.close()
            raise

        log.debug(
            "FlatDirectory %s ready (blob=%s, read_only=%s)", address, support_blob, config.read_only
        )
        return cls(
            config,
            contract=FlatDirectoryContract(eth, address),
            read_contract=FlatDirectoryContract(es_eth, address) if es_eth is not None else None,
            engine=engine,
            uploader=uploader,
            support_blob=support_blob,
            resources=resources,
            logger=log,
        )

    @property
    def address(self) -> str:
        return self.contract.address

    @property
    def read_only(self) -> bool:
        return self.uploader is None

    def _require_uploader(self) -> Uploader:
        if self.uploader is None:
            raise ValidationError("this operation needs a private key (FlatDirectory is read-only)")
        return self.uploader

    def _require_read_contract(self) -> FlatDirectoryContract:
        if self.read_contract is None:
            raise ValidationError("reading content needs ethstorage_rpc_url")
        return self.read_contract

    # -------------------------------- upload ---------------------------------

    def _upload_orchestrator(self) -> UploadOrchestrator:
        return UploadOrchestrator(
            self.contract,
            self._require_uploader(),
            self.engine,
            DiffEngine(self.contract, logger=self.log),
            support_blob=self.support_blob,
            concurrency=self.config.upload_concurrency,
            calldata_chunk_size=self.config.calldata_chunk_size,
            gas_inc_pct=self.config.gas_inc_pct,
            confirm_nonce=self.config.confirm_nonce,
            logger=self.log,
        )

    def upload_stream(self, request: UploadRequest) -> AsyncIterator[UploadEvent]:
        return self._upload_orchestrator().stream(request)

    async def upload(self, request: UploadRequest) -> UploadResult:
        return await self._upload_orchestrator().run(request)

    async def estimate_cost(self, request: EstimateRequest) -> CostEstimate:
        uploader = self._require_uploader()
        estimator = CostEstimator(
            self.contract,
            uploader.builder,
            DiffEngine(self.contract, logger=self.log),
            support_blob=self.support_blob,
            calldata_chunk_size=self.config.calldata_chunk_size,
            gas_inc_pct=self.config.gas_inc_pct,
            logger=self.log,
        )
        return await estimator.estimate(request)

    async def fetch_hashes(self, keys: Sequence[str]) -> Dict[str, List[bytes]]:
        """Stored chunk hashes per key; pass the result as `chunk_hashes` to skip a lookup."""
        return await DiffEngine(self.contract, logger=self.log).fetch_hashes(keys)

    async def remove(self, key: str) -> bool:
        uploader = self._require_uploader()
        if not key:
            raise ValidationError("key must be a non-empty string")
        try:
            prepared = await uploader.prepare_tx(
                self.contract.remove(key), gas_inc_pct=self.config.gas_inc_pct
            )
            tx_hash = await uploader.send_tx_locked(prepared, confirm_nonce=self.config.confirm_nonce)
            self.log.info("Remove tx hash is %s", tx_hash)
            result = await uploader.get_transaction_result(tx_hash)
        except Exception as e:
            self.log.error("Failed to remove file %r: %s", key, e)
            return False
        return result.success

    async def set_default(self, filename: str) -> bool:
        """Point the directory's default file at `filename`; an empty name clears it."""
        uploader = self._require_uploader()
        try:
            prepared = await uploader.prepare_tx(
                self.contract.set_default(filename or ""), gas_inc_pct=self.config.gas_inc_pct
            )
            tx_hash = await uploader.send_tx_locked(prepared, confirm_nonce=self.config.confirm_nonce)
            self.log.info("Set default tx hash is %s", tx_hash)
            result = await uploader.get_transaction_result(tx_hash)
        except Exception as e:
            self.log.error("Failed to set default file %r: %s", filename, e)
            return False
        return result.success

    # ------------------------------- download --------------------------------

    def _download_orchestrator(self) -> DownloadOrchestrator:
        return DownloadOrchestrator(
            self._require_read_contract(),
            concurrency=self.config.download_concurrency,
            logger=self.log,
        )

    def download_stream(self, key: str) -> AsyncIterator[DownloadEvent]:
        return self._download_orchestrator().stream(key)

    async def download(self, request: DownloadRequest) -> bool:
        return await self._download_orchestrator().run(request)

    async def download_bytes(self, key: str) -> bytes:
        """Whole content of `key`; raises the underlying error if a chunk read fails."""
        parts: List[bytes] = []
        async for event in self.download_stream(key):
            if isinstance(event, DownloadChunk):
                parts.append(event.data)
            elif isinstance(event, DownloadFailed):
                raise event.error
        return b"".join(parts)

    # ------------------------------- lifecycle -------------------------------

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        for r in reversed(self._resources):
            await r.close()

    async def __aenter__(self) -> "FlatDirectory":
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()
