"""
SDK configuration: RPC endpoints, signing key, contract address, gas and
concurrency knobs.

- Loads sane defaults and supports overrides via environment variables (ETHSTORAGE_*).
- The private key is never included in `to_dict()` (safe to log).
"""

from __future__ import annotations

import dataclasses
import os
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from .constants import MAX_CALLDATA_CHUNK_SIZE
from .errors import ConfigError
from .version import __version__

_DEFAULT_RPC = "http://127.0.0.1:8545"

_HEX_RE = re.compile(r"^0x[0-9a-fA-F]+$")
_ADDR_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")
_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


def _parse_chain_id(val: Any, default: Optional[int] = None) -> Optional[int]:
    """
    Accepts int, decimal str, or 0x-hex str and returns int. Empty -> default.
    """
    if val is None or val == "":
        return default
    if isinstance(val, int):
        return val
    s = str(val).strip()
    if _HEX_RE.match(s):
        return int(s, 16)
    return int(s, 10)


def _parse_bool(val: Optional[str], default: bool) -> bool:
    if val is None:
        return default
    s = val.strip().lower()
    if s in _TRUE:
        return True
    if s in _FALSE:
        return False
    raise ConfigError(f"invalid boolean value: {val!r}")


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    v = os.getenv(name)
    return v if v is not None else default


def _ensure_scheme(url: Optional[str], allowed: tuple[str, ...]) -> Optional[str]:
    if not url:
        return url
    lower = url.lower()
    if not any(lower.startswith(f"{sch}://") for sch in allowed):
        raise ConfigError(f"URL must start with {allowed}, got: {url!r}")
    return url


@dataclass
class SDKConfig:
    # Endpoints
    rpc_url: str = field(default_factory=lambda: _DEFAULT_RPC)
    ethstorage_rpc_url: Optional[str] = None
    # Identity / target
    private_key: Optional[str] = field(default=None, repr=False)
    address: Optional[str] = None
    chain_id: Optional[int] = None
    # Transactions
    gas_inc_pct: int = 0
    confirm_nonce: bool = True
    calldata_chunk_size: int = MAX_CALLDATA_CHUNK_SIZE
    # Concurrency (None -> derived from os.cpu_count())
    upload_concurrency: Optional[int] = None
    download_concurrency: Optional[int] = None
    # Commitments: 0 -> in-process backend, >0 -> process pool with that many workers
    kzg_workers: int = 0
    trusted_setup: Optional[str] = None
    # HTTP behavior
    request_timeout: float = 30.0
    user_agent: str = field(default_factory=lambda: f"ethstorage-sdk-py/{__version__}")

    def __post_init__(self) -> None:
        _ensure_scheme(self.rpc_url, ("http", "https"))
        _ensure_scheme(self.ethstorage_rpc_url, ("http", "https"))
        if self.address is not None and not _ADDR_RE.match(self.address):
            raise ConfigError(f"invalid contract address: {self.address!r}")
        if self.gas_inc_pct < 0:
            raise ConfigError("gas_inc_pct must be >= 0")
        if self.calldata_chunk_size <= 0:
            raise ConfigError("calldata_chunk_size must be > 0")
        for name in ("upload_concurrency", "download_concurrency"):
            value = getattr(self, name)
            if value is not None and value < 1:
                raise ConfigError(f"{name} must be >= 1")
        if self.kzg_workers < 0:
            raise ConfigError("kzg_workers must be >= 0")
        if self.request_timeout <= 0:
            raise ConfigError("request_timeout must be > 0")

    @property
    def read_only(self) -> bool:
        return not self.private_key

    @classmethod
    def from_env(cls, prefix: str = "ETHSTORAGE_") -> "SDKConfig":
        """
        Create config from environment variables:

        ETHSTORAGE_RPC_URL              (http/https)
        ETHSTORAGE_ES_RPC_URL           (http/https) optional, read path
        ETHSTORAGE_PRIVATE_KEY          (0x-hex) optional; absent -> read-only
        ETHSTORAGE_ADDRESS              (0x contract address) optional
        ETHSTORAGE_CHAIN_ID             (int or 0x-hex) optional
        ETHSTORAGE_GAS_INC_PCT          (int percent)
        ETHSTORAGE_CONFIRM_NONCE        (bool)
        ETHSTORAGE_UPLOAD_CONCURRENCY   (int)
        ETHSTORAGE_DOWNLOAD_CONCURRENCY (int)
        ETHSTORAGE_KZG_WORKERS          (int)
        ETHSTORAGE_TRUSTED_SETUP        (path)
        ETHSTORAGE_TIMEOUT              (float seconds, HTTP)
        """
        try:
            upload_c = _env(f"{prefix}UPLOAD_CONCURRENCY")
            download_c = _env(f"{prefix}DOWNLOAD_CONCURRENCY")
            return cls(
                rpc_url=_env(f"{prefix}RPC_URL", _DEFAULT_RPC) or _DEFAULT_RPC,
                ethstorage_rpc_url=_env(f"{prefix}ES_RPC_URL") or None,
                private_key=_env(f"{prefix}PRIVATE_KEY") or None,
                address=_env(f"{prefix}ADDRESS") or None,
                chain_id=_parse_chain_id(_env(f"{prefix}CHAIN_ID")),
                gas_inc_pct=int(_env(f"{prefix}GAS_INC_PCT", "0") or 0),
                confirm_nonce=_parse_bool(_env(f"{prefix}CONFIRM_NONCE"), True),
                upload_concurrency=int(upload_c) if upload_c else None,
                download_concurrency=int(download_c) if download_c else None,
                kzg_workers=int(_env(f"{prefix}KZG_WORKERS", "0") or 0),
                trusted_setup=_env(f"{prefix}TRUSTED_SETUP") or None,
                request_timeout=float(_env(f"{prefix}TIMEOUT", "30.0") or 30.0),
            )
        except ConfigError:
            raise
        except ValueError as e:
            raise ConfigError(f"invalid {prefix}* environment: {e}") from e

    @classmethod
    def with_overrides(
        cls, base: Optional["SDKConfig"] = None, **overrides: Any
    ) -> "SDKConfig":
        """
        Build from an existing config plus keyword overrides.
        Unknown keys are ignored.
        """
        base = base or cls.from_env()
        known = {f.name for f in dataclasses.fields(cls)}
        data = {k: v for k, v in overrides.items() if k in known}
        if "chain_id" in data:
            data["chain_id"] = _parse_chain_id(data["chain_id"], base.chain_id)
        return dataclasses.replace(base, **data)

    def http_headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": self.user_agent,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rpc_url": self.rpc_url,
            "ethstorage_rpc_url": self.ethstorage_rpc_url,
            "address": self.address,
            "chain_id": self.chain_id,
            "read_only": self.read_only,
            "gas_inc_pct": int(self.gas_inc_pct),
            "confirm_nonce": bool(self.confirm_nonce),
            "calldata_chunk_size": int(self.calldata_chunk_size),
            "upload_concurrency": self.upload_concurrency,
            "download_concurrency": self.download_concurrency,
            "kzg_workers": int(self.kzg_workers),
            "trusted_setup": self.trusted_setup,
            "request_timeout": float(self.request_timeout),
            "user_agent": self.user_agent,
        }


__all__ = ["SDKConfig"]
