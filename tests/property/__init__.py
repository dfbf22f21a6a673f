"""
tests.property package bootstrap.

Shared Hypothesis configuration for the property tests.

On import:
- Registers named profiles (dev/ci/fast/stress).
- Selects the active profile from HYPOTHESIS_PROFILE, otherwise "ci" when the
  CI env var is truthy and "dev" locally.
- Re-exports `given` and `st`.

Blob-sized examples are expensive to shrink, so every profile disables the
deadline and the too_slow / data_too_large health checks.

Usage:
    from tests.property import st, given, payloads

    @given(payloads(max_size=4096))
    def test_something(b):
        ...
"""
from __future__ import annotations

import os
from typing import Final, Tuple

from hypothesis import HealthCheck, Verbosity, given, settings
from hypothesis import strategies as st


def _hc(*items: HealthCheck) -> Tuple[HealthCheck, ...]:
    return items


_SLOW = _hc(HealthCheck.too_slow, HealthCheck.data_too_large)

settings.register_profile(
    "dev",
    settings(
        max_examples=50,
        deadline=None,
        suppress_health_check=_SLOW,
        verbosity=Verbosity.normal,
    ),
)

settings.register_profile(
    "ci",
    settings(
        max_examples=100,
        deadline=None,
        suppress_health_check=_SLOW,
        verbosity=Verbosity.verbose,
        derandomize=True,
    ),
)

settings.register_profile(
    "fast",
    settings(max_examples=15, deadline=None, suppress_health_check=_SLOW),
)

settings.register_profile(
    "stress",
    settings(
        max_examples=500,
        deadline=None,
        suppress_health_check=_hc(*_SLOW, HealthCheck.filter_too_much),
        derandomize=True,
    ),
)


def _env_truthy(name: str) -> bool:
    v = os.getenv(name)
    return (v or "").lower() not in ("", "0", "false", "no", "off")


_active: Final[str] = os.getenv("HYPOTHESIS_PROFILE") or ("ci" if _env_truthy("CI") else "dev")
settings.load_profile(_active)


def active_profile() -> str:
    return _active


def payloads(min_size: int = 1, max_size: int = 4096):
    """Binary payloads biased toward zero runs, which stress the blob codecs."""
    return st.one_of(
        st.binary(min_size=min_size, max_size=max_size),
        st.builds(
            lambda head, zeros: head + b"\x00" * zeros,
            st.binary(min_size=min_size, max_size=max_size // 2),
            st.integers(min_value=0, max_value=max_size // 2),
        ),
    )


__all__ = ["st", "given", "active_profile", "payloads"]
