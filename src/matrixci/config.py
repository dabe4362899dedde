# config.py
from __future__ import annotations

import os
from dataclasses import dataclass, replace
from typing import Mapping, Optional

ENV_PREFIX = "MATRIXCI_"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


def _env_bool(environ: Mapping[str, str], key: str, default: bool) -> bool:
    raw = environ.get(ENV_PREFIX + key)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ValueError(f"{ENV_PREFIX}{key} must be a boolean, got {raw!r}")


def _env_int(environ: Mapping[str, str], key: str) -> Optional[int]:
    raw = environ.get(ENV_PREFIX + key)
    if raw is None or raw.strip() == "":
        return None
    return int(raw)


@dataclass(frozen=True)
class RunConfig:
    """
    Knobs for one run. Built once and passed explicitly, never global.

    max_concurrency=None means unbounded.
    """
    max_concurrency: Optional[int] = None
    fail_fast: bool = False
    allow_unknown_actions: bool = False
    poll_interval: float = 0.1
    repo_root: str = "."

    def __post_init__(self):
        if self.max_concurrency is not None and self.max_concurrency < 1:
            raise ValueError(f"max_concurrency must be >= 1, got {self.max_concurrency}")
        if self.poll_interval <= 0:
            raise ValueError(f"poll_interval must be > 0, got {self.poll_interval}")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> RunConfig:
        environ = os.environ if environ is None else environ
        poll = environ.get(ENV_PREFIX + "POLL_INTERVAL")
        return cls(
            max_concurrency=_env_int(environ, "MAX_CONCURRENCY"),
            fail_fast=_env_bool(environ, "FAIL_FAST", False),
            allow_unknown_actions=_env_bool(environ, "ALLOW_UNKNOWN_ACTIONS", False),
            poll_interval=float(poll) if poll else 0.1,
        )

    def with_overrides(self, **overrides) -> RunConfig:
        """Apply CLI overrides; `None` means "not given"."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})
