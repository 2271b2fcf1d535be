"""Runtime configuration for the remote store client.

Values default to constants below and may be overridden via environment
variables (see :meth:`HubConfig.from_env`).
"""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Mapping, Optional

from .errors import ConfigurationError

DEFAULT_CACHE_ROOT = Path.home() / ".cache" / "imcdatasets"
DEFAULT_BASE_URL = "https://bioconductorhubs.blob.core.windows.net/experimenthub"
# Artifacts range from tens of megabytes to tens of gigabytes.
DEFAULT_TIMEOUT_S: float = 600.0
DEFAULT_USER_AGENT = "imcdatasets/1.0 (urllib)"

ENV_CACHE_DIR = "IMCDATASETS_CACHE_DIR"
ENV_BASE_URL = "IMCDATASETS_BASE_URL"
ENV_TIMEOUT = "IMCDATASETS_TIMEOUT"
ENV_USER_AGENT = "IMCDATASETS_USER_AGENT"
ENV_VERIFY_CHECKSUM = "IMCDATASETS_VERIFY_CHECKSUM"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class HubConfig:
    """Settings shared by every request served by a :class:`HubClient`."""

    cache_root: Path = DEFAULT_CACHE_ROOT
    base_url: str = DEFAULT_BASE_URL
    timeout: Optional[float] = DEFAULT_TIMEOUT_S
    user_agent: str = DEFAULT_USER_AGENT
    verify_checksum: bool = True

    def __post_init__(self) -> None:
        if not str(self.base_url).strip():
            raise ConfigurationError("base_url must be a non-empty URL")
        if self.timeout is not None and self.timeout <= 0:
            raise ConfigurationError(
                f"timeout must be positive or None; got {self.timeout!r}"
            )
        object.__setattr__(self, "cache_root", Path(self.cache_root).expanduser())
        object.__setattr__(self, "base_url", str(self.base_url).rstrip("/"))

    def with_overrides(self, **changes) -> "HubConfig":
        """Return a copy with the given fields replaced."""

        return replace(self, **changes)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "HubConfig":
        """Build a configuration from ``IMCDATASETS_*`` environment variables."""

        env = os.environ if environ is None else environ
        kwargs: dict = {}
        if env.get(ENV_CACHE_DIR):
            kwargs["cache_root"] = Path(env[ENV_CACHE_DIR])
        if env.get(ENV_BASE_URL):
            kwargs["base_url"] = env[ENV_BASE_URL]
        if env.get(ENV_TIMEOUT):
            kwargs["timeout"] = _parse_timeout(env[ENV_TIMEOUT])
        if env.get(ENV_USER_AGENT):
            kwargs["user_agent"] = env[ENV_USER_AGENT]
        if env.get(ENV_VERIFY_CHECKSUM):
            kwargs["verify_checksum"] = _parse_bool(
                ENV_VERIFY_CHECKSUM, env[ENV_VERIFY_CHECKSUM]
            )
        return cls(**kwargs)


def _parse_timeout(raw: str) -> Optional[float]:
    value = raw.strip().lower()
    if value in {"none", "off", "0"}:
        return None
    try:
        return float(value)
    except ValueError as exc:
        raise ConfigurationError(
            f"{ENV_TIMEOUT} must be a number of seconds or 'none'; got {raw!r}"
        ) from exc


def _parse_bool(name: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ConfigurationError(f"{name} must be a boolean flag; got {raw!r}")


__all__ = [
    "DEFAULT_BASE_URL",
    "DEFAULT_CACHE_ROOT",
    "DEFAULT_TIMEOUT_S",
    "HubConfig",
]
