"""Error taxonomy for dataset requests, remote retrieval and artifact checks.

Request validation errors are raised before any I/O takes place. Remote store
errors are surfaced unchanged to the caller; nothing in this package retries.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable


def format_choices(values: Iterable[str]) -> str:
    """Render a permitted set as ``"a", "b", or "c"``."""

    quoted = [f'"{v}"' for v in values]
    if len(quoted) <= 1:
        return "".join(quoted)
    if len(quoted) == 2:
        return f"{quoted[0]} or {quoted[1]}"
    return ", ".join(quoted[:-1]) + f", or {quoted[-1]}"


class ImcDatasetsError(Exception):
    """Base class for all imcdatasets errors."""


class ConfigurationError(ImcDatasetsError, ValueError):
    """Raised when environment or explicit configuration is invalid."""


class RegistryValidationError(ImcDatasetsError, ValueError):
    """Raised when the catalog contains invalid or incomplete entries."""


class RequestValidationError(ImcDatasetsError, ValueError):
    """Base class for errors raised while checking a retrieval request."""


class MultiplicityError(RequestValidationError):
    """A single-valued argument was given zero or several values."""


class UnknownDataTypeError(RequestValidationError):
    """``data_type`` is not one of the supported artifact kinds."""


class UnknownVersionError(RequestValidationError):
    """``version`` is neither ``"latest"`` nor a declared dataset version."""


class UnknownVariantError(RequestValidationError):
    """``variant`` is not one of the sub-variants declared for the dataset."""


class UnknownDatasetError(RequestValidationError, LookupError):
    """The dataset name is not registered in the catalog."""


class UnsupportedCombinationError(RequestValidationError):
    """Individually valid arguments whose combination is not supported."""


class MissingArgumentError(RequestValidationError):
    """A conditionally required argument is absent."""


class FlagTypeError(ImcDatasetsError, TypeError):
    """A flag argument is not strictly ``True`` or ``False``."""


class RemoteStoreError(ImcDatasetsError, RuntimeError):
    """Base error for remote store and local cache failures."""


class RemoteFetchError(RemoteStoreError):
    """Transport-level failure while downloading an artifact."""


class RemoteArtifactMissingError(RemoteStoreError):
    """The catalog declares an artifact the remote store does not provide."""


@dataclass
class ChecksumMismatchError(RemoteStoreError):
    """Raised when a downloaded artifact fails checksum validation."""

    expected: str
    actual: str
    path: Path

    def __str__(self) -> str:  # pragma: no cover - trivial
        return (
            f"Checksum mismatch for {self.path}: expected {self.expected}, "
            f"got {self.actual}"
        )


class ArtifactIntegrityError(ImcDatasetsError, ValueError):
    """A deserialized artifact violates a structural invariant."""


__all__ = [
    "ArtifactIntegrityError",
    "ChecksumMismatchError",
    "ConfigurationError",
    "FlagTypeError",
    "ImcDatasetsError",
    "MissingArgumentError",
    "MultiplicityError",
    "RegistryValidationError",
    "RemoteArtifactMissingError",
    "RemoteFetchError",
    "RemoteStoreError",
    "RequestValidationError",
    "UnknownDataTypeError",
    "UnknownDatasetError",
    "UnknownVariantError",
    "UnknownVersionError",
    "UnsupportedCombinationError",
    "format_choices",
]
