"""Argument checks for dataset retrieval requests.

:func:`validate` is pure: it inspects a :class:`RetrievalRequest` against the
dataset's :class:`~imcdatasets.registry.DatasetDescriptor` and either returns
a :class:`ValidatedRequest` or raises the first violated check. No I/O happens
here, so an invalid request never reaches the network or the disk.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import numpy as np

from .errors import (
    FlagTypeError,
    MissingArgumentError,
    MultiplicityError,
    UnknownDataTypeError,
    UnknownVariantError,
    UnknownVersionError,
    UnsupportedCombinationError,
    format_choices,
)
from .registry import (
    DATA_TYPES,
    LATEST,
    SINGLE_CELL_TYPES,
    STACK_TYPES,
    CacheKey,
    DatasetDescriptor,
)


@dataclass(frozen=True)
class RetrievalRequest:
    """Raw, unchecked arguments of a single ``get`` call."""

    dataset: str
    data_type: Any = None
    metadata: Any = False
    on_disk: Any = False
    disk_path: Any = None
    version: Any = LATEST
    force: Any = False
    variant: Any = None


@dataclass(frozen=True)
class ValidatedRequest:
    """A request whose arguments passed every check."""

    dataset: str
    data_type: str
    version: str
    metadata_only: bool
    on_disk: bool
    force: bool
    variant: Optional[str] = None
    disk_path: Optional[Path] = None

    @property
    def cache_key(self) -> CacheKey:
        return CacheKey(self.dataset, self.version, self.data_type, self.variant)


def _single_data_type(value: Any) -> Any:
    if value is None:
        raise MultiplicityError("The data_type argument should be of length 1.")
    if isinstance(value, (list, tuple, set, frozenset, np.ndarray)):
        values = list(value)
        if len(values) != 1:
            raise MultiplicityError("The data_type argument should be of length 1.")
        return values[0]
    return value


def _require_flag(name: str, value: Any) -> bool:
    if not isinstance(value, (bool, np.bool_)):
        raise FlagTypeError(f'"{name}" should be either True or False.')
    return bool(value)


def resolve_version(version: Any, descriptor: DatasetDescriptor) -> str:
    """Map ``"latest"`` to the newest declared version; check explicit tags."""

    if isinstance(version, str):
        if version == LATEST:
            return descriptor.latest_version
        if version in descriptor.available_versions:
            return version
    raise UnknownVersionError(
        '"version" should be "latest" or one of the available dataset '
        f'versions, e.g., "{descriptor.latest_version}". Available versions for '
        f"{descriptor.name}: {format_choices(descriptor.available_versions)}."
    )


def resolve_variant(variant: Any, descriptor: DatasetDescriptor) -> Optional[str]:
    """Return the sub-variant to load; ``None`` selects the documented default."""

    if not descriptor.variants:
        if variant is not None:
            raise UnsupportedCombinationError(
                f"Dataset {descriptor.name} has no sub-variants; "
                f'"variant" must be left unset.'
            )
        return None
    if variant is None:
        return descriptor.default_variant
    if variant not in descriptor.variants:
        raise UnknownVariantError(
            f'"variant" ({descriptor.variant_label}) should be one of '
            f"{format_choices(descriptor.variants)} for {descriptor.name}."
        )
    return variant


def _spe_unavailable(descriptor: DatasetDescriptor) -> UnsupportedCombinationError:
    return UnsupportedCombinationError(
        "It is only possible to retrieve SPE objects with dataset versions "
        f">= {descriptor.spe_since}."
    )


def _blank_path(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, os.PathLike):
        # Path("") collapses to "."; only a literal "." names the cwd.
        return Path(value) == Path(".")
    return not str(value).strip()


def validate(request: RetrievalRequest, descriptor: DatasetDescriptor) -> ValidatedRequest:
    """Check ``request`` against ``descriptor`` and return the normalized form."""

    data_type = _single_data_type(request.data_type)
    if data_type not in DATA_TYPES:
        raise UnknownDataTypeError(
            f"The data_type argument should be {format_choices(DATA_TYPES)}."
        )
    if data_type not in descriptor.available_data_types:
        raise UnsupportedCombinationError(
            f'Dataset {descriptor.name} does not provide data_type "{data_type}"; '
            f"available: {format_choices(sorted(descriptor.available_data_types))}."
        )

    metadata = _require_flag("metadata", request.metadata)
    on_disk = _require_flag("on_disk", request.on_disk)
    force = _require_flag("force", request.force)

    # A release older than spe_since never carried spe, published here or not.
    if (
        data_type == "spe"
        and isinstance(request.version, str)
        and descriptor.predates_spe(request.version)
    ):
        raise _spe_unavailable(descriptor)

    version = resolve_version(request.version, descriptor)
    variant = resolve_variant(request.variant, descriptor)

    if data_type == "spe" and not descriptor.supports_spe(version):
        raise _spe_unavailable(descriptor)

    disk_path: Optional[Path] = None
    if on_disk:
        if data_type in SINGLE_CELL_TYPES:
            raise UnsupportedCombinationError(
                "On disk storage is only available for "
                f"{format_choices(sorted(STACK_TYPES))}."
            )
        if not descriptor.supports_on_disk:
            raise UnsupportedCombinationError(
                f"Dataset {descriptor.name} does not support on disk storage."
            )
        if _blank_path(request.disk_path):
            raise MissingArgumentError(
                '"disk_path" must be provided when on_disk=True.'
            )
        disk_path = Path(request.disk_path).expanduser()

    return ValidatedRequest(
        dataset=descriptor.name,
        data_type=data_type,
        version=version,
        metadata_only=metadata,
        on_disk=on_disk,
        force=force,
        variant=variant,
        disk_path=disk_path,
    )


__all__ = [
    "RetrievalRequest",
    "ValidatedRequest",
    "resolve_variant",
    "resolve_version",
    "validate",
]
