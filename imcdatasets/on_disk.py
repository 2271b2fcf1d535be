"""Materialize image and mask stacks as per-element Zarr stores.

Each element of a stack is written to ``<disk_path>/<image_name>.zarr`` using
the chunk/compression policy from :mod:`imcdatasets.storage`. The returned
:class:`DiskBackedStack` holds lazily opened Zarr arrays, so element pixels are
only read when indexed.

Note that the whole stack is deserialized from the downloaded artifact before
it is written out; materializing lowers the memory footprint of later work on
the stack, not the peak memory of the retrieval itself.
"""

from __future__ import annotations

import logging
import shutil
import uuid
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

import numpy as np
import pandas as pd

from .artifacts import IMAGE_NAME, ImageStack, check_element_name
from .errors import ArtifactIntegrityError
from .storage import ATTR_PREFIX, open_zarr_array, write_zarr_array

LOG = logging.getLogger(__name__)

STORE_SUFFIX = ".zarr"
ATTR_KIND = f"{ATTR_PREFIX}:kind"
ATTR_CHANNELS = f"{ATTR_PREFIX}:channel_names"
ATTR_POSITION = f"{ATTR_PREFIX}:position"
ATTR_METADATA = f"{ATTR_PREFIX}:element_metadata"


class DiskBackedStack(ImageStack):
    """An :class:`ImageStack` whose elements live in Zarr stores on disk."""

    is_on_disk = True

    def __init__(
        self,
        arrays: Mapping[str, Any],
        *,
        kind: str,
        directory: Union[str, Path],
        channel_names: Optional[Sequence[str]] = None,
        element_metadata: Optional[pd.DataFrame] = None,
    ) -> None:
        super().__init__(
            arrays,
            kind=kind,
            channel_names=channel_names,
            element_metadata=element_metadata,
        )
        self.directory = Path(directory)

    def store_path(self, name: str) -> Path:
        return store_path_for(self.directory, name)

    @classmethod
    def open(cls, directory: Union[str, Path]) -> "DiskBackedStack":
        """Reopen a stack previously written by :func:`materialize`."""

        directory = Path(directory)
        stores = sorted(p for p in directory.glob(f"*{STORE_SUFFIX}") if p.is_dir())
        if not stores:
            raise FileNotFoundError(f"No {STORE_SUFFIX} stores found in {directory}")

        entries = []
        for path in stores:
            arr = open_zarr_array(path)
            attrs = arr.attrs.asdict()
            if ATTR_KIND not in attrs:
                raise ArtifactIntegrityError(f"{path} was not written by imcdatasets")
            entries.append((int(attrs.get(ATTR_POSITION, len(entries))), path, arr, attrs))
        entries.sort(key=lambda e: e[0])

        kinds = {e[3][ATTR_KIND] for e in entries}
        if len(kinds) != 1:
            raise ArtifactIntegrityError(
                f"{directory} mixes element kinds: {sorted(kinds)}"
            )
        kind = kinds.pop()

        arrays: Dict[str, Any] = {}
        rows: List[Dict[str, Any]] = []
        for _, path, arr, attrs in entries:
            name = path.name[: -len(STORE_SUFFIX)]
            arrays[name] = arr
            row = dict(attrs.get(ATTR_METADATA) or {})
            row[IMAGE_NAME] = name
            rows.append(row)
        channel_names = entries[0][3].get(ATTR_CHANNELS)
        return cls(
            arrays,
            kind=kind,
            directory=directory,
            channel_names=channel_names,
            element_metadata=pd.DataFrame(rows, index=list(arrays)),
        )


def store_path_for(directory: Union[str, Path], name: str) -> Path:
    return Path(directory) / f"{check_element_name(name)}{STORE_SUFFIX}"


def _json_safe(value: Any) -> Any:
    if isinstance(value, np.generic):
        value = value.item()
    if isinstance(value, float) and np.isnan(value):
        return None
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, (list, tuple, np.ndarray)):
        return [_json_safe(v) for v in list(value)]
    return str(value)


def _element_attrs(stack: ImageStack, name: str, position: int) -> Dict[str, Any]:
    row = stack.element_metadata.loc[name]
    return {
        ATTR_KIND: stack.kind,
        ATTR_CHANNELS: list(stack.channel_names) if stack.channel_names else None,
        ATTR_POSITION: position,
        ATTR_METADATA: {
            str(k): _json_safe(v) for k, v in row.items() if k != IMAGE_NAME
        },
    }


def _write_store(target: Path, data: np.ndarray, attrs: Dict[str, Any]) -> None:
    tmp = target.with_name(f".{target.name}.{uuid.uuid4().hex[:8]}.tmp")
    try:
        write_zarr_array(tmp, data, extra_attrs=attrs)
        if target.exists():
            shutil.rmtree(target)
        tmp.rename(target)
    finally:
        if tmp.exists():
            shutil.rmtree(tmp, ignore_errors=True)


def materialize(
    stack: ImageStack, disk_path: Union[str, Path], *, force: bool = False
) -> DiskBackedStack:
    """Write ``stack`` below ``disk_path`` and return its disk-backed twin.

    Existing stores are reused as-is unless ``force`` is set, in which case
    they are rewritten. Each store is written to a temporary sibling and
    renamed into place, so a crash never leaves a half-written ``.zarr``
    under its final name.
    """

    directory = Path(disk_path).expanduser()
    directory.mkdir(parents=True, exist_ok=True)

    written = reused = 0
    arrays: Dict[str, Any] = {}
    for position, name in enumerate(stack.names):
        target = store_path_for(directory, name)
        if target.exists() and not force:
            reused += 1
        else:
            _write_store(target, stack[name], _element_attrs(stack, name, position))
            written += 1
        arrays[name] = open_zarr_array(target)

    LOG.info(
        "Materialized %d %s in %s (%d written, %d reused)",
        len(arrays),
        stack.kind,
        directory,
        written,
        reused,
    )
    return DiskBackedStack(
        arrays,
        kind=stack.kind,
        directory=directory,
        channel_names=stack.channel_names,
        element_metadata=stack.element_metadata,
    )


__all__ = ["DiskBackedStack", "materialize", "store_path_for"]
