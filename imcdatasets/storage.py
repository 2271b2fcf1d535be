"""Zarr chunking and compression policy for on-disk image and mask stores.

- Chunking: images (C, Y, X) use one channel per chunk with 256x256 spatial
  tiles; masks (Y, X) use 256x256 tiles. Chunks never exceed the array shape.
- Compressor: Blosc with Zstandard (zstd) at clevel=5 when available.
- Fallback: if zstd is missing from the numcodecs/c-blosc build, fall back to
  Blosc with LZ4, emitting a warning once per process, and record the chosen
  compressor in the array attrs.
"""

from __future__ import annotations

import os
import warnings
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

SPATIAL_TILE: int = 256
DEFAULT_BLOSC_CNAME: str = "zstd"
DEFAULT_BLOSC_CLEVEL: int = 5
# Blosc shuffle filter: 0=NOSHUFFLE, 1=SHUFFLE, 2=BITSHUFFLE
DEFAULT_BLOSC_SHUFFLE: int = 1

ATTR_PREFIX = "imcdatasets"

_ZSTD_FALLBACK_WARNED: bool = False


@dataclass(frozen=True)
class CompressorInfo:
    """Summary of the compressor used for a Zarr array."""

    kind: str  # e.g., "blosc"
    name: str  # e.g., "zstd" or "lz4"
    clevel: int
    shuffle: int

    @property
    def label(self) -> str:
        return f"{self.kind}:{self.name}"


def _tile(extent: int) -> int:
    return max(1, min(SPATIAL_TILE, int(extent)))


def chunks_for(shape: Sequence[int]) -> Tuple[int, ...]:
    """Chunk shape for a (C, Y, X) image or (Y, X) mask."""

    if len(shape) == 3:
        _, y, x = shape
        return (1, _tile(y), _tile(x))
    if len(shape) == 2:
        y, x = shape
        return (_tile(y), _tile(x))
    raise ValueError(f"Expected a 2-D mask or 3-D image shape; got {tuple(shape)}")


def _probe_blosc_support(cname: str, clevel: int, shuffle: int) -> bool:
    """Return True if a working blosc compressor with `cname` can encode bytes."""
    try:
        from numcodecs import blosc as _blosc  # type: ignore

        comp = _blosc.Blosc(cname=cname, clevel=clevel, shuffle=shuffle)
        _ = comp.encode(b"imcdatasets")
        return True
    except Exception:
        return False


def create_blosc_compressor(
    preferred: str = DEFAULT_BLOSC_CNAME,
    clevel: int = DEFAULT_BLOSC_CLEVEL,
    shuffle: int = DEFAULT_BLOSC_SHUFFLE,
):
    """Create a numcodecs Blosc compressor honoring policy and fallbacks.

    Returns ``None`` (no compression) only when neither zstd nor lz4 work.
    """
    from numcodecs import blosc as _blosc  # type: ignore

    if _probe_blosc_support(preferred, clevel, shuffle):
        return _blosc.Blosc(cname=preferred, clevel=clevel, shuffle=shuffle)

    fallback = "lz4"
    if not _probe_blosc_support(fallback, clevel, shuffle):
        warnings.warn(
            "Blosc zstd and lz4 unavailable; proceeding without compression.",
            RuntimeWarning,
        )
        return None

    global _ZSTD_FALLBACK_WARNED
    if not _ZSTD_FALLBACK_WARNED:
        warnings.warn(
            "Blosc zstd not available; falling back to lz4.",
            UserWarning,
            stacklevel=2,
        )
        _ZSTD_FALLBACK_WARNED = True
    return _blosc.Blosc(cname=fallback, clevel=clevel, shuffle=shuffle)


def _infer_compressor_info(comp) -> CompressorInfo:
    if comp is None:
        return CompressorInfo(kind="none", name="none", clevel=0, shuffle=0)
    name = getattr(comp, "cname", "unknown")
    clevel = int(getattr(comp, "clevel", 0))
    shuffle = int(getattr(comp, "shuffle", 0))
    return CompressorInfo(kind="blosc", name=str(name), clevel=clevel, shuffle=shuffle)


def write_zarr_array(
    store_path: "str | os.PathLike[str]",
    data,
    *,
    chunks: Optional[Sequence[int]] = None,
    compressor=None,
    extra_attrs: Optional[dict] = None,
):
    """Write ``data`` as a standalone Zarr array following the default policy.

    The store at ``store_path`` is created (or replaced) in full. Returns the
    written array opened read-only.
    """
    import numpy as np
    import zarr

    data = np.asarray(data)
    if chunks is None:
        chunks = chunks_for(data.shape)
    if compressor is None:
        compressor = create_blosc_compressor()
    comp_info = _infer_compressor_info(compressor)

    arr = zarr.open_array(
        str(store_path),
        mode="w",
        shape=data.shape,
        dtype=data.dtype,
        chunks=tuple(chunks),
        compressor=compressor,
    )
    arr[...] = data

    attrs = {
        f"{ATTR_PREFIX}:chunks": list(arr.chunks),
        f"{ATTR_PREFIX}:compressor": comp_info.label,
        f"{ATTR_PREFIX}:compressor_clevel": comp_info.clevel,
        f"{ATTR_PREFIX}:compressor_shuffle": comp_info.shuffle,
    }
    if extra_attrs:
        attrs.update(extra_attrs)
    arr.attrs.update(attrs)
    return zarr.open_array(str(store_path), mode="r")


def open_zarr_array(store_path: "str | os.PathLike[str]"):
    """Open an existing on-disk array read-only without loading it."""
    import zarr

    return zarr.open_array(str(store_path), mode="r")


__all__ = [
    "ATTR_PREFIX",
    "CompressorInfo",
    "DEFAULT_BLOSC_CLEVEL",
    "SPATIAL_TILE",
    "chunks_for",
    "create_blosc_compressor",
    "open_zarr_array",
    "write_zarr_array",
]
