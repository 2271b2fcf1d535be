"""Artifact types, deserialisation and structural invariants.

Single-cell data are returned as :class:`anndata.AnnData` objects:

- ``var`` is the marker table indexed by short identifier (``channel``,
  ``metal``, ``name`` required),
- ``obs`` is the cell table (``image_name``, ``image_number``,
  ``cell_number`` required, plus any dataset-specific fields),
- ``layers["counts"]`` holds raw counts alongside declared transformations,
- ``obsm["spatial"]`` holds cell coordinates (required for ``spe``),
- ``obsp["neighborhood"]`` optionally holds the cell neighbour graph.

Images and masks are returned as :class:`ImageStack` objects: ordered
collections of named arrays whose names are the ``image_name`` values used in
the single-cell table.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from .errors import ArtifactIntegrityError

if TYPE_CHECKING:
    import anndata as ad

LOG = logging.getLogger(__name__)

IMAGE_NAME = "image_name"
IMAGE_NUMBER = "image_number"
CELL_NUMBER = "cell_number"
NEIGHBOR_GRAPH_KEY = "neighborhood"
SPATIAL_KEY = "spatial"
COUNTS_LAYER = "counts"
STACK_KINDS = ("images", "masks")

# HDF5 layout of remote image/mask artifacts
H5_ATTR_KIND = "kind"
H5_ATTR_CHANNELS = "channel_names"
H5_ATTR_ORDER = "element_order"


class ImageStack:
    """Ordered, named collection of multichannel images or label masks.

    Images are ``(C, Y, X)`` arrays sharing one list of channel names; masks
    are ``(Y, X)`` integer arrays whose non-zero values are cell numbers.
    ``element_metadata`` carries one row per element, indexed by name.
    """

    is_on_disk = False

    def __init__(
        self,
        arrays: Mapping[str, Any],
        *,
        kind: str,
        channel_names: Optional[Sequence[str]] = None,
        element_metadata: Optional[pd.DataFrame] = None,
    ) -> None:
        if kind not in STACK_KINDS:
            raise ValueError(f"kind must be one of {STACK_KINDS}; got {kind!r}")
        self.kind = kind
        self._arrays: Dict[str, Any] = dict(arrays)
        for name in self._arrays:
            check_element_name(name)
        self.channel_names: Optional[Tuple[str, ...]] = (
            tuple(str(c) for c in channel_names) if channel_names is not None else None
        )
        self.element_metadata = _normalize_element_metadata(
            element_metadata, list(self._arrays)
        )
        self._check()

    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(self._arrays)

    def __len__(self) -> int:
        return len(self._arrays)

    def __iter__(self) -> Iterator[str]:
        return iter(self._arrays)

    def __contains__(self, name: object) -> bool:
        return name in self._arrays

    def __getitem__(self, item: Union[str, int]) -> np.ndarray:
        """Return the element as a realized in-memory array."""

        return np.asarray(self.element(item)[...])

    def element(self, item: Union[str, int]) -> Any:
        """Return the backing array object without copying it."""

        name = self.names[item] if isinstance(item, (int, np.integer)) else item
        try:
            return self._arrays[name]
        except KeyError:
            raise KeyError(f"No {self.kind} element named {name!r}") from None

    def items(self) -> Iterator[Tuple[str, np.ndarray]]:
        for name in self._arrays:
            yield name, self[name]

    @property
    def nbytes(self) -> int:
        return int(
            sum(
                int(np.prod(_shape(a))) * np.dtype(a.dtype).itemsize
                for a in self._arrays.values()
            )
        )

    def __repr__(self) -> str:
        extra = f", channels={len(self.channel_names)}" if self.channel_names else ""
        return f"{type(self).__name__}(kind={self.kind!r}, n={len(self)}{extra})"

    def _check(self) -> None:
        for name, arr in self._arrays.items():
            shape = _shape(arr)
            if self.kind == "images":
                if len(shape) != 3:
                    raise ArtifactIntegrityError(
                        f"Image {name!r} must be (C, Y, X); got shape {shape}"
                    )
                if self.channel_names is None:
                    raise ArtifactIntegrityError("Image stacks require channel_names")
                if shape[0] != len(self.channel_names):
                    raise ArtifactIntegrityError(
                        f"Image {name!r} has {shape[0]} channels but "
                        f"{len(self.channel_names)} channel names are declared"
                    )
            else:
                if len(shape) != 2:
                    raise ArtifactIntegrityError(
                        f"Mask {name!r} must be 2-D; got shape {shape}"
                    )
                if not np.issubdtype(np.dtype(arr.dtype), np.integer):
                    raise ArtifactIntegrityError(
                        f"Mask {name!r} must hold integer labels; got {arr.dtype}"
                    )


def check_element_name(name: Any) -> str:
    """Reject element names that cannot serve as a single file or dataset name."""

    if (
        not isinstance(name, str)
        or name in ("", ".", "..")
        or "/" in name
        or "\\" in name
        or "\x00" in name
    ):
        raise ArtifactIntegrityError(f"Invalid element name {name!r}")
    return name


def _shape(arr: Any) -> Tuple[int, ...]:
    return tuple(int(s) for s in arr.shape)


def _normalize_element_metadata(
    metadata: Optional[pd.DataFrame], names: List[str]
) -> pd.DataFrame:
    if metadata is None:
        metadata = pd.DataFrame(index=pd.Index(names))
    metadata = metadata.copy()
    if IMAGE_NAME in metadata.columns:
        metadata.index = metadata[IMAGE_NAME].astype(str).to_numpy()
    metadata.index = metadata.index.astype(str)
    if sorted(metadata.index) != sorted(names):
        raise ArtifactIntegrityError(
            "Element metadata rows do not match stack element names"
        )
    metadata = metadata.loc[names]
    metadata[IMAGE_NAME] = names
    metadata.index.name = None
    return metadata


def _decode(value: Any) -> Any:
    if isinstance(value, bytes):
        return value.decode("utf-8")
    if isinstance(value, np.ndarray):
        return [_decode(v) for v in value.tolist()]
    if isinstance(value, np.generic):
        return value.item()
    return value


def read_image_stack(path: Union[str, Path], kind: str) -> ImageStack:
    """Read an HDF5 image or mask artifact fully into memory."""

    import h5py

    with h5py.File(path, "r") as fh:
        stored_kind = _decode(fh.attrs.get(H5_ATTR_KIND, kind))
        if stored_kind != kind:
            raise ArtifactIntegrityError(
                f"{path} holds {stored_kind!r} but {kind!r} was requested"
            )
        if kind not in fh:
            raise ArtifactIntegrityError(f"{path} has no '/{kind}' group")
        group = fh[kind]
        order = _decode(fh.attrs.get(H5_ATTR_ORDER, list(group.keys())))
        channel_names = (
            _decode(fh.attrs[H5_ATTR_CHANNELS]) if H5_ATTR_CHANNELS in fh.attrs else None
        )
        arrays: Dict[str, np.ndarray] = {}
        rows: List[Dict[str, Any]] = []
        for name in order:
            dataset = group[check_element_name(name)]
            arrays[name] = np.asarray(dataset[()])
            row = {k: _decode(v) for k, v in dataset.attrs.items()}
            row[IMAGE_NAME] = name
            rows.append(row)
    LOG.debug("Read %d %s from %s", len(arrays), kind, path)
    return ImageStack(
        arrays,
        kind=kind,
        channel_names=channel_names,
        element_metadata=pd.DataFrame(rows, index=list(arrays)),
    )


def write_image_stack(stack: ImageStack, path: Union[str, Path]) -> Path:
    """Serialize ``stack`` into the HDF5 layout read by :func:`read_image_stack`."""

    import h5py

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with h5py.File(path, "w") as fh:
        fh.attrs[H5_ATTR_KIND] = stack.kind
        fh.attrs[H5_ATTR_ORDER] = np.array(stack.names, dtype=h5py.string_dtype())
        if stack.channel_names is not None:
            fh.attrs[H5_ATTR_CHANNELS] = np.array(
                stack.channel_names, dtype=h5py.string_dtype()
            )
        group = fh.create_group(stack.kind, track_order=True)
        for name, arr in stack.items():
            dataset = group.create_dataset(name, data=arr, compression="gzip")
            for key, value in stack.element_metadata.loc[name].items():
                if key == IMAGE_NAME or _is_missing(value):
                    continue
                dataset.attrs[key] = value.item() if isinstance(value, np.generic) else value
    return path


def _is_missing(value: Any) -> bool:
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def _schemas():
    try:
        import pandera.pandas as pa  # type: ignore
        from pandera.pandas import Column, DataFrameSchema  # type: ignore
    except ImportError:  # older pandera
        import pandera as pa  # type: ignore
        from pandera import Column, DataFrameSchema  # type: ignore

    marker_schema = DataFrameSchema(
        {
            "channel": Column(int, checks=pa.Check.ge(0)),
            "metal": Column(str),
            "name": Column(str),
        },
        index=pa.Index(str, unique=True),
        coerce=True,
    )
    cell_schema = DataFrameSchema(
        {
            IMAGE_NAME: Column(str),
            IMAGE_NUMBER: Column(int),
            CELL_NUMBER: Column(int, checks=pa.Check.ge(1)),
        },
        index=pa.Index(str, unique=True),
        unique=[IMAGE_NUMBER, CELL_NUMBER],
        coerce=True,
    )
    return marker_schema, cell_schema


def validate_single_cell(adata: "ad.AnnData", data_type: str = "sce") -> "ad.AnnData":
    """Check the required-field subset and cross-table invariants of ``adata``."""

    from pandera.errors import SchemaError

    marker_schema, cell_schema = _schemas()
    try:
        marker_schema.validate(adata.var)
    except SchemaError as exc:
        raise ArtifactIntegrityError(f"Invalid marker annotation: {exc}") from exc
    try:
        cell_schema.validate(adata.obs)
    except SchemaError as exc:
        raise ArtifactIntegrityError(f"Invalid cell annotation: {exc}") from exc

    if COUNTS_LAYER not in adata.layers:
        raise ArtifactIntegrityError(f"Missing '{COUNTS_LAYER}' layer")

    has_obsm_coords = SPATIAL_KEY in adata.obsm
    if has_obsm_coords:
        coords = np.asarray(adata.obsm[SPATIAL_KEY])
        if coords.ndim != 2 or coords.shape[1] != 2:
            raise ArtifactIntegrityError(
                f"obsm['{SPATIAL_KEY}'] must be (n_cells, 2); got {coords.shape}"
            )
    if data_type == "spe" and not has_obsm_coords:
        raise ArtifactIntegrityError(
            f"SPE objects require spatial coordinates in obsm['{SPATIAL_KEY}']"
        )
    if data_type == "sce" and not has_obsm_coords:
        if not {"cell_x", "cell_y"}.issubset(adata.obs.columns):
            raise ArtifactIntegrityError(
                "Cell coordinates missing: expected obs 'cell_x'/'cell_y' or "
                f"obsm['{SPATIAL_KEY}']"
            )

    if NEIGHBOR_GRAPH_KEY in adata.obsp:
        _check_neighbor_graph(adata)
    return adata


def _check_neighbor_graph(adata: "ad.AnnData") -> None:
    from scipy import sparse

    graph = sparse.coo_matrix(adata.obsp[NEIGHBOR_GRAPH_KEY])
    images = adata.obs[IMAGE_NUMBER].to_numpy()
    crossing = images[graph.row] != images[graph.col]
    if np.any(crossing):
        raise ArtifactIntegrityError(
            f"{int(crossing.sum())} neighbour edges connect cells from different images"
        )


def read_single_cell(path: Union[str, Path], data_type: str = "sce") -> "ad.AnnData":
    """Load an ``.h5ad`` single-cell artifact and validate it."""

    import anndata as ad

    adata = ad.read_h5ad(path)
    LOG.debug("Read %d cells x %d markers from %s", adata.n_obs, adata.n_vars, path)
    return validate_single_cell(adata, data_type)


def mapping_columns(
    single_cell: "ad.AnnData", *stacks: ImageStack
) -> List[str]:
    """Metadata columns shared by the cell table and every stack."""

    shared = set(single_cell.obs.columns)
    for stack in stacks:
        shared &= set(stack.element_metadata.columns)
    return sorted(shared)


def shared_image_names(single_cell: "ad.AnnData", *stacks: ImageStack) -> List[str]:
    names = set(single_cell.obs[IMAGE_NAME].astype(str))
    for stack in stacks:
        names &= set(stack.names)
    return sorted(names)


def check_channel_consistency(images: ImageStack, single_cell: "ad.AnnData") -> None:
    """Image channel order must equal the marker short identifiers."""

    markers = tuple(str(v) for v in single_cell.var_names)
    if images.channel_names != markers:
        raise ArtifactIntegrityError(
            f"Image channels {images.channel_names} do not match markers {markers}"
        )


def check_mask_consistency(masks: ImageStack, single_cell: "ad.AnnData") -> None:
    """Every mask label must be 0 or a cell number recorded for that image."""

    obs = single_cell.obs
    cells_by_image = (
        obs.assign(**{IMAGE_NAME: obs[IMAGE_NAME].astype(str)})
        .groupby(IMAGE_NAME, observed=True)[CELL_NUMBER]
        .apply(lambda s: set(int(v) for v in s))
    )
    for name in masks:
        labels = set(int(v) for v in np.unique(masks[name]))
        allowed = {0} | cells_by_image.get(name, set())
        unexpected = labels - allowed
        if unexpected:
            preview = sorted(unexpected)[:10]
            raise ArtifactIntegrityError(
                f"Mask {name!r} contains labels without matching cells: {preview}"
            )


__all__ = [
    "CELL_NUMBER",
    "COUNTS_LAYER",
    "IMAGE_NAME",
    "IMAGE_NUMBER",
    "NEIGHBOR_GRAPH_KEY",
    "SPATIAL_KEY",
    "ImageStack",
    "check_channel_consistency",
    "check_element_name",
    "check_mask_consistency",
    "mapping_columns",
    "read_image_stack",
    "read_single_cell",
    "shared_image_names",
    "validate_single_cell",
    "write_image_stack",
]
