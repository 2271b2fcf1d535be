"""Dataset resolver: validated request in, artifact (or hub record) out.

The resolver is the only component that sequences the others::

    catalog.describe -> validation.validate -> hub.fetch_metadata / hub.fetch
        -> artifacts.read_* -> on_disk.materialize (optional)

Artifacts are returned by value; nothing is retained between calls, so
repeated requests share only the hub's file cache.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional, Union

from .artifacts import read_image_stack, read_single_cell
from .config import HubConfig
from .errors import MissingArgumentError
from .hub import HubClient
from .on_disk import materialize
from .registry import LATEST, SINGLE_CELL_TYPES, CacheKey, Catalog, load_catalog
from .validation import RetrievalRequest, ValidatedRequest, validate

LOG = logging.getLogger(__name__)


def materialized_dir(disk_path: Path, key: CacheKey) -> Path:
    """Subdirectory of ``disk_path`` that holds the stores for ``key``."""

    return Path(disk_path) / f"{key.dataset}_{key.version}_{key.stem}"


class DatasetResolver:
    """Turn retrieval requests into artifacts using one catalog and hub client."""

    def __init__(
        self,
        catalog: Optional[Catalog] = None,
        client: Optional[HubClient] = None,
        *,
        config: Optional[HubConfig] = None,
    ) -> None:
        self.catalog = catalog if catalog is not None else load_catalog()
        self.client = client if client is not None else HubClient(self.catalog, config)

    def validate(self, request: RetrievalRequest) -> ValidatedRequest:
        descriptor = self.catalog.describe(request.dataset)
        return validate(request, descriptor)

    def resolve(self, request: Union[RetrievalRequest, ValidatedRequest]) -> Any:
        """Return the requested artifact, or its hub record when metadata-only."""

        if isinstance(request, RetrievalRequest):
            request = self.validate(request)
        key = request.cache_key

        if request.metadata_only:
            LOG.debug("Metadata-only request for %s", key)
            return self.client.fetch_metadata(key)
        if request.on_disk and request.disk_path is None:
            raise MissingArgumentError(
                '"disk_path" must be provided when on_disk=True.'
            )

        path = self.client.fetch(key, force=request.force)
        artifact = self.load(key, path)

        if request.on_disk:
            artifact = materialize(
                artifact, materialized_dir(request.disk_path, key), force=request.force
            )
        return artifact

    @staticmethod
    def load(key: CacheKey, path: Path) -> Any:
        if key.data_type in SINGLE_CELL_TYPES:
            return read_single_cell(path, key.data_type)
        return read_image_stack(path, key.data_type)


@lru_cache(maxsize=1)
def get_default_resolver() -> DatasetResolver:
    """Process-wide resolver configured from the environment."""

    return DatasetResolver(load_catalog(), config=HubConfig.from_env())


def reset_default_resolver() -> None:
    """Drop the cached default resolver (e.g. after changing the environment)."""

    get_default_resolver.cache_clear()


def get(
    dataset: str,
    data_type: Any = None,
    metadata: Any = False,
    on_disk: Any = False,
    disk_path: Any = None,
    version: Any = LATEST,
    force: Any = False,
    variant: Any = None,
    *,
    resolver: Optional[DatasetResolver] = None,
) -> Any:
    """Retrieve one artifact of a curated IMC dataset.

    Args:
        dataset: Registered dataset name, see :func:`imcdatasets.list_datasets`.
        data_type: One of ``"sce"``, ``"spe"``, ``"images"`` or ``"masks"``.
        metadata: Return the hub record instead of downloading the artifact.
        on_disk: Store images/masks as Zarr arrays under ``disk_path``.
        disk_path: Target directory for ``on_disk=True``.
        version: ``"latest"`` or a version tag declared for the dataset.
        force: Re-download the cached file and overwrite on-disk stores.
        variant: Sub-variant for datasets that publish several (e.g. panels).
        resolver: Resolver to use instead of the process default.

    Returns:
        An :class:`anndata.AnnData` for ``sce``/``spe``, an
        :class:`~imcdatasets.artifacts.ImageStack` (or
        :class:`~imcdatasets.on_disk.DiskBackedStack`) for ``images``/``masks``,
        or a :class:`~imcdatasets.registry.HubRecord` when ``metadata=True``.
    """

    request = RetrievalRequest(
        dataset=dataset,
        data_type=data_type,
        metadata=metadata,
        on_disk=on_disk,
        disk_path=disk_path,
        version=version,
        force=force,
        variant=variant,
    )
    return (resolver or get_default_resolver()).resolve(request)


__all__ = [
    "DatasetResolver",
    "get",
    "get_default_resolver",
    "materialized_dir",
    "reset_default_resolver",
]
