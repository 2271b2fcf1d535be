"""Curated imaging mass cytometry (IMC) datasets.

Single-cell data, multichannel images and segmentation masks of published
IMC studies are fetched from a remote store on first use, cached locally and
returned as :class:`anndata.AnnData` objects or
:class:`~imcdatasets.artifacts.ImageStack` collections::

    import imcdatasets

    imcdatasets.list_datasets()
    sce = imcdatasets.get("Damond_2019_Pancreas", "sce")
    images = imcdatasets.Damond_2019_Pancreas("images", on_disk=True, disk_path="imc")
"""

from ._version import __version__
from .artifacts import (
    ImageStack,
    check_channel_consistency,
    check_mask_consistency,
    mapping_columns,
)
from .config import HubConfig
from .datasets import (
    Damond_2019_Pancreas,
    HochSchulz_2022_Melanoma,
    IMMUcan_2022_CancerExample,
    JacksonFischer_2020_BreastCancer,
    Zanotelli_2020_Spheroids,
)
from .errors import (
    ArtifactIntegrityError,
    ImcDatasetsError,
    RemoteArtifactMissingError,
    RemoteStoreError,
    RequestValidationError,
    UnknownDatasetError,
)
from .hub import HubClient
from .on_disk import DiskBackedStack, materialize
from .registry import (
    CacheKey,
    DatasetDescriptor,
    HubRecord,
    describe_dataset,
    list_datasets,
    load_catalog,
)
from .resolver import DatasetResolver, get

__all__ = [
    "ArtifactIntegrityError",
    "CacheKey",
    "DatasetDescriptor",
    "DatasetResolver",
    "Damond_2019_Pancreas",
    "DiskBackedStack",
    "HochSchulz_2022_Melanoma",
    "HubClient",
    "HubConfig",
    "HubRecord",
    "IMMUcan_2022_CancerExample",
    "ImageStack",
    "ImcDatasetsError",
    "JacksonFischer_2020_BreastCancer",
    "RemoteArtifactMissingError",
    "RemoteStoreError",
    "RequestValidationError",
    "UnknownDatasetError",
    "Zanotelli_2020_Spheroids",
    "__version__",
    "check_channel_consistency",
    "check_mask_consistency",
    "describe_dataset",
    "get",
    "list_datasets",
    "load_catalog",
    "mapping_columns",
    "materialize",
]
