"""Catalog of curated imaging mass cytometry datasets.

This module defines the schema for dataset descriptors, the static set of
registered datasets and the :class:`Catalog` object that the resolver and the
hub client consult for capability bounds and remote record lookups. The
catalog is immutable once built; :func:`load_catalog` memoises a single
process-wide instance.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from functools import lru_cache
from importlib import resources
from pathlib import Path
from types import MappingProxyType
from typing import Dict, Iterator, Literal, Mapping, Optional, Tuple

import pandas as pd
from pydantic import BaseModel, ConfigDict, Field

from .errors import (
    RegistryValidationError,
    RemoteArtifactMissingError,
    UnknownDatasetError,
    format_choices,
)

REGISTRY_SCHEMA_VERSION = "1.0.0"

DATA_TYPES: Tuple[str, ...] = ("sce", "spe", "images", "masks")
SINGLE_CELL_TYPES = frozenset({"sce", "spe"})
STACK_TYPES = frozenset({"images", "masks"})
LATEST = "latest"
# Hub releases across the whole catalog, oldest first.
RELEASE_SEQUENCE: Tuple[str, ...] = ("v0", "v1")

# Remote layout mirrors the hub convention "imcdatasets/<dataset>/<version>/".
REMOTE_PREFIX = "imcdatasets"
_EXTENSIONS = {"sce": "h5ad", "spe": "h5ad", "images": "h5", "masks": "h5"}
_CLASSES = {"sce": "AnnData", "spe": "AnnData", "images": "ImageStack", "masks": "ImageStack"}

SUMMARY_COLUMNS: Tuple[str, ...] = (
    "name",
    "species",
    "tissue",
    "cell_count",
    "image_count",
    "channel_count",
    "citation",
)

DataType = Literal["sce", "spe", "images", "masks"]


@dataclass(frozen=True)
class DatasetMetadata:
    """Human-facing metadata used for attribution and documentation."""

    title: str
    description: str
    species: str
    tissue: str
    citation: str
    license: str
    doi: Optional[str] = None
    source_url: Optional[str] = None
    author: Optional[str] = None


@dataclass(frozen=True)
class DatasetDescriptor:
    """Declared capabilities of one dataset.

    ``available_versions`` is listed in release order; that order is the
    total order used for ``"latest"`` and for version comparisons.
    """

    name: str
    available_versions: Tuple[str, ...]
    metadata: DatasetMetadata
    available_data_types: frozenset = frozenset(DATA_TYPES)
    supports_on_disk: bool = True
    spe_since: str = "v1"
    variants: Tuple[str, ...] = ()
    default_variant: Optional[str] = None
    variant_label: str = "variant"
    file_sizes: Mapping[str, str] = field(default_factory=dict)
    checksums: Mapping[str, str] = field(default_factory=dict)

    @property
    def latest_version(self) -> str:
        return self.available_versions[-1]

    def version_rank(self, version: str) -> int:
        """Position of ``version`` in the release sequence."""

        return self.available_versions.index(version)

    def supports_spe(self, version: str) -> bool:
        if self.spe_since not in self.available_versions:
            return False
        return self.version_rank(version) >= self.version_rank(self.spe_since)

    def predates_spe(self, version: str) -> bool:
        """True when ``version`` is a release older than ``spe_since``.

        Releases this dataset never published are placed with the
        catalog-wide :data:`RELEASE_SEQUENCE`.
        """

        if version in self.available_versions and self.spe_since in self.available_versions:
            return self.version_rank(version) < self.version_rank(self.spe_since)
        if version in RELEASE_SEQUENCE and self.spe_since in RELEASE_SEQUENCE:
            return RELEASE_SEQUENCE.index(version) < RELEASE_SEQUENCE.index(self.spe_since)
        return False


@dataclass(frozen=True)
class CacheKey:
    """Identity of one remote artifact: (dataset, version, data_type[, variant])."""

    dataset: str
    version: str
    data_type: str
    variant: Optional[str] = None

    @property
    def stem(self) -> str:
        if self.variant:
            return f"{self.data_type}_{self.variant}"
        return self.data_type

    @property
    def filename(self) -> str:
        return f"{self.stem}.{_EXTENSIONS[self.data_type]}"

    @property
    def relative_path(self) -> str:
        """Stable location of the artifact under the store/cache root."""

        return f"{REMOTE_PREFIX}/{self.dataset}/{self.version}/{self.filename}"

    def __str__(self) -> str:
        return f"{self.dataset} - {self.version} - {self.stem}"


class HubRecord(BaseModel):
    """Metadata descriptor for a single remote artifact."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    title: str
    description: str
    dataset: str
    version: str
    data_type: DataType
    variant: Optional[str] = None
    remote_path: str
    artifact_class: str
    species: str
    tissue: str
    citation: str
    license: str
    source_doi: Optional[str] = None
    source_url: Optional[str] = None
    size_on_disk: Optional[str] = None
    checksum: Optional[str] = None
    checksum_type: str = Field(default="sha256")

    @property
    def key(self) -> CacheKey:
        return CacheKey(self.dataset, self.version, self.data_type, self.variant)


def _record_for(descriptor: DatasetDescriptor, key: CacheKey) -> HubRecord:
    meta = descriptor.metadata
    variant_note = f" ({descriptor.variant_label}: {key.variant})" if key.variant else ""
    return HubRecord(
        title=str(key),
        description=f"{meta.title}{variant_note}. {meta.description}",
        dataset=key.dataset,
        version=key.version,
        data_type=key.data_type,  # type: ignore[arg-type]
        variant=key.variant,
        remote_path=key.relative_path,
        artifact_class=_CLASSES[key.data_type],
        species=meta.species,
        tissue=meta.tissue,
        citation=meta.citation,
        license=meta.license,
        source_doi=meta.doi,
        source_url=meta.source_url,
        size_on_disk=descriptor.file_sizes.get(key.data_type),
        checksum=descriptor.checksums.get(key.relative_path),
    )


@dataclass(frozen=True)
class Catalog:
    """Read-only view over registered datasets and their summary table."""

    descriptors: Mapping[str, DatasetDescriptor]
    summary_path: Path

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "descriptors", MappingProxyType(dict(self.descriptors))
        )

    def names(self) -> Tuple[str, ...]:
        return tuple(self.descriptors)

    def describe(self, dataset: str) -> DatasetDescriptor:
        """Return the descriptor for ``dataset`` or raise ``UnknownDatasetError``."""

        try:
            return self.descriptors[dataset]
        except (KeyError, TypeError):
            raise UnknownDatasetError(
                f"Unknown dataset {dataset!r}. Available datasets: "
                f"{format_choices(self.descriptors)}."
            ) from None

    def list_all(self) -> pd.DataFrame:
        """One summary row per registered dataset."""

        table = pd.read_csv(self.summary_path)
        missing = [c for c in SUMMARY_COLUMNS if c not in table.columns]
        if missing:
            raise RegistryValidationError(
                f"Catalog summary {self.summary_path} is missing columns {missing}"
            )
        table = table.loc[table["name"].isin(list(self.descriptors)), list(SUMMARY_COLUMNS)]
        return table.reset_index(drop=True)

    def keys(self, dataset: Optional[str] = None) -> Iterator[CacheKey]:
        """Enumerate every artifact key the catalog declares."""

        names = [dataset] if dataset is not None else list(self.descriptors)
        for name in names:
            descriptor = self.describe(name)
            for version in descriptor.available_versions:
                for data_type in DATA_TYPES:
                    if data_type not in descriptor.available_data_types:
                        continue
                    if data_type == "spe" and not descriptor.supports_spe(version):
                        continue
                    for variant in descriptor.variants or (None,):
                        yield CacheKey(name, version, data_type, variant)

    def records(self, dataset: Optional[str] = None) -> Iterator[HubRecord]:
        for key in self.keys(dataset):
            yield _record_for(self.descriptors[key.dataset], key)

    def hub_record(self, key: CacheKey) -> HubRecord:
        descriptor = self.describe(key.dataset)
        if key not in set(self.keys(key.dataset)):
            raise RemoteArtifactMissingError(
                f"No remote record is declared for {key}"
            )
        return _record_for(descriptor, key)


_JACKSON_FISCHER = DatasetDescriptor(
    name="JacksonFischer_2020_BreastCancer",
    available_versions=("v0", "v1"),
    file_sizes={
        "images": "2.0 Gb",
        "masks": "10 Mb",
        "sce": "266 Mb",
        "spe": "267 Mb",
    },
    metadata=DatasetMetadata(
        title="Jackson, Fischer et al. (2020) breast cancer IMC dataset",
        description=(
            "Imaging mass cytometry of tumour tissue from 100 patients with "
            "breast cancer (one image per patient): 100 42-channel images, the "
            "matching cell segmentation masks and 285,851 cells of single-cell "
            "data with clinical annotations. Assays: counts (mean ion counts), "
            "exprs (arsinh, cofactor 1) and quant_norm (0-1, 99th percentile)."
        ),
        species="Human",
        tissue="Breast tumour",
        citation=(
            "Jackson, H. W., Fischer, J. R., et al. (2020). The single-cell "
            "pathology landscape of breast cancer. Nature, 578(7796), 615-620."
        ),
        doi="10.1038/s41586-019-1876-x",
        license="CC-BY-4.0",
        source_url="https://doi.org/10.5281/zenodo.3518284",
        author="Jana Fischer",
    ),
)

DATASET_REGISTRY: Dict[str, DatasetDescriptor] = {
    "Damond_2019_Pancreas": DatasetDescriptor(
        name="Damond_2019_Pancreas",
        available_versions=("v0", "v1"),
        metadata=DatasetMetadata(
            title="Damond et al. (2019) type 1 diabetes pancreas IMC dataset",
            description=(
                "Imaging mass cytometry of pancreas sections from donors at "
                "different stages of type 1 diabetes: 100 38-channel images, "
                "cell segmentation masks and 252,059 cells of single-cell data."
            ),
            species="Human",
            tissue="Pancreas",
            citation=(
                "Damond, N., Engler, S., Zanotelli, V. R. T., et al. (2019). A "
                "map of human type 1 diabetes progression by imaging mass "
                "cytometry. Cell Metabolism, 29(3), 755-768."
            ),
            doi="10.1016/j.cmet.2018.11.014",
            license="CC-BY-4.0",
            author="Nicolas Damond",
        ),
    ),
    "HochSchulz_2022_Melanoma": DatasetDescriptor(
        name="HochSchulz_2022_Melanoma",
        available_versions=("v1",),
        variants=("protein", "rna"),
        default_variant="protein",
        variant_label="panel",
        metadata=DatasetMetadata(
            title="Hoch, Schulz et al. (2022) metastatic melanoma IMC dataset",
            description=(
                "Imaging mass cytometry of metastatic melanoma samples acquired "
                "with paired protein and RNA (chemokine) panels. The protein "
                "panel is returned by default."
            ),
            species="Human",
            tissue="Metastatic melanoma",
            citation=(
                "Hoch, T., Schulz, D., et al. (2022). Multiplexed imaging mass "
                "cytometry of the chemokine milieus in melanoma characterizes "
                "features of the response to immunotherapy. Science "
                "Immunology, 7(70), eabk1692."
            ),
            doi="10.1126/sciimmunol.abk1692",
            license="CC-BY-4.0",
            author="Tobias Hoch",
        ),
    ),
    "JacksonFischer_2020_BreastCancer": _JACKSON_FISCHER,
    "Zanotelli_2020_Spheroids": DatasetDescriptor(
        name="Zanotelli_2020_Spheroids",
        available_versions=("v0", "v1"),
        metadata=DatasetMetadata(
            title="Zanotelli et al. (2020) cell line spheroid IMC dataset",
            description=(
                "Imaging mass cytometry of 3D cell line spheroids grown under "
                "different conditions: 517 51-channel images, segmentation "
                "masks and 229,047 cells of single-cell data."
            ),
            species="Human",
            tissue="Cell line spheroids",
            citation=(
                "Zanotelli, V. R. T., Leutenegger, M., et al. (2020). A "
                "quantitative analysis of the interplay of environment, "
                "neighborhood, and cell state in 3D spheroids. Molecular "
                "Systems Biology, 16(12), e9798."
            ),
            doi="10.15252/msb.20209798",
            license="CC-BY-4.0",
            author="Vito Zanotelli",
        ),
    ),
    "IMMUcan_2022_CancerExample": DatasetDescriptor(
        name="IMMUcan_2022_CancerExample",
        available_versions=("v1",),
        metadata=DatasetMetadata(
            title="IMMUcan (2022) example multi-cancer IMC dataset",
            description=(
                "Small example imaging mass cytometry dataset from the IMMUcan "
                "consortium covering four cancer types: 14 40-channel images, "
                "segmentation masks and 47,859 cells of single-cell data."
            ),
            species="Human",
            tissue="Cancer",
            citation=(
                "Windhager, J., Zanotelli, V. R. T., et al. (2023). An end-to-end "
                "workflow for multiplexed image processing and analysis. Nature "
                "Protocols, 18, 3565-3613."
            ),
            doi="10.1038/s41596-023-00881-0",
            license="CC-BY-4.0",
            author="Nils Eling",
        ),
    ),
}


def _summary_path() -> Path:
    return Path(str(resources.files("imcdatasets") / "data" / "alldatasets.csv"))


def build_catalog(
    registry: Optional[Mapping[str, DatasetDescriptor]] = None,
    summary_path: Optional[Path] = None,
) -> Catalog:
    """Construct a catalog from an explicit registry (tests, mirrors)."""

    return Catalog(
        descriptors=registry if registry is not None else DATASET_REGISTRY,
        summary_path=summary_path or _summary_path(),
    )


@lru_cache(maxsize=1)
def load_catalog() -> Catalog:
    """Return the process-wide catalog built from the packaged registry."""

    catalog = build_catalog()
    validate_registry(catalog)
    return catalog


def describe_dataset(dataset: str) -> DatasetDescriptor:
    """Fetch a dataset descriptor or raise ``UnknownDatasetError``."""

    return load_catalog().describe(dataset)


def list_datasets() -> pd.DataFrame:
    """Summary information for all available datasets."""

    return load_catalog().list_all()


def validate_registry(catalog: Optional[Catalog] = None) -> None:
    """Validate catalog entries for completeness and internal consistency."""

    catalog = catalog or build_catalog()
    for key, entry in catalog.descriptors.items():
        if not isinstance(entry, DatasetDescriptor):
            raise RegistryValidationError(
                f"Registry entry for '{key}' is not a DatasetDescriptor"
            )
        if key != entry.name:
            raise RegistryValidationError(
                f"Registry key '{key}' must match descriptor name '{entry.name}'"
            )
        if not entry.available_versions:
            raise RegistryValidationError(f"Dataset '{key}' declares no versions")
        if len(set(entry.available_versions)) != len(entry.available_versions):
            raise RegistryValidationError(f"Dataset '{key}' repeats a version tag")
        if LATEST in entry.available_versions:
            raise RegistryValidationError(
                f"Dataset '{key}' may not use the reserved version tag '{LATEST}'"
            )
        unknown = set(entry.available_data_types) - set(DATA_TYPES)
        if not entry.available_data_types or unknown:
            raise RegistryValidationError(
                f"Dataset '{key}' has invalid data types {sorted(unknown)}"
            )
        if "spe" in entry.available_data_types and not any(
            entry.supports_spe(v) for v in entry.available_versions
        ):
            raise RegistryValidationError(
                f"Dataset '{key}' declares 'spe' but no version >= {entry.spe_since}"
            )
        if entry.variants and entry.default_variant not in entry.variants:
            raise RegistryValidationError(
                f"Dataset '{key}' default_variant must be one of {entry.variants}"
            )
        if not entry.variants and entry.default_variant is not None:
            raise RegistryValidationError(
                f"Dataset '{key}' sets default_variant without variants"
            )
        metadata = entry.metadata
        for attr in ("title", "description", "citation", "license", "species", "tissue"):
            if not str(getattr(metadata, attr)).strip():
                raise RegistryValidationError(
                    f"Dataset '{key}' is missing metadata.{attr}"
                )

    summary = catalog.list_all()
    missing = set(catalog.descriptors) - set(summary["name"])
    if missing:
        raise RegistryValidationError(
            f"Catalog summary has no row for {sorted(missing)}"
        )


__all__ = [
    "DATASET_REGISTRY",
    "DATA_TYPES",
    "LATEST",
    "REGISTRY_SCHEMA_VERSION",
    "SINGLE_CELL_TYPES",
    "STACK_TYPES",
    "SUMMARY_COLUMNS",
    "CacheKey",
    "Catalog",
    "DatasetDescriptor",
    "DatasetMetadata",
    "HubRecord",
    "build_catalog",
    "describe_dataset",
    "list_datasets",
    "load_catalog",
    "validate_registry",
]
