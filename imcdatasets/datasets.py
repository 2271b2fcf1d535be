"""One retrieval function per registered dataset.

Each function has the signature of :func:`imcdatasets.get` without the
``dataset`` argument, e.g.::

    import imcdatasets
    sce = imcdatasets.Damond_2019_Pancreas("sce")
    masks = imcdatasets.Damond_2019_Pancreas("masks", on_disk=True, disk_path="~/imc")
"""

from __future__ import annotations

import textwrap
from typing import Any, Callable, Optional

from .registry import DATASET_REGISTRY, LATEST
from .resolver import DatasetResolver, get


def _make_getter(name: str) -> Callable[..., Any]:
    descriptor = DATASET_REGISTRY[name]

    def getter(
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
        return get(
            name,
            data_type=data_type,
            metadata=metadata,
            on_disk=on_disk,
            disk_path=disk_path,
            version=version,
            force=force,
            variant=variant,
            resolver=resolver,
        )

    meta = descriptor.metadata
    variants = ""
    if descriptor.variants:
        variants = (
            f"\n\n``variant`` selects the {descriptor.variant_label}: one of "
            f"{', '.join(descriptor.variants)} (default {descriptor.default_variant})."
        )
    getter.__name__ = getter.__qualname__ = name
    getter.__doc__ = (
        f"{meta.title}.\n\n"
        + textwrap.fill(meta.description, width=76)
        + f"\n\nVersions: {', '.join(descriptor.available_versions)}."
        + variants
        + "\n\nSee :func:`imcdatasets.get` for the arguments.\n\nReference:\n"
        + textwrap.indent(textwrap.fill(meta.citation, width=72), "    ")
    )
    return getter


Damond_2019_Pancreas = _make_getter("Damond_2019_Pancreas")
HochSchulz_2022_Melanoma = _make_getter("HochSchulz_2022_Melanoma")
JacksonFischer_2020_BreastCancer = _make_getter("JacksonFischer_2020_BreastCancer")
Zanotelli_2020_Spheroids = _make_getter("Zanotelli_2020_Spheroids")
IMMUcan_2022_CancerExample = _make_getter("IMMUcan_2022_CancerExample")

__all__ = [
    "Damond_2019_Pancreas",
    "HochSchulz_2022_Melanoma",
    "IMMUcan_2022_CancerExample",
    "JacksonFischer_2020_BreastCancer",
    "Zanotelli_2020_Spheroids",
]
