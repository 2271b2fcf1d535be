from pathlib import Path, PurePosixPath

import numpy as np
import pytest

from imcdatasets.errors import (
    FlagTypeError,
    MissingArgumentError,
    MultiplicityError,
    UnknownDataTypeError,
    UnknownVariantError,
    UnknownVersionError,
    UnsupportedCombinationError,
)
from imcdatasets.registry import DATASET_REGISTRY
from imcdatasets.validation import RetrievalRequest, validate

DAMOND = DATASET_REGISTRY["Damond_2019_Pancreas"]
HOCH = DATASET_REGISTRY["HochSchulz_2022_Melanoma"]


def _validate(descriptor=DAMOND, **kwargs):
    return validate(RetrievalRequest(dataset=descriptor.name, **kwargs), descriptor)


@pytest.mark.parametrize("data_type", [None, [], ["sce", "spe"], ("images", "masks")])
def test_data_type_must_have_length_one(data_type):
    with pytest.raises(
        MultiplicityError, match="The data_type argument should be of length 1."
    ):
        _validate(data_type=data_type)


def test_single_element_sequence_is_accepted():
    assert _validate(data_type=np.array(["masks"])).data_type == "masks"
    assert _validate(data_type=["sce"]).data_type == "sce"


@pytest.mark.parametrize("data_type", ["abc", "SCE", 1])
def test_unknown_data_type(data_type):
    with pytest.raises(UnknownDataTypeError) as excinfo:
        _validate(data_type=data_type)
    assert str(excinfo.value) == (
        'The data_type argument should be "sce", "spe", "images", or "masks".'
    )


@pytest.mark.parametrize("flag", ["metadata", "on_disk", "force"])
@pytest.mark.parametrize("value", ["abc", None, 1, np.nan])
def test_flags_must_be_boolean(flag, value):
    with pytest.raises(FlagTypeError) as excinfo:
        _validate(data_type="sce", **{flag: value})
    assert isinstance(excinfo.value, TypeError)
    assert str(excinfo.value) == f'"{flag}" should be either True or False.'


def test_numpy_bool_flags_are_accepted():
    request = _validate(data_type="sce", metadata=np.bool_(True))
    assert request.metadata_only is True


def test_unknown_version():
    with pytest.raises(UnknownVersionError) as excinfo:
        _validate(data_type="sce", version="abc")
    assert str(excinfo.value).startswith(
        '"version" should be "latest" or one of the available dataset versions, '
        'e.g., "v1".'
    )
    assert '"v0" or "v1"' in str(excinfo.value)


def test_latest_resolves_to_newest_version():
    assert _validate(data_type="sce").version == "v1"
    assert _validate(data_type="sce", version="v0").version == "v0"


@pytest.mark.parametrize("dataset", sorted(DATASET_REGISTRY))
def test_spe_requires_spatial_version(dataset):
    descriptor = DATASET_REGISTRY[dataset]
    with pytest.raises(UnsupportedCombinationError) as excinfo:
        _validate(descriptor, data_type="spe", version="v0")
    assert str(excinfo.value) == (
        "It is only possible to retrieve SPE objects with dataset versions >= v1."
    )
    assert _validate(descriptor, data_type="spe", version="v1").data_type == "spe"


def test_unpublished_release_still_unknown_for_sce():
    assert "v0" not in HOCH.available_versions
    with pytest.raises(UnknownVersionError):
        _validate(HOCH, data_type="sce", version="v0")


@pytest.mark.parametrize("data_type", ["sce", "spe"])
def test_on_disk_only_for_stacks(data_type):
    with pytest.raises(UnsupportedCombinationError) as excinfo:
        _validate(data_type=data_type, on_disk=True, disk_path="/tmp/x")
    assert str(excinfo.value) == (
        'On disk storage is only available for "images" or "masks".'
    )


@pytest.mark.parametrize("disk_path", [None, "", "   ", Path(""), PurePosixPath("")])
def test_on_disk_requires_disk_path(disk_path):
    with pytest.raises(MissingArgumentError, match='"disk_path" must be provided'):
        _validate(data_type="masks", on_disk=True, disk_path=disk_path)


def test_on_disk_request_normalizes_path(tmp_path):
    request = _validate(data_type="images", on_disk=True, disk_path=str(tmp_path))
    assert request.on_disk is True
    assert request.disk_path == tmp_path


def test_dot_string_names_the_working_directory():
    request = _validate(data_type="masks", on_disk=True, disk_path=".")
    assert request.disk_path == Path(".")


def test_disk_path_ignored_without_on_disk(tmp_path):
    assert _validate(data_type="images", disk_path=tmp_path).disk_path is None


def test_checks_run_in_declared_order():
    # data_type problems are reported before flag problems
    with pytest.raises(UnknownDataTypeError):
        _validate(data_type="abc", metadata="abc")
    # flag problems are reported before version problems
    with pytest.raises(FlagTypeError):
        _validate(data_type="sce", metadata="abc", version="v9")


def test_default_variant_is_selected():
    request = _validate(HOCH, data_type="sce")
    assert request.variant == "protein"
    assert request.cache_key.stem == "sce_protein"


def test_explicit_variant():
    assert _validate(HOCH, data_type="masks", variant="rna").variant == "rna"


def test_unknown_variant():
    with pytest.raises(UnknownVariantError, match='"protein" or "rna"'):
        _validate(HOCH, data_type="sce", variant="dna")


def test_variant_on_dataset_without_variants():
    with pytest.raises(UnsupportedCombinationError, match="no sub-variants"):
        _validate(data_type="sce", variant="protein")
