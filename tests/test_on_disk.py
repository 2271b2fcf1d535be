import numpy as np
import pytest

from imcdatasets.artifacts import ImageStack
from imcdatasets.errors import ArtifactIntegrityError
from imcdatasets.on_disk import DiskBackedStack, materialize, store_path_for
from tests.factories import CHANNELS, IMAGE_NAMES, make_images, make_masks

zarr = pytest.importorskip("zarr")


def test_materialize_images(tmp_path):
    images = make_images()
    stack = materialize(images, tmp_path / "out")

    assert isinstance(stack, DiskBackedStack)
    assert stack.is_on_disk
    assert stack.names == images.names
    assert stack.channel_names == CHANNELS
    for name in IMAGE_NAMES:
        assert (tmp_path / "out" / f"{name}.zarr").is_dir()
        assert isinstance(stack.element(name), zarr.Array)
        np.testing.assert_array_equal(stack[name], images[name])
    assert list(stack.element_metadata["patient_id"]) == ["P01", "P02"]


def test_stores_are_chunked_per_channel(tmp_path):
    stack = materialize(make_images(), tmp_path)
    arr = stack.element(0)
    assert arr.chunks == (1, 12, 10)
    assert arr.attrs["imcdatasets:kind"] == "images"
    assert arr.attrs["imcdatasets:channel_names"] == list(CHANNELS)


def test_no_temporary_directories_left(tmp_path):
    materialize(make_masks(), tmp_path)
    leftovers = [p.name for p in tmp_path.iterdir() if p.name.startswith(".")]
    assert leftovers == []


def _other_masks():
    masks = make_masks()
    arrays = {name: masks[name] * 0 for name in masks}
    return ImageStack(arrays, kind="masks", element_metadata=masks.element_metadata)


def test_existing_stores_are_reused(tmp_path):
    materialize(make_masks(), tmp_path)
    stack = materialize(_other_masks(), tmp_path)
    assert stack[0].max() > 0


def test_force_overwrites_existing_stores(tmp_path):
    materialize(make_masks(), tmp_path)
    stack = materialize(_other_masks(), tmp_path, force=True)
    assert stack[0].max() == 0


def test_open_reconstructs_stack(tmp_path):
    names = ("z_last", "a_first")
    masks = make_masks(image_names=names)
    materialize(masks, tmp_path)

    reopened = DiskBackedStack.open(tmp_path)

    assert reopened.kind == "masks"
    assert reopened.names == names
    assert reopened.channel_names is None
    assert reopened.directory == tmp_path
    assert reopened.store_path("a_first") == store_path_for(tmp_path, "a_first")
    assert reopened.element_metadata.loc["a_first", "image_number"] == 2
    np.testing.assert_array_equal(reopened["z_last"], masks["z_last"])


def test_open_empty_directory(tmp_path):
    with pytest.raises(FileNotFoundError):
        DiskBackedStack.open(tmp_path)


def test_open_rejects_mixed_kinds(tmp_path):
    materialize(make_masks(image_names=("m",)), tmp_path)
    materialize(make_images(image_names=("i",)), tmp_path)
    with pytest.raises(ArtifactIntegrityError, match="mixes element kinds"):
        DiskBackedStack.open(tmp_path)


@pytest.mark.parametrize("name", ["../evil", "nested/evil", ".."])
def test_store_paths_stay_inside_directory(tmp_path, name):
    with pytest.raises(ArtifactIntegrityError, match="Invalid element name"):
        store_path_for(tmp_path, name)
