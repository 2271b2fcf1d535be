import numpy as np
import pandas as pd
import pytest
from scipy import sparse

from imcdatasets.artifacts import (
    ImageStack,
    check_channel_consistency,
    check_mask_consistency,
    mapping_columns,
    read_image_stack,
    read_single_cell,
    shared_image_names,
    validate_single_cell,
    write_image_stack,
)
from imcdatasets.errors import ArtifactIntegrityError
from tests.factories import (
    CHANNELS,
    IMAGE_NAMES,
    make_images,
    make_masks,
    make_single_cell,
)


def test_image_stack_access():
    images = make_images()
    assert len(images) == 2
    assert images.names == IMAGE_NAMES
    assert images.channel_names == CHANNELS
    assert images[0].shape == (3, 12, 10)
    np.testing.assert_array_equal(images[0], images[IMAGE_NAMES[0]])
    assert list(images.element_metadata["image_name"]) == list(IMAGE_NAMES)
    assert images.nbytes == 2 * 3 * 12 * 10 * 4
    assert not images.is_on_disk


def test_image_stack_unknown_element():
    with pytest.raises(KeyError, match="No masks element named 'nope'"):
        make_masks().element("nope")


def test_images_need_matching_channel_names():
    with pytest.raises(ArtifactIntegrityError, match="channel names"):
        ImageStack({"a": np.zeros((2, 4, 4))}, kind="images", channel_names=["x"])


def test_masks_must_be_integer_2d():
    with pytest.raises(ArtifactIntegrityError, match="integer labels"):
        ImageStack({"a": np.zeros((4, 4), dtype=float)}, kind="masks")
    with pytest.raises(ArtifactIntegrityError, match="2-D"):
        ImageStack({"a": np.zeros((1, 4, 4), dtype=int)}, kind="masks")


def test_element_metadata_must_cover_elements():
    metadata = pd.DataFrame({"image_name": ["other"]})
    with pytest.raises(ArtifactIntegrityError, match="do not match"):
        ImageStack(
            {"a": np.zeros((4, 4), dtype=int)}, kind="masks", element_metadata=metadata
        )


def test_hdf5_stack_preserves_order_and_metadata(tmp_path):
    names = ("z_last", "a_first", "m_middle")
    path = write_image_stack(make_images(image_names=names), tmp_path / "images.h5")
    loaded = read_image_stack(path, "images")

    assert loaded.names == names
    assert loaded.channel_names == CHANNELS
    assert loaded.element_metadata.loc["a_first", "patient_id"] == "P02"
    assert loaded.element_metadata.loc["a_first", "image_number"] == 2


def test_read_image_stack_rejects_wrong_kind(tmp_path):
    path = write_image_stack(make_masks(), tmp_path / "masks.h5")
    with pytest.raises(ArtifactIntegrityError, match="holds 'masks'"):
        read_image_stack(path, "images")


@pytest.mark.parametrize("name", ["../escape", "a/b", "..", ".", "", "c:\\x"])
def test_element_names_must_be_plain(name):
    with pytest.raises(ArtifactIntegrityError, match="Invalid element name"):
        ImageStack({name: np.zeros((4, 4), dtype=int)}, kind="masks")


def test_read_image_stack_rejects_traversing_element_order(tmp_path):
    import h5py

    path = write_image_stack(make_masks(), tmp_path / "masks.h5")
    with h5py.File(path, "a") as fh:
        fh.attrs["element_order"] = np.array(
            ["../../outside"], dtype=h5py.string_dtype()
        )
    with pytest.raises(ArtifactIntegrityError, match="Invalid element name"):
        read_image_stack(path, "masks")


@pytest.mark.parametrize("data_type", ["sce", "spe"])
def test_synthetic_single_cell_is_valid(data_type, tmp_path):
    path = tmp_path / f"{data_type}.h5ad"
    make_single_cell(data_type).write_h5ad(path)
    adata = read_single_cell(path, data_type)
    assert adata.n_obs == 6
    assert list(adata.var_names) == list(CHANNELS)


def test_missing_marker_column():
    adata = make_single_cell()
    adata.var = adata.var.drop(columns=["metal"])
    with pytest.raises(ArtifactIntegrityError, match="marker annotation"):
        validate_single_cell(adata)


def test_duplicate_cell_identity():
    adata = make_single_cell()
    obs = adata.obs.copy()
    obs.iloc[1, obs.columns.get_loc("cell_number")] = 1
    adata.obs = obs
    with pytest.raises(ArtifactIntegrityError, match="cell annotation"):
        validate_single_cell(adata)


def test_counts_layer_required():
    adata = make_single_cell()
    del adata.layers["counts"]
    with pytest.raises(ArtifactIntegrityError, match="counts"):
        validate_single_cell(adata)


def test_spe_requires_spatial_coordinates():
    adata = make_single_cell("spe")
    del adata.obsm["spatial"]
    with pytest.raises(ArtifactIntegrityError, match="spatial coordinates"):
        validate_single_cell(adata, "spe")


def test_sce_accepts_obs_coordinates():
    adata = make_single_cell("sce")
    assert "spatial" not in adata.obsm
    validate_single_cell(adata, "sce")
    adata.obs = adata.obs.drop(columns=["cell_x"])
    with pytest.raises(ArtifactIntegrityError, match="coordinates missing"):
        validate_single_cell(adata, "sce")


def test_neighbor_edges_stay_within_one_image():
    adata = make_single_cell()
    graph = sparse.lil_matrix(adata.obsp["neighborhood"])
    graph[0, adata.n_obs - 1] = 1  # first cell of image 1 -> last cell of image 2
    adata.obsp["neighborhood"] = graph.tocsr()
    with pytest.raises(ArtifactIntegrityError, match="different images"):
        validate_single_cell(adata)


def test_cross_artifact_consistency():
    sce, images, masks = make_single_cell(), make_images(), make_masks()
    check_channel_consistency(images, sce)
    check_mask_consistency(masks, sce)
    assert shared_image_names(sce, images, masks) == sorted(IMAGE_NAMES)
    assert mapping_columns(sce, images, masks) == [
        "image_name",
        "image_number",
        "patient_id",
    ]


def test_mask_label_without_cell_is_reported():
    sce = make_single_cell(cells_per_image=2)
    with pytest.raises(ArtifactIntegrityError, match=r"\[3\]"):
        check_mask_consistency(make_masks(cells_per_image=3), sce)


def test_channel_mismatch_is_reported():
    images = make_images(channels=("CD3", "DNA1", "CD8"))
    with pytest.raises(ArtifactIntegrityError, match="do not match markers"):
        check_channel_consistency(images, make_single_cell())
