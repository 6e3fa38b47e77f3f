import numpy as np
import pytest

from daopt.aperture import (
    ApertureInfo,
    bixel_weight_jacobian,
    compute_bixel_weights,
    create_aperture_info,
    split_aperture_vector,
    vector_to_aperture,
)

_BIXEL_MAP = np.array([[0, 1, 2], [3, -1, 4]])


@pytest.fixture(name="aperture")
def aperture_fixture() -> ApertureInfo:
    return create_aperture_info(
        [_BIXEL_MAP, _BIXEL_MAP + 5], [0.0, 90.0], 1.0, initial_weight=2.0
    )


def test_create_aperture_info(aperture: ApertureInfo) -> None:
    assert aperture.num_of_shapes == 2
    assert aperture.num_of_leaf_pairs == 2
    assert aperture.num_of_columns == 3
    assert aperture.num_of_bixels == 10
    assert aperture.aperture_vector.size == 2 * (1 + 2 * 2)
    assert np.allclose(aperture.column_positions, [-1.0, 0.0, 1.0])
    assert aperture.leaf_limits == (-1.5, 1.5)
    assert np.allclose(aperture.shape_weights, 2.0)
    assert np.allclose(aperture.gantry_angles, [0.0, 90.0])
    assert aperture.left_leaf_index(1) == 4
    assert aperture.right_leaf_index(1) == 8
    assert np.allclose(aperture.bounds[:2], [[0.0, np.inf]] * 2)
    assert np.allclose(aperture.bounds[2:], [[-1.5, 1.5]] * 8)
    assert not aperture.aperture_vector.flags.writeable


def test_fully_open_shapes(aperture: ApertureInfo) -> None:
    assert aperture.bixel_weights is not None
    assert np.allclose(aperture.bixel_weights, 2.0)
    assert len(aperture.shapes) == 2
    shape = aperture.shapes[1]
    assert shape.beam == 1
    assert shape.weight == pytest.approx(2.0)
    assert shape.monitor_units == pytest.approx(200.0)
    assert np.allclose(shape.fluence, [[1.0, 1.0, 1.0], [1.0, 0.0, 1.0]])


def test_partial_opening(aperture: ApertureInfo) -> None:
    weights, left, right = split_aperture_vector(aperture, aperture.aperture_vector)
    left = left.copy()
    right = right.copy()
    # First shape: opening [-1.25, 0.0] over the first leaf pair, closed
    # second leaf pair.
    left[0] = [-1.25, 0.3]
    right[0] = [0.0, 0.3]
    vector = np.concatenate([weights, left.ravel(), right.ravel()])
    weights = compute_bixel_weights(aperture, vector)
    assert np.allclose(weights[:5], [2.0 * 0.75, 2.0 * 0.5, 0.0, 0.0, 0.0])
    assert np.allclose(weights[5:], 2.0)


def test_vector_to_aperture_returns_new_object(aperture: ApertureInfo) -> None:
    vector = np.array(aperture.aperture_vector)
    vector[:2] = [1.0, 3.0]
    new_aperture = vector_to_aperture(aperture, vector)
    assert new_aperture is not aperture
    assert np.allclose(aperture.shape_weights, 2.0)
    assert np.allclose(new_aperture.shape_weights, [1.0, 3.0])
    assert new_aperture.shapes[1].monitor_units == pytest.approx(300.0)
    assert new_aperture.bixel_weights is not None
    assert np.allclose(new_aperture.bixel_weights[5:], 3.0)


def test_bixel_weight_jacobian(aperture: ApertureInfo) -> None:
    rng = np.random.default_rng(123)
    vector = np.array(aperture.aperture_vector)
    vector[:2] = [1.5, 0.5]
    # Leaf positions away from the bixel edges:
    vector[2:6] = rng.uniform(-1.4, -0.6, 4)
    vector[6:10] = rng.uniform(0.6, 1.4, 4)
    jacobian = bixel_weight_jacobian(aperture, vector).toarray()
    assert jacobian.shape == (10, vector.size)
    step = 1e-6
    for idx in range(vector.size):
        delta = np.zeros(vector.size)
        delta[idx] = step
        numerical = (
            compute_bixel_weights(aperture, vector + delta)
            - compute_bixel_weights(aperture, vector - delta)
        ) / (2 * step)
        assert np.allclose(jacobian[:, idx], numerical, atol=1e-6)


def test_jacobian_at_open_edges_points_inward(aperture: ApertureInfo) -> None:
    jacobian = bixel_weight_jacobian(aperture, aperture.aperture_vector).toarray()
    # The left leaf of the first pair of shape 0 sits on the edge of bixel 0.
    assert jacobian[0, aperture.left_leaf_index(0)] == pytest.approx(-2.0)
    # The right leaf of the first pair of shape 0 sits on the edge of bixel 2.
    assert jacobian[2, aperture.right_leaf_index(0)] == pytest.approx(2.0)
    assert jacobian[1, aperture.left_leaf_index(0)] == 0.0


def test_invalid_aperture_info(aperture: ApertureInfo) -> None:
    with pytest.raises(ValueError, match="expected"):
        vector_to_aperture(aperture, aperture.aperture_vector[:-1])
    bounds = np.array(aperture.bounds)
    bounds[0] = [1.0, 0.0]
    with pytest.raises(ValueError, match="lower bounds are larger"):
        create_aperture_info([_BIXEL_MAP], [0.0], 1.0, bounds=bounds[:5])
    with pytest.raises(ValueError, match="bixel width"):
        create_aperture_info([_BIXEL_MAP], [0.0], 0.0)
    with pytest.raises(ValueError, match="bixel maps and gantry angles"):
        create_aperture_info([_BIXEL_MAP], [0.0, 1.0], 1.0)
