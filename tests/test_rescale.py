import logging
from dataclasses import replace
from typing import Any

import numpy as np
import pytest

from daopt.aperture import vector_to_aperture
from daopt.optimization import DoseRescaler, compute_scale_factor


def test_compute_scale_factor() -> None:
    assert compute_scale_factor([3.0, 5.0], 2.0) == pytest.approx(2.0)


@pytest.mark.parametrize(
    ("weights", "bixel_width"),
    [
        ([0.0, 0.0], 1.0),
        ([1.0, -3.0], 1.0),
        ([np.inf, 1.0], 1.0),
        ([np.nan, 1.0], 1.0),
        ([], 1.0),
        ([1.0, 2.0], 0.0),
    ],
)
def test_degenerate_scale_factor(
    weights: list[float], bixel_width: float, caplog: Any
) -> None:
    with caplog.at_level(logging.WARNING, logger="daopt.optimization._rescale"):
        assert compute_scale_factor(weights, bixel_width) == 1.0
    assert "rescaling is disabled" in caplog.text


def test_rescale_round_trip(toy_problem: Any) -> None:
    dij, _, aperture = toy_problem(bixel_width=2.0)
    vector = np.array(aperture.aperture_vector)
    vector[0] = 4.0
    aperture = vector_to_aperture(aperture, vector)

    rescaler = DoseRescaler.from_aperture(aperture)
    assert rescaler.factor == pytest.approx(2.0)

    scaled_dij, scaled_aperture = rescaler.rescale(dij, aperture)
    assert scaled_dij is not dij
    assert scaled_dij.scale_factor == pytest.approx(2.0)
    assert scaled_dij.weight_to_mu == pytest.approx(2.0 * dij.weight_to_mu)
    assert np.allclose(scaled_dij.physical_dose.toarray(), 2.0 * np.eye(2))
    assert scaled_aperture.weight_to_mu == pytest.approx(2.0 * aperture.weight_to_mu)
    assert np.allclose(scaled_aperture.shape_weights, [2.0])
    assert np.allclose(scaled_aperture.aperture_vector[1:], vector[1:])

    # The inputs are not modified:
    assert np.allclose(dij.physical_dose.toarray(), np.eye(2))
    assert np.allclose(aperture.shape_weights, [4.0])

    # The dose and the monitor units do not change:
    assert scaled_aperture.bixel_weights is not None
    assert aperture.bixel_weights is not None
    assert np.allclose(
        scaled_dij.dose(scaled_aperture.bixel_weights),
        dij.dose(aperture.bixel_weights),
    )
    assert scaled_aperture.shapes[0].monitor_units == pytest.approx(
        aperture.shapes[0].monitor_units
    )

    restored_dij, restored_aperture = rescaler.restore(scaled_dij, scaled_aperture)
    assert restored_dij.scale_factor == pytest.approx(1.0)
    assert restored_dij.weight_to_mu == pytest.approx(dij.weight_to_mu)
    assert np.allclose(restored_dij.physical_dose.toarray(), np.eye(2))
    assert restored_aperture.weight_to_mu == pytest.approx(aperture.weight_to_mu)
    assert np.allclose(restored_aperture.aperture_vector, aperture.aperture_vector)
    assert np.allclose(restored_aperture.bounds, aperture.bounds)


def test_rescale_vectors(toy_problem: Any) -> None:
    _, _, aperture = toy_problem()
    rescaler = DoseRescaler(4.0)
    vector = np.array([2.0, -0.5, 0.5])
    scaled = rescaler.to_optimizer(aperture, vector)
    assert np.allclose(scaled, [0.5, -0.5, 0.5])
    assert np.allclose(rescaler.from_optimizer(aperture, scaled), vector)
    assert np.allclose(vector, [2.0, -0.5, 0.5])


def test_rescale_weight_bounds(toy_problem: Any) -> None:
    dij, _, aperture = toy_problem()
    bounds = np.array(aperture.bounds)
    bounds[0] = [1.0, 8.0]
    aperture = replace(aperture, bounds=bounds)
    _, scaled = DoseRescaler(2.0).rescale(dij, aperture)
    assert np.allclose(scaled.bounds[0], [0.5, 4.0])
    assert np.allclose(scaled.bounds[1:], aperture.bounds[1:])
