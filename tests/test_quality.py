import math

import numpy as np
import pytest

from daopt.config import DoseObjectiveConfig, StructureConfig
from daopt.enums import ObjectiveType
from daopt.objectives import objective_gradient, objective_value
from daopt.quality import compute_quality_indicators, dose_at_volume


def test_dose_at_volume() -> None:
    dose = np.arange(1.0, 101.0)
    assert dose_at_volume(dose, 95) == pytest.approx(6.0)
    assert dose_at_volume(dose, 50) == pytest.approx(51.0)
    assert dose_at_volume(dose, 2) == pytest.approx(99.0)
    assert dose_at_volume(dose, 0) == pytest.approx(100.0)
    assert dose_at_volume(dose, 100) == pytest.approx(1.0)
    assert math.isnan(dose_at_volume(np.array([]), 95))


def test_compute_quality_indicators() -> None:
    dose = np.arange(1.0, 101.0).reshape(10, 10)
    structures = [
        StructureConfig(name="all", voxels=np.arange(100)),
        StructureConfig(name="first", voxels=[0, 1, 2, 3]),
        StructureConfig(name="empty", voxels=[]),
    ]
    indicators = compute_quality_indicators(dose, structures)
    assert [item.name for item in indicators] == ["all", "first", "empty"]
    assert indicators[0].mean == pytest.approx(50.5)
    assert indicators[0].max == pytest.approx(100.0)
    assert indicators[0].min == pytest.approx(1.0)
    assert indicators[0].std == pytest.approx(np.arange(1.0, 101.0).std())
    assert indicators[0].d95 == pytest.approx(6.0)
    assert set(indicators[0].dose_at_volume) == {2, 5, 50, 95, 98}
    assert indicators[1].mean == pytest.approx(2.5)
    assert indicators[1].d95 == pytest.approx(1.0)
    assert math.isnan(indicators[2].mean)
    assert math.isnan(indicators[2].d95)


@pytest.mark.parametrize(
    ("objective_type", "expected"),
    [
        (ObjectiveType.SQUARED_DEVIATION, (1.0 + 0.0 + 1.0) / 3),
        (ObjectiveType.SQUARED_OVERDOSING, 1.0 / 3),
        (ObjectiveType.SQUARED_UNDERDOSING, 1.0 / 3),
        (ObjectiveType.MEAN_DOSE, 2.0),
    ],
)
def test_objective_value(objective_type: ObjectiveType, expected: float) -> None:
    objective = DoseObjectiveConfig(type=objective_type, dose=2.0, penalty=3.0)
    dose = np.array([1.0, 2.0, 3.0])
    assert objective_value(objective, dose) == pytest.approx(3.0 * expected)


def test_dvh_objectives() -> None:
    dose = np.array([1.0, 2.0, 3.0, 4.0])
    # Voxels between the dose threshold and the dose at the given volume are
    # penalized. The D50 is 3.0, so only the voxel at 3.0 lies in that range.
    max_dvh = DoseObjectiveConfig(type=ObjectiveType.MAX_DVH, dose=2.5, volume=50.0)
    assert objective_value(max_dvh, dose) == pytest.approx(0.25 / 4)
    # The D75 is 2.0, only the voxel at 2.0 is below the threshold.
    min_dvh = DoseObjectiveConfig(type=ObjectiveType.MIN_DVH, dose=2.5, volume=75.0)
    assert objective_value(min_dvh, dose) == pytest.approx(0.25 / 4)


@pytest.mark.parametrize(
    "objective_type",
    [
        ObjectiveType.SQUARED_DEVIATION,
        ObjectiveType.SQUARED_OVERDOSING,
        ObjectiveType.SQUARED_UNDERDOSING,
        ObjectiveType.MEAN_DOSE,
    ],
)
def test_objective_gradient(objective_type: ObjectiveType) -> None:
    objective = DoseObjectiveConfig(type=objective_type, dose=2.0, penalty=2.0)
    dose = np.array([0.5, 1.5, 2.5, 3.5])
    gradient = objective_gradient(objective, dose)
    step = 1e-6
    for idx in range(dose.size):
        delta = np.zeros(dose.size)
        delta[idx] = step
        numerical = (
            objective_value(objective, dose + delta)
            - objective_value(objective, dose - delta)
        ) / (2 * step)
        assert gradient[idx] == pytest.approx(numerical, abs=1e-6)


def test_objectives_of_empty_structure() -> None:
    objective = DoseObjectiveConfig(dose=2.0)
    assert objective_value(objective, np.array([])) == 0.0
    assert objective_gradient(objective, np.array([])).size == 0
