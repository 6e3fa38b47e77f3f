from typing import Any, Callable, Sequence

import numpy as np
import pytest
from scipy import sparse

from daopt.aperture import ApertureInfo, create_aperture_info
from daopt.config import PlanConfig, StructureConfig
from daopt.dij import DoseInfluenceMatrix
from daopt.enums import ObjectiveType, StructureType


def pytest_addoption(parser: Any) -> Any:
    parser.addoption(
        "--run-slow", action="store_true", default=False, help="run slow tests"
    )


def pytest_collection_modifyitems(config: Any, items: Sequence[Any]) -> None:
    if not config.getoption("--run-slow"):
        skip_slow = pytest.mark.skip(reason="need --run-slow option to run")
        for item in items:
            if "slow" in item.keywords:
                item.add_marker(skip_slow)


def _target(name: str, voxels: list[int], dose: float) -> StructureConfig:
    return StructureConfig.model_validate(
        {
            "name": name,
            "type": StructureType.TARGET,
            "voxels": voxels,
            "objectives": [
                {"type": ObjectiveType.SQUARED_DEVIATION, "dose": dose, "penalty": 1.0}
            ],
        }
    )


@pytest.fixture(name="toy_problem")
def fixture_toy_problem() -> Callable[
    ..., tuple[DoseInfluenceMatrix, tuple[StructureConfig, ...], ApertureInfo]
]:
    # One beam with a single leaf pair over two bixels, each bixel delivering
    # dose to its own voxel. The targets ask for a dose of 2 in the first and
    # 1 in the second voxel.
    def _toy_problem(
        *,
        bixel_width: float = 1.0,
        initial_weight: float = 1.0,
        fixed_leaves: bool = False,
    ) -> tuple[DoseInfluenceMatrix, tuple[StructureConfig, ...], ApertureInfo]:
        dij = DoseInfluenceMatrix.create(sparse.identity(2, format="csr"))
        structures = (_target("left", [0], 2.0), _target("right", [1], 1.0))
        bounds = None
        if fixed_leaves:
            bounds = [[0.0, np.inf], [-bixel_width] * 2, [bixel_width] * 2]
        aperture = create_aperture_info(
            [np.array([[0, 1]])],
            [0.0],
            bixel_width,
            initial_weight=initial_weight,
            bounds=bounds,
        )
        return dij, structures, aperture

    return _toy_problem


@pytest.fixture(name="arc_problem")
def fixture_arc_problem() -> Callable[
    ..., tuple[DoseInfluenceMatrix, tuple[StructureConfig, ...], ApertureInfo]
]:
    # A number of beams along an arc, each with two leaf pairs over two
    # columns. Bixel `v` of every beam delivers a unit dose to voxel `v`.
    def _arc_problem(
        *,
        angles: Sequence[float] = (0.0, 2.0, 4.0),
        target_dose: float = 4.5,
        weight_to_mu: float = 1.0,
    ) -> tuple[DoseInfluenceMatrix, tuple[StructureConfig, ...], ApertureInfo]:
        beams = len(angles)
        bixel_maps = [
            np.arange(4 * beam, 4 * beam + 4).reshape(2, 2) for beam in range(beams)
        ]
        dose = sparse.hstack([sparse.identity(4)] * beams, format="csr")
        dij = DoseInfluenceMatrix.create(dose, (2, 2), weight_to_mu=weight_to_mu)
        structures = (_target("target", [0, 1, 2, 3], target_dose),)
        aperture = create_aperture_info(
            bixel_maps, angles, 1.0, weight_to_mu=weight_to_mu
        )
        return dij, structures, aperture

    return _arc_problem


@pytest.fixture(name="plan")
def fixture_plan() -> PlanConfig:
    return PlanConfig()
