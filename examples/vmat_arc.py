"""Example of direct aperture optimization of a small rotational plan.

This example builds a synthetic arc of beams around a one-dimensional
phantom, with a target in the middle and an organ at risk on either side.
The shapes are optimized with leaf speed and dose rate constraints, after
which the plan is calibrated to the prescription and the quality indicators
and delivery metrics are reported.
"""

from typing import Any

import numpy as np
from numpy.typing import NDArray
from scipy import sparse

from daopt.aperture import ApertureInfo, create_aperture_info
from daopt.dij import DoseInfluenceMatrix
from daopt.enums import EventType
from daopt.events import Event
from daopt.optimization import DirectApertureOptimizer
from daopt.report import delivery_table, quality_indicators_table
from daopt.results import DaoResult

NUM_OF_BEAMS = 9
NUM_OF_COLUMNS = 8
NUM_OF_LEAF_PAIRS = 2
NUM_OF_VOXELS = 20

STRUCTURES: list[dict[str, Any]] = [
    {
        "name": "PTV",
        "type": 1,
        "priority": 1,
        "voxels": np.arange(8, 12),
        "objectives": [{"type": 1, "dose": 60.0, "penalty": 100.0}],
    },
    {
        "name": "OAR",
        "type": 2,
        "priority": 2,
        "voxels": np.r_[4:8, 12:16],
        "objectives": [{"type": 2, "dose": 20.0, "penalty": 10.0}],
    },
    {
        "name": "body",
        "type": 2,
        "priority": 3,
        "voxels": np.arange(NUM_OF_VOXELS),
        "objectives": [{"type": 4, "penalty": 0.1}],
    },
]

PLAN: dict[str, Any] = {
    "num_of_fractions": 30,
    "vmat": True,
    "leaf_speed_constraint": [0.0, 30.0],
    "dose_rate_constraint": [0.0, 20.0],
    "prescription_dose": 60.0,
    "prescription_structures": [0],
}

SOLVER: dict[str, Any] = {"method": "slsqp", "max_iterations": 200}


def phantom() -> tuple[DoseInfluenceMatrix, ApertureInfo]:
    """Create the dose influence matrix and the initial shapes.

    Each bixel deposits dose in a band of voxels, shifted along the phantom
    depending on the gantry angle.

    Returns:
        The dose influence matrix and the aperture parameterization.
    """
    bixels_per_beam = NUM_OF_COLUMNS * NUM_OF_LEAF_PAIRS
    angles = np.linspace(0.0, 40.0, NUM_OF_BEAMS)
    matrix = np.zeros((NUM_OF_VOXELS, NUM_OF_BEAMS * bixels_per_beam))
    voxels = np.arange(NUM_OF_VOXELS)
    for beam, angle in enumerate(angles):
        shift = 2.0 * np.sin(np.radians(angle - 20.0))
        for column in range(NUM_OF_COLUMNS):
            center = 6.0 + column + shift
            profile = np.exp(-0.5 * (voxels - center) ** 2)
            for pair in range(NUM_OF_LEAF_PAIRS):
                bixel = beam * bixels_per_beam + pair * NUM_OF_COLUMNS + column
                matrix[:, bixel] = profile
    bixel_maps = [
        np.arange(bixels_per_beam).reshape(NUM_OF_LEAF_PAIRS, NUM_OF_COLUMNS)
        + beam * bixels_per_beam
        for beam in range(NUM_OF_BEAMS)
    ]
    dij = DoseInfluenceMatrix.create(sparse.csr_matrix(matrix))
    aperture = create_aperture_info(bixel_maps, angles, 5.0, initial_weight=0.5)
    return dij, aperture


def report(event: Event) -> None:
    """Report the progress of the solver.

    Args:
        event: The iteration event.
    """
    iteration = event.data["iteration"]
    if iteration % 10 == 0:
        print(f"  iteration {iteration}: objective {event.data['objective']:.6g}")


def run_optimization(dij: DoseInfluenceMatrix, aperture: ApertureInfo) -> DaoResult:
    """Run the optimization.

    Args:
        dij:      The dose influence matrix.
        aperture: The initial aperture parameterization.

    Returns:
        The calibrated result.
    """
    result = (
        DirectApertureOptimizer(dij, STRUCTURES, aperture, PLAN, solver=SOLVER)
        .add_observer(EventType.ITERATION, report)
        .run(scale_dij=True, scale_to_prescription=True, cancel_on_interrupt=True)
        .result
    )
    assert result is not None
    print(f"\n  status: {result.outcome.status.name}")
    print(f"  rescale factor: {result.rescale_factor:.4g}")
    print(f"  calibration factor: {result.calibration_factor:.4g}\n")
    return result


def target_coverage(result: DaoResult) -> NDArray[np.float64]:
    """Return the dose in the target voxels, in Gy per fraction."""
    return np.asarray(result.dose)[STRUCTURES[0]["voxels"]]


def main() -> None:
    """Run the example and check the result."""
    dij, aperture = phantom()
    result = run_optimization(dij, aperture)
    assert result.quality_indicators is not None
    assert result.delivery is not None
    print("  before calibration:")
    print(quality_indicators_table(result.quality_indicators))
    print()
    print(delivery_table(result.delivery))
    total_mu, total_time = result.delivery.total_mu, result.delivery.total_time
    print(f"\n  total: {total_mu:.1f} MU in {total_time:.1f} s")
    assert np.all(target_coverage(result) >= 0.95 * 2.0)


if __name__ == "__main__":
    main()
