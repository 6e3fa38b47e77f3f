from typing import Any

import numpy as np
import pytest

from daopt.aperture import vector_to_aperture
from daopt.config import PlanConfig
from daopt.enums import PipelineState, SolverStatus
from daopt.optimization import (
    DirectApertureOptimizer,
    calibrate_to_prescription,
    post_process,
    restore_prescription_scaling,
)
from daopt.results import DaoResult, SolverOutcome


def _result(dij: Any, aperture: Any, plan: PlanConfig, weight: float) -> DaoResult:
    vector = np.array(aperture.aperture_vector)
    vector[: aperture.num_of_shapes] = weight
    outcome = SolverOutcome(
        variables=vector,
        status=SolverStatus.CONVERGED,
        iterations=0,
        objective_values=np.zeros(0),
    )
    return post_process(dij, aperture, vector, outcome, plan)


def test_calibrate_to_prescription(toy_problem: Any) -> None:
    dij, structures, aperture = toy_problem()
    plan = PlanConfig(
        num_of_fractions=2, prescription_dose=2.0, prescription_structures=[0]
    )
    result = _result(dij, aperture, plan, 0.8)
    assert np.allclose(result.dose, [0.8, 0.8])

    calibrated = calibrate_to_prescription(result, dij, structures, plan)
    assert calibrated.calibration_factor == pytest.approx(1.25)
    assert calibrated.aperture.prescription_scale_factor == pytest.approx(1.25)
    assert np.allclose(calibrated.aperture.shape_weights, [1.0])
    assert np.allclose(calibrated.dose, [1.0, 1.0])
    assert np.allclose(calibrated.weights, [1.0, 1.0])
    assert calibrated.outcome is result.outcome
    assert calibrated.quality_indicators is not None
    assert calibrated.quality_indicators[0].d95 == pytest.approx(0.8)

    # The input result is not modified:
    assert np.allclose(result.dose, [0.8, 0.8])
    assert result.calibration_factor is None
    assert result.aperture.prescription_scale_factor is None


def test_calibrate_to_prescription_largest_factor(toy_problem: Any) -> None:
    dij, structures, aperture = toy_problem()
    vector = np.array(aperture.aperture_vector)
    # Open the second bixel by half:
    vector[2] = 0.5
    aperture = vector_to_aperture(aperture, vector)
    plan = PlanConfig(prescription_dose=1.0, prescription_structures=[0, 1])
    result = _result(dij, aperture, plan, 1.0)
    assert np.allclose(result.dose, [1.0, 0.5])
    calibrated = calibrate_to_prescription(result, dij, structures, plan)
    assert calibrated.calibration_factor == pytest.approx(2.0)
    assert np.allclose(calibrated.dose, [2.0, 1.0])


def test_calibration_compounds(toy_problem: Any) -> None:
    dij, structures, aperture = toy_problem()
    plan = PlanConfig(
        num_of_fractions=2, prescription_dose=2.0, prescription_structures=[0]
    )
    calibrated = calibrate_to_prescription(
        _result(dij, aperture, plan, 0.8), dij, structures, plan
    )
    plan = plan.model_copy(update={"prescription_dose": 3.0})
    calibrated = calibrate_to_prescription(calibrated, dij, structures, plan)
    assert calibrated.calibration_factor == pytest.approx(1.5)
    assert calibrated.aperture.prescription_scale_factor == pytest.approx(1.875)
    assert np.allclose(calibrated.dose, [1.5, 1.5])

    restored = restore_prescription_scaling(calibrated.aperture)
    assert restored.prescription_scale_factor is None
    assert np.allclose(restored.shape_weights, [0.8])


def test_calibration_of_delivery(arc_problem: Any) -> None:
    dij, structures, aperture = arc_problem()
    plan = PlanConfig(vmat=True, prescription_dose=4.5, prescription_structures=[0])
    result = _result(dij, aperture, plan, 1.0)
    assert result.delivery is not None
    assert result.delivery.total_mu == pytest.approx(3.0)
    calibrated = calibrate_to_prescription(result, dij, structures, plan)
    assert calibrated.calibration_factor == pytest.approx(1.5)
    assert np.allclose(calibrated.dose, 4.5)
    assert calibrated.delivery is not None
    assert calibrated.delivery.total_mu == pytest.approx(4.5)
    assert np.allclose(calibrated.delivery.monitor_units, 1.5)


def test_calibration_errors(toy_problem: Any) -> None:
    dij, structures, aperture = toy_problem()
    result = _result(dij, aperture, PlanConfig(), 1.0)
    with pytest.raises(ValueError, match="requires a prescription"):
        calibrate_to_prescription(result, dij, structures, PlanConfig())
    with pytest.raises(ValueError, match="requires a prescription"):
        calibrate_to_prescription(
            result, dij, structures, PlanConfig(prescription_dose=2.0)
        )

    plan = PlanConfig(prescription_dose=2.0, prescription_structures=[2])
    with pytest.raises(ValueError, match="invalid prescription structure index"):
        calibrate_to_prescription(result, dij, structures, plan)

    plan = PlanConfig(prescription_dose=2.0, prescription_structures=[0])
    result = _result(dij, aperture, plan, 0.0)
    with pytest.raises(ValueError, match="not positive"):
        calibrate_to_prescription(result, dij, structures, plan)


def test_dao_scale_to_prescription(toy_problem: Any) -> None:
    dij, structures, aperture = toy_problem(fixed_leaves=True)
    plan = PlanConfig(prescription_dose=2.0, prescription_structures=[0, 1])
    optimizer = DirectApertureOptimizer(dij, structures, aperture, plan)
    result = optimizer.run(scale_to_prescription=True).result
    assert result is not None
    assert optimizer.state == PipelineState.CALIBRATED
    # The optimum dose of 1.5 is scaled up to the prescription:
    assert result.calibration_factor == pytest.approx(2.0 / 1.5, rel=1e-3)
    assert np.allclose(result.dose, [2.0, 2.0])
    assert result.quality_indicators is not None
    assert result.quality_indicators[0].d95 == pytest.approx(1.5, abs=1e-3)

    # A new optimization starts from the uncalibrated weights:
    optimizer = DirectApertureOptimizer(dij, structures, result.aperture, plan)
    result = optimizer.run().result
    assert result is not None
    assert optimizer.state == PipelineState.POST_PROCESSED
    assert result.aperture.prescription_scale_factor is None
    assert np.allclose(result.dose, [1.5, 1.5], atol=1e-4)
