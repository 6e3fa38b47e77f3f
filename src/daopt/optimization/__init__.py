"""The main functionality for direct aperture optimization.

The [`DirectApertureOptimizer`][daopt.optimization.DirectApertureOptimizer]
class, and the
[`direct_aperture_optimization`][daopt.optimization.direct_aperture_optimization]
convenience function, run the complete optimization pipeline. The building
blocks of the pipeline are exported as well, for use in custom workflows.
"""

from ._calibration import calibrate_to_prescription
from ._cancellation import CancellationToken, subscribe_cancellation
from ._context import SolveContext
from ._dao import DirectApertureOptimizer, direct_aperture_optimization
from ._evaluators import DaoProblem
from ._postprocess import post_process
from ._problem import (
    OptimizationProblem,
    build_problem,
    get_constraint_bounds,
    normalize_structures,
    restore_prescription_scaling,
    set_overlap_priorities,
)
from ._protocol import NlpProblem
from ._rescale import DoseRescaler, compute_scale_factor
from ._solver import SciPySolver

__all__ = [
    "CancellationToken",
    "DaoProblem",
    "DirectApertureOptimizer",
    "DoseRescaler",
    "NlpProblem",
    "OptimizationProblem",
    "SciPySolver",
    "SolveContext",
    "build_problem",
    "calibrate_to_prescription",
    "compute_scale_factor",
    "direct_aperture_optimization",
    "get_constraint_bounds",
    "normalize_structures",
    "post_process",
    "restore_prescription_scaling",
    "set_overlap_priorities",
    "subscribe_cancellation",
]
