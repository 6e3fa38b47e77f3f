"""Configuration classes for direct aperture optimization.

The configuration classes are built using
[`pydantic`](https://docs.pydantic.dev/), which validates the configuration
data on creation. Configuration objects are frozen and are typically created
from dictionaries using the `model_validate` class method:

```py
plan = PlanConfig.model_validate({"num_of_fractions": 30, "vmat": True})
```

- [`PlanConfig`][daopt.config.PlanConfig]: Plan metadata, fractionation and
  rotational delivery limits.
- [`SolverConfig`][daopt.config.SolverConfig]: Selection and settings of the
  nonlinear solver.
- [`StructureConfig`][daopt.config.StructureConfig]: A structure with its
  voxels and [`DoseObjectiveConfig`][daopt.config.DoseObjectiveConfig]
  objectives.
"""

from ._plan_config import PlanConfig
from ._solver_config import SolverConfig
from ._structure_config import DoseObjectiveConfig, StructureConfig

__all__ = [
    "DoseObjectiveConfig",
    "PlanConfig",
    "SolverConfig",
    "StructureConfig",
]
