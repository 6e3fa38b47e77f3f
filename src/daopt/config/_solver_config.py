"""Configuration class for the solver."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, NonNegativeFloat, PositiveInt


class SolverConfig(BaseModel):
    """Configuration class for the nonlinear solver.

    The solver is a method of
    [`scipy.optimize.minimize`](https://docs.scipy.org/doc/scipy/reference/generated/scipy.optimize.minimize.html).
    The `method` field selects it: `slsqp` (also selected by `default`),
    `trust-constr`, `l-bfgs-b` or `tnc`. The latter two only support bound
    constraints and cannot be used for rotational delivery.

    - **`max_iterations`**: Passed to the solver as its iteration limit.
    - **`tolerance`**: The convergence tolerance passed to `minimize`.
    - **`options`**: Method-specific options, passed unchanged, except that
      `max_iterations` overrides any `maxiter` entry.

    Attributes:
        method:         Name of the solver method.
        max_iterations: Maximum number of iterations (optional).
        tolerance:      Convergence tolerance (optional).
        options:        Method-specific options (optional).
    """

    method: str = "default"
    max_iterations: PositiveInt | None = None
    tolerance: NonNegativeFloat | None = None
    options: dict[str, Any] | None = None

    model_config = ConfigDict(
        extra="forbid",
        frozen=True,
        str_min_length=1,
        str_strip_whitespace=True,
        validate_default=True,
    )
