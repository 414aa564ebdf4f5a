"""
Exception types raised by the expansion planning package.

1. DataError: malformed or inconsistent input, raised before any optimization
2. SolverError: a solver call ended with an unusable status
3. MasterInfeasible: the investment master problem was not solved to optimality
4. SubproblemInfeasible: a dispatch subproblem reported infeasibility
"""

from typing import Optional


class DataError(ValueError):
    """Input data failed validation."""


class SolverError(RuntimeError):
    """
    A linear program terminated with a status other than the one expected.

    `status` keeps the normalized solver status ("infeasible", "unbounded",
    "other"), `iteration` the decomposition iteration when known.
    """

    def __init__(
        self,
        message: str,
        status: Optional[str] = None,
        iteration: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.status = status
        self.iteration = iteration


class MasterInfeasible(SolverError):
    """The master problem is trivially feasible, so this is fatal."""


class SubproblemInfeasible(SolverError):
    """
    Dispatch subproblem reported infeasible.

    Unreachable while unserved energy is modelled; the decomposition loop
    recovers from it with a feasibility cut.
    """

    def __init__(
        self,
        message: str,
        scenario_idx: int,
        status: Optional[str] = "infeasible",
        iteration: Optional[int] = None,
    ) -> None:
        super().__init__(message, status=status, iteration=iteration)
        self.scenario_idx = scenario_idx
