"""
Benders / L-shaped decomposition loop for capacity expansion planning.

Each iteration:
1. solve the master for (x, θ) and take its objective as lower bound
2. solve the dispatch subproblem of every scenario at x
3. UB = min(UB, I·x + Σ_ω p_ω Q(x, ω)), gap = UB - LB
4. stop if |gap| ≤ tolerance, otherwise add the new optimality cut(s)

Key components:
1. BendersData: bounds, cuts and current iterate owned by one run
2. BendersResult: final solution and outcome
3. solve_benders: main algorithm (deterministic, aggregate and multi-cut)
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Any
import logging
import math
import time
import numpy as np

from .cuts import BendersCut, FEASIBILITY, generate_benders_cuts
from .data import BendersConfig, ProblemData
from .errors import DataError, MasterInfeasible, SolverError, SubproblemInfeasible
from .master import MasterProblem
from .recorder import IterationRecord, ResultsRecorder
from .subproblem import SubproblemResult, solve_subproblems

logger = logging.getLogger(__name__)

CONVERGED = "converged"
NON_CONVERGENCE = "non_convergence"
MASTER_INFEASIBLE = "master_infeasible"
SOLVER_ERROR = "solver_error"


@dataclass
class BendersData:
    """
    Manages the state of the decomposition algorithm.
    """

    problem: ProblemData
    cut_type: str = "single"

    # Algorithm state
    iteration: int = 0
    cuts: List[BendersCut] = field(default_factory=list)

    # Bounds
    lower_bound: float = -np.inf
    upper_bound: float = np.inf
    gap: float = np.inf

    # Current iterate and incumbent
    x_current: Optional[Dict[int, float]] = None
    theta_current: Optional[List[float]] = None
    master_objective: Optional[float] = None
    best_x: Optional[Dict[int, float]] = None

    outcome: Optional[str] = None

    def compute_gap(self) -> float:
        """Absolute gap UB - LB."""
        if math.isinf(self.upper_bound) or math.isinf(self.lower_bound):
            return np.inf
        return self.upper_bound - self.lower_bound

    def update_upper_bound(self, candidate: float, x: Dict[int, float]) -> None:
        if candidate < self.upper_bound:
            self.upper_bound = candidate
            self.best_x = dict(x)

    def add_cuts(self, cuts: List[BendersCut]) -> None:
        self.cuts.extend(cuts)


@dataclass
class BendersResult:
    x: Dict[int, float]
    theta: List[float]
    objective: float  # final master objective
    lower_bound: float
    upper_bound: float
    gap: float
    outcome: str
    iterations: int
    cuts: List[BendersCut]
    best_x: Optional[Dict[int, float]] = None
    total_time: float = 0.0
    records: List[IterationRecord] = field(default_factory=list)

    @property
    def converged(self) -> bool:
        return self.outcome == CONVERGED

    def summary(self, problem: ProblemData) -> Dict[str, Any]:
        names = problem.technology_names
        return {
            "outcome": self.outcome,
            "iterations": self.iterations,
            "x": {names[i]: v for i, v in self.x.items()},
            "theta": list(self.theta),
            "objective": self.objective,
            "LB": self.lower_bound,
            "UB": self.upper_bound,
            "gap": self.gap,
            "n_cuts": len(self.cuts),
            "best_x": (
                {names[i]: v for i, v in self.best_x.items()} if self.best_x is not None else None
            ),
            "total_time": self.total_time,
        }


def expected_recourse(results: List[SubproblemResult], problem: ProblemData) -> float:
    probabilities = problem.probabilities
    return float(sum(probabilities[r.scenario_idx] * r.objective_value for r in results))


def _initial_x(config: BendersConfig, problem: ProblemData) -> Dict[int, float]:
    values = list(config.initial_solution)
    if len(values) != len(problem.technologies):
        raise DataError(
            f"initial_solution has {len(values)} entries, expected {len(problem.technologies)}"
        )
    if any(not float(v) >= 0.0 for v in values):
        raise DataError("initial_solution must be non-negative.")
    return {i: float(v) for i, v in enumerate(values)}


def _result_from_state(
    data: BendersData, recorder: ResultsRecorder, start_time: float
) -> BendersResult:
    return BendersResult(
        x=dict(data.x_current or {}),
        theta=list(data.theta_current or []),
        objective=data.master_objective if data.master_objective is not None else np.nan,
        lower_bound=data.lower_bound,
        upper_bound=data.upper_bound,
        gap=data.gap,
        outcome=data.outcome,
        iterations=data.iteration,
        cuts=list(data.cuts),
        best_x=data.best_x,
        total_time=time.time() - start_time,
        records=recorder.records,
    )


def solve_benders(
    problem: ProblemData,
    config: Optional[BendersConfig] = None,
    recorder: Optional[ResultsRecorder] = None,
) -> BendersResult:
    """
    Run the decomposition to termination.

    Args:
        problem: validated problem data (deterministic or with scenarios)
        config: algorithm parameters (defaults: single cut, 50 iterations, tol 1e-3)
        recorder: receives one IterationRecord per iteration and the summary;
            it keeps the partial log when the run aborts

    Returns:
        BendersResult with outcome "converged" or "non_convergence"

    Raises:
        MasterInfeasible: master not solved to optimality (fatal)
        SolverError: unexpected solver status in a subproblem
    """
    config = config or BendersConfig()
    if recorder is None:
        recorder = ResultsRecorder(problem, config.cut_type)

    cut_type = config.cut_type
    params = config.gurobi_params()
    optimality_tag = "optimality_multi_cut" if cut_type == "multi" else "optimality"

    data = BendersData(problem=problem, cut_type=cut_type)
    x_init = _initial_x(config, problem) if config.initial_solution is not None else None

    logger.info(
        "Benders decomposition: %d technologies, %d slices, %d scenarios, cut type %s, tol %g",
        len(problem.technologies),
        len(problem.slices),
        problem.n_scenarios,
        cut_type,
        config.tolerance,
    )

    start_time = time.time()

    with MasterProblem(problem, cut_type=cut_type, params=params) as master:
        try:
            # Optional initial cuts from a given investment vector
            if x_init is not None:
                initial_results = solve_subproblems(
                    x_init, problem, params=params, max_workers=config.max_workers
                )
                initial_cuts = generate_benders_cuts(
                    initial_results, problem, iteration=0, cut_type=cut_type, x_bar=x_init
                )
                master.add_cuts(initial_cuts)
                data.add_cuts(initial_cuts)
                data.update_upper_bound(
                    problem.investment_cost_of(x_init) + expected_recourse(initial_results, problem),
                    x_init,
                )
                logger.info("Initial upper bound: %.6g", data.upper_bound)

            for iteration in range(1, config.max_iterations + 1):
                data.iteration = iteration

                # 1) master
                sol = master.solve(iteration)
                data.x_current = sol.x
                data.theta_current = sol.theta
                data.master_objective = sol.objective
                data.lower_bound = sol.objective

                # 2) subproblems
                try:
                    results = solve_subproblems(
                        sol.x, problem, params=params, max_workers=config.max_workers
                    )
                except SubproblemInfeasible as exc:
                    logger.warning(
                        "Iter %3d | subproblem %d infeasible, adding feasibility cut: %s",
                        iteration,
                        exc.scenario_idx,
                        exc,
                    )
                    cut = master.add_feasibility_cut(iteration)
                    data.add_cuts([cut])
                    data.gap = data.compute_gap()
                    recorder.record(
                        IterationRecord(
                            iteration=iteration,
                            x=dict(sol.x),
                            theta=list(sol.theta),
                            investment_cost=sol.investment_cost,
                            recourse=np.nan,
                            lower_bound=data.lower_bound,
                            upper_bound=data.upper_bound,
                            gap=data.gap,
                            cut_type=FEASIBILITY,
                            elapsed=time.time() - start_time,
                        )
                    )
                    continue

                # 3) bounds
                recourse = expected_recourse(results, problem)
                data.update_upper_bound(sol.investment_cost + recourse, sol.x)
                data.gap = data.compute_gap()

                if data.upper_bound < data.lower_bound - 1e-6 * max(1.0, abs(data.upper_bound)):
                    logger.warning(
                        "Iter %3d | UB %.9g below LB %.9g", iteration, data.upper_bound, data.lower_bound
                    )

                recorder.record(
                    IterationRecord(
                        iteration=iteration,
                        x=dict(sol.x),
                        theta=list(sol.theta),
                        investment_cost=sol.investment_cost,
                        recourse=recourse,
                        lower_bound=data.lower_bound,
                        upper_bound=data.upper_bound,
                        gap=data.gap,
                        cut_type=optimality_tag,
                        elapsed=time.time() - start_time,
                        scenario_recourse=[r.objective_value for r in results],
                    )
                )
                logger.info(
                    "Iter %3d | LB: %14.6g | UB: %14.6g | Gap: %12.6g | Cuts: %3d | Time: %6.2fs",
                    iteration,
                    data.lower_bound,
                    data.upper_bound,
                    data.gap,
                    len(data.cuts),
                    time.time() - start_time,
                )

                # 4) convergence
                if abs(data.gap) <= config.tolerance:
                    data.outcome = CONVERGED
                    logger.info("CONVERGED in %d iterations, gap %.6g", iteration, data.gap)
                    break

                cuts = generate_benders_cuts(
                    results, problem, iteration=iteration, cut_type=cut_type, x_bar=sol.x
                )
                master.add_cuts(cuts)
                data.add_cuts(cuts)

            else:
                data.outcome = NON_CONVERGENCE
                logger.warning(
                    "MAXIMUM ITERATIONS (%d) REACHED, gap %.6g", config.max_iterations, data.gap
                )

        except SolverError as exc:
            data.outcome = MASTER_INFEASIBLE if isinstance(exc, MasterInfeasible) else SOLVER_ERROR
            logger.error("Iter %3d | aborting: %s", data.iteration, exc)
            recorder.finalize(_result_from_state(data, recorder, start_time).summary(problem))
            raise

    result = _result_from_state(data, recorder, start_time)
    recorder.finalize(result.summary(problem))
    return result
