"""
Dispatch subproblem Q(x̄, ω) for a fixed investment vector and scenario.

    min  Σ_{i,s} MC_i·T_s·p[i,s] + Σ_s VOLL·T_s·lol[s]
    s.t. Σ_i p[i,s] + lol[s] = ΔD[s,ω]      (demand, dual λ_s)
         Σ_s p[i,s] ≤ x̄_i                    (capacity, dual ρ_i)
         p, lol ≥ 0

Unserved energy lol makes the problem feasible for every x̄ ≥ 0, so only
optimality cuts are needed. Each solve builds a fresh model in its own
Gurobi environment; nothing is reused between iterations.
"""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Dict, List, Optional, Any, Tuple
import logging
import time
import gurobipy as gp
from gurobipy import GRB

from .data import ProblemData
from .errors import SolverError, SubproblemInfeasible
from .solver import OPTIMAL, INFEASIBLE, quiet_env, solve_gurobi_model

logger = logging.getLogger(__name__)


@dataclass
class SubproblemResult:
    """
    Result from solving the dispatch subproblem Q(x̄, ω).

    Since the subproblem is an LP, duals come straight from the solver.
    """

    scenario_idx: int
    objective_value: float  # Q(x̄, ω)

    # Dual values
    duals_demand: Dict[int, float]  # λ_s for demand balance
    duals_capacity: Dict[int, float]  # ρ_i for capacity limits (≤ 0)

    # Primal dispatch
    dispatch: Dict[Tuple[int, int], float]  # p[i, s]
    unserved: Dict[int, float]  # lol[s]

    # Runtime info
    solve_time: float = 0.0

    @property
    def total_unserved(self) -> float:
        return sum(self.unserved.values())


def solve_dispatch_subproblem(
    x_bar: Dict[int, float],
    problem: ProblemData,
    scenario_idx: int,
    params: Optional[Dict[str, Any]] = None,
) -> SubproblemResult:
    """
    Solve the dispatch LP for scenario ω given x̄.

    Raises SubproblemInfeasible if the solver reports infeasibility and
    SolverError for any other non-optimal status.
    """
    T, S = problem.T, problem.S
    techs = problem.technologies
    slices = problem.slices
    widths = problem.widths[:, scenario_idx]
    voll = problem.voll

    with quiet_env() as env, gp.Model(f"Dispatch_w{scenario_idx}", env=env) as m:
        p = m.addVars(T, S, lb=0.0, vtype=GRB.CONTINUOUS, name="p")
        lol = m.addVars(S, lb=0.0, vtype=GRB.CONTINUOUS, name="lol")

        m.setObjective(
            gp.quicksum(
                techs[i].marginal_cost * slices[s].duration * p[i, s] for i in T for s in S
            )
            + gp.quicksum(voll * slices[s].duration * lol[s] for s in S),
            GRB.MINIMIZE,
        )

        demand_constrs = {
            s: m.addConstr(
                gp.quicksum(p[i, s] for i in T) + lol[s] == float(widths[s]),
                name=f"demand_{s}",
            )
            for s in S
        }
        capacity_constrs = {
            i: m.addConstr(
                gp.quicksum(p[i, s] for s in S) <= x_bar[i],
                name=f"capacity_{i}",
            )
            for i in T
        }

        start_time = time.time()
        status = solve_gurobi_model(m, params=params)
        solve_time = time.time() - start_time

        if status == INFEASIBLE:
            raise SubproblemInfeasible(
                f"Dispatch subproblem {scenario_idx} is infeasible at x = {x_bar}",
                scenario_idx=scenario_idx,
            )
        if status != OPTIMAL:
            raise SolverError(
                f"Dispatch subproblem {scenario_idx} terminated with status {m.Status}",
                status=status,
            )

        return SubproblemResult(
            scenario_idx=scenario_idx,
            objective_value=m.ObjVal,
            duals_demand={s: c.Pi for s, c in demand_constrs.items()},
            duals_capacity={i: c.Pi for i, c in capacity_constrs.items()},
            dispatch={(i, s): p[i, s].X for i in T for s in S},
            unserved={s: lol[s].X for s in S},
            solve_time=solve_time,
        )


def solve_subproblems(
    x_bar: Dict[int, float],
    problem: ProblemData,
    params: Optional[Dict[str, Any]] = None,
    max_workers: int = 1,
) -> List[SubproblemResult]:
    """
    Solve the dispatch subproblem of every scenario at the same x̄.

    Results are ordered by scenario index. With max_workers > 1 the scenarios
    are solved in a thread pool; every solve finishes before this returns, and
    the first failure (in scenario order) is raised afterwards.
    """
    W = problem.W
    if max_workers <= 1 or len(W) == 1:
        return [solve_dispatch_subproblem(x_bar, problem, w, params) for w in W]

    with ThreadPoolExecutor(max_workers=min(max_workers, len(W))) as executor:
        futures = [
            executor.submit(solve_dispatch_subproblem, x_bar, problem, w, params) for w in W
        ]
        # barrier: wait for every scenario before looking at any result
        errors = [f.exception() for f in futures]

    for w, exc in zip(W, errors):
        if exc is not None:
            logger.debug("Scenario %d failed: %s", w, exc)
            raise exc
    return [f.result() for f in futures]
