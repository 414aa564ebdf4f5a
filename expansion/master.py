"""
Investment master problem for the Benders / L-shaped decomposition.

Single cut:  min Σ_i I_i·x_i + θ
Multi-cut:   min Σ_i I_i·x_i + Σ_ω p_ω·θ_ω
             s.t. x ≥ 0, θ ≥ 0, accumulated cuts

Cuts are appended permanently; nothing is ever removed or tightened.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Any
import logging
import gurobipy as gp
from gurobipy import GRB

from .cuts import BendersCut, FEASIBILITY, OPTIMALITY, feasibility_cut
from .data import ProblemData
from .errors import MasterInfeasible
from .solver import OPTIMAL, quiet_env, solve_gurobi_model

logger = logging.getLogger(__name__)


@dataclass
class MasterSolution:
    x: Dict[int, float]
    theta: List[float]  # one entry for a single cut, one per scenario otherwise
    objective: float
    investment_cost: float
    status: str


class MasterProblem:
    """
    Owns the master LP, its variables and the cuts added so far.
    """

    def __init__(
        self,
        problem: ProblemData,
        cut_type: str = "single",
        params: Optional[Dict[str, Any]] = None,
    ):
        if cut_type not in ("single", "multi"):
            raise ValueError(f"Unknown cut_type: {cut_type}")

        self.problem = problem
        self.cut_type = cut_type
        self.params = dict(params or {})
        self._cuts: List[BendersCut] = []

        T = problem.T
        invest = problem.investment_costs
        n_theta = problem.n_scenarios if cut_type == "multi" else 1

        self.env = quiet_env()
        self.model = gp.Model("Benders_Master", env=self.env)

        # Variables
        self.x = self.model.addVars(T, lb=0.0, vtype=GRB.CONTINUOUS, name="x")
        self.theta = self.model.addVars(n_theta, lb=0.0, vtype=GRB.CONTINUOUS, name="theta")

        # Objective
        if cut_type == "multi":
            recourse = gp.quicksum(
                float(problem.probabilities[w]) * self.theta[w] for w in range(n_theta)
            )
        else:
            recourse = self.theta[0]
        self.model.setObjective(
            gp.quicksum(float(invest[i]) * self.x[i] for i in T) + recourse,
            GRB.MINIMIZE,
        )
        self.model.update()

    # ---------- cuts ----------
    @property
    def cuts(self) -> List[BendersCut]:
        return list(self._cuts)

    @property
    def n_cuts(self) -> int:
        return len(self._cuts)

    def add_optimality_cut(self, cut: BendersCut) -> None:
        """Append θ ≥ intercept + Σ_i coeff_i·x_i (θ_ω for a scenario cut)."""
        if cut.kind != OPTIMALITY:
            raise ValueError(f"Expected an optimality cut, got {cut.kind!r}")
        if cut.scenario_idx is None:
            if self.cut_type == "multi":
                raise ValueError("Multi-cut master needs a scenario index on every cut.")
            theta = self.theta[0]
            name = f"opt_cut_iter_{cut.iteration}"
        else:
            if self.cut_type != "multi":
                raise ValueError("Scenario cuts require a multi-cut master.")
            theta = self.theta[cut.scenario_idx]
            name = f"opt_cut_iter_{cut.iteration}_w{cut.scenario_idx}"

        self.model.addConstr(
            theta >= cut.intercept
            + gp.quicksum(cut.coefficients[i] * self.x[i] for i in self.problem.T),
            name=name,
        )
        self.model.update()
        self._cuts.append(cut)

    def add_feasibility_cut(self, iteration: int) -> BendersCut:
        """Append the defensive cut Σ_i x_i ≥ max ΔD."""
        cut = feasibility_cut(self.problem, iteration)
        self.model.addConstr(
            gp.quicksum(cut.coefficients[i] * self.x[i] for i in self.problem.T)
            >= cut.intercept,
            name=f"feas_cut_iter_{iteration}",
        )
        self.model.update()
        self._cuts.append(cut)
        return cut

    def add_cuts(self, cuts: List[BendersCut]) -> None:
        for cut in cuts:
            if cut.kind == FEASIBILITY:
                self.add_feasibility_cut(cut.iteration)
            else:
                self.add_optimality_cut(cut)

    # ---------- solve ----------
    def solve(self, iteration: Optional[int] = None) -> MasterSolution:
        status = solve_gurobi_model(self.model, params=self.params)
        if status != OPTIMAL:
            raise MasterInfeasible(
                f"Master not optimal (status {self.model.Status}) "
                f"with {self.n_cuts} cuts",
                status=status,
                iteration=iteration,
            )

        # clip solver noise below the zero bound
        x = {i: max(0.0, self.x[i].X) for i in self.problem.T}
        theta = [self.theta[k].X for k in range(len(self.theta))]
        return MasterSolution(
            x=x,
            theta=theta,
            objective=self.model.ObjVal,
            investment_cost=self.problem.investment_cost_of(x),
            status=status,
        )

    def close(self) -> None:
        self.model.dispose()
        self.env.dispose()

    def __enter__(self) -> "MasterProblem":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
