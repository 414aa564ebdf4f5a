"""
Benders cut generation from dispatch subproblem duals.

Only the right-hand sides of the subproblem depend on the investment vector,
so by LP duality the optimal duals give an exact subgradient of Q(x):

    Q(x, ω) ≥ Σ_s λ_s(ω)·ΔD[s,ω] + Σ_i ρ_i(ω)·x_i

with equality at the point where the duals were computed.

Single cut: θ ≥ Σ_ω p_ω [Σ_s λ_s(ω)·ΔD[s,ω]] + Σ_i [Σ_ω p_ω ρ_i(ω)]·x_i

Multi-cut: θ_ω ≥ Σ_s λ_s(ω)·ΔD[s,ω] + Σ_i ρ_i(ω)·x_i, one per scenario
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from .data import ProblemData
from .subproblem import SubproblemResult

OPTIMALITY = "optimality"
FEASIBILITY = "feasibility"


@dataclass
class BendersCut:
    """
    A single Benders cut.

    Optimality cut: θ (or θ_ω when scenario_idx is set) ≥ intercept + Σ_i coefficients[i]·x_i
    Feasibility cut: Σ_i coefficients[i]·x_i ≥ intercept
    """

    iteration: int
    intercept: float
    coefficients: Dict[int, float]
    scenario_idx: Optional[int] = None
    kind: str = OPTIMALITY
    x_bar: Optional[Dict[int, float]] = None

    def evaluate(self, x: Dict[int, float]) -> float:
        """Right-hand side of the cut at x."""
        return self.intercept + sum(c * x[i] for i, c in self.coefficients.items())


def scenario_cut_terms(
    result: SubproblemResult,
    problem: ProblemData,
) -> Tuple[float, Dict[int, float]]:
    """Intercept Σ_s λ_s·ΔD[s,ω] and gradient ρ(ω) of one scenario."""
    widths = problem.widths[:, result.scenario_idx]
    intercept = sum(result.duals_demand[s] * float(widths[s]) for s in problem.S)
    gradient = {i: result.duals_capacity[i] for i in problem.T}
    return intercept, gradient


def generate_aggregate_cut(
    subproblem_results: List[SubproblemResult],
    problem: ProblemData,
    iteration: int,
    x_bar: Optional[Dict[int, float]] = None,
) -> BendersCut:
    """Expectation cut over all scenarios, attached to the single θ."""
    probabilities = problem.probabilities
    intercept = 0.0
    coefficients = {i: 0.0 for i in problem.T}

    for result in subproblem_results:
        weight = float(probabilities[result.scenario_idx])
        alpha, beta = scenario_cut_terms(result, problem)
        intercept += weight * alpha
        for i in problem.T:
            coefficients[i] += weight * beta[i]

    return BendersCut(
        iteration=iteration,
        intercept=intercept,
        coefficients=coefficients,
        x_bar=dict(x_bar) if x_bar is not None else None,
    )


def generate_multi_cuts(
    subproblem_results: List[SubproblemResult],
    problem: ProblemData,
    iteration: int,
    x_bar: Optional[Dict[int, float]] = None,
) -> List[BendersCut]:
    """One cut per scenario, each attached to its own θ_ω."""
    cuts = []
    for result in subproblem_results:
        alpha, beta = scenario_cut_terms(result, problem)
        cuts.append(
            BendersCut(
                iteration=iteration,
                intercept=alpha,
                coefficients=beta,
                scenario_idx=result.scenario_idx,
                x_bar=dict(x_bar) if x_bar is not None else None,
            )
        )
    return cuts


def generate_benders_cuts(
    subproblem_results: List[SubproblemResult],
    problem: ProblemData,
    iteration: int,
    cut_type: str = "single",
    x_bar: Optional[Dict[int, float]] = None,
) -> List[BendersCut]:
    """
    Generate Benders optimality cuts from a complete set of subproblem results.

    cut_type "single" returns one aggregated cut, "multi" one cut per scenario.
    """
    if len(subproblem_results) != problem.n_scenarios:
        raise ValueError(
            f"Expected {problem.n_scenarios} subproblem results, got {len(subproblem_results)}"
        )

    if cut_type == "single":
        return [generate_aggregate_cut(subproblem_results, problem, iteration, x_bar)]
    elif cut_type == "multi":
        return generate_multi_cuts(subproblem_results, problem, iteration, x_bar)
    else:
        raise ValueError(f"Unknown cut_type: {cut_type}")


def feasibility_cut(problem: ProblemData, iteration: int) -> BendersCut:
    """
    Σ_i x_i ≥ max_{s,ω} ΔD[s,ω].

    Only used if a dispatch subproblem unexpectedly reports infeasibility.
    """
    return BendersCut(
        iteration=iteration,
        intercept=float(problem.widths.max()),
        coefficients={i: 1.0 for i in problem.T},
        kind=FEASIBILITY,
    )
