"""
Extensive-form (deterministic equivalent) model of the expansion problem.

All scenarios are written into one LP. It gives the reference optimum that
the decomposition must reproduce.
"""

from dataclasses import dataclass
from typing import Dict, Any, Tuple, Optional
import gurobipy as gp
from gurobipy import GRB

from .data import ProblemData
from .errors import SolverError
from .solver import OPTIMAL, quiet_env, solve_gurobi_model


@dataclass
class ExtensiveFormSolution:
    objective: float
    x: Dict[int, float]
    investment_cost: float
    expected_recourse: float
    unserved: Dict[Tuple[int, int], float]  # lol[s, w]


def build_extensive_form_model(
    problem: ProblemData,
    env: Optional[gp.Env] = None,
) -> Tuple[gp.Model, Dict[str, Any]]:
    """
    Build the monolithic LP

        min Σ_i I_i·x_i + Σ_ω p_ω [Σ_{i,s} MC_i·T_s·p[i,s,ω] + Σ_s VOLL·T_s·lol[s,ω]]
        s.t. Σ_i p[i,s,ω] + lol[s,ω] = ΔD[s,ω]
             Σ_s p[i,s,ω] ≤ x_i
             x, p, lol ≥ 0

    Returns:
        model: Gurobi model
        vars:  dict with keys 'x', 'p', 'lol'
    """
    T, S, W = problem.T, problem.S, problem.W
    techs = problem.technologies
    slices = problem.slices
    widths = problem.widths
    probabilities = problem.probabilities
    voll = problem.voll

    m = gp.Model("Expansion_extensive", env=env) if env is not None else gp.Model("Expansion_extensive")

    # first-stage investments x_i
    x = m.addVars(T, lb=0.0, vtype=GRB.CONTINUOUS, name="x")

    # second-stage dispatch and unserved energy per scenario
    p = m.addVars(T, S, W, lb=0.0, vtype=GRB.CONTINUOUS, name="p")
    lol = m.addVars(S, W, lb=0.0, vtype=GRB.CONTINUOUS, name="lol")

    for w in W:
        for s in S:
            m.addConstr(
                gp.quicksum(p[i, s, w] for i in T) + lol[s, w] == float(widths[s, w]),
                name=f"demand_s{s}_w{w}",
            )
        for i in T:
            m.addConstr(
                gp.quicksum(p[i, s, w] for s in S) <= x[i],
                name=f"cap_i{i}_w{w}",
            )

    obj = gp.LinExpr()
    obj += gp.quicksum(techs[i].investment_cost * x[i] for i in T)
    for w in W:
        weight = float(probabilities[w])
        obj += weight * gp.quicksum(
            techs[i].marginal_cost * slices[s].duration * p[i, s, w] for i in T for s in S
        )
        obj += weight * gp.quicksum(voll * slices[s].duration * lol[s, w] for s in S)

    m.setObjective(obj, GRB.MINIMIZE)
    m.update()

    return m, {"x": x, "p": p, "lol": lol}


def solve_extensive_form(
    problem: ProblemData,
    params: Optional[Dict[str, Any]] = None,
) -> ExtensiveFormSolution:
    with quiet_env() as env:
        model, var_dict = build_extensive_form_model(problem, env=env)
        with model:
            status = solve_gurobi_model(model, params=params)
            if status != OPTIMAL:
                raise SolverError(
                    f"Extensive form terminated with status {model.Status}", status=status
                )
            x = {i: var_dict["x"][i].X for i in problem.T}
            investment_cost = problem.investment_cost_of(x)
            return ExtensiveFormSolution(
                objective=model.ObjVal,
                x=x,
                investment_cost=investment_cost,
                expected_recourse=model.ObjVal - investment_cost,
                unserved={key: v.X for key, v in var_dict["lol"].items()},
            )
