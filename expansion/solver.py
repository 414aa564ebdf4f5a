"""Gurobi helpers shared by the master, subproblem and extensive-form models."""

import json
from pathlib import Path
from typing import Dict, Optional, Any
import gurobipy as gp
from gurobipy import GRB

OPTIMAL = "optimal"
INFEASIBLE = "infeasible"
UNBOUNDED = "unbounded"
OTHER = "other"

_STATUS_MAP = {
    GRB.OPTIMAL: OPTIMAL,
    GRB.INFEASIBLE: INFEASIBLE,
    GRB.INF_OR_UNBD: INFEASIBLE,
    GRB.UNBOUNDED: UNBOUNDED,
}


def solve_gurobi_model(
    model: gp.Model,
    log_file: Optional[Path | str] = None,
    params: Optional[Dict[str, Any]] = None,
) -> str:
    """
    Generic solve function for a Gurobi model.

    params: dict of Gurobi parameters, e.g.
        {"OutputFlag": 1, "TimeLimit": 300, "Method": 1}

    Returns the normalized status: "optimal", "infeasible", "unbounded" or "other".
    """
    if params:
        for k, v in params.items():
            model.setParam(k, v)
    if log_file is not None:
        model.setParam("LogFile", str(log_file))
    model.optimize()
    return model_status(model)


def model_status(model: gp.Model) -> str:
    return _STATUS_MAP.get(model.Status, OTHER)


def quiet_env() -> gp.Env:
    """
    A started Gurobi environment with console output disabled before start,
    so the license banner is not printed for every subproblem.
    """
    env = gp.Env(empty=True)
    env.setParam("OutputFlag", 0)
    env.start()
    return env


def load_gurobi_params(path: str | Path) -> Dict[str, Any]:
    """
    Load Gurobi parameters from a JSON file.
    Returns an empty dict if the file does not exist.
    """
    if not Path(path).exists():
        return {}
    with open(path, "r", encoding="utf-8") as f:
        params = json.load(f)
    if not isinstance(params, dict):
        raise ValueError(f"Gurobi params file {path} must contain a JSON object.")
    return params
