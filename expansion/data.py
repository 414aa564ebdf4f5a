"""
Data structures for capacity expansion planning.

1. Technology: generation technology with marginal and investment cost
2. DemandSlice: one block of the load-duration curve
3. Scenario: one realization of the slice widths with its probability
4. ProblemData: validated, read-only problem instance
5. BendersConfig: algorithm parameters for the decomposition loop
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Dict, Any, List, Sequence
import json
import math
import numpy as np
import pandas as pd

from .errors import DataError

PROBABILITY_TOL = 1e-6
DEFAULT_VOLL = 1000.0  # value of lost load, €/MWh


@dataclass(frozen=True)
class Technology:
    name: str
    marginal_cost: float  # €/MWh
    investment_cost: float  # €/MW


@dataclass(frozen=True)
class DemandSlice:
    """
    A slice of the load-duration curve.

    Only the width max_level - min_level enters the dispatch problem.
    """

    name: str
    duration: float
    min_level: float
    max_level: float

    @property
    def width(self) -> float:
        return self.max_level - self.min_level


@dataclass(frozen=True)
class Scenario:
    """
    Realized slice widths ΔD[·, ω] for a single scenario ω.
    """

    name: str
    probability: float
    widths: tuple  # one ΔD per slice, in slice order


@dataclass(frozen=True)
class ProblemData:
    """
    Full planning instance:

    - technologies (first-stage investment, second-stage dispatch cost)
    - demand slices (duration weights and deterministic widths)
    - optional scenario table with per-slice widths

    Without a scenario table the instance is deterministic and behaves as a
    single implicit scenario with probability 1.
    """

    technologies: Sequence[Technology]
    slices: Sequence[DemandSlice]
    scenarios: Optional[Sequence[Scenario]] = None
    voll: float = DEFAULT_VOLL

    def __post_init__(self) -> None:
        try:
            technologies = tuple(
                Technology(t.name, float(t.marginal_cost), float(t.investment_cost))
                for t in self.technologies
            )
            slices = tuple(
                DemandSlice(s.name, float(s.duration), float(s.min_level), float(s.max_level))
                for s in self.slices
            )
            scenarios = None
            if self.scenarios is not None:
                scenarios = tuple(
                    Scenario(s.name, float(s.probability), tuple(float(v) for v in s.widths))
                    for s in self.scenarios
                )
            voll = float(self.voll)
        except (TypeError, ValueError) as exc:
            raise DataError(f"Non-numeric value in problem data: {exc}") from exc

        object.__setattr__(self, "technologies", technologies)
        object.__setattr__(self, "slices", slices)
        object.__setattr__(self, "scenarios", scenarios)
        object.__setattr__(self, "voll", voll)
        self._validate()

    def _validate(self) -> None:
        if not self.technologies:
            raise DataError("At least one technology is required.")
        if not self.slices:
            raise DataError("At least one demand slice is required.")

        names = [t.name for t in self.technologies]
        if len(set(names)) != len(names):
            raise DataError(f"Technology names must be unique: {names}")
        for t in self.technologies:
            if not (math.isfinite(t.marginal_cost) and math.isfinite(t.investment_cost)):
                raise DataError(f"Technology {t.name!r} has a non-finite cost.")
            if not (t.marginal_cost >= 0.0 and t.investment_cost >= 0.0):
                raise DataError(f"Technology {t.name!r} has a negative cost.")

        for s in self.slices:
            if not all(math.isfinite(v) for v in (s.duration, s.min_level, s.max_level)):
                raise DataError(f"Slice {s.name!r} has a non-finite duration or level.")
            if not s.duration > 0.0:
                raise DataError(f"Slice {s.name!r} must have a positive duration.")
            if not s.max_level >= s.min_level:
                raise DataError(
                    f"Slice {s.name!r}: max_level {s.max_level} < min_level {s.min_level}."
                )

        if not (math.isfinite(self.voll) and self.voll > 0.0):
            raise DataError("VOLL must be positive and finite.")

        if self.scenarios is None:
            return
        if not self.scenarios:
            raise DataError("Scenario table is empty.")

        scenario_names = [s.name for s in self.scenarios]
        if len(set(scenario_names)) != len(scenario_names):
            raise DataError(f"Scenario names must be unique: {scenario_names}")
        # per-scenario log columns are theta_<scenario> and Q_<scenario>
        generated = {f"{prefix}_{name}" for name in scenario_names for prefix in ("theta", "Q")}
        clashes = sorted(generated.intersection(names))
        if clashes:
            raise DataError(f"Technology names clash with per-scenario log columns: {clashes}")

        n_slices = len(self.slices)
        for scen in self.scenarios:
            if not (0.0 < scen.probability <= 1.0):
                raise DataError(
                    f"Scenario {scen.name!r}: probability {scen.probability} not in (0, 1]."
                )
            if len(scen.widths) != n_slices:
                raise DataError(
                    f"Scenario {scen.name!r} has {len(scen.widths)} widths, "
                    f"expected {n_slices}."
                )
            if any(not math.isfinite(w) for w in scen.widths):
                raise DataError(f"Scenario {scen.name!r} has a non-finite width.")
            if any(not w >= 0.0 for w in scen.widths):
                raise DataError(f"Scenario {scen.name!r} has a negative width.")
        total = sum(s.probability for s in self.scenarios)
        if abs(total - 1.0) > PROBABILITY_TOL:
            raise DataError(f"Scenario probabilities sum to {total}, expected 1.")

    # ---------- convenience properties ----------
    @property
    def T(self) -> List[int]:
        """Technology indices."""
        return list(range(len(self.technologies)))

    @property
    def S(self) -> List[int]:
        """Slice indices."""
        return list(range(len(self.slices)))

    @property
    def W(self) -> List[int]:
        """Scenario indices (a single index for deterministic data)."""
        return list(range(self.n_scenarios))

    @property
    def is_stochastic(self) -> bool:
        return self.scenarios is not None

    @property
    def n_scenarios(self) -> int:
        return len(self.scenarios) if self.scenarios is not None else 1

    @property
    def technology_names(self) -> List[str]:
        return [t.name for t in self.technologies]

    @property
    def scenario_names(self) -> List[str]:
        if self.scenarios is None:
            return ["base"]
        return [s.name for s in self.scenarios]

    @property
    def marginal_costs(self) -> np.ndarray:
        return np.array([t.marginal_cost for t in self.technologies], dtype=float)

    @property
    def investment_costs(self) -> np.ndarray:
        return np.array([t.investment_cost for t in self.technologies], dtype=float)

    @property
    def durations(self) -> np.ndarray:
        return np.array([s.duration for s in self.slices], dtype=float)

    @property
    def probabilities(self) -> np.ndarray:
        if self.scenarios is None:
            return np.ones(1)
        return np.array([s.probability for s in self.scenarios], dtype=float)

    @property
    def widths(self) -> np.ndarray:
        """ΔD as an (n_slices x n_scenarios) array."""
        if self.scenarios is None:
            return np.array([[s.width] for s in self.slices], dtype=float)
        return np.array([list(s.widths) for s in self.scenarios], dtype=float).T

    def investment_cost_of(self, x: Dict[int, float]) -> float:
        return float(sum(self.technologies[i].investment_cost * x[i] for i in self.T))

    def with_single_scenario(self, name: str = "base") -> "ProblemData":
        """
        Express deterministic data as an explicit one-scenario instance
        with probability 1.
        """
        if self.scenarios is not None:
            raise DataError("Data already carries a scenario table.")
        scen = Scenario(name=name, probability=1.0, widths=tuple(s.width for s in self.slices))
        return ProblemData(
            technologies=self.technologies,
            slices=self.slices,
            scenarios=[scen],
            voll=self.voll,
        )

    # ---------- IO helpers ----------
    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "voll": self.voll,
            "technologies": [
                {
                    "name": t.name,
                    "marginal_cost": t.marginal_cost,
                    "investment_cost": t.investment_cost,
                }
                for t in self.technologies
            ],
            "slices": [
                {
                    "name": s.name,
                    "duration": s.duration,
                    "min_level": s.min_level,
                    "max_level": s.max_level,
                }
                for s in self.slices
            ],
            "scenarios": None,
        }
        if self.scenarios is not None:
            d["scenarios"] = [
                {"name": s.name, "probability": s.probability, "widths": list(s.widths)}
                for s in self.scenarios
            ]
        return d

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "ProblemData":
        try:
            technologies = [
                Technology(
                    name=str(t["name"]),
                    marginal_cost=float(t["marginal_cost"]),
                    investment_cost=float(t["investment_cost"]),
                )
                for t in d["technologies"]
            ]
            slices = [
                DemandSlice(
                    name=str(s["name"]),
                    duration=float(s["duration"]),
                    min_level=float(s["min_level"]),
                    max_level=float(s["max_level"]),
                )
                for s in d["slices"]
            ]
            scenarios_raw = d.get("scenarios")
            scenarios = None
            if scenarios_raw is not None:
                scenarios = [
                    Scenario(
                        name=str(s["name"]),
                        probability=float(s["probability"]),
                        widths=tuple(float(v) for v in s["widths"]),
                    )
                    for s in scenarios_raw
                ]
            voll = float(d.get("voll", DEFAULT_VOLL))
        except (KeyError, TypeError, ValueError) as exc:
            raise DataError(f"Malformed problem data: {exc}") from exc

        return cls(technologies=technologies, slices=slices, scenarios=scenarios, voll=voll)

    def save_json(self, path: str | Path) -> None:
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2)

    @classmethod
    def load_json(cls, path: str | Path) -> "ProblemData":
        with open(path, "r", encoding="utf-8") as f:
            d = json.load(f)
        return cls.from_dict(d)

    @classmethod
    def from_csv(
        cls,
        technology_csv: str | Path,
        needs_csv: str | Path,
        scenarios_csv: Optional[str | Path] = None,
        voll: float = DEFAULT_VOLL,
    ) -> "ProblemData":
        """
        Load technologies, demand slices and an optional scenario table.

        Columns are read by position so header spelling does not matter:
            technology.csv: technology, cost, initial_investment
            needs.csv:      category, duration, min_level, max_level
            scenarios.csv:  scenario, probability, <one width per slice>
        """
        tech_df = _read_table(technology_csv, min_columns=3)
        needs_df = _read_table(needs_csv, min_columns=4)

        try:
            technologies = [
                Technology(
                    name=str(row.iloc[0]).strip(),
                    marginal_cost=float(row.iloc[1]),
                    investment_cost=float(row.iloc[2]),
                )
                for _, row in tech_df.iterrows()
            ]
            slices = [
                DemandSlice(
                    name=str(row.iloc[0]).strip(),
                    duration=float(row.iloc[1]),
                    min_level=float(row.iloc[2]),
                    max_level=float(row.iloc[3]),
                )
                for _, row in needs_df.iterrows()
            ]
        except (TypeError, ValueError) as exc:
            raise DataError(f"Non-numeric entry in input tables: {exc}") from exc

        scenarios = None
        if scenarios_csv is not None:
            scen_df = _read_table(scenarios_csv, min_columns=3)
            if scen_df.shape[1] - 2 != len(slices):
                raise DataError(
                    f"{scenarios_csv}: {scen_df.shape[1] - 2} width columns, "
                    f"expected one per slice ({len(slices)})."
                )
            try:
                scenarios = [
                    Scenario(
                        name=str(row.iloc[0]).strip(),
                        probability=float(row.iloc[1]),
                        widths=tuple(float(v) for v in row.iloc[2:]),
                    )
                    for _, row in scen_df.iterrows()
                ]
            except (TypeError, ValueError) as exc:
                raise DataError(f"Non-numeric entry in {scenarios_csv}: {exc}") from exc

        return cls(technologies=technologies, slices=slices, scenarios=scenarios, voll=voll)


def _read_table(path: str | Path, min_columns: int) -> pd.DataFrame:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Input file not found: {path}")
    # utf-8-sig drops a leading BOM from the first header
    df = pd.read_csv(path, encoding="utf-8-sig")
    if df.shape[1] < min_columns:
        raise DataError(f"{path}: expected at least {min_columns} columns, got {df.shape[1]}.")
    if df.empty:
        raise DataError(f"{path} contains no rows.")
    return df


@dataclass
class BendersConfig:
    """
    Parameters of the decomposition loop.
    """

    cut_type: str = "single"  # "single" (aggregate) or "multi"
    max_iterations: int = 50
    tolerance: float = 1e-3  # absolute gap UB - LB

    # parallel scenario subproblems; 1 keeps the solves sequential
    max_workers: int = 1

    # optional investment vector used to seed the master with cuts
    initial_solution: Optional[List[float]] = None

    # Gurobi parameters applied to every master and subproblem solve
    solver_params: Dict[str, Any] = field(default_factory=dict)
    time_limit: Optional[float] = None  # seconds per solver call

    def __post_init__(self) -> None:
        if self.cut_type not in ("single", "multi"):
            raise ValueError(f"Unknown cut_type: {self.cut_type}")
        if self.max_iterations < 1:
            raise ValueError("max_iterations must be at least 1.")
        if self.max_workers < 1:
            raise ValueError("max_workers must be at least 1.")

    def gurobi_params(self) -> Dict[str, Any]:
        params: Dict[str, Any] = {"OutputFlag": 0}
        params.update(self.solver_params)
        if self.time_limit is not None:
            params["TimeLimit"] = self.time_limit
        return params

    # ---- IO helpers ----
    def to_dict(self) -> Dict[str, Any]:
        d = self.__dict__.copy()
        d["solver_params"] = dict(self.solver_params)
        return d

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "BendersConfig":
        return cls(**d)

    def save_json(self, path: str | Path) -> None:
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2)

    @classmethod
    def load_json(cls, path: str | Path) -> "BendersConfig":
        with open(path, "r", encoding="utf-8") as f:
            d = json.load(f)
        return cls.from_dict(d)
