"""
Append-only iteration log of the decomposition loop.

The column layout is fixed once from the technology and scenario sets:

    iter | <technology...> | theta or theta_<scenario...> | investment_cost
         | Q or EQ [Q_<scenario...>] | LB | UB | gap | cut_type | time

Stochastic runs also log the recourse value of every scenario.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Any, Tuple
import json
import math
import logging
import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
from tabulate import tabulate

from .data import ProblemData

logger = logging.getLogger(__name__)

_RESERVED = {"iter", "theta", "investment_cost", "Q", "EQ", "LB", "UB", "gap", "cut_type", "time"}


@dataclass
class IterationRecord:
    iteration: int
    x: Dict[int, float]
    theta: List[float]
    investment_cost: float
    recourse: float  # Q(x) or E[Q(x)]; NaN when undefined
    lower_bound: float
    upper_bound: float
    gap: float
    cut_type: str
    elapsed: float = 0.0
    scenario_recourse: List[float] = field(default_factory=list)


class ResultsRecorder:
    """
    Collects IterationRecords and the final summary, and exports them.
    """

    def __init__(self, problem: ProblemData, cut_type: str = "single"):
        self.problem = problem
        self.cut_type = cut_type

        self.tech_columns = [
            f"x_{name}" if name in _RESERVED else name for name in problem.technology_names
        ]
        if cut_type == "multi":
            self.theta_columns = [f"theta_{name}" for name in problem.scenario_names]
        else:
            self.theta_columns = ["theta"]
        self.recourse_column = "EQ" if problem.is_stochastic else "Q"
        if problem.is_stochastic:
            self.scenario_recourse_columns = [f"Q_{name}" for name in problem.scenario_names]
        else:
            self.scenario_recourse_columns = []

        self.columns: Tuple[str, ...] = tuple(
            ["iter"]
            + self.tech_columns
            + self.theta_columns
            + ["investment_cost", self.recourse_column]
            + self.scenario_recourse_columns
            + ["LB", "UB", "gap", "cut_type", "time"]
        )
        if len(set(self.columns)) != len(self.columns):
            raise ValueError(f"Duplicate iteration log columns: {self.columns}")

        self._records: List[IterationRecord] = []
        self.summary: Optional[Dict[str, Any]] = None

    @property
    def variant(self) -> str:
        if not self.problem.is_stochastic:
            return "deterministic"
        return "multi" if self.cut_type == "multi" else "aggregate"

    @property
    def records(self) -> List[IterationRecord]:
        return list(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def record(self, rec: IterationRecord) -> None:
        if len(rec.theta) != len(self.theta_columns):
            raise ValueError(
                f"Expected {len(self.theta_columns)} theta values, got {len(rec.theta)}"
            )
        if rec.scenario_recourse and len(rec.scenario_recourse) != self.problem.n_scenarios:
            raise ValueError(
                f"Expected {self.problem.n_scenarios} scenario recourse values, "
                f"got {len(rec.scenario_recourse)}"
            )
        self._records.append(rec)

    def finalize(self, summary: Dict[str, Any]) -> None:
        self.summary = dict(summary)
        self.summary["variant"] = self.variant

    # ---------- export ----------
    def _row(self, rec: IterationRecord) -> Dict[str, Any]:
        row: Dict[str, Any] = {"iter": rec.iteration}
        for i, col in enumerate(self.tech_columns):
            row[col] = rec.x[i]
        for k, col in enumerate(self.theta_columns):
            row[col] = rec.theta[k]
        row["investment_cost"] = rec.investment_cost
        row[self.recourse_column] = rec.recourse
        # empty after a feasibility-cut iteration
        for w, col in enumerate(self.scenario_recourse_columns):
            row[col] = rec.scenario_recourse[w] if w < len(rec.scenario_recourse) else np.nan
        row["LB"] = rec.lower_bound
        row["UB"] = rec.upper_bound
        row["gap"] = rec.gap
        row["cut_type"] = rec.cut_type
        row["time"] = rec.elapsed
        return row

    def to_dataframe(self) -> pd.DataFrame:
        return pd.DataFrame([self._row(r) for r in self._records], columns=list(self.columns))

    def format_table(self, floatfmt: str = ".6g") -> str:
        return tabulate(
            self.to_dataframe(), headers="keys", tablefmt="simple", floatfmt=floatfmt, showindex=False
        )

    def save(self, base_path: Path | str) -> Tuple[Path, Path]:
        """
        Save the iteration log to <base>.csv and <base>.json, and the summary
        (if any) to <base>_summary.json.
        """
        base_path = Path(base_path)
        base_path.parent.mkdir(parents=True, exist_ok=True)
        df = self.to_dataframe()

        csv_path = base_path.with_suffix(".csv")
        df.to_csv(csv_path, index=False)

        json_path = base_path.with_suffix(".json")
        with open(json_path, "w", encoding="utf-8") as f:
            json.dump(_json_safe(df.to_dict(orient="records")), f, indent=2)

        if self.summary is not None:
            summary_path = base_path.parent / f"{base_path.stem}_summary.json"
            with open(summary_path, "w", encoding="utf-8") as f:
                json.dump(_json_safe(self.summary), f, indent=2)

        logger.info("Results saved to: %s, %s", csv_path, json_path)
        return csv_path, json_path

    def plot_convergence(self, output_path: Optional[Path | str] = None) -> plt.Figure:
        """Plot LB/UB per iteration with the gap on a secondary axis."""
        df = self.to_dataframe()
        finite = df[np.isfinite(df["UB"].astype(float))]

        fig, ax1 = plt.subplots(figsize=(10, 6))
        ax1.plot(finite["iter"], finite["UB"], "r-o", label="Upper Bound", markersize=4)
        ax1.plot(df["iter"], df["LB"], "b-s", label="Lower Bound", markersize=4)
        ax1.set_xlabel("Iteration", fontsize=12)
        ax1.set_ylabel("Objective Value", fontsize=12)
        ax1.legend(loc="upper left")
        ax1.grid(True, alpha=0.3)

        ax2 = ax1.twinx()
        ax2.plot(finite["iter"], finite["gap"], "g-^", label="Gap", markersize=4)
        ax2.set_ylabel("Gap", fontsize=12, color="g")
        ax2.tick_params(axis="y", labelcolor="g")
        ax2.legend(loc="upper right")

        ax1.set_title(f"Benders Convergence ({self.variant})", fontsize=14)
        fig.tight_layout()

        if output_path is not None:
            output_path = Path(output_path)
            output_path.parent.mkdir(parents=True, exist_ok=True)
            fig.savefig(output_path, dpi=300, bbox_inches="tight")
            logger.info("Plot saved to: %s", output_path)
        return fig


def _json_safe(obj: Any) -> Any:
    """Replace NaN/inf by None so the output is strict JSON."""
    if isinstance(obj, float):
        return obj if math.isfinite(obj) else None
    if isinstance(obj, dict):
        return {str(k): _json_safe(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_json_safe(v) for v in obj]
    return obj
