"""
Shared fixtures for the expansion planning tests.

All models are small enough for the size-limited license bundled with gurobipy.
"""

from pathlib import Path

import matplotlib
import pytest

matplotlib.use("Agg")

from expansion.data import DemandSlice, ProblemData, Scenario, Technology  # noqa: E402

DATA_DIR = Path(__file__).resolve().parent.parent / "data"


def two_technology_problem(duration: float = 1.0, width: float = 100.0, voll: float = 1000.0) -> ProblemData:
    """A: cost 10, investment 100000; B: cost 50, investment 20000; one slice."""
    return ProblemData(
        technologies=[
            Technology("A", marginal_cost=10.0, investment_cost=100000.0),
            Technology("B", marginal_cost=50.0, investment_cost=20000.0),
        ],
        slices=[DemandSlice("slice", duration=duration, min_level=0.0, max_level=width)],
        voll=voll,
    )


@pytest.fixture
def data_dir():
    return DATA_DIR


@pytest.fixture
def deterministic_problem():
    """Example technology and needs tables without scenarios."""
    return ProblemData.from_csv(DATA_DIR / "technology.csv", DATA_DIR / "needs.csv")


@pytest.fixture
def stochastic_problem():
    """Example tables with the two-scenario width table."""
    return ProblemData.from_csv(
        DATA_DIR / "technology.csv",
        DATA_DIR / "needs.csv",
        scenarios_csv=DATA_DIR / "scenarios.csv",
    )


@pytest.fixture
def small_stochastic_problem():
    """Two technologies, two slices, three scenarios."""
    return ProblemData(
        technologies=[
            Technology("base", marginal_cost=5.0, investment_cost=60.0),
            Technology("peak", marginal_cost=90.0, investment_cost=15.0),
        ],
        slices=[
            DemandSlice("long", duration=1.0, min_level=0.0, max_level=50.0),
            DemandSlice("short", duration=0.2, min_level=50.0, max_level=80.0),
        ],
        scenarios=[
            Scenario("low", probability=0.3, widths=(40.0, 20.0)),
            Scenario("mid", probability=0.5, widths=(50.0, 30.0)),
            Scenario("high", probability=0.2, widths=(65.0, 45.0)),
        ],
        voll=1000.0,
    )
