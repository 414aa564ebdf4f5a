"""
Run one variant of the Benders / L-shaped expansion planning model to
termination and write the iteration log.

Edit SETTINGS below or override from the command line, e.g.

    python runner.py --variant multi --tolerance 1e-4
"""

# %%
import argparse
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from expansion.data import BendersConfig, ProblemData
from expansion.decomposition import solve_benders
from expansion.errors import DataError, SolverError
from expansion.extensive_form import solve_extensive_form
from expansion.recorder import ResultsRecorder
from expansion.solver import load_gurobi_params

ROOT = Path(__file__).resolve().parent
DATA_DIR = ROOT / "data"
CONFIG_DIR = ROOT / "config"
RESULTS_DIR = ROOT / "results"

VARIANTS = ("deterministic", "aggregate", "multi")

logger = logging.getLogger("expansion")


# %% Parameters
@dataclass
class RunSettings:
    variant: str = "deterministic"  # "deterministic", "aggregate" or "multi"
    technology_file: str = "technology.csv"
    needs_file: str = "needs.csv"
    scenarios_file: str = "scenarios.csv"
    voll: float = 1000.0

    benders_config: Optional[str] = None  # JSON file in config/
    gurobi_params: str = "gurobi_params.json"  # JSON file in config/, optional

    max_iterations: Optional[int] = None
    tolerance: Optional[float] = None
    max_workers: Optional[int] = None

    compare_extensive_form: bool = False
    save_plot: bool = True
    log_file: Optional[str] = None


SETTINGS = RunSettings()


def setup_logger(log_file: Optional[str | Path] = None, level: int = logging.INFO) -> logging.Logger:
    logger.setLevel(level)
    formatter = logging.Formatter("%(message)s")

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file is not None:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, mode="a")
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


def load_problem(settings: RunSettings, data_dir: Path = DATA_DIR) -> ProblemData:
    scenarios = None if settings.variant == "deterministic" else data_dir / settings.scenarios_file
    return ProblemData.from_csv(
        data_dir / settings.technology_file,
        data_dir / settings.needs_file,
        scenarios_csv=scenarios,
        voll=settings.voll,
    )


def build_config(settings: RunSettings, config_dir: Path = CONFIG_DIR) -> BendersConfig:
    if settings.benders_config is not None:
        config = BendersConfig.load_json(config_dir / settings.benders_config)
    else:
        config = BendersConfig()

    config.cut_type = "multi" if settings.variant == "multi" else "single"
    if settings.max_iterations is not None:
        config.max_iterations = settings.max_iterations
    if settings.tolerance is not None:
        config.tolerance = settings.tolerance
    if settings.max_workers is not None:
        config.max_workers = settings.max_workers

    params = load_gurobi_params(config_dir / settings.gurobi_params)
    config.solver_params = {**params, **config.solver_params}
    return config


def run(settings: RunSettings, results_dir: Path = RESULTS_DIR) -> int:
    if settings.variant not in VARIANTS:
        raise ValueError(f"Unknown variant {settings.variant!r}, expected one of {VARIANTS}")

    try:
        problem = load_problem(settings)
    except (DataError, FileNotFoundError) as exc:
        logger.error("Input data rejected: %s", exc)
        return 2

    config = build_config(settings)
    recorder = ResultsRecorder(problem, config.cut_type)
    base_path = results_dir / f"benders_{settings.variant}"

    logger.info("=" * 70)
    logger.info("BENDERS EXPANSION PLANNING (%s)", settings.variant)
    logger.info("Technologies: %s", ", ".join(problem.technology_names))
    logger.info("Scenarios: %s", ", ".join(problem.scenario_names))
    logger.info("=" * 70)

    try:
        result = solve_benders(problem, config, recorder)
    except SolverError as exc:
        logger.error("Run aborted: %s", exc)
        recorder.save(base_path)
        return 1

    logger.info("\n%s", recorder.format_table())
    logger.info("=" * 70)
    logger.info("Outcome: %s after %d iterations", result.outcome, result.iterations)
    for name, value in zip(problem.technology_names, result.x.values()):
        logger.info("  %-12s : %.4f MW", name, value)
    logger.info("theta* = %s", ", ".join(f"{t:.6e}" for t in result.theta))
    logger.info(
        "Final LB = %.6e | Final UB = %.6e | gap = %.6e",
        result.lower_bound,
        result.upper_bound,
        result.gap,
    )

    if settings.compare_extensive_form:
        ef = solve_extensive_form(problem, params=config.gurobi_params())
        logger.info("Extensive form objective = %.6e (diff %.3e)", ef.objective, result.upper_bound - ef.objective)

    recorder.save(base_path)
    if settings.save_plot:
        recorder.plot_convergence(base_path.with_suffix(".png"))
    return 0


def parse_args(settings: RunSettings) -> RunSettings:
    parser = argparse.ArgumentParser(description="Benders / L-shaped capacity expansion planning")
    parser.add_argument("--variant", choices=VARIANTS, default=settings.variant)
    parser.add_argument("--voll", type=float, default=settings.voll)
    parser.add_argument("--config", dest="benders_config", default=settings.benders_config)
    parser.add_argument("--max-iterations", type=int, default=settings.max_iterations)
    parser.add_argument("--tolerance", type=float, default=settings.tolerance)
    parser.add_argument("--workers", dest="max_workers", type=int, default=settings.max_workers)
    parser.add_argument("--compare-ef", dest="compare_extensive_form", action="store_true")
    parser.add_argument("--no-plot", dest="save_plot", action="store_false")
    parser.add_argument("--log-file", default=settings.log_file)
    args = parser.parse_args()

    settings.variant = args.variant
    settings.voll = args.voll
    settings.benders_config = args.benders_config
    settings.max_iterations = args.max_iterations
    settings.tolerance = args.tolerance
    settings.max_workers = args.max_workers
    settings.compare_extensive_form = args.compare_extensive_form or settings.compare_extensive_form
    settings.save_plot = args.save_plot and settings.save_plot
    settings.log_file = args.log_file
    return settings


# %%
if __name__ == "__main__":
    settings = parse_args(SETTINGS)
    setup_logger(settings.log_file)
    raise SystemExit(run(settings))
