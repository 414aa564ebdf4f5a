import pytest

from expansion.cuts import BendersCut
from expansion.errors import MasterInfeasible
from expansion.master import MasterProblem
from expansion.solver import INFEASIBLE

from conftest import two_technology_problem


class TestMasterProblem:
    def test_empty_master_is_zero(self):
        with MasterProblem(two_technology_problem()) as master:
            sol = master.solve()
        assert sol.objective == pytest.approx(0.0)
        assert sol.x == {0: 0.0, 1: 0.0}
        assert sol.theta == [0.0]

    def test_optimality_cut_drives_investment(self):
        problem = two_technology_problem(duration=200.0)
        # cut from x = 0: θ ≥ 2e7 - 198000·x_A - 190000·x_B
        cut = BendersCut(iteration=1, intercept=2e7, coefficients={0: -198000.0, 1: -190000.0})
        with MasterProblem(problem) as master:
            master.add_optimality_cut(cut)
            sol = master.solve()

        assert sol.x[0] == pytest.approx(0.0, abs=1e-9)
        assert sol.x[1] == pytest.approx(2e7 / 190000.0)
        assert sol.investment_cost == pytest.approx(20000.0 * 2e7 / 190000.0)
        assert master.n_cuts == 1

    def test_resolve_is_deterministic(self, stochastic_problem):
        cuts = [
            BendersCut(1, 5.0e5, {0: -900.0, 1: -700.0, 2: -300.0, 3: -100.0}, scenario_idx=0),
            BendersCut(1, 8.0e5, {0: -950.0, 1: -800.0, 2: -500.0, 3: -120.0}, scenario_idx=1),
        ]
        with MasterProblem(stochastic_problem, cut_type="multi") as master:
            master.add_cuts(cuts)
            first = master.solve()
            second = master.solve()

        assert second.objective == pytest.approx(first.objective, rel=1e-12)
        assert second.x == pytest.approx(first.x)
        assert len(first.theta) == 2

    def test_multi_cut_objective_weights_theta(self, stochastic_problem):
        cuts = [
            BendersCut(1, 100.0, {i: 0.0 for i in stochastic_problem.T}, scenario_idx=0),
            BendersCut(1, 200.0, {i: 0.0 for i in stochastic_problem.T}, scenario_idx=1),
        ]
        with MasterProblem(stochastic_problem, cut_type="multi") as master:
            master.add_cuts(cuts)
            sol = master.solve()
        assert sol.theta == pytest.approx([100.0, 200.0])
        assert sol.objective == pytest.approx(0.1 * 100.0 + 0.9 * 200.0)

    def test_cut_must_match_master_layout(self, stochastic_problem):
        zero = {i: 0.0 for i in stochastic_problem.T}
        with MasterProblem(stochastic_problem, cut_type="single") as master:
            with pytest.raises(ValueError):
                master.add_optimality_cut(BendersCut(1, 1.0, zero, scenario_idx=0))
        with MasterProblem(stochastic_problem, cut_type="multi") as master:
            with pytest.raises(ValueError):
                master.add_optimality_cut(BendersCut(1, 1.0, zero))

    def test_feasibility_cut(self, stochastic_problem):
        with MasterProblem(stochastic_problem) as master:
            cut = master.add_feasibility_cut(iteration=1)
            sol = master.solve()
        assert sum(sol.x.values()) == pytest.approx(cut.intercept)
        # cheapest capacity is bought to satisfy the cut
        assert sol.x[3] == pytest.approx(7086.0)

    def test_non_optimal_status_raises(self, monkeypatch):
        monkeypatch.setattr("expansion.master.solve_gurobi_model", lambda model, params=None: INFEASIBLE)
        with MasterProblem(two_technology_problem()) as master:
            with pytest.raises(MasterInfeasible) as exc_info:
                master.solve(iteration=7)
        assert exc_info.value.iteration == 7
        assert exc_info.value.status == INFEASIBLE
