import json

import numpy as np
import pytest

from expansion.data import BendersConfig, DemandSlice, ProblemData, Scenario, Technology
from expansion.errors import DataError


def _techs():
    return [Technology("coal", 30.0, 53.0), Technology("gas", 80.0, 28.0)]


def _slices():
    return [
        DemandSlice("base", 1.0, 0.0, 100.0),
        DemandSlice("peak", 0.2, 100.0, 130.0),
    ]


class TestValidation:
    def test_valid_deterministic_data(self):
        problem = ProblemData(_techs(), _slices())
        assert not problem.is_stochastic
        assert problem.n_scenarios == 1
        assert problem.scenario_names == ["base"]
        np.testing.assert_allclose(problem.widths, [[100.0], [30.0]])
        np.testing.assert_allclose(problem.probabilities, [1.0])

    def test_empty_technologies(self):
        with pytest.raises(DataError):
            ProblemData([], _slices())

    def test_empty_slices(self):
        with pytest.raises(DataError):
            ProblemData(_techs(), [])

    def test_duplicate_technology_names(self):
        techs = [Technology("gas", 1.0, 1.0), Technology("gas", 2.0, 2.0)]
        with pytest.raises(DataError, match="unique"):
            ProblemData(techs, _slices())

    def test_negative_cost(self):
        with pytest.raises(DataError):
            ProblemData([Technology("gas", -1.0, 1.0)], _slices())

    def test_max_level_below_min_level(self):
        with pytest.raises(DataError, match="max_level"):
            ProblemData(_techs(), [DemandSlice("base", 1.0, 10.0, 5.0)])

    def test_non_positive_duration(self):
        with pytest.raises(DataError, match="duration"):
            ProblemData(_techs(), [DemandSlice("base", 0.0, 0.0, 5.0)])

    def test_probabilities_must_sum_to_one(self):
        scenarios = [Scenario("a", 0.5, (100.0, 30.0)), Scenario("b", 0.4, (90.0, 20.0))]
        with pytest.raises(DataError, match="sum"):
            ProblemData(_techs(), _slices(), scenarios)

    def test_probability_out_of_range(self):
        scenarios = [Scenario("a", 0.0, (100.0, 30.0)), Scenario("b", 1.0, (90.0, 20.0))]
        with pytest.raises(DataError):
            ProblemData(_techs(), _slices(), scenarios)

    def test_negative_scenario_width(self):
        with pytest.raises(DataError, match="negative width"):
            ProblemData(_techs(), _slices(), [Scenario("a", 1.0, (100.0, -1.0))])

    def test_scenario_width_count(self):
        with pytest.raises(DataError, match="widths"):
            ProblemData(_techs(), _slices(), [Scenario("a", 1.0, (100.0,))])

    def test_duplicate_scenario_names(self):
        scenarios = [Scenario("w", 0.5, (100.0, 30.0)), Scenario("w", 0.5, (90.0, 20.0))]
        with pytest.raises(DataError, match="Scenario names must be unique"):
            ProblemData(_techs(), _slices(), scenarios)

    @pytest.mark.parametrize("tech_name", ["theta_low", "Q_low"])
    def test_technology_name_clashes_with_scenario_column(self, tech_name):
        techs = [Technology(tech_name, 1.0, 1.0), Technology("b", 2.0, 2.0)]
        scenarios = [Scenario("low", 0.5, (100.0, 30.0)), Scenario("high", 0.5, (90.0, 20.0))]
        with pytest.raises(DataError, match="clash"):
            ProblemData(techs, _slices(), scenarios)

    def test_scenario_named_like_technology_is_allowed(self):
        scenarios = [Scenario("coal", 1.0, (100.0, 30.0))]
        assert ProblemData(_techs(), _slices(), scenarios).scenario_names == ["coal"]

    def test_infinite_slice_level(self):
        with pytest.raises(DataError, match="non-finite"):
            ProblemData(_techs(), [DemandSlice("base", 1.0, 0.0, float("inf"))])

    def test_infinite_scenario_width(self):
        with pytest.raises(DataError, match="non-finite"):
            ProblemData(_techs(), _slices(), [Scenario("a", 1.0, (float("inf"), 30.0))])

    @pytest.mark.parametrize("cost", [float("nan"), float("inf")])
    def test_non_finite_cost(self, cost):
        with pytest.raises(DataError, match="non-finite"):
            ProblemData([Technology("gas", cost, 1.0)], _slices())

    def test_infinite_voll(self):
        with pytest.raises(DataError):
            ProblemData(_techs(), _slices(), voll=float("inf"))

    @pytest.mark.parametrize("cost", ["cheap", None])
    def test_non_numeric_cost_in_constructor(self, cost):
        with pytest.raises(DataError, match="Non-numeric"):
            ProblemData([Technology("gas", cost, 1.0)], _slices())

    def test_numeric_strings_are_converted(self):
        problem = ProblemData([Technology("gas", "80", "28")], _slices())
        assert problem.technologies[0].marginal_cost == 80.0
        np.testing.assert_allclose(problem.investment_costs, [28.0])

    def test_scenario_widths_matrix(self):
        scenarios = [Scenario("a", 0.25, (100.0, 30.0)), Scenario("b", 0.75, (90.0, 20.0))]
        problem = ProblemData(_techs(), _slices(), scenarios)
        assert problem.widths.shape == (2, 2)
        np.testing.assert_allclose(problem.widths[:, 1], [90.0, 20.0])
        assert problem.W == [0, 1]

    def test_data_is_read_only(self):
        problem = ProblemData(_techs(), _slices())
        with pytest.raises(AttributeError):
            problem.voll = 5.0
        assert isinstance(problem.technologies, tuple)


class TestLoading:
    def test_from_csv_deterministic(self, deterministic_problem):
        assert deterministic_problem.technology_names == ["nuclear", "coal", "gas", "oil"]
        assert len(deterministic_problem.slices) == 3
        np.testing.assert_allclose(
            deterministic_problem.widths[:, 0], [7086.0, 1918.0, 2165.0]
        )

    def test_from_csv_stochastic(self, stochastic_problem):
        assert stochastic_problem.is_stochastic
        assert stochastic_problem.scenario_names == ["low_base", "high_peak"]
        np.testing.assert_allclose(stochastic_problem.probabilities, [0.1, 0.9])
        np.testing.assert_allclose(stochastic_problem.widths[:, 1], [3919.0, 3410.0, 2986.0])

    def test_missing_file(self, tmp_path, data_dir):
        with pytest.raises(FileNotFoundError):
            ProblemData.from_csv(tmp_path / "nope.csv", data_dir / "needs.csv")

    def test_scenario_table_with_wrong_width_columns(self, tmp_path, data_dir):
        path = tmp_path / "scenarios.csv"
        path.write_text("scenario,probability,base,medium\ns1,1.0,10,20\n")
        with pytest.raises(DataError, match="width columns"):
            ProblemData.from_csv(data_dir / "technology.csv", data_dir / "needs.csv", path)

    def test_header_with_bom(self, tmp_path, data_dir):
        path = tmp_path / "technology.csv"
        path.write_text("\ufefftechnology,cost,initial_investment\nwind,0,90\n", encoding="utf-8")
        problem = ProblemData.from_csv(path, data_dir / "needs.csv")
        assert problem.technology_names == ["wind"]

    def test_non_numeric_cost(self, tmp_path, data_dir):
        path = tmp_path / "technology.csv"
        path.write_text("technology,cost,initial_investment\nwind,cheap,90\n")
        with pytest.raises(DataError):
            ProblemData.from_csv(path, data_dir / "needs.csv")

    def test_json_dump_and_load(self, tmp_path, stochastic_problem):
        path = tmp_path / "problem.json"
        stochastic_problem.save_json(path)
        assert ProblemData.load_json(path) == stochastic_problem

    def test_from_dict_missing_key(self):
        with pytest.raises(DataError, match="Malformed"):
            ProblemData.from_dict({"technologies": []})

    def test_with_single_scenario(self, deterministic_problem):
        single = deterministic_problem.with_single_scenario()
        assert single.is_stochastic
        assert single.n_scenarios == 1
        np.testing.assert_allclose(single.widths, deterministic_problem.widths)

    def test_with_single_scenario_rejects_stochastic(self, stochastic_problem):
        with pytest.raises(DataError):
            stochastic_problem.with_single_scenario()


class TestBendersConfig:
    def test_defaults(self):
        config = BendersConfig()
        assert config.cut_type == "single"
        assert config.max_iterations == 50
        assert config.tolerance == pytest.approx(1e-3)
        assert config.gurobi_params() == {"OutputFlag": 0}

    def test_time_limit_becomes_gurobi_param(self):
        config = BendersConfig(time_limit=30.0, solver_params={"Method": 1})
        assert config.gurobi_params() == {"OutputFlag": 0, "Method": 1, "TimeLimit": 30.0}

    def test_invalid_cut_type(self):
        with pytest.raises(ValueError):
            BendersConfig(cut_type="triple")

    def test_json_file(self, tmp_path):
        path = tmp_path / "benders.json"
        BendersConfig(cut_type="multi", tolerance=1e-5).save_json(path)
        with open(path, encoding="utf-8") as f:
            assert json.load(f)["cut_type"] == "multi"
        loaded = BendersConfig.load_json(path)
        assert loaded.cut_type == "multi"
        assert loaded.tolerance == pytest.approx(1e-5)
