"""Tests for configuration loading and the config-driven constructors."""

from __future__ import annotations

import pytest

from imrmap.common.errors import SolverError
from imrmap.config import config_path, get_project_root, load_config, require
from imrmap.data.schema import WideSchema
from imrmap.models.bayesian.bym_period import BYMPeriodSolver, diagnostic_flags
from imrmap.models.spec import ModelSpec, build_model_data


@pytest.fixture
def default_cfg() -> dict:
    return load_config()


def test_default_config_sections(default_cfg) -> None:
    for section in ("data", "schema", "processing", "model", "reporting"):
        assert section in default_cfg


def test_require(default_cfg) -> None:
    assert require(default_cfg, "model.period_prior.mean") == pytest.approx(-0.4)
    with pytest.raises(ValueError, match="model.period_prior.variance"):
        require(default_cfg, "model.period_prior.variance")


def test_load_config_missing_file(tmp_path) -> None:
    with pytest.raises(FileNotFoundError):
        load_config(str(tmp_path / "absent.yaml"))


def test_model_spec_from_config(default_cfg) -> None:
    spec = ModelSpec.from_config(default_cfg)
    assert spec.period_prior.mean == pytest.approx(-0.4)
    assert spec.period_prior.sd == pytest.approx(1.0)
    assert spec.fixed_prior_sd == pytest.approx(10.0)


def test_model_spec_requires_period_prior(cfg) -> None:
    del cfg["model"]["period_prior"]
    with pytest.raises(ValueError, match="period_prior"):
        ModelSpec.from_config(cfg)


def test_schema_from_config(default_cfg) -> None:
    schema = WideSchema.from_config(default_cfg)
    assert [p.code for p in schema.periods] == ["p1", "p2"]
    assert schema.periods[0].years == (2000, 2004)
    assert schema.column("births", schema.periods[1]) == "births_p2"


def test_solver_reads_mcmc_config(default_cfg) -> None:
    solver = BYMPeriodSolver(config=default_cfg["model"]["mcmc"])
    assert solver.n_chains == 4
    assert solver.seed == 42
    assert solver._get_stan_file() == get_project_root() / "stan_models" / "bym_period_poisson.stan"
    assert solver._get_stan_file().exists()


def test_solver_diagnostics_before_fit() -> None:
    with pytest.raises(ValueError, match="not fitted"):
        BYMPeriodSolver().get_diagnostics()


def test_solver_wraps_compile_failure(monkeypatch, long, graph, model_spec) -> None:
    cause = RuntimeError("stanc: syntax error")

    def failing_model(stan_file):
        raise cause

    monkeypatch.setattr("imrmap.models.bayesian.bym_period.CmdStanModel", failing_model)
    with pytest.raises(SolverError, match="failed to compile") as excinfo:
        BYMPeriodSolver().fit(build_model_data(long, graph, model_spec))
    assert excinfo.value.__cause__ is cause


def test_solver_wraps_sampling_failure(monkeypatch, long, graph, model_spec) -> None:
    cause = RuntimeError("Error during sampling")

    class FailingModel:
        def __init__(self, stan_file):
            self.stan_file = stan_file

        def sample(self, **kwargs):
            raise cause

    monkeypatch.setattr("imrmap.models.bayesian.bym_period.CmdStanModel", FailingModel)
    solver = BYMPeriodSolver()
    with pytest.raises(SolverError, match="sampling failed") as excinfo:
        solver.fit(build_model_data(long, graph, model_spec))
    assert excinfo.value.__cause__ is cause
    assert solver.fit_ is None


def test_config_path_resolves_against_root(cfg, tmp_path) -> None:
    path = config_path(cfg, "data.raw.dataset", tmp_path)
    assert path == tmp_path / "data" / "raw" / "dataset.xlsx"
    assert path.exists()
    with pytest.raises(ValueError, match="data.raw.labels"):
        config_path(cfg, "data.raw.labels", tmp_path)


def test_diagnostic_flags() -> None:
    clean = {"n_divergences": 0, "max_rhat": 1.01, "min_ess_bulk": 800.0}
    assert diagnostic_flags(clean) == []

    flags = diagnostic_flags({"n_divergences": 3, "max_rhat": 1.2, "min_ess_bulk": 40.0})
    assert len(flags) == 3
    assert flags[0].startswith("3 divergent")
