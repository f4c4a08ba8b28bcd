"""Shared fixtures: a three-county island, its graph and a stub solver."""

from __future__ import annotations

from pathlib import Path
import sys

import matplotlib

matplotlib.use("Agg")

import numpy as np
import pandas as pd
import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from imrmap.data.counties import CountyIndex
from imrmap.data.reshape import reshape_long
from imrmap.data.schema import PeriodSpec, WideSchema
from imrmap.models.base import BaseSolver, ModelFit
from imrmap.models.spec import ModelData, ModelSpec, PeriodPrior
from imrmap.spatial.adjacency import build_graph


COUNTIES = ["North", "South", "East"]


class StubSolver(BaseSolver):
    """
    Deterministic stand-in for the Stan solver.

    Draws every parameter around a fixed value and evaluates mu and the
    lincombs exactly as the Stan model's generated quantities do, so the
    summaries can be checked against known rate ratios.
    """

    def __init__(
        self,
        log_ratio: float = float(np.log(2.0)),
        base_rate: float = 0.005,
        noise: float = 0.0,
        n_draws: int = 200,
        seed: int = 0,
    ):
        super().__init__(name="stub")
        self.log_ratio = log_ratio
        self.base_rate = base_rate
        self.noise = noise
        self.n_draws = n_draws
        self.seed = seed
        self.calls: list[ModelData] = []

    def fit(self, model_data: ModelData) -> ModelFit:
        self.calls.append(model_data)
        data = model_data.stan_data
        rng = np.random.default_rng(self.seed)
        n, K = self.n_draws, data["K"]

        def jitter(shape):
            return self.noise * rng.standard_normal(shape)

        alpha = np.log(self.base_rate) + jitter(n)
        beta = jitter(n)
        gamma = self.log_ratio + jitter(n)
        delta = jitter((n, K))
        phi = jitter((n, K))
        b = 0.5 * phi

        x = np.asarray(data["x"], dtype=float)
        E = np.asarray(data["E"], dtype=float)
        later = np.asarray(data["later"], dtype=float)
        county = np.asarray(data["county"], dtype=int) - 1
        eta = (
            alpha[:, None] + beta[:, None] * x + b[:, county]
            + (delta[:, county] - gamma[:, None]) * later
        )

        draws = {
            "alpha": alpha,
            "beta": beta,
            "gamma": gamma,
            "delta": delta,
            "phi": phi,
            "b": b,
            "sigma_phi": np.abs(jitter(n)) + 0.5,
            "sigma_theta": np.abs(jitter(n)) + 0.5,
            "mu": E * np.exp(eta),
        }
        if model_data.has_lincombs:
            levels = np.hstack([gamma[:, None], delta])
            draws["lc"] = levels @ np.asarray(data["lincomb"], dtype=float).T
        return ModelFit.from_model_data(draws, model_data)


@pytest.fixture
def schema() -> WideSchema:
    return WideSchema(
        county_col="county",
        variables=("births", "deaths", "deprivation"),
        periods=(
            PeriodSpec(code="p1", ordinal=1, label="Period 1", years=(2000, 2004)),
            PeriodSpec(code="p2", ordinal=2, label="Period 2", years=(2005, 2009)),
        ),
    )


@pytest.fixture
def wide() -> pd.DataFrame:
    return pd.DataFrame({
        "county": COUNTIES,
        "births_p1": [1000, 2000, 1500],
        "deaths_p1": [5, 8, 6],
        "deprivation_p1": [0.1, -0.3, 0.5],
        "births_p2": [1100, 1900, 1400],
        "deaths_p2": [4, 6, 3],
        "deprivation_p2": [0.2, -0.2, 0.4],
    })


@pytest.fixture
def county_index() -> CountyIndex:
    return CountyIndex.from_names(COUNTIES)


@pytest.fixture
def adjacency() -> pd.DataFrame:
    # North - South - East (a path)
    return pd.DataFrame(
        [[0, 1, 0], [1, 0, 1], [0, 1, 0]],
        index=COUNTIES,
        columns=COUNTIES,
    )


@pytest.fixture
def graph(adjacency, county_index):
    return build_graph(adjacency, county_index)


@pytest.fixture
def long(wide, schema, county_index) -> pd.DataFrame:
    return reshape_long(wide, schema, county_index)


@pytest.fixture
def model_spec() -> ModelSpec:
    return ModelSpec(period_prior=PeriodPrior(mean=-0.4, precision=1.0))


@pytest.fixture
def stub_solver() -> StubSolver:
    return StubSolver()


@pytest.fixture
def noisy_solver() -> StubSolver:
    return StubSolver(noise=0.05, seed=7)


@pytest.fixture
def cfg(tmp_path, wide, adjacency) -> dict:
    """Config pointing at workbooks written to a temporary directory."""
    raw = tmp_path / "data" / "raw"
    raw.mkdir(parents=True)
    wide.to_excel(raw / "dataset.xlsx", index=False)
    with pd.ExcelWriter(raw / "adjacency.xlsx") as writer:
        pd.DataFrame({"note": ["matrix on the second sheet"]}).to_excel(writer, sheet_name="info", index=False)
        adjacency.to_excel(writer, sheet_name="matrix")

    return {
        "data": {
            "raw": {
                "dataset": "data/raw/dataset.xlsx",
                "dataset_sheet": 0,
                "adjacency": "data/raw/adjacency.xlsx",
                "adjacency_sheet": 1,
                "adjacency_labelled": True,
            },
        },
        "schema": {
            "county_col": "county",
            "variables": ["births", "deaths", "deprivation"],
            "periods": [
                {"code": "p1", "ordinal": 1, "label": "Period 1", "years": [2000, 2004]},
                {"code": "p2", "ordinal": 2, "label": "Period 2", "years": [2005, 2009]},
            ],
        },
        "processing": {"score_threshold": 85},
        "model": {
            "fixed_prior_sd": 10.0,
            "spatial_scale": 1.0,
            "period_prior": {"mean": -0.4, "precision": 1.0},
            "refit_for_lincombs": True,
            "quantiles": [0.025, 0.5, 0.975],
        },
        "reporting": {"rate_per": 1000, "decimals": {"table1": 3, "table2": 2, "table3": 2}},
    }


@pytest.fixture
def make_solver():
    return StubSolver
