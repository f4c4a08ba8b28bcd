"""Tests for LaTeX tables and EPS figures."""

from __future__ import annotations

import geopandas as gpd
import numpy as np
import pandas as pd
import pytest
from shapely.geometry import box

from imrmap.common.errors import DataQualityError
from imrmap.evaluation.summaries import fitted_rates_table, rate_ratio_table
from imrmap.models.lincomb import build_ratio_lincombs
from imrmap.models.spec import build_model_data
from imrmap.reporting import figures
from imrmap.reporting.tables import write_latex_table


@pytest.fixture
def shapes() -> gpd.GeoDataFrame:
    return gpd.GeoDataFrame(
        {"NAME": ["North", "South", "East"]},
        geometry=[box(0, 2, 1, 3), box(0, 1, 1, 2), box(1, 1, 2, 2)],
    )


@pytest.fixture
def noisy_fits(long, graph, model_spec, county_index, noisy_solver):
    base = noisy_solver.fit(build_model_data(long, graph, model_spec))
    lincombs = build_ratio_lincombs(county_index)
    with_lc = noisy_solver.fit(build_model_data(long, graph, model_spec, lincombs=lincombs))
    return base, with_lc


# ---------------------------------------------------------------------------
# Tables


def test_write_latex_table(tmp_path) -> None:
    df = pd.DataFrame({"County": ["North", "South"], "Rate ratio (95% CrI)": ["0.50 (0.40; 0.60)", "1.00 (0.90; 1.10)"]})
    path = write_latex_table(df, tmp_path / "table3_rate_ratios", caption="County rate ratios")

    assert path.suffix == ".tex"
    text = path.read_text(encoding="utf-8")
    assert "\\begin{table}" in text
    assert "\\caption{County rate ratios}" in text
    assert "\\label{tab:table3-rate-ratios}" in text
    assert "\\toprule" in text
    assert "0.50 (0.40; 0.60)" in text


def test_write_latex_table_escapes_and_sizes(tmp_path) -> None:
    df = pd.DataFrame({"Parameter": ["50% share"], "Estimate": ["1.00"]})
    text = write_latex_table(df, tmp_path / "t.tex", fontsize="small").read_text(encoding="utf-8")
    assert "50\\% share" in text
    assert "\\small" in text


# ---------------------------------------------------------------------------
# Figures


def test_rate_vs_deprivation_figure(tmp_path, long) -> None:
    path = figures.save_eps(figures.plot_rate_vs_deprivation(long), tmp_path / "fig1", (6.0, 4.5), dpi=300)
    assert path.name == "fig1.eps"
    assert path.read_bytes().startswith(b"%!PS-Adobe")


def test_observed_vs_fitted_figure(tmp_path, long, noisy_fits) -> None:
    rates = fitted_rates_table(noisy_fits[0], long)
    path = figures.save_eps(figures.plot_observed_vs_fitted(rates), tmp_path / "fig2.eps", (6.0, 6.0))
    assert path.exists()


def test_observed_vs_fitted_legend_uses_period_labels(long, noisy_fits) -> None:
    labelled = long.assign(period_label=long["period"].map({1: "2000-04", 2: "2005-09"}))
    fig = figures.plot_observed_vs_fitted(fitted_rates_table(noisy_fits[0], labelled))
    legend = fig.axes[0].get_legend()
    assert [t.get_text() for t in legend.get_texts()] == ["2000-04", "2005-09"]


def test_period_effect_density_figure(tmp_path, noisy_fits) -> None:
    path = figures.save_eps(figures.plot_period_effect_density(noisy_fits[0]), tmp_path / "fig3", (6.0, 4.0))
    assert path.exists()


@pytest.fixture
def base_fit_constant(long, graph, model_spec, stub_solver):
    return stub_solver.fit(build_model_data(long, graph, model_spec))


def test_period_effect_density_degenerate_draws(base_fit_constant) -> None:
    with pytest.warns(UserWarning, match="Degenerate"):
        figures.plot_period_effect_density(base_fit_constant)


def test_reference_series_figure(tmp_path, schema) -> None:
    series = pd.DataFrame({
        "year": np.arange(1998, 2011),
        "regional": np.linspace(12.0, 7.0, 13),
        "national": np.linspace(6.0, 4.0, 13),
    })
    fig = figures.plot_reference_series(series, schema.periods)
    assert figures.save_eps(fig, tmp_path / "fig4", (7.0, 4.0)).exists()


def test_choropleth(tmp_path, shapes, noisy_fits) -> None:
    ratios = rate_ratio_table(noisy_fits[1])
    joined = figures.join_values_to_shapes(shapes, ratios, name_field="NAME", value_col="estimate")
    assert joined["estimate"].notna().all()
    assert joined["estimate"].tolist() == pytest.approx(ratios["estimate"].tolist())

    fig = figures.plot_choropleth(joined, "estimate", legend_label="Rate ratio")
    assert figures.save_eps(fig, tmp_path / "fig5", (6.0, 6.0)).exists()


def test_choropleth_join_rejects_unknown_county(shapes) -> None:
    values = pd.DataFrame({"county": ["North", "Atlantis"], "estimate": [1.0, 2.0]})
    with pytest.raises(DataQualityError, match="Atlantis"):
        figures.join_values_to_shapes(shapes, values, name_field="NAME", value_col="estimate")


def test_load_county_shapes_missing(tmp_path) -> None:
    with pytest.raises(FileNotFoundError):
        figures.load_county_shapes(tmp_path / "absent.shp")


def test_choropleth_join_rejects_two_counties_on_one_geometry(shapes) -> None:
    values = pd.DataFrame({"county": ["North", "Nort", "South"], "estimate": [0.5, 2.0, 1.0]})
    with pytest.raises(DataQualityError, match="both match geometry 'North'"):
        figures.join_values_to_shapes(shapes, values, name_field="NAME", value_col="estimate")
