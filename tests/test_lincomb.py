"""Tests for period-effect linear combinations and the Stan data builder."""

from __future__ import annotations

import numpy as np
import pytest

from imrmap.common.errors import AlignmentError
from imrmap.data.counties import CountyIndex
from imrmap.models.lincomb import (
    PERIOD_LEVEL,
    LincombSet,
    build_ratio_lincombs,
    check_alignment,
    evaluate,
    period_levels,
)
from imrmap.models.spec import ModelSpec, PeriodPrior, build_model_data
from imrmap.spatial.adjacency import AdjacencyGraph


# ---------------------------------------------------------------------------
# Lincombs


def test_ratio_lincomb_shape(county_index) -> None:
    lincombs = build_ratio_lincombs(county_index)
    n = len(county_index)
    assert lincombs.shape == (n, n + 1)
    assert (lincombs.matrix[:, 0] == -1).all()
    assert np.array_equal(lincombs.matrix[:, 1:], np.eye(n))
    assert lincombs.names == ("North", "South", "East")
    assert lincombs.level_keys == (PERIOD_LEVEL, "North", "South", "East")


def test_lincomb_matrix_is_read_only(county_index) -> None:
    lincombs = build_ratio_lincombs(county_index)
    with pytest.raises(ValueError):
        lincombs.matrix[0, 0] = 5.0


def test_lincomb_shape_mismatch() -> None:
    with pytest.raises(AlignmentError):
        LincombSet(names=("a",), level_keys=("period", "a"), matrix=np.zeros((1, 3)))


def test_county_named_period_collides() -> None:
    with pytest.raises(AlignmentError):
        period_levels(CountyIndex.from_names(["period", "b"]))


def test_check_alignment_detects_reordered_levels(county_index) -> None:
    lincombs = build_ratio_lincombs(county_index)
    check_alignment(lincombs, period_levels(county_index))
    with pytest.raises(AlignmentError, match="level order"):
        check_alignment(lincombs, ("period", "South", "North", "East"))
    with pytest.raises(AlignmentError, match="columns"):
        check_alignment(lincombs, ("period", "North", "South"))


def test_evaluate_gives_minus_gamma_plus_delta(county_index) -> None:
    lincombs = build_ratio_lincombs(county_index)
    draws = np.array([[0.5, 0.1, 0.2, 0.3], [1.0, 0.0, 0.0, 0.0]])
    out = evaluate(lincombs, draws)
    assert np.allclose(out, [[-0.4, -0.3, -0.2], [-1.0, -1.0, -1.0]])
    with pytest.raises(AlignmentError):
        evaluate(lincombs, draws[:, :3])


# ---------------------------------------------------------------------------
# Model data


def test_period_prior_sd() -> None:
    assert PeriodPrior(mean=-0.4, precision=4.0).sd == pytest.approx(0.5)
    with pytest.raises(ValueError):
        PeriodPrior(mean=0.0, precision=0.0)


def test_build_model_data_without_lincombs(long, graph, model_spec) -> None:
    data = build_model_data(long, graph, model_spec)
    s = data.stan_data
    assert s["N"] == 6 and s["K"] == 3
    assert s["y"] == [5, 8, 6, 4, 6, 3]
    assert s["later"] == [0.0, 0.0, 0.0, 1.0, 1.0, 1.0]
    assert s["county"] == [1, 2, 3, 1, 2, 3]
    assert (s["node1"], s["node2"]) == ([1, 2], [2, 3])
    assert s["N_isolated"] == 0
    assert (s["N_components"], s["component"], s["component_size"]) == (1, [1, 1, 1], [3])
    assert s["period_prior_mean"] == -0.4
    assert s["period_prior_sd"] == 1.0
    assert s["L"] == 0
    assert not data.has_lincombs
    assert data.n_obs == 6
    assert data.observation_keys[3] == ("North", 2)
    assert data.period_levels == ("period", "North", "South", "East")


def test_build_model_data_with_lincombs(long, graph, model_spec, county_index) -> None:
    data = build_model_data(long, graph, model_spec, lincombs=build_ratio_lincombs(county_index))
    assert data.stan_data["L"] == 3
    assert np.asarray(data.stan_data["lincomb"]).shape == (3, 4)
    assert data.lincomb_names == ("North", "South", "East")


def test_build_model_data_one_constraint_per_island(long, model_spec) -> None:
    graph = AdjacencyGraph(counties=("North", "South", "East"), neighbors=((1,), (0,), ()))
    s = build_model_data(long, graph, model_spec).stan_data
    assert s["N_components"] == 2
    assert s["component"] == [1, 1, 2]
    assert s["component_size"] == [2, 1]
    assert (s["N_isolated"], s["isolated"]) == (1, [3])


def test_build_model_data_rejects_graph_order(long, model_spec) -> None:
    graph = AdjacencyGraph(counties=("South", "North", "East"), neighbors=((1,), (0, 2), (1,)))
    with pytest.raises(AlignmentError):
        build_model_data(long, graph, model_spec)


def test_formula_names_the_prior() -> None:
    spec = ModelSpec(period_prior=PeriodPrior(mean=-0.4, precision=1.0))
    formula = spec.formula()
    assert "offset(log(births))" in formula
    assert "mean=-0.4" in formula
