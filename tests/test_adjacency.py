"""Tests for the neighborhood graph builder."""

from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from imrmap.common.errors import GraphIntegrityError
from imrmap.data.counties import CountyIndex
from imrmap.spatial.adjacency import (
    align_matrix,
    build_graph,
    count_asymmetric_cells,
    load_adjacency_matrix,
)


def test_path_graph(graph) -> None:
    assert graph.counties == ("North", "South", "East")
    assert graph.neighbors == ((1,), (0, 2), (1,))
    assert graph.n_edges == 2
    assert graph.degree().tolist() == [1, 2, 1]
    assert graph.n_components() == 1
    assert graph.neighbor_names("South") == ["North", "East"]


def test_edge_list_is_one_based_and_ordered(graph) -> None:
    node1, node2 = graph.edge_list()
    assert node1.tolist() == [1, 2]
    assert node2.tolist() == [2, 3]
    assert (node1 < node2).all()


def test_rows_are_aligned_by_label(adjacency, county_index) -> None:
    shuffled = adjacency.loc[["East", "North", "South"], ["South", "East", "North"]]
    graph = build_graph(shuffled, county_index)
    assert graph.neighbors == ((1,), (0, 2), (1,))


def test_unlabelled_header_follows_row_order(adjacency, county_index) -> None:
    shuffled = adjacency.loc[["East", "North", "South"], ["East", "North", "South"]]
    shuffled.columns = ["c1", "c2", "c3"]
    graph = build_graph(shuffled, county_index)
    assert graph.neighbors == ((1,), (0, 2), (1,))


def test_diagonal_is_ignored(adjacency, county_index) -> None:
    adjacency.loc["South", "South"] = 1
    graph = build_graph(adjacency, county_index)
    assert 1 not in graph.neighbors[1]


def test_asymmetric_cells_abort() -> None:
    m = np.array([[0, 1, 0], [1, 0, 0], [0, 1, 0]])
    assert count_asymmetric_cells(m) == 2

    index = CountyIndex.from_names(["a", "b", "c"])
    with pytest.raises(GraphIntegrityError, match="2 asymmetric") as excinfo:
        build_graph(m, index, labelled=False)
    assert excinfo.value.n_asymmetric == 2


def test_symmetric_matrix_has_no_asymmetric_cells(adjacency) -> None:
    assert count_asymmetric_cells(adjacency) == 0


def test_asymmetry_is_counted_after_alignment(adjacency, county_index) -> None:
    reordered = adjacency[["East", "North", "South"]]
    assert count_asymmetric_cells(reordered) > 0
    assert count_asymmetric_cells(align_matrix(reordered, county_index)) == 0
    assert build_graph(reordered, county_index).neighbors == ((1,), (0, 2), (1,))


def test_non_binary_entries_abort(adjacency, county_index) -> None:
    adjacency.loc["North", "South"] = 2
    adjacency.loc["South", "North"] = 2
    with pytest.raises(GraphIntegrityError, match="0/1"):
        build_graph(adjacency, county_index)


def test_size_mismatch_aborts(adjacency) -> None:
    index = CountyIndex.from_names(["North", "South", "East", "West"])
    with pytest.raises(GraphIntegrityError, match="4 counties"):
        build_graph(adjacency, index)


def test_label_mismatch_aborts(adjacency) -> None:
    index = CountyIndex.from_names(["North", "South", "West"])
    with pytest.raises(GraphIntegrityError, match="West"):
        build_graph(adjacency, index)


def test_isolated_county_warns(county_index) -> None:
    m = pd.DataFrame(
        [[0, 1, 0], [1, 0, 0], [0, 0, 0]],
        index=list(county_index), columns=list(county_index),
    )
    with pytest.warns(UserWarning, match="without neighbors"):
        graph = build_graph(m, county_index)
    assert graph.isolated() == ["East"]
    assert graph.n_components() == 2
    assert graph.components().tolist() == [1, 1, 2]


def test_load_adjacency_matrix_from_second_sheet(tmp_path, adjacency, county_index) -> None:
    path = tmp_path / "adjacency.xlsx"
    with pd.ExcelWriter(path) as writer:
        pd.DataFrame({"x": [1]}).to_excel(writer, sheet_name="info", index=False)
        adjacency.to_excel(writer, sheet_name="matrix")

    matrix = load_adjacency_matrix(path, sheet=1)
    assert list(matrix.index) == ["North", "South", "East"]
    assert matrix.shape == (3, 3)
    assert build_graph(matrix, county_index).n_edges == 2
