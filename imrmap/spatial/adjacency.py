"""
Neighborhood Graph Builder

Turns the county-by-county adjacency matrix into the neighbor-list form
used by the spatial (ICAR) effect:

- rows/columns are aligned to the county index by label, not position
- the matrix must be 0/1 and exactly symmetric; asymmetry aborts the run
- the diagonal is ignored (no self-loops)
"""
from __future__ import annotations

import warnings
from dataclasses import dataclass
from pathlib import Path
from typing import List, Tuple, Union

import numpy as np
import pandas as pd
from scipy import sparse
from scipy.sparse.csgraph import connected_components

from imrmap.common.errors import GraphIntegrityError
from imrmap.data.counties import CountyIndex
from imrmap.data.loader import SheetRef, read_table


@dataclass(frozen=True)
class AdjacencyGraph:
    """Unweighted, undirected county graph in neighbor-list form."""
    counties: Tuple[str, ...]
    neighbors: Tuple[Tuple[int, ...], ...]  # 0-based, sorted, per county

    @property
    def n(self) -> int:
        return len(self.counties)

    @property
    def n_edges(self) -> int:
        return sum(len(nb) for nb in self.neighbors) // 2

    def degree(self) -> np.ndarray:
        return np.array([len(nb) for nb in self.neighbors], dtype=int)

    def isolated(self) -> List[str]:
        """Counties without any neighbor (e.g. offshore islands)."""
        return [c for c, nb in zip(self.counties, self.neighbors) if not nb]

    def edge_list(self) -> Tuple[np.ndarray, np.ndarray]:
        """
        Undirected edges as 1-based (node1, node2) arrays with node1 < node2.
        """
        node1, node2 = [], []
        for i, nb in enumerate(self.neighbors):
            for j in nb:
                if i < j:
                    node1.append(i + 1)
                    node2.append(j + 1)
        return np.array(node1, dtype=int), np.array(node2, dtype=int)

    def to_sparse(self) -> sparse.csr_matrix:
        rows, cols = [], []
        for i, nb in enumerate(self.neighbors):
            rows.extend([i] * len(nb))
            cols.extend(nb)
        data = np.ones(len(rows), dtype=int)
        return sparse.csr_matrix((data, (rows, cols)), shape=(self.n, self.n))

    def n_components(self) -> int:
        n_comp, _ = connected_components(self.to_sparse(), directed=False)
        return int(n_comp)

    def components(self) -> np.ndarray:
        """
        1-based connected-component id per county, numbered in order of
        first appearance. Each island is its own component.
        """
        _, labels = connected_components(self.to_sparse(), directed=False)
        first_seen = {}
        for label in labels:
            first_seen.setdefault(int(label), len(first_seen) + 1)
        return np.array([first_seen[int(label)] for label in labels], dtype=int)

    def neighbor_names(self, county: str) -> List[str]:
        i = self.counties.index(county)
        return [self.counties[j] for j in self.neighbors[i]]


def load_adjacency_matrix(
    path: Union[str, Path],
    sheet: SheetRef = 1,
    label_column: bool = True
) -> pd.DataFrame:
    """
    Read the adjacency matrix sheet.

    Args:
        path: Workbook holding the matrix
        sheet: Sheet index/name (second sheet by default)
        label_column: If True, the first column carries county labels and is
            moved to the index (it is not part of the matrix)

    Returns:
        Square DataFrame; index = county labels when ``label_column``
    """
    df = read_table(path, sheet=sheet, keep_unnamed=True)
    if label_column:
        label_col = df.columns[0]
        df = df.set_index(label_col)
        df.index = [str(i).strip() for i in df.index]
        df.index.name = None
    df.columns = [str(c).strip() for c in df.columns]
    return df


def count_asymmetric_cells(matrix: Union[np.ndarray, pd.DataFrame]) -> int:
    """
    Number of ordered cells (i, j) with m[i][j] != m[j][i].

    Each asymmetric unordered pair contributes 2.
    """
    m = np.asarray(matrix)
    if m.ndim != 2 or m.shape[0] != m.shape[1]:
        raise GraphIntegrityError(f"Adjacency matrix must be square, got shape {m.shape}")
    return int(np.count_nonzero(m != m.T))


def align_matrix(matrix: pd.DataFrame, county_index: CountyIndex) -> pd.DataFrame:
    """
    Reorder a labelled matrix to county-index order.

    Symmetry is only meaningful after this step: a row order that differs
    from the column order makes a symmetric matrix look asymmetric.
    """
    labels = [str(i).strip() for i in matrix.index]
    if len(set(labels)) != len(labels):
        raise GraphIntegrityError("Adjacency matrix has duplicate row labels")

    missing = [c for c in county_index.names if c not in labels]
    extra = [c for c in labels if c not in county_index.mapping]
    if missing or extra:
        raise GraphIntegrityError(
            f"Adjacency labels do not match counties (missing: {missing}, extra: {extra})"
        )

    order = [labels.index(c) for c in county_index.names]
    col_labels = [str(c).strip() for c in matrix.columns]
    if sorted(col_labels) == sorted(labels):
        col_order = [col_labels.index(c) for c in county_index.names]
    else:
        # Unlabelled header: columns follow the row order
        col_order = order

    aligned = matrix.iloc[order, col_order]
    aligned.index = list(county_index.names)
    aligned.columns = list(county_index.names)
    return aligned


def build_graph(
    matrix: Union[np.ndarray, pd.DataFrame],
    county_index: CountyIndex,
    labelled: bool = True
) -> AdjacencyGraph:
    """
    Validate the adjacency matrix and convert it to neighbor lists.

    Args:
        matrix: n x n 0/1 matrix (DataFrame with county labels, or array)
        county_index: County id mapping the graph must follow
        labelled: If True, align rows/columns by county label; otherwise the
            matrix is taken to be in county-index order already

    Returns:
        AdjacencyGraph over county_index.names

    Raises:
        GraphIntegrityError: shape/label mismatch, non-0/1 entries, asymmetry
    """
    n = len(county_index)

    if isinstance(matrix, pd.DataFrame):
        shape = matrix.shape
    else:
        shape = np.asarray(matrix).shape
    if len(shape) != 2 or shape[0] != shape[1]:
        raise GraphIntegrityError(f"Adjacency matrix must be square, got shape {shape}")
    if shape[0] != n:
        raise GraphIntegrityError(
            f"Adjacency matrix is {shape[0]}x{shape[1]} but there are {n} counties"
        )

    if labelled:
        if not isinstance(matrix, pd.DataFrame):
            raise GraphIntegrityError("Labelled alignment needs a DataFrame with county labels")
        matrix = align_matrix(matrix, county_index)

    values = np.asarray(
        pd.DataFrame(matrix).apply(pd.to_numeric, errors='coerce'), dtype=float
    )
    if not np.isfinite(values).all():
        raise GraphIntegrityError("Adjacency matrix has missing or non-numeric cells")

    off_diag = ~np.eye(n, dtype=bool)
    if not np.isin(values[off_diag], (0.0, 1.0)).all():
        raise GraphIntegrityError("Adjacency matrix must contain only 0/1 off the diagonal")

    values[~off_diag] = 0.0
    n_asym = count_asymmetric_cells(values)
    if n_asym:
        raise GraphIntegrityError(
            f"Adjacency matrix is not symmetric: {n_asym} asymmetric cells",
            n_asymmetric=n_asym,
        )

    neighbors = tuple(
        tuple(int(j) for j in np.flatnonzero(values[i])) for i in range(n)
    )
    graph = AdjacencyGraph(counties=tuple(county_index.names), neighbors=neighbors)

    isolated = graph.isolated()
    if isolated:
        warnings.warn(f"Counties without neighbors: {isolated}")
    n_comp = graph.n_components()
    if n_comp > 1:
        warnings.warn(f"Neighborhood graph has {n_comp} connected components")

    return graph
