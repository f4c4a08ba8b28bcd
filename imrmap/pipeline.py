"""
Analysis pipeline

Threads immutable stage outputs through the analysis:

    load → reshape → graph → model data → fit (base, lincombs) → summaries

Every stage takes its inputs as parameters; the pipeline object only holds
configuration and the solver.
"""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

import numpy as np
import pandas as pd

from imrmap.common.errors import DataQualityError
from imrmap.config import config_path, get_project_root, require
from imrmap.data.counties import CountyIndex
from imrmap.data.loader import attach_display_names, load_county_labels, load_wide_table
from imrmap.data.reshape import global_rates, reshape_long, wide_global_rates
from imrmap.data.schema import WideSchema
from imrmap.evaluation.summaries import summary_tables
from imrmap.models.base import DEFAULT_QUANTILES, BaseSolver, ModelFit
from imrmap.models.lincomb import LincombSet, build_ratio_lincombs, evaluate
from imrmap.models.spec import ModelData, ModelSpec, build_model_data
from imrmap.spatial.adjacency import AdjacencyGraph, build_graph, load_adjacency_matrix


@dataclass(frozen=True)
class AnalysisInputs:
    """Input files of one analysis run."""
    dataset: Path
    adjacency: Path
    labels: Optional[Path] = None
    dataset_sheet: Union[int, str] = 0
    adjacency_sheet: Union[int, str] = 1
    adjacency_labelled: bool = True
    labels_sheet: Union[int, str] = 0

    @classmethod
    def from_config(cls, cfg: Dict[str, Any], root: Optional[Path] = None) -> 'AnalysisInputs':
        root = Path(root) if root is not None else get_project_root()
        raw = require(cfg, 'data.raw')
        labels = raw.get('labels')
        return cls(
            dataset=config_path(cfg, 'data.raw.dataset', root),
            adjacency=config_path(cfg, 'data.raw.adjacency', root),
            labels=root / labels if labels else None,
            dataset_sheet=raw.get('dataset_sheet', 0),
            adjacency_sheet=raw.get('adjacency_sheet', 1),
            adjacency_labelled=bool(raw.get('adjacency_labelled', True)),
            labels_sheet=raw.get('labels_sheet', 0),
        )


@dataclass(frozen=True, eq=False)
class LoadedData:
    wide: pd.DataFrame
    county_index: CountyIndex
    long: pd.DataFrame
    global_rates: pd.Series
    wide_global_rates: pd.Series


@dataclass(frozen=True, eq=False)
class AnalysisResults:
    """Everything one run produces."""
    data: LoadedData
    graph: AdjacencyGraph
    spec: ModelSpec
    lincombs: LincombSet
    base_data: ModelData
    lincomb_data: ModelData
    base_fit: ModelFit
    lincomb_fit: ModelFit
    tables: Dict[str, pd.DataFrame]

    @property
    def long(self) -> pd.DataFrame:
        return self.data.long


class AnalysisPipeline:
    """
    Single-shot analysis run.

    Args:
        cfg: Loaded configuration
        solver: Inference engine (BYMPeriodSolver, or a stub in tests); only
            needed by fit()
        inputs: Input files; read from cfg when omitted
    """

    def __init__(
        self,
        cfg: Dict[str, Any],
        solver: Optional[BaseSolver] = None,
        inputs: Optional[AnalysisInputs] = None
    ):
        self.cfg = cfg
        self.solver = solver
        self.inputs = inputs or AnalysisInputs.from_config(cfg)
        self.schema = WideSchema.from_config(cfg)
        self.spec = ModelSpec.from_config(cfg)

        reporting = cfg.get('reporting', {})
        self.per = float(reporting.get('rate_per', 1000))
        self.decimals = dict(reporting.get('decimals', {}))
        self.quantiles = tuple(cfg.get('model', {}).get('quantiles', DEFAULT_QUANTILES))
        self.refit_for_lincombs = bool(cfg.get('model', {}).get('refit_for_lincombs', True))
        self.score_threshold = cfg.get('processing', {}).get('score_threshold')

    def load(self) -> LoadedData:
        """Load the wide table, attach display names and reshape to long."""
        print(f"Loading dataset from {self.inputs.dataset}...")
        wide = load_wide_table(self.inputs.dataset, self.schema, sheet=self.inputs.dataset_sheet)
        print(f"  → {len(wide)} counties, {len(self.schema.periods)} periods")

        if self.inputs.labels is not None:
            if self.score_threshold is None:
                raise ValueError("Missing processing.score_threshold in config.")
            labels = load_county_labels(self.inputs.labels, sheet=self.inputs.labels_sheet,
                                        county_col=self.schema.county_col)
            wide = attach_display_names(wide, labels, self.schema.county_col,
                                        score_threshold=int(self.score_threshold))

        county_index = CountyIndex.from_wide(wide, self.schema.county_col)
        long = reshape_long(wide, self.schema, county_index, per=self.per)
        rates = global_rates(long, per=self.per)
        wide_rates = wide_global_rates(wide, self.schema, per=self.per)
        if not np.allclose(rates.values.astype(float), wide_rates.values.astype(float)):
            raise DataQualityError(
                f"Global rate mismatch between long ({rates.to_dict()}) and wide ({wide_rates.to_dict()}) tables"
            )

        print(f"  → long table: {len(long)} rows")
        for key, value in rates.items():
            print(f"  → global rate [{key}]: {value:.3f} per {self.per:g} births")

        return LoadedData(
            wide=wide,
            county_index=county_index,
            long=long,
            global_rates=rates,
            wide_global_rates=wide_rates,
        )

    def build_graph(self, county_index: CountyIndex) -> AdjacencyGraph:
        print(f"Loading adjacency matrix from {self.inputs.adjacency}...")
        matrix = load_adjacency_matrix(
            self.inputs.adjacency,
            sheet=self.inputs.adjacency_sheet,
            label_column=self.inputs.adjacency_labelled,
        )
        graph = build_graph(matrix, county_index, labelled=self.inputs.adjacency_labelled)
        print(f"  → {graph.n} nodes, {graph.n_edges} edges, {graph.n_components()} component(s)")
        return graph

    def fit(
        self,
        long: pd.DataFrame,
        graph: AdjacencyGraph,
        county_index: CountyIndex
    ) -> Tuple[LincombSet, ModelData, ModelData, ModelFit, ModelFit]:
        """
        Fit the base model, then the model with the ratio lincombs.

        When ``refit_for_lincombs`` is off the lincombs are evaluated on the
        base fit's draws instead of a second solver run.
        """
        if self.solver is None:
            raise ValueError("No solver configured. Pass one to AnalysisPipeline.")
        print(f"Model: {self.spec.formula()}")
        lincombs = build_ratio_lincombs(county_index)

        base_data = build_model_data(long, graph, self.spec)
        lincomb_data = build_model_data(long, graph, self.spec, lincombs=lincombs)

        print("\nFitting base model...")
        base_fit = self.solver.fit(base_data)

        if self.refit_for_lincombs:
            print("\nFitting model with lincombs...")
            lincomb_fit = self.solver.fit(lincomb_data)
        else:
            draws = dict(base_fit.draws)
            draws['lc'] = evaluate(lincombs, base_fit.period_level_draws())
            lincomb_fit = ModelFit.from_model_data(draws, lincomb_data, diagnostics=base_fit.diagnostics)

        return lincombs, base_data, lincomb_data, base_fit, lincomb_fit

    def summarize(self, base_fit: ModelFit, lincomb_fit: ModelFit, long: pd.DataFrame) -> Dict[str, pd.DataFrame]:
        return summary_tables(
            base_fit, lincomb_fit, long,
            per=self.per, decimals=self.decimals, quantiles=self.quantiles,
        )

    def run(self) -> AnalysisResults:
        data = self.load()
        graph = self.build_graph(data.county_index)
        lincombs, base_data, lincomb_data, base_fit, lincomb_fit = self.fit(
            data.long, graph, data.county_index
        )
        tables = self.summarize(base_fit, lincomb_fit, data.long)
        return AnalysisResults(
            data=data,
            graph=graph,
            spec=self.spec,
            lincombs=lincombs,
            base_data=base_data,
            lincomb_data=lincomb_data,
            base_fit=base_fit,
            lincomb_fit=lincomb_fit,
            tables=tables,
        )
