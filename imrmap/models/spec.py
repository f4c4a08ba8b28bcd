"""
Model specification for the spatio-temporal disease-mapping model.

    deaths_ij ~ Poisson(mu_ij)
    log(mu_ij) = log(births_ij) + alpha + beta * deprivation_ij
                 + b_i + (delta_i - gamma) * later_j

- b_i: BYM spatial effect (ICAR over the county graph, sum-to-zero, plus iid)
- gamma: shared period effect; entered with a minus sign, so exp(-gamma)
  is the overall later/earlier rate ratio
- delta_i: county period effects, iid Normal(period_prior.mean, 1/precision)
- later_j: 1 for the later period, 0 for the earlier one
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

import numpy as np
import pandas as pd

from imrmap.common.errors import AlignmentError
from imrmap.config import require
from imrmap.models.lincomb import LincombSet, check_alignment, period_levels
from imrmap.data.counties import CountyIndex
from imrmap.spatial.adjacency import AdjacencyGraph


@dataclass(frozen=True)
class PeriodPrior:
    """Fixed Normal prior of the county period effects."""
    mean: float
    precision: float

    def __post_init__(self):
        if self.precision <= 0:
            raise ValueError(f"Period prior precision must be positive, got {self.precision}")

    @property
    def sd(self) -> float:
        return 1.0 / math.sqrt(self.precision)


@dataclass(frozen=True)
class ModelSpec:
    """Fixed parts of the model: priors, response, offset and covariate."""
    period_prior: PeriodPrior
    fixed_prior_sd: float = 10.0
    spatial_scale: float = 1.0
    response: str = 'deaths'
    offset: str = 'births'
    covariate: str = 'deprivation'
    constrained: bool = True

    @classmethod
    def from_config(cls, cfg: Dict[str, Any]) -> 'ModelSpec':
        prior = PeriodPrior(
            mean=float(require(cfg, 'model.period_prior.mean')),
            precision=float(require(cfg, 'model.period_prior.precision')),
        )
        model_cfg = cfg['model']
        return cls(
            period_prior=prior,
            fixed_prior_sd=float(model_cfg.get('fixed_prior_sd', 10.0)),
            spatial_scale=float(model_cfg.get('spatial_scale', 1.0)),
        )

    def formula(self) -> str:
        constr = ", sum-to-zero" if self.constrained else ""
        return (
            f"{self.response} ~ offset(log({self.offset})) + 1 + {self.covariate}"
            f" + bym(county, graph{constr})"
            f" + period(shared, sign=-1)"
            f" + iid(county:period, mean={self.period_prior.mean:g},"
            f" precision={self.period_prior.precision:g}); family=poisson(log)"
        )


@dataclass(frozen=True, eq=False)
class ModelData:
    """Solver input plus the keys needed to read its output back."""
    stan_data: Dict[str, Any]
    observation_keys: Tuple[Tuple[str, int], ...]
    county_keys: Tuple[str, ...]
    period_levels: Tuple[str, ...]
    lincomb_names: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def n_obs(self) -> int:
        return len(self.observation_keys)

    @property
    def has_lincombs(self) -> bool:
        return len(self.lincomb_names) > 0


def build_model_data(
    long: pd.DataFrame,
    graph: AdjacencyGraph,
    spec: ModelSpec,
    lincombs: Optional[LincombSet] = None
) -> ModelData:
    """
    Assemble the Stan data dictionary.

    Args:
        long: Long table from reshape_long()
        graph: Neighborhood graph in county-index order
        spec: Model specification
        lincombs: Optional combinations evaluated inside the fit

    Returns:
        ModelData
    """
    county_index = CountyIndex.from_names(
        long.sort_values('county_id').drop_duplicates('county_id')['county'].tolist()
    )
    if tuple(graph.counties) != tuple(county_index.names):
        raise AlignmentError("Graph node order does not match the long table's county ids")

    expected_ids = long['county'].map(county_index.mapping)
    if not (expected_ids.values == long['county_id'].values).all():
        raise AlignmentError("Long table county ids are inconsistent with county names")

    levels = period_levels(county_index)
    K = len(county_index)

    node1, node2 = graph.edge_list()
    isolated = [county_index.id_of(c) for c in graph.isolated()]
    component = graph.components()
    component_size = np.bincount(component)[1:]

    later = long['period'].values != long['period'].min()

    if lincombs is not None:
        check_alignment(lincombs, levels)
        lc_matrix = np.asarray(lincombs.matrix, dtype=float)
        lc_names = tuple(lincombs.names)
    else:
        lc_matrix = np.zeros((0, K + 1))
        lc_names = ()

    stan_data = {
        'N': int(len(long)),
        'K': int(K),
        'y': long[spec.response].astype(int).tolist(),
        'E': long[spec.offset].astype(float).tolist(),
        'x': long[spec.covariate].astype(float).tolist(),
        'county': long['county_id'].astype(int).tolist(),
        'later': later.astype(float).tolist(),
        'N_edges': int(len(node1)),
        'node1': node1.tolist(),
        'node2': node2.tolist(),
        'N_isolated': len(isolated),
        'isolated': isolated,
        'N_components': int(len(component_size)),
        'component': component.tolist(),
        'component_size': component_size.tolist(),
        'period_prior_mean': float(spec.period_prior.mean),
        'period_prior_sd': float(spec.period_prior.sd),
        'fixed_prior_sd': float(spec.fixed_prior_sd),
        'spatial_scale': float(spec.spatial_scale),
        'L': int(lc_matrix.shape[0]),
        'lincomb': lc_matrix.tolist(),
    }

    observation_keys = tuple(
        (str(c), int(p)) for c, p in zip(long['county'], long['period'])
    )
    return ModelData(
        stan_data=stan_data,
        observation_keys=observation_keys,
        county_keys=tuple(county_index.names),
        period_levels=levels,
        lincomb_names=lc_names,
    )
