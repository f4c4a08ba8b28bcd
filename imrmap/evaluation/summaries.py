"""
Posterior Summarizer

Pure functions from ModelFit (+ the long table) to tidy result tables of
(label, estimate, lower, upper) and to the display tables of the paper:

- Table 1: fixed effects and the overall period rate ratio (grr)
- Table 2: fitted mortality rate per 1000 births, per county and period
- Table 3: county rate ratios (later vs earlier period) from lincombs

Every row is matched to its county by key, never by position alone.
"""
from __future__ import annotations

from typing import Dict, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from imrmap.common.errors import AlignmentError
from imrmap.models.base import DEFAULT_QUANTILES, ModelFit, quantile_label


FIXED_EFFECT_LABELS = {
    'intercept': 'Intercept',
    'deprivation': 'Deprivation index',
}
GRR_LABEL = 'grr'


def format_interval(point: float, lower: float, upper: float, decimals: int = 2) -> str:
    """Format an estimate with its credibility interval: ``"p (l; u)"``."""
    return f"{point:.{decimals}f} ({lower:.{decimals}f}; {upper:.{decimals}f})"


def _bounds(quantiles: Sequence[float]) -> Tuple[str, str]:
    return quantile_label(min(quantiles)), quantile_label(max(quantiles))


def fixed_effects_table(
    fit: ModelFit,
    quantiles: Sequence[float] = DEFAULT_QUANTILES
) -> pd.DataFrame:
    """
    Intercept and deprivation coefficient.

    Returns:
        DataFrame with columns: term, label, estimate, lower, upper
    """
    lo, hi = _bounds(quantiles)
    fixed = fit.fixed_effects(quantiles)
    return pd.DataFrame({
        'term': fixed['term'],
        'label': fixed['term'].map(FIXED_EFFECT_LABELS),
        'estimate': fixed['mean'],
        'lower': fixed[lo],
        'upper': fixed[hi],
    })


def period_rate_ratio(
    fit: ModelFit,
    quantiles: Sequence[float] = DEFAULT_QUANTILES
) -> pd.Series:
    """
    Overall later/earlier rate ratio from the shared period effect.

    gamma enters the later period with a minus sign, so
    grr = exp(-mean(gamma)); negation swaps the quantiles, hence
    lower = exp(-q_upper) and upper = exp(-q_lower).
    """
    lo, hi = _bounds(quantiles)
    s = fit.summary('gamma', quantiles).iloc[0]
    return pd.Series({
        'term': GRR_LABEL,
        'label': 'Period rate ratio',
        'estimate': float(np.exp(-s['mean'])),
        'lower': float(np.exp(-s[hi])),
        'upper': float(np.exp(-s[lo])),
    })


def _check_observation_keys(fit: ModelFit, long: pd.DataFrame, n_rows: int) -> None:
    n_counties = long['county_id'].nunique()
    n_periods = long['period'].nunique()
    expected = n_counties * n_periods
    if n_rows != expected or len(long) != expected:
        raise AlignmentError(
            f"Solver returned {n_rows} fitted values for {n_counties} counties x "
            f"{n_periods} periods ({expected} expected)"
        )
    long_keys = list(zip(long['county'].astype(str), long['period'].astype(int)))
    if list(fit.observation_keys) != long_keys:
        raise AlignmentError("Fitted values are not keyed to the long table's (county, period) order")


def fitted_rates_table(
    fit: ModelFit,
    long: pd.DataFrame,
    per: float = 1000.0,
    quantiles: Sequence[float] = DEFAULT_QUANTILES
) -> pd.DataFrame:
    """
    Fitted mortality rate per ``per`` births for every (county, period).

    Raises:
        AlignmentError: if the fit does not have exactly one fitted value per
            long-table row, in the same (county, period) order
    """
    mu = fit.variable('mu')
    n_rows = mu.shape[1] if mu.ndim == 2 else 1
    _check_observation_keys(fit, long, n_rows)

    births = long['births'].to_numpy(dtype=float)
    rates = mu * (per / births)[None, :]

    columns = ['county_id', 'county', 'county_name', 'period', 'period_label',
               'births', 'deaths', 'observed_rate']
    out = long[[c for c in columns if c in long.columns]].copy()
    out = out.reset_index(drop=True)
    out['fitted_rate'] = rates.mean(axis=0)
    out['lower'] = np.quantile(rates, min(quantiles), axis=0)
    out['upper'] = np.quantile(rates, max(quantiles), axis=0)
    return out


def _county_columns(fit: ModelFit) -> Dict[Tuple[str, int], int]:
    return {key: i for i, key in enumerate(fit.observation_keys)}


def fitted_rate_ratios(
    fit: ModelFit,
    long: pd.DataFrame,
    quantiles: Sequence[float] = DEFAULT_QUANTILES
) -> pd.DataFrame:
    """
    Later/earlier ratio of fitted rates per county, computed draw by draw.

    Cross-check for the lincomb route: both describe the same quantity.
    """
    mu = fit.variable('mu')
    _check_observation_keys(fit, long, mu.shape[1])
    cols = _county_columns(fit)
    first, last = int(long['period'].min()), int(long['period'].max())
    births = {(r.county, int(r.period)): float(r.births) for r in long.itertuples()}

    rows = []
    for county in fit.county_keys:
        k1, k2 = (county, first), (county, last)
        r1 = mu[:, cols[k1]] / births[k1]
        r2 = mu[:, cols[k2]] / births[k2]
        ratio = r2 / r1
        rows.append({
            'county': county,
            'estimate': float(ratio.mean()),
            'lower': float(np.quantile(ratio, min(quantiles))),
            'upper': float(np.quantile(ratio, max(quantiles))),
        })
    return pd.DataFrame(rows)


def rate_ratio_table(
    fit: ModelFit,
    quantiles: Sequence[float] = DEFAULT_QUANTILES
) -> pd.DataFrame:
    """
    County rate ratios from the per-county lincombs (-gamma + delta_i).

    The estimate is exp(mean), the bounds exp of the quantiles; prob_decline
    is the posterior probability that the ratio is below 1.
    """
    if tuple(fit.lincomb_names) != tuple(fit.county_keys):
        raise AlignmentError("Lincomb rows do not correspond one-to-one to counties in order")

    lo, hi = _bounds(quantiles)
    lc = fit.variable('lc')
    summary = fit.lincomb_summary(quantiles)
    return pd.DataFrame({
        'county': summary['name'],
        'estimate': np.exp(summary['mean']),
        'lower': np.exp(summary[lo]),
        'upper': np.exp(summary[hi]),
        'prob_decline': (lc < 0).mean(axis=0),
    })


def spatial_effects_table(
    fit: ModelFit,
    quantiles: Sequence[float] = DEFAULT_QUANTILES
) -> pd.DataFrame:
    """Relative risk exp(b_i) of the BYM spatial effect per county."""
    lo, hi = _bounds(quantiles)
    s = fit.summary('b', quantiles, transform=np.exp)
    if len(s) != len(fit.county_keys):
        raise AlignmentError(f"Spatial effect has {len(s)} levels for {len(fit.county_keys)} counties")
    return pd.DataFrame({
        'county': list(fit.county_keys),
        'estimate': s['mean'].values,
        'lower': s[lo].values,
        'upper': s[hi].values,
    })


def build_table1(
    fit: ModelFit,
    decimals: int = 3,
    quantiles: Sequence[float] = DEFAULT_QUANTILES
) -> pd.DataFrame:
    """Fixed effects plus the overall period rate ratio."""
    fixed = fixed_effects_table(fit, quantiles)
    grr = period_rate_ratio(fit, quantiles)
    rows = pd.concat([fixed, grr.to_frame().T], ignore_index=True)
    return pd.DataFrame({
        'Parameter': rows['label'],
        'Estimate (95% CrI)': [
            format_interval(float(r.estimate), float(r.lower), float(r.upper), decimals)
            for r in rows.itertuples()
        ],
    })


def build_table2(
    rates: pd.DataFrame,
    period_labels: Optional[Dict[int, str]] = None,
    decimals: int = 2
) -> pd.DataFrame:
    """
    One row per county: observed and fitted rate for each period.

    Args:
        rates: Output of fitted_rates_table()
        period_labels: Display label per period ordinal
        decimals: Decimal places
    """
    period_labels = period_labels or {}
    out = None
    for period, part in rates.groupby('period', sort=True):
        label = period_labels.get(period, f"Period {period}")
        part = part.sort_values('county_id')
        cols = pd.DataFrame({
            'county_id': part['county_id'].values,
            'County': part['county_name'].values,
            f'Observed {label}': [f"{v:.{decimals}f}" for v in part['observed_rate']],
            f'Fitted {label} (95% CrI)': [
                format_interval(r.fitted_rate, r.lower, r.upper, decimals)
                for r in part.itertuples()
            ],
        })
        out = cols if out is None else out.merge(cols, on=['county_id', 'County'], how='outer')
    return out.sort_values('county_id').drop(columns='county_id').reset_index(drop=True)


def build_table3(
    ratios: pd.DataFrame,
    display_names: Optional[Dict[str, str]] = None,
    decimals: int = 2
) -> pd.DataFrame:
    """County rate ratios with credibility interval and P(RR < 1)."""
    display_names = display_names or {}
    return pd.DataFrame({
        'County': [display_names.get(c, c) for c in ratios['county']],
        'Rate ratio (95% CrI)': [
            format_interval(r.estimate, r.lower, r.upper, decimals)
            for r in ratios.itertuples()
        ],
        'P(RR < 1)': [f"{p:.{decimals}f}" for p in ratios['prob_decline']],
    })


def summary_tables(
    base_fit: ModelFit,
    lincomb_fit: ModelFit,
    long: pd.DataFrame,
    per: float = 1000.0,
    decimals: Optional[Dict[str, int]] = None,
    quantiles: Sequence[float] = DEFAULT_QUANTILES
) -> Dict[str, pd.DataFrame]:
    """All tidy and display tables for one analysis run."""
    decimals = decimals or {}
    period_labels = (
        long.drop_duplicates('period').set_index('period')['period_label'].to_dict()
        if 'period_label' in long.columns else {}
    )
    names = long.drop_duplicates('county').set_index('county')['county_name'].to_dict()

    rates = fitted_rates_table(base_fit, long, per=per, quantiles=quantiles)
    ratios = rate_ratio_table(lincomb_fit, quantiles)
    tables: Dict[str, pd.DataFrame] = {
        'fixed_effects': fixed_effects_table(base_fit, quantiles),
        'period_rate_ratio': period_rate_ratio(base_fit, quantiles).to_frame().T,
        'fitted_rates': rates,
        'rate_ratios': ratios,
        'fitted_rate_ratios': fitted_rate_ratios(base_fit, long, quantiles),
        'spatial_effects': spatial_effects_table(base_fit, quantiles),
        'table1': build_table1(base_fit, decimals.get('table1', 3), quantiles),
        'table2': build_table2(rates, period_labels, decimals.get('table2', 2)),
        'table3': build_table3(ratios, names, decimals.get('table3', 2)),
    }
    return tables
