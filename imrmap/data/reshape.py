"""
Wide → long reshaping of the county dataset.

One output row per (county, period), ordered by period then county id.
The Stan data, the lincomb matrix and the fitted-value summaries all rely
on this ordering, so it is asserted rather than assumed.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np
import pandas as pd

from imrmap.common.errors import DataQualityError
from imrmap.data.counties import CountyIndex
from imrmap.data.schema import WideSchema


LONG_COLUMNS = [
    'county_id', 'county', 'county_name', 'period', 'period_label',
    'births', 'deaths', 'deprivation', 'observed_rate', 'idx',
]


@dataclass(frozen=True)
class CountyPeriodObservation:
    """One county in one study period."""
    county_id: int
    county: str
    county_name: str
    period: int
    births: int
    deaths: int
    deprivation: float
    observed_rate: float
    idx: int


def reshape_long(
    wide: pd.DataFrame,
    schema: WideSchema,
    county_index: Optional[CountyIndex] = None,
    per: float = 1000.0
) -> pd.DataFrame:
    """
    Convert the wide table to one row per (county, period).

    Args:
        wide: Validated wide table (see load_wide_table)
        schema: Declared schema
        county_index: County id mapping; built from ``wide`` if omitted
        per: Rate multiplier (rate per ``per`` births)

    Returns:
        Long DataFrame with LONG_COLUMNS, sorted by (period, county_id)
    """
    if county_index is None:
        county_index = CountyIndex.from_wide(wide, schema.county_col)

    counties = wide[schema.county_col].astype(str).str.strip()
    unknown = sorted(set(counties) - set(county_index.names))
    if unknown or len(counties) != len(county_index):
        raise DataQualityError(
            f"Wide table counties do not match the county index (unknown: {unknown})"
        )

    display = wide['county_name'] if 'county_name' in wide.columns else counties

    frames = []
    for period in schema.periods:
        part = pd.DataFrame({
            'county_id': [county_index.id_of(c) for c in counties],
            'county': counties.values,
            'county_name': display.values,
            'period': period.ordinal,
            'period_label': period.label,
        })
        for variable in schema.variables:
            part[variable] = wide[schema.column(variable, period)].values
        frames.append(part)

    long = pd.concat(frames, ignore_index=True)

    zero = long[long['births'] <= 0]
    if len(zero):
        where = ", ".join(f"{r.county} (period {r.period})" for r in zero.itertuples())
        raise DataQualityError(f"Zero births (no exposure) for: {where}")

    long['observed_rate'] = per * long['deaths'] / long['births']
    long = long.sort_values(['period', 'county_id'], kind='mergesort').reset_index(drop=True)
    long['idx'] = np.arange(1, len(long) + 1)

    expected = len(county_index) * len(schema.periods)
    if len(long) != expected:
        raise DataQualityError(
            f"Long table has {len(long)} rows, expected {expected} "
            f"({len(county_index)} counties x {len(schema.periods)} periods)"
        )

    cols = [c for c in LONG_COLUMNS if c in long.columns]
    cols += [c for c in long.columns if c not in cols]
    return long[cols]


def to_observations(long: pd.DataFrame) -> Tuple[CountyPeriodObservation, ...]:
    """Freeze the long table into observation records."""
    return tuple(
        CountyPeriodObservation(
            county_id=int(r.county_id),
            county=str(r.county),
            county_name=str(r.county_name),
            period=int(r.period),
            births=int(r.births),
            deaths=int(r.deaths),
            deprivation=float(r.deprivation),
            observed_rate=float(r.observed_rate),
            idx=int(r.idx),
        )
        for r in long.itertuples(index=False)
    )


def global_rates(long: pd.DataFrame, per: float = 1000.0) -> pd.Series:
    """
    Pooled rate per period and over all periods (diagnostic only).

    Returns:
        Series indexed by period ordinal plus 'all'
    """
    grouped = long.groupby('period')[['deaths', 'births']].sum()
    rates = per * grouped['deaths'] / grouped['births']
    rates.loc['all'] = per * long['deaths'].sum() / long['births'].sum()
    rates.name = 'global_rate'
    return rates


def wide_global_rates(wide: pd.DataFrame, schema: WideSchema, per: float = 1000.0) -> pd.Series:
    """Same aggregate as global_rates(), computed straight from the wide table."""
    rates = {}
    total_deaths = 0.0
    total_births = 0.0
    for period in schema.periods:
        deaths = wide[schema.column('deaths', period)].sum()
        births = wide[schema.column('births', period)].sum()
        rates[period.ordinal] = per * deaths / births
        total_deaths += deaths
        total_births += births
    rates['all'] = per * total_deaths / total_births
    return pd.Series(rates, name='global_rate')


def describe_long(long: pd.DataFrame, per: float = 1000.0) -> pd.DataFrame:
    """Per-period descriptive summary of the long table."""
    summary = long.groupby(['period', 'period_label']).agg(
        counties=('county_id', 'nunique'),
        births=('births', 'sum'),
        deaths=('deaths', 'sum'),
        rate_min=('observed_rate', 'min'),
        rate_max=('observed_rate', 'max'),
        deprivation_mean=('deprivation', 'mean'),
    ).reset_index()
    summary['rate'] = per * summary['deaths'] / summary['births']
    return summary
