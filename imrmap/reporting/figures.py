"""
Static figures for the paper, written as EPS at fixed DPI and size.

1. Observed rate vs deprivation index (scatter)
2. Observed vs fitted rates (scatter with credibility intervals)
3. Posterior density of the overall period rate ratio
4. Reference time series (regional vs national) with study periods shaded
5. Choropleth of a per-county value (rate ratio, fitted rate, ...)

EPS has no transparency, so no artist uses alpha.
"""
from __future__ import annotations

import warnings
from pathlib import Path
from typing import Dict, Sequence, Tuple, Union

import numpy as np
import pandas as pd
import geopandas as gpd
import matplotlib.pyplot as plt
from scipy import stats

from imrmap.common.errors import DataQualityError
from imrmap.data.loader import fuzzy_match_county
from imrmap.data.schema import PeriodSpec
from imrmap.models.base import ModelFit


# Consistent color scheme
COLORS = {
    'period_1': '#2E86AB',  # Blue
    'period_2': '#E94F37',  # Red
    'fitted': '#27AE60',    # Green
    'reference': '#95A5A6', # Gray
    'shade': '#EAEDED',     # Light gray
}

PERIOD_COLORS = [COLORS['period_1'], COLORS['period_2']]

STYLE = {
    'font.size': 10,
    'axes.titlesize': 12,
    'axes.labelsize': 10,
    'legend.fontsize': 9,
    'xtick.labelsize': 9,
    'ytick.labelsize': 9,
    'ps.fonttype': 42,
}


def apply_style() -> None:
    plt.rcParams.update(STYLE)


def save_eps(
    fig: plt.Figure,
    filepath: Union[str, Path],
    size: Tuple[float, float],
    dpi: int = 300
) -> Path:
    """
    Save figure as EPS at a fixed physical size (inches) and DPI.

    Args:
        fig: Matplotlib figure
        filepath: Output path (extension forced to .eps)
        size: (width, height) in inches
        dpi: Resolution for any rasterized content

    Returns:
        Path written
    """
    path = Path(filepath).with_suffix('.eps')
    path.parent.mkdir(parents=True, exist_ok=True)
    fig.set_size_inches(*size)
    fig.savefig(path, format='eps', dpi=dpi, bbox_inches='tight', facecolor='white')
    plt.close(fig)
    print(f"  ✓ {path.name}")
    return path


def _period_color(i: int) -> str:
    return PERIOD_COLORS[i % len(PERIOD_COLORS)]


def plot_rate_vs_deprivation(long: pd.DataFrame, annotate: bool = True) -> plt.Figure:
    """Observed infant mortality rate against the deprivation index."""
    apply_style()
    fig, ax = plt.subplots()

    for i, (period, part) in enumerate(long.groupby('period', sort=True)):
        label = part['period_label'].iloc[0] if 'period_label' in part.columns else f"Period {period}"
        ax.scatter(part['deprivation'], part['observed_rate'],
                   color=_period_color(i), s=25, label=label)
        if annotate:
            for r in part.itertuples():
                ax.annotate(str(r.county_name), (r.deprivation, r.observed_rate),
                            xytext=(3, 3), textcoords='offset points', fontsize=6)

    ax.set_xlabel('Deprivation index')
    ax.set_ylabel('Infant deaths per 1000 births')
    ax.legend(frameon=False)
    return fig


def plot_observed_vs_fitted(rates: pd.DataFrame) -> plt.Figure:
    """Observed vs posterior fitted rate, with credibility intervals."""
    apply_style()
    fig, ax = plt.subplots()

    for i, (period, part) in enumerate(rates.groupby('period', sort=True)):
        yerr = np.vstack([
            part['fitted_rate'] - part['lower'],
            part['upper'] - part['fitted_rate'],
        ])
        label = part['period_label'].iloc[0] if 'period_label' in part.columns else f"Period {period}"
        ax.errorbar(part['observed_rate'], part['fitted_rate'], yerr=yerr,
                    fmt='o', ms=4, color=_period_color(i), ecolor=_period_color(i),
                    elinewidth=0.8, capsize=2, label=str(label))

    lims = [
        0.0,
        float(max(rates['observed_rate'].max(), rates['upper'].max())) * 1.05,
    ]
    ax.plot(lims, lims, linestyle='--', color=COLORS['reference'], linewidth=1)
    ax.set_xlim(lims)
    ax.set_ylim(lims)
    ax.set_xlabel('Observed rate per 1000 births')
    ax.set_ylabel('Fitted rate per 1000 births')
    ax.legend(frameon=False)
    return fig


def plot_period_effect_density(fit: ModelFit, quantiles: Sequence[float] = (0.025, 0.975)) -> plt.Figure:
    """Posterior density of the overall rate ratio exp(-gamma)."""
    apply_style()
    grr = np.exp(-fit.variable('gamma'))

    fig, ax = plt.subplots()
    grid = np.linspace(grr.min(), grr.max(), 400)
    if np.ptp(grr) > 0:
        density = stats.gaussian_kde(grr)(grid)
        ax.plot(grid, density, color=COLORS['period_2'], linewidth=1.5)
        lo, hi = np.quantile(grr, [min(quantiles), max(quantiles)])
        mask = (grid >= lo) & (grid <= hi)
        ax.fill_between(grid[mask], density[mask], color=COLORS['shade'])
    else:
        warnings.warn("Degenerate rate-ratio draws; density not estimated")

    ax.axvline(1.0, color=COLORS['reference'], linestyle='--', linewidth=1)
    ax.axvline(float(np.exp(-fit.variable('gamma').mean())), color='black', linewidth=1)
    ax.set_xlabel('Rate ratio (later vs earlier period)')
    ax.set_ylabel('Posterior density')
    return fig


def plot_reference_series(
    series: pd.DataFrame,
    periods: Sequence[PeriodSpec] = ()
) -> plt.Figure:
    """
    Reference infant mortality time series, one line per series column,
    with the study periods shaded.
    """
    apply_style()
    fig, ax = plt.subplots()

    for period in periods:
        if period.years:
            ax.axvspan(period.years[0] - 0.5, period.years[1] + 0.5,
                       color=COLORS['shade'], zorder=0)
            ax.text((period.years[0] + period.years[1]) / 2, 1.0, period.label,
                    transform=ax.get_xaxis_transform(), ha='center', va='bottom', fontsize=8)

    value_cols = [c for c in series.columns if c != 'year']
    linestyles = ['-', '--', ':', '-.']
    for i, col in enumerate(value_cols):
        ax.plot(series['year'], series[col], marker='o', ms=3, color='black',
                linestyle=linestyles[i % len(linestyles)], linewidth=1.2, label=str(col))

    ax.set_xlabel('Year')
    ax.set_ylabel('Infant deaths per 1000 births')
    ax.legend(frameon=False)
    return fig


def load_county_shapes(path: Union[str, Path]) -> gpd.GeoDataFrame:
    """Read county geometries (shapefile, GeoPackage, GeoJSON)."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"County geometry file not found: {path}")
    return gpd.read_file(path)


def join_values_to_shapes(
    shapes: gpd.GeoDataFrame,
    values: pd.DataFrame,
    name_field: str,
    value_col: str,
    county_col: str = 'county',
    score_threshold: int = 85
) -> gpd.GeoDataFrame:
    """
    Attach a per-county value to geometries by county name.

    Returns:
        GeoDataFrame with a ``value_col`` column

    Raises:
        DataQualityError: if a county has no geometry, or two counties resolve
            to the same geometry
    """
    candidates = shapes[name_field].astype(str).tolist()
    lookup: Dict[str, float] = {}
    matched_by: Dict[str, str] = {}
    unmatched = []
    for r in values[[county_col, value_col]].itertuples(index=False):
        matched, score = fuzzy_match_county(r[0], candidates, score_threshold)
        if matched is None:
            unmatched.append(r[0])
            continue
        if matched in matched_by:
            raise DataQualityError(
                f"Counties '{matched_by[matched]}' and '{r[0]}' both match geometry '{matched}'"
            )
        matched_by[matched] = r[0]
        lookup[matched] = float(r[1])
    if unmatched:
        raise DataQualityError(f"No geometry for counties: {unmatched}")

    out = shapes.copy()
    out[value_col] = out[name_field].astype(str).map(lookup)
    return out


def plot_choropleth(
    shapes: gpd.GeoDataFrame,
    value_col: str,
    legend_label: str = '',
    cmap: str = 'RdYlBu_r'
) -> plt.Figure:
    """Choropleth of ``value_col`` (counties without a value drawn blank)."""
    apply_style()
    fig, ax = plt.subplots()
    shapes.plot(
        column=value_col, ax=ax, cmap=cmap, edgecolor='black', linewidth=0.4,
        legend=True, legend_kwds={'label': legend_label, 'shrink': 0.6},
        missing_kwds={'color': 'white', 'edgecolor': 'grey', 'hatch': '///'},
    )
    ax.set_axis_off()
    return fig
