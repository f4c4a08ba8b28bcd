#!/usr/bin/env python3
"""
Experiment 04: Generate Paper Figures

Writes EPS figures at the configured DPI and physical size:
  - fig1_rate_vs_deprivation.eps
  - fig2_observed_vs_fitted.eps
  - fig3_period_effect_density.eps
  - fig4_reference_series.eps     (if the reference series is configured)
  - fig5_rate_ratio_map.eps       (if the county shapefile is configured)

Usage:
    python experiments/04_generate_figures.py
"""
import sys
import argparse
import warnings
from pathlib import Path

import pandas as pd

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from imrmap.config import config_path, load_config, get_project_root, require
from imrmap.data.loader import load_reference_series
from imrmap.data.schema import WideSchema
from imrmap.evaluation.summaries import fitted_rates_table, rate_ratio_table
from imrmap.models.base import ModelFit
from imrmap.reporting import figures


def main():
    parser = argparse.ArgumentParser(description="Generate EPS figures")
    parser.add_argument(
        "--config",
        type=str,
        default="config/config_default.yaml",
        help="Path to config file"
    )
    args = parser.parse_args()

    root = get_project_root()
    cfg = load_config(str(root / args.config))
    raw = require(cfg, 'data.raw')
    fig_cfg = require(cfg, 'reporting.figures')
    dpi = int(fig_cfg.get('dpi', 300))
    sizes = {k: tuple(v) for k, v in fig_cfg['sizes'].items()}
    figures_dir = config_path(cfg, 'reporting.figures_dir', root)
    per = float(cfg['reporting'].get('rate_per', 1000))

    print("=" * 60)
    print("ISLAND IMR - GENERATE FIGURES")
    print("=" * 60)

    long = pd.read_parquet(config_path(cfg, 'data.processed.long_table', root))
    base_fit = ModelFit.load(str(config_path(cfg, 'data.processed.base_fit', root)))
    lincomb_fit = ModelFit.load(str(config_path(cfg, 'data.processed.lincomb_fit', root)))

    rates = fitted_rates_table(base_fit, long, per=per)
    ratios = rate_ratio_table(lincomb_fit)

    figures.save_eps(figures.plot_rate_vs_deprivation(long),
                     figures_dir / "fig1_rate_vs_deprivation",
                     sizes['rate_vs_deprivation'], dpi)
    figures.save_eps(figures.plot_observed_vs_fitted(rates),
                     figures_dir / "fig2_observed_vs_fitted",
                     sizes['observed_vs_fitted'], dpi)
    figures.save_eps(figures.plot_period_effect_density(base_fit),
                     figures_dir / "fig3_period_effect_density",
                     sizes['period_effect_density'], dpi)

    if raw.get('reference_series'):
        series = load_reference_series(root / raw['reference_series'], sheet=raw.get('reference_sheet', 0))
        schema = WideSchema.from_config(cfg)
        figures.save_eps(figures.plot_reference_series(series, schema.periods),
                         figures_dir / "fig4_reference_series",
                         sizes['reference_series'], dpi)
    else:
        warnings.warn("No reference series configured, skipping trend figure")

    if raw.get('shapefile'):
        shapes = figures.load_county_shapes(root / raw['shapefile'])
        joined = figures.join_values_to_shapes(
            shapes, ratios, name_field=require(cfg, 'data.raw.shapefile_name_field'),
            value_col='estimate',
            score_threshold=int(require(cfg, 'processing.score_threshold')),
        )
        figures.save_eps(figures.plot_choropleth(joined, 'estimate', legend_label='Rate ratio'),
                         figures_dir / "fig5_rate_ratio_map",
                         sizes['choropleth'], dpi)
    else:
        warnings.warn("No shapefile configured, skipping choropleth")

    print("\n✓ Figures complete!")


if __name__ == "__main__":
    main()
