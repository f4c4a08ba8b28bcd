#!/usr/bin/env python3
"""
Experiment 03: Generate Paper Tables

Reads the saved fits and long table (Experiment 02) and writes:
  - table1_fixed_effects.tex   fixed effects + overall rate ratio
  - table2_fitted_rates.tex    fitted rates per 1000 births by county/period
  - table3_rate_ratios.tex     county rate ratios (later vs earlier)
plus CSV copies of the tidy summaries.

Usage:
    python experiments/03_generate_tables.py
"""
import sys
import argparse
from pathlib import Path

import pandas as pd

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from imrmap.config import config_path, load_config, get_project_root, require
from imrmap.evaluation.summaries import summary_tables
from imrmap.models.base import DEFAULT_QUANTILES, ModelFit
from imrmap.reporting.tables import write_latex_table


TABLES = {
    'table1': ('table1_fixed_effects', 'Posterior estimates of the fixed effects and the overall rate ratio'),
    'table2': ('table2_fitted_rates', 'Observed and fitted infant mortality per 1000 births'),
    'table3': ('table3_rate_ratios', 'County rate ratios between the two study periods'),
}


def main():
    parser = argparse.ArgumentParser(description="Generate LaTeX tables")
    parser.add_argument(
        "--config",
        type=str,
        default="config/config_default.yaml",
        help="Path to config file"
    )
    args = parser.parse_args()

    root = get_project_root()
    cfg = load_config(str(root / args.config))

    print("=" * 60)
    print("ISLAND IMR - GENERATE TABLES")
    print("=" * 60)

    long = pd.read_parquet(config_path(cfg, 'data.processed.long_table', root))
    base_fit = ModelFit.load(str(config_path(cfg, 'data.processed.base_fit', root)))
    lincomb_fit = ModelFit.load(str(config_path(cfg, 'data.processed.lincomb_fit', root)))

    reporting = require(cfg, 'reporting')
    tables = summary_tables(
        base_fit, lincomb_fit, long,
        per=float(reporting.get('rate_per', 1000)),
        decimals=reporting.get('decimals', {}),
        quantiles=tuple(cfg['model'].get('quantiles', DEFAULT_QUANTILES)),
    )

    tables_dir = config_path(cfg, 'reporting.tables_dir', root)
    tables_dir.mkdir(parents=True, exist_ok=True)

    print("\nLaTeX tables:")
    for key, (stem, caption) in TABLES.items():
        write_latex_table(tables[key], tables_dir / stem, caption=caption)

    print("\nTidy summaries:")
    for key, df in tables.items():
        if key in TABLES:
            continue
        path = tables_dir / f"{key}.csv"
        df.to_csv(path, index=False)
        print(f"  ✓ {path.name}")

    print("\n" + tables['table1'].to_string(index=False))
    print("\n✓ Tables complete!")


if __name__ == "__main__":
    main()
