#!/usr/bin/env python3
"""
Experiment 01: Build Long Table

Reads the wide county dataset, attaches display labels and writes the
long (county x period) table used by every later step.

Output: data/processed/county_period_long.parquet

Usage:
    python experiments/01_build_long_table.py
    python experiments/01_build_long_table.py --config config/config_default.yaml
"""
import sys
import argparse
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from imrmap.config import config_path, load_config, get_project_root
from imrmap.pipeline import AnalysisPipeline


def main():
    parser = argparse.ArgumentParser(description="Build long county-period table")
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
    print("ISLAND IMR - BUILD LONG TABLE")
    print("=" * 60)

    pipeline = AnalysisPipeline(cfg)
    data = pipeline.load()

    output_path = config_path(cfg, 'data.processed.long_table', root)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    data.long.to_parquet(output_path, index=False)
    print(f"  → Saved to {output_path}")

    print("\n" + "=" * 60)
    print("LONG TABLE SUMMARY")
    print("=" * 60)
    long = data.long
    print(f"Total rows: {len(long)}")
    print(f"Counties: {long['county_id'].nunique()}")
    print(f"Periods: {sorted(long['period'].unique().tolist())}")
    print(f"Observed rate range: {long['observed_rate'].min():.2f} - {long['observed_rate'].max():.2f}")
    print(f"\nColumns: {list(long.columns)}")

    print("\n✓ Long table build complete!")
    return long


if __name__ == "__main__":
    main()
