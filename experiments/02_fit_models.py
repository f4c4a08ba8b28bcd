#!/usr/bin/env python3
"""
Experiment 02: Fit Spatio-Temporal Models

This script:
1. Loads the dataset and builds the neighborhood graph
2. Fits the base BYM + period model with Stan
3. Fits the model again with the per-county ratio lincombs
4. Saves both fits (pickle) and the long table they are keyed to

Usage:
    python experiments/02_fit_models.py
    python experiments/02_fit_models.py --config config/config_default.yaml
"""
import sys
import json
import argparse
from datetime import datetime
from pathlib import Path

import numpy as np

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from imrmap.config import config_path, load_config, get_project_root, require
from imrmap.models.bayesian.bym_period import BYMPeriodSolver
from imrmap.pipeline import AnalysisPipeline


def _serializable(obj):
    if isinstance(obj, dict):
        return {str(k): _serializable(v) for k, v in obj.items()}
    if isinstance(obj, np.floating):
        return float(obj)
    if isinstance(obj, np.integer):
        return int(obj)
    return obj


def main():
    parser = argparse.ArgumentParser(description="Fit BYM + period models")
    parser.add_argument(
        "--config",
        type=str,
        default="config/config_default.yaml",
        help="Path to config file"
    )
    args = parser.parse_args()

    root = get_project_root()
    cfg = load_config(str(root / args.config))

    mcmc = dict(require(cfg, 'model.mcmc'))

    print("=" * 60)
    print("ISLAND IMR - FIT SPATIO-TEMPORAL MODELS")
    print("=" * 60)
    print(f"MCMC: {mcmc['n_chains']} chains, {mcmc['n_warmup']} warmup, {mcmc['n_samples']} samples")
    prior = require(cfg, 'model.period_prior')
    print(f"Period prior: mean={prior['mean']}, precision={prior['precision']}")

    pipeline = AnalysisPipeline(cfg, solver=BYMPeriodSolver(config=mcmc))
    data = pipeline.load()
    graph = pipeline.build_graph(data.county_index)
    _, _, _, base_fit, lincomb_fit = pipeline.fit(data.long, graph, data.county_index)

    long_path = config_path(cfg, 'data.processed.long_table', root)
    long_path.parent.mkdir(parents=True, exist_ok=True)
    data.long.to_parquet(long_path, index=False)

    base_path = config_path(cfg, 'data.processed.base_fit', root)
    lincomb_path = config_path(cfg, 'data.processed.lincomb_fit', root)
    base_fit.save(str(base_path))
    lincomb_fit.save(str(lincomb_path))

    summary_file = base_path.parent / "fit_summary.json"
    summary = {
        "timestamp": datetime.now().isoformat(),
        "config": str(args.config),
        "mcmc": mcmc,
        "n_counties": len(data.county_index),
        "n_observations": len(data.long),
        "n_edges": graph.n_edges,
        "isolated": graph.isolated(),
        "refit_for_lincombs": pipeline.refit_for_lincombs,
        "global_rates": {str(k): float(v) for k, v in data.global_rates.items()},
        "diagnostics": {
            "base": _serializable(base_fit.diagnostics),
            "lincomb": _serializable(lincomb_fit.diagnostics),
        },
    }
    with open(summary_file, "w") as f:
        json.dump(summary, f, indent=2)

    print("\n" + "=" * 60)
    print("FITS SAVED")
    print("=" * 60)
    print(f"  → long table: {long_path}")
    print(f"  → base fit: {base_path}")
    print(f"  → lincomb fit: {lincomb_path}")
    print(f"  → summary: {summary_file}")


if __name__ == "__main__":
    main()
