#!/usr/bin/env python3
"""
Experiment 00: Sanity Check

Quick verification that the inputs are usable before any model is fit:
1. Config loads
2. Input files exist
3. Wide table matches the declared schema; global rates agree (long vs wide)
4. Adjacency matrix is symmetric and aligned with the counties

Usage:
    python experiments/00_sanity_check.py
    python experiments/00_sanity_check.py --config config/config_default.yaml
"""
import sys
import argparse
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from imrmap.common.errors import DataQualityError, GraphIntegrityError
from imrmap.config import load_config, get_project_root
from imrmap.data.counties import CountyIndex
from imrmap.data.loader import load_wide_table
from imrmap.data.reshape import describe_long, global_rates, reshape_long, wide_global_rates
from imrmap.data.schema import WideSchema
from imrmap.spatial.adjacency import align_matrix, build_graph, count_asymmetric_cells, load_adjacency_matrix


def check_config(cfg):
    """Test config sections."""
    print("Checking config...", end=" ")
    missing = [s for s in ('data', 'schema', 'model', 'reporting') if s not in cfg]
    if missing:
        print(f"✗ (missing sections: {missing})")
        return False
    print("✓")
    return True


def check_input_files(cfg):
    """Test input file existence."""
    print("Checking input files...", end=" ")
    root = get_project_root()
    raw = cfg['data']['raw']
    missing = [
        str(root / raw[key]) for key in ('dataset', 'adjacency', 'labels', 'reference_series')
        if raw.get(key) and not (root / raw[key]).exists()
    ]
    if missing:
        print(f"✗ (not found: {missing})")
        return False
    print("✓")
    return True


def check_dataset(cfg):
    """Schema validation and global-rate cross-check."""
    print("Checking dataset...", end=" ")
    root = get_project_root()
    schema = WideSchema.from_config(cfg)
    per = float(cfg['reporting'].get('rate_per', 1000))
    try:
        wide = load_wide_table(root / cfg['data']['raw']['dataset'], schema,
                               sheet=cfg['data']['raw'].get('dataset_sheet', 0))
        long = reshape_long(wide, schema, per=per)
    except (DataQualityError, FileNotFoundError) as e:
        print(f"✗ ({e})")
        return False

    rates = global_rates(long, per=per)
    wide_rates = wide_global_rates(wide, schema, per=per)
    if not (rates.round(9) == wide_rates.round(9)).all():
        print(f"✗ (global rates differ: long={rates.to_dict()} wide={wide_rates.to_dict()})")
        return False
    print("✓")

    print(describe_long(long, per=per).to_string(index=False))
    for key, value in rates.items():
        print(f"  → global rate [{key}]: {value:.3f} per {per:g} births")
    return True


def check_adjacency(cfg):
    """Symmetry and alignment of the adjacency matrix."""
    print("Checking adjacency matrix...", end=" ")
    root = get_project_root()
    raw = cfg['data']['raw']
    schema = WideSchema.from_config(cfg)
    try:
        wide = load_wide_table(root / raw['dataset'], schema, sheet=raw.get('dataset_sheet', 0))
        labelled = bool(raw.get('adjacency_labelled', True))
        matrix = load_adjacency_matrix(root / raw['adjacency'], sheet=raw.get('adjacency_sheet', 1),
                                       label_column=labelled)
        county_index = CountyIndex.from_wide(wide, schema.county_col)
        aligned = align_matrix(matrix, county_index) if labelled else matrix
        n_asym = count_asymmetric_cells(aligned.values)
        graph = build_graph(matrix, county_index, labelled=labelled)
    except (DataQualityError, GraphIntegrityError, FileNotFoundError) as e:
        print(f"✗ ({e})")
        return False

    print("✓")
    print(f"  → asymmetric cells: {n_asym}")
    print(f"  → {graph.n} nodes, {graph.n_edges} edges, {graph.n_components()} component(s)")
    if graph.isolated():
        print(f"  → isolated counties: {graph.isolated()}")
    return True


def main():
    parser = argparse.ArgumentParser(description="Sanity-check analysis inputs")
    parser.add_argument(
        "--config",
        type=str,
        default="config/config_default.yaml",
        help="Path to config file"
    )
    args = parser.parse_args()

    cfg = load_config(str(get_project_root() / args.config))

    print("=" * 60)
    print("ISLAND IMR - SANITY CHECK")
    print("=" * 60)

    checks = [
        ("Config", check_config),
        ("Input Files", check_input_files),
        ("Dataset", check_dataset),
        ("Adjacency", check_adjacency),
    ]

    results = []
    for name, check_fn in checks:
        results.append(check_fn(cfg))

    print("\n" + "=" * 60)
    passed = sum(results)
    total = len(results)

    if passed == total:
        print(f"ALL CHECKS PASSED ({passed}/{total}) ✓")
    else:
        print(f"CHECKS FAILED ({passed}/{total}) ✗")
        sys.exit(1)


if __name__ == "__main__":
    main()
