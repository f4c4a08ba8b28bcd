"""Evaluation module - posterior summaries and paper tables."""

from imrmap.evaluation.summaries import (
    build_table1,
    build_table2,
    build_table3,
    fitted_rate_ratios,
    fitted_rates_table,
    fixed_effects_table,
    format_interval,
    period_rate_ratio,
    rate_ratio_table,
    spatial_effects_table,
)

__all__ = [
    'build_table1',
    'build_table2',
    'build_table3',
    'fitted_rate_ratios',
    'fitted_rates_table',
    'fixed_effects_table',
    'format_interval',
    'period_rate_ratio',
    'rate_ratio_table',
    'spatial_effects_table',
]
