"""Data module - loading, county index and long-format reshaping."""

from imrmap.data.counties import CountyIndex
from imrmap.data.loader import (
    attach_display_names,
    load_county_labels,
    load_reference_series,
    load_wide_table,
)
from imrmap.data.reshape import (
    CountyPeriodObservation,
    global_rates,
    reshape_long,
    to_observations,
    wide_global_rates,
)
from imrmap.data.schema import PeriodSpec, WideSchema

__all__ = [
    'CountyIndex',
    'attach_display_names',
    'load_county_labels',
    'load_reference_series',
    'load_wide_table',
    'CountyPeriodObservation',
    'global_rates',
    'reshape_long',
    'to_observations',
    'wide_global_rates',
    'PeriodSpec',
    'WideSchema',
]
