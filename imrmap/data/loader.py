"""
Data Loader for the island IMR analysis - BLOCK 1: Data Acquisition

This module handles:
1. Loading the wide county dataset (births, deaths, deprivation per period)
2. Loading the county display-label lookup and attaching labels
3. Loading the regional/national reference time series

Inputs are spreadsheets; CSV and parquet are accepted for convenience.
"""
import re
import warnings
import pandas as pd
import numpy as np
from pathlib import Path
from typing import Optional, Tuple, Union
from rapidfuzz import fuzz, process

from imrmap.common.errors import DataQualityError
from imrmap.data.schema import WideSchema


_UNNAMED_RE = re.compile(r"^Unnamed(?::\s*\d+)?$")

SheetRef = Union[int, str]


def _drop_unnamed(df: pd.DataFrame) -> pd.DataFrame:
    cols = [c for c in df.columns if _UNNAMED_RE.match(str(c))]
    return df.drop(columns=cols) if cols else df


def read_table(path: Union[str, Path], sheet: SheetRef = 0, keep_unnamed: bool = False) -> pd.DataFrame:
    """
    Read a table, choosing the reader from the file extension.

    Args:
        path: .xlsx/.xls workbook, .csv or .parquet file
        sheet: Sheet index or name (workbooks only)
        keep_unnamed: If False, drop pandas' "Unnamed: n" placeholder columns

    Returns:
        Raw DataFrame
    """
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Input file not found: {p}")

    suf = p.suffix.lower()
    if suf in (".xlsx", ".xls"):
        df = pd.read_excel(p, sheet_name=sheet)
    elif suf == ".csv":
        df = pd.read_csv(p)
    elif suf == ".parquet":
        df = pd.read_parquet(p)
    else:
        raise ValueError(f"Unsupported file extension: {suf} (file: {p})")

    return df if keep_unnamed else _drop_unnamed(df)


def load_wide_table(
    path: Union[str, Path],
    schema: WideSchema,
    sheet: SheetRef = 0
) -> pd.DataFrame:
    """
    Load the wide county dataset and validate it against the schema.

    Args:
        path: Path to the dataset workbook
        schema: Declared (variable, period) columns
        sheet: Sheet holding the dataset

    Returns:
        DataFrame with the schema's columns, in source row order
    """
    df = read_table(path, sheet=sheet)
    df.columns = [str(c).strip() for c in df.columns]
    return clean_wide_table(df, schema)


def clean_wide_table(df: pd.DataFrame, schema: WideSchema) -> pd.DataFrame:
    """
    Validate and coerce an in-memory wide table.

    Counts must be numeric, non-negative and deaths may not exceed births.
    The deprivation index must be numeric. Row order is preserved.
    """
    schema.validate(df)

    df = df[schema.columns()].copy()
    df = df.dropna(how='all').reset_index(drop=True)

    if df[schema.county_col].isna().any():
        rows = df.index[df[schema.county_col].isna()].tolist()
        raise DataQualityError(f"Missing county name in rows {rows}")
    df[schema.county_col] = df[schema.county_col].astype(str).str.strip()

    dupes = df[schema.county_col][df[schema.county_col].duplicated()].tolist()
    if dupes:
        raise DataQualityError(f"Duplicate county rows: {sorted(set(dupes))}")

    for variable, period in schema.pairs():
        col = schema.column(variable, period)
        values = pd.to_numeric(df[col], errors='coerce')
        bad = df.loc[values.isna(), schema.county_col].tolist()
        if bad:
            raise DataQualityError(f"Non-numeric or missing {col} for counties {bad}")
        df[col] = values.astype(float)

    for period in schema.periods:
        births_col = schema.column('births', period) if 'births' in schema.variables else None
        deaths_col = schema.column('deaths', period) if 'deaths' in schema.variables else None
        for col in (births_col, deaths_col):
            if col is None:
                continue
            negative = df.loc[df[col] < 0, schema.county_col].tolist()
            if negative:
                raise DataQualityError(f"Negative {col} for counties {negative}")
            non_integer = df.loc[df[col] != np.floor(df[col]), schema.county_col].tolist()
            if non_integer:
                raise DataQualityError(f"Non-integer {col} for counties {non_integer}")
            df[col] = df[col].astype(int)
        if births_col and deaths_col:
            over = df.loc[df[deaths_col] > df[births_col], schema.county_col].tolist()
            if over:
                raise DataQualityError(
                    f"Deaths exceed births in period {period.code} for counties {over}"
                )

    return df


def load_county_labels(
    path: Union[str, Path],
    sheet: SheetRef = 0,
    county_col: str = 'county',
    label_col: str = 'label'
) -> pd.DataFrame:
    """
    Load the county display-label lookup.

    Returns:
        DataFrame with columns: county, label
    """
    df = read_table(path, sheet=sheet)
    missing = {county_col, label_col} - set(df.columns)
    if missing:
        raise DataQualityError(f"Label lookup missing columns: {sorted(missing)}")

    df = df.rename(columns={county_col: 'county', label_col: 'label'})
    df = df[['county', 'label']].dropna(subset=['county'])
    df['county'] = df['county'].astype(str).str.strip()
    df['label'] = df['label'].astype(str).str.strip()
    return df.reset_index(drop=True)


def fuzzy_match_county(
    name: str,
    candidates: list,
    score_threshold: int
) -> Tuple[Optional[str], Optional[float]]:
    """
    Match a county name against candidate names.

    Exact (case-insensitive) matches win; otherwise the best rapidfuzz
    ratio at or above the threshold is returned.

    Args:
        name: County name to look up
        candidates: Candidate names (e.g. from a lookup or shapefile)
        score_threshold: Minimum fuzzy match score (config-driven)

    Returns:
        Tuple of (matched_name, score) or (None, None)
    """
    normalized = str(name).strip().casefold()
    for candidate in candidates:
        if str(candidate).strip().casefold() == normalized:
            return candidate, 100.0

    match = process.extractOne(str(name).strip(), candidates, scorer=fuzz.ratio)
    if match and match[1] >= score_threshold:
        return match[0], float(match[1])
    return None, None


def attach_display_names(
    wide: pd.DataFrame,
    labels: pd.DataFrame,
    county_col: str = 'county',
    score_threshold: int = None
) -> pd.DataFrame:
    """
    Add a ``county_name`` display column to the wide table.

    Args:
        wide: Wide table from load_wide_table()
        labels: Lookup from load_county_labels()
        county_col: County column in the wide table
        score_threshold: Minimum fuzzy match score (config-driven)

    Returns:
        Copy of ``wide`` with a ``county_name`` column

    Raises:
        DataQualityError: if a county has no label entry, or two counties
            resolve to the same entry
    """
    if score_threshold is None:
        raise ValueError("score_threshold must be provided via config or caller")

    lookup = dict(zip(labels['county'], labels['label']))
    candidates = list(lookup.keys())

    names = []
    unmatched = []
    matched_by = {}
    for county in wide[county_col]:
        matched, score = fuzzy_match_county(county, candidates, score_threshold)
        if matched is None:
            unmatched.append(county)
            names.append(None)
            continue
        if matched in matched_by:
            raise DataQualityError(
                f"Counties {matched_by[matched]!r} and {county!r} both match label entry {matched!r}"
            )
        matched_by[matched] = county
        if score < 100.0:
            warnings.warn(f"County {county!r} matched label entry {matched!r} (score {score:.0f})")
        names.append(lookup[matched])

    if unmatched:
        raise DataQualityError(f"No display label for counties: {unmatched}")

    out = wide.copy()
    out['county_name'] = names
    return out


def load_reference_series(
    path: Union[str, Path],
    sheet: SheetRef = 0,
    year_col: str = 'year'
) -> pd.DataFrame:
    """
    Load the reference infant-mortality time series (e.g. regional vs national).

    Returns:
        DataFrame with a ``year`` column plus one numeric column per series,
        sorted by year
    """
    df = read_table(path, sheet=sheet)
    if year_col not in df.columns:
        raise DataQualityError(f"Reference series missing '{year_col}' column")

    df = df.rename(columns={year_col: 'year'})
    df['year'] = pd.to_numeric(df['year'], errors='coerce')
    df = df.dropna(subset=['year'])
    df['year'] = df['year'].astype(int)

    series_cols = [c for c in df.columns if c != 'year']
    if not series_cols:
        raise DataQualityError("Reference series has no value columns")
    for col in series_cols:
        df[col] = pd.to_numeric(df[col], errors='coerce')

    return df.sort_values('year').reset_index(drop=True)
