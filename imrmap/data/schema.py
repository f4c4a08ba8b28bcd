"""
Declared wide-table schema.

The raw spreadsheet carries one row per county and one column per
(variable, period) pair, named ``<variable>_<period code>``. The schema is
declared up front and validated at load time so that a renamed or extra
period column fails loudly instead of being silently dropped.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

import pandas as pd

from imrmap.common.errors import DataQualityError


@dataclass(frozen=True)
class PeriodSpec:
    """One study period."""
    code: str
    ordinal: int
    label: str
    years: Optional[Tuple[int, int]] = None


@dataclass(frozen=True)
class WideSchema:
    """Columns expected in the wide (one row per county) table."""
    county_col: str
    variables: Tuple[str, ...]
    periods: Tuple[PeriodSpec, ...]

    def __post_init__(self):
        # The model contrasts one later period with one earlier period
        if len(self.periods) != 2:
            raise ValueError(f"Exactly two periods are required, got {len(self.periods)}")
        ordinals = [p.ordinal for p in self.periods]
        if len(set(ordinals)) != len(ordinals):
            raise ValueError(f"Period ordinals must be distinct, got {ordinals}")
        codes = [p.code for p in self.periods]
        if len(set(codes)) != len(codes):
            raise ValueError(f"Period codes must be distinct, got {codes}")
        # Keep periods in ascending ordinal order (earlier = 1)
        object.__setattr__(
            self, 'periods', tuple(sorted(self.periods, key=lambda p: p.ordinal))
        )

    @classmethod
    def from_config(cls, cfg: Dict[str, Any]) -> 'WideSchema':
        schema_cfg = cfg.get('schema')
        if not schema_cfg:
            raise ValueError("Missing schema in config.")
        periods = tuple(
            PeriodSpec(
                code=str(p['code']),
                ordinal=int(p['ordinal']),
                label=str(p.get('label', p['code'])),
                years=tuple(p['years']) if p.get('years') else None,
            )
            for p in schema_cfg['periods']
        )
        return cls(
            county_col=schema_cfg.get('county_col', 'county'),
            variables=tuple(schema_cfg['variables']),
            periods=periods,
        )

    def column(self, variable: str, period: PeriodSpec) -> str:
        return f"{variable}_{period.code}"

    def pairs(self) -> List[Tuple[str, PeriodSpec]]:
        """Ordered (variable, period) pairs, period-major."""
        return [(v, p) for p in self.periods for v in self.variables]

    def columns(self) -> List[str]:
        return [self.county_col] + [self.column(v, p) for v, p in self.pairs()]

    def period_by_ordinal(self, ordinal: int) -> PeriodSpec:
        for p in self.periods:
            if p.ordinal == ordinal:
                return p
        raise KeyError(f"No period with ordinal {ordinal}")

    def validate(self, df: pd.DataFrame) -> None:
        """
        Check that every declared column is present and that no column
        looks like an undeclared (variable, period) pair.

        Raises:
            DataQualityError: listing every missing or unexpected column
        """
        present = [str(c) for c in df.columns]
        missing = [c for c in self.columns() if c not in present]

        declared = set(self.columns())
        var_pattern = re.compile(
            r"^(" + "|".join(re.escape(v) for v in self.variables) + r")_(.+)$"
        )
        unexpected = [
            c for c in present
            if c not in declared and var_pattern.match(c)
        ]

        problems = []
        if missing:
            problems.append(f"missing columns {missing}")
        if unexpected:
            problems.append(f"undeclared period columns {unexpected}")
        if problems:
            raise DataQualityError("Wide table does not match schema: " + "; ".join(problems))


def schema_from_pairs(
    county_col: str,
    variables: Sequence[str],
    period_codes: Sequence[str],
) -> WideSchema:
    """Build a schema with ordinals following the order of ``period_codes``."""
    periods = tuple(
        PeriodSpec(code=code, ordinal=i + 1, label=code)
        for i, code in enumerate(period_codes)
    )
    return WideSchema(county_col=county_col, variables=tuple(variables), periods=periods)
