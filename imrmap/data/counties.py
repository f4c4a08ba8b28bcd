"""County identifier mapping shared by every pipeline stage."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Sequence, Tuple

import pandas as pd

from imrmap.common.errors import DataQualityError


@dataclass(frozen=True)
class CountyIndex:
    """
    County identifiers (1..n) keyed by county name.

    The identifier is the county's position in the source dataset. The long
    table, the graph node order, the lincomb columns and the fitted-value
    keys are all checked against this one mapping.
    """
    names: Tuple[str, ...]

    def __post_init__(self):
        dupes = sorted({n for n in self.names if self.names.count(n) > 1})
        if dupes:
            raise DataQualityError(f"Duplicate county names: {dupes}")
        object.__setattr__(self, '_ids', {n: i + 1 for i, n in enumerate(self.names)})

    @classmethod
    def from_names(cls, names: Sequence[str]) -> 'CountyIndex':
        return cls(tuple(str(n).strip() for n in names))

    @classmethod
    def from_wide(cls, wide: pd.DataFrame, county_col: str) -> 'CountyIndex':
        return cls.from_names(wide[county_col].tolist())

    @property
    def ids(self) -> Tuple[int, ...]:
        return tuple(range(1, len(self.names) + 1))

    @property
    def mapping(self) -> Dict[str, int]:
        return dict(self._ids)

    def id_of(self, name: str) -> int:
        try:
            return self._ids[name]
        except KeyError:
            raise KeyError(f"Unknown county: {name!r}") from None

    def name_of(self, county_id: int) -> str:
        if not 1 <= county_id <= len(self.names):
            raise KeyError(f"County id out of range: {county_id}")
        return self.names[county_id - 1]

    def __len__(self) -> int:
        return len(self.names)

    def __iter__(self):
        return iter(self.names)
