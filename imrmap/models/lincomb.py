"""
Linear combinations of period-effect levels.

The period effect has n + 1 levels: the shared period effect (level 0,
"period") followed by one county-specific effect per county, in county-id
order. A county's rate ratio between the two periods is

    RR_i = exp(-gamma + delta_i)

so its combination puts -1 on level 0 and +1 on the county's own level.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence, Tuple

import numpy as np

from imrmap.common.errors import AlignmentError
from imrmap.data.counties import CountyIndex


PERIOD_LEVEL = 'period'


def period_levels(county_index: CountyIndex) -> Tuple[str, ...]:
    """Level keys of the period effect: shared level then counties."""
    if PERIOD_LEVEL in county_index.names:
        raise AlignmentError(f"County name {PERIOD_LEVEL!r} collides with the shared period level")
    return (PERIOD_LEVEL,) + tuple(county_index.names)


@dataclass(frozen=True, eq=False)
class LincombSet:
    """Named rows of coefficients over the period-effect levels."""
    names: Tuple[str, ...]
    level_keys: Tuple[str, ...]
    matrix: np.ndarray

    def __post_init__(self):
        m = np.asarray(self.matrix, dtype=float)
        if m.ndim != 2:
            raise AlignmentError(f"Lincomb matrix must be 2-D, got shape {m.shape}")
        if m.shape[0] != len(self.names):
            raise AlignmentError(
                f"Lincomb matrix has {m.shape[0]} rows for {len(self.names)} names"
            )
        if m.shape[1] != len(self.level_keys):
            raise AlignmentError(
                f"Lincomb matrix has {m.shape[1]} columns for {len(self.level_keys)} levels"
            )
        m.setflags(write=False)
        object.__setattr__(self, 'matrix', m)

    @property
    def shape(self) -> Tuple[int, int]:
        return self.matrix.shape

    def __len__(self) -> int:
        return len(self.names)


def build_ratio_lincombs(county_index: CountyIndex) -> LincombSet:
    """
    One combination per county: -1 on the shared period level, +1 on the
    county's own level.

    Returns:
        LincombSet with an n x (n + 1) matrix: column 0 is -1, columns 1..n
        are the identity
    """
    n = len(county_index)
    matrix = np.hstack([-np.ones((n, 1)), np.eye(n)])
    return LincombSet(
        names=tuple(county_index.names),
        level_keys=period_levels(county_index),
        matrix=matrix,
    )


def check_alignment(lincombs: LincombSet, level_keys: Sequence[str]) -> None:
    """
    Verify the lincomb columns follow the model's period-effect levels.

    Raises:
        AlignmentError: on column count or level order mismatch
    """
    level_keys = tuple(level_keys)
    if lincombs.matrix.shape[1] != len(level_keys):
        raise AlignmentError(
            f"Lincomb matrix has {lincombs.matrix.shape[1]} columns but the period "
            f"effect has {len(level_keys)} levels"
        )
    if tuple(lincombs.level_keys) != level_keys:
        mismatched = [
            (i, a, b) for i, (a, b) in enumerate(zip(lincombs.level_keys, level_keys)) if a != b
        ]
        raise AlignmentError(
            f"Lincomb columns are not in the model's level order; first mismatches: {mismatched[:5]}"
        )


def evaluate(lincombs: LincombSet, level_draws: np.ndarray) -> np.ndarray:
    """
    Apply the combinations to posterior draws of the period-effect levels.

    Args:
        lincombs: Combinations to evaluate
        level_draws: (n_draws, n_levels) draws, columns in level order

    Returns:
        (n_draws, n_combinations) draws of each combination
    """
    level_draws = np.asarray(level_draws, dtype=float)
    if level_draws.ndim != 2 or level_draws.shape[1] != lincombs.matrix.shape[1]:
        raise AlignmentError(
            f"Level draws shape {level_draws.shape} does not fit lincomb matrix {lincombs.shape}"
        )
    return level_draws @ lincombs.matrix.T
