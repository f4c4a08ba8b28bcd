"""Shared helpers used across pipeline stages."""

from imrmap.common.errors import (
    AlignmentError,
    DataQualityError,
    GraphIntegrityError,
    SolverError,
)

__all__ = [
    'AlignmentError',
    'DataQualityError',
    'GraphIntegrityError',
    'SolverError',
]
