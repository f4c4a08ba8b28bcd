"""
Error taxonomy for the analysis pipeline.

Every error is fatal to the run; nothing here is retried.
"""


class DataQualityError(ValueError):
    """Input table is unusable: schema mismatch, zero exposure, bad counts."""


class GraphIntegrityError(ValueError):
    """Adjacency matrix cannot be turned into a valid neighborhood graph."""

    def __init__(self, message: str, n_asymmetric: int = 0):
        super().__init__(message)
        self.n_asymmetric = n_asymmetric


class AlignmentError(ValueError):
    """Two stages disagree about county, level or observation ordering."""


class SolverError(RuntimeError):
    """The inference engine failed (non-convergence, invalid model, ...)."""
