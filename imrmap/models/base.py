"""
Solver Interface for the disease-mapping model

Abstract base class for inference engines plus the fit object they return.
Downstream summaries only read ModelFit; they never talk to the engine.
"""
from abc import ABC, abstractmethod
import numpy as np
import pandas as pd
from typing import Dict, Optional, Any, Sequence, Tuple
import pickle
from pathlib import Path

from imrmap.common.errors import AlignmentError
from imrmap.models.spec import ModelData


DEFAULT_QUANTILES = (0.025, 0.5, 0.975)


def quantile_label(q: float) -> str:
    return f"q{q:g}"


class ModelFit:
    """
    Posterior draws of one model fit, keyed back to counties and periods.

    Draw arrays have the draw dimension first:
      alpha, beta, gamma        (n_draws,)
      delta, phi, b             (n_draws, K)
      mu                        (n_draws, N)   fitted intensity per observation
      lc                        (n_draws, L)   lincomb values (when requested)
    """

    FIXED_EFFECTS = {'intercept': 'alpha', 'deprivation': 'beta'}

    def __init__(
        self,
        draws: Dict[str, np.ndarray],
        observation_keys: Sequence[Tuple[str, int]],
        county_keys: Sequence[str],
        period_levels: Sequence[str],
        lincomb_names: Sequence[str] = (),
        diagnostics: Optional[Dict[str, Any]] = None
    ):
        self.draws = {k: np.asarray(v, dtype=float) for k, v in draws.items()}
        self.observation_keys = tuple(tuple(k) for k in observation_keys)
        self.county_keys = tuple(county_keys)
        self.period_levels = tuple(period_levels)
        self.lincomb_names = tuple(lincomb_names)
        self.diagnostics = diagnostics or {}

    @classmethod
    def from_model_data(
        cls,
        draws: Dict[str, np.ndarray],
        model_data: ModelData,
        diagnostics: Optional[Dict[str, Any]] = None
    ) -> 'ModelFit':
        return cls(
            draws=draws,
            observation_keys=model_data.observation_keys,
            county_keys=model_data.county_keys,
            period_levels=model_data.period_levels,
            lincomb_names=model_data.lincomb_names,
            diagnostics=diagnostics,
        )

    @property
    def n_draws(self) -> int:
        return len(self.draws['alpha'])

    def variable(self, name: str) -> np.ndarray:
        if name not in self.draws:
            raise KeyError(f"Variable '{name}' not in fit (have {sorted(self.draws)})")
        return self.draws[name]

    def summary(
        self,
        name: str,
        quantiles: Sequence[float] = DEFAULT_QUANTILES,
        transform=None
    ) -> pd.DataFrame:
        """
        Posterior mean, sd and quantiles of one variable.

        Args:
            name: Variable name
            quantiles: Quantile levels to report
            transform: Optional elementwise function applied to draws first

        Returns:
            DataFrame with one row per element of the variable
        """
        x = self.variable(name)
        if transform is not None:
            x = transform(x)
        if x.ndim == 1:
            x = x[:, None]
        out = pd.DataFrame({
            'mean': x.mean(axis=0),
            'sd': x.std(axis=0, ddof=1) if x.shape[0] > 1 else np.zeros(x.shape[1]),
        })
        for q in quantiles:
            out[quantile_label(q)] = np.quantile(x, q, axis=0)
        return out

    def fitted_values(self, quantiles: Sequence[float] = DEFAULT_QUANTILES) -> pd.DataFrame:
        """Posterior summary of the fitted intensity, one row per observation."""
        out = self.summary('mu', quantiles)
        keys = pd.DataFrame(list(self.observation_keys), columns=['county', 'period'])
        if len(keys) != len(out):
            raise AlignmentError(
                f"Fit has {len(out)} fitted values but {len(keys)} observation keys"
            )
        return pd.concat([keys, out], axis=1)

    def random_effect(self, name: str, quantiles: Sequence[float] = DEFAULT_QUANTILES) -> pd.DataFrame:
        """Posterior summary per level of a county-level effect (delta, phi, b)."""
        out = self.summary(name, quantiles)
        if len(out) != len(self.county_keys):
            raise AlignmentError(
                f"Effect '{name}' has {len(out)} levels but the fit has "
                f"{len(self.county_keys)} counties"
            )
        out.insert(0, 'level', list(self.county_keys))
        return out

    def fixed_effects(self, quantiles: Sequence[float] = DEFAULT_QUANTILES) -> pd.DataFrame:
        rows = []
        for label, var in self.FIXED_EFFECTS.items():
            row = self.summary(var, quantiles).iloc[0]
            rows.append({'term': label, **row.to_dict()})
        return pd.DataFrame(rows)

    def period_level_draws(self) -> np.ndarray:
        """Draws of the period-effect levels: shared gamma then delta_1..K."""
        gamma = self.variable('gamma').reshape(-1, 1)
        delta = self.variable('delta')
        if delta.ndim == 1:
            delta = delta.reshape(-1, 1)
        return np.hstack([gamma, delta])

    def lincomb_summary(self, quantiles: Sequence[float] = DEFAULT_QUANTILES, transform=None) -> pd.DataFrame:
        if not self.lincomb_names or 'lc' not in self.draws:
            raise ValueError("Fit has no lincombs. Fit with a LincombSet first.")
        out = self.summary('lc', quantiles, transform=transform)
        out.insert(0, 'name', list(self.lincomb_names))
        return out

    def save(self, path: str) -> None:
        """Save fit to disk."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'wb') as f:
            pickle.dump(self, f)

    @classmethod
    def load(cls, path: str) -> 'ModelFit':
        """Load fit from disk."""
        with open(path, 'rb') as f:
            return pickle.load(f)

    def __repr__(self) -> str:
        shapes = {k: v.shape for k, v in self.draws.items()}
        return f"{self.__class__.__name__}(n_draws={self.n_draws}, vars={shapes})"


class BaseSolver(ABC):
    """Abstract base class for inference engines."""

    def __init__(self, name: str, config: Optional[Dict] = None):
        """
        Initialize solver.

        Args:
            name: Solver identifier
            config: Solver-specific configuration
        """
        self.name = name
        self.config = config or {}

    @abstractmethod
    def fit(self, model_data: ModelData) -> ModelFit:
        """
        Fit the model and return its posterior.

        Args:
            model_data: Output of build_model_data()

        Returns:
            ModelFit
        """
        pass

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name='{self.name}')"
