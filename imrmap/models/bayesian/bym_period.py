"""
Bayesian BYM disease-mapping model with a county-specific period effect

Poisson likelihood with log(births) offset and:
- BYM spatial random effect (ICAR over the county graph + iid)
- Shared period effect gamma (exp(-gamma) = overall rate ratio)
- County period effects delta with a fixed Normal prior
- Deprivation index as a linear covariate

Uses Stan for MCMC inference via CmdStanPy. Linear combinations of the
period-effect levels are passed in as data and evaluated in generated
quantities, so the lincomb fit is a second, independent Stan run.
"""
import numpy as np
import pandas as pd
from pathlib import Path
from typing import Dict, List, Optional, Any
import warnings

from cmdstanpy import CmdStanModel

from imrmap.common.errors import SolverError
from imrmap.config import get_project_root
from imrmap.models.base import BaseSolver, ModelFit
from imrmap.models.spec import ModelData


DEFAULT_STAN_FILE = "bym_period_poisson.stan"

# Variables pulled out of the Stan fit
EXTRACTED_VARIABLES = ['alpha', 'beta', 'gamma', 'delta', 'phi', 'b',
                       'sigma_phi', 'sigma_theta', 'mu']
HYPERPARAMETERS = ['alpha', 'beta', 'gamma', 'sigma_phi', 'sigma_theta']

MAX_RHAT = 1.05
MIN_ESS_BULK = 100


class BYMPeriodSolver(BaseSolver):
    """
    Stan solver for the BYM + period model.

    Config keys: n_warmup, n_samples, n_chains, seed, adapt_delta, stan_file.
    """

    def __init__(self, config: Optional[Dict] = None):
        super().__init__(name="bym_period", config=config)

        self.n_warmup = config.get('n_warmup', 1000) if config else 1000
        self.n_samples = config.get('n_samples', 1000) if config else 1000
        self.n_chains = config.get('n_chains', 4) if config else 4
        self.adapt_delta = config.get('adapt_delta', 0.95) if config else 0.95
        self.seed = config.get('seed', 42) if config else 42

        self.stan_file = config.get('stan_file', None) if config else None

        self.model_ = None
        self.fit_ = None

    def _get_stan_file(self) -> Path:
        """Get path to Stan model file."""
        if self.stan_file:
            return Path(self.stan_file)

        candidate = get_project_root() / "stan_models" / DEFAULT_STAN_FILE
        if candidate.exists():
            return candidate

        raise FileNotFoundError(f"Stan model not found. Looked in: {candidate}")

    def _compile(self) -> CmdStanModel:
        if self.model_ is None:
            stan_file = self._get_stan_file()
            print(f"Compiling Stan model from {stan_file}...")
            try:
                self.model_ = CmdStanModel(stan_file=str(stan_file))
            except (RuntimeError, ValueError) as exc:
                raise SolverError(f"Stan model failed to compile: {exc}") from exc
        return self.model_

    def fit(self, model_data: ModelData) -> ModelFit:
        """
        Fit the model via MCMC.

        Args:
            model_data: Stan data plus observation/level keys

        Returns:
            ModelFit with posterior draws
        """
        model = self._compile()
        stan_data = model_data.stan_data

        print(f"Data summary: N={stan_data['N']}, K={stan_data['K']}, "
              f"edges={stan_data['N_edges']}, lincombs={stan_data['L']}")
        print(f"Running MCMC: {self.n_chains} chains, {self.n_warmup} warmup, {self.n_samples} samples...")

        try:
            self.fit_ = model.sample(
                data=stan_data,
                chains=self.n_chains,
                iter_warmup=self.n_warmup,
                iter_sampling=self.n_samples,
                adapt_delta=self.adapt_delta,
                seed=self.seed,
                show_progress=True
            )
        except (RuntimeError, ValueError) as exc:
            raise SolverError(f"Stan sampling failed: {exc}") from exc

        draws = {name: self.fit_.stan_variable(name) for name in EXTRACTED_VARIABLES}
        if model_data.has_lincombs:
            draws['lc'] = self.fit_.stan_variable('lc')

        diagnostics = self.get_diagnostics()
        fit = ModelFit.from_model_data(draws, model_data, diagnostics=diagnostics)
        self.print_diagnostics(diagnostics)
        return fit

    def get_diagnostics(self) -> Dict[str, Any]:
        """
        Convergence summary of the last Stan run.

        Returns:
            Dict with n_divergences, max_rhat, min_ess_bulk and a per-parameter
            table (mean, sd, R-hat, bulk ESS) for the hyperparameters
        """
        if self.fit_ is None:
            raise ValueError("Model not fitted.")

        summary = self.fit_.summary()
        ess_col = next((c for c in ('ESS_bulk', 'N_Eff') if c in summary.columns), None)
        rhat = summary['R_hat'] if 'R_hat' in summary.columns else pd.Series(np.nan, index=summary.index)
        ess = summary[ess_col] if ess_col else pd.Series(np.nan, index=summary.index)

        divergences = self.fit_.divergences
        params = [p for p in HYPERPARAMETERS if p in summary.index]
        table = pd.DataFrame({
            'mean': summary.loc[params, 'Mean'],
            'sd': summary.loc[params, 'StdDev'],
            'rhat': rhat.loc[params],
            'ess_bulk': ess.loc[params],
        })

        return {
            'n_divergences': int(np.sum(divergences)) if divergences is not None else 0,
            'max_rhat': float(rhat.max()),
            'min_ess_bulk': float(ess.min()),
            'parameter_summary': table.astype(float).to_dict(orient='index'),
        }

    def print_diagnostics(self, diag: Optional[Dict[str, Any]] = None) -> None:
        """Print the convergence summary; warn on each failed threshold."""
        diag = diag or self.get_diagnostics()

        print(f"\nMCMC diagnostics ({self.name}):")
        print(f"  → divergences: {diag['n_divergences']}")
        print(f"  → max R-hat: {diag['max_rhat']:.4f}")
        print(f"  → min bulk ESS: {diag['min_ess_bulk']:.0f}")
        if diag['parameter_summary']:
            table = pd.DataFrame.from_dict(diag['parameter_summary'], orient='index')
            print(table.to_string(float_format=lambda v: f"{v:.3f}"))

        for message in diagnostic_flags(diag):
            warnings.warn(message)


def diagnostic_flags(diag: Dict[str, Any]) -> List[str]:
    """Messages for every diagnostic outside its threshold."""
    flags = []
    if diag['n_divergences'] > 0:
        flags.append(f"{diag['n_divergences']} divergent transitions")
    if diag['max_rhat'] > MAX_RHAT:
        flags.append(f"R-hat {diag['max_rhat']:.3f} > {MAX_RHAT} (chains may not have converged)")
    if diag['min_ess_bulk'] < MIN_ESS_BULK:
        flags.append(f"Low bulk ESS ({diag['min_ess_bulk']:.0f} < {MIN_ESS_BULK})")
    return flags
