"""
Posterior sampling for the latent-class models with PyMC's NUTS.

Sampler settings (chains, draws, tuning, step-size adaptation) live only in
this module; the likelihood code is a pure density and never sees them.

Convergence checks:
- split-Rhat: < 1.01 once chains agree
- effective sample size: several hundred per parameter
- divergent transitions: a few percent at most
"""

import logging
import time
from typing import Dict, Optional, Sequence

import arviz as az
import numpy as np
from numpy.typing import NDArray
import pymc as pm

logger = logging.getLogger(__name__)


class InferenceSummary:
    """
    Result of one sampling run.

    Attributes
    ----------
    idata : arviz.InferenceData
        Posterior draws and sampler statistics.
    n_draws, n_tune, n_chains : int
        Kept draws per chain, discarded tuning steps per chain, chain count.
    sampling_time : float
        Wall-clock seconds spent in `pm.sample`.
    total_samples : int
        n_draws × n_chains.
    """

    def __init__(
        self,
        idata,
        n_draws: int,
        n_tune: int,
        n_chains: int,
        sampling_time: float,
    ) -> None:
        self.idata = idata
        self.n_draws = n_draws
        self.n_tune = n_tune
        self.n_chains = n_chains
        self.sampling_time = sampling_time
        self.total_samples = n_draws * n_chains

    def posterior_mean(self, var_name: str) -> NDArray[np.float64]:
        """Posterior mean of one variable, pooled over chains and draws."""
        if var_name not in self.idata.posterior:
            raise KeyError(f"{var_name!r} not in posterior")
        return np.asarray(self.idata.posterior[var_name].mean(dim=("chain", "draw")).values)

    def __repr__(self) -> str:
        return (
            f"InferenceSummary(chains={self.n_chains}, draws={self.n_draws}, "
            f"tune={self.n_tune}, {self.sampling_time:.1f}s)"
        )


class NUTSSampler:
    """
    NUTS over a model from one of the latent-class builders.

    Parameters
    ----------
    target_accept : float
        Step-size adaptation target, in (0.5, 0.99). Default 0.85.
    max_treedepth : int
        Cap on the trajectory doubling, >= 5. Default 10.
    max_divergence_rate : float
        Fraction of divergent draws above which a run is rejected.
        Default 0.05.
    """

    def __init__(
        self,
        target_accept: float = 0.85,
        max_treedepth: int = 10,
        max_divergence_rate: float = 0.05,
    ) -> None:
        if not (0.5 < target_accept < 0.99):
            raise ValueError(f"target_accept must be in (0.5, 0.99). Got {target_accept}")
        if max_treedepth < 5:
            raise ValueError(f"max_treedepth must be >= 5. Got {max_treedepth}")
        if not (0.0 <= max_divergence_rate <= 1.0):
            raise ValueError(
                f"max_divergence_rate must be in [0, 1]. Got {max_divergence_rate}"
            )

        self.target_accept = target_accept
        self.max_treedepth = max_treedepth
        self.max_divergence_rate = max_divergence_rate

    def sample(
        self,
        model: pm.Model,
        draws: int = 1000,
        tune: int = 1000,
        chains: int = 2,
        cores: int = 1,
        random_seed: Optional[int] = None,
        progressbar: bool = False,
    ) -> InferenceSummary:
        """
        Draw from the posterior of `model`.

        Parameters
        ----------
        model : pm.Model
            Output of a builder's `build()`, with at least one free parameter.
        draws, tune : int
            Kept draws and tuning steps per chain. Default 1000 each.
        chains, cores : int
            Chains to run and processes to run them in. Default 2 and 1.
        random_seed : int, optional
            Seed passed to PyMC.
        progressbar : bool
            Default False.

        Returns
        -------
        InferenceSummary

        Raises
        ------
        ValueError
            If every parameter of the model is fixed.
        RuntimeError
            If the divergence rate exceeds `max_divergence_rate`.
        """
        if not model.free_RVs:
            raise ValueError("Model has no free parameters to sample")

        logger.info(
            "NUTS on %s: %d chains x (%d tune + %d draws), target_accept=%.2f",
            [rv.name for rv in model.free_RVs], chains, tune, draws, self.target_accept,
        )
        started = time.time()
        with model:
            step = pm.NUTS(target_accept=self.target_accept, max_treedepth=self.max_treedepth)
            idata = pm.sample(
                draws=draws,
                tune=tune,
                chains=chains,
                cores=cores,
                step=step,
                random_seed=random_seed,
                progressbar=progressbar,
                return_inferencedata=True,
            )
        elapsed = time.time() - started

        rate = DiagnosticsComputer.divergence_rate(idata)
        logger.info("Sampled in %.1fs; %.2f%% divergent", elapsed, 100 * rate)
        if rate > self.max_divergence_rate:
            raise RuntimeError(
                f"Divergence rate too high: {rate:.1%} > {self.max_divergence_rate:.1%}. "
                f"Raise tune or target_accept, or tighten the priors."
            )

        return InferenceSummary(idata, draws, tune, chains, elapsed)

    def __repr__(self) -> str:
        return (
            f"NUTSSampler(target_accept={self.target_accept}, "
            f"max_treedepth={self.max_treedepth}, "
            f"max_divergence_rate={self.max_divergence_rate})"
        )


class DiagnosticsComputer:
    """Convergence diagnostics on raw draws, computed by ArviZ."""

    @staticmethod
    def rhat(posterior_samples: NDArray[np.float64]) -> float:
        """
        Rank-normalized split-Rhat of draws shaped (chains, draws).

        Each chain is cut in half so that a trend within a chain shows up
        as disagreement between halves. Constant draws give 1.0.
        """
        x = np.asarray(posterior_samples, dtype=np.float64)
        if x.ndim != 2 or x.shape[0] < 2:
            raise ValueError(f"Need at least 2 chains for Rhat. Got shape {x.shape}")
        if x.shape[1] < 4:
            raise ValueError(f"Need at least 4 draws per chain. Got {x.shape[1]}")
        if np.ptp(x) == 0:
            return 1.0
        return float(az.rhat(x))

    @staticmethod
    def ess(posterior_samples: NDArray[np.float64]) -> float:
        """Bulk effective sample size of one chain."""
        x = np.asarray(posterior_samples, dtype=np.float64).ravel()
        if np.ptp(x) == 0:
            return float(x.size)
        return float(az.ess(x[None, :], method="bulk"))

    @staticmethod
    def divergence_rate(idata) -> float:
        """Fraction of post-tuning draws flagged divergent."""
        diverging = idata.sample_stats["diverging"]
        return float(diverging.sum().item() / diverging.size)


class PosteriorSummary:
    """Posterior summary tables via ArviZ."""

    @staticmethod
    def summary_stats(
        idata,
        var_names: Optional[Sequence[str]] = None,
        hdi_prob: float = 0.95,
    ) -> Dict[str, Dict[str, float]]:
        """
        Mean, sd, HDI bounds, Rhat and bulk ESS per scalar variable.

        Vector parameters appear element-wise under ArviZ's names,
        e.g. ``class_probs[0]``.
        """
        table = az.summary(
            idata,
            var_names=list(var_names) if var_names is not None else None,
            kind="all",
            hdi_prob=hdi_prob,
        )
        tail = (1.0 - hdi_prob) / 2 * 100
        low, high = f"hdi_{tail:g}%", f"hdi_{100 - tail:g}%"

        return {
            name: {
                "mean": float(row["mean"]),
                "std": float(row["sd"]),
                "hdi_low": float(row[low]),
                "hdi_high": float(row[high]),
                "rhat": float(row["r_hat"]),
                "ess_bulk": float(row["ess_bulk"]),
            }
            for name, row in table.iterrows()
        }
