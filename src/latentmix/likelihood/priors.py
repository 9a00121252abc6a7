"""
Explicit prior declarations for continuous parameters.

Every parameter of a latent-class likelihood carries a declared prior,
including flat ones: an undeclared parameter is a configuration error, not
an implicit uniform.

A prior pairs a distribution with a domain constraint. Values outside the
domain are rejected with -inf rather than raising, so that a sampler can
discard the proposal and continue.

Domains:
    unit_interval   0 <= x <= 1           (rates, class proportions)
    correlation     -1 <= x <= 1
    positive        x > 0                 (scales)
    real            finite x
    simplex         x >= 0, Σ x = 1 along the last axis
"""

from typing import Dict, Optional

import numpy as np
from numpy.typing import ArrayLike
from scipy import stats
from scipy.special import gammaln, xlogy

DOMAINS = ("unit_interval", "correlation", "positive", "real", "simplex")
DISTRIBUTIONS = ("flat", "uniform", "beta", "normal", "halfnormal", "dirichlet")

_DEFAULT_DOMAIN = {
    "uniform": "unit_interval",
    "beta": "unit_interval",
    "normal": "real",
    "halfnormal": "positive",
    "dirichlet": "simplex",
}

SIMPLEX_ATOL = 1e-8


def in_domain(value: ArrayLike, domain: str) -> bool:
    """Check a parameter value against a domain constraint."""
    x = np.asarray(value, dtype=np.float64)
    if np.any(np.isnan(x)):
        return False
    if domain == "unit_interval":
        return bool(np.all((x >= 0.0) & (x <= 1.0)))
    if domain == "correlation":
        return bool(np.all((x >= -1.0) & (x <= 1.0)))
    if domain == "positive":
        return bool(np.all((x > 0.0) & np.isfinite(x)))
    if domain == "real":
        return bool(np.all(np.isfinite(x)))
    if domain == "simplex":
        if x.ndim == 0:
            return False
        return bool(
            np.all(x >= 0.0) and np.allclose(x.sum(axis=-1), 1.0, atol=SIMPLEX_ATOL)
        )
    raise ValueError(f"Unknown domain {domain!r}. Expected one of {DOMAINS}")


def _dirichlet_logpdf(x: np.ndarray, alpha: np.ndarray) -> float:
    # rows of x are independent simplices; xlogy keeps 0 * log 0 = 0
    norm = gammaln(alpha.sum(axis=-1)) - gammaln(alpha).sum(axis=-1)
    return float(np.sum(norm + xlogy(alpha - 1.0, x).sum(axis=-1)))


class ParameterPrior:
    """
    Prior on one (possibly vector-valued) continuous parameter.

    Attributes
    ----------
    name : str
        Parameter name as it appears in the parameter mapping.
    distribution : str
        One of 'flat', 'uniform', 'beta', 'normal', 'halfnormal', 'dirichlet'.
    params : dict
        Distribution hyperparameters:
        uniform {'lower', 'upper'}; beta {'alpha', 'beta'};
        normal {'mu', 'sigma'}; halfnormal {'sigma'}; dirichlet {'alpha'}.
    domain : str
        Domain constraint checked before the density is evaluated.
    """

    def __init__(
        self,
        name: str,
        distribution: str = "uniform",
        params: Optional[Dict] = None,
        domain: Optional[str] = None,
    ) -> None:
        if distribution not in DISTRIBUTIONS:
            raise ValueError(
                f"Unknown prior distribution {distribution!r}. "
                f"Expected one of {DISTRIBUTIONS}"
            )
        if distribution == "flat" and domain is None:
            raise ValueError(f"A flat prior on {name!r} needs an explicit domain")

        self.name = name
        self.distribution = distribution
        self.params = dict(params or {})
        self.domain = domain or _DEFAULT_DOMAIN[distribution]

        if self.domain not in DOMAINS:
            raise ValueError(f"Unknown domain {self.domain!r}. Expected one of {DOMAINS}")

        if distribution == "uniform":
            self.params.setdefault("lower", 0.0)
            self.params.setdefault("upper", 1.0)
            if not self.params["lower"] < self.params["upper"]:
                raise ValueError(f"Uniform prior on {name!r} needs lower < upper")
        elif distribution == "beta":
            self.params.setdefault("alpha", 1.0)
            self.params.setdefault("beta", 1.0)
        elif distribution == "normal":
            self.params.setdefault("mu", 0.0)
            self.params.setdefault("sigma", 1.0)
        elif distribution == "halfnormal":
            self.params.setdefault("sigma", 1.0)
        elif distribution == "dirichlet":
            if "alpha" not in self.params:
                raise ValueError(f"Dirichlet prior on {name!r} needs an 'alpha' vector")
            self.params["alpha"] = np.asarray(self.params["alpha"], dtype=np.float64)

    def log_density(self, value: ArrayLike) -> float:
        """
        Prior log-density, summed over the elements of `value`.

        Returns -inf if `value` violates the domain constraint.
        """
        if not in_domain(value, self.domain):
            return -np.inf

        x = np.asarray(value, dtype=np.float64)
        p = self.params
        if self.distribution == "flat":
            return 0.0
        if self.distribution == "uniform":
            lp = stats.uniform.logpdf(x, loc=p["lower"], scale=p["upper"] - p["lower"])
        elif self.distribution == "beta":
            lp = stats.beta.logpdf(x, p["alpha"], p["beta"])
        elif self.distribution == "normal":
            lp = stats.norm.logpdf(x, loc=p["mu"], scale=p["sigma"])
        elif self.distribution == "halfnormal":
            lp = stats.halfnorm.logpdf(x, scale=p["sigma"])
        else:
            alpha = np.broadcast_to(p["alpha"], x.shape)
            return _dirichlet_logpdf(x, alpha)
        return float(np.sum(lp))

    def __repr__(self) -> str:
        return (
            f"ParameterPrior(name={self.name!r}, distribution={self.distribution!r}, "
            f"domain={self.domain!r})"
        )


def uniform_rate(name: str) -> ParameterPrior:
    """Uniform(0, 1) prior for a rate or class proportion."""
    return ParameterPrior(name, "uniform", {"lower": 0.0, "upper": 1.0})
