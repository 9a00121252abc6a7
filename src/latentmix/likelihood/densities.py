"""
Per-class outcome densities on the log scale.

Each function returns the log-mass of the observed outcome(s) under the
outcome distribution of a single latent class, summed over the supplied
observations.

Bernoulli and binomial masses are evaluated in log-odds form:

    log p     = -log(1 + exp(-α))
    log (1-p) = -log(1 + exp(α))

with α = logit(rate). Both are computed with `numpy.logaddexp`, which stays
accurate as p approaches 0 or 1 and yields exact 0 / -inf at the boundary
(α = ±inf) instead of NaN.

Outcomes with zero count contribute exactly 0, even when the matching
log-probability is -inf: a rate of 0 with no successes has log-mass 0.
"""

import numpy as np
from numpy.typing import ArrayLike
from scipy.special import gammaln, logit, xlogy


def _log_sigmoids(alpha: ArrayLike):
    alpha = np.asarray(alpha, dtype=np.float64)
    log_p = -np.logaddexp(0.0, -alpha)
    log_q = -np.logaddexp(0.0, alpha)
    return log_p, log_q


def _count_times_log(count: np.ndarray, log_prob: np.ndarray) -> np.ndarray:
    # 0 * -inf is 0 here, not NaN
    with np.errstate(invalid="ignore"):
        return np.where(count == 0, 0.0, count * log_prob)


def bernoulli_logit_lpmf(y: ArrayLike, alpha: ArrayLike) -> float:
    """
    Bernoulli log-mass with log-odds parameter.

    Parameters
    ----------
    y : array_like of {0, 1}
        Observed outcomes.
    alpha : array_like
        Log-odds of success, broadcastable against `y`. ±inf allowed.

    Returns
    -------
    float
        Σ log Bernoulli(y | logit⁻¹(α)).
    """
    y = np.asarray(y)
    log_p, log_q = _log_sigmoids(alpha)
    return float(np.sum(np.where(y == 1, log_p, log_q)))


def binomial_logit_lpmf(
    successes: ArrayLike,
    trials: ArrayLike,
    alpha: ArrayLike,
    normalized: bool = True,
) -> float:
    """
    Binomial log-mass with log-odds parameter.

    Parameters
    ----------
    successes : array_like of int
        Observed success counts.
    trials : array_like of int
        Trial counts, same shape as `successes`.
    alpha : array_like
        Log-odds of success. ±inf allowed.
    normalized : bool
        Include the binomial coefficient. With False only the kernel
        k·log p + (n-k)·log(1-p) is returned; the coefficient does not
        depend on the rate. Default True.

    Returns
    -------
    float
        Σ log Binomial(k | n, logit⁻¹(α)).
    """
    k = np.asarray(successes, dtype=np.float64)
    n = np.asarray(trials, dtype=np.float64)
    log_p, log_q = _log_sigmoids(alpha)

    total = _count_times_log(k, log_p) + _count_times_log(n - k, log_q)
    if normalized:
        total = total + gammaln(n + 1) - gammaln(k + 1) - gammaln(n - k + 1)
    return float(np.sum(total))


def bernoulli_lpmf(y: ArrayLike, rate: ArrayLike) -> float:
    """Bernoulli log-mass for a success rate in [0, 1]."""
    return bernoulli_logit_lpmf(y, logit(np.asarray(rate, dtype=np.float64)))


def binomial_lpmf(
    successes: ArrayLike,
    trials: ArrayLike,
    rate: ArrayLike,
    normalized: bool = True,
) -> float:
    """Binomial log-mass for a success rate in [0, 1]."""
    return binomial_logit_lpmf(
        successes, trials, logit(np.asarray(rate, dtype=np.float64)), normalized
    )


def multinomial_lpmf(
    counts: ArrayLike,
    probs: ArrayLike,
    normalized: bool = False,
) -> float:
    """
    Multinomial log-mass of category counts.

    Parameters
    ----------
    counts : array_like of int
        Category counts, shape (..., V).
    probs : array_like
        Category probabilities on the simplex, shape (V,) or broadcastable.
    normalized : bool
        Include the multinomial coefficient. Default False (the kernel
        Σ c_v log φ_v, as used by naive Bayes).

    Returns
    -------
    float
    """
    counts = np.asarray(counts, dtype=np.float64)
    total = np.sum(xlogy(counts, np.asarray(probs, dtype=np.float64)))
    if normalized:
        total += np.sum(gammaln(counts.sum(axis=-1) + 1)) - np.sum(gammaln(counts + 1))
    return float(total)
