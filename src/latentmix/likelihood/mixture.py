"""
Log-scale mixture combinators.

Marginalizing a discrete latent class z out of p(y, z) gives

    log p(y) = log Σ_c exp(log w_c + log p(y | c))

computed with the max-shift (log-sum-exp) trick:

    m = max_c t_c
    log Σ_c exp(t_c) = m + log Σ_c exp(t_c - m)

so that no term over- or underflows. A single-term mixture returns the term
itself, bit for bit.

Repeated, conditionally independent observations of the same latent class
multiply on the probability scale, so a sub-mixture value is reused as an
additive term scaled by the repeat count (`log_repeat`) and may then enter
an outer mixture (two-level marginalization).
"""

import numpy as np
from numpy.typing import ArrayLike

_LOG_HALF = np.log(0.5)


def log_sum_exp(terms: ArrayLike) -> float:
    """
    Stable log(Σ exp(terms)).

    Parameters
    ----------
    terms : array_like
        Log-scale terms. -inf entries contribute nothing.

    Returns
    -------
    float
        -inf if every term is -inf. NaN terms propagate.

    Raises
    ------
    ValueError
        If `terms` is empty.
    """
    a = np.asarray(terms, dtype=np.float64).ravel()
    if a.size == 0:
        raise ValueError("log_sum_exp needs at least one term")
    if a.size == 1:
        return float(a[0])

    m = np.max(a)
    if not np.isfinite(m):
        # all -inf, or an +inf / NaN term that dominates
        return float(m)
    return float(m + np.log(np.sum(np.exp(a - m))))


def log_mix(log_weights: ArrayLike, log_densities: ArrayLike) -> float:
    """
    Log of a finite mixture: log Σ_c w_c p_c.

    Parameters
    ----------
    log_weights : array_like
        Log mixture weights of the consistent classes, in class order.
        These are the unconditional class probabilities; they are not
        renormalized over the subset.
    log_densities : array_like
        Log-density of the observation under each class, same length.

    Returns
    -------
    float
    """
    lw = np.asarray(log_weights, dtype=np.float64).ravel()
    ld = np.asarray(log_densities, dtype=np.float64).ravel()
    if lw.shape != ld.shape:
        raise ValueError(
            f"log_weights and log_densities must have the same length. "
            f"Got {lw.size} and {ld.size}"
        )
    return log_sum_exp(lw + ld)


def log_repeat(sub_log_density: float, repeats: int) -> float:
    """
    Log-probability of `repeats` independent draws with the same value.

    Parameters
    ----------
    sub_log_density : float
        Log-probability of one repeat (may itself be a mixture value).
    repeats : int
        Number of conditionally independent repeats, >= 0.

    Returns
    -------
    float
        repeats × sub_log_density, and 0.0 for zero repeats.
    """
    if repeats < 0:
        raise ValueError(f"repeats must be >= 0. Got {repeats}")
    if repeats == 0:
        return 0.0
    return float(repeats * sub_log_density)


def log1m_exp(a: ArrayLike):
    """
    Stable log(1 - exp(a)) for a <= 0.

    Uses log(-expm1(a)) near zero and log1p(-exp(a)) elsewhere.
    Returns -inf at a = 0 and NaN for a > 0.
    """
    a = np.asarray(a, dtype=np.float64)
    with np.errstate(divide="ignore", invalid="ignore"):
        out = np.where(
            a > _LOG_HALF,
            np.log(-np.expm1(a)),
            np.log1p(-np.exp(a)),
        )
    return out if out.ndim else float(out)
