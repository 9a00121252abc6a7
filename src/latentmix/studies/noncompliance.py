"""
Instrumental-variables analysis of randomized trials with noncompliance.

Each unit is a (group of) trial participant(s) with

    z ∈ {0, 1}   assignment to treatment (the instrument)
    w ∈ {0, 1}   receipt of treatment
    y            binary outcome, stored as (successes, trials)

The compliance type (complier, never-taker, always-taker) is latent and
only partly revealed by (z, w). Outcome rates:

    η_c0, η_c1   compliers under control / treatment
    η_n          never-takers (exclusion restriction: same under z=0, z=1)
    η_a          always-takers (two-sided only)

The complier average causal effect is CACE = η_c1 - η_c0.

One-sided model (Imbens & Rubin 1997, vitamin-A style):

    (z=1, w=1)  log π_c     + log Bin(y | η_c1)
    (z=1, w=0)  log (1-π_c) + log Bin(y | η_n)
    (z=0, w=0)  log[ π_c Bin(y | η_c0) + (1-π_c) Bin(y | η_n) ]
"""

import logging
from collections import Counter
from typing import Iterable, List, Mapping, Optional, Sequence, Tuple

import numpy as np
from numpy.typing import ArrayLike

from latentmix.classes.partition import (
    DataValidityError,
    OneSidedNoncomplianceRule,
    TwoSidedNoncomplianceRule,
)
from latentmix.likelihood.accumulator import LatentClassLikelihood, Unit, safe_log
from latentmix.likelihood.densities import binomial_lpmf
from latentmix.likelihood.priors import ParameterPrior, uniform_rate

logger = logging.getLogger(__name__)

COMPLIER = OneSidedNoncomplianceRule.COMPLIER
NEVER_TAKER = OneSidedNoncomplianceRule.NEVER_TAKER
ALWAYS_TAKER = TwoSidedNoncomplianceRule.ALWAYS_TAKER

ONE_SIDED_PARAMETERS = ("pi_c", "eta_c0", "eta_c1", "eta_n")
TWO_SIDED_PARAMETERS = ("class_probs", "eta_c0", "eta_c1", "eta_n", "eta_a")


def units_from_counts(
    table: Iterable[Tuple[int, int, int, int, float]],
) -> List[Unit]:
    """
    Build units from an aggregated table.

    Parameters
    ----------
    table : iterable of (z, w, successes, trials, count)
        One row per covariate/outcome pattern. `count` becomes the unit
        multiplicity.
    """
    return [
        Unit((z, w), (successes, trials), multiplicity=count)
        for z, w, successes, trials, count in table
    ]


def aggregate_individuals(z: ArrayLike, w: ArrayLike, y: ArrayLike) -> List[Unit]:
    """
    Collapse individual-level (z, w, y) records into weighted Bernoulli units.

    Individuals with identical (z, w, y) share one unit whose multiplicity
    is their count, which leaves the log-likelihood unchanged.
    """
    z = np.asarray(z)
    w = np.asarray(w)
    y = np.asarray(y)
    if not (z.shape == w.shape == y.shape) or z.ndim != 1:
        raise ValueError(
            f"z, w and y must be 1-D arrays of equal length. Got {z.shape}, {w.shape}, {y.shape}"
        )
    counts = Counter(zip(z.tolist(), w.tolist(), y.tolist()))
    logger.debug("Aggregated %d individuals into %d patterns", z.size, len(counts))
    return [
        Unit((zi, wi), (yi, 1), multiplicity=n)
        for (zi, wi, yi), n in sorted(counts.items())
    ]


def _is_count(x) -> bool:
    try:
        value = float(x)
    except (TypeError, ValueError):
        return False
    return np.isfinite(value) and value == np.floor(value)


def check_binomial_outcomes(units: Sequence[Unit]) -> None:
    """
    Reject units whose outcome is not a binomial count.

    Each outcome must be a pair (successes, trials) of whole numbers with
    trials > 0 and 0 <= successes <= trials.

    Raises
    ------
    DataValidityError
        Listing the offending unit indices.
    """
    bad = []
    for i, unit in enumerate(units):
        try:
            successes, trials = unit.outcome
        except (TypeError, ValueError):
            bad.append(i)
            continue
        if not (_is_count(successes) and _is_count(trials)):
            bad.append(i)
        elif not (trials > 0 and 0 <= successes <= trials):
            bad.append(i)

    if bad:
        shown = ", ".join(str(i) for i in bad[:10])
        more = f" (and {len(bad) - 10} more)" if len(bad) > 10 else ""
        raise DataValidityError(
            f"{len(bad)} unit(s) with outcomes outside 0 <= successes <= trials, "
            f"trials > 0: indices {shown}{more}",
            indices=bad,
        )


def _outcome_rate(latent_class, z: int, params: Mapping) -> float:
    if latent_class == COMPLIER:
        return params["eta_c1"] if z == 1 else params["eta_c0"]
    if latent_class == NEVER_TAKER:
        return params["eta_n"]
    return params["eta_a"]


def _class_density(normalized: bool):
    def class_log_density(unit: Unit, latent_class, params: Mapping) -> float:
        successes, trials = unit.outcome
        rate = _outcome_rate(latent_class, unit.covariates[0], params)
        return binomial_lpmf(successes, trials, rate, normalized=normalized)

    return class_log_density


def _one_sided_weights(params: Mapping):
    pi_c = params["pi_c"]
    return {COMPLIER: safe_log(pi_c), NEVER_TAKER: safe_log(1.0 - pi_c)}


def _two_sided_weights(params: Mapping):
    probs = np.asarray(params["class_probs"], dtype=np.float64)
    return {
        COMPLIER: safe_log(probs[0]),
        NEVER_TAKER: safe_log(probs[1]),
        ALWAYS_TAKER: safe_log(probs[2]),
    }


def one_sided_likelihood(
    units: Sequence[Unit],
    priors: Optional[Sequence[ParameterPrior]] = None,
    normalized: bool = True,
) -> LatentClassLikelihood:
    """
    Marginal likelihood for one-sided noncompliance.

    Parameters
    ----------
    units : sequence of Unit
        Covariates (z, w), outcome (successes, trials).
    priors : sequence of ParameterPrior, optional
        Priors for pi_c, eta_c0, eta_c1, eta_n. Default Uniform(0, 1) each.
    normalized : bool
        Include binomial coefficients. Default True.

    Raises
    ------
    DataValidityError
        If any unit received treatment without being assigned to it, or has
        an outcome outside 0 <= successes <= trials.
    """
    units = list(units)
    check_binomial_outcomes(units)
    if priors is None:
        priors = [uniform_rate(name) for name in ONE_SIDED_PARAMETERS]
    return LatentClassLikelihood(
        OneSidedNoncomplianceRule(),
        units,
        _one_sided_weights,
        _class_density(normalized),
        priors,
    )


def two_sided_likelihood(
    units: Sequence[Unit],
    priors: Optional[Sequence[ParameterPrior]] = None,
    normalized: bool = True,
) -> LatentClassLikelihood:
    """
    Marginal likelihood for two-sided noncompliance under monotonicity.

    `class_probs` is the simplex (π_c, π_n, π_a); the default prior is a
    flat Dirichlet(1, 1, 1), the outcome rates get Uniform(0, 1).
    """
    units = list(units)
    check_binomial_outcomes(units)
    if priors is None:
        priors = [ParameterPrior("class_probs", "dirichlet", {"alpha": np.ones(3)})]
        priors += [uniform_rate(name) for name in TWO_SIDED_PARAMETERS[1:]]
    return LatentClassLikelihood(
        TwoSidedNoncomplianceRule(),
        units,
        _two_sided_weights,
        _class_density(normalized),
        priors,
    )


def complier_average_causal_effect(params: Mapping) -> float:
    """CACE = η_c1 - η_c0, the effect of receipt among compliers."""
    return float(params["eta_c1"] - params["eta_c0"])


def intention_to_treat_effect(params: Mapping) -> float:
    """
    ITT effect on the outcome rate implied by the compliance model.

    Only compliers change receipt with assignment, so ITT = π_c · CACE.
    """
    if "pi_c" in params:
        pi_c = params["pi_c"]
    else:
        pi_c = np.asarray(params["class_probs"])[0]
    return float(pi_c * complier_average_causal_effect(params))
