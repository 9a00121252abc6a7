"""
Multi-species occupancy with repeated visits (Dorazio & Royle style).

Species i is surveyed at J sites, each visited K times; y_ij counts the
visits on which it was detected. Two nested latent variables:

    a_i  ~ Bernoulli(Ω)        species belongs to the community (available)
    z_ij ~ Bernoulli(ψ)        species occupies site j, given available
    y_ij ~ Binomial(K, z_ij p) detections

Visits and sites are conditionally independent given the latent classes;
this is a modelling assumption of the study.

Site level, given availability:

    y_ij > 0:  log ψ + log Bin(y_ij | K, p)
    y_ij = 0:  log[ (1-ψ) + ψ (1-p)^K ]

Species never detected at any site marginalize both levels:

    log[ (1-Ω) + Ω · ((1-ψ) + ψ (1-p)^K)^J ]

The inner site mixture is computed once and reused J times on the log
scale. Data augmentation appends all-zero rows for species that may exist
but were never seen, which lets Ω estimate community size.
"""

import logging
from typing import Mapping, Optional, Sequence

import numpy as np
from numpy.typing import ArrayLike, NDArray

from latentmix.classes.partition import OccupancyRule
from latentmix.likelihood.accumulator import LatentClassLikelihood, Unit, safe_log
from latentmix.likelihood.densities import binomial_lpmf
from latentmix.likelihood.mixture import log1m_exp, log_mix, log_repeat
from latentmix.likelihood.priors import ParameterPrior, uniform_rate

logger = logging.getLogger(__name__)

AVAILABLE = OccupancyRule.AVAILABLE
UNAVAILABLE = OccupancyRule.UNAVAILABLE

PARAMETERS = ("omega", "psi", "p")


def augment(detections: ArrayLike, n_augmented: int) -> NDArray[np.int64]:
    """
    Append `n_augmented` never-detected pseudo-species.

    Parameters
    ----------
    detections : array_like of int
        Detection counts, shape (n_species, n_sites).
    n_augmented : int
        Number of all-zero rows to add, >= 0.
    """
    y = np.asarray(detections, dtype=np.int64)
    if y.ndim != 2:
        raise ValueError(f"detections must be 2-D (species, sites). Got shape {y.shape}")
    if n_augmented < 0:
        raise ValueError(f"n_augmented must be >= 0. Got {n_augmented}")
    return np.vstack([y, np.zeros((n_augmented, y.shape[1]), dtype=np.int64)])


def site_log_density(count: int, n_visits: int, psi: float, p: float) -> float:
    """Log-probability of one site's detection count, occupancy marginalized."""
    log_psi = safe_log(psi)
    detection = binomial_lpmf(count, n_visits, p)
    if count > 0:
        return log_psi + detection
    return log_mix([log_psi, safe_log(1.0 - psi)], [detection, 0.0])


def never_detected_log_density(
    n_sites: int, n_visits: int, omega: float, psi: float, p: float
) -> float:
    """
    log[(1-Ω) + Ω((1-ψ) + ψ(1-p)^K)^J] for a species never detected.
    """
    site = site_log_density(0, n_visits, psi, p)
    return log_mix(
        [safe_log(1.0 - omega), safe_log(omega)],
        [0.0, log_repeat(site, n_sites)],
    )


def _make_density(n_visits: int):
    def class_log_density(unit: Unit, latent_class, params: Mapping) -> float:
        counts = unit.outcome
        if latent_class == UNAVAILABLE:
            return 0.0 if not np.any(counts) else -np.inf

        psi, p = params["psi"], params["p"]
        detected = counts[counts > 0]
        total = log_repeat(site_log_density(0, n_visits, psi, p), counts.size - detected.size)
        for count in detected:
            total += site_log_density(int(count), n_visits, psi, p)
        return total

    return class_log_density


def _class_weights(params: Mapping):
    omega = params["omega"]
    return {AVAILABLE: safe_log(omega), UNAVAILABLE: safe_log(1.0 - omega)}


def occupancy_likelihood(
    detections: ArrayLike,
    n_visits: int,
    priors: Optional[Sequence[ParameterPrior]] = None,
) -> LatentClassLikelihood:
    """
    Marginal likelihood of a multi-species occupancy survey.

    Parameters
    ----------
    detections : array_like of int
        Detection counts, shape (n_species, n_sites), possibly augmented.
    n_visits : int
        Visits per site (K).
    priors : sequence of ParameterPrior, optional
        Priors for omega, psi, p. Default Uniform(0, 1) each.

    Raises
    ------
    DataValidityError
        If any count is negative or exceeds `n_visits`.
    """
    y = np.asarray(detections)
    if y.ndim != 2:
        raise ValueError(f"detections must be 2-D (species, sites). Got shape {y.shape}")
    if priors is None:
        priors = [uniform_rate(name) for name in PARAMETERS]

    units = [Unit(row, row) for row in y]
    logger.info(
        "Occupancy survey: %d species (%d never detected), %d sites, %d visits",
        y.shape[0], int(np.sum(~np.any(y > 0, axis=1))), y.shape[1], n_visits,
    )
    return LatentClassLikelihood(
        OccupancyRule(n_visits), units, _class_weights, _make_density(n_visits), priors
    )


def availability_given_undetected(
    params: Mapping, n_sites: int, n_visits: int
) -> float:
    """
    P(species available | never detected) = Ω A / ((1-Ω) + Ω A),
    with A = ((1-ψ) + ψ(1-p)^K)^J.
    """
    site = site_log_density(0, n_visits, params["psi"], params["p"])
    log_available = safe_log(params["omega"]) + log_repeat(site, n_sites)
    log_total = never_detected_log_density(
        n_sites, n_visits, params["omega"], params["psi"], params["p"]
    )
    return float(np.exp(log_available - log_total))


def expected_richness(params: Mapping, detections: ArrayLike, n_visits: int) -> float:
    """
    Expected community size: detected species plus the expected number of
    available species among the never-detected (augmented) rows.
    """
    y = np.asarray(detections)
    detected = np.any(y > 0, axis=1)
    n_undetected = int(np.sum(~detected))
    prob = availability_given_undetected(params, y.shape[1], n_visits)
    return float(np.sum(detected) + n_undetected * prob)


def detection_probability(p: float, n_visits: int) -> float:
    """Probability of at least one detection at an occupied site, 1 - (1-p)^K."""
    log_missed = log_repeat(safe_log(1.0 - p), n_visits)
    return float(np.exp(log1m_exp(log_missed)))
