"""
Synthetic data for the latent-class studies.

Draws datasets from each study's generative model with known parameters,
latent classes included, so the evaluators and the PyMC models can be
checked for parameter recovery.

Key components:
- Randomized trials with one- or two-sided noncompliance
- Multi-species repeated-visit occupancy surveys
- Partially labelled document corpora
"""

import logging
from typing import Mapping, Optional, Tuple

import numpy as np
from numpy.typing import ArrayLike, NDArray

from latentmix.studies.noncompliance import ALWAYS_TAKER, COMPLIER, NEVER_TAKER

logger = logging.getLogger(__name__)


def _check_rate(name: str, value: float) -> None:
    if not (0.0 <= value <= 1.0):
        raise ValueError(f"{name} must be in [0, 1]. Got {value}")


def _check_simplex(name: str, value: NDArray[np.float64]) -> None:
    if np.any(value < 0) or not np.allclose(value.sum(axis=-1), 1.0):
        raise ValueError(f"{name} must be non-negative and sum to 1 along the last axis")


class StudySimulator:
    """
    Simulator for latent-class study datasets.

    Attributes
    ----------
    random_seed : int or None
        Seed of the simulator's own random state.
    """

    def __init__(self, random_seed: Optional[int] = None) -> None:
        """
        Initialize simulator.

        Parameters
        ----------
        random_seed : int, optional
            Random seed for reproducibility.
        """
        self.random_seed = random_seed
        self.rng = np.random.RandomState(random_seed)

    def noncompliance_trial(
        self,
        n_units: int,
        params: Mapping,
        two_sided: bool = False,
        p_assign: float = 0.5,
    ) -> Tuple[NDArray[np.int64], NDArray[np.int64], NDArray[np.int64], NDArray[np.object_]]:
        """
        Simulate a randomized trial with noncompliance.

        Parameters
        ----------
        n_units : int
            Number of participants.
        params : mapping
            One-sided: 'pi_c', 'eta_c0', 'eta_c1', 'eta_n'.
            Two-sided: 'class_probs' (complier, never-taker, always-taker),
            'eta_c0', 'eta_c1', 'eta_n', 'eta_a'.
        two_sided : bool
            Allow always-takers. Default False.
        p_assign : float
            Probability of assignment to treatment. Default 0.5.

        Returns
        -------
        z : NDArray[np.int64]
            Assignment, shape (n_units,)
        w : NDArray[np.int64]
            Treatment received, shape (n_units,)
        y : NDArray[np.int64]
            Binary outcome, shape (n_units,)
        types : NDArray[np.object_]
            Latent compliance type of each participant
        """
        if n_units <= 0:
            raise ValueError(f"n_units must be positive. Got {n_units}")
        _check_rate("p_assign", p_assign)

        if two_sided:
            class_probs = np.asarray(params["class_probs"], dtype=np.float64)
            _check_simplex("class_probs", class_probs)
            labels = np.array([COMPLIER, NEVER_TAKER, ALWAYS_TAKER], dtype=object)
            types = labels[self.rng.choice(3, size=n_units, p=class_probs)]
        else:
            _check_rate("pi_c", params["pi_c"])
            is_complier = self.rng.uniform(size=n_units) < params["pi_c"]
            types = np.where(is_complier, COMPLIER, NEVER_TAKER).astype(object)

        z = (self.rng.uniform(size=n_units) < p_assign).astype(np.int64)
        complier = types == COMPLIER
        w = np.where(complier, z, (types == ALWAYS_TAKER).astype(np.int64))

        rate = np.where(complier, np.where(z == 1, params["eta_c1"], params["eta_c0"]), 0.0)
        rate = np.where(types == NEVER_TAKER, params["eta_n"], rate)
        if two_sided:
            rate = np.where(types == ALWAYS_TAKER, params["eta_a"], rate)
        y = (self.rng.uniform(size=n_units) < rate).astype(np.int64)

        logger.debug(
            "Simulated trial: %d units, %d compliers", n_units, int(np.sum(complier))
        )
        return z, w, y, types

    def occupancy_survey(
        self,
        n_species: int,
        n_sites: int,
        n_visits: int,
        omega: float,
        psi: float,
        p: float,
    ) -> Tuple[NDArray[np.int64], int]:
        """
        Simulate a multi-species repeated-visit survey.

        Parameters
        ----------
        n_species : int
            Size of the species pool (available or not).
        n_sites : int
            Number of sites (J).
        n_visits : int
            Visits per site (K).
        omega, psi, p : float
            Availability, occupancy and detection probabilities.

        Returns
        -------
        detections : NDArray[np.int64]
            Detection counts of the species seen at least once,
            shape (n_detected, n_sites). Species never seen are not
            recorded, as in a real survey; see `occupancy.augment`.
        n_available : int
            True community size.
        """
        if n_species <= 0 or n_sites <= 0 or n_visits <= 0:
            raise ValueError(
                f"All dimensions must be positive. Got n_species={n_species}, "
                f"n_sites={n_sites}, n_visits={n_visits}"
            )
        for name, value in (("omega", omega), ("psi", psi), ("p", p)):
            _check_rate(name, value)

        available = self.rng.uniform(size=n_species) < omega
        occupied = available[:, None] & (self.rng.uniform(size=(n_species, n_sites)) < psi)
        y = self.rng.binomial(n_visits, p, size=(n_species, n_sites)) * occupied

        seen = np.any(y > 0, axis=1)
        logger.debug(
            "Simulated survey: %d available species, %d detected",
            int(np.sum(available)), int(np.sum(seen)),
        )
        return y[seen].astype(np.int64), int(np.sum(available))

    def topic_corpus(
        self,
        n_docs: int,
        doc_length: int,
        theta: ArrayLike,
        phi: ArrayLike,
        label_fraction: float = 0.5,
    ) -> Tuple[NDArray[np.int64], list, NDArray[np.int64]]:
        """
        Simulate a partially labelled corpus from a naive Bayes model.

        Parameters
        ----------
        n_docs : int
            Number of documents.
        doc_length : int
            Words per document.
        theta : array_like
            Topic proportions, shape (K,).
        phi : array_like
            Word distributions, shape (K, V).
        label_fraction : float
            Fraction of documents whose topic is revealed. Default 0.5.

        Returns
        -------
        word_counts : NDArray[np.int64]
            Counts, shape (n_docs, V)
        labels : list
            Topic label per document, None where hidden
        topics : NDArray[np.int64]
            True topic of every document
        """
        theta = np.asarray(theta, dtype=np.float64)
        phi = np.asarray(phi, dtype=np.float64)
        if n_docs <= 0 or doc_length <= 0:
            raise ValueError(
                f"n_docs and doc_length must be positive. Got {n_docs}, {doc_length}"
            )
        if phi.ndim != 2 or phi.shape[0] != theta.shape[0]:
            raise ValueError(
                f"phi must have shape ({theta.shape[0]}, V). Got {phi.shape}"
            )
        _check_simplex("theta", theta)
        _check_simplex("phi", phi)
        _check_rate("label_fraction", label_fraction)

        topics = self.rng.choice(theta.shape[0], size=n_docs, p=theta)
        counts = np.array(
            [self.rng.multinomial(doc_length, phi[k]) for k in topics], dtype=np.int64
        )
        revealed = self.rng.uniform(size=n_docs) < label_fraction
        labels = [int(k) if shown else None for k, shown in zip(topics, revealed)]
        return counts, labels, topics.astype(np.int64)

    def __repr__(self) -> str:
        """String representation."""
        return f"StudySimulator(random_seed={self.random_seed})"
