"""
Naive Bayes topic classification with labelled and unlabelled documents.

Each document m carries word counts c_m over a vocabulary of V words and,
optionally, a known topic label. With K topics:

    z_m ~ Categorical(θ)          θ ~ Dirichlet(α)
    c_m | z_m = k ~ Multinomial(φ_k)   φ_k ~ Dirichlet(β)

Labelled documents contribute log θ_k + Σ_v c_mv log φ_kv; unlabelled
documents are marginalized over every topic with log-sum-exp. With no
labels at all this is an unsupervised mixture of multinomials (topic
identities are then exchangeable).
"""

import logging
from typing import Mapping, Optional, Sequence

import numpy as np
from numpy.typing import ArrayLike, NDArray
from scipy.special import xlogy

from latentmix.classes.partition import TopicRule
from latentmix.likelihood.accumulator import LatentClassLikelihood, Unit, safe_log
from latentmix.likelihood.densities import multinomial_lpmf
from latentmix.likelihood.mixture import log_sum_exp
from latentmix.likelihood.priors import ParameterPrior

logger = logging.getLogger(__name__)


def _class_log_density(unit: Unit, topic: int, params: Mapping) -> float:
    phi = np.asarray(params["phi"])
    return multinomial_lpmf(unit.outcome, phi[topic])


def _class_weights(params: Mapping):
    theta = np.asarray(params["theta"], dtype=np.float64)
    return {k: safe_log(theta[k]) for k in range(theta.shape[0])}


def naive_bayes_likelihood(
    word_counts: ArrayLike,
    labels: Sequence[Optional[int]],
    n_topics: int,
    priors: Optional[Sequence[ParameterPrior]] = None,
    alpha: float = 1.0,
    beta: float = 1.0,
) -> LatentClassLikelihood:
    """
    Marginal likelihood of a partially labelled corpus.

    Parameters
    ----------
    word_counts : array_like of int
        Counts, shape (n_docs, n_words).
    labels : sequence of int or None
        Topic label per document; None for unlabelled documents.
    n_topics : int
        Number of topics (K).
    priors : sequence of ParameterPrior, optional
        Priors for theta (K,) and phi (K, V). Defaults to symmetric
        Dirichlet(alpha) and row-wise Dirichlet(beta).
    alpha, beta : float
        Concentrations for the default priors. Default 1.0.
    """
    counts = np.asarray(word_counts, dtype=np.int64)
    if counts.ndim != 2:
        raise ValueError(f"word_counts must be 2-D (docs, words). Got shape {counts.shape}")
    if len(labels) != counts.shape[0]:
        raise ValueError(
            f"Need one label per document. Got {len(labels)} labels for {counts.shape[0]} docs"
        )
    if np.any(counts < 0):
        raise ValueError("word_counts must be non-negative")

    if priors is None:
        priors = [
            ParameterPrior("theta", "dirichlet", {"alpha": np.full(n_topics, alpha)}),
            ParameterPrior(
                "phi", "dirichlet", {"alpha": np.full((n_topics, counts.shape[1]), beta)}
            ),
        ]

    n_labelled = sum(label is not None for label in labels)
    logger.info(
        "Corpus: %d documents (%d labelled), %d words, %d topics",
        counts.shape[0], n_labelled, counts.shape[1], n_topics,
    )
    units = [Unit(label, row) for label, row in zip(labels, counts)]
    return LatentClassLikelihood(
        TopicRule(n_topics), units, _class_weights, _class_log_density, priors
    )


def topic_posterior(word_counts: ArrayLike, params: Mapping) -> NDArray[np.float64]:
    """
    Posterior topic probabilities of each document, ignoring any labels.

    Parameters
    ----------
    word_counts : array_like of int
        Counts, shape (n_docs, n_words).
    params : mapping
        'theta' (K,) and 'phi' (K, V).

    Returns
    -------
    NDArray[np.float64]
        Responsibilities, shape (n_docs, K); rows sum to 1.

    Raises
    ------
    ValueError
        If some document has zero probability under every topic.
    """
    counts = np.asarray(word_counts, dtype=np.float64)
    theta = np.asarray(params["theta"], dtype=np.float64)
    phi = np.asarray(params["phi"], dtype=np.float64)

    # log θ_k + Σ_v c_mv log φ_kv, zero counts contribute 0
    log_joint = xlogy(counts[:, None, :], phi[None, :, :]).sum(axis=-1)
    with np.errstate(divide="ignore"):
        log_joint = log_joint + np.log(theta)[None, :]

    impossible = np.flatnonzero(np.all(log_joint == -np.inf, axis=1))
    if impossible.size:
        raise ValueError(
            f"Documents {impossible.tolist()} have zero probability under every topic"
        )

    out = np.empty_like(log_joint)
    for m, row in enumerate(log_joint):
        out[m] = np.exp(row - log_sum_exp(row))
    return out


def classify(word_counts: ArrayLike, params: Mapping) -> NDArray[np.int64]:
    """Most probable topic per document."""
    return np.argmax(topic_posterior(word_counts, params), axis=1)
