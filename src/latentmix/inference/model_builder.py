"""
Bayesian model builders: PyMC models with marginalized latent classes.

Each builder assembles a PyMC model for one study. Discrete latent classes
are never sampled: the consistent-class mask from the partition rule selects
which per-class terms enter a `pm.math.logsumexp`, and the resulting
marginal log-likelihood is added to the model as a `pm.Potential`.

PyMC maps every bounded parameter to an unconstrained space and adds the
log-Jacobian, so NUTS sees a smooth density with gradients.

Mathematical model (noncompliance, one-sided):
    π_c ~ Beta(a, b)                               # complier share
    η_c0, η_c1, η_n ~ Beta(a, b)                   # outcome rates
    log L = Σ_i m_i log Σ_{c ∈ C_i} w_c Bin(y_i | n_i, η_{c, z_i})

Mathematical model (occupancy):
    Ω, ψ, p ~ Beta(a, b)
    log L = Σ_i log[ 1{detected} Ω A_i + 1{never} ((1-Ω) + Ω A_i) ]
    A_i   = Π_j site_ij,   site_ij = ψ Bin(y_ij | K, p) or (1-ψ) + ψ(1-p)^K

Mathematical model (topics):
    θ ~ Dirichlet(α),  φ_k ~ Dirichlet(β)
    log L = Σ_m log Σ_{k ∈ C_m} θ_k Π_v φ_kv^{c_mv}
"""

import logging
from typing import Dict, Mapping, Optional, Sequence

import numpy as np
from numpy.typing import ArrayLike, NDArray
import pymc as pm
import pytensor.tensor as pt
from scipy.special import gammaln

from latentmix.classes.partition import (
    OccupancyRule,
    OneSidedNoncomplianceRule,
    PartitionRule,
    TopicRule,
    TwoSidedNoncomplianceRule,
    partition_units,
)
from latentmix.likelihood.accumulator import Unit
from latentmix.studies.noncompliance import check_binomial_outcomes

logger = logging.getLogger(__name__)


class PriorSpec:
    """Specification of priors for model parameters."""

    def __init__(
        self,
        rate_alpha: float = 1.0,
        rate_beta: float = 1.0,
        dirichlet_alpha: float = 1.0,
        word_concentration: float = 1.0,
    ) -> None:
        """
        Initialize prior specification.

        Parameters
        ----------
        rate_alpha : float
            Beta prior first shape for rates and class proportions.
            Default 1.0 (with rate_beta=1.0, uniform on [0, 1]).
        rate_beta : float
            Beta prior second shape. Default 1.0.
        dirichlet_alpha : float
            Symmetric Dirichlet concentration for class-probability
            simplices (two-sided compliance types, topic shares). Default 1.0.
        word_concentration : float
            Symmetric Dirichlet concentration for per-topic word
            distributions. Default 1.0.
        """
        for name, value in (
            ("rate_alpha", rate_alpha),
            ("rate_beta", rate_beta),
            ("dirichlet_alpha", dirichlet_alpha),
            ("word_concentration", word_concentration),
        ):
            if value <= 0:
                raise ValueError(f"{name} must be positive. Got {value}")

        self.rate_alpha = rate_alpha
        self.rate_beta = rate_beta
        self.dirichlet_alpha = dirichlet_alpha
        self.word_concentration = word_concentration

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"PriorSpec(rate=Beta({self.rate_alpha}, {self.rate_beta}), "
            f"dirichlet_α={self.dirichlet_alpha}, word_β={self.word_concentration})"
        )


def consistency_mask(rule: PartitionRule, covariates: Sequence) -> NDArray[np.bool_]:
    """
    Boolean (n_units, n_classes) mask of classes consistent with each unit.

    Raises DataValidityError for impossible units.
    """
    partitions = partition_units(rule, covariates)
    index = {c: j for j, c in enumerate(rule.classes)}
    mask = np.zeros((len(partitions), len(rule.classes)), dtype=bool)
    for i, partition in enumerate(partitions):
        for c in partition.classes:
            mask[i, index[c]] = True
    return mask


def _masked_logsumexp(terms, mask: NDArray[np.bool_]):
    """Row-wise log Σ exp over the consistent classes only."""
    masked = pt.switch(mask, terms, -np.inf)
    return pm.math.logsumexp(masked, axis=1, keepdims=False)


def _log_sigmoids(rate):
    # log-odds form of log p and log(1-p)
    alpha = pm.math.logit(rate)
    return -pm.math.log1pexp(-alpha), -pm.math.log1pexp(alpha)


def _xlog(count, log_rate):
    # count · log rate with 0 · log 0 = 0
    return pt.switch(pt.eq(count, 0), 0.0, count * log_rate)


class ModelBuilder:
    """
    Base class for latent-class PyMC model builders.

    Subclasses declare their parameters in `_build_parameters` and their
    marginal log-likelihood in `_marginal_loglik`.

    Attributes
    ----------
    prior_spec : PriorSpec
        Prior specification
    model : pm.Model or None
        PyMC model (None until built)
    """

    parameter_names: tuple = ()

    def __init__(self, prior_spec: Optional[PriorSpec] = None) -> None:
        self.prior_spec = prior_spec or PriorSpec()
        self.model: Optional[pm.Model] = None

    def _rate(self, name: str, fixed: Mapping):
        if name in fixed:
            return pt.as_tensor_variable(np.float64(fixed[name]))
        return pm.Beta(name, alpha=self.prior_spec.rate_alpha, beta=self.prior_spec.rate_beta)

    def _simplex(self, name: str, shape: tuple, concentration: float, fixed: Mapping):
        if name in fixed:
            value = np.asarray(fixed[name], dtype=np.float64)
            if value.shape != shape:
                raise ValueError(f"fixed {name} must have shape {shape}. Got {value.shape}")
            return pt.as_tensor_variable(value)
        return pm.Dirichlet(name, a=np.full(shape, concentration), shape=shape)

    def _build_parameters(self, fixed: Mapping) -> Dict:
        raise NotImplementedError

    def _marginal_loglik(self, params: Dict):
        raise NotImplementedError

    def _build_deterministics(self, params: Dict) -> None:
        pass

    def build(self, fixed: Optional[Mapping] = None) -> pm.Model:
        """
        Build the full PyMC model.

        Parameters
        ----------
        fixed : mapping, optional
            Parameters to pin to constants instead of sampling them. With
            every parameter fixed the model has no free variables and the
            `marginal_loglik` potential evaluates to a number.

        Returns
        -------
        model : pm.Model
            PyMC model ready for inference.
        """
        fixed = dict(fixed or {})
        unknown = set(fixed) - set(self.parameter_names)
        if unknown:
            raise ValueError(
                f"Unknown fixed parameters {sorted(unknown)}. "
                f"Expected a subset of {self.parameter_names}"
            )

        with pm.Model() as model:
            params = self._build_parameters(fixed)
            pm.Potential("marginal_loglik", self._marginal_loglik(params))
            self._build_deterministics(params)

        logger.info(
            "Built %s: free %s, fixed %s",
            type(self).__name__,
            [n for n in self.parameter_names if n not in fixed],
            sorted(fixed),
        )
        self.model = model
        return model

    def get_model(self) -> pm.Model:
        """
        Get the built model.

        Returns
        -------
        model : pm.Model
            The PyMC model.

        Raises
        ------
        RuntimeError
            If model has not been built yet.
        """
        if self.model is None:
            raise RuntimeError("Model has not been built. Call .build() first.")
        return self.model


class NoncomplianceModelBuilder(ModelBuilder):
    """
    PyMC model for one- or two-sided noncompliance.

    Parameters
    ----------
    units : sequence of Unit
        Covariates (z, w), outcome (successes, trials), multiplicity.
    two_sided : bool
        Use the three-type model (compliers, never-takers, always-takers)
        with a Dirichlet prior on `class_probs`. Default False.
    normalized : bool
        Include binomial coefficients. Default True.
    prior_spec : PriorSpec, optional
    """

    def __init__(
        self,
        units: Sequence[Unit],
        two_sided: bool = False,
        normalized: bool = True,
        prior_spec: Optional[PriorSpec] = None,
    ) -> None:
        super().__init__(prior_spec)
        units = list(units)
        if not units:
            raise ValueError("At least one unit is required")

        self.two_sided = two_sided
        self.rule = TwoSidedNoncomplianceRule() if two_sided else OneSidedNoncomplianceRule()
        self.parameter_names = (
            ("class_probs", "eta_c0", "eta_c1", "eta_n", "eta_a")
            if two_sided
            else ("pi_c", "eta_c0", "eta_c1", "eta_n")
        )
        self.mask = consistency_mask(self.rule, [u.covariates for u in units])
        check_binomial_outcomes(units)

        self.z = np.array([u.covariates[0] for u in units], dtype=np.int64)
        self.successes = np.array([u.outcome[0] for u in units], dtype=np.float64)
        self.trials = np.array([u.outcome[1] for u in units], dtype=np.float64)
        self.multiplicity = np.array([u.multiplicity for u in units], dtype=np.float64)
        self.log_coef = (
            gammaln(self.trials + 1)
            - gammaln(self.successes + 1)
            - gammaln(self.trials - self.successes + 1)
            if normalized
            else np.zeros_like(self.trials)
        )

    def _build_parameters(self, fixed: Mapping) -> Dict:
        params = {}
        if self.two_sided:
            params["class_probs"] = self._simplex(
                "class_probs", (3,), self.prior_spec.dirichlet_alpha, fixed
            )
        else:
            params["pi_c"] = self._rate("pi_c", fixed)
        for name in self.parameter_names[1:]:
            params[name] = self._rate(name, fixed)
        return params

    def _binomial(self, rate):
        log_p, log_q = _log_sigmoids(rate)
        return (
            _xlog(self.successes, log_p)
            + _xlog(self.trials - self.successes, log_q)
            + self.log_coef
        )

    def _marginal_loglik(self, params: Dict):
        complier_rate = pt.switch(pt.eq(self.z, 1), params["eta_c1"], params["eta_c0"])
        columns = [self._binomial(complier_rate), self._binomial(params["eta_n"])]
        if self.two_sided:
            columns.append(self._binomial(params["eta_a"]))
            log_w = pt.log(params["class_probs"])
        else:
            pi_c = params["pi_c"]
            log_w = pt.stack([pt.log(pi_c), pt.log1p(-pi_c)])

        terms = pt.stack(columns, axis=1) + log_w[None, :]
        return pt.sum(self.multiplicity * _masked_logsumexp(terms, self.mask))

    def _build_deterministics(self, params: Dict) -> None:
        pm.Deterministic("cace", params["eta_c1"] - params["eta_c0"])

    def __repr__(self) -> str:
        return (
            f"NoncomplianceModelBuilder(n_units={self.mask.shape[0]}, "
            f"two_sided={self.two_sided}, prior_spec={self.prior_spec})"
        )


class OccupancyModelBuilder(ModelBuilder):
    """
    PyMC model for multi-species occupancy with two-level marginalization.

    Parameters
    ----------
    detections : array_like of int
        Detection counts, shape (n_species, n_sites), possibly augmented.
    n_visits : int
        Visits per site (K).
    prior_spec : PriorSpec, optional
    """

    parameter_names = ("omega", "psi", "p")

    def __init__(
        self,
        detections: ArrayLike,
        n_visits: int,
        prior_spec: Optional[PriorSpec] = None,
    ) -> None:
        super().__init__(prior_spec)
        raw = np.asarray(detections)
        if raw.ndim != 2:
            raise ValueError(f"detections must be 2-D (species, sites). Got shape {raw.shape}")
        # validate before casting so fractional counts are rejected, not truncated
        consistency_mask(OccupancyRule(n_visits), list(raw))
        y = raw.astype(np.int64)

        self.detections = y
        self.n_visits = n_visits
        self.detected = np.any(y > 0, axis=1)
        self.log_coef = (
            gammaln(n_visits + 1) - gammaln(y + 1) - gammaln(n_visits - y + 1)
        )

    def _build_parameters(self, fixed: Mapping) -> Dict:
        return {name: self._rate(name, fixed) for name in self.parameter_names}

    def _marginal_loglik(self, params: Dict):
        y, K = self.detections, self.n_visits
        log_psi, log1m_psi = _log_sigmoids(params["psi"])
        log_p, log1m_p = _log_sigmoids(params["p"])
        log_omega, log1m_omega = _log_sigmoids(params["omega"])

        site_detected = log_psi + _xlog(y, log_p) + _xlog(K - y, log1m_p) + self.log_coef
        site_missed = pt.logaddexp(log_psi + K * log1m_p, log1m_psi)
        site = pt.switch(y > 0, site_detected, site_missed)

        available = log_omega + pt.sum(site, axis=1)
        species = pt.switch(
            self.detected, available, pt.logaddexp(log1m_omega, available)
        )
        return pt.sum(species)

    def __repr__(self) -> str:
        return (
            f"OccupancyModelBuilder(n_species={self.detections.shape[0]}, "
            f"n_sites={self.detections.shape[1]}, n_visits={self.n_visits}, "
            f"prior_spec={self.prior_spec})"
        )


class TopicModelBuilder(ModelBuilder):
    """
    PyMC naive Bayes model over labelled and unlabelled documents.

    Parameters
    ----------
    word_counts : array_like of int
        Counts, shape (n_docs, n_words).
    labels : sequence of int or None
        Topic label per document; None marks an unlabelled document.
    n_topics : int
        Number of topics (K).
    prior_spec : PriorSpec, optional
    """

    parameter_names = ("theta", "phi")

    def __init__(
        self,
        word_counts: ArrayLike,
        labels: Sequence[Optional[int]],
        n_topics: int,
        prior_spec: Optional[PriorSpec] = None,
    ) -> None:
        super().__init__(prior_spec)
        counts = np.asarray(word_counts, dtype=np.float64)
        if counts.ndim != 2:
            raise ValueError(f"word_counts must be 2-D (docs, words). Got shape {counts.shape}")
        if len(labels) != counts.shape[0]:
            raise ValueError(
                f"Need one label per document. Got {len(labels)} for {counts.shape[0]} docs"
            )
        self.counts = counts
        self.n_topics = n_topics
        self.mask = consistency_mask(TopicRule(n_topics), list(labels))

    def _build_parameters(self, fixed: Mapping) -> Dict:
        n_words = self.counts.shape[1]
        return {
            "theta": self._simplex(
                "theta", (self.n_topics,), self.prior_spec.dirichlet_alpha, fixed
            ),
            "phi": self._simplex(
                "phi", (self.n_topics, n_words), self.prior_spec.word_concentration, fixed
            ),
        }

    def _marginal_loglik(self, params: Dict):
        phi = params["phi"]
        # zero φ entries only matter where a document uses that word
        log_lik = pt.dot(self.counts, pt.log(pt.switch(pt.gt(phi, 0), phi, 1.0)).T)
        used = (self.counts > 0).astype(np.float64)
        hits_zero = pt.dot(used, pt.cast(pt.eq(phi, 0), "float64").T)
        log_lik = pt.switch(pt.gt(hits_zero, 0), -np.inf, log_lik)
        terms = log_lik + pt.log(params["theta"])[None, :]
        return pt.sum(_masked_logsumexp(terms, self.mask))

    def __repr__(self) -> str:
        return (
            f"TopicModelBuilder(n_docs={self.counts.shape[0]}, "
            f"n_words={self.counts.shape[1]}, n_topics={self.n_topics}, "
            f"prior_spec={self.prior_spec})"
        )
