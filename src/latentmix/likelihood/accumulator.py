"""
Aggregate latent-class log-posterior density.

For a dataset of units with partially observed latent classes, the
log-posterior density (up to an additive constant) is

    log p(θ | y) = Σ_θk log p(θ_k)                          # priors
                 + Σ_i m_i · log Σ_{c ∈ C_i} w_c(θ) p(y_i | c, θ)

where C_i is the set of classes consistent with unit i, w_c the
unconditional class-membership probability and m_i the unit's
multiplicity (frequency weight). Units with a single consistent class skip
the mixture and contribute log w_c + log p(y_i | c, θ) directly.

`LatentClassLikelihood` is a pure function of (data, parameters): units are
partitioned once at construction and never mutated, so one instance may be
evaluated concurrently by independent chains.
"""

import logging
from typing import Callable, Dict, Hashable, Iterable, Mapping, Sequence

import numpy as np

from latentmix.classes.partition import (
    DataValidityError,
    PartitionKind,
    PartitionRule,
    partition_units,
)
from latentmix.likelihood.mixture import log_mix
from latentmix.likelihood.priors import ParameterPrior

logger = logging.getLogger(__name__)

Params = Mapping[str, object]
ClassLogWeights = Callable[[Params], Mapping[Hashable, float]]
ClassLogDensity = Callable[["Unit", Hashable, Params], float]


class Unit:
    """
    One observational record.

    Attributes
    ----------
    covariates
        Observed covariates interpreted by the partition rule.
    outcome
        Observed outcome interpreted by the class density.
    multiplicity : int or float
        Frequency weight; the unit counts `multiplicity` times. Default 1.
    """

    __slots__ = ("covariates", "outcome", "multiplicity")

    def __init__(self, covariates, outcome, multiplicity: float = 1) -> None:
        if not multiplicity > 0:
            raise ValueError(f"multiplicity must be positive. Got {multiplicity}")
        self.covariates = covariates
        self.outcome = outcome
        self.multiplicity = multiplicity

    def __repr__(self) -> str:
        return (
            f"Unit(covariates={self.covariates!r}, outcome={self.outcome!r}, "
            f"multiplicity={self.multiplicity})"
        )


def safe_log(x) -> float:
    """log(x) with log(0) = -inf and NaN for negative x, without warnings."""
    with np.errstate(divide="ignore", invalid="ignore"):
        return float(np.log(x))


class LatentClassLikelihood:
    """
    Marginal log-posterior density of a latent-class model.

    Parameters
    ----------
    rule : PartitionRule
        Structural rule mapping covariates to consistent classes.
    units : iterable of Unit
        The dataset. Validated once; IMPOSSIBLE units raise immediately.
    class_log_weights : callable
        params -> {class: log w_c}. Unconditional log class probabilities.
    class_log_density : callable
        (unit, class, params) -> log p(outcome | class, params).
    priors : sequence of ParameterPrior
        Exactly one prior per parameter.

    Raises
    ------
    DataValidityError
        If any unit's covariates are impossible under `rule`.
    ValueError
        If priors are missing, duplicated or the dataset is empty.
    """

    def __init__(
        self,
        rule: PartitionRule,
        units: Iterable[Unit],
        class_log_weights: ClassLogWeights,
        class_log_density: ClassLogDensity,
        priors: Sequence[ParameterPrior],
    ) -> None:
        self.rule = rule
        self.units = tuple(units)
        if not self.units:
            raise ValueError("At least one unit is required")

        names = [p.name for p in priors]
        if len(set(names)) != len(names):
            raise ValueError(f"Duplicate prior declarations: {names}")
        if not names:
            raise ValueError("Every parameter needs a declared prior; got none")
        self.priors: Dict[str, ParameterPrior] = {p.name: p for p in priors}

        self.class_log_weights = class_log_weights
        self.class_log_density = class_log_density
        self.partitions = tuple(partition_units(rule, (u.covariates for u in self.units)))

        logger.info(
            "Built %s over %d units with parameters %s",
            type(self).__name__, len(self.units), list(self.priors),
        )

    @property
    def parameter_names(self):
        return tuple(self.priors)

    def _check_names(self, params: Params) -> None:
        supplied = set(params)
        declared = set(self.priors)
        if supplied != declared:
            missing = sorted(declared - supplied)
            undeclared = sorted(supplied - declared)
            raise ValueError(
                f"Parameter mismatch: missing {missing}, without declared prior {undeclared}"
            )

    def log_prior(self, params: Params) -> float:
        """
        Sum of prior log-densities; -inf on any domain violation.

        A density that is unbounded at the boundary (e.g. Beta(0.5, 0.5) at 0)
        is also rejected, so the result is finite or -inf.
        """
        self._check_names(params)
        total = 0.0
        for name, prior in self.priors.items():
            lp = prior.log_density(params[name])
            if not np.isfinite(lp):
                return -np.inf
            total += lp
        return total

    def unit_log_marginal(
        self,
        index: int,
        params: Params,
        log_weights: Mapping[Hashable, float] = None,
    ) -> float:
        """
        Marginal log-probability of one unit (multiplicity not applied).

        Parameters
        ----------
        index : int
            Unit index.
        params : mapping
            Parameter values.
        log_weights : mapping, optional
            Precomputed class log-weights for `params`.
        """
        unit = self.units[index]
        partition = self.partitions[index]
        if log_weights is None:
            log_weights = self.class_log_weights(params)

        if partition.kind is PartitionKind.DETERMINED:
            c = partition.latent_class
            return float(log_weights[c] + self.class_log_density(unit, c, params))
        if partition.kind is PartitionKind.AMBIGUOUS:
            lw = [log_weights[c] for c in partition.classes]
            ld = [self.class_log_density(unit, c, params) for c in partition.classes]
            return log_mix(lw, ld)
        raise DataValidityError(
            f"Unit {index} is impossible: {partition.reason}", indices=(index,)
        )

    def log_likelihood(self, params: Params) -> float:
        """Σ_i m_i · log p(y_i | θ); -inf as soon as any unit has zero probability."""
        log_weights = self.class_log_weights(params)
        total = 0.0
        for i, unit in enumerate(self.units):
            term = self.unit_log_marginal(i, params, log_weights)
            if term == -np.inf:
                return -np.inf
            total += unit.multiplicity * term
        return float(total)

    def log_posterior(self, params: Params) -> float:
        """
        Log-posterior density up to a constant.

        Returns -inf (reject) when a parameter violates its domain, when
        the data has zero probability at `params`, or when either term is
        not finite. Never raises for a proposal inside the declared
        parameter names.
        """
        lp = self.log_prior(params)
        if lp == -np.inf:
            return -np.inf
        ll = self.log_likelihood(params)
        if not np.isfinite(ll):
            return -np.inf
        return float(lp + ll)

    __call__ = log_posterior

    def __repr__(self) -> str:
        return (
            f"LatentClassLikelihood(rule={self.rule!r}, n_units={len(self.units)}, "
            f"parameters={list(self.priors)})"
        )
