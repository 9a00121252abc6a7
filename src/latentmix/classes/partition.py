"""
Class-partition rules: which latent classes are consistent with a unit.

A partition rule inspects the observed covariates of a single unit and
reports one of three outcomes:

    DETERMINED(c)     exactly one class c is consistent
    AMBIGUOUS(C)      a subset C of the classes is consistent (|C| > 1)
    IMPOSSIBLE        the covariate pattern cannot occur under the
                      structural assumptions of the analysis

The rules encode the structural assumptions of each study. For example,
under one-sided noncompliance nobody outside the treatment arm can receive
treatment, so (z=0, w=1) is IMPOSSIBLE, and a unit with (z=0, w=0) may be
either a complier or a never-taker.

IMPOSSIBLE units are a data-validity problem. They are detected once by
`partition_units` when the data is loaded, never while sampling.
"""

import enum
import logging
from typing import Hashable, Iterable, List, Optional, Sequence, Tuple

import numpy as np

logger = logging.getLogger(__name__)


class DataValidityError(ValueError):
    """Raised when a unit's covariates are impossible under the declared rule."""

    def __init__(self, message: str, indices: Sequence[int] = ()) -> None:
        super().__init__(message)
        self.indices = tuple(indices)


class PartitionKind(enum.Enum):
    DETERMINED = "determined"
    AMBIGUOUS = "ambiguous"
    IMPOSSIBLE = "impossible"


class Partition:
    """
    Tagged result of assigning a unit to its consistent classes.

    Build instances through `determined`, `ambiguous` or `impossible`;
    callers branch on `kind`.

    Attributes
    ----------
    kind : PartitionKind
        Which of the three outcomes this is.
    classes : tuple
        Consistent classes, in rule order. One element for DETERMINED,
        two or more for AMBIGUOUS, empty for IMPOSSIBLE.
    reason : str or None
        Why the pattern is impossible (IMPOSSIBLE only).
    """

    __slots__ = ("kind", "classes", "reason")

    def __init__(
        self,
        kind: PartitionKind,
        classes: Tuple[Hashable, ...] = (),
        reason: Optional[str] = None,
    ) -> None:
        self.kind = kind
        self.classes = tuple(classes)
        self.reason = reason

    @classmethod
    def determined(cls, latent_class: Hashable) -> "Partition":
        return cls(PartitionKind.DETERMINED, (latent_class,))

    @classmethod
    def ambiguous(cls, classes: Iterable[Hashable]) -> "Partition":
        classes = tuple(classes)
        if len(classes) < 2:
            raise ValueError(
                f"An ambiguous partition needs at least two classes. Got {classes}"
            )
        return cls(PartitionKind.AMBIGUOUS, classes)

    @classmethod
    def impossible(cls, reason: str) -> "Partition":
        return cls(PartitionKind.IMPOSSIBLE, (), reason)

    @property
    def latent_class(self) -> Hashable:
        """The single class of a DETERMINED partition."""
        if self.kind is not PartitionKind.DETERMINED:
            raise ValueError(f"{self.kind.value} partition has no single class")
        return self.classes[0]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Partition):
            return NotImplemented
        return (self.kind, self.classes) == (other.kind, other.classes)

    def __hash__(self) -> int:
        return hash((self.kind, self.classes))

    def __repr__(self) -> str:
        if self.kind is PartitionKind.IMPOSSIBLE:
            return f"Partition(impossible, reason={self.reason!r})"
        return f"Partition({self.kind.value}, classes={self.classes})"


class PartitionRule:
    """
    Base class for class-partition rules.

    Subclasses declare the full, ordered class set in `classes` and
    implement `assign`.
    """

    classes: Tuple[Hashable, ...] = ()

    def assign(self, covariates) -> Partition:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}(classes={self.classes})"


def _binary_pair(covariates) -> Optional[Tuple[int, int]]:
    """Return (z, w) if both are 0/1 indicators, else None."""
    try:
        z, w = covariates
    except (TypeError, ValueError):
        return None
    if z not in (0, 1) or w not in (0, 1):
        return None
    return int(z), int(w)


class OneSidedNoncomplianceRule(PartitionRule):
    """
    Compliance types under one-sided noncompliance.

    Covariates are (z, w): assignment to treatment and receipt of treatment.
    Control units cannot obtain the treatment, so only compliers and
    never-takers exist.

        z=1, w=1  ->  complier
        z=1, w=0  ->  never-taker
        z=0, w=0  ->  complier or never-taker
        z=0, w=1  ->  impossible
    """

    COMPLIER = "complier"
    NEVER_TAKER = "never_taker"
    classes = (COMPLIER, NEVER_TAKER)

    def assign(self, covariates) -> Partition:
        pair = _binary_pair(covariates)
        if pair is None:
            return Partition.impossible(
                f"covariates must be a pair of 0/1 indicators, got {covariates!r}"
            )
        z, w = pair
        if z == 1:
            return Partition.determined(self.COMPLIER if w == 1 else self.NEVER_TAKER)
        if w == 0:
            return Partition.ambiguous(self.classes)
        return Partition.impossible(
            "treatment received without assignment under one-sided noncompliance"
        )


class TwoSidedNoncomplianceRule(PartitionRule):
    """
    Compliance types under two-sided noncompliance with monotonicity.

    Monotonicity rules out defiers, leaving compliers, never-takers and
    always-takers. Every (z, w) pattern is possible.

        z=1, w=1  ->  complier or always-taker
        z=1, w=0  ->  never-taker
        z=0, w=1  ->  always-taker
        z=0, w=0  ->  complier or never-taker
    """

    COMPLIER = "complier"
    NEVER_TAKER = "never_taker"
    ALWAYS_TAKER = "always_taker"
    classes = (COMPLIER, NEVER_TAKER, ALWAYS_TAKER)

    def assign(self, covariates) -> Partition:
        pair = _binary_pair(covariates)
        if pair is None:
            return Partition.impossible(
                f"covariates must be a pair of 0/1 indicators, got {covariates!r}"
            )
        z, w = pair
        if z == 1 and w == 1:
            return Partition.ambiguous((self.COMPLIER, self.ALWAYS_TAKER))
        if z == 1:
            return Partition.determined(self.NEVER_TAKER)
        if w == 1:
            return Partition.determined(self.ALWAYS_TAKER)
        return Partition.ambiguous((self.COMPLIER, self.NEVER_TAKER))


class OccupancyRule(PartitionRule):
    """
    Availability of a species given its detection history.

    Covariates are the number of detections at each of J sites, each site
    surveyed `n_visits` times. A species detected anywhere is available;
    a species never detected may be available (present but missed, or
    absent from every surveyed site) or not part of the community at all.
    """

    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"
    classes = (AVAILABLE, UNAVAILABLE)

    def __init__(self, n_visits: int) -> None:
        if n_visits <= 0:
            raise ValueError(f"n_visits must be positive. Got {n_visits}")
        self.n_visits = n_visits

    def assign(self, covariates) -> Partition:
        counts = np.asarray(covariates)
        if counts.ndim != 1 or counts.size == 0:
            return Partition.impossible(
                f"detections must be a non-empty 1-D array, got shape {counts.shape}"
            )
        if not np.issubdtype(counts.dtype, np.integer):
            return Partition.impossible("detection counts must be integers")
        if np.any(counts < 0) or np.any(counts > self.n_visits):
            return Partition.impossible(
                f"detection counts must lie in [0, {self.n_visits}]"
            )
        if np.any(counts > 0):
            return Partition.determined(self.AVAILABLE)
        return Partition.ambiguous(self.classes)

    def __repr__(self) -> str:
        return f"OccupancyRule(n_visits={self.n_visits})"


class TopicRule(PartitionRule):
    """
    Topic assignment for naive Bayes documents.

    A labelled document (covariate is an integer topic) has its topic
    determined; an unlabelled document (covariate None) may belong to any
    topic.
    """

    def __init__(self, n_topics: int) -> None:
        if n_topics < 2:
            raise ValueError(f"n_topics must be >= 2. Got {n_topics}")
        self.n_topics = n_topics
        self.classes = tuple(range(n_topics))

    def assign(self, covariates) -> Partition:
        if covariates is None:
            return Partition.ambiguous(self.classes)
        if isinstance(covariates, (bool, np.bool_)) or not isinstance(
            covariates, (int, np.integer)
        ):
            return Partition.impossible(f"topic label must be an integer, got {covariates!r}")
        if not (0 <= covariates < self.n_topics):
            return Partition.impossible(
                f"topic label {covariates} outside [0, {self.n_topics - 1}]"
            )
        return Partition.determined(int(covariates))

    def __repr__(self) -> str:
        return f"TopicRule(n_topics={self.n_topics})"


def partition_units(rule: PartitionRule, covariates: Iterable) -> List[Partition]:
    """
    Assign every unit and reject the dataset if any unit is impossible.

    Parameters
    ----------
    rule : PartitionRule
        Structural rule of the analysis.
    covariates : iterable
        Observed covariates, one entry per unit.

    Returns
    -------
    list of Partition
        DETERMINED or AMBIGUOUS partition per unit, in input order.

    Raises
    ------
    DataValidityError
        If one or more units are IMPOSSIBLE under `rule`. The error lists
        the offending unit indices.
    """
    partitions = [rule.assign(c) for c in covariates]

    bad = [i for i, p in enumerate(partitions) if p.kind is PartitionKind.IMPOSSIBLE]
    if bad:
        shown = ", ".join(str(i) for i in bad[:10])
        more = f" (and {len(bad) - 10} more)" if len(bad) > 10 else ""
        raise DataValidityError(
            f"{len(bad)} unit(s) impossible under {rule!r}: indices {shown}{more}; "
            f"first reason: {partitions[bad[0]].reason}",
            indices=bad,
        )

    n_ambiguous = sum(p.kind is PartitionKind.AMBIGUOUS for p in partitions)
    logger.debug(
        "Partitioned %d units under %r: %d determined, %d ambiguous",
        len(partitions), rule, len(partitions) - n_ambiguous, n_ambiguous,
    )
    return partitions
