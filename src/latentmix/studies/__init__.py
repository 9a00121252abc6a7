"""
Worked latent-class studies.

**Noncompliance (noncompliance.py):**
- One-sided and two-sided (monotone) instrumental-variables models
- Complier average causal effect, ITT effect

**Occupancy (occupancy.py):**
- Multi-species occupancy with two-level marginalization
- Data augmentation, community-size estimates

**Topics (topics.py):**
- Naive Bayes with labelled and unlabelled documents
"""

from latentmix.studies.noncompliance import (
    aggregate_individuals,
    check_binomial_outcomes,
    complier_average_causal_effect,
    intention_to_treat_effect,
    one_sided_likelihood,
    two_sided_likelihood,
    units_from_counts,
)
from latentmix.studies.occupancy import (
    augment,
    availability_given_undetected,
    detection_probability,
    expected_richness,
    never_detected_log_density,
    occupancy_likelihood,
    site_log_density,
)
from latentmix.studies.topics import classify, naive_bayes_likelihood, topic_posterior

__all__ = [
    "aggregate_individuals",
    "check_binomial_outcomes",
    "complier_average_causal_effect",
    "intention_to_treat_effect",
    "one_sided_likelihood",
    "two_sided_likelihood",
    "units_from_counts",
    "augment",
    "availability_given_undetected",
    "detection_probability",
    "expected_richness",
    "never_detected_log_density",
    "occupancy_likelihood",
    "site_log_density",
    "classify",
    "naive_bayes_likelihood",
    "topic_posterior",
]
