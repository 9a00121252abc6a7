"""
Tests for the PyMC model builders.

Progressive sizing:
- Small: prior spec, consistency masks, builder validation (instant)
- Medium: model construction and graph evaluation at fixed parameters
  against the numpy evaluators (a few seconds, graph compilation)
"""

import pytest
import numpy as np
from numpy.testing import assert_allclose

from latentmix.classes import DataValidityError, OneSidedNoncomplianceRule
from latentmix.inference.model_builder import (
    NoncomplianceModelBuilder,
    OccupancyModelBuilder,
    PriorSpec,
    TopicModelBuilder,
    consistency_mask,
)
from latentmix.likelihood import Unit
from latentmix.studies.noncompliance import (
    one_sided_likelihood,
    two_sided_likelihood,
    units_from_counts,
)
from latentmix.studies.occupancy import augment, occupancy_likelihood
from latentmix.studies.topics import naive_bayes_likelihood

VITAMIN_A = units_from_counts([
    (1, 1, 90, 100, 100),
    (1, 0, 40, 50, 50),
    (0, 0, 120, 150, 150),
])
ONE_SIDED = {"pi_c": 0.6, "eta_c0": 0.7, "eta_c1": 0.9, "eta_n": 0.8}


# ============================================================================
# SMALL TESTS: Configuration and validation
# ============================================================================

def test_small_prior_spec_defaults():
    """Test that default priors are flat."""
    spec = PriorSpec()
    assert spec.rate_alpha == 1.0
    assert spec.rate_beta == 1.0
    assert "Beta(1.0, 1.0)" in repr(spec)


def test_small_prior_spec_rejects_non_positive():
    """Test that concentrations must be positive."""
    with pytest.raises(ValueError, match="rate_beta must be positive"):
        PriorSpec(rate_beta=0.0)


def test_small_consistency_mask():
    """Test the unit-by-class mask for one-sided noncompliance."""
    mask = consistency_mask(OneSidedNoncomplianceRule(), [(1, 1), (1, 0), (0, 0)])
    expected = np.array([[True, False], [False, True], [True, True]])
    assert np.array_equal(mask, expected)


def test_small_impossible_unit_rejected():
    """Test that builders validate units at construction."""
    with pytest.raises(DataValidityError):
        NoncomplianceModelBuilder([Unit((0, 1), (1, 1))])


def test_small_empty_units_rejected():
    """Test that an empty dataset is rejected."""
    with pytest.raises(ValueError, match="At least one unit"):
        NoncomplianceModelBuilder([])


def test_small_get_model_before_build():
    """Test that the model is unavailable before build()."""
    mb = NoncomplianceModelBuilder(VITAMIN_A)
    with pytest.raises(RuntimeError, match="has not been built"):
        mb.get_model()


def test_small_unknown_fixed_parameter():
    """Test that only declared parameters may be fixed."""
    mb = NoncomplianceModelBuilder(VITAMIN_A)
    with pytest.raises(ValueError, match="Unknown fixed parameters"):
        mb.build(fixed={"pi_a": 0.1})


def test_small_occupancy_invalid_counts():
    """Test that counts above the visit number are rejected."""
    with pytest.raises(DataValidityError):
        OccupancyModelBuilder(np.array([[5, 0]]), n_visits=4)


def test_small_invalid_outcomes_rejected():
    """Test that binomial outcomes outside 0 <= k <= n fail at construction."""
    units = [
        Unit((1, 1), (12, 10)),
        Unit((1, 0), (3, 10)),
        Unit((0, 0), (-3, 10)),
    ]
    with pytest.raises(DataValidityError, match="outcomes outside") as excinfo:
        NoncomplianceModelBuilder(units)
    assert excinfo.value.indices == (0, 2)


def test_small_occupancy_fractional_counts_rejected():
    """Test that fractional counts are rejected rather than truncated."""
    with pytest.raises(DataValidityError):
        OccupancyModelBuilder(np.array([[2.7, 0.0], [0.4, 0.0]]), n_visits=4)


def test_small_topic_label_mismatch():
    """Test that labels must align with documents."""
    with pytest.raises(ValueError, match="one label per document"):
        TopicModelBuilder(np.ones((3, 2), dtype=int), [0, None], n_topics=2)


# ============================================================================
# MEDIUM TESTS: Built models
# ============================================================================

def test_medium_free_parameters():
    """Test that every parameter is a free random variable by default."""
    model = NoncomplianceModelBuilder(VITAMIN_A).build()
    assert {rv.name for rv in model.free_RVs} == {"pi_c", "eta_c0", "eta_c1", "eta_n"}
    assert "marginal_loglik" in model.named_vars
    assert "cace" in model.named_vars


def test_medium_partially_fixed():
    """Test that fixed parameters drop out of the free variables."""
    mb = NoncomplianceModelBuilder(VITAMIN_A)
    model = mb.build(fixed={"eta_n": 0.8})
    assert {rv.name for rv in model.free_RVs} == {"pi_c", "eta_c0", "eta_c1"}
    assert mb.get_model() is model


def test_medium_vitamin_a_graph_matches_numpy():
    """Test the PyMC marginal likelihood against the numpy evaluator."""
    model = NoncomplianceModelBuilder(VITAMIN_A, normalized=False).build(fixed=ONE_SIDED)
    graph = float(model["marginal_loglik"].eval())
    reference = one_sided_likelihood(VITAMIN_A, normalized=False).log_likelihood(ONE_SIDED)
    assert_allclose(graph, reference, rtol=1e-10)


def test_medium_two_sided_graph_matches_numpy():
    """Test the three-type model graph with a fixed class simplex."""
    units = [
        Unit((1, 1), (5, 8), multiplicity=2),
        Unit((1, 0), (1, 4)),
        Unit((0, 1), (3, 3)),
        Unit((0, 0), (2, 6), multiplicity=3),
    ]
    params = {
        "class_probs": np.array([0.5, 0.3, 0.2]),
        "eta_c0": 0.4, "eta_c1": 0.6, "eta_n": 0.3, "eta_a": 0.7,
    }
    model = NoncomplianceModelBuilder(units, two_sided=True).build(fixed=params)
    graph = float(model["marginal_loglik"].eval())
    assert_allclose(graph, two_sided_likelihood(units).log_likelihood(params), rtol=1e-10)


def test_medium_fixed_simplex_shape_checked():
    """Test that a fixed simplex must have the declared shape."""
    mb = NoncomplianceModelBuilder(VITAMIN_A, two_sided=True)
    with pytest.raises(ValueError, match="must have shape"):
        mb.build(fixed={"class_probs": [0.5, 0.5]})


def test_medium_occupancy_graph_matches_numpy():
    """Test two-level marginalization in the graph, augmented species included."""
    y = augment(np.array([[2, 0, 1], [0, 0, 4], [1, 1, 0]]), 3)
    params = {"omega": 0.6, "psi": 0.4, "p": 0.3}
    model = OccupancyModelBuilder(y, n_visits=4).build(fixed=params)
    graph = float(model["marginal_loglik"].eval())
    reference = occupancy_likelihood(y, n_visits=4).log_likelihood(params)
    assert_allclose(graph, reference, rtol=1e-10)


def test_medium_topic_graph_matches_numpy():
    """Test the naive Bayes graph with labelled and unlabelled documents."""
    counts = np.array([[3, 1, 0], [0, 1, 4], [2, 2, 2], [1, 0, 5]])
    labels = [0, 1, None, None]
    params = {
        "theta": np.array([0.3, 0.7]),
        "phi": np.array([[0.6, 0.3, 0.1], [0.1, 0.2, 0.7]]),
    }
    model = TopicModelBuilder(counts, labels, n_topics=2).build(fixed=params)
    graph = float(model["marginal_loglik"].eval())
    reference = naive_bayes_likelihood(counts, labels, n_topics=2).log_likelihood(params)
    assert_allclose(graph, reference, rtol=1e-10)


def test_medium_cace_deterministic():
    """Test the complier effect at fixed rates."""
    model = NoncomplianceModelBuilder(VITAMIN_A).build(fixed=ONE_SIDED)
    assert_allclose(float(model["cace"].eval()), 0.2, rtol=1e-12)


def test_medium_boundary_rates_match_numpy():
    """Test rates pinned at 0 and 1 give the same value as the numpy evaluator."""
    units = [
        Unit((1, 1), (0, 10)),
        Unit((1, 0), (10, 10)),
        Unit((0, 0), (0, 10)),
    ]
    params = {"pi_c": 0.5, "eta_c0": 0.0, "eta_c1": 0.0, "eta_n": 1.0}
    model = NoncomplianceModelBuilder(units).build(fixed=params)
    graph = float(model["marginal_loglik"].eval())
    reference = one_sided_likelihood(units).log_likelihood(params)
    assert np.isfinite(graph)
    assert_allclose(graph, reference, rtol=1e-10)
    assert_allclose(graph, 3 * np.log(0.5), rtol=1e-10)


def test_medium_occupancy_perfect_detection_matches_numpy():
    """Test p = 1 with every detected site seen on all visits."""
    y = augment(np.array([[4, 0], [0, 4]]), 2)
    params = {"omega": 0.6, "psi": 0.4, "p": 1.0}
    model = OccupancyModelBuilder(y, n_visits=4).build(fixed=params)
    graph = float(model["marginal_loglik"].eval())
    reference = occupancy_likelihood(y, n_visits=4).log_likelihood(params)
    assert np.isfinite(graph)
    assert_allclose(graph, reference, rtol=1e-10)


def test_medium_topic_zero_word_probability_matches_numpy():
    """Test that a zero φ entry is harmless for documents not using the word."""
    counts = np.array([[3, 1, 0], [0, 1, 4], [2, 2, 0], [1, 0, 5]])
    labels = [0, 1, None, None]
    params = {
        "theta": np.array([0.4, 0.6]),
        "phi": np.array([[0.5, 0.5, 0.0], [0.2, 0.3, 0.5]]),
    }
    model = TopicModelBuilder(counts, labels, n_topics=2).build(fixed=params)
    graph = float(model["marginal_loglik"].eval())
    reference = naive_bayes_likelihood(counts, labels, n_topics=2).log_likelihood(params)
    assert np.isfinite(graph)
    assert_allclose(graph, reference, rtol=1e-10)
