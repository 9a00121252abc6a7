"""
Tests for the study simulator.

Progressive sizing:
- Small: shapes, validation, reproducibility (instant)
- Medium: parameter recovery from a few thousand units (<1 second)
"""

import pytest
import numpy as np

from latentmix.simulation.simulator import StudySimulator
from latentmix.studies.noncompliance import (
    aggregate_individuals,
    one_sided_likelihood,
    two_sided_likelihood,
)
from latentmix.studies.occupancy import augment, occupancy_likelihood
from latentmix.studies.topics import naive_bayes_likelihood

ONE_SIDED = {"pi_c": 0.7, "eta_c0": 0.3, "eta_c1": 0.6, "eta_n": 0.2}
TWO_SIDED = {
    "class_probs": np.array([0.5, 0.3, 0.2]),
    "eta_c0": 0.3, "eta_c1": 0.6, "eta_n": 0.2, "eta_a": 0.8,
}


# ============================================================================
# SMALL TESTS: Shapes, validation, reproducibility
# ============================================================================

def test_small_trial_shapes():
    """Test noncompliance trial output shapes and types."""
    z, w, y, types = StudySimulator(random_seed=1).noncompliance_trial(50, ONE_SIDED)
    assert z.shape == w.shape == y.shape == types.shape == (50,)
    assert set(np.unique(y)) <= {0, 1}


def test_small_trial_reproducible():
    """Test that equal seeds give equal data."""
    a = StudySimulator(random_seed=7).noncompliance_trial(30, ONE_SIDED)
    b = StudySimulator(random_seed=7).noncompliance_trial(30, ONE_SIDED)
    for left, right in zip(a, b):
        assert np.array_equal(left, right)


def test_small_one_sided_has_no_control_takers():
    """Test that one-sided data never shows treatment without assignment."""
    z, w, y, _ = StudySimulator(random_seed=3).noncompliance_trial(200, ONE_SIDED)
    assert not np.any((z == 0) & (w == 1))
    one_sided_likelihood(aggregate_individuals(z, w, y))


def test_small_two_sided_always_takers_receive():
    """Test that always-takers receive treatment regardless of assignment."""
    z, w, y, types = StudySimulator(random_seed=3).noncompliance_trial(
        300, TWO_SIDED, two_sided=True
    )
    assert np.all(w[types == "always_taker"] == 1)
    assert np.all(w[types == "never_taker"] == 0)
    two_sided_likelihood(aggregate_individuals(z, w, y))


def test_small_trial_validation():
    """Test that bad configurations are rejected."""
    sim = StudySimulator(random_seed=0)
    with pytest.raises(ValueError, match="n_units must be positive"):
        sim.noncompliance_trial(0, ONE_SIDED)
    with pytest.raises(ValueError, match="pi_c must be in"):
        sim.noncompliance_trial(10, dict(ONE_SIDED, pi_c=1.5))
    with pytest.raises(ValueError, match="class_probs"):
        sim.noncompliance_trial(10, dict(TWO_SIDED, class_probs=[0.5, 0.5, 0.5]), two_sided=True)


def test_small_survey_detected_only():
    """Test that only detected species are recorded, within the visit count."""
    y, n_available = StudySimulator(random_seed=2).occupancy_survey(
        40, n_sites=5, n_visits=3, omega=0.6, psi=0.5, p=0.4
    )
    assert y.shape[1] == 5
    assert np.all(np.any(y > 0, axis=1))
    assert np.all((y >= 0) & (y <= 3))
    assert y.shape[0] <= n_available <= 40
    occupancy_likelihood(augment(y, 10), n_visits=3)


def test_small_survey_certain_detection():
    """Test omega = psi = p = 1: every species seen on every visit."""
    y, n_available = StudySimulator(random_seed=2).occupancy_survey(
        6, n_sites=2, n_visits=4, omega=1.0, psi=1.0, p=1.0
    )
    assert n_available == 6
    assert np.all(y == 4)


def test_small_corpus_shapes():
    """Test corpus shapes, document lengths and revealed labels."""
    theta = np.array([0.4, 0.6])
    phi = np.array([[0.7, 0.2, 0.1], [0.1, 0.3, 0.6]])
    counts, labels, topics = StudySimulator(random_seed=5).topic_corpus(
        20, doc_length=15, theta=theta, phi=phi, label_fraction=0.5
    )
    assert counts.shape == (20, 3)
    assert np.all(counts.sum(axis=1) == 15)
    assert all(label is None or label == k for label, k in zip(labels, topics))
    naive_bayes_likelihood(counts, labels, n_topics=2)


def test_small_corpus_unlabelled():
    """Test label_fraction = 0 hides every topic."""
    _, labels, _ = StudySimulator(random_seed=5).topic_corpus(
        10, 5, [0.5, 0.5], [[0.5, 0.5], [0.2, 0.8]], label_fraction=0.0
    )
    assert labels == [None] * 10


def test_small_corpus_validation():
    """Test that mismatched or invalid topic parameters are rejected."""
    sim = StudySimulator(random_seed=0)
    with pytest.raises(ValueError, match="phi must have shape"):
        sim.topic_corpus(5, 5, [0.5, 0.5], [[1.0, 0.0]])
    with pytest.raises(ValueError, match="theta"):
        sim.topic_corpus(5, 5, [0.5, 0.6], [[1.0, 0.0], [0.0, 1.0]])


# ============================================================================
# MEDIUM TESTS: Parameter recovery
# ============================================================================

def test_medium_complier_share_recovered():
    """Test that the treated-arm take-up rate recovers pi_c."""
    z, w, _, _ = StudySimulator(random_seed=11).noncompliance_trial(5000, ONE_SIDED)
    take_up = w[z == 1].mean()
    assert abs(take_up - ONE_SIDED["pi_c"]) < 0.03


def test_medium_true_parameters_beat_wrong_ones():
    """Test that the likelihood prefers the generating parameters."""
    z, w, y, _ = StudySimulator(random_seed=12).noncompliance_trial(3000, ONE_SIDED)
    lik = one_sided_likelihood(aggregate_individuals(z, w, y))
    wrong = dict(ONE_SIDED, pi_c=0.3, eta_c1=0.3)
    assert lik(ONE_SIDED) > lik(wrong)
