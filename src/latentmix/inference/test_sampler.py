"""
Tests for NUTS sampler and diagnostics.

Progressive sizing:
- Small (synthetic): Diagnostic computation only (instant)
- Medium: Sampler configuration and ArviZ summaries on synthetic draws (instant)

No test runs MCMC; the sampler is exercised end to end by
`NUTSSampler().sample(NoncomplianceModelBuilder(units).build())`.
"""

import pytest
import numpy as np
from numpy.testing import assert_allclose
import arviz as az

from latentmix.inference.sampler import (
    DiagnosticsComputer,
    InferenceSummary,
    NUTSSampler,
    PosteriorSummary,
)


def _synthetic_idata(n_chains=2, n_draws=400, n_divergent=0, seed=0):
    rng = np.random.RandomState(seed)
    diverging = np.zeros((n_chains, n_draws), dtype=bool)
    diverging.flat[:n_divergent] = True
    return az.from_dict(
        posterior={
            "pi_c": rng.beta(60, 40, size=(n_chains, n_draws)),
            "cace": rng.normal(0.2, 0.05, size=(n_chains, n_draws)),
        },
        sample_stats={"diverging": diverging},
    )


# ============================================================================
# SMALL TESTS: Synthetic diagnostics (no real sampling)
# ============================================================================

def test_small_rhat_perfect_convergence():
    """Test Rhat with perfectly converged chains."""
    # All chains identical -> Rhat = 1.0
    chains = np.array([
        np.ones(100),
        np.ones(100),
    ])
    rhat = DiagnosticsComputer.rhat(chains)
    assert np.isclose(rhat, 1.0, atol=0.01), f"Expected ~1.0, got {rhat}"


def test_small_rhat_poor_convergence():
    """Test Rhat with chains stuck in different places."""
    rng = np.random.RandomState(42)
    chains = np.array([
        rng.normal(-5, 1, 100),
        rng.normal(5, 1, 100),
    ])
    rhat = DiagnosticsComputer.rhat(chains)
    assert rhat > 1.5, f"Expected Rhat > 1.5, got {rhat}"


def test_small_split_rhat_catches_trend():
    """Test that two chains drifting the same way still fail split-Rhat."""
    trend = np.linspace(0.0, 10.0, 200)
    chains = np.array([trend, trend + 0.01])
    assert DiagnosticsComputer.rhat(chains) > 1.5


def test_small_rhat_needs_two_chains():
    """Test that Rhat needs at least two chains."""
    with pytest.raises(ValueError, match="at least 2 chains"):
        DiagnosticsComputer.rhat(np.ones((1, 50)))


def test_small_ess_independent_draws():
    """Test ESS close to n for independent draws."""
    rng = np.random.RandomState(0)
    ess = DiagnosticsComputer.ess(rng.normal(size=1000))
    assert ess > 700, f"Expected ESS near 1000, got {ess}"


def test_small_ess_autocorrelated_draws():
    """Test that a sticky AR(1) chain has a much smaller ESS."""
    rng = np.random.RandomState(1)
    x = np.zeros(1000)
    for t in range(1, 1000):
        x[t] = 0.95 * x[t - 1] + rng.normal()
    ess = DiagnosticsComputer.ess(x)
    assert ess < 200, f"Expected small ESS, got {ess}"


def test_small_ess_matches_arviz():
    """Test that ESS is ArviZ's bulk ESS, and n for a constant chain."""
    rng = np.random.RandomState(2)
    x = rng.normal(size=500)
    assert_allclose(DiagnosticsComputer.ess(x), az.ess(x[None, :], method="bulk"))
    assert DiagnosticsComputer.ess(np.full(50, 0.3)) == 50.0


def test_small_divergence_rate():
    """Test the divergent fraction of draws."""
    idata = _synthetic_idata(n_chains=2, n_draws=100, n_divergent=5)
    assert_allclose(DiagnosticsComputer.divergence_rate(idata), 5 / 200)


# ============================================================================
# MEDIUM TESTS: Sampler configuration and summaries
# ============================================================================

def test_medium_sampler_defaults():
    """Test default NUTS settings."""
    sampler = NUTSSampler()
    assert sampler.target_accept == 0.85
    assert sampler.max_treedepth == 10
    assert sampler.max_divergence_rate == 0.05
    assert "target_accept=0.85" in repr(sampler)


def test_medium_sampler_validation():
    """Test that invalid sampler settings are rejected."""
    with pytest.raises(ValueError, match="target_accept"):
        NUTSSampler(target_accept=0.4)
    with pytest.raises(ValueError, match="max_treedepth"):
        NUTSSampler(max_treedepth=3)
    with pytest.raises(ValueError, match="max_divergence_rate"):
        NUTSSampler(max_divergence_rate=1.5)


def test_medium_inference_summary():
    """Test summary bookkeeping and posterior means."""
    idata = _synthetic_idata(n_chains=2, n_draws=400)
    summary = InferenceSummary(idata, n_draws=400, n_tune=200, n_chains=2, sampling_time=1.5)
    assert summary.total_samples == 800
    assert_allclose(summary.posterior_mean("cace"), 0.2, atol=0.01)
    assert "chains=2" in repr(summary)
    with pytest.raises(KeyError):
        summary.posterior_mean("eta_a")


def test_medium_summary_stats():
    """Test ArviZ summary extraction with 95% intervals."""
    idata = _synthetic_idata(n_chains=2, n_draws=400)
    stats = PosteriorSummary.summary_stats(idata, var_names=["pi_c", "cace"])
    assert set(stats) == {"pi_c", "cace"}
    cace = stats["cace"]
    assert cace["hdi_low"] < cace["mean"] < cace["hdi_high"]
    assert_allclose(cace["mean"], 0.2, atol=0.01)
    assert cace["rhat"] < 1.05
    assert cace["ess_bulk"] > 100
