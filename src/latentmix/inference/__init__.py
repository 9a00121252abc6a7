"""
Bayesian inference for latent-class models.

This module provides the PyMC-based inference pipeline:
1. Model builders: PyMC models with the latent classes marginalized out
2. NUTSSampler: NUTS sampling with a divergence check
3. DiagnosticsComputer: Rhat, ESS, divergence rates
4. PosteriorSummary: ArviZ summary tables

**Usage:**
```python
from latentmix.inference import NoncomplianceModelBuilder, NUTSSampler
from latentmix.studies import units_from_counts

units = units_from_counts([(1, 1, 90, 100, 100), (1, 0, 40, 50, 50), (0, 0, 120, 150, 150)])

# 1. Define and build model
mb = NoncomplianceModelBuilder(units)
model = mb.build()

# 2. Sample with NUTS
sampler = NUTSSampler()
summary = sampler.sample(model, draws=1000, tune=1000, chains=2)

# 3. Posterior of the complier average causal effect
print(summary.posterior_mean("cace"))
```
"""

from latentmix.inference.model_builder import (
    ModelBuilder,
    NoncomplianceModelBuilder,
    OccupancyModelBuilder,
    PriorSpec,
    TopicModelBuilder,
    consistency_mask,
)
from latentmix.inference.sampler import (
    DiagnosticsComputer,
    InferenceSummary,
    NUTSSampler,
    PosteriorSummary,
)

__all__ = [
    "ModelBuilder",
    "NoncomplianceModelBuilder",
    "OccupancyModelBuilder",
    "PriorSpec",
    "TopicModelBuilder",
    "consistency_mask",
    "DiagnosticsComputer",
    "InferenceSummary",
    "NUTSSampler",
    "PosteriorSummary",
]
