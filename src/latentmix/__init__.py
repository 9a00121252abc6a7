"""
Marginal likelihoods for models with discrete latent classes.

Discrete latent variables (compliance types, species availability, document
topics) are summed out of the likelihood on the log scale so that
gradient-based samplers only see continuous parameters.

**Subpackages:**
- classes: which latent classes each unit is consistent with
- likelihood: densities, log-sum-exp mixtures, priors, the accumulator
- studies: noncompliance, occupancy and naive Bayes topic models
- inference: PyMC models and NUTS sampling
- simulation: synthetic datasets with known parameters
"""

__version__ = "0.1.0"
