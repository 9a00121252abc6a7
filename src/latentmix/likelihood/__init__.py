"""
Latent-class marginal likelihoods.

**Densities (densities.py):**
- Bernoulli / binomial log-mass in log-odds form, multinomial kernel

**Mixtures (mixture.py):**
- Max-shift log-sum-exp, finite mixtures, repeated sub-mixtures

**Priors (priors.py):**
- Explicit per-parameter priors with domain constraints

**Accumulator (accumulator.py):**
- Units, partition-aware per-unit marginals, total log-posterior density

**Transforms (transforms.py):**
- Unconstrained parameterization with log-Jacobians, posterior mode search
"""

from latentmix.likelihood.accumulator import LatentClassLikelihood, Unit, safe_log
from latentmix.likelihood.densities import (
    bernoulli_logit_lpmf,
    bernoulli_lpmf,
    binomial_logit_lpmf,
    binomial_lpmf,
    multinomial_lpmf,
)
from latentmix.likelihood.mixture import log1m_exp, log_mix, log_repeat, log_sum_exp
from latentmix.likelihood.priors import ParameterPrior, in_domain, uniform_rate
from latentmix.likelihood.transforms import UnconstrainedLogDensity, posterior_mode

__all__ = [
    "LatentClassLikelihood",
    "Unit",
    "safe_log",
    "bernoulli_logit_lpmf",
    "bernoulli_lpmf",
    "binomial_logit_lpmf",
    "binomial_lpmf",
    "multinomial_lpmf",
    "log_sum_exp",
    "log_mix",
    "log_repeat",
    "log1m_exp",
    "ParameterPrior",
    "in_domain",
    "uniform_rate",
    "UnconstrainedLogDensity",
    "posterior_mode",
]
