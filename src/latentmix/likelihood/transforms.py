"""
Parameter transforms between constrained and unconstrained spaces.

Samplers and optimizers that work on ℝⁿ see a flat vector x. Each
parameter is mapped to its declared domain and the log-Jacobian of the map
is added to the log-density once per parameter:

    unit_interval   θ = logit⁻¹(x)     log|J| = log θ + log(1-θ)
    correlation     θ = tanh(x)        log|J| = log(1 - θ²)
    positive        θ = exp(x)         log|J| = x
    real            θ = x              log|J| = 0
    simplex (K)     θ = softmax([x, 0]) (K-1 free)
                                       log|J| = Σ_k log θ_k
"""

import logging
from typing import Dict, Mapping, Optional

import numpy as np
from numpy.typing import NDArray
from scipy.optimize import minimize
from scipy.special import expit, logit, logsumexp

from latentmix.likelihood.accumulator import LatentClassLikelihood

logger = logging.getLogger(__name__)

_LOG2 = np.log(2.0)


def _softplus(x):
    return np.logaddexp(0.0, x)


class UnconstrainedLogDensity:
    """
    Log-density of a latent-class model on an unconstrained vector.

    Parameters
    ----------
    likelihood : LatentClassLikelihood
        Model whose `log_posterior` is evaluated on constrained values.
    template : mapping
        Example parameter values; only their shapes are used.

    Attributes
    ----------
    dim : int
        Length of the unconstrained vector.
    """

    def __init__(self, likelihood: LatentClassLikelihood, template: Mapping) -> None:
        self.likelihood = likelihood
        self._layout = []
        offset = 0
        for name, prior in likelihood.priors.items():
            if name not in template:
                raise ValueError(f"template is missing parameter {name!r}")
            shape = np.shape(template[name])
            if prior.domain == "simplex":
                if len(shape) == 0 or shape[-1] < 2:
                    raise ValueError(
                        f"Simplex parameter {name!r} needs a trailing axis of length >= 2"
                    )
                free_shape = shape[:-1] + (shape[-1] - 1,)
            else:
                free_shape = shape
            size = int(np.prod(free_shape, dtype=int))
            self._layout.append((name, prior.domain, shape, free_shape, offset, size))
            offset += size
        self.dim = offset

    def to_constrained(self, x: NDArray[np.float64]):
        """Map an unconstrained vector to (params, total log-Jacobian)."""
        x = np.asarray(x, dtype=np.float64)
        if x.shape != (self.dim,):
            raise ValueError(f"x must have shape ({self.dim},). Got {x.shape}")

        params: Dict[str, object] = {}
        log_jac = 0.0
        for name, domain, shape, free_shape, offset, size in self._layout:
            y = x[offset:offset + size].reshape(free_shape)
            if domain == "unit_interval":
                theta = expit(y)
                log_jac += float(np.sum(-_softplus(-y) - _softplus(y)))
            elif domain == "correlation":
                theta = np.tanh(y)
                log_jac += float(np.sum(2.0 * (_LOG2 - y - _softplus(-2.0 * y))))
            elif domain == "positive":
                theta = np.exp(y)
                log_jac += float(np.sum(y))
            elif domain == "real":
                theta = y.copy()
            else:
                z = np.concatenate([y, np.zeros(shape[:-1] + (1,))], axis=-1)
                log_theta = z - logsumexp(z, axis=-1, keepdims=True)
                theta = np.exp(log_theta)
                log_jac += float(np.sum(log_theta))
            params[name] = float(theta) if theta.ndim == 0 else theta
        return params, log_jac

    def to_unconstrained(self, params: Mapping) -> NDArray[np.float64]:
        """Inverse of `to_constrained` for values strictly inside their domain."""
        x = np.empty(self.dim)
        for name, domain, shape, free_shape, offset, size in self._layout:
            theta = np.asarray(params[name], dtype=np.float64)
            if domain == "unit_interval":
                y = logit(theta)
            elif domain == "correlation":
                y = np.arctanh(theta)
            elif domain == "positive":
                y = np.log(theta)
            elif domain == "real":
                y = theta
            else:
                y = np.log(theta[..., :-1]) - np.log(theta[..., -1:])
            x[offset:offset + size] = np.ravel(y)
        return x

    def __call__(self, x: NDArray[np.float64]) -> float:
        params, log_jac = self.to_constrained(x)
        lp = self.likelihood.log_posterior(params)
        if lp == -np.inf:
            return -np.inf
        return lp + log_jac

    def __repr__(self) -> str:
        return f"UnconstrainedLogDensity(dim={self.dim}, likelihood={self.likelihood!r})"


def posterior_mode(
    density: UnconstrainedLogDensity,
    start: Mapping,
    method: str = "Nelder-Mead",
    options: Optional[dict] = None,
):
    """
    Maximize the unconstrained log-density from a starting point.

    The mode is found in the unconstrained space, so it includes the
    log-Jacobian (it is the mode of the transformed density, as used to
    initialize a sampler).

    Returns
    -------
    params : dict
        Constrained parameter values at the optimum.
    result : scipy.optimize.OptimizeResult
    """
    x0 = density.to_unconstrained(start)

    def objective(x):
        value = density(x)
        return np.inf if value == -np.inf else -value

    opts = {"maxiter": 20000, "xatol": 1e-8, "fatol": 1e-10}
    if method != "Nelder-Mead":
        opts = {}
    opts.update(options or {})
    result = minimize(objective, x0, method=method, options=opts)
    if not result.success:
        logger.warning("Posterior mode search did not converge: %s", result.message)
    params, _ = density.to_constrained(result.x)
    return params, result
