from __future__ import annotations

import numpy as np
import scipy.sparse as sp

from ._validation import NumericalError
from .ops import SuffStats, _add, gaussian_posterior


def mse(y: np.ndarray, yhat: np.ndarray) -> float:
    """Mean squared error between two arrays."""
    return float(np.mean((np.asarray(y) - np.asarray(yhat)) ** 2))


def _logdet_spd(M) -> float:
    M = M.toarray() if sp.issparse(M) else np.asarray(M)
    sign, logdet = np.linalg.slogdet(M)
    if sign <= 0 or not np.isfinite(logdet):
        raise NumericalError(
            f"Log determinant needs a positive-definite matrix (sign={sign:g}, logdet={logdet:g})"
        )
    return float(logdet)


def log_evidence(Cprior_inv, nsevar: float, stats: SuffStats) -> float:
    """
    Log marginal likelihood of y under k ~ N(0, Cprior), y | k ~ N(X k, nsevar·I),
    computed from the sufficient statistics alone.

    Returns
    -------
    float
        -0.5 * [ ny log(2π nsevar) - log det(Cprior_inv)
                 + log det(xx/nsevar + Cprior_inv) + (yy - xy'mu)/nsevar ]
        where mu is the posterior mean.
    """
    mu = gaussian_posterior(stats.xx, stats.xy, nsevar, Cprior_inv, return_cov=False)
    logdet_prior = _logdet_spd(Cprior_inv)
    logdet_post = _logdet_spd(_add(stats.xx / nsevar, Cprior_inv))
    quad = (stats.yy - float(stats.xy @ mu)) / nsevar
    return float(
        -0.5 * (stats.ny * np.log(2.0 * np.pi * nsevar) - logdet_prior + logdet_post + quad)
    )
