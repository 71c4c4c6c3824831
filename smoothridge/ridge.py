"""Empirical-Bayes ridge regression used to warm-start the smooth prior fit."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np
import scipy.sparse as sp

from ._validation import NumericalError, _validate_positive_int
from .ops import SuffStats, gaussian_posterior

logger = logging.getLogger(__name__)


@dataclass
class RidgeParams:
    alpha: float
    nsevar: float


def auto_ridge_fixedpoint(
    stats: SuffStats,
    dof_correct: bool = True,
    *,
    maxiter: int = 1000,
    tol: float = 1e-6,
    maxalpha: float = 1e8,
):
    """
    Empirical-Bayes ridge regression (prior k ~ N(0, I/alpha)) via the
    MacKay fixed-point updates:

        gamma  = nx - alpha·trace(L)           effective number of parameters
        alpha  = gamma / (mu'mu)
        nsevar = ||y - X mu||^2 / (ny - gamma)    (dof_correct=True)
               = ||y - X mu||^2 / ny              (dof_correct=False)

    Parameters
    ----------
    stats : SuffStats
    dof_correct : bool    subtract the effective number of parameters from ny
    maxiter : int         max fixed-point iterations
    tol : float           stop when the relative change in (alpha, nsevar) is below this
    maxalpha : float      alpha above which the filter is taken to be all-zeros

    Returns
    -------
    k_ridge, RidgeParams(alpha, nsevar), info
      info includes ``n_iter`` and ``status`` (``"converged"``,
      ``"maxiter"`` or ``"alpha_saturated"``).
    """
    maxiter = _validate_positive_int(maxiter, name="maxiter")
    xx, xy, yy, ny, nx = stats.xx, stats.xy, stats.yy, stats.ny, stats.nx
    Meye = sp.identity(nx, format="csr")

    nsevar = yy / ny
    if not nsevar > 0:
        raise NumericalError(f"Ridge warm start needs positive output energy, got yy={yy!r}")
    diag_mean = float(xx.diagonal().mean())
    alpha = 1e-3 * diag_mean / nsevar if diag_mean > 0 else 1.0

    status = "maxiter"
    n_iter = 0
    for n_iter in range(1, maxiter + 1):
        mu, L = gaussian_posterior(xx, xy, nsevar, alpha * Meye)

        gamma = nx - alpha * float(np.trace(L))
        mu_sq = float(mu @ mu)
        alpha2 = gamma / mu_sq if mu_sq > 0 else np.inf
        alpha2 = min(alpha2, maxalpha)
        if not alpha2 > 0:
            raise NumericalError(
                f"Ridge warm start produced non-positive alpha={alpha2!r}",
                iteration=n_iter, alpha=alpha, nsevar=nsevar,
            )

        resids = yy - 2 * float(mu @ xy) + float(mu @ (xx @ mu))
        dof = ny - gamma if dof_correct else ny
        if dof <= 0:
            raise NumericalError(
                f"Ridge warm start has no residual degrees of freedom (ny={ny}, gamma={gamma:.3g})",
                iteration=n_iter, alpha=alpha, nsevar=nsevar,
            )
        nsevar2 = resids / dof
        if not (np.isfinite(nsevar2) and nsevar2 > 0):
            raise NumericalError(
                f"Ridge warm start produced non-positive noise variance {nsevar2!r} "
                f"(residual error {resids:.3g}); the data may be fit exactly",
                iteration=n_iter, alpha=alpha, nsevar=nsevar,
            )

        change = abs(alpha2 - alpha) / alpha + abs(nsevar2 - nsevar) / nsevar
        alpha, nsevar = alpha2, nsevar2
        if alpha >= maxalpha:
            status = "alpha_saturated"
            break
        if change < tol:
            status = "converged"
            break

    logger.debug(
        "ridge warm start: %s after %d steps (alpha=%.4g, nsevar=%.4g)",
        status, n_iter, alpha, nsevar,
    )
    k_ridge = gaussian_posterior(xx, xy, nsevar, alpha * Meye, return_cov=False)
    info = {"n_iter": n_iter, "status": status}
    return k_ridge, RidgeParams(alpha=float(alpha), nsevar=float(nsevar)), info
