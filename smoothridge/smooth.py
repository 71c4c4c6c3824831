import logging
from dataclasses import dataclass

import numpy as np

from ._validation import NumericalError, _validate_init_params, _validate_options
from .hyper import update_cov_params
from .metrics import log_evidence
from .ops import SuffStats, boundary_matrices, gaussian_posterior, prior_precision, trace_of_product
from .ridge import auto_ridge_fixedpoint

logger = logging.getLogger(__name__)

RHO_INIT = 0.5


@dataclass
class SmoothRidgeOptions:
    maxiter: int = 5000        # max fixed-point iterations
    tol: float = 1e-5          # stop if change in hyperparameters is below this
    maxalpha: float = 1e8      # alpha above which the filter is shrunk to all-zeros
    maxrho: float = 1 - 1e-4   # max allowed correlation falloff (< 1)


@dataclass
class SmoothRidgeParams:
    alpha: float   # prior precision
    rho: float     # exponential correlation falloff
    nsevar: float  # noise variance


def auto_smooth_ridge(
    stats: SuffStats,
    strt_inds=(0,),
    opts: SmoothRidgeOptions | None = None,
    init_prs: SmoothRidgeParams | None = None,
    *,
    track_evidence: bool = False,
):
    """
    Empirical-Bayes "smooth ridge regression" by fixed-point iteration.

    Estimates the prior precision ``alpha``, the exponential correlation
    falloff ``rho`` and the noise variance ``nsevar`` by (approximately)
    maximizing the marginal likelihood, then returns the MAP filter

        k_hat = (xx + nsevar·Cprior_inv)^{-1} xy

    under the prior with inverse covariance

        Cprior_inv = alpha/(1-rho^2) · [ 1     -rho
                                        -rho  1+rho^2  -rho
                                                ...
                                               -rho  1+rho^2  -rho
                                                      -rho     1  ]

    applied independently to each block of the filter.

    Parameters
    ----------
    stats : SuffStats            X'X, X'y, y'y and ny
    strt_inds : sequence of int  (0-based) indices at which a new block starts
    opts : SmoothRidgeOptions    iteration limits; defaults if None
    init_prs : SmoothRidgeParams initial hyperparameters; if None, alpha and
                                 nsevar come from EB ridge regression and rho=0.5
    track_evidence : bool        record the log evidence at each iteration

    Returns
    -------
    k_hat, hyperprs, Cprior_inv, info
      info includes:
        - status              "alpha_saturated", "converged" or "maxiter"
        - n_iter              number of fixed-point steps taken
        - dparams             last change in (alpha, rho, nsevar)
        - dparams_trace       change per step
        - log_evidence_trace  log evidence per step (empty unless track_evidence)
        - init                "ridge" or "user"

    Raises
    ------
    ConfigurationError
        Invalid block boundaries, options or initial hyperparameters.
    NumericalError
        A solve or update failed; carries the iteration and last hyperparameters.
    """
    opts = SmoothRidgeOptions() if opts is None else opts
    o = _validate_options(opts.maxiter, opts.tol, opts.maxalpha, opts.maxrho)
    nx, ny = stats.nx, stats.ny
    mats = boundary_matrices(nx, strt_inds)

    if init_prs is None:
        logger.info("Initializing with standard ridge regression")
        _, ridge_prs, _ = auto_ridge_fixedpoint(stats, dof_correct=True, maxalpha=o["maxalpha"])
        alpha, rho, nsevar = ridge_prs.alpha, RHO_INIT, ridge_prs.nsevar
        init = "ridge"
    else:
        alpha, rho, nsevar = _validate_init_params(init_prs.alpha, init_prs.rho, init_prs.nsevar)
        init = "user"

    jcount = 0
    dparams = np.inf
    dparams_trace = []
    evidence_trace = []

    while True:
        if alpha >= o["maxalpha"]:
            status = "alpha_saturated"
            break
        if dparams <= o["tol"]:
            status = "converged"
            break
        if jcount >= o["maxiter"]:
            status = "maxiter"
            break

        try:
            Cprior_inv = prior_precision(alpha, rho, mats)
            mu, L = gaussian_posterior(stats.xx, stats.xy, nsevar, Cprior_inv)
            if track_evidence:
                evidence_trace.append(log_evidence(Cprior_inv, nsevar, stats))

            alpha2, rho2 = update_cov_params(mu, L, o["maxrho"], mats.Mdiag, mats.Moffdiag)

            resids = stats.yy - 2 * float(mu @ stats.xy) + float(mu @ (stats.xx @ mu))
            trace_trm = trace_of_product(L, Cprior_inv)
            dof = ny - (nx - trace_trm)
            if dof <= 0:
                raise NumericalError(
                    f"No residual degrees of freedom (ny={ny}, nx={nx}, trace={trace_trm:.4g})"
                )
            nsevar2 = resids / dof
            if not (np.isfinite(nsevar2) and nsevar2 > 0):
                raise NumericalError(
                    f"Noise variance update is not positive ({nsevar2!r}, residual "
                    f"error {resids:.3g}); the data may be fit exactly"
                )
        except NumericalError as e:
            raise NumericalError(
                f"auto_smooth_ridge failed at iteration {jcount + 1} "
                f"(alpha={alpha:.6g}, rho={rho:.6g}, nsevar={nsevar:.6g}): {e}",
                iteration=jcount + 1, alpha=alpha, rho=rho, nsevar=nsevar,
            ) from e

        dparams = float(np.linalg.norm([alpha2 - alpha, rho2 - rho, nsevar2 - nsevar]))
        dparams_trace.append(dparams)
        jcount += 1
        alpha, rho, nsevar = alpha2, rho2, nsevar2
        logger.debug(
            "step %d: alpha=%.6g rho=%.6g nsevar=%.6g dparams=%.3g",
            jcount, alpha, rho, nsevar, dparams,
        )

    if status == "alpha_saturated":
        logger.info("auto_smooth_ridge: precision alpha=inf; filter is all-zeros (#%d steps)", jcount)
    elif status == "converged":
        logger.info("auto_smooth_ridge: finished EB smooth ridge regression in #%d steps", jcount)
    else:
        logger.info("auto_smooth_ridge: MAXITER (%d) steps; dparams=%f", jcount, dparams)

    try:
        Cprior_inv = prior_precision(alpha, rho, mats)
        k_hat = gaussian_posterior(stats.xx, stats.xy, nsevar, Cprior_inv, return_cov=False)
    except NumericalError as e:
        raise NumericalError(
            f"auto_smooth_ridge failed computing the MAP filter after {jcount} steps: {e}",
            iteration=jcount, alpha=alpha, rho=rho, nsevar=nsevar,
        ) from e

    info = {
        "status": status,
        "n_iter": jcount,
        "dparams": dparams,
        "dparams_trace": dparams_trace,
        "log_evidence_trace": evidence_trace,
        "init": init,
    }
    return k_hat, SmoothRidgeParams(alpha=alpha, rho=rho, nsevar=nsevar), Cprior_inv, info
