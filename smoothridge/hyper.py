"""Fixed-point updates for the prior hyperparameters ``alpha`` and ``rho``."""

from __future__ import annotations

import numpy as np

from ._validation import NumericalError
from .ops import quad_form, trace_of_product

# Roots whose imaginary part is below this (relative to |root|) count as real.
_IMAG_TOL = 1e-10


def second_moments(mu: np.ndarray, L: np.ndarray, Mdiag, Moffdiag) -> tuple[float, float, float]:
    """
    Posterior second moments of the filter, ``E[k k'] = mu mu' + L``, summed
    three ways:

      A : over every position
      B : over interior positions only
      C : half the sum over valid neighbour pairs
    """
    A = float(mu @ mu) + float(np.trace(L))
    B = quad_form(Mdiag, mu) + trace_of_product(Mdiag, L)
    C = 0.5 * (quad_form(Moffdiag, mu) + trace_of_product(Moffdiag, L.T))
    return A, B, C


def rho_cubic_coeffs(A: float, B: float, C: float, nx: int) -> np.ndarray:
    """Coefficients (highest power first) of the stationarity condition in rho."""
    aa = nx / (nx - 1)
    return np.array([-B, (2 - aa) * C, (aa - 1) * A + aa * B, -aa * C])


def select_rho(coeffs: np.ndarray, maxrho: float) -> float:
    """
    Pick the admissible root of the rho polynomial.

    A single real root is used as is; with several real roots the median is
    taken. The result is clipped to ``[0, maxrho]``.
    """
    if not np.all(np.isfinite(coeffs)):
        raise NumericalError(f"Non-finite rho polynomial coefficients {np.asarray(coeffs).tolist()}")
    roots = np.roots(coeffs)
    real = roots[np.abs(roots.imag) <= _IMAG_TOL * np.maximum(1.0, np.abs(roots))].real
    if real.size == 0:
        raise NumericalError(
            f"No real root for rho (polynomial coefficients {np.asarray(coeffs).tolist()})"
        )
    rho = float(real[0]) if real.size == 1 else float(np.median(real))
    return min(max(rho, 0.0), maxrho)


def update_cov_params(
    mu: np.ndarray, L: np.ndarray, maxrho: float, Mdiag, Moffdiag
) -> tuple[float, float]:
    """
    Re-estimate (alpha, rho) from the current posterior mean and covariance.

    Parameters
    ----------
    mu : (nx,) array      posterior mean
    L  : (nx×nx) array    posterior covariance
    maxrho : float        upper bound for rho
    Mdiag, Moffdiag       boundary matrices from ``ops.boundary_matrices``

    Returns
    -------
    alpha, rho
    """
    nx = mu.shape[0]
    A, B, C = second_moments(mu, L, Mdiag, Moffdiag)
    rho = select_rho(rho_cubic_coeffs(A, B, C, nx), maxrho)

    denom = A + rho**2 * B - 2 * rho * C
    if not np.isfinite(denom) or denom <= 0:
        raise NumericalError(
            f"Degenerate posterior: alpha denominator is {denom!r} (rho={rho})"
        )
    alpha = nx * (1 - rho**2) / denom
    return float(alpha), rho
