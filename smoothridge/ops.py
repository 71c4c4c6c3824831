from __future__ import annotations

import warnings
from dataclasses import dataclass
from typing import NamedTuple

import numpy as np
import scipy.linalg as sla
import scipy.sparse as sp
import scipy.sparse.linalg as spla

from ._validation import (
    NumericalError,
    _validate_design,
    _validate_strt_inds,
    _validate_suff_stats,
)


@dataclass(frozen=True)
class SuffStats:
    """Second-order summary of a regression problem ``y = X k + noise``.

    Attributes
    ----------
    xx : (nx×nx) array or sparse matrix    X'X
    xy : (nx,) array                       X'y
    yy : float                             y'y
    ny : int                               number of samples (rows of X)
    """

    xx: np.ndarray | sp.spmatrix
    xy: np.ndarray
    yy: float
    ny: int

    def __post_init__(self) -> None:
        xx, xy, yy, ny = _validate_suff_stats(self.xx, self.xy, self.yy, self.ny)
        object.__setattr__(self, "xx", xx)
        object.__setattr__(self, "xy", xy)
        object.__setattr__(self, "yy", yy)
        object.__setattr__(self, "ny", ny)

    @property
    def nx(self) -> int:
        return self.xx.shape[0]


def suff_stats(X, y) -> SuffStats:
    """Compute ``SuffStats`` from a design matrix ``X`` (ny×nx) and response ``y``."""
    X, y = _validate_design(X, y)
    return SuffStats(xx=X.T @ X, xy=X.T @ y, yy=float(y @ y), ny=X.shape[0])


class BoundaryMatrices(NamedTuple):
    Meye: sp.csr_matrix
    Mdiag: sp.csr_matrix
    Moffdiag: sp.csr_matrix


def boundary_matrices(nx: int, strt_inds=(0,)) -> BoundaryMatrices:
    """
    Build the fixed sparse matrices used to assemble the prior precision.

    ``strt_inds`` holds the (0-based) index at which each block of the
    filter starts; blocks end one before the next start, the last at nx-1.

    Returns
    -------
    BoundaryMatrices(Meye, Mdiag, Moffdiag)
      Meye     : identity
      Mdiag    : diagonal, 1 at interior positions, 0 at block starts/ends
      Moffdiag : ±1 off-diagonals, 0 wherever a pair straddles two blocks
    """
    strt = _validate_strt_inds(strt_inds, nx)
    ends = np.append(strt[1:] - 1, nx - 1)

    interior = np.ones(nx)
    interior[strt] = 0.0
    interior[ends] = 0.0
    look_right = np.ones(nx)
    look_right[ends] = 0.0
    look_left = np.ones(nx)
    look_left[strt] = 0.0

    Meye = sp.identity(nx, format="csr")
    Mdiag = sp.diags(interior, 0, shape=(nx, nx), format="csr")
    # (i, i+1) couples i to its right neighbour, (i+1, i) couples i+1 to its left one
    Moffdiag = sp.diags(
        [look_right[:-1], look_left[1:]], [1, -1], shape=(nx, nx), format="csr"
    )
    return BoundaryMatrices(Meye, Mdiag, Moffdiag)


def prior_precision(alpha: float, rho: float, mats: BoundaryMatrices) -> sp.csr_matrix:
    """
    Inverse prior covariance with exponential correlation falloff:

        C^{-1} = alpha/(1-rho^2) · [Meye + rho^2 Mdiag - rho Moffdiag]

    i.e. within a block ``1`` on the edge diagonal, ``1+rho^2`` on the
    interior diagonal and ``-rho`` on the off-diagonals, giving a prior
    covariance ``C(dt) = rho^|dt| / alpha``.
    """
    Meye, Mdiag, Moffdiag = mats
    return sp.csr_matrix(alpha * (Meye + rho**2 * Mdiag - rho * Moffdiag) / (1.0 - rho**2))


def _add(xx, M, scale: float = 1.0):
    """Return ``xx + scale·M`` keeping ``xx``'s storage (dense or sparse)."""
    if sp.issparse(xx):
        return sp.csr_matrix(xx + scale * M)
    M_dense = M.toarray() if sp.issparse(M) else np.asarray(M)
    return xx + scale * M_dense


def trace_of_product(A, B) -> float:
    """``trace(A @ B)`` computed as ``sum(A ∘ B')`` for dense or sparse inputs."""
    if sp.issparse(A):
        return float(A.multiply(B.T).sum())
    if sp.issparse(B):
        return float(B.T.multiply(A).sum())
    return float(np.sum(A * B.T))


def quad_form(M, x: np.ndarray) -> float:
    """``x' M x`` for dense or sparse ``M``."""
    return float(x @ (M @ x))


def _check_finite(A, what: str) -> None:
    values = A.data if sp.issparse(A) else A
    if not np.all(np.isfinite(values)):
        raise NumericalError(f"{what} has non-finite entries")


def _solve(A, b: np.ndarray) -> np.ndarray:
    """Symmetric solve that refuses singular or machine-precision-singular systems."""
    _check_finite(A, "Linear system matrix")
    try:
        with warnings.catch_warnings():
            warnings.simplefilter("error", sla.LinAlgWarning)
            warnings.simplefilter("error", spla.MatrixRankWarning)
            if sp.issparse(A):
                x = spla.spsolve(sp.csc_matrix(A), b)
            else:
                x = sla.solve(A, b, assume_a="sym")
    except (np.linalg.LinAlgError, sla.LinAlgWarning, spla.MatrixRankWarning) as e:
        raise NumericalError(f"Linear system is singular to machine precision: {e}") from e
    x = np.asarray(x, dtype=np.float64)
    if not np.all(np.isfinite(x)):
        raise NumericalError("Linear solve produced non-finite values")
    return x


def _inv(A) -> np.ndarray:
    A_dense = A.toarray() if sp.issparse(A) else A
    _check_finite(A_dense, "Posterior precision")
    try:
        with warnings.catch_warnings():
            warnings.simplefilter("error", sla.LinAlgWarning)
            Ainv = sla.inv(A_dense)
    except (np.linalg.LinAlgError, sla.LinAlgWarning) as e:
        raise NumericalError(f"Posterior precision is singular: {e}") from e
    if not np.all(np.isfinite(Ainv)):
        raise NumericalError("Posterior covariance has non-finite entries")
    return Ainv


def gaussian_posterior(
    xx, xy: np.ndarray, nsevar: float, Cprior_inv, *, return_cov: bool = True
):
    """
    Posterior mean (and covariance) of the filter given ``X'X``, ``X'y``,
    noise variance ``nsevar`` and prior inverse covariance ``Cprior_inv``.

        mu = (xx + nsevar·Cprior_inv)^{-1} xy
        L  = (xx/nsevar + Cprior_inv)^{-1}

    ``mu`` is also the MAP estimate for these hyperparameters. ``L`` is
    symmetrised before returning.

    Returns
    -------
    mu, or (mu, L) when ``return_cov`` is True.

    Raises
    ------
    NumericalError
        If ``nsevar`` is not positive and finite, or either system is
        singular to machine precision.
    """
    if not (np.isfinite(nsevar) and nsevar > 0):
        raise NumericalError(f"Noise variance must be positive and finite, got {nsevar!r}")
    mu = _solve(_add(xx, Cprior_inv, nsevar), xy)
    if not return_cov:
        return mu
    # overflow for tiny nsevar is reported by _inv
    with np.errstate(over="ignore"):
        Lpost_inv = _add(xx / nsevar, Cprior_inv)
    L = _inv(Lpost_inv)
    L = 0.5 * (L + L.T)
    return mu, L
