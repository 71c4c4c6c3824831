"""Input validation and error types for smoothridge.

This module provides standardized validation functions so that every entry
point rejects bad configuration the same way, before any iteration starts.
"""

from __future__ import annotations

import numbers
from typing import Any

import numpy as np
import scipy.sparse as sp


class ConfigurationError(ValueError):
    """Invalid user input detected before fitting starts."""


class NumericalError(ArithmeticError):
    """A linear solve or hyperparameter update failed numerically.

    The fixed-point driver attaches the iteration index and the last
    hyperparameter values it saw, so a failed run can be diagnosed.
    """

    def __init__(
        self,
        message: str,
        *,
        iteration: int | None = None,
        alpha: float | None = None,
        rho: float | None = None,
        nsevar: float | None = None,
    ) -> None:
        super().__init__(message)
        self.iteration = iteration
        self.alpha = alpha
        self.rho = rho
        self.nsevar = nsevar


def _validate_xx(xx: Any, *, name: str = "xx", sym_tol: float = 1e-8):
    """Validate the input autocorrelation matrix.

    Parameters
    ----------
    xx : array-like or scipy.sparse matrix
        Square symmetric ``X'X`` matrix.
    name : str, optional
        Variable name for error messages.
    sym_tol : float, optional
        Relative tolerance used for the symmetry check.

    Returns
    -------
    np.ndarray or scipy.sparse.csr_matrix
        Float64 copy of ``xx`` (sparse input stays sparse).

    Raises
    ------
    ConfigurationError
        If ``xx`` is not square, is too small, is asymmetric or non-finite.
    """
    if sp.issparse(xx):
        xx_arr = sp.csr_matrix(xx, dtype=np.float64)
        values = xx_arr.data
    else:
        try:
            xx_arr = np.asarray(xx, dtype=np.float64)
        except (TypeError, ValueError) as e:
            raise ConfigurationError(
                f"{name} cannot be converted to numeric array: {e}"
            ) from e
        values = xx_arr

    if xx_arr.ndim != 2 or xx_arr.shape[0] != xx_arr.shape[1]:
        raise ConfigurationError(
            f"{name} must be a square 2D matrix, got shape {xx_arr.shape}."
        )
    if xx_arr.shape[0] < 2:
        raise ConfigurationError(
            f"{name} must be at least 2x2 (filter length >= 2), got {xx_arr.shape}."
        )
    if not np.all(np.isfinite(values)):
        raise ConfigurationError(f"{name} contains non-finite entries.")

    asym = xx_arr - xx_arr.T
    if sp.issparse(asym):
        asym_max = float(abs(asym).max()) if asym.nnz else 0.0
        scale = float(abs(xx_arr).max()) if xx_arr.nnz else 0.0
    else:
        asym_max = float(np.max(np.abs(asym)))
        scale = float(np.max(np.abs(xx_arr)))
    if asym_max > sym_tol * max(scale, 1.0):
        raise ConfigurationError(
            f"{name} must be symmetric (max |{name} - {name}'| = {asym_max:.3g}). "
            f"Try 0.5 * ({name} + {name}.T) if the asymmetry is round-off."
        )
    return xx_arr


def _validate_suff_stats(xx: Any, xy: Any, yy: Any, ny: Any):
    """Validate and convert the four sufficient statistics.

    Returns
    -------
    tuple
        Validated ``(xx, xy, yy, ny)``.
    """
    xx_arr = _validate_xx(xx)
    nx = xx_arr.shape[0]

    try:
        xy_arr = np.asarray(xy, dtype=np.float64).ravel()
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"xy cannot be converted to numeric array: {e}") from e
    if xy_arr.shape[0] != nx:
        raise ConfigurationError(
            f"xy has length {xy_arr.shape[0]} but xx is {nx}x{nx}. "
            f"Both must come from the same design matrix."
        )
    if not np.all(np.isfinite(xy_arr)):
        raise ConfigurationError("xy contains non-finite entries.")

    try:
        yy_val = float(yy)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"yy must be a scalar, got {type(yy).__name__}") from e
    if not np.isfinite(yy_val) or yy_val < 0:
        raise ConfigurationError(f"yy must be finite and non-negative, got {yy}.")

    ny_int = _validate_positive_int(ny, name="ny")
    return xx_arr, xy_arr, yy_val, ny_int


def _validate_positive_int(value: Any, *, name: str) -> int:
    if isinstance(value, bool):
        raise ConfigurationError(f"{name} must be a positive integer, got {value!r}")
    try:
        value_int = int(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(
            f"{name} must be a positive integer, got {type(value).__name__}"
        ) from e
    if value_int != value or value_int < 1:
        raise ConfigurationError(f"{name} must be a positive integer, got {value}")
    return value_int


def _validate_strt_inds(strt_inds: Any, nx: int) -> np.ndarray:
    """Validate block start indices (0-based).

    Parameters
    ----------
    strt_inds : int or sequence of int
        Indices at which a new block of the filter starts.
    nx : int
        Filter length.

    Returns
    -------
    np.ndarray
        Validated 1D integer array.

    Raises
    ------
    ConfigurationError
        If the indices are empty, non-integer, out of range, not strictly
        increasing, or do not start at 0.
    """
    inds = np.atleast_1d(np.asarray(strt_inds))
    if inds.ndim != 1 or inds.size == 0:
        raise ConfigurationError(
            f"strt_inds must be a non-empty 1D sequence of integers, got {strt_inds!r}."
        )
    if not np.issubdtype(inds.dtype, np.integer):
        if not np.issubdtype(inds.dtype, np.floating) or np.any(inds != np.round(inds)):
            raise ConfigurationError(f"strt_inds must contain integers, got {strt_inds!r}.")
    inds = inds.astype(np.intp)

    if np.any(inds < 0) or np.any(inds >= nx):
        raise ConfigurationError(
            f"strt_inds must lie in [0, {nx - 1}] for a filter of length {nx}, "
            f"got {inds.tolist()}."
        )
    if np.any(np.diff(inds) <= 0):
        raise ConfigurationError(
            f"strt_inds must be strictly increasing, got {inds.tolist()}."
        )
    if inds[0] != 0:
        raise ConfigurationError(
            f"strt_inds must start at 0 so the blocks cover the whole filter, "
            f"got {inds.tolist()}. Try prepending 0."
        )
    return inds


def _validate_options(
    maxiter: Any, tol: Any, maxalpha: Any, maxrho: Any
) -> dict[str, int | float]:
    """Validate fixed-point options.

    Returns
    -------
    dict
        Validated parameters.
    """
    params: dict[str, int | float] = {}
    params["maxiter"] = _validate_positive_int(maxiter, name="maxiter")

    tol_f = _as_real(tol, name="tol")
    if not tol_f > 0:
        raise ConfigurationError(
            f"tol must be positive, got {tol}. Try tol=1e-5 for standard convergence."
        )
    params["tol"] = tol_f

    maxalpha_f = _as_real(maxalpha, name="maxalpha")
    if not maxalpha_f > 0:
        raise ConfigurationError(
            f"maxalpha must be positive, got {maxalpha}. Try maxalpha=1e8."
        )
    params["maxalpha"] = maxalpha_f

    maxrho_f = _as_real(maxrho, name="maxrho")
    if not (0 < maxrho_f < 1):
        raise ConfigurationError(
            f"maxrho must lie in (0, 1), got {maxrho}. Try maxrho=1 - 1e-4."
        )
    params["maxrho"] = maxrho_f
    return params


def _as_real(value: Any, *, name: str) -> float:
    """Coerce a Python or numpy real scalar to float; reject bools and non-numbers."""
    if isinstance(value, (bool, np.bool_)) or not isinstance(value, numbers.Real):
        raise ConfigurationError(
            f"{name} must be a real number, got {type(value).__name__}"
        )
    value_f = float(value)
    if np.isnan(value_f):
        raise ConfigurationError(f"{name} must not be NaN")
    return value_f


def _validate_init_params(alpha: Any, rho: Any, nsevar: Any) -> tuple[float, float, float]:
    """Validate user-supplied initial hyperparameters."""
    try:
        alpha_f, rho_f, nsevar_f = float(alpha), float(rho), float(nsevar)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"initial hyperparameters must be scalars: {e}") from e
    if not (np.isfinite(alpha_f) and alpha_f > 0):
        raise ConfigurationError(f"initial alpha must be positive, got {alpha}.")
    if not (0 <= rho_f < 1):
        raise ConfigurationError(f"initial rho must lie in [0, 1), got {rho}.")
    if not (np.isfinite(nsevar_f) and nsevar_f > 0):
        raise ConfigurationError(f"initial nsevar must be positive, got {nsevar}.")
    return alpha_f, rho_f, nsevar_f


def _validate_design(X: Any, y: Any, *, X_name: str = "X", y_name: str = "y"):
    """Validate raw regression data used to build sufficient statistics."""
    try:
        X_arr = np.asarray(X, dtype=np.float64)
        y_arr = np.asarray(y, dtype=np.float64)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"inputs cannot be converted to numeric arrays: {e}") from e
    if X_arr.ndim != 2:
        raise ConfigurationError(
            f"{X_name} must be 2D, got {X_arr.ndim}D with shape {X_arr.shape}."
        )
    if y_arr.ndim == 2 and y_arr.shape[1] == 1:
        y_arr = y_arr[:, 0]
    if y_arr.ndim != 1:
        raise ConfigurationError(
            f"{y_name} must be 1D (a single response), got shape {y_arr.shape}."
        )
    if X_arr.shape[0] != y_arr.shape[0]:
        raise ConfigurationError(
            f"{X_name} has {X_arr.shape[0]} rows but {y_name} has {y_arr.shape[0]}. "
            f"All inputs must have the same number of samples."
        )
    return X_arr, y_arr

