"""High-level estimator APIs for empirical-Bayes smooth ridge regression."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

import numpy as np

from .metrics import mse
from .ops import SuffStats, suff_stats
from .smooth import SmoothRidgeOptions, SmoothRidgeParams, auto_smooth_ridge


def _asarray_2d(x: Any, *, dtype: np.dtype = np.float64) -> np.ndarray:
    """Convert array-like input to a 2D ``numpy.ndarray``."""

    if hasattr(x, "to_numpy"):
        arr = x.to_numpy()
    else:
        arr = np.asarray(x)
    arr = np.asarray(arr, dtype=dtype)
    if arr.ndim == 1:
        arr = arr[:, None]
    if arr.ndim != 2:
        raise ValueError("Input must be convertible to a 2D array")
    return arr


def _asarray_1d(y: Any) -> np.ndarray:
    arr = np.asarray(y.to_numpy() if hasattr(y, "to_numpy") else y, dtype=np.float64)
    if arr.ndim == 2 and arr.shape[1] == 1:
        arr = arr[:, 0]
    if arr.ndim != 1:
        raise ValueError("Response must be convertible to a 1D array")
    return arr


def _column_names(obj: Any, size: int) -> list[str]:
    if hasattr(obj, "columns"):
        return list(obj.columns)
    return [f"k{i}" for i in range(size)]


def _filter_name(name: Any, index: int) -> str:
    return str(name) if name is not None else f"filter{index}"


class SmoothRidge:
    """Scikit-learn style estimator for EB smooth ridge regression."""

    def __init__(
        self,
        *,
        strt_inds: Sequence[int] = (0,),
        maxiter: int = 5000,
        tol: float = 1e-5,
        maxalpha: float = 1e8,
        maxrho: float = 1 - 1e-4,
        init_prs: SmoothRidgeParams | None = None,
    ) -> None:
        self.strt_inds = strt_inds
        self.maxiter = maxiter
        self.tol = tol
        self.maxalpha = maxalpha
        self.maxrho = maxrho
        self.init_prs = init_prs

    # ------------------------------------------------------------------
    # Scikit-learn estimator protocol
    # ------------------------------------------------------------------
    def get_params(self, deep: bool = True) -> dict[str, Any]:  # noqa: D401 - sklearn API
        return {
            "strt_inds": self.strt_inds,
            "maxiter": self.maxiter,
            "tol": self.tol,
            "maxalpha": self.maxalpha,
            "maxrho": self.maxrho,
            "init_prs": self.init_prs,
        }

    def set_params(self, **params: Any) -> SmoothRidge:  # noqa: D401 - sklearn API
        for key, value in params.items():
            if key not in self.get_params():
                raise ValueError(f"Unknown parameter {key!r}")
            setattr(self, key, value)
        return self

    def _options(self) -> SmoothRidgeOptions:
        return SmoothRidgeOptions(
            maxiter=self.maxiter,
            tol=self.tol,
            maxalpha=self.maxalpha,
            maxrho=self.maxrho,
        )

    # ------------------------------------------------------------------
    # Fitting / inference
    # ------------------------------------------------------------------
    def fit(self, X: Any, y: Any) -> SmoothRidge:
        X_arr = _asarray_2d(X)
        y_arr = _asarray_1d(y)
        if X_arr.shape[0] != y_arr.shape[0]:
            raise ValueError(f"X has {X_arr.shape[0]} rows but y has {y_arr.shape[0]}")
        self.fit_stats(suff_stats(X_arr, y_arr))
        self.feature_names_ = _column_names(X, X_arr.shape[1])
        return self

    def fit_stats(self, stats: SuffStats) -> SmoothRidge:
        """Fit from precomputed sufficient statistics."""
        k_hat, hyperprs, Cprior_inv, info = auto_smooth_ridge(
            stats,
            strt_inds=self.strt_inds,
            opts=self._options(),
            init_prs=self.init_prs,
        )
        self.coef_ = k_hat
        self.hyperprs_ = hyperprs
        self.Cprior_inv_ = Cprior_inv
        self.info_ = info
        self.n_features_in_ = stats.nx
        self.n_obs_ = stats.ny
        self.feature_names_ = _column_names(None, stats.nx)
        self.is_fitted_ = True
        return self

    def _ensure_fitted(self) -> None:
        if not getattr(self, "is_fitted_", False):
            raise RuntimeError("The estimator has not been fitted yet")

    def predict(self, X: Any) -> np.ndarray:
        self._ensure_fitted()
        X_arr = _asarray_2d(X)
        if X_arr.shape[1] != self.n_features_in_:
            raise ValueError(
                f"X has {X_arr.shape[1]} columns but expected {self.n_features_in_}"
            )
        return X_arr @ self.coef_

    def score(self, X: Any, y: Any) -> float:
        """Negative mean squared error (higher is better)."""
        self._ensure_fitted()
        y_arr = _asarray_1d(y)
        preds = self.predict(X)
        if preds.shape != y_arr.shape:
            raise ValueError("Predictions and y have incompatible shapes")
        return -mse(y_arr, preds)


@dataclass
class _SystemFilter:
    name: str
    stats: SuffStats
    column_names: list[str]


class SmoothRidgeSystem:
    """Statsmodels-style container fitting several independent filters."""

    def __init__(
        self,
        system: Mapping[Any, SuffStats | tuple[Any, Any]]
        | Sequence[tuple[Any, SuffStats | tuple[Any, Any]]],
        *,
        strt_inds: Sequence[int] = (0,),
        maxiter: int = 5000,
        tol: float = 1e-5,
        maxalpha: float = 1e8,
        maxrho: float = 1 - 1e-4,
    ) -> None:
        if isinstance(system, Mapping):
            items = list(system.items())
        else:
            items = list(system)
        if len(items) == 0:
            raise ValueError("system must contain at least one filter")

        filters: list[_SystemFilter] = []
        for idx, (name, item) in enumerate(items):
            if isinstance(item, SuffStats):
                stats = item
                columns = _column_names(None, stats.nx)
            else:
                y, X = item
                X_arr = _asarray_2d(X)
                stats = suff_stats(X_arr, _asarray_1d(y))
                columns = _column_names(X, X_arr.shape[1])
            filters.append(
                _SystemFilter(name=_filter_name(name, idx), stats=stats, column_names=columns)
            )

        self._filters = filters
        self.strt_inds = strt_inds
        self.maxiter = maxiter
        self.tol = tol
        self.maxalpha = maxalpha
        self.maxrho = maxrho

    @property
    def nfilters(self) -> int:
        return len(self._filters)

    @property
    def names(self) -> list[str]:
        return [f.name for f in self._filters]

    def fit(self) -> SmoothRidgeSystemResults:
        estimators = {}
        for f in self._filters:
            est = SmoothRidge(
                strt_inds=self.strt_inds,
                maxiter=self.maxiter,
                tol=self.tol,
                maxalpha=self.maxalpha,
                maxrho=self.maxrho,
            )
            est.fit_stats(f.stats)
            estimators[f.name] = est
        self.estimators_ = estimators
        result = SmoothRidgeSystemResults(self, estimators)
        self.result_ = result
        return result


class SmoothRidgeSystemResults:
    """Lightweight results container mimicking ``statsmodels`` outputs."""

    def __init__(self, model: SmoothRidgeSystem, estimators: dict[str, SmoothRidge]) -> None:
        self.model = model
        self.estimators = estimators

        self.coefs = {name: est.coef_ for name, est in estimators.items()}
        self.hyperprs = {name: est.hyperprs_ for name, est in estimators.items()}
        self.info = {name: est.info_ for name, est in estimators.items()}

        flattened = [self.coefs[f.name] for f in model._filters]
        self.params = np.concatenate(flattened) if flattened else np.empty(0)
        self.param_labels = [
            (f.name, col) for f in model._filters for col in f.column_names
        ]

    def params_as_series(self):
        try:
            import pandas as pd  # type: ignore
        except ImportError as exc:  # pragma: no cover - optional dependency
            raise RuntimeError("pandas is required for params_as_series()") from exc

        mi = pd.MultiIndex.from_tuples(self.param_labels, names=["filter", "lag"])
        return pd.Series(self.params, index=mi)

    def predict(self, exog: Mapping[Any, Any]) -> dict[str, np.ndarray]:
        return {name: self.estimators[name].predict(X) for name, X in exog.items()}

    def summary_dict(self) -> dict[str, Any]:
        return {
            "nfilters": self.model.nfilters,
            "status": {name: info["status"] for name, info in self.info.items()},
            "n_iter": {name: info["n_iter"] for name, info in self.info.items()},
            "alpha": {name: p.alpha for name, p in self.hyperprs.items()},
            "rho": {name: p.rho for name, p in self.hyperprs.items()},
            "nsevar": {name: p.nsevar for name, p in self.hyperprs.items()},
        }
