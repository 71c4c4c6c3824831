import logging

import numpy as np
import pytest

import smoothridge.smooth as smooth_mod
from smoothridge import (
    ConfigurationError,
    NumericalError,
    SmoothRidgeOptions,
    SmoothRidgeParams,
    SuffStats,
    auto_smooth_ridge,
    simulate_block_filter_data,
    simulate_suff_stats,
    suff_stats,
)
from smoothridge.ops import boundary_matrices, prior_precision


@pytest.fixture(scope="module")
def smooth_problem():
    return simulate_suff_stats(ny=2000, nx=40, rho=0.9, nsevar=1.0, seed=11)


def test_recovers_smooth_filter(smooth_problem):
    stats, k_true = smooth_problem
    k_hat, prs, Cprior_inv, info = auto_smooth_ridge(stats)

    assert info["status"] == "converged"
    assert info["init"] == "ridge"
    assert info["dparams"] <= 1e-5
    assert np.linalg.norm(k_hat - k_true) / np.linalg.norm(k_true) < 0.1
    assert abs(prs.nsevar - 1.0) < 0.15
    assert 0.5 < prs.rho <= 1 - 1e-4
    assert prs.alpha > 0

    # returned prior is the one implied by the final hyperparameters
    expected = prior_precision(prs.alpha, prs.rho, boundary_matrices(stats.nx))
    np.testing.assert_allclose(Cprior_inv.toarray(), expected.toarray())


def test_map_filter_uses_final_hyperparameters(smooth_problem):
    stats, _ = smooth_problem
    k_hat, prs, Cprior_inv, _ = auto_smooth_ridge(stats)
    direct = np.linalg.solve(stats.xx + prs.nsevar * Cprior_inv.toarray(), stats.xy)
    np.testing.assert_allclose(k_hat, direct, rtol=1e-8, atol=1e-10)


def test_alpha_saturates_with_zero_cross_correlation():
    nx, ny = 10, 100
    stats = SuffStats(xx=ny * np.eye(nx), xy=np.zeros(nx), yy=1e-4, ny=ny)
    init = SmoothRidgeParams(alpha=1.0, rho=0.5, nsevar=1.0)

    k_hat, prs, _, info = auto_smooth_ridge(stats, init_prs=init)

    assert info["status"] == "alpha_saturated"
    assert info["n_iter"] < 5000
    assert prs.alpha >= 1e8
    assert np.max(np.abs(k_hat)) < 1e-3


def test_alpha_saturates_from_warm_start():
    rng = np.random.default_rng(3)
    X = rng.standard_normal((200, 8))
    xx = X.T @ X
    stats = SuffStats(xx=xx, xy=np.zeros(8), yy=50.0, ny=200)

    k_hat, prs, _, info = auto_smooth_ridge(stats)

    assert info["status"] == "alpha_saturated"
    assert prs.alpha >= 1e8
    assert np.max(np.abs(k_hat)) < 1e-3


def test_saturated_initial_alpha_exits_immediately(smooth_problem):
    stats, _ = smooth_problem
    init = SmoothRidgeParams(alpha=2e8, rho=0.3, nsevar=1.0)
    _, prs, _, info = auto_smooth_ridge(stats, init_prs=init)
    assert info["status"] == "alpha_saturated"
    assert info["n_iter"] == 0
    assert (prs.alpha, prs.rho, prs.nsevar) == (2e8, 0.3, 1.0)


def test_maxiter_is_reported(smooth_problem):
    stats, _ = smooth_problem
    opts = SmoothRidgeOptions(maxiter=2, tol=1e-12)
    _, _, _, info = auto_smooth_ridge(stats, opts=opts)
    assert info["status"] == "maxiter"
    assert info["n_iter"] == 2
    assert len(info["dparams_trace"]) == 2
    assert info["dparams"] == info["dparams_trace"][-1]


def test_repeat_runs_are_identical(smooth_problem):
    stats, _ = smooth_problem
    k1, p1, C1, i1 = auto_smooth_ridge(stats)
    k2, p2, C2, i2 = auto_smooth_ridge(stats)
    assert np.max(np.abs(k1 - k2)) < 1e-10
    assert abs(p1.alpha - p2.alpha) < 1e-10
    assert abs(p1.rho - p2.rho) < 1e-10
    assert abs(p1.nsevar - p2.nsevar) < 1e-10
    assert i1["n_iter"] == i2["n_iter"]
    assert np.max(np.abs((C1 - C2).toarray())) < 1e-10


def test_tighter_tolerance_runs_longer(smooth_problem):
    stats, _ = smooth_problem
    _, _, _, loose = auto_smooth_ridge(stats, opts=SmoothRidgeOptions(tol=1e-3))
    _, _, _, tight = auto_smooth_ridge(stats, opts=SmoothRidgeOptions(tol=1e-7))

    assert loose["status"] == "converged"
    assert tight["status"] == "converged"
    assert tight["dparams"] <= loose["dparams"]
    assert tight["n_iter"] >= loose["n_iter"]


@pytest.mark.parametrize("maxrho", [0.2, 0.6, 1 - 1e-4])
@pytest.mark.parametrize("true_rho", [0.0, 0.95])
def test_rho_stays_in_bounds(maxrho, true_rho):
    stats, _ = simulate_suff_stats(ny=300, nx=15, rho=true_rho, nsevar=0.5, seed=4)
    _, prs, _, _ = auto_smooth_ridge(stats, opts=SmoothRidgeOptions(maxrho=maxrho))
    assert 0.0 <= prs.rho <= maxrho


def test_noise_variance_update_uses_effective_dof():
    """One step from fixed hyperparameters, checked against a dense computation."""
    rng = np.random.default_rng(21)
    ny, nx = 60, 12
    X = rng.standard_normal((ny, nx))
    y = X @ np.sin(np.linspace(0, np.pi, nx)) + 0.5 * rng.standard_normal(ny)
    stats = suff_stats(X, y)
    alpha, rho, nsevar = 2.0, 0.7, 0.3

    _, prs, _, info = auto_smooth_ridge(
        stats,
        opts=SmoothRidgeOptions(maxiter=1),
        init_prs=SmoothRidgeParams(alpha=alpha, rho=rho, nsevar=nsevar),
    )
    assert info["n_iter"] == 1

    lags = np.abs(np.subtract.outer(np.arange(nx), np.arange(nx)))
    Cprior = rho**lags / alpha
    Cinv = np.linalg.inv(Cprior)
    L = np.linalg.inv(X.T @ X / nsevar + Cinv)
    mu = L @ (X.T @ y) / nsevar
    resid = np.sum((y - X @ mu) ** 2)
    expected = resid / (ny - (nx - np.trace(L @ Cinv)))

    assert np.isclose(prs.nsevar, expected, rtol=1e-8)
    # the plain residual variance would be a different number
    assert not np.isclose(prs.nsevar, resid / ny, rtol=1e-3)


def test_multi_block_filter():
    X, y, k_true, strt_inds = simulate_block_filter_data(1500, [12, 18], rho=0.9, seed=2)
    stats = suff_stats(X, y)
    k_hat, prs, Cprior_inv, info = auto_smooth_ridge(stats, strt_inds=strt_inds)

    assert info["status"] == "converged"
    C = Cprior_inv.toarray()
    assert np.all(C[:12, 12:] == 0.0)
    assert np.all(C[12:, :12] == 0.0)
    assert np.linalg.norm(k_hat - k_true) / np.linalg.norm(k_true) < 0.1


def test_evidence_trace(smooth_problem):
    stats, _ = smooth_problem
    _, _, _, info = auto_smooth_ridge(stats, track_evidence=True)
    trace = info["log_evidence_trace"]
    assert len(trace) == info["n_iter"]
    assert np.all(np.isfinite(trace))
    assert trace[-1] >= trace[0]


def test_logging_reports_terminal_state(smooth_problem, caplog):
    stats, _ = smooth_problem
    with caplog.at_level(logging.INFO, logger="smoothridge.smooth"):
        _, _, _, info = auto_smooth_ridge(stats)
    messages = [r.getMessage() for r in caplog.records if r.name == "smoothridge.smooth"]
    assert messages[0] == "Initializing with standard ridge regression"
    assert len(messages) == 2
    assert f"#{info['n_iter']} steps" in messages[-1]


@pytest.mark.parametrize(
    "opts",
    [
        SmoothRidgeOptions(maxiter=0),
        SmoothRidgeOptions(maxiter=2.5),
        SmoothRidgeOptions(tol=0.0),
        SmoothRidgeOptions(maxalpha=-1.0),
        SmoothRidgeOptions(maxrho=1.0),
        SmoothRidgeOptions(maxrho=0.0),
    ],
)
def test_bad_options_raise(smooth_problem, opts):
    stats, _ = smooth_problem
    with pytest.raises(ConfigurationError):
        auto_smooth_ridge(stats, opts=opts)


@pytest.mark.parametrize(
    "init",
    [
        SmoothRidgeParams(alpha=0.0, rho=0.5, nsevar=1.0),
        SmoothRidgeParams(alpha=1.0, rho=1.0, nsevar=1.0),
        SmoothRidgeParams(alpha=1.0, rho=0.5, nsevar=-1.0),
    ],
)
def test_bad_initial_params_raise(smooth_problem, init):
    stats, _ = smooth_problem
    with pytest.raises(ConfigurationError):
        auto_smooth_ridge(stats, init_prs=init)


def test_bad_boundaries_raise_before_iterating(smooth_problem, monkeypatch):
    stats, _ = smooth_problem

    def fail(*args, **kwargs):
        raise AssertionError("warm start should not run")

    monkeypatch.setattr(smooth_mod, "auto_ridge_fixedpoint", fail)
    with pytest.raises(ConfigurationError):
        auto_smooth_ridge(stats, strt_inds=[0, 50])


def test_numerical_failure_carries_context(smooth_problem, monkeypatch):
    stats, _ = smooth_problem

    def broken_update(*args, **kwargs):
        raise NumericalError("No real root for rho")

    monkeypatch.setattr(smooth_mod, "update_cov_params", broken_update)
    init = SmoothRidgeParams(alpha=1.5, rho=0.4, nsevar=0.8)
    with pytest.raises(NumericalError, match="iteration 1") as excinfo:
        auto_smooth_ridge(stats, init_prs=init)

    err = excinfo.value
    assert err.iteration == 1
    assert (err.alpha, err.rho, err.nsevar) == (1.5, 0.4, 0.8)


def _noiseless_stats(seed):
    rng = np.random.default_rng(seed)
    X = rng.standard_normal((40, 8))
    return suff_stats(X, X @ np.sin(np.linspace(0, 3, 8)))


@pytest.mark.parametrize("seed", range(6))
@pytest.mark.parametrize("init", [None, SmoothRidgeParams(alpha=1.0, rho=0.5, nsevar=1.0)])
def test_noiseless_data_raises_numerical_error_or_positive_noise(seed, init):
    stats = _noiseless_stats(seed)
    try:
        k_hat, prs, _, _ = auto_smooth_ridge(stats, init_prs=init)
    except NumericalError:
        return
    assert np.isfinite(prs.nsevar) and prs.nsevar > 0
    assert np.all(np.isfinite(k_hat))


def test_numpy_scalar_options_are_accepted(smooth_problem):
    stats, _ = smooth_problem
    opts = SmoothRidgeOptions(
        maxiter=np.int64(3),
        tol=np.float32(1e-5),
        maxalpha=np.int64(10**8),
        maxrho=np.float64(0.9),
    )
    _, prs, _, info = auto_smooth_ridge(stats, opts=opts)
    assert info["n_iter"] <= 3
    assert 0.0 <= prs.rho <= 0.9


@pytest.mark.parametrize(
    "opts",
    [
        SmoothRidgeOptions(tol=True),
        SmoothRidgeOptions(tol="1e-5"),
        SmoothRidgeOptions(maxalpha=None),
        SmoothRidgeOptions(maxrho=np.nan),
    ],
)
def test_non_numeric_options_raise(smooth_problem, opts):
    stats, _ = smooth_problem
    with pytest.raises(ConfigurationError):
        auto_smooth_ridge(stats, opts=opts)
