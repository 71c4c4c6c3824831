import numpy as np
from .ops import suff_stats

def smooth_filter(nx, rho=0.9, scale=1.0, seed=0):
    """Draw a filter with exponential correlation rho^|i-j| and marginal std ``scale``."""
    rng = np.random.default_rng(seed)
    lags = np.abs(np.subtract.outer(np.arange(nx), np.arange(nx)))
    C = scale**2 * rho**lags
    return np.linalg.cholesky(C + 1e-12 * np.eye(nx)) @ rng.standard_normal(nx)

def simulate_filter_data(ny, nx, rho=0.9, nsevar=1.0, seed=0):
    rng = np.random.default_rng(seed + 1)
    k = smooth_filter(nx, rho=rho, seed=seed)
    X = rng.standard_normal((ny, nx))
    y = X @ k + np.sqrt(nsevar) * rng.standard_normal(ny)
    return X, y, k

def simulate_block_filter_data(ny, block_sizes, rho=0.9, nsevar=1.0, seed=0):
    """Independent smooth filters stacked side by side (one per block)."""
    rng = np.random.default_rng(seed + 1)
    k = np.concatenate([smooth_filter(n, rho=rho, seed=seed + 7 * j) for j, n in enumerate(block_sizes)])
    strt_inds = np.cumsum([0, *block_sizes[:-1]])
    X = rng.standard_normal((ny, k.size))
    y = X @ k + np.sqrt(nsevar) * rng.standard_normal(ny)
    return X, y, k, strt_inds

def simulate_suff_stats(ny, nx, rho=0.9, nsevar=1.0, seed=0):
    X, y, k = simulate_filter_data(ny, nx, rho=rho, nsevar=nsevar, seed=seed)
    return suff_stats(X, y), k
