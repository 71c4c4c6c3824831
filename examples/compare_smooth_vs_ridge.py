import logging
import time

import numpy as np

from smoothridge import auto_ridge_fixedpoint, auto_smooth_ridge, mse, simulate_filter_data, suff_stats


def main():
    logging.basicConfig(level=logging.INFO, format="%(name)s: %(message)s")
    N_tr, N_te, nx, rho = 400, 2000, 60, 0.95
    X, y, k_true = simulate_filter_data(N_tr + N_te, nx, rho=rho, nsevar=4.0, seed=123)
    X_tr, y_tr, X_te, y_te = X[:N_tr], y[:N_tr], X[N_tr:], y[N_tr:]
    stats = suff_stats(X_tr, y_tr)

    # Ridge
    t0 = time.time()
    k_r, prs_r, info_r = auto_ridge_fixedpoint(stats)
    sec_r = time.time() - t0

    # Smooth ridge
    t0 = time.time()
    k_s, prs_s, _, info_s = auto_smooth_ridge(stats)
    sec_s = time.time() - t0

    err_r = np.linalg.norm(k_r - k_true) / np.linalg.norm(k_true)
    err_s = np.linalg.norm(k_s - k_true) / np.linalg.norm(k_true)

    print("=== Filter estimation (ridge vs smooth ridge) ===")
    print(f"nx={nx}  rho={rho}  N_tr={N_tr}  N_te={N_te}")
    print(
        f"Ridge:   sec={sec_r:.3f}  iters={info_r['n_iter']}  alpha={prs_r.alpha:.3g}  "
        f"MSE={mse(y_te, X_te @ k_r):.4f}  rel_err={err_r:.3f}"
    )
    print(
        f"Smooth:  sec={sec_s:.3f}  iters={info_s['n_iter']}  alpha={prs_s.alpha:.3g}  "
        f"rho={prs_s.rho:.3f}  MSE={mse(y_te, X_te @ k_s):.4f}  rel_err={err_s:.3f}"
    )


if __name__ == "__main__":
    main()
