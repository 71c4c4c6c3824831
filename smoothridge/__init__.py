from ._validation import ConfigurationError, NumericalError
from .api import SmoothRidge, SmoothRidgeSystem, SmoothRidgeSystemResults
from .hyper import update_cov_params
from .metrics import log_evidence, mse
from .ops import SuffStats, boundary_matrices, gaussian_posterior, prior_precision, suff_stats
from .ridge import RidgeParams, auto_ridge_fixedpoint
from .sim import simulate_block_filter_data, simulate_filter_data, simulate_suff_stats
from .smooth import SmoothRidgeOptions, SmoothRidgeParams, auto_smooth_ridge

__all__ = [
    "ConfigurationError",
    "NumericalError",
    "RidgeParams",
    "SmoothRidge",
    "SmoothRidgeOptions",
    "SmoothRidgeParams",
    "SmoothRidgeSystem",
    "SmoothRidgeSystemResults",
    "SuffStats",
    "auto_ridge_fixedpoint",
    "auto_smooth_ridge",
    "boundary_matrices",
    "gaussian_posterior",
    "log_evidence",
    "mse",
    "prior_precision",
    "simulate_block_filter_data",
    "simulate_filter_data",
    "simulate_suff_stats",
    "suff_stats",
    "update_cov_params",
]
