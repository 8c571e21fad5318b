"""
Utility functions for the simulation engine.
"""

from .config import load_config, get_config, get_tolerance, get_default, validate_config
from .logging import setup_logger, get_logger, ProgressLogger
from .linalg import (
    as_rng,
    as_square,
    broadcast_vector,
    check_correlation,
    cholesky_factor,
    is_psd,
    is_symmetric,
    psd_sqrt,
)

__all__ = [
    "load_config",
    "get_config",
    "get_tolerance",
    "get_default",
    "validate_config",
    "setup_logger",
    "get_logger",
    "ProgressLogger",
    "as_rng",
    "as_square",
    "broadcast_vector",
    "check_correlation",
    "cholesky_factor",
    "is_psd",
    "is_symmetric",
    "psd_sqrt",
]
