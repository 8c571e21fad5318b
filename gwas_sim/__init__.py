"""
gwas_sim

Simulation of multi-trait GWAS summary statistics with known ground truth:
trait-level causal DAGs, sparse direct variant effects, block-diagonal LD
and correlated sampling error from sample overlap.
"""

__version__ = "1.0.0"
__author__ = "Research Team"
__email__ = "contact@example.com"

from pathlib import Path

CONFIG_DIR = Path(__file__).parent / "config"

# Submodule imports
from . import exceptions
from . import utils
from . import dag
from . import effects
from . import ld
from . import sampling
from .simulate import (
    SimulationResult,
    simulate_sumstats,
    resample_sumstats,
    simulate_from_config,
)

__all__ = [
    "exceptions",
    "utils",
    "dag",
    "effects",
    "ld",
    "sampling",
    "SimulationResult",
    "simulate_sumstats",
    "resample_sumstats",
    "simulate_from_config",
    "CONFIG_DIR",
]
