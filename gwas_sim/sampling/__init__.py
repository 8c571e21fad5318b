"""
Sampling Module

Propagation of effects through the trait DAG and LD, and simulation of
correlated GWAS summary statistics.
"""

from .overlap import SampleOverlap
from .marginal import (
    JointEffect,
    MarginalEffect,
    joint_from_direct,
    marginalize,
    realized_genetic_covariance,
)
from .summary import (
    SummaryStats,
    allele_frequencies,
    estimate_standard_errors,
    matrix_normal_noise,
    simulate_beta_hat,
    standard_errors,
)

__all__ = [
    "SampleOverlap",
    "JointEffect",
    "MarginalEffect",
    "joint_from_direct",
    "marginalize",
    "realized_genetic_covariance",
    "SummaryStats",
    "allele_frequencies",
    "estimate_standard_errors",
    "matrix_normal_noise",
    "simulate_beta_hat",
    "standard_errors",
]
