"""
Trait DAG Module

Validates the causal graph among traits and derives total effects and
trait covariance matrices.
"""

from .graph import (
    TraitDAG,
    build_dag,
    topological_order,
    total_effects,
    genetic_covariance,
    direct_from_total_h2,
)

__all__ = [
    "TraitDAG",
    "build_dag",
    "topological_order",
    "total_effects",
    "genetic_covariance",
    "direct_from_total_h2",
]
