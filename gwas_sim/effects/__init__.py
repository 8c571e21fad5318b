"""
Direct Effect Module

Sparse per-variant direct effects with heritability, sparsity and
pleiotropy constraints.
"""

from .direct import (
    DirectEffect,
    DirectEffectGenerator,
    generate_direct_effects,
    normal_effects,
    laplace_effects,
)

__all__ = [
    "DirectEffect",
    "DirectEffectGenerator",
    "generate_direct_effects",
    "normal_effects",
    "laplace_effects",
]
