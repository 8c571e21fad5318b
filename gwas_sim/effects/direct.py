"""
Direct Effect Generation

Draws sparse per-variant direct effects on each trait under sparsity,
heritability and pleiotropy constraints. Effects are on the standardized
genotype scale, so the sum of squares of a trait's column is its direct
heritability.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

import numpy as np

from ..exceptions import (
    DimensionMismatchError,
    InsufficientVariantsError,
    InvalidCorrelationError,
    InvalidParameterError,
)
from ..utils.linalg import RandomState, as_rng, broadcast_vector
from ..utils.logging import get_logger


logger = get_logger("direct_effects")


# (n, sd, rng) -> n draws with mean 0 and standard deviation sd
EffectSampler = Callable[[int, float, np.random.Generator], np.ndarray]


def normal_effects(n: int, sd: float, rng: np.random.Generator) -> np.ndarray:
    """Default effect sampler: N(0, sd^2)."""
    return rng.normal(0.0, sd, size=n)


def laplace_effects(n: int, sd: float, rng: np.random.Generator) -> np.ndarray:
    """Heavier-tailed effect sampler with the same variance as ``normal_effects``."""
    return rng.laplace(0.0, sd / np.sqrt(2.0), size=n)


@dataclass
class DirectEffect:
    """
    Sparse direct variant effects.
    
    Attributes
    ----------
    beta : np.ndarray
        J x K matrix of direct effects (standardized scale).
    pi : np.ndarray
        Target proportion of nonzero effects per trait.
    h2 : np.ndarray
        Target direct heritability per trait.
    """
    
    beta: np.ndarray
    pi: np.ndarray
    h2: np.ndarray
    
    @property
    def n_variants(self) -> int:
        return self.beta.shape[0]
    
    @property
    def n_traits(self) -> int:
        return self.beta.shape[1]
    
    @property
    def n_nonzero(self) -> np.ndarray:
        """Number of nonzero effects per trait."""
        return np.count_nonzero(self.beta, axis=0)
    
    @property
    def realized_h2(self) -> np.ndarray:
        """Realized direct heritability per trait (sum of squared effects)."""
        return np.sum(self.beta ** 2, axis=0)
    
    def support(self, trait: int) -> np.ndarray:
        """Indices of variants with a nonzero direct effect on ``trait``."""
        return np.flatnonzero(self.beta[:, trait])
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "n_variants": self.n_variants,
            "n_traits": self.n_traits,
            "n_nonzero": self.n_nonzero.tolist(),
            "realized_h2": self.realized_h2.tolist(),
            "target_h2": self.h2.tolist(),
        }


class DirectEffectGenerator:
    """
    Generator of sparse direct effects.
    
    With sporadic pleiotropy, each trait's support is drawn independently
    and variants may affect several traits. Without it, supports are
    disjoint.
    """
    
    def __init__(
        self,
        pi,
        h2,
        sporadic_pleiotropy: bool = True,
        pi_exact: bool = False,
        h2_exact: bool = False,
        effect_sampler: Optional[EffectSampler] = None,
    ):
        """
        Initialize generator parameters.
        
        Parameters
        ----------
        pi : float or array-like
            Proportion of variants with a nonzero effect, per trait.
        h2 : float or array-like
            Direct heritability per trait.
        sporadic_pleiotropy : bool
            Allow one variant to have direct effects on several traits.
        pi_exact : bool
            Use exactly ``round(pi * J)`` nonzero effects per trait.
        h2_exact : bool
            Rescale effects so realized heritability equals ``h2`` exactly.
        effect_sampler : callable, optional
            ``(n, sd, rng) -> array`` drawing nonzero effect values.
        """
        pi_arr = np.atleast_1d(np.asarray(pi, dtype=float))
        h2_arr = np.atleast_1d(np.asarray(h2, dtype=float))
        K = max(pi_arr.shape[0], h2_arr.shape[0])
        
        self.pi = broadcast_vector(pi, K, "pi")
        self.h2 = broadcast_vector(h2, K, "h2")
        
        if np.any(self.pi < 0) or np.any(self.pi > 1):
            raise InvalidParameterError(f"pi must lie in [0, 1], got {self.pi.tolist()}")
        if np.any(self.h2 < 0) or np.any(self.h2 > 1):
            raise InvalidCorrelationError(f"h2 must lie in [0, 1], got {self.h2.tolist()}")
        
        self.sporadic_pleiotropy = sporadic_pleiotropy
        self.pi_exact = pi_exact
        self.h2_exact = h2_exact
        self.effect_sampler = effect_sampler or normal_effects
    
    @property
    def n_traits(self) -> int:
        return self.pi.shape[0]
    
    def expected_counts(self, n_variants: int) -> np.ndarray:
        """``round(pi_k * J)`` for each trait."""
        return np.round(self.pi * n_variants).astype(int)
    
    def _check_budget(self, n_variants: int) -> None:
        counts = self.expected_counts(n_variants)
        if counts.sum() > n_variants:
            raise InsufficientVariantsError(
                f"Disjoint supports need {int(counts.sum())} variants "
                f"({counts.tolist()} per trait) but only {n_variants} are available"
            )
        if not self.pi_exact and self.pi.sum() > 1:
            raise InsufficientVariantsError(
                f"Without pleiotropy the proportions pi must sum to at most 1, "
                f"got {self.pi.sum():.4g}"
            )
    
    def _draw_supports(self, n_variants: int, rng: np.random.Generator) -> List[np.ndarray]:
        K = self.n_traits
        
        if self.sporadic_pleiotropy:
            if self.pi_exact:
                counts = self.expected_counts(n_variants)
                return [
                    np.sort(rng.choice(n_variants, size=counts[k], replace=False))
                    for k in range(K)
                ]
            return [
                np.flatnonzero(rng.random(n_variants) < self.pi[k])
                for k in range(K)
            ]
        
        if self.pi_exact:
            counts = self.expected_counts(n_variants)
            shuffled = rng.permutation(n_variants)
            bounds = np.concatenate([[0], np.cumsum(counts)])
            return [np.sort(shuffled[bounds[k]:bounds[k + 1]]) for k in range(K)]
        
        # Each variant is assigned to at most one trait; label K means null
        probs = np.append(self.pi, max(1.0 - self.pi.sum(), 0.0))
        labels = rng.choice(K + 1, size=n_variants, p=probs / probs.sum())
        return [np.flatnonzero(labels == k) for k in range(K)]
    
    def generate(
        self,
        n_variants: int,
        random_state: RandomState = None,
    ) -> DirectEffect:
        """
        Draw direct effects for ``n_variants`` variants.
        
        Parameters
        ----------
        n_variants : int
            Number of variants J.
        random_state : int, Generator, optional
            Seed or random generator.
            
        Returns
        -------
        DirectEffect
            J x K direct effects.
        """
        if n_variants <= 0:
            raise DimensionMismatchError(f"n_variants must be positive, got {n_variants}")
        
        if not self.sporadic_pleiotropy:
            self._check_budget(n_variants)
        
        rng = as_rng(random_state)
        beta = np.zeros((n_variants, self.n_traits))
        supports = self._draw_supports(n_variants, rng)
        
        for k, idx in enumerate(supports):
            if self.pi[k] == 0 or self.h2[k] == 0:
                continue
            if idx.size == 0:
                if self.h2_exact:
                    logger.warning(
                        f"Trait {k}: no variants drawn with nonzero effect; "
                        f"realized direct h2 is 0 instead of {self.h2[k]:.4g}"
                    )
                continue
            
            sd = np.sqrt(self.h2[k] / (self.pi[k] * n_variants))
            values = np.asarray(self.effect_sampler(idx.size, sd, rng), dtype=float)
            if values.shape != (idx.size,):
                raise DimensionMismatchError(
                    f"effect_sampler returned shape {values.shape}, expected ({idx.size},)"
                )
            
            if self.h2_exact:
                ss = np.sum(values ** 2)
                if ss > 0:
                    values = values * np.sqrt(self.h2[k] / ss)
            
            beta[idx, k] = values
        
        effects = DirectEffect(beta=beta, pi=self.pi.copy(), h2=self.h2.copy())
        
        logger.info(
            f"Generated direct effects for {n_variants:,} variants: "
            f"nonzero per trait {effects.n_nonzero.tolist()}"
        )
        
        return effects


def generate_direct_effects(
    n_variants: int,
    pi,
    h2,
    sporadic_pleiotropy: bool = True,
    pi_exact: bool = False,
    h2_exact: bool = False,
    effect_sampler: Optional[EffectSampler] = None,
    random_state: RandomState = None,
) -> DirectEffect:
    """
    Convenience function to generate direct effects.
    
    Parameters
    ----------
    n_variants : int
        Number of variants J.
    pi, h2 : float or array-like
        Per-trait sparsity and direct heritability.
    **flags
        See ``DirectEffectGenerator``.
        
    Returns
    -------
    DirectEffect
        J x K direct effects.
    """
    generator = DirectEffectGenerator(
        pi=pi,
        h2=h2,
        sporadic_pleiotropy=sporadic_pleiotropy,
        pi_exact=pi_exact,
        h2_exact=h2_exact,
        effect_sampler=effect_sampler,
    )
    return generator.generate(n_variants, random_state=random_state)
