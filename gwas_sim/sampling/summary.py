"""
Summary Statistic Sampling

Simulates GWAS effect estimates around the marginal effects. For a fixed
variant, sampling errors across traits have correlation ``R`` (sample
overlap); within an LD block, errors across variants inherit the block's
LD correlation; errors in different blocks are independent. Per block the
error is a matrix-normal draw with row covariance LD_b and column
covariance R, scaled entrywise by the standard errors.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Union

import numpy as np
from scipy import stats

from ..exceptions import DimensionMismatchError, InvalidParameterError, SimulationError
from ..ld.blocks import LDBlockStore
from ..utils.linalg import RandomState, as_rng, as_square, cholesky_factor
from ..utils.logging import ProgressLogger, get_logger
from .marginal import MarginalEffect
from .overlap import SampleOverlap


logger = get_logger("summary_stats")


AlleleFrequency = Union[None, float, np.ndarray, Callable[[int], np.ndarray]]


@dataclass
class SummaryStats:
    """
    Simulated GWAS summary statistics.
    
    Attributes
    ----------
    beta_hat : np.ndarray
        J x K simulated effect estimates.
    se_beta_hat : np.ndarray
        J x K true standard errors.
    s_estimate : np.ndarray, optional
        J x K simulated estimates of the standard errors.
    """
    
    beta_hat: np.ndarray
    se_beta_hat: np.ndarray
    s_estimate: Optional[np.ndarray] = None
    
    @property
    def z(self) -> np.ndarray:
        """Z-scores using the estimated standard error when available."""
        se = self.s_estimate if self.s_estimate is not None else self.se_beta_hat
        return self.beta_hat / se
    
    @property
    def pval(self) -> np.ndarray:
        """Two-sided normal p-values."""
        return 2 * stats.norm.sf(np.abs(self.z))
    
    def mean_chisq(self) -> np.ndarray:
        """Mean chi-square statistic per trait."""
        return np.mean(self.z ** 2, axis=0)
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "n_variants": self.beta_hat.shape[0],
            "n_traits": self.beta_hat.shape[1],
            "mean_chisq": self.mean_chisq().tolist(),
            "has_s_estimate": self.s_estimate is not None,
        }


def allele_frequencies(
    af: AlleleFrequency,
    n_variants: int,
) -> Optional[np.ndarray]:
    """
    Resolve allele frequencies for J variants.
    
    Parameters
    ----------
    af : float, array-like or callable, optional
        A single frequency for every variant, one per variant, or a function
        ``af(n) -> array`` generating n frequencies. None means the
        standardized scale is used.
    n_variants : int
        Number of variants J.
        
    Returns
    -------
    np.ndarray or None
        Length-J allele frequencies.
    """
    if af is None:
        return None
    
    values = af(n_variants) if callable(af) else af
    
    values = np.asarray(values, dtype=float)
    if values.ndim == 0:
        values = np.full(n_variants, float(values))
    if values.shape != (n_variants,):
        raise DimensionMismatchError(
            f"Allele frequencies must have length {n_variants}, got shape {values.shape}"
        )
    if np.any(values <= 0) or np.any(values >= 1):
        raise InvalidParameterError("Allele frequencies must lie strictly between 0 and 1")
    
    return values


def allele_scale(af: np.ndarray) -> np.ndarray:
    """Per-variant factor taking standardized effects to the allele scale."""
    return 1.0 / np.sqrt(2 * af * (1 - af))


def standard_errors(
    sample_sizes: np.ndarray,
    n_variants: int,
    af: Optional[np.ndarray] = None,
) -> np.ndarray:
    """
    True standard errors of the effect estimates.
    
    ``1 / sqrt(N_k)`` on the standardized scale, or
    ``1 / sqrt(N_k * 2 * af_j * (1 - af_j))`` on the allele scale.
    """
    se = np.tile(1.0 / np.sqrt(sample_sizes), (n_variants, 1))
    if af is not None:
        se = se * allele_scale(af)[:, None]
    return se


def matrix_normal_noise(
    ld_store: LDBlockStore,
    R: np.ndarray,
    random_state: RandomState = None,
) -> np.ndarray:
    """
    J x K noise with covariance ``LD ⊗ R``.
    
    Within block b the draw is ``F_b @ Z @ L.T`` with ``F_b @ F_b.T = LD_b``,
    ``L @ L.T = R`` and Z standard normal. Each block uses its own generator
    seeded from one parent draw and the block index, so the result does not
    depend on the order blocks are processed in.
    
    Parameters
    ----------
    ld_store : LDBlockStore
        Row (variant) correlation.
    R : np.ndarray
        K x K column (trait) correlation.
    random_state : int, Generator, optional
        Seed or random generator.
        
    Returns
    -------
    np.ndarray
        J x K noise matrix.
        
    Raises
    ------
    NonPositiveDefiniteError
        If R or an LD block is not positive semi-definite.
    """
    R = as_square(R, "R")
    K = R.shape[0]
    L = cholesky_factor(R, name="R")
    
    rng = as_rng(random_state)
    parent_seed = int(rng.integers(2 ** 63))
    
    if ld_store.is_identity:
        z = np.random.default_rng([parent_seed, 0]).standard_normal((ld_store.n_variants, K))
        return z @ L.T
    
    noise = np.zeros((ld_store.n_variants, K))
    progress = ProgressLogger(ld_store.n_blocks, desc="Sampling LD blocks", logger=logger)
    
    for b, sl in ld_store.block_ranges():
        F = ld_store.sampling_factor(b)
        block_rng = np.random.default_rng([parent_seed, b])
        z = block_rng.standard_normal((F.shape[1], K))
        noise[sl] = F @ (z @ L.T)
        progress.update()
    
    progress.close()
    return noise


def estimate_standard_errors(
    se: np.ndarray,
    sample_sizes: np.ndarray,
    random_state: RandomState = None,
) -> np.ndarray:
    """
    Noisy estimates of the standard errors.
    
    ``s = se * sqrt(X / (N_k - 1))`` with ``X ~ chi-square(N_k - 1)``, so
    ``s^2`` is unbiased for ``se^2``.
    """
    rng = as_rng(random_state)
    df = np.maximum(sample_sizes - 1, 1)
    draws = rng.chisquare(df, size=se.shape)
    return se * np.sqrt(draws / df)


def simulate_beta_hat(
    marginal: MarginalEffect,
    overlap: SampleOverlap,
    R: Optional[np.ndarray] = None,
    ld_store: Optional[LDBlockStore] = None,
    af: Optional[np.ndarray] = None,
    estimate_s: bool = False,
    random_state: RandomState = None,
) -> SummaryStats:
    """
    Simulate effect estimates around the marginal effects.
    
    Parameters
    ----------
    marginal : MarginalEffect
        J x K marginal effects on the standardized scale.
    overlap : SampleOverlap
        Sample sizes (and overlap) of the K GWAS.
    R : np.ndarray, optional
        K x K sampling-error correlation. Required when the studies overlap;
        identity otherwise.
    ld_store : LDBlockStore, optional
        LD structure; no LD if omitted.
    af : np.ndarray, optional
        Allele frequencies. When given, estimates and standard errors are
        on the allele scale.
    estimate_s : bool
        Also simulate estimates of the standard errors.
    random_state : int, Generator, optional
        Seed or random generator.
        
    Returns
    -------
    SummaryStats
        Simulated summary statistics.
    """
    beta_marg = marginal.beta
    J, K = beta_marg.shape
    
    if overlap.n_traits != K:
        raise DimensionMismatchError(
            f"Marginal effects have {K} traits but sample sizes are given for {overlap.n_traits}"
        )
    if ld_store is None:
        ld_store = LDBlockStore.identity(J)
    if ld_store.n_variants != J:
        raise DimensionMismatchError(
            f"Marginal effects cover {J} variants, LD store covers {ld_store.n_variants}"
        )
    if R is None:
        if overlap.has_overlap:
            raise SimulationError("R is required when the GWAS samples overlap")
        R = np.eye(K)
    if af is not None and np.shape(af) != (J,):
        raise DimensionMismatchError(f"af must have length {J}, got shape {np.shape(af)}")
    
    rng = as_rng(random_state)
    noise_rng, s_rng = rng.spawn(2)
    
    sample_sizes = overlap.sample_sizes
    se = standard_errors(sample_sizes, J, af)
    mean = beta_marg if af is None else beta_marg * allele_scale(af)[:, None]
    
    beta_hat = mean + se * matrix_normal_noise(ld_store, R, noise_rng)
    
    s_estimate = None
    if estimate_s:
        s_estimate = estimate_standard_errors(se, sample_sizes, s_rng)
    
    sumstats = SummaryStats(beta_hat=beta_hat, se_beta_hat=se, s_estimate=s_estimate)
    logger.info(
        f"Simulated summary statistics for {J:,} variants x {K} traits; "
        f"mean chi-square {sumstats.mean_chisq().round(3).tolist()}"
    )
    return sumstats
