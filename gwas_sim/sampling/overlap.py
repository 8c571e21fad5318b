"""
Sample Overlap

Per-trait GWAS sample sizes and pairwise overlap counts, and the
sampling-error correlation they induce between traits.
"""

from dataclasses import dataclass
from typing import Any, Dict

import numpy as np

from ..exceptions import DimensionMismatchError, InvalidCorrelationError
from ..utils.linalg import as_square, is_symmetric


@dataclass
class SampleOverlap:
    """
    Sample sizes and overlap between K GWAS.
    
    Attributes
    ----------
    N : np.ndarray
        K x K matrix; ``N[k, k]`` is the sample size of trait k's GWAS and
        ``N[i, j]`` the number of individuals shared by GWAS i and j.
    """
    
    N: np.ndarray
    
    def __post_init__(self):
        N = self.N
        if not is_symmetric(N, tol=0.0):
            raise InvalidCorrelationError("Sample overlap matrix N must be symmetric")
        
        sizes = np.diag(N)
        if np.any(sizes <= 0):
            raise InvalidCorrelationError(
                f"Sample sizes must be positive, got {sizes.tolist()}"
            )
        
        bound = np.minimum(sizes[:, None], sizes[None, :])
        if np.any(N < 0) or np.any(N > bound):
            raise InvalidCorrelationError(
                "Sample overlap must satisfy 0 <= N[i, j] <= min(N[i, i], N[j, j])"
            )
    
    @classmethod
    def from_input(cls, N, n_traits: int) -> "SampleOverlap":
        """
        Build from a scalar, a length-K vector or a K x K matrix.
        
        A scalar or vector means no overlap between studies.
        """
        arr = np.asarray(N, dtype=float)
        
        if arr.ndim == 0:
            return cls(np.diag(np.full(n_traits, float(arr))))
        if arr.ndim == 1:
            if arr.shape[0] != n_traits:
                raise DimensionMismatchError(
                    f"N must have length {n_traits}, got {arr.shape[0]}"
                )
            return cls(np.diag(arr))
        
        return cls(as_square(arr, "N", n_traits).copy())
    
    @property
    def n_traits(self) -> int:
        return self.N.shape[0]
    
    @property
    def sample_sizes(self) -> np.ndarray:
        return np.diag(self.N).copy()
    
    @property
    def has_overlap(self) -> bool:
        return bool(np.any(self.N[~np.eye(self.n_traits, dtype=bool)] > 0))
    
    @property
    def overlap_fraction(self) -> np.ndarray:
        """``N[i, j] / sqrt(N[i, i] * N[j, j])``; unit diagonal."""
        sizes = np.sqrt(np.diag(self.N))
        return self.N / np.outer(sizes, sizes)
    
    def error_correlation(self, trait_corr: np.ndarray) -> np.ndarray:
        """
        Sampling-error correlation ``R`` between the K GWAS.
        
        Parameters
        ----------
        trait_corr : np.ndarray
            K x K total trait correlation.
            
        Returns
        -------
        np.ndarray
            ``overlap_fraction * trait_corr``; identity without overlap.
        """
        trait_corr = as_square(trait_corr, "trait_corr", self.n_traits)
        if not self.has_overlap:
            return np.eye(self.n_traits)
        
        R = self.overlap_fraction * trait_corr
        np.fill_diagonal(R, 1.0)
        return R
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "N": self.N.tolist(),
            "has_overlap": self.has_overlap,
        }
