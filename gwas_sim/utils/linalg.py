"""
Dense linear-algebra helpers shared by the DAG, LD and sampling components.
"""

from typing import Optional, Sequence, Type, Union

import numpy as np
from scipy import linalg

from ..exceptions import (
    DimensionMismatchError,
    NonPositiveDefiniteError,
    SimulationError,
)
from .config import get_tolerance


RandomState = Union[None, int, Sequence[int], np.random.SeedSequence, np.random.Generator]


def as_rng(random_state: RandomState = None) -> np.random.Generator:
    """
    Coerce a seed or generator into a ``numpy.random.Generator``.
    
    A Generator is returned as-is so callers can share one stream across
    several components.
    """
    if isinstance(random_state, np.random.Generator):
        return random_state
    return np.random.default_rng(random_state)


def broadcast_vector(
    values: Union[float, Sequence[float], np.ndarray],
    length: int,
    name: str,
) -> np.ndarray:
    """
    Broadcast a scalar to a vector, or check a vector's length.
    
    Parameters
    ----------
    values : float or array-like
        Scalar or 1-D values.
    length : int
        Required length.
    name : str
        Argument name used in error messages.
        
    Returns
    -------
    np.ndarray
        Float vector of the requested length.
    """
    arr = np.asarray(values, dtype=float)
    
    if arr.ndim == 0:
        return np.full(length, float(arr))
    
    arr = arr.ravel() if arr.ndim == 2 and 1 in arr.shape else arr
    if arr.ndim != 1 or arr.shape[0] != length:
        raise DimensionMismatchError(
            f"{name} must be a scalar or have length {length}, got shape {np.shape(values)}"
        )
    return arr.copy()


def as_square(matrix, name: str, size: Optional[int] = None) -> np.ndarray:
    """Return ``matrix`` as a float array after checking it is square."""
    arr = np.asarray(matrix, dtype=float)
    
    if arr.ndim != 2 or arr.shape[0] != arr.shape[1]:
        raise DimensionMismatchError(f"{name} must be a square matrix, got shape {arr.shape}")
    if size is not None and arr.shape[0] != size:
        raise DimensionMismatchError(
            f"{name} must be {size}x{size}, got {arr.shape[0]}x{arr.shape[1]}"
        )
    return arr


def is_symmetric(matrix: np.ndarray, tol: Optional[float] = None) -> bool:
    """Check |A - A^T| <= tol elementwise."""
    if tol is None:
        tol = get_tolerance("symmetry")
    return bool(np.all(np.abs(matrix - matrix.T) <= tol))


def min_eigenvalue(matrix: np.ndarray) -> float:
    """Smallest eigenvalue of a symmetric matrix."""
    if matrix.shape[0] == 0:
        return 0.0
    return float(linalg.eigvalsh(matrix, subset_by_index=[0, 0])[0])


def psd_threshold(eigenvalues: np.ndarray, tol: Optional[float] = None) -> float:
    """Most negative eigenvalue still treated as zero."""
    if tol is None:
        tol = get_tolerance("psd")
    scale = max(1.0, float(np.max(np.abs(eigenvalues))) if eigenvalues.size else 1.0)
    return -tol * scale


def is_psd(matrix: np.ndarray, tol: Optional[float] = None) -> bool:
    """Check a symmetric matrix is positive semi-definite within tolerance."""
    if matrix.shape[0] == 0:
        return True
    eigenvalues = linalg.eigvalsh(matrix)
    return bool(eigenvalues[0] >= psd_threshold(eigenvalues, tol))


def check_correlation(
    matrix,
    name: str,
    error: Type[SimulationError],
    size: Optional[int] = None,
) -> np.ndarray:
    """
    Validate a correlation matrix.
    
    Parameters
    ----------
    matrix : array-like
        Candidate correlation matrix.
    name : str
        Name used in error messages.
    error : type
        Error class raised for a symmetric/diagonal/PSD violation.
    size : int, optional
        Required dimension.
        
    Returns
    -------
    np.ndarray
        The validated matrix as a float array.
    """
    arr = as_square(matrix, name, size)
    
    if not is_symmetric(arr):
        raise error(f"{name} is not symmetric")
    
    diag_err = np.max(np.abs(np.diag(arr) - 1.0)) if arr.size else 0.0
    if diag_err > get_tolerance("unit_diagonal"):
        raise error(f"{name} must have unit diagonal (max deviation {diag_err:.3g})")
    
    if not is_psd(arr):
        raise error(
            f"{name} is not positive semi-definite "
            f"(min eigenvalue {min_eigenvalue(arr):.3g})"
        )
    
    return arr


def psd_sqrt(matrix: np.ndarray, name: str = "matrix") -> np.ndarray:
    """
    Square-root factor F with F @ F.T == matrix for a PSD matrix.
    
    Eigenvalues within tolerance of zero are clipped to zero, so singular
    matrices are accepted.
    """
    eigenvalues, eigenvectors = linalg.eigh(matrix)
    
    if eigenvalues.size and eigenvalues[0] < psd_threshold(eigenvalues):
        raise NonPositiveDefiniteError(
            f"{name} is not positive semi-definite (min eigenvalue {eigenvalues[0]:.3g})"
        )
    
    return eigenvectors * np.sqrt(np.clip(eigenvalues, 0.0, None))


def cholesky_factor(matrix: np.ndarray, name: str = "matrix") -> np.ndarray:
    """
    Lower-triangular Cholesky factor, or a PSD square root if singular.
    
    Raises
    ------
    NonPositiveDefiniteError
        If the matrix is not symmetric or not PSD within tolerance.
    """
    if not is_symmetric(matrix):
        raise NonPositiveDefiniteError(f"{name} is not symmetric")
    
    try:
        return linalg.cholesky(matrix, lower=True)
    except linalg.LinAlgError:
        return psd_sqrt(matrix, name)
