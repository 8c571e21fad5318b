"""
LD Block Store

Normalizes a user-supplied LD pattern (dense, sparse or eigen-factorized
blocks) into a block-diagonal correlation structure that covers exactly J
variants. Correlation between variants in different blocks is always zero.

Block kinds form a closed set; every operation on a block dispatches on
``LDBlock.kind``.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterator, List, NamedTuple, Optional, Sequence, Tuple

import numpy as np
from scipy import linalg, sparse

from ..exceptions import DimensionMismatchError, MalformedLDError, NonPositiveDefiniteError
from ..utils.config import get_tolerance
from ..utils.linalg import check_correlation, psd_threshold
from ..utils.logging import get_logger


logger = get_logger("ld_blocks")


class BlockKind(Enum):
    """Storage format of an LD block."""
    DENSE = "dense"
    SPARSE = "sparse"
    EIGEN = "eigen"


class EigenFactor(NamedTuple):
    """Eigen factorization ``block = vectors @ diag(values) @ vectors.T``."""
    values: np.ndarray
    vectors: np.ndarray


@dataclass(frozen=True, eq=False)
class LDBlock:
    """
    One LD correlation block.
    
    Attributes
    ----------
    kind : BlockKind
        Storage format.
    size : int
        Number of variants in the block.
    matrix : np.ndarray or scipy.sparse.csr_matrix, optional
        Correlation matrix for dense and sparse blocks.
    values : np.ndarray, optional
        Eigenvalues for eigen blocks.
    vectors : np.ndarray, optional
        Eigenvectors (columns) for eigen blocks.
    """
    
    kind: BlockKind
    size: int
    matrix: Any = None
    values: Optional[np.ndarray] = None
    vectors: Optional[np.ndarray] = None


UNIT_BLOCK = LDBlock(kind=BlockKind.DENSE, size=1, matrix=np.ones((1, 1)))


# =============================================================================
# Block operations
# =============================================================================

def _validate_eigen(values: np.ndarray, vectors: np.ndarray) -> None:
    if values.ndim != 1 or vectors.ndim != 2 or vectors.shape[1] != values.shape[0]:
        raise MalformedLDError(
            f"Eigen block needs values of length r and vectors of shape (n, r); "
            f"got {values.shape} and {vectors.shape}"
        )
    if values.size and values.min() < psd_threshold(values):
        raise MalformedLDError(
            f"Eigen block is not positive semi-definite (min eigenvalue {values.min():.3g})"
        )
    diag = (vectors ** 2) @ values
    diag_err = np.max(np.abs(diag - 1.0)) if diag.size else 0.0
    if diag_err > np.sqrt(get_tolerance("unit_diagonal")):
        raise MalformedLDError(f"Eigen block must have unit diagonal (max deviation {diag_err:.3g})")


def _validate_sparse(matrix) -> None:
    if matrix.shape[0] != matrix.shape[1]:
        raise MalformedLDError(f"LD block must be square, got shape {matrix.shape}")
    asym = abs(matrix - matrix.T)
    if asym.nnz and asym.max() > get_tolerance("symmetry"):
        raise MalformedLDError("Sparse LD block is not symmetric")
    diag_err = np.max(np.abs(matrix.diagonal() - 1.0)) if matrix.shape[0] else 0.0
    if diag_err > get_tolerance("unit_diagonal"):
        raise MalformedLDError(f"LD block must have unit diagonal (max deviation {diag_err:.3g})")
    eigenvalues = linalg.eigvalsh(matrix.toarray())
    if eigenvalues.size and eigenvalues[0] < psd_threshold(eigenvalues):
        raise MalformedLDError(
            f"Sparse LD block is not positive semi-definite (min eigenvalue {eigenvalues[0]:.3g})"
        )


def _is_eigen_pair(data: Any) -> bool:
    """True for an ``EigenFactor`` or a ``(values, vectors)`` tuple."""
    return isinstance(data, EigenFactor) or (
        isinstance(data, tuple) and len(data) == 2
        and np.ndim(data[0]) == 1 and np.ndim(data[1]) == 2
    )


def as_block(data: Any) -> LDBlock:
    """
    Coerce one user-supplied block into a validated ``LDBlock``.
    
    Parameters
    ----------
    data : array-like, scipy.sparse matrix, EigenFactor, tuple or dict
        Dense correlation matrix, sparse correlation matrix, or an eigen
        factorization given as ``EigenFactor``, ``(values, vectors)`` or
        ``{"values": ..., "vectors": ...}``.
        
    Returns
    -------
    LDBlock
        Validated block.
        
    Raises
    ------
    MalformedLDError
        If the block is not a valid correlation matrix.
    """
    if isinstance(data, LDBlock):
        return data
    
    if sparse.issparse(data):
        matrix = sparse.csr_matrix(data, dtype=float)
        _validate_sparse(matrix)
        return LDBlock(kind=BlockKind.SPARSE, size=matrix.shape[0], matrix=matrix)
    
    if isinstance(data, dict):
        if "values" not in data or "vectors" not in data:
            raise MalformedLDError("Eigen block dict needs 'values' and 'vectors' keys")
        data = EigenFactor(data["values"], data["vectors"])
    
    if _is_eigen_pair(data):
        values = np.asarray(data[0], dtype=float)
        vectors = np.asarray(data[1], dtype=float)
        _validate_eigen(values, vectors)
        return LDBlock(
            kind=BlockKind.EIGEN,
            size=vectors.shape[0],
            values=values,
            vectors=vectors,
        )
    
    matrix = np.asarray(data, dtype=float)
    if matrix.ndim != 2 or matrix.shape[0] != matrix.shape[1]:
        raise MalformedLDError(f"LD block must be a square matrix, got shape {matrix.shape}")
    matrix = check_correlation(matrix, "LD block", MalformedLDError)
    return LDBlock(kind=BlockKind.DENSE, size=matrix.shape[0], matrix=matrix)


def block_matvec(block: LDBlock, v: np.ndarray) -> np.ndarray:
    """
    Multiply a within-block vector (or matrix of columns) by the block.
    
    Eigen blocks use ``Q @ (L * (Q.T @ v))`` and never form the dense block.
    """
    if block.kind is BlockKind.DENSE:
        return block.matrix @ v
    if block.kind is BlockKind.SPARSE:
        return np.asarray(block.matrix @ v)
    if block.kind is BlockKind.EIGEN:
        inner = block.vectors.T @ v
        if inner.ndim == 1:
            return block.vectors @ (block.values * inner)
        return block.vectors @ (block.values[:, None] * inner)
    raise TypeError(f"Unknown block kind: {block.kind}")


def block_submatrix(block: LDBlock, rows: np.ndarray, cols: np.ndarray) -> np.ndarray:
    """Dense correlation submatrix between local ``rows`` and ``cols``."""
    rows = np.asarray(rows, dtype=int)
    cols = np.asarray(cols, dtype=int)
    
    if block.kind is BlockKind.DENSE:
        return block.matrix[np.ix_(rows, cols)]
    if block.kind is BlockKind.SPARSE:
        return block.matrix[rows][:, cols].toarray()
    if block.kind is BlockKind.EIGEN:
        return (block.vectors[rows] * block.values) @ block.vectors[cols].T
    raise TypeError(f"Unknown block kind: {block.kind}")


def block_dense(block: LDBlock) -> np.ndarray:
    """Full dense correlation matrix of a block."""
    idx = np.arange(block.size)
    return block_submatrix(block, idx, idx)


def truncate_block(block: LDBlock, size: int) -> LDBlock:
    """
    Leading principal submatrix of a block, in the block's own format.
    
    A truncated eigen block is re-factorized so its vectors stay orthonormal.
    """
    if size >= block.size:
        return block
    
    if block.kind is BlockKind.DENSE:
        return LDBlock(kind=BlockKind.DENSE, size=size, matrix=block.matrix[:size, :size].copy())
    if block.kind is BlockKind.SPARSE:
        return LDBlock(kind=BlockKind.SPARSE, size=size, matrix=block.matrix[:size, :size].tocsr())
    if block.kind is BlockKind.EIGEN:
        sub = (block.vectors[:size] * block.values) @ block.vectors[:size].T
        values, vectors = linalg.eigh((sub + sub.T) / 2)
        values = np.clip(values, 0.0, None)
        return LDBlock(kind=BlockKind.EIGEN, size=size, values=values, vectors=vectors)
    raise TypeError(f"Unknown block kind: {block.kind}")


def block_factor(block: LDBlock) -> np.ndarray:
    """
    Sampling factor F (n x r) with ``F @ F.T == block``.
    
    Raises
    ------
    NonPositiveDefiniteError
        If the block is not positive semi-definite.
    """
    if block.kind is BlockKind.EIGEN:
        values, vectors = block.values, block.vectors
    else:
        values, vectors = linalg.eigh(block_dense(block))
    
    if values.size and values.min() < psd_threshold(values):
        raise NonPositiveDefiniteError(
            f"LD block of size {block.size} is not positive semi-definite "
            f"(min eigenvalue {values.min():.3g})"
        )
    
    keep = values > 0
    return vectors[:, keep] * np.sqrt(values[keep])


# =============================================================================
# Store
# =============================================================================

class LDBlockStore:
    """
    Block-diagonal LD correlation over J variants.
    
    Blocks cover contiguous, non-overlapping index ranges in order. The
    store is read-only after construction.
    """
    
    def __init__(self, blocks: Sequence[LDBlock], is_identity: bool = False):
        """
        Initialize the store from validated blocks.
        
        Parameters
        ----------
        blocks : sequence of LDBlock
            Blocks in variant order.
        is_identity : bool
            True when every block is a 1 x 1 identity (no LD).
        """
        self.blocks: List[LDBlock] = list(blocks)
        self.sizes = np.array([b.size for b in self.blocks], dtype=int)
        ends = np.cumsum(self.sizes)
        self.starts = ends - self.sizes
        self.n_variants = int(ends[-1]) if ends.size else 0
        self.is_identity = is_identity
        self._factors: Dict[int, np.ndarray] = {}
    
    @classmethod
    def identity(cls, n_variants: int) -> "LDBlockStore":
        """Store with no LD: J blocks of size 1."""
        if n_variants <= 0:
            raise DimensionMismatchError(f"n_variants must be positive, got {n_variants}")
        return cls([UNIT_BLOCK] * n_variants, is_identity=True)
    
    @property
    def n_blocks(self) -> int:
        return len(self.blocks)
    
    def __len__(self) -> int:
        return self.n_blocks
    
    def block_slice(self, block_index: int) -> slice:
        """Global index range of a block."""
        start = int(self.starts[block_index])
        return slice(start, start + int(self.sizes[block_index]))
    
    def block_ranges(self) -> Iterator[Tuple[int, slice]]:
        """Yield ``(block_index, slice)`` for every block in order."""
        for b in range(self.n_blocks):
            yield b, self.block_slice(b)
    
    def contains(self, index: int) -> bool:
        return 0 <= index < self.n_variants
    
    def block_ids(self, indices) -> np.ndarray:
        """
        Block index of each variant index.
        
        Raises
        ------
        DimensionMismatchError
            If an index is outside ``[0, J)``.
        """
        indices = np.asarray(indices, dtype=int)
        if indices.size and (indices.min() < 0 or indices.max() >= self.n_variants):
            raise DimensionMismatchError(
                f"Variant indices must lie in [0, {self.n_variants}), "
                f"got range [{indices.min()}, {indices.max()}]"
            )
        return np.searchsorted(self.starts, indices, side="right") - 1
    
    def block_of(self, index: int) -> Tuple[int, int]:
        """Block index and offset within the block of a variant."""
        block = int(self.block_ids([index])[0])
        return block, int(index - self.starts[block])
    
    def apply(self, block_index: int, vector: np.ndarray) -> np.ndarray:
        """Multiply a within-block vector (or J_b x K matrix) by a block."""
        block = self.blocks[block_index]
        vector = np.asarray(vector, dtype=float)
        if vector.shape[0] != block.size:
            raise DimensionMismatchError(
                f"Block {block_index} has {block.size} variants, got vector of length {vector.shape[0]}"
            )
        return block_matvec(block, vector)
    
    def submatrix(self, block_index: int, rows, cols) -> np.ndarray:
        """Dense correlation between local rows and columns of one block."""
        return block_submatrix(self.blocks[block_index], rows, cols)
    
    def dense_block(self, block_index: int) -> np.ndarray:
        return block_dense(self.blocks[block_index])
    
    def sampling_factor(self, block_index: int) -> np.ndarray:
        """
        Factor F with ``F @ F.T`` equal to the block, cached per distinct block.
        
        Cyclically repeated blocks share one object and factor once.
        """
        block = self.blocks[block_index]
        key = id(block)
        if key not in self._factors:
            self._factors[key] = block_factor(block)
        return self._factors[key]
    
    def to_dense(self) -> np.ndarray:
        """Full J x J correlation matrix (small J only)."""
        full = np.zeros((self.n_variants, self.n_variants))
        for b, sl in self.block_ranges():
            full[sl, sl] = self.dense_block(b)
        return full
    
    def __repr__(self) -> str:
        return f"LDBlockStore(n_variants={self.n_variants}, n_blocks={self.n_blocks})"


def build_ld_store(blocks: Any, n_variants: int) -> LDBlockStore:
    """
    Build a block store covering exactly ``n_variants`` variants.
    
    Blocks are repeated cyclically until their sizes reach ``n_variants``;
    the final block is truncated to its leading principal submatrix. Block
    boundaries are otherwise never split.
    
    Parameters
    ----------
    blocks : list or single block, optional
        Ordered LD blocks (see ``as_block``). None means no LD.
    n_variants : int
        Number of variants J.
        
    Returns
    -------
    LDBlockStore
        Store with ``n_variants`` variants.
        
    Raises
    ------
    MalformedLDError
        If a block is invalid or the pattern is empty.
    """
    if blocks is None:
        return LDBlockStore.identity(n_variants)
    if n_variants <= 0:
        raise DimensionMismatchError(f"n_variants must be positive, got {n_variants}")
    
    if isinstance(blocks, LDBlockStore):
        blocks = blocks.blocks
    elif _is_eigen_pair(blocks) or not isinstance(blocks, (list, tuple)):
        blocks = [blocks]
    
    pattern = [as_block(b) for b in blocks]
    pattern = [b for b in pattern if b.size > 0]
    if not pattern:
        raise MalformedLDError("LD pattern must contain at least one non-empty block")
    
    store_blocks = []
    total = 0
    i = 0
    while total < n_variants:
        block = pattern[i % len(pattern)]
        remaining = n_variants - total
        if block.size > remaining:
            block = truncate_block(block, remaining)
        store_blocks.append(block)
        total += block.size
        i += 1
    
    pattern_size = sum(b.size for b in pattern)
    logger.info(
        f"Built LD store: {len(store_blocks)} blocks covering {n_variants:,} variants "
        f"from a pattern of {len(pattern)} blocks ({pattern_size:,} variants)"
    )
    
    return LDBlockStore(store_blocks)
