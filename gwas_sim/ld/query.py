"""
LD Queries

Block-aware variant selection on an ``LDBlockStore``:
- prune: greedy LD clumping by significance
- proxy: best same-block stand-in for query variants
- extract: dense correlation submatrix over arbitrary variants

All three only ever compare variants within the same block; variants in
different blocks are uncorrelated by construction.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

import numpy as np
import pandas as pd

from ..exceptions import InvalidParameterError
from ..utils.config import get_default
from ..utils.linalg import RandomState, as_rng
from ..utils.logging import get_logger
from .blocks import LDBlockStore


logger = get_logger("ld_query")


def _as_priority(priority: Any) -> Tuple[np.ndarray, np.ndarray]:
    """Split a priority mapping, Series or pair list into index and score arrays."""
    if isinstance(priority, pd.Series):
        idx = priority.index.to_numpy()
        score = priority.to_numpy()
    elif isinstance(priority, dict):
        idx = np.array(list(priority.keys()))
        score = np.array(list(priority.values()))
    else:
        pairs = list(priority)
        if pairs and np.ndim(pairs[0]) != 1:
            raise InvalidParameterError("priority must be a sequence of (index, score) pairs")
        idx = np.array([p[0] for p in pairs])
        score = np.array([p[1] for p in pairs])
    
    idx = idx.astype(int)
    score = score.astype(float)
    
    if np.unique(idx).size != idx.size:
        raise InvalidParameterError("priority contains duplicate variant indices")
    if np.any(np.isnan(score)):
        raise InvalidParameterError("priority scores must not be NaN")
    
    return idx, score


class LDPruner:
    """
    Greedy, block-local LD clumping.
    
    Uses a greedy algorithm within each LD block:
    1. Select the most significant remaining candidate (lowest score)
    2. Remove all remaining candidates with r² > threshold to it
    3. Repeat until no candidates remain
    """
    
    def __init__(
        self,
        r2_thresh: Optional[float] = None,
        pval_thresh: Optional[float] = None,
    ):
        """
        Initialize pruning parameters.
        
        Parameters
        ----------
        r2_thresh : float, optional
            Maximum r² allowed between retained variants in one block.
        pval_thresh : float, optional
            Only candidates with score <= pval_thresh are considered.
        """
        self.r2_thresh = get_default("ld_query", "r2_thresh") if r2_thresh is None else r2_thresh
        self.pval_thresh = (
            get_default("ld_query", "pval_thresh") if pval_thresh is None else pval_thresh
        )
        
        if not 0 <= self.r2_thresh <= 1:
            raise InvalidParameterError(f"r2_thresh must lie in [0, 1], got {self.r2_thresh}")
    
    def _prune_block(
        self,
        store: LDBlockStore,
        block: int,
        candidates: np.ndarray,
    ) -> List[int]:
        """Clump candidates (global indices, best first) inside one block."""
        if candidates.size == 1:
            return [int(candidates[0])]
        
        local = candidates - store.starts[block]
        alive = np.ones(candidates.size, dtype=bool)
        kept = []
        
        for pos in range(candidates.size):
            if not alive[pos]:
                continue
            kept.append(int(candidates[pos]))
            alive[pos] = False
            
            rest = np.flatnonzero(alive)
            if rest.size == 0:
                break
            r = store.submatrix(block, local[[pos]], local[rest])[0]
            alive[rest[r ** 2 > self.r2_thresh]] = False
        
        return kept
    
    def prune(
        self,
        store: LDBlockStore,
        priority: Any = None,
        random_state: RandomState = None,
    ) -> Set[int]:
        """
        Prune variants to an approximately independent set.
        
        Parameters
        ----------
        store : LDBlockStore
            LD structure.
        priority : sequence of (index, score), dict or pd.Series, optional
            Candidates with scores; lower is more significant (e.g. p-values).
            Ties are broken by variant index. If omitted, all variants are
            candidates in a random order and ``pval_thresh`` is ignored.
        random_state : int, Generator, optional
            Seed for the random order used without ``priority``.
            
        Returns
        -------
        set
            Indices of retained variants.
        """
        if priority is None:
            idx = np.arange(store.n_variants)
            score = as_rng(random_state).permutation(store.n_variants).astype(float)
        else:
            idx, score = _as_priority(priority)
            passing = score <= self.pval_thresh
            idx, score = idx[passing], score[passing]
        
        if idx.size == 0:
            logger.info("No candidates pass the p-value threshold")
            return set()
        
        blocks = store.block_ids(idx)
        
        if store.is_identity:
            return {int(i) for i in idx}
        
        order = np.lexsort((idx, score))
        ordered_blocks = blocks[order]
        
        kept: Set[int] = set()
        for block in np.unique(ordered_blocks):
            candidates = idx[order[ordered_blocks == block]]
            kept.update(self._prune_block(store, int(block), candidates))
        
        logger.info(
            f"Pruned {idx.size:,} candidates to {len(kept):,} variants "
            f"(r² <= {self.r2_thresh})"
        )
        
        return kept


def prune(
    store: LDBlockStore,
    priority: Any = None,
    r2_thresh: Optional[float] = None,
    pval_thresh: Optional[float] = None,
    random_state: RandomState = None,
) -> Set[int]:
    """
    Convenience function for LD pruning.
    
    Parameters
    ----------
    store : LDBlockStore
        LD structure.
    priority : sequence of (index, score), dict or pd.Series, optional
        Candidate scores, lower first.
    r2_thresh, pval_thresh : float, optional
        See ``LDPruner``.
    random_state : int, Generator, optional
        Seed used when ``priority`` is omitted.
        
    Returns
    -------
    set
        Retained variant indices.
    """
    pruner = LDPruner(r2_thresh=r2_thresh, pval_thresh=pval_thresh)
    return pruner.prune(store, priority=priority, random_state=random_state)


@dataclass
class ProxyResult:
    """
    Proxy lookup result.
    
    Attributes
    ----------
    proxies : dict
        Query index -> (proxy index, r²). A query without a qualifying
        proxy maps to itself with r² = 1.
    ld_matrix : np.ndarray, optional
        Correlation among ``ld_indices`` when requested.
    ld_indices : list, optional
        Sorted union of in-range queries and their proxies.
    """
    
    proxies: Dict[int, Tuple[int, float]] = field(default_factory=dict)
    ld_matrix: Optional[np.ndarray] = None
    ld_indices: Optional[List[int]] = None
    
    def proxy_for(self, query: int) -> int:
        return self.proxies[query][0]
    
    @property
    def n_substituted(self) -> int:
        """Number of queries replaced by a different variant."""
        return sum(1 for q, (p, _) in self.proxies.items() if p != q)
    
    def to_frame(self) -> pd.DataFrame:
        """Proxy table with one row per query."""
        return pd.DataFrame(
            [
                {"query": q, "proxy": p, "r2": r2, "is_self": p == q}
                for q, (p, r2) in self.proxies.items()
            ],
            columns=["query", "proxy", "r2", "is_self"],
        )


def proxy(
    store: LDBlockStore,
    query_indices: Iterable[int],
    candidate_indices: Iterable[int],
    r2_thresh: Optional[float] = None,
    return_mat: bool = False,
) -> ProxyResult:
    """
    Find the best same-block proxy for each query variant.
    
    Parameters
    ----------
    store : LDBlockStore
        LD structure.
    query_indices : iterable of int
        Variants that need a stand-in.
    candidate_indices : iterable of int
        Variants allowed as proxies (e.g. those present in another study).
    r2_thresh : float, optional
        Minimum r² for a proxy.
    return_mat : bool
        Also return the correlation matrix over queries and chosen proxies.
        
    Returns
    -------
    ProxyResult
        Proxy mapping and optional correlation matrix.
    """
    if r2_thresh is None:
        r2_thresh = get_default("ld_query", "proxy_r2_thresh")
    
    candidates = np.unique(np.asarray(list(candidate_indices), dtype=int))
    candidate_blocks = store.block_ids(candidates)
    candidate_set = set(candidates.tolist())
    
    result = ProxyResult()
    
    for q in query_indices:
        q = int(q)
        if not store.contains(q) or q in candidate_set:
            result.proxies[q] = (q, 1.0)
            continue
        
        block, offset = store.block_of(q)
        same_block = candidates[candidate_blocks == block]
        if same_block.size == 0:
            result.proxies[q] = (q, 1.0)
            continue
        
        r = store.submatrix(block, [offset], same_block - store.starts[block])[0]
        r2 = r ** 2
        best = int(np.argmax(r2))
        if r2[best] >= r2_thresh:
            result.proxies[q] = (int(same_block[best]), float(r2[best]))
        else:
            result.proxies[q] = (q, 1.0)
    
    logger.info(
        f"Proxy lookup: {len(result.proxies):,} queries, "
        f"{result.n_substituted:,} replaced by a proxy (r² >= {r2_thresh})"
    )
    
    if return_mat:
        indices = sorted(
            {q for q in result.proxies if store.contains(q)}
            | {p for p, _ in result.proxies.values() if store.contains(p)}
        )
        result.ld_indices = indices
        result.ld_matrix = extract(store, indices)
    
    return result


def extract(store: LDBlockStore, indices: Iterable[int]) -> np.ndarray:
    """
    Dense correlation submatrix over ``indices``.
    
    Cross-block entries are 0 and an index paired with itself is exactly 1.
    
    Parameters
    ----------
    store : LDBlockStore
        LD structure.
    indices : iterable of int
        Variant indices in the desired row/column order.
        
    Returns
    -------
    np.ndarray
        len(indices) x len(indices) correlation matrix.
        
    Raises
    ------
    DimensionMismatchError
        If an index is outside the store.
    """
    indices = np.asarray(list(indices), dtype=int).ravel()
    blocks = store.block_ids(indices)
    out = np.zeros((indices.size, indices.size))
    
    for block in np.unique(blocks):
        pos = np.flatnonzero(blocks == block)
        local = indices[pos] - store.starts[block]
        out[np.ix_(pos, pos)] = store.submatrix(int(block), local, local)
    
    out[indices[:, None] == indices[None, :]] = 1.0
    return out
