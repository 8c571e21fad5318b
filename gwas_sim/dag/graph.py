"""
Trait DAG Algebra

Validates a trait-level causal graph and derives the total-effect matrix and
the genetic, environmental and total trait covariance matrices.

Convention: ``G[i, j]`` is the direct (unmediated) effect of trait i on
trait j, so total effects satisfy ``T = G + G @ T``.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import networkx as nx
import numpy as np

from ..exceptions import (
    CyclicGraphError,
    DimensionMismatchError,
    InvalidCorrelationError,
    InvalidParameterError,
)
from ..utils.config import get_tolerance
from ..utils.linalg import as_square, broadcast_vector, check_correlation
from ..utils.logging import get_logger


logger = get_logger("trait_dag")


H2_TYPES = ("direct", "total")


def topological_order(G: np.ndarray) -> List[int]:
    """
    Topological order of the traits in G.
    
    Parameters
    ----------
    G : np.ndarray
        K x K direct-effect matrix; a nonzero ``G[i, j]`` is an edge i -> j.
        
    Returns
    -------
    list
        Trait indices, every parent before its children. Ties are resolved
        by trait index.
        
    Raises
    ------
    CyclicGraphError
        If G has a self-loop or a directed cycle.
    """
    G = as_square(G, "G")
    adjacency = G != 0
    
    self_loops = np.flatnonzero(np.diag(adjacency))
    if self_loops.size:
        raise CyclicGraphError(
            f"G must have a zero diagonal; self-effects on traits {self_loops.tolist()}"
        )
    
    graph = nx.DiGraph()
    graph.add_nodes_from(range(G.shape[0]))
    graph.add_edges_from((int(i), int(j)) for i, j in zip(*np.nonzero(adjacency)))
    
    try:
        return [int(i) for i in nx.lexicographical_topological_sort(graph)]
    except nx.NetworkXUnfeasible:
        cycle = nx.find_cycle(graph, orientation="original")
        on_cycle = sorted({int(edge[0]) for edge in cycle})
        raise CyclicGraphError(f"G contains a directed cycle among traits {on_cycle}")


def total_effects(
    G: np.ndarray,
    method: str = "inverse",
    tol: Optional[float] = None,
) -> np.ndarray:
    """
    Total effect matrix ``T`` with ``T[i, j]`` the summed path weight i -> j.
    
    Parameters
    ----------
    G : np.ndarray
        Acyclic K x K direct-effect matrix.
    method : str
        "inverse" solves ``(I - G) X = I`` and returns ``X - I``;
        "neumann" sums ``G + G^2 + ...`` until the added term is below ``tol``.
    tol : float, optional
        Stopping tolerance for the Neumann series.
        
    Returns
    -------
    np.ndarray
        K x K total-effect matrix.
    """
    G = as_square(G, "G")
    K = G.shape[0]
    eye = np.eye(K)
    
    if method == "inverse":
        return np.linalg.solve(eye - G, eye) - eye
    
    if method == "neumann":
        if tol is None:
            tol = get_tolerance("neumann")
        T = np.zeros_like(G)
        term = G.copy()
        # G is nilpotent when acyclic, so at most K nonzero powers
        for _ in range(K):
            if np.max(np.abs(term), initial=0.0) < tol:
                break
            T += term
            term = term @ G
        return T
    
    raise InvalidParameterError(f"Unknown method: {method}. Use 'inverse' or 'neumann'")


def genetic_covariance(T: np.ndarray, h2_direct: np.ndarray) -> np.ndarray:
    """
    Genetic covariance induced by independent direct genetic components.
    
    Each trait m carries a direct genetic component with variance
    ``h2_direct[m]``; it reaches trait i with weight ``(I + T)[m, i]``.
    """
    M = np.eye(T.shape[0]) + T
    return M.T @ (h2_direct[:, None] * M)


def direct_from_total_h2(
    T: np.ndarray,
    h2_total: np.ndarray,
    order: List[int],
) -> np.ndarray:
    """
    Solve direct heritabilities that give the requested total heritabilities.
    
    Traits are visited in topological order; each trait's direct variance is
    its total target minus the genetic variance inherited from ancestors.
    """
    M = np.eye(T.shape[0]) + T
    tol = get_tolerance("heritability")
    h2_direct = np.zeros_like(h2_total)
    
    for i in order:
        weights = M[:, i] ** 2
        weights[i] = 0.0
        inherited = float(weights @ h2_direct)
        remaining = h2_total[i] - inherited
        if remaining < -tol:
            raise InvalidCorrelationError(
                f"Trait {i} inherits genetic variance {inherited:.4g} through G, "
                f"more than its total heritability {h2_total[i]:.4g}"
            )
        h2_direct[i] = max(remaining, 0.0)
    
    return h2_direct


@dataclass
class TraitDAG:
    """
    Validated trait graph with its derived effect and covariance algebra.
    
    Attributes
    ----------
    G : np.ndarray
        Direct trait-on-trait effects.
    T : np.ndarray
        Total (direct plus mediated) trait-on-trait effects.
    h2_direct : np.ndarray
        Variance of each trait's own genetic component.
    Sigma_G : np.ndarray
        Genetic covariance of the traits.
    Sigma_E : np.ndarray
        Environmental (non-genetic) covariance of the traits.
    trait_corr : np.ndarray
        ``Sigma_G + Sigma_E``; unit diagonal.
    topological_order : list
        Trait indices with parents before children.
    """
    
    G: np.ndarray
    T: np.ndarray
    h2_direct: np.ndarray
    Sigma_G: np.ndarray
    Sigma_E: np.ndarray
    trait_corr: np.ndarray
    topological_order: List[int] = field(default_factory=list)
    
    @property
    def n_traits(self) -> int:
        return self.G.shape[0]
    
    @property
    def h2_total(self) -> np.ndarray:
        """Total heritability of each trait (diagonal of Sigma_G)."""
        return np.diag(self.Sigma_G).copy()
    
    @property
    def effect_transfer(self) -> np.ndarray:
        """``I + T``: how a direct effect on trait k reaches every trait."""
        return np.eye(self.n_traits) + self.T
    
    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "n_traits": self.n_traits,
            "G": self.G.tolist(),
            "T": self.T.tolist(),
            "h2_direct": self.h2_direct.tolist(),
            "h2_total": self.h2_total.tolist(),
            "Sigma_G": self.Sigma_G.tolist(),
            "Sigma_E": self.Sigma_E.tolist(),
            "trait_corr": self.trait_corr.tolist(),
            "topological_order": list(self.topological_order),
        }


def build_dag(
    G,
    h2,
    R_E=None,
    h2_type: str = "direct",
    method: str = "inverse",
) -> TraitDAG:
    """
    Build the trait DAG algebra.
    
    Parameters
    ----------
    G : array-like
        K x K direct-effect matrix (zero diagonal, acyclic).
    h2 : float or array-like
        Heritability per trait; direct by default, see ``h2_type``.
    R_E : array-like, optional
        Environmental correlation matrix. Defaults to the identity.
    h2_type : str
        "direct" if ``h2`` is the variance of each trait's own genetic
        component, "total" if it includes variance mediated through G.
    method : str
        How to compute total effects, see ``total_effects``.
        
    Returns
    -------
    TraitDAG
        Derived algebra.
        
    Raises
    ------
    CyclicGraphError
        If G is not acyclic.
    InvalidCorrelationError
        If R_E is not a valid correlation matrix or the heritability budget
        is exceeded.
    DimensionMismatchError
        If the shapes of G, h2 and R_E disagree.
    """
    if h2_type not in H2_TYPES:
        raise InvalidParameterError(f"h2_type must be one of {H2_TYPES}, got {h2_type!r}")
    
    G = as_square(G, "G")
    K = G.shape[0]
    h2 = broadcast_vector(h2, K, "h2")
    
    if np.any(h2 < 0) or np.any(h2 > 1):
        raise InvalidCorrelationError(f"h2 must lie in [0, 1], got {h2.tolist()}")
    
    order = topological_order(G)
    T = total_effects(G, method=method)
    
    if h2_type == "total":
        h2_direct = direct_from_total_h2(T, h2, order)
    else:
        h2_direct = h2
    
    Sigma_G = genetic_covariance(T, h2_direct)
    genetic_var = np.diag(Sigma_G)
    
    over = np.flatnonzero(genetic_var > 1 + get_tolerance("heritability"))
    if over.size:
        raise InvalidCorrelationError(
            f"Genetic variance exceeds 1 for traits {over.tolist()} "
            f"({genetic_var[over].round(4).tolist()}); reduce h2 or the effects in G"
        )
    
    if R_E is None:
        R_E = np.eye(K)
    elif np.shape(R_E) != (K, K):
        raise DimensionMismatchError(f"R_E must be {K}x{K}, got shape {np.shape(R_E)}")
    R_E = check_correlation(R_E, "R_E", InvalidCorrelationError, size=K)
    
    D = np.sqrt(np.clip(1.0 - genetic_var, 0.0, None))
    Sigma_E = D[:, None] * R_E * D[None, :]
    trait_corr = Sigma_G + Sigma_E
    
    logger.debug(
        f"Built trait DAG: K={K}, {int(np.count_nonzero(G))} edges, "
        f"total h2 {genetic_var.round(4).tolist()}"
    )
    
    return TraitDAG(
        G=G,
        T=T,
        h2_direct=h2_direct,
        Sigma_G=Sigma_G,
        Sigma_E=Sigma_E,
        trait_corr=trait_corr,
        topological_order=order,
    )
