"""
Tests for the Trait DAG Module.

Covers topological validation, total effects and the genetic,
environmental and total trait covariance algebra.
"""

import pytest
import numpy as np

from gwas_sim.dag import (
    TraitDAG,
    build_dag,
    topological_order,
    total_effects,
    genetic_covariance,
)
from gwas_sim.exceptions import (
    CyclicGraphError,
    DimensionMismatchError,
    InvalidCorrelationError,
    InvalidParameterError,
)


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def random_acyclic_G():
    """Strictly upper-triangular (hence acyclic) effects among 5 traits."""
    rng = np.random.default_rng(42)
    G = np.triu(rng.uniform(-0.4, 0.4, size=(5, 5)), k=1)
    G[rng.random((5, 5)) < 0.3] = 0.0
    return G


@pytest.fixture
def chain_G():
    """Trait 0 -> trait 1 -> trait 2."""
    G = np.zeros((3, 3))
    G[0, 1] = 0.5
    G[1, 2] = 0.4
    return G


# ============================================================================
# Test topological validation
# ============================================================================

class TestTopologicalOrder:
    """Tests for cycle detection."""
    
    def test_chain_order(self, chain_G):
        """Parents come before children."""
        assert topological_order(chain_G) == [0, 1, 2]
    
    def test_reversed_chain(self):
        """Order follows edges, not indices."""
        G = np.zeros((3, 3))
        G[2, 1] = 0.3
        G[1, 0] = 0.3
        
        assert topological_order(G) == [2, 1, 0]
    
    def test_cycle_detected(self):
        """A directed cycle raises CyclicGraphError."""
        G = np.zeros((3, 3))
        G[0, 1] = 0.2
        G[1, 2] = 0.2
        G[2, 0] = 0.2
        
        with pytest.raises(CyclicGraphError):
            topological_order(G)
    
    def test_cycle_traits_named(self):
        """The error names the traits on the cycle, not the acyclic rest."""
        G = np.zeros((4, 4))
        G[0, 1] = 0.2
        G[1, 2] = 0.3
        G[2, 1] = 0.1
        G[2, 3] = 0.2
        
        with pytest.raises(CyclicGraphError, match=r"\[1, 2\]"):
            topological_order(G)
    
    def test_ties_by_index(self):
        """Among traits that are ready together, the lower index comes first."""
        G = np.zeros((3, 3))
        G[2, 0] = 0.3
        
        assert topological_order(G) == [1, 2, 0]
    
    def test_self_loop_detected(self):
        """A nonzero diagonal is a cycle."""
        G = np.diag([0.0, 0.1])
        
        with pytest.raises(CyclicGraphError):
            build_dag(G, h2=0.3)
    
    def test_non_square(self):
        """G must be square."""
        with pytest.raises(DimensionMismatchError):
            build_dag(np.zeros((2, 3)), h2=0.3)


# ============================================================================
# Test total effects
# ============================================================================

class TestTotalEffects:
    """Tests for the total-effect matrix."""
    
    def test_fixed_point(self, random_acyclic_G):
        """T = G + G T for an acyclic G."""
        G = random_acyclic_G
        T = total_effects(G)
        
        np.testing.assert_allclose(T - G - G @ T, 0.0, atol=1e-12)
    
    def test_neumann_matches_inverse(self, random_acyclic_G):
        """Truncated series and matrix inversion agree."""
        T_inv = total_effects(random_acyclic_G, method="inverse")
        T_neu = total_effects(random_acyclic_G, method="neumann")
        
        np.testing.assert_allclose(T_inv, T_neu, atol=1e-12)
    
    def test_mediated_path(self, chain_G):
        """Indirect effect is the product of path weights."""
        T = total_effects(chain_G)
        
        assert T[0, 1] == pytest.approx(0.5)
        assert T[0, 2] == pytest.approx(0.2)
        assert T[2, 0] == 0.0
    
    def test_unknown_method(self, chain_G):
        """Unknown method raises InvalidParameterError."""
        with pytest.raises(InvalidParameterError):
            total_effects(chain_G, method="power")


# ============================================================================
# Test covariance algebra
# ============================================================================

class TestBuildDAG:
    """Tests for the derived covariance matrices."""
    
    def test_returns_trait_dag(self, chain_G):
        dag = build_dag(chain_G, h2=[0.3, 0.2, 0.1])
        
        assert isinstance(dag, TraitDAG)
        assert dag.n_traits == 3
        assert dag.topological_order == [0, 1, 2]
    
    def test_no_effects_gives_diagonal_sigma_g(self):
        """Without trait effects Sigma_G is diag(h2)."""
        dag = build_dag(np.zeros((2, 2)), h2=[0.4, 0.3])
        
        np.testing.assert_allclose(dag.Sigma_G, np.diag([0.4, 0.3]))
        np.testing.assert_allclose(dag.T, 0.0)
    
    def test_two_trait_sigma_g(self):
        """Closed form for a single edge 0 -> 1."""
        b, a, c = 0.3, 0.4, 0.2
        G = np.array([[0.0, b], [0.0, 0.0]])
        dag = build_dag(G, h2=[a, c])
        
        expected = np.array([
            [a, a * b],
            [a * b, c + b ** 2 * a],
        ])
        np.testing.assert_allclose(dag.Sigma_G, expected)
    
    def test_sigma_g_matches_genetic_covariance(self, random_acyclic_G):
        h2 = np.array([0.1, 0.2, 0.05, 0.15, 0.1])
        dag = build_dag(random_acyclic_G, h2=h2)
        
        np.testing.assert_allclose(dag.Sigma_G, genetic_covariance(dag.T, h2))
    
    @pytest.mark.parametrize("rho", [-0.5, 0.0, 0.4, 0.9])
    def test_trait_corr_unit_diagonal(self, random_acyclic_G, rho):
        """Total trait variance is always 1."""
        K = random_acyclic_G.shape[0]
        R_E = np.full((K, K), rho / (K - 1) if rho < 0 else rho)
        np.fill_diagonal(R_E, 1.0)
        
        dag = build_dag(random_acyclic_G, h2=0.2, R_E=R_E)
        
        np.testing.assert_allclose(np.diag(dag.trait_corr), 1.0, atol=1e-12)
    
    def test_sigma_e_scaling(self):
        """Sigma_E = D R_E D with D = sqrt(1 - h2)."""
        R_E = np.array([[1.0, 0.4], [0.4, 1.0]])
        dag = build_dag(np.zeros((2, 2)), h2=[0.4, 0.3], R_E=R_E)
        
        assert dag.Sigma_E[0, 1] == pytest.approx(0.4 * np.sqrt(0.6 * 0.7))
        assert dag.trait_corr[0, 1] == pytest.approx(0.4 * np.sqrt(0.6 * 0.7))
    
    def test_to_dict(self, chain_G):
        result = build_dag(chain_G, h2=0.2).to_dict()
        
        assert result["n_traits"] == 3
        assert len(result["Sigma_G"]) == 3


class TestBuildDAGErrors:
    """Tests for invalid DAG inputs."""
    
    def test_heritability_budget_exceeded(self):
        """Strong mediated effects push genetic variance above 1."""
        G = np.array([[0.0, 2.0], [0.0, 0.0]])
        
        with pytest.raises(InvalidCorrelationError):
            build_dag(G, h2=[0.5, 0.5])
    
    def test_r_e_not_psd(self):
        R_E = np.array([
            [1.0, 0.9, -0.9],
            [0.9, 1.0, 0.9],
            [-0.9, 0.9, 1.0],
        ])
        
        with pytest.raises(InvalidCorrelationError):
            build_dag(np.zeros((3, 3)), h2=0.2, R_E=R_E)
    
    def test_r_e_not_symmetric(self):
        R_E = np.array([[1.0, 0.2], [0.3, 1.0]])
        
        with pytest.raises(InvalidCorrelationError):
            build_dag(np.zeros((2, 2)), h2=0.2, R_E=R_E)
    
    def test_r_e_wrong_shape(self):
        with pytest.raises(DimensionMismatchError):
            build_dag(np.zeros((2, 2)), h2=0.2, R_E=np.eye(3))
    
    def test_h2_wrong_length(self):
        with pytest.raises(DimensionMismatchError):
            build_dag(np.zeros((2, 2)), h2=[0.1, 0.2, 0.3])
    
    def test_h2_out_of_range(self):
        with pytest.raises(InvalidCorrelationError):
            build_dag(np.zeros((2, 2)), h2=[0.1, 1.2])


class TestTotalHeritability:
    """Tests for h2_type='total'."""
    
    def test_total_h2_reproduced(self):
        """Direct h2 is solved so diag(Sigma_G) equals the total target."""
        G = np.array([[0.0, 0.5], [0.0, 0.0]])
        dag = build_dag(G, h2=[0.4, 0.3], h2_type="total")
        
        np.testing.assert_allclose(dag.h2_total, [0.4, 0.3])
        np.testing.assert_allclose(dag.h2_direct, [0.4, 0.3 - 0.25 * 0.4])
    
    def test_total_h2_chain(self, chain_G):
        dag = build_dag(chain_G, h2=[0.2, 0.3, 0.25], h2_type="total")
        
        np.testing.assert_allclose(dag.h2_total, [0.2, 0.3, 0.25])
    
    def test_inherited_exceeds_total(self):
        G = np.array([[0.0, 0.5], [0.0, 0.0]])
        
        with pytest.raises(InvalidCorrelationError):
            build_dag(G, h2=[0.8, 0.1], h2_type="total")
    
    def test_unknown_h2_type(self):
        with pytest.raises(InvalidParameterError):
            build_dag(np.zeros((2, 2)), h2=0.2, h2_type="narrow")
