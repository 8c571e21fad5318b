"""
Tests for Direct Effect Generation.
"""

import logging

import pytest
import numpy as np

from gwas_sim.effects import (
    DirectEffect,
    DirectEffectGenerator,
    generate_direct_effects,
    laplace_effects,
)
from gwas_sim.exceptions import (
    DimensionMismatchError,
    InsufficientVariantsError,
    InvalidParameterError,
)


# ============================================================================
# Test sparsity
# ============================================================================

class TestSparsity:
    """Tests for the number of nonzero effects."""
    
    def test_pi_exact_counts(self):
        """Exactly round(pi * J) nonzero effects per trait."""
        effects = generate_direct_effects(
            1000, pi=[0.05, 0.013], h2=[0.4, 0.3], pi_exact=True, random_state=1
        )
        
        assert effects.n_nonzero.tolist() == [50, 13]
    
    def test_expected_counts(self):
        """Default mode draws approximately pi * J nonzero effects."""
        effects = generate_direct_effects(20000, pi=0.05, h2=0.3, random_state=2)
        
        assert abs(int(effects.n_nonzero[0]) - 1000) < 200
    
    def test_zero_pi(self):
        effects = generate_direct_effects(500, pi=[0.0, 0.1], h2=[0.3, 0.3], random_state=3)
        
        assert effects.n_nonzero[0] == 0
        assert effects.n_nonzero[1] > 0
    
    def test_support(self):
        effects = generate_direct_effects(200, pi=0.1, h2=0.2, pi_exact=True, random_state=4)
        
        support = effects.support(0)
        assert len(support) == 20
        assert np.all(effects.beta[support, 0] != 0)


# ============================================================================
# Test heritability
# ============================================================================

class TestHeritability:
    """Tests for realized heritability."""
    
    def test_h2_exact(self):
        """Realized sum of squares equals h2 per trait."""
        effects = generate_direct_effects(
            2000, pi=[0.05, 0.02, 0.1], h2=[0.4, 0.3, 0.05],
            h2_exact=True, random_state=5,
        )
        
        np.testing.assert_allclose(effects.realized_h2, [0.4, 0.3, 0.05], rtol=1e-12)
    
    def test_h2_exact_with_disjoint_supports(self):
        effects = generate_direct_effects(
            2000, pi=[0.05, 0.05], h2=[0.4, 0.3],
            sporadic_pleiotropy=False, pi_exact=True, h2_exact=True, random_state=6,
        )
        
        np.testing.assert_allclose(effects.realized_h2, [0.4, 0.3], rtol=1e-12)
    
    def test_expected_h2(self):
        """Without rescaling h2 holds in expectation."""
        effects = generate_direct_effects(20000, pi=0.05, h2=0.4, random_state=7)
        
        assert effects.realized_h2[0] == pytest.approx(0.4, rel=0.25)
    
    def test_empty_support_warns(self, caplog):
        """h2_exact cannot rescale a trait with no drawn effects."""
        with caplog.at_level(logging.WARNING, logger="gwas_sim"):
            effects = generate_direct_effects(
                10, pi=1e-6, h2=0.3, h2_exact=True, random_state=8
            )
        
        assert effects.n_nonzero[0] == 0
        assert "no variants drawn" in caplog.text


# ============================================================================
# Test pleiotropy
# ============================================================================

class TestPleiotropy:
    """Tests for disjoint supports without sporadic pleiotropy."""
    
    @pytest.mark.parametrize("pi_exact", [True, False])
    def test_disjoint_supports(self, pi_exact):
        effects = generate_direct_effects(
            1000, pi=[0.2, 0.3, 0.1], h2=0.3,
            sporadic_pleiotropy=False, pi_exact=pi_exact, random_state=9,
        )
        
        nonzero_per_variant = np.count_nonzero(effects.beta, axis=1)
        assert nonzero_per_variant.max() <= 1
    
    def test_insufficient_variants(self):
        """Disjoint supports cannot exceed J variants."""
        with pytest.raises(InsufficientVariantsError):
            generate_direct_effects(
                100, pi=[0.6, 0.5], h2=0.3,
                sporadic_pleiotropy=False, pi_exact=True,
            )
    
    def test_insufficient_variants_default_mode(self):
        with pytest.raises(InsufficientVariantsError):
            generate_direct_effects(
                100, pi=[0.6, 0.5], h2=0.3, sporadic_pleiotropy=False,
            )
    
    def test_pleiotropy_allowed(self):
        """With pleiotropy dense supports overlap."""
        effects = generate_direct_effects(
            100, pi=[0.6, 0.5], h2=0.3, pi_exact=True, random_state=10
        )
        
        assert np.count_nonzero(effects.beta, axis=1).max() == 2


# ============================================================================
# Test generator options
# ============================================================================

class TestGeneratorOptions:
    """Tests for sampler and reproducibility options."""
    
    def test_custom_sampler(self):
        effects = generate_direct_effects(
            100, pi=0.1, h2=0.5, pi_exact=True,
            effect_sampler=lambda n, sd, rng: np.full(n, sd),
            random_state=11,
        )
        
        values = effects.beta[effects.support(0), 0]
        np.testing.assert_allclose(values, np.sqrt(0.5 / 10))
    
    def test_laplace_sampler(self):
        effects = generate_direct_effects(
            1000, pi=0.1, h2=0.5, pi_exact=True, h2_exact=True,
            effect_sampler=laplace_effects, random_state=12,
        )
        
        assert effects.realized_h2[0] == pytest.approx(0.5)
    
    def test_sampler_wrong_shape(self):
        with pytest.raises(DimensionMismatchError):
            generate_direct_effects(
                100, pi=0.1, h2=0.5, pi_exact=True,
                effect_sampler=lambda n, sd, rng: np.zeros(n + 1),
            )
    
    def test_reproducible(self):
        a = generate_direct_effects(500, pi=0.1, h2=0.3, random_state=13)
        b = generate_direct_effects(500, pi=0.1, h2=0.3, random_state=13)
        
        np.testing.assert_array_equal(a.beta, b.beta)
    
    def test_mismatched_lengths(self):
        with pytest.raises(DimensionMismatchError):
            DirectEffectGenerator(pi=[0.1, 0.2], h2=[0.1, 0.2, 0.3])
    
    def test_invalid_pi(self):
        with pytest.raises(InvalidParameterError):
            DirectEffectGenerator(pi=1.5, h2=0.2)
    
    def test_to_dict(self):
        effects = generate_direct_effects(100, pi=0.1, h2=0.2, random_state=14)
        result = effects.to_dict()
        
        assert isinstance(effects, DirectEffect)
        assert result["n_variants"] == 100
        assert result["target_h2"] == [0.2]
