"""
Tests for configuration, logging and linear-algebra utilities.
"""

import logging

import pytest
import numpy as np
import yaml

from gwas_sim.exceptions import (
    ConfigurationError,
    DimensionMismatchError,
    InvalidCorrelationError,
    NonPositiveDefiniteError,
)
from gwas_sim.utils import (
    ProgressLogger,
    as_rng,
    as_square,
    broadcast_vector,
    check_correlation,
    cholesky_factor,
    get_config,
    get_default,
    get_logger,
    get_tolerance,
    is_psd,
    load_config,
    psd_sqrt,
    validate_config,
)


# ============================================================================
# Test configuration
# ============================================================================

class TestConfig:
    """Tests for packaged defaults and YAML loading."""
    
    def test_defaults_valid(self):
        assert validate_config(get_config("defaults"))
    
    def test_tolerance(self):
        assert get_tolerance("psd") == pytest.approx(1e-8)
    
    def test_unknown_tolerance(self):
        with pytest.raises(ConfigurationError):
            get_tolerance("nonexistent")
    
    def test_default(self):
        assert get_default("ld_query", "proxy_r2_thresh") == pytest.approx(0.64)
        assert get_default("simulation", "h2_type") == "direct"
    
    def test_unknown_default(self):
        with pytest.raises(ConfigurationError):
            get_default("simulation", "nonexistent")
    
    def test_load_config(self, tmp_path):
        path = tmp_path / "run.yaml"
        path.write_text(yaml.safe_dump({"n_variants": 10}))
        
        assert load_config(path) == {"n_variants": 10}
    
    def test_load_empty(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        
        assert load_config(path) == {}
    
    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "missing.yaml")
    
    def test_missing_section(self):
        with pytest.raises(ConfigurationError):
            validate_config({"tolerances": {}, "simulation": {}})
    
    def test_negative_tolerance(self):
        with pytest.raises(ConfigurationError):
            validate_config({"tolerances": {"psd": -1}, "simulation": {}, "ld_query": {}})


# ============================================================================
# Test logging
# ============================================================================

class TestLogging:
    """Tests for package loggers."""
    
    def test_component_logger_is_child(self):
        assert get_logger("simulate").name == "gwas_sim.simulate"
        assert get_logger("gwas_sim.simulate").name == "gwas_sim.simulate"
    
    def test_progress_logger(self, caplog):
        logger = get_logger("progress_test")
        
        with caplog.at_level(logging.DEBUG, logger="gwas_sim"):
            progress = ProgressLogger(4, desc="Blocks", logger=logger, log_every=2)
            for _ in range(4):
                progress.update()
            progress.close()
        
        messages = [r.getMessage() for r in caplog.records]
        assert any("Blocks: 2/4" in m for m in messages)
        assert any("Blocks complete: 4 items" in m for m in messages)


# ============================================================================
# Test linear algebra
# ============================================================================

class TestLinalg:
    """Tests for matrix checks and factorizations."""
    
    def test_as_rng_passthrough(self):
        rng = np.random.default_rng(0)
        
        assert as_rng(rng) is rng
        assert isinstance(as_rng(1), np.random.Generator)
    
    def test_broadcast_scalar(self):
        np.testing.assert_array_equal(broadcast_vector(0.5, 3, "pi"), [0.5, 0.5, 0.5])
    
    def test_broadcast_wrong_length(self):
        with pytest.raises(DimensionMismatchError):
            broadcast_vector([0.1, 0.2], 3, "pi")
    
    def test_as_square(self):
        with pytest.raises(DimensionMismatchError):
            as_square(np.zeros((2, 3)), "G")
        with pytest.raises(DimensionMismatchError):
            as_square(np.zeros((2, 2)), "G", size=3)
    
    def test_check_correlation(self):
        with pytest.raises(InvalidCorrelationError, match="unit diagonal"):
            check_correlation([[2.0, 0.0], [0.0, 1.0]], "R_E", InvalidCorrelationError)
        with pytest.raises(InvalidCorrelationError, match="symmetric"):
            check_correlation([[1.0, 0.2], [0.1, 1.0]], "R_E", InvalidCorrelationError)
        with pytest.raises(InvalidCorrelationError, match="semi-definite"):
            check_correlation([[1.0, 1.2], [1.2, 1.0]], "R_E", InvalidCorrelationError)
    
    def test_singular_is_psd(self):
        assert is_psd(np.ones((3, 3)))
    
    def test_psd_sqrt(self):
        A = np.array([[1.0, 0.5], [0.5, 1.0]])
        F = psd_sqrt(A)
        
        np.testing.assert_allclose(F @ F.T, A, atol=1e-12)
    
    def test_cholesky_fallback(self):
        A = np.ones((3, 3))
        F = cholesky_factor(A)
        
        np.testing.assert_allclose(F @ F.T, A, atol=1e-10)
    
    def test_cholesky_rejects_indefinite(self):
        with pytest.raises(NonPositiveDefiniteError):
            cholesky_factor(np.array([[1.0, 2.0], [2.0, 1.0]]))
