"""
Configuration management utilities.
"""

import yaml
from pathlib import Path
from typing import Any, Dict
from functools import lru_cache

from ..exceptions import ConfigurationError


REQUIRED_SECTIONS = ["tolerances", "simulation", "ld_query"]


def load_config(config_path: str | Path) -> Dict[str, Any]:
    """
    Load a YAML configuration file.
    
    Parameters
    ----------
    config_path : str or Path
        Path to the YAML configuration file.
        
    Returns
    -------
    dict
        Configuration dictionary.
    """
    config_path = Path(config_path)
    
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")
    
    with open(config_path, 'r') as f:
        config = yaml.safe_load(f)
    
    return config or {}


@lru_cache(maxsize=8)
def get_config(config_name: str = "defaults") -> Dict[str, Any]:
    """
    Get a cached configuration by name.
    
    Parameters
    ----------
    config_name : str
        Name of the configuration file (without .yaml extension)
        inside the packaged config directory.
        
    Returns
    -------
    dict
        Configuration dictionary.
    """
    from gwas_sim import CONFIG_DIR
    
    config_path = CONFIG_DIR / f"{config_name}.yaml"
    config = load_config(config_path)
    validate_config(config)
    return config


def get_tolerance(name: str) -> float:
    """
    Get a numeric tolerance from the default configuration.
    
    Parameters
    ----------
    name : str
        Tolerance key (e.g., "psd", "symmetry", "neumann").
        
    Returns
    -------
    float
        Tolerance value.
    """
    tolerances = get_config("defaults")["tolerances"]
    
    if name not in tolerances:
        raise ConfigurationError(f"Unknown tolerance: {name}")
    
    return float(tolerances[name])


def get_default(section: str, key: str) -> Any:
    """Look up a default value in a section of the default configuration."""
    config = get_config("defaults")
    
    if key not in config.get(section, {}):
        raise ConfigurationError(f"Unknown default: {section}.{key}")
    
    return config[section][key]


def validate_config(config: Dict[str, Any]) -> bool:
    """
    Validate a configuration dictionary.
    
    Parameters
    ----------
    config : dict
        Configuration dictionary to validate.
        
    Returns
    -------
    bool
        True if valid, raises exception otherwise.
    """
    for key in REQUIRED_SECTIONS:
        if key not in config:
            raise ConfigurationError(f"Missing required configuration key: {key}")
    
    for name, value in config["tolerances"].items():
        if float(value) < 0:
            raise ConfigurationError(f"Tolerance {name} must be non-negative, got {value}")
    
    return True
