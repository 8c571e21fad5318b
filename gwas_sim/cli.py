"""
CLI Module for GWAS Summary Statistic Simulation
"""

import argparse
import sys

import numpy as np
import yaml

from .exceptions import ConfigurationError, SimulationError
from .utils.config import load_config
from .utils.logging import setup_logger


def _run_simulate(args, logger) -> None:
    from .simulate import simulate_from_config
    
    config = load_config(args.config)
    result = simulate_from_config(config, random_state=args.seed)
    summary = result.summary()
    
    logger.info(
        f"Simulated {summary['n_variants']:,} variants x {summary['n_traits']} traits "
        f"in {summary['n_ld_blocks']:,} LD blocks"
    )
    for k in range(summary["n_traits"]):
        logger.info(
            f"trait_{k + 1}: nonzero direct effects={summary['n_direct_nonzero'][k]}, "
            f"h2 total={summary['h2_total'][k]:.4f}, "
            f"h2 realized={summary['h2_realized'][k]:.4f}, "
            f"mean chi-square={summary['mean_chisq'][k]:.3f}"
        )


def _run_dag(args) -> None:
    from .dag import build_dag
    
    config = load_config(args.config)
    if "G" not in config or "h2" not in config:
        raise ConfigurationError("DAG configuration needs 'G' and 'h2'")
    
    h2_type = (config.get("simulation") or {}).get("h2_type", "direct")
    dag = build_dag(config["G"], config["h2"], R_E=config.get("R_E"), h2_type=h2_type)
    
    with np.printoptions(precision=4, suppress=True):
        print(f"Topological order: {dag.topological_order}")
        print(f"Total effects T:\n{dag.T}")
        print(f"Genetic covariance Sigma_G:\n{dag.Sigma_G}")
        print(f"Trait correlation:\n{dag.trait_corr}")


def main(argv=None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="gwas-sim",
        description="Simulate multi-trait GWAS summary statistics with known ground truth",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Simulate from a YAML description and log a per-trait summary
    gwas-sim simulate --config sim.yaml --seed 1
    
    # Inspect the total effects and covariances implied by a trait DAG
    gwas-sim dag --config sim.yaml
        """
    )
    parser.add_argument("--log-level", default="INFO", help="Logging level")
    parser.add_argument("--log-file", default=None, help="Also write the log to this file")
    
    subparsers = parser.add_subparsers(dest="command", help="Available commands")
    
    # Simulate command
    simulate_parser = subparsers.add_parser("simulate", help="Run a simulation")
    simulate_parser.add_argument("--config", required=True, help="Simulation YAML file")
    simulate_parser.add_argument("--seed", type=int, default=None, help="Random seed")
    
    # DAG command
    dag_parser = subparsers.add_parser("dag", help="Show trait DAG algebra")
    dag_parser.add_argument("--config", required=True, help="Simulation YAML file")
    
    args = parser.parse_args(argv)
    
    if args.command is None:
        parser.print_help()
        return 0
    
    logger = setup_logger(log_file=args.log_file, level=args.log_level)
    
    try:
        if args.command == "simulate":
            _run_simulate(args, logger)
        elif args.command == "dag":
            _run_dag(args)
    except (SimulationError, FileNotFoundError, yaml.YAMLError) as e:
        logger.error(f"{type(e).__name__}: {e}")
        return 1
    
    return 0


if __name__ == "__main__":
    sys.exit(main())
