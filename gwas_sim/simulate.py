"""
Simulation Pipeline

Runs the full simulation: trait DAG algebra -> direct effects -> joint
effects -> LD marginalization -> sampled summary statistics, and collects
every ground-truth and simulated matrix in one result.
"""

from dataclasses import dataclass, field, replace
from typing import Any, Dict, Optional, Sequence

import numpy as np
import pandas as pd

from .dag.graph import TraitDAG, build_dag
from .effects.direct import EffectSampler, generate_direct_effects
from .exceptions import ConfigurationError, DimensionMismatchError
from .ld.blocks import LDBlockStore, build_ld_store
from .sampling.marginal import (
    JointEffect,
    MarginalEffect,
    joint_from_direct,
    marginalize,
    realized_genetic_covariance,
)
from .sampling.overlap import SampleOverlap
from .sampling.summary import (
    AlleleFrequency,
    allele_frequencies,
    allele_scale,
    simulate_beta_hat,
)
from .utils.config import get_default
from .utils.linalg import RandomState, as_rng, broadcast_vector
from .utils.logging import get_logger


logger = get_logger("simulate")


@dataclass(frozen=True)
class SimulationResult:
    """
    Ground truth and simulated summary statistics of one simulation.
    
    J x K matrices are on the allele scale when allele frequencies were
    given, and on the standardized scale otherwise.
    
    Attributes
    ----------
    beta_hat, se_beta_hat : np.ndarray
        Simulated estimates and their true standard errors.
    s_estimate : np.ndarray, optional
        Simulated standard-error estimates.
    beta_joint : np.ndarray
        True causal (direct plus mediated) effects.
    beta_marg : np.ndarray
        Expected marginal associations under LD.
    direct_effects : np.ndarray
        Direct effects.
    Sigma_G, Sigma_E, trait_corr, R, T : np.ndarray
        K x K trait-level matrices.
    af : np.ndarray, optional
        Allele frequencies.
    """
    
    beta_hat: np.ndarray
    se_beta_hat: np.ndarray
    s_estimate: Optional[np.ndarray]
    beta_joint: np.ndarray
    beta_marg: np.ndarray
    direct_effects: np.ndarray
    Sigma_G: np.ndarray
    Sigma_E: np.ndarray
    trait_corr: np.ndarray
    R: np.ndarray
    T: np.ndarray
    af: Optional[np.ndarray]
    dag: TraitDAG = field(repr=False)
    ld_store: LDBlockStore = field(repr=False)
    overlap: SampleOverlap = field(repr=False)
    beta_joint_std: np.ndarray = field(repr=False)
    beta_marg_std: np.ndarray = field(repr=False)
    
    @property
    def n_variants(self) -> int:
        return self.beta_hat.shape[0]
    
    @property
    def n_traits(self) -> int:
        return self.beta_hat.shape[1]
    
    @property
    def realized_Sigma_G(self) -> np.ndarray:
        """Genetic covariance implied by the realized effects and LD."""
        return realized_genetic_covariance(JointEffect(self.beta_joint_std), self.ld_store)
    
    def summary(self) -> Dict[str, Any]:
        """Per-trait overview of the simulation."""
        z = self.beta_hat / (self.s_estimate if self.s_estimate is not None else self.se_beta_hat)
        return {
            "n_variants": self.n_variants,
            "n_traits": self.n_traits,
            "n_ld_blocks": self.ld_store.n_blocks,
            "n_direct_nonzero": np.count_nonzero(self.direct_effects, axis=0).tolist(),
            "h2_total": np.diag(self.Sigma_G).tolist(),
            "h2_realized": np.diag(self.realized_Sigma_G).tolist(),
            "mean_chisq": np.mean(z ** 2, axis=0).tolist(),
        }
    
    def to_frames(self, trait_names: Optional[Sequence[str]] = None) -> Dict[str, pd.DataFrame]:
        """
        Labeled tables of every output.
        
        Parameters
        ----------
        trait_names : sequence of str, optional
            Column labels; defaults to trait_1 ... trait_K.
            
        Returns
        -------
        dict
            Name -> DataFrame. J x K outputs are indexed by variant,
            K x K outputs by trait.
        """
        if trait_names is None:
            trait_names = [f"trait_{k + 1}" for k in range(self.n_traits)]
        elif len(trait_names) != self.n_traits:
            raise DimensionMismatchError(f"Expected {self.n_traits} trait names, got {len(trait_names)}")
        
        variants = pd.RangeIndex(self.n_variants, name="variant")
        traits = pd.Index(list(trait_names), name="trait")
        
        per_variant = {
            "beta_hat": self.beta_hat,
            "se_beta_hat": self.se_beta_hat,
            "s_estimate": self.s_estimate,
            "beta_joint": self.beta_joint,
            "beta_marg": self.beta_marg,
            "direct_effects": self.direct_effects,
        }
        per_trait = {
            "Sigma_G": self.Sigma_G,
            "Sigma_E": self.Sigma_E,
            "trait_corr": self.trait_corr,
            "R": self.R,
            "T": self.T,
        }
        
        frames = {
            name: pd.DataFrame(values, index=variants, columns=list(trait_names))
            for name, values in per_variant.items()
            if values is not None
        }
        frames.update({
            name: pd.DataFrame(values, index=traits, columns=list(trait_names))
            for name, values in per_trait.items()
        })
        
        variant_info = pd.DataFrame(index=variants)
        variant_info["ld_block"] = np.repeat(np.arange(self.ld_store.n_blocks), self.ld_store.sizes)
        if self.af is not None:
            variant_info["af"] = self.af
        frames["variants"] = variant_info
        
        return frames


def _on_report_scale(beta_std: np.ndarray, af: Optional[np.ndarray]) -> np.ndarray:
    if af is None:
        return beta_std
    return beta_std * allele_scale(af)[:, None]


def simulate_sumstats(
    n_variants: int,
    G,
    h2,
    pi,
    N,
    R_E=None,
    af: AlleleFrequency = None,
    ld: Any = None,
    sporadic_pleiotropy: bool = True,
    pi_exact: bool = False,
    h2_exact: bool = False,
    estimate_s: bool = False,
    h2_type: str = "direct",
    effect_sampler: Optional[EffectSampler] = None,
    random_state: RandomState = None,
) -> SimulationResult:
    """
    Simulate multi-trait GWAS summary statistics.
    
    Parameters
    ----------
    n_variants : int
        Number of variants J.
    G : array-like or None
        K x K direct trait effects, ``G[i, j]`` the effect of trait i on j.
        None means no causal effects between traits (K taken from ``h2``).
    h2 : float or array-like
        Heritability per trait (direct by default, see ``h2_type``).
    pi : float or array-like
        Proportion of variants with a nonzero direct effect per trait.
    N : float, array-like
        Sample size scalar, per-trait vector, or K x K overlap matrix.
    R_E : array-like, optional
        Environmental correlation; identity by default.
    af : float, array-like or callable, optional
        Allele frequencies; switches outputs to the allele scale.
    ld : list of blocks, optional
        LD pattern (dense, sparse or eigen-factorized blocks). No LD if None.
    sporadic_pleiotropy, pi_exact, h2_exact : bool
        Direct-effect constraints, see ``DirectEffectGenerator``.
    estimate_s : bool
        Also simulate standard-error estimates.
    h2_type : str
        "direct" or "total".
    effect_sampler : callable, optional
        Custom draw of nonzero direct effects.
    random_state : int, Generator, optional
        Seed or random generator.
        
    Returns
    -------
    SimulationResult
        All outputs.
    """
    if G is None:
        K = np.atleast_1d(np.asarray(h2, dtype=float)).shape[0]
        G = np.zeros((K, K))
    
    dag = build_dag(G, h2, R_E=R_E, h2_type=h2_type)
    K = dag.n_traits
    pi = broadcast_vector(pi, K, "pi")
    
    overlap = SampleOverlap.from_input(N, K)
    R = overlap.error_correlation(dag.trait_corr)
    ld_store = build_ld_store(ld, n_variants)
    af_values = allele_frequencies(af, n_variants)
    
    logger.info(
        f"Simulating {n_variants:,} variants x {K} traits "
        f"({ld_store.n_blocks:,} LD blocks, overlap={overlap.has_overlap})"
    )
    
    effects_rng, sampling_rng = as_rng(random_state).spawn(2)
    
    direct = generate_direct_effects(
        n_variants,
        pi=pi,
        h2=dag.h2_direct,
        sporadic_pleiotropy=sporadic_pleiotropy,
        pi_exact=pi_exact,
        h2_exact=h2_exact,
        effect_sampler=effect_sampler,
        random_state=effects_rng,
    )
    joint = joint_from_direct(direct, dag)
    marginal = marginalize(joint, ld_store)
    
    sumstats = simulate_beta_hat(
        marginal,
        overlap,
        R=R,
        ld_store=ld_store,
        af=af_values,
        estimate_s=estimate_s,
        random_state=sampling_rng,
    )
    
    return SimulationResult(
        beta_hat=sumstats.beta_hat,
        se_beta_hat=sumstats.se_beta_hat,
        s_estimate=sumstats.s_estimate,
        beta_joint=_on_report_scale(joint.beta, af_values),
        beta_marg=_on_report_scale(marginal.beta, af_values),
        direct_effects=_on_report_scale(direct.beta, af_values),
        Sigma_G=dag.Sigma_G,
        Sigma_E=dag.Sigma_E,
        trait_corr=dag.trait_corr,
        R=R,
        T=dag.T,
        af=af_values,
        dag=dag,
        ld_store=ld_store,
        overlap=overlap,
        beta_joint_std=joint.beta,
        beta_marg_std=marginal.beta,
    )


def resample_sumstats(
    result: SimulationResult,
    N=None,
    estimate_s: Optional[bool] = None,
    random_state: RandomState = None,
) -> SimulationResult:
    """
    Draw new estimates from the true effects of an earlier simulation.
    
    Parameters
    ----------
    result : SimulationResult
        Earlier simulation; its effects, DAG and LD are reused.
    N : float or array-like, optional
        New sample sizes / overlap. Defaults to the original.
    estimate_s : bool, optional
        Defaults to whether the original simulated standard-error estimates.
    random_state : int, Generator, optional
        Seed or random generator.
        
    Returns
    -------
    SimulationResult
        Copy of ``result`` with new estimates, standard errors and R.
    """
    overlap = result.overlap if N is None else SampleOverlap.from_input(N, result.n_traits)
    R = overlap.error_correlation(result.trait_corr)
    if estimate_s is None:
        estimate_s = result.s_estimate is not None
    
    sumstats = simulate_beta_hat(
        MarginalEffect(result.beta_marg_std),
        overlap,
        R=R,
        ld_store=result.ld_store,
        af=result.af,
        estimate_s=estimate_s,
        random_state=random_state,
    )
    
    return replace(
        result,
        beta_hat=sumstats.beta_hat,
        se_beta_hat=sumstats.se_beta_hat,
        s_estimate=sumstats.s_estimate,
        R=R,
        overlap=overlap,
    )


def simulate_from_config(
    config: Dict[str, Any],
    random_state: RandomState = None,
) -> SimulationResult:
    """
    Run ``simulate_sumstats`` from a configuration mapping.
    
    Expected keys: ``n_variants``, ``h2``, ``pi``, ``N`` and optionally
    ``G``, ``R_E``, ``af``, ``ld_blocks``, ``seed`` and a ``simulation``
    section with the boolean flags and ``h2_type``. Missing flags fall back
    to the packaged defaults. Each ``ld_blocks`` entry is a nested list (dense
    block) or a mapping with ``values`` and ``vectors`` (eigen block).
    """
    for key in ("n_variants", "h2", "pi", "N"):
        if key not in config:
            raise ConfigurationError(f"Missing required configuration key: {key}")
    
    flags = config.get("simulation", {}) or {}
    
    def flag(name: str) -> Any:
        return flags.get(name, get_default("simulation", name))
    
    if random_state is None:
        random_state = config.get("seed")
    
    return simulate_sumstats(
        n_variants=int(config["n_variants"]),
        G=config.get("G"),
        h2=config["h2"],
        pi=config["pi"],
        N=config["N"],
        R_E=config.get("R_E"),
        af=config.get("af"),
        ld=config.get("ld_blocks"),
        sporadic_pleiotropy=bool(flag("sporadic_pleiotropy")),
        pi_exact=bool(flag("pi_exact")),
        h2_exact=bool(flag("h2_exact")),
        estimate_s=bool(flag("estimate_s")),
        h2_type=str(flag("h2_type")),
        random_state=random_state,
    )
