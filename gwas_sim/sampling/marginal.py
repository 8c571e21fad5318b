"""
Effect Propagation

Propagates direct variant effects through the trait DAG (joint effects)
and then through LD (marginal effects).
"""

from dataclasses import dataclass

import numpy as np

from ..dag.graph import TraitDAG
from ..effects.direct import DirectEffect
from ..exceptions import DimensionMismatchError
from ..ld.blocks import LDBlockStore
from ..utils.logging import ProgressLogger, get_logger


logger = get_logger("marginal_effects")


@dataclass
class JointEffect:
    """J x K true causal effects: direct plus mediated through the trait DAG."""
    beta: np.ndarray


@dataclass
class MarginalEffect:
    """J x K expected GWAS associations: joint effects propagated through LD."""
    beta: np.ndarray


def joint_from_direct(direct: DirectEffect, dag: TraitDAG) -> JointEffect:
    """
    Joint effects ``beta_direct @ (I + T)``.
    
    A direct effect on trait k reaches trait j with weight ``T[k, j]`` in
    addition to counting fully towards k itself.
    
    Parameters
    ----------
    direct : DirectEffect
        J x K direct effects.
    dag : TraitDAG
        Trait DAG with the same K.
        
    Returns
    -------
    JointEffect
        J x K joint effects.
    """
    if direct.n_traits != dag.n_traits:
        raise DimensionMismatchError(
            f"Direct effects have {direct.n_traits} traits but the DAG has {dag.n_traits}"
        )
    return JointEffect(beta=direct.beta @ dag.effect_transfer)


def marginalize(joint: JointEffect, ld_store: LDBlockStore) -> MarginalEffect:
    """
    Marginal effects: each block's LD matrix times the block's joint effects.
    
    Parameters
    ----------
    joint : JointEffect
        J x K joint effects.
    ld_store : LDBlockStore
        LD structure over the same J variants.
        
    Returns
    -------
    MarginalEffect
        J x K marginal effects; an exact copy of the joint effects when the
        store has no LD.
    """
    beta_joint = joint.beta
    if beta_joint.shape[0] != ld_store.n_variants:
        raise DimensionMismatchError(
            f"Joint effects cover {beta_joint.shape[0]} variants, "
            f"LD store covers {ld_store.n_variants}"
        )
    
    if ld_store.is_identity:
        return MarginalEffect(beta=beta_joint.copy())
    
    beta_marg = np.zeros_like(beta_joint)
    progress = ProgressLogger(ld_store.n_blocks, desc="Marginalizing LD blocks", logger=logger)
    
    for b, sl in ld_store.block_ranges():
        block_joint = beta_joint[sl]
        # Blocks without causal effects stay zero
        if np.any(block_joint):
            beta_marg[sl] = ld_store.apply(b, block_joint)
        progress.update()
    
    progress.close()
    return MarginalEffect(beta=beta_marg)


def realized_genetic_covariance(joint: JointEffect, ld_store: LDBlockStore) -> np.ndarray:
    """
    Genetic covariance implied by realized joint effects and LD.
    
    ``beta_joint.T @ R_LD @ beta_joint`` accumulated block by block.
    """
    beta_joint = joint.beta
    K = beta_joint.shape[1]
    
    if ld_store.is_identity:
        return beta_joint.T @ beta_joint
    
    cov = np.zeros((K, K))
    for b, sl in ld_store.block_ranges():
        block_joint = beta_joint[sl]
        if np.any(block_joint):
            cov += block_joint.T @ ld_store.apply(b, block_joint)
    return cov
