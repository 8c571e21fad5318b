"""
LD Module

Block-diagonal LD storage and block-aware variant queries.
"""

from .blocks import (
    BlockKind,
    EigenFactor,
    LDBlock,
    LDBlockStore,
    as_block,
    block_matvec,
    build_ld_store,
)
from .query import LDPruner, ProxyResult, prune, proxy, extract

__all__ = [
    "BlockKind",
    "EigenFactor",
    "LDBlock",
    "LDBlockStore",
    "as_block",
    "block_matvec",
    "build_ld_store",
    "LDPruner",
    "ProxyResult",
    "prune",
    "proxy",
    "extract",
]
