"""Control flow graphs of single function bodies."""

from .builder import CFGBuilder, buildCFG
from .dom import DominatorInfo
from .graph import EXCEPTION, NORMAL, CFGBlock, ControlFlowGraph, Event

__all__ = [
    "CFGBuilder",
    "buildCFG",
    "DominatorInfo",
    "ControlFlowGraph",
    "CFGBlock",
    "Event",
    "NORMAL",
    "EXCEPTION",
]
