"""
Front-end for spanguard.

Turns Python source into the read-only program view the analyses consume:
- node_visitor: single AST walk collecting functions, classes and imports
- program: ProgramView/FunctionInfo with symtable-based name classification
- types: structural method-set queries over annotations
"""

from .program import ClassInfo, FunctionInfo, ProgramView, get_call_name, local_walk
from .types import TypeView

__all__ = ["ClassInfo", "FunctionInfo", "ProgramView", "TypeView", "get_call_name", "local_walk"]
