"""Dominance analysis for control flow graphs.

A block A dominates block B if every path from the entry to B passes
through A. The lifetime analysis uses this to decide whether a deferred
release is registered after the acquisition it covers.
"""

from spanguard.util.graphalgorithim import dominator


class DominatorInfo(object):
    """
    Immediate dominators of a pruned CFG.

    Attributes:
        cfg: The graph
        idom: Mapping block -> immediate dominator (entry maps to None)
    """

    def __init__(self, cfg):
        self.cfg = cfg
        self.idom = dominator.findIDoms(cfg.successorMap(), cfg.entry)

    def dominates(self, a, b):
        """Check whether block a dominates block b."""
        return dominator.dominates(self.idom, a, b)

    def dominated(self, a):
        """All blocks dominated by a, a included."""
        return [b for b in self.cfg.blocks if b in self.idom and self.dominates(a, b)]
