"""Depth-first search traversal for CFGs.

This module provides depth-first traversal of control flow graphs with
pre-order and post-order callbacks, and the pruning pass that removes
blocks unreachable from the entry.
"""

import logging

LOG = logging.getLogger(__name__)


def doNothing(node):
    pass


class CFGDFS(object):
    """Depth-first search traverser for CFG blocks.

    Uses an explicit stack, so long straight-line functions do not hit the
    recursion limit.

    Attributes:
        pre: Callback function called before visiting a block.
        post: Callback function called after visiting a block.
        processed: Set of already processed blocks.
    """

    def __init__(self, pre=doNothing, post=doNothing):
        self.pre = pre
        self.post = post
        self.processed = set()

    def process(self, node):
        if node in self.processed:
            return
        self.processed.add(node)
        self.pre(node)
        stack = [(node, iter(node.forward()))]
        while stack:
            current, children = stack[-1]
            for child in children:
                if child not in self.processed:
                    self.processed.add(child)
                    self.pre(child)
                    stack.append((child, iter(child.forward())))
                    break
            else:
                stack.pop()
                self.post(current)


def reachable(cfg):
    dfs = CFGDFS()
    dfs.process(cfg.entry)
    return dfs.processed


def pruneUnreachable(cfg):
    """
    Drop blocks that cannot be reached from the entry block.

    Edges from dropped blocks into live ones are removed as well, so no
    later analysis ever sees an unreachable predecessor.

    Returns:
        Number of blocks removed
    """
    live = reachable(cfg)
    dead = [b for b in cfg.blocks if b not in live]
    for block in dead:
        for succ in block.forward():
            block.unlink(succ)
    cfg.blocks = [b for b in cfg.blocks if b in live]
    cfg._locations = None
    if dead:
        LOG.debug("%s: pruned %d unreachable blocks", cfg.function.qualname, len(dead))
    return len(dead)
