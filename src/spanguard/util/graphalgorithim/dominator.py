"""
Dominator computation.

A node d dominates a node n if every path from the entry point to n passes
through d. The immediate dominator (idom) of n is the closest strict
dominator of n.

The algorithm is the iterative scheme of Cooper, Harvey and Kennedy: number
the nodes in reverse post-order, then repeatedly intersect the dominator
chains of each node's predecessors until nothing changes.
"""


def intersect(doms, b1, b2):
    """
    Find the common dominator of two nodes.

    Parameters
    ----------
    doms : list
        doms[i] is the current immediate dominator of node i, in reverse
        post-order numbering
    b1, b2 : int
        Node numbers

    Returns
    -------
    int
        The nearest node dominating both b1 and b2
    """
    finger1 = b1
    finger2 = b2
    while finger1 != finger2:
        while finger1 > finger2:
            finger1 = doms[finger1]
        while finger2 > finger1:
            finger2 = doms[finger2]
    return finger1


def reversePostorder(G, head):
    """
    Compute the reverse post-order of the nodes reachable from head.

    Uses an explicit stack so deep graphs do not hit the recursion limit.

    Parameters
    ----------
    G : dict
        Graph mapping nodes to iterables of successors
    head : any
        Entry node

    Returns
    -------
    list
        Reachable nodes, head first
    """
    order = []
    processed = {head}
    stack = [(head, iter(G.get(head, ())))]
    while stack:
        _parent, children = stack[-1]
        for child in children:
            if child not in processed:
                processed.add(child)
                stack.append((child, iter(G.get(child, ()))))
                break
        else:
            order.append(stack.pop()[0])
    order.reverse()
    return order


def findIDoms(G, head):
    """
    Compute the immediate dominator of every node reachable from head.

    Parameters
    ----------
    G : dict
        Graph mapping nodes to iterables of successors
    head : any
        Entry node

    Returns
    -------
    dict
        Mapping node -> immediate dominator; head maps to None
    """
    order = reversePostorder(G, head)
    forward = {node: i for i, node in enumerate(order)}

    pred = {i: [] for i in range(len(order))}
    for node in order:
        i = forward[node]
        for nextNode in G.get(node, ()):
            n = forward[nextNode]
            if n != i:
                pred[n].append(i)

    doms = [None] * len(order)
    doms[0] = 0

    changed = True
    while changed:
        changed = False
        for node in range(1, len(order)):
            processed = [p for p in pred[node] if doms[p] is not None]
            new_idom = processed[0]
            for p in processed[1:]:
                new_idom = intersect(doms, new_idom, p)

            if doms[node] != new_idom:
                doms[node] = new_idom
                changed = True

    idoms = {head: None}
    for i, idom in enumerate(doms[1:], 1):
        idoms[order[i]] = order[idom]
    return idoms


def dominates(idoms, a, b):
    """
    Check whether a dominates b, walking b's idom chain.

    Parameters
    ----------
    idoms : dict
        Result of findIDoms
    a, b : any
        Graph nodes

    Returns
    -------
    bool
        True if a dominates b (every node dominates itself)
    """
    while b is not None:
        if b == a:
            return True
        b = idoms.get(b)
    return False
