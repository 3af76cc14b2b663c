"""Control Flow Graph (CFG) representation.

This module provides the data structures for the control flow graph of one
function body:

- Blocks hold an ordered list of events. An event is the syntax node whose
  evaluation happens at that point (a simple statement, the test of an
  ``if``, one item of a ``with``, an ``except`` clause, ...).
- Edges are labelled. ``normal`` edges are ordinary control transfers,
  explicit ``raise`` included. ``exception`` edges model an exception thrown
  while evaluating the single event of a block inside a guarded ``try``.
- Every graph has one entry block and two exit blocks: the normal return
  exit and the raise (unwind) exit.
"""

from spanguard.frontend.program import local_walk

NORMAL = "normal"
EXCEPTION = "exception"

ENTRY = "entry"
BODY = "body"
RETURN_EXIT = "return"
RAISE_EXIT = "raise"


class Event(object):
    """
    One evaluation step inside a block.

    Attributes:
        node: AST node evaluated at this point
        role: What the node stands for ("stmt", "test", "target",
            "withitem", "handler", "case", "return")
        in_finally: True when the event belongs to a lowered finally body
    """
    __slots__ = "node", "role", "in_finally"

    def __init__(self, node, role, in_finally=False):
        self.node = node
        self.role = role
        self.in_finally = in_finally

    @property
    def lineno(self):
        return getattr(self.node, "lineno", None)

    def nodes(self):
        """
        Walk the syntax evaluated by this event.

        Clause events (``except`` handlers, ``match`` cases) cover only the
        clause header; bodies are lowered as events of their own.
        """
        if self.role == "handler":
            yield self.node
            if self.node.type is not None:
                yield from local_walk(self.node.type)
        else:
            yield from local_walk(self.node)

    def __repr__(self):
        return f"<Event {self.role} {type(self.node).__name__}@{self.lineno}>"


class CFGBlock(object):
    """Represents a basic block in a Control Flow Graph.

    Attributes:
        uid: Number unique within the graph
        kind: ENTRY, BODY, RETURN_EXIT or RAISE_EXIT
        events: Ordered list of Event objects
        next: List of (successor, label) pairs
        prev: List of (predecessor, label) pairs
    """
    __slots__ = "uid", "kind", "events", "next", "prev"

    def __init__(self, uid, kind=BODY):
        self.uid = uid
        self.kind = kind
        self.events = []
        self.next = []
        self.prev = []

    def __repr__(self):
        return f"<CFGBlock {self.kind}:{self.uid} {len(self.events)} events>"

    @property
    def isExit(self):
        return self.kind in (RETURN_EXIT, RAISE_EXIT)

    def link(self, other, label=NORMAL):
        """Add an edge to another block, ignoring duplicates."""
        if (other, label) in self.next:
            return
        self.next.append((other, label))
        other.prev.append((self, label))

    def unlink(self, other):
        self.next = [(b, l) for b, l in self.next if b is not other]
        other.prev = [(b, l) for b, l in other.prev if b is not self]

    def forward(self):
        """Get all successor blocks."""
        return [b for b, _ in self.next]


class ControlFlowGraph(object):
    """
    Control flow graph of one function body.

    Attributes:
        function: FunctionInfo the graph was built from
        entry: Entry block
        returnExit: Normal return exit block
        raiseExit: Unwind exit block
        blocks: All blocks, entry first
    """
    def __init__(self, function):
        self.function = function
        self.blocks = []
        self.entry = self.newBlock(ENTRY)
        self.returnExit = self.newBlock(RETURN_EXIT)
        self.raiseExit = self.newBlock(RAISE_EXIT)
        self._locations = None

    def newBlock(self, kind=BODY):
        block = CFGBlock(len(self.blocks), kind)
        self.blocks.append(block)
        return block

    @property
    def exits(self):
        """Exit blocks still present in the graph."""
        return [b for b in (self.returnExit, self.raiseExit) if b in self.blocks]

    def successorMap(self):
        return {b: b.forward() for b in self.blocks}

    def locations(self, node):
        """
        Find where an AST node is evaluated.

        The node may be an event node or any node nested in one. A node can
        be evaluated in several blocks when it belongs to a finally body,
        which is lowered once per exit route.

        Returns:
            List of (block, event index) pairs
        """
        if self._locations is None:
            self._locations = {}
            for block in self.blocks:
                for i, event in enumerate(block.events):
                    for sub in event.nodes():
                        self._locations.setdefault(id(sub), []).append((block, i))
        return self._locations.get(id(node), [])

    def dump(self):
        """Render the graph as text, one block per paragraph (debugging aid)."""
        lines = []
        for block in self.blocks:
            lines.append(repr(block))
            for event in block.events:
                lines.append(f"    {event!r}")
            for succ, label in block.next:
                lines.append(f"    -> {succ.kind}:{succ.uid} [{label}]")
        return "\n".join(lines)
