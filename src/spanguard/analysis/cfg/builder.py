"""Lowering of Python function bodies into control flow graphs.

The builder walks the statements of one function and produces a
ControlFlowGraph whose paths are exactly the ways control can leave the
function:

- ``if``/``while``/``for``/``match`` become branches and back edges;
- ``return`` and ``raise`` jump to the return and raise exits;
- ``assert`` may jump to the raise exit;
- inside a ``try`` with handlers every event gets its own block with an
  exception edge to the handler dispatch;
- ``finally`` bodies are lowered once per route that leaves their ``try``
  (fall through, return, raise, break, continue), so code in a finally body
  lies on every such route.

Statements are dispatched on their node type. The set of statement types
is closed: adding a node kind to STATEMENT_TYPES without a handler makes the
class definition fail.
"""

import ast
import logging

from spanguard.errors import AnalysisInternalError, UnsupportedConstruct
from spanguard.util.typedispatch import TypeDispatcher, defaultdispatch, dispatch

from . import dfs
from .graph import EXCEPTION, NORMAL, ControlFlowGraph, Event

LOG = logging.getLogger(__name__)


def _present(*names):
    return tuple(getattr(ast, name) for name in names if hasattr(ast, name))


SIMPLE_STATEMENTS = _present(
    "Expr", "Assign", "AugAssign", "AnnAssign", "Pass", "Delete", "Import",
    "ImportFrom", "Global", "Nonlocal", "FunctionDef", "AsyncFunctionDef",
    "ClassDef", "TypeAlias",
)
TRY_STATEMENTS = _present("Try", "TryStar")
LOOP_STATEMENTS = (ast.For, ast.AsyncFor)
WITH_STATEMENTS = (ast.With, ast.AsyncWith)

STATEMENT_TYPES = SIMPLE_STATEMENTS + TRY_STATEMENTS + LOOP_STATEMENTS + WITH_STATEMENTS + (
    ast.Return, ast.Raise, ast.Assert, ast.Break, ast.Continue, ast.If, ast.While, ast.Match,
)

CATCH_ALL = frozenset({"BaseException", "Exception"})

LOOP = "loop"
EXCEPT = "except"
FINALLY = "finally"


class Frame(object):
    """
    An enclosing construct that redirects control leaving it.

    Attributes:
        kind: LOOP, EXCEPT or FINALLY
        breakTarget, continueTarget: Loop targets
        dispatch: Handler dispatch block of a try with handlers
        finalbody: Statements of a finally clause
        routes: Cache mapping a route kind to the block that starts it
    """
    __slots__ = "kind", "breakTarget", "continueTarget", "dispatch", "finalbody", "routes"

    def __init__(self, kind, breakTarget=None, continueTarget=None, dispatch=None, finalbody=None):
        self.kind = kind
        self.breakTarget = breakTarget
        self.continueTarget = continueTarget
        self.dispatch = dispatch
        self.finalbody = finalbody
        self.routes = {}


class CFGBuilder(TypeDispatcher):
    """
    Builds the CFG of one function.

    Usage:
        cfg = CFGBuilder().build(function_info)

    Attributes:
        cfg: Graph under construction
        current: Block receiving the next event, None after a jump
        frames: Stack of enclosing loop/try frames
        inFinally: True while a finally body is being lowered
    """
    __closed__ = STATEMENT_TYPES

    def __init__(self):
        self.cfg = None
        self.current = None
        self.frames = []
        self.inFinally = False

    def build(self, function):
        """
        Lower a function body.

        Args:
            function: FunctionInfo

        Returns:
            Pruned ControlFlowGraph

        Raises:
            UnsupportedConstruct: If the body cannot be lowered
        """
        self.cfg = ControlFlowGraph(function)
        self.frames = []
        self.current = self.cfg.newBlock()
        self.cfg.entry.link(self.current)

        if function.is_lambda:
            self.emit(function.node.body, "return")
        else:
            self.lowerBody(function.node.body)
        # falling off the end returns None
        self.jump("return")

        if self.frames:
            raise AnalysisInternalError("unbalanced frames in %s" % function.qualname)

        dfs.pruneUnreachable(self.cfg)
        LOG.debug("%s: CFG with %d blocks", function.qualname, len(self.cfg.blocks))
        return self.cfg

    # Block plumbing

    def newBlock(self):
        return self.cfg.newBlock()

    def ensureBlock(self):
        # Code after a jump is unreachable; it gets a block without
        # predecessors that pruning removes.
        if self.current is None:
            self.current = self.newBlock()
        return self.current

    def startBlock(self, *preds):
        block = self.newBlock()
        for pred in preds:
            if pred is not None:
                pred.link(block)
        self.current = block
        return block

    def guarded(self):
        return any(frame.kind == EXCEPT for frame in self.frames)

    def emit(self, node, role):
        """Append an event to the current block."""
        block = self.ensureBlock()
        event = Event(node, role, self.inFinally)
        if not self.guarded():
            block.events.append(event)
            return event

        # Each guarded event sits alone in its block so the exception edge
        # leaves exactly from that event.
        if block.events:
            block = self.startBlock(block)
        block.events.append(event)
        block.link(self.route("raise"), EXCEPTION)
        self.startBlock(block)
        return event

    def route(self, kind):
        return self.routeTarget(len(self.frames), kind)

    def routeTarget(self, depth, kind):
        """
        Find the block control reaches when leaving frames[:depth] by kind.

        Args:
            depth: Number of frames still enclosing the jump
            kind: "return", "raise", ("break", frame) or ("continue", frame)
        """
        if depth == 0:
            if kind == "return":
                return self.cfg.returnExit
            if kind == "raise":
                return self.cfg.raiseExit
            raise AnalysisInternalError("no target for %r" % (kind,))

        frame = self.frames[depth - 1]
        target = frame.routes.get(kind)
        if target is not None:
            return target

        if frame.kind == LOOP and kind == ("break", frame):
            target = frame.breakTarget
        elif frame.kind == LOOP and kind == ("continue", frame):
            target = frame.continueTarget
        elif frame.kind == EXCEPT and kind == "raise":
            target = frame.dispatch
        elif frame.kind == FINALLY:
            target = self.lowerFinallyRoute(depth, frame, kind)
        else:
            target = self.routeTarget(depth - 1, kind)

        frame.routes[kind] = target
        return target

    def lowerFinallyRoute(self, depth, frame, kind):
        saved = self.current, self.frames, self.inFinally
        entry = self.newBlock()
        self.frames = self.frames[:depth - 1]
        self.current = entry
        self.inFinally = True
        try:
            self.lowerBody(frame.finalbody)
            if self.current is not None:
                self.current.link(self.routeTarget(depth - 1, kind))
        finally:
            self.current, self.frames, self.inFinally = saved
        return entry

    def jump(self, kind, label=NORMAL):
        if self.current is not None:
            self.current.link(self.route(kind), label)
        self.current = None

    def innermostLoop(self, node):
        for frame in reversed(self.frames):
            if frame.kind == LOOP:
                return frame
        raise UnsupportedConstruct(
            "'%s' outside loop" % type(node).__name__.lower(), node
        )

    def lowerBody(self, stmts):
        for stmt in stmts:
            self(stmt)

    def lowerLoopBody(self, node, cond, header):
        after = self.newBlock()
        frame = Frame(LOOP, breakTarget=after, continueTarget=header)

        self.startBlock(cond)
        self.frames.append(frame)
        self.lowerBody(node.body)
        self.frames.pop()
        if self.current is not None:
            self.current.link(header)

        if not _alwaysTrue(node):
            if node.orelse:
                self.startBlock(cond)
                self.lowerBody(node.orelse)
                if self.current is not None:
                    self.current.link(after)
            else:
                cond.link(after)

        self.current = after if after.prev else None

    # Statements

    @dispatch(*SIMPLE_STATEMENTS)
    def visitSimple(self, node):
        self.emit(node, "stmt")

    @dispatch(ast.Return)
    def visitReturn(self, node):
        self.emit(node, "stmt")
        self.jump("return")

    @dispatch(ast.Raise)
    def visitRaise(self, node):
        self.emit(node, "stmt")
        self.jump("raise")

    @dispatch(ast.Assert)
    def visitAssert(self, node):
        self.emit(node, "stmt")
        self.current.link(self.route("raise"))

    @dispatch(ast.Break)
    def visitBreak(self, node):
        frame = self.innermostLoop(node)
        self.emit(node, "stmt")
        self.jump(("break", frame))

    @dispatch(ast.Continue)
    def visitContinue(self, node):
        frame = self.innermostLoop(node)
        self.emit(node, "stmt")
        self.jump(("continue", frame))

    @dispatch(ast.If)
    def visitIf(self, node):
        self.emit(node.test, "test")
        cond = self.current

        self.startBlock(cond)
        self.lowerBody(node.body)
        thenEnd = self.current

        if node.orelse:
            self.startBlock(cond)
            self.lowerBody(node.orelse)
            elseEnd = self.current
        else:
            elseEnd = cond

        if thenEnd is None and elseEnd is None:
            self.current = None
        else:
            self.startBlock(thenEnd, elseEnd)

    @dispatch(ast.While)
    def visitWhile(self, node):
        header = self.startBlock(self.ensureBlock())
        self.emit(node.test, "test")
        self.lowerLoopBody(node, self.current, header)

    @dispatch(*LOOP_STATEMENTS)
    def visitFor(self, node):
        self.emit(node.iter, "test")
        header = self.startBlock(self.current)
        self.emit(node.target, "target")
        self.lowerLoopBody(node, self.current, header)

    @dispatch(*WITH_STATEMENTS)
    def visitWith(self, node):
        for item in node.items:
            self.emit(item, "withitem")
        self.lowerBody(node.body)

    @dispatch(ast.Match)
    def visitMatch(self, node):
        self.emit(node.subject, "test")
        subject = self.current
        ends = []
        exhaustive = False
        for case in node.cases:
            self.startBlock(subject)
            self.emit(case.pattern, "case")
            if case.guard is not None:
                self.emit(case.guard, "test")
            self.lowerBody(case.body)
            ends.append(self.current)
            if case.guard is None and _irrefutable(case.pattern):
                exhaustive = True
        if not exhaustive:
            ends.append(subject)

        ends = [end for end in ends if end is not None]
        if ends:
            self.startBlock(*ends)
        else:
            self.current = None

    @dispatch(*TRY_STATEMENTS)
    def visitTry(self, node):
        self.ensureBlock()

        finallyFrame = None
        if node.finalbody:
            finallyFrame = Frame(FINALLY, finalbody=node.finalbody)
            self.frames.append(finallyFrame)

        exceptFrame = None
        if node.handlers:
            exceptFrame = Frame(EXCEPT, dispatch=self.newBlock())
            self.frames.append(exceptFrame)

        self.startBlock(self.current)
        self.lowerBody(node.body)
        if exceptFrame is not None:
            self.frames.pop()

        # the else clause runs unguarded by this try's handlers
        if node.orelse and self.current is not None:
            self.lowerBody(node.orelse)
        ends = [self.current]

        if exceptFrame is not None:
            catchAll = False
            for handler in node.handlers:
                self.startBlock(exceptFrame.dispatch)
                self.emit(handler, "handler")
                self.lowerBody(handler.body)
                ends.append(self.current)
                catchAll = catchAll or _catchesAll(handler)
            if not catchAll:
                self.current = exceptFrame.dispatch
                self.jump("raise")

        if finallyFrame is not None:
            self.frames.pop()

        ends = [end for end in ends if end is not None]
        if not ends:
            self.current = None
            return

        self.startBlock(*ends)
        if node.finalbody:
            saved = self.inFinally
            self.inFinally = True
            self.lowerBody(node.finalbody)
            self.inFinally = saved

    @defaultdispatch
    def visitUnsupported(self, node):
        raise UnsupportedConstruct("cannot lower %s statement" % type(node).__name__, node)


def _alwaysTrue(node):
    test = getattr(node, "test", None)
    return isinstance(node, ast.While) and isinstance(test, ast.Constant) and bool(test.value)


def _irrefutable(pattern):
    if isinstance(pattern, ast.MatchAs):
        return pattern.pattern is None or _irrefutable(pattern.pattern)
    if isinstance(pattern, ast.MatchOr):
        return any(_irrefutable(p) for p in pattern.patterns)
    return False


def _catchesAll(handler):
    if handler.type is None:
        return True
    if isinstance(handler.type, ast.Name):
        return handler.type.id in CATCH_ALL
    return False


def buildCFG(function):
    """Convenience wrapper: lower one FunctionInfo into a pruned CFG."""
    return CFGBuilder().build(function)
