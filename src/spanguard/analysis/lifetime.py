"""
Handle lifetime analysis.

For every handle binding of a function the analyzer searches the CFG
forward from the acquisition and checks that each path to an exit passes
through a witness before it ends:

- a release witness: ``h.end()``, a release inside a ``finally`` body,
  ``stack.callback(h.end)``, ``stack.enter_context(h)``, ``with h:``, or a
  call of a local closure that releases ``h``;
- an escape witness, as decided by the EscapeClassifier.

A path fails when it reaches an exit block, or when the name is rebound or
deleted, before any witness. One failing path is enough to report
MissingRelease at the acquisition.

Release witnesses are ``direct`` or ``deferred``. A deferred registration
only counts as deferred when its block is dominated by the acquisition
block; otherwise it runs on some paths only and is treated as direct. When
a binding has no deferred witness at all, each direct release met by the
search gets a PreferDeferredRelease advisory.
"""

import ast
import logging

from spanguard.checker.core import issue
from spanguard.frontend.program import get_call_name, local_walk

from . import scopes
from .cfg import DominatorInfo, buildCFG
from .cfg.graph import EXCEPTION
from .escape import EscapeClassifier, names_binding

LOG = logging.getLogger(__name__)

DEFER_REGISTRARS = frozenset({"callback", "push_async_callback"})
CONTEXT_REGISTRARS = frozenset({"enter_context", "enter_async_context"})
CLOSING_CALLS = frozenset({"contextlib.closing", "closing", "contextlib.aclosing", "aclosing"})


class Witness(object):
    """A release or escape found on a path."""
    __slots__ = "mode", "node", "block"

    def __init__(self, mode, node, block):
        self.mode = mode
        self.node = node
        self.block = block

    def __repr__(self):
        return f"<Witness {self.mode} line {getattr(self.node, 'lineno', '?')}>"


ESCAPE = "escape"


class LifetimeAnalyzer(object):
    """
    Checks every handle binding of a function.

    Attributes:
        program: ProgramView
        types: TypeView
        capability: CapabilityDescriptor
        handle_returning: Read-only set of handle-returning FunctionInfos
        report_advisories: Whether PreferDeferredRelease findings are made
    """
    def __init__(self, program, types, capability, handle_returning=frozenset(),
                 report_advisories=True):
        self.program = program
        self.types = types
        self.capability = capability
        self.handle_returning = handle_returning
        self.report_advisories = report_advisories

    @property
    def release(self):
        return self.capability.release_method

    def analyze(self, function):
        """
        Run one function pass.

        Args:
            function: FunctionInfo

        Returns:
            List of Finding objects, in binding order

        Raises:
            UnsupportedConstruct: If the body cannot be lowered to a CFG
            AnalysisInternalError: On an invariant violation
        """
        tree = scopes.ScopeBuilder(
            self.program, self.types, self.capability, self.handle_returning
        ).build(function)
        bindings = tree.bindings()
        if not bindings:
            return []

        cfg = buildCFG(function)
        dom = DominatorInfo(cfg)
        escape = EscapeClassifier(self.program)

        findings = []
        returning = function in self.handle_returning
        for binding in bindings:
            result = returning and self.flows_to_result(binding, cfg)
            if result:
                LOG.debug("%r flows into a result of %s", binding, function.qualname)
            findings.extend(self.check_binding(binding, cfg, dom, escape, result=result))
        return findings

    def check_binding(self, binding, cfg, dom, escape, result=False):
        """
        Check that a binding is covered on every path.

        A binding that flows into the result of a handle-returning function
        (``result``) may reach an exit uncovered, and gets no advisories.
        It is still reported when it is abandoned by a rebinding.

        Returns:
            List of findings for this binding
        """
        sites = cfg.locations(binding.target)
        if not sites:
            LOG.debug("%r is unreachable", binding)
            return []

        witnesses = []
        failed = False
        for block, index in sites:
            failed |= self._search(binding, cfg, dom, escape, block, index, witnesses,
                                   exits_ok=result)

        releases = sorted(
            (w for w in witnesses if w.mode != ESCAPE),
            key=lambda w: (w.node.lineno, w.node.col_offset),
        )
        binding.released = bool(releases)
        binding.escaped = result or any(w.mode == ESCAPE for w in witnesses)
        deferred = any(w.mode == scopes.DEFERRED for w in releases)
        if deferred:
            binding.release_mode = scopes.DEFERRED
        elif releases:
            binding.release_mode = scopes.DIRECT

        findings = []
        if failed:
            lineno, col = binding.position
            findings.append(issue.Finding(
                issue.MISSING_RELEASE,
                f"{binding.name} missing {self.release}() call in the scope",
                ident=binding.name, lineno=lineno, col_offset=col,
                release_mode=binding.release_mode,
            ))

        if self.report_advisories and not deferred and not result:
            seen = set()
            for witness in releases:
                if id(witness.node) in seen:
                    continue
                seen.add(id(witness.node))
                findings.append(issue.Finding(
                    issue.PREFER_DEFERRED_RELEASE,
                    f"you may want to defer the {self.release}() call of {binding.name}",
                    ident=binding.name, lineno=witness.node.lineno,
                    col_offset=witness.node.col_offset,
                    release_mode=binding.release_mode,
                ))
        LOG.debug("%r: failed=%s witnesses=%s", binding, failed, witnesses)
        return findings

    def flows_to_result(self, binding, cfg):
        """True if a return or yield of the binding is reachable before it is rebound."""
        for acq_block, acq_index in cfg.locations(binding.target):
            seen = set()
            worklist = [(acq_block, acq_index + 1, True)]
            while worklist:
                block, start, first = worklist.pop()
                stopped = False
                for event in block.events[start:]:
                    if _hands_over(event, binding.name):
                        return True
                    if self._kills(binding, event):
                        stopped = True
                        break
                if stopped:
                    continue
                for succ, label in block.next:
                    if first and label == EXCEPTION:
                        continue
                    if succ not in seen:
                        seen.add(succ)
                        worklist.append((succ, 0, False))
        return False

    def _search(self, binding, cfg, dom, escape, acq_block, acq_index, witnesses,
                exits_ok=False):
        # Returns True when some path leaks.
        failed = False
        seen = set()
        worklist = [(acq_block, acq_index)]
        first = True
        while worklist:
            block, start = worklist.pop()
            covered = False
            for i in range(start, len(block.events)):
                event = block.events[i]
                witness = self._witness(binding, event, block, acq_block, dom, escape)
                if witness is not None:
                    witnesses.append(witness)
                    covered = True
                    break
                at_acquisition = first and i == acq_index
                if not at_acquisition and self._kills(binding, event):
                    LOG.debug("%r abandoned at line %s", binding, event.lineno)
                    failed = True
                    covered = True
                    break
            if covered:
                first = False
                continue

            if block.isExit and not exits_ok:
                LOG.debug("%r reaches the %s exit", binding, block.kind)
                failed = True
            for succ, label in block.next:
                # the acquisition itself raised: nothing was acquired
                if first and label == EXCEPTION:
                    continue
                if succ not in seen:
                    seen.add(succ)
                    worklist.append((succ, 0))
            first = False
        return failed

    # Witnesses

    def _witness(self, binding, event, block, acq_block, dom, escape):
        mode, node = self.release_mode(binding, event)
        if mode is not None:
            if mode == scopes.DEFERRED and not event.in_finally and not dom.dominates(acq_block, block):
                LOG.debug("deferred release at line %s is conditional", node.lineno)
                mode = scopes.DIRECT
            return Witness(mode, node, block)
        if escape.is_escaping(binding, event):
            return Witness(ESCAPE, event.node, block)
        return None

    def release_mode(self, binding, event):
        """
        Classify the release witness in an event, if any.

        Returns:
            (mode, node) with mode DIRECT or DEFERRED, or (None, None)
        """
        name = binding.name
        function = binding.function
        direct = scopes.DEFERRED if event.in_finally else scopes.DIRECT

        if event.role == "withitem":
            if self._is_context_release(name, event.node.context_expr):
                return scopes.DEFERRED, event.node.context_expr

        for node in event.nodes():
            if not isinstance(node, ast.Call):
                continue
            if self._is_release_call(node, name):
                return direct, node

            func = node.func
            if isinstance(func, ast.Attribute) and node.args:
                arg = node.args[0]
                if func.attr in DEFER_REGISTRARS and self._is_release_callable(function, arg, name):
                    return scopes.DEFERRED, node
                if func.attr in CONTEXT_REGISTRARS and self._is_context_release(name, arg):
                    return scopes.DEFERRED, node

            if isinstance(func, ast.Name) and self._closure_releases(function, func.id, name):
                return direct, node
        return None, None

    def _is_release_call(self, node, name):
        func = node.func
        return (isinstance(func, ast.Attribute) and func.attr == self.release
                and isinstance(func.value, ast.Name) and func.value.id == name)

    def _is_release_callable(self, function, expr, name):
        # h.end, lambda: h.end(), or a closure releasing h
        if isinstance(expr, ast.Attribute):
            return (expr.attr == self.release and isinstance(expr.value, ast.Name)
                    and expr.value.id == name)
        if isinstance(expr, ast.Lambda):
            body = expr.body
            return isinstance(body, ast.Call) and self._is_release_call(body, name)
        if isinstance(expr, ast.Name):
            return self._closure_releases(function, expr.id, name)
        return False

    def _is_context_release(self, name, expr):
        methods = self.types.handle_methods
        if isinstance(expr, ast.Name) and expr.id == name:
            return "__exit__" in methods or "__aexit__" in methods
        if isinstance(expr, ast.Call) and self.release in ("close", "aclose") and expr.args:
            callee = get_call_name(expr, self.program.import_aliases)
            arg = expr.args[0]
            return callee in CLOSING_CALLS and isinstance(arg, ast.Name) and arg.id == name
        return False

    def _closure_releases(self, function, closure_name, name):
        closure = function.nested_named(closure_name)
        if closure is None or closure.is_lambda or not closure.is_free(name):
            return False
        return any(
            isinstance(node, ast.Call) and self._is_release_call(node, name)
            for node in local_walk(closure.body)
        )

    # Kills

    def _kills(self, binding, event):
        name = binding.name
        for node in event.nodes():
            if isinstance(node, ast.Name):
                if node.id == name and isinstance(node.ctx, (ast.Store, ast.Del)):
                    return True
            elif isinstance(node, ast.ExceptHandler):
                if node.name == name:
                    return True
            elif isinstance(node, (ast.MatchAs, ast.MatchStar)):
                if node.name == name:
                    return True
            elif isinstance(node, ast.MatchMapping):
                if node.rest == name:
                    return True
            elif isinstance(node, (ast.Import, ast.ImportFrom)):
                for alias in node.names:
                    if (alias.asname or alias.name.partition(".")[0]) == name:
                        return True
            elif isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)):
                if node.name == name:
                    return True
        return False


def _hands_over(event, name):
    # return h, yield h, yield from h, or a display holding h
    for node in event.nodes():
        if isinstance(node, (ast.Return, ast.Yield, ast.YieldFrom)) and node.value is not None:
            if names_binding(node.value, name):
                return True
    return False
