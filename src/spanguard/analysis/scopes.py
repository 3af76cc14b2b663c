"""
Scope model and handle bindings.

For one function pass this module builds the tree of lexical scopes nested
in the function (comprehensions, lambdas, nested functions and classes) and
records, per scope, the handle bindings introduced directly in it.

A handle binding is created for every assignment of an acquisition result
to a plain name:

- ``span = tracer.start_span("x")``
- ``span: Span = tracer.start_span("x")``
- ``ctx, span = tracer.start("x")`` when the capability names a result index
- ``if (span := tracer.start_span("x")):``
- ``span = make_span()`` when ``make_span`` is a handle-returning function of
  the analysis unit (the obligation is forwarded to the caller)

Nested functions and lambdas appear in the tree as child scopes but their
bindings are collected by their own pass.
"""

import ast
import logging

from spanguard.errors import AnalysisInternalError

LOG = logging.getLogger(__name__)

FUNCTION = "function"
LAMBDA = "lambda"
COMPREHENSION = "comprehension"
CLASS = "class"

COMPREHENSION_NODES = (ast.ListComp, ast.SetComp, ast.DictComp, ast.GeneratorExp)

NONE = "none"
DIRECT = "direct"
DEFERRED = "deferred"


class Scope(object):
    """
    One lexical scope.

    Attributes:
        kind: FUNCTION, LAMBDA, COMPREHENSION or CLASS
        node: AST node opening the scope
        name: Qualified name, for messages and identities
        function: FunctionInfo whose pass owns the scope
        bindings: HandleBindings introduced directly in this scope
        children: Nested scopes
    """
    __slots__ = "kind", "node", "name", "function", "bindings", "children"

    def __init__(self, kind, node, name, function):
        self.kind = kind
        self.node = node
        self.name = name
        self.function = function
        self.bindings = []
        self.children = []

    def __repr__(self):
        return f"<Scope {self.kind} {self.name}>"

    @property
    def binds_names(self):
        # Walrus targets inside a comprehension bind in the enclosing scope
        return self.kind != COMPREHENSION


class HandleBinding(object):
    """
    A local name bound to an acquisition result.

    Attributes:
        name: Bound name
        scope: Declaring Scope
        target: ast.Name receiving the handle
        call: Acquisition ast.Call
        forwarded: True when the call is a handle-returning function of the unit
        released: Set by the lifetime analysis when a release witness exists
        release_mode: NONE, DIRECT or DEFERRED
        escaped: Set by the lifetime analysis when an escape witness exists
    """
    __slots__ = "name", "scope", "target", "call", "forwarded", "released", "release_mode", "escaped"

    def __init__(self, name, scope, target, call, forwarded=False):
        self.name = name
        self.scope = scope
        self.target = target
        self.call = call
        self.forwarded = forwarded
        self.released = False
        self.release_mode = NONE
        self.escaped = False

    @property
    def identity(self):
        """Resolved symbol: the name within its declaring scope."""
        return (self.scope.name, self.name)

    @property
    def function(self):
        return self.scope.function

    @property
    def position(self):
        return self.target.lineno, self.target.col_offset

    def __repr__(self):
        return f"<HandleBinding {self.name}@{self.position[0]}:{self.position[1]} in {self.scope.name}>"


class ScopeTree(object):
    """
    Scope tree of one function pass.

    Attributes:
        root: Scope of the analyzed function
    """
    def __init__(self, root):
        self.root = root

    def scopes(self):
        """All scopes, preorder."""
        stack = [self.root]
        while stack:
            scope = stack.pop()
            yield scope
            stack.extend(reversed(scope.children))

    def bindings(self):
        result = []
        for scope in self.scopes():
            result.extend(scope.bindings)
        return result


class ScopeBuilder(object):
    """
    Builds the scope tree of a function and finds its handle bindings.

    Attributes:
        program: ProgramView
        types: TypeView
        capability: CapabilityDescriptor
        handle_returning: Read-only set of handle-returning FunctionInfos
    """
    def __init__(self, program, types, capability, handle_returning=frozenset()):
        self.program = program
        self.types = types
        self.capability = capability
        self.handle_returning = handle_returning

    def build(self, function):
        """
        Build the scope tree of one function.

        Args:
            function: FunctionInfo

        Returns:
            ScopeTree
        """
        kind = LAMBDA if function.is_lambda else FUNCTION
        root = Scope(kind, function.node, function.qualname, function)

        # Explicit traversal stack of (scope, pending nodes, enclosing scopes)
        stack = [(root, function.body, ())]
        while stack:
            scope, nodes, enclosing = stack.pop()
            chain = enclosing + (scope,)
            for node in _scope_walk(nodes):
                if isinstance(node, COMPREHENSION_NODES):
                    child = Scope(COMPREHENSION, node, f"{scope.name}.<{type(node).__name__.lower()}>", function)
                    scope.children.append(child)
                    stack.append((child, _comprehension_parts(node), chain))
                    continue
                elif isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef, ast.Lambda, ast.ClassDef)):
                    self._nested_scope(scope, node, function)
                self._collect(node, chain, function)

        LOG.debug("%s: %d handle bindings", function.qualname, len(ScopeTree(root).bindings()))
        return ScopeTree(root)

    def _nested_scope(self, scope, node, function):
        if isinstance(node, ast.ClassDef):
            kind = CLASS
        elif isinstance(node, ast.Lambda):
            kind = LAMBDA
        else:
            kind = FUNCTION
        name = getattr(node, "name", "<lambda>")
        scope.children.append(Scope(kind, node, f"{scope.name}.{name}", function))

    def _collect(self, node, chain, function):
        if isinstance(node, ast.Assign):
            for target in node.targets:
                self._bind(target, node.value, chain, function)
        elif isinstance(node, ast.AnnAssign) and node.value is not None:
            self._bind(node.target, node.value, chain, function)
        elif isinstance(node, ast.NamedExpr):
            self._bind(node.target, node.value, chain, function)

    def _bind(self, target, value, chain, function):
        call = _unwrap_call(value)
        if call is None:
            return
        positions, forwarded = self.acquisition_positions(call, function)
        if positions is None:
            return

        names = []
        for position in positions:
            if position is None:
                if isinstance(target, ast.Name):
                    names.append(target)
            elif isinstance(target, (ast.Tuple, ast.List)) and position < len(target.elts):
                if not any(isinstance(e, ast.Starred) for e in target.elts[:position + 1]):
                    elt = target.elts[position]
                    if isinstance(elt, ast.Name):
                        names.append(elt)

        for name in names:
            scope = _declaring_scope(chain)
            if scope is None:
                raise AnalysisInternalError(f"binding {name.id!r} at line {name.lineno} has no declaring scope")
            binding = HandleBinding(name.id, scope, name, call, forwarded=forwarded)
            scope.bindings.append(binding)
            LOG.debug("acquisition: %r", binding)

    def acquisition_positions(self, call, function):
        """
        Check whether a call acquires a handle.

        Args:
            call: ast.Call
            function: FunctionInfo containing the call

        Returns:
            (positions, forwarded): the handle positions in the result (None
            for the whole value) and whether the call forwards an obligation
            from a handle-returning function; positions is None when the
            call is not an acquisition
        """
        if self.capability.matches_acquire(self.program.call_name(call)):
            return [self.capability.result_index], False

        callee, _ = self.program.resolve_callee(call, function)
        if callee is not None and callee in self.handle_returning:
            positions = self.types.handle_positions(callee.node.returns)
            if positions:
                return positions, True
        return None, False


def _unwrap_call(value):
    if isinstance(value, ast.Await):
        value = value.value
    return value if isinstance(value, ast.Call) else None


def _declaring_scope(chain):
    for scope in reversed(chain):
        if scope.binds_names:
            return scope
    return None


def _comprehension_parts(node):
    parts = []
    for gen in node.generators:
        parts.append(gen.target)
        parts.append(gen.iter)
        parts.extend(gen.ifs)
    if isinstance(node, ast.DictComp):
        parts.extend([node.key, node.value])
    else:
        parts.append(node.elt)
    return parts


def _scope_walk(nodes):
    # Like local_walk, but comprehensions are yielded without their parts,
    # which belong to the comprehension's own scope.
    stack = list(reversed(nodes))
    while stack:
        node = stack.pop()
        yield node
        if isinstance(node, COMPREHENSION_NODES):
            continue
        if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef, ast.Lambda, ast.ClassDef)):
            stack.extend(reversed(_header_parts(node)))
            continue
        stack.extend(reversed(list(ast.iter_child_nodes(node))))


def _header_parts(node):
    if isinstance(node, ast.ClassDef):
        return node.decorator_list + node.bases + [k.value for k in node.keywords]
    parts = list(getattr(node, "decorator_list", []))
    parts.extend(node.args.defaults)
    parts.extend(d for d in node.args.kw_defaults if d is not None)
    return parts
