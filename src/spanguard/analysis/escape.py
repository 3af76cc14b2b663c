"""
Escape classification.

A handle escapes when the obligation to release it leaves the analyzed
function together with the handle:

- it is returned or yielded, alone or inside a tuple, list, set or dict
  display;
- it is assigned to a location outside the function: a name declared
  ``global``/``nonlocal``, or an attribute or item of a parameter, of a
  global or free name, or of a local container that itself escapes;
- it is added to such a container through a mutator method
  (``box.append(h)``);
- it is passed to a parameter of an in-unit function that provably lets
  that parameter escape.

Calls that cannot be resolved to a function of the analysis unit are not
escaping. This keeps the checker biased towards reporting leaks.
"""

import ast
import logging

from spanguard.frontend.program import local_walk, root_name

LOG = logging.getLogger(__name__)

CONTAINER_MUTATORS = frozenset({
    "append", "add", "insert", "extend", "appendleft", "put", "put_nowait",
    "setdefault", "push",
})


def names_binding(expr, name):
    """
    Check whether an expression hands over the value of ``name``.

    True for the name itself and for displays holding it: ``h``,
    ``(ctx, h)``, ``[h]``, ``{h}``, ``{"span": h}``, ``*h``.
    """
    if expr is None:
        return False
    if isinstance(expr, ast.Name):
        return expr.id == name
    if isinstance(expr, ast.Starred):
        return names_binding(expr.value, name)
    if isinstance(expr, (ast.Tuple, ast.List, ast.Set)):
        return any(names_binding(elt, name) for elt in expr.elts)
    if isinstance(expr, ast.Dict):
        return any(names_binding(value, name) for value in expr.values)
    return False


class EscapeClassifier(object):
    """
    Decides whether uses of a handle transfer its release obligation.

    One classifier serves one function pass; its cache is never shared
    between passes.

    Attributes:
        program: ProgramView used to resolve call sites
    """
    def __init__(self, program):
        self.program = program
        self._cache = {}

    def is_escaping(self, binding, use_site):
        """
        Check whether a use of a binding is escaping.

        Args:
            binding: HandleBinding
            use_site: Event of the function's CFG

        Returns:
            True if the handle leaves the function at this use
        """
        function = binding.function
        if use_site.role == "return" and names_binding(use_site.node, binding.name):
            return True
        if self._chained_store(binding, use_site.node):
            LOG.debug("%s is stored outward at line %s", binding.name, use_site.lineno)
            return True
        for node in use_site.nodes():
            if self._node_escapes(function, binding.name, node, set()):
                LOG.debug("%s escapes at line %s", binding.name, getattr(node, "lineno", "?"))
                return True
        return False

    def name_escapes(self, function, name, visited=None):
        """
        Flow-insensitive check: does the value of ``name`` escape ``function``?

        Args:
            function: FunctionInfo
            name: Local or parameter name
            visited: (function, name) pairs already under examination, so
                mutually recursive helpers terminate

        Returns:
            True if some use of the name in the function escapes
        """
        key = (id(function), name)
        top_level = visited is None
        if top_level and key in self._cache:
            return self._cache[key]
        visited = set() if visited is None else visited
        if key in visited:
            return False
        visited.add(key)

        if function.is_lambda:
            result = names_binding(function.node.body, name)
        else:
            result = any(
                self._node_escapes(function, name, node, visited)
                for node in local_walk(function.body)
            )
        # Partial answers computed inside a cycle are not cached
        if top_level:
            self._cache[key] = result
        return result

    def param_escapes(self, function, param, visited=None):
        return self.name_escapes(function, param, visited)

    def _node_escapes(self, function, name, node, visited):
        if isinstance(node, (ast.Return, ast.Yield, ast.YieldFrom)):
            return names_binding(node.value, name)

        if isinstance(node, ast.Assign):
            return any(
                self._stores_outward(function, target, node.value, name, visited)
                for target in node.targets
            )
        if isinstance(node, (ast.AnnAssign, ast.AugAssign)):
            return self._stores_outward(function, node.target, node.value, name, visited)
        if isinstance(node, ast.NamedExpr):
            return names_binding(node.value, name) and function.is_declared_outward(node.target.id)

        if isinstance(node, ast.Call):
            return (self._container_store(function, node, name, visited)
                    or self._escaping_argument(function, node, name, visited))
        return False

    def _chained_store(self, binding, node):
        # self.h = h = acquire(): the other targets receive the handle too
        if not isinstance(node, ast.Assign) or len(node.targets) < 2:
            return False
        if not any(target is binding.target for target in node.targets):
            return False
        return any(
            self._is_outward_location(binding.function, target, set())
            for target in node.targets if target is not binding.target
        )

    def _stores_outward(self, function, target, value, name, visited):
        if isinstance(target, (ast.Tuple, ast.List)) and isinstance(value, (ast.Tuple, ast.List)) \
                and len(target.elts) == len(value.elts):
            return any(
                self._stores_outward(function, t, v, name, visited)
                for t, v in zip(target.elts, value.elts)
            )
        if not names_binding(value, name):
            return False
        return self._is_outward_location(function, target, visited)

    def _is_outward_location(self, function, target, visited):
        if isinstance(target, ast.Name):
            return function.is_declared_outward(target.id)
        if isinstance(target, ast.Starred):
            return self._is_outward_location(function, target.value, visited)
        if isinstance(target, (ast.Tuple, ast.List)):
            return any(self._is_outward_location(function, t, visited) for t in target.elts)
        if isinstance(target, (ast.Attribute, ast.Subscript)):
            root = root_name(target)
            if root is None:
                return False
            return self._container_escapes(function, root.id, visited)
        return False

    def _container_escapes(self, function, container, visited):
        if function.is_outward(container):
            return True
        return self.name_escapes(function, container, visited)

    def _container_store(self, function, call, name, visited):
        func = call.func
        if not (isinstance(func, ast.Attribute) and func.attr in CONTAINER_MUTATORS):
            return False
        if not any(names_binding(arg, name) for arg in call.args):
            return False
        root = root_name(func.value)
        return root is not None and self._container_escapes(function, root.id, visited)

    def _escaping_argument(self, function, call, name, visited):
        callee, bound = self.program.resolve_callee(call, function)
        if callee is None or callee.is_lambda:
            return False

        positional = callee.positional_params[1:] if bound else callee.positional_params
        for i, arg in enumerate(call.args):
            if isinstance(arg, ast.Starred):
                # positions after *args are unknown
                break
            if not names_binding(arg, name):
                continue
            if i < len(positional):
                param = positional[i]
            elif callee.vararg is not None:
                param = callee.vararg
            else:
                continue
            if self.param_escapes(callee, param, visited):
                return True

        for keyword in call.keywords:
            if not names_binding(keyword.value, name):
                continue
            if keyword.arg in callee.keyword_params:
                param = keyword.arg
            elif callee.kwarg is not None:
                param = callee.kwarg
            else:
                continue
            if self.param_escapes(callee, param, visited):
                return True
        return False
