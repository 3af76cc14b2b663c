"""
Structural type queries.

The checker never asks "was this type imported from module Y". It asks
"does this type expose the release method", by looking at the method set
of whatever an annotation resolves to. Method sets are known for:

- classes defined in the analysis unit (with in-unit base classes),
- the capability's handle type, under any import alias or local alias.

Qualified names that end in the handle type's name are taken to be the
handle type re-exported from another module.
"""

import ast
import logging

from .program import get_attr_qual_name

LOG = logging.getLogger(__name__)

UNION_WRAPPERS = frozenset({"Optional", "Union", "Annotated", "Final", "ClassVar"})
TUPLE_TYPES = frozenset({"tuple", "Tuple"})


class TypeView(object):
    """
    Method-set queries over annotation expressions.

    Attributes:
        program: ProgramView being analyzed
        capability: CapabilityDescriptor
        handle_methods: Method set of the handle type
        class_methods: Mapping class name -> method set, for in-unit classes
    """
    def __init__(self, program, capability, handle_methods=None):
        self.program = program
        self.capability = capability
        self.handle_methods = frozenset(
            handle_methods if handle_methods is not None else capability.method_set()
        )
        self.class_methods = self._collect_class_methods()

    def _collect_class_methods(self):
        direct = {}
        bases = {}
        for cls in self.program.classes:
            methods = set(cls.methods)
            for stmt in cls.node.body:
                if isinstance(stmt, (ast.FunctionDef, ast.AsyncFunctionDef)):
                    methods.add(stmt.name)
            direct[cls.name] = methods
            bases[cls.name] = cls.node.bases

        # Inherit from in-unit bases and from the handle type until stable.
        changed = True
        while changed:
            changed = False
            for name, base_exprs in bases.items():
                for base in base_exprs:
                    inherited = self._named_methods(base, direct)
                    if inherited and not inherited <= direct[name]:
                        direct[name] |= inherited
                        changed = True
        return {name: frozenset(methods) for name, methods in direct.items()}

    def _named_methods(self, expr, classes, seen=None):
        if isinstance(expr, ast.Subscript):
            # Generic[...] bases: look at the origin only
            expr = expr.value
        if not isinstance(expr, (ast.Name, ast.Attribute)):
            return None

        if isinstance(expr, ast.Name):
            if expr.id in classes and expr.id not in self.program.import_aliases:
                return classes[expr.id]
            alias = self.program.type_aliases.get(expr.id)
            if alias is not None:
                seen = seen or set()
                if expr.id in seen:
                    return None
                seen.add(expr.id)
                return self._named_methods(alias, classes, seen)

        qualname = get_attr_qual_name(expr, self.program.import_aliases)
        if self._names_handle_type(qualname):
            return self.handle_methods
        return None

    def _names_handle_type(self, qualname):
        if qualname == self.capability.handle_type:
            return True
        return qualname.rpartition(".")[2] == self.capability.type_name

    def method_set(self, annotation):
        """
        Get the method set of the type an annotation names.

        Args:
            annotation: Annotation expression (ast node), or None

        Returns:
            frozenset of method names, or None when unknown
        """
        if annotation is None:
            return None
        if isinstance(annotation, ast.Constant) and isinstance(annotation.value, str):
            parsed = _parse_annotation(annotation.value)
            return self.method_set(parsed) if parsed is not None else None
        return self._named_methods(annotation, self.class_methods)

    def is_handle_type(self, annotation, _seen=None):
        """
        Check whether an annotation admits a handle.

        ``Span``, ``Optional[Span]``, ``Span | None`` and ``Annotated[Span, x]``
        admit a handle; ``tuple[Context, Span]`` does not (use
        handle_positions for tuple results).
        """
        if annotation is None:
            return False
        if isinstance(annotation, ast.Constant) and isinstance(annotation.value, str):
            parsed = _parse_annotation(annotation.value)
            return parsed is not None and self.is_handle_type(parsed, _seen)
        if isinstance(annotation, ast.Name) and annotation.id not in self.class_methods:
            alias = self.program.type_aliases.get(annotation.id)
            _seen = _seen or set()
            if alias is not None and annotation.id not in _seen:
                _seen.add(annotation.id)
                return self.is_handle_type(alias, _seen)
        if isinstance(annotation, ast.BinOp) and isinstance(annotation.op, ast.BitOr):
            return self.is_handle_type(annotation.left, _seen) or self.is_handle_type(annotation.right, _seen)
        if isinstance(annotation, ast.Subscript):
            origin = _origin_name(annotation.value)
            if origin in UNION_WRAPPERS:
                return any(self.is_handle_type(arg, _seen) for arg in _subscript_args(annotation))
        methods = self.method_set(annotation)
        return methods is not None and self.capability.release_method in methods

    def handle_positions(self, annotation):
        """
        Find which positions of a (possibly tuple) result are handles.

        Args:
            annotation: Result annotation

        Returns:
            List of positions; None in the list means the whole value
        """
        if annotation is None:
            return []
        if isinstance(annotation, ast.Constant) and isinstance(annotation.value, str):
            parsed = _parse_annotation(annotation.value)
            return self.handle_positions(parsed) if parsed is not None else []
        if isinstance(annotation, ast.Subscript) and _origin_name(annotation.value) in TUPLE_TYPES:
            return [i for i, arg in enumerate(_subscript_args(annotation)) if self.is_handle_type(arg)]
        return [None] if self.is_handle_type(annotation) else []

    def is_handle_returning(self, function):
        """True if any result position of the function admits a handle."""
        if function.is_lambda:
            return False
        returns = function.node.returns
        if returns is None:
            return False
        positions = self.handle_positions(returns)
        if not positions and isinstance(returns, ast.Subscript):
            # Iterator[Span], Generator[Span, None, None], ...
            positions = [i for i, arg in enumerate(_subscript_args(returns))
                         if self.is_handle_type(arg)]
        if positions:
            LOG.debug("%s returns a handle at %s", function.qualname, positions)
        return bool(positions)

    def defines_handle_class(self):
        """True if some in-unit class exposes the release method."""
        release = self.capability.release_method
        return any(release in methods for methods in self.class_methods.values())


def _origin_name(node):
    if isinstance(node, ast.Name):
        return node.id
    if isinstance(node, ast.Attribute):
        return node.attr
    return None


def _subscript_args(node):
    sl = node.slice
    if isinstance(sl, ast.Tuple):
        return list(sl.elts)
    return [sl]


def _parse_annotation(text):
    try:
        return ast.parse(text, mode="eval").body
    except SyntaxError:
        LOG.debug("unparsable string annotation %r", text)
        return None
