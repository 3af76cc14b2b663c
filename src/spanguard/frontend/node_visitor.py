"""
AST Node Visitor for program collection.

This module provides the visitor that walks a parsed module once and
records everything later passes need without re-walking the tree: function
and class definitions with their qualified names, the import table, local
type aliases, and the set of identifiers the file references.

**Visitor Flow:**
1. pre_visit: bookkeeping before a node (depth, debug trace)
2. visit: node-specific handler (visit_FunctionDef, visit_Import, ...)
3. generic_visit: recurse into children
4. post_visit: restore the namespace/function stacks

**Collected Data:**
- functions: FunctionInfo for every def, async def and lambda, preorder
- classes: ClassInfo for every class statement
- imports: set of imported module names
- import_aliases: mapping from local alias to fully qualified name
- type_aliases: module level ``Alias = Type`` candidates
- referenced: identifiers and attribute names used anywhere in the file
"""

import ast
import logging

from .program import ClassInfo, FunctionInfo

LOG = logging.getLogger(__name__)

FUNCTION_NODES = (ast.FunctionDef, ast.AsyncFunctionDef, ast.Lambda)


class ProgramNodeVisitor:
    """
    AST visitor collecting program structure.

    Attributes:
        fname: Filename being analyzed
        depth: Current traversal depth (for debugging)
        namespace: Current qualified namespace (module.class.function)
        functions: Collected FunctionInfo objects in preorder
        classes: Collected ClassInfo objects
        imports: Set of imported module names
        import_aliases: Dictionary mapping import aliases to full names
        type_aliases: Dictionary mapping module level alias names to
            the aliased expression
        referenced: Set of referenced identifiers
    """
    def __init__(self, fname, module_name=""):
        self.fname = fname
        self.depth = 0
        self.namespace = module_name
        self.functions = []
        self.classes = []
        self.imports = set()
        self.import_aliases = {}
        self.type_aliases = {}
        self.referenced = set()
        self._function_stack = []
        self._class_stack = []

    @property
    def current_function(self):
        return self._function_stack[-1] if self._function_stack else None

    def _direct_class(self):
        # A def is a method only when its nearest enclosing scope is a class.
        if not self._class_stack:
            return None
        cls = self._class_stack[-1]
        if self.current_function is not None and self.current_function.depth > cls.depth:
            return None
        return cls

    def visit_ClassDef(self, node):
        info = ClassInfo(node, _join(self.namespace, node.name), self.depth)
        self.classes.append(info)
        self._class_stack.append(info)
        self.namespace = _join(self.namespace, node.name)

    def visit_FunctionDef(self, node):
        name = getattr(node, "name", "<lambda>")
        info = FunctionInfo(
            node,
            name,
            _join(self.namespace, name),
            parent=self.current_function,
            owner_class=self._direct_class() if not isinstance(node, ast.Lambda) else None,
            depth=self.depth,
        )
        if info.parent is not None:
            info.parent.nested.append(info)
        if info.owner_class is not None:
            info.owner_class.methods[name] = info
        self.functions.append(info)
        self._function_stack.append(info)
        self.namespace = _join(self.namespace, name)

    visit_AsyncFunctionDef = visit_FunctionDef
    visit_Lambda = visit_FunctionDef

    def visit_Import(self, node):
        for nodename in node.names:
            if nodename.asname:
                self.import_aliases[nodename.asname] = nodename.name
            self.imports.add(nodename.name)

    def visit_ImportFrom(self, node):
        if node.module is None:
            # Relative import - treat as regular import
            return self.visit_Import(node)

        self.imports.add(node.module)
        for nodename in node.names:
            full_name = f"{node.module}.{nodename.name}"
            self.import_aliases[nodename.asname or nodename.name] = full_name
            self.imports.add(full_name)

    def visit_Assign(self, node):
        # `MySpan = Span` at module level may name the handle type.
        if self.current_function is None and not self._class_stack:
            if len(node.targets) == 1 and isinstance(node.targets[0], ast.Name):
                if isinstance(node.value, (ast.Name, ast.Attribute, ast.Subscript, ast.BinOp)):
                    self.type_aliases[node.targets[0].id] = node.value

    def visit_AnnAssign(self, node):
        if self.current_function is None and not self._class_stack and node.value is not None:
            if isinstance(node.target, ast.Name) and _is_type_alias_annotation(node.annotation):
                self.type_aliases[node.target.id] = node.value

    def visit_TypeAlias(self, node):
        if isinstance(node.name, ast.Name):
            self.type_aliases[node.name.id] = node.value

    def visit_Name(self, node):
        self.referenced.add(node.id)

    def visit_Attribute(self, node):
        self.referenced.add(node.attr)

    def pre_visit(self, node):
        LOG.debug("entering: %s %s [%s]", hex(id(node)), type(node).__name__, self.depth)
        self.depth += 1
        return True

    def visit(self, node):
        method = f"visit_{node.__class__.__name__}"
        visitor = getattr(self, method, None)
        if visitor:
            visitor(node)

    def post_visit(self, node):
        self.depth -= 1
        if isinstance(node, FUNCTION_NODES):
            self._function_stack.pop()
            self.namespace = _split(self.namespace)
        elif isinstance(node, ast.ClassDef):
            self._class_stack.pop()
            self.namespace = _split(self.namespace)

    def generic_visit(self, node):
        for _, value in ast.iter_fields(node):
            if isinstance(value, list):
                for item in value:
                    if isinstance(item, ast.AST):
                        self._visit_child(item)
            elif isinstance(value, ast.AST):
                self._visit_child(value)

    def _visit_child(self, node):
        if self.pre_visit(node):
            self.visit(node)
            self.generic_visit(node)
            self.post_visit(node)

    def process(self, tree):
        """
        Traverse a parsed module.

        Args:
            tree: ast.Module

        Returns:
            The visitor itself
        """
        self.generic_visit(tree)
        LOG.debug("%s: collected %d functions, %d classes",
                  self.fname, len(self.functions), len(self.classes))
        return self


def _join(namespace, name):
    return f"{namespace}.{name}" if namespace else name


def _split(namespace):
    return namespace.rpartition(".")[0]


def _is_type_alias_annotation(annotation):
    if isinstance(annotation, ast.Name):
        return annotation.id == "TypeAlias"
    if isinstance(annotation, ast.Attribute):
        return annotation.attr == "TypeAlias"
    return False
