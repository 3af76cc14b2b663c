"""
Parsed-program view.

This module is the front-end collaborator of the checker. It exposes, per
function, its syntax tree and the classification of every name it uses
(parameter, local, global, nonlocal, free), and it resolves call sites to
functions defined in the same analysis unit.

Symbol classification comes from the standard ``symtable`` module, which
computes exactly the scoping rules the compiler applies.
"""

import ast
import collections
import logging
import symtable

LOG = logging.getLogger(__name__)

SCOPE_NODES = (ast.FunctionDef, ast.AsyncFunctionDef, ast.Lambda, ast.ClassDef)


class ClassInfo(object):
    """
    A class statement of the analyzed unit.

    Attributes:
        node: ast.ClassDef
        qualname: Qualified name
        depth: Visitor depth at the definition
        methods: Mapping from method name to FunctionInfo
    """
    __slots__ = "node", "qualname", "depth", "methods"

    def __init__(self, node, qualname, depth):
        self.node = node
        self.qualname = qualname
        self.depth = depth
        self.methods = {}

    @property
    def name(self):
        return self.node.name

    def __repr__(self):
        return f"<ClassInfo {self.qualname}>"


class FunctionInfo(object):
    """
    A function, method or lambda of the analyzed unit.

    Attributes:
        node: ast.FunctionDef, ast.AsyncFunctionDef or ast.Lambda
        name: Simple name ("<lambda>" for lambdas)
        qualname: Qualified name including enclosing classes and functions
        parent: Lexically enclosing FunctionInfo, or None
        owner_class: ClassInfo when the function is a method, else None
        nested: Functions defined directly inside this one
        table: symtable.SymbolTable of the function, or None
    """
    __slots__ = "node", "name", "qualname", "parent", "owner_class", "depth", "nested", "table"

    def __init__(self, node, name, qualname, parent=None, owner_class=None, depth=0):
        self.node = node
        self.name = name
        self.qualname = qualname
        self.parent = parent
        self.owner_class = owner_class
        self.depth = depth
        self.nested = []
        self.table = None

    def __repr__(self):
        return f"<FunctionInfo {self.qualname}:{self.lineno}>"

    @property
    def lineno(self):
        return self.node.lineno

    @property
    def is_lambda(self):
        return isinstance(self.node, ast.Lambda)

    @property
    def body(self):
        return [self.node.body] if self.is_lambda else self.node.body

    @property
    def is_staticmethod(self):
        if self.is_lambda:
            return False
        for deco in self.node.decorator_list:
            if isinstance(deco, ast.Name) and deco.id == "staticmethod":
                return True
        return False

    @property
    def params(self):
        """All parameter names, in declaration order."""
        args = self.node.args
        names = [a.arg for a in args.posonlyargs + args.args]
        if args.vararg:
            names.append(args.vararg.arg)
        names.extend(a.arg for a in args.kwonlyargs)
        if args.kwarg:
            names.append(args.kwarg.arg)
        return names

    @property
    def positional_params(self):
        args = self.node.args
        return [a.arg for a in args.posonlyargs + args.args]

    @property
    def keyword_params(self):
        args = self.node.args
        return [a.arg for a in args.args + args.kwonlyargs]

    @property
    def vararg(self):
        return self.node.args.vararg.arg if self.node.args.vararg else None

    @property
    def kwarg(self):
        return self.node.args.kwarg.arg if self.node.args.kwarg else None

    def symbol(self, name):
        if self.table is None:
            return None
        try:
            return self.table.lookup(name)
        except KeyError:
            return None

    def is_param(self, name):
        return name in self.params

    def is_declared_outward(self, name):
        """True if assigning ``name`` writes outside this function."""
        sym = self.symbol(name)
        if sym is None:
            return False
        return sym.is_declared_global() or sym.is_nonlocal()

    def is_outward(self, name):
        """True if ``name`` denotes an object visible outside this function."""
        if self.is_param(name):
            return True
        sym = self.symbol(name)
        if sym is None:
            return False
        return sym.is_global() or sym.is_free() or sym.is_nonlocal()

    def is_free(self, name):
        sym = self.symbol(name)
        return sym is not None and sym.is_free()

    def nested_named(self, name):
        for child in self.nested:
            if child.name == name:
                return child
        return None


def local_walk(nodes):
    """
    Walk nodes without entering nested scopes.

    Nested function, lambda and class bodies belong to their own scope; their
    decorators, defaults and base classes are still evaluated here.

    Args:
        nodes: An AST node or a list of nodes

    Yields:
        Every AST node in scope, the given roots included
    """
    todo = collections.deque(nodes if isinstance(nodes, list) else [nodes])
    while todo:
        node = todo.popleft()
        yield node
        if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)):
            todo.extend(node.decorator_list)
            todo.extend(node.args.defaults)
            todo.extend(d for d in node.args.kw_defaults if d is not None)
        elif isinstance(node, ast.Lambda):
            todo.extend(node.args.defaults)
            todo.extend(d for d in node.args.kw_defaults if d is not None)
        elif isinstance(node, ast.ClassDef):
            todo.extend(node.decorator_list)
            todo.extend(node.bases)
            todo.extend(k.value for k in node.keywords)
        else:
            todo.extend(ast.iter_child_nodes(node))


def get_attr_qual_name(node, aliases):
    """
    Get the alias-resolved qualified name of an attribute chain.

    Args:
        node: ast.Name or ast.Attribute
        aliases: Import alias mapping

    Returns:
        Qualified name, with an empty leading part for non-name roots
        (e.g. ".start_span" for ``get_tracer().start_span``)
    """
    if isinstance(node, ast.Name):
        return aliases.get(node.id, node.id)
    elif isinstance(node, ast.Attribute):
        name = f"{get_attr_qual_name(node.value, aliases)}.{node.attr}"
        return aliases.get(name, name)
    return ""


def get_call_name(node, aliases):
    """Get the qualified name of the function called by an ast.Call."""
    if isinstance(node.func, (ast.Name, ast.Attribute)):
        return get_attr_qual_name(node.func, aliases)
    return ""


def root_name(node):
    """Return the ast.Name at the root of an attribute/subscript chain."""
    while isinstance(node, (ast.Attribute, ast.Subscript, ast.Starred)):
        node = node.value
    return node if isinstance(node, ast.Name) else None


def _function_tables(table, result):
    for child in table.get_children():
        if child.get_type() == "function":
            result[(child.get_name(), child.get_lineno())].append(child)
        _function_tables(child, result)


class ProgramView(object):
    """
    Read-only view of one parsed source file.

    Attributes:
        filename: Source filename
        source: Source text
        tree: ast.Module
        functions: FunctionInfo objects in preorder
        classes: ClassInfo objects
        imports: Imported module names
        import_aliases: Alias -> fully qualified name
        type_aliases: Module level alias name -> aliased expression
        referenced: Identifiers referenced in the file
    """
    def __init__(self, filename, source, tree, visitor):
        self.filename = filename
        self.source = source
        self.tree = tree
        self.functions = visitor.functions
        self.classes = visitor.classes
        self.imports = visitor.imports
        self.import_aliases = visitor.import_aliases
        self.type_aliases = visitor.type_aliases
        self.referenced = visitor.referenced
        self.module_functions = {
            f.name: f for f in self.functions if f.parent is None and f.owner_class is None
            and not f.is_lambda
        }

    @classmethod
    def from_source(cls, source, filename="<unknown>", module_name=""):
        """
        Parse source text and collect the program view.

        Raises:
            SyntaxError: If the source does not parse
        """
        from .node_visitor import ProgramNodeVisitor

        tree = ast.parse(source, filename=filename)
        visitor = ProgramNodeVisitor(filename, module_name).process(tree)
        view = cls(filename, source, tree, visitor)
        view._bind_symbols()
        return view

    def _bind_symbols(self):
        tables = collections.defaultdict(collections.deque)
        _function_tables(symtable.symtable(self.source, self.filename, "exec"), tables)

        for info in self.functions:
            name = "lambda" if info.is_lambda else info.name
            candidates = tables.get((name, info.lineno))
            if candidates:
                info.table = candidates.popleft()
            else:
                LOG.debug("no symbol table for %r", info)

    @property
    def lines(self):
        return self.source.splitlines()

    def call_name(self, call):
        return get_call_name(call, self.import_aliases)

    def resolve_callee(self, call, caller):
        """
        Resolve a call site to a function of this unit.

        Handles plain names (nested functions of the caller chain, then
        module level functions) and ``self.m``/``cls.m`` calls inside
        methods. Anything else is unknown.

        Args:
            call: ast.Call
            caller: FunctionInfo containing the call

        Returns:
            (FunctionInfo, bound) where bound tells whether the first
            parameter is supplied by the receiver, or (None, False)
        """
        func = call.func
        if isinstance(func, ast.Name):
            scope = caller
            while scope is not None:
                found = scope.nested_named(func.id)
                if found is not None:
                    return found, False
                scope = scope.parent
            found = self.module_functions.get(func.id)
            if found is not None and func.id not in self.import_aliases:
                return found, False
        elif isinstance(func, ast.Attribute) and isinstance(func.value, ast.Name):
            method_owner = caller
            while method_owner is not None and method_owner.owner_class is None:
                method_owner = method_owner.parent
            if method_owner is not None and method_owner.params:
                receiver = method_owner.params[0]
                if func.value.id == receiver and not method_owner.is_staticmethod:
                    target = method_owner.owner_class.methods.get(func.attr)
                    if target is not None and not target.is_lambda:
                        return target, not target.is_staticmethod
        return None, False
