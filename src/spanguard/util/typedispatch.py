"""Type-based dispatch for syntax tree walkers.

This module lets a class select a handler method from the runtime type of
its first argument. Walkers over a closed family of node types can declare
that family in ``__closed__``; class creation then fails unless every member
has a handler, so a new node kind cannot be silently routed to the default.
"""

__all__ = [
    "TypeDispatcher",
    "defaultdispatch",
    "dispatch",
    "TypeDispatchError",
    "TypeDispatchDeclarationError",
]

import inspect


class TypeDispatchError(Exception):
    """Raised when a dispatcher is called with a type it cannot handle."""
    pass


class TypeDispatchDeclarationError(Exception):
    """
    Raised when a dispatcher class is declared incorrectly.

    This happens if a type has multiple handlers, no default handler exists,
    or a member of the declared closed set has no handler.
    """
    pass


def flattenTypesInto(l, result):
    for child in l:
        if isinstance(child, (list, tuple)):
            flattenTypesInto(child, result)
        else:
            if not isinstance(child, type):
                raise TypeDispatchDeclarationError(
                    "Expected a type, got %r instead." % child
                )
            result.append(child)


def dispatch(*types):
    """Decorator marking a method as the handler for the given types.

    Args:
        *types: Types (or nested lists of types) handled by the method.
    """
    def dispatchF(f):
        f.__dispatch__ = []
        flattenTypesInto(types, f.__dispatch__)
        return f

    return dispatchF


def defaultdispatch(f):
    """Decorator marking the fallback handler."""
    f.__dispatch__ = (None,)
    return f


def exceptionDefault(self, node, *args):
    raise TypeDispatchError("%r cannot handle %r\n%r" % (type(self), type(node), node))


def dispatch__call__(self, p, *args):
    """Dispatch on the type of ``p``, searching its MRO and caching the result."""
    t = type(p)
    table = self.__typeDispatchTable__

    func = table.get(t)
    if func is None:
        for supercls in t.mro():
            func = table.get(supercls)
            if func is not None:
                break

        if func is None:
            func = table[None]

        table[t] = func

    return func(self, p, *args)


class typedispatcher(type):
    """
    Metaclass that builds the dispatch table of a TypeDispatcher class.

    Handlers declared on base classes are inherited unless redefined. When
    the class (or a base) declares ``__closed__``, every type in it must be
    covered by an explicit handler.
    """
    def __new__(self, name, bases, d):
        lut = {}

        for k, v in d.items():
            for t in getattr(v, "__dispatch__", ()):
                if t in lut:
                    raise TypeDispatchDeclarationError(
                        "%s has declared with multiple handlers for type %s"
                        % (name, getattr(t, "__name__", "default"))
                    )
                lut[t] = v

        for base in bases:
            for t in inspect.getmro(base):
                for k, v in getattr(t, "__typeDispatchTable__", {}).items():
                    lut.setdefault(k, v)

        if None not in lut:
            lut[None] = exceptionDefault

        closed = d.get("__closed__")
        if closed is None:
            for base in bases:
                closed = getattr(base, "__closed__", None)
                if closed is not None:
                    break
        if closed:
            missing = [t.__name__ for t in closed if t not in lut]
            if missing:
                raise TypeDispatchDeclarationError(
                    "%s does not handle %s" % (name, ", ".join(sorted(missing)))
                )

        d["__typeDispatchTable__"] = lut
        return type.__new__(self, name, bases, d)


class TypeDispatcher(object, metaclass=typedispatcher):
    """
    Base class for type-based method dispatch.

    Example:
        >>> class Kind(TypeDispatcher):
        ...     @dispatch(int)
        ...     def visitInt(self, obj):
        ...         return "integer"
        ...     @defaultdispatch
        ...     def visitOther(self, obj):
        ...         return "other"
        >>> Kind()(42)
        'integer'

    Attributes:
        __closed__: Optional tuple of types that must all have handlers
    """
    __closed__ = None
    __call__ = dispatch__call__
