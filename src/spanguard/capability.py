"""
Capability descriptors.

A capability descriptor names one paired-resource pattern: the call that
acquires a handle and the method on the handle that releases it. The
descriptor is an immutable value injected into the checker; nothing in the
analysis hard-codes a particular acquire/release pair.

**Example:**
```python
from spanguard.capability import CapabilityDescriptor

LOCKS = CapabilityDescriptor(
    acquire_call="*.acquire_lock",
    handle_type="mylib.locks.Lock",
    release_method="release",
    handle_methods=frozenset({"release", "locked"}),
)
LOCKS.validate()
```
"""

import fnmatch
import importlib
import inspect
import logging
from dataclasses import dataclass
from typing import FrozenSet, Optional

from .errors import ConfigurationError

LOG = logging.getLogger(__name__)


@dataclass(frozen=True)
class CapabilityDescriptor:
    """
    Immutable description of an acquire/release pair.

    Attributes:
        acquire_call: fnmatch pattern for the qualified name of the acquisition
            call, e.g. ``*.start_span``
        handle_type: Dotted name of the handle type
        release_method: Name of the release method on the handle type
        handle_methods: Method set of the handle type, introspected when None
        result_index: Position of the handle in a tuple result, None when the
            call returns the handle itself
    """
    acquire_call: str
    handle_type: str
    release_method: str
    handle_methods: Optional[FrozenSet[str]] = None
    result_index: Optional[int] = None

    @property
    def type_name(self):
        return self.handle_type.rpartition(".")[2]

    @property
    def defining_module(self):
        return self.handle_type.rpartition(".")[0]

    @property
    def acquire_method(self):
        """Last dotted component of the acquisition pattern."""
        return self.acquire_call.rpartition(".")[2]

    def matches_acquire(self, qualname):
        """
        Check whether a call's qualified name denotes an acquisition.

        The pattern is matched against the full alias-resolved name and, when
        the pattern carries no dots, against the last component only.

        Args:
            qualname: Qualified call name (e.g. "tracer.start_span")

        Returns:
            True if the call is an acquisition
        """
        if not qualname:
            return False
        if fnmatch.fnmatchcase(qualname, self.acquire_call):
            return True
        if "." not in self.acquire_call:
            return fnmatch.fnmatchcase(qualname.rpartition(".")[2], self.acquire_call)
        return False

    def method_set(self):
        """
        Get the method set of the handle type.

        Uses the declared ``handle_methods`` when present, otherwise imports
        the handle type and reads its callable members.

        Raises:
            ConfigurationError: If the type cannot be resolved
        """
        if self.handle_methods is not None:
            return frozenset(self.handle_methods)

        module_name, _, attr = self.handle_type.rpartition(".")
        if not module_name:
            raise ConfigurationError(
                f"handle type {self.handle_type!r} is not a dotted name and "
                f"declares no method set"
            )
        try:
            module = importlib.import_module(module_name)
            handle_cls = getattr(module, attr)
        except (ImportError, AttributeError) as e:
            raise ConfigurationError(
                f"cannot resolve handle type {self.handle_type!r} ({e}); "
                f"declare its method set explicitly"
            ) from e
        LOG.debug("introspected handle type %s", self.handle_type)
        return frozenset(name for name, _ in inspect.getmembers(handle_cls, callable))

    def validate(self):
        """
        Check the descriptor once, before any file is analyzed.

        Returns:
            The descriptor itself, for chaining

        Raises:
            ConfigurationError: If the handle type lacks the release method,
                or a field is malformed
        """
        if not self.acquire_call:
            raise ConfigurationError("acquire_call must not be empty")
        if not self.release_method.isidentifier():
            raise ConfigurationError(f"invalid release method name {self.release_method!r}")
        if self.result_index is not None and self.result_index < 0:
            raise ConfigurationError("result_index must be non-negative")

        methods = self.method_set()
        if self.release_method not in methods:
            raise ConfigurationError(
                f"handle type {self.handle_type!r} has no method {self.release_method!r}"
            )
        LOG.debug("capability %s validated (%d methods)", self, len(methods))
        return self

    def __str__(self):
        return f"{self.acquire_call} -> {self.handle_type}.{self.release_method}()"


SPAN_CAPABILITY = CapabilityDescriptor(
    acquire_call="start_span",
    handle_type="opentelemetry.trace.Span",
    release_method="end",
    handle_methods=frozenset({
        "end",
        "get_span_context",
        "set_attributes",
        "set_attribute",
        "add_event",
        "add_link",
        "update_name",
        "is_recording",
        "set_status",
        "record_exception",
        "__enter__",
        "__exit__",
    }),
)


def from_option_string(value, result_index=None):
    """
    Build a descriptor from ``acquire:module.Type:release``.

    The handle type's method set is introspected, so the type must be
    importable.

    Args:
        value: Option string, e.g. "*.open_conn:db.Connection:close"
        result_index: Optional tuple position of the handle

    Returns:
        CapabilityDescriptor

    Raises:
        ConfigurationError: If the string does not have three fields
    """
    parts = value.split(":")
    if len(parts) != 3 or not all(parts):
        raise ConfigurationError(
            f"capability must look like 'acquire:module.Type:release', got {value!r}"
        )
    acquire, handle_type, release = parts
    return CapabilityDescriptor(acquire, handle_type, release, result_index=result_index)
