"""spanguard - static checker for acquire/release handle lifetimes.

Proves, for one acquire/release pair described by a capability descriptor
(by default OpenTelemetry's ``start_span``/``Span.end``), that every handle
acquired in a function is released or handed off on every path out of it.

Set ``SPANGUARD_DEBUG=true`` in the environment to turn on debug logging
for the whole package.
"""

import logging
import os

__version__ = "0.1.0"

if os.environ.get("SPANGUARD_DEBUG", "").lower() == "true":
    _handler = logging.StreamHandler()
    _handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    logging.getLogger(__name__).addHandler(_handler)
    logging.getLogger(__name__).setLevel(logging.DEBUG)

from .capability import CapabilityDescriptor, SPAN_CAPABILITY
from .checker import CheckerConfig, CheckerManager, Finding
from .errors import (
    AnalysisAborted,
    AnalysisInternalError,
    ConfigurationError,
    SpanguardError,
    UnsupportedConstruct,
)

__all__ = [
    "CapabilityDescriptor",
    "SPAN_CAPABILITY",
    "CheckerManager",
    "CheckerConfig",
    "Finding",
    "SpanguardError",
    "ConfigurationError",
    "UnsupportedConstruct",
    "AnalysisInternalError",
    "AnalysisAborted",
    "__version__",
]
