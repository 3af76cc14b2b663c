"""
Checker configuration.

A dictionary of options with ``get_option``/``set_option`` accessors.
Options are checked when set, so a bad value fails before any file is
read.

**Options:**
- capability: CapabilityDescriptor, or an ``acquire:module.Type:release``
  string (default: the OpenTelemetry span descriptor)
- workers: Number of worker threads for function passes (default: 1)
- ignore_nolint: Ignore ``# nolint`` directives (default: False)
- report_advisories: Emit PreferDeferredRelease findings (default: True)
- checker_name: Name matched by ``# nolint: <name>`` (default: spanguard)
- exclude: Path patterns skipped during discovery
"""

import copy
import logging

from spanguard import capability as capability_mod
from spanguard.errors import ConfigurationError

from . import constants

LOG = logging.getLogger(__name__)


DEFAULTS = {
    "capability": capability_mod.SPAN_CAPABILITY,
    "workers": constants.DEFAULT_WORKERS,
    "ignore_nolint": False,
    "report_advisories": True,
    "checker_name": constants.CHECKER_NAME,
    "exclude": list(constants.EXCLUDE),
}


class CheckerConfig:
    """
    Options of one checker run.

    Attributes:
        config: Option dictionary
    """
    def __init__(self, options=None):
        self.config = copy.deepcopy(DEFAULTS)
        for key, value in (options or {}).items():
            self.set_option(key, value)

    def get_option(self, option_string):
        """
        Get an option value.

        Args:
            option_string: Option name, dotted names index nested dictionaries

        Returns:
            The value, or None when unset
        """
        value = self.config
        for part in option_string.split("."):
            if not isinstance(value, dict) or part not in value:
                return None
            value = value[part]
        return value

    def set_option(self, option_string, value):
        """
        Set an option value.

        Raises:
            ConfigurationError: If the value is invalid for the option
        """
        if option_string == "capability" and isinstance(value, str):
            value = capability_mod.from_option_string(value)
        elif option_string == "workers":
            try:
                value = int(value)
            except (TypeError, ValueError) as e:
                raise ConfigurationError(f"workers must be an integer, got {value!r}") from e
            if value < 1:
                raise ConfigurationError("workers must be at least 1")
        elif option_string == "exclude" and isinstance(value, str):
            value = [v.strip() for v in value.split(",") if v.strip()]

        parts = option_string.split(".")
        target = self.config
        for part in parts[:-1]:
            target = target.setdefault(part, {})
        target[parts[-1]] = value
        LOG.debug("option %s = %r", option_string, value)

    @property
    def capability(self):
        return self.config["capability"]

    def validate(self):
        """
        Validate the configuration before a run.

        Returns:
            The validated CapabilityDescriptor

        Raises:
            ConfigurationError: If the capability is invalid
        """
        cap = self.capability
        if not isinstance(cap, capability_mod.CapabilityDescriptor):
            raise ConfigurationError(f"capability must be a CapabilityDescriptor, got {cap!r}")
        return cap.validate()
