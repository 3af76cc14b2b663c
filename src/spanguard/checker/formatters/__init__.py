
# SPDX-License-Identifier: Apache-2.0
"""Output formatters, selected by name."""

from spanguard.errors import ConfigurationError

from . import json as json_formatter
from . import text as text_formatter

FORMATTERS = {
    "text": text_formatter.report,
    "json": json_formatter.report,
}


def get_formatter(name):
    """
    Look up a formatter's report function.

    Raises:
        ConfigurationError: If no formatter has that name
    """
    try:
        return FORMATTERS[name]
    except KeyError:
        raise ConfigurationError(
            f"unknown output format {name!r} (choose from {', '.join(sorted(FORMATTERS))})"
        ) from None
