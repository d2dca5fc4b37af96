"""
Exception hierarchy for erquant.

Configuration problems and exhausted I/O retries abort a run. Degenerate data
(no passing positions, empty region sets) is never an error.
"""


class ErquantError(Exception):
    """Base class for all erquant errors."""


class ConfigurationError(ErquantError, ValueError):
    """Invalid or missing parameter, detected before any I/O where possible."""


class SourceReadError(ErquantError, OSError):
    """A coverage source could not be read after exhausting the retry budget."""
