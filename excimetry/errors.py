"""Exception types raised by excimetry.

Delivery failures are never raised; backends report them as a boolean result.
Only misconfiguration and lifecycle misuse propagate to the caller.
"""


class ConfigurationError(ValueError):
    """Invalid mode, encoding, export format, backend selector or retry policy."""


class ProfilingStateError(RuntimeError):
    """A result was requested before the step that produces it."""


__all__ = ["ConfigurationError", "ProfilingStateError"]
