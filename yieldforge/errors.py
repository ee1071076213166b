"""YieldForge error taxonomy.

All core failures derive from ``YieldForgeError``.  Argument and data
errors also subclass ``ValueError`` so callers can treat them as plain
bad-input errors.
"""


class YieldForgeError(Exception):
    """Base class for every error raised by the core."""


class InvalidArgumentError(YieldForgeError, ValueError):
    """Non-positive amounts, negative fields, or out-of-order snapshots."""


class ConfigurationError(YieldForgeError):
    """Unknown strategy name or an invalid configuration value."""


class InsufficientDataError(YieldForgeError, ValueError):
    """A statistic was requested on a timeline too short to define it."""
