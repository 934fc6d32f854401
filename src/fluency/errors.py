"""
Exception types raised by the fluency scheduler.

Only configuration and programming faults raise. Wrong answers, an empty
selection and unreadable learner records are normal outcomes and are
reported through return values instead.
"""

from __future__ import annotations


class FluencyError(Exception):
    """Base class for fluency scheduler errors."""

    pass


class ConfigurationError(FluencyError, ValueError):
    """Raised when an algorithm configuration cannot be used."""

    pass


class MigrationValidationError(FluencyError):
    """Raised when a migrated learner record does not match its source."""

    pass


class AlgorithmNotInitializedError(FluencyError, RuntimeError):
    """Raised when the learning algorithm is used before initialize()."""

    pass
