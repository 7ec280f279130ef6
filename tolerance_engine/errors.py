"""Exception hierarchy for the tolerance analysis engine."""

from __future__ import annotations


class ToleranceEngineError(Exception):
    """Base class for all errors raised by tolerance_engine."""


class ValidationError(ToleranceEngineError, ValueError):
    """An entity or value breaks one of its invariants."""


class NotFoundError(ToleranceEngineError, KeyError):
    """An identifier does not resolve to a stored entity."""

    def __str__(self) -> str:
        # KeyError repr-quotes its message
        return str(self.args[0]) if self.args else ""


class IntegrityError(ToleranceEngineError):
    """A removal or mutation is blocked by an existing reference."""


class IllFormedDistributionError(ToleranceEngineError, ValueError):
    """Distribution parameters are inconsistent with the feature's band."""


class InvalidConfigError(ToleranceEngineError, ValueError):
    """An analysis configuration violates its preconditions."""


class UnresolvedFeatureError(ToleranceEngineError, ValueError):
    """A stackup contribution has no matching resolved feature."""


class PersistenceError(ToleranceEngineError, OSError):
    """The on-disk store could not be read or written."""
