"""Conditioner — Exception hierarchy.

All exceptions raised by the engine inherit from ConditionerError so that
callers can catch the full family with a single except clause when needed.

Hierarchy:
    ConditionerError
    ├── ConfigurationError
    │   ├── DeclarationError
    │   └── ExpressionParseError
    ├── ExpressionError
    ├── ResolutionError
    │   ├── ImplementationResolveError
    │   └── ProbeResolveError
    └── ContractViolationError
        └── MethodNotFoundError

Transient unavailability (no active binding) is never an exception: it is
reported as a 404 ``ExecutionResult``.
"""

from __future__ import annotations

from typing import Any


class ConditionerError(Exception):
    """Base exception for all Conditioner errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context: dict[str, Any] = context or {}

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, context={self.context})"


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class ConfigurationError(ConditionerError):
    """A required parameter is missing or a configuration value is invalid.

    Always raised at construction or parse time, never deferred.
    """


class DeclarationError(ConfigurationError):
    """A target or candidate declaration could not be parsed."""

    def __init__(self, message: str, raw: Any = None) -> None:
        super().__init__(message, context={"raw": raw})
        self.raw = raw


class ExpressionParseError(ConfigurationError):
    """A condition expression is malformed."""

    def __init__(self, reason: str, expression: str, position: int | None = None) -> None:
        where = f" at position {position}" if position is not None else ""
        super().__init__(
            f"Cannot parse condition '{expression}'{where}: {reason}",
            context={"expression": expression, "position": position, "reason": reason},
        )
        self.expression = expression
        self.position = position
        self.reason = reason


# ---------------------------------------------------------------------------
# Expression tree
# ---------------------------------------------------------------------------


class ExpressionError(ConditionerError):
    """An expression tree was built or mutated in an invalid way."""


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------


class ResolutionError(ConditionerError):
    """Base for failures of the asynchronous resolvers."""


class ImplementationResolveError(ResolutionError):
    """An implementation locator could not be turned into a factory."""

    def __init__(self, locator: str, reason: str) -> None:
        super().__init__(
            f"Implementation '{locator}' could not be resolved: {reason}",
            context={"locator": locator, "reason": reason},
        )
        self.locator = locator
        self.reason = reason


class ProbeResolveError(ResolutionError):
    """A probe id could not be turned into a probe class."""

    def __init__(self, probe_id: str, reason: str) -> None:
        super().__init__(
            f"Probe '{probe_id}' could not be resolved: {reason}",
            context={"probe_id": probe_id, "reason": reason},
        )
        self.probe_id = probe_id
        self.reason = reason


# ---------------------------------------------------------------------------
# Contract violations
# ---------------------------------------------------------------------------


class ContractViolationError(ConditionerError):
    """The caller broke the engine's contract.  Signals a programming error."""


class MethodNotFoundError(ContractViolationError):
    """``execute()`` named a method the active implementation does not have."""

    def __init__(self, locator: str, method: str) -> None:
        super().__init__(
            f"Implementation '{locator}' has no callable method '{method}'",
            context={"locator": locator, "method": method},
        )
        self.locator = locator
        self.method = method
