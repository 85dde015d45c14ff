"""Errors raised by the scheduling engine.

Only schedule-time problems are exceptions; per-execution failures are
reported as data (``ExecutionResult`` and execution log rows).
"""

from __future__ import annotations


class InvalidExpression(ValueError):
    """A CRON expression could not be parsed."""

    def __init__(self, expression: str, reason: str = "") -> None:
        self.expression = expression
        self.reason = reason
        super().__init__(expression, reason)

    def __str__(self) -> str:
        message = f"Invalid cron expression: {self.expression!r}"
        if self.reason:
            message = f"{message} ({self.reason})"
        return message


class InvalidTimezone(InvalidExpression):
    """The schedule names a timezone that is not in the IANA database."""

    def __init__(self, timezone: str) -> None:
        self.timezone = timezone
        super().__init__("", "unknown timezone")

    def __str__(self) -> str:
        return f"Unknown timezone: {self.timezone!r}"


class ShutdownInProgress(RuntimeError):
    """The scheduler service is shutting down or stopped."""

    def __init__(self, operation: str = "") -> None:
        self.operation = operation
        message = "Service shutting down"
        if operation:
            message = f"Cannot {operation}: service shutting down"
        super().__init__(message)
