# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Custom exceptions for KPI scoring and trigger automation.

This module defines the exception hierarchy for KPI operations:
- KPIError: Base exception for all KPI-related errors
- NotFoundError: Unknown user or record
- ValidationError: Malformed metric input or period
- DependencyUnavailableError: Persistence or email transport unreachable
- ConcurrentRunRejectedError: Scheduler cadence already running
"""


class KPIError(Exception):
    """Base exception for all KPI-related errors.

    Attributes:
        message: Human-readable error description.
        details: Optional dictionary with additional error context.
    """

    def __init__(self, message: str, details: dict | None = None):
        """Initialize KPI error.

        Args:
            message: Human-readable error description.
            details: Optional dictionary with additional error context.
        """
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        """Return string representation with details if available."""
        if self.details:
            return f"{self.message} - Details: {self.details}"
        return self.message


class NotFoundError(KPIError):
    """Requested user or record does not exist.

    Attributes:
        entity: Kind of entity that was looked up.
        identifier: The identifier that failed to resolve.
    """

    def __init__(
        self,
        entity: str,
        identifier: str,
        details: dict | None = None,
    ):
        self.entity = entity
        self.identifier = identifier
        super().__init__(f"{entity} not found: {identifier}", details)


class ValidationError(KPIError):
    """Malformed metric input, period or import row.

    Attributes:
        field: Name of the offending field, if known.
    """

    def __init__(
        self,
        message: str,
        field: str | None = None,
        details: dict | None = None,
    ):
        self.field = field
        super().__init__(message, details)

    def __str__(self) -> str:
        base = self.message
        if self.field:
            base = f"[{self.field}] {base}"
        if self.details:
            base = f"{base} - Details: {self.details}"
        return base


class DependencyUnavailableError(KPIError):
    """An external collaborator failed or timed out.

    Retryable: the caller may run the operation again later.

    Attributes:
        dependency: Name of the unreachable collaborator.
        timed_out: Whether the failure was a timeout.
    """

    retryable = True

    def __init__(
        self,
        dependency: str,
        message: str | None = None,
        timed_out: bool = False,
        details: dict | None = None,
    ):
        self.dependency = dependency
        self.timed_out = timed_out
        if message is None:
            message = (
                f"{dependency} timed out" if timed_out else f"{dependency} unavailable"
            )
        super().__init__(message, details)


class ConcurrentRunRejectedError(KPIError):
    """A scheduler cadence was started while already running.

    Attributes:
        cadence: The cadence that is already running.
    """

    def __init__(self, cadence: str, details: dict | None = None):
        self.cadence = cadence
        super().__init__(f"Cadence already running: {cadence}", details)
