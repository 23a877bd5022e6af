"""Error taxonomy for the scaling controller.

Backends translate their SDK errors into these types so core logic can decide
whether to retry, treat the failure as success, or give up.
"""

from __future__ import annotations


class ScalerError(Exception):
    """Base class for all controller errors."""


# --- Retryable ---


class RetryableError(ScalerError):
    """A control-plane failure that may succeed if the call is repeated."""


class TransientControlPlaneError(RetryableError):
    """Timeouts, connection failures and 5xx responses."""


class RateLimited(RetryableError):
    """The control plane throttled the request."""


# --- Resolved without retry ---


class Conflict(ScalerError):
    """The target is already in the desired end state."""


class ReplicaNotFound(ScalerError):
    """A replica named in a mutation no longer exists."""


# --- Fatal ---


class PrimaryNotFound(ScalerError):
    """The primary instance no longer exists."""


class PermissionOrConfigError(ScalerError):
    """Requires operator action; never retried."""


class PermissionDenied(PermissionOrConfigError):
    pass


class InvalidConfiguration(PermissionOrConfigError):
    pass


class RetryBudgetExceeded(ScalerError):
    """All attempts failed with retryable errors."""

    def __init__(self, operation: str, attempts: int, last_error: Exception | None):
        super().__init__(f"{operation} failed after {attempts} attempts: {last_error}")
        self.operation = operation
        self.attempts = attempts
        self.last_error = last_error


class DeadlineExceeded(ScalerError):
    """The invocation ran out of time before the operation succeeded."""

    def __init__(self, operation: str, last_error: Exception | None = None):
        detail = f": {last_error}" if last_error else ""
        super().__init__(f"Deadline exceeded during {operation}{detail}")
        self.operation = operation
        self.last_error = last_error
