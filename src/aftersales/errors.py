"""Failure taxonomy for the return lifecycle.

Caller-facing failures extend Protean's exceptions so command handlers can
raise them like any other domain error; the API maps each one to its own
HTTP status. `SettlementFailure` and `NotificationFailure` never leave the
component that raised them.
"""

from protean.exceptions import ObjectNotFoundError, ValidationError


class IneligibleError(ValidationError):
    """Return creation blocked by order state, policy, window or a duplicate."""

    def __init__(self, message: str):
        super().__init__({"eligibility": [message]})
        self.reason = message


class InvalidTransitionError(ValidationError):
    def __init__(self, current: str, target: str, message: str | None = None):
        super().__init__({"status": [message or f"Cannot transition from {current} to {target}"]})
        self.current = current
        self.target = target


class AccessDeniedError(ValidationError):
    def __init__(self, message: str = "You are not allowed to perform this action"):
        super().__init__({"access": [message]})


class ConcurrentModificationError(ValidationError):
    def __init__(self, aggregate_id: str):
        super().__init__(
            {"version": [f"Return request {aggregate_id} was modified by another request; reload and retry"]}
        )
        self.aggregate_id = aggregate_id


class NotFoundError(ObjectNotFoundError):
    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class SettlementFailure(Exception):
    """A refund attempt failed. Recorded on the refund row, never raised to callers."""


class SettlementTimeout(SettlementFailure):
    """The gateway did not answer in time; the refund may still have gone through."""


class NotificationFailure(Exception):
    """A delivery channel failed. Logged, never raised to callers."""
