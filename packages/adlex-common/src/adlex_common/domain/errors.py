"""
Domain error types for AdLex.

Two families are raised synchronously to the immediate caller and are
never retried: value-object validation failures and aggregate
state-machine violations.
"""

from __future__ import annotations


class DomainValidationError(ValueError):
    """Raised when a value object or aggregate input fails validation.

    Attributes:
        field: Name of the offending field, if known.
    """

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class InvalidStateTransition(Exception):
    """Raised when an aggregate operation is called from the wrong state.

    Attributes:
        operation: The rejected operation name.
        current_state: The aggregate state at the time of the call.
    """

    def __init__(self, operation: str, current_state: str, message: str | None = None) -> None:
        super().__init__(
            message or f"Cannot {operation} while in state '{current_state}'"
        )
        self.operation = operation
        self.current_state = current_state
