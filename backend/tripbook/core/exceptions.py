"""
Typed errors raised by the booking core.

Services raise these instead of HTTP errors; the API layer maps them to
status codes (see tripbook.api.errors).
"""


class BookingCoreError(Exception):
    """Base class for every error the booking core raises on purpose."""

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(detail)


class BookingValidationError(BookingCoreError):
    """Malformed input, rejected before any transaction opens."""


class NotFoundError(BookingCoreError):
    """Trip or booking absent, or trip not open for booking."""


class ConflictError(BookingCoreError):
    """The request is well formed but the current state forbids it."""


class IllegalTransitionError(BookingCoreError):
    """
    Raised by the state machine for a (state, event) pair it has no entry for.
    Orchestrating services recover it into a ConflictError.
    """

    def __init__(self, state: str, event: str):
        self.state = state
        self.event = event
        super().__init__(f"Illegal transition: event '{event}' is not allowed in state '{state}'")
