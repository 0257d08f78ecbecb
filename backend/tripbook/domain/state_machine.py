"""
Booking lifecycle state machine.

Every orchestrator (booking service, webhook reconciler, expiry sweeper) asks
this module for the next state instead of branching on the booking state
itself. A (state, event) pair missing from TRANSITIONS is illegal.

    pending_payment --payment_succeeded------> confirmed
    pending_payment --payment_failed---------> expired
    pending_payment --timed_out--------------> expired
    pending_payment --cancelled_before_cutoff-> cancelled
    confirmed       --cancelled_before_cutoff-> cancelled
    confirmed       --cancelled_after_cutoff--> cancelled

cancelled and expired have no outgoing transitions.
"""

from enum import Enum
from typing import Dict, FrozenSet, Tuple

from tripbook.core.exceptions import IllegalTransitionError


class BookingState(str, Enum):
    PENDING_PAYMENT = "pending_payment"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class BookingEvent(str, Enum):
    PAYMENT_SUCCEEDED = "payment_succeeded"
    PAYMENT_FAILED = "payment_failed"
    TIMED_OUT = "timed_out"
    CANCELLED_BEFORE_CUTOFF = "cancelled_before_cutoff"
    CANCELLED_AFTER_CUTOFF = "cancelled_after_cutoff"


TRANSITIONS: Dict[Tuple[BookingState, BookingEvent], BookingState] = {
    (BookingState.PENDING_PAYMENT, BookingEvent.PAYMENT_SUCCEEDED): BookingState.CONFIRMED,
    (BookingState.PENDING_PAYMENT, BookingEvent.PAYMENT_FAILED): BookingState.EXPIRED,
    (BookingState.PENDING_PAYMENT, BookingEvent.TIMED_OUT): BookingState.EXPIRED,
    (BookingState.PENDING_PAYMENT, BookingEvent.CANCELLED_BEFORE_CUTOFF): BookingState.CANCELLED,
    (BookingState.CONFIRMED, BookingEvent.CANCELLED_BEFORE_CUTOFF): BookingState.CANCELLED,
    (BookingState.CONFIRMED, BookingEvent.CANCELLED_AFTER_CUTOFF): BookingState.CANCELLED,
}

TERMINAL_STATES: FrozenSet[BookingState] = frozenset(
    state for state in BookingState if not any(src == state for src, _ in TRANSITIONS)
)


def transition(state: BookingState, event: BookingEvent) -> BookingState:
    """
    Return the state reached by applying `event` in `state`.

    Raises:
        IllegalTransitionError: the pair has no entry in TRANSITIONS.
    """
    state = BookingState(state)
    event = BookingEvent(event)
    try:
        return TRANSITIONS[(state, event)]
    except KeyError:
        raise IllegalTransitionError(state.value, event.value) from None


def can_transition(state: BookingState, event: BookingEvent) -> bool:
    return (BookingState(state), BookingEvent(event)) in TRANSITIONS


def is_terminal(state: BookingState) -> bool:
    return BookingState(state) in TERMINAL_STATES


def allowed_events(state: BookingState) -> FrozenSet[BookingEvent]:
    state = BookingState(state)
    return frozenset(event for (src, event) in TRANSITIONS if src == state)
