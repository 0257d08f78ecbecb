"""
Tests for the booking lifecycle state machine.
"""

import pytest

from tripbook.core.exceptions import IllegalTransitionError
from tripbook.domain.state_machine import (
    BookingEvent,
    BookingState,
    TERMINAL_STATES,
    allowed_events,
    can_transition,
    is_terminal,
    transition,
)


@pytest.mark.parametrize(
    "state, event, expected",
    [
        (BookingState.PENDING_PAYMENT, BookingEvent.PAYMENT_SUCCEEDED, BookingState.CONFIRMED),
        (BookingState.PENDING_PAYMENT, BookingEvent.PAYMENT_FAILED, BookingState.EXPIRED),
        (BookingState.PENDING_PAYMENT, BookingEvent.TIMED_OUT, BookingState.EXPIRED),
        (BookingState.PENDING_PAYMENT, BookingEvent.CANCELLED_BEFORE_CUTOFF, BookingState.CANCELLED),
        (BookingState.CONFIRMED, BookingEvent.CANCELLED_BEFORE_CUTOFF, BookingState.CANCELLED),
        (BookingState.CONFIRMED, BookingEvent.CANCELLED_AFTER_CUTOFF, BookingState.CANCELLED),
    ],
)
def test_legal_transitions(state, event, expected):
    assert transition(state, event) is expected
    assert can_transition(state, event)


def test_pending_cannot_cancel_after_cutoff():
    with pytest.raises(IllegalTransitionError) as exc_info:
        transition(BookingState.PENDING_PAYMENT, BookingEvent.CANCELLED_AFTER_CUTOFF)
    assert exc_info.value.state == "pending_payment"
    assert exc_info.value.event == "cancelled_after_cutoff"


def test_confirmed_ignores_payment_events():
    for event in (BookingEvent.PAYMENT_SUCCEEDED, BookingEvent.PAYMENT_FAILED, BookingEvent.TIMED_OUT):
        assert not can_transition(BookingState.CONFIRMED, event)
        with pytest.raises(IllegalTransitionError):
            transition(BookingState.CONFIRMED, event)


@pytest.mark.parametrize("state", [BookingState.CANCELLED, BookingState.EXPIRED])
def test_terminal_states_reject_every_event(state):
    assert is_terminal(state)
    assert allowed_events(state) == frozenset()
    for event in BookingEvent:
        with pytest.raises(IllegalTransitionError):
            transition(state, event)


def test_terminal_states_derived_from_table():
    assert TERMINAL_STATES == {BookingState.CANCELLED, BookingState.EXPIRED}
    assert not is_terminal(BookingState.PENDING_PAYMENT)
    assert not is_terminal(BookingState.CONFIRMED)


def test_accepts_raw_string_values():
    assert transition("pending_payment", "payment_succeeded") is BookingState.CONFIRMED
    assert is_terminal("expired")


def test_illegal_transition_message():
    with pytest.raises(IllegalTransitionError, match="not allowed in state 'expired'"):
        transition(BookingState.EXPIRED, BookingEvent.PAYMENT_SUCCEEDED)
