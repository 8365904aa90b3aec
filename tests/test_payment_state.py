"""
Tests for the payment state machine and booking status projection.

Run with: pytest tests/test_payment_state.py -v
"""

import pytest

from buuk.domain.payments.state import (
    InvalidTransitionError,
    PaymentState,
    can_transition,
    project_booking_status,
    transition,
)


def test_checkout_then_capture():
    state = transition(PaymentState.INITIATED, PaymentState.AWAITING_CAPTURE)
    state = transition(state, PaymentState.SETTLED)
    assert state == PaymentState.SETTLED


def test_capture_may_arrive_before_session_is_recorded():
    assert can_transition("initiated", "settled")


def test_failed_payment_can_be_retried():
    assert can_transition("failed", "awaiting_capture")
    assert can_transition("failed", "settled")


@pytest.mark.parametrize("target", list(PaymentState))
def test_settled_and_cancelled_are_final(target):
    assert not can_transition(PaymentState.SETTLED, target)
    assert not can_transition(PaymentState.CANCELLED_BY_USER, target)


def test_invalid_transition_raises():
    with pytest.raises(InvalidTransitionError) as exc_info:
        transition("settled", "awaiting_capture")
    assert exc_info.value.current == PaymentState.SETTLED
    assert exc_info.value.target == PaymentState.AWAITING_CAPTURE


@pytest.mark.parametrize(
    "state,method,expected",
    [
        ("initiated", "card", ("pending", "pending")),
        ("awaiting_capture", "paypal", ("pending", "pending")),
        ("failed", "card", ("pending", "pending")),
        ("settled", "card", ("confirmed", "completed")),
        ("settled", "free", ("confirmed", "completed")),
        ("initiated", "in_person", ("confirmed", "pending")),
    ],
)
def test_projection(state, method, expected):
    assert project_booking_status(state, method) == expected


def test_cancellation_wins_over_payment():
    assert project_booking_status("settled", "card", cancelled=True) == ("cancelled", "completed")
    assert project_booking_status("cancelled_by_user", "card", cancelled=True) == ("cancelled", "pending")


def test_completion_keeps_payment_status():
    assert project_booking_status("initiated", "in_person", completed=True) == ("completed", "pending")


def test_unknown_state_is_rejected():
    with pytest.raises(ValueError):
        project_booking_status("refunded", "card")
