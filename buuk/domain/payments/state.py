"""Payment state machine and the booking status projection"""

from enum import Enum


class PaymentState(str, Enum):
    INITIATED = "initiated"
    AWAITING_CAPTURE = "awaiting_capture"
    SETTLED = "settled"
    FAILED = "failed"
    CANCELLED_BY_USER = "cancelled_by_user"


class InvalidTransitionError(Exception):
    """Raised when a payment state change is not allowed"""

    def __init__(self, current: PaymentState, target: PaymentState):
        super().__init__(f"Illegal payment transition {current.value} -> {target.value}")
        self.current = current
        self.target = target


TERMINAL_STATES = frozenset(
    {PaymentState.SETTLED, PaymentState.FAILED, PaymentState.CANCELLED_BY_USER}
)

ALLOWED_TRANSITIONS = {
    PaymentState.INITIATED: frozenset(
        {
            PaymentState.AWAITING_CAPTURE,
            # A capture can land before the session id was written back
            PaymentState.SETTLED,
            PaymentState.FAILED,
            PaymentState.CANCELLED_BY_USER,
        }
    ),
    PaymentState.AWAITING_CAPTURE: frozenset(
        {
            # Checkout retried with a fresh session
            PaymentState.AWAITING_CAPTURE,
            PaymentState.SETTLED,
            PaymentState.FAILED,
            PaymentState.CANCELLED_BY_USER,
        }
    ),
    PaymentState.FAILED: frozenset(
        {
            PaymentState.AWAITING_CAPTURE,
            # Money captured after an earlier attempt expired or failed
            PaymentState.SETTLED,
            PaymentState.CANCELLED_BY_USER,
        }
    ),
    PaymentState.SETTLED: frozenset(),
    PaymentState.CANCELLED_BY_USER: frozenset(),
}


def can_transition(current, target) -> bool:
    return PaymentState(target) in ALLOWED_TRANSITIONS[PaymentState(current)]


def transition(current, target) -> PaymentState:
    """Return the target state, or raise InvalidTransitionError"""
    current, target = PaymentState(current), PaymentState(target)
    if target not in ALLOWED_TRANSITIONS[current]:
        raise InvalidTransitionError(current, target)
    return target


def project_booking_status(
    payment_state, payment_method: str, cancelled: bool = False, completed: bool = False
) -> tuple[str, str]:
    """
    Visible (status, payment_status) for a booking.

    Derived only from the internal payment state and the business flags, so the
    same inputs always give the same pair.
    """
    state = PaymentState(payment_state)
    payment_status = "completed" if state == PaymentState.SETTLED else "pending"

    if cancelled:
        return "cancelled", payment_status
    if completed:
        return "completed", payment_status
    if state == PaymentState.SETTLED:
        return "confirmed", "completed"
    if payment_method == "in_person":
        return "confirmed", "pending"
    return "pending", "pending"
