"""Booking lifecycle transition table.

PENDING -> ACCEPTED | DECLINED | CANCELLED
ACCEPTED -> COMPLETED | CANCELLED
DECLINED, COMPLETED and CANCELLED are terminal.
"""

from dataclasses import dataclass

from marketplace.models import BookingAction, BookingStatus, ConflictError, ErrorCode, UserRole


@dataclass(frozen=True)
class Transition:
    """One edge of the lifecycle: which statuses it leaves and who may take it."""

    sources: frozenset[BookingStatus]
    target: BookingStatus
    roles: frozenset[UserRole]
    requires_reason: bool = False


TERMINAL_STATES: frozenset[BookingStatus] = frozenset(
    {BookingStatus.DECLINED, BookingStatus.COMPLETED, BookingStatus.CANCELLED}
)

TRANSITIONS: dict[BookingAction, Transition] = {
    BookingAction.ACCEPT: Transition(
        sources=frozenset({BookingStatus.PENDING}),
        target=BookingStatus.ACCEPTED,
        roles=frozenset({UserRole.GUIDE}),
    ),
    BookingAction.DECLINE: Transition(
        sources=frozenset({BookingStatus.PENDING}),
        target=BookingStatus.DECLINED,
        roles=frozenset({UserRole.GUIDE}),
    ),
    BookingAction.COMPLETE: Transition(
        sources=frozenset({BookingStatus.ACCEPTED}),
        target=BookingStatus.COMPLETED,
        roles=frozenset({UserRole.GUIDE}),
    ),
    BookingAction.CANCEL: Transition(
        sources=frozenset({BookingStatus.PENDING, BookingStatus.ACCEPTED}),
        target=BookingStatus.CANCELLED,
        roles=frozenset({UserRole.TOURIST, UserRole.GUIDE}),
        requires_reason=True,
    ),
}


def get_transition(current: BookingStatus, action: BookingAction) -> Transition:
    """Look up the edge for an action from the current status.

    Raises:
        ConflictError: TERMINAL_STATE if the booking can no longer change,
            INVALID_TRANSITION if the action does not apply to its status.
    """
    transition = TRANSITIONS[action]
    if current in TERMINAL_STATES:
        raise ConflictError(
            ErrorCode.TERMINAL_STATE,
            current_state=current.value,
            requested_state=transition.target.value,
        )
    if current not in transition.sources:
        raise ConflictError(
            ErrorCode.INVALID_TRANSITION,
            current_state=current.value,
            requested_state=transition.target.value,
        )
    return transition
