"""
Reservation lifecycle state machine.

    confirmed --check-in--> checked_in --check-out--> completed
        |                       |
        +------cancel-----------+-----> cancelled

`completed` and `cancelled` are terminal. Time guards are evaluated against
the wall clock passed in by the caller; nothing moves a reservation on its own.
"""

from datetime import datetime, timedelta

from app.core.exceptions import InvalidState, ReservationExpired, TooEarlyToCheckIn
from app.models.reservation import Reservation, ReservationStatus

TRANSITIONS: dict[str, frozenset[str]] = {
    ReservationStatus.CONFIRMED: frozenset({ReservationStatus.CHECKED_IN, ReservationStatus.CANCELLED}),
    ReservationStatus.CHECKED_IN: frozenset({ReservationStatus.COMPLETED, ReservationStatus.CANCELLED}),
    ReservationStatus.COMPLETED: frozenset(),
    ReservationStatus.CANCELLED: frozenset(),
}


def can_transition(current: str, target: str) -> bool:
    return target in TRANSITIONS.get(current, frozenset())


def ensure_transition(reservation: Reservation, target: str) -> None:
    current = reservation.status
    if can_transition(current, target):
        return
    if current == target:
        detail = f"Reservation is already {current}"
    elif current in ReservationStatus.TERMINAL:
        detail = f"Reservation is {current} and can no longer change"
    else:
        detail = f"Cannot move reservation from {current} to {target}"
    raise InvalidState(detail, reservation_id=reservation.id, status=current, target=target)


def ensure_editable(reservation: Reservation) -> None:
    if not reservation.is_active:
        raise InvalidState(
            f"Reservation is {reservation.status} and cannot be edited",
            reservation_id=reservation.id,
            status=reservation.status,
        )


def ensure_check_in_window(reservation: Reservation, now: datetime, window_minutes: int) -> None:
    opens_at = reservation.start_time - timedelta(minutes=window_minutes)
    if now < opens_at:
        raise TooEarlyToCheckIn(
            f"Check-in opens {window_minutes} minutes before the start time ({opens_at.isoformat()})",
            reservation_id=reservation.id,
        )
    if now > reservation.end_time:
        raise ReservationExpired(
            "Reservation has already ended",
            reservation_id=reservation.id,
        )


def apply_transition(reservation: Reservation, target: str, actor_id: int, now: datetime) -> str:
    """Move to `target` and stamp the matching audit pair. Returns the previous status."""
    ensure_transition(reservation, target)
    previous = reservation.status
    reservation.status = target
    if target == ReservationStatus.CHECKED_IN:
        reservation.checked_in_by = actor_id
        reservation.checked_in_at = now
    elif target == ReservationStatus.COMPLETED:
        reservation.checked_out_by = actor_id
        reservation.checked_out_at = now
    elif target == ReservationStatus.CANCELLED:
        reservation.cancelled_by = actor_id
        reservation.cancelled_at = now
    return previous
