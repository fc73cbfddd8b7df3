"""Booking status transition tables and the room-status side effects."""
from sqlalchemy.orm import Session

from hotel_ledger.core.errors import InvalidTransitionError, ValidationError
from hotel_ledger.models.booking import Booking
from hotel_ledger.models.enums import BookingStatus as S, RoomStatus
from hotel_ledger.models.room import Room

LIFECYCLE: dict[S, frozenset[S]] = {
    S.PENDING: frozenset({S.CONFIRMED, S.CANCELLED}),
    S.PAID: frozenset({S.CHECKED_IN, S.CANCELLED, S.REFUNDED}),
    S.CONFIRMED: frozenset({S.CHECKED_IN, S.CANCELLED, S.REFUNDED}),
    S.CHECKED_IN: frozenset({S.CHECKED_OUT}),
    S.CHECKED_OUT: frozenset({S.COMPLETED}),
    S.CANCELLED: frozenset(),
    S.COMPLETED: frozenset(),
    S.REFUNDED: frozenset(),
}

# Administrative override (UpdateStatus).
ADMIN_OVERRIDE: dict[S, frozenset[S]] = {
    S.PENDING: frozenset({S.CONFIRMED, S.CANCELLED}),
    S.PAID: frozenset({S.COMPLETED, S.CANCELLED}),
    S.CONFIRMED: frozenset({S.COMPLETED, S.CANCELLED}),
    S.CHECKED_IN: frozenset(),
    S.CHECKED_OUT: frozenset({S.COMPLETED}),
    S.CANCELLED: frozenset(),
    S.COMPLETED: frozenset(),
    S.REFUNDED: frozenset(),
}


def parse_status(value: str) -> S:
    try:
        return S(str(value).upper())
    except ValueError:
        raise ValidationError(f"Unknown booking status: {value}")


def current_status(booking: Booking) -> S:
    return S(booking.status)


def can_transition(booking: Booking, target: S, table: dict[S, frozenset[S]] = LIFECYCLE) -> bool:
    return target in table[current_status(booking)]


def transition(booking: Booking, target: S, table: dict[S, frozenset[S]] = LIFECYCLE) -> S:
    """Move ``booking`` to ``target`` or raise InvalidTransitionError. Returns the previous status."""
    previous = current_status(booking)
    if target not in table[previous]:
        raise InvalidTransitionError(previous.value, target.value)
    booking.status = target.value
    return previous


def set_room_status(db: Session, room_id: int, status: RoomStatus) -> Room | None:
    room = db.get(Room, room_id)
    if room is not None:
        room.status = status.value
    return room
