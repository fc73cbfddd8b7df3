import logging
from datetime import date
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from hotel_ledger.core.errors import ConflictError, NotFoundError, ValidationError
from hotel_ledger.core.permissions import ActorContext, Permission, require_permission
from hotel_ledger.db.session import atomic
from hotel_ledger.models.booking import Booking
from hotel_ledger.models.enums import HOLDING_STATUSES, RoomStatus, RoomType
from hotel_ledger.models.room import Room
from hotel_ledger.services.audit_service import log_audit
from hotel_ledger.services.booking_service import overlapping_bookings
from hotel_ledger.services.ledger_service import money

logger = logging.getLogger(__name__)


def _validate(capacity: int | None, price: Decimal | None) -> None:
    if capacity is not None and not 1 <= capacity <= 10:
        raise ValidationError("Capacity must be between 1 and 10")
    if price is not None and money(price) <= 0:
        raise ValidationError("Price must be positive")


def _parse(enum_cls, value: str, label: str):
    try:
        return enum_cls(str(value).upper())
    except ValueError:
        raise ValidationError(f"Unknown {label}: {value}")


def get_room(db: Session, room_id: int) -> Room:
    room = db.get(Room, room_id)
    if not room:
        raise NotFoundError(f"Room {room_id} not found")
    return room


def list_rooms(db: Session, status: str | None = None, room_type: str | None = None, min_capacity: int | None = None) -> list[Room]:
    q = select(Room)
    if status:
        q = q.where(Room.status == _parse(RoomStatus, status, "room status").value)
    if room_type:
        q = q.where(Room.type == _parse(RoomType, room_type, "room type").value)
    if min_capacity:
        q = q.where(Room.capacity >= min_capacity)
    return list(db.execute(q.order_by(Room.number)).scalars())


def create_room(db: Session, actor: ActorContext, number: str, room_type: str, capacity: int, price: Decimal, description: str = "") -> Room:
    require_permission(actor, Permission.CREATE_ROOMS)
    _validate(capacity, price)
    number = (number or "").strip()
    if not number:
        raise ValidationError("Room number is required")
    with atomic(db):
        if db.execute(select(Room.id).where(Room.number == number)).first():
            raise ConflictError(f"Room {number} already exists")
        room = Room(
            number=number,
            type=_parse(RoomType, room_type, "room type").value,
            capacity=capacity,
            price=money(price),
            status=RoomStatus.AVAILABLE.value,
            description=description or "",
        )
        db.add(room)
        db.flush()
        log_audit(db, actor.user_id, "room.create", "room", room.id, {"number": number, "price": room.price})
    logger.info("room %s created", number)
    return room


def update_room(db: Session, actor: ActorContext, room_id: int, **fields) -> Room:
    require_permission(actor, Permission.EDIT_ROOMS)
    _validate(fields.get("capacity"), fields.get("price"))
    with atomic(db):
        room = db.execute(select(Room).where(Room.id == room_id).with_for_update()).scalar_one_or_none()
        if not room:
            raise NotFoundError(f"Room {room_id} not found")
        changes = {}
        if fields.get("number") is not None and fields["number"] != room.number:
            if db.execute(select(Room.id).where(Room.number == fields["number"])).first():
                raise ConflictError(f"Room {fields['number']} already exists")
            changes["number"] = fields["number"]
        if fields.get("room_type") is not None:
            changes["type"] = _parse(RoomType, fields["room_type"], "room type").value
        if fields.get("capacity") is not None:
            changes["capacity"] = fields["capacity"]
        if fields.get("price") is not None:
            changes["price"] = money(fields["price"])
        if fields.get("status") is not None:
            changes["status"] = _parse(RoomStatus, fields["status"], "room status").value
        if fields.get("description") is not None:
            changes["description"] = fields["description"]
        for k, v in changes.items():
            setattr(room, k, v)
        log_audit(db, actor.user_id, "room.update", "room", room.id, changes)
    return room


def delete_room(db: Session, actor: ActorContext, room_id: int) -> None:
    require_permission(actor, Permission.DELETE_ROOMS)
    with atomic(db):
        room = db.execute(select(Room).where(Room.id == room_id).with_for_update()).scalar_one_or_none()
        if not room:
            raise NotFoundError(f"Room {room_id} not found")
        holding = db.execute(
            select(Booking.id).where(
                Booking.room_id == room_id,
                Booking.status.in_([s.value for s in HOLDING_STATUSES]),
            ).limit(1)
        ).first()
        if holding:
            raise ConflictError("Room has active bookings")
        log_audit(db, actor.user_id, "room.delete", "room", room.id, {"number": room.number})
        db.delete(room)
    logger.info("room %s deleted", room_id)


def availability(db: Session, room_id: int, check_in: date, check_out: date) -> dict:
    if check_out <= check_in:
        raise ValidationError("Check-out date must be after check-in date")
    room = get_room(db, room_id)
    clash = overlapping_bookings(db, room.id, check_in, check_out)
    return {
        "roomId": room.id,
        "checkIn": check_in,
        "checkOut": check_out,
        "roomStatus": room.status,
        "available": room.status == RoomStatus.AVAILABLE.value and not clash,
        "conflictingBookingIds": [b.id for b in clash],
    }
