"""Booking ledger: reservation, payment recording, check-in/out, cancellation.

Each public operation is one transaction (``atomic``) and locks the rows whose
state it depends on. Guest notifications are sent after commit.
"""
import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from hotel_ledger.core.config import settings
from hotel_ledger.core.errors import (
    AuthorizationError, ConflictError, InvalidTransitionError, NotFoundError, PaymentIncompleteError,
    ValidationError,
)
from hotel_ledger.core.permissions import (
    SYSTEM_ACTOR, ActorContext, Permission, require_owner_or, require_owner_or_admin,
)
from hotel_ledger.db.session import atomic
from hotel_ledger.models.booking import Booking
from hotel_ledger.models.enums import (
    BookingStatus, HOLDING_STATUSES, PAID_STATUSES, PaymentMethod, PaymentStatus, RefundMethod, RoomStatus,
)
from hotel_ledger.models.payment import Payment
from hotel_ledger.models.room import Room
from hotel_ledger.services import ledger_service, notification_service, refund_service
from hotel_ledger.services.audit_service import log_audit
from hotel_ledger.services.ledger_service import money
from hotel_ledger.services.state_machine import (
    ADMIN_OVERRIDE, current_status, parse_status, set_room_status, transition,
)

logger = logging.getLogger(__name__)


def today_utc() -> date:
    return datetime.now(timezone.utc).date()


def intervals_overlap(a_start: date, a_end: date, b_start: date, b_end: date) -> bool:
    """Half-open interval intersection of [a_start, a_end) and [b_start, b_end)."""
    return a_start < b_end and a_end > b_start


def overlapping_bookings(db: Session, room_id: int, check_in: date, check_out: date, exclude_id: int | None = None) -> list[Booking]:
    q = select(Booking).where(
        Booking.room_id == room_id,
        Booking.status.in_([s.value for s in HOLDING_STATUSES]),
        Booking.check_in < check_out,
        Booking.check_out > check_in,
    )
    if exclude_id is not None:
        q = q.where(Booking.id != exclude_id)
    return list(db.execute(q).scalars())


def _lock_booking(db: Session, booking_id: int) -> Booking:
    b = db.execute(select(Booking).where(Booking.id == booking_id).with_for_update()).scalar_one_or_none()
    if not b:
        raise NotFoundError(f"Booking {booking_id} not found")
    return b


def _append_note(booking: Booking, note: str) -> None:
    booking.notes = f"{booking.notes}\n{note}".strip() if booking.notes else note


def _validate_dates(check_in: date, check_out: date) -> None:
    if check_in < today_utc():
        raise ValidationError("Check-in date cannot be in the past")
    if check_out <= check_in:
        raise ValidationError("Check-out date must be after check-in date")


def create_booking(db: Session, actor: ActorContext, room_id: int, user_id: str, check_in: date, check_out: date,
                   guest_count: int = 1, notes: str = "") -> Booking:
    if not actor.can(Permission.CREATE_BOOKINGS):
        raise AuthorizationError("Not allowed to create bookings")
    if user_id != actor.user_id and not actor.can(Permission.EDIT_BOOKINGS):
        raise AuthorizationError("Guests can only book for themselves")
    _validate_dates(check_in, check_out)
    if guest_count < 1:
        raise ValidationError("Guest count must be at least 1")

    with atomic(db):
        # Room lock serialises overlap check + insert per room.
        room = db.execute(select(Room).where(Room.id == room_id).with_for_update()).scalar_one_or_none()
        if not room:
            raise NotFoundError(f"Room {room_id} not found")
        if guest_count > room.capacity:
            raise ValidationError(f"Room capacity is {room.capacity}, requested {guest_count} guests",
                                  capacity=room.capacity, guestCount=guest_count)
        if room.status != RoomStatus.AVAILABLE.value:
            raise ConflictError(f"Room {room.number} is not available", roomStatus=room.status)
        clash = overlapping_bookings(db, room.id, check_in, check_out)
        if clash:
            raise ConflictError("Room is already booked for the selected dates",
                                conflictingBookingIds=[b.id for b in clash])

        nights = (check_out - check_in).days
        booking = Booking(
            room_id=room.id,
            user_id=user_id,
            check_in=check_in,
            check_out=check_out,
            guest_count=guest_count,
            total_price=money(Decimal(nights) * money(room.price)),
            status=BookingStatus.PENDING.value,
            paid_amount=Decimal("0.00"),
            refund_amount=Decimal("0.00"),
            notes=notes or "",
        )
        db.add(booking)
        room.status = RoomStatus.RESERVED.value
        db.flush()
        log_audit(db, actor.user_id, "booking.create", "booking", booking.id,
                  {"room": room.number, "nights": nights, "total": booking.total_price})

    logger.info("booking %s created for room %s (%s -> %s)", booking.id, room.number, check_in, check_out)
    notification_service.notify_guest(db, booking, "booking_created", room_number=room.number)
    return booking


def apply_payment_success(db: Session, booking: Booking, amount: Decimal, actor_id: str = SYSTEM_ACTOR.user_id) -> bool:
    """RecordPaymentSuccess inside the caller's transaction. Returns False when already applied."""
    status = current_status(booking)
    if status in PAID_STATUSES or status in (BookingStatus.CHECKED_IN, BookingStatus.CHECKED_OUT, BookingStatus.COMPLETED):
        ledger_service.refresh_paid_amount(db, booking)
        return False
    if status != BookingStatus.PENDING:
        # e.g. payment landing after cancellation: money stays on the ledger for a refund.
        ledger_service.refresh_paid_amount(db, booking)
        logger.warning("payment of %s recorded for booking %s in status %s; status left unchanged",
                       amount, booking.id, status.value)
        return False
    if abs(money(amount) - money(booking.total_price)) > settings.AMOUNT_EPSILON:
        raise ValidationError("Payment amount does not match booking total",
                              amount=money(amount), totalPrice=money(booking.total_price))
    transition(booking, BookingStatus.CONFIRMED)
    set_room_status(db, booking.room_id, RoomStatus.OCCUPIED)
    ledger_service.refresh_paid_amount(db, booking)
    log_audit(db, actor_id, "booking.payment_recorded", "booking", booking.id, {"amount": money(amount)})
    return True


def record_payment_success(db: Session, booking_id: int, amount: Decimal) -> Booking:
    with atomic(db):
        booking = _lock_booking(db, booking_id)
        apply_payment_success(db, booking, amount)
    return booking


def check_in(db: Session, actor: ActorContext, booking_id: int, notes: str = "") -> Booking:
    with atomic(db):
        booking = _lock_booking(db, booking_id)
        require_owner_or_admin(actor, booking.user_id, "check in")
        status = current_status(booking)
        if status not in PAID_STATUSES:
            raise InvalidTransitionError(status.value, BookingStatus.CHECKED_IN.value)
        paid = ledger_service.total_paid(db, booking.id)
        required = money(booking.total_price)
        if paid + settings.AMOUNT_EPSILON < required:
            raise PaymentIncompleteError(required=required, paid=paid)
        if booking.check_in > today_utc():
            raise ValidationError("Cannot check in before the scheduled check-in date")

        transition(booking, BookingStatus.CHECKED_IN)
        room = set_room_status(db, booking.room_id, RoomStatus.OCCUPIED)
        ledger_service.refresh_paid_amount(db, booking)
        _append_note(booking, f"Check-in: {notes}" if notes else "Guest checked in")
        log_audit(db, actor.user_id, "booking.check_in", "booking", booking.id)

    logger.info("booking %s checked in", booking.id)
    notification_service.notify_guest(db, booking, "checked_in", room_number=room.number if room else "")
    return booking


@dataclass
class CheckoutResult:
    booking: Booking
    total_days: int
    actual_days: int
    unused_days: int
    daily_rate: Decimal
    refund_amount: Decimal
    refund_id: int | None = None


def early_checkout_refund(total_price: Decimal, check_in: date, check_out: date, actual_check_out: date) -> tuple[int, int, Decimal, Decimal]:
    """Refund for unused nights: (total_days, actual_days, daily_rate, refund_amount)."""
    total_days = (check_out - check_in).days
    actual_days = (actual_check_out - check_in).days
    unused_days = total_days - actual_days
    daily_rate = Decimal(total_price) / Decimal(total_days)
    return total_days, actual_days, money(daily_rate), money(daily_rate * unused_days)


def check_out(db: Session, actor: ActorContext, booking_id: int, actual_check_out: date | None = None, reason: str = "") -> CheckoutResult:
    actual = actual_check_out or today_utc()
    with atomic(db):
        booking = _lock_booking(db, booking_id)
        require_owner_or_admin(actor, booking.user_id, "check out")
        status = current_status(booking)
        if status != BookingStatus.CHECKED_IN:
            raise InvalidTransitionError(status.value, BookingStatus.CHECKED_OUT.value)
        if actual < booking.check_in:
            raise ValidationError("Check-out date cannot be before check-in date")
        if actual > booking.check_out:
            raise ValidationError("Check-out date cannot be after original check-out date")

        total_days, actual_days, daily_rate, refund_amount = early_checkout_refund(
            booking.total_price, booking.check_in, booking.check_out, actual)
        transition(booking, BookingStatus.CHECKED_OUT)
        booking.actual_check_out = actual
        set_room_status(db, booking.room_id, RoomStatus.AVAILABLE)
        if actual < booking.check_out:
            _append_note(booking, f"Early check-out: {reason}" if reason else "Early check-out")
        elif reason:
            _append_note(booking, f"Check-out: {reason}")

        refund_id = None
        payment = ledger_service.latest_completed_payment(db, booking.id)
        if refund_amount > 0 and payment is not None:
            amount = min(refund_amount, ledger_service.refundable_balance(db, booking.id))
            if amount > 0:
                method = RefundMethod.STRIPE if payment.payment_method == PaymentMethod.CARD.value else RefundMethod(payment.payment_method)
                refund = refund_service.create_refund_record(
                    db, booking, amount, method,
                    notes=f"Early check-out: {total_days - actual_days} unused night(s)",
                    payment_id=payment.id, requested_by=actor.user_id,
                )
                refund_id = refund.id
        log_audit(db, actor.user_id, "booking.check_out", "booking", booking.id,
                  {"actualCheckOut": actual, "refundAmount": refund_amount, "refundId": refund_id})

    logger.info("booking %s checked out on %s, refund due %s", booking.id, actual, refund_amount)
    notification_service.notify_guest(db, booking, "checked_out",
                                      actual_check_out=actual.isoformat(), refund_amount=refund_amount)
    return CheckoutResult(
        booking=booking,
        total_days=total_days,
        actual_days=actual_days,
        unused_days=total_days - actual_days,
        daily_rate=daily_rate,
        refund_amount=refund_amount,
        refund_id=refund_id,
    )


def cancel_booking(db: Session, actor: ActorContext, booking_id: int, reason: str = "") -> Booking:
    with atomic(db):
        booking = _lock_booking(db, booking_id)
        require_owner_or(actor, booking.user_id, Permission.EDIT_BOOKINGS, "cancel")
        status = current_status(booking)
        if status != BookingStatus.PENDING and status not in PAID_STATUSES:
            raise InvalidTransitionError(status.value, BookingStatus.CANCELLED.value)
        transition(booking, BookingStatus.CANCELLED)
        set_room_status(db, booking.room_id, RoomStatus.AVAILABLE)
        if reason:
            _append_note(booking, f"Cancelled: {reason}")
        log_audit(db, actor.user_id, "booking.cancel", "booking", booking.id, {"from": status.value, "reason": reason})
    logger.info("booking %s cancelled (was %s)", booking.id, status.value)
    return booking


def update_status(db: Session, actor: ActorContext, booking_id: int, new_status: str) -> Booking:
    """Administrative status override, restricted to the ADMIN_OVERRIDE table."""
    if not actor.can(Permission.EDIT_BOOKINGS):
        raise AuthorizationError("Not allowed to edit bookings")
    target = parse_status(new_status)
    with atomic(db):
        booking = _lock_booking(db, booking_id)
        previous = current_status(booking)
        if previous == target:
            return booking
        transition(booking, target, ADMIN_OVERRIDE)
        if target in (BookingStatus.CANCELLED, BookingStatus.COMPLETED):
            set_room_status(db, booking.room_id, RoomStatus.AVAILABLE)
        elif target == BookingStatus.CONFIRMED and previous == BookingStatus.PENDING:
            set_room_status(db, booking.room_id, RoomStatus.OCCUPIED)
        log_audit(db, actor.user_id, "booking.update_status", "booking", booking.id,
                  {"from": previous.value, "to": target.value})
    logger.info("booking %s status %s -> %s by %s", booking.id, previous.value, target.value, actor.user_id)
    return booking


def delete_booking(db: Session, actor: ActorContext, booking_id: int) -> None:
    with atomic(db):
        booking = _lock_booking(db, booking_id)
        status = current_status(booking)
        owner_pending = booking.user_id == actor.user_id and status == BookingStatus.PENDING
        if not (actor.can(Permission.DELETE_BOOKINGS) or owner_pending):
            raise AuthorizationError("Not allowed to delete this booking")
        if status not in (BookingStatus.PENDING, BookingStatus.CANCELLED):
            raise ConflictError("Only pending or cancelled bookings can be deleted", status=status.value)
        payments = db.execute(select(Payment).where(Payment.booking_id == booking.id)).scalars().all()
        if any(p.status != PaymentStatus.FAILED.value for p in payments):
            raise ConflictError("Booking has payment records and is retained for audit")
        for p in payments:
            db.delete(p)
        if status == BookingStatus.PENDING:
            set_room_status(db, booking.room_id, RoomStatus.AVAILABLE)
        log_audit(db, actor.user_id, "booking.delete", "booking", booking.id, {"status": status.value})
        db.delete(booking)
    logger.info("booking %s deleted", booking_id)


def get_booking(db: Session, actor: ActorContext, booking_id: int) -> Booking:
    booking = db.get(Booking, booking_id)
    if not booking:
        raise NotFoundError(f"Booking {booking_id} not found")
    require_owner_or(actor, booking.user_id, Permission.VIEW_ALL_BOOKINGS, "view")
    return booking


def list_bookings(db: Session, actor: ActorContext, status: str | None = None, room_id: int | None = None, limit: int = 200) -> list[Booking]:
    q = select(Booking)
    if not actor.can(Permission.VIEW_ALL_BOOKINGS):
        q = q.where(Booking.user_id == actor.user_id)
    if status:
        q = q.where(Booking.status == parse_status(status).value)
    if room_id is not None:
        q = q.where(Booking.room_id == room_id)
    return list(db.execute(q.order_by(Booking.created_at.desc()).limit(min(max(limit, 1), 1000))).scalars())
