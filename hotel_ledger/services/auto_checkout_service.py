"""Auto-checkout sweep: checks out CHECKED_IN guests whose check-out day has started."""
import logging
from datetime import datetime, time, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from hotel_ledger.core.permissions import SYSTEM_ACTOR
from hotel_ledger.db.session import atomic
from hotel_ledger.models.booking import Booking
from hotel_ledger.models.enums import BookingStatus, RoomStatus
from hotel_ledger.services.audit_service import log_audit
from hotel_ledger.services.state_machine import current_status, set_room_status, transition

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def checkout_instant(booking: Booking) -> datetime:
    return datetime.combine(booking.check_out, time.min, tzinfo=timezone.utc)


def list_expired_checkins(db: Session, now: datetime | None = None) -> list[Booking]:
    now = now or _now()
    rows = db.execute(
        select(Booking)
        .where(Booking.status == BookingStatus.CHECKED_IN.value, Booking.check_out <= now.date())
        .order_by(Booking.check_out, Booking.id)
    ).scalars().all()
    return [b for b in rows if checkout_instant(b) < now]


def _auto_checkout_one(db: Session, booking_id: int, now: datetime) -> bool:
    with atomic(db):
        booking = db.execute(select(Booking).where(Booking.id == booking_id).with_for_update()).scalar_one_or_none()
        if booking is None or current_status(booking) != BookingStatus.CHECKED_IN:
            return False
        transition(booking, BookingStatus.CHECKED_OUT)
        booking.actual_check_out = booking.check_out
        set_room_status(db, booking.room_id, RoomStatus.AVAILABLE)
        note = f"Auto-checkout: {now.isoformat()}"
        booking.notes = f"{booking.notes}\n{note}" if booking.notes else note
        log_audit(db, SYSTEM_ACTOR.user_id, "booking.auto_checkout", "booking", booking.id)
    return True


def process_auto_checkout(db: Session, now: datetime | None = None) -> dict:
    now = now or _now()
    candidates = [b.id for b in list_expired_checkins(db, now)]
    processed: list[int] = []
    errors: list[dict] = []
    for booking_id in candidates:
        try:
            if _auto_checkout_one(db, booking_id, now):
                processed.append(booking_id)
        except Exception as e:
            logger.exception("auto-checkout failed for booking %s", booking_id)
            errors.append({"bookingId": booking_id, "error": str(e)})
    if candidates:
        logger.info("auto-checkout: %d processed, %d failed", len(processed), len(errors))
    return {
        "processedCount": len(processed),
        "failedCount": len(errors),
        "processed": processed,
        "errors": errors,
    }
