"""One-off data repair jobs, run by administrators."""
import logging
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from hotel_ledger.core.errors import NotFoundError
from hotel_ledger.core.permissions import ActorContext, Permission, require_permission
from hotel_ledger.db.session import atomic
from hotel_ledger.models.booking import Booking
from hotel_ledger.models.enums import BookingStatus, PaymentStatus, RefundMethod, RefundStatus
from hotel_ledger.models.payment import Payment
from hotel_ledger.models.refund import Refund
from hotel_ledger.models.room import Room
from hotel_ledger.services import ledger_service
from hotel_ledger.services.audit_service import log_audit
from hotel_ledger.services.ledger_service import money

logger = logging.getLogger(__name__)


def reprice_bookings(db: Session, actor: ActorContext, room_id: int) -> dict:
    """Recompute total_price of unpaid PENDING bookings from the room's current price."""
    require_permission(actor, Permission.MANAGE_SETTINGS)
    updated = []
    with atomic(db):
        room = db.get(Room, room_id)
        if not room:
            raise NotFoundError(f"Room {room_id} not found")
        rows = db.execute(
            select(Booking).where(Booking.room_id == room_id, Booking.status == BookingStatus.PENDING.value).with_for_update()
        ).scalars().all()
        for b in rows:
            if ledger_service.has_captured_payment(db, b.id):
                continue
            nights = (b.check_out - b.check_in).days
            total = money(Decimal(nights) * money(room.price))
            if total != money(b.total_price):
                updated.append({"bookingId": b.id, "old": money(b.total_price), "new": total})
                b.total_price = total
        log_audit(db, actor.user_id, "maintenance.reprice", "room", room.id, {"updated": len(updated)})
    logger.info("repriced %d booking(s) of room %s", len(updated), room_id)
    return {"roomId": room_id, "updatedCount": len(updated), "updated": updated}


def refresh_cached_totals(db: Session, actor: ActorContext) -> dict:
    require_permission(actor, Permission.MANAGE_SETTINGS)
    changed = 0
    with atomic(db):
        for b in db.execute(select(Booking)).scalars():
            before = money(b.paid_amount)
            if ledger_service.refresh_paid_amount(db, b) != before:
                changed += 1
        log_audit(db, actor.user_id, "maintenance.refresh_totals", "booking", "*", {"changed": changed})
    logger.info("refreshed paid_amount cache, %d booking(s) changed", changed)
    return {"changedCount": changed}


def migrate_legacy_refunds(db: Session, actor: ActorContext) -> dict:
    """Create COMPLETED refund rows for payments marked REFUNDED before the refund ledger existed."""
    require_permission(actor, Permission.MANAGE_SETTINGS)
    created = []
    with atomic(db):
        payments = db.execute(select(Payment).where(Payment.status == PaymentStatus.REFUNDED.value)).scalars().all()
        for p in payments:
            exists = db.execute(select(Refund.id).where(Refund.payment_id == p.id).limit(1)).first()
            if exists:
                continue
            db.add(Refund(
                booking_id=p.booking_id,
                payment_id=p.id,
                amount=money(p.amount),
                refund_method=RefundMethod.STRIPE.value,
                status=RefundStatus.COMPLETED.value,
                transaction_id=f"migrated_{p.id}",
                requested_by=actor.user_id,
                processed_at=p.refunded_at or p.updated_at,
                notes="Migrated from legacy payment refund",
            ))
            created.append(p.id)
        log_audit(db, actor.user_id, "maintenance.migrate_refunds", "refund", "*", {"payments": created})
    logger.info("migrated %d legacy refund(s)", len(created))
    return {"createdCount": len(created), "paymentIds": created}
