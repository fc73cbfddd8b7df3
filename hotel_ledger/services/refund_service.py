"""Refund ledger.

A refund is requested (PENDING), processed (synchronously for cash-like methods,
through the gateway for STRIPE) and finally COMPLETED, FAILED or CANCELLED.
Requested-but-unsettled refunds are reserved against the refundable balance.
"""
import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from hotel_ledger.core.errors import (
    AuthorizationError, ConflictError, NotFoundError, RefundExceedsAvailableError, ValidationError,
)
from hotel_ledger.core.permissions import SYSTEM_ACTOR, ActorContext, Permission, require_owner_or, require_permission
from hotel_ledger.db.session import atomic
from hotel_ledger.models.booking import Booking
from hotel_ledger.models.enums import (
    BookingStatus, CAPTURED_PAYMENT_STATUSES, PaymentMethod, PaymentStatus, RefundMethod, RefundStatus, RoomStatus,
    SYNCHRONOUS_REFUND_METHODS,
)
from hotel_ledger.models.payment import Payment
from hotel_ledger.models.refund import Refund
from hotel_ledger.services import ledger_service, notification_service
from hotel_ledger.services.audit_service import log_audit
from hotel_ledger.services.ledger_service import money
from hotel_ledger.services.state_machine import can_transition, set_room_status, transition
from hotel_ledger.services.stripe_client import PaymentGateway

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def parse_method(value: str) -> RefundMethod:
    try:
        return RefundMethod(str(value).upper())
    except ValueError:
        raise ValidationError(f"Unknown refund method: {value}")


def _lock_booking(db: Session, booking_id: int) -> Booking:
    b = db.execute(select(Booking).where(Booking.id == booking_id).with_for_update()).scalar_one_or_none()
    if not b:
        raise NotFoundError(f"Booking {booking_id} not found")
    return b


def _lock_refund(db: Session, refund_id: int) -> Refund:
    r = db.execute(select(Refund).where(Refund.id == refund_id).with_for_update()).scalar_one_or_none()
    if not r:
        raise NotFoundError(f"Refund {refund_id} not found")
    return r


def _card_payment(db: Session, booking_id: int, payment_id: int | None) -> Payment:
    if payment_id is not None:
        p = db.get(Payment, payment_id)
        if (not p or p.booking_id != booking_id or p.payment_method != PaymentMethod.CARD.value
                or p.status not in [s.value for s in CAPTURED_PAYMENT_STATUSES]):
            raise ValidationError("Payment is not a captured card payment of this booking", paymentId=payment_id)
        return p
    p = ledger_service.latest_completed_payment(db, booking_id, PaymentMethod.CARD.value)
    if not p:
        raise ValidationError("STRIPE refunds need a captured card payment")
    return p


def create_refund_record(db: Session, booking: Booking, amount: Decimal, method: RefundMethod, notes: str = "",
                         payment_id: int | None = None, requested_by: str = SYSTEM_ACTOR.user_id) -> Refund:
    """Insert a PENDING refund inside the caller's transaction (booking row already locked)."""
    amount = money(amount)
    if amount <= 0:
        raise ValidationError("Refund amount must be positive")
    available = ledger_service.refundable_balance(db, booking.id)
    if amount > available:
        raise RefundExceedsAvailableError(requested=amount, available=max(available, Decimal("0.00")))
    if method == RefundMethod.STRIPE:
        payment_id = _card_payment(db, booking.id, payment_id).id
    elif payment_id is None:
        payment = ledger_service.latest_completed_payment(db, booking.id)
        payment_id = payment.id if payment else None

    refund = Refund(
        booking_id=booking.id,
        payment_id=payment_id,
        amount=amount,
        refund_method=method.value,
        status=RefundStatus.PENDING.value,
        transaction_id=f"ref_{uuid.uuid4().hex[:20]}",
        requested_by=requested_by,
        notes=notes or "",
    )
    db.add(refund)
    db.flush()
    log_audit(db, requested_by, "refund.request", "refund", refund.id,
              {"bookingId": booking.id, "amount": amount, "method": method.value})
    return refund


def request_refund(db: Session, actor: ActorContext, booking_id: int, amount: Decimal, method: str,
                   notes: str = "", payment_id: int | None = None) -> Refund:
    refund_method = parse_method(method)
    with atomic(db):
        booking = _lock_booking(db, booking_id)
        require_owner_or(actor, booking.user_id, Permission.PROCESS_REFUNDS, "request a refund for")
        refund = create_refund_record(db, booking, amount, refund_method, notes=notes,
                                      payment_id=payment_id, requested_by=actor.user_id)
    logger.info("refund %s requested for booking %s: %s via %s", refund.id, booking_id, refund.amount, refund_method.value)
    return refund


def complete_refund(db: Session, refund: Refund, transaction_id: str | None = None) -> bool:
    """Mark a refund COMPLETED inside the caller's transaction and settle payment/booking state.

    Returns False when the refund was already completed.
    """
    if refund.status == RefundStatus.COMPLETED.value:
        return False
    booking = _lock_booking(db, refund.booking_id)
    refunded = ledger_service.total_refunded(db, booking.id)
    paid = ledger_service.total_paid(db, booking.id)
    if refunded + money(refund.amount) > paid:
        raise RefundExceedsAvailableError(requested=money(refund.amount), available=paid - refunded)

    refund.status = RefundStatus.COMPLETED.value
    refund.processed_at = _now()
    if transaction_id:
        refund.transaction_id = transaction_id
    db.flush()

    if refund.payment_id is not None:
        payment = db.get(Payment, refund.payment_id)
        if payment and payment.status == PaymentStatus.COMPLETED.value:
            if ledger_service.refunded_against_payment(db, payment.id) >= money(payment.amount):
                payment.status = PaymentStatus.REFUNDED.value
                payment.refunded_at = refund.processed_at
                payment.refund_transaction_id = refund.transaction_id

    if refunded + money(refund.amount) >= paid and can_transition(booking, BookingStatus.REFUNDED):
        transition(booking, BookingStatus.REFUNDED)
        set_room_status(db, booking.room_id, RoomStatus.AVAILABLE)
    log_audit(db, refund.requested_by or SYSTEM_ACTOR.user_id, "refund.complete", "refund", refund.id,
              {"bookingId": booking.id, "amount": refund.amount, "transactionId": refund.transaction_id})
    return True


def notify_refund_processed(db: Session, refund: Refund) -> None:
    booking = db.get(Booking, refund.booking_id)
    if booking:
        notification_service.notify_guest(db, booking, "refund_processed", amount=refund.amount,
                                          method=refund.refund_method, transaction_id=refund.transaction_id)


def process_refund(db: Session, actor: ActorContext, gateway: PaymentGateway, refund_id: int,
                   method: str | None = None, notes: str | None = None) -> Refund:
    require_permission(actor, Permission.PROCESS_REFUNDS)
    with atomic(db):
        refund = _lock_refund(db, refund_id)
        if refund.status == RefundStatus.COMPLETED.value:
            return refund
        if refund.status != RefundStatus.PENDING.value:
            raise ConflictError(f"Refund is {refund.status}; only PENDING refunds can be processed", status=refund.status)
        if method:
            refund.refund_method = parse_method(method).value
        if notes:
            refund.notes = f"{refund.notes}\n{notes}".strip() if refund.notes else notes
        refund_method = RefundMethod(refund.refund_method)

        if refund_method in SYNCHRONOUS_REFUND_METHODS:
            complete_refund(db, refund, f"{refund_method.value.lower()}_refund_{uuid.uuid4().hex[:16]}")
            log_audit(db, actor.user_id, "refund.process", "refund", refund.id, {"method": refund_method.value})
            settled = True
        else:
            payment = _card_payment(db, refund.booking_id, refund.payment_id)
            refund.payment_id = payment.id
            settled = False

    if settled:
        logger.info("refund %s completed via %s", refund.id, refund.refund_method)
        notify_refund_processed(db, refund)
        return refund

    # Gateway call happens outside any open transaction; a timeout leaves the refund PENDING.
    result = gateway.create_refund(payment.transaction_id, money(refund.amount))
    gateway_status = (result.get("status") or "").lower()
    with atomic(db):
        refund = _lock_refund(db, refund_id)
        if refund.status != RefundStatus.PENDING.value:
            return refund
        if gateway_status == "succeeded":
            complete_refund(db, refund, result.get("id") or refund.transaction_id)
        elif gateway_status in ("failed", "canceled"):
            refund.status = RefundStatus.FAILED.value
            refund.processed_at = _now()
            if result.get("id"):
                refund.transaction_id = result["id"]
        else:
            refund.status = RefundStatus.PROCESSING.value
            if result.get("id"):
                refund.transaction_id = result["id"]
        log_audit(db, actor.user_id, "refund.process", "refund", refund.id,
                  {"method": refund.refund_method, "gatewayStatus": gateway_status})

    logger.info("refund %s sent to gateway: %s", refund.id, refund.status)
    if refund.status == RefundStatus.COMPLETED.value:
        notify_refund_processed(db, refund)
    return refund


def apply_gateway_refund(db: Session, payment_transaction_id: str, gateway_refunds: list[dict], amount_refunded: Decimal) -> list[Refund]:
    """``charge.refunded``: settle our refunds by the per-refund status Stripe reports.

    Only refunds listed as ``succeeded`` are completed; ``failed``/``canceled``
    ones are marked FAILED and anything else is left as it is. Refunds issued
    outside the application are recorded from ``amount_refunded``. Runs in the
    caller's transaction and returns the refunds newly completed.
    """
    payment = db.execute(
        select(Payment).where(Payment.transaction_id == payment_transaction_id).with_for_update()
    ).scalar_one_or_none()
    if not payment:
        return []

    reported = {r["id"]: (r.get("status") or "").lower() for r in gateway_refunds if r.get("id")}
    completed: list[Refund] = []
    rows = db.execute(
        select(Refund).where(
            Refund.payment_id == payment.id,
            Refund.status.in_([RefundStatus.PROCESSING.value, RefundStatus.PENDING.value]),
            Refund.transaction_id.in_(list(reported)),
        ).with_for_update()
    ).scalars().all()
    for refund in rows:
        status = reported[refund.transaction_id]
        if status == "succeeded":
            if complete_refund(db, refund):
                completed.append(refund)
        elif status in ("failed", "canceled"):
            refund.status = RefundStatus.FAILED.value
            refund.processed_at = _now()
            log_audit(db, "stripe", "refund.fail", "refund", refund.id, {"gatewayStatus": status})
            logger.warning("refund %s reported %s by the gateway", refund.id, status)

    # Whatever the gateway refunded beyond our rows was issued from the dashboard.
    recorded = ledger_service.refunded_against_payment(db, payment.id)
    extra = money(amount_refunded) - recorded
    if extra > 0:
        booking = _lock_booking(db, payment.booking_id)
        available = ledger_service.available_for_refund(db, booking.id)
        extra = min(extra, available)
        if extra > 0:
            known = set(db.execute(select(Refund.transaction_id).where(Refund.payment_id == payment.id)).scalars())
            foreign = [rid for rid, status in reported.items() if status == "succeeded" and rid not in known]
            refund = Refund(
                booking_id=booking.id,
                payment_id=payment.id,
                amount=extra,
                refund_method=RefundMethod.STRIPE.value,
                status=RefundStatus.PENDING.value,
                transaction_id=foreign[-1] if foreign else f"external_{payment.transaction_id}",
                requested_by=SYSTEM_ACTOR.user_id,
                notes="Refund issued outside the application",
            )
            db.add(refund)
            db.flush()
            complete_refund(db, refund)
            completed.append(refund)
    return completed


def cancel_refund(db: Session, actor: ActorContext, refund_id: int) -> Refund:
    with atomic(db):
        refund = _lock_refund(db, refund_id)
        booking = db.get(Booking, refund.booking_id)
        owner = booking.user_id if booking else ""
        if actor.user_id != owner and not actor.can(Permission.PROCESS_REFUNDS):
            raise AuthorizationError("Unauthorized to cancel this refund")
        if refund.status != RefundStatus.PENDING.value:
            raise ConflictError(f"Refund is {refund.status}; only PENDING refunds can be cancelled", status=refund.status)
        refund.status = RefundStatus.CANCELLED.value
        log_audit(db, actor.user_id, "refund.cancel", "refund", refund.id)
    logger.info("refund %s cancelled", refund_id)
    return refund


def get_refund(db: Session, actor: ActorContext, refund_id: int) -> Refund:
    refund = db.get(Refund, refund_id)
    if not refund:
        raise NotFoundError(f"Refund {refund_id} not found")
    booking = db.get(Booking, refund.booking_id)
    require_owner_or(actor, booking.user_id if booking else "", Permission.PROCESS_REFUNDS, "view refunds of")
    return refund


def list_refunds(db: Session, actor: ActorContext, booking_id: int | None = None, status: str | None = None, limit: int = 200) -> list[Refund]:
    q = select(Refund)
    if booking_id is not None:
        booking = db.get(Booking, booking_id)
        if not booking:
            raise NotFoundError(f"Booking {booking_id} not found")
        require_owner_or(actor, booking.user_id, Permission.PROCESS_REFUNDS, "view refunds of")
        q = q.where(Refund.booking_id == booking_id)
    else:
        require_permission(actor, Permission.PROCESS_REFUNDS)
    if status:
        q = q.where(Refund.status == str(status).upper())
    return list(db.execute(q.order_by(Refund.created_at.desc()).limit(min(max(limit, 1), 1000))).scalars())
