"""Payment ledger: initiate, confirm and fail payments.

``confirm_payment`` is the single completion path, shared by the synchronous
card flow and the webhook reconciler; replays are no-ops.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from hotel_ledger.core.config import settings
from hotel_ledger.core.errors import (
    ConflictError, DuplicatePaymentError, NotFoundError, ValidationError,
)
from hotel_ledger.core.permissions import SYSTEM_ACTOR, ActorContext, Permission, require_owner_or, require_permission
from hotel_ledger.db.session import atomic
from hotel_ledger.models.booking import Booking
from hotel_ledger.models.enums import BookingStatus, PaymentMethod, PaymentStatus, RefundMethod
from hotel_ledger.models.payment import Payment
from hotel_ledger.services import booking_service, ledger_service, notification_service, refund_service
from hotel_ledger.services.audit_service import log_audit
from hotel_ledger.services.ledger_service import money
from hotel_ledger.services.state_machine import current_status
from hotel_ledger.services.stripe_client import PaymentGateway

logger = logging.getLogger(__name__)


@dataclass
class PaymentResult:
    payment: Payment
    changed: bool = False
    requires_action: bool = False
    client_secret: str | None = None


def _now() -> datetime:
    return datetime.now(timezone.utc)


def parse_method(value: str) -> PaymentMethod:
    try:
        return PaymentMethod(str(value).upper())
    except ValueError:
        raise ValidationError(f"Unknown payment method: {value}")


def _lock_payment(db: Session, transaction_id: str) -> Payment | None:
    return db.execute(
        select(Payment).where(Payment.transaction_id == transaction_id).with_for_update()
    ).scalar_one_or_none()


def _pending_card_payment(db: Session, booking_id: int) -> Payment | None:
    return db.execute(
        select(Payment).where(
            Payment.booking_id == booking_id,
            Payment.payment_method == PaymentMethod.CARD.value,
            Payment.status == PaymentStatus.PENDING.value,
        ).order_by(Payment.id.desc()).limit(1)
    ).scalar_one_or_none()


def _check_payable(db: Session, booking: Booking, amount: Decimal) -> None:
    if ledger_service.has_captured_payment(db, booking.id):
        raise DuplicatePaymentError("Booking already has a captured payment", bookingId=booking.id)
    status = current_status(booking)
    if status != BookingStatus.PENDING:
        raise ConflictError(f"Booking is {status.value}; only PENDING bookings can be paid", status=status.value)
    if abs(money(amount) - money(booking.total_price)) > settings.AMOUNT_EPSILON:
        raise ValidationError("Payment amount does not match booking total",
                              amount=money(amount), totalPrice=money(booking.total_price))


def initiate_payment(db: Session, actor: ActorContext, gateway: PaymentGateway, booking_id: int, amount: Decimal,
                     method: str, payment_method_id: str | None = None) -> PaymentResult:
    payment_method = parse_method(method)
    if payment_method != PaymentMethod.CARD:
        return _record_offline_payment(db, actor, booking_id, amount, payment_method)

    with atomic(db):
        booking = db.execute(select(Booking).where(Booking.id == booking_id).with_for_update()).scalar_one_or_none()
        if not booking:
            raise NotFoundError(f"Booking {booking_id} not found")
        require_owner_or(actor, booking.user_id, Permission.PROCESS_PAYMENTS, "pay for")
        _check_payable(db, booking, amount)
        payment = _pending_card_payment(db, booking.id)
        if payment is not None:
            # One open intent per booking; a retry confirms the existing one.
            if not payment_method_id:
                raise ConflictError("A card payment is already in progress for this booking",
                                    paymentId=payment.id, transactionId=payment.transaction_id)
            intent = {"id": payment.transaction_id}
            logger.info("reusing pending payment %s for booking %s", payment.id, booking.id)
        else:
            intent = gateway.create_payment_intent(money(amount), {"bookingId": booking.id, "userId": booking.user_id})
            if not intent.get("id"):
                raise ValidationError("Gateway returned no payment intent id")
            payment = Payment(
                booking_id=booking.id,
                amount=money(amount),
                payment_method=payment_method.value,
                status=PaymentStatus.PENDING.value,
                transaction_id=intent["id"],
            )
            db.add(payment)
            db.flush()
            log_audit(db, actor.user_id, "payment.initiate", "payment", payment.id,
                      {"bookingId": booking.id, "amount": payment.amount, "intent": payment.transaction_id})

    logger.info("payment %s initiated for booking %s (%s)", payment.id, booking_id, payment.transaction_id)
    if not payment_method_id:
        return PaymentResult(payment=payment, requires_action=True, client_secret=intent.get("client_secret"))

    # Gateway timeouts propagate and leave the payment PENDING for the webhook to settle.
    result = gateway.confirm(payment.transaction_id, payment_method_id)
    status = (result.get("status") or "").lower()
    if status == "succeeded":
        return confirm_payment(db, payment.transaction_id)
    if status in ("requires_action", "requires_confirmation", "processing"):
        return PaymentResult(payment=payment, requires_action=True,
                             client_secret=result.get("client_secret") or intent.get("client_secret"))
    reason = result.get("error") or f"Payment {status or 'failed'}"
    if isinstance(reason, dict):
        reason = reason.get("message") or str(reason)
    return fail_payment(db, payment.transaction_id, str(reason))


def _record_offline_payment(db: Session, actor: ActorContext, booking_id: int, amount: Decimal,
                            method: PaymentMethod) -> PaymentResult:
    require_permission(actor, Permission.PROCESS_PAYMENTS)
    with atomic(db):
        booking = db.execute(select(Booking).where(Booking.id == booking_id).with_for_update()).scalar_one_or_none()
        if not booking:
            raise NotFoundError(f"Booking {booking_id} not found")
        _check_payable(db, booking, amount)
        payment = Payment(
            booking_id=booking.id,
            amount=money(amount),
            payment_method=method.value,
            status=PaymentStatus.COMPLETED.value,
            transaction_id=f"{method.value.lower()}_{uuid.uuid4().hex[:20]}",
            processed_at=_now(),
        )
        db.add(payment)
        db.flush()
        booking_service.apply_payment_success(db, booking, payment.amount, actor_id=actor.user_id)
        log_audit(db, actor.user_id, "payment.record", "payment", payment.id,
                  {"bookingId": booking.id, "amount": payment.amount, "method": method.value})

    logger.info("%s payment %s recorded for booking %s", method.value, payment.id, booking_id)
    _notify_confirmed(db, payment)
    return PaymentResult(payment=payment, changed=True)


def _notify_confirmed(db: Session, payment: Payment) -> None:
    booking = db.get(Booking, payment.booking_id)
    if booking:
        notification_service.notify_guest(db, booking, "payment_confirmed",
                                          amount=payment.amount, transaction_id=payment.transaction_id)


def confirm_payment(db: Session, transaction_id: str) -> PaymentResult:
    duplicate = False
    with atomic(db):
        payment = _lock_payment(db, transaction_id)
        if not payment:
            raise NotFoundError(f"Payment {transaction_id} not found")
        if payment.status != PaymentStatus.PENDING.value:
            return PaymentResult(payment=payment)
        booking = db.execute(
            select(Booking).where(Booking.id == payment.booking_id).with_for_update()
        ).scalar_one_or_none()
        duplicate = booking is not None and ledger_service.has_captured_payment(db, booking.id)
        payment.status = PaymentStatus.COMPLETED.value
        payment.processed_at = _now()
        payment.failure_reason = ""
        db.flush()
        if duplicate:
            # The money was taken twice; keep it on the ledger and queue it for return.
            refund = refund_service.create_refund_record(
                db, booking, payment.amount, RefundMethod.STRIPE, notes="Duplicate payment",
                payment_id=payment.id, requested_by=SYSTEM_ACTOR.user_id,
            )
            ledger_service.refresh_paid_amount(db, booking)
            log_audit(db, SYSTEM_ACTOR.user_id, "payment.duplicate", "payment", payment.id,
                      {"transactionId": transaction_id, "refundId": refund.id})
        else:
            if booking:
                booking_service.apply_payment_success(db, booking, payment.amount)
            log_audit(db, SYSTEM_ACTOR.user_id, "payment.confirm", "payment", payment.id, {"transactionId": transaction_id})

    if duplicate:
        logger.warning("payment %s (%s) captured after booking %s was already paid; refund %s queued",
                       payment.id, transaction_id, payment.booking_id, refund.id)
        return PaymentResult(payment=payment, changed=True)
    logger.info("payment %s confirmed (%s)", payment.id, transaction_id)
    _notify_confirmed(db, payment)
    return PaymentResult(payment=payment, changed=True)


def fail_payment(db: Session, transaction_id: str, reason: str = "") -> PaymentResult:
    with atomic(db):
        payment = _lock_payment(db, transaction_id)
        if not payment:
            raise NotFoundError(f"Payment {transaction_id} not found")
        if payment.status != PaymentStatus.PENDING.value:
            return PaymentResult(payment=payment)
        payment.status = PaymentStatus.FAILED.value
        payment.failure_reason = (reason or "")[:500]
        payment.processed_at = _now()
        log_audit(db, SYSTEM_ACTOR.user_id, "payment.fail", "payment", payment.id, {"transactionId": transaction_id, "reason": reason})
    logger.info("payment %s failed (%s): %s", payment.id, transaction_id, reason)
    return PaymentResult(payment=payment, changed=True)


def list_payments(db: Session, actor: ActorContext, booking_id: int | None = None, status: str | None = None, limit: int = 200) -> list[Payment]:
    q = select(Payment)
    if booking_id is not None:
        booking = db.get(Booking, booking_id)
        if not booking:
            raise NotFoundError(f"Booking {booking_id} not found")
        require_owner_or(actor, booking.user_id, Permission.PROCESS_PAYMENTS, "view payments of")
        q = q.where(Payment.booking_id == booking_id)
    else:
        require_permission(actor, Permission.PROCESS_PAYMENTS)
    if status:
        q = q.where(Payment.status == str(status).upper())
    return list(db.execute(q.order_by(Payment.created_at.desc()).limit(min(max(limit, 1), 1000))).scalars())
