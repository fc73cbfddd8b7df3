"""Sums over the payment and refund ledgers.

These are the only figures used for correctness decisions (check-in gating,
refund eligibility, reconciliation). ``Booking.paid_amount`` is a display cache
refreshed from here; ``Booking.refund_amount`` is legacy and never read.
"""
from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from hotel_ledger.models.booking import Booking
from hotel_ledger.models.enums import (
    CAPTURED_PAYMENT_STATUSES, OUTSTANDING_REFUND_STATUSES, PaymentStatus, RefundStatus,
)
from hotel_ledger.models.payment import Payment
from hotel_ledger.models.refund import Refund

CENT = Decimal("0.01")


def money(value) -> Decimal:
    if value is None:
        return Decimal("0.00")
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def _sum(db: Session, column, *where) -> Decimal:
    return money(db.execute(select(func.coalesce(func.sum(column), 0)).where(*where)).scalar_one())


def total_paid(db: Session, booking_id: int) -> Decimal:
    return _sum(
        db, Payment.amount,
        Payment.booking_id == booking_id,
        Payment.status.in_([s.value for s in CAPTURED_PAYMENT_STATUSES]),
    )


def total_refunded(db: Session, booking_id: int) -> Decimal:
    return _sum(db, Refund.amount, Refund.booking_id == booking_id, Refund.status == RefundStatus.COMPLETED.value)


def outstanding_refunds(db: Session, booking_id: int) -> Decimal:
    return _sum(
        db, Refund.amount,
        Refund.booking_id == booking_id,
        Refund.status.in_([s.value for s in OUTSTANDING_REFUND_STATUSES]),
    )


def refunded_against_payment(db: Session, payment_id: int) -> Decimal:
    return _sum(db, Refund.amount, Refund.payment_id == payment_id, Refund.status == RefundStatus.COMPLETED.value)


def available_for_refund(db: Session, booking_id: int) -> Decimal:
    return total_paid(db, booking_id) - total_refunded(db, booking_id)


def refundable_balance(db: Session, booking_id: int) -> Decimal:
    """Available for refund minus refunds already requested but not yet settled."""
    return available_for_refund(db, booking_id) - outstanding_refunds(db, booking_id)


def has_captured_payment(db: Session, booking_id: int) -> bool:
    return db.execute(
        select(Payment.id).where(
            Payment.booking_id == booking_id,
            Payment.status.in_([s.value for s in CAPTURED_PAYMENT_STATUSES]),
        ).limit(1)
    ).first() is not None


def latest_completed_payment(db: Session, booking_id: int, method: str | None = None) -> Payment | None:
    q = select(Payment).where(Payment.booking_id == booking_id, Payment.status == PaymentStatus.COMPLETED.value)
    if method:
        q = q.where(Payment.payment_method == method)
    return db.execute(q.order_by(Payment.processed_at.desc(), Payment.id.desc()).limit(1)).scalar_one_or_none()


def refresh_paid_amount(db: Session, booking: Booking) -> Decimal:
    booking.paid_amount = total_paid(db, booking.id)
    return booking.paid_amount


def booking_balance(db: Session, booking: Booking) -> dict:
    paid = total_paid(db, booking.id)
    refunded = total_refunded(db, booking.id)
    pending = outstanding_refunds(db, booking.id)
    return {
        "bookingId": booking.id,
        "totalPrice": money(booking.total_price),
        "paid": paid,
        "refunded": refunded,
        "pendingRefunds": pending,
        "availableForRefund": paid - refunded,
        "refundableBalance": paid - refunded - pending,
        "outstanding": max(money(booking.total_price) - paid, Decimal("0.00")),
    }
