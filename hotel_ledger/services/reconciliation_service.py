"""Financial read model, always computed from payment and refund rows."""
from datetime import datetime
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from hotel_ledger.core.errors import NotFoundError, ValidationError
from hotel_ledger.core.permissions import ActorContext, Permission, require_owner_or, require_permission
from hotel_ledger.models.booking import Booking
from hotel_ledger.models.enums import (
    CAPTURED_PAYMENT_STATUSES, OUTSTANDING_REFUND_STATUSES, PaymentStatus, RefundStatus,
)
from hotel_ledger.models.payment import Payment
from hotel_ledger.models.refund import Refund
from hotel_ledger.services import ledger_service
from hotel_ledger.services.ledger_service import money


def _in_period(column, start: datetime | None, end: datetime | None) -> list:
    where = []
    if start is not None:
        where.append(column >= start)
    if end is not None:
        where.append(column < end)
    return where


def _count_and_sum(db: Session, model, *where) -> tuple[int, Decimal]:
    count, total = db.execute(
        select(func.count(model.id), func.coalesce(func.sum(model.amount), 0)).where(*where)
    ).one()
    return int(count or 0), money(total)


def financial_overview(db: Session, actor: ActorContext, start: datetime | None = None, end: datetime | None = None) -> dict:
    require_permission(actor, Permission.VIEW_ANALYTICS)
    if start and end and end <= start:
        raise ValidationError("Period end must be after period start")

    captured = [s.value for s in CAPTURED_PAYMENT_STATUSES]
    captured_count, gross = _count_and_sum(
        db, Payment, Payment.status.in_(captured), *_in_period(Payment.processed_at, start, end))
    refund_count, refunded = _count_and_sum(
        db, Refund, Refund.status == RefundStatus.COMPLETED.value, *_in_period(Refund.processed_at, start, end))
    # Pending rows have no processed_at yet; they are bucketed by creation time.
    pending_payments = _count_and_sum(
        db, Payment, Payment.status == PaymentStatus.PENDING.value, *_in_period(Payment.created_at, start, end))
    failed_payments = _count_and_sum(
        db, Payment, Payment.status == PaymentStatus.FAILED.value, *_in_period(Payment.processed_at, start, end))
    pending_refunds = _count_and_sum(
        db, Refund, Refund.status.in_([s.value for s in OUTSTANDING_REFUND_STATUSES]),
        *_in_period(Refund.created_at, start, end))

    by_method = db.execute(
        select(Payment.payment_method, func.coalesce(func.sum(Payment.amount), 0))
        .where(Payment.status.in_(captured), *_in_period(Payment.processed_at, start, end))
        .group_by(Payment.payment_method)
    ).all()

    net = gross - refunded
    rate = (refunded / gross * 100).quantize(Decimal("0.01")) if gross > 0 else Decimal("0.00")
    return {
        "periodStart": start,
        "periodEnd": end,
        "grossRevenue": gross,
        "totalRefunds": refunded,
        "netRevenue": net,
        "refundRate": rate,
        "capturedPayments": captured_count,
        "completedRefunds": refund_count,
        "pendingPayments": {"count": pending_payments[0], "amount": pending_payments[1]},
        "failedPayments": {"count": failed_payments[0], "amount": failed_payments[1]},
        "pendingRefunds": {"count": pending_refunds[0], "amount": pending_refunds[1]},
        "revenueByMethod": {method: money(total) for method, total in by_method},
    }


def booking_balance(db: Session, actor: ActorContext, booking_id: int) -> dict:
    booking = db.get(Booking, booking_id)
    if not booking:
        raise NotFoundError(f"Booking {booking_id} not found")
    require_owner_or(actor, booking.user_id, Permission.VIEW_ANALYTICS, "view the balance of")
    return ledger_service.booking_balance(db, booking)
