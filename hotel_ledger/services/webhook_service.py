"""Stripe webhook reconciler.

Events are keyed by Stripe's event id: PROCESSED and IGNORED events are
acknowledged without effect, FAILED ones are retried when Stripe redelivers.
"""
import logging
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from hotel_ledger.core.errors import NotFoundError, ValidationError
from hotel_ledger.db.session import atomic
from hotel_ledger.models.enums import WebhookEventStatus
from hotel_ledger.models.payment import Payment
from hotel_ledger.models.webhook_event import WebhookEvent
from hotel_ledger.services import payment_service, refund_service
from hotel_ledger.services.audit_service import log_audit
from hotel_ledger.services.ledger_service import CENT

logger = logging.getLogger(__name__)

PAYMENT_SUCCEEDED = "payment_intent.succeeded"
PAYMENT_FAILED = ("payment_intent.payment_failed", "payment_intent.canceled")
CHARGE_REFUNDED = "charge.refunded"


def _from_minor(value) -> Decimal:
    return (Decimal(int(value or 0)) / 100).quantize(CENT)


def _failure_reason(obj: dict, event_type: str) -> str:
    err = obj.get("last_payment_error") or {}
    return err.get("message") or obj.get("cancellation_reason") or event_type


def _record(db: Session, event_id: str, event_type: str, transaction_id: str, status: WebhookEventStatus, error: str = "") -> None:
    with atomic(db):
        row = db.execute(select(WebhookEvent).where(WebhookEvent.event_id == event_id)).scalar_one_or_none()
        if row is None:
            row = WebhookEvent(event_id=event_id, event_type=event_type, transaction_id=transaction_id)
            db.add(row)
        row.status = status.value
        row.error = (error or "")[:500]


def _apply(db: Session, event_type: str, obj: dict) -> WebhookEventStatus:
    if event_type == PAYMENT_SUCCEEDED:
        try:
            payment_service.confirm_payment(db, obj.get("id", ""))
        except NotFoundError:
            return WebhookEventStatus.IGNORED
        return WebhookEventStatus.PROCESSED
    if event_type in PAYMENT_FAILED:
        try:
            payment_service.fail_payment(db, obj.get("id", ""), _failure_reason(obj, event_type))
        except NotFoundError:
            return WebhookEventStatus.IGNORED
        return WebhookEventStatus.PROCESSED
    if event_type == CHARGE_REFUNDED:
        intent_id = obj.get("payment_intent") or ""
        gateway_refunds = (obj.get("refunds") or {}).get("data") or []
        known = db.execute(select(Payment.id).where(Payment.transaction_id == intent_id)).first() if intent_id else None
        if known is None:
            return WebhookEventStatus.IGNORED
        with atomic(db):
            done = refund_service.apply_gateway_refund(db, intent_id, gateway_refunds, _from_minor(obj.get("amount_refunded")))
        for refund in done:
            refund_service.notify_refund_processed(db, refund)
        return WebhookEventStatus.PROCESSED
    return WebhookEventStatus.IGNORED


def handle_event(db: Session, event: dict) -> dict:
    """Apply one Stripe event. Raises after recording FAILED so the caller can answer 500."""
    event_id = event.get("id")
    event_type = event.get("type") or ""
    if not event_id or not event_type:
        raise ValidationError("Malformed webhook event")
    obj = ((event.get("data") or {}).get("object")) or {}
    transaction_id = obj.get("payment_intent") or obj.get("id") or ""

    seen = db.execute(select(WebhookEvent).where(WebhookEvent.event_id == event_id)).scalar_one_or_none()
    if seen is not None and seen.status != WebhookEventStatus.FAILED.value:
        logger.info("webhook %s (%s) already %s", event_id, event_type, seen.status)
        return {"received": True, "duplicate": True, "status": seen.status}

    try:
        status = _apply(db, event_type, obj)
    except Exception as e:
        db.rollback()
        logger.exception("webhook %s (%s) failed", event_id, event_type)
        _record(db, event_id, event_type, transaction_id, WebhookEventStatus.FAILED, str(e))
        raise

    _record(db, event_id, event_type, transaction_id, status)
    with atomic(db):
        log_audit(db, "stripe", "webhook_received", "webhook_event", event_id,
                  {"type": event_type, "status": status.value, "transactionId": transaction_id})
    logger.info("webhook %s (%s) %s", event_id, event_type, status.value)
    return {"received": True, "duplicate": False, "status": status.value}
