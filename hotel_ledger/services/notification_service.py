"""Guest notifications.

``send`` is fire-and-forget: it runs after the ledger transaction committed and
never raises, so a broken mail setup cannot fail or roll back a booking,
payment or refund.
"""
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from hotel_ledger.models.booking import Booking
from hotel_ledger.models.user import User
from hotel_ledger.services.email_service import queue_email

logger = logging.getLogger(__name__)

TEMPLATES = {
    "booking_created": (
        "Booking #{booking_id} received",
        "Hello {name},\n\nWe received your booking #{booking_id} for room {room_number} "
        "from {check_in} to {check_out}.\nTotal: ${total_price}\n\nPlease complete payment to confirm it.\n",
    ),
    "payment_confirmed": (
        "Payment confirmed for booking #{booking_id}",
        "Hello {name},\n\nWe received your payment of ${amount} (transaction {transaction_id}).\n"
        "Your booking #{booking_id} is confirmed.\n",
    ),
    "checked_in": (
        "Welcome! Booking #{booking_id}",
        "Hello {name},\n\nYou are checked in to room {room_number}. Check-out is on {check_out}.\n",
    ),
    "checked_out": (
        "Thank you for staying with us",
        "Hello {name},\n\nYou checked out of booking #{booking_id} on {actual_check_out}.\n"
        "Refund due for unused nights: ${refund_amount}\n",
    ),
    "refund_processed": (
        "Refund processed for booking #{booking_id}",
        "Hello {name},\n\nA refund of ${amount} was processed via {method} (reference {transaction_id}).\n",
    ),
}


def render(template: str, data: dict) -> tuple[str, str]:
    subject, body = TEMPLATES[template]
    return subject.format(**data), body.format(**data)


def send(db: Session, template: str, recipient: str, data: dict, booking_id: int | None = None) -> None:
    try:
        subject, body = render(template, data)
        queue_email(db, recipient, subject, body, template=template, related_booking_id=booking_id)
    except (KeyError, SQLAlchemyError):
        db.rollback()
        logger.warning("notification %s to %s not queued", template, recipient, exc_info=True)


def notify_guest(db: Session, booking: Booking, template: str, **data) -> None:
    try:
        guest = db.get(User, booking.user_id)
    except SQLAlchemyError:
        db.rollback()
        logger.warning("guest lookup for booking %s failed; %s not queued", booking.id, template, exc_info=True)
        return
    if not guest or not guest.email:
        logger.debug("booking %s has no guest e-mail; skipping %s", booking.id, template)
        return
    payload = {
        "name": guest.full_name or guest.email,
        "booking_id": booking.id,
        "check_in": booking.check_in.isoformat(),
        "check_out": booking.check_out.isoformat(),
        "total_price": booking.total_price,
    }
    payload.update(data)
    send(db, template, guest.email, payload, booking_id=booking.id)
