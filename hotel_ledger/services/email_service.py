"""Outbound e-mail with a persistent queue.

Every message is written to ``email_logs`` before the first send attempt, so a
failed send is retried by the ``process_email_queue`` job.
"""
import logging
import smtplib
from datetime import datetime, timezone
from email.message import EmailMessage

import requests
from sqlalchemy import select
from sqlalchemy.orm import Session

from hotel_ledger.core.config import settings
from hotel_ledger.models.email_log import EmailLog

logger = logging.getLogger(__name__)

SENDGRID_URL = "https://api.sendgrid.com/v3/mail/send"


class EmailDeliveryError(Exception):
    pass


def queue_email(db: Session, to_email: str, subject: str, body: str, template: str = "", related_booking_id: int | None = None) -> int:
    log = EmailLog(
        to_email=to_email,
        template=template,
        subject=subject,
        body=body,
        status="queued",
        related_booking_id=related_booking_id,
    )
    db.add(log)
    db.commit()
    _attempt(log)
    db.commit()
    return log.id


def _attempt(log: EmailLog) -> bool:
    try:
        send_email(log.to_email, log.subject, log.body or "")
    except (EmailDeliveryError, smtplib.SMTPException, OSError, requests.RequestException) as e:
        log.status = "failed"
        logger.warning("e-mail %s to %s failed: %s", log.id, log.to_email, e)
        return False
    log.status = "sent"
    log.sent_at = datetime.now(timezone.utc)
    return True


def send_email(to_email: str, subject: str, body: str) -> None:
    """SendGrid when an API key is configured, SMTP otherwise (MailHog works locally)."""
    if settings.SENDGRID_API_KEY:
        _send_via_sendgrid(to_email, subject, body)
        return

    msg = EmailMessage()
    msg["From"] = settings.SMTP_FROM
    msg["To"] = to_email
    msg["Subject"] = subject
    msg.set_content(body)

    with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT, timeout=10) as smtp:
        if settings.SMTP_USERNAME:
            smtp.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD)
        smtp.send_message(msg)


def _send_via_sendgrid(to_email: str, subject: str, body: str) -> None:
    payload = {
        "personalizations": [{"to": [{"email": to_email}]}],
        "from": {"email": settings.SENDGRID_FROM_EMAIL or settings.SMTP_FROM},
        "subject": subject,
        "content": [{"type": "text/plain", "value": body}],
    }
    r = requests.post(
        SENDGRID_URL,
        json=payload,
        headers={"Authorization": f"Bearer {settings.SENDGRID_API_KEY}"},
        timeout=20,
    )
    if r.status_code >= 400:
        raise EmailDeliveryError(f"SendGrid error {r.status_code}: {r.text}")


def process_pending_emails(db: Session, limit: int = 50) -> dict:
    """Retry up to ``limit`` queued or failed e-mails, oldest first."""
    pending = db.execute(
        select(EmailLog)
        .where(EmailLog.status.in_(["queued", "failed"]), EmailLog.body.isnot(None), EmailLog.body != "")
        .order_by(EmailLog.created_at.asc())
        .limit(limit)
    ).scalars().all()
    sent = sum(1 for log in pending if _attempt(log))
    if pending:
        db.commit()
        logger.info("e-mail queue: %d processed, %d sent", len(pending), sent)
    return {"processed": len(pending), "sent": sent, "failed": len(pending) - sent}
