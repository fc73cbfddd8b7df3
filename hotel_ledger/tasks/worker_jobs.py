import logging

from sqlalchemy.orm import Session
from sqlalchemy.exc import ProgrammingError

from hotel_ledger.db.session import SessionLocal
from hotel_ledger.services.auto_checkout_service import process_auto_checkout
from hotel_ledger.services.email_service import process_pending_emails

logger = logging.getLogger(__name__)


def auto_checkout() -> dict:
    """Check out guests whose stay has ended. Run hourly via Celery beat."""
    db: Session = SessionLocal()
    try:
        try:
            return process_auto_checkout(db)
        except ProgrammingError:
            # DB not migrated yet; don't crash the worker.
            db.rollback()
            logger.warning("auto-checkout skipped: tables missing")
            return {"skipped": True, "reason": "missing_tables"}
    finally:
        db.close()


def process_email_queue(limit: int = 50) -> dict:
    """Process queued/failed emails (retry send). Run periodically via Celery beat."""
    db: Session = SessionLocal()
    try:
        try:
            return process_pending_emails(db, limit=limit)
        except ProgrammingError:
            db.rollback()
            return {"skipped": True, "reason": "missing_tables"}
    finally:
        db.close()
