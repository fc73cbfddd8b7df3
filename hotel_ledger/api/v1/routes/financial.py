from datetime import datetime

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from hotel_ledger.api.deps import get_actor
from hotel_ledger.core.permissions import ActorContext
from hotel_ledger.db.session import get_db
from hotel_ledger.services import reconciliation_service

router = APIRouter(tags=["financial"])


@router.get("/financial/overview")
def financial_overview(start: datetime | None = None, end: datetime | None = None,
                       db: Session = Depends(get_db), actor: ActorContext = Depends(get_actor)):
    """Gross/net revenue and refund rate for the optional [start, end) period."""
    return reconciliation_service.financial_overview(db, actor, start=start, end=end)


@router.get("/financial/bookings/{booking_id}/balance")
def booking_balance(booking_id: int, db: Session = Depends(get_db), actor: ActorContext = Depends(get_actor)):
    return reconciliation_service.booking_balance(db, actor, booking_id)
