from fastapi import APIRouter, Depends, Header, HTTPException
from sqlalchemy.orm import Session

from hotel_ledger.core.config import settings
from hotel_ledger.db.session import get_db
from hotel_ledger.schemas.booking import AutoCheckoutOut
from hotel_ledger.services import auto_checkout_service

router = APIRouter(tags=["ops"])


@router.get("/cron/auto-checkout", response_model=AutoCheckoutOut)
def cron_auto_checkout(authorization: str | None = Header(default=None), db: Session = Depends(get_db)):
    """Entry point for an external scheduler (e.g. Render cron)."""
    if settings.CRON_SECRET and authorization != f"Bearer {settings.CRON_SECRET}":
        raise HTTPException(status_code=401, detail="Unauthorized")
    return auto_checkout_service.process_auto_checkout(db)
