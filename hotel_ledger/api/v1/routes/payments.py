import json

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from hotel_ledger.api.deps import get_actor, get_gateway
from hotel_ledger.core.config import settings
from hotel_ledger.core.errors import ValidationError
from hotel_ledger.core.permissions import ActorContext
from hotel_ledger.db.session import get_db
from hotel_ledger.models.payment import Payment
from hotel_ledger.schemas.payments import PaymentInitiate, PaymentOut, PaymentResultOut
from hotel_ledger.services import payment_service, webhook_service
from hotel_ledger.services.stripe_client import PaymentGateway, verify_webhook_signature

router = APIRouter(tags=["payments"])


def payment_out(p: Payment) -> PaymentOut:
    return PaymentOut(
        id=p.id,
        bookingId=p.booking_id,
        amount=p.amount,
        method=p.payment_method,
        status=p.status,
        transactionId=p.transaction_id,
        failureReason=p.failure_reason or "",
        processedAt=p.processed_at.isoformat() if p.processed_at else None,
        refundedAt=p.refunded_at.isoformat() if p.refunded_at else None,
    )


@router.post("/payments", response_model=PaymentResultOut)
def initiate_payment(body: PaymentInitiate, db: Session = Depends(get_db), actor: ActorContext = Depends(get_actor),
                     gateway: PaymentGateway = Depends(get_gateway)):
    res = payment_service.initiate_payment(
        db, actor, gateway, body.bookingId, body.amount, body.method, payment_method_id=body.paymentMethodId,
    )
    return PaymentResultOut(payment=payment_out(res.payment), requiresAction=res.requires_action,
                            clientSecret=res.client_secret)


@router.get("/payments", response_model=list[PaymentOut])
def list_payments(bookingId: int | None = None, status: str | None = None, limit: int = 200,
                  db: Session = Depends(get_db), actor: ActorContext = Depends(get_actor)):
    return [payment_out(p) for p in payment_service.list_payments(db, actor, booking_id=bookingId, status=status, limit=limit)]


@router.post("/webhooks/stripe")
async def stripe_webhook(req: Request, db: Session = Depends(get_db)):
    body = await req.body()
    if settings.STRIPE_WEBHOOK_VERIFY:
        ok = verify_webhook_signature(body, req.headers.get("stripe-signature", ""), settings.STRIPE_WEBHOOK_SECRET)
        if not ok:
            raise HTTPException(status_code=401, detail="Invalid webhook signature")
    try:
        event = json.loads(body.decode("utf-8") or "{}")
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON payload")
    if not isinstance(event, dict):
        raise HTTPException(status_code=400, detail="Invalid JSON payload")

    try:
        return webhook_service.handle_event(db, event)
    except ValidationError:
        raise
    except Exception as e:
        # Recorded as FAILED by the reconciler; a 5xx makes Stripe redeliver.
        return JSONResponse(status_code=500, content={"received": False, "error": str(e)})
