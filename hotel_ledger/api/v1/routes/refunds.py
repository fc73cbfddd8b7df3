from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from hotel_ledger.api.deps import get_actor, get_gateway
from hotel_ledger.core.permissions import ActorContext
from hotel_ledger.db.session import get_db
from hotel_ledger.models.refund import Refund
from hotel_ledger.schemas.refunds import RefundOut, RefundProcess, RefundRequest
from hotel_ledger.services import refund_service
from hotel_ledger.services.stripe_client import PaymentGateway

router = APIRouter(tags=["refunds"])


def refund_out(r: Refund) -> RefundOut:
    return RefundOut(
        id=r.id,
        bookingId=r.booking_id,
        paymentId=r.payment_id,
        amount=r.amount,
        method=r.refund_method,
        status=r.status,
        transactionId=r.transaction_id,
        requestedBy=r.requested_by or "",
        notes=r.notes or "",
        processedAt=r.processed_at.isoformat() if r.processed_at else None,
        createdAt=r.created_at.isoformat() if r.created_at else None,
    )


@router.post("/refunds", response_model=RefundOut, status_code=201)
def request_refund(body: RefundRequest, db: Session = Depends(get_db), actor: ActorContext = Depends(get_actor)):
    r = refund_service.request_refund(db, actor, body.bookingId, body.amount, body.method,
                                      notes=body.notes, payment_id=body.paymentId)
    return refund_out(r)


@router.get("/refunds", response_model=list[RefundOut])
def list_refunds(bookingId: int | None = None, status: str | None = None, limit: int = 200,
                 db: Session = Depends(get_db), actor: ActorContext = Depends(get_actor)):
    return [refund_out(r) for r in refund_service.list_refunds(db, actor, booking_id=bookingId, status=status, limit=limit)]


@router.get("/refunds/{refund_id}", response_model=RefundOut)
def get_refund(refund_id: int, db: Session = Depends(get_db), actor: ActorContext = Depends(get_actor)):
    return refund_out(refund_service.get_refund(db, actor, refund_id))


@router.post("/refunds/{refund_id}/process", response_model=RefundOut)
def process_refund(refund_id: int, body: RefundProcess | None = None, db: Session = Depends(get_db),
                   actor: ActorContext = Depends(get_actor), gateway: PaymentGateway = Depends(get_gateway)):
    body = body or RefundProcess()
    return refund_out(refund_service.process_refund(db, actor, gateway, refund_id, method=body.method, notes=body.notes))


@router.post("/refunds/{refund_id}/cancel", response_model=RefundOut)
def cancel_refund(refund_id: int, db: Session = Depends(get_db), actor: ActorContext = Depends(get_actor)):
    return refund_out(refund_service.cancel_refund(db, actor, refund_id))
