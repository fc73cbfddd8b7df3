from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from hotel_ledger.api.deps import get_actor, require_permissions
from hotel_ledger.core.permissions import ActorContext, Permission
from hotel_ledger.db.session import get_db
from hotel_ledger.models.booking import Booking
from hotel_ledger.schemas.booking import (
    AutoCheckoutOut, BookingCancel, BookingCreate, BookingOut, BookingStatusUpdate,
    CheckInRequest, CheckOutOut, CheckOutRequest, ExpiringCheckinOut,
)
from hotel_ledger.services import auto_checkout_service, booking_service

router = APIRouter(tags=["bookings"])


def booking_out(b: Booking) -> BookingOut:
    return BookingOut(
        id=b.id,
        roomId=b.room_id,
        userId=b.user_id,
        checkIn=b.check_in,
        checkOut=b.check_out,
        actualCheckOut=b.actual_check_out,
        guestCount=b.guest_count,
        totalPrice=b.total_price,
        paidAmount=b.paid_amount,
        status=b.status,
        notes=b.notes or "",
        createdAt=b.created_at.isoformat() if b.created_at else None,
    )


# Registered before /bookings/{booking_id} so "auto-checkout" is not parsed as an id.
@router.get("/bookings/auto-checkout", response_model=list[ExpiringCheckinOut])
def list_auto_checkout(db: Session = Depends(get_db),
                       actor: ActorContext = Depends(require_permissions(Permission.EDIT_BOOKINGS))):
    """Dry run: bookings the next sweep would check out."""
    return [
        ExpiringCheckinOut(bookingId=b.id, roomId=b.room_id, userId=b.user_id, checkOut=b.check_out)
        for b in auto_checkout_service.list_expired_checkins(db)
    ]


@router.post("/bookings/auto-checkout", response_model=AutoCheckoutOut)
def run_auto_checkout(db: Session = Depends(get_db),
                      actor: ActorContext = Depends(require_permissions(Permission.EDIT_BOOKINGS))):
    return auto_checkout_service.process_auto_checkout(db)


@router.post("/bookings", response_model=BookingOut, status_code=201)
def create_booking(body: BookingCreate, db: Session = Depends(get_db), actor: ActorContext = Depends(get_actor)):
    b = booking_service.create_booking(
        db, actor,
        room_id=body.roomId,
        user_id=body.userId or actor.user_id,
        check_in=body.checkIn,
        check_out=body.checkOut,
        guest_count=body.guestCount,
        notes=body.notes,
    )
    return booking_out(b)


@router.get("/bookings", response_model=list[BookingOut])
def list_bookings(status: str | None = None, roomId: int | None = None, limit: int = 200,
                  db: Session = Depends(get_db), actor: ActorContext = Depends(get_actor)):
    return [booking_out(b) for b in booking_service.list_bookings(db, actor, status=status, room_id=roomId, limit=limit)]


@router.get("/bookings/{booking_id}", response_model=BookingOut)
def get_booking(booking_id: int, db: Session = Depends(get_db), actor: ActorContext = Depends(get_actor)):
    return booking_out(booking_service.get_booking(db, actor, booking_id))


@router.patch("/bookings/{booking_id}/status", response_model=BookingOut)
def update_booking_status(booking_id: int, body: BookingStatusUpdate,
                          db: Session = Depends(get_db), actor: ActorContext = Depends(get_actor)):
    return booking_out(booking_service.update_status(db, actor, booking_id, body.status))


@router.post("/bookings/{booking_id}/cancel", response_model=BookingOut)
def cancel_booking(booking_id: int, body: BookingCancel | None = None,
                   db: Session = Depends(get_db), actor: ActorContext = Depends(get_actor)):
    return booking_out(booking_service.cancel_booking(db, actor, booking_id, reason=body.reason if body else ""))


@router.delete("/bookings/{booking_id}")
def delete_booking(booking_id: int, db: Session = Depends(get_db), actor: ActorContext = Depends(get_actor)):
    booking_service.delete_booking(db, actor, booking_id)
    return {"ok": True}


@router.post("/bookings/{booking_id}/checkin", response_model=BookingOut)
def check_in(booking_id: int, body: CheckInRequest | None = None,
             db: Session = Depends(get_db), actor: ActorContext = Depends(get_actor)):
    return booking_out(booking_service.check_in(db, actor, booking_id, notes=body.notes if body else ""))


@router.post("/bookings/{booking_id}/checkout", response_model=CheckOutOut)
def check_out(booking_id: int, body: CheckOutRequest | None = None,
              db: Session = Depends(get_db), actor: ActorContext = Depends(get_actor)):
    body = body or CheckOutRequest()
    res = booking_service.check_out(db, actor, booking_id, actual_check_out=body.actualCheckOut, reason=body.reason)
    return CheckOutOut(
        booking=booking_out(res.booking),
        totalDays=res.total_days,
        actualDays=res.actual_days,
        unusedDays=res.unused_days,
        dailyRate=res.daily_rate,
        refundAmount=res.refund_amount,
        refundId=res.refund_id,
    )
