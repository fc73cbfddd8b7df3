from datetime import date

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from hotel_ledger.api.deps import get_actor
from hotel_ledger.core.permissions import ActorContext
from hotel_ledger.db.session import get_db
from hotel_ledger.models.room import Room
from hotel_ledger.schemas.rooms import AvailabilityOut, RoomIn, RoomOut, RoomUpdate
from hotel_ledger.services import room_service

router = APIRouter(tags=["rooms"])


def room_out(r: Room) -> RoomOut:
    return RoomOut(id=r.id, number=r.number, type=r.type, capacity=r.capacity, price=r.price,
                   status=r.status, description=r.description or "")


@router.get("/rooms", response_model=list[RoomOut])
def list_rooms(status: str | None = None, type: str | None = None, minCapacity: int | None = None,
               db: Session = Depends(get_db)):
    return [room_out(r) for r in room_service.list_rooms(db, status=status, room_type=type, min_capacity=minCapacity)]


@router.get("/rooms/{room_id}", response_model=RoomOut)
def get_room(room_id: int, db: Session = Depends(get_db)):
    return room_out(room_service.get_room(db, room_id))


@router.get("/rooms/{room_id}/availability", response_model=AvailabilityOut)
def room_availability(room_id: int, checkIn: date, checkOut: date, db: Session = Depends(get_db)):
    return AvailabilityOut(**room_service.availability(db, room_id, checkIn, checkOut))


@router.post("/rooms", response_model=RoomOut, status_code=201)
def create_room(body: RoomIn, db: Session = Depends(get_db), actor: ActorContext = Depends(get_actor)):
    r = room_service.create_room(db, actor, body.number, body.type, body.capacity, body.price, body.description)
    return room_out(r)


@router.patch("/rooms/{room_id}", response_model=RoomOut)
def update_room(room_id: int, body: RoomUpdate, db: Session = Depends(get_db), actor: ActorContext = Depends(get_actor)):
    r = room_service.update_room(
        db, actor, room_id,
        number=body.number, room_type=body.type, capacity=body.capacity,
        price=body.price, status=body.status, description=body.description,
    )
    return room_out(r)


@router.delete("/rooms/{room_id}")
def delete_room(room_id: int, db: Session = Depends(get_db), actor: ActorContext = Depends(get_actor)):
    room_service.delete_room(db, actor, room_id)
    return {"ok": True}
