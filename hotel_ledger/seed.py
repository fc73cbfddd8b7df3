import logging
from decimal import Decimal

from sqlalchemy import select, text
from sqlalchemy.exc import ProgrammingError
from sqlalchemy.orm import Session

from hotel_ledger.db.session import SessionLocal
from hotel_ledger.models.enums import RoomStatus, RoomType
from hotel_ledger.models.room import Room
from hotel_ledger.models.user import User

logger = logging.getLogger(__name__)

ROOMS = [
    ("101", RoomType.SINGLE, 1, Decimal("80.00"), "Single room, courtyard view"),
    ("102", RoomType.DOUBLE, 2, Decimal("120.00"), "Double room, queen bed"),
    ("103", RoomType.TWIN, 2, Decimal("115.00"), "Twin beds"),
    ("201", RoomType.DELUXE, 2, Decimal("180.00"), "Deluxe room with balcony"),
    ("202", RoomType.FAMILY, 4, Decimal("220.00"), "Family room, two double beds"),
    ("301", RoomType.SUITE, 4, Decimal("350.00"), "Suite with living area"),
]

USERS = [
    ("admin", "admin@hotel.local", "Admin", "ADMIN"),
    ("manager", "manager@hotel.local", "Front Office Manager", "MANAGER"),
    ("staff", "staff@hotel.local", "Reception", "STAFF"),
    ("concierge", "concierge@hotel.local", "Concierge", "CONCIERGE"),
]


def ensure_user(db: Session, user_id: str, email: str, name: str, role: str):
    if db.get(User, user_id) or db.execute(select(User.id).where(User.email == email)).first():
        return
    db.add(User(id=user_id, email=email, full_name=name, role=role, is_active=True))
    db.commit()


def ensure_room(db: Session, number: str, room_type: RoomType, capacity: int, price: Decimal, description: str):
    if db.execute(select(Room.id).where(Room.number == number)).first():
        return
    db.add(Room(number=number, type=room_type.value, capacity=capacity, price=price,
                status=RoomStatus.AVAILABLE.value, description=description))
    db.commit()


def run(db=None):
    own = db is None
    if own:
        db = SessionLocal()
    try:
        # If migrations haven't been applied yet, seeding must not crash the API.
        try:
            db.execute(text("SELECT 1 FROM rooms LIMIT 1"))
        except ProgrammingError:
            db.rollback()
            logger.warning("rooms table not found yet; skipping seed (run alembic upgrade head)")
            return
        for row in USERS:
            ensure_user(db, *row)
        for row in ROOMS:
            ensure_room(db, *row)
        logger.info("seed complete: %d rooms, %d staff users", len(ROOMS), len(USERS))
    finally:
        if own:
            db.close()


if __name__ == "__main__":
    run()
