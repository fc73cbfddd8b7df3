from decimal import Decimal

from sqlalchemy import String, Integer, Numeric, Text, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column
from hotel_ledger.db.session import Base
from hotel_ledger.models.mixins import TimestampedIdMixin
from hotel_ledger.models.enums import RoomStatus

class Room(TimestampedIdMixin, Base):
    __tablename__ = "rooms"
    __table_args__ = (
        CheckConstraint("capacity >= 1 AND capacity <= 10", name="ck_rooms_capacity"),
        CheckConstraint("price > 0", name="ck_rooms_price"),
    )

    number: Mapped[str] = mapped_column(String(20), unique=True, index=True)
    type: Mapped[str] = mapped_column(String(20))  # RoomType
    capacity: Mapped[int] = mapped_column(Integer)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    status: Mapped[str] = mapped_column(String(20), default=RoomStatus.AVAILABLE.value, index=True)
    description: Mapped[str] = mapped_column(Text, default="")
