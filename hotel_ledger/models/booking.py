from datetime import date
from decimal import Decimal

from sqlalchemy import String, Integer, Date, Numeric, Text
from sqlalchemy.orm import Mapped, mapped_column
from hotel_ledger.db.session import Base
from hotel_ledger.models.mixins import TimestampedIdMixin
from hotel_ledger.models.enums import BookingStatus

class Booking(TimestampedIdMixin, Base):
    __tablename__ = "bookings"

    room_id: Mapped[int] = mapped_column(Integer, index=True)
    user_id: Mapped[str] = mapped_column(String(36), index=True)  # guest

    check_in: Mapped[date] = mapped_column(Date, index=True)
    check_out: Mapped[date] = mapped_column(Date, index=True)
    actual_check_out: Mapped[date | None] = mapped_column(Date, nullable=True)
    guest_count: Mapped[int] = mapped_column(Integer, default=1)

    # nights x room price at booking time
    total_price: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    status: Mapped[str] = mapped_column(String(20), default=BookingStatus.PENDING.value, index=True)

    # Display cache, recomputed from the payment ledger after each mutation.
    paid_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"))
    # Legacy; the refund ledger is authoritative. Never incremented.
    refund_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"))

    notes: Mapped[str] = mapped_column(Text, default="")
