from datetime import datetime
from decimal import Decimal

from sqlalchemy import String, DateTime, Integer, Numeric, Text
from sqlalchemy.orm import Mapped, mapped_column
from hotel_ledger.db.session import Base
from hotel_ledger.models.mixins import TimestampedIdMixin
from hotel_ledger.models.enums import RefundStatus

class Refund(TimestampedIdMixin, Base):
    __tablename__ = "refunds"

    booking_id: Mapped[int] = mapped_column(Integer, index=True)
    payment_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    refund_method: Mapped[str] = mapped_column(String(30))  # STRIPE, CASH, BANK_TRANSFER, CREDIT_TO_ACCOUNT
    status: Mapped[str] = mapped_column(String(20), default=RefundStatus.PENDING.value, index=True)
    transaction_id: Mapped[str] = mapped_column(String(120), index=True)
    requested_by: Mapped[str] = mapped_column(String(36), default="")
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    notes: Mapped[str] = mapped_column(Text, default="")
