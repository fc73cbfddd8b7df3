from datetime import datetime
from decimal import Decimal

from sqlalchemy import String, DateTime, Integer, Numeric
from sqlalchemy.orm import Mapped, mapped_column
from hotel_ledger.db.session import Base
from hotel_ledger.models.mixins import TimestampedIdMixin
from hotel_ledger.models.enums import PaymentStatus

class Payment(TimestampedIdMixin, Base):
    __tablename__ = "payments"

    booking_id: Mapped[int] = mapped_column(Integer, index=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    payment_method: Mapped[str] = mapped_column(String(20))  # CARD, CASH, BANK_TRANSFER
    status: Mapped[str] = mapped_column(String(20), default=PaymentStatus.PENDING.value, index=True)
    transaction_id: Mapped[str] = mapped_column(String(120), unique=True, index=True)  # gateway id
    refund_transaction_id: Mapped[str | None] = mapped_column(String(120), nullable=True)
    failure_reason: Mapped[str] = mapped_column(String(500), default="")
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    refunded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
