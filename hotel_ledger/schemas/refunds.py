from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field


class RefundRequest(BaseModel):
    bookingId: int
    amount: Decimal = Field(gt=0)
    method: str = "STRIPE"  # STRIPE, CASH, BANK_TRANSFER, CREDIT_TO_ACCOUNT
    notes: str = ""
    paymentId: Optional[int] = None


class RefundProcess(BaseModel):
    method: Optional[str] = None
    notes: Optional[str] = None


class RefundOut(BaseModel):
    id: int
    bookingId: int
    paymentId: Optional[int] = None
    amount: Decimal
    method: str
    status: str
    transactionId: str
    requestedBy: str = ""
    notes: str = ""
    processedAt: Optional[str] = None
    createdAt: Optional[str] = None
