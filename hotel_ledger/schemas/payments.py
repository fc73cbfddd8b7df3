from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field


class PaymentInitiate(BaseModel):
    bookingId: int
    amount: Decimal = Field(gt=0)
    method: str = "CARD"  # CARD, CASH, BANK_TRANSFER
    # Stripe PaymentMethod id (pm_...). Without it the client confirms with the returned clientSecret.
    paymentMethodId: Optional[str] = None


class PaymentOut(BaseModel):
    id: int
    bookingId: int
    amount: Decimal
    method: str
    status: str
    transactionId: str
    failureReason: str = ""
    processedAt: Optional[str] = None
    refundedAt: Optional[str] = None


class PaymentResultOut(BaseModel):
    payment: PaymentOut
    requiresAction: bool = False
    clientSecret: Optional[str] = None
