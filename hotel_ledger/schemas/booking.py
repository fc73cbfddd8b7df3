from datetime import date
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field


class BookingCreate(BaseModel):
    roomId: int
    userId: Optional[str] = None  # defaults to the caller; staff may book for a guest
    checkIn: date
    checkOut: date
    guestCount: int = Field(default=1, ge=1)
    notes: str = ""


class BookingStatusUpdate(BaseModel):
    status: str


class BookingCancel(BaseModel):
    reason: str = ""


class CheckInRequest(BaseModel):
    notes: str = ""


class CheckOutRequest(BaseModel):
    actualCheckOut: Optional[date] = None  # defaults to today
    reason: str = ""


class BookingOut(BaseModel):
    id: int
    roomId: int
    userId: str
    checkIn: date
    checkOut: date
    actualCheckOut: Optional[date] = None
    guestCount: int
    totalPrice: Decimal
    paidAmount: Decimal
    status: str
    notes: str = ""
    createdAt: Optional[str] = None


class CheckOutOut(BaseModel):
    booking: BookingOut
    totalDays: int
    actualDays: int
    unusedDays: int
    dailyRate: Decimal
    refundAmount: Decimal
    refundId: Optional[int] = None


class AutoCheckoutError(BaseModel):
    bookingId: int
    error: str


class AutoCheckoutOut(BaseModel):
    processedCount: int
    failedCount: int
    processed: List[int]
    errors: List[AutoCheckoutError]


class ExpiringCheckinOut(BaseModel):
    bookingId: int
    roomId: int
    userId: str
    checkOut: date
