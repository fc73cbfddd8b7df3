from datetime import date
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field


class RoomIn(BaseModel):
    number: str
    type: str = "SINGLE"
    capacity: int = Field(ge=1, le=10)
    price: Decimal = Field(gt=0)
    description: str = ""


class RoomUpdate(BaseModel):
    number: Optional[str] = None
    type: Optional[str] = None
    capacity: Optional[int] = Field(default=None, ge=1, le=10)
    price: Optional[Decimal] = Field(default=None, gt=0)
    status: Optional[str] = None
    description: Optional[str] = None


class RoomOut(BaseModel):
    id: int
    number: str
    type: str
    capacity: int
    price: Decimal
    status: str
    description: str = ""


class AvailabilityOut(BaseModel):
    roomId: int
    checkIn: date
    checkOut: date
    roomStatus: str
    available: bool
    conflictingBookingIds: List[int] = []
