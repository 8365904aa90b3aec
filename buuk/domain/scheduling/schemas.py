"""Scheduling domain schemas - Pydantic models for validation"""

from datetime import date
from typing import Optional

from pydantic import BaseModel, field_validator

from .time_calculator import parse_hhmm

PAYMENT_METHODS = {"card", "paypal", "in_person", "free"}


class SlotsResponse(BaseModel):
    """Available start times for one specialist"""

    specialist_id: str
    date: date
    slots: list[str]


class AllSlotsResponse(BaseModel):
    """Available start times per specialist of a business"""

    business_id: str
    date: date
    slots: dict[str, list[str]]


class BookingCreate(BaseModel):
    """Schema for creating a booking"""

    business_id: str
    service_id: str
    duration_id: str
    specialist_id: Optional[str] = None  # None = any available specialist
    booking_date: date
    start_time: str  # "HH:MM"
    customer_name: str
    customer_email: str
    customer_phone: Optional[str] = None
    notes: Optional[str] = None
    payment_method: str = "card"

    @field_validator("start_time")
    @classmethod
    def validate_start_time(cls, v: str) -> str:
        try:
            parsed = parse_hhmm(v)
        except ValueError as e:
            raise ValueError("start_time must be HH:MM") from e
        return parsed.strftime("%H:%M")

    @field_validator("payment_method")
    @classmethod
    def validate_payment_method(cls, v: str) -> str:
        if v not in PAYMENT_METHODS:
            raise ValueError(f"payment_method must be one of {sorted(PAYMENT_METHODS)}")
        return v

    @field_validator("customer_name", "customer_email")
    @classmethod
    def validate_required(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("field is required")
        return v.strip()


class BookingResponse(BaseModel):
    """Schema for booking response"""

    id: str
    business_id: str
    service_id: str
    duration_id: Optional[str] = None
    specialist_id: Optional[str] = None
    booking_date: date
    start_time: str
    customer_name: str
    customer_email: str
    status: str
    payment_status: str
    payment_method: str
    amount_cents: int
    no_show: bool
