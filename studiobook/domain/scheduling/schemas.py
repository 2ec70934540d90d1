"""Scheduling domain schemas - Pydantic models for validation"""

from datetime import date, datetime
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, field_validator, model_validator

from ...models import Appointment
from .recurrence import CADENCES
from .time_calculator import as_utc

BOOKING_STATUSES = ("REQUESTED", "PENCILLED", "APPROVED", "DECLINED", "CANCELLED", "BLOCKED")
# Rows in these states no longer occupy crew time or daily slots
INACTIVE_STATUSES = ("CANCELLED", "DECLINED")
SLOT_TYPES = ("SUNRISE", "DUSK")


def _validate_time_zone(v: Optional[str]) -> Optional[str]:
    if not v:
        return None
    try:
        ZoneInfo(v)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"Unknown time zone: {v}") from e
    return v


def _normalize_slot_type(v: Optional[str]) -> Optional[str]:
    if not v:
        return None
    v = v.upper()
    if v not in SLOT_TYPES:
        raise ValueError(f"slotType must be one of {', '.join(SLOT_TYPES)}")
    return v


class BookingUpsert(BaseModel):
    """Schema for creating or updating a booking.

    A BLOCKED booking is a block-out: client, address, agent and services are
    ignored and ``repeat`` may expand it into a series. Any other status is a
    client appointment and needs ``clientId`` or ``otcName``.
    """

    id: Optional[int] = None
    title: str = "Booking"
    clientId: Optional[int] = None
    otcName: Optional[str] = None
    otcEmail: Optional[str] = None
    otcPhone: Optional[str] = None
    otcNotes: Optional[str] = None
    address: Optional[str] = None
    startAt: datetime
    endAt: datetime
    status: str = "REQUESTED"
    serviceIds: list[int] = Field(default_factory=list)
    teamMemberIds: list[int] = Field(default_factory=list)
    agentId: Optional[int] = None
    notes: Optional[str] = None
    propertyStatus: Optional[str] = None
    slotType: Optional[str] = None
    repeat: Optional[str] = None
    timeZone: Optional[str] = None

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        v = (v or "").upper()
        if v not in BOOKING_STATUSES:
            raise ValueError(f"status must be one of {', '.join(BOOKING_STATUSES)}")
        return v

    @field_validator("slotType")
    @classmethod
    def validate_slot_type(cls, v):
        return _normalize_slot_type(v)

    @field_validator("repeat")
    @classmethod
    def validate_repeat(cls, v):
        if not v or v.lower() == "none":
            return None
        v = v.lower()
        if v not in CADENCES:
            raise ValueError(f"repeat must be one of {', '.join(CADENCES)}")
        return v

    @field_validator("timeZone")
    @classmethod
    def validate_time_zone(cls, v):
        return _validate_time_zone(v)

    @model_validator(mode="after")
    def validate_window(self):
        if (self.startAt.tzinfo is None) != (self.endAt.tzinfo is None):
            raise ValueError("startAt and endAt must both include or both omit a UTC offset")
        if self.endAt < self.startAt:
            raise ValueError("endAt must not be before startAt")
        return self

    @property
    def is_block_out(self) -> bool:
        return self.status == "BLOCKED"


class BookingResponse(BaseModel):
    id: int
    title: str
    status: str
    startAt: datetime
    endAt: datetime
    timeZone: str
    slotType: Optional[str] = None
    isPlaceholder: bool = False
    clientId: Optional[int] = None
    otcName: Optional[str] = None
    otcEmail: Optional[str] = None
    otcPhone: Optional[str] = None
    locationId: Optional[int] = None
    address: Optional[str] = None
    agentId: Optional[int] = None
    serviceIds: list[int] = Field(default_factory=list)
    teamMemberIds: list[int] = Field(default_factory=list)
    notes: Optional[str] = None
    propertyStatus: Optional[str] = None

    @classmethod
    def from_appointment(cls, appointment: Appointment) -> "BookingResponse":
        return cls(
            id=appointment.id,
            title=appointment.title,
            status=appointment.status,
            startAt=as_utc(appointment.start_at),
            endAt=as_utc(appointment.end_at),
            timeZone=appointment.timezone,
            slotType=appointment.slot_type,
            isPlaceholder=appointment.is_placeholder,
            clientId=appointment.client_id,
            otcName=appointment.otc_name,
            otcEmail=appointment.otc_email,
            otcPhone=appointment.otc_phone,
            locationId=appointment.location_id,
            address=appointment.location.name if appointment.location else None,
            agentId=appointment.agent_id,
            serviceIds=appointment.service_ids,
            teamMemberIds=appointment.crew_member_ids,
            notes=appointment.internal_notes,
            propertyStatus=appointment.property_status,
        )


class BookingOutcomeResponse(BaseModel):
    booking: BookingResponse
    secondary: Optional[BookingResponse] = None
    occurrences: list[BookingResponse] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class SunTimeResponse(BaseModel):
    time: datetime
    label: str


class TravelTimeResponse(BaseModel):
    durationSeconds: int
    durationText: Optional[str] = None
    distanceMeters: Optional[int] = None
    distanceText: Optional[str] = None


class SlotQuotaResponse(BaseModel):
    day: date
    slotType: str
    limit: Optional[int] = None  # None = uncapped
    used: int
    remaining: Optional[int] = None


class BusinessHoursDay(BaseModel):
    open: bool = True
    start: Optional[str] = None  # HH:MM
    end: Optional[str] = None
    sunrise: Optional[int] = Field(default=None, ge=0)
    dusk: Optional[int] = Field(default=None, ge=0)


class BusinessHoursUpdate(BaseModel):
    """Weekday config keyed "0" (Sunday) .. "6" (Saturday)"""

    hours: dict[str, BusinessHoursDay]

    @field_validator("hours")
    @classmethod
    def validate_weekdays(cls, v):
        invalid = [key for key in v if key not in {str(d) for d in range(7)}]
        if invalid:
            raise ValueError(f"Invalid weekday keys: {', '.join(sorted(invalid))}")
        return v


class PlaceholderCleanupResponse(BaseModel):
    deletedCount: int
