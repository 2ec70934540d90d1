"""Scheduling router - FastAPI endpoints for bookings and logistics"""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ...database import get_db
from ...services.geocoding_service import GeocodingService
from ...services.notification_service import BookingNotifier
from ...services.routing_service import RoutingService
from ...services.solar_service import SolarDataService
from .exceptions import (
    BookingNotFoundError,
    QuotaExceededError,
    SchedulingError,
    TravelConflictError,
)
from .schemas import (
    SLOT_TYPES,
    BookingOutcomeResponse,
    BookingResponse,
    BookingUpsert,
    BusinessHoursUpdate,
    PlaceholderCleanupResponse,
    SlotQuotaResponse,
    SunTimeResponse,
    TravelTimeResponse,
)
from .service import BookingOutcome, BookingService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Scheduling"])

# Capability clients hold no per-request state; build them once
geocoder = GeocodingService()
solar_provider = SolarDataService()
route_provider = RoutingService()
notifier = BookingNotifier()


def get_booking_service(db: Session = Depends(get_db)) -> BookingService:
    """Dependency injection for BookingService"""
    return BookingService(
        db,
        geocoder=geocoder,
        solar_provider=solar_provider,
        route_provider=route_provider,
        notifier=notifier,
    )


def _to_http_error(e: SchedulingError) -> HTTPException:
    if isinstance(e, BookingNotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, (QuotaExceededError, TravelConflictError)):
        return HTTPException(status_code=409, detail=str(e))
    return HTTPException(status_code=400, detail=str(e))


def _slot_type_param(slot_type: str) -> str:
    slot_type = slot_type.upper()
    if slot_type not in SLOT_TYPES:
        raise HTTPException(status_code=400, detail=f"slotType must be one of {', '.join(SLOT_TYPES)}")
    return slot_type


def _outcome_response(outcome: BookingOutcome) -> BookingOutcomeResponse:
    return BookingOutcomeResponse(
        booking=BookingResponse.from_appointment(outcome.appointment),
        secondary=BookingResponse.from_appointment(outcome.secondary) if outcome.secondary else None,
        occurrences=[BookingResponse.from_appointment(o) for o in outcome.occurrences],
        warnings=outcome.warnings,
    )


# ============================================================================
# BOOKINGS
# ============================================================================


@router.post("/tenants/{tenant_id}/bookings", response_model=BookingOutcomeResponse, status_code=201)
async def create_booking(
    tenant_id: int,
    data: BookingUpsert,
    service: BookingService = Depends(get_booking_service),
):
    """Create a booking; mixed sunrise/dusk requests may produce a second booking"""
    try:
        outcome = await service.upsert_booking(tenant_id, data.model_copy(update={"id": None}))
    except SchedulingError as e:
        raise _to_http_error(e) from e
    return _outcome_response(outcome)


@router.put("/tenants/{tenant_id}/bookings/{booking_id}", response_model=BookingOutcomeResponse)
async def update_booking(
    tenant_id: int,
    booking_id: int,
    data: BookingUpsert,
    service: BookingService = Depends(get_booking_service),
):
    try:
        outcome = await service.upsert_booking(tenant_id, data.model_copy(update={"id": booking_id}))
    except SchedulingError as e:
        raise _to_http_error(e) from e
    return _outcome_response(outcome)


@router.get("/tenants/{tenant_id}/bookings/{booking_id}", response_model=BookingResponse)
async def get_booking(
    tenant_id: int,
    booking_id: int,
    service: BookingService = Depends(get_booking_service),
):
    try:
        return BookingResponse.from_appointment(service.get_booking(tenant_id, booking_id))
    except SchedulingError as e:
        raise _to_http_error(e) from e


# ============================================================================
# SLOTS & BUSINESS HOURS
# ============================================================================


@router.get("/tenants/{tenant_id}/slot-quota", response_model=SlotQuotaResponse)
async def get_slot_quota(
    tenant_id: int,
    day: date = Query(..., alias="date"),
    slot_type: str = Query(..., alias="slotType"),
    service: BookingService = Depends(get_booking_service),
):
    """How many sunrise/dusk bookings a day allows and how many are taken"""
    slot_type = _slot_type_param(slot_type)
    try:
        limit, used = service.slot_quota(tenant_id, day, slot_type)
    except SchedulingError as e:
        raise _to_http_error(e) from e

    remaining = None if limit is None else max(0, limit - used)
    return SlotQuotaResponse(day=day, slotType=slot_type, limit=limit, used=used, remaining=remaining)


@router.put("/tenants/{tenant_id}/business-hours")
async def update_business_hours(
    tenant_id: int,
    data: BusinessHoursUpdate,
    service: BookingService = Depends(get_booking_service),
):
    hours = {key: day.model_dump() for key, day in data.hours.items()}
    try:
        tenant, created = await service.update_business_hours(tenant_id, hours)
    except SchedulingError as e:
        raise _to_http_error(e) from e
    return {"hours": tenant.business_hours, "placeholderCount": created}


@router.delete("/tenants/{tenant_id}/placeholders", response_model=PlaceholderCleanupResponse)
async def clear_placeholders(
    tenant_id: int,
    slot_type: Optional[str] = Query(None, alias="slotType"),
    day: Optional[date] = Query(None, alias="date"),
    service: BookingService = Depends(get_booking_service),
):
    """Remove system-generated sunrise/dusk placeholder slots (one day, or all)"""
    if slot_type:
        slot_type = _slot_type_param(slot_type)
    try:
        deleted = service.clear_placeholders(tenant_id, slot_type, day)
    except SchedulingError as e:
        raise _to_http_error(e) from e
    return PlaceholderCleanupResponse(deletedCount=deleted)


# ============================================================================
# LOGISTICS
# ============================================================================


@router.get("/logistics/sun-time", response_model=SunTimeResponse)
async def get_ideal_sun_time(
    address: str,
    day: date = Query(..., alias="date"),
    event_type: str = Query(..., alias="type"),
    time_zone: Optional[str] = Query(None, alias="timeZone"),
    service: BookingService = Depends(get_booking_service),
):
    event = await service.ideal_sun_time(address, day, _slot_type_param(event_type), time_zone)
    if not event:
        raise HTTPException(status_code=422, detail="Failed to calculate sun time")
    return SunTimeResponse(time=event.time, label=event.label)


@router.get("/logistics/travel-time", response_model=TravelTimeResponse)
async def get_travel_time(
    origin: str,
    destination: str,
    service: BookingService = Depends(get_booking_service),
):
    route = await service.travel_time(origin, destination)
    if not route:
        raise HTTPException(status_code=422, detail="Failed to calculate travel time")
    return TravelTimeResponse(
        durationSeconds=route.seconds,
        durationText=route.duration_text,
        distanceMeters=route.meters,
        distanceText=route.distance_text,
    )
