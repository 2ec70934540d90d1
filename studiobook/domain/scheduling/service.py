"""Booking service - the single entry point for creating and updating bookings

Pipeline per request:
    resolve linked records -> decompose, geocode (no lock held) -> lock tenant
    -> quota -> travel -> persist
    -> persist the secondary booking (at most one) -> expand block-outs -> notify
"""

import asyncio
import logging
from datetime import date, timedelta
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...config import NOTIFICATION_TIMEOUT_SECONDS
from ...models import Appointment, Location, Tenant
from ...services.notification_service import CLIENT_CONFIRMATION, CREW_ASSIGNMENT, NEW_BOOKING
from .decomposer import BookingDecomposer, derive_slot_type, total_duration
from .exceptions import BookingNotFoundError, BookingValidationError, SchedulingError
from .placeholders import PlaceholderGenerator
from .quota import SlotQuotaEnforcer
from .recurrence import expand, occurrence_count
from .repository import BookingRepository
from .schemas import BookingUpsert
from .solar_resolver import SolarEvent, SolarEventResolver
from .time_calculator import local_date, local_day_bounds, to_utc_naive
from .travel_validator import TravelFeasibilityValidator

logger = logging.getLogger(__name__)


class BookingOutcome:
    """Rows written for one logical booking request"""

    def __init__(self, appointment: Appointment):
        self.appointment = appointment
        self.secondary: Optional[Appointment] = None
        self.occurrences: list[Appointment] = []
        self.warnings: list[str] = []


class BookingService:
    """Service layer for booking business logic"""

    def __init__(
        self,
        db: Session,
        geocoder,
        solar_provider,
        route_provider,
        notifier,
        notification_timeout: float = NOTIFICATION_TIMEOUT_SECONDS,
    ):
        self.db = db
        self.repo = BookingRepository()
        self.geocoder = geocoder
        self.resolver = SolarEventResolver(geocoder, solar_provider)
        self.decomposer = BookingDecomposer(self.resolver)
        self.quota = SlotQuotaEnforcer()
        self.travel = TravelFeasibilityValidator(route_provider)
        self.placeholders = PlaceholderGenerator(solar_provider)
        self.route_provider = route_provider
        self.notifier = notifier
        self.notification_timeout = notification_timeout

    def get_tenant(self, tenant_id: int) -> Tenant:
        tenant = self.repo.get_tenant(self.db, tenant_id)
        if not tenant:
            raise BookingNotFoundError("Tenant not found")
        return tenant

    def get_booking(self, tenant_id: int, booking_id: int) -> Appointment:
        appointment = self.repo.get_appointment(self.db, tenant_id, booking_id)
        if not appointment:
            raise BookingNotFoundError("Booking not found")
        return appointment

    async def upsert_booking(self, tenant_id: int, request: BookingUpsert) -> BookingOutcome:
        """Create or update a booking, splitting and expanding it where applicable"""
        tenant = self.get_tenant(tenant_id)
        is_edit = request.id is not None
        logger.info(
            f"📥 {'Updating' if is_edit else 'Creating'} booking for tenant {tenant.id}: "
            f"'{request.title}' ({request.status})"
        )

        primary, secondary_request = await self._process(tenant, request, allow_split=not is_edit)
        outcome = BookingOutcome(primary)

        if secondary_request is not None:
            try:
                outcome.secondary, _ = await self._process(tenant, secondary_request, allow_split=False)
                logger.info(f"✅ Split booking {primary.id} -> {outcome.secondary.id} ({secondary_request.slotType})")
            except SchedulingError as e:
                logger.warning(f"⚠️ Secondary {secondary_request.slotType} booking for {primary.id} rejected: {e}")
                outcome.warnings.append(f"{secondary_request.slotType} booking was not created: {e}")

        if request.is_block_out and request.repeat and not is_edit:
            outcome.occurrences = self._persist_occurrences(primary, request.repeat, outcome.warnings)
        elif request.repeat and not request.is_block_out:
            logger.debug(f"Ignoring repeat '{request.repeat}' on client booking {primary.id}")

        if not request.is_block_out:
            await self._dispatch_notifications(primary, is_new=not is_edit, crew_ids=request.teamMemberIds)
            if outcome.secondary is not None:
                await self._dispatch_notifications(
                    outcome.secondary, is_new=True, crew_ids=secondary_request.teamMemberIds
                )

        return outcome

    async def _process(
        self, tenant: Tenant, request: BookingUpsert, allow_split: bool
    ) -> tuple[Appointment, Optional[BookingUpsert]]:
        """Validate and persist one booking; returns it and the split-off request, if any"""
        time_zone = request.timeZone or tenant.timezone
        is_blocked = request.is_block_out
        is_edit = request.id is not None

        if not is_blocked and not request.clientId and not (request.otcName or "").strip():
            raise BookingValidationError("A client or a one-time client name is required")

        appointment = self.get_booking(tenant.id, request.id) if is_edit else None
        services = [] if is_blocked else self._load_services(tenant.id, request.serviceIds)
        crew_ids = self._load_crew_ids(tenant.id, request.teamMemberIds)
        if not is_blocked and request.clientId and not self.repo.get_client(self.db, tenant.id, request.clientId):
            raise BookingValidationError("Client not found")

        enabled = tenant.scheduling_enabled and not is_blocked
        start_at = to_utc_naive(request.startAt, time_zone)
        end_at = to_utc_naive(request.endAt, time_zone)
        slot_type = None if is_blocked else derive_slot_type(request.slotType, services)
        secondary = None

        # Provider lookups run before the tenant lock is taken
        plan = None
        if enabled and allow_split:
            plan = await self.decomposer.decompose(request, services, is_edit=is_edit, time_zone=time_zone)
        coords = None if is_blocked else await self._geocode_new_location(tenant.id, request.address)

        try:
            if enabled:
                self.repo.lock_tenant(self.db, tenant.id)

            location = (
                None if is_blocked else self._resolve_location(tenant.id, request.address, request.clientId, coords)
            )

            if enabled:
                if plan is not None:
                    kept = set(plan.primary_service_ids)
                    services = [s for s in services if s.id in kept]
                    slot_type = plan.primary_slot_type
                    secondary = plan.secondary

                if services:
                    end_at = start_at + timedelta(minutes=total_duration(services))

                if slot_type:
                    self.quota.check(
                        self.db, tenant, local_date(start_at, time_zone), slot_type, time_zone, exclude_id=request.id
                    )

                if location and crew_ids:
                    await self.travel.validate(
                        self.db,
                        tenant.id,
                        start_at=start_at,
                        end_at=end_at,
                        time_zone=time_zone,
                        location_name=location.name,
                        crew_ids=crew_ids,
                        exclude_id=request.id,
                    )

            appointment = self.repo.save_appointment(
                self.db,
                appointment or Appointment(tenant_id=tenant.id),
                service_ids=[s.id for s in services],
                crew_ids=crew_ids,
                title=request.title,
                status=request.status,
                start_at=start_at,
                end_at=end_at,
                timezone=time_zone,
                slot_type=slot_type,
                is_placeholder=False,
                client_id=None if is_blocked else request.clientId,
                location_id=location.id if location else None,
                agent_id=None if is_blocked else request.agentId,
                otc_name=None if is_blocked else request.otcName,
                otc_email=None if is_blocked else request.otcEmail,
                otc_phone=None if is_blocked else request.otcPhone,
                otc_notes=None if is_blocked else request.otcNotes,
                internal_notes=request.notes or "",
                property_status=request.propertyStatus or "",
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(appointment)
        logger.info(f"✅ Booking {appointment.id} saved ({appointment.status}, slot: {appointment.slot_type})")
        return appointment, secondary

    def _load_services(self, tenant_id: int, service_ids: list[int]):
        services = self.repo.get_services(self.db, tenant_id, service_ids)
        missing = set(service_ids) - {s.id for s in services}
        if missing:
            raise BookingValidationError(f"Unknown services: {sorted(missing)}")
        return services

    def _load_crew_ids(self, tenant_id: int, crew_ids: list[int]) -> list[int]:
        known = self.repo.get_crew_member_ids(self.db, tenant_id, crew_ids)
        missing = set(crew_ids) - known
        if missing:
            raise BookingValidationError(f"Unknown team members: {sorted(missing)}")
        # de-duplicate, keep order
        return list(dict.fromkeys(crew_ids))

    async def _geocode_new_location(self, tenant_id: int, address: Optional[str]):
        """Coordinates for an address that has no stored location with coordinates yet"""
        name = (address or "").strip()
        if not name:
            return None

        location = self.repo.find_location_by_name(self.db, tenant_id, name)
        if location and location.latitude is not None and location.longitude is not None:
            return None

        try:
            return await self.geocoder.geocode(name)
        except Exception as e:
            logger.warning(f"⚠️ Geocoding '{name}' failed, location saved without coordinates: {e}")
            return None

    def _resolve_location(
        self, tenant_id: int, address: Optional[str], client_id: Optional[int], coords=None
    ) -> Optional[Location]:
        name = (address or "").strip()
        if not name:
            return None

        location = self.repo.find_location_by_name(self.db, tenant_id, name)
        if not location:
            location = self.repo.create_location(
                self.db,
                tenant_id,
                name,
                client_id,
                latitude=coords.lat if coords else None,
                longitude=coords.lng if coords else None,
            )
            logger.info(f"📍 Created location '{name}' for tenant {tenant_id}")
        elif coords and location.latitude is None:
            location.latitude = coords.lat
            location.longitude = coords.lng
        return location

    def _persist_occurrences(self, base: Appointment, cadence: str, warnings: list[str]) -> list[Appointment]:
        """Store each repeat of a block-out as its own row and transaction.

        A failed write stops the series; repeats already stored are kept.
        """
        occurrences = []
        expected = occurrence_count(cadence) - 1
        for occurrence in expand(base, cadence):
            try:
                self.db.add(occurrence)
                self.db.commit()
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error(f"❌ Repeat of block-out {base.id} on {occurrence.start_at} failed: {e}")
                warnings.append(
                    f"Repeat series stopped after {len(occurrences)} of {expected} occurrences: "
                    f"{local_date(occurrence.start_at, base.timezone)} could not be saved"
                )
                break
            self.db.refresh(occurrence)
            occurrences.append(occurrence)
        logger.info(f"🔁 Created {len(occurrences)} repeats of block-out {base.id} ({cadence})")
        return occurrences

    async def _dispatch_notifications(self, appointment: Appointment, is_new: bool, crew_ids: list[int]) -> None:
        """Each send is independent; failures are logged and never change the booking"""
        dispatches = []
        if is_new:
            dispatches.append((NEW_BOOKING, None))
        if appointment.status == "APPROVED":
            dispatches.append((CLIENT_CONFIRMATION, None))
            dispatches.extend((CREW_ASSIGNMENT, crew_id) for crew_id in dict.fromkeys(crew_ids))

        for kind, crew_id in dispatches:
            try:
                await asyncio.wait_for(
                    self.notifier.notify(self.db, kind, appointment, crew_member_id=crew_id),
                    timeout=self.notification_timeout,
                )
            except Exception as e:
                logger.error(f"❌ Notification {kind} failed for booking {appointment.id} (non-blocking): {e}")

    # Logistics helpers exposed alongside bookings

    async def ideal_sun_time(
        self, address: str, on_date: date, event_type: str, time_zone: Optional[str] = None
    ) -> Optional[SolarEvent]:
        return await self.resolver.resolve(address, on_date, event_type, time_zone)

    async def travel_time(self, origin: str, destination: str):
        return await self.route_provider.route_duration(origin, destination)

    def slot_quota(self, tenant_id: int, on_date: date, slot_type: str) -> tuple[Optional[int], int]:
        tenant = self.get_tenant(tenant_id)
        return self.quota.usage(self.db, tenant, on_date, slot_type)

    async def update_business_hours(
        self, tenant_id: int, hours: dict, today: Optional[date] = None
    ) -> tuple[Tenant, int]:
        """Store new hours and rebuild the future sunrise/dusk placeholders"""
        tenant = self.get_tenant(tenant_id)
        logger.info(f"🕒 Updating business hours for tenant {tenant.id}")
        try:
            self.repo.update_business_hours(self.db, tenant, hours)
            created = await self.placeholders.regenerate(self.db, tenant, today=today)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(tenant)
        return tenant, created

    def clear_placeholders(
        self, tenant_id: int, slot_type: Optional[str] = None, on_date: Optional[date] = None
    ) -> int:
        tenant = self.get_tenant(tenant_id)
        day_start = day_end = None
        if on_date:
            day_start, day_end = local_day_bounds(on_date, tenant.timezone)
        deleted = self.repo.delete_placeholders(self.db, tenant.id, slot_type, day_start, day_end)
        self.db.commit()
        logger.info(f"🧹 Removed {deleted} placeholder slots for tenant {tenant.id}")
        return deleted
