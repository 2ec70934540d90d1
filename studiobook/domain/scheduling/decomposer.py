"""
Splits a mixed booking into a primary booking (standard services) and one
secondary booking (SUNRISE/DUSK services) placed at the ideal arrival time.
"""

import logging
from datetime import timedelta
from typing import Optional

from pydantic import BaseModel

from ...models import Service
from .schemas import BookingUpsert
from .solar_resolver import SolarEventResolver
from .time_calculator import local_date, to_utc_naive

logger = logging.getLogger(__name__)


class Decomposition(BaseModel):
    primary_service_ids: list[int]
    primary_slot_type: Optional[str] = None
    secondary: Optional[BookingUpsert] = None


def partition_services(services: list[Service]) -> tuple[list[Service], list[Service]]:
    """(specialized, standard), each keeping the requested order"""
    specialized = [s for s in services if s.slot_type]
    standard = [s for s in services if not s.slot_type]
    return specialized, standard


def derive_slot_type(requested: Optional[str], services: list[Service]) -> Optional[str]:
    """Slot type of an unsplit booking: the explicit one, else that of an all-specialized service list"""
    if requested:
        return requested
    if services and all(s.slot_type for s in services):
        return services[0].slot_type
    return None


def total_duration(services: list[Service]) -> int:
    return sum(s.duration_minutes for s in services)


class BookingDecomposer:
    def __init__(self, resolver: SolarEventResolver):
        self.resolver = resolver

    async def decompose(
        self,
        request: BookingUpsert,
        services: list[Service],
        *,
        is_edit: bool,
        time_zone: str,
    ) -> Decomposition:
        specialized, standard = partition_services(services)
        if is_edit or not specialized or not standard:
            return Decomposition(
                primary_service_ids=[s.id for s in services],
                primary_slot_type=derive_slot_type(request.slotType, services),
            )

        # The secondary carries every specialized service under the first one's slot type
        slot_type = specialized[0].slot_type
        start_at = request.startAt
        event = None
        if request.address:
            requested_day = local_date(to_utc_naive(request.startAt, time_zone), time_zone)
            event = await self.resolver.resolve(request.address, requested_day, slot_type, time_zone)

        if event:
            start_at = event.time
            logger.info(f"🌅 {slot_type} booking placed at {event.label} arrival {event.time.isoformat()}")
        else:
            logger.info(f"{slot_type} time could not be resolved, keeping requested start")

        secondary = request.model_copy(
            update={
                "id": None,
                "title": f"{request.title} - {slot_type}",
                "serviceIds": [s.id for s in specialized],
                "slotType": slot_type,
                "startAt": start_at,
                "endAt": start_at + timedelta(minutes=total_duration(specialized)),
                "repeat": None,
            }
        )
        return Decomposition(
            primary_service_ids=[s.id for s in standard],
            primary_slot_type=None,
            secondary=secondary,
        )
