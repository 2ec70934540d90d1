"""
Travel feasibility between back-to-back bookings of the same crew member.
"""

import logging
import math
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from .exceptions import TravelConflictError
from .repository import BookingRepository
from .time_calculator import local_date, local_day_bounds

logger = logging.getLogger(__name__)

TRAVEL_BUFFER = timedelta(minutes=15)


class TravelFeasibilityValidator:
    def __init__(self, route_provider):
        self.route_provider = route_provider
        self.repo = BookingRepository()

    async def validate(
        self,
        db: Session,
        tenant_id: int,
        *,
        start_at: datetime,
        end_at: datetime,
        time_zone: str,
        location_name: Optional[str],
        crew_ids: list[int],
        exclude_id: Optional[int] = None,
    ) -> None:
        """
        Raise TravelConflictError when a same-day booking of a shared crew
        member leaves less than drive time + buffer before or after this one.

        Overlapping bookings are not examined here. Pairs whose drive time
        cannot be computed are skipped. The first conflict found is raised.
        """
        if not location_name or not crew_ids:
            return

        day_start, day_end = local_day_bounds(local_date(start_at, time_zone), time_zone)
        neighbours = self.repo.find_crew_appointments(
            db, tenant_id, crew_ids, day_start, day_end, exclude_id=exclude_id
        )

        for other in neighbours:
            if not other.location:
                continue

            if other.end_at <= start_at:
                origin, destination = other.location.name, location_name
                available = start_at - other.end_at
            elif other.start_at >= end_at:
                origin, destination = location_name, other.location.name
                available = other.start_at - end_at
            else:
                continue

            route = await self.route_provider.route_duration(origin, destination)
            if not route:
                logger.info(f"🚗 No drive time for {origin} -> {destination}, skipping check")
                continue

            required = timedelta(seconds=route.seconds) + TRAVEL_BUFFER
            if available < required:
                required_minutes = math.ceil(required.total_seconds() / 60)
                available_minutes = int(available.total_seconds() // 60)
                logger.warning(
                    f"⚠️ Travel conflict with booking {other.id}: "
                    f"{required_minutes} min required, {available_minutes} min available"
                )
                raise TravelConflictError(other.title, required_minutes, available_minutes)
