"""
Sunrise/dusk placeholder slots.

Saving business hours replaces every future placeholder with a fresh set: for
each of the next ``PLACEHOLDER_DAYS`` days, one row per configured sunrise or
dusk slot, spanning 30 minutes either side of that day's sun time. Placeholders
mark open capacity on the calendar and are never counted against the quota.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

from sqlalchemy.orm import Session

from ...config import PLACEHOLDER_DAYS, STUDIO_BASE_LATITUDE, STUDIO_BASE_LONGITUDE
from ...models import Appointment, Tenant
from .repository import BookingRepository
from .time_calculator import local_day_bounds, wall_clock_to_instant, weekday_key

logger = logging.getLogger(__name__)

# Sun data is requested for this many days; later days reuse the last known times
SUN_DATA_DAYS = 14
SLOT_WINDOW = timedelta(minutes=30)
# Calendar shows at most three slots per event
MAX_SLOTS_PER_EVENT = 3

PLACEHOLDER_TITLES = {"SUNRISE": "SUNRISE SLOT", "DUSK": "DUSK SLOT"}


def configured_slots(business_hours: Optional[dict], weekday: str, slot_type: str) -> int:
    """Placeholder count for a day; only explicit counts produce slots"""
    day = (business_hours or {}).get(weekday) or {}
    try:
        count = int(day.get(slot_type.lower()) or 0)
    except (TypeError, ValueError):
        return 0
    return max(0, min(MAX_SLOTS_PER_EVENT, count))


class PlaceholderGenerator:
    def __init__(self, solar_provider):
        self.solar_provider = solar_provider
        self.repo = BookingRepository()

    async def regenerate(self, db: Session, tenant: Tenant, today: Optional[date] = None) -> int:
        """Replace the tenant's future placeholders; returns how many were created.

        Flushes only, the caller commits.
        """
        time_zone = tenant.timezone
        today = today or datetime.now(ZoneInfo(time_zone)).date()
        day_start, _ = local_day_bounds(today, time_zone)

        removed = self.repo.delete_placeholders(db, tenant.id, day_start=day_start)
        logger.debug(f"Removed {removed} future placeholders for tenant {tenant.id}")

        hours = tenant.business_hours or {}
        if not any(
            configured_slots(hours, weekday_key(today + timedelta(days=i)), slot_type)
            for i in range(7)
            for slot_type in PLACEHOLDER_TITLES
        ):
            return 0

        lat = tenant.base_latitude if tenant.base_latitude is not None else STUDIO_BASE_LATITUDE
        lng = tenant.base_longitude if tenant.base_longitude is not None else STUDIO_BASE_LONGITUDE
        sun_days = await self.solar_provider.fetch_sun_range(
            lat, lng, today, today + timedelta(days=SUN_DATA_DAYS - 1), time_zone
        )
        if not sun_days:
            logger.warning(f"⚠️ No sun data for tenant {tenant.id}, placeholders not generated")
            return 0

        last_day = max(sun_days)
        placeholders = []
        for offset in range(PLACEHOLDER_DAYS):
            current = today + timedelta(days=offset)
            weekday = weekday_key(current)
            for slot_type, title in PLACEHOLDER_TITLES.items():
                count = configured_slots(hours, weekday, slot_type)
                if not count:
                    continue

                sun_time = self._sun_time(sun_days, last_day, current, slot_type, time_zone)
                for _ in range(count):
                    placeholders.append(
                        Appointment(
                            tenant_id=tenant.id,
                            title=title,
                            status="REQUESTED",
                            start_at=sun_time - SLOT_WINDOW,
                            end_at=sun_time + SLOT_WINDOW,
                            timezone=time_zone,
                            slot_type=slot_type,
                            is_placeholder=True,
                        )
                    )

        self.repo.add_placeholders(db, placeholders)
        logger.info(f"🌅 Generated {len(placeholders)} placeholder slots for tenant {tenant.id}")
        return len(placeholders)

    @staticmethod
    def _sun_time(sun_days: dict, last_day: date, current: date, slot_type: str, time_zone: str) -> datetime:
        """Naive UTC sun time; days past the forecast shift the last known reading"""
        source = current if current in sun_days else last_day
        reading = sun_days[source]
        raw = reading.sunrise if slot_type == "SUNRISE" else reading.sunset
        instant = wall_clock_to_instant(raw, time_zone).replace(tzinfo=None)
        return instant + timedelta(days=(current - source).days)
