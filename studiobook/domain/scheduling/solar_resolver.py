"""
Ideal arrival times for sunrise and dusk shoots.

Failures never raise: a None result means "cannot auto-place" and callers fall
back to the requested time.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Optional

from pydantic import BaseModel

from .time_calculator import wall_clock_to_instant

logger = logging.getLogger(__name__)

# Crew arrives ahead of the event to set up
ARRIVAL_OFFSETS = {
    "SUNRISE": timedelta(minutes=15),
    "DUSK": timedelta(minutes=25),
}
EVENT_LABELS = {"SUNRISE": "Sunrise", "DUSK": "Sunset"}


class SolarEvent(BaseModel):
    time: datetime  # aware UTC arrival time
    label: str


class SolarEventResolver:
    """Geocode an address and turn the day's sunrise/sunset into an arrival time"""

    def __init__(self, geocoder, solar_provider):
        self.geocoder = geocoder
        self.solar_provider = solar_provider

    async def resolve(
        self,
        address: str,
        on_date: date,
        event_type: str,
        time_zone: Optional[str] = None,
    ) -> Optional[SolarEvent]:
        if event_type not in ARRIVAL_OFFSETS:
            raise ValueError(f"Unsupported solar event: {event_type}")

        try:
            coords = await self.geocoder.geocode(address)
            if not coords:
                logger.info(f"📍 Could not geocode '{address}' for {event_type} placement")
                return None

            sun_times = await self.solar_provider.fetch_sun_times(coords.lat, coords.lng, on_date, time_zone)
            if not sun_times:
                logger.info(f"☀️ No sun data for '{address}' on {on_date}")
                return None

            raw = sun_times.sunrise if event_type == "SUNRISE" else sun_times.sunset
            event_time = wall_clock_to_instant(raw, time_zone)
        except Exception as e:
            logger.error(f"❌ Error getting ideal sun time for '{address}': {e}")
            return None

        return SolarEvent(time=event_time - ARRIVAL_OFFSETS[event_type], label=EVENT_LABELS[event_type])
