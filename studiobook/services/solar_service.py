"""
Sun data via the Open-Meteo forecast API.
Returns sunrise/sunset as local wall-clock strings ("2024-06-21T06:03").
"""

import logging
from datetime import date
from typing import Optional

import httpx
from pydantic import BaseModel

from ..config import HTTP_TIMEOUT_SECONDS, OPEN_METEO_BASE_URL

logger = logging.getLogger(__name__)

# Open-Meteo forecasts at most 16 days ahead
MAX_FORECAST_DAYS = 16


class SunTimes(BaseModel):
    sunrise: str
    sunset: str


class SolarDataService:
    def __init__(self, base_url: str = OPEN_METEO_BASE_URL, timeout: float = HTTP_TIMEOUT_SECONDS):
        self.base_url = base_url
        self.timeout = timeout

    async def fetch_sun_times(
        self, lat: float, lng: float, on_date: date, time_zone: Optional[str] = None
    ) -> Optional[SunTimes]:
        days = await self.fetch_sun_range(lat, lng, on_date, on_date, time_zone)
        return days.get(on_date)

    async def fetch_sun_range(
        self, lat: float, lng: float, start: date, end: date, time_zone: Optional[str] = None
    ) -> dict[date, SunTimes]:
        """Sun times per day for [start, end]; empty on any failure"""
        params = {
            "latitude": str(lat),
            "longitude": str(lng),
            "start_date": start.isoformat(),
            "end_date": end.isoformat(),
            "daily": "sunrise,sunset",
            "timezone": time_zone or "auto",
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.get(f"{self.base_url}/v1/forecast", params=params)
            if resp.status_code >= 400:
                logger.warning(f"⚠️ Open-Meteo error {resp.status_code}: {resp.text[:200]}")
                return {}

            daily = resp.json().get("daily") or {}
            days = daily.get("time") or [start.isoformat()]
            sunrises = daily.get("sunrise") or []
            sunsets = daily.get("sunset") or []
            result = {
                date.fromisoformat(day): SunTimes(sunrise=sunrise, sunset=sunset)
                for day, sunrise, sunset in zip(days, sunrises, sunsets)
                if sunrise and sunset
            }
        except Exception as e:
            logger.error(f"❌ Sun data fetch failed for ({lat}, {lng}) {start} - {end}: {e}")
            return {}

        if not result:
            logger.debug(f"No sun data returned for ({lat}, {lng}) {start} - {end}")
        return result
