"""
Geocoding Service
Resolves a free-text address to coordinates.

Uses the Google Geocoding API when GOOGLE_MAPS_API_KEY is configured and falls
back to OpenStreetMap Nominatim otherwise. Results are cached in Redis.
Every failure returns None; callers treat that as "cannot resolve".
"""

import logging
from typing import Optional

import httpx
from pydantic import BaseModel

from ..cache import cache
from ..config import (
    GEOCODE_CACHE_SECONDS,
    GOOGLE_MAPS_API_KEY,
    HTTP_TIMEOUT_SECONDS,
    NOMINATIM_BASE_URL,
    NOMINATIM_USER_AGENT,
)

logger = logging.getLogger(__name__)

GOOGLE_GEOCODE_URL = "https://maps.googleapis.com/maps/api/geocode/json"


class Coordinates(BaseModel):
    lat: float
    lng: float
    formatted_address: Optional[str] = None


class GeocodingService:
    def __init__(self, api_key: Optional[str] = GOOGLE_MAPS_API_KEY, timeout: float = HTTP_TIMEOUT_SECONDS):
        self.api_key = api_key
        self.timeout = timeout

    async def geocode(self, address: str) -> Optional[Coordinates]:
        addr = (address or "").strip()
        if not addr:
            return None

        cache_key = f"geo:point:{addr.lower()}"
        cached = cache.get(cache_key)
        if cached:
            return Coordinates(**cached)

        try:
            if self.api_key:
                coords = await self._geocode_google(addr)
            else:
                coords = await self._geocode_nominatim(addr)
        except Exception as e:
            logger.error(f"❌ Geocoding error for '{addr}': {e}")
            return None

        if coords:
            cache.set(cache_key, coords.model_dump(), GEOCODE_CACHE_SECONDS)
        return coords

    async def _geocode_google(self, address: str) -> Optional[Coordinates]:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            resp = await client.get(GOOGLE_GEOCODE_URL, params={"address": address, "key": self.api_key})
        data = resp.json()
        status = str(data.get("status") or "")
        results = data.get("results") or []

        if status != "OK" or not results or not results[0].get("geometry", {}).get("location"):
            logger.warning(f"⚠️ Google geocoding failed ({status}): {data.get('error_message', '')}")
            return None

        location = results[0]["geometry"]["location"]
        return Coordinates(
            lat=float(location["lat"]),
            lng=float(location["lng"]),
            formatted_address=results[0].get("formatted_address"),
        )

    async def _geocode_nominatim(self, address: str) -> Optional[Coordinates]:
        # Required by Nominatim policy (include a way to contact you)
        headers = {"User-Agent": NOMINATIM_USER_AGENT, "Accept": "application/json"}
        params = {"q": address, "format": "json", "limit": "1"}

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            resp = await client.get(f"{NOMINATIM_BASE_URL}/search", params=params, headers=headers)
        if resp.status_code >= 400:
            logger.warning(f"Nominatim error {resp.status_code}: {resp.text[:200]}")
            return None

        raw = resp.json()
        if not raw:
            logger.debug(f"No Nominatim match for '{address}'")
            return None

        item = raw[0]
        return Coordinates(
            lat=float(item["lat"]),
            lng=float(item["lon"]),
            formatted_address=item.get("display_name"),
        )
