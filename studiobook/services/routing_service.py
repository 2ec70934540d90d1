"""
Drive-time estimates via the Google Distance Matrix API.
"""

import logging
from typing import Optional

import httpx
from pydantic import BaseModel

from ..config import GOOGLE_MAPS_API_KEY, HTTP_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)

DISTANCE_MATRIX_URL = "https://maps.googleapis.com/maps/api/distancematrix/json"


class RouteEstimate(BaseModel):
    seconds: int
    meters: Optional[int] = None
    duration_text: Optional[str] = None
    distance_text: Optional[str] = None


class RoutingService:
    def __init__(self, api_key: Optional[str] = GOOGLE_MAPS_API_KEY, timeout: float = HTTP_TIMEOUT_SECONDS):
        self.api_key = api_key
        self.timeout = timeout

    async def route_duration(self, origin: str, destination: str) -> Optional[RouteEstimate]:
        """Drive time between two addresses, or None when it cannot be computed"""
        if not self.api_key:
            logger.error("Google Maps API key missing for travel calculation")
            return None

        params = {"origins": origin, "destinations": destination, "key": self.api_key}
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.get(DISTANCE_MATRIX_URL, params=params)
            data = resp.json()
        except Exception as e:
            logger.error(f"❌ Error calculating travel time: {e}")
            return None

        rows = data.get("rows") or [{}]
        elements = rows[0].get("elements") or [{}]
        element = elements[0]
        if data.get("status") != "OK" or element.get("status") != "OK":
            logger.info(f"Distance Matrix failed for: {origin} -> {destination}")
            return None

        return RouteEstimate(
            seconds=int(element["duration"]["value"]),
            meters=element.get("distance", {}).get("value"),
            duration_text=element["duration"].get("text"),
            distance_text=element.get("distance", {}).get("text"),
        )
