"""
Daily caps on SUNRISE / DUSK bookings.
"""

import logging
from datetime import date
from typing import Optional

from sqlalchemy.orm import Session

from ...models import Tenant
from .exceptions import QuotaExceededError
from .repository import BookingRepository
from .time_calculator import local_day_bounds, weekday_key

logger = logging.getLogger(__name__)

# A configured cap of 99 means "no limit"
UNCAPPED = 99


def effective_cap(business_hours: Optional[dict], weekday: str, slot_type: str) -> int:
    """
    Daily cap for ``slot_type`` on ``weekday`` ("0" = Sunday).

    An explicit count in the day's config wins. Otherwise an open day allows
    one booking and a closed day none. Days missing from the config are open;
    placeholder generation differs here and creates nothing for such days.
    """
    day = (business_hours or {}).get(weekday) or {}
    explicit = day.get(slot_type.lower())
    if explicit is not None:
        return int(explicit)
    return 1 if day.get("open", True) else 0


class SlotQuotaEnforcer:
    def __init__(self):
        self.repo = BookingRepository()

    def usage(
        self,
        db: Session,
        tenant: Tenant,
        on_date: date,
        slot_type: str,
        time_zone: Optional[str] = None,
        exclude_id: Optional[int] = None,
    ) -> tuple[Optional[int], int]:
        """(cap, used) for the day; cap is None when uncapped, and then nothing is counted"""
        cap = effective_cap(tenant.business_hours, weekday_key(on_date), slot_type)
        if cap >= UNCAPPED:
            return None, 0

        day_start, day_end = local_day_bounds(on_date, time_zone or tenant.timezone)
        used = self.repo.count_slot_appointments(
            db, tenant.id, slot_type, day_start, day_end, exclude_id=exclude_id
        )
        return cap, used

    def check(
        self,
        db: Session,
        tenant: Tenant,
        on_date: date,
        slot_type: str,
        time_zone: Optional[str] = None,
        exclude_id: Optional[int] = None,
    ) -> None:
        cap, used = self.usage(db, tenant, on_date, slot_type, time_zone, exclude_id)
        if cap is None:
            logger.debug(f"{slot_type} uncapped on {on_date} for tenant {tenant.id}")
            return

        if used >= cap:
            logger.warning(f"⚠️ {slot_type} quota reached for tenant {tenant.id} on {on_date}: {used}/{cap}")
            raise QuotaExceededError(slot_type, on_date, cap)
