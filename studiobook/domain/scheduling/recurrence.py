"""
Recurring block-outs.

A repeated block-out is stored as independent rows; there is no series record,
so cancelling one occurrence leaves the others untouched.
"""

from datetime import datetime
from typing import Iterator

from dateutil.relativedelta import relativedelta

from ...models import Appointment, CrewAssignment
from .time_calculator import to_local, to_utc_naive

# cadence -> (increment, total occurrences including the base)
CADENCES = {
    "daily": (relativedelta(days=1), 7),
    "weekly": (relativedelta(weeks=1), 4),
    "weekly_6m": (relativedelta(weeks=1), 26),
    "weekly_1y": (relativedelta(weeks=1), 52),
    "monthly_6m": (relativedelta(months=1), 6),
    "monthly_1y": (relativedelta(months=1), 12),
}


def occurrence_count(cadence: str) -> int:
    return CADENCES[cadence][1]


def shifted_windows(
    start_at: datetime, end_at: datetime, cadence: str, time_zone: str
) -> Iterator[tuple[datetime, datetime]]:
    """
    Yield the (start, end) windows after the base for ``cadence``.

    Shifts are k * increment from the base on the local wall clock, so a 9am
    block-out stays at 9am across DST changes and month ends clamp
    (Jan 31 -> Feb 29 -> Mar 31). Duration is preserved exactly.
    """
    increment, total = CADENCES[cadence]
    duration = end_at - start_at
    local_start = to_local(start_at, time_zone).replace(tzinfo=None)

    for k in range(1, total):
        start = to_utc_naive(local_start + increment * k, time_zone)
        yield start, start + duration


def expand(base: Appointment, cadence: str) -> Iterator[Appointment]:
    """Unsaved copies of a block-out for every later occurrence of ``cadence``"""
    crew_ids = base.crew_member_ids
    for start, end in shifted_windows(base.start_at, base.end_at, cadence, base.timezone):
        yield Appointment(
            tenant_id=base.tenant_id,
            title=base.title,
            status=base.status,
            start_at=start,
            end_at=end,
            timezone=base.timezone,
            slot_type=None,
            is_placeholder=False,
            internal_notes=base.internal_notes,
            property_status=base.property_status,
            assignments=[
                CrewAssignment(tenant_id=base.tenant_id, crew_member_id=crew_id) for crew_id in crew_ids
            ],
        )
