"""
Time zone helpers for the scheduling domain.

Appointment instants are stored as naive UTC. Calendar questions ("which day is
this booking on?") are answered in the booking's own IANA zone, never in the
server's zone.
"""

from datetime import date, datetime, time, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

UTC = ZoneInfo("UTC")


def zoned_wall_time_to_utc(wall: datetime, time_zone: str) -> datetime:
    """
    Reinterpret a naive wall-clock reading as if it was observed in ``time_zone``.

    Builds a UTC guess from the literal numbers, formats the guess back through
    the target zone and shifts it by the discrepancy. A second pass settles
    readings that sit next to a DST transition.
    """
    zone = ZoneInfo(time_zone)
    wall = wall.replace(tzinfo=None)
    guess = wall.replace(tzinfo=UTC)
    for _ in range(2):
        observed = guess.astimezone(zone).replace(tzinfo=None)
        drift = observed - wall
        if not drift:
            break
        guess = guess - drift
    return guess


def wall_clock_to_instant(value: str, time_zone: Optional[str] = None) -> datetime:
    """Parse a provider timestamp ("2024-06-21T06:03") into an aware UTC datetime.

    Without a zone the reading is taken as server-local time.
    """
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is not None:
        return parsed.astimezone(UTC)
    if time_zone:
        return zoned_wall_time_to_utc(parsed, time_zone)
    return parsed.astimezone().astimezone(UTC)


def to_utc_naive(value: datetime, time_zone: str) -> datetime:
    """Normalise a request datetime for storage; naive values are read in ``time_zone``"""
    if value.tzinfo is None:
        value = zoned_wall_time_to_utc(value, time_zone)
    return value.astimezone(UTC).replace(tzinfo=None)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to a stored naive datetime"""
    return value.replace(tzinfo=UTC)


def to_local(value: datetime, time_zone: str) -> datetime:
    return as_utc(value).astimezone(ZoneInfo(time_zone))


def local_date(value: datetime, time_zone: str) -> date:
    """Calendar date of a stored (naive UTC) instant in ``time_zone``"""
    return to_local(value, time_zone).date()


def local_day_bounds(on_date: date, time_zone: str) -> tuple[datetime, datetime]:
    """Naive UTC [start, end) of a local calendar day"""
    start = zoned_wall_time_to_utc(datetime.combine(on_date, time.min), time_zone)
    end = zoned_wall_time_to_utc(datetime.combine(on_date + timedelta(days=1), time.min), time_zone)
    return start.replace(tzinfo=None), end.replace(tzinfo=None)


def weekday_key(on_date: date) -> str:
    """Business-hours key for a date: "0" = Sunday .. "6" = Saturday"""
    return str((on_date.weekday() + 1) % 7)
