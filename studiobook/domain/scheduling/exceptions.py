"""Scheduling errors - every rejection is raised before anything is committed"""

from datetime import date


class SchedulingError(Exception):
    """Base class for booking rejections"""


class BookingValidationError(SchedulingError):
    """The request itself is incomplete or inconsistent"""


class BookingNotFoundError(SchedulingError):
    pass


class QuotaExceededError(SchedulingError):
    def __init__(self, slot_type: str, on_date: date, limit: int):
        self.slot_type = slot_type
        self.on_date = on_date
        self.limit = limit
        super().__init__(
            f"Daily {slot_type} limit reached for {on_date:%A %d %B %Y} "
            f"(limit: {limit} per day)"
        )


class TravelConflictError(SchedulingError):
    def __init__(self, adjacent_title: str, required_minutes: int, available_minutes: int):
        self.adjacent_title = adjacent_title
        self.required_minutes = required_minutes
        self.available_minutes = available_minutes
        super().__init__(
            f'Not enough travel time around "{adjacent_title}": '
            f"{required_minutes} minutes required, {available_minutes} minutes available"
        )
