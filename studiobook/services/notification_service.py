"""
Booking Notification Service
Sends the booking lifecycle emails: new booking (studio), confirmation (client)
and assignment (crew member).

Callers treat every send as fire-and-forget; errors propagate from here so the
caller can log them against the booking.
"""

import logging
from typing import Optional
from zoneinfo import ZoneInfo

from sqlalchemy.orm import Session

from ..config import FRONTEND_URL
from ..email_service import send_email
from ..models import Appointment, CrewMember, Tenant

logger = logging.getLogger(__name__)

NEW_BOOKING = "new_booking"
CLIENT_CONFIRMATION = "client_confirmation"
CREW_ASSIGNMENT = "crew_assignment"


def _format_window(appointment: Appointment) -> str:
    tz = ZoneInfo(appointment.timezone)
    utc = ZoneInfo("UTC")
    start = appointment.start_at.replace(tzinfo=utc).astimezone(tz)
    end = appointment.end_at.replace(tzinfo=utc).astimezone(tz)
    return f"{start:%A %d %B %Y}, {start:%H:%M} - {end:%H:%M}"


def _client_contact(appointment: Appointment) -> tuple[Optional[str], str]:
    if appointment.client:
        return appointment.client.email, appointment.client.name
    return appointment.otc_email, appointment.otc_name or "there"


class BookingNotifier:
    """Dispatches booking emails by notification kind"""

    async def notify(
        self,
        db: Session,
        kind: str,
        appointment: Appointment,
        crew_member_id: Optional[int] = None,
    ) -> bool:
        """Send one notification. Returns False when there is no recipient."""
        if kind == NEW_BOOKING:
            return await self.send_new_booking_notification(db, appointment)
        if kind == CLIENT_CONFIRMATION:
            return await self.send_booking_confirmation_to_client(appointment)
        if kind == CREW_ASSIGNMENT:
            return await self.send_booking_assignment_notification(db, appointment, crew_member_id)
        raise ValueError(f"Unknown notification kind: {kind}")

    async def send_new_booking_notification(self, db: Session, appointment: Appointment) -> bool:
        tenant = db.query(Tenant).filter(Tenant.id == appointment.tenant_id).first()
        if not tenant or not tenant.notification_email:
            logger.debug(f"⚠️ No studio email for new booking {appointment.id}")
            return False

        location = appointment.location.name if appointment.location else "No address"
        await send_email(
            to=tenant.notification_email,
            subject=f"New booking: {appointment.title}",
            html=(
                f"<p><strong>{appointment.title}</strong> ({appointment.status})</p>"
                f"<p>{_format_window(appointment)}<br>{location}</p>"
                f'<p><a href="{FRONTEND_URL}/tenant/bookings?id={appointment.id}">Open booking</a></p>'
            ),
        )
        return True

    async def send_booking_confirmation_to_client(self, appointment: Appointment) -> bool:
        email, name = _client_contact(appointment)
        if not email:
            logger.debug(f"⚠️ No client email for booking {appointment.id}")
            return False

        await send_email(
            to=email,
            subject=f"Your booking is confirmed - {appointment.title}",
            html=(
                f"<p>Hi {name},</p>"
                f"<p>Your booking <strong>{appointment.title}</strong> is confirmed for "
                f"{_format_window(appointment)}.</p>"
            ),
        )
        return True

    async def send_booking_assignment_notification(
        self, db: Session, appointment: Appointment, crew_member_id: Optional[int]
    ) -> bool:
        member = db.query(CrewMember).filter(CrewMember.id == crew_member_id).first()
        if not member or not member.email:
            logger.debug(f"⚠️ No email for crew member {crew_member_id}")
            return False

        location = appointment.location.name if appointment.location else "TBC"
        await send_email(
            to=member.email,
            subject=f"You have been assigned: {appointment.title}",
            html=(
                f"<p>Hi {member.display_name},</p>"
                f"<p>You are booked for <strong>{appointment.title}</strong> on "
                f"{_format_window(appointment)} at {location}.</p>"
            ),
        )
        return True
