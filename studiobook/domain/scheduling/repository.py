"""Booking repository - Database operations for the scheduling engine

Write helpers flush but never commit; the caller owns the transaction so an
appointment, its service links and its crew assignments land together.
"""

import re
from datetime import datetime
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ...models import (
    Appointment,
    AppointmentService,
    Client,
    CrewAssignment,
    CrewMember,
    Location,
    Service,
    Tenant,
)
from .schemas import INACTIVE_STATUSES


def slugify(name: str) -> str:
    slug = re.sub(r"\s+", "-", name.lower())
    return re.sub(r"[^a-z0-9-]", "", slug)


class BookingRepository:
    """Repository for booking database operations"""

    @staticmethod
    def get_tenant(db: Session, tenant_id: int) -> Optional[Tenant]:
        return db.query(Tenant).filter(Tenant.id == tenant_id).first()

    @staticmethod
    def lock_tenant(db: Session, tenant_id: int) -> Optional[Tenant]:
        """Row-lock the tenant until the current transaction ends (no-op on SQLite)"""
        return db.query(Tenant).filter(Tenant.id == tenant_id).with_for_update().first()

    @staticmethod
    def get_appointment(db: Session, tenant_id: int, appointment_id: int) -> Optional[Appointment]:
        return (
            db.query(Appointment)
            .filter(Appointment.id == appointment_id, Appointment.tenant_id == tenant_id)
            .first()
        )

    @staticmethod
    def get_services(db: Session, tenant_id: int, service_ids: list[int]) -> list[Service]:
        """Services in the order they were requested; unknown ids are dropped"""
        if not service_ids:
            return []
        rows = (
            db.query(Service)
            .filter(Service.tenant_id == tenant_id, Service.id.in_(service_ids))
            .all()
        )
        by_id = {s.id: s for s in rows}
        return [by_id[sid] for sid in service_ids if sid in by_id]

    @staticmethod
    def get_crew_member_ids(db: Session, tenant_id: int, crew_ids: list[int]) -> set[int]:
        if not crew_ids:
            return set()
        rows = (
            db.query(CrewMember.id)
            .filter(CrewMember.tenant_id == tenant_id, CrewMember.id.in_(crew_ids))
            .all()
        )
        return {row[0] for row in rows}

    @staticmethod
    def get_client(db: Session, tenant_id: int, client_id: int) -> Optional[Client]:
        return db.query(Client).filter(Client.id == client_id, Client.tenant_id == tenant_id).first()

    @staticmethod
    def find_location_by_name(db: Session, tenant_id: int, name: str) -> Optional[Location]:
        return (
            db.query(Location)
            .filter(Location.tenant_id == tenant_id, Location.name == name)
            .first()
        )

    @staticmethod
    def create_location(
        db: Session,
        tenant_id: int,
        name: str,
        client_id: Optional[int] = None,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
    ) -> Location:
        location = Location(
            tenant_id=tenant_id,
            client_id=client_id,
            name=name,
            slug=slugify(name),
            latitude=latitude,
            longitude=longitude,
        )
        db.add(location)
        db.flush()
        return location

    @staticmethod
    def count_slot_appointments(
        db: Session,
        tenant_id: int,
        slot_type: str,
        day_start: datetime,
        day_end: datetime,
        exclude_id: Optional[int] = None,
    ) -> int:
        """Active, non-placeholder bookings of ``slot_type`` starting in [day_start, day_end)"""
        query = db.query(func.count(Appointment.id)).filter(
            Appointment.tenant_id == tenant_id,
            Appointment.slot_type == slot_type,
            Appointment.is_placeholder.is_(False),
            Appointment.status.notin_(INACTIVE_STATUSES),
            Appointment.start_at >= day_start,
            Appointment.start_at < day_end,
        )
        if exclude_id is not None:
            query = query.filter(Appointment.id != exclude_id)
        return query.scalar() or 0

    @staticmethod
    def find_crew_appointments(
        db: Session,
        tenant_id: int,
        crew_ids: list[int],
        day_start: datetime,
        day_end: datetime,
        exclude_id: Optional[int] = None,
    ) -> list[Appointment]:
        """Active bookings starting in [day_start, day_end) that share a crew member"""
        query = (
            db.query(Appointment)
            .join(CrewAssignment, CrewAssignment.appointment_id == Appointment.id)
            .filter(
                Appointment.tenant_id == tenant_id,
                CrewAssignment.crew_member_id.in_(crew_ids),
                Appointment.status.notin_(INACTIVE_STATUSES),
                Appointment.start_at >= day_start,
                Appointment.start_at < day_end,
            )
        )
        if exclude_id is not None:
            query = query.filter(Appointment.id != exclude_id)
        return query.distinct().order_by(Appointment.start_at).all()

    @staticmethod
    def save_appointment(
        db: Session,
        appointment: Appointment,
        service_ids: list[int],
        crew_ids: list[int],
        **fields,
    ) -> Appointment:
        """Apply fields and replace service links and crew assignments"""
        for key, value in fields.items():
            setattr(appointment, key, value)

        appointment.service_links = [
            AppointmentService(service_id=sid, position=position)
            for position, sid in enumerate(service_ids)
        ]
        appointment.assignments = [
            CrewAssignment(tenant_id=appointment.tenant_id, crew_member_id=cid, role="PHOTOGRAPHER")
            for cid in crew_ids
        ]
        db.add(appointment)
        db.flush()
        return appointment

    @staticmethod
    def delete_placeholders(
        db: Session,
        tenant_id: int,
        slot_type: Optional[str] = None,
        day_start: Optional[datetime] = None,
        day_end: Optional[datetime] = None,
    ) -> int:
        query = db.query(Appointment).filter(
            Appointment.tenant_id == tenant_id,
            Appointment.is_placeholder.is_(True),
            Appointment.slot_type.in_(("SUNRISE", "DUSK")),
        )
        if slot_type:
            query = query.filter(Appointment.slot_type == slot_type)
        if day_start is not None:
            query = query.filter(Appointment.start_at >= day_start)
        if day_end is not None:
            query = query.filter(Appointment.start_at < day_end)

        placeholders = query.all()
        for placeholder in placeholders:
            db.delete(placeholder)
        db.flush()
        return len(placeholders)

    @staticmethod
    def add_placeholders(db: Session, placeholders: list[Appointment]) -> None:
        db.add_all(placeholders)
        db.flush()

    @staticmethod
    def update_business_hours(db: Session, tenant: Tenant, hours: dict) -> Tenant:
        tenant.business_hours = hours
        db.flush()
        return tenant
