"""
Booking and scheduling models
"""

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .config import DEFAULT_TIMEZONE, SCHEDULING_ENABLED_DEFAULT
from .database import Base


class Tenant(Base):
    __tablename__ = "tenants"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    timezone = Column(String(64), default=DEFAULT_TIMEZONE, nullable=False)
    # Weekday operating config keyed "0".."6" (Sunday = "0"):
    # {"open": bool, "start": "08:00", "end": "17:00", "sunrise": int | None, "dusk": int | None}
    business_hours = Column(JSON, nullable=True)
    # Gates duration recompute, splitting, quota and travel checks
    scheduling_enabled = Column(Boolean, default=SCHEDULING_ENABLED_DEFAULT, nullable=False)
    notification_email = Column(String(255), nullable=True)
    # Where placeholder sun times are computed
    base_latitude = Column(Float, nullable=True)
    base_longitude = Column(Float, nullable=True)
    created_at = Column(DateTime, server_default=func.now())


class Client(Base):
    __tablename__ = "clients"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)


class Agent(Base):
    __tablename__ = "agents"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True)


class Location(Base):
    """A shoot address; looked up by exact name within the tenant"""

    __tablename__ = "locations"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=True)
    name = Column(String(500), nullable=False, index=True)
    slug = Column(String(500), nullable=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    created_at = Column(DateTime, server_default=func.now())


class Service(Base):
    __tablename__ = "services"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    duration_minutes = Column(Integer, nullable=False, default=60)
    slot_type = Column(String(20), nullable=True)  # SUNRISE, DUSK or null for standard services


class CrewMember(Base):
    __tablename__ = "crew_members"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    display_name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)


class Appointment(Base):
    """A booking on the studio calendar.

    start_at/end_at are stored as naive UTC; ``timezone`` holds the zone the
    booking was made in and defines its calendar day.
    """

    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    title = Column(String(255), nullable=False)

    # REQUESTED, PENCILLED, APPROVED, DECLINED, CANCELLED, BLOCKED
    status = Column(String(20), nullable=False, default="REQUESTED", index=True)

    start_at = Column(DateTime, nullable=False, index=True)
    end_at = Column(DateTime, nullable=False)
    timezone = Column(String(64), nullable=False, default=DEFAULT_TIMEZONE)

    slot_type = Column(String(20), nullable=True, index=True)
    is_placeholder = Column(Boolean, default=False, nullable=False)

    client_id = Column(Integer, ForeignKey("clients.id"), nullable=True)
    location_id = Column(Integer, ForeignKey("locations.id"), nullable=True)
    agent_id = Column(Integer, ForeignKey("agents.id"), nullable=True)

    # One-time client captured inline when there is no client record
    otc_name = Column(String(255), nullable=True)
    otc_email = Column(String(255), nullable=True)
    otc_phone = Column(String(50), nullable=True)
    otc_notes = Column(Text, nullable=True)

    internal_notes = Column(Text, nullable=True)
    property_status = Column(String(100), nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    client = relationship("Client")
    location = relationship("Location")
    agent = relationship("Agent")
    service_links = relationship(
        "AppointmentService",
        back_populates="appointment",
        cascade="all, delete-orphan",
        order_by="AppointmentService.position",
    )
    assignments = relationship(
        "CrewAssignment", back_populates="appointment", cascade="all, delete-orphan"
    )

    @property
    def service_ids(self) -> list[int]:
        return [link.service_id for link in self.service_links]

    @property
    def crew_member_ids(self) -> list[int]:
        return [a.crew_member_id for a in self.assignments]


class AppointmentService(Base):
    __tablename__ = "appointment_services"

    id = Column(Integer, primary_key=True, index=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), nullable=False, index=True)
    service_id = Column(Integer, ForeignKey("services.id"), nullable=False)
    position = Column(Integer, nullable=False, default=0)

    appointment = relationship("Appointment", back_populates="service_links")
    service = relationship("Service")


class CrewAssignment(Base):
    __tablename__ = "crew_assignments"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), nullable=False, index=True)
    crew_member_id = Column(Integer, ForeignKey("crew_members.id"), nullable=False, index=True)
    role = Column(String(50), nullable=False, default="PHOTOGRAPHER")

    appointment = relationship("Appointment", back_populates="assignments")
    crew_member = relationship("CrewMember")
