import asyncio
from datetime import datetime, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from studiobook.database import Base
from studiobook.domain.scheduling.service import BookingService
from studiobook.models import Client, CrewMember, Service, Tenant
from studiobook.services.geocoding_service import Coordinates
from studiobook.services.routing_service import RouteEstimate
from studiobook.services.solar_service import SunTimes

SYDNEY = ZoneInfo("Australia/Sydney")


def sydney(*args) -> datetime:
    return datetime(*args, tzinfo=SYDNEY)


class FakeGeocoder:
    def __init__(self, coords: Optional[Coordinates] = Coordinates(lat=-33.89, lng=151.27)):
        self.coords = coords
        self.calls = []

    async def geocode(self, address):
        self.calls.append(address)
        return self.coords


class FakeSolarProvider:
    def __init__(self, sunrise="2024-06-21T07:00", sunset="2024-06-21T16:58"):
        self.sunrise = sunrise
        self.sunset = sunset
        self.calls = []
        self.range_calls = []

    async def fetch_sun_times(self, lat, lng, on_date, time_zone=None):
        self.calls.append((lat, lng, on_date, time_zone))
        if self.sunrise is None:
            return None
        return SunTimes(sunrise=self.sunrise, sunset=self.sunset)

    async def fetch_sun_range(self, lat, lng, start, end, time_zone=None):
        """Same clock times on every day of the range"""
        self.range_calls.append((lat, lng, start, end, time_zone))
        if self.sunrise is None:
            return {}
        days = {}
        day = start
        while day <= end:
            days[day] = SunTimes(sunrise=f"{day}T{self.sunrise[11:]}", sunset=f"{day}T{self.sunset[11:]}")
            day += timedelta(days=1)
        return days


class FakeRouteProvider:
    """Drive times keyed by (origin, destination) in seconds; unknown pairs are unavailable"""

    def __init__(self, durations: Optional[dict] = None):
        self.durations = durations or {}
        self.calls = []

    async def route_duration(self, origin, destination):
        self.calls.append((origin, destination))
        seconds = self.durations.get((origin, destination))
        if seconds is None:
            return None
        return RouteEstimate(seconds=seconds)


class RecordingNotifier:
    def __init__(self, fail_kinds=(), delay: float = 0):
        self.sent = []
        self.fail_kinds = set(fail_kinds)
        self.delay = delay

    async def notify(self, db, kind, appointment, crew_member_id=None):
        if self.delay:
            await asyncio.sleep(self.delay)
        if kind in self.fail_kinds:
            raise RuntimeError(f"{kind} provider down")
        self.sent.append((kind, appointment.id, crew_member_id))
        return True


@pytest.fixture
def db():
    engine = create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    Base.metadata.create_all(bind=engine)
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def tenant(db):
    tenant = Tenant(
        name="Harbour Light Studio",
        timezone="Australia/Sydney",
        scheduling_enabled=True,
        notification_email="studio@example.com",
    )
    db.add(tenant)
    db.commit()
    db.refresh(tenant)
    return tenant


@pytest.fixture
def client_record(db, tenant):
    client = Client(tenant_id=tenant.id, name="Coastal Realty", email="agent@example.com")
    db.add(client)
    db.commit()
    db.refresh(client)
    return client


@pytest.fixture
def crew(db, tenant):
    members = [
        CrewMember(tenant_id=tenant.id, display_name="Alex", email="alex@example.com"),
        CrewMember(tenant_id=tenant.id, display_name="Sam", email="sam@example.com"),
    ]
    db.add_all(members)
    db.commit()
    for member in members:
        db.refresh(member)
    return members


@pytest.fixture
def services(db, tenant):
    rows = {
        "photos": Service(tenant_id=tenant.id, name="Photography", duration_minutes=60),
        "dusk": Service(tenant_id=tenant.id, name="Dusk shoot", duration_minutes=30, slot_type="DUSK"),
        "sunrise": Service(
            tenant_id=tenant.id, name="Sunrise shoot", duration_minutes=45, slot_type="SUNRISE"
        ),
    }
    db.add_all(rows.values())
    db.commit()
    for row in rows.values():
        db.refresh(row)
    return rows


@pytest.fixture
def geocoder():
    return FakeGeocoder()


@pytest.fixture
def solar_provider():
    return FakeSolarProvider()


@pytest.fixture
def route_provider():
    return FakeRouteProvider()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def booking_service(db, geocoder, solar_provider, route_provider, notifier):
    return BookingService(
        db,
        geocoder=geocoder,
        solar_provider=solar_provider,
        route_provider=route_provider,
        notifier=notifier,
    )
