import time
from datetime import datetime, timedelta
from unittest.mock import patch

import pytest
from sqlalchemy.exc import SQLAlchemyError

from studiobook.domain.scheduling.exceptions import (
    BookingNotFoundError,
    BookingValidationError,
    QuotaExceededError,
)
from studiobook.domain.scheduling.repository import BookingRepository
from studiobook.domain.scheduling.schemas import BookingUpsert
from studiobook.domain.scheduling.service import BookingService
from studiobook.domain.scheduling.time_calculator import to_local
from studiobook.models import Appointment, CrewAssignment, Location
from studiobook.services.notification_service import (
    CLIENT_CONFIRMATION,
    CREW_ASSIGNMENT,
    NEW_BOOKING,
    BookingNotifier,
)

from .conftest import FakeGeocoder, RecordingNotifier, sydney

ADDRESS = "12 Harbour St, Mosman"


def _request(**overrides):
    start = overrides.pop("startAt", sydney(2024, 6, 21, 10, 0))
    fields = {
        "title": "12 Harbour St",
        "otcName": "Jordan Lee",
        "otcEmail": "jordan@example.com",
        "address": ADDRESS,
        "startAt": start,
        "endAt": overrides.pop("endAt", start + timedelta(hours=1)),
    }
    fields.update(overrides)
    return BookingUpsert(**fields)


class TestSplit:
    async def test_mixed_booking_creates_primary_and_dusk_secondary(self, booking_service, db, tenant, services):
        outcome = await booking_service.upsert_booking(
            tenant.id, _request(serviceIds=[services["photos"].id, services["dusk"].id])
        )

        primary, secondary = outcome.appointment, outcome.secondary
        assert db.query(Appointment).count() == 2
        assert primary.service_ids == [services["photos"].id]
        assert primary.slot_type is None
        assert primary.end_at - primary.start_at == timedelta(minutes=60)

        assert secondary.title == "12 Harbour St - DUSK"
        assert secondary.slot_type == "DUSK"
        assert secondary.service_ids == [services["dusk"].id]
        # sunset 16:58 less 25 minutes, stored as UTC
        assert secondary.start_at == datetime(2024, 6, 21, 6, 33)
        assert secondary.end_at - secondary.start_at == timedelta(minutes=30)
        assert secondary.location_id == primary.location_id
        assert outcome.warnings == []

    async def test_secondary_falls_back_to_requested_start(
        self, db, tenant, services, solar_provider, route_provider, notifier
    ):
        service = BookingService(
            db,
            geocoder=FakeGeocoder(coords=None),
            solar_provider=solar_provider,
            route_provider=route_provider,
            notifier=notifier,
        )

        outcome = await service.upsert_booking(
            tenant.id, _request(serviceIds=[services["photos"].id, services["dusk"].id])
        )

        assert outcome.secondary.start_at == outcome.appointment.start_at == datetime(2024, 6, 21, 0, 0)

    async def test_mixed_specialized_services_use_first_slot_type(self, booking_service, tenant, services):
        outcome = await booking_service.upsert_booking(
            tenant.id,
            _request(serviceIds=[services["photos"].id, services["sunrise"].id, services["dusk"].id]),
        )

        secondary = outcome.secondary
        assert secondary.slot_type == "SUNRISE"
        assert secondary.service_ids == [services["sunrise"].id, services["dusk"].id]
        assert secondary.end_at - secondary.start_at == timedelta(minutes=75)
        # sunrise 07:00 less 15 minutes
        assert to_local(secondary.start_at, "Australia/Sydney").strftime("%H:%M") == "06:45"

    async def test_rejected_secondary_keeps_primary_and_warns(self, booking_service, db, tenant, services):
        tenant.business_hours = {"5": {"open": True, "dusk": 0}}
        db.commit()

        outcome = await booking_service.upsert_booking(
            tenant.id, _request(serviceIds=[services["photos"].id, services["dusk"].id])
        )

        assert outcome.secondary is None
        assert db.query(Appointment).count() == 1
        assert len(outcome.warnings) == 1
        assert outcome.warnings[0].startswith("DUSK booking was not created")

    async def test_edits_are_not_split(self, booking_service, db, tenant, services):
        created = await booking_service.upsert_booking(tenant.id, _request(serviceIds=[services["photos"].id]))

        outcome = await booking_service.upsert_booking(
            tenant.id,
            _request(id=created.appointment.id, serviceIds=[services["photos"].id, services["dusk"].id]),
        )

        assert outcome.secondary is None
        assert db.query(Appointment).count() == 1
        assert outcome.appointment.service_ids == [services["photos"].id, services["dusk"].id]
        assert outcome.appointment.end_at - outcome.appointment.start_at == timedelta(minutes=90)

    async def test_disabled_scheduling_skips_split_and_checks(self, booking_service, db, tenant, services):
        tenant.scheduling_enabled = False
        tenant.business_hours = {"5": {"open": False}}
        db.commit()

        outcome = await booking_service.upsert_booking(
            tenant.id,
            _request(
                serviceIds=[services["photos"].id, services["dusk"].id],
                endAt=sydney(2024, 6, 21, 10, 20),
            ),
        )

        appointment = outcome.appointment
        assert outcome.secondary is None
        assert db.query(Appointment).count() == 1
        # requested end kept as sent
        assert appointment.end_at == datetime(2024, 6, 21, 0, 20)
        assert appointment.slot_type is None


class TestValidation:
    async def test_missing_client_writes_nothing(self, booking_service, db, tenant, services):
        request = _request(otcName="  ", serviceIds=[services["photos"].id])

        for _ in range(2):
            with pytest.raises(BookingValidationError):
                await booking_service.upsert_booking(tenant.id, request)

        assert db.query(Appointment).count() == 0
        assert db.query(Location).count() == 0

    async def test_unknown_service_is_rejected(self, booking_service, db, tenant):
        with pytest.raises(BookingValidationError):
            await booking_service.upsert_booking(tenant.id, _request(serviceIds=[404]))
        assert db.query(Appointment).count() == 0

    async def test_unknown_team_member_is_rejected(self, booking_service, tenant):
        with pytest.raises(BookingValidationError):
            await booking_service.upsert_booking(tenant.id, _request(teamMemberIds=[404]))

    async def test_unknown_booking_and_tenant(self, booking_service, tenant):
        with pytest.raises(BookingNotFoundError):
            await booking_service.upsert_booking(tenant.id, _request(id=999))
        with pytest.raises(BookingNotFoundError):
            await booking_service.upsert_booking(999, _request())

    async def test_registered_client_needs_no_otc_name(self, booking_service, tenant, client_record):
        outcome = await booking_service.upsert_booking(
            tenant.id, _request(otcName=None, otcEmail=None, clientId=client_record.id)
        )

        assert outcome.appointment.client_id == client_record.id

    async def test_location_is_reused_by_exact_name(self, booking_service, db, tenant):
        first = await booking_service.upsert_booking(tenant.id, _request())
        second = await booking_service.upsert_booking(tenant.id, _request(startAt=sydney(2024, 6, 22, 10, 0)))

        assert first.appointment.location_id == second.appointment.location_id
        location = db.query(Location).one()
        assert location.slug == "12-harbour-st-mosman"

    async def test_new_location_stores_geocoded_coordinates(self, booking_service, geocoder, db, tenant):
        await booking_service.upsert_booking(tenant.id, _request())
        await booking_service.upsert_booking(tenant.id, _request(startAt=sydney(2024, 6, 22, 10, 0)))

        location = db.query(Location).one()
        assert (location.latitude, location.longitude) == (-33.89, 151.27)
        assert geocoder.calls == [ADDRESS]

    async def test_location_is_saved_when_geocoding_finds_nothing(
        self, db, tenant, solar_provider, route_provider, notifier
    ):
        service = BookingService(
            db,
            geocoder=FakeGeocoder(coords=None),
            solar_provider=solar_provider,
            route_provider=route_provider,
            notifier=notifier,
        )

        outcome = await service.upsert_booking(tenant.id, _request())

        location = db.query(Location).one()
        assert outcome.appointment.location_id == location.id
        assert location.latitude is None and location.longitude is None


class TestBlockOuts:
    async def test_block_out_drops_client_links(self, booking_service, tenant, crew, services, client_record):
        outcome = await booking_service.upsert_booking(
            tenant.id,
            _request(
                title="Leave",
                status="BLOCKED",
                clientId=client_record.id,
                serviceIds=[services["photos"].id],
                teamMemberIds=[crew[0].id],
                agentId=5,
            ),
        )

        block_out = outcome.appointment
        assert block_out.client_id is None
        assert block_out.location_id is None
        assert block_out.agent_id is None
        assert block_out.service_ids == []
        assert block_out.crew_member_ids == [crew[0].id]
        assert block_out.slot_type is None

    async def test_weekly_6m_block_out_creates_26_rows(self, booking_service, notifier, db, tenant, crew):
        start = sydney(2024, 7, 1, 9, 0)
        outcome = await booking_service.upsert_booking(
            tenant.id,
            _request(
                title="Studio maintenance",
                status="BLOCKED",
                startAt=start,
                endAt=start + timedelta(hours=3),
                repeat="weekly_6m",
                teamMemberIds=[crew[0].id],
            ),
        )

        rows = db.query(Appointment).order_by(Appointment.start_at).all()
        assert len(rows) == 26
        assert len(outcome.occurrences) == 25
        assert db.query(CrewAssignment).count() == 26
        for k, row in enumerate(rows):
            local = to_local(row.start_at, "Australia/Sydney")
            assert local.replace(tzinfo=None) == datetime(2024, 7, 1, 9, 0) + timedelta(weeks=k)
            assert row.end_at - row.start_at == timedelta(hours=3)
            assert row.status == "BLOCKED"
        assert notifier.sent == []

    async def test_failed_repeat_write_stops_series_and_keeps_earlier_rows(
        self, booking_service, db, tenant, monkeypatch
    ):
        real_commit = db.commit
        commits = []

        def commit():
            commits.append(1)
            # base row, first repeat, then the second repeat fails
            if len(commits) == 3:
                raise SQLAlchemyError("disk full")
            real_commit()

        monkeypatch.setattr(db, "commit", commit)
        start = sydney(2024, 7, 1, 9, 0)

        outcome = await booking_service.upsert_booking(
            tenant.id,
            _request(title="Leave", status="BLOCKED", startAt=start, endAt=start + timedelta(hours=3), repeat="weekly"),
        )

        assert outcome.appointment.id is not None
        assert len(outcome.occurrences) == 1
        assert outcome.warnings == [
            "Repeat series stopped after 1 of 3 occurrences: 2024-07-15 could not be saved"
        ]
        assert db.query(Appointment).count() == 2

    async def test_repeat_is_ignored_for_client_bookings(self, booking_service, db, tenant):
        outcome = await booking_service.upsert_booking(tenant.id, _request(repeat="weekly"))

        assert outcome.occurrences == []
        assert db.query(Appointment).count() == 1

    async def test_block_outs_skip_quota(self, booking_service, db, tenant):
        tenant.business_hours = {"5": {"open": False}}
        db.commit()

        outcome = await booking_service.upsert_booking(tenant.id, _request(status="BLOCKED", slotType="DUSK"))

        assert outcome.appointment.slot_type is None


class TestNotifications:
    async def test_new_request_notifies_studio_only(self, booking_service, notifier, tenant, crew):
        outcome = await booking_service.upsert_booking(tenant.id, _request(teamMemberIds=[crew[0].id]))

        assert notifier.sent == [(NEW_BOOKING, outcome.appointment.id, None)]

    async def test_approved_booking_notifies_client_and_each_crew_member(
        self, booking_service, notifier, tenant, crew
    ):
        outcome = await booking_service.upsert_booking(
            tenant.id, _request(status="approved", teamMemberIds=[crew[0].id, crew[1].id, crew[0].id])
        )

        booking_id = outcome.appointment.id
        assert notifier.sent == [
            (NEW_BOOKING, booking_id, None),
            (CLIENT_CONFIRMATION, booking_id, None),
            (CREW_ASSIGNMENT, booking_id, crew[0].id),
            (CREW_ASSIGNMENT, booking_id, crew[1].id),
        ]

    async def test_approving_an_edit_does_not_resend_new_booking(self, booking_service, notifier, tenant):
        created = await booking_service.upsert_booking(tenant.id, _request())
        notifier.sent.clear()

        await booking_service.upsert_booking(tenant.id, _request(id=created.appointment.id, status="APPROVED"))

        assert [kind for kind, _, _ in notifier.sent] == [CLIENT_CONFIRMATION]

    async def test_notification_failures_do_not_fail_the_booking(
        self, db, tenant, crew, geocoder, solar_provider, route_provider
    ):
        notifier = RecordingNotifier(fail_kinds={NEW_BOOKING, CLIENT_CONFIRMATION})
        service = BookingService(
            db, geocoder=geocoder, solar_provider=solar_provider, route_provider=route_provider, notifier=notifier
        )

        outcome = await service.upsert_booking(tenant.id, _request(status="APPROVED", teamMemberIds=[crew[0].id]))

        assert outcome.appointment.id is not None
        assert notifier.sent == [(CREW_ASSIGNMENT, outcome.appointment.id, crew[0].id)]

    async def test_slow_notifications_time_out(self, db, tenant, geocoder, solar_provider, route_provider):
        notifier = RecordingNotifier(delay=1)
        service = BookingService(
            db,
            geocoder=geocoder,
            solar_provider=solar_provider,
            route_provider=route_provider,
            notifier=notifier,
            notification_timeout=0.01,
        )

        outcome = await service.upsert_booking(tenant.id, _request())

        assert outcome.appointment.id is not None
        assert notifier.sent == []

    async def test_blocking_email_client_is_cut_off_by_timeout(
        self, db, tenant, geocoder, solar_provider, route_provider
    ):
        service = BookingService(
            db,
            geocoder=geocoder,
            solar_provider=solar_provider,
            route_provider=route_provider,
            notifier=BookingNotifier(),
            notification_timeout=0.1,
        )

        with patch("studiobook.email_service.RESEND_API_KEY", "re_test"), patch(
            "studiobook.email_service.resend.Emails.send", side_effect=lambda params: time.sleep(2)
        ) as mock_send:
            started = time.monotonic()
            outcome = await service.upsert_booking(tenant.id, _request())
            elapsed = time.monotonic() - started

        assert outcome.appointment.id is not None
        mock_send.assert_called_once()
        assert elapsed < 1.0


async def test_edit_within_quota_does_not_count_itself(booking_service, tenant, services):
    created = await booking_service.upsert_booking(tenant.id, _request(serviceIds=[services["dusk"].id]))

    outcome = await booking_service.upsert_booking(
        tenant.id, _request(id=created.appointment.id, title="Moved", serviceIds=[services["dusk"].id])
    )

    assert outcome.appointment.title == "Moved"


def test_placeholders_are_cleared_per_day(booking_service, db, tenant):
    for start in (datetime(2024, 6, 21, 6, 30), datetime(2024, 6, 22, 6, 30)):
        db.add(
            Appointment(
                tenant_id=tenant.id,
                title="DUSK slot",
                start_at=start,
                end_at=start + timedelta(minutes=30),
                timezone="Australia/Sydney",
                slot_type="DUSK",
                is_placeholder=True,
            )
        )
    db.commit()

    assert booking_service.clear_placeholders(tenant.id, "DUSK", datetime(2024, 6, 21).date()) == 1
    assert booking_service.clear_placeholders(tenant.id) == 1
    assert db.query(Appointment).count() == 0


async def test_placeholders_do_not_block_real_bookings(booking_service, db, tenant):
    db.add(
        Appointment(
            tenant_id=tenant.id,
            title="DUSK slot",
            start_at=datetime(2024, 6, 21, 6, 30),
            end_at=datetime(2024, 6, 21, 7, 0),
            timezone="Australia/Sydney",
            slot_type="DUSK",
            is_placeholder=True,
        )
    )
    db.commit()

    outcome = await booking_service.upsert_booking(tenant.id, _request(slotType="DUSK"))
    assert outcome.appointment.slot_type == "DUSK"

    with pytest.raises(QuotaExceededError):
        await booking_service.upsert_booking(tenant.id, _request(slotType="DUSK"))


# SQLite has no row locks, so only the call order is checked here; on PostgreSQL
# the tenant lock serialises concurrent quota counts.
async def test_tenant_lock_precedes_quota_count_and_follows_provider_calls(
    db, tenant, services, solar_provider, route_provider, notifier, monkeypatch
):
    events = []
    lock_tenant = BookingRepository.lock_tenant
    count_slot_appointments = BookingRepository.count_slot_appointments

    def recording_lock(db, tenant_id):
        events.append("lock")
        return lock_tenant(db, tenant_id)

    def recording_count(*args, **kwargs):
        events.append("count")
        return count_slot_appointments(*args, **kwargs)

    class RecordingGeocoder(FakeGeocoder):
        async def geocode(self, address):
            events.append("geocode")
            return await super().geocode(address)

    monkeypatch.setattr(BookingRepository, "lock_tenant", staticmethod(recording_lock))
    monkeypatch.setattr(BookingRepository, "count_slot_appointments", staticmethod(recording_count))
    service = BookingService(
        db,
        geocoder=RecordingGeocoder(),
        solar_provider=solar_provider,
        route_provider=route_provider,
        notifier=notifier,
    )

    outcome = await service.upsert_booking(
        tenant.id, _request(serviceIds=[services["photos"].id, services["dusk"].id])
    )

    assert outcome.secondary.slot_type == "DUSK"
    first_lock = events.index("lock")
    assert "geocode" in events[:first_lock]
    assert "geocode" not in events[first_lock:]
    assert events.index("count") > first_lock
    # secondary booking locks again before its own count
    assert events[-2:] == ["lock", "count"]
