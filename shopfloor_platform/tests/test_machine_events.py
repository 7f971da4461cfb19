from datetime import date, datetime, timedelta

import pytest

from app.machine_events import (
    EquipmentMismatchError,
    InvalidEventTypeError,
    MachineEventService,
    MissingEquipmentError,
    QRCodeExistsError,
    QRCodeNotFoundError,
    runtime_metrics,
)
from app.models import MachineStateEvent

T0 = datetime(2026, 3, 2, 6, 0, 0)


def _scan(service, clock, at, **kwargs):
    clock.set(at)
    return service.record_event(**kwargs)


def test_record_event_normalizes_equipment_and_type(session, clock):
    service = MachineEventService(session, clock=clock)
    event, unpaired, paired = service.record_event(" m1 ", event_type="start", operator="dana")

    assert event.id is not None
    assert event.equipment_number == "M1"
    assert event.event_type == "START"
    assert event.event_timestamp == clock.now
    assert event.operator == "dana"
    # the machine is running, so the new START is pending
    assert [e.id for e in unpaired] == [event.id]
    assert paired is False


def test_stop_pairs_with_running_start(session, clock):
    service = MachineEventService(session, clock=clock)
    _scan(service, clock, T0, equipment_number="M1", event_type="START")
    stop, unpaired, paired = _scan(service, clock, T0 + timedelta(minutes=45), equipment_number="M1", event_type="STOP")

    assert stop.event_type == "STOP"
    assert unpaired == []
    assert paired is True


def test_double_start_scenario(session, clock):
    service = MachineEventService(session, clock=clock)
    first, _, _ = _scan(service, clock, T0, equipment_number="E1", event_type="START")
    _scan(service, clock, T0 + timedelta(minutes=10), equipment_number="E1", event_type="START")
    _, unpaired, paired = _scan(service, clock, T0 + timedelta(minutes=30), equipment_number="E1", event_type="STOP")

    assert [e.id for e in unpaired] == [first.id]
    assert paired is True
    intervals = service.compute_runtime_intervals("E1")
    assert len(intervals) == 1
    assert intervals[0].duration_seconds == 1200.0


def test_qr_code_resolves_event_type(seeded_qr_codes, clock):
    service = MachineEventService(seeded_qr_codes, clock=clock)
    event, _, _ = service.record_event("m1", qr_code="QR-M1-START")
    assert event.event_type == "START"
    assert event.qr_code_data == "QR-M1-START"


def test_unbound_qr_code_works_for_any_equipment(seeded_qr_codes, clock):
    service = MachineEventService(seeded_qr_codes, clock=clock)
    event, _, _ = service.record_event("M7", qr_code="QR-ANY-START")
    assert event.equipment_number == "M7"
    assert event.event_type == "START"


def test_qr_code_for_other_equipment_is_rejected(seeded_qr_codes, clock):
    service = MachineEventService(seeded_qr_codes, clock=clock)
    with pytest.raises(EquipmentMismatchError) as exc_info:
        service.record_event("M2", qr_code="QR-M1-STOP")
    assert exc_info.value.expected == "M1"
    assert exc_info.value.provided == "M2"
    assert seeded_qr_codes.query(MachineStateEvent).count() == 0


def test_unknown_or_inactive_qr_code(seeded_qr_codes, clock):
    service = MachineEventService(seeded_qr_codes, clock=clock)
    with pytest.raises(QRCodeNotFoundError):
        service.record_event("M1", qr_code="NOPE")
    with pytest.raises(QRCodeNotFoundError):
        service.record_event("M1", qr_code="QR-RETIRED")


def test_validation_errors(session, clock):
    service = MachineEventService(session, clock=clock)
    with pytest.raises(MissingEquipmentError):
        service.record_event("   ", event_type="START")
    with pytest.raises(InvalidEventTypeError, match="qr_code or event_type is required"):
        service.record_event("M1")
    with pytest.raises(InvalidEventTypeError, match="PAUSE"):
        service.record_event("M1", event_type="PAUSE")
    assert session.query(MachineStateEvent).count() == 0


def test_list_unpaired_filters_by_equipment(session, clock):
    service = MachineEventService(session, clock=clock)
    _scan(service, clock, T0, equipment_number="M1", event_type="STOP")
    _scan(service, clock, T0 + timedelta(minutes=1), equipment_number="M2", event_type="START")

    assert {e.equipment_number for e in service.list_unpaired()} == {"M1", "M2"}
    assert [e.equipment_number for e in service.list_unpaired("m2")] == ["M2"]


def test_runtime_intervals_window_uses_start_time(session, clock):
    service = MachineEventService(session, clock=clock)
    # runs across midnight: belongs to the day it started
    _scan(service, clock, datetime(2026, 3, 1, 23, 30), equipment_number="M1", event_type="START")
    _scan(service, clock, datetime(2026, 3, 2, 0, 30), equipment_number="M1", event_type="STOP")
    _scan(service, clock, datetime(2026, 3, 2, 8, 0), equipment_number="M1", event_type="START")
    _scan(service, clock, datetime(2026, 3, 2, 9, 0), equipment_number="M1", event_type="STOP")

    march_first = service.compute_runtime_intervals("M1", date(2026, 3, 1), date(2026, 3, 1))
    assert len(march_first) == 1
    assert march_first[0].duration_seconds == 3600.0

    march_second = service.compute_runtime_intervals("M1", start_date=date(2026, 3, 2))
    assert [i.start_event.event_timestamp for i in march_second] == [datetime(2026, 3, 2, 8, 0)]

    assert len(service.compute_runtime_intervals()) == 2


def test_runtime_summary(session, clock):
    service = MachineEventService(session, clock=clock)
    _scan(service, clock, T0, equipment_number="M1", event_type="START")
    _scan(service, clock, T0 + timedelta(hours=2), equipment_number="M1", event_type="STOP")
    _scan(service, clock, T0 + timedelta(hours=3), equipment_number="M1", event_type="START")
    _scan(service, clock, T0 + timedelta(hours=3), equipment_number="M2", event_type="STOP")

    summary = {row["equipment_number"]: row for row in service.runtime_summary(days_back=7)}
    assert summary["M1"]["interval_count"] == 1
    assert summary["M1"]["total_runtime_hours"] == 2.0
    assert summary["M1"]["unpaired_count"] == 1
    assert summary["M1"]["last_event_type"] == "START"
    assert summary["M2"]["interval_count"] == 0
    assert summary["M2"]["unpaired_count"] == 1


def test_runtime_metrics():
    assert runtime_metrics([])["interval_count"] == 0
    assert runtime_metrics([])["average_runtime_seconds"] is None


def test_create_qr_code_rejects_duplicates(session, clock):
    service = MachineEventService(session, clock=clock)
    created = service.create_qr_code("QR-NEW", "stop", " m3 ", "bay 3 stop")
    assert created.event_type == "STOP"
    assert created.equipment_number == "M3"
    assert created.active is True

    with pytest.raises(QRCodeExistsError):
        service.create_qr_code("QR-NEW", "START")
    with pytest.raises(InvalidEventTypeError):
        service.create_qr_code("QR-OTHER", "RESET")


def test_runtime_summary_closes_runs_started_before_window(session, clock):
    service = MachineEventService(session, clock=clock)
    _scan(service, clock, T0 - timedelta(days=40), equipment_number="M1", event_type="START")
    _scan(service, clock, T0 - timedelta(days=1), equipment_number="M1", event_type="STOP")
    _scan(service, clock, T0 - timedelta(days=60), equipment_number="M9", event_type="START")

    summary = service.runtime_summary(days_back=30)
    assert [row["equipment_number"] for row in summary] == ["M1"]
    # the STOP closed a run that began outside the window
    assert summary[0]["unpaired_count"] == 0
    assert summary[0]["interval_count"] == 0
    assert summary[0]["last_event_type"] == "STOP"
    assert [e.id for e in service.list_unpaired("M1")] == []
