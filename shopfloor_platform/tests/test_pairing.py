from dataclasses import dataclass
from datetime import datetime, timedelta

from app.pairing import START, STOP, pair_by_equipment, pair_events

T0 = datetime(2026, 3, 2, 6, 0, 0)


@dataclass
class _Event:
    id: int
    equipment_number: str
    event_type: str
    event_timestamp: datetime


def _events(*specs, equipment="E1"):
    return [
        _Event(id=i + 1, equipment_number=equipment, event_type=kind, event_timestamp=T0 + timedelta(minutes=m))
        for i, (kind, m) in enumerate(specs)
    ]


def test_double_start_orphans_the_earlier_start():
    events = _events((START, 0), (START, 10), (STOP, 25))
    result = pair_events(events)

    assert [e.id for e in result.unpaired] == [1]
    assert len(result.intervals) == 1
    interval = result.intervals[0]
    assert interval.start_event.id == 2
    assert interval.stop_event.id == 3
    assert interval.duration == timedelta(minutes=15)
    assert interval.duration_seconds == 900.0


def test_stop_without_start_is_unpaired():
    result = pair_events(_events((STOP, 0), (START, 5), (STOP, 65)))
    assert [e.id for e in result.unpaired] == [1]
    assert len(result.intervals) == 1
    assert result.intervals[0].duration_seconds == 3600.0


def test_trailing_start_is_reported_unpaired():
    result = pair_events(_events((START, 0), (STOP, 30), (START, 45)))
    assert len(result.intervals) == 1
    assert [e.id for e in result.unpaired] == [3]
    assert result.paired_ids == {1, 2}


def test_input_order_does_not_matter():
    events = _events((START, 0), (STOP, 30), (START, 40), (STOP, 50))
    result = pair_events(list(reversed(events)))
    assert [(i.start_event.id, i.stop_event.id) for i in result.intervals] == [(1, 2), (3, 4)]
    assert result.unpaired == []


def test_equal_timestamps_break_ties_by_id():
    start = _Event(id=7, equipment_number="E1", event_type=START, event_timestamp=T0)
    stop = _Event(id=8, equipment_number="E1", event_type=STOP, event_timestamp=T0)
    result = pair_events([stop, start])
    assert len(result.intervals) == 1
    assert result.intervals[0].duration_seconds == 0.0
    assert result.unpaired == []


def test_interval_count_is_bounded_by_starts_and_stops():
    events = _events(
        (START, 0), (START, 1), (START, 2), (STOP, 3), (STOP, 4), (START, 5), (STOP, 6)
    )
    result = pair_events(events)
    # two orphaned STARTs and one STOP with nothing running
    assert len(result.intervals) == 2
    assert sorted(e.id for e in result.unpaired) == [1, 2, 5]


def test_empty_log():
    result = pair_events([])
    assert result.intervals == []
    assert result.unpaired == []


def test_pair_by_equipment_keeps_machines_separate():
    events = _events((START, 0), (STOP, 10), equipment="M2") + [
        _Event(id=10, equipment_number="M1", event_type=START, event_timestamp=T0 + timedelta(minutes=5)),
    ]
    results = pair_by_equipment(events)
    assert list(results) == ["M1", "M2"]
    assert [e.id for e in results["M1"].unpaired] == [10]
    assert len(results["M2"].intervals) == 1
    assert results["M2"].intervals[0].equipment_number == "M2"
