"""Pairing of START/STOP scans into runtime intervals.

Pairing is derived fresh from the event log on every read; nothing here is
persisted or cached.
"""
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Iterable, Protocol

START = "START"
STOP = "STOP"
EVENT_TYPES = (START, STOP)


class ScanEvent(Protocol):
    id: int | None
    equipment_number: str
    event_type: str
    event_timestamp: object


@dataclass(frozen=True)
class RuntimeInterval:
    equipment_number: str
    start_event: ScanEvent
    stop_event: ScanEvent

    @property
    def duration(self) -> timedelta:
        return self.stop_event.event_timestamp - self.start_event.event_timestamp

    @property
    def duration_seconds(self) -> float:
        return self.duration.total_seconds()


@dataclass
class PairingResult:
    intervals: list[RuntimeInterval] = field(default_factory=list)
    unpaired: list[ScanEvent] = field(default_factory=list)

    @property
    def paired_ids(self) -> set:
        ids = set()
        for interval in self.intervals:
            ids.add(interval.start_event.id)
            ids.add(interval.stop_event.id)
        return ids


def _ordering_key(event: ScanEvent):
    # equal timestamps fall back to insertion sequence; sorted() keeps input order for unsaved events
    return (event.event_timestamp, event.id if event.id is not None else 0)


def pair_events(events: Iterable[ScanEvent]) -> PairingResult:
    """Pair the events of a single piece of equipment.

    A START replaced by a second START before any STOP is orphaned, a STOP with
    no pending START is unpaired, and a START still pending at the end of the
    log (the machine is running) is reported unpaired too.
    """
    result = PairingResult()
    pending_start = None

    for event in sorted(events, key=_ordering_key):
        if event.event_type == START:
            if pending_start is not None:
                result.unpaired.append(pending_start)
            pending_start = event
        elif event.event_type == STOP:
            if pending_start is not None:
                result.intervals.append(
                    RuntimeInterval(
                        equipment_number=event.equipment_number,
                        start_event=pending_start,
                        stop_event=event,
                    )
                )
                pending_start = None
            else:
                result.unpaired.append(event)

    if pending_start is not None:
        result.unpaired.append(pending_start)

    result.unpaired.sort(key=_ordering_key)
    return result


def pair_by_equipment(events: Iterable[ScanEvent]) -> dict[str, PairingResult]:
    grouped: dict[str, list[ScanEvent]] = defaultdict(list)
    for event in events:
        grouped[event.equipment_number].append(event)
    return {equipment: pair_events(grouped[equipment]) for equipment in sorted(grouped)}
