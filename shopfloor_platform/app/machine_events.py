import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Callable, NamedTuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.event_repo import MachineEventRepo
from app.models import MachineStateEvent, QRCodeDefinition
from app.pairing import EVENT_TYPES, STOP, PairingResult, RuntimeInterval, pair_by_equipment

logger = logging.getLogger(__name__)


class EventValidationError(ValueError):
    """A scan was rejected before anything was written."""


class MissingEquipmentError(EventValidationError):
    def __init__(self):
        super().__init__("equipment_number is required")


class InvalidEventTypeError(EventValidationError):
    def __init__(self, event_type: str | None):
        if event_type is None:
            message = "qr_code or event_type is required"
        else:
            message = f"Invalid event_type {event_type!r}. Must be START or STOP"
        super().__init__(message)
        self.event_type = event_type


class EquipmentMismatchError(EventValidationError):
    def __init__(self, expected: str, provided: str):
        super().__init__(
            f"QR code is for different equipment: expected {expected!r}, got {provided!r}"
        )
        self.expected = expected
        self.provided = provided


class QRCodeNotFoundError(LookupError):
    def __init__(self, code: str):
        super().__init__(f"QR code not found or inactive: {code!r}")
        self.code = code


class QRCodeExistsError(ValueError):
    def __init__(self, code: str):
        super().__init__(f"QR code already defined: {code!r}")
        self.code = code


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def normalize_equipment(equipment_number: str | None) -> str | None:
    if equipment_number is None:
        return None
    return equipment_number.strip().upper() or None


class RecordedScan(NamedTuple):
    event: MachineStateEvent
    unpaired: list[MachineStateEvent]
    paired: bool


class MachineEventService:
    def __init__(self, session: Session, clock: Callable[[], datetime] = utcnow):
        self._repo = MachineEventRepo(session)
        self._clock = clock

    def record_event(
        self,
        equipment_number: str | None,
        event_type: str | None = None,
        qr_code: str | None = None,
        **metadata,
    ) -> RecordedScan:
        equipment = normalize_equipment(equipment_number)
        if not equipment:
            raise MissingEquipmentError()
        if not qr_code and not event_type:
            raise InvalidEventTypeError(None)

        resolved = event_type
        if qr_code:
            definition = self._repo.get_qr_definition(qr_code)
            if definition is None:
                raise QRCodeNotFoundError(qr_code)
            bound = normalize_equipment(definition.equipment_number)
            if bound and bound != equipment:
                raise EquipmentMismatchError(bound, equipment)
            resolved = definition.event_type

        resolved = (resolved or "").strip().upper()
        if resolved not in EVENT_TYPES:
            raise InvalidEventTypeError(resolved)

        event = self._repo.append(
            MachineStateEvent(
                equipment_number=equipment,
                event_type=resolved,
                event_timestamp=self._clock(),
                qr_code_data=qr_code,
                **metadata,
            )
        )
        logger.info(
            "machine event recorded",
            extra={"equipment_number": equipment, "event_type": resolved, "event_id": event.id},
        )

        result = pair_by_equipment(self._repo.list_events(equipment)).get(equipment, PairingResult())
        paired = event.id in result.paired_ids
        if resolved == STOP and not paired:
            logger.warning("STOP scanned without a running START", extra={"equipment_number": equipment})
        return RecordedScan(event, result.unpaired, paired)

    def list_unpaired(self, equipment_number: str | None = None) -> list[MachineStateEvent]:
        events = self._repo.list_events(normalize_equipment(equipment_number))
        unpaired: list[MachineStateEvent] = []
        for result in pair_by_equipment(events).values():
            unpaired.extend(result.unpaired)
        unpaired.sort(key=lambda e: (e.event_timestamp, e.id))
        return unpaired

    def compute_runtime_intervals(
        self,
        equipment_number: str | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> list[RuntimeInterval]:
        # The full history is paired so a window edge never splits a START from its STOP.
        events = self._repo.list_events(normalize_equipment(equipment_number))
        window_start = datetime.combine(start_date, time.min) if start_date else None
        window_end = datetime.combine(end_date, time.max) if end_date else None

        intervals: list[RuntimeInterval] = []
        for result in pair_by_equipment(events).values():
            for interval in result.intervals:
                started = interval.start_event.event_timestamp
                if window_start is not None and started < window_start:
                    continue
                if window_end is not None and started > window_end:
                    continue
                intervals.append(interval)
        intervals.sort(key=lambda i: (i.start_event.event_timestamp, i.start_event.id))
        return intervals

    def runtime_summary(self, equipment_number: str | None = None, days_back: int = 30) -> list[dict]:
        since = self._clock() - timedelta(days=days_back)
        # pair the full history so a run started before the window still closes
        events = self._repo.list_events(normalize_equipment(equipment_number))
        summary = []
        for equipment, result in pair_by_equipment(events).items():
            recent = [e for e in events if e.equipment_number == equipment and e.event_timestamp >= since]
            if not recent:
                continue
            intervals = [i for i in result.intervals if i.start_event.event_timestamp >= since]
            unpaired = [e for e in result.unpaired if e.event_timestamp >= since]
            total_seconds = sum(i.duration_seconds for i in intervals)
            last = max(recent, key=lambda e: (e.event_timestamp, e.id))
            summary.append(
                {
                    "equipment_number": equipment,
                    "interval_count": len(intervals),
                    "total_runtime_hours": round(total_seconds / 3600, 2),
                    "unpaired_count": len(unpaired),
                    "last_event_type": last.event_type,
                    "last_event_timestamp": last.event_timestamp,
                }
            )
        return summary

    def create_qr_code(
        self,
        code: str,
        event_type: str,
        equipment_number: str | None = None,
        description: str | None = None,
    ) -> QRCodeDefinition:
        resolved = (event_type or "").strip().upper()
        if resolved not in EVENT_TYPES:
            raise InvalidEventTypeError(event_type)
        try:
            return self._repo.add_qr_definition(
                QRCodeDefinition(
                    code=code,
                    event_type=resolved,
                    equipment_number=normalize_equipment(equipment_number),
                    description=description,
                    active=True,
                )
            )
        except IntegrityError as exc:
            self._repo.rollback()
            raise QRCodeExistsError(code) from exc


def runtime_metrics(intervals: list[RuntimeInterval]) -> dict:
    durations = [i.duration_seconds for i in intervals]
    if not durations:
        return {
            "interval_count": 0,
            "total_runtime_seconds": 0.0,
            "average_runtime_seconds": None,
            "min_runtime_seconds": None,
            "max_runtime_seconds": None,
        }
    total = sum(durations)
    return {
        "interval_count": len(durations),
        "total_runtime_seconds": total,
        "average_runtime_seconds": total / len(durations),
        "min_runtime_seconds": min(durations),
        "max_runtime_seconds": max(durations),
    }
