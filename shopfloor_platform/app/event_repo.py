from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models import MachineStateEvent, QRCodeDefinition


class MachineEventRepo:
    def __init__(self, session: Session):
        self._session = session

    def append(self, event: MachineStateEvent) -> MachineStateEvent:
        self._session.add(event)
        self._session.commit()
        self._session.refresh(event)
        return event

    def list_events(self, equipment_number: str | None = None) -> list[MachineStateEvent]:
        stmt = select(MachineStateEvent)
        if equipment_number:
            stmt = stmt.where(MachineStateEvent.equipment_number == equipment_number)
        stmt = stmt.order_by(
            MachineStateEvent.equipment_number,
            MachineStateEvent.event_timestamp.asc(),
            MachineStateEvent.id.asc(),
        )
        return list(self._session.execute(stmt).scalars().all())

    def get_qr_definition(self, code: str) -> QRCodeDefinition | None:
        stmt = select(QRCodeDefinition).where(
            QRCodeDefinition.code == code,
            QRCodeDefinition.active.is_(True),
        )
        return self._session.execute(stmt).scalars().first()

    def rollback(self) -> None:
        self._session.rollback()

    def add_qr_definition(self, definition: QRCodeDefinition) -> QRCodeDefinition:
        self._session.add(definition)
        self._session.commit()
        self._session.refresh(definition)
        return definition
