from sqlalchemy import func
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from app.contracts import PourReportRecord
from app.db import dialect_name
from app.models import PourReport

_CONFLICT_TARGET = ["full_heat_number"]


def dialect_insert(session: Session, table):
    """INSERT construct that supports ON CONFLICT for the session's database."""
    if dialect_name(session) == "postgresql":
        return postgresql.insert(table)
    return sqlite.insert(table)


# Uniqueness of full_heat_number is enforced by the database, so concurrent
# imports of the same heat cannot create two rows.
class PourReportLoader:
    def __init__(self, session: Session):
        self._session = session

    def upsert_chunk(self, records: list[PourReportRecord], skip_duplicates: bool) -> int:
        """Write one chunk and commit it. Returns the number of rows sent."""
        if not records:
            return 0
        table = PourReport.__table__
        rows = [r.model_dump() for r in records]

        stmt = dialect_insert(self._session, table)
        if skip_duplicates:
            stmt = stmt.on_conflict_do_nothing(index_elements=_CONFLICT_TARGET)
        else:
            updates = {name: stmt.excluded[name] for name in rows[0] if name not in _CONFLICT_TARGET}
            updates["updated_at"] = func.now()
            stmt = stmt.on_conflict_do_update(index_elements=_CONFLICT_TARGET, set_=updates)

        self._session.connection().execute(stmt, rows)
        self._session.commit()
        return len(rows)

    def rollback(self) -> None:
        self._session.rollback()
