import logging
import math
from datetime import date

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models import PourReport
from app.normalize import build_pour_report_payload

logger = logging.getLogger(__name__)


class PourReportNotFoundError(LookupError):
    def __init__(self, report_id: int):
        super().__init__(f"Pour report not found: {report_id}")
        self.report_id = report_id


class DuplicatePourReportError(ValueError):
    def __init__(self, full_heat_number: str | None):
        super().__init__(f"Pour report already exists for full_heat_number={full_heat_number!r}")
        self.full_heat_number = full_heat_number


class PourReportService:
    def __init__(self, session: Session):
        self._session = session

    def create(self, data: dict) -> PourReport:
        payload = build_pour_report_payload(data)
        if not payload.get("heat_number"):
            raise ValueError("heat_number is required")
        report = PourReport(**payload)
        self._session.add(report)
        self._commit(payload.get("full_heat_number"))
        self._session.refresh(report)
        logger.info("pour report created", extra={"pour_report_id": report.id})
        return report

    def get(self, report_id: int) -> PourReport:
        report = self._session.get(PourReport, report_id)
        if report is None:
            raise PourReportNotFoundError(report_id)
        return report

    def update(self, report_id: int, data: dict) -> PourReport:
        report = self.get(report_id)
        payload = build_pour_report_payload(data)
        if "heat_number" in payload and not payload["heat_number"]:
            raise ValueError("heat_number cannot be blank")
        for key, value in payload.items():
            setattr(report, key, value)
        self._commit(payload.get("full_heat_number", report.full_heat_number))
        self._session.refresh(report)
        return report

    def delete(self, report_id: int) -> None:
        report = self.get(report_id)
        self._session.delete(report)
        self._session.commit()
        logger.info("pour report deleted", extra={"pour_report_id": report_id})

    def list_reports(
        self,
        page: int = 1,
        page_size: int = 50,
        start_date: date | None = None,
        end_date: date | None = None,
        grade_name: str | None = None,
        shift: int | None = None,
    ) -> tuple[list[PourReport], dict]:
        page = max(page, 1)
        page_size = min(max(page_size, 1), 500)

        filters = []
        if start_date:
            filters.append(PourReport.pour_date >= start_date)
        if end_date:
            filters.append(PourReport.pour_date <= end_date)
        if grade_name:
            filters.append(PourReport.grade_name == grade_name)
        if shift:
            filters.append(PourReport.shift == shift)

        total = self._session.execute(
            select(func.count()).select_from(PourReport).where(*filters)
        ).scalar_one()
        stmt = (
            select(PourReport)
            .where(*filters)
            .order_by(PourReport.pour_date.desc(), PourReport.start_time.desc(), PourReport.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        rows = list(self._session.execute(stmt).scalars().all())
        pagination = {
            "page": page,
            "page_size": page_size,
            "total_records": total,
            "total_pages": max(1, math.ceil(total / page_size)),
        }
        return rows, pagination

    def search(self, term: str, limit: int = 20) -> list[PourReport]:
        pattern = f"%{term}%"
        stmt = (
            select(PourReport)
            .where(
                or_(
                    PourReport.heat_number.ilike(pattern),
                    PourReport.grade_name.ilike(pattern),
                    PourReport.full_heat_number.ilike(pattern),
                )
            )
            .order_by(PourReport.pour_date.desc())
            .limit(limit)
        )
        return list(self._session.execute(stmt).scalars().all())

    def unique_grades(self) -> list[str]:
        stmt = (
            select(PourReport.grade_name)
            .where(PourReport.grade_name.is_not(None))
            .distinct()
            .order_by(PourReport.grade_name)
        )
        return list(self._session.execute(stmt).scalars().all())

    def stats_by_grade(
        self, grade_name: str, start_date: date | None = None, end_date: date | None = None
    ) -> dict:
        stmt = select(
            PourReport.cast_weight,
            PourReport.pour_temperature,
            PourReport.die_rpm,
            PourReport.cost_per_pound,
        ).where(PourReport.grade_name == grade_name)
        if start_date:
            stmt = stmt.where(PourReport.pour_date >= start_date)
        if end_date:
            stmt = stmt.where(PourReport.pour_date <= end_date)
        rows = self._session.execute(stmt).all()

        count = len(rows) or 1

        def total(attr: str) -> float:
            return float(sum(getattr(r, attr) or 0 for r in rows))

        return {
            "grade_name": grade_name,
            "total_pours": len(rows),
            "total_weight": total("cast_weight"),
            "avg_weight": total("cast_weight") / count,
            "avg_temp": total("pour_temperature") / count,
            "avg_rpm": total("die_rpm") / count,
            "avg_cost_per_lb": total("cost_per_pound") / count,
        }

    def _commit(self, full_heat_number: str | None) -> None:
        try:
            self._session.commit()
        except IntegrityError as exc:
            self._session.rollback()
            raise DuplicatePourReportError(full_heat_number) from exc
