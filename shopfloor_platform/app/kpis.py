import logging
from collections import defaultdict

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from app.models import PourReport, PourReportKpi

logger = logging.getLogger(__name__)


def _mean(values: list) -> float | None:
    present = [v for v in values if v is not None]
    if not present:
        return None
    return sum(present) / len(present)


def refresh_pour_report_kpis(session: Session) -> int:
    """Rebuild the monthly pour report KPI rows. Returns the number of months written."""
    stmt = select(
        PourReport.pour_date,
        PourReport.cast_weight,
        PourReport.pour_temperature,
        PourReport.die_rpm,
        PourReport.cost_per_pound,
    ).where(PourReport.pour_date.is_not(None))

    by_month: dict[str, list] = defaultdict(list)
    for row in session.execute(stmt):
        by_month[row.pour_date.strftime("%Y-%m")].append(row)

    session.execute(delete(PourReportKpi))
    for month in sorted(by_month):
        rows = by_month[month]
        session.add(
            PourReportKpi(
                month=month,
                total_pours=len(rows),
                total_weight=sum(r.cast_weight or 0.0 for r in rows),
                avg_cast_weight=_mean([r.cast_weight for r in rows]),
                avg_pour_temperature=_mean([r.pour_temperature for r in rows]),
                avg_die_rpm=_mean([r.die_rpm for r in rows]),
                avg_cost_per_pound=_mean([r.cost_per_pound for r in rows]),
            )
        )
    session.commit()
    logger.info("pour report KPIs refreshed", extra={"months": len(by_month)})
    return len(by_month)


def list_kpis(session: Session) -> list[PourReportKpi]:
    stmt = select(PourReportKpi).order_by(PourReportKpi.month.desc())
    return list(session.execute(stmt).scalars().all())
