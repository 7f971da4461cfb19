import logging
from dataclasses import dataclass, field
from typing import Callable, Iterable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.contracts import ImportResponse, ImportResults, PourReportRecord, RowError
from app.csv_rows import parse_csv_rows
from app.kpis import refresh_pour_report_kpis
from app.loaders.pour_report_loader import PourReportLoader
from app.normalize import transform_row
from app.registry import SourceFormatRegistry

logger = logging.getLogger(__name__)

BATCH_SIZE = 500
MAX_REPORTED_ERRORS = 50


class NoValidRowsError(ValueError):
    def __init__(self, errors: list[str]):
        super().__init__("No valid records to import")
        self.errors = errors


@dataclass
class UpsertOutcome:
    imported: int = 0
    failed: int = 0
    duplicates_skipped: int = 0
    errors: list[str] = field(default_factory=list)


def dedupe_records(records: Iterable[PourReportRecord]) -> tuple[list[PourReportRecord], int]:
    """Keep the last record per full_heat_number, in original order.

    Records without a key are each kept. Returns the survivors and how many
    earlier duplicates were dropped.
    """
    winners: dict[object, tuple[int, PourReportRecord]] = {}
    dropped = 0
    for index, record in enumerate(records):
        key = record.full_heat_number if record.full_heat_number else ("__row__", index)
        if key in winners:
            dropped += 1
            logger.info("duplicate full_heat_number in batch, keeping later row", extra={"full_heat_number": key})
        winners[key] = (index, record)
    survivors = [record for _, record in sorted(winners.values(), key=lambda pair: pair[0])]
    return survivors, dropped


def cap_errors(errors: list[str], limit: int = MAX_REPORTED_ERRORS) -> list[str]:
    if len(errors) <= limit:
        return list(errors)
    return errors[:limit] + [f"... and {len(errors) - limit} more errors"]


class PourReportImporter:
    def __init__(
        self,
        registry: SourceFormatRegistry,
        refresh_aggregates: Callable[[Session], object] = refresh_pour_report_kpis,
        loader_factory: Callable[[Session], PourReportLoader] = PourReportLoader,
        batch_size: int = BATCH_SIZE,
    ):
        self._registry = registry
        self._refresh_aggregates = refresh_aggregates
        self._loader_factory = loader_factory
        self._batch_size = batch_size

    def transform_rows(
        self, rows: list[dict], source_format: str = "CANONICAL"
    ) -> tuple[list[PourReportRecord], list[RowError]]:
        plugin = self._registry.resolve(source_format)
        records: list[PourReportRecord] = []
        row_errors: list[RowError] = []
        for index, raw in enumerate(rows):
            if not isinstance(raw, dict):
                row_errors.append(RowError(row=index + 1, message=f"Row {index + 1}: not an object"))
                continue
            outcome = transform_row(plugin.to_canonical(raw), index)
            if isinstance(outcome, RowError):
                row_errors.append(outcome)
            else:
                records.append(outcome)
        return records, row_errors

    def batch_upsert(
        self, session: Session, records: list[PourReportRecord], skip_duplicates: bool = True
    ) -> UpsertOutcome:
        outcome = UpsertOutcome()
        unique, outcome.duplicates_skipped = dedupe_records(records)

        loader = self._loader_factory(session)
        for start in range(0, len(unique), self._batch_size):
            chunk = unique[start : start + self._batch_size]
            batch_number = start // self._batch_size + 1
            try:
                loader.upsert_chunk(chunk, skip_duplicates)
                outcome.imported += len(chunk)
            except (SQLAlchemyError, OverflowError) as exc:
                # driver-level overflow is not wrapped by SQLAlchemy
                loader.rollback()
                outcome.failed += len(chunk)
                outcome.errors.append(f"Batch {batch_number}: {exc}")
                logger.warning(
                    "pour report chunk failed",
                    extra={"batch": batch_number, "rows": len(chunk), "error": str(exc)},
                )

        if outcome.imported > 0:
            try:
                self._refresh_aggregates(session)
            except Exception:
                session.rollback()
                logger.warning("aggregate refresh failed after import", exc_info=True)
        return outcome

    def import_rows(
        self,
        session: Session,
        rows: list[dict],
        skip_duplicates: bool = True,
        source_format: str = "CANONICAL",
    ) -> ImportResponse:
        records, row_errors = self.transform_rows(rows, source_format)
        error_messages = [e.message for e in row_errors]
        if not records:
            raise NoValidRowsError(cap_errors(error_messages))

        outcome = self.batch_upsert(session, records, skip_duplicates)
        logger.info(
            "pour report import finished",
            extra={
                "total": len(rows),
                "imported": outcome.imported,
                "failed": outcome.failed,
                "duplicates_skipped": outcome.duplicates_skipped,
            },
        )
        return ImportResponse(
            success=outcome.imported > 0 or outcome.failed == 0,
            results=ImportResults(
                total=len(rows),
                imported=outcome.imported,
                failed=outcome.failed,
                skipped=len(rows) - len(records),
                duplicates_skipped=outcome.duplicates_skipped,
            ),
            errors=cap_errors(error_messages + outcome.errors),
        )

    def import_csv(
        self,
        session: Session,
        data: bytes | str,
        skip_duplicates: bool = True,
        source_format: str = "CANONICAL",
    ) -> ImportResponse:
        return self.import_rows(session, parse_csv_rows(data), skip_duplicates, source_format)
