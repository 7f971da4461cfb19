from __future__ import annotations

import hashlib
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.db import build_engine, build_session_factory, load_db_config
from app.ingest import PourReportImporter
from app.logging_config import setup_logging
from app.models import Base, FileIngestionState
from app.registry import default_registry

logger = logging.getLogger(__name__)

# ----------------------------
# Config / Constants
# ----------------------------

DEFAULT_DROP_DIR = "./pour_report_drop"
DEFAULT_PREFIX = "pour_report"
DEFAULT_SUFFIX = ".csv"


@dataclass(frozen=True)
class DropFile:
    path: Path

    @property
    def file_name(self) -> str:
        return self.path.name


@dataclass
class FolderIngestConfig:
    drop_dir: str
    prefix: str
    suffix: str
    source_format: str
    skip_duplicates: bool


def load_folder_ingest_config() -> FolderIngestConfig:
    return FolderIngestConfig(
        drop_dir=os.getenv("POUR_REPORT_DROP_DIR", DEFAULT_DROP_DIR),
        prefix=os.getenv("POUR_REPORT_FILE_PREFIX", DEFAULT_PREFIX),
        suffix=os.getenv("POUR_REPORT_FILE_SUFFIX", DEFAULT_SUFFIX),
        source_format=os.getenv("POUR_REPORT_SOURCE_FORMAT", "SPREADSHEET"),
        skip_duplicates=os.getenv("POUR_REPORT_SKIP_DUPLICATES", "true").lower() in {"1", "true", "yes"},
    )


# ----------------------------
# Ingestion state
# ----------------------------

def already_ingested_success(
    session: Session,
    source_location: str,
    file_name: str,
    file_hash: Optional[str],
) -> bool:
    stmt = (
        select(FileIngestionState)
        .where(
            FileIngestionState.source_location == source_location,
            FileIngestionState.file_name == file_name,
        )
        .order_by(FileIngestionState.ingestion_key.desc())
        .limit(1)
    )
    row = session.execute(stmt).scalars().first()

    if row is None or row.status != "SUCCESS":
        return False

    if file_hash and row.file_hash and file_hash != row.file_hash:
        # file changed => reprocess
        return False

    return True


def write_ingestion_state(
    session: Session,
    source_location: str,
    file_name: str,
    status: str,
    rows_loaded: int = 0,
    file_hash: Optional[str] = None,
    error_message: Optional[str] = None,
) -> None:
    session.add(
        FileIngestionState(
            source_location=source_location,
            file_name=file_name,
            file_hash=file_hash,
            status=status,
            rows_loaded=rows_loaded,
            error_message=error_message,
        )
    )


# ----------------------------
# Files
# ----------------------------

def list_drop_files(drop_dir: str, prefix: str, suffix: str) -> list[DropFile]:
    folder = Path(drop_dir)
    if not folder.is_dir():
        return []
    return [
        DropFile(path=p)
        for p in sorted(folder.iterdir())
        if p.is_file() and p.name.startswith(prefix) and p.name.lower().endswith(suffix.lower())
    ]


def sha256_hex(data: bytes) -> str:
    h = hashlib.sha256()
    h.update(data)
    return h.hexdigest()


# ----------------------------
# Orchestration
# ----------------------------

def ingest_folder_once(
    session: Session,
    importer: PourReportImporter,
    config: FolderIngestConfig,
) -> dict:
    source_location = str(Path(config.drop_dir).resolve())
    files = list_drop_files(config.drop_dir, config.prefix, config.suffix)

    summary = {
        "source_location": source_location,
        "files_found": len(files),
        "files_processed": 0,
        "files_skipped": 0,
        "rows_loaded": 0,
        "failures": [],
    }

    for f in files:
        file_hash = None
        try:
            data = f.path.read_bytes()
            file_hash = sha256_hex(data)

            if already_ingested_success(session, source_location, f.file_name, file_hash):
                summary["files_skipped"] += 1
                continue

            result = importer.import_csv(
                session,
                data,
                skip_duplicates=config.skip_duplicates,
                source_format=config.source_format,
            )
            if result.results.imported == 0 and result.results.failed > 0:
                raise RuntimeError("; ".join(result.errors) or "all batches failed")

            write_ingestion_state(
                session=session,
                source_location=source_location,
                file_name=f.file_name,
                status="SUCCESS",
                rows_loaded=result.results.imported,
                file_hash=file_hash,
            )
            session.commit()

            summary["files_processed"] += 1
            summary["rows_loaded"] += result.results.imported

        except (OSError, ValueError, RuntimeError) as exc:
            session.rollback()
            logger.warning("pour report file failed", extra={"file_name": f.file_name, "error": str(exc)})
            write_ingestion_state(
                session=session,
                source_location=source_location,
                file_name=f.file_name,
                status="FAILED",
                file_hash=file_hash,
                error_message=str(exc)[:2000],
            )
            session.commit()
            summary["failures"].append({"file_name": f.file_name, "error": str(exc)})

    return summary


def main() -> None:
    setup_logging("pour-report-folder-ingest")
    config = load_folder_ingest_config()

    engine = build_engine(load_db_config())
    Base.metadata.create_all(bind=engine)
    session_factory = build_session_factory(engine)
    importer = PourReportImporter(default_registry())

    with session_factory() as session:
        summary = ingest_folder_once(session, importer, config)

    logger.info("folder ingest summary", extra=summary)


if __name__ == "__main__":
    main()
