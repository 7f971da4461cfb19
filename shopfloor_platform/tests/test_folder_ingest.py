from sqlalchemy import func, select

from app.crons.pour_report_folder_ingest import (
    FolderIngestConfig,
    ingest_folder_once,
    list_drop_files,
)
from app.ingest import PourReportImporter
from app.models import FileIngestionState, PourReport
from app.registry import default_registry

_CSV = (
    "Heat Number,Date,Cast Wgt,Full Heat Number\n"
    "24A2540,02/04/25,2450,24A2540-1\n"
    "24A2541,02/04/25,2300,24A2541-1\n"
)


def _config(tmp_path):
    return FolderIngestConfig(
        drop_dir=str(tmp_path),
        prefix="pour_report",
        suffix=".csv",
        source_format="SPREADSHEET",
        skip_duplicates=True,
    )


def test_list_drop_files_filters_by_prefix_and_suffix(tmp_path):
    (tmp_path / "pour_report_2026-03-02.csv").write_text(_CSV)
    (tmp_path / "pour_report_notes.txt").write_text("x")
    (tmp_path / "other.csv").write_text(_CSV)
    files = list_drop_files(str(tmp_path), "pour_report", ".csv")
    assert [f.file_name for f in files] == ["pour_report_2026-03-02.csv"]
    assert list_drop_files(str(tmp_path / "missing"), "pour_report", ".csv") == []


def test_ingest_folder_once_skips_unchanged_files(tmp_path, session):
    (tmp_path / "pour_report_2026-03-02.csv").write_text(_CSV)
    importer = PourReportImporter(default_registry())

    first = ingest_folder_once(session, importer, _config(tmp_path))
    assert first["files_processed"] == 1
    assert first["rows_loaded"] == 2
    assert first["failures"] == []

    second = ingest_folder_once(session, importer, _config(tmp_path))
    assert second["files_skipped"] == 1
    assert second["files_processed"] == 0

    assert session.execute(select(func.count()).select_from(PourReport)).scalar_one() == 2


def test_ingest_folder_once_records_failures(tmp_path, session):
    (tmp_path / "pour_report_bad.csv").write_text("Heat Number,Date\n,02/04/25\n")
    importer = PourReportImporter(default_registry())

    summary = ingest_folder_once(session, importer, _config(tmp_path))
    assert summary["files_processed"] == 0
    assert summary["failures"][0]["file_name"] == "pour_report_bad.csv"

    state = session.execute(select(FileIngestionState)).scalar_one()
    assert state.status == "FAILED"
    assert state.file_hash is not None


def test_ingest_folder_once_marks_undecodable_file_failed(tmp_path, session):
    (tmp_path / "pour_report_latin1.csv").write_bytes(b"Heat Number,Full Heat Number\n\xff\xfe24A,24A-1\n")
    importer = PourReportImporter(default_registry())

    summary = ingest_folder_once(session, importer, _config(tmp_path))
    assert summary["files_processed"] == 0
    assert "UTF-8" in summary["failures"][0]["error"]
    assert session.execute(select(FileIngestionState.status)).scalar_one() == "FAILED"
