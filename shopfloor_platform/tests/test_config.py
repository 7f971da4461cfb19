from app.crons.pour_report_folder_ingest import load_folder_ingest_config
from app.db import load_db_config
from app.erp import load_erp_config


def test_db_config_defaults_to_local_sqlite(monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    config = load_db_config()
    assert config.url.startswith("sqlite:///")
    assert config.is_sqlite is True

    monkeypatch.setenv("DATABASE_URL", "postgresql+psycopg2://u:p@db/shopfloor")
    monkeypatch.setenv("SQL_ECHO", "true")
    config = load_db_config()
    assert config.url == "postgresql+psycopg2://u:p@db/shopfloor"
    assert config.is_sqlite is False
    assert config.echo is True


def test_erp_config_from_env(monkeypatch):
    for name in ("ODYSSEY_ERP_API_KEY", "ODYSSEY_ERP_USERNAME", "ODYSSEY_ERP_PASSWORD"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("ODYSSEY_ERP_API_URL", "https://erp.example/")
    monkeypatch.setenv("ODYSSEY_ERP_TIMEOUT", "7.5")

    config = load_erp_config()
    assert config.base_url == "https://erp.example"
    assert config.timeout_sec == 7.5
    assert config.configured is False

    monkeypatch.setenv("ODYSSEY_ERP_USERNAME", "u")
    monkeypatch.setenv("ODYSSEY_ERP_PASSWORD", "p")
    assert load_erp_config().configured is True


def test_folder_ingest_config_from_env(monkeypatch):
    monkeypatch.setenv("POUR_REPORT_DROP_DIR", "/srv/drop")
    monkeypatch.setenv("POUR_REPORT_SKIP_DUPLICATES", "false")
    config = load_folder_ingest_config()
    assert config.drop_dir == "/srv/drop"
    assert config.skip_duplicates is False
    assert config.source_format == "SPREADSHEET"
