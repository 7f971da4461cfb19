import logging

from app.logging_config import _BufferHandler, _ServiceNameFilter, get_log_buffer


def test_buffer_handler_keeps_newest_first():
    logger = logging.getLogger("tests.buffer")
    handler = _BufferHandler()
    logger.addHandler(handler)
    try:
        logger.warning("first %s", "scan")
        logger.warning("second scan")
    finally:
        logger.removeHandler(handler)

    recent = get_log_buffer(2)
    assert [r["message"] for r in recent] == ["second scan", "first scan"]
    assert recent[0]["level"] == "WARNING"
    assert recent[0]["name"] == "tests.buffer"
    assert recent[0]["context"] == {}


def test_service_name_filter_tags_records():
    record = logging.LogRecord("x", logging.INFO, __file__, 1, "hello", None, None)
    assert _ServiceNameFilter("pour-report-folder-ingest").filter(record) is True
    assert record.service == "pour-report-folder-ingest"


def test_buffer_entry_carries_extra_fields():
    logger = logging.getLogger("tests.buffer.extra")
    handler = _BufferHandler()
    logger.addHandler(handler)
    try:
        logger.warning("STOP scanned without a running START", extra={"equipment_number": "M1"})
        logger.warning("pour report chunk failed", extra={"batch": 3, "rows": 500})
    finally:
        logger.removeHandler(handler)

    recent = get_log_buffer(2)
    assert recent[0]["context"] == {"batch": 3, "rows": 500}
    assert recent[1]["context"] == {"equipment_number": "M1"}
