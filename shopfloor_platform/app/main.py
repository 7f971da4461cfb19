import logging
from contextlib import asynccontextmanager
from datetime import date
from typing import Generator, Optional

from fastapi import Body, Depends, FastAPI, HTTPException, Query, Request
from sqlalchemy.orm import Session

from app.contracts import (
    EquipmentRuntimeSummary,
    GradeStats,
    ImportRequest,
    ImportResponse,
    MachineEventOut,
    PourReportKpiOut,
    PourReportOut,
    PourReportPage,
    QRCodeCreate,
    QRCodeOut,
    RuntimeIntervalOut,
    RuntimeMetrics,
    ScanEventRequest,
    ScanResponse,
    UnpairedResponse,
)
from app.db import build_engine, build_session_factory, load_db_config
from app.erp import ErpError, ErpNotConfiguredError, OdysseyErpGateway, UpstreamUnavailableError, load_erp_config
from app.erp_sync import ErpSyncService
from app.csv_rows import CsvDecodeError
from app.ingest import NoValidRowsError, PourReportImporter
from app.kpis import list_kpis
from app.logging_config import get_log_buffer, setup_logging
from app.machine_events import (
    EventValidationError,
    MachineEventService,
    QRCodeExistsError,
    QRCodeNotFoundError,
    runtime_metrics,
)
from app.models import Base
from app.pour_reports import DuplicatePourReportError, PourReportNotFoundError, PourReportService
from app.registry import SourceFormatNotFoundError, default_registry
from app.views import ensure_shopfloor_views, query_view

logger = logging.getLogger(__name__)

# --- Source format registry / importer ---
_registry = default_registry()
_importer = PourReportImporter(_registry)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging("shopfloor-api")
    engine = build_engine(load_db_config())
    Base.metadata.create_all(bind=engine)
    ensure_shopfloor_views(engine)
    app.state.session_factory = build_session_factory(engine)
    app.state.erp_gateway = OdysseyErpGateway(load_erp_config())
    logger.info("shopfloor API started")
    yield
    engine.dispose()


# --- FastAPI app ---
app = FastAPI(title="Shop Floor Data Capture API", lifespan=lifespan)


def get_session(request: Request) -> Generator[Session, None, None]:
    with request.app.state.session_factory() as session:
        yield session


def get_erp_gateway(request: Request) -> OdysseyErpGateway:
    return request.app.state.erp_gateway


def _event_out(event, paired: bool = False) -> MachineEventOut:
    out = MachineEventOut.model_validate(event)
    out.paired = paired
    return out


@app.get("/health")
def health():
    return {"status": "ok", "source_formats": _registry.keys()}


@app.get("/logs/recent")
def recent_logs(limit: int = Query(100)):
    return get_log_buffer(min(limit, 200))


# --- Machine events ---

@app.post("/events", response_model=ScanResponse, status_code=201)
def record_event(payload: ScanEventRequest, session: Session = Depends(get_session)):
    metadata = payload.model_dump(exclude={"equipment_number", "event_type", "qr_code"})
    try:
        event, unpaired, paired = MachineEventService(session).record_event(
            payload.equipment_number,
            event_type=payload.event_type,
            qr_code=payload.qr_code,
            **metadata,
        )
    except QRCodeNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except EventValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    return ScanResponse(
        event=_event_out(event, paired=paired),
        event_type=event.event_type,
        message=f"Machine {event.event_type} event recorded successfully",
        unpaired_events_count=len(unpaired),
        unpaired_events=[_event_out(e) for e in unpaired],
    )


@app.get("/events/unpaired", response_model=UnpairedResponse)
def list_unpaired(
    equipment_number: Optional[str] = Query(None),
    session: Session = Depends(get_session),
):
    unpaired = MachineEventService(session).list_unpaired(equipment_number)
    return UnpairedResponse(count=len(unpaired), unpaired_events=[_event_out(e) for e in unpaired])


@app.get("/machine-runtime")
def machine_runtime(
    type: str = Query("intervals"),
    equipment_number: Optional[str] = Query(None),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    days_back: int = Query(30),
    session: Session = Depends(get_session),
):
    service = MachineEventService(session)
    if type == "intervals":
        intervals = service.compute_runtime_intervals(equipment_number, start_date, end_date)
        return {
            "type": "intervals",
            "count": len(intervals),
            "data": [
                RuntimeIntervalOut(
                    equipment_number=i.equipment_number,
                    start_event=_event_out(i.start_event, paired=True),
                    stop_event=_event_out(i.stop_event, paired=True),
                    duration_seconds=i.duration_seconds,
                )
                for i in intervals
            ],
            "metrics": RuntimeMetrics(**runtime_metrics(intervals)),
        }
    if type == "summary":
        summary = service.runtime_summary(equipment_number, days_back)
        return {
            "type": "summary",
            "count": len(summary),
            "data": [EquipmentRuntimeSummary(**row) for row in summary],
            "period_days": days_back,
        }
    raise HTTPException(
        status_code=400,
        detail={"error": "Invalid type parameter", "valid_types": ["intervals", "summary"]},
    )


@app.post("/qr-codes", response_model=QRCodeOut, status_code=201)
def create_qr_code(payload: QRCodeCreate, session: Session = Depends(get_session)):
    try:
        return MachineEventService(session).create_qr_code(
            payload.code, payload.event_type, payload.equipment_number, payload.description
        )
    except EventValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except QRCodeExistsError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc


# --- Pour reports ---

def _run_import(action):
    try:
        return action()
    except SourceFormatNotFoundError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except NoValidRowsError as exc:
        raise HTTPException(status_code=400, detail={"error": str(exc), "errors": exc.errors}) from exc
    except CsvDecodeError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except Exception as exc:
        logger.exception("pour report import failed")
        raise HTTPException(status_code=500, detail=str(exc)) from exc


@app.post("/pour-reports/import", response_model=ImportResponse)
def import_pour_reports(payload: ImportRequest, session: Session = Depends(get_session)):
    return _run_import(
        lambda: _importer.import_rows(
            session, payload.rows, payload.skip_duplicates, payload.source_format
        )
    )


@app.post("/pour-reports/import/csv", response_model=ImportResponse)
def import_pour_reports_csv(
    data: bytes = Body(..., media_type="text/csv"),
    skip_duplicates: bool = Query(True),
    source_format: str = Query("SPREADSHEET"),
    session: Session = Depends(get_session),
):
    return _run_import(lambda: _importer.import_csv(session, data, skip_duplicates, source_format))


@app.post("/pour-reports", response_model=PourReportOut, status_code=201)
def create_pour_report(payload: dict, session: Session = Depends(get_session)):
    try:
        return PourReportService(session).create(payload)
    except DuplicatePourReportError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.get("/pour-reports", response_model=PourReportPage)
def list_pour_reports(
    page: int = Query(1),
    page_size: int = Query(50),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    grade_name: Optional[str] = Query(None),
    shift: Optional[int] = Query(None),
    session: Session = Depends(get_session),
):
    rows, pagination = PourReportService(session).list_reports(
        page, page_size, start_date, end_date, grade_name, shift
    )
    return {"data": rows, "pagination": pagination}


@app.get("/pour-reports/search", response_model=list[PourReportOut])
def search_pour_reports(q: str = Query(..., min_length=1), session: Session = Depends(get_session)):
    return PourReportService(session).search(q)


@app.get("/pour-reports/grades")
def pour_report_grades(session: Session = Depends(get_session)):
    return PourReportService(session).unique_grades()


@app.get("/pour-reports/stats", response_model=GradeStats)
def pour_report_stats(
    grade_name: str = Query(...),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    session: Session = Depends(get_session),
):
    return PourReportService(session).stats_by_grade(grade_name, start_date, end_date)


@app.get("/pour-reports/kpis", response_model=list[PourReportKpiOut])
def pour_report_kpis(session: Session = Depends(get_session)):
    return list_kpis(session)


@app.get("/pour-reports/{report_id}", response_model=PourReportOut)
def get_pour_report(report_id: int, session: Session = Depends(get_session)):
    try:
        return PourReportService(session).get(report_id)
    except PourReportNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@app.put("/pour-reports/{report_id}", response_model=PourReportOut)
def update_pour_report(report_id: int, payload: dict, session: Session = Depends(get_session)):
    try:
        return PourReportService(session).update(report_id, payload)
    except PourReportNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except DuplicatePourReportError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.delete("/pour-reports/{report_id}", status_code=204)
def delete_pour_report(report_id: int, session: Session = Depends(get_session)):
    try:
        PourReportService(session).delete(report_id)
    except PourReportNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


# --- Reporting views ---

@app.get("/vw/pour-reports/daily")
def vw_pour_reports_daily(
    grade_name: Optional[str] = Query(None),
    limit: int = Query(100),
    session: Session = Depends(get_session),
):
    where = ""
    params = {}
    if grade_name:
        where = "grade_name = :grade_name"
        params["grade_name"] = grade_name
    return query_view(session, "vw_pour_report_daily", where, params, "pour_date DESC", limit)


@app.get("/vw/machine-events/counts")
def vw_machine_event_counts(
    equipment_number: Optional[str] = Query(None),
    limit: int = Query(100),
    session: Session = Depends(get_session),
):
    where = ""
    params = {}
    if equipment_number:
        where = "equipment_number = :equipment_number"
        params["equipment_number"] = equipment_number.strip().upper()
    return query_view(
        session, "vw_machine_event_counts", where, params, "equipment_number, event_type", limit
    )


# --- ERP gateway ---

@app.get("/erp/status")
def erp_status(
    session: Session = Depends(get_session),
    gateway: OdysseyErpGateway = Depends(get_erp_gateway),
):
    return {
        "config": gateway.status(),
        "sync_history": ErpSyncService(session, gateway).sync_history(limit=10),
    }


@app.post("/erp/test-connection")
def erp_test_connection(gateway: OdysseyErpGateway = Depends(get_erp_gateway)):
    if not gateway.config.configured:
        raise HTTPException(status_code=503, detail=str(ErpNotConfiguredError()))
    result = gateway.test_connection()
    if not result["success"]:
        raise HTTPException(status_code=502, detail=result)
    return {**result, "api_url": gateway.config.base_url, "company_id": gateway.config.company_id}


@app.post("/erp/sync")
def erp_sync(
    type: str = Query("all"),
    session: Session = Depends(get_session),
    gateway: OdysseyErpGateway = Depends(get_erp_gateway),
):
    if not gateway.config.configured:
        raise HTTPException(status_code=503, detail=str(ErpNotConfiguredError()))

    service = ErpSyncService(session, gateway)
    runs = {
        "products": service.sync_products,
        "shop-orders": service.sync_shop_orders,
        "all": service.sync_all,
    }
    if type not in runs:
        raise HTTPException(status_code=400, detail=f"Unknown sync type {type!r}")
    try:
        result = runs[type]()
    except UpstreamUnavailableError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    except ErpError as exc:
        raise HTTPException(status_code=502, detail={"error": str(exc), "code": exc.code}) from exc
    return {"type": type, **result}
