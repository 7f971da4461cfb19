from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field, computed_field


class ScanEventRequest(BaseModel):
    equipment_number: str | None = None
    event_type: str | None = None
    qr_code: str | None = None
    operator: str | None = None
    operator_id: str | None = None
    shift: int | None = None
    work_center: str | None = None
    part_number: str | None = None
    job_number: str | None = None
    notes: str | None = None
    tool_change_id: int | None = None


class MachineEventOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    equipment_number: str
    event_type: str
    event_timestamp: datetime
    operator: str | None = None
    operator_id: str | None = None
    shift: int | None = None
    work_center: str | None = None
    part_number: str | None = None
    job_number: str | None = None
    qr_code_data: str | None = None
    notes: str | None = None
    tool_change_id: int | None = None
    paired: bool = False


class ScanResponse(BaseModel):
    success: bool = True
    event: MachineEventOut
    event_type: str
    message: str
    unpaired_events_count: int
    unpaired_events: list[MachineEventOut]


class UnpairedResponse(BaseModel):
    success: bool = True
    count: int
    unpaired_events: list[MachineEventOut]


class RuntimeIntervalOut(BaseModel):
    equipment_number: str
    start_event: MachineEventOut
    stop_event: MachineEventOut
    duration_seconds: float


class RuntimeMetrics(BaseModel):
    interval_count: int
    total_runtime_seconds: float
    average_runtime_seconds: float | None = None
    min_runtime_seconds: float | None = None
    max_runtime_seconds: float | None = None


class EquipmentRuntimeSummary(BaseModel):
    equipment_number: str
    interval_count: int
    total_runtime_hours: float
    unpaired_count: int
    last_event_type: str | None = None
    last_event_timestamp: datetime | None = None


class QRCodeCreate(BaseModel):
    code: str
    event_type: str
    equipment_number: str | None = None
    description: str | None = None


class QRCodeOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    code: str
    event_type: str
    equipment_number: str | None = None
    description: str | None = None
    active: bool


class PourReportRecord(BaseModel):
    """Typed pour report produced from an untyped source row."""

    heat_number: str
    pour_date: date | None = None
    grade_name: str | None = None
    stock_code: str | None = None
    job_number: int | None = None
    cast_weight: float | None = None
    cmop: int | None = None
    dash_number: str | None = None
    die_number: int | None = None
    shift: int | None = None
    melter_id: int | None = None
    furnace_number: int | None = None
    power_percent: float | None = None
    new_lining: bool = False
    ladle_number: int | None = None
    start_time: str | None = None
    tap_time: str | None = None
    tap_temp: int | None = None
    pour_temperature: int | None = None
    liquid_canon: float | None = None
    canon_psi: float | None = None
    bath_weight_carried_in: float | None = None
    rice_hulls_amount: float | None = None
    liquid_amount: float | None = None
    liquid_type: str | None = None
    wash_thickness: float | None = None
    wash_pass: int | None = None
    pour_time_seconds: int | None = None
    wash_type: str | None = None
    die_temp_before_pour: int | None = None
    die_rpm: int | None = None
    baume: float | None = None
    spin_time_minutes: int | None = None
    cost_per_pound: float | None = None
    full_heat_number: str | None = None
    comments: str | None = None


def estimate_pour_cost(cast_weight: float | None, cost_per_pound: float | None) -> float | None:
    if cast_weight is None or cost_per_pound is None:
        return None
    return round(cast_weight * cost_per_pound, 2)


class PourReportOut(PourReportRecord):
    model_config = ConfigDict(from_attributes=True)

    id: int
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @computed_field
    @property
    def estimated_pour_cost(self) -> float | None:
        return estimate_pour_cost(self.cast_weight, self.cost_per_pound)


class RowError(BaseModel):
    row: int
    message: str


class ImportRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    rows: list[dict] = Field(default_factory=list)
    skip_duplicates: bool = Field(True, alias="skipDuplicates")
    source_format: str = "CANONICAL"


class ImportResults(BaseModel):
    total: int
    imported: int
    failed: int
    skipped: int
    duplicates_skipped: int = 0


class ImportResponse(BaseModel):
    success: bool
    results: ImportResults
    errors: list[str]


class Pagination(BaseModel):
    page: int
    page_size: int
    total_records: int
    total_pages: int


class PourReportPage(BaseModel):
    data: list[PourReportOut]
    pagination: Pagination


class GradeStats(BaseModel):
    grade_name: str
    total_pours: int
    total_weight: float
    avg_weight: float
    avg_temp: float
    avg_rpm: float
    avg_cost_per_lb: float


class PourReportKpiOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    month: str
    total_pours: int
    total_weight: float
    avg_cast_weight: float | None = None
    avg_pour_temperature: float | None = None
    avg_die_rpm: float | None = None
    avg_cost_per_pound: float | None = None
