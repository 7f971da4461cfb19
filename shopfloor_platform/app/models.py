from datetime import datetime, date

from sqlalchemy import (
    Boolean,
    DateTime,
    Date,
    Float,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class MachineStateEvent(Base):
    __tablename__ = "machine_state_event"

    # id doubles as the insertion sequence used to break timestamp ties
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    equipment_number: Mapped[str] = mapped_column(String(50), nullable=False)
    event_type: Mapped[str] = mapped_column(String(5), nullable=False)
    event_timestamp: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    operator: Mapped[str | None] = mapped_column(String(100), nullable=True)
    operator_id: Mapped[str | None] = mapped_column(String(50), nullable=True)
    shift: Mapped[int | None] = mapped_column(Integer, nullable=True)
    work_center: Mapped[str | None] = mapped_column(String(50), nullable=True)
    part_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    job_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    qr_code_data: Mapped[str | None] = mapped_column(String(200), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    tool_change_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=func.now())

    __table_args__ = (
        Index("ix_mse_equipment_ts", "equipment_number", "event_timestamp"),
    )


class QRCodeDefinition(Base):
    __tablename__ = "qr_code_definition"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String(200), unique=True, nullable=False)
    event_type: Mapped[str] = mapped_column(String(5), nullable=False)
    equipment_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    description: Mapped[str | None] = mapped_column(String(250), nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=func.now())


class PourReport(Base):
    __tablename__ = "pour_report"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    heat_number: Mapped[str] = mapped_column(String(50), nullable=False)
    pour_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    grade_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    stock_code: Mapped[str | None] = mapped_column(String(100), nullable=True)
    job_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    cast_weight: Mapped[float | None] = mapped_column(Float, nullable=True)
    cmop: Mapped[int | None] = mapped_column(Integer, nullable=True)
    dash_number: Mapped[str | None] = mapped_column(String(20), nullable=True)
    die_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    shift: Mapped[int | None] = mapped_column(Integer, nullable=True)
    melter_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    furnace_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    power_percent: Mapped[float | None] = mapped_column(Float, nullable=True)
    new_lining: Mapped[bool] = mapped_column(Boolean, default=False)
    ladle_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    start_time: Mapped[str | None] = mapped_column(String(8), nullable=True)
    tap_time: Mapped[str | None] = mapped_column(String(8), nullable=True)
    tap_temp: Mapped[int | None] = mapped_column(Integer, nullable=True)
    pour_temperature: Mapped[int | None] = mapped_column(Integer, nullable=True)
    liquid_canon: Mapped[float | None] = mapped_column(Float, nullable=True)
    canon_psi: Mapped[float | None] = mapped_column(Float, nullable=True)
    bath_weight_carried_in: Mapped[float | None] = mapped_column(Float, nullable=True)
    rice_hulls_amount: Mapped[float | None] = mapped_column(Float, nullable=True)
    liquid_amount: Mapped[float | None] = mapped_column(Float, nullable=True)
    liquid_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    wash_thickness: Mapped[float | None] = mapped_column(Float, nullable=True)
    wash_pass: Mapped[int | None] = mapped_column(Integer, nullable=True)
    pour_time_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)
    wash_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    die_temp_before_pour: Mapped[int | None] = mapped_column(Integer, nullable=True)
    die_rpm: Mapped[int | None] = mapped_column(Integer, nullable=True)
    baume: Mapped[float | None] = mapped_column(Float, nullable=True)
    spin_time_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    cost_per_pound: Mapped[float | None] = mapped_column(Float, nullable=True)
    full_heat_number: Mapped[str | None] = mapped_column(String(60), nullable=True)
    comments: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("full_heat_number", name="uq_pour_report_full_heat"),
        Index("ix_pour_report_date", "pour_date"),
        Index("ix_pour_report_grade", "grade_name"),
    )


class PourReportKpi(Base):
    __tablename__ = "pour_report_kpi"

    month: Mapped[str] = mapped_column(String(7), primary_key=True)
    total_pours: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_weight: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    avg_cast_weight: Mapped[float | None] = mapped_column(Float, nullable=True)
    avg_pour_temperature: Mapped[float | None] = mapped_column(Float, nullable=True)
    avg_die_rpm: Mapped[float | None] = mapped_column(Float, nullable=True)
    avg_cost_per_pound: Mapped[float | None] = mapped_column(Float, nullable=True)
    refreshed_at: Mapped[datetime] = mapped_column(DateTime, default=func.now())


class FileIngestionState(Base):
    __tablename__ = "etl_file_ingestion_state"

    ingestion_key: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    source_location: Mapped[str] = mapped_column(Text, nullable=False)
    file_name: Mapped[str] = mapped_column(Text, nullable=False)
    file_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    rows_loaded: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    ingested_at: Mapped[datetime] = mapped_column(DateTime, default=func.now())

    __table_args__ = (
        Index("ix_etl_file_lookup", "source_location", "file_name"),
    )


class ErpProduct(Base):
    __tablename__ = "erp_product"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    product_number: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    product_description: Mapped[str | None] = mapped_column(String(250), nullable=True)
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)
    unit_of_measure: Mapped[str | None] = mapped_column(String(20), nullable=True)
    unit_weight: Mapped[float | None] = mapped_column(Float, nullable=True)
    unit_cost: Mapped[float | None] = mapped_column(Float, nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, default=True)
    erp_item_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    last_synced: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)


class ErpShopOrder(Base):
    __tablename__ = "erp_shop_order"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    job_number: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    part_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    description: Mapped[str | None] = mapped_column(String(250), nullable=True)
    quantity_ordered: Mapped[int] = mapped_column(Integer, default=0)
    quantity_completed: Mapped[int] = mapped_column(Integer, default=0)
    quantity_remaining: Mapped[int] = mapped_column(Integer, default=0)
    status: Mapped[str] = mapped_column(String(30), default="Open")
    priority: Mapped[str] = mapped_column(String(30), default="Normal")
    due_date: Mapped[str | None] = mapped_column(String(30), nullable=True)
    work_center: Mapped[str | None] = mapped_column(String(50), nullable=True)
    customer: Mapped[str | None] = mapped_column(String(200), nullable=True)
    erp_order_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    last_synced: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)


class ErpSyncLog(Base):
    __tablename__ = "erp_sync_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    total_items: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    synced_items: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    failed_items: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error_messages: Mapped[str | None] = mapped_column(Text, nullable=True)
    duration_ms: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=func.now())
