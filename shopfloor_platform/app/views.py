from sqlalchemy import text

_VIEWS = [
    (
        "vw_pour_report_daily",
        """
        CREATE OR REPLACE VIEW vw_pour_report_daily AS
        SELECT
            pr.pour_date,
            pr.grade_name,
            COUNT(*) AS total_pours,
            SUM(pr.cast_weight) AS total_weight,
            AVG(pr.pour_temperature) AS avg_pour_temperature,
            AVG(pr.cost_per_pound) AS avg_cost_per_pound
        FROM pour_report pr
        WHERE pr.pour_date IS NOT NULL
        GROUP BY pr.pour_date, pr.grade_name
        """,
    ),
    (
        "vw_machine_event_counts",
        """
        CREATE OR REPLACE VIEW vw_machine_event_counts AS
        SELECT
            mse.equipment_number,
            mse.event_type,
            COUNT(*) AS event_count,
            MAX(mse.event_timestamp) AS last_event_timestamp
        FROM machine_state_event mse
        GROUP BY mse.equipment_number, mse.event_type
        """,
    ),
]


def ensure_shopfloor_views(engine) -> None:
    """Create or replace the reporting views over pour reports and machine events.

    Idempotent and safe to run on each startup.
    """
    with engine.begin() as conn:
        dialect = getattr(engine, "dialect", None)
        dialect_name = getattr(dialect, "name", None)
        for view_name, sql in _VIEWS:
            # SQLite doesn't support CREATE OR REPLACE VIEW; use DROP/CREATE instead
            if dialect_name == "sqlite":
                conn.execute(text(f"DROP VIEW IF EXISTS {view_name}"))
                conn.execute(text(sql.replace("CREATE OR REPLACE VIEW", "CREATE VIEW")))
            else:
                conn.execute(text(sql))


def query_view(session, view_name: str, where_clause: str = "", params: dict | None = None,
               order_by: str = "", limit: int = 100) -> list[dict]:
    limit = min(limit, 500)
    sql = f"SELECT * FROM {view_name}"
    if where_clause:
        sql = sql + " WHERE " + where_clause
    if order_by:
        sql = sql + " ORDER BY " + order_by
    sql = sql + " LIMIT :limit"
    params = dict(params or {})
    params["limit"] = limit
    res = session.execute(text(sql), params)
    cols = res.keys()
    return [dict(zip(cols, row)) for row in res.fetchall()]


__all__ = ["ensure_shopfloor_views", "query_view"]
