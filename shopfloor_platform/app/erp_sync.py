import json
import logging
import time
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.erp import ErpError, OdysseyErpGateway, UpstreamUnavailableError
from app.loaders.pour_report_loader import dialect_insert
from app.models import ErpProduct, ErpShopOrder, ErpSyncLog

logger = logging.getLogger(__name__)


def _to_float(value) -> float | None:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _to_int(value) -> int:
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return 0


def _first(record: dict, *keys):
    for key in keys:
        value = record.get(key)
        if value not in (None, ""):
            return value
    return None


def map_product(item: dict, synced_at: datetime) -> dict:
    return {
        "product_number": str(_first(item, "itemNumber", "item_number") or ""),
        "product_description": _first(item, "description", "item_description"),
        "category": _first(item, "category", "item_class"),
        "unit_of_measure": _first(item, "uom", "unit_of_measure"),
        "unit_weight": _to_float(item.get("weight")),
        "unit_cost": _to_float(_first(item, "standardCost", "cost")),
        "active": item.get("active") is not False,
        "erp_item_id": str(_first(item, "id", "itemId") or "") or None,
        "last_synced": synced_at,
    }


def map_shop_order(order: dict, synced_at: datetime) -> dict:
    return {
        "job_number": str(_first(order, "orderNumber", "job_number", "shopOrderNumber") or ""),
        "part_number": _first(order, "itemNumber", "part_number"),
        "description": _first(order, "description", "item_description"),
        "quantity_ordered": _to_int(_first(order, "quantityOrdered", "qty_ordered")),
        "quantity_completed": _to_int(_first(order, "quantityCompleted", "qty_completed")),
        "quantity_remaining": _to_int(_first(order, "quantityRemaining", "qty_remaining")),
        "status": _first(order, "status") or "Open",
        "priority": _first(order, "priority") or "Normal",
        "due_date": _first(order, "dueDate", "due_date"),
        "work_center": _first(order, "workCenter", "work_center"),
        "customer": _first(order, "customerName", "customer"),
        "erp_order_id": str(_first(order, "id", "shopOrderId") or "") or None,
        "last_synced": synced_at,
    }


class ErpSyncService:
    def __init__(self, session: Session, gateway: OdysseyErpGateway):
        self._session = session
        self._gateway = gateway

    def _upsert(self, model, key: str, rows: list[dict]) -> None:
        stmt = dialect_insert(self._session, model.__table__)
        updates = {name: stmt.excluded[name] for name in rows[0] if name != key}
        stmt = stmt.on_conflict_do_update(index_elements=[key], set_=updates)
        self._session.connection().execute(stmt, rows)
        self._session.commit()

    def _sync(self, entity_type: str, fetch, mapper, model, key: str) -> dict:
        started = time.monotonic()
        results = {"success": True, "synced": 0, "failed": 0, "errors": []}
        try:
            items = fetch()
            logger.info("fetched ERP records", extra={"entity_type": entity_type, "count": len(items)})
            synced_at = datetime.now(timezone.utc).replace(tzinfo=None)
            rows = [mapper(item, synced_at) for item in items]
            keyed = [row for row in rows if row[key]]
            results["failed"] = len(rows) - len(keyed)
            if results["failed"]:
                results["errors"].append(f"{results['failed']} records without {key}")
            # one row per key, last wins; an upsert may not touch the same row twice
            unique = list({row[key]: row for row in keyed}.values())
            if len(unique) < len(keyed):
                logger.warning(
                    "duplicate ERP records collapsed",
                    extra={"entity_type": entity_type, "count": len(keyed) - len(unique)},
                )
            keyed = unique
            if keyed:
                try:
                    self._upsert(model, key, keyed)
                    results["synced"] = len(keyed)
                except SQLAlchemyError as exc:
                    self._session.rollback()
                    logger.error("saving ERP records failed", extra={"entity_type": entity_type})
                    results["errors"].append(f"Database error: {exc}")
                    results["failed"] += len(keyed)
        except UpstreamUnavailableError as exc:
            results["success"] = False
            results["errors"].append(str(exc))
            self._log_sync(entity_type, results, int((time.monotonic() - started) * 1000))
            raise
        except ErpError as exc:
            logger.error("ERP sync failed", extra={"entity_type": entity_type, "error": str(exc)})
            results["success"] = False
            results["errors"].append(str(exc))

        self._log_sync(entity_type, results, int((time.monotonic() - started) * 1000))
        return results

    def sync_products(self, **options) -> dict:
        return self._sync(
            "products",
            lambda: self._gateway.fetch_products(**options),
            map_product,
            ErpProduct,
            "product_number",
        )

    def sync_shop_orders(self, **options) -> dict:
        return self._sync(
            "shop_orders",
            lambda: self._gateway.fetch_shop_orders(**options),
            map_shop_order,
            ErpShopOrder,
            "job_number",
        )

    def sync_all(self) -> dict:
        summary = {"products": None, "shop_orders": None, "total_synced": 0, "total_failed": 0, "errors": []}
        for name, label, run in (
            ("products", "Products", self.sync_products),
            ("shop_orders", "Shop Orders", self.sync_shop_orders),
        ):
            result = run()
            summary[name] = result
            summary["total_synced"] += result["synced"]
            summary["total_failed"] += result["failed"]
            summary["errors"].extend(f"{label}: {e}" for e in result["errors"])
        logger.info(
            "ERP sync complete",
            extra={"synced": summary["total_synced"], "failed": summary["total_failed"]},
        )
        return summary

    def sync_history(self, entity_type: str | None = None, limit: int = 50) -> list[dict]:
        stmt = select(ErpSyncLog).order_by(ErpSyncLog.created_at.desc(), ErpSyncLog.id.desc()).limit(limit)
        if entity_type:
            stmt = stmt.where(ErpSyncLog.entity_type == entity_type)
        return [
            {
                "entity_type": log.entity_type,
                "status": log.status,
                "total_items": log.total_items,
                "synced_items": log.synced_items,
                "failed_items": log.failed_items,
                "error_messages": json.loads(log.error_messages) if log.error_messages else None,
                "duration_ms": log.duration_ms,
                "created_at": log.created_at,
            }
            for log in self._session.execute(stmt).scalars().all()
        ]

    def _log_sync(self, entity_type: str, results: dict, duration_ms: int) -> None:
        if not results["success"]:
            status = "failed"
        elif results["failed"] > 0:
            status = "partial"
        else:
            status = "success"
        self._session.add(
            ErpSyncLog(
                entity_type=entity_type,
                status=status,
                total_items=results["synced"] + results["failed"],
                synced_items=results["synced"],
                failed_items=results["failed"],
                error_messages=json.dumps(results["errors"]) if results["errors"] else None,
                duration_ms=duration_ms,
            )
        )
        try:
            self._session.commit()
        except SQLAlchemyError:
            self._session.rollback()
            logger.exception("writing ERP sync log failed")
