"""REST backend for accounting-firm invoice pricing."""

from __future__ import annotations

import asyncio
import json
import math
import uuid
from datetime import datetime
from typing import Any, Callable, Dict, List

import pandas as pd
import structlog
from flask import Flask, jsonify, request

from laskuri.config import settings
from laskuri.data_model import CalculationType, CompanyType, Customer, CustomerTableModel
from laskuri.engine.aggregate import calculations_frame, summarize_by_customer, summarize_by_type
from laskuri.engine.pricing import calculate_invoice_result
from laskuri.engine.state import CalculationManager
from laskuri.engine.storage import JsonDocumentStore
from laskuri.errors import NotFoundError, StorageError
from laskuri.log import configure_logging

logger = structlog.get_logger()

CUSTOMER_MODEL = CustomerTableModel()


def _is_nan(value: Any) -> bool:
    try:
        return not math.isfinite(value)
    except (TypeError, ValueError):
        return False


def _sanitize_records(records: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    clean_rows: List[Dict[str, Any]] = []
    for row in records:
        clean_rows.append({key: (None if _is_nan(value) else value) for key, value in row.items()})
    return clean_rows


def _frame_records(df: pd.DataFrame) -> List[Dict[str, Any]]:
    return json.loads(df.to_json(orient="records", date_format="iso"))


def _model_payload(model: CustomerTableModel) -> Dict[str, Any]:
    columns: List[Dict[str, Any]] = []
    date_fields: List[str] = []
    for col in model.columns:
        columns.append(
            {
                "field": col.field,
                "label": col.label,
                "kind": col.kind,
                "default": col.default,
                "options": col.options or [],
                "min": col.min_value,
                "step": col.step,
                "format": col.format,
                "help": col.help,
            }
        )
        if col.kind == "date":
            date_fields.append(col.field)
    return {
        "name": model.name,
        "columns": columns,
        "defaults": model.default_rows,
        "flatDefaults": _sanitize_records(model.create_default_df().to_dict("records")),
        "dateFields": date_fields,
    }


def _extract_payload_value(payload: dict, *keys: str, default=None):
    for key in keys:
        if key in payload and payload[key] is not None:
            return payload[key]
    return default


def _parse_vat_rate(value: Any, default: float | None) -> float | None:
    if value is None or value == "":
        return default
    return float(value)


def _customer_from_payload(payload: dict) -> Customer:
    row = _extract_payload_value(payload, "customer", default=payload)
    if not isinstance(row, dict):
        raise ValueError("Customer payload must be an object.")
    if CUSTOMER_MODEL.is_flat(row):
        # Editor rows arrive flattened to dotted column paths
        row = CUSTOMER_MODEL.nest(row)
    return Customer.from_dict(row)


def create_app(
    store: JsonDocumentStore | None = None,
    clock: Callable[[], datetime] | None = None,
    id_factory: Callable[[], str] | None = None,
) -> Flask:
    app = Flask(__name__)
    store = store or JsonDocumentStore()
    manager = CalculationManager(store, clock=clock, id_factory=id_factory)
    new_id = id_factory or (lambda: str(uuid.uuid4()))
    app.extensions["laskuri"] = {"store": store, "manager": manager}

    @app.after_request
    def apply_cors_headers(response):
        response.headers["Access-Control-Allow-Origin"] = "*"
        response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,OPTIONS"
        response.headers["Access-Control-Allow-Headers"] = "Content-Type"
        return response

    @app.errorhandler(NotFoundError)
    def handle_not_found(exc: NotFoundError):
        return jsonify({"error": str(exc)}), 404

    @app.errorhandler(StorageError)
    def handle_storage_error(exc: StorageError):
        logger.error("request_storage_failed", path=request.path, error=str(exc))
        return jsonify({"error": str(exc)}), 500

    @app.get("/api/health")
    def healthcheck():
        return jsonify({"status": "ok"})

    @app.get("/api/schema")
    def get_schema():
        payload = {
            "customer": _model_payload(CUSTOMER_MODEL),
            "companyTypes": [
                {"label": "Sole trader", "value": CompanyType.SOLE_TRADER.value},
                {"label": "Limited company", "value": CompanyType.LIMITED_COMPANY.value},
            ],
            "calculationTypes": [member.value for member in CalculationType],
            "defaultVatRate": settings.DEFAULT_VAT_RATE,
        }
        return jsonify(payload)

    # -- customers ----------------------------------------------------

    @app.get("/api/customers")
    async def list_customers():
        customers = await store.load_customers()
        return jsonify({"customers": [c.to_dict() for c in customers]})

    @app.post("/api/customers")
    async def add_customer():
        payload = request.get_json(silent=True) or {}
        try:
            customer = _customer_from_payload(payload)
        except (TypeError, ValueError) as exc:
            return jsonify({"error": str(exc)}), 400
        if not customer.name:
            return jsonify({"error": "Customer name is required."}), 400
        if not customer.id:
            customer.id = new_id()
        customers = await store.add_customer(customer)
        return jsonify({
            "message": "Customer saved.",
            "customer": customer.to_dict(),
            "customers": [c.to_dict() for c in customers],
        })

    @app.put("/api/customers/<customer_id>")
    async def update_customer(customer_id: str):
        payload = request.get_json(silent=True) or {}
        try:
            customer = _customer_from_payload(payload)
        except (TypeError, ValueError) as exc:
            return jsonify({"error": str(exc)}), 400
        customer.id = customer_id
        if customer.calculation_ids is None:
            # Editors don't send the index; keep the stored one
            existing = await store.get_customer(customer_id)
            if existing is not None:
                customer.calculation_ids = existing.calculation_ids
        customers = await store.update_customer(customer)
        return jsonify({
            "message": "Customer updated.",
            "customer": customer.to_dict(),
            "customers": [c.to_dict() for c in customers],
        })

    @app.delete("/api/customers/<customer_id>")
    async def delete_customer(customer_id: str):
        customers = await store.delete_customer(customer_id)
        return jsonify({"message": "Customer deleted.", "customers": [c.to_dict() for c in customers]})

    # -- pricing ------------------------------------------------------

    @app.post("/api/invoice")
    def price_invoice():
        payload = request.get_json(silent=True) or {}
        try:
            customer = _customer_from_payload(payload)
            vat_rate = _parse_vat_rate(payload.get("vatRate"), settings.DEFAULT_VAT_RATE)
        except (TypeError, ValueError) as exc:
            return jsonify({"error": str(exc)}), 400
        result = calculate_invoice_result(customer, vat_rate, manager.now())
        return jsonify({"result": _sanitize_result(result.to_dict())})

    @app.get("/api/customers/<customer_id>/invoice")
    async def price_customer(customer_id: str):
        try:
            vat_rate = _parse_vat_rate(request.args.get("vatRate"), settings.DEFAULT_VAT_RATE)
        except ValueError:
            return jsonify({"error": "Invalid VAT rate."}), 400
        customer = await store.get_customer(customer_id)
        if customer is None:
            raise NotFoundError("Customer", customer_id)
        result = calculate_invoice_result(customer, vat_rate, manager.now())
        return jsonify({"customerId": customer_id, "result": _sanitize_result(result.to_dict())})

    # -- saved calculations ---------------------------------------------

    @app.get("/api/calculations")
    async def list_calculations():
        customer_id = request.args.get("customerId")
        if customer_id:
            calculations = await manager.calculations_for_customer(customer_id)
        else:
            calculations = await manager.list_calculations()
        return jsonify({"calculations": [c.to_dict() for c in calculations]})

    @app.get("/api/calculations/summary")
    async def summarize_calculations():
        by = (request.args.get("by") or "customer").lower()
        if by not in {"customer", "type"}:
            return jsonify({"error": "Summary must be by 'customer' or 'type'."}), 400
        df = calculations_frame(await manager.list_calculations())
        summary = summarize_by_customer(df) if by == "customer" else summarize_by_type(df)
        return jsonify({"by": by, "data": _frame_records(summary)})

    @app.post("/api/calculations")
    async def create_calculation():
        payload = request.get_json(silent=True) or {}
        customer_id = str(_extract_payload_value(payload, "customerId", "customer_id", default="")).strip()
        name = str(payload.get("name", "")).strip()
        if not customer_id:
            return jsonify({"error": "customerId is required."}), 400
        if not name:
            return jsonify({"error": "Calculation name is required."}), 400
        try:
            calculation_type = CalculationType.parse(payload.get("type"))
            vat_rate = _parse_vat_rate(payload.get("vatRate"), settings.DEFAULT_VAT_RATE)
        except (TypeError, ValueError) as exc:
            return jsonify({"error": str(exc)}), 400
        customer = await store.get_customer(customer_id)
        if customer is None:
            raise NotFoundError("Customer", customer_id)
        calc = await manager.create_calculation(
            customer,
            name,
            calculation_type,
            description=str(payload.get("description") or ""),
            notes=str(payload.get("notes") or ""),
            vat_rate=vat_rate,
        )
        return jsonify({"message": "Calculation saved.", "calculation": calc.to_dict()})

    @app.get("/api/calculations/<calculation_id>")
    async def get_calculation(calculation_id: str):
        calc = await manager.get_calculation(calculation_id)
        return jsonify(calc.to_dict())

    @app.put("/api/calculations/<calculation_id>")
    async def update_calculation(calculation_id: str):
        payload = request.get_json(silent=True) or {}
        changes = {key: payload[key] for key in ("name", "description", "notes") if payload.get(key) is not None}
        if "name" in changes:
            changes["name"] = str(changes["name"]).strip()
            if not changes["name"]:
                return jsonify({"error": "Calculation name is required."}), 400
        if payload.get("type") is not None:
            changes["calculation_type"] = payload["type"]
        try:
            calc = await manager.update_calculation_details(calculation_id, **changes)
        except ValueError as exc:
            return jsonify({"error": str(exc)}), 400
        return jsonify({"message": "Calculation updated.", "calculation": calc.to_dict()})

    @app.delete("/api/calculations/<calculation_id>")
    async def delete_calculation(calculation_id: str):
        calculations = await manager.delete_calculation(calculation_id)
        return jsonify({"message": "Calculation deleted.", "calculations": [c.to_dict() for c in calculations]})

    @app.post("/api/calculations/<calculation_id>/duplicate")
    async def duplicate_calculation(calculation_id: str):
        payload = request.get_json(silent=True) or {}
        new_name = str(payload.get("name") or "").strip() or None
        calc = await manager.duplicate_calculation(calculation_id, new_name)
        return jsonify({"message": "Calculation duplicated.", "calculation": calc.to_dict()})

    @app.post("/api/calculations/<calculation_id>/recalculate")
    async def recalculate_calculation(calculation_id: str):
        payload = request.get_json(silent=True) or {}
        try:
            vat_rate = _parse_vat_rate(payload.get("vatRate"), None)
        except (TypeError, ValueError):
            return jsonify({"error": "Invalid VAT rate."}), 400
        calc = await manager.recalculate_calculation(calculation_id, vat_rate)
        return jsonify({"message": "Calculation recalculated.", "calculation": calc.to_dict()})

    @app.put("/api/calculations/<calculation_id>/customer")
    async def update_calculation_customer(calculation_id: str):
        """Replace the snapshot.

        Body ``{"customer": {...}}`` snapshots the given profile; an empty
        body re-snapshots the live customer the calculation points at.
        """
        payload = request.get_json(silent=True) or {}
        if payload.get("customer") is not None:
            try:
                customer = _customer_from_payload(payload)
            except (TypeError, ValueError) as exc:
                return jsonify({"error": str(exc)}), 400
        else:
            calc = await manager.get_calculation(calculation_id)
            customer = await store.get_customer(calc.customer_id)
            if customer is None:
                raise NotFoundError("Customer", calc.customer_id)
        calc = await manager.update_calculation_customer(calculation_id, customer)
        return jsonify({"message": "Calculation customer updated.", "calculation": calc.to_dict()})

    # -- storage ------------------------------------------------------

    @app.get("/api/storage")
    async def get_storage():
        location = await store.get_storage_location()
        data_dir = await store.data_dir()
        return jsonify({"location": location, "dataDir": str(data_dir)})

    @app.post("/api/storage")
    async def set_storage():
        payload = request.get_json(silent=True) or {}
        path = str(payload.get("path", "")).strip()
        try:
            await store.set_storage_location(path)
        except StorageError as exc:
            return jsonify({"error": str(exc)}), 400
        await store.init_storage()
        return jsonify({"message": "Storage location updated.", "location": path})

    @app.post("/api/storage/rebuild-index")
    async def rebuild_index():
        customers = await manager.rebuild_calculation_index()
        return jsonify({"message": "Calculation index rebuilt.", "customers": [c.to_dict() for c in customers]})

    return app


def _sanitize_result(result: Dict[str, Any]) -> Dict[str, Any]:
    subtotals = _sanitize_records([result["subtotals"]])[0]
    clean = _sanitize_records([{k: v for k, v in result.items() if k != "subtotals"}])[0]
    clean["subtotals"] = subtotals
    return clean


app = create_app()


if __name__ == "__main__":
    configure_logging(settings.LOG_LEVEL)
    asyncio.run(app.extensions["laskuri"]["store"].init_storage())
    app.run(debug=False, host=settings.HOST, port=settings.PORT)
