"""Saved-calculation lifecycle: create, duplicate, recalculate, re-snapshot.

Each transform returns a new ``SavedCalculation`` and leaves its input
untouched. Callers supply ``now`` and ``new_id`` so that timestamps and ids
stay deterministic under test.
"""

from __future__ import annotations

import copy
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable

from ..config import settings
from ..data_model import CalculationType, Customer, SavedCalculation
from .pricing import calculate_invoice_result

IdFactory = Callable[[], str]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_uuid() -> str:
    return str(uuid.uuid4())


def to_timestamp(now: datetime) -> str:
    return now.isoformat()


def create_saved_calculation(
    customer: Customer,
    name: str,
    calculation_type: CalculationType = CalculationType.DRAFT,
    description: str = "",
    notes: str = "",
    vat_rate: float | None = None,
    *,
    now: datetime | None = None,
    new_id: IdFactory = new_uuid,
) -> SavedCalculation:
    now = now or utc_now()
    if vat_rate is None:
        vat_rate = settings.DEFAULT_VAT_RATE
    stamp = to_timestamp(now)
    return SavedCalculation(
        id=new_id(),
        customer_id=customer.id,
        name=name,
        description=description,
        notes=notes,
        created_at=stamp,
        modified_at=stamp,
        calculation_type=CalculationType.parse(calculation_type),
        customer_snapshot=customer.snapshot(),
        result=calculate_invoice_result(customer, vat_rate, now),
        version=1,
    )


def duplicate_calculation(
    calc: SavedCalculation,
    new_name: str | None = None,
    *,
    now: datetime | None = None,
    new_id: IdFactory = new_uuid,
) -> SavedCalculation:
    """Copy ``calc`` under a fresh id, keeping its numbers frozen.

    The result is carried over as-is, not recomputed, until someone calls
    :func:`recalculate_invoice` on the copy.
    """
    stamp = to_timestamp(now or utc_now())
    return replace(
        calc,
        id=new_id(),
        name=new_name or f"{calc.name} (Copy)",
        created_at=stamp,
        modified_at=stamp,
        customer_snapshot=copy.deepcopy(calc.customer_snapshot),
        version=1,
    )


def recalculate_invoice(
    calc: SavedCalculation,
    vat_rate: float | None = None,
    *,
    now: datetime | None = None,
) -> SavedCalculation:
    """Re-price the stored snapshot, never the live customer."""
    now = now or utc_now()
    if vat_rate is None:
        vat_rate = calc.result.vat_rate
    return replace(
        calc,
        result=calculate_invoice_result(calc.customer_snapshot, vat_rate, now),
        modified_at=to_timestamp(now),
        version=calc.version + 1,
    )


def update_calculation_customer(
    calc: SavedCalculation,
    customer: Customer,
    *,
    now: datetime | None = None,
) -> SavedCalculation:
    now = now or utc_now()
    snapshot = customer.snapshot()
    return replace(
        calc,
        customer_snapshot=snapshot,
        result=calculate_invoice_result(snapshot, calc.result.vat_rate, now),
        modified_at=to_timestamp(now),
        version=calc.version + 1,
    )


def update_calculation_details(
    calc: SavedCalculation,
    *,
    name: str | None = None,
    description: str | None = None,
    notes: str | None = None,
    calculation_type: CalculationType | str | None = None,
    now: datetime | None = None,
) -> SavedCalculation:
    """Edit descriptive fields; numbers and snapshot are left alone."""
    return replace(
        calc,
        name=calc.name if name is None else name,
        description=calc.description if description is None else description,
        notes=calc.notes if notes is None else notes,
        calculation_type=(
            calc.calculation_type if calculation_type is None else CalculationType.parse(calculation_type)
        ),
        modified_at=to_timestamp(now or utc_now()),
        version=calc.version + 1,
    )
