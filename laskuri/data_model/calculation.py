from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping

from .customer import Customer


class CalculationType(str, Enum):
    """Workflow label of a saved calculation. Any value may follow any other."""

    DRAFT = "draft"
    OFFER = "offer"
    FINAL = "final"
    ARCHIVED = "archived"

    @classmethod
    def parse(cls, value: Any) -> "CalculationType":
        if isinstance(value, cls):
            return value
        text = str(value or cls.DRAFT.value).strip()
        for member in cls:
            if text.lower() in (member.value, member.name.lower()):
                return member
        raise ValueError(f"Unknown calculation type: {value!r}")


def _float(row: Mapping[str, Any], key: str) -> float:
    return float(row.get(key, 0.0) or 0.0)


@dataclass(frozen=True)
class Subtotals:
    hourly_work: float
    accounting_software: float
    salary_payments: float
    total_subtotal: float

    def to_dict(self) -> dict[str, float]:
        return {
            "hourlyWork": self.hourly_work,
            "accountingSoftware": self.accounting_software,
            "salaryPayments": self.salary_payments,
            "totalSubtotal": self.total_subtotal,
        }

    @classmethod
    def from_dict(cls, row: Mapping[str, Any] | None) -> "Subtotals":
        row = row or {}
        return cls(
            hourly_work=_float(row, "hourlyWork"),
            accounting_software=_float(row, "accountingSoftware"),
            salary_payments=_float(row, "salaryPayments"),
            total_subtotal=_float(row, "totalSubtotal"),
        )


@dataclass(frozen=True)
class InvoiceCalculationResult:
    """Itemised invoice for one customer and VAT rate.

    Fully determined by the customer fields, the VAT rate and the instant
    used for the date-window checks.
    """

    average_hours: float
    subtotals: Subtotals
    margin_coefficient: float
    margin_amount: float
    year_end_accounting_price: float
    discount_amount: float
    additional_fees: float
    vat_rate: float
    price_without_vat: float
    price_with_vat: float
    customer_margin: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "averageHours": self.average_hours,
            "subtotals": self.subtotals.to_dict(),
            "marginCoefficient": self.margin_coefficient,
            "marginAmount": self.margin_amount,
            "yearEndAccountingPrice": self.year_end_accounting_price,
            "discountAmount": self.discount_amount,
            "additionalFees": self.additional_fees,
            "vatRate": self.vat_rate,
            "priceWithoutVat": self.price_without_vat,
            "priceWithVat": self.price_with_vat,
            "customerMargin": self.customer_margin,
        }

    @classmethod
    def from_dict(cls, row: Mapping[str, Any]) -> "InvoiceCalculationResult":
        return cls(
            average_hours=_float(row, "averageHours"),
            subtotals=Subtotals.from_dict(row.get("subtotals")),
            margin_coefficient=_float(row, "marginCoefficient"),
            margin_amount=_float(row, "marginAmount"),
            year_end_accounting_price=_float(row, "yearEndAccountingPrice"),
            discount_amount=_float(row, "discountAmount"),
            additional_fees=_float(row, "additionalFees"),
            vat_rate=_float(row, "vatRate"),
            price_without_vat=_float(row, "priceWithoutVat"),
            price_with_vat=_float(row, "priceWithVat"),
            customer_margin=_float(row, "customerMargin"),
        )


@dataclass
class SavedCalculation:
    """Versioned record of a priced customer snapshot.

    ``customer_id`` is a back-reference only; the calculation owns
    ``customer_snapshot`` independently of the live customer.
    """

    id: str
    customer_id: str
    name: str
    created_at: str
    modified_at: str
    customer_snapshot: Customer
    result: InvoiceCalculationResult
    calculation_type: CalculationType = CalculationType.DRAFT
    version: int = 1
    description: str = ""
    notes: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "customerId": self.customer_id,
            "name": self.name,
            "description": self.description,
            "notes": self.notes,
            "createdAt": self.created_at,
            "modifiedAt": self.modified_at,
            "type": self.calculation_type.value,
            "customerSnapshot": self.customer_snapshot.to_dict(),
            "result": self.result.to_dict(),
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, row: Mapping[str, Any]) -> "SavedCalculation":
        return cls(
            id=str(row.get("id", "")),
            customer_id=str(row.get("customerId", "")),
            name=str(row.get("name", "")),
            description=str(row.get("description") or ""),
            notes=str(row.get("notes") or ""),
            created_at=str(row.get("createdAt", "")),
            modified_at=str(row.get("modifiedAt", "")),
            calculation_type=CalculationType.parse(row.get("type")),
            customer_snapshot=Customer.from_dict(row.get("customerSnapshot") or {}),
            result=InvoiceCalculationResult.from_dict(row.get("result") or {}),
            version=int(row.get("version", 1) or 1),
        )
