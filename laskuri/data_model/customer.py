from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping

from .base import ColumnDefinition, TableModel


class CompanyType(str, Enum):
    """Legal form of the customer. Values are the stored wire values."""

    SOLE_TRADER = "Toiminimi"
    LIMITED_COMPANY = "OY"

    @classmethod
    def parse(cls, value: Any) -> "CompanyType":
        if isinstance(value, cls):
            return value
        text = str(value or "").strip()
        for member in cls:
            if text in (member.value, member.name):
                return member
        aliases = {"SoleTrader": cls.SOLE_TRADER, "LimitedCompany": cls.LIMITED_COMPANY}
        if text in aliases:
            return aliases[text]
        raise ValueError(f"Unknown company type: {value!r}")


# python attribute -> stored key
MARGIN_FACTOR_KEYS: Dict[str, str] = {
    "foreign_trade": "foreignTrade",
    "cash_operations": "cashOperations",
    "ecommerce": "ecommerce",
    "import_": "import",
    "assets_in_balance": "assetsInBalance",
    "investments": "investments",
    "is_limited_company": "isLimitedCompany",
    "vat_liable": "vatLiable",
    "manual_bank_statement": "manualBankStatement",
}


def _float(row: Mapping[str, Any], key: str) -> float:
    return float(row.get(key, 0.0) or 0.0)


def _int(row: Mapping[str, Any], key: str) -> int:
    return int(float(row.get(key, 0) or 0))


def _text(row: Mapping[str, Any], key: str) -> str:
    value = row.get(key)
    return "" if value is None else str(value)


@dataclass
class MarginFactors:
    foreign_trade: bool = False
    cash_operations: bool = False
    ecommerce: bool = False
    import_: bool = False
    assets_in_balance: bool = False
    investments: bool = False
    is_limited_company: bool = False
    vat_liable: bool = False
    manual_bank_statement: bool = False

    def active_count(self) -> int:
        return sum(1 for attr in MARGIN_FACTOR_KEYS if getattr(self, attr))

    def to_dict(self) -> dict[str, bool]:
        return {key: bool(getattr(self, attr)) for attr, key in MARGIN_FACTOR_KEYS.items()}

    @classmethod
    def from_dict(cls, row: Mapping[str, Any] | None) -> "MarginFactors":
        row = row or {}
        return cls(**{attr: bool(row.get(key, False)) for attr, key in MARGIN_FACTOR_KEYS.items()})


@dataclass
class Discount:
    percentage: float = 0.0
    valid_until: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"percentage": self.percentage, "validUntil": self.valid_until}

    @classmethod
    def from_dict(cls, row: Mapping[str, Any] | None) -> "Discount":
        row = row or {}
        return cls(percentage=_float(row, "percentage"), valid_until=_text(row, "validUntil"))


@dataclass
class Customer:
    """Pricing profile of one accounting-firm customer.

    Replaced wholesale on update. ``calculation_ids`` is a denormalised
    index of saved calculations pointing at this customer and stays
    ``None`` until the first calculation is linked.
    """

    id: str
    name: str
    company_type: CompanyType = CompanyType.SOLE_TRADER
    hours_last_3_months: float = 0.0
    hourly_rate: float = 0.0
    accounting_software_price: float = 0.0
    salary_payment_price: float = 0.0
    number_of_employees: int = 0
    previous_year_invoicing: float = 0.0
    pricing_valid_until: str = ""
    year_end_start_date: str = ""
    year_end_end_date: str = ""
    margin_factors: MarginFactors = field(default_factory=MarginFactors)
    discount: Discount = field(default_factory=Discount)
    is_first_month: bool = False
    is_special_offer: bool = False
    calculation_ids: List[str] | None = None

    def snapshot(self) -> "Customer":
        """Independent deep copy; later edits to ``self`` never reach it."""
        return copy.deepcopy(self)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "companyType": self.company_type.value,
            "hoursLast3Months": self.hours_last_3_months,
            "hourlyRate": self.hourly_rate,
            "accountingSoftwarePrice": self.accounting_software_price,
            "salaryPaymentPrice": self.salary_payment_price,
            "numberOfEmployees": self.number_of_employees,
            "previousYearInvoicing": self.previous_year_invoicing,
            "pricingValidUntil": self.pricing_valid_until,
            "yearEndAccountingStartDate": self.year_end_start_date,
            "yearEndAccountingEndDate": self.year_end_end_date,
            "marginFactors": self.margin_factors.to_dict(),
            "discount": self.discount.to_dict(),
            "isFirstMonth": self.is_first_month,
            "isSpecialOffer": self.is_special_offer,
        }
        if self.calculation_ids is not None:
            data["calculationIds"] = list(self.calculation_ids)
        return data

    @classmethod
    def from_dict(cls, row: Mapping[str, Any]) -> "Customer":
        calculation_ids = row.get("calculationIds")
        return cls(
            id=_text(row, "id"),
            name=_text(row, "name").strip(),
            company_type=CompanyType.parse(row.get("companyType", CompanyType.SOLE_TRADER)),
            hours_last_3_months=_float(row, "hoursLast3Months"),
            hourly_rate=_float(row, "hourlyRate"),
            accounting_software_price=_float(row, "accountingSoftwarePrice"),
            salary_payment_price=_float(row, "salaryPaymentPrice"),
            number_of_employees=_int(row, "numberOfEmployees"),
            previous_year_invoicing=_float(row, "previousYearInvoicing"),
            pricing_valid_until=_text(row, "pricingValidUntil"),
            year_end_start_date=_text(row, "yearEndAccountingStartDate"),
            year_end_end_date=_text(row, "yearEndAccountingEndDate"),
            margin_factors=MarginFactors.from_dict(row.get("marginFactors")),
            discount=Discount.from_dict(row.get("discount")),
            is_first_month=bool(row.get("isFirstMonth", False)),
            is_special_offer=bool(row.get("isSpecialOffer", False)),
            calculation_ids=None if calculation_ids is None else [str(cid) for cid in calculation_ids],
        )


def default_customer_rows() -> List[dict[str, Any]]:
    return [Customer(id="", name="New Customer", hourly_rate=50.0, accounting_software_price=30.0).to_dict()]


_MARGIN_FACTOR_LABELS = {
    "foreignTrade": "Foreign trade",
    "cashOperations": "Cash operations",
    "ecommerce": "E-commerce",
    "import": "Import",
    "assetsInBalance": "Assets in balance sheet",
    "investments": "Investments",
    "isLimitedCompany": "Limited company (OY)",
    "vatLiable": "VAT liable",
    "manualBankStatement": "Manual bank statement",
}


class CustomerTableModel(TableModel):
    def __init__(self) -> None:
        columns = [
            ColumnDefinition("name", "Name"),
            ColumnDefinition(
                "companyType",
                "Company Type",
                kind="select",
                default=CompanyType.SOLE_TRADER.value,
                options=[member.value for member in CompanyType],
            ),
            ColumnDefinition(
                "hoursLast3Months",
                "Hours (last 3 months)",
                kind="number",
                default=0.0,
                min_value=0.0,
                step=0.5,
                format="%.1f",
                help="Divided by 3 to get the monthly average",
            ),
            ColumnDefinition("hourlyRate", "Hourly Rate (EUR)", kind="number", default=0.0, min_value=0.0, step=1.0, format="%.2f"),
            ColumnDefinition(
                "accountingSoftwarePrice",
                "Accounting Software (EUR)",
                kind="number",
                default=0.0,
                min_value=0.0,
                step=1.0,
                format="%.2f",
            ),
            ColumnDefinition(
                "salaryPaymentPrice",
                "Salary Payment / Employee (EUR)",
                kind="number",
                default=0.0,
                min_value=0.0,
                step=1.0,
                format="%.2f",
            ),
            ColumnDefinition("numberOfEmployees", "Employees", kind="number", default=0, min_value=0.0, step=1.0, format="%d"),
            ColumnDefinition(
                "previousYearInvoicing",
                "Previous Year Invoicing (EUR)",
                kind="number",
                default=0.0,
                step=100.0,
                format="%.2f",
                help="Divided by 12 for the year-end accounting price",
            ),
            ColumnDefinition("pricingValidUntil", "Pricing Valid Until", kind="date"),
            ColumnDefinition("yearEndAccountingStartDate", "Year-End Accounting Start", kind="date"),
            ColumnDefinition("yearEndAccountingEndDate", "Year-End Accounting End", kind="date"),
        ]
        columns += [
            ColumnDefinition(f"marginFactors.{key}", label, kind="bool", default=False, help="+0.1 margin coefficient")
            for key, label in _MARGIN_FACTOR_LABELS.items()
        ]
        columns += [
            ColumnDefinition(
                "discount.percentage",
                "Discount (%)",
                kind="number",
                default=0.0,
                min_value=0.0,
                step=1.0,
                format="%.1f",
            ),
            ColumnDefinition("discount.validUntil", "Discount Valid Until", kind="date"),
            ColumnDefinition("isFirstMonth", "First Month", kind="bool", default=False, help="Adds a one-time setup fee"),
            ColumnDefinition("isSpecialOffer", "Special Offer", kind="bool", default=False),
        ]
        super().__init__("customer", columns, default_customer_rows())
