from .base import ColumnDefinition, TableModel
from .calculation import (
    CalculationType,
    InvoiceCalculationResult,
    SavedCalculation,
    Subtotals,
)
from .customer import (
    MARGIN_FACTOR_KEYS,
    CompanyType,
    Customer,
    CustomerTableModel,
    Discount,
    MarginFactors,
    default_customer_rows,
)

__all__ = [
    "MARGIN_FACTOR_KEYS",
    "CalculationType",
    "ColumnDefinition",
    "CompanyType",
    "Customer",
    "CustomerTableModel",
    "Discount",
    "InvoiceCalculationResult",
    "MarginFactors",
    "SavedCalculation",
    "Subtotals",
    "TableModel",
    "default_customer_rows",
]
