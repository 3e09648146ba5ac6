from typing import Iterable

import pandas as pd

from ..data_model import SavedCalculation

COLUMNS = [
    "Id",
    "CustomerId",
    "Customer",
    "Name",
    "Type",
    "Version",
    "ModifiedAt",
    "PriceWithoutVat",
    "PriceWithVat",
    "CustomerMargin",
]
TOTAL_COLUMNS = ["PriceWithoutVat", "PriceWithVat", "CustomerMargin"]


def calculations_frame(calculations: Iterable[SavedCalculation]) -> pd.DataFrame:
    """One row per saved calculation."""
    rows = [
        {
            "Id": calc.id,
            "CustomerId": calc.customer_id,
            "Customer": calc.customer_snapshot.name,
            "Name": calc.name,
            "Type": calc.calculation_type.value,
            "Version": calc.version,
            "ModifiedAt": pd.to_datetime(calc.modified_at, utc=True, errors="coerce"),
            "PriceWithoutVat": calc.result.price_without_vat,
            "PriceWithVat": calc.result.price_with_vat,
            "CustomerMargin": calc.result.customer_margin,
        }
        for calc in calculations
    ]
    return pd.DataFrame(rows, columns=COLUMNS)


def summarize_by_customer(df: pd.DataFrame) -> pd.DataFrame:
    if df.empty:
        return pd.DataFrame(columns=["CustomerId", "Customer", "Calculations", "LastModified", *TOTAL_COLUMNS])
    # Latest snapshot name wins when a customer was renamed between calculations
    df = df.sort_values("ModifiedAt")
    summary = df.groupby("CustomerId", as_index=False).agg(
        Customer=("Customer", "last"),
        Calculations=("Id", "count"),
        LastModified=("ModifiedAt", "max"),
        PriceWithoutVat=("PriceWithoutVat", "sum"),
        PriceWithVat=("PriceWithVat", "sum"),
        CustomerMargin=("CustomerMargin", "sum"),
    )
    return summary.sort_values("Customer", ignore_index=True)


def summarize_by_type(df: pd.DataFrame) -> pd.DataFrame:
    if df.empty:
        return pd.DataFrame(columns=["Type", "Calculations", *TOTAL_COLUMNS])
    return df.groupby("Type", as_index=False).agg(
        Calculations=("Id", "count"),
        PriceWithoutVat=("PriceWithoutVat", "sum"),
        PriceWithVat=("PriceWithVat", "sum"),
        CustomerMargin=("CustomerMargin", "sum"),
    )
