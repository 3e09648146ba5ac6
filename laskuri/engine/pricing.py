"""Invoice pricing for a customer profile.

Every function here is pure. Date-window rules compare against an explicit
``now`` instead of the system clock so results are reproducible.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

import pandas as pd

from ..data_model import CompanyType, Customer, InvoiceCalculationResult, Subtotals

MONTHS_IN_AVERAGE = 3
FIRST_MONTH_FEE = 50.0

# Minimum monthly year-end accounting price per company type
YEAR_END_FLOORS = {
    CompanyType.SOLE_TRADER: 100.0,
    CompanyType.LIMITED_COMPANY: 260.0,
}


def to_instant(value: Any) -> pd.Timestamp:
    """Parse an ISO-8601 string or datetime to a UTC timestamp.

    Naive values are read as UTC. Anything unparseable becomes ``NaT``.
    """
    try:
        return pd.to_datetime(value, utc=True, errors="coerce")
    except (TypeError, ValueError):
        return pd.NaT


def calculate_margin_coefficient(customer: Customer) -> float:
    # 0.1 floor plus 0.1 per active factor, counted in tenths so that
    # nine factors give exactly 1.0
    return (1 + customer.margin_factors.active_count()) / 10.0


def calculate_year_end_price(customer: Customer, now: datetime | pd.Timestamp) -> float:
    price = customer.previous_year_invoicing / 12.0
    floor = YEAR_END_FLOORS.get(customer.company_type)
    if floor is not None and price < floor:
        price = floor

    start = to_instant(customer.year_end_start_date)
    end = to_instant(customer.year_end_end_date)
    today = to_instant(now)
    if pd.isna(start) or pd.isna(end) or today < start or today > end:
        return 0.0
    return price


def calculate_discount(subtotal: float, customer: Customer, now: datetime | pd.Timestamp) -> float:
    """Discount on ``subtotal``; only an expiry is checked, never a start date."""
    discount = customer.discount
    valid_until = to_instant(discount.valid_until)
    if pd.isna(valid_until) or valid_until < to_instant(now):
        return 0.0
    if discount.percentage > 0:
        return subtotal * (discount.percentage / 100.0)
    return 0.0


def calculate_customer_margin(
    hourly_work: float,
    salary_payments: float,
    accounting_software: float,
    year_end_price: float,
    discount_amount: float,
) -> float:
    """Firm's own profit proxy.

    Accounting software is a pass-through cost: added to the subtotal but
    subtracted here.
    """
    return hourly_work + salary_payments - accounting_software + year_end_price - discount_amount


def calculate_invoice_result(
    customer: Customer,
    vat_rate: float,
    now: datetime | pd.Timestamp,
) -> InvoiceCalculationResult:
    average_hours = customer.hours_last_3_months / MONTHS_IN_AVERAGE

    hourly_work = average_hours * customer.hourly_rate
    accounting_software = customer.accounting_software_price
    salary_payments = customer.salary_payment_price * customer.number_of_employees
    total_subtotal = hourly_work + accounting_software + salary_payments

    # Margin is earned on hourly work only
    margin_coefficient = calculate_margin_coefficient(customer)
    margin_amount = hourly_work * margin_coefficient

    year_end_price = calculate_year_end_price(customer, now)
    discount_amount = calculate_discount(total_subtotal, customer, now)

    # TODO: is_special_offer has no pricing rule yet, waiting on the fee/discount definition
    additional_fees = FIRST_MONTH_FEE if customer.is_first_month else 0.0

    price_without_vat = total_subtotal + margin_amount + year_end_price - discount_amount + additional_fees
    price_with_vat = price_without_vat * (1 + vat_rate)

    customer_margin = calculate_customer_margin(
        hourly_work,
        salary_payments,
        accounting_software,
        year_end_price,
        discount_amount,
    )

    return InvoiceCalculationResult(
        average_hours=average_hours,
        subtotals=Subtotals(
            hourly_work=hourly_work,
            accounting_software=accounting_software,
            salary_payments=salary_payments,
            total_subtotal=total_subtotal,
        ),
        margin_coefficient=margin_coefficient,
        margin_amount=margin_amount,
        year_end_accounting_price=year_end_price,
        discount_amount=discount_amount,
        additional_fees=additional_fees,
        vat_rate=vat_rate,
        price_without_vat=price_without_vat,
        price_with_vat=price_with_vat,
        customer_margin=customer_margin,
    )
