from datetime import datetime, timezone
from itertools import count

import pytest

from laskuri.config import Settings
from laskuri.data_model import CompanyType, Customer, Discount, MarginFactors
from laskuri.engine.storage import JsonDocumentStore

NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def settings(tmp_path):
    return Settings(APP_DATA_DIR=tmp_path / "app_data")


@pytest.fixture
def store(settings):
    return JsonDocumentStore(settings)


@pytest.fixture
def id_factory():
    counter = count(1)
    return lambda: f"calc-{next(counter)}"


@pytest.fixture
def make_customer():
    def _make(**overrides) -> Customer:
        values = dict(
            id="cust-1",
            name="Acme Oy",
            company_type=CompanyType.SOLE_TRADER,
            hours_last_3_months=300.0,
            hourly_rate=50.0,
            accounting_software_price=100.0,
            salary_payment_price=0.0,
            number_of_employees=0,
            previous_year_invoicing=0.0,
            pricing_valid_until="2024-12-31",
            year_end_start_date="",
            year_end_end_date="",
            margin_factors=MarginFactors(),
            discount=Discount(percentage=0.0, valid_until="2024-12-31"),
            is_first_month=False,
            is_special_offer=False,
        )
        values.update(overrides)
        return Customer(**values)

    return _make
