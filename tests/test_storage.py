import json
import math

import pytest
from structlog.testing import capture_logs

from laskuri.engine.calculations import create_saved_calculation
from laskuri.engine.storage import _sanitize_json_compat, write_document
from laskuri.errors import NotFoundError, StorageError


def test_sanitize_json_compat_replaces_special_numbers():
    payload = {
        "float": math.nan,
        "list": [1, float("inf"), -float("inf")],
        "nested": {"value": math.nan},
    }

    clean = _sanitize_json_compat(payload)

    assert clean == {
        "float": None,
        "list": [1, None, None],
        "nested": {"value": None},
    }


@pytest.mark.asyncio
async def test_write_document_persists_sanitized_values(tmp_path):
    path = tmp_path / "nested" / "customers.json"

    await write_document(path, {"customers": [{"hourlyRate": math.nan}]})

    with path.open("r", encoding="utf-8") as handle:
        stored = json.load(handle)
    assert stored == {"customers": [{"hourlyRate": None}]}
    assert not (tmp_path / "nested" / "customers.json.tmp").exists()


@pytest.mark.asyncio
async def test_init_storage_creates_empty_collections(store, settings):
    await store.init_storage()
    await store.init_storage()

    data_dir = settings.APP_DATA_DIR
    assert json.loads((data_dir / "customers.json").read_text()) == {"customers": []}
    assert json.loads((data_dir / "calculations.json").read_text()) == {"calculations": []}


@pytest.mark.asyncio
async def test_init_storage_keeps_existing_data(store, settings, make_customer):
    await store.add_customer(make_customer())

    await store.init_storage()

    assert [c.id for c in await store.load_customers()] == ["cust-1"]


@pytest.mark.asyncio
async def test_load_missing_collection_initialises_storage(store, settings):
    assert await store.load_customers() == []
    assert (settings.APP_DATA_DIR / "customers.json").exists()


@pytest.mark.asyncio
async def test_customer_round_trip_keeps_wire_format(store, settings, make_customer):
    customer = make_customer()
    customer.margin_factors.import_ = True

    await store.add_customer(customer)

    raw = json.loads((settings.APP_DATA_DIR / "customers.json").read_text())
    row = raw["customers"][0]
    assert row["companyType"] == "Toiminimi"
    assert row["marginFactors"]["import"] is True
    assert "calculationIds" not in row
    assert await store.load_customers() == [customer]


@pytest.mark.asyncio
async def test_reads_documents_written_by_older_versions(store, settings):
    settings.APP_DATA_DIR.mkdir(parents=True)
    legacy = {
        "customers": [
            {
                "id": "c1",
                "name": "Legacy Oy",
                "companyType": "OY",
                "hoursLast3Months": 90,
                "hourlyRate": 40,
                "marginFactors": {"foreignTrade": True},
                "discount": {"percentage": 5, "validUntil": "2025-01-01"},
            }
        ]
    }
    (settings.APP_DATA_DIR / "customers.json").write_text(json.dumps(legacy))

    [customer] = await store.load_customers()

    assert customer.company_type.name == "LIMITED_COMPANY"
    assert customer.hours_last_3_months == 90.0
    assert customer.margin_factors.foreign_trade is True
    assert customer.margin_factors.vat_liable is False
    assert customer.number_of_employees == 0
    assert customer.calculation_ids is None


@pytest.mark.asyncio
async def test_calculation_round_trip(store, make_customer, now, id_factory):
    calc = create_saved_calculation(make_customer(), "Offer", notes="n", now=now, new_id=id_factory)

    await store.add_calculation(calc)

    assert await store.load_calculations() == [calc]
    assert await store.get_calculation("calc-1") == calc
    assert await store.get_calculation("nope") is None


@pytest.mark.asyncio
async def test_update_customer_replaces_wholesale(store, make_customer):
    await store.add_customer(make_customer())

    customers = await store.update_customer(make_customer(name="Renamed", hourly_rate=70.0))

    assert [(c.name, c.hourly_rate) for c in customers] == [("Renamed", 70.0)]
    assert await store.load_customers() == customers


@pytest.mark.asyncio
async def test_update_missing_ids_fail(store, make_customer, now, id_factory):
    with pytest.raises(NotFoundError, match="Customer with ID cust-1 not found"):
        await store.update_customer(make_customer())

    calc = create_saved_calculation(make_customer(), "Offer", now=now, new_id=id_factory)
    with pytest.raises(NotFoundError):
        await store.update_calculation(calc)


@pytest.mark.asyncio
async def test_delete_missing_id_is_a_logged_no_op(store, make_customer):
    await store.add_customer(make_customer())

    with capture_logs() as logs:
        customers = await store.delete_customer("ghost")
        calculations = await store.delete_calculation("ghost")

    assert [c.id for c in customers] == ["cust-1"]
    assert calculations == []
    events = {(entry["event"], entry["log_level"]) for entry in logs}
    assert ("customer_delete_missing", "warning") in events
    assert ("calculation_delete_missing", "warning") in events


@pytest.mark.asyncio
async def test_delete_customer(store, make_customer):
    await store.add_customer(make_customer())
    await store.add_customer(make_customer(id="cust-2"))

    remaining = await store.delete_customer("cust-1")

    assert [c.id for c in remaining] == ["cust-2"]
    assert [c.id for c in await store.load_customers()] == ["cust-2"]


@pytest.mark.asyncio
async def test_malformed_collection_raises_storage_error(store, settings):
    settings.APP_DATA_DIR.mkdir(parents=True)
    (settings.APP_DATA_DIR / "customers.json").write_text("{not json")

    with pytest.raises(StorageError, match="Failed to load customers") as excinfo:
        await store.load_customers()

    assert excinfo.value.operation == "load customers"
    assert excinfo.value.__cause__ is not None


@pytest.mark.asyncio
async def test_unknown_company_type_raises_storage_error(store, settings):
    settings.APP_DATA_DIR.mkdir(parents=True)
    document = {"customers": [{"id": "c1", "name": "X", "companyType": "Ky"}]}
    (settings.APP_DATA_DIR / "customers.json").write_text(json.dumps(document))

    with pytest.raises(StorageError, match="Unknown company type"):
        await store.load_customers()


@pytest.mark.asyncio
async def test_empty_file_reads_as_empty_collection(store, settings):
    settings.APP_DATA_DIR.mkdir(parents=True)
    (settings.APP_DATA_DIR / "calculations.json").write_text("")

    assert await store.load_calculations() == []


@pytest.mark.asyncio
async def test_storage_location_defaults_to_app_data(store, settings):
    assert await store.get_storage_location() == ""
    assert await store.data_dir() == settings.APP_DATA_DIR
    assert (settings.APP_DATA_DIR / "storage_prefs.json").exists()


@pytest.mark.asyncio
async def test_set_storage_location_moves_collections(store, settings, tmp_path, make_customer):
    custom = tmp_path / "shared"
    custom.mkdir()

    await store.set_storage_location(str(custom))
    await store.add_customer(make_customer())

    assert await store.get_storage_location() == str(custom)
    assert (custom / "customers.json").exists()
    assert not (settings.APP_DATA_DIR / "customers.json").exists()


@pytest.mark.asyncio
async def test_set_storage_location_requires_existing_dir(store, tmp_path):
    with pytest.raises(StorageError, match="does not exist"):
        await store.set_storage_location(str(tmp_path / "missing"))

    assert await store.get_storage_location() == ""


@pytest.mark.asyncio
async def test_unreadable_preferences_degrade_to_defaults(store, settings):
    settings.APP_DATA_DIR.mkdir(parents=True)
    (settings.APP_DATA_DIR / "storage_prefs.json").write_text("[broken")

    with capture_logs() as logs:
        location = await store.get_storage_location()

    assert location == ""
    assert any(entry["event"] == "preferences_load_failed" for entry in logs)
