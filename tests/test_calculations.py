from datetime import timedelta

import pytest

from laskuri.data_model import CalculationType, Discount
from laskuri.engine.calculations import (
    create_saved_calculation,
    duplicate_calculation,
    recalculate_invoice,
    update_calculation_customer,
    update_calculation_details,
)
from laskuri.engine.pricing import calculate_invoice_result


def test_create_snapshots_customer(make_customer, now, id_factory):
    customer = make_customer()

    calc = create_saved_calculation(customer, "June offer", now=now, new_id=id_factory)

    assert calc.id == "calc-1"
    assert calc.customer_id == "cust-1"
    assert calc.calculation_type is CalculationType.DRAFT
    assert calc.version == 1
    assert calc.created_at == calc.modified_at == now.isoformat()
    assert calc.result == calculate_invoice_result(customer, 0.24, now)
    assert calc.customer_snapshot == customer
    assert calc.customer_snapshot is not customer
    assert calc.customer_snapshot.margin_factors is not customer.margin_factors


def test_snapshot_immune_to_later_customer_edits(make_customer, now, id_factory):
    customer = make_customer()
    calc = create_saved_calculation(customer, "Snapshot", now=now, new_id=id_factory)

    customer.hourly_rate = 999.0
    customer.margin_factors.foreign_trade = True
    customer.discount.percentage = 50.0

    assert calc.customer_snapshot.hourly_rate == 50.0
    assert calc.customer_snapshot.margin_factors.foreign_trade is False
    assert calc.customer_snapshot.discount.percentage == 0.0


def test_create_with_explicit_fields(make_customer, now, id_factory):
    calc = create_saved_calculation(
        make_customer(),
        "Final",
        CalculationType.FINAL,
        description="Signed",
        notes="Invoice monthly",
        vat_rate=0.14,
        now=now,
        new_id=id_factory,
    )

    assert calc.calculation_type is CalculationType.FINAL
    assert calc.description == "Signed"
    assert calc.notes == "Invoice monthly"
    assert calc.result.vat_rate == 0.14


def test_duplicate_keeps_numbers_and_resets_identity(make_customer, now, id_factory):
    original = create_saved_calculation(make_customer(), "Offer", now=now, new_id=id_factory)
    original = recalculate_invoice(original, now=now)
    later = now + timedelta(days=3)

    copy = duplicate_calculation(original, now=later, new_id=id_factory)

    assert copy.id == "calc-2"
    assert copy.name == "Offer (Copy)"
    assert copy.version == 1
    assert copy.created_at == copy.modified_at == later.isoformat()
    assert copy.result == original.result
    assert copy.customer_snapshot == original.customer_snapshot
    assert copy.customer_snapshot is not original.customer_snapshot
    assert original.version == 2


def test_duplicate_uses_given_name(make_customer, now, id_factory):
    original = create_saved_calculation(make_customer(), "Offer", now=now, new_id=id_factory)

    assert duplicate_calculation(original, "Offer B", now=now, new_id=id_factory).name == "Offer B"


def test_duplicate_does_not_recompute(make_customer, now, id_factory):
    customer = make_customer(discount=Discount(percentage=10.0, valid_until="2024-06-30"))
    original = create_saved_calculation(customer, "Discounted", now=now, new_id=id_factory)

    copy = duplicate_calculation(original, now=now + timedelta(days=60), new_id=id_factory)

    assert copy.result.discount_amount == original.result.discount_amount > 0


def test_recalculate_uses_snapshot_not_live_customer(make_customer, now, id_factory):
    customer = make_customer()
    calc = create_saved_calculation(customer, "Offer", now=now, new_id=id_factory)
    customer.hourly_rate = 500.0

    recalculated = recalculate_invoice(calc, now=now)

    assert recalculated.result.subtotals.hourly_work == 5000.0


def test_recalculate_twice_same_result_version_plus_two(make_customer, now, id_factory):
    calc = create_saved_calculation(make_customer(), "Offer", now=now, new_id=id_factory)

    once = recalculate_invoice(calc, now=now)
    twice = recalculate_invoice(once, now=now)

    assert once.result == twice.result == calc.result
    assert twice.version == calc.version + 2
    assert calc.version == 1


def test_recalculate_keeps_or_overrides_vat(make_customer, now, id_factory):
    calc = create_saved_calculation(make_customer(), "Offer", vat_rate=0.14, now=now, new_id=id_factory)
    later = now + timedelta(hours=1)

    kept = recalculate_invoice(calc, now=later)
    overridden = recalculate_invoice(calc, 0.255, now=later)

    assert kept.result.vat_rate == 0.14
    assert overridden.result.vat_rate == 0.255
    assert overridden.result.price_with_vat == pytest.approx(overridden.result.price_without_vat * 1.255)
    assert kept.modified_at == later.isoformat()
    assert kept.created_at == now.isoformat()


def test_recalculate_sees_date_windows_move(make_customer, now, id_factory):
    customer = make_customer(discount=Discount(percentage=10.0, valid_until="2024-06-30"))
    calc = create_saved_calculation(customer, "Discounted", now=now, new_id=id_factory)

    expired = recalculate_invoice(calc, now=now + timedelta(days=30))

    assert calc.result.discount_amount > 0
    assert expired.result.discount_amount == 0.0


def test_update_customer_replaces_snapshot_and_reprices(make_customer, now, id_factory):
    calc = create_saved_calculation(make_customer(), "Offer", vat_rate=0.14, now=now, new_id=id_factory)
    edited = make_customer(hourly_rate=60.0)

    updated = update_calculation_customer(calc, edited, now=now)
    edited.hourly_rate = 1.0

    assert updated.customer_snapshot.hourly_rate == 60.0
    assert updated.result.subtotals.hourly_work == 6000.0
    assert updated.result.vat_rate == 0.14
    assert updated.version == 2
    assert updated.id == calc.id


def test_update_details_bumps_version(make_customer, now, id_factory):
    calc = create_saved_calculation(make_customer(), "Offer", now=now, new_id=id_factory)

    updated = update_calculation_details(calc, name="Offer v2", calculation_type="offer", now=now)

    assert updated.name == "Offer v2"
    assert updated.calculation_type is CalculationType.OFFER
    assert updated.notes == calc.notes
    assert updated.result == calc.result
    assert updated.version == 2
