from decimal import Decimal

import pytest

from config import settings
from exceptions import ConfigurationError, NotFoundError, ValidationError
from Tax_module.money_utils import to_money, round_money, format_percent
from Tax_module.tax_config import TaxConfiguration, TaxRateEntry, ShippingRateEntry, load_tax_configuration
from Tax_module.tax_service import (
    IGST,
    CGST_SGST,
    compute_tax,
    is_inter_state,
    price_order,
    resolve_jurisdiction,
    resolve_shipping_rate,
)
from Tax_module.Tax_crud import compute_order_summary
from Address_module.pincode_service import check_availability, normalize_pincode
from tests.factories import make_pincode, make_tax_config

STANDARD_RATES = (
    TaxRateEntry("IGST", Decimal("18")),
    TaxRateEntry("CGST", Decimal("9")),
    TaxRateEntry("SGST", Decimal("9")),
)

SHIPPING = (
    ShippingRateEntry("Maharashtra", Decimal("40"), Decimal("80")),
    ShippingRateEntry("Karnataka", Decimal("50"), Decimal("90")),
)


def config(inclusive=False, rates=STANDARD_RATES, shipping=SHIPPING, home_state="Maharashtra"):
    return TaxConfiguration(
        home_state=home_state,
        is_tax_inclusive=inclusive,
        tax_rates=tuple(rates),
        shipping_rates=tuple(shipping),
    )


@pytest.mark.parametrize("delivery,home,expected", [
    ("Maharashtra", "Maharashtra", CGST_SGST),
    ("  maharashtra ", "Maharashtra", CGST_SGST),
    ("Tamil   Nadu", "tamil nadu", CGST_SGST),
    ("Karnataka", "Maharashtra", IGST),
    ("Goa", "Maharashtra", IGST),
])
def test_tax_type_depends_only_on_normalized_states(delivery, home, expected):
    jurisdiction = resolve_jurisdiction(delivery, config(home_state=home))
    assert jurisdiction.tax_type == expected
    assert jurisdiction.is_inter_state == is_inter_state(delivery, home)


def test_intra_state_exclusive_scenario():
    breakdown = price_order("Maharashtra", config(), Decimal("1000"))
    assert breakdown.tax_type == "CGST+SGST"
    assert breakdown.tax_percentage == Decimal("18")
    assert breakdown.subtotal == Decimal("1000.00")
    assert breakdown.tax_amount == Decimal("180.00")
    assert breakdown.total_before_discount == Decimal("1180.00")
    assert breakdown.final_amount == Decimal("1180.00")


def test_inter_state_inclusive_scenario():
    breakdown = price_order("Karnataka", config(inclusive=True), Decimal("1000"))
    assert breakdown.tax_type == "IGST"
    assert breakdown.subtotal == Decimal("847.46")
    assert breakdown.tax_amount == Decimal("152.54")
    assert breakdown.total_before_discount == Decimal("1000.00")


def test_discount_larger_than_total_clamps_to_zero():
    breakdown = price_order("Maharashtra", config(), Decimal("1000"), Decimal("1500"))
    assert breakdown.total_before_discount == Decimal("1180.00")
    assert breakdown.final_amount == Decimal("0.00")


@pytest.mark.parametrize("amount", ["0.01", "99.99", "1000", "1234.56", "333.33", "99999.99"])
@pytest.mark.parametrize("rate", ["5", "12", "18", "28"])
def test_amounts_add_up_exactly(amount, rate):
    base, tax, total = compute_tax(Decimal(amount), Decimal(rate), inclusive=False)
    assert base + tax == total

    base, tax, total = compute_tax(Decimal(amount), Decimal(rate), inclusive=True)
    assert base + tax == round_money(amount)
    assert total == round_money(amount)


def test_rounding_is_half_up():
    # 0.25 * 10% = 0.025
    assert compute_tax(Decimal("0.25"), Decimal("10"), inclusive=False)[1] == Decimal("0.03")
    assert round_money(Decimal("2.675")) == Decimal("2.68")


def test_missing_inter_state_rate_is_configuration_error():
    rates = [r for r in STANDARD_RATES if r.name != "IGST"]
    with pytest.raises(ConfigurationError):
        resolve_jurisdiction("Karnataka", config(rates=rates))


def test_missing_intra_state_rate_is_configuration_error():
    rates = [r for r in STANDARD_RATES if r.name != "SGST"]
    with pytest.raises(ConfigurationError):
        resolve_jurisdiction("Maharashtra", config(rates=rates))


def test_rate_names_match_case_insensitively():
    rates = [TaxRateEntry("igst", Decimal("18")), TaxRateEntry("Cgst", Decimal("6")), TaxRateEntry("sgst ", Decimal("6"))]
    assert resolve_jurisdiction("Maharashtra", config(rates=rates)).tax_percentage == Decimal("12")
    assert resolve_jurisdiction("Kerala", config(rates=rates)).tax_percentage == Decimal("18")


def test_shipping_uses_state_row():
    assert resolve_shipping_rate("maharashtra", config()) == Decimal("40.00")
    assert resolve_shipping_rate("Karnataka", config()) == Decimal("90.00")


def test_shipping_without_state_row_uses_configured_default(monkeypatch):
    monkeypatch.setattr(settings, "DEFAULT_INTER_STATE_SHIPPING_RATE", 120.0)
    assert resolve_shipping_rate("Goa", config()) == Decimal("120.00")


def test_shipping_without_state_row_falls_back_to_first_row():
    assert resolve_shipping_rate("Goa", config()) == Decimal("80.00")


def test_shipping_without_any_row_is_configuration_error():
    with pytest.raises(ConfigurationError, match="No shipping rate configured"):
        resolve_shipping_rate("Goa", config(shipping=()))


@pytest.mark.parametrize("value", ["abc", "", None, "NaN", "Infinity", "-1", True])
def test_to_money_rejects_bad_amounts(value):
    with pytest.raises(ValidationError):
        to_money(value)


@pytest.mark.parametrize("value", ["1e30", "10000000000", "9999999999.995"])
def test_to_money_rejects_amounts_beyond_column_range(value):
    with pytest.raises(ValidationError, match="subtotal cannot exceed"):
        to_money(value, "subtotal")


def test_to_money_accepts_largest_storable_amount():
    assert to_money("9999999999.99") == Decimal("9999999999.99")


def test_to_money_rounds_half_up():
    assert to_money(" 10.005 ") == Decimal("10.01")
    assert to_money(250) == Decimal("250.00")


def test_format_percent():
    assert format_percent(Decimal("10.00")) == "10"
    assert format_percent(Decimal("12.50")) == "12.5"


def test_normalize_pincode():
    assert normalize_pincode(" 560 001 ") == "560001"
    with pytest.raises(ValidationError):
        normalize_pincode("5600")
    with pytest.raises(ValidationError):
        normalize_pincode("56A001")


def test_load_configuration_requires_company_settings(db):
    with pytest.raises(ConfigurationError, match="Company settings not configured"):
        load_tax_configuration(db)


def test_order_summary_for_inter_state_pincode(db):
    make_tax_config(db)
    make_pincode(db, "560001", "Karnataka")

    summary = compute_order_summary(db, "560001")

    assert summary["state"] == "Karnataka"
    assert summary["tax_type"] == "IGST"
    assert summary["tax_percentage"] == Decimal("18")
    assert summary["tax_details"] == [{"name": "IGST", "percentage": Decimal("18")}]
    assert summary["shipping_rate"] == Decimal("90.00")
    assert summary["is_tax_inclusive"] is False
    assert "final_amount" not in summary


def test_order_summary_with_subtotal_includes_priced_totals(db):
    make_tax_config(db)
    make_pincode(db, "400001", "Maharashtra", city="Mumbai")

    summary = compute_order_summary(db, "400001", "1000")

    assert summary["tax_type"] == "CGST+SGST"
    assert [d["name"] for d in summary["tax_details"]] == ["CGST", "SGST"]
    assert summary["tax_amount"] == Decimal("180.00")
    assert summary["total_before_discount"] == Decimal("1180.00")
    assert summary["shipping_rate"] == Decimal("40.00")


def test_order_summary_rejects_unserviceable_pincode(db):
    make_tax_config(db)
    make_pincode(db, "110001", "Delhi", is_active=False)
    with pytest.raises(NotFoundError, match="Pincode not serviceable"):
        compute_order_summary(db, "110001")
    with pytest.raises(NotFoundError):
        compute_order_summary(db, "999999")


def test_check_availability(db):
    make_pincode(db, "560001", "Karnataka")
    assert check_availability(db, "560001")["available"] is True
    assert check_availability(db, "999999")["available"] is False
