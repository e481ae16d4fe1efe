import copy
from datetime import date

import pytest

from comparables.data_models import Location
from comparables.errors import InvalidInputError
from comparables.normalizer import FIELD_ALIASES, normalize_listing, normalize_listings, parse_number
from service.marketcheck import MOCK_LISTINGS


def _raw(**overrides):
    base = {"year": 2020, "make": "Honda", "model": "Civic", "miles": 40000, "price": 21000}
    base.update(overrides)
    return base


def test_provider_aliases_resolve_to_canonical_fields():
    raw = {
        "id": "abc-1",
        "vin": "1HGCM82633A789012",
        "build": {"year": "2020", "make": "Honda", "model": "Civic", "trim": "EX"},
        "miles": "38,000",
        "price": "$22,800",
        "dos_active": 9,
        "dom": 40,
        "dealer_type": "Franchise",
        "dealer_address": {"city": "Los Angeles", "state": "CA", "zip": 90025},
        "dist": 5.2,
        "first_seen_at": "2024-12-10T08:15:00Z",
        "vdp_url": "https://example.com/vdp/abc-1",
    }
    rec = normalize_listing(raw, source="marketcheck")
    assert rec is not None
    assert rec.year == 2020
    assert rec.trim == "EX"
    assert rec.mileage == 38000
    assert rec.price == 22800.0
    assert rec.days_on_market == 9
    assert rec.dealer_type == "franchise"
    assert rec.location == Location(city="Los Angeles", state="CA", zip="90025", distance_miles=5.2)
    assert rec.listing_date == date(2024, 12, 10)
    assert rec.listing_id == "abc-1"
    assert rec.source == "marketcheck"


def test_canonical_name_wins_over_alias():
    rec = normalize_listing(_raw(mileage=12000, miles=99000))
    assert rec.mileage == 12000


def test_string_location_becomes_structured():
    rec = normalize_listing(_raw(location="Los Angeles, CA"))
    assert rec.location == Location(city="Los Angeles", state="CA", label="Los Angeles, CA")


def test_opaque_string_location_kept_as_label():
    rec = normalize_listing(_raw(location="Downtown lot"))
    assert rec.location == Location(label="Downtown lot")
    assert rec.distance_miles is None


def test_missing_location_is_none():
    assert normalize_listing(_raw()).location is None


@pytest.mark.parametrize(
    "bad",
    [
        _raw(price=0),
        _raw(price=-100),
        _raw(price=None),
        {k: v for k, v in _raw().items() if k != "price"},
        {k: v for k, v in _raw().items() if k != "miles"},
        _raw(miles=-1),
        _raw(year="unknown"),
        _raw(year=1850),
        "not-a-record",
        None,
    ],
)
def test_invalid_records_are_dropped(bad):
    assert normalize_listings([bad]) == []


def test_drop_keeps_order_of_valid_records():
    raws = [_raw(price=30000), _raw(price=0), _raw(price=25000), _raw(miles=None), _raw(price=18000)]
    prices = [r.price for r in normalize_listings(raws)]
    assert prices == [30000.0, 25000.0, 18000.0]


@pytest.mark.parametrize("bad_input", [None, {"listings": []}, "listings", 42])
def test_non_list_input_raises(bad_input):
    with pytest.raises(InvalidInputError):
        normalize_listings(bad_input)


def test_invalid_input_error_is_a_type_error():
    assert issubclass(InvalidInputError, TypeError)


def test_normalizing_canonical_records_is_idempotent():
    first = normalize_listings(list(MOCK_LISTINGS))
    assert len(first) == len(MOCK_LISTINGS)
    second = normalize_listings([r.to_dict() for r in first])
    assert second == first


def test_input_is_not_mutated():
    raws = [dict(item) for item in MOCK_LISTINGS]
    snapshot = copy.deepcopy(raws)
    normalize_listings(raws)
    assert raws == snapshot


def test_days_on_market_prefers_canonical_then_dos_active():
    assert normalize_listing(_raw(days_on_market=3, dos_active=9)).days_on_market == 3
    assert normalize_listing(_raw(dom=12)).days_on_market == 12


def test_unknown_dealer_type_is_dropped_to_none():
    assert normalize_listing(_raw(dealer_type="private")).dealer_type is None


def test_alias_table_lists_canonical_name_first():
    table = dict(FIELD_ALIASES)
    assert table["mileage"][0] == "mileage"
    assert table["price"][0] == "price"


def test_parse_number():
    assert parse_number("$19,500") == 19500.0
    assert parse_number(True) is None
    assert parse_number("n/a") is None


def test_injected_logger_receives_drop_reasons(caplog):
    import logging

    log = logging.getLogger("test.normalizer")
    with caplog.at_level(logging.DEBUG, logger="test.normalizer"):
        normalize_listings([_raw(price=0), _raw()], log=log)
    reasons = [getattr(r, "extra_data", {}).get("reason") for r in caplog.records if r.name == "test.normalizer"]
    assert "non_positive_price" in reasons


@pytest.mark.parametrize(
    "bad",
    [
        _raw(miles="9" * 400),
        _raw(miles=float("nan")),
        _raw(miles=float("inf")),
        _raw(price="9" * 400),
        _raw(price=float("nan")),
        _raw(price=10 ** 400),
    ],
)
def test_non_finite_numbers_drop_only_that_record(bad):
    kept = normalize_listings([bad, _raw()])
    assert len(kept) == 1
    assert kept[0].price == 21000.0


def test_non_finite_values_stay_out_of_stats():
    import json

    from comparables.statistics import listing_stats

    raws = json.loads('[{"year": 2020, "make": "Honda", "model": "Civic", "miles": NaN, "price": 20000},'
                      ' {"year": 2020, "make": "Honda", "model": "Civic", "miles": 30000, "price": 22000}]')
    raws.append(_raw(price="9" * 400))
    stats = listing_stats(normalize_listings(raws))
    assert stats.total == 1
    assert stats.max_price == 22000


def test_parse_number_rejects_non_finite():
    assert parse_number(float("inf")) is None
    assert parse_number("9" * 400) is None
    assert parse_number(10 ** 400) is None
