from datetime import date

import pytest

from comparables.data_models import ComparableVehicle, Location, SelectionStrategy, ValuationSummary


def test_comparable_vehicle_shape():
    rec = ComparableVehicle(
        year=2020,
        make="Honda",
        model="Civic",
        mileage=38000,
        price=22800.0,
        source="marketcheck",
        vin="1HGCM82633A789012",
        location=Location(city="Los Angeles", state="CA", zip="90025", distance_miles=5.2),
        listing_date=date(2024, 12, 10),
        dealer_type="franchise",
    )
    assert rec.distance_miles == 5.2
    payload = rec.to_dict()
    assert payload["listing_date"] == "2024-12-10"
    assert payload["location"]["city"] == "Los Angeles"
    assert payload["location"]["label"] is None


def test_comparable_vehicle_is_read_only():
    rec = ComparableVehicle(year=2020, make="Honda", model="Civic", mileage=1, price=1.0, source="x")
    with pytest.raises(AttributeError):
        rec.price = 5.0  # type: ignore[misc]


def test_selection_strategy_defaults():
    strategy = SelectionStrategy()
    assert strategy.strategy == "top_price"
    assert strategy.limit == 10


def test_selection_strategy_rejects_bad_limit_and_name():
    with pytest.raises(ValueError):
        SelectionStrategy("top_price", limit=0)
    with pytest.raises(ValueError):
        SelectionStrategy("cheapest_first")  # type: ignore[arg-type]


def test_valuation_summary_dict():
    summary = ValuationSummary(
        average_value=20000.0, low_value=18000.0, high_value=22000.0, confidence="high", data_point_count=12
    )
    assert summary.to_dict()["data_source"] == "marketcheck"
