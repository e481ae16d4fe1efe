"""Rank normalized comparables into a bounded display list.

Every strategy is a pre-filter plus a sort key. ``sorted`` is stable, so
records with equal keys keep their input order.

When a strategy's required parameter is missing (``closest_price`` without
``target_price``, ``closest_mileage`` without ``target_mileage``,
``dealer_type`` without ``dealer_type``) the first ``limit`` records of the
unfiltered, unsorted input are returned instead of raising. Report pages rely
on always getting something to show.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from comparables.data_models import ComparableVehicle, DealerType, SelectionStrategy

logger = logging.getLogger(__name__)

Predicate = Callable[[ComparableVehicle], bool]
SortKey = Callable[[ComparableVehicle], float]


@dataclass(frozen=True)
class _Rule:
    key: SortKey
    descending: bool = False
    keep: Predicate | None = None


_REQUIRED_PARAMS = {
    "closest_price": "target_price",
    "closest_mileage": "target_mileage",
    "dealer_type": "dealer_type",
}


def _within(value: float, low: float | None, high: float | None) -> bool:
    if low is not None and value < low:
        return False
    if high is not None and value > high:
        return False
    return True


def _rule_for(strategy: SelectionStrategy) -> _Rule:
    name = strategy.strategy
    if name == "top_price":
        return _Rule(key=lambda r: r.price, descending=True)
    if name == "closest_price":
        target = float(strategy.target_price)
        return _Rule(key=lambda r: abs(r.price - target))
    if name == "closest_mileage":
        target = float(strategy.target_mileage)
        return _Rule(key=lambda r: abs(r.mileage - target))
    if name == "lowest_mileage":
        return _Rule(key=lambda r: r.mileage)
    if name == "closest_distance":
        return _Rule(key=lambda r: r.distance_miles, keep=lambda r: r.distance_miles is not None)
    if name == "newest_listings":
        return _Rule(
            key=lambda r: r.listing_date.toordinal(),
            descending=True,
            keep=lambda r: r.listing_date is not None,
        )
    if name == "fastest_selling":
        return _Rule(key=lambda r: r.days_on_market, keep=lambda r: r.days_on_market is not None)
    if name in ("dealer_type", "price_range"):
        return _Rule(key=lambda r: r.price, descending=True)
    if name == "mileage_range":
        return _Rule(key=lambda r: r.mileage)
    raise ValueError(f"Unknown selection strategy: {name!r}")


def _parameter_filters(strategy: SelectionStrategy) -> list[Predicate]:
    filters: list[Predicate] = []
    if strategy.dealer_type is not None:
        wanted = strategy.dealer_type
        filters.append(lambda r: r.dealer_type == wanted)
    if strategy.min_price is not None or strategy.max_price is not None:
        filters.append(lambda r: _within(r.price, strategy.min_price, strategy.max_price))
    if strategy.min_miles is not None or strategy.max_miles is not None:
        filters.append(lambda r: _within(r.mileage, strategy.min_miles, strategy.max_miles))
    return filters


def select_listings(
    records: Sequence[ComparableVehicle],
    strategy: SelectionStrategy | None = None,
    *,
    log: logging.Logger | None = None,
) -> list[ComparableVehicle]:
    log = log or logger
    strategy = strategy or SelectionStrategy()
    if not records:
        return []

    required = _REQUIRED_PARAMS.get(strategy.strategy)
    if required is not None and getattr(strategy, required) is None:
        log.warning(
            "%s strategy requires %s; returning unranked listings",
            strategy.strategy,
            required,
            extra={"extra_data": {"strategy": strategy.strategy, "missing": required, "limit": strategy.limit}},
        )
        return list(records[: strategy.limit])

    rule = _rule_for(strategy)
    predicates = _parameter_filters(strategy)
    if rule.keep is not None:
        predicates.append(rule.keep)

    candidates = [r for r in records if all(p(r) for p in predicates)]
    if rule.descending:
        # Negate instead of reverse=True so equal keys stay in input order.
        ranked = sorted(candidates, key=lambda r: -rule.key(r))
    else:
        ranked = sorted(candidates, key=rule.key)
    return ranked[: strategy.limit]


def top_listings(records: Sequence[ComparableVehicle], limit: int = 10) -> list[ComparableVehicle]:
    return select_listings(records, SelectionStrategy("top_price", limit=limit))


def closest_price_listings(
    records: Sequence[ComparableVehicle], target_price: float, limit: int = 10
) -> list[ComparableVehicle]:
    return select_listings(records, SelectionStrategy("closest_price", limit=limit, target_price=target_price))


def closest_mileage_listings(
    records: Sequence[ComparableVehicle], target_mileage: float, limit: int = 10
) -> list[ComparableVehicle]:
    return select_listings(records, SelectionStrategy("closest_mileage", limit=limit, target_mileage=target_mileage))


def lowest_mileage_listings(records: Sequence[ComparableVehicle], limit: int = 10) -> list[ComparableVehicle]:
    return select_listings(records, SelectionStrategy("lowest_mileage", limit=limit))


def dealer_listings(
    records: Sequence[ComparableVehicle], dealer_type: DealerType, limit: int = 10
) -> list[ComparableVehicle]:
    return select_listings(records, SelectionStrategy("dealer_type", limit=limit, dealer_type=dealer_type))


def franchise_listings(records: Sequence[ComparableVehicle], limit: int = 10) -> list[ComparableVehicle]:
    return dealer_listings(records, "franchise", limit)


def independent_listings(records: Sequence[ComparableVehicle], limit: int = 10) -> list[ComparableVehicle]:
    return dealer_listings(records, "independent", limit)


def listings_in_price_range(
    records: Sequence[ComparableVehicle], min_price: float, max_price: float, limit: int = 10
) -> list[ComparableVehicle]:
    return select_listings(
        records, SelectionStrategy("price_range", limit=limit, min_price=min_price, max_price=max_price)
    )


def closest_listings(records: Sequence[ComparableVehicle], limit: int = 10) -> list[ComparableVehicle]:
    return select_listings(records, SelectionStrategy("closest_distance", limit=limit))


def newest_listings(records: Sequence[ComparableVehicle], limit: int = 10) -> list[ComparableVehicle]:
    return select_listings(records, SelectionStrategy("newest_listings", limit=limit))
