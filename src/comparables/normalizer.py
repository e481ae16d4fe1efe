"""Canonicalize provider comparable listings.

Providers disagree on field names (``miles`` vs ``mileage``, ``dom`` vs
``dos_active``, a string ``location`` vs a ``dealer_address`` object). All of
that is resolved here through one ordered alias table, so consumers only ever
see :class:`ComparableVehicle` records.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping, Sequence
from datetime import date, datetime
from typing import Any

from comparables.config import DEFAULT_CONFIG, ValuationConfig
from comparables.data_models import ComparableVehicle, Location
from comparables.errors import InvalidInputError

logger = logging.getLogger(__name__)


# Canonical field -> candidate keys, highest priority first.
# Dotted keys reach into nested objects ("build.year").
FIELD_ALIASES: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("vin", ("vin",)),
    ("year", ("year", "build.year")),
    ("make", ("make", "build.make")),
    ("model", ("model", "build.model")),
    ("trim", ("trim", "build.trim")),
    ("mileage", ("mileage", "miles")),
    ("price", ("price", "asking_price")),
    ("listing_date", ("listing_date", "listingDate", "first_seen_at", "created_at")),
    ("days_on_market", ("days_on_market", "dos_active", "dom", "dom_active")),
    ("dealer_type", ("dealer_type", "dealerType")),
    ("source", ("source",)),
    ("listing_id", ("listing_id", "id")),
    ("dealer_name", ("dealer_name",)),
    ("vdp_url", ("vdp_url", "url")),
    ("photo_url", ("photo_url",)),
    ("city", ("location.city", "dealer_address.city", "city")),
    ("state", ("location.state", "dealer_address.state", "state")),
    ("zip", ("location.zip", "dealer_address.zip", "zip")),
    ("distance_miles", ("location.distance_miles", "dist", "distance", "dealer_address.distance_miles")),
    ("location_label", ("location.label",)),
)


def _lookup(raw: Mapping[str, Any], path: str) -> Any:
    node: Any = raw
    for part in path.split("."):
        if not isinstance(node, Mapping):
            return None
        node = node.get(part)
    return node


def _resolve(raw: Mapping[str, Any], candidates: tuple[str, ...]) -> Any:
    for key in candidates:
        value = _lookup(raw, key)
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        return value
    return None


def resolve_fields(raw: Mapping[str, Any]) -> dict[str, Any]:
    return {name: _resolve(raw, candidates) for name, candidates in FIELD_ALIASES}


def _clean_numeric_string(raw: str) -> str:
    return "".join(c for c in raw if c.isdigit() or c in {".", "-"})


def parse_number(value: Any) -> float | None:
    """Best-effort numeric parsing ("$22,800" -> 22800.0). ``None`` when unparseable or not finite."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            number = float(value)
        except OverflowError:
            return None
    elif isinstance(value, str):
        cleaned = _clean_numeric_string(value.strip())
        if not cleaned:
            return None
        try:
            number = float(cleaned)
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def parse_int(value: Any) -> int | None:
    number = parse_number(value)
    return None if number is None else int(number)


def parse_date(value: Any) -> date | None:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            return None
    return None


def _as_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _canonical_dealer_type(value: Any, config: ValuationConfig) -> str | None:
    if not isinstance(value, str):
        return None
    return config.dealer_type_aliases.get(value.strip().lower())


def _build_location(raw: Mapping[str, Any], fields: Mapping[str, Any]) -> Location | None:
    city = _as_str(fields["city"])
    state = _as_str(fields["state"])
    label = _as_str(fields["location_label"])

    raw_location = raw.get("location")
    if isinstance(raw_location, str) and raw_location.strip():
        label = raw_location.strip()
        if city is None and state is None and "," in label:
            head, tail = (part.strip() for part in label.split(",", 1))
            city, state = head or None, tail or None

    distance = parse_number(fields["distance_miles"])
    zip_code = _as_str(fields["zip"])
    if city is None and state is None and zip_code is None and distance is None and label is None:
        return None
    return Location(city=city, state=state, zip=zip_code, distance_miles=distance, label=label)


def _drop(log: logging.Logger, reason: str, index: int | None) -> None:
    log.debug("Dropping comparable listing: %s", reason, extra={"extra_data": {"index": index, "reason": reason}})


def normalize_listing(
    raw: Any,
    *,
    source: str | None = None,
    config: ValuationConfig = DEFAULT_CONFIG,
    log: logging.Logger | None = None,
    index: int | None = None,
) -> ComparableVehicle | None:
    """Normalize one raw listing; ``None`` when the record is not usable."""
    log = log or logger
    if not isinstance(raw, Mapping):
        _drop(log, "not_a_mapping", index)
        return None

    fields = resolve_fields(raw)

    price = parse_number(fields["price"])
    if price is None:
        _drop(log, "missing_price", index)
        return None
    if price <= 0:
        _drop(log, "non_positive_price", index)
        return None

    mileage = parse_int(fields["mileage"])
    if mileage is None:
        _drop(log, "missing_mileage", index)
        return None
    if mileage < 0:
        _drop(log, "negative_mileage", index)
        return None

    year = parse_int(fields["year"])
    max_year = date.today().year + config.max_model_year_ahead
    if year is None or not config.min_model_year <= year <= max_year:
        _drop(log, "invalid_year", index)
        return None

    days_on_market = parse_int(fields["days_on_market"])
    if days_on_market is not None and days_on_market < 0:
        days_on_market = None

    return ComparableVehicle(
        year=year,
        make=_as_str(fields["make"]) or "",
        model=_as_str(fields["model"]) or "",
        mileage=mileage,
        price=price,
        source=_as_str(fields["source"]) or source or config.default_source,
        vin=_as_str(fields["vin"]),
        trim=_as_str(fields["trim"]),
        location=_build_location(raw, fields),
        listing_date=parse_date(fields["listing_date"]),
        days_on_market=days_on_market,
        dealer_type=_canonical_dealer_type(fields["dealer_type"], config),
        listing_id=_as_str(fields["listing_id"]),
        dealer_name=_as_str(fields["dealer_name"]),
        vdp_url=_as_str(fields["vdp_url"]),
        photo_url=_as_str(fields["photo_url"]),
    )


def normalize_listings(
    raw_listings: Any,
    *,
    source: str | None = None,
    config: ValuationConfig = DEFAULT_CONFIG,
    log: logging.Logger | None = None,
) -> list[ComparableVehicle]:
    """Normalize a provider listing array, silently dropping unusable records.

    Raises :class:`InvalidInputError` only when ``raw_listings`` is not a
    list-like sequence of records.
    """
    log = log or logger
    if isinstance(raw_listings, (str, bytes, Mapping)) or not isinstance(raw_listings, Sequence):
        raise InvalidInputError(
            f"Expected a list of listings, got {type(raw_listings).__name__}"
        )

    normalized: list[ComparableVehicle] = []
    for index, raw in enumerate(raw_listings):
        record = normalize_listing(raw, source=source, config=config, log=log, index=index)
        if record is not None:
            normalized.append(record)

    log.info(
        "Normalized %d of %d comparable listings",
        len(normalized),
        len(raw_listings),
        extra={"extra_data": {"kept": len(normalized), "dropped": len(raw_listings) - len(normalized)}},
    )
    return normalized
