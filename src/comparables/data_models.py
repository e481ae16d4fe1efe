from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import date
from typing import Any, Literal, get_args


DealerType = Literal["franchise", "independent"]
ConfidenceLevel = Literal["low", "medium", "high"]
StrategyName = Literal[
    "top_price",
    "closest_price",
    "closest_mileage",
    "lowest_mileage",
    "closest_distance",
    "newest_listings",
    "fastest_selling",
    "dealer_type",
    "price_range",
    "mileage_range",
]

STRATEGY_NAMES: tuple[str, ...] = get_args(StrategyName)


@dataclass(frozen=True)
class Location:
    city: str | None = None
    state: str | None = None
    zip: str | None = None
    distance_miles: float | None = None
    # Provider free-text location, kept verbatim when it arrived as a string.
    label: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ComparableVehicle:
    year: int
    make: str
    model: str
    mileage: int
    price: float
    source: str
    vin: str | None = None
    trim: str | None = None
    location: Location | None = None
    listing_date: date | None = None
    days_on_market: int | None = None
    dealer_type: DealerType | None = None
    listing_id: str | None = None
    dealer_name: str | None = None
    vdp_url: str | None = None
    photo_url: str | None = None

    @property
    def distance_miles(self) -> float | None:
        return self.location.distance_miles if self.location is not None else None

    def to_dict(self) -> dict[str, Any]:
        """Canonical dict form; normalizing it again yields an equal record."""
        return {
            "vin": self.vin,
            "year": self.year,
            "make": self.make,
            "model": self.model,
            "trim": self.trim,
            "mileage": self.mileage,
            "price": self.price,
            "location": self.location.to_dict() if self.location is not None else None,
            "listing_date": self.listing_date.isoformat() if self.listing_date is not None else None,
            "days_on_market": self.days_on_market,
            "dealer_type": self.dealer_type,
            "source": self.source,
            "listing_id": self.listing_id,
            "dealer_name": self.dealer_name,
            "vdp_url": self.vdp_url,
            "photo_url": self.photo_url,
        }


@dataclass(frozen=True)
class ValuationSummary:
    average_value: float
    low_value: float
    high_value: float
    confidence: ConfidenceLevel
    data_point_count: int
    data_source: str = "marketcheck"

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ListingStats:
    total: int = 0
    avg_price: float = 0.0
    min_price: float = 0.0
    max_price: float = 0.0
    avg_mileage: float = 0.0
    min_mileage: float = 0.0
    max_mileage: float = 0.0
    franchise_count: int = 0
    independent_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class SelectionStrategy:
    strategy: StrategyName = "top_price"
    limit: int = 10
    target_price: float | None = None
    target_mileage: float | None = None
    dealer_type: DealerType | None = None
    min_price: float | None = None
    max_price: float | None = None
    min_miles: float | None = None
    max_miles: float | None = None

    def __post_init__(self) -> None:
        if self.strategy not in STRATEGY_NAMES:
            raise ValueError(f"Unknown selection strategy: {self.strategy!r}")
        if self.limit < 1:
            raise ValueError(f"limit must be >= 1, got {self.limit}")
