from __future__ import annotations

from dataclasses import dataclass
from datetime import date

from comparables.data_models import ConfidenceLevel, DealerType


FRANCHISE_MAKES = frozenset(
    {
        # German luxury
        "BMW", "MERCEDES-BENZ", "MERCEDES", "AUDI", "PORSCHE", "VOLKSWAGEN", "VW",
        # American luxury
        "CADILLAC", "LINCOLN", "TESLA",
        # Japanese luxury
        "LEXUS", "ACURA", "INFINITI",
        # Mass market
        "HONDA", "TOYOTA", "FORD", "CHEVROLET", "CHEVY", "GMC", "NISSAN", "HYUNDAI",
        "KIA", "MAZDA", "SUBARU", "JEEP", "RAM", "DODGE", "CHRYSLER",
        # European mass market
        "VOLVO", "MINI", "LAND ROVER", "RANGE ROVER", "JAGUAR",
        "BUICK", "GENESIS", "MITSUBISHI",
    }
)

# Discontinued brands, mostly resold through independent lots.
INDEPENDENT_MAKES = frozenset(
    {
        "SATURN", "PONTIAC", "OLDSMOBILE", "PLYMOUTH", "MERCURY", "SAAB",
        "HUMMER", "SCION", "ISUZU", "SUZUKI", "DAEWOO", "GEO",
    }
)


@dataclass(frozen=True)
class DealerTypeResult:
    dealer_type: DealerType
    confidence: ConfidenceLevel
    reasoning: str


def classify_dealer_type(make: str, year: int | str, *, today: date | None = None) -> DealerTypeResult:
    """Pick the dealer channel a vehicle is most likely to be priced against."""
    normalized_make = make.strip().upper()
    vehicle_year = int(year)
    current_year = (today or date.today()).year
    age = current_year - vehicle_year

    if normalized_make in FRANCHISE_MAKES:
        reasoning = f"{make} is a major brand typically sold at franchise dealers"
        if age > 10:
            reasoning += ", though older models may also be found at independent dealers"
        return DealerTypeResult("franchise", "high" if age <= 10 else "medium", reasoning)

    if normalized_make in INDEPENDENT_MAKES:
        return DealerTypeResult(
            "independent", "high", f"{make} is a discontinued brand typically sold at independent dealers"
        )

    if age > 15:
        return DealerTypeResult(
            "independent", "medium", f"Vehicle is {age} years old, typically sold at independent dealers"
        )

    if age <= 10:
        return DealerTypeResult(
            "franchise", "low", "Default classification for recent vehicle from recognized brand"
        )

    return DealerTypeResult(
        "independent", "low", "Default classification for older vehicle from less common brand"
    )


def dealer_type_label(dealer_type: DealerType) -> str:
    return "Franchise Dealer" if dealer_type == "franchise" else "Independent Dealer"


def dealer_type_short_label(dealer_type: DealerType) -> str:
    return "Franchise" if dealer_type == "franchise" else "Independent"
