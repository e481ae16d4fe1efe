from __future__ import annotations

from collections.abc import Sequence

import pandas as pd

from comparables.data_models import ComparableVehicle, ListingStats


def listings_frame(records: Sequence[ComparableVehicle]) -> pd.DataFrame:
    return pd.DataFrame(
        {
            "price": [float(r.price) for r in records],
            "mileage": [float(r.mileage) for r in records],
            "dealer_type": [r.dealer_type for r in records],
        },
        columns=["price", "mileage", "dealer_type"],
    )


def _positive_summary(series: pd.Series) -> tuple[float, float, float]:
    values = series[series > 0]
    if values.empty:
        return 0.0, 0.0, 0.0
    return float(values.mean()), float(values.min()), float(values.max())


def listing_stats(records: Sequence[ComparableVehicle]) -> ListingStats:
    """Summary numbers over a comparable set.

    An empty set yields all zeros; callers treat ``total == 0`` as "no data".
    Means and extremes only count records with a positive value for the field.
    """
    if not records:
        return ListingStats()

    df = listings_frame(records)
    avg_price, min_price, max_price = _positive_summary(df["price"])
    avg_mileage, min_mileage, max_mileage = _positive_summary(df["mileage"])
    dealer_counts = df["dealer_type"].value_counts()

    return ListingStats(
        total=len(df),
        avg_price=round(avg_price, 2),
        min_price=min_price,
        max_price=max_price,
        avg_mileage=round(avg_mileage, 2),
        min_mileage=min_mileage,
        max_mileage=max_mileage,
        franchise_count=int(dealer_counts.get("franchise", 0)),
        independent_count=int(dealer_counts.get("independent", 0)),
    )
