from __future__ import annotations

import math
import numbers
from collections.abc import Mapping
from typing import Any

from comparables.config import DEFAULT_CONFIG, ValuationConfig
from comparables.data_models import ConfidenceLevel, ValuationSummary


def map_confidence(value: Any, config: ValuationConfig = DEFAULT_CONFIG) -> ConfidenceLevel:
    """Map a provider confidence signal (label or 0-100 score) to low/medium/high.

    Absent or unrecognized signals map to ``medium``, not ``low``.
    """
    if isinstance(value, str):
        lower = value.lower()
        if "high" in lower:
            return "high"
        if "medium" in lower or "moderate" in lower:
            return "medium"
        return "low"

    if isinstance(value, numbers.Real) and not isinstance(value, bool):
        if value >= config.high_confidence_score:
            return "high"
        if value >= config.medium_confidence_score:
            return "medium"
        return "low"

    return "medium"


def _round_half_up(value: float) -> float:
    return float(math.floor(value + 0.5))


def fallback_range(predicted_price: float, config: ValuationConfig = DEFAULT_CONFIG) -> tuple[float, float]:
    band = config.fallback_range_pct
    return _round_half_up(predicted_price * (1 - band)), _round_half_up(predicted_price * (1 + band))


def _range_bound(price_range: Mapping[str, Any], *keys: str) -> float | None:
    for key in keys:
        value = price_range.get(key)
        if isinstance(value, numbers.Real) and not isinstance(value, bool) and value > 0:
            return float(value)
    return None


def derive_valuation_summary(
    predicted_price: float | None,
    price_range: Mapping[str, Any] | None = None,
    confidence: Any = None,
    data_point_count: int = 0,
    *,
    data_source: str = "marketcheck",
    config: ValuationConfig = DEFAULT_CONFIG,
) -> ValuationSummary:
    level = map_confidence(confidence, config)
    count = max(int(data_point_count or 0), 0)
    if predicted_price is None or predicted_price <= 0:
        return ValuationSummary(
            average_value=0.0,
            low_value=0.0,
            high_value=0.0,
            confidence=level,
            data_point_count=count,
            data_source=data_source,
        )

    average = float(predicted_price)
    default_low, default_high = fallback_range(average, config)
    low = high = None
    if price_range:
        low = _range_bound(price_range, "min", "low")
        high = _range_bound(price_range, "max", "high")

    low = default_low if low is None else low
    high = default_high if high is None else high

    return ValuationSummary(
        average_value=average,
        low_value=min(low, average),
        high_value=max(high, average),
        confidence=level,
        data_point_count=count,
        data_source=data_source,
    )
