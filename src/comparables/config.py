from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict


@dataclass(frozen=True)
class ValuationConfig:
    # Fixed band used when the provider omits an explicit price range.
    fallback_range_pct: float = 0.10
    high_confidence_score: float = 80.0
    medium_confidence_score: float = 50.0
    min_model_year: int = 1900
    max_model_year_ahead: int = 2
    default_source: str = "marketcheck"
    dealer_type_aliases: Dict[str, str] = field(
        default_factory=lambda: {
            "franchise": "franchise",
            "franchised": "franchise",
            "independent": "independent",
            "indie": "independent",
        }
    )


DEFAULT_CONFIG = ValuationConfig()
