from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from comparables.data_models import (
    ComparableVehicle,
    DealerType,
    ListingStats,
    SelectionStrategy,
    ValuationSummary,
)
from comparables.dealer_type import classify_dealer_type
from comparables.normalizer import normalize_listings
from comparables.selector import select_listings
from comparables.statistics import listing_stats
from comparables.summary import derive_valuation_summary
from comparables.vin import decode_model_year
from service.cache import ValuationCache
from service.marketcheck import MarketCheckPrediction, PredictionProvider

logger = logging.getLogger(__name__)


class ProviderError(Exception):
    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message


@dataclass
class ValuationReport:
    vin: str
    mileage: int
    zip_code: str
    dealer_type: DealerType
    summary: ValuationSummary
    stats: ListingStats
    strategy: SelectionStrategy
    selected: list[ComparableVehicle] = field(default_factory=list)
    comparables: list[ComparableVehicle] = field(default_factory=list)
    msrp: float | None = None
    cached: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "vin": self.vin,
            "mileage": self.mileage,
            "zip_code": self.zip_code,
            "dealer_type": self.dealer_type,
            "summary": self.summary.to_dict(),
            "stats": self.stats.to_dict(),
            "strategy": self.strategy.strategy,
            "selected": [r.to_dict() for r in self.selected],
            "msrp": self.msrp,
            "cached": self.cached,
        }


class ValuationReportBuilder:
    """Fetch a provider prediction and turn it into the numbers a report shows."""

    def __init__(
        self,
        provider: PredictionProvider,
        cache: ValuationCache | None = None,
        cache_ttl_seconds: int = 86_400,
        default_limit: int = 10,
    ) -> None:
        self.provider = provider
        self.cache = cache
        self.cache_ttl_seconds = cache_ttl_seconds
        self.default_limit = default_limit

    async def _prediction(
        self, vin: str, miles: int, zip_code: str, dealer_type: DealerType
    ) -> tuple[MarketCheckPrediction, bool]:
        cache_key = ValuationCache.prediction_key(vin, miles, zip_code, dealer_type)
        if self.cache is not None:
            cached = await self.cache.get_json(cache_key)
            if cached is not None:
                return MarketCheckPrediction.from_dict(cached), True

        result = await self.provider.fetch_prediction(vin, miles, zip_code, dealer_type=dealer_type)
        if not result.success or result.data is None:
            logger.error(
                "Valuation provider failed",
                extra={"extra_data": {"vin": vin, "status": result.status_code, "error": result.error}},
            )
            raise ProviderError(result.status_code or 500, result.error or "Valuation provider failed")

        if self.cache is not None:
            await self.cache.set_json(cache_key, result.data.to_dict(), ttl_seconds=self.cache_ttl_seconds)
        return result.data, False

    async def build(
        self,
        vin: str,
        miles: int,
        zip_code: str,
        *,
        make: str | None = None,
        year: int | str | None = None,
        strategy: SelectionStrategy | None = None,
    ) -> ValuationReport:
        dealer_type: DealerType = "franchise"
        year = year or decode_model_year(vin)
        if make and year:
            dealer_type = classify_dealer_type(make, year).dealer_type

        prediction, cached = await self._prediction(vin, miles, zip_code, dealer_type)
        comparables = normalize_listings(prediction.raw_listings, source=prediction.data_source)

        summary = derive_valuation_summary(
            prediction.predicted_price,
            prediction.price_range,
            prediction.confidence,
            prediction.total_comparables_found,
            data_source=prediction.data_source,
        )
        # Report pages default to the comps closest to the subject's mileage.
        strategy = strategy or SelectionStrategy(
            "closest_mileage", limit=self.default_limit, target_mileage=miles
        )
        selected = select_listings(comparables, strategy)

        logger.info(
            "Built valuation report",
            extra={"extra_data": {
                "vin": vin,
                "cached": cached,
                "comparables": len(comparables),
                "selected": len(selected),
                "strategy": strategy.strategy,
            }},
        )
        return ValuationReport(
            vin=vin,
            mileage=miles,
            zip_code=zip_code,
            dealer_type=dealer_type,
            summary=summary,
            stats=listing_stats(comparables),
            strategy=strategy,
            selected=selected,
            comparables=comparables,
            msrp=prediction.msrp,
            cached=cached,
        )
