from __future__ import annotations

import asyncio
import logging
import math
import re
import time
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol

import httpx

from comparables.data_models import ConfidenceLevel, DealerType
from comparables.summary import fallback_range, map_confidence

logger = logging.getLogger(__name__)

PREDICTION_PATH = "/predict/car/us/marketcheck_price/comparables"
USER_AGENT = "VehicleValuationService/1.0"

_ZIP_PATTERN = re.compile(r"^\d{5}$")


@dataclass(frozen=True)
class RetryConfig:
    max_attempts: int = 3
    initial_delay_seconds: float = 1.0
    max_delay_seconds: float = 8.0
    backoff_multiplier: float = 2.0

    def backoff_delay(self, attempt: int) -> float:
        """Delay after the given 1-based attempt: 1s, 2s, 4s ... capped."""
        delay = self.initial_delay_seconds * self.backoff_multiplier ** (attempt - 1)
        return min(delay, self.max_delay_seconds)


@dataclass
class RecentComparables:
    num_found: int = 0
    listings: list[dict[str, Any]] = field(default_factory=list)
    stats: dict[str, Any] | None = None


@dataclass
class MarketCheckPrediction:
    predicted_price: float
    price_range: dict[str, float | None]
    confidence: ConfidenceLevel
    request_params: dict[str, Any]
    total_comparables_found: int = 0
    msrp: float | None = None
    comparables_stats: dict[str, Any] | None = None
    recent_comparables: RecentComparables | None = None
    data_source: str = "marketcheck"
    generated_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    @property
    def raw_listings(self) -> list[dict[str, Any]]:
        return self.recent_comparables.listings if self.recent_comparables is not None else []

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> MarketCheckPrediction:
        recent = payload.get("recent_comparables")
        return cls(
            **{k: v for k, v in payload.items() if k != "recent_comparables"},
            recent_comparables=RecentComparables(**recent) if recent is not None else None,
        )


@dataclass
class MarketCheckResult:
    success: bool
    data: MarketCheckPrediction | None = None
    error: str | None = None
    status_code: int | None = None


class PredictionProvider(Protocol):
    async def fetch_prediction(
        self,
        vin: str,
        miles: int,
        zip_code: str,
        *,
        is_certified: bool = False,
        dealer_type: DealerType = "franchise",
    ) -> MarketCheckResult: ...


def is_retryable_status(status_code: int) -> bool:
    return status_code >= 500 or status_code == 429


def validate_request(vin: str, miles: int, zip_code: str) -> str | None:
    if not vin or len(vin) != 17:
        return "Invalid VIN format (must be 17 characters)"
    if miles < 0 or miles > 999_999:
        return "Invalid mileage (must be 0-999,999)"
    if not zip_code or not _ZIP_PATTERN.match(zip_code):
        return "Invalid ZIP code format (must be 5 digits)"
    return None


def _safe_float(val: Any) -> float | None:
    if val is None or isinstance(val, bool):
        return None
    try:
        f = float(val)
        return f if math.isfinite(f) and f > 0 else None
    except (TypeError, ValueError, OverflowError):
        return None


def _safe_int(val: Any) -> int:
    try:
        return int(float(val))
    except (TypeError, ValueError, OverflowError):
        return 0


def _first_present(data: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = data.get(key)
        if value is not None:
            return value
    return None


def parse_prediction(data: dict[str, Any], request_params: dict[str, Any]) -> MarketCheckPrediction:
    predicted = _safe_float(_first_present(data, "marketcheck_price", "price", "predicted_price")) or 0.0

    raw_range = data.get("price_range")
    if isinstance(raw_range, dict):
        price_range = {
            "min": _safe_float(_first_present(raw_range, "min", "low")),
            "max": _safe_float(_first_present(raw_range, "max", "high")),
        }
    else:
        low, high = fallback_range(predicted)
        price_range = {"min": low, "max": high}

    comparables = data.get("comparables")
    if not isinstance(comparables, dict):
        comparables = {}
    total_found = (
        comparables.get("num_found") or data.get("total_listings") or data.get("total") or 0
    )

    recent = None
    raw_recent = data.get("recent_comparables")
    if isinstance(raw_recent, dict):
        listings = raw_recent.get("listings") or []
        recent = RecentComparables(
            num_found=_safe_int(raw_recent.get("num_found")),
            listings=list(listings) if isinstance(listings, list) else [],
            stats=raw_recent.get("stats"),
        )

    return MarketCheckPrediction(
        predicted_price=predicted,
        price_range=price_range,
        confidence=map_confidence(_first_present(data, "confidence", "confidence_score")),
        request_params=request_params,
        total_comparables_found=_safe_int(total_found),
        msrp=_safe_float(data.get("msrp")),
        comparables_stats=comparables.get("stats"),
        recent_comparables=recent,
    )


class MarketCheckClient:
    """Async client for the MarketCheck price prediction (comparables) endpoint.

    Retries 5xx/429 responses and transport failures with exponential
    backoff; other 4xx responses fail on the first attempt. Failures are
    reported through :class:`MarketCheckResult`, never raised.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.marketcheck.com/v2",
        timeout_seconds: float = 30.0,
        retry: RetryConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.retry = retry or RetryConfig()
        self._transport = transport
        self._sleep = sleep
        self._enabled = bool(api_key)

    async def fetch_prediction(
        self,
        vin: str,
        miles: int,
        zip_code: str,
        *,
        is_certified: bool = False,
        dealer_type: DealerType = "franchise",
    ) -> MarketCheckResult:
        if not self._enabled:
            return MarketCheckResult(success=False, error="MarketCheck API key not configured", status_code=500)

        invalid = validate_request(vin, miles, zip_code)
        if invalid:
            return MarketCheckResult(success=False, error=invalid, status_code=400)

        params = {
            "api_key": self.api_key,
            "vin": vin,
            "miles": str(miles),
            "zip": zip_code,
            "dealer_type": dealer_type,
            "is_certified": "true" if is_certified else "false",
        }
        request_params = {"vin": vin, "miles": miles, "zip": zip_code, "dealer_type": dealer_type}
        url = f"{self.base_url}{PREDICTION_PATH}"
        last_error: str | None = None
        t0 = time.monotonic()

        for attempt in range(1, self.retry.max_attempts + 1):
            logger.info(
                "MarketCheck attempt %d/%d",
                attempt,
                self.retry.max_attempts,
                extra={"extra_data": {"vin": vin, "miles": miles, "zip": zip_code}},
            )
            try:
                async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
                    resp = await client.get(
                        url,
                        params=params,
                        headers={"Accept": "application/json", "User-Agent": USER_AGENT},
                    )
                if resp.is_success:
                    try:
                        data = resp.json()
                    except ValueError:
                        data = None
                    if not isinstance(data, dict):
                        logger.error(
                            "Malformed MarketCheck response",
                            extra={"extra_data": {"attempt": attempt, "body": resp.text[:500]}},
                        )
                        return MarketCheckResult(
                            success=False, error="Malformed MarketCheck response", status_code=502
                        )
                    prediction = parse_prediction(data, request_params)
                    logger.info(
                        "MarketCheck prediction received",
                        extra={"extra_data": {
                            "attempt": attempt,
                            "response_time_ms": round((time.monotonic() - t0) * 1000),
                            "predicted_price": prediction.predicted_price,
                            "total_comparables_found": prediction.total_comparables_found,
                            "recent_listings": len(prediction.raw_listings),
                        }},
                    )
                    return MarketCheckResult(success=True, data=prediction)

                logger.warning(
                    "MarketCheck API error %s",
                    resp.status_code,
                    extra={"extra_data": {"attempt": attempt, "status": resp.status_code, "body": resp.text[:500]}},
                )
                if not is_retryable_status(resp.status_code) or attempt == self.retry.max_attempts:
                    return MarketCheckResult(
                        success=False,
                        error=f"MarketCheck API error: {resp.status_code} {resp.reason_phrase}".strip(),
                        status_code=resp.status_code,
                    )
            except httpx.TransportError as exc:
                last_error = str(exc) or exc.__class__.__name__
                logger.warning(
                    "MarketCheck request failed on attempt %d: %s", attempt, last_error,
                    extra={"extra_data": {"attempt": attempt}},
                )
                if attempt == self.retry.max_attempts:
                    break

            delay = self.retry.backoff_delay(attempt)
            logger.info("Retrying MarketCheck after %.1fs", delay)
            await self._sleep(delay)

        return MarketCheckResult(
            success=False,
            error=last_error or "MarketCheck API request failed after retries",
            status_code=500,
        )


MOCK_LISTINGS: tuple[dict[str, Any], ...] = (
    {"vin": "1HGCM82633A789012", "year": 2020, "make": "Honda", "model": "Civic", "trim": "EX",
     "miles": 38000, "price": 22800, "dealer_type": "franchise",
     "location": {"city": "Los Angeles", "state": "CA", "zip": "90025", "distance_miles": 5.2},
     "listing_date": "2024-12-10", "days_on_market": 9, "source": "marketcheck"},
    {"vin": "1HGCM82633A456789", "year": 2020, "make": "Honda", "model": "Civic", "trim": "LX",
     "miles": 45000, "price": 20500, "dealer_type": "independent",
     "location": {"city": "Pasadena", "state": "CA", "zip": "91101", "distance_miles": 12.8},
     "listing_date": "2024-12-05", "days_on_market": 14, "source": "marketcheck"},
    {"vin": "1HGCM82633A234567", "year": 2020, "make": "Honda", "model": "Civic", "trim": "EX-L",
     "miles": 32000, "price": 24200, "dealer_type": "franchise",
     "location": {"city": "Santa Monica", "state": "CA", "zip": "90401", "distance_miles": 8.5},
     "listing_date": "2024-12-12", "days_on_market": 7, "source": "marketcheck"},
    {"vin": "1HGCM82633A345678", "year": 2019, "make": "Honda", "model": "Civic", "trim": "Sport",
     "miles": 52000, "price": 19800, "dealer_type": "franchise",
     "location": {"city": "Burbank", "state": "CA", "zip": "91501", "distance_miles": 15.3},
     "listing_date": "2024-11-28", "days_on_market": 21, "source": "marketcheck"},
    {"vin": "1HGCM82633A567890", "year": 2021, "make": "Honda", "model": "Civic", "trim": "Touring",
     "miles": 28000, "price": 25500, "dealer_type": "franchise",
     "location": {"city": "Glendale", "state": "CA", "zip": "91201", "distance_miles": 10.1},
     "listing_date": "2024-12-15", "days_on_market": 4, "source": "marketcheck"},
    {"vin": "1HGCM82633A678901", "year": 2020, "make": "Honda", "model": "Civic", "trim": "LX",
     "miles": 48000, "price": 20100, "dealer_type": "independent",
     "location": {"city": "Long Beach", "state": "CA", "zip": "90802", "distance_miles": 22.7},
     "listing_date": "2024-12-01", "days_on_market": 18, "source": "marketcheck"},
    {"vin": "1HGCM82633A789123", "year": 2020, "make": "Honda", "model": "Civic", "trim": "EX",
     "miles": 41000, "price": 22200, "dealer_type": "franchise",
     "location": {"city": "Torrance", "state": "CA", "zip": "90501", "distance_miles": 18.9},
     "listing_date": "2024-12-08", "days_on_market": 11, "source": "marketcheck"},
    {"vin": "1HGCM82633A890234", "year": 2019, "make": "Honda", "model": "Civic", "trim": "EX-L",
     "miles": 55000, "price": 21400, "dealer_type": "independent",
     "location": {"city": "Anaheim", "state": "CA", "zip": "92801", "distance_miles": 28.4},
     "listing_date": "2024-11-22", "days_on_market": 27, "source": "marketcheck"},
    {"vin": "1HGCM82633A901345", "year": 2021, "make": "Honda", "model": "Civic", "trim": "Sport",
     "miles": 25000, "price": 24800, "dealer_type": "franchise",
     "location": {"city": "Beverly Hills", "state": "CA", "zip": "90210", "distance_miles": 6.8},
     "listing_date": "2024-12-17", "days_on_market": 2, "source": "marketcheck"},
    {"vin": "1HGCM82633A012456", "year": 2020, "make": "Honda", "model": "Civic", "trim": "Touring",
     "miles": 35000, "price": 23900, "dealer_type": "franchise",
     "location": {"city": "Culver City", "state": "CA", "zip": "90230", "distance_miles": 11.2},
     "listing_date": "2024-12-11", "days_on_market": 8, "source": "marketcheck"},
)


class MockMarketCheckClient:
    """Deterministic stand-in used in development until an API key is configured."""

    async def fetch_prediction(
        self,
        vin: str,
        miles: int,
        zip_code: str,
        *,
        is_certified: bool = False,
        dealer_type: DealerType = "franchise",
    ) -> MarketCheckResult:
        invalid = validate_request(vin, miles, zip_code)
        if invalid:
            return MarketCheckResult(success=False, error=invalid, status_code=400)

        predicted = float(round(20000 + (100000 - miles) * 0.08 + 1500))
        low, high = fallback_range(predicted)
        listings = [dict(item) for item in MOCK_LISTINGS]
        return MarketCheckResult(
            success=True,
            data=MarketCheckPrediction(
                predicted_price=predicted,
                price_range={"min": low, "max": high},
                confidence="high",
                request_params={"vin": vin, "miles": miles, "zip": zip_code, "dealer_type": dealer_type},
                total_comparables_found=847,
                recent_comparables=RecentComparables(num_found=len(listings), listings=listings),
            ),
        )
