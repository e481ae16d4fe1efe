from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, Literal

from fastapi import FastAPI, HTTPException, Request, Response, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from comparables.data_models import SelectionStrategy, StrategyName
from comparables.errors import InvalidInputError
from comparables.normalizer import normalize_listings
from comparables.selector import select_listings
from comparables.statistics import listing_stats
from comparables.vin import validate_vin
from service.cache import ValuationCache
from service.logging_config import configure_logging, correlation_id, new_correlation_id
from service.marketcheck import MarketCheckClient, MockMarketCheckClient, PredictionProvider, RetryConfig
from service.reports import ProviderError, ValuationReportBuilder
from service.settings import ServiceSettings

logger = logging.getLogger(__name__)


# ── Request / Response Models ───────────────────────────────────────

class StrategyRequest(BaseModel):
    strategy: StrategyName = "top_price"
    limit: int = Field(default=10, ge=1, le=1000)
    target_price: float | None = None
    target_mileage: float | None = None
    dealer_type: Literal["franchise", "independent"] | None = None
    min_price: float | None = None
    max_price: float | None = None
    min_miles: float | None = None
    max_miles: float | None = None

    def to_strategy(self) -> SelectionStrategy:
        return SelectionStrategy(**self.model_dump())


class ValuationRequest(BaseModel):
    vin: str = Field(min_length=17, max_length=17)
    mileage: int = Field(ge=0, le=999_999)
    zip_code: str = Field(pattern=r"^\d{5}$")
    make: str | None = None
    year: int | None = Field(default=None, ge=1900, le=2100)
    strategy: StrategyRequest | None = None


class SelectRequest(BaseModel):
    listings: Any
    strategy: StrategyRequest = Field(default_factory=StrategyRequest)
    source: str | None = None


class SelectResponse(BaseModel):
    strategy: str
    selected: list[dict[str, Any]]
    stats: dict[str, Any]
    normalized_count: int


class HealthResponse(BaseModel):
    status: str


class ReadinessResponse(BaseModel):
    status: str
    checks: dict[str, bool]


# ── App Factory ─────────────────────────────────────────────────────

def build_provider(settings: ServiceSettings) -> PredictionProvider:
    if settings.marketcheck_use_mock:
        return MockMarketCheckClient()
    return MarketCheckClient(
        api_key=settings.marketcheck_api_key,
        base_url=settings.marketcheck_base_url,
        timeout_seconds=settings.marketcheck_timeout_seconds,
        retry=RetryConfig(
            max_attempts=settings.marketcheck_max_attempts,
            initial_delay_seconds=settings.marketcheck_initial_delay_seconds,
            max_delay_seconds=settings.marketcheck_max_delay_seconds,
        ),
    )


def create_app(
    settings: ServiceSettings | None = None,
    provider: PredictionProvider | None = None,
) -> FastAPI:
    settings = settings or ServiceSettings()
    configure_logging(level=settings.log_level, fmt=settings.log_format)

    cache = ValuationCache(redis_url=settings.redis_url)
    builder = ValuationReportBuilder(
        provider=provider or build_provider(settings),
        cache=cache,
        cache_ttl_seconds=settings.valuation_cache_ttl_seconds,
        default_limit=settings.default_selection_limit,
    )

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        await cache.connect()
        try:
            yield
        finally:
            await cache.close()

    app = FastAPI(title="Vehicle Valuation Comparables API", version="1.0.0", lifespan=lifespan)

    @app.middleware("http")
    async def correlation_id_middleware(request: Request, call_next: Any) -> Response:
        cid = request.headers.get("X-Correlation-ID")
        if cid:
            correlation_id.set(cid)
        else:
            cid = new_correlation_id()
        response = await call_next(request)
        response.headers["X-Correlation-ID"] = cid
        return response

    @app.exception_handler(InvalidInputError)
    async def invalid_input_handler(_: Request, exc: InvalidInputError) -> JSONResponse:
        return JSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content={"detail": str(exc)})

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse(status="ok")

    @app.get("/ready", response_model=ReadinessResponse)
    async def ready() -> ReadinessResponse:
        checks = {"redis": await cache.ping()}
        # The in-memory cache fallback keeps the service usable without Redis.
        return ReadinessResponse(status="ready" if all(checks.values()) else "degraded", checks=checks)

    @app.post("/valuations")
    async def create_valuation(payload: ValuationRequest) -> dict[str, Any]:
        check = validate_vin(payload.vin)
        if not check.valid:
            raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=check.error)
        strategy = payload.strategy.to_strategy() if payload.strategy is not None else None
        try:
            report = await builder.build(
                check.vin,
                payload.mileage,
                payload.zip_code,
                make=payload.make,
                year=payload.year,
                strategy=strategy,
            )
        except ProviderError as exc:
            code = exc.status_code if 400 <= exc.status_code < 500 else status.HTTP_502_BAD_GATEWAY
            raise HTTPException(status_code=code, detail=exc.message) from exc
        return report.to_dict()

    @app.post("/comparables/select", response_model=SelectResponse)
    async def select_comparables(payload: SelectRequest) -> SelectResponse:
        comparables = normalize_listings(payload.listings, source=payload.source)
        strategy = payload.strategy.to_strategy()
        selected = select_listings(comparables, strategy)
        return SelectResponse(
            strategy=strategy.strategy,
            selected=[r.to_dict() for r in selected],
            stats=listing_stats(comparables).to_dict(),
            normalized_count=len(comparables),
        )

    return app
