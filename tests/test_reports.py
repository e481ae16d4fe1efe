from datetime import date

import pytest

from comparables.data_models import SelectionStrategy
from service.cache import ValuationCache
from service.marketcheck import MarketCheckResult, MockMarketCheckClient
from service.reports import ProviderError, ValuationReportBuilder

VIN = "1HGCM82633A004352"


class CountingProvider:
    def __init__(self) -> None:
        self.inner = MockMarketCheckClient()
        self.calls: list[dict] = []

    async def fetch_prediction(self, vin, miles, zip_code, *, is_certified=False, dealer_type="franchise"):
        self.calls.append({"vin": vin, "miles": miles, "zip": zip_code, "dealer_type": dealer_type})
        return await self.inner.fetch_prediction(vin, miles, zip_code, dealer_type=dealer_type)


class FailingProvider:
    async def fetch_prediction(self, vin, miles, zip_code, *, is_certified=False, dealer_type="franchise"):
        return MarketCheckResult(success=False, error="MarketCheck API error: 503", status_code=503)


def _offline_cache() -> ValuationCache:
    # Never connected, so reads and writes stay in process.
    return ValuationCache(redis_url="redis://127.0.0.1:1/0")


@pytest.mark.asyncio
async def test_report_from_mock_provider():
    builder = ValuationReportBuilder(CountingProvider(), cache=_offline_cache())
    report = await builder.build(VIN, 40000, "90025")

    assert report.summary.average_value == 26300
    assert report.summary.low_value == 23670
    assert report.summary.high_value == 28930
    assert report.summary.confidence == "high"
    assert report.summary.data_point_count == 847

    assert report.stats.total == 10
    assert report.stats.franchise_count == 7
    assert report.stats.independent_count == 3

    assert report.strategy.strategy == "closest_mileage"
    assert [r.mileage for r in report.selected[:4]] == [41000, 38000, 45000, 35000]
    assert report.cached is False


@pytest.mark.asyncio
async def test_report_uses_requested_strategy():
    builder = ValuationReportBuilder(CountingProvider())
    report = await builder.build(VIN, 40000, "90025", strategy=SelectionStrategy("top_price", limit=3))
    assert [r.price for r in report.selected] == [25500, 24800, 24200]
    body = report.to_dict()
    assert body["strategy"] == "top_price"
    assert len(body["selected"]) == 3
    assert body["summary"]["average_value"] == 26300


@pytest.mark.asyncio
async def test_second_request_is_served_from_cache():
    provider = CountingProvider()
    builder = ValuationReportBuilder(provider, cache=_offline_cache())

    first = await builder.build(VIN, 40000, "90025")
    second = await builder.build(VIN, 40000, "90025")

    assert len(provider.calls) == 1
    assert first.cached is False
    assert second.cached is True
    assert second.summary == first.summary
    assert [r.vin for r in second.selected] == [r.vin for r in first.selected]


@pytest.mark.asyncio
async def test_provider_failure_raises():
    builder = ValuationReportBuilder(FailingProvider(), cache=_offline_cache())
    with pytest.raises(ProviderError) as excinfo:
        await builder.build(VIN, 40000, "90025")
    assert excinfo.value.status_code == 503


@pytest.mark.asyncio
async def test_dealer_type_follows_make_and_year():
    provider = CountingProvider()
    builder = ValuationReportBuilder(provider)

    report = await builder.build(VIN, 90000, "90025", make="Saturn", year=2008)
    assert report.dealer_type == "independent"
    assert provider.calls[-1]["dealer_type"] == "independent"

    report = await builder.build(VIN, 20000, "90025", make="Honda", year=date.today().year - 2)
    assert report.dealer_type == "franchise"


@pytest.mark.asyncio
async def test_cache_memory_fallback_round_trip():
    cache = _offline_cache()
    await cache.connect()
    await cache.set_json("k1", {"ok": True}, ttl_seconds=60)
    assert await cache.get_json("k1") == {"ok": True}
    assert await cache.get_json("missing") is None
    assert await cache.ping() is False
    await cache.close()


@pytest.mark.asyncio
async def test_cache_memory_entries_expire():
    cache = _offline_cache()
    await cache.set_json("k1", {"ok": True}, ttl_seconds=-1)
    assert await cache.get_json("k1") is None


@pytest.mark.asyncio
async def test_model_year_falls_back_to_vin():
    provider = CountingProvider()
    builder = ValuationReportBuilder(provider)
    # Position 10 of the VIN is "3", a 2003 model year.
    report = await builder.build(VIN, 120000, "90025", make="Fisker")
    assert report.dealer_type == "independent"


@pytest.mark.asyncio
async def test_cache_memory_fallback_sweeps_expired_keys():
    cache = _offline_cache()
    for i in range(5):
        await cache.set_json(f"stale-{i}", {"i": i}, ttl_seconds=-1)
    await cache.set_json("fresh", {"ok": True}, ttl_seconds=60)
    assert list(cache._mem) == ["valuation:fresh"]
    assert list(cache._expiry) == ["valuation:fresh"]
