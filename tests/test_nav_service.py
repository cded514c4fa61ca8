"""NAV client and scheme resolution tests."""

from __future__ import annotations

import asyncio
from datetime import date

import httpx
import pytest

from conftest import FakeNavSource, nav_points
from cas_analyzer.domain import SchemeCatalogEntry
from cas_analyzer.errors import NavDataUnavailable
from cas_analyzer.providers import MfApiClient
from cas_analyzer.services.nav import NavService, SchemeCatalog

CATALOG = [
    SchemeCatalogEntry(scheme_code="119551", scheme_name="HDFC Equity Fund - Direct Plan - Growth"),
    SchemeCatalogEntry(scheme_code="125497", scheme_name="SBI Liquid Fund - Regular Plan"),
]


def _mfapi_handler(request: httpx.Request) -> httpx.Response:
    if request.url.path == "/mf":
        return httpx.Response(
            200,
            json=[
                {"schemeCode": 119551, "schemeName": "HDFC Equity Fund - Direct Plan - Growth"},
                {"schemeCode": 125497, "schemeName": "SBI Liquid Fund - Regular Plan"},
                {"schemeName": "missing code"},
            ],
        )
    if request.url.path == "/mf/119551":
        return httpx.Response(
            200,
            json={
                "meta": {"scheme_code": 119551},
                "data": [
                    {"date": "01-01-2024", "nav": "100.0"},
                    {"date": "03-01-2024", "nav": "102.5"},
                    {"date": "02-01-2024", "nav": "101.0"},
                    {"date": "bad", "nav": "1"},
                ],
            },
        )
    if request.url.path == "/mf/500":
        return httpx.Response(500, json={"error": "boom"})
    return httpx.Response(404, json={"status": "ERROR"})


def _client() -> MfApiClient:
    transport = httpx.MockTransport(_mfapi_handler)
    return MfApiClient("https://mf.test", timeout=5, client=httpx.AsyncClient(transport=transport))


@pytest.mark.asyncio
async def test_mfapi_scheme_catalog_skips_incomplete_entries():
    client = _client()
    entries = await client.scheme_catalog()
    await client.aclose()
    assert entries == CATALOG


@pytest.mark.asyncio
async def test_mfapi_nav_series_is_newest_first():
    client = _client()
    points = await client.nav_series("119551")
    await client.aclose()
    assert [point.date for point in points] == [date(2024, 1, 3), date(2024, 1, 2), date(2024, 1, 1)]
    assert points[0].nav == 102.5


@pytest.mark.asyncio
async def test_mfapi_http_errors_raise_nav_unavailable():
    client = _client()
    with pytest.raises(NavDataUnavailable):
        await client.nav_series("500")
    await client.aclose()


@pytest.mark.asyncio
async def test_nav_service_over_http_client():
    client = _client()
    service = NavService(client, threshold=75)

    assert await service.resolve_scheme_code("HDFC Equity Fund Direct Growth") == "119551"
    assert await service.get_latest_nav("119551") == 102.5
    assert await service.get_nav_history("404") == []
    assert await service.get_latest_nav("404") is None
    await client.aclose()


@pytest.mark.asyncio
async def test_unrelated_name_does_not_resolve():
    service = NavService(FakeNavSource(catalog=CATALOG), threshold=75)
    assert await service.resolve_scheme_code("Nippon India Gold Savings") is None
    assert await service.resolve_scheme_code("   ") is None


@pytest.mark.asyncio
async def test_threshold_controls_matching():
    strict = NavService(FakeNavSource(catalog=CATALOG), threshold=100)
    assert await strict.resolve_scheme_code("HDFC Equity Growth") is None
    assert await strict.resolve_scheme_code("HDFC Equity Fund - Direct Plan - Growth") == "119551"


@pytest.mark.asyncio
async def test_catalog_first_load_is_single_flight():
    source = FakeNavSource(catalog=CATALOG, delay=0.01)
    catalog = SchemeCatalog(source, threshold=75)
    service = NavService(source, catalog)

    results = await asyncio.gather(
        *(service.resolve_scheme_code("SBI Liquid Fund Regular Plan") for _ in range(5))
    )

    assert results == ["125497"] * 5
    assert source.catalog_calls == 1
    assert catalog.fetch_count == 1
    assert catalog.loaded


@pytest.mark.asyncio
async def test_failed_catalog_fetch_is_retried_later():
    source = FakeNavSource(catalog=CATALOG, catalog_failures=1)
    service = NavService(source, threshold=75)

    assert await service.resolve_scheme_code("SBI Liquid Fund Regular Plan") is None
    assert not service.catalog.loaded
    assert await service.resolve_scheme_code("SBI Liquid Fund Regular Plan") == "125497"
    assert source.catalog_calls == 2


@pytest.mark.asyncio
async def test_history_is_sorted_newest_first():
    points = nav_points([10.0, 11.0, 12.0])
    source = FakeNavSource(catalog=CATALOG, series={"119551": list(reversed(points))})
    service = NavService(source, threshold=75)

    history = await service.get_nav_history("119551")

    assert [point.nav for point in history] == [12.0, 11.0, 10.0]


MARKET_CATALOG = [
    SchemeCatalogEntry(scheme_code="1", scheme_name="Union Flexi Cap Fund - Growth"),
    SchemeCatalogEntry(scheme_code="2", scheme_name="HDFC Equity Savings Fund - Direct Plan"),
    SchemeCatalogEntry(scheme_code="3", scheme_name="Aditya Birla Sun Life Liquid Fund"),
    SchemeCatalogEntry(scheme_code="4", scheme_name="Nippon India Small Cap Fund"),
]


@pytest.mark.asyncio
async def test_shared_fund_words_do_not_resolve_unrelated_schemes():
    service = NavService(FakeNavSource(catalog=MARKET_CATALOG), threshold=75)

    assert await service.resolve_scheme_code("UNKNOWN FUND") is None
    assert await service.resolve_scheme_code("Equity") is None
    assert await service.resolve_scheme_code("Liquid") is None
    assert await service.resolve_scheme_code("Union Flexi Cap Fund Growth") == "1"
    assert await service.resolve_scheme_code("Nippon India Small Cap Fund - Direct Growth") == "4"


@pytest.mark.asyncio
async def test_unknown_fund_placeholder_never_resolves():
    service = NavService(FakeNavSource(catalog=MARKET_CATALOG), threshold=0)
    assert await service.resolve_scheme_code("UNKNOWN FUND") is None
