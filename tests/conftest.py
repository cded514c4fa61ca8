import asyncio
import inspect
import pathlib
import sys
from datetime import date, timedelta
from decimal import Decimal

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import NullPool

ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from cas_analyzer.db.init import init_database  # noqa: E402
from cas_analyzer.db.session import create_session_factory  # noqa: E402
from cas_analyzer.domain import Lot, NavPoint, SchemeCatalogEntry  # noqa: E402
from cas_analyzer.errors import DownloadFailure, NavDataUnavailable  # noqa: E402
from cas_analyzer.infrastructure.cache import JobStatusCache  # noqa: E402


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers used in the suite."""

    config.addinivalue_line("markers", "asyncio: mark test as running in an asyncio event loop")


@pytest.hookimpl(tryfirst=True)
def pytest_pyfunc_call(pyfuncitem: pytest.Function) -> bool | None:
    """Execute async test functions without requiring pytest-asyncio."""

    test_function = pyfuncitem.obj
    if inspect.iscoroutinefunction(test_function):
        loop = asyncio.new_event_loop()
        try:
            asyncio.set_event_loop(loop)
            arguments = {name: pyfuncitem.funcargs[name] for name in pyfuncitem._fixtureinfo.argnames}
            loop.run_until_complete(test_function(**arguments))
        finally:
            asyncio.set_event_loop(None)
            loop.close()
        return True
    return None


class FakeRedis:
    """In-memory stand-in for ``redis.asyncio.Redis`` with decoded responses."""

    def __init__(self, *, fail: bool = False) -> None:
        self.values: dict[str, str] = {}
        self.expiry: dict[str, int] = {}
        self.fail = fail
        self.closed = False

    def _check(self) -> None:
        if self.fail:
            raise RedisConnectionError("redis unavailable")

    async def get(self, key: str) -> str | None:
        self._check()
        return self.values.get(key)

    async def set(self, key: str, value: str, ex: int | None = None) -> None:
        self._check()
        self.values[key] = value
        if ex is not None:
            self.expiry[key] = ex

    async def delete(self, key: str) -> int:
        self._check()
        return 1 if self.values.pop(key, None) is not None else 0

    async def aclose(self) -> None:
        self.closed = True


class FlakyDocuments:
    """Document source that fails ``failures`` times before serving ``payload``."""

    def __init__(self, payload: bytes, failures: int = 0) -> None:
        self.payload = payload
        self.failures = failures
        self.calls = 0

    async def fetch(self, key: str) -> bytes:
        self.calls += 1
        if self.calls <= self.failures:
            raise DownloadFailure(f"attempt {self.calls} failed for {key}")
        return self.payload


class FakeNavSource:
    """Scheme catalog and NAV series served from memory."""

    def __init__(
        self,
        catalog: list[SchemeCatalogEntry] | None = None,
        series: dict[str, list[NavPoint]] | None = None,
        *,
        catalog_failures: int = 0,
        delay: float = 0.0,
    ) -> None:
        self.catalog = catalog or []
        self.series = series or {}
        self.catalog_failures = catalog_failures
        self.delay = delay
        self.catalog_calls = 0
        self.series_calls: list[str] = []

    async def scheme_catalog(self) -> list[SchemeCatalogEntry]:
        self.catalog_calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.catalog_calls <= self.catalog_failures:
            raise NavDataUnavailable("catalog offline")
        return list(self.catalog)

    async def nav_series(self, scheme_code: str) -> list[NavPoint]:
        self.series_calls.append(scheme_code)
        if scheme_code not in self.series:
            raise NavDataUnavailable(f"unknown scheme {scheme_code}")
        return list(self.series[scheme_code])


def nav_points(navs: list[float], start: date = date(2023, 1, 2)) -> list[NavPoint]:
    """Ascending ``navs`` as NavPoints on consecutive days, returned newest first."""

    points = [NavPoint(date=start + timedelta(days=offset), nav=nav) for offset, nav in enumerate(navs)]
    return list(reversed(points))


def make_lot(
    fund_name: str = "HDFC Equity Fund - Direct Plan - Growth",
    *,
    units: str = "100",
    nav: str = "12.50",
    amount: str = "1250",
    transaction_date: date = date(2023, 1, 1),
    transaction_type: str = "BUY",
    user_id: str = "user-1",
    job_id: str = "job-1",
) -> Lot:
    return Lot(
        user_id=user_id,
        job_id=job_id,
        fund_name=fund_name,
        transaction_date=transaction_date,
        transaction_type=transaction_type,
        units=Decimal(units),
        nav=Decimal(nav),
        amount=Decimal(amount),
        is_long_term=True,
        folio_number="12345/67",
    )


SAMPLE_STATEMENT = "\n".join(
    [
        "Consolidated Account Statement",
        "HDFC Equity Fund - Direct Plan - Growth",
        "Folio No: 12345/67",
        "01-01-2023 BUY 100 12.50 1,250",
    ]
)


@pytest.fixture
def session_factory(tmp_path: pathlib.Path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'cas.db'}", poolclass=NullPool)
    asyncio.run(init_database(engine))
    yield create_session_factory(engine)
    asyncio.run(engine.dispose())


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def status_cache(fake_redis: FakeRedis) -> JobStatusCache:
    return JobStatusCache(client=fake_redis, ttl_seconds=3600)
