"""HTTP client for the mfapi.in mutual fund NAV data source."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

import httpx

from cas_analyzer.config import get_settings
from cas_analyzer.domain import NavPoint, SchemeCatalogEntry
from cas_analyzer.errors import NavDataUnavailable

logger = logging.getLogger(__name__)

NAV_DATE_FORMAT = "%d-%m-%Y"


class MfApiClient:
    """Thin async client over ``GET /mf`` and ``GET /mf/{schemeCode}``."""

    def __init__(
        self,
        base_url: str | None = None,
        *,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        settings = get_settings()
        self._base_url = (base_url or settings.mfapi_base_url).rstrip("/")
        self._timeout = timeout if timeout is not None else settings.mfapi_timeout_seconds
        self._client = client or httpx.AsyncClient(timeout=self._timeout)

    async def _get_json(self, path: str) -> Any:
        url = f"{self._base_url}{path}"
        try:
            response = await self._client.get(url, timeout=self._timeout)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPError as exc:
            raise NavDataUnavailable(f"Request to {url} failed: {exc}") from exc
        except ValueError as exc:
            raise NavDataUnavailable(f"Malformed JSON from {url}") from exc

    async def scheme_catalog(self) -> list[SchemeCatalogEntry]:
        """Return every scheme the data source knows about."""

        payload = await self._get_json("/mf")
        if not isinstance(payload, list):
            raise NavDataUnavailable("Scheme list payload is not a list")
        entries: list[SchemeCatalogEntry] = []
        for item in payload:
            if not isinstance(item, dict):
                continue
            code = item.get("schemeCode")
            name = item.get("schemeName")
            if code is None or not name:
                continue
            entries.append(SchemeCatalogEntry(scheme_code=str(code), scheme_name=str(name)))
        logger.info("Received %d schemes from %s", len(entries), self._base_url)
        return entries

    async def nav_series(self, scheme_code: str) -> list[NavPoint]:
        """Return published NAVs for ``scheme_code``, newest first."""

        payload = await self._get_json(f"/mf/{scheme_code}")
        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, list):
            raise NavDataUnavailable(f"No NAV data returned for scheme {scheme_code}")
        points: list[NavPoint] = []
        for row in data:
            if not isinstance(row, dict):
                continue
            try:
                day = datetime.strptime(str(row["date"]), NAV_DATE_FORMAT).date()
                nav = float(row["nav"])
            except (KeyError, TypeError, ValueError):
                continue
            points.append(NavPoint(date=day, nav=nav))
        points.sort(key=lambda point: point.date, reverse=True)
        logger.debug("Received %d NAV entries for scheme %s", len(points), scheme_code)
        return points

    async def aclose(self) -> None:
        await self._client.aclose()


__all__ = ["MfApiClient", "NAV_DATE_FORMAT"]
