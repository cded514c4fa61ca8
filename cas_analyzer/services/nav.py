"""Fund name resolution and NAV history lookups.

The scheme catalog is fetched once per process and indexed for fuzzy
matching. Concurrent first use collapses onto a single fetch; a failed fetch
is not remembered so a later job can try again. Every lookup failure
degrades to "no data" and is never raised to the caller.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Protocol, Sequence

from rapidfuzz import fuzz, process, utils

from cas_analyzer.config import get_settings
from cas_analyzer.domain import NavPoint, SchemeCatalogEntry
from cas_analyzer.errors import NavDataUnavailable
from cas_analyzer.parsing.statement import UNKNOWN_FUND

logger = logging.getLogger(__name__)


class NavSource(Protocol):
    """Data source for the scheme catalog and per-scheme NAV series."""

    async def scheme_catalog(self) -> list[SchemeCatalogEntry]:
        ...

    async def nav_series(self, scheme_code: str) -> list[NavPoint]:
        ...


@dataclass(frozen=True)
class SchemeMatch:
    entry: SchemeCatalogEntry
    score: float


class SchemeCatalog:
    """Lazily built, process-lifetime fuzzy index over scheme names."""

    def __init__(self, source: NavSource, *, threshold: float) -> None:
        self._source = source
        self._threshold = threshold
        self._lock = asyncio.Lock()
        self._entries: tuple[SchemeCatalogEntry, ...] = ()
        self._choices: list[str] = []
        self._loaded = False
        self.fetch_count = 0

    @property
    def loaded(self) -> bool:
        return self._loaded

    @property
    def entries(self) -> Sequence[SchemeCatalogEntry]:
        return self._entries

    async def ensure_loaded(self) -> bool:
        if self._loaded:
            return True
        async with self._lock:
            if self._loaded:
                return True
            self.fetch_count += 1
            try:
                entries = await self._source.scheme_catalog()
            except NavDataUnavailable as exc:
                logger.warning("Failed to fetch scheme list: %s", exc)
                return False
            if not entries:
                logger.warning("Scheme list is empty; fuzzy resolution unavailable")
                return False
            self._entries = tuple(entries)
            self._choices = [utils.default_process(entry.scheme_name) for entry in self._entries]
            self._loaded = True
            logger.info("Cached %d schemes", len(self._entries))
            return True

    async def best_match(self, fund_name: str) -> SchemeMatch | None:
        """Closest scheme by whole-name similarity, or None below the threshold.

        The parser's unknown-fund placeholder never resolves.
        """

        query = utils.default_process(fund_name)
        if not query or query == utils.default_process(UNKNOWN_FUND):
            return None
        if not await self.ensure_loaded():
            return None
        result = process.extractOne(
            query,
            self._choices,
            scorer=fuzz.token_sort_ratio,
            score_cutoff=self._threshold,
        )
        if result is None:
            return None
        _, score, index = result
        return SchemeMatch(entry=self._entries[index], score=score)


class NavService:
    """Resolve free-text fund names and fetch their NAV history."""

    def __init__(
        self,
        source: NavSource,
        catalog: SchemeCatalog | None = None,
        *,
        threshold: float | None = None,
    ) -> None:
        if threshold is None:
            threshold = get_settings().scheme_match_threshold
        self._source = source
        self._catalog = catalog or SchemeCatalog(source, threshold=threshold)

    @property
    def catalog(self) -> SchemeCatalog:
        return self._catalog

    async def resolve_scheme_code(self, fund_name: str) -> str | None:
        match = await self._catalog.best_match(fund_name)
        if match is None:
            logger.warning("No scheme match found for '%s'", fund_name)
            return None
        logger.info(
            "Matched '%s' to '%s' (score %.1f)",
            fund_name,
            match.entry.scheme_name,
            match.score,
        )
        return match.entry.scheme_code

    async def get_nav_history(self, scheme_code: str) -> list[NavPoint]:
        """Newest-first NAV history; empty when the source cannot serve it."""

        try:
            history = await self._source.nav_series(scheme_code)
        except NavDataUnavailable as exc:
            logger.warning("Failed to fetch NAV for %s: %s", scheme_code, exc)
            return []
        return sorted(history, key=lambda point: point.date, reverse=True)

    async def get_latest_nav(self, scheme_code: str) -> float | None:
        history = await self.get_nav_history(scheme_code)
        if not history:
            return None
        return history[0].nav


__all__ = ["NavService", "NavSource", "SchemeCatalog", "SchemeMatch"]
