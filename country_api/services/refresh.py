"""Refresh cycle: fetch both sources, derive, upsert atomically, render.

Only one cycle runs per process at a time. A second request that arrives
while a cycle is in flight is refused with :class:`AlreadyRunning` and does
not interfere with the running cycle.
"""
import asyncio
import logging
import random
import threading
from contextlib import contextmanager
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple

import httpx
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from country_api import crud
from country_api.config import settings
from country_api.errors import AlreadyRunning, ArtifactRenderError, ExternalSource, ExternalUnavailable, StorageError
from country_api.services.clients import FetchError, fetch_countries, fetch_exchange_rates
from country_api.services.derivation import DerivedCountry, RandomSource, derive_records
from country_api.services.image_generator import generate_summary_image

logger = logging.getLogger("country_api.refresh")

TOP_N = 5


class SingleFlight:
    """Process-wide non-blocking lock for a named job.

    ``Lock.acquire(blocking=False)`` is an atomic test-and-set, so the guard
    holds under threads as well as on a single event loop.
    """

    def __init__(self, name: str):
        self.name = name
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._lock.locked()

    @contextmanager
    def hold(self) -> Iterator[None]:
        if not self._lock.acquire(blocking=False):
            raise AlreadyRunning(self.name)
        try:
            yield
        finally:
            self._lock.release()


refresh_guard = SingleFlight("refresh")


@dataclass
class RefreshResult:
    message: str
    total_countries: int
    last_refreshed_at: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _default_http_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(follow_redirects=True, headers={"Accept": "application/json"})


class RefreshService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        countries_url: Optional[str] = None,
        exchange_url: Optional[str] = None,
        timeout_ms: Optional[int] = None,
        http_client_factory: Callable[[], httpx.AsyncClient] = _default_http_client,
        rng: Optional[RandomSource] = None,
        renderer: Callable[..., Any] = generate_summary_image,
        image_path: Optional[Path] = None,
        guard: SingleFlight = refresh_guard,
    ):
        self.session_factory = session_factory
        self.countries_url = countries_url or settings.COUNTRIES_API_URL
        self.exchange_url = exchange_url or settings.EXCHANGE_API_URL
        self.timeout_ms = timeout_ms or settings.EXTERNAL_TIMEOUT_MS
        self.http_client_factory = http_client_factory
        self.rng = rng or random.Random()
        self.renderer = renderer
        self.image_path = image_path or settings.CACHE_IMAGE_PATH
        self.guard = guard

    async def run(self) -> RefreshResult:
        # Taken before the first await; released on every exit path.
        with self.guard.hold():
            return await self._run_cycle()

    async def _run_cycle(self) -> RefreshResult:
        started_at = datetime.now(timezone.utc)
        logger.info("Refresh started")

        entries, rates = await self._fetch_sources()
        records = derive_records(entries, rates, started_at, self.rng)
        logger.info("Derived %d of %d catalog entries (%d rates)", len(records), len(entries), len(rates))

        completed_at = await self._persist(records)
        total, top = await self._aggregates()

        try:
            await self._render_summary(top, total, completed_at)
        except ArtifactRenderError as e:
            logger.error("Summary image not updated: %s", e.__cause__ or e, exc_info=e.__cause__)

        logger.info("Refresh finished: %d countries stored", total)
        return RefreshResult(
            message="Refresh successful",
            total_countries=total,
            last_refreshed_at=completed_at.isoformat(),
        )

    async def _fetch_sources(self) -> Tuple[List[Dict[str, Any]], Dict[str, Optional[float]]]:
        async with self.http_client_factory() as client:
            results = await asyncio.gather(
                fetch_countries(client, self.countries_url, self.timeout_ms),
                fetch_exchange_rates(client, self.exchange_url, self.timeout_ms),
                return_exceptions=True,
            )

        for source, result in zip((ExternalSource.COUNTRIES, ExternalSource.EXCHANGE_RATES), results):
            if isinstance(result, FetchError):
                logger.warning("%s unavailable: %s", source.value, result)
                raise ExternalUnavailable(source, result.reason) from result
            if isinstance(result, BaseException):
                raise result
        entries, rates = results
        return entries, rates

    async def _persist(self, records: Sequence[DerivedCountry]) -> datetime:
        """Write every record and the refresh timestamp in one transaction."""
        async with self.session_factory() as db:
            try:
                async with db.begin():
                    written = await crud.upsert_countries(db, records)
                    completed_at = datetime.now(timezone.utc)
                    await crud.set_last_refresh(db, completed_at.isoformat())
            except SQLAlchemyError as e:
                logger.error("Refresh rolled back: %s", e)
                raise StorageError(str(e)) from e
        logger.debug("Committed %d country rows", written)
        return completed_at

    async def _aggregates(self) -> Tuple[int, list]:
        async with self.session_factory() as db:
            try:
                total = await crud.count_countries(db)
                top = await crud.top_countries_by_gdp(db, TOP_N)
            except SQLAlchemyError as e:
                logger.error("Could not read aggregates after refresh: %s", e)
                raise StorageError(str(e)) from e
        return total, top

    async def _render_summary(self, top: list, total: int, completed_at: datetime) -> None:
        timestamp = completed_at.strftime("%Y-%m-%d %H:%M:%S UTC")
        try:
            await asyncio.to_thread(self.renderer, top, total, timestamp, self.image_path)
        except Exception as e:
            raise ArtifactRenderError(str(e)) from e
