"""Neighbourhood lookup pipeline: orchestrates the data sources into one response.

Flow: zip/address -> Locatieserver -> CBS statistics -> safety score
      -> {amenities, crime charts} raced against a soft timeout
      -> merged property bag -> badge/table/card views

Slow branches are never cancelled. When they miss the deadline the first
response goes out without them and a late update is delivered once they
finish.
"""

import asyncio
import logging
from typing import Awaitable, Callable

import httpx

from buurtinfo.config import settings
from buurtinfo.data.amenities import AmenityLocator
from buurtinfo.data.cache import TTLCache, build_cache
from buurtinfo.data.cbs import CBSStatisticsClient
from buurtinfo.data.http import build_client
from buurtinfo.data.locatieserver import LocatieserverClient
from buurtinfo.data.police import PoliceCrimeClient
from buurtinfo.engine.properties import build_views
from buurtinfo.models.diagnostics import Diagnostics
from buurtinfo.models.lookup import LateUpdate, NeighbourhoodRequest, NeighbourhoodResponse
from buurtinfo.models.neighbourhood import (
    CrimeChartData,
    NeighbourhoodIdentity,
    PropertyBag,
    ResolutionError,
    TimestampedValue,
)

logger = logging.getLogger(__name__)

LateUpdateCallback = Callable[[LateUpdate], Awaitable[None]]


def merge_bag(
    identity: NeighbourhoodIdentity,
    statistics: PropertyBag,
    crime_score: TimestampedValue | None,
    amenities: PropertyBag,
) -> PropertyBag:
    bag: PropertyBag = {
        "neighbourhoodName": TimestampedValue(value=identity.name),
        "municipalityName": TimestampedValue(value=identity.municipality_name),
    }
    bag.update(statistics)
    if crime_score is not None:
        bag["crimeScore"] = crime_score
    bag.update(amenities)
    return bag


class NeighbourhoodPipeline:
    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        cache: TTLCache | None = None,
        locatieserver: LocatieserverClient | None = None,
        statistics: CBSStatisticsClient | None = None,
        crime: PoliceCrimeClient | None = None,
        amenities: AmenityLocator | None = None,
        slow_branch_timeout: float | None = None,
    ):
        self._owns_client = client is None
        self.client = client or build_client()
        self.cache = cache or build_cache()
        self.locatieserver = locatieserver or LocatieserverClient(self.client)
        self.statistics = statistics or CBSStatisticsClient(self.client)
        self.crime = crime or PoliceCrimeClient(self.client, self.cache)
        self.amenities = amenities or AmenityLocator(self.client, self.cache, self.locatieserver)
        self.slow_branch_timeout = (
            slow_branch_timeout if slow_branch_timeout is not None else settings.slow_branch_timeout
        )
        self._background: set[asyncio.Task] = set()

    async def aclose(self) -> None:
        """Wait for pending late updates, then release the HTTP client if owned."""
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
        if self._owns_client:
            await self.client.aclose()

    # ---- branches (never raise) ------------------------------------------

    async def _fetch_statistics(self, code: str, diag: Diagnostics) -> PropertyBag:
        try:
            return await self.statistics.fetch_statistics(code, diag)
        except Exception as e:
            logger.warning("Statistics failed for %s: %s", code, e)
            diag.add(f"[CBS] error {e}")
            return {}

    async def _fetch_crime_score(self, code: str, statistics: PropertyBag, diag: Diagnostics) -> TimestampedValue | None:
        try:
            return await self.crime.compute_safety_score(code, statistics, diag)
        except Exception as e:
            logger.warning("Safety score failed for %s: %s", code, e)
            diag.add(f"[Crime] error {e}")
            return None

    async def _fetch_amenities(self, code: str, address_query: str | None, diag: Diagnostics) -> PropertyBag:
        try:
            return await self.amenities.fetch_amenities(code, address_query, diag)
        except Exception as e:
            logger.warning("Amenities failed for %s: %s", code, e)
            diag.add(f"[Amenities] error {e}")
            return {}

    async def _fetch_crime_charts(self, code: str, diag: Diagnostics) -> CrimeChartData | None:
        try:
            return await self.crime.fetch_crime_charts(code, diag)
        except Exception as e:
            logger.warning("Crime charts failed for %s: %s", code, e)
            diag.add(f"[Crime] charts error {e}")
            return None

    @staticmethod
    def _debug_lines(request: NeighbourhoodRequest, diag: Diagnostics) -> list[str] | None:
        # snapshot; slow branches keep writing to diag after the response is out
        return list(diag.lines) if request.debug else None

    # ---- lookup ------------------------------------------------------------

    async def lookup(
        self,
        request: NeighbourhoodRequest,
        on_late_update: LateUpdateCallback | None = None,
    ) -> NeighbourhoodResponse:
        """Build the neighbourhood response for a zip code and optional address.

        Never raises. A failed resolution returns a response with ``error``
        set; every other failure degrades to missing fields.
        """
        diag = Diagnostics()
        selected = (
            request.selected_properties
            if request.selected_properties is not None
            else settings.default_selected_properties
        )

        identity = await self.locatieserver.resolve_neighbourhood(request.zip_code, request.address_query, diag)
        if isinstance(identity, ResolutionError):
            return NeighbourhoodResponse(error=identity.error, debug_info=self._debug_lines(request, diag))
        logger.info("Neighbourhood for %s: %s (%s)", request.zip_code, identity.code, identity.name)

        statistics = await self._fetch_statistics(identity.code, diag)
        crime_score = await self._fetch_crime_score(identity.code, statistics, diag)

        amenities_task = asyncio.create_task(
            self._fetch_amenities(identity.code, request.address_query, diag)
        )
        charts_task = asyncio.create_task(self._fetch_crime_charts(identity.code, diag))
        await asyncio.wait({amenities_task, charts_task}, timeout=self.slow_branch_timeout)

        amenities = amenities_task.result() if amenities_task.done() else {}
        charts = charts_task.result() if charts_task.done() else None
        late = not (amenities_task.done() and charts_task.done())
        if late:
            diag.add("[Pipeline] slow branches pending; sending partial response")

        bag = merge_bag(identity, statistics, crime_score, amenities)
        badges, table, cards = build_views(bag, selected)

        if late:
            task = asyncio.create_task(
                self._deliver_late(
                    identity, statistics, crime_score, amenities_task, charts_task, selected,
                    on_late_update, diag if request.debug else None,
                )
            )
            self._background.add(task)
            task.add_done_callback(self._background.discard)

        return NeighbourhoodResponse(
            badge_properties=badges,
            table_properties=table,
            card_properties=cards,
            crime_data=charts,
            debug_info=self._debug_lines(request, diag),
            late_update_pending=late and on_late_update is not None,
        )

    async def _deliver_late(
        self,
        identity: NeighbourhoodIdentity,
        statistics: PropertyBag,
        crime_score: TimestampedValue | None,
        amenities_task: asyncio.Task,
        charts_task: asyncio.Task,
        selected: list[str],
        on_late_update: LateUpdateCallback | None,
        diag: Diagnostics | None = None,
    ) -> None:
        amenities, charts = await asyncio.gather(amenities_task, charts_task)
        if on_late_update is None:
            return
        bag = merge_bag(identity, statistics, crime_score, amenities)
        _, table, cards = build_views(bag, selected)
        try:
            await on_late_update(LateUpdate(
                card_properties=cards,
                crime_data=charts,
                table_properties=table,
                debug_info=list(diag.lines) if diag is not None else None,
            ))
        except Exception:
            logger.exception("Late update delivery failed for %s", identity.code)
