"""CBS "Kerncijfers wijken en buurten" client: multi-year neighbourhood statistics."""

import asyncio
import logging

import httpx

from buurtinfo.config import settings
from buurtinfo.data.http import get_json, odata_rows
from buurtinfo.models.diagnostics import Diagnostics
from buurtinfo.models.neighbourhood import PropertyBag, TimestampedValue

logger = logging.getLogger(__name__)

# One dataset per statistics year; merged in ascending year order
STATS_DATASET_BY_YEAR: dict[int, str] = {
    2015: "83220NED",
    2016: "83487NED",
    2017: "83765NED",
    2018: "84286NED",
    2019: "84583NED",
    2020: "84799NED",
    2021: "85039NED",
}


def tag_year(row: dict, year: int) -> PropertyBag:
    """Drop null fields and tag every remaining field with its dataset year."""
    return {
        name: TimestampedValue(value=value, year=year)
        for name, value in row.items()
        if value is not None
    }


def merge_years(bags_by_year: dict[int, PropertyBag]) -> PropertyBag:
    """Merge per-year bags; a later year overrides an earlier one field by field."""
    merged: PropertyBag = {}
    for year in sorted(bags_by_year):
        merged.update(bags_by_year[year])
    return merged


class CBSStatisticsClient:
    def __init__(
        self,
        client: httpx.AsyncClient,
        base_url: str | None = None,
        datasets: dict[int, str] | None = None,
        timeout: float | None = None,
    ):
        self.client = client
        self.base_url = (base_url or settings.cbs_odata_url).rstrip("/")
        self.datasets = datasets or STATS_DATASET_BY_YEAR
        self.timeout = timeout or settings.request_timeout

    async def fetch_year(self, dataset_id: str, code: str) -> dict | None:
        """First TypedDataSet row for a neighbourhood, or None."""
        url = f"{self.base_url}/{dataset_id}/TypedDataSet"
        params = {"$filter": f"WijkenEnBuurten eq '{code}'"}
        payload = await get_json(self.client, url, params=params, timeout=self.timeout)
        rows = odata_rows(payload)
        return rows[0] if rows else None

    async def _fetch_tagged(self, year: int, code: str, diag: Diagnostics) -> PropertyBag | None:
        dataset_id = self.datasets[year]
        try:
            row = await self.fetch_year(dataset_id, code)
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("CBS statistics request failed (%s, %s, %s): %s", year, dataset_id, code, e)
            diag.add(f"[CBS] {year} ({dataset_id}) error {e}")
            return None
        if row is None:
            logger.warning("CBS statistics: no row for %s in %s (%s)", code, year, dataset_id)
            diag.add(f"[CBS] {year} ({dataset_id}) no row")
            return None
        diag.add(f"[CBS] {year} ({dataset_id}) {len(row)} fields")
        return tag_year(row, year)

    async def fetch_statistics(self, code: str, diag: Diagnostics | None = None) -> PropertyBag:
        """Fetch every statistics year concurrently and merge the results."""
        diag = diag if diag is not None else Diagnostics()
        years = sorted(self.datasets)
        results = await asyncio.gather(
            *(self._fetch_tagged(year, code, diag) for year in years),
            return_exceptions=True,
        )

        bags: dict[int, PropertyBag] = {}
        for year, result in zip(years, results):
            if isinstance(result, Exception):
                logger.warning("CBS statistics year %s failed: %s", year, result)
                diag.add(f"[CBS] {year} failed {result}")
                continue
            if result is not None:
                bags[year] = result
        return merge_years(bags)
