"""Politie monthly crime figures (CBS dataset 47022NED) per neighbourhood.

Two products:
  * a safety score for the most recent published month
  * chart data for the last completed calendar year (monthly totals and
    totals per crime type)
"""

import asyncio
import logging
import re
from datetime import date
from typing import Callable

import httpx

from buurtinfo.config import settings
from buurtinfo.data.cache import CRIME_TYPE_TITLES_TTL_MS, TTLCache
from buurtinfo.data.fallback import first_success
from buurtinfo.data.http import get_json, odata_rows
from buurtinfo.engine.safety import (
    per_thousand_residents,
    period_label,
    score_from_historical,
    score_from_monthly,
)
from buurtinfo.models.diagnostics import Diagnostics
from buurtinfo.models.fields import FieldIndex
from buurtinfo.models.neighbourhood import (
    CrimeChartData,
    CrimeTypeTotal,
    MonthlyCrimeTotal,
    PropertyBag,
    TimestampedValue,
)

logger = logging.getLogger(__name__)

TOTAL_CATEGORY_CODES = ("0.0.0", "0", "00", "000")
CRIME_COUNT_FIELD = "GeregistreerdeMisdrijven_1"
CRIME_TYPE_TITLES_KEY = "crimeTypeTitles:v1"
PERIOD_LOOKBACK_YEARS = 4

PERIOD_TIMEOUT = 6.0
DATA_TIMEOUT = 7.0

_MONTHLY_KEY = re.compile(r"MM\d{2}$")
_TYPE_NUMBERING = re.compile(r"^\d+\.\d+\.\d+\s*")


def _is_total_code(code: str) -> bool:
    return code.strip() in TOTAL_CATEGORY_CODES


def _count(row: dict) -> float:
    n = row.get(CRIME_COUNT_FIELD)
    return n if isinstance(n, (int, float)) and not isinstance(n, bool) else 0


def total_from_rows(rows: list[dict]) -> float:
    """Explicit total row if present, else the sum of all category rows."""
    for row in rows:
        if _is_total_code(row.get("SoortMisdrijf") or "") and isinstance(row.get(CRIME_COUNT_FIELD), (int, float)):
            return row[CRIME_COUNT_FIELD]
    return sum(_count(r) for r in rows if not _is_total_code(r.get("SoortMisdrijf") or ""))


def crime_type_label(key: str, titles: dict[str, str]) -> str:
    title = titles.get(key)
    return (_TYPE_NUMBERING.sub("", title).strip() or key) if title else key


class PoliceCrimeClient:
    def __init__(
        self,
        client: httpx.AsyncClient,
        cache: TTLCache,
        base_url: str | None = None,
        dataset_id: str | None = None,
        today: Callable[[], date] = date.today,
    ):
        self.client = client
        self.cache = cache
        base = (base_url or settings.police_odata_url).rstrip("/")
        self.dataset_url = f"{base}/{dataset_id or settings.police_dataset_id}"
        self.today = today

    # ---- OData queries -------------------------------------------------

    async def _period_keys(self, year: int, top: int | None = None, timeout: float = PERIOD_TIMEOUT) -> list[str]:
        params = {
            "$select": "Key",
            "$filter": f"substring(Key,0,4) eq '{year}'",
            "$format": "json",
        }
        if top:
            params["$top"] = str(top)
        payload = await get_json(self.client, f"{self.dataset_url}/Perioden", params=params, timeout=timeout)
        return [r["Key"].strip() for r in odata_rows(payload) if r.get("Key")]

    async def _period_rows(self, code: str, period_key: str, select: str) -> list[dict]:
        params = {
            "$filter": f"WijkenEnBuurten eq '{code}' and Perioden eq '{period_key}'",
            "$select": select,
            "$top": "500",
            "$format": "json",
        }
        payload = await get_json(self.client, f"{self.dataset_url}/TypedDataSet", params=params, timeout=DATA_TIMEOUT)
        return odata_rows(payload)

    async def latest_period_key(self, diag: Diagnostics) -> str | None:
        """Greatest period key of the most recent year that has any."""
        current = self.today().year
        for year in range(current, current - PERIOD_LOOKBACK_YEARS - 1, -1):
            try:
                keys = await self._period_keys(year)
            except (httpx.HTTPError, ValueError) as e:
                diag.add(f"[Crime] period fetch error {year} {e}")
                continue
            if keys:
                return max(keys)
        return None

    async def monthly_period_keys(self, year: int, diag: Diagnostics) -> list[str]:
        try:
            keys = await self._period_keys(year, top=100, timeout=DATA_TIMEOUT)
        except (httpx.HTTPError, ValueError) as e:
            diag.add(f"[Crime] year periods error {year} {e}")
            return []
        monthly = sorted(k for k in keys if _MONTHLY_KEY.search(k))
        if monthly:
            diag.add(f"[Crime] periods for {year}: {monthly[0]}..{monthly[-1]} ({len(monthly)})")
        return monthly

    async def _total_for_category(self, code: str, period_key: str, category: str, diag: Diagnostics) -> float | None:
        params = {
            "$filter": (
                f"WijkenEnBuurten eq '{code}' and SoortMisdrijf eq '{category}' "
                f"and Perioden eq '{period_key}'"
            ),
            "$select": CRIME_COUNT_FIELD,
            "$top": "1",
            "$format": "json",
        }
        try:
            payload = await get_json(
                self.client, f"{self.dataset_url}/TypedDataSet", params=params, timeout=PERIOD_TIMEOUT
            )
        except (httpx.HTTPError, ValueError):
            return None
        rows = odata_rows(payload)
        n = rows[0].get(CRIME_COUNT_FIELD) if rows else None
        if isinstance(n, (int, float)) and not isinstance(n, bool):
            diag.add(f"[Crime] total({category}) {n}")
            return n
        return None

    async def total_for_period(self, code: str, period_key: str, diag: Diagnostics) -> float | None:
        """Registered crimes in a neighbourhood for one period.

        Tries the known total-category codes first, then sums the category rows.
        """
        total = await first_success(
            TOTAL_CATEGORY_CODES,
            lambda category: self._total_for_category(code, period_key, category, diag),
        )
        if total is not None:
            return total
        try:
            rows = await self._period_rows(
                code, period_key, f"SoortMisdrijf,SoortMisdrijfOmschrijving,{CRIME_COUNT_FIELD}"
            )
        except (httpx.HTTPError, ValueError) as e:
            diag.add(f"[Crime] data error sum {e}")
            return None
        total = sum(
            _count(r) for r in rows
            if not _is_total_code(r.get("SoortMisdrijf") or "")
            and not re.search("totaal", r.get("SoortMisdrijfOmschrijving") or "", re.IGNORECASE)
        )
        diag.add(f"[Crime] total(sum) {total}")
        return total

    # ---- Safety score --------------------------------------------------

    async def compute_safety_score(
        self, code: str, statistics: PropertyBag, diag: Diagnostics | None = None
    ) -> TimestampedValue | None:
        """Safety score for the latest month, with a historical fallback.

        Returns None only when neither a crime period nor historical
        indicators are available.
        """
        diag = diag if diag is not None else Diagnostics()
        result: TimestampedValue | None = None
        try:
            latest = await self.latest_period_key(diag)
            diag.add(f"[Crime] latest period {latest or 'unknown'}")
            if latest:
                label = period_label(latest)
                total = await self.total_for_period(code, latest, diag)
                score = None
                if total is not None and total >= 0:
                    residents = FieldIndex(statistics).concept_value("residents")
                    per_thousand = per_thousand_residents(total, residents)
                    score = score_from_monthly(per_thousand, total)
                    diag.add(
                        f"[Crime] crimes={total} residents={residents} "
                        f"per1000={'%.2f' % per_thousand if per_thousand is not None else None} score={score}"
                    )
                result = TimestampedValue(value=score, year=label)
        except Exception as e:
            logger.warning("Crime score failed for %s: %s", code, e)
            diag.add(f"[Crime] error {e}")

        if result is None or result.value is None:
            historical = score_from_historical(statistics)
            if historical is not None:
                result, picks = historical
                diag.add(f"[Crime] hist indicators {', '.join(picks)}")
                diag.add(f"[Crime] fallback historical score {result.value} ({result.year})")
        return result

    # ---- Chart data ----------------------------------------------------

    async def _monthly_total(self, code: str, period_key: str, diag: Diagnostics) -> MonthlyCrimeTotal:
        label = period_label(period_key)
        try:
            rows = await self._period_rows(code, period_key, f"SoortMisdrijf,{CRIME_COUNT_FIELD}")
        except (httpx.HTTPError, ValueError) as e:
            diag.add(f"[Crime] monthly error {period_key} {e}")
            return MonthlyCrimeTotal(period=label, key=period_key, total=0)
        return MonthlyCrimeTotal(period=label, key=period_key, total=total_from_rows(rows))

    async def totals_by_month(self, code: str, period_keys: list[str], diag: Diagnostics) -> list[MonthlyCrimeTotal]:
        """Per-month totals, fetched in parallel, in chronological key order."""
        results = await asyncio.gather(
            *(self._monthly_total(code, k, diag) for k in period_keys),
            return_exceptions=True,
        )
        monthly = []
        for key, result in zip(period_keys, results):
            if isinstance(result, Exception):
                diag.add(f"[Crime] monthly error {key} {result}")
                result = MonthlyCrimeTotal(period=period_label(key), key=key, total=0)
            monthly.append(result)
        return monthly

    async def totals_by_type(self, code: str, period_keys: list[str], diag: Diagnostics) -> list[CrimeTypeTotal]:
        """Per-category totals over all periods, largest first."""
        totals: dict[str, CrimeTypeTotal] = {}
        for key in period_keys:
            try:
                rows = await self._period_rows(code, key, f"SoortMisdrijf,{CRIME_COUNT_FIELD}")
            except (httpx.HTTPError, ValueError) as e:
                diag.add(f"[Crime] byType error {key} {e}")
                continue
            for row in rows:
                category = (row.get("SoortMisdrijf") or "").strip()
                if not category or _is_total_code(category):
                    continue
                entry = totals.setdefault(category, CrimeTypeTotal(key=category))
                entry.total += _count(row)

        titles = await self.crime_type_titles(diag)
        for entry in totals.values():
            entry.label = crime_type_label(entry.key, titles)
        return sorted(totals.values(), key=lambda t: t.total, reverse=True)

    async def crime_type_titles(self, diag: Diagnostics) -> dict[str, str]:
        """SoortMisdrijf key -> title dictionary, cached for 30 days."""
        cached = await self.cache.get(CRIME_TYPE_TITLES_KEY, CRIME_TYPE_TITLES_TTL_MS)
        if cached is not None:
            return cached
        params = {"$select": "Key,Title", "$top": "1000", "$format": "json"}
        try:
            payload = await get_json(
                self.client, f"{self.dataset_url}/SoortMisdrijf", params=params, timeout=DATA_TIMEOUT
            )
        except (httpx.HTTPError, ValueError) as e:
            diag.add(f"[Crime] dict error {e}")
            return {}
        titles: dict[str, str] = {}
        for row in odata_rows(payload):
            key = (row.get("Key") or "").strip()
            title = (row.get("Title") or "").strip()
            if key:
                titles[key] = title or key
        await self.cache.set(CRIME_TYPE_TITLES_KEY, titles, CRIME_TYPE_TITLES_TTL_MS)
        return titles

    async def fetch_crime_charts(self, code: str, diag: Diagnostics | None = None) -> CrimeChartData | None:
        """Monthly and per-type crime figures for the last completed calendar year."""
        diag = diag if diag is not None else Diagnostics()
        year = self.today().year - 1
        try:
            keys = await self.monthly_period_keys(year, diag)
            if not keys:
                return None
            monthly = await self.totals_by_month(code, keys, diag)
            by_type = await self.totals_by_type(code, keys, diag)
        except Exception as e:
            logger.warning("Crime charts failed for %s: %s", code, e)
            diag.add(f"[Crime] charts error {e}")
            return None
        return CrimeChartData(monthly=monthly, by_type=by_type, year=year)
