"""Tests for the safety score and crime chart data."""

import re
from datetime import date

import httpx

from buurtinfo.data.police import (
    CRIME_TYPE_TITLES_KEY,
    PoliceCrimeClient,
    crime_type_label,
    total_from_rows,
)
from buurtinfo.models.neighbourhood import CrimeTypeTotal, MonthlyCrimeTotal, TimestampedValue

BASE = "https://police.example/odata"
TODAY = date(2025, 6, 15)
COUNT = "GeregistreerdeMisdrijven_1"


class FakeDataset:
    """Routes the 47022NED OData endpoints onto in-memory tables."""

    def __init__(self, periods=None, totals=None, rows=None, titles=None, fail_data=False):
        self.periods = periods or {}  # year -> [keys]
        self.totals = totals or {}  # (period, category) -> count
        self.rows = rows or {}  # period -> [rows]
        self.titles = titles or {}
        self.fail_data = fail_data
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        flt = request.url.params.get("$filter", "")
        if path.endswith("/Perioden"):
            year = int(re.search(r"'(\d{4})'", flt).group(1))
            return httpx.Response(200, json={"value": [{"Key": k} for k in self.periods.get(year, [])]})
        if path.endswith("/SoortMisdrijf"):
            return httpx.Response(200, json={"value": [{"Key": k, "Title": t} for k, t in self.titles.items()]})
        if self.fail_data:
            return httpx.Response(500)
        period = re.search(r"Perioden eq '([^']+)'", flt).group(1)
        category = re.search(r"SoortMisdrijf eq '([^']+)'", flt)
        if category:
            n = self.totals.get((period, category.group(1)))
            return httpx.Response(200, json={"value": [{COUNT: n}] if n is not None else []})
        return httpx.Response(200, json={"value": self.rows.get(period, [])})

    def count(self, suffix: str) -> int:
        return sum(1 for r in self.requests if r.url.path.endswith(suffix))


def police_client(make_client, cache, dataset: FakeDataset) -> PoliceCrimeClient:
    return PoliceCrimeClient(make_client(dataset), cache, base_url=BASE, dataset_id="47022NED", today=lambda: TODAY)


STATISTICS = {"AantalInwoners_5": TimestampedValue(value=1900, year=2021)}


class TestRows:
    def test_explicit_total_row(self):
        rows = [{"SoortMisdrijf": "1.1.1 ", COUNT: 5}, {"SoortMisdrijf": "0.0.0 ", COUNT: 12}]
        assert total_from_rows(rows) == 12

    def test_sum_without_total_row(self):
        rows = [{"SoortMisdrijf": "1.1.1", COUNT: 5}, {"SoortMisdrijf": "2.2.1", COUNT: None}, {"SoortMisdrijf": "3.1.1", COUNT: 2}]
        assert total_from_rows(rows) == 7

    def test_label_strips_numbering(self):
        assert crime_type_label("1.1.1", {"1.1.1": "1.1.1 Diefstal/inbraak woning"}) == "Diefstal/inbraak woning"
        assert crime_type_label("9.9.9", {}) == "9.9.9"
        assert crime_type_label("1.1.1", {"1.1.1": "1.1.1 "}) == "1.1.1"
        assert crime_type_label("1.2.3", {"1.1.1": "1.1.1 Diefstal"}) == "1.2.3"


class TestSafetyScore:
    async def test_latest_period_searches_back(self, make_client, cache, diag):
        dataset = FakeDataset(periods={2024: ["2024JJ00", "2024MM11", "2024MM12"]})
        assert await police_client(make_client, cache, dataset).latest_period_key(diag) == "2024MM12"

    async def test_score_per_thousand_residents(self, make_client, cache, diag):
        dataset = FakeDataset(
            periods={2025: ["2025MM03", "2025MM04"]},
            totals={("2025MM04", "0.0.0"): 12},
        )
        score = await police_client(make_client, cache, dataset).compute_safety_score("BU03630000", STATISTICS, diag)
        # 12 / 1900 * 1000 = 6.32 per thousand -> unsafe 63
        assert score == TimestampedValue(value=37, year="2025-04")

    async def test_total_category_codes_tried_in_order(self, make_client, cache, diag):
        dataset = FakeDataset(periods={2025: ["2025MM04"]}, totals={("2025MM04", "00"): 8})
        client = police_client(make_client, cache, dataset)

        assert await client.total_for_period("BU1", "2025MM04", diag) == 8
        categories = [
            re.search(r"SoortMisdrijf eq '([^']+)'", r.url.params["$filter"]).group(1)
            for r in dataset.requests
        ]
        assert categories == ["0.0.0", "0", "00"]

    async def test_sum_fallback_uses_raw_total_without_residents(self, make_client, cache, diag):
        dataset = FakeDataset(
            periods={2025: ["2025MM04"]},
            rows={"2025MM04": [
                {"SoortMisdrijf": "1.1.1", "SoortMisdrijfOmschrijving": "Diefstal", COUNT: 5},
                {"SoortMisdrijf": "2.2.1", "SoortMisdrijfOmschrijving": "Vernieling", COUNT: 7},
                {"SoortMisdrijf": "1.0.0", "SoortMisdrijfOmschrijving": "Totaal vermogensmisdrijven", COUNT: 40},
            ]},
        )
        score = await police_client(make_client, cache, dataset).compute_safety_score("BU1", {}, diag)
        # 12 crimes * 2.5 = 30
        assert score == TimestampedValue(value=70, year="2025-04")

    async def test_historical_fallback_without_periods(self, make_client, cache, diag):
        statistics = {
            "GeweldsEnSeksueleMisdrijven_93": TimestampedValue(value=3.1, year=2018),
            "VernielingMisdrijfTegenOpenbareOrde_94": TimestampedValue(value=4.2, year=2018),
        }
        score = await police_client(make_client, cache, FakeDataset()).compute_safety_score("BU1", statistics, diag)
        # (3.1 + 4.2) * 5 = 36.5 -> 37 unsafe
        assert score == TimestampedValue(value=63, year="2018")
        assert any("hist" in line for line in diag.lines)

    async def test_historical_fallback_when_total_unavailable(self, make_client, cache, diag):
        dataset = FakeDataset(periods={2025: ["2025MM04"]}, fail_data=True)
        statistics = {"GeweldsEnSeksueleMisdrijven_93": TimestampedValue(value=2, year=2017)}
        score = await police_client(make_client, cache, dataset).compute_safety_score("BU1", statistics, diag)
        assert score == TimestampedValue(value=90, year="2017")

    async def test_no_data_at_all(self, make_client, cache, diag):
        assert await police_client(make_client, cache, FakeDataset()).compute_safety_score("BU1", {}, diag) is None


class TestCrimeCharts:
    def dataset(self) -> FakeDataset:
        return FakeDataset(
            periods={2024: ["2024MM02", "2024MM01", "2024JJ00"]},
            rows={
                "2024MM01": [
                    {"SoortMisdrijf": "0.0.0 ", COUNT: 10},
                    {"SoortMisdrijf": "1.1.1 ", COUNT: 6},
                    {"SoortMisdrijf": "2.2.1 ", COUNT: 4},
                ],
                "2024MM02": [
                    {"SoortMisdrijf": "1.1.1 ", COUNT: 3},
                    {"SoortMisdrijf": "2.2.1 ", COUNT: 7},
                ],
            },
            titles={
                "1.1.1 ": "1.1.1 Diefstal/inbraak woning",
                "2.2.1 ": "2.2.1 Vernieling cq. zaakbeschadiging",
            },
        )

    async def test_charts_for_last_completed_year(self, make_client, cache, diag):
        charts = await police_client(make_client, cache, self.dataset()).fetch_crime_charts("BU1", diag)

        assert charts.year == 2024
        assert charts.monthly == [
            MonthlyCrimeTotal(period="2024-01", key="2024MM01", total=10),
            MonthlyCrimeTotal(period="2024-02", key="2024MM02", total=10),
        ]
        assert charts.by_type == [
            CrimeTypeTotal(key="2.2.1", label="Vernieling cq. zaakbeschadiging", total=11),
            CrimeTypeTotal(key="1.1.1", label="Diefstal/inbraak woning", total=9),
        ]

    async def test_type_titles_are_cached(self, make_client, cache, diag):
        dataset = self.dataset()
        client = police_client(make_client, cache, dataset)

        await client.fetch_crime_charts("BU1", diag)
        await client.fetch_crime_charts("BU2", diag)

        assert dataset.count("/SoortMisdrijf") == 1
        assert "1.1.1" in await cache.get(CRIME_TYPE_TITLES_KEY, 1)

    async def test_no_periods(self, make_client, cache, diag):
        assert await police_client(make_client, cache, FakeDataset()).fetch_crime_charts("BU1", diag) is None
