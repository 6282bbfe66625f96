"""Tests for multi-year CBS statistics merging."""

import httpx

from buurtinfo.data.cbs import STATS_DATASET_BY_YEAR, CBSStatisticsClient, merge_years, tag_year
from buurtinfo.models.neighbourhood import TimestampedValue

BASE = "https://cbs.example/odata"


def stats_client(make_client, rows_by_dataset: dict[str, dict | None], failing: set[str] = frozenset()):
    requested = []

    def handler(request):
        dataset = request.url.path.split("/")[2]
        requested.append((dataset, request.url.params.get("$filter")))
        if dataset in failing:
            return httpx.Response(500)
        row = rows_by_dataset.get(dataset)
        return httpx.Response(200, json={"value": [row] if row else []})

    return CBSStatisticsClient(make_client(handler), base_url=BASE), requested


class TestMerge:
    def test_tag_year_drops_nulls(self):
        bag = tag_year({"AantalInwoners_5": 1900, "Koopwoningen_40": None}, 2021)
        assert bag == {"AantalInwoners_5": TimestampedValue(value=1900, year=2021)}

    def test_later_year_overrides(self):
        merged = merge_years({
            2021: {"A": TimestampedValue(3, 2021)},
            2015: {"A": TimestampedValue(1, 2015), "B": TimestampedValue("x", 2015)},
        })
        assert merged == {"A": TimestampedValue(3, 2021), "B": TimestampedValue("x", 2015)}

    def test_datasets_cover_2015_to_2021(self):
        assert sorted(STATS_DATASET_BY_YEAR) == list(range(2015, 2022))


class TestFetchStatistics:
    async def test_latest_year_wins(self, make_client, diag):
        rows = {
            dataset: {"WijkenEnBuurten": "BU03630000", "AantalInwoners_5": 1000 + year}
            for year, dataset in STATS_DATASET_BY_YEAR.items()
        }
        rows[STATS_DATASET_BY_YEAR[2021]]["AantalInwoners_5"] = 1900
        client, requested = stats_client(make_client, rows)

        bag = await client.fetch_statistics("BU03630000", diag)

        assert bag["AantalInwoners_5"] == TimestampedValue(value=1900, year=2021)
        assert len(requested) == 7
        assert all(f == "WijkenEnBuurten eq 'BU03630000'" for _, f in requested)

    async def test_null_never_overrides(self, make_client, diag):
        rows = {
            STATS_DATASET_BY_YEAR[2019]: {"Koopwoningen_40": 55},
            STATS_DATASET_BY_YEAR[2021]: {"Koopwoningen_40": None, "AantalInwoners_5": 1900},
        }
        client, _ = stats_client(make_client, rows)

        bag = await client.fetch_statistics("BU03630000", diag)

        assert bag["Koopwoningen_40"] == TimestampedValue(value=55, year=2019)

    async def test_failed_year_is_skipped(self, make_client, diag):
        rows = {
            STATS_DATASET_BY_YEAR[2020]: {"AantalInwoners_5": 1850},
            STATS_DATASET_BY_YEAR[2021]: {"AantalInwoners_5": 1900},
        }
        client, _ = stats_client(make_client, rows, failing={STATS_DATASET_BY_YEAR[2021]})

        bag = await client.fetch_statistics("BU03630000", diag)

        assert bag["AantalInwoners_5"] == TimestampedValue(value=1850, year=2020)
        assert any("2021" in line and "error" in line for line in diag.lines)

    async def test_no_rows_anywhere(self, make_client, diag):
        client, _ = stats_client(make_client, {})
        assert await client.fetch_statistics("BU00000000", diag) == {}
