"""Tests for safety score arithmetic."""

import pytest

from buurtinfo.engine.safety import (
    per_thousand_residents,
    period_label,
    round_half_up,
    score_from_historical,
    score_from_monthly,
    score_from_unsafe,
)
from buurtinfo.models.neighbourhood import TimestampedValue


class TestScoreFromUnsafe:
    @pytest.mark.parametrize("x", [-1e12, -100.5, -0.4, 0, 0.49, 37.5, 99.5, 100, 150.2, 1e12, 1e300])
    def test_always_within_bounds(self, x):
        assert 0 <= score_from_unsafe(x) <= 100

    def test_clamps(self):
        assert score_from_unsafe(-20) == 100
        assert score_from_unsafe(250) == 0

    def test_rounds_half_up(self):
        assert round_half_up(2.5) == 3
        assert round_half_up(3.5) == 4
        assert score_from_unsafe(50.5) == 49


class TestMonthlyScore:
    def test_per_thousand_example(self):
        per_thousand = per_thousand_residents(12, 1900)
        assert per_thousand == pytest.approx(6.3158, abs=1e-4)
        assert score_from_monthly(per_thousand, 12) == 37

    def test_raw_total_without_residents(self):
        assert per_thousand_residents(12, None) is None
        assert per_thousand_residents(12, 0) is None
        assert score_from_monthly(None, 12) == 70

    def test_nothing_to_score(self):
        assert score_from_monthly(None, None) is None


class TestHistorical:
    def test_sum_of_indicators(self):
        bag = {
            "GeweldsEnSeksueleMisdrijven_93": TimestampedValue(value=4, year=2018),
            "VernielingMisdrijfTegenOpenbareOrde_94": TimestampedValue(value=6, year=2018),
        }
        score, picks = score_from_historical(bag)
        assert score == TimestampedValue(value=50, year="2018")
        assert picks == ["GeweldsEnSeksueleMisdrijven_93:4@2018", "VernielingMisdrijfTegenOpenbareOrde_94:6@2018"]

    def test_latest_year_per_indicator(self):
        bag = {
            "GeweldsEnSeksueleMisdrijven_90": TimestampedValue(value=10, year=2016),
            "GeweldsEnSeksueleMisdrijven_93": TimestampedValue(value=2, year=2018),
        }
        score, _ = score_from_historical(bag)
        assert score == TimestampedValue(value=90, year="2018")

    def test_ignores_non_numeric(self):
        assert score_from_historical({"GeweldsEnSeksueleMisdrijven_93": TimestampedValue(value="  .", year=2018)}) is None
        assert score_from_historical({}) is None


class TestPeriodLabel:
    def test_monthly_key(self):
        assert period_label("2023MM04") == "2023-04"

    def test_other_shapes(self):
        assert period_label("202304") == "2023-04"
        assert period_label("2023JJ00") == "2023JJ00"
        assert period_label(None) is None
