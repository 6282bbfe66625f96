"""Neighbourhood safety score (0-100, higher is safer).

Monthly scoring maps registered crimes for the latest month onto the scale:
  per 1000 residents:  score = 100 - clamp(round(per_thousand * 10))
  raw total (no population known):  score = 100 - clamp(round(total * 2.5))

Historical fallback (heuristic, not a published methodology): the two police
indicators carried by the 2016-2018 statistics datasets are summed and
  score = 100 - clamp(round(sum * 5))
"""

import math
import re
from decimal import Decimal, ROUND_HALF_UP

from buurtinfo.models.fields import FieldIndex
from buurtinfo.models.neighbourhood import PropertyBag, TimestampedValue

HISTORICAL_CONCEPTS = ("violent_sexual_crimes", "vandalism_public_order_crimes")


def round_half_up(x: float) -> int:
    return int(Decimal(str(x)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def score_from_unsafe(x: float) -> int:
    """100 - clamp(round(x), 0, 100); always within [0, 100] for finite x."""
    unsafe = round_half_up(max(0.0, min(100.0, x)))
    return 100 - unsafe


def score_from_monthly(per_thousand: float | None, raw_total: float | None) -> int | None:
    if per_thousand is not None and math.isfinite(per_thousand):
        return score_from_unsafe(per_thousand * 10)
    if raw_total is not None and math.isfinite(raw_total):
        return score_from_unsafe(raw_total * 2.5)
    return None


def per_thousand_residents(total: float, residents: float | None) -> float | None:
    if residents is None or residents <= 0:
        return None
    return total / residents * 1000


def score_from_historical(bag: PropertyBag) -> tuple[TimestampedValue, list[str]] | None:
    """Fallback score from historical crime indicators in the statistics bag.

    Returns the score tagged with the first indicator's year, plus a short
    description of the picks for the diagnostic trail.
    """
    index = FieldIndex(bag)
    picks = [hit for hit in (index.concept(c) for c in HISTORICAL_CONCEPTS) if hit is not None]
    if not picks:
        return None
    total = sum(tv.value for _, tv in picks)
    year = picks[0][1].year
    described = [f"{key}:{tv.value}@{tv.year}" for key, tv in picks]
    return TimestampedValue(value=score_from_unsafe(total * 5), year=str(year or "")), described


def period_label(period_key: str | None) -> str | None:
    """``2023MM04`` -> ``2023-04``; unknown shapes are returned unchanged."""
    if not period_key or not isinstance(period_key, str):
        return period_key
    year = period_key[:4]
    m = re.search(r"MM(\d{2})", period_key)
    if m:
        return f"{year}-{m.group(1)}"
    if len(period_key) >= 6 and period_key[4:6].isdigit():
        return f"{year}-{period_key[4:6]}"
    return period_key
