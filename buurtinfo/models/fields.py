"""CBS field-name aliases.

CBS suffixes every column with a per-dataset ordinal (``AantalInwoners_5``),
so source fields are addressed by their base name. FIELD_ALIASES maps each
canonical concept the pipeline needs to the base names that carry it.
"""

import math
import re

from buurtinfo.models.neighbourhood import PropertyBag, TimestampedValue

_ORDINAL_SUFFIX = re.compile(r"_\d+$")

FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "residents": ("AantalInwoners",),
    "western_migrants": ("WestersTotaal",),
    "non_western_migrants": ("NietWestersTotaal",),
    # Historical police indicators, published in the 2016-2018 datasets
    "violent_sexual_crimes": ("GeweldsEnSeksueleMisdrijven",),
    "vandalism_public_order_crimes": ("VernielingMisdrijfTegenOpenbareOrde",),
}


def base_field_name(field_name: str) -> str:
    """Strip the CBS ordinal suffix: ``AantalInwoners_5`` -> ``AantalInwoners``."""
    return _ORDINAL_SUFFIX.sub("", field_name)


def _year_sort_key(value: TimestampedValue) -> int:
    try:
        return int(value.year)
    except (TypeError, ValueError):
        return 0


class FieldIndex:
    """Index of a property bag by CBS base field name."""

    def __init__(self, bag: PropertyBag):
        self.bag = bag
        self._keys: dict[str, list[str]] = {}
        for name in bag:
            base = base_field_name(name)
            self._keys.setdefault(base, []).append(name)
            if base != name:
                self._keys.setdefault(name, []).append(name)

    def keys_for(self, base: str) -> list[str]:
        return list(self._keys.get(base, []))

    def find_key(self, base: str | None) -> str | None:
        """Key of the most recent entry for a base field, numeric or not."""
        if not base:
            return None
        keys = self._keys.get(base)
        if not keys:
            return None
        return max(keys, key=lambda k: _year_sort_key(self.bag[k]))

    def latest_numeric(self, base: str) -> tuple[str, TimestampedValue] | None:
        matches = [
            (k, self.bag[k]) for k in self._keys.get(base, [])
            if _is_number(self.bag[k].value)
        ]
        if not matches:
            return None
        return max(matches, key=lambda kv: _year_sort_key(kv[1]))

    def concept(self, concept: str) -> tuple[str, TimestampedValue] | None:
        """Resolve a canonical concept through FIELD_ALIASES."""
        for base in FIELD_ALIASES[concept]:
            hit = self.latest_numeric(base)
            if hit is not None:
                return hit
        return None

    def concept_value(self, concept: str) -> float | None:
        hit = self.concept(concept)
        return hit[1].value if hit else None


def _is_number(value) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )
