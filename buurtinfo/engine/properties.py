"""Turns a merged neighbourhood property bag into displayable rows.

Three views are produced for the caller:
  table  - every property the bag has data for
  badges - the table rows the user selected
  cards  - the selected rows that belong in the table (names excluded)
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any

from buurtinfo.models.fields import FieldIndex
from buurtinfo.models.neighbourhood import PropertyBag

NO_INFO = "No info"
DEFAULT_COLOR = "#0071b3"
NOT_IN_TABLE = "doNotShowInTable"


class ValueFormat(Enum):
    RAW = "raw"
    PERCENTAGE = "percentage"
    RESIDENTS_SHARE = "residents_share"
    INCOME = "income"
    MONEY = "money"
    SCORE = "score"
    COUNT = "count"
    DISTANCE = "distance"
    NON_MIGRANT_SHARE = "non_migrant_share"


class IncomeBand(Enum):
    VERY_LOW = "veryLow"
    LOW = "low"
    AVERAGE = "average"
    HIGH = "high"
    VERY_HIGH = "veryHigh"


INCOME_BAND_COLORS = {
    IncomeBand.VERY_LOW: "#d7191c",
    IncomeBand.LOW: "#fdae61",
    IncomeBand.AVERAGE: "#0071b3",
    IncomeBand.HIGH: "#a6d96a",
    IncomeBand.VERY_HIGH: "#1a9641",
}


@dataclass(frozen=True)
class ViewableProperty:
    name: str
    group: str
    label: str
    api_field: str | None = None  # CBS base field name
    value_format: ValueFormat = ValueFormat.RAW


@dataclass(frozen=True)
class NeighbourhoodProperty:
    name: str
    label: str
    short_label: str
    value: Any
    group: str
    color: str
    year: int | str | None = None


VIEWABLE_PROPERTIES: list[ViewableProperty] = [
    ViewableProperty("neighbourhoodName", NOT_IN_TABLE, "Neighbourhood"),
    # Safety
    ViewableProperty("crimeScore", "safety", "Safety score", value_format=ValueFormat.SCORE),
    # Amenities (OpenStreetMap)
    ViewableProperty("schoolsInNeighbourhood", "amenities", "Schools nearby", value_format=ValueFormat.COUNT),
    ViewableProperty("avgDistanceToSchools", "amenities", "Avg. distance to schools", value_format=ValueFormat.DISTANCE),
    ViewableProperty("gpsInNeighbourhood", "amenities", "GPs nearby", value_format=ValueFormat.COUNT),
    ViewableProperty("avgDistanceToGps", "amenities", "Avg. distance to GPs", value_format=ValueFormat.DISTANCE),
    ViewableProperty("afterSchoolCareInNeighbourhood", "amenities", "After-school care nearby", value_format=ValueFormat.COUNT),
    ViewableProperty("avgDistanceToAfterSchoolCare", "amenities", "Avg. distance to after-school care", value_format=ValueFormat.DISTANCE),
    ViewableProperty("daycareInNeighbourhood", "amenities", "Daycare nearby", value_format=ValueFormat.COUNT),
    ViewableProperty("avgDistanceToDaycare", "amenities", "Avg. distance to daycare", value_format=ValueFormat.DISTANCE),
    ViewableProperty("restaurantsInNeighbourhood", "amenities", "Restaurants nearby", value_format=ValueFormat.COUNT),
    ViewableProperty("avgDistanceToRestaurants", "amenities", "Avg. distance to restaurants", value_format=ValueFormat.DISTANCE),
    ViewableProperty("supermarketsInNeighbourhood", "amenities", "Supermarkets nearby", value_format=ValueFormat.COUNT),
    ViewableProperty("avgDistanceToSupermarkets", "amenities", "Avg. distance to supermarkets", value_format=ValueFormat.DISTANCE),
    ViewableProperty("cafesInNeighbourhood", "amenities", "Cafes nearby", value_format=ValueFormat.COUNT),
    ViewableProperty("avgDistanceToCafes", "amenities", "Avg. distance to cafes", value_format=ValueFormat.DISTANCE),
    ViewableProperty("municipalityName", NOT_IN_TABLE, "Municipality"),
    # Year built
    ViewableProperty("builtBefore2000", "yearBuilt", "Built before 2000", "BouwjaarVoor2000", ValueFormat.PERCENTAGE),
    ViewableProperty("builtAfter2000", "yearBuilt", "Built in or after 2000", "BouwjaarVanaf2000", ValueFormat.PERCENTAGE),
    # Income
    ViewableProperty("meanIncomePerResident", "income", "Mean income per resident", "GemiddeldInkomenPerInwoner", ValueFormat.INCOME),
    ViewableProperty("meanIncomePerIncomeRecipient", "income", "Mean income per income recipient", "GemiddeldInkomenPerInkomensontvanger", ValueFormat.MONEY),
    ViewableProperty("veryHighIncomeHouseholds", "income", "Top 20% income households", "k_20HuishoudensMetHoogsteInkomen", ValueFormat.PERCENTAGE),
    ViewableProperty("lowIncomeHouseholds", "income", "Low income households", "HuishoudensMetEenLaagInkomen", ValueFormat.PERCENTAGE),
    ViewableProperty("veryLowIncomeHouseholds", "income", "Bottom 40% income households", "k_40HuishoudensMetLaagsteInkomen", ValueFormat.PERCENTAGE),
    ViewableProperty("belowSocialMinimumHouseholds", "income", "Households around social minimum", "HuishOnderOfRondSociaalMinimum", ValueFormat.PERCENTAGE),
    # Age
    ViewableProperty("residentsAge0to14Percentage", "residentsAge", "Age 0-14", "k_0Tot15Jaar", ValueFormat.RESIDENTS_SHARE),
    ViewableProperty("residentsAge15to24Percentage", "residentsAge", "Age 15-24", "k_15Tot25Jaar", ValueFormat.RESIDENTS_SHARE),
    ViewableProperty("residentsAge25to44Percentage", "residentsAge", "Age 25-44", "k_25Tot45Jaar", ValueFormat.RESIDENTS_SHARE),
    ViewableProperty("residentsAge45to64Percentage", "residentsAge", "Age 45-64", "k_45Tot65Jaar", ValueFormat.RESIDENTS_SHARE),
    ViewableProperty("residentsAge65AndOlder", "residentsAge", "Age 65+", "k_65JaarOfOuder", ValueFormat.RESIDENTS_SHARE),
    # Marital status
    ViewableProperty("nonMarried", "residentsMaritalStatus", "Unmarried", "Ongehuwd", ValueFormat.RESIDENTS_SHARE),
    ViewableProperty("married", "residentsMaritalStatus", "Married", "Gehuwd", ValueFormat.RESIDENTS_SHARE),
    ViewableProperty("divorced", "residentsMaritalStatus", "Divorced", "Gescheiden", ValueFormat.RESIDENTS_SHARE),
    ViewableProperty("widowed", "residentsMaritalStatus", "Widowed", "Verweduwd", ValueFormat.RESIDENTS_SHARE),
    # Households
    ViewableProperty("singlePersonHouseholds", "householdType", "Single-person households", "Eenpersoonshuishoudens", ValueFormat.RESIDENTS_SHARE),
    ViewableProperty("householdsWithChildren", "householdType", "Households with children", "HuishoudensMetKinderen", ValueFormat.RESIDENTS_SHARE),
    ViewableProperty("householdsWithoutChildren", "householdType", "Households without children", "HuishoudensZonderKinderen", ValueFormat.RESIDENTS_SHARE),
    # Ownership / building type
    ViewableProperty("rentalProperties", "propertyOwnership", "Rental homes", "HuurwoningenTotaal", ValueFormat.PERCENTAGE),
    ViewableProperty("ownedProperties", "propertyOwnership", "Owner-occupied homes", "Koopwoningen", ValueFormat.PERCENTAGE),
    ViewableProperty("singleFamilyResidential", "buildingType", "Single-family homes", "PercentageEengezinswoning", ValueFormat.PERCENTAGE),
    ViewableProperty("multiFamilyResidential", "buildingType", "Multi-family homes", "PercentageMeergezinswoning", ValueFormat.PERCENTAGE),
    # Migration background
    ViewableProperty("westernImmigrants", "immigrationBackground", "Western migration background", "WestersTotaal", ValueFormat.RESIDENTS_SHARE),
    ViewableProperty("nonWesternImmigrants", "immigrationBackground", "Non-western migration background", "NietWestersTotaal", ValueFormat.RESIDENTS_SHARE),
    ViewableProperty("residentsFromMorocco", "immigrationBackground", "Moroccan background", "Marokko", ValueFormat.RESIDENTS_SHARE),
    ViewableProperty("residentsFromAntillesOrAruba", "immigrationBackground", "Antillean or Aruban background", "NederlandseAntillenEnAruba", ValueFormat.RESIDENTS_SHARE),
    ViewableProperty("residentsFromSuriname", "immigrationBackground", "Surinamese background", "Suriname", ValueFormat.RESIDENTS_SHARE),
    ViewableProperty("residentsFromTurkey", "immigrationBackground", "Turkish background", "Turkije", ValueFormat.RESIDENTS_SHARE),
    ViewableProperty("residentsOfOtherNonWesternBackground", "immigrationBackground", "Other non-western background", "OverigNietWesters", ValueFormat.RESIDENTS_SHARE),
    ViewableProperty("nonImmigrants", "immigrationBackground", "No migration background", value_format=ValueFormat.NON_MIGRANT_SHARE),
]


def _number(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return value if math.isfinite(value) else None


def _half_up(x: float) -> int:
    return math.floor(x + 0.5)


def income_band(income: float) -> IncomeBand:
    """Band for a yearly income per resident in euros."""
    if income >= 40_000:
        return IncomeBand.VERY_HIGH
    if income >= 32_000:
        return IncomeBand.HIGH
    if income >= 25_000:
        return IncomeBand.AVERAGE
    if income >= 20_000:
        return IncomeBand.LOW
    return IncomeBand.VERY_LOW


def format_money(amount: float) -> str:
    """``32100`` -> ``€ 32.100`` (Dutch thousands separator)."""
    return "€ " + f"{int(round(amount)):,}".replace(",", ".")


def format_distance(metres: float) -> str:
    if metres >= 1000:
        return f"{metres / 1000:.1f} km"
    return f"{metres:g} m"


def _format_value(prop: ViewableProperty, key: str | None, bag: PropertyBag, index: FieldIndex) -> Any:
    fmt = prop.value_format
    entry = bag.get(key) if key else bag.get(prop.name)
    raw = entry.value if entry else None
    value = _number(raw)

    if fmt == ValueFormat.PERCENTAGE:
        return NO_INFO if value is None else f"{value:g}%"

    if fmt == ValueFormat.RESIDENTS_SHARE:
        residents = index.concept_value("residents")
        if value is None or not residents or residents <= 0:
            return NO_INFO
        return f"{_half_up(value / residents * 100)}%"

    if fmt in (ValueFormat.INCOME, ValueFormat.MONEY):
        # CBS publishes incomes in thousands of euros
        return NO_INFO if value is None else format_money(value * 1000)

    if fmt == ValueFormat.SCORE:
        return NO_INFO if value is None else f"{max(0, min(100, _half_up(value)))}/100"

    if fmt == ValueFormat.COUNT:
        return NO_INFO if value is None else f"{int(value)}"

    if fmt == ValueFormat.DISTANCE:
        return NO_INFO if value is None else format_distance(value)

    if fmt == ValueFormat.NON_MIGRANT_SHARE:
        residents = index.concept_value("residents")
        western = index.concept_value("western_migrants")
        non_western = index.concept_value("non_western_migrants")
        if not residents or residents <= 0 or western is None or non_western is None:
            return NO_INFO
        return f"{_half_up((1 - (western + non_western) / residents) * 100)}%"

    if entry is not None:
        return raw
    return NO_INFO


def _color(prop: ViewableProperty, key: str | None, bag: PropertyBag) -> str:
    if prop.value_format != ValueFormat.INCOME or not key:
        return DEFAULT_COLOR
    value = _number(bag[key].value)
    if value is None:
        return DEFAULT_COLOR
    return INCOME_BAND_COLORS[income_band(value * 1000)]


def build_property(prop: ViewableProperty, bag: PropertyBag, index: FieldIndex | None = None) -> NeighbourhoodProperty:
    index = index or FieldIndex(bag)
    key = index.find_key(prop.api_field)
    entry = bag.get(key) if key else bag.get(prop.name)
    return NeighbourhoodProperty(
        name=prop.name,
        label=prop.label,
        short_label=prop.label,
        value=_format_value(prop, key, bag, index),
        group=prop.group,
        color=_color(prop, key, bag),
        year=entry.year if entry else None,
    )


def table_properties(bag: PropertyBag, properties: list[ViewableProperty] = VIEWABLE_PROPERTIES) -> list[NeighbourhoodProperty]:
    index = FieldIndex(bag)
    not_in_table = [p for p in properties if p.group == NOT_IN_TABLE]
    from_api = [p for p in properties if p.api_field and index.find_key(p.api_field)]
    computed = [
        p for p in properties
        if not p.api_field and p.group != NOT_IN_TABLE
        and p.value_format != ValueFormat.NON_MIGRANT_SHARE
        and p.name in bag
    ]
    derived = [p for p in properties if p.value_format == ValueFormat.NON_MIGRANT_SHARE]
    return [build_property(p, bag, index) for p in not_in_table + from_api + computed + derived]


def build_views(
    bag: PropertyBag, selected: set[str] | list[str]
) -> tuple[list[NeighbourhoodProperty], list[NeighbourhoodProperty], list[NeighbourhoodProperty]]:
    """Return (badge, table, card) property lists for a bag and user selection."""
    selected = set(selected)
    table = table_properties(bag)
    badges = [p for p in table if p.name in selected]
    cards = [p for p in badges if p.group != NOT_IN_TABLE]
    return badges, table, cards


