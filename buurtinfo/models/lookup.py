"""Request/response types of a neighbourhood lookup."""

from dataclasses import dataclass, field

from buurtinfo.engine.properties import NeighbourhoodProperty
from buurtinfo.models.neighbourhood import CrimeChartData


@dataclass(frozen=True)
class NeighbourhoodRequest:
    zip_code: str
    address_query: str | None = None
    debug: bool = False
    selected_properties: list[str] | None = None  # None -> configured defaults


@dataclass
class NeighbourhoodResponse:
    badge_properties: list[NeighbourhoodProperty] = field(default_factory=list)
    table_properties: list[NeighbourhoodProperty] = field(default_factory=list)
    card_properties: list[NeighbourhoodProperty] = field(default_factory=list)
    crime_data: CrimeChartData | None = None
    debug_info: list[str] | None = None
    error: str | None = None
    late_update_pending: bool = False  # a LateUpdate will follow via the callback


@dataclass(frozen=True)
class LateUpdate:
    """Second delivery once slow branches (amenities, crime charts) finish."""

    card_properties: list[NeighbourhoodProperty]
    crime_data: CrimeChartData | None = None
    table_properties: list[NeighbourhoodProperty] = field(default_factory=list)
    debug_info: list[str] | None = None
