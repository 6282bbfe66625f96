"""Pydantic schemas for API request/response models."""

from pydantic import BaseModel, ConfigDict, Field


# ---- Request schemas ----

class NeighbourhoodLookupRequest(BaseModel):
    zip_code: str = Field(..., description="Dutch postcode, e.g. 1011AB or 1011 ab")
    address_query: str | None = Field(None, description="Street and house number, e.g. 'Damrak 1'")
    debug: bool = False
    selected_properties: list[str] | None = Field(
        None, description="Property names shown as badges/cards (default: configured selection)"
    )


# ---- Response schemas ----

class _FromAttributes(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class PropertyResponse(_FromAttributes):
    name: str
    label: str
    short_label: str
    value: int | float | str | None
    group: str
    color: str
    year: int | str | None = None


class MonthlyCrimeResponse(_FromAttributes):
    period: str
    key: str
    total: float


class CrimeTypeResponse(_FromAttributes):
    key: str
    label: str
    total: float


class CrimeChartResponse(_FromAttributes):
    year: int
    monthly: list[MonthlyCrimeResponse] = []
    by_type: list[CrimeTypeResponse] = []


class NeighbourhoodLookupResponse(_FromAttributes):
    badge_properties: list[PropertyResponse] = []
    table_properties: list[PropertyResponse] = []
    card_properties: list[PropertyResponse] = []
    crime_data: CrimeChartResponse | None = None
    debug_info: list[str] | None = None
    error: str | None = None


class LateUpdateResponse(_FromAttributes):
    card_properties: list[PropertyResponse] = []
    table_properties: list[PropertyResponse] = []
    crime_data: CrimeChartResponse | None = None
    debug_info: list[str] | None = None
