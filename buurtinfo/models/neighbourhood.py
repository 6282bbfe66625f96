"""Neighbourhood data types shared by the aggregation pipeline."""

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class NeighbourhoodIdentity:
    code: str  # CBS buurtcode, e.g. BU03630000
    name: str | None = None
    municipality_name: str | None = None


@dataclass(frozen=True)
class ResolutionError:
    error: str


@dataclass(frozen=True)
class TimestampedValue:
    value: Any
    year: int | str | None = None  # dataset year, or crime period label

    def to_dict(self) -> dict:
        return {"value": self.value, "year": self.year}

    @classmethod
    def from_dict(cls, data: dict) -> "TimestampedValue":
        return cls(value=data.get("value"), year=data.get("year"))


PropertyBag = dict[str, TimestampedValue]


@dataclass(frozen=True)
class Centroid:
    lat: float
    lon: float


@dataclass(frozen=True)
class AmenityStats:
    count: int = 0
    avg_distance_m: int | None = None


@dataclass(frozen=True)
class MonthlyCrimeTotal:
    period: str  # YYYY-MM
    key: str  # raw period key, e.g. 2023MM04
    total: float


@dataclass
class CrimeTypeTotal:
    key: str
    label: str = ""
    total: float = 0


@dataclass(frozen=True)
class CrimeChartData:
    monthly: list[MonthlyCrimeTotal] = field(default_factory=list)
    by_type: list[CrimeTypeTotal] = field(default_factory=list)
    year: int = 0


def bag_to_dict(bag: PropertyBag) -> dict[str, dict]:
    return {name: tv.to_dict() for name, tv in bag.items()}


def bag_from_dict(data: dict[str, dict]) -> PropertyBag:
    return {name: TimestampedValue.from_dict(raw) for name, raw in data.items()}
