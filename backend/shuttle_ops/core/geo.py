"""Great-circle distance and coordinate validation."""

import math
from dataclasses import dataclass
from typing import Any

EARTH_RADIUS_KM = 6371.0


@dataclass(frozen=True)
class Point:
    lat: float
    lng: float

    def as_list(self) -> list[float]:
        return [self.lat, self.lng]


def haversine_km(a: Point, b: Point) -> float:
    """Distance in kilometers between two points."""
    dlat = math.radians(b.lat - a.lat)
    dlng = math.radians(b.lng - a.lng)
    h = (math.sin(dlat / 2) ** 2 +
         math.cos(math.radians(a.lat)) * math.cos(math.radians(b.lat)) *
         math.sin(dlng / 2) ** 2)
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def as_float(value: Any) -> float | None:
    """Numeric value or numeric string as float; None for anything else."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(result):
        return None
    return result


def is_valid_coordinate(lat: Any, lng: Any) -> bool:
    """True for an in-range numeric pair that is not the (0, 0) placeholder."""
    return to_point(lat, lng) is not None


def to_point(lat: Any, lng: Any) -> Point | None:
    flat = as_float(lat)
    flng = as_float(lng)
    if flat is None or flng is None:
        return None
    if flat == 0.0 and flng == 0.0:
        return None
    if abs(flat) > 90.0 or abs(flng) > 180.0:
        return None
    return Point(flat, flng)


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero."""
    return int(math.floor(abs(value) + 0.5)) * (1 if value >= 0 else -1)
