"""Resolve the geographic origin of an axis.

Departure descriptors are typed by hand, so both "lat, lng" and "lng;lat"
show up. The first number is taken as the latitude whenever it can be one.
The axis's first stop is used when the descriptor is unusable.
"""

import logging
import re
from dataclasses import dataclass

from shuttle_ops.core.geo import Point, as_float, to_point

logger = logging.getLogger(__name__)

_SEPARATORS = re.compile(r"[,;\s]+")


@dataclass(frozen=True)
class AxisRef:
    id: int
    name: str
    departure: str | None = None


@dataclass(frozen=True)
class StopRef:
    id: int
    name: str
    lat: float | None
    lon: float | None
    axis_id: int | None = None
    order: int = 0

    @property
    def point(self) -> Point | None:
        return to_point(self.lat, self.lon)


def parse_departure(descriptor: str | None) -> Point | None:
    """Parse a free-text "x, y" descriptor into a point, inferring axis order."""
    if not descriptor:
        return None
    tokens = [t for t in _SEPARATORS.split(descriptor.strip()) if t]
    if len(tokens) < 2:
        return None

    x = as_float(tokens[0])
    y = as_float(tokens[1])
    if x is None or y is None:
        return None
    if x == 0.0 and y == 0.0:
        return None

    if abs(x) <= 90 and abs(y) <= 180:
        return Point(x, y)
    if abs(y) <= 90 and abs(x) <= 180:
        return Point(y, x)
    return None


def first_stop(stops: list[StopRef]) -> StopRef | None:
    """Stop with the smallest order index (catalog order on ties)."""
    if not stops:
        return None
    return min(stops, key=lambda s: s.order)


def resolve_departure(axis: AxisRef | None, stops: list[StopRef]) -> Point | None:
    """Departure point from the descriptor, else from the axis's first stop."""
    if axis is not None:
        parsed = parse_departure(axis.departure)
        if parsed is not None:
            return parsed
        if axis.departure:
            logger.debug("Axis %d: unusable departure descriptor %r", axis.id, axis.departure)

    head = first_stop(stops)
    if head is not None and head.point is not None:
        return head.point
    return None
