"""Route resolution with bounded retries and a straight-line fallback."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Protocol

from shuttle_ops.config import settings
from shuttle_ops.core.errors import UpstreamServiceError
from shuttle_ops.core.geo import Point, haversine_km, round_half_up
from shuttle_ops.core.osrm_client import RouteResult

logger = logging.getLogger(__name__)

# Fallback travel time: 2.5 minutes per km, never under 5 minutes
FALLBACK_MIN_PER_KM = 2.5
FALLBACK_MIN_DURATION = 5


class RouteProvider(Protocol):
    async def fetch_route(self, start: Point, end: Point) -> RouteResult: ...


@dataclass
class RetryPolicy:
    """One initial attempt plus ``max_retries`` retries with linear backoff."""

    max_retries: int = 3
    backoff_step: float = 0.5
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep)

    def delay(self, retry: int) -> float:
        return retry * self.backoff_step

    @classmethod
    def from_settings(cls) -> "RetryPolicy":
        return cls(
            max_retries=settings.routing_max_retries,
            backoff_step=settings.routing_backoff_seconds,
        )


def fallback_route(start: Point, end: Point, error: str | None = None) -> RouteResult:
    """Straight line between the endpoints with an estimated duration."""
    distance_km = round(haversine_km(start, end), 3)
    duration_min = max(FALLBACK_MIN_DURATION, round_half_up(distance_km * FALLBACK_MIN_PER_KM))
    return RouteResult(
        distance_km=distance_km,
        duration_min=duration_min,
        path=[start.as_list(), end.as_list()],
        is_fallback=True,
        error=error,
    )


class RouteResolver:
    """Resolves a start/end pair into a route; always returns a usable result."""

    def __init__(self, provider: RouteProvider, policy: RetryPolicy | None = None) -> None:
        self.provider = provider
        self.policy = policy or RetryPolicy.from_settings()

    async def resolve(self, start: Point, end: Point) -> RouteResult:
        attempts = self.policy.max_retries + 1
        last_error = "no attempt made"
        for attempt in range(1, attempts + 1):
            try:
                return await self.provider.fetch_route(start, end)
            except UpstreamServiceError as e:
                last_error = str(e)
                if attempt < attempts:
                    wait = self.policy.delay(attempt)
                    logger.warning(
                        "Route attempt %d/%d failed (%s), retrying in %.1fs",
                        attempt, attempts, last_error, wait,
                    )
                    await self.policy.sleep(wait)

        logger.error(
            "Routing failed after %d attempts (%s), using straight-line fallback",
            attempts, last_error,
        )
        return fallback_route(start, end, last_error)
