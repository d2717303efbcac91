"""Async client for the OSRM route service."""

import logging
from dataclasses import dataclass, field

import httpx
import orjson

from shuttle_ops.config import settings
from shuttle_ops.core.errors import UpstreamServiceError
from shuttle_ops.core.geo import Point, as_float, round_half_up

logger = logging.getLogger(__name__)


@dataclass
class RouteResult:
    distance_km: float
    duration_min: int
    path: list[list[float]] = field(default_factory=list)  # [[lat, lng], ...]
    is_fallback: bool = False
    error: str | None = None


def default_timeout() -> httpx.Timeout:
    return httpx.Timeout(settings.http_timeout, connect=settings.http_connect_timeout)


def format_coordinates(points: list[Point]) -> str:
    """OSRM wants 'lng,lat;lng,lat'."""
    return ";".join(f"{p.lng:.6f},{p.lat:.6f}" for p in points)


def parse_route_payload(data: object) -> RouteResult:
    """Normalize an OSRM /route response, raising on anything unusable."""
    if not isinstance(data, dict):
        raise UpstreamServiceError("OSRM response is not an object")
    if data.get("code") != "Ok":
        raise UpstreamServiceError(f"OSRM error: {data.get('code')} {data.get('message', '')}".strip())
    routes = data.get("routes")
    if not isinstance(routes, list) or not routes:
        raise UpstreamServiceError("OSRM returned no routes")

    route = routes[0]
    if not isinstance(route, dict):
        raise UpstreamServiceError("OSRM route is not an object")
    distance_m = as_float(route.get("distance"))
    duration_s = as_float(route.get("duration"))
    if distance_m is None or duration_s is None:
        raise UpstreamServiceError("OSRM route lacks distance or duration")

    geometry = route.get("geometry") or {}
    coords = geometry.get("coordinates") if isinstance(geometry, dict) else None
    if not isinstance(coords, list) or len(coords) < 2:
        raise UpstreamServiceError("OSRM route geometry is missing")
    try:
        # [lng, lat] -> [lat, lng]
        path = [[float(c[1]), float(c[0])] for c in coords]
    except (TypeError, ValueError, IndexError) as e:
        raise UpstreamServiceError(f"Malformed OSRM geometry: {e}") from e

    return RouteResult(
        distance_km=round(distance_m / 1000, 3),
        duration_min=round_half_up(duration_s / 60),
        path=path,
    )


class OsrmClient:
    """Fetches driving routes between two points from OSRM."""

    def __init__(
        self,
        base_url: str | None = None,
        profile: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.profile = profile or settings.osrm_profile
        self._client = httpx.AsyncClient(
            base_url=base_url or settings.osrm_base_url,
            timeout=default_timeout(),
            headers={"Accept": "application/json", "User-Agent": settings.http_user_agent},
            follow_redirects=True,
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def fetch_route(self, start: Point, end: Point) -> RouteResult:
        """Single attempt; raises UpstreamServiceError on any failure."""
        path = f"/route/v1/{self.profile}/{format_coordinates([start, end])}"
        params = {"overview": "full", "geometries": "geojson", "steps": "false"}
        try:
            resp = await self._client.get(path, params=params)
            resp.raise_for_status()
            data = orjson.loads(resp.content)
        except httpx.HTTPStatusError as e:
            raise UpstreamServiceError(f"OSRM HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise UpstreamServiceError(f"OSRM request failed: {type(e).__name__}: {e}") from e
        except orjson.JSONDecodeError as e:
            raise UpstreamServiceError(f"OSRM returned invalid JSON: {e}") from e

        return parse_route_payload(data)
