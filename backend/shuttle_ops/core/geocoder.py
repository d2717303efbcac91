"""Address lookup against a Nominatim instance."""

import logging

import httpx
import orjson

from shuttle_ops.config import settings
from shuttle_ops.core.errors import UpstreamServiceError
from shuttle_ops.core.geo import Point, to_point
from shuttle_ops.core.osrm_client import default_timeout

logger = logging.getLogger(__name__)


class NominatimGeocoder:
    """Free-text address -> first matching point. Never retried."""

    def __init__(
        self,
        base_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=base_url or settings.nominatim_url,
            timeout=default_timeout(),
            headers={
                "Accept": "application/json",
                "Accept-Language": settings.geocoder_language,
                "User-Agent": settings.http_user_agent,
            },
            follow_redirects=True,
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def geocode(self, address: str) -> Point | None:
        """Return the first match, None when nothing matches.

        Raises UpstreamServiceError when the service cannot be reached or
        answers with something other than a JSON list.
        """
        params = {"q": address, "format": "json", "limit": 1}
        try:
            resp = await self._client.get("/search", params=params)
            resp.raise_for_status()
            data = orjson.loads(resp.content)
        except httpx.HTTPError as e:
            raise UpstreamServiceError(f"Geocoding request failed: {e}") from e
        except orjson.JSONDecodeError as e:
            raise UpstreamServiceError(f"Geocoder returned invalid JSON: {e}") from e

        if not isinstance(data, list):
            raise UpstreamServiceError("Geocoder response is not a list")
        if not data or not isinstance(data[0], dict):
            logger.info("No geocoding match for %r", address)
            return None
        point = to_point(data[0].get("lat"), data[0].get("lon"))
        if point is None:
            logger.info("Geocoding match for %r has no usable coordinates", address)
        return point
