"""Tests for NominatimGeocoder."""

import asyncio

import httpx
import pytest

from shuttle_ops.core.errors import UpstreamServiceError
from shuttle_ops.core.geo import Point
from shuttle_ops.core.geocoder import NominatimGeocoder


def geocode(handler, address="Analakely, Antananarivo"):
    async def run():
        geocoder = NominatimGeocoder(base_url="http://nominatim.test", transport=httpx.MockTransport(handler))
        try:
            return await geocoder.geocode(address)
        finally:
            await geocoder.close()

    return asyncio.run(run())


def test_first_match_returned():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json=[
            {"lat": "-18.905", "lon": "47.525", "display_name": "Analakely"},
            {"lat": "-19.000", "lon": "47.000"},
        ])

    assert geocode(handler) == Point(-18.905, 47.525)
    assert seen[0].url.path == "/search"
    assert seen[0].url.params["q"] == "Analakely, Antananarivo"
    assert seen[0].url.params["format"] == "json"
    assert seen[0].url.params["limit"] == "1"


def test_no_match():
    assert geocode(lambda request: httpx.Response(200, json=[])) is None


def test_match_without_coordinates():
    assert geocode(lambda request: httpx.Response(200, json=[{"lat": "0", "lon": "0"}])) is None


def test_service_error():
    with pytest.raises(UpstreamServiceError):
        geocode(lambda request: httpx.Response(500))


def test_unexpected_payload():
    with pytest.raises(UpstreamServiceError):
        geocode(lambda request: httpx.Response(200, json={"error": "Unable to geocode"}))
