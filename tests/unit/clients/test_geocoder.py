"""Unit tests for the OpenCage client."""

import httpx
import pytest

from astro_cache.clients.geocoder import GeocodingError, OpenCageGeocoder
from astro_cache.utils.config import GeocoderConfig, ResilienceConfig

FAST = ResilienceConfig(failure_threshold=2, reset_timeout_seconds=60, retry_max_attempts=2, retry_backoff_ms=[1])


def make_geocoder(handler, api_key="geo-key", resilience=FAST):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return OpenCageGeocoder(GeocoderConfig(api_key=api_key), resilience, client=client)


@pytest.mark.asyncio
class TestOpenCageGeocoder:
    """Test search and error mapping."""

    async def test_search_returns_results(self):
        """Query parameters are forwarded and results returned."""
        seen = []

        def handler(request):
            seen.append(request.url.params)
            return httpx.Response(200, json={"results": [{"formatted": "Paris, France"}]})

        geocoder = make_geocoder(handler)

        results = await geocoder.search("Paris")

        assert results == [{"formatted": "Paris, France"}]
        assert seen[0]["q"] == "Paris"
        assert seen[0]["key"] == "geo-key"
        assert seen[0]["limit"] == "5"
        assert seen[0]["annotations"] == "1"

    async def test_not_configured(self):
        geocoder = make_geocoder(lambda request: httpx.Response(200, json={}), api_key=None)

        assert geocoder.configured is False
        with pytest.raises(GeocodingError) as exc_info:
            await geocoder.search("Paris")
        assert exc_info.value.status_code == 500

    async def test_non_200_maps_to_502(self):
        geocoder = make_geocoder(lambda request: httpx.Response(403, json={"status": {"code": 403}}))

        with pytest.raises(GeocodingError) as exc_info:
            await geocoder.search("Paris")

        assert exc_info.value.status_code == 502
        assert "403" in exc_info.value.details

    async def test_transport_errors_are_retried(self):
        """Connection failures are retried before giving up."""
        attempts = []

        def handler(request):
            attempts.append(request)
            if len(attempts) == 1:
                raise httpx.ConnectError("refused", request=request)
            return httpx.Response(200, json={"results": []})

        geocoder = make_geocoder(handler)

        assert await geocoder.search("Nowhere") == []
        assert len(attempts) == 2

    async def test_circuit_opens_after_failures(self):
        """Repeated failures short-circuit to 503."""

        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        geocoder = make_geocoder(handler)
        for _ in range(2):
            with pytest.raises(GeocodingError) as exc_info:
                await geocoder.search("Paris")
            assert exc_info.value.status_code == 502

        with pytest.raises(GeocodingError) as exc_info:
            await geocoder.search("Paris")
        assert exc_info.value.status_code == 503

    async def test_aclose(self):
        geocoder = make_geocoder(lambda request: httpx.Response(200, json={}))

        await geocoder.aclose()
