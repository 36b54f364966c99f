"""Tests for the registry and valuation API client.

All HTTP traffic goes through httpx.MockTransport; no request leaves the
process. Every failure mode must come back as a failed LookupResult.
"""

import asyncio
from typing import Any, Callable

import httpx
import pytest

from config.settings import GlobalConfig
from src.validator import VehicleInfo
from src.valuation import ValuationClient


class TestRegistryLookup:
    """Test suite for lookup_vehicle."""

    @pytest.mark.asyncio
    async def test_registry_lookup_parses_vehicle(
        self,
        mock_config: GlobalConfig,
        valuation_handler_factory: Callable,
        sample_vehicle: dict[str, Any],
    ) -> None:
        handler = valuation_handler_factory(vehicles={"ABC123": sample_vehicle})

        async with ValuationClient.create(mock_config, httpx.MockTransport(handler)) as client:
            result = await client.lookup_vehicle("ABC123")

        assert result.ok
        assert result.stage == "registry"
        assert result.value.model_id == "31337"
        assert result.value.distance == "4500"
        assert result.value.model_year == "2015"
        assert result.value.registration_date == "2014-11-20"

    @pytest.mark.asyncio
    async def test_registry_request_shape(
        self,
        mock_config: GlobalConfig,
        valuation_handler_factory: Callable,
        sample_vehicle: dict[str, Any],
    ) -> None:
        handler = valuation_handler_factory(vehicles={"ABC123": sample_vehicle})

        async with ValuationClient.create(mock_config, httpx.MockTransport(handler)) as client:
            await client.lookup_vehicle("ABC123")

        request = handler.requests[0]
        assert request.method == "GET"
        assert str(request.url).startswith("https://valuation.example.com/api/?")
        assert request.url.params["bpapi_action"] == "get_vehicle_registry_se"
        assert request.url.params["regnr"] == "ABC123"
        assert request.headers["User-Agent"] == "Test"

    @pytest.mark.asyncio
    async def test_registry_timeout_is_a_failed_result(
        self,
        mock_config: GlobalConfig,
        valuation_handler_factory: Callable,
    ) -> None:
        handler = valuation_handler_factory(registry_error=httpx.ReadTimeout("timed out"))

        async with ValuationClient.create(mock_config, httpx.MockTransport(handler)) as client:
            result = await client.lookup_vehicle("ABC123")

        assert not result.ok
        assert result.value is None
        assert "timed out after 2.0s" in result.error

    @pytest.mark.asyncio
    async def test_slow_response_is_bounded_by_total_timeout(
        self,
        mock_config: GlobalConfig,
        valuation_handler_factory: Callable,
        sample_vehicle: dict[str, Any],
    ) -> None:
        """A call that never finishes is cut off after the configured total duration."""
        config = mock_config.model_copy(update={"valuation_timeout_sec": 0.05})
        inner = valuation_handler_factory(vehicles={"ABC123": sample_vehicle})

        async def stalled(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(5)
            return inner(request)

        async with ValuationClient.create(config, httpx.MockTransport(stalled)) as client:
            result = await asyncio.wait_for(client.lookup_vehicle("ABC123"), timeout=2)

        assert not result.ok
        assert "timed out after 0.05s" in result.error

    @pytest.mark.asyncio
    async def test_registry_connection_error_is_a_failed_result(
        self,
        mock_config: GlobalConfig,
        valuation_handler_factory: Callable,
    ) -> None:
        handler = valuation_handler_factory(registry_error=httpx.ConnectError("refused"))

        async with ValuationClient.create(mock_config, httpx.MockTransport(handler)) as client:
            result = await client.lookup_vehicle("ABC123")

        assert not result.ok
        assert "ConnectError" in result.error

    @pytest.mark.asyncio
    async def test_registry_non_2xx_is_a_failed_result(
        self,
        mock_config: GlobalConfig,
        valuation_handler_factory: Callable,
    ) -> None:
        handler = valuation_handler_factory(vehicles={})

        async with ValuationClient.create(mock_config, httpx.MockTransport(handler)) as client:
            result = await client.lookup_vehicle("ZZZ999")

        assert not result.ok
        assert result.error == "HTTP 404"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "body",
        [
            b"<html>maintenance</html>",
            b'{"vehicle": null}',
            b'{"vehicle": {"model_id": "1"}}',
            b'{"unexpected": true}',
        ],
    )
    async def test_registry_malformed_payload_is_a_failed_result(
        self,
        mock_config: GlobalConfig,
        body: bytes,
    ) -> None:
        transport = httpx.MockTransport(lambda request: httpx.Response(200, content=body))

        async with ValuationClient.create(mock_config, transport) as client:
            result = await client.lookup_vehicle("ABC123")

        assert not result.ok
        assert result.value is None


class TestPriceLookup:
    """Test suite for lookup_price."""

    @pytest.mark.asyncio
    async def test_price_lookup_sends_registry_metadata(
        self,
        mock_config: GlobalConfig,
        valuation_handler_factory: Callable,
        sample_vehicle: dict[str, Any],
    ) -> None:
        handler = valuation_handler_factory(prices={"ABC123": "201500"})
        vehicle = VehicleInfo(**sample_vehicle)

        async with ValuationClient.create(mock_config, httpx.MockTransport(handler)) as client:
            result = await client.lookup_price("ABC123", vehicle)

        assert result.ok
        assert result.value == "201500"

        params = handler.requests[0].url.params
        assert params["bpapi_action"] == "get_values"
        assert params["model_id"] == "31337"
        assert params["y"] == "2015"
        assert params["distance"] == "4500"
        assert params["value_decrement_start"] == "2014-11-20"
        assert params["regnr"] == "ABC123"

    @pytest.mark.asyncio
    async def test_numeric_price_is_coerced_to_string(
        self,
        mock_config: GlobalConfig,
        valuation_handler_factory: Callable,
        sample_vehicle: dict[str, Any],
    ) -> None:
        handler = valuation_handler_factory(prices={"ABC123": 201500})

        async with ValuationClient.create(mock_config, httpx.MockTransport(handler)) as client:
            result = await client.lookup_price("ABC123", VehicleInfo(**sample_vehicle))

        assert result.value == "201500"

    @pytest.mark.asyncio
    async def test_missing_price_field_is_a_failed_result(
        self,
        mock_config: GlobalConfig,
        valuation_handler_factory: Callable,
        sample_vehicle: dict[str, Any],
    ) -> None:
        handler = valuation_handler_factory(prices={})

        async with ValuationClient.create(mock_config, httpx.MockTransport(handler)) as client:
            result = await client.lookup_price("ABC123", VehicleInfo(**sample_vehicle))

        assert not result.ok
        assert "malformed payload" in result.error

    @pytest.mark.asyncio
    async def test_server_error_is_a_failed_result(
        self,
        mock_config: GlobalConfig,
        valuation_handler_factory: Callable,
        sample_vehicle: dict[str, Any],
    ) -> None:
        handler = valuation_handler_factory(prices={"ABC123": "1"}, valuation_status=503)

        async with ValuationClient.create(mock_config, httpx.MockTransport(handler)) as client:
            result = await client.lookup_price("ABC123", VehicleInfo(**sample_vehicle))

        assert not result.ok
        assert result.stage == "valuation"
        assert result.error == "HTTP 503"
