"""Registry and valuation lookups against the vehicle pricing API.

Two sequential calls are made per plate:
1. Registry lookup by plate, returning model id, distance, year and
   registration date.
2. Valuation lookup using that metadata, returning a dealer price.

Each call has a bounded total duration. Timeouts, transport errors, non-2xx
responses and payloads that fail schema validation are converted into a
failed ``LookupResult``; no exception leaves the public lookup methods.
Calls for different plates share one ``httpx.AsyncClient`` and no other
state, so they can run concurrently.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Generic, Literal, Self, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from config.settings import GlobalConfig, get_config
from src.exceptions import (
    ValuationError,
    ValuationResponseError,
    ValuationTimeoutError,
)
from src.logger import get_logger
from src.validator import RegistryPayload, ValuationPayload, VehicleInfo

log = get_logger(__name__)

T = TypeVar("T")

Stage = Literal["registry", "valuation"]


class LookupResult(BaseModel, Generic[T]):
    """Outcome of one lookup: either a value or an error description.

    Attributes:
        stage: Which lookup produced this result.
        plate: Plate the lookup was made for.
        value: Parsed value on success.
        error: Failure reason on failure.
    """

    stage: Stage
    plate: str
    value: T | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.value is not None


class ValuationClient:
    """Async client for the registry and valuation endpoints.

    Attributes:
        config: GlobalConfig with API URL, timeout and User-Agent.

    Example:
        async with ValuationClient.create() as client:
            vehicle = await client.lookup_vehicle("ABC123")
            if vehicle.ok:
                price = await client.lookup_price("ABC123", vehicle.value)
    """

    REGISTRY_ACTION = "get_vehicle_registry_se"
    VALUATION_ACTION = "get_values"

    def __init__(self, client: httpx.AsyncClient, config: GlobalConfig) -> None:
        """Wrap an existing httpx client.

        Use ``create()`` to get a client configured from GlobalConfig.
        """
        self.config = config
        self._client = client

    @classmethod
    @asynccontextmanager
    async def create(
        cls,
        config: GlobalConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> AsyncGenerator[Self, None]:
        """Open an httpx client for the duration of the crawl.

        Args:
            config: Optional GlobalConfig. Uses singleton if not provided.
            transport: Optional transport override (used by tests).
        """
        if config is None:
            config = get_config()

        async with httpx.AsyncClient(
            timeout=httpx.Timeout(config.valuation_timeout_sec),
            headers={"User-Agent": config.valuation_user_agent},
            transport=transport,
        ) as client:
            yield cls(client, config)

    async def lookup_vehicle(self, plate: str) -> LookupResult[VehicleInfo]:
        """Fetch registry metadata for a plate."""
        params = {"bpapi_action": self.REGISTRY_ACTION, "regnr": plate}

        try:
            body = await self._get_json("registry", plate, params)
            payload = RegistryPayload.model_validate(body)
        except ValidationError as exc:
            return self._failure(
                "registry", plate, f"malformed payload ({exc.error_count()} errors)"
            )
        except ValuationError as exc:
            return self._failure("registry", plate, exc.reason)

        log.debug(
            "Registry lookup succeeded",
            plate=plate,
            model_id=payload.vehicle.model_id,
            model_year=payload.vehicle.model_year,
        )
        return LookupResult[VehicleInfo](stage="registry", plate=plate, value=payload.vehicle)

    async def lookup_price(self, plate: str, vehicle: VehicleInfo) -> LookupResult[str]:
        """Fetch the dealer valuation for a plate using its registry metadata."""
        params = {
            "bpapi_action": self.VALUATION_ACTION,
            "model_id": vehicle.model_id,
            "y": vehicle.model_year,
            "distance": vehicle.distance,
            "value_decrement_start": vehicle.registration_date or "",
            "regnr": plate,
        }

        try:
            body = await self._get_json("valuation", plate, params)
            payload = ValuationPayload.model_validate(body)
        except ValidationError as exc:
            return self._failure(
                "valuation", plate, f"malformed payload ({exc.error_count()} errors)"
            )
        except ValuationError as exc:
            return self._failure("valuation", plate, exc.reason)

        log.info(
            "Valuation found",
            plate=plate,
            estimated_price=payload.valued_dealer_price,
        )
        return LookupResult[str](
            stage="valuation", plate=plate, value=payload.valued_dealer_price
        )

    async def _get_json(self, stage: Stage, plate: str, params: dict[str, str]) -> Any:
        """GET the API endpoint and decode the JSON body.

        Raises:
            ValuationTimeoutError: If the call exceeds the configured timeout.
            ValuationResponseError: On transport errors, non-2xx status or
                a body that is not JSON.
        """
        url = self.config.valuation_api_url

        try:
            # httpx timeouts bound each phase; this bounds the whole call.
            async with asyncio.timeout(self.config.valuation_timeout_sec):
                response = await self._client.get(url, params=params)
            response.raise_for_status()
        except (httpx.TimeoutException, TimeoutError) as exc:
            raise ValuationTimeoutError(
                stage=stage,
                plate=plate,
                timeout_sec=self.config.valuation_timeout_sec,
                url=url,
            ) from exc
        except httpx.HTTPStatusError as exc:
            raise ValuationResponseError(
                stage=stage,
                plate=plate,
                reason=f"HTTP {exc.response.status_code}",
                url=str(exc.request.url),
            ) from exc
        except httpx.HTTPError as exc:
            raise ValuationResponseError(
                stage=stage,
                plate=plate,
                reason=f"{type(exc).__name__}: {exc}",
                url=url,
            ) from exc

        try:
            return response.json()
        except ValueError as exc:
            raise ValuationResponseError(
                stage=stage,
                plate=plate,
                reason="response body is not JSON",
                url=str(response.url),
            ) from exc

    def _failure(self, stage: Stage, plate: str, reason: str) -> LookupResult[Any]:
        log.warning(
            "Valuation API call failed",
            stage=stage,
            plate=plate,
            reason=reason,
            url=self.config.valuation_api_url,
        )
        return LookupResult[Any](stage=stage, plate=plate, error=reason)
