"""Nominatim geocoding client."""

from __future__ import annotations

import asyncio
from logging import getLogger
from typing import TYPE_CHECKING, cast

import httpx
from pydantic import ValidationError

from importflow.adapters.http_resilience import ResilientClient, build_limiter
from importflow.domain.ports.geocoding import GeocodeResult, GeocodingError

from .schema import NominatimSearchResponse

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from aiolimiter import AsyncLimiter

    from importflow.config.geocoding import GeocodingConfig
    from importflow.config.http_resilience import ResilienceConfig

    ClientFactory = Callable[[ResilienceConfig, AsyncLimiter | None], ResilientClient]

log = getLogger(__name__)

SEARCH_PATH = "search"


def _default_client(config: ResilienceConfig, limiter: AsyncLimiter | None) -> ResilientClient:
    return ResilientClient(config, limiter=limiter)


class NominatimGeocoder:
    """Resolve free-form addresses through a Nominatim-compatible ``/search`` endpoint.

    The geocoder owns one rate limiter for its lifetime. Each call opens a
    client for the addresses it was given and every request waits on that
    limiter, so the provider's request rate holds across batches.
    """

    def __init__(
        self,
        *,
        config: GeocodingConfig,
        client_factory: ClientFactory | None = None,
    ) -> None:
        self._config = config
        self._resilience = config.resilience
        self._client_factory = client_factory or _default_client
        self._limiter = build_limiter(config.resilience.ratelimit)

    def geocode(self, address: str) -> GeocodeResult | None:
        return self.geocode_many([address])[address]

    def geocode_many(self, addresses: Sequence[str]) -> dict[str, GeocodeResult | None]:
        unique = list(dict.fromkeys(addresses))
        if not unique:
            return {}
        return asyncio.run(self._geocode_all(unique))

    async def _geocode_all(self, addresses: list[str]) -> dict[str, GeocodeResult | None]:
        if self._resilience.base_url is None:
            raise GeocodingError("Missing geocoding base_url in resilience configuration")

        async with self._client_factory(self._resilience, self._limiter) as client:
            return {address: await self._search(client, address) for address in addresses}

    async def _search(self, client: ResilientClient, address: str) -> GeocodeResult | None:
        params = {"q": address, "format": "jsonv2", "limit": "1", "addressdetails": "0"}
        try:
            response = await client.get(SEARCH_PATH, params=params)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            raise GeocodingError(f"Geocoding request failed with status {status}") from exc
        except httpx.HTTPError as exc:
            raise GeocodingError(f"Geocoding connection error: {exc}") from exc

        try:
            places = NominatimSearchResponse.model_validate(response.json()).root
        except (ValueError, ValidationError) as exc:
            raise GeocodingError("Unexpected geocoding response payload") from exc

        if not places:
            log.debug("No geocoding match for %r", address)
            return None
        best = places[0]
        return GeocodeResult(
            latitude=best.lat,
            longitude=best.lon,
            confidence=best.confidence,
            formatted_address=best.display_name,
        )


if TYPE_CHECKING:
    from importflow.domain.ports.geocoding import Geocoder

    _geocoder_check: Geocoder = NominatimGeocoder(config=cast("GeocodingConfig", object()))
