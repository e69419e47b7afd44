"""Port for resolving addresses to coordinates."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Sequence


class GeocodingError(RuntimeError):
    """Raised when the geocoding provider fails for reasons other than no match."""


@dataclass(frozen=True, slots=True, kw_only=True)
class GeocodeResult:
    latitude: float
    longitude: float
    confidence: float
    formatted_address: str | None = None


@runtime_checkable
class Geocoder(Protocol):
    def geocode(self, address: str) -> GeocodeResult | None:
        """Return the best match for ``address`` or ``None`` when nothing matches."""
        ...

    def geocode_many(self, addresses: Sequence[str]) -> dict[str, GeocodeResult | None]:
        """Look up several addresses in one session so provider rate limits apply across them."""
        ...
