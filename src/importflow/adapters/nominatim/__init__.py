"""Nominatim geocoding adapter."""

from __future__ import annotations

from .client import NominatimGeocoder
from .schema import NominatimPlace, NominatimSearchResponse

__all__ = ["NominatimGeocoder", "NominatimPlace", "NominatimSearchResponse"]
