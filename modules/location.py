"""
Shop location lookup.

The setup flow can resolve the operator's free-text location into an
official address and a map link. The lookup is an external collaborator:
its result is the only source of a shop's address and maps_url, and any
failure leaves the manually entered location in place.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional
from urllib.parse import quote_plus, urlencode

import httpx

from core.exceptions import LocationLookupError
from logging_config import get_logger
from models.shop import Shop


logger = get_logger(__name__)

USER_AGENT = "PickIT/1.0 (campus print queue)"
OSM_MAP_URL = "https://www.openstreetmap.org/"
DIRECTIONS_URL = "https://www.google.com/maps/dir/?api=1&destination="


@dataclass(frozen=True)
class LocationResult:
    """One resolved place."""

    address: str
    """Official address as returned by the lookup service."""

    maps_url: str
    """Link to the place on a map."""

    latitude: float
    longitude: float


class LocationResolver:
    """
    Nominatim-compatible geocoding client.

    Usage:
        resolver = LocationResolver("https://nominatim.openstreetmap.org/search")
        result = resolver.resolve("Campus Fast-Print Hub", "Central Library")
    """

    def __init__(
        self,
        base_url: str,
        timeout_seconds: float = 5.0,
        client: Optional[httpx.Client] = None,
    ):
        self._base_url = base_url
        self._timeout = timeout_seconds
        self._client = client

    @property
    def enabled(self) -> bool:
        return bool(self._base_url)

    def resolve(self, name: str, location: str) -> LocationResult:
        """
        Look up ``name, location``.

        Raises:
            LocationLookupError: On any transport, HTTP or parsing failure,
                or when nothing matches
        """
        query = ", ".join(part for part in (name, location) if part)
        if not self.enabled:
            raise LocationLookupError(query, "lookup disabled")
        if not query:
            raise LocationLookupError(query, "nothing to look up")

        params = {"q": query, "format": "jsonv2", "limit": 1}
        try:
            response = self._get(params)
            response.raise_for_status()
            places = response.json()
        except httpx.HTTPError as exc:
            logger.warning(f"Location lookup failed for '{query}': {exc}")
            raise LocationLookupError(query, str(exc)) from exc
        except ValueError as exc:
            raise LocationLookupError(query, "invalid response body") from exc

        if not isinstance(places, list) or not places:
            raise LocationLookupError(query, "no match")

        place = places[0]
        try:
            lat = float(place["lat"])
            lon = float(place["lon"])
            address = place["display_name"]
        except (KeyError, TypeError, ValueError) as exc:
            raise LocationLookupError(query, "incomplete place record") from exc

        maps_url = f"{OSM_MAP_URL}?{urlencode({'mlat': lat, 'mlon': lon})}#map=18/{lat}/{lon}"
        logger.info(f"Resolved '{query}' to '{address}'")
        return LocationResult(address=address, maps_url=maps_url, latitude=lat, longitude=lon)

    def _get(self, params: dict) -> httpx.Response:
        headers = {"User-Agent": USER_AGENT}
        if self._client is not None:
            return self._client.get(self._base_url, params=params, headers=headers)
        with httpx.Client(timeout=self._timeout) as client:
            return client.get(self._base_url, params=params, headers=headers)


def directions_url(shop: Shop) -> Optional[str]:
    """
    Where the customer's "navigate" button points.

    The resolved map link wins; otherwise a directions search for the
    shop's name and location. None when the shop has no location.
    """
    if shop.maps_url:
        return shop.maps_url
    if not shop.location:
        return None
    return DIRECTIONS_URL + quote_plus(f"{shop.name}, {shop.location}")
