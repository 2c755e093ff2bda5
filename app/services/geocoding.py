"""
Geocoding client.

Resolves free-text pickup addresses to coordinates (and coordinates back to
an address) through the Google Geocoding API. Any failure degrades to
"coordinates unknown": callers receive None and carry on creating the entity.
"""

import httpx
from sqlmodel import SQLModel

from app.core.config import get_settings
from app.utils.logger import logger


class GeocodeResult(SQLModel):
    latitude: float
    longitude: float
    formatted_address: str


class GeocodingClient:
    """
    Thin async wrapper around the geocoding HTTP endpoint.

    Attributes:
        url (str): Geocoding endpoint.
        api_key (str | None): API key; lookups are skipped when missing.
        timeout (float): Network timeout in seconds for each request.
    """

    def __init__(self):
        settings = get_settings()
        self.url = settings.GEOCODING_URL
        self.api_key = (
            settings.GOOGLE_MAPS_API_KEY.get_secret_value()
            if settings.GOOGLE_MAPS_API_KEY
            else None
        )
        self.timeout = settings.GEOCODING_TIMEOUT_SECONDS

    async def _lookup(self, params: dict[str, str]) -> GeocodeResult | None:
        if not self.api_key:
            logger.debug("Geocoding API key missing in configuration. Skipping lookup.")
            return None

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(
                    self.url, params={**params, "key": self.api_key}
                )
                response.raise_for_status()
                payload = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"Geocoding API returned error {e.response.status_code}")
            return None
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Geocoding request failed: {e}")
            return None

        results = payload.get("results") or []
        if payload.get("status") != "OK" or not results:
            logger.info(f"No geocoding result (status={payload.get('status')})")
            return None

        first = results[0]
        location = first.get("geometry", {}).get("location", {})
        if "lat" not in location or "lng" not in location:
            return None
        return GeocodeResult(
            latitude=location["lat"],
            longitude=location["lng"],
            formatted_address=first.get("formatted_address", ""),
        )

    async def geocode(self, address: str) -> GeocodeResult | None:
        """
        Resolve a free-text address.

        Args:
            address (str): Address as typed by the user.

        Returns:
            GeocodeResult | None: Coordinates and normalized address, or None when unknown.
        """
        if not address or not address.strip():
            return None
        return await self._lookup({"address": address.strip()})

    async def reverse_geocode(
        self, latitude: float, longitude: float
    ) -> GeocodeResult | None:
        return await self._lookup({"latlng": f"{latitude},{longitude}"})


async def geocode_address(address: str) -> GeocodeResult | None:
    return await GeocodingClient().geocode(address)


async def reverse_geocode(latitude: float, longitude: float) -> GeocodeResult | None:
    return await GeocodingClient().reverse_geocode(latitude, longitude)
