"""Places provider: geocoding, nearby search and place details.

``GooglePlacesClient`` talks to the Google Maps web services over httpx.
Anything else that satisfies ``PlacesProvider`` can be handed to
``CompetitorSearchService`` instead.
"""

from __future__ import annotations

import math
import logging
from typing import Any, Dict, List, Optional, Protocol

import httpx
from pydantic import BaseModel

from .config.production import PlacesConfig
from .reliability.errors import ConfigurationError, EnhancedError, ErrorCategory, ErrorSeverity

EARTH_RADIUS_METERS = 6371000.0
METERS_PER_MILE = 1609.344
# Google rejects nearby searches wider than this
MAX_SEARCH_RADIUS_METERS = 50000

DETAIL_FIELDS = (
    "place_id,name,formatted_address,geometry,website,formatted_phone_number,"
    "rating,user_ratings_total,price_level"
)


class Location(BaseModel):
    lat: float
    lng: float
    formatted_address: Optional[str] = None


class PlaceResult(BaseModel):
    """A business returned by the places provider."""
    place_id: str
    name: str
    address: str = ""
    lat: float
    lng: float
    rating: Optional[float] = None
    user_ratings_total: Optional[int] = None
    price_level: Optional[int] = None
    website: Optional[str] = None
    phone: Optional[str] = None
    distance_meters: Optional[float] = None


class PlacesError(EnhancedError):
    """Provider answered with an error status or could not be reached."""
    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.NETWORK,
            severity=ErrorSeverity.HIGH,
            **kwargs
        )


class PlacesProvider(Protocol):
    async def geocode(self, address: str) -> Optional[Location]: ...

    async def nearby_search(self, lat: float, lng: float, radius_meters: int) -> List[PlaceResult]: ...

    async def place_details(self, place_id: str) -> Optional[PlaceResult]: ...


def haversine_distance(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in meters."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)
    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return 2 * EARTH_RADIUS_METERS * math.asin(math.sqrt(a))


def miles_to_meters(miles: float) -> int:
    return min(int(round(miles * METERS_PER_MILE)), MAX_SEARCH_RADIUS_METERS)


def _place_from_payload(payload: Dict[str, Any]) -> PlaceResult:
    location = payload.get("geometry", {}).get("location", {})
    return PlaceResult(
        place_id=payload["place_id"],
        name=payload.get("name", ""),
        address=payload.get("formatted_address") or payload.get("vicinity") or "",
        lat=location.get("lat", 0.0),
        lng=location.get("lng", 0.0),
        rating=payload.get("rating"),
        user_ratings_total=payload.get("user_ratings_total"),
        price_level=payload.get("price_level"),
        website=payload.get("website"),
        phone=payload.get("formatted_phone_number"),
    )


class GooglePlacesClient:
    """Google Maps Geocoding / Places web-service client."""

    def __init__(self,
                 api_key: str,
                 *,
                 base_url: str = "https://maps.googleapis.com/maps/api",
                 search_query: str = "nail salon",
                 timeout_seconds: float = 10.0,
                 client: Optional[httpx.AsyncClient] = None,
                 logger: Optional[logging.Logger] = None):
        if not api_key:
            raise ConfigurationError("GOOGLE_MAPS_API_KEY is not configured")
        self.api_key = api_key
        self.search_query = search_query
        self.logger = logger or logging.getLogger(__name__)
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout_seconds)

    @classmethod
    def from_config(cls, config: PlacesConfig, logger: Optional[logging.Logger] = None) -> "GooglePlacesClient":
        return cls(
            config.api_key,
            base_url=config.base_url,
            search_query=config.search_query,
            timeout_seconds=config.timeout_seconds,
            logger=logger,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def _get(self, path: str, params: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = await self._client.get(path, params={**params, "key": self.api_key})
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise PlacesError(f"Places request to {path} failed: {e}", cause=e)

        payload = response.json()
        status = payload.get("status", "UNKNOWN_ERROR")
        if status not in ("OK", "ZERO_RESULTS"):
            raise PlacesError(f"Places API {path} returned {status}: {payload.get('error_message', '')}")
        return payload

    async def geocode(self, address: str) -> Optional[Location]:
        payload = await self._get("/geocode/json", {"address": address})
        results = payload.get("results") or []
        if not results:
            self.logger.info(f"No geocoding result for {address!r}")
            return None
        first = results[0]
        location = first["geometry"]["location"]
        return Location(lat=location["lat"], lng=location["lng"],
                        formatted_address=first.get("formatted_address"))

    async def nearby_search(self, lat: float, lng: float, radius_meters: int) -> List[PlaceResult]:
        payload = await self._get("/place/nearbysearch/json", {
            "location": f"{lat},{lng}",
            "radius": radius_meters,
            "keyword": self.search_query,
        })
        return [_place_from_payload(item) for item in payload.get("results") or []]

    async def place_details(self, place_id: str) -> Optional[PlaceResult]:
        payload = await self._get("/place/details/json", {"place_id": place_id, "fields": DETAIL_FIELDS})
        result = payload.get("result")
        return _place_from_payload(result) if result else None
