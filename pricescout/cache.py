"""Redis-backed TTL cache for places-provider lookups.

Storage failures are logged and treated as a miss (reads) or a no-op
(writes); callers never see a Redis exception.
"""

from __future__ import annotations

import json
import logging
from typing import Any, List, Optional

import redis.asyncio as redis

from .config.production import CacheConfig
from .observability import CACHE_LOOKUPS
from .places import Location, PlaceResult


def geocode_key(address: str) -> str:
    return f"geocode:{address.lower().strip()}"


def places_key(lat: float, lng: float, radius: int) -> str:
    return f"places:{lat:.4f}:{lng:.4f}:{radius}"


def place_details_key(place_id: str) -> str:
    return f"place_details:{place_id}"


class PlacesCache:
    """JSON values in Redis with per-namespace TTLs."""

    def __init__(self,
                 client: Optional[redis.Redis],
                 config: Optional[CacheConfig] = None,
                 logger: Optional[logging.Logger] = None):
        self.client = client
        self.config = config or CacheConfig()
        self.logger = logger or logging.getLogger(__name__)

    @property
    def enabled(self) -> bool:
        return self.client is not None and self.config.enabled

    async def get(self, key: str) -> Optional[Any]:
        """Decoded value for ``key``, or None on miss, expiry or storage error."""
        namespace = key.split(":", 1)[0]
        if not self.enabled:
            return None
        try:
            raw = await self.client.get(key)
        except Exception as e:
            self.logger.error(f"Redis get error for {key}: {e}")
            CACHE_LOOKUPS.labels(namespace, "error").inc()
            return None

        if raw is None:
            CACHE_LOOKUPS.labels(namespace, "miss").inc()
            return None

        try:
            value = json.loads(raw)
        except (TypeError, ValueError) as e:
            self.logger.warning(f"Discarding undecodable cache entry {key}: {e}")
            CACHE_LOOKUPS.labels(namespace, "error").inc()
            return None

        CACHE_LOOKUPS.labels(namespace, "hit").inc()
        return value

    async def set(self, key: str, value: Any, ttl: int) -> None:
        if not self.enabled:
            return
        try:
            await self.client.setex(key, ttl, json.dumps(value))
        except Exception as e:
            self.logger.error(f"Redis set error for {key}: {e}")

    # ------------------------------------------------------------------
    # Geocoding
    # ------------------------------------------------------------------

    async def get_geocoding(self, address: str) -> Optional[Location]:
        cached = await self.get(geocode_key(address))
        return Location.model_validate(cached) if cached else None

    async def set_geocoding(self, address: str, location: Location) -> None:
        await self.set(geocode_key(address), location.model_dump(), self.config.geocoding_ttl_seconds)

    # ------------------------------------------------------------------
    # Nearby search
    # ------------------------------------------------------------------

    async def get_places_search(self, lat: float, lng: float, radius: int) -> Optional[List[PlaceResult]]:
        cached = await self.get(places_key(lat, lng, radius))
        if cached is None:
            return None
        return [PlaceResult.model_validate(item) for item in cached]

    async def set_places_search(self, lat: float, lng: float, radius: int,
                                results: List[PlaceResult]) -> None:
        await self.set(
            places_key(lat, lng, radius),
            [place.model_dump() for place in results],
            self.config.places_search_ttl_seconds,
        )

    # ------------------------------------------------------------------
    # Place details
    # ------------------------------------------------------------------

    async def get_place_details(self, place_id: str) -> Optional[PlaceResult]:
        cached = await self.get(place_details_key(place_id))
        return PlaceResult.model_validate(cached) if cached else None

    async def set_place_details(self, place_id: str, details: PlaceResult) -> None:
        await self.set(place_details_key(place_id), details.model_dump(), self.config.place_details_ttl_seconds)
