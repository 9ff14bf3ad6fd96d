"""Competitor search: nearby salons around an address, optionally priced.

geocode (cached) -> nearby search (cached) -> distance sort -> top N ->
place details (cached) -> optional batch price scrape -> record search.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, List, Optional, Protocol

from pydantic import BaseModel, Field

from .batch.manager import BatchScrapeManager, assign_identities
from .cache import PlacesCache
from .models import ScrapeResult, ScrapeTarget
from .places import (
    METERS_PER_MILE, Location, PlaceResult, PlacesError, PlacesProvider,
    haversine_distance, miles_to_meters,
)


class AddressNotFoundError(ValueError):
    """The provider could not geocode the search address."""


class Competitor(BaseModel):
    place: PlaceResult
    distance_miles: float
    prices: Optional[ScrapeResult] = None


class CompetitorSearchResult(BaseModel):
    competitors: List[Competitor] = Field(default_factory=list)
    address: str
    center: Location
    radius_miles: float
    count: int


class SearchRecorder(Protocol):
    """Persists searches and per-user API usage."""

    async def save_search(self, user_id: str, result: CompetitorSearchResult) -> None: ...

    async def increment_usage(self, user_id: str, endpoint: str) -> None: ...


class NullSearchRecorder:
    """Recorder that keeps nothing."""

    async def save_search(self, user_id: str, result: CompetitorSearchResult) -> None:
        return None

    async def increment_usage(self, user_id: str, endpoint: str) -> None:
        return None


class CompetitorSearchService:

    def __init__(self,
                 provider: PlacesProvider,
                 cache: PlacesCache,
                 *,
                 batch_manager: Optional[BatchScrapeManager] = None,
                 recorder: Optional[SearchRecorder] = None,
                 endpoint: str = "/competitors/search",
                 logger: Optional[logging.Logger] = None):
        self.provider = provider
        self.cache = cache
        self.batch_manager = batch_manager
        self.recorder = recorder or NullSearchRecorder()
        self.endpoint = endpoint
        self.logger = logger or logging.getLogger(__name__)

    async def search(self,
                     address: str,
                     radius_miles: float,
                     count: int,
                     lat: Optional[float] = None,
                     lng: Optional[float] = None,
                     *,
                     include_prices: bool = False,
                     user_id: Optional[str] = None) -> CompetitorSearchResult:
        if lat is not None and lng is not None:
            center = Location(lat=lat, lng=lng, formatted_address=address)
        else:
            center = await self.geocode(address)

        radius_meters = miles_to_meters(radius_miles)
        places = await self.nearby(center, radius_meters)

        for place in places:
            place.distance_meters = haversine_distance(center.lat, center.lng, place.lat, place.lng)
        places.sort(key=lambda p: p.distance_meters)
        nearest = places[:count]

        detailed = await asyncio.gather(*(self.details(place) for place in nearest))
        competitors = [
            Competitor(place=place, distance_miles=round(place.distance_meters / METERS_PER_MILE, 2))
            for place in detailed
        ]

        if include_prices:
            await self._attach_prices(competitors)

        result = CompetitorSearchResult(
            competitors=competitors,
            address=address,
            center=center,
            radius_miles=radius_miles,
            count=len(competitors),
        )

        if user_id:
            await self.recorder.save_search(user_id, result)
            await self.recorder.increment_usage(user_id, self.endpoint)

        self.logger.info(f"Competitor search for {address!r}: {len(places)} nearby, returning {len(competitors)}")
        return result

    async def geocode(self, address: str) -> Location:
        cached = await self.cache.get_geocoding(address)
        if cached:
            return cached

        location = await self.provider.geocode(address)
        if location is None:
            raise AddressNotFoundError(f"Could not geocode address: {address}")
        await self.cache.set_geocoding(address, location)
        return location

    async def nearby(self, center: Location, radius_meters: int) -> List[PlaceResult]:
        cached = await self.cache.get_places_search(center.lat, center.lng, radius_meters)
        if cached is not None:
            return cached

        places = await self.provider.nearby_search(center.lat, center.lng, radius_meters)
        await self.cache.set_places_search(center.lat, center.lng, radius_meters, places)
        return places

    async def details(self, place: PlaceResult) -> PlaceResult:
        """Place enriched with website/phone; the nearby-search record if details are unavailable."""
        details = await self.cache.get_place_details(place.place_id)
        if details is None:
            try:
                details = await self.provider.place_details(place.place_id)
            except PlacesError as e:
                self.logger.warning(f"Place details unavailable for {place.name}: {e}")
                return place
            if details is None:
                return place
            await self.cache.set_place_details(place.place_id, details)

        return details.model_copy(update={"distance_meters": place.distance_meters})

    async def _attach_prices(self, competitors: List[Competitor]) -> None:
        if self.batch_manager is None:
            self.logger.warning("Price scraping requested but no batch manager is configured")
            return

        targets = [ScrapeTarget(name=c.place.name, url=c.place.website or "") for c in competitors]
        results: Dict[str, ScrapeResult] = await self.batch_manager.batch_scrape(targets)

        for competitor, (key, _) in zip(competitors, assign_identities(targets)):
            competitor.prices = results.get(key)

