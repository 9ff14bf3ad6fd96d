"""Redis-backed cache and rate limiter."""
import pytest

from pricescout.cache import PlacesCache, geocode_key, place_details_key, places_key
from pricescout.config import CacheConfig, RateLimitConfig
from pricescout.places import Location, PlaceResult
from pricescout.rate_limit import RateLimiter, SubscriptionTier

from conftest import FailingRedis


class TestPlacesCache:

    def test_key_formats(self):
        assert geocode_key("  123 Main St, Austin TX ") == "geocode:123 main st, austin tx"
        assert places_key(30.267153, -97.7430608, 8047) == "places:30.2672:-97.7431:8047"
        assert place_details_key("ChIJ123") == "place_details:ChIJ123"

    @pytest.mark.asyncio
    async def test_round_trip_and_expiry(self, fake_redis, clock):
        cache = PlacesCache(fake_redis)
        await cache.set("geocode:x", {"lat": 1.5}, ttl=60)

        assert await cache.get("geocode:x") == {"lat": 1.5}
        clock.advance(59)
        assert await cache.get("geocode:x") == {"lat": 1.5}
        clock.advance(1)
        assert await cache.get("geocode:x") is None

    @pytest.mark.asyncio
    async def test_typed_helpers_use_configured_ttls(self, fake_redis):
        cache = PlacesCache(fake_redis, CacheConfig())
        location = Location(lat=30.2672, lng=-97.7431, formatted_address="Austin, TX")
        place = PlaceResult(place_id="p1", name="Lucky Nails", lat=30.27, lng=-97.74,
                            website="https://lucky.example/")

        await cache.set_geocoding("Austin, TX", location)
        await cache.set_places_search(30.2672, -97.7431, 8047, [place])
        await cache.set_place_details("p1", place)

        assert await cache.get_geocoding("  austin, tx") == location
        assert await cache.get_places_search(30.2672, -97.7431, 8047) == [place]
        assert await cache.get_place_details("p1") == place

        ttls = {command[1]: command[2] for command in fake_redis.commands if command[0] == "setex"}
        assert ttls == {
            "geocode:austin, tx": 604800,
            "places:30.2672:-97.7431:8047": 86400,
            "place_details:p1": 43200,
        }

    @pytest.mark.asyncio
    async def test_storage_errors_are_misses(self):
        cache = PlacesCache(FailingRedis())
        await cache.set("geocode:x", {"lat": 1.0}, ttl=60)
        assert await cache.get("geocode:x") is None
        assert await cache.get_places_search(1.0, 2.0, 100) is None

    @pytest.mark.asyncio
    async def test_disabled_cache_never_touches_redis(self, fake_redis):
        cache = PlacesCache(fake_redis, CacheConfig(enabled=False))
        await cache.set("geocode:x", {"lat": 1.0}, ttl=60)
        assert await cache.get("geocode:x") is None
        assert fake_redis.commands == []


class TestRateLimiter:

    @pytest.fixture
    def limiter(self, fake_redis, clock):
        config = RateLimitConfig(tier_limits={"free": 3, "pro": 10, "enterprise": 100})
        return RateLimiter(fake_redis, config, clock=clock)

    @pytest.mark.asyncio
    async def test_allows_exactly_limit_per_window(self, limiter):
        decisions = [await limiter.check_and_consume("user-1") for _ in range(4)]

        assert [d.allowed for d in decisions] == [True, True, True, False]
        assert [d.remaining for d in decisions] == [2, 1, 0, 0]
        assert all(d.limit == 3 for d in decisions)

    @pytest.mark.asyncio
    async def test_first_request_sets_window_expiry(self, limiter, fake_redis, clock):
        first = await limiter.check_and_consume("user-1")
        await limiter.check_and_consume("user-1")

        expires = [c for c in fake_redis.commands if c[0] == "expire"]
        assert len(expires) == 1
        assert expires[0][2] == 3600
        assert first.reset_at == pytest.approx(clock() + 3600)

    @pytest.mark.asyncio
    async def test_next_window_starts_fresh(self, limiter, clock):
        for _ in range(3):
            await limiter.check_and_consume("user-1")
        assert not (await limiter.check_and_consume("user-1")).allowed

        clock.advance(3600)
        assert (await limiter.check_and_consume("user-1")).allowed

    @pytest.mark.asyncio
    async def test_identities_and_tiers_are_independent(self, limiter):
        for _ in range(3):
            await limiter.check_and_consume("user-1")
        other = await limiter.check_and_consume("user-2", SubscriptionTier.PRO)
        assert other.allowed
        assert other.limit == 10
        assert other.remaining == 9

    @pytest.mark.asyncio
    async def test_fails_open_when_redis_is_down(self, clock):
        limiter = RateLimiter(FailingRedis(), RateLimitConfig(), clock=clock)
        result = await limiter.check_and_consume("user-1", SubscriptionTier.FREE)
        assert result.allowed
        assert result.remaining == result.limit == 100
        assert result.reset_at == pytest.approx(clock() + 3600)

    @pytest.mark.asyncio
    async def test_reset_clears_identity_windows(self, limiter, fake_redis):
        for _ in range(3):
            await limiter.check_and_consume("user-1")
        await limiter.check_and_consume("user-2")

        assert await limiter.reset("user-1") == 1
        assert (await limiter.check_and_consume("user-1")).remaining == 2
        assert any(key.startswith("ratelimit:user-2:") for key in fake_redis.store)

    @pytest.mark.asyncio
    async def test_reset_tolerates_storage_errors(self):
        assert await RateLimiter(FailingRedis()).reset("user-1") == 0
