"""Competitive price extraction micro-service.

This FastAPI app exposes:
- POST /scrape               scrape one business website for prices
- POST /scrape/batch         scrape many businesses under a concurrency ceiling
- POST /competitors/search   nearby salons around an address, optionally priced
- /metrics for Prometheus and /healthz for liveness

Callers identify themselves with ``X-User-Id`` and ``X-User-Tier``; the
scrape and search routes are rate limited per identity and hour.
"""

from __future__ import annotations

import datetime
import logging
import pathlib
from typing import Any, Dict, List, Optional

import redis.asyncio as redis
from fastapi import Depends, FastAPI, Header, HTTPException, Request, Response
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from pydantic import BaseModel, Field

from .batch import BatchScrapeManager
from .cache import PlacesCache
from .competitors import AddressNotFoundError, CompetitorSearchResult, CompetitorSearchService
from .config.production import get_config
from .extraction import load_pricing_rules
from .models import ScrapeResult, ScrapeTarget
from .navigation import NavigationEngine
from .observability import REQUEST_COUNT, REQUEST_LATENCY
from .places import GooglePlacesClient, PlacesError
from .rate_limit import RateLimiter, RateLimitResult, SubscriptionTier
from .reliability.errors import ConfigurationError
from .runtime import BrowserRuntime
from .tasks import PriceScraper

try:
    config = get_config()
except ValueError as e:
    raise ConfigurationError(f"Invalid service configuration: {e}", cause=e)
config.setup_logging()

# ----------------------------------------------------------------------------
# Logging
# ----------------------------------------------------------------------------

def init_service_logger() -> logging.Logger:
    """Initialize the service logger: dated file under LOG_ROOT plus stderr."""
    today = datetime.date.today().isoformat()
    root = pathlib.Path(config.system.log_root)
    base_dir = root / "base" / "pricescout"
    base_dir.mkdir(parents=True, exist_ok=True)

    handlers: list[logging.Handler] = []
    handlers.append(logging.FileHandler(base_dir / f"{today}.log"))
    handlers.append(logging.StreamHandler())

    logger = logging.getLogger("pricescout.service")
    if not logger.handlers:
        logger.propagate = False
        logger.setLevel(getattr(logging, config.system.log_level))
        fmt = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
        formatter = logging.Formatter(fmt)
        for h in handlers:
            h.setFormatter(formatter)
            logger.addHandler(h)

    return logger


service_logger = init_service_logger()

# ----------------------------------------------------------------------------
# Request models
# ----------------------------------------------------------------------------

class ScrapeRequest(BaseModel):
    url: str
    name: str = ""


class BatchScrapeRequest(BaseModel):
    targets: List[ScrapeTarget] = Field(min_length=1, max_length=50)
    concurrency: Optional[int] = Field(default=None, ge=1, le=10)


class CompetitorSearchRequest(BaseModel):
    address: str = Field(min_length=5)
    radius: float = Field(ge=1, le=50)
    competitor_count: int = Field(ge=1, le=20)
    lat: Optional[float] = None
    lng: Optional[float] = None
    include_prices: bool = False

# ----------------------------------------------------------------------------
# App + global components
# ----------------------------------------------------------------------------

app = FastAPI(title="PriceScout Price Extraction Service", version="1.0.0")

redis_client: redis.Redis | None = None
browser_runtime: BrowserRuntime | None = None
scraper: PriceScraper | None = None
batch_manager: BatchScrapeManager | None = None
places_cache: PlacesCache | None = None
rate_limiter: RateLimiter | None = None
places_client: GooglePlacesClient | None = None
competitor_service: CompetitorSearchService | None = None


@app.middleware("http")
async def prometheus_middleware(request: Request, call_next):
    """Collect Prometheus metrics for each request."""
    endpoint = request.url.path
    method = request.method
    with REQUEST_LATENCY.labels(endpoint).time():
        response = await call_next(request)
    REQUEST_COUNT.labels(endpoint, method, response.status_code).inc()
    return response


def _rate_limit_headers(result: RateLimitResult) -> Dict[str, str]:
    return {
        "X-RateLimit-Limit": str(result.limit),
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": str(int(result.reset_at)),
    }


async def enforce_rate_limit(
    request: Request,
    response: Response,
    x_user_id: Optional[str] = Header(default=None),
    x_user_tier: str = Header(default="free"),
) -> str:
    """Consume one request from the caller's quota; 429 when exhausted."""
    try:
        tier = SubscriptionTier(x_user_tier.lower())
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unknown subscription tier '{x_user_tier}'")

    identity = x_user_id or f"anon:{request.client.host if request.client else 'unknown'}"
    if rate_limiter is None:
        return identity

    result = await rate_limiter.check_and_consume(identity, tier)
    headers = _rate_limit_headers(result)
    if not result.allowed:
        service_logger.warning(f"Rate limit exceeded for {identity} ({tier.value})")
        raise HTTPException(status_code=429, detail="Rate limit exceeded", headers=headers)

    response.headers.update(headers)
    return identity


@app.get("/healthz")
async def healthz() -> Dict[str, Any]:
    """Liveness probe with component status."""
    components = {}

    if redis_client:
        try:
            await redis_client.ping()
            components["redis"] = "ok"
        except Exception:
            components["redis"] = "error"
    else:
        components["redis"] = "not_connected"

    if browser_runtime:
        # The browser is launched on demand, so "idle" is healthy
        components["browser"] = "running" if browser_runtime.is_running else "idle"
    else:
        components["browser"] = "error"

    components["places"] = "ok" if competitor_service else "not_configured"

    degraded = components["redis"] != "ok" or components["browser"] == "error"
    return {
        "status": "degraded" if degraded else "ok",
        "components": components,
    }


@app.get("/metrics")
async def metrics() -> Response:
    """Prometheus metrics endpoint."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.post("/scrape", response_model=ScrapeResult)
async def scrape(body: ScrapeRequest, identity: str = Depends(enforce_rate_limit)) -> ScrapeResult:
    if not scraper:
        raise HTTPException(status_code=503, detail="Scraper not initialized")

    service_logger.info(f"Scrape requested by {identity}: {body.url}")
    return await scraper.scrape_prices(body.url, body.name or body.url)


@app.post("/scrape/batch")
async def scrape_batch(body: BatchScrapeRequest, identity: str = Depends(enforce_rate_limit)) -> Dict[str, Any]:
    if not batch_manager:
        raise HTTPException(status_code=503, detail="Batch manager not initialized")

    service_logger.info(f"Batch scrape of {len(body.targets)} targets requested by {identity}")
    results = await batch_manager.batch_scrape(body.targets, body.concurrency)
    report = batch_manager.last_report
    return {
        "results": {key: result.model_dump() for key, result in results.items()},
        "summary": {
            "total": report.total_targets,
            "succeeded": report.succeeded,
            "failed": report.failed,
            "duration_seconds": round(report.duration_seconds, 2),
        } if report else None,
    }


@app.post("/competitors/search", response_model=CompetitorSearchResult)
async def competitors_search(body: CompetitorSearchRequest,
                             identity: str = Depends(enforce_rate_limit),
                             x_user_id: Optional[str] = Header(default=None)) -> CompetitorSearchResult:
    if not competitor_service:
        raise HTTPException(status_code=503, detail="Places provider not configured")

    service_logger.info(f"Competitor search requested by {identity}: {body.address}")

    try:
        return await competitor_service.search(
            body.address,
            body.radius,
            body.competitor_count,
            body.lat,
            body.lng,
            include_prices=body.include_prices,
            # Only authenticated callers have searches saved and counted
            user_id=x_user_id,
        )
    except AddressNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except PlacesError as e:
        service_logger.error(f"Places provider error: {e}")
        raise HTTPException(status_code=502, detail="Places provider unavailable")


@app.on_event("startup")
async def on_startup() -> None:
    """Wire up redis, browser runtime, scraper, cache, limiter and places client."""
    global redis_client, browser_runtime, scraper, batch_manager
    global places_cache, rate_limiter, places_client, competitor_service

    service_logger.info("Starting price extraction service...")
    service_logger.info(f"Configuration: {config.get_configuration_summary()}")

    # Redis backs the cache and the rate limiter; both degrade without it
    redis_url = config.get_redis_url()
    try:
        redis_client = redis.from_url(redis_url, decode_responses=True)
        await redis_client.ping()
        service_logger.info(f"Connected to Redis at {config.redis.host}:{config.redis.port}")
    except Exception as e:
        service_logger.warning(f"Redis connection failed ({e}) - cache disabled, rate limiting fails open")
        redis_client = None

    places_cache = PlacesCache(redis_client, config.cache, logger=service_logger)
    rate_limiter = RateLimiter(redis_client, config.rate_limit, logger=service_logger)

    rules = load_pricing_rules(config.scraper.pricing_rules_path)
    browser_runtime = BrowserRuntime(config.browser, logger=service_logger)
    scraper = PriceScraper(
        browser_runtime,
        rules,
        config=config.scraper,
        navigation=NavigationEngine(config.navigation, logger=service_logger),
        logger=service_logger,
    )
    batch_manager = BatchScrapeManager(
        scraper,
        default_concurrency=config.scraper.batch_concurrency,
        logger=service_logger,
    )
    service_logger.info("✅ Scraper ready (browser launches on first request)")

    if config.places.api_key:
        places_client = GooglePlacesClient.from_config(config.places, logger=service_logger)
        competitor_service = CompetitorSearchService(
            places_client,
            places_cache,
            batch_manager=batch_manager,
            logger=service_logger,
        )
        service_logger.info("✅ Places provider configured")
    else:
        service_logger.warning("GOOGLE_MAPS_API_KEY not set - competitor search disabled")


@app.on_event("shutdown")
async def on_shutdown() -> None:
    """Close the browser, the places client and the redis connection."""
    service_logger.info("Shutting down price extraction service...")

    if browser_runtime:
        await browser_runtime.stop()
    if places_client:
        await places_client.close()
    if redis_client:
        await redis_client.aclose()

    service_logger.info("Shutdown complete")
