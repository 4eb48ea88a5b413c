import logging
import os
from contextlib import asynccontextmanager
from logging.handlers import RotatingFileHandler
from pathlib import Path

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import settings

# ─── Logging setup (file + console) ───
_LOG_DIR = Path(__file__).resolve().parent.parent / "logs"
_LOG_DIR.mkdir(exist_ok=True)

_log_level = getattr(logging, os.environ.get("LOG_LEVEL", "INFO").upper(), logging.INFO)

logging.basicConfig(
    level=_log_level,
    format="%(asctime)s %(levelname)-8s [%(name)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    handlers=[
        logging.StreamHandler(),
        RotatingFileHandler(
            _LOG_DIR / "pricing.log",
            maxBytes=10 * 1024 * 1024,  # 10 MB
            backupCount=5,
            encoding="utf-8",
        ),
    ],
)

# Quiet noisy libraries
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

from app.routers import hotel_sync, package_pricing
from app.services.pricing.rate_cache import InMemoryRateCache, RateCache, RedisRateCache
from app.services.tbo_client import tbo_client

logger = logging.getLogger(__name__)


def build_rate_cache() -> RateCache:
    if settings.rate_cache_backend == "redis":
        return RedisRateCache(settings.redis_url)
    if settings.rate_cache_backend != "memory":
        logger.warning(f"Unknown rate_cache_backend '{settings.rate_cache_backend}', using memory")
    return InMemoryRateCache()


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: shared cache and provider client
    rate_cache = build_rate_cache()
    app.state.rate_cache = rate_cache
    app.state.tbo_client = tbo_client
    logger.info(f"Rate cache backend: {rate_cache.backend}")
    if not settings.tbo_configured:
        logger.warning("TBO credentials not configured; hotels will be priced from static rates")

    scheduler = None
    if settings.scheduler_enabled:
        try:
            scheduler = AsyncIOScheduler()

            async def _evict_expired_rates():
                count = await rate_cache.evict_expired()
                if count:
                    logger.info(f"Rate cache: {count} expired entries removed")

            scheduler.add_job(
                _evict_expired_rates,
                IntervalTrigger(minutes=settings.rate_cache_eviction_interval_minutes),
                id="rate_cache_eviction",
            )
            scheduler.start()
            logger.info("Background scheduler started")
        except Exception as e:
            logger.error(f"Scheduler failed to start: {e}")
            scheduler = None

    yield

    # Shutdown
    if scheduler:
        scheduler.shutdown(wait=False)
        logger.info("Background scheduler stopped")
    await tbo_client.close()
    await rate_cache.close()


app = FastAPI(
    title="Package Pricing",
    description="Travel package pricing with live hotel rates",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(package_pricing.router, prefix="/api/package-pricing", tags=["package-pricing"])
app.include_router(hotel_sync.router, prefix="/api/admin/tbo-hotels", tags=["tbo-hotels"])


@app.get("/api/health")
async def health_check():
    cache = getattr(app.state, "rate_cache", None)
    return {
        "status": "ok",
        "service": "package-pricing",
        "rateCache": cache.backend if cache else None,
        "liveHotelRates": settings.tbo_configured,
    }
