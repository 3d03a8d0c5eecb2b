"""
Chart Data Cache - Main FastAPI Application
Serves upstream chart data from a single-slot cache whose lifetime follows
the weekly operating schedule
"""
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from fastapi import APIRouter, FastAPI, Query, Request
from fastapi.responses import JSONResponse

from app import upstream
from app.cache import CacheGateway, PersistentCacheGateway, SQLiteKeyValueStore
from app.cache.gateway import current_time_ms
from app.schedule import ScheduleConfig, is_operating_window, next_window_start
from config.settings import settings

# Version tracking
APP_VERSION = "v1.0.0"
APP_NAME = "Chart Data Cache"

router = APIRouter()


def build_gateway() -> CacheGateway:
    """Create the cache gateway for the configured backend."""
    schedule = ScheduleConfig.from_settings(settings)
    # Waiters must outlast a full upstream fetch including retries
    coalesce_timeout = settings.upstream_timeout_seconds * settings.upstream_retry_attempts + 10

    if settings.cache_backend == "sqlite":
        return PersistentCacheGateway(
            store=SQLiteKeyValueStore(settings.cache_db_path),
            deploy_version=settings.deploy_version,
            schedule=schedule,
            coalesce_timeout=coalesce_timeout,
        )
    return CacheGateway(schedule=schedule, coalesce_timeout=coalesce_timeout)


def create_app(
    gateway: Optional[CacheGateway] = None,
    fetch_fn: Optional[Callable[[], Any]] = None,
) -> FastAPI:
    """
    Build the application.

    The gateway is created once here and shared by every request through
    app.state.
    """
    application = FastAPI(
        title=APP_NAME,
        description="Schedule-aware edge cache for chart data",
        version=APP_VERSION,
    )
    application.state.gateway = gateway or build_gateway()
    application.state.fetch_chart_data = fetch_fn or upstream.fetch_chart_data
    application.include_router(router)
    return application


@router.get("/health")
def health_check():
    """Health check endpoint."""
    return {"status": "ok"}


@router.get("/version")
def version_info():
    """Version information endpoint."""
    return {
        "name": APP_NAME,
        "version": APP_VERSION,
        "deploy": settings.deploy_version,
    }


@router.get("/api/chart-data")
def chart_data(
    request: Request,
    test_operating_hours: bool = Query(False, description="Cache for the short test TTL"),
):
    """Chart data, served from cache when valid (X-Cache: HIT/MISS/STALE)."""
    gateway: CacheGateway = request.app.state.gateway
    served = gateway.serve(
        request.app.state.fetch_chart_data,
        force_operating=test_operating_hours,
    )
    return JSONResponse(
        content=served.body,
        status_code=served.status_code,
        headers=served.headers(),
    )


@router.get("/cache/stats")
def cache_stats(request: Request):
    """Get cache statistics and the current schedule state."""
    gateway: CacheGateway = request.app.state.gateway
    now_ms = current_time_ms()
    next_start = next_window_start(now_ms, gateway.schedule)
    return {
        **gateway.get_stats(),
        "schedule": {
            "operating_window": is_operating_window(now_ms, gateway.schedule),
            "next_window_start": datetime.fromtimestamp(
                next_start / 1000, tz=timezone.utc
            ).isoformat(),
        },
    }


@router.delete("/cache")
def clear_cache(request: Request):
    """Drop the cached chart data."""
    request.app.state.gateway.clear()
    return {"cleared": True}


app = create_app()
