"""Health endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from ...config import settings
from ...services.cache.detail_cache import DetailCache
from ..deps import get_cache

router = APIRouter(tags=["health"])


@router.get("/health", status_code=status.HTTP_200_OK)
def health_root() -> dict:
    """Simple health check endpoint that doesn't require any dependencies."""
    return {"status": "ok"}


@router.get("/health/optimizer", status_code=status.HTTP_200_OK)
def health_optimizer() -> dict:
    """Report which optimization provider requests will use."""
    return {
        "service": "optimizer",
        "configured_provider": settings.optimization_provider,
        "active_provider": "mapbox" if settings.use_mapbox else "local",
        "mapbox_token_configured": bool(settings.mapbox_token),
        "carrier_configured": bool(settings.carrier_auth_url and settings.carrier_tournee_url),
    }


@router.get("/health/cache", status_code=status.HTTP_200_OK)
def health_cache(cache: DetailCache = Depends(get_cache)) -> dict:
    """Detail cache statistics; expired entries are purged first."""
    removed = cache.cleanup_expired()
    return {"service": "detail_cache", "expired_removed": removed, **cache.stats()}


@router.delete("/health/cache", status_code=status.HTTP_200_OK)
def clear_cache(cache: DetailCache = Depends(get_cache)) -> dict:
    removed = cache.clear()
    return {"status": "cleared", "removed": removed}
