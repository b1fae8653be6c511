"""FastAPI dependencies wiring services to the shared HTTP client."""

from __future__ import annotations

import httpx
from fastapi import Depends, HTTPException, Request, status

from ..services.cache.detail_cache import DetailCache, get_detail_cache
from ..services.carrier.client import CarrierClient
from ..services.optimization.service import RouteOptimizer, build_provider
from ..services.pipeline.service import TourneePipeline


def _not_configured(exc: ValueError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail={"code": "NOT_CONFIGURED", "message": str(exc)},
    )


def get_http_client(request: Request) -> httpx.AsyncClient:
    return request.app.state.http_client


def get_cache() -> DetailCache:
    return get_detail_cache()


def get_carrier_client(
    http_client: httpx.AsyncClient = Depends(get_http_client),
    cache: DetailCache = Depends(get_cache),
) -> CarrierClient:
    try:
        return CarrierClient(http_client, detail_cache=cache)
    except ValueError as exc:
        raise _not_configured(exc) from exc


def get_route_optimizer(http_client: httpx.AsyncClient = Depends(get_http_client)) -> RouteOptimizer:
    try:
        return RouteOptimizer(build_provider(http_client))
    except ValueError as exc:
        raise _not_configured(exc) from exc


def get_pipeline(
    carrier: CarrierClient = Depends(get_carrier_client),
    optimizer: RouteOptimizer = Depends(get_route_optimizer),
) -> TourneePipeline:
    return TourneePipeline(carrier, optimizer)
