"""Optimization endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from ...schemas.optimization import OptimizeRequest, OptimizeResponse
from ...services.optimization.service import RouteOptimizer, depot_from_settings
from ..deps import get_route_optimizer
from ..errors import http_error

router = APIRouter(prefix="/optimization", tags=["optimization"])


@router.post("/optimize", response_model=OptimizeResponse, status_code=status.HTTP_200_OK)
async def optimize(payload: OptimizeRequest, optimizer: RouteOptimizer = Depends(get_route_optimizer)) -> OptimizeResponse:
    manifest = [package.to_entry() for package in payload.packages]
    depot = payload.depot.to_depot() if payload.depot else depot_from_settings()
    try:
        result = await optimizer.optimize(manifest, depot)
    except Exception as exc:
        raise http_error(exc, "optimize the route") from exc
    return OptimizeResponse.from_result(result)
