"""Full tour optimization endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from ...schemas.pipeline import TourneeOptimizeRequest, TourneeOptimizeResponse
from ...services.pipeline.service import TourneePipeline
from ..deps import get_pipeline
from ..errors import http_error

router = APIRouter(prefix="/tournees", tags=["tournees"])


@router.post("/optimize", response_model=TourneeOptimizeResponse, status_code=status.HTTP_200_OK)
async def optimize_tournee(
    payload: TourneeOptimizeRequest,
    pipeline: TourneePipeline = Depends(get_pipeline),
) -> TourneeOptimizeResponse:
    """Log in, fetch the tour, enrich each package and return it in visiting order."""
    try:
        result = await pipeline.run(payload.to_pipeline_request())
    except Exception as exc:
        raise http_error(exc, "optimize the tour") from exc
    return TourneeOptimizeResponse.from_result(result)
