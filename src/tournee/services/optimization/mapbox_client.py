"""HTTP client for the Mapbox Optimization API v2."""

from __future__ import annotations

import logging

import httpx

from ...config import settings
from ...models.errors import OptimizeError, OptimizeErrorKind
from .models import Immediate, OptimizationRequest, Pending, SubmissionResult

OPTIMIZATION_PATH = "/optimized-trips/v2"
PROCESSING_STATUSES = {"processing", "pending", "queued"}
FAILED_STATUSES = {"failed", "error"}

logger = logging.getLogger(__name__)


class MapboxOptimizationProvider:
    """Submits problems to Mapbox and polls for their solutions."""

    name = "mapbox"

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        access_token: str | None = None,
        base_url: str | None = None,
        timeout: float = 60.0,
    ) -> None:
        self.access_token = access_token or settings.mapbox_token
        if not self.access_token:
            raise ValueError("Mapbox access token is not configured.")
        self.base_url = (base_url or settings.mapbox_base_url).rstrip("/")
        self.http = http_client
        self.timeout = timeout

    def _interpret(self, body: object) -> SubmissionResult:
        if not isinstance(body, dict):
            raise OptimizeError(OptimizeErrorKind.PROVIDER_REJECTED, "Mapbox response is not a JSON object.")
        if "routes" in body:
            return Immediate(solution=body)

        status = str(body.get("status", "")).lower()
        if status in FAILED_STATUSES:
            message = body.get("message") or body.get("status_description") or status
            raise OptimizeError(OptimizeErrorKind.PROVIDER_REJECTED, f"Mapbox optimization failed: {message}")
        submission_id = body.get("id")
        if submission_id and (not status or status in PROCESSING_STATUSES or status == "ok"):
            return Pending(submission_id=str(submission_id))
        raise OptimizeError(
            OptimizeErrorKind.PROVIDER_REJECTED,
            f"Unexpected Mapbox response (status={status or 'missing'}, fields={sorted(body.keys())}).",
        )

    def _check_status(self, response: httpx.Response, action: str) -> None:
        if response.is_success:
            return
        detail = response.text[:200]
        if response.status_code >= 500:
            raise OptimizeError(OptimizeErrorKind.NETWORK, f"Mapbox {action} failed with HTTP {response.status_code}: {detail}")
        raise OptimizeError(
            OptimizeErrorKind.PROVIDER_REJECTED,
            f"Mapbox {action} rejected with HTTP {response.status_code}: {detail}",
        )

    async def submit(self, request: OptimizationRequest) -> SubmissionResult:
        url = f"{self.base_url}{OPTIMIZATION_PATH}"
        logger.info(
            f"Submitting optimization problem to Mapbox: {len(request.services)} services, "
            f"{len(request.locations)} locations"
        )
        try:
            response = await self.http.post(
                url,
                params={"access_token": self.access_token},
                json=request.to_payload(),
                headers={"Content-Type": "application/json", "User-Agent": "RouteOptimizer/1.0"},
                timeout=self.timeout,
            )
        except httpx.HTTPError as exc:
            raise OptimizeError(OptimizeErrorKind.NETWORK, f"Mapbox unreachable: {exc}") from exc

        self._check_status(response, "submission")
        try:
            body = response.json()
        except ValueError as exc:
            raise OptimizeError(OptimizeErrorKind.PROVIDER_REJECTED, f"Mapbox submission response is not JSON: {exc}") from exc

        result = self._interpret(body)
        if isinstance(result, Pending):
            logger.info(f"Mapbox accepted problem {result.submission_id}")
        return result

    async def poll(self, submission_id: str) -> SubmissionResult:
        url = f"{self.base_url}{OPTIMIZATION_PATH}/{submission_id}"
        try:
            response = await self.http.get(
                url,
                params={"access_token": self.access_token},
                headers={"User-Agent": "RouteOptimizer/1.0"},
                timeout=self.timeout,
            )
        except httpx.HTTPError as exc:
            raise OptimizeError(OptimizeErrorKind.NETWORK, f"Mapbox unreachable while polling: {exc}") from exc

        if response.status_code == 202:
            return Pending(submission_id=submission_id)
        self._check_status(response, "poll")
        try:
            body = response.json()
        except ValueError as exc:
            raise OptimizeError(OptimizeErrorKind.PROVIDER_REJECTED, f"Mapbox solution is not JSON: {exc}") from exc
        return self._interpret(body)
