"""Route optimization: build the provider problem, wait for it, map the answer back."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Protocol, Sequence

import httpx

from ...config import settings
from ...models.domain import Depot, PackageManifestEntry
from ...models.errors import OptimizeError, OptimizeErrorKind
from .local_solver import LocalOptimizationProvider
from .mapbox_client import MapboxOptimizationProvider
from .models import (
    DEPOT_LOCATION,
    LOCATION_PREFIX,
    SERVICE_PREFIX,
    UNROUTED_DROPPED,
    UNROUTED_MISSING_COORDINATES,
    UNROUTED_NOT_IN_SOLUTION,
    VEHICLE_NAME,
    Location,
    OptimizationRequest,
    OptimizationResult,
    OptimizedStop,
    Pending,
    Service,
    SubmissionResult,
    UnroutedPackage,
    Vehicle,
)

logger = logging.getLogger(__name__)


class OptimizationProvider(Protocol):
    name: str

    async def submit(self, request: OptimizationRequest) -> SubmissionResult: ...

    async def poll(self, submission_id: str) -> SubmissionResult: ...


def depot_from_settings() -> Depot:
    return Depot(code=DEPOT_LOCATION, latitude=settings.depot_latitude, longitude=settings.depot_longitude)


def build_provider(http_client: httpx.AsyncClient) -> OptimizationProvider:
    """Pick the configured provider (Mapbox when a token is available, OR-Tools otherwise)."""
    if settings.use_mapbox:
        return MapboxOptimizationProvider(http_client)
    return LocalOptimizationProvider()


class RouteOptimizer:
    """Orders a tour's packages through an optimization provider."""

    def __init__(
        self,
        provider: OptimizationProvider,
        service_duration_seconds: int | None = None,
        poll_interval_seconds: float | None = None,
        max_wait_seconds: float | None = None,
    ) -> None:
        self.provider = provider
        self.service_duration_seconds = service_duration_seconds or settings.optimization_service_duration_seconds
        self.poll_interval_seconds = (
            poll_interval_seconds if poll_interval_seconds is not None else settings.optimization_poll_interval_seconds
        )
        self.max_wait_seconds = max_wait_seconds if max_wait_seconds is not None else settings.optimization_max_wait_seconds

    def build_request(
        self,
        manifest: Sequence[PackageManifestEntry],
        depot: Depot,
    ) -> tuple[OptimizationRequest, list[UnroutedPackage]]:
        """Translate the manifest into a provider problem.

        Packages without coordinates cannot be placed and are returned as
        unrouted instead of being sent.
        """
        locations = [Location(name=DEPOT_LOCATION, latitude=depot.latitude, longitude=depot.longitude)]
        services: list[Service] = []
        service_references: dict[str, str] = {}
        unrouted: list[UnroutedPackage] = []
        seen: set[str] = set()

        for entry in manifest:
            if entry.reference in seen:
                continue
            seen.add(entry.reference)
            if not entry.has_coordinates:
                unrouted.append(UnroutedPackage(reference=entry.reference, reason=UNROUTED_MISSING_COORDINATES))
                continue
            location_name = f"{LOCATION_PREFIX}{entry.reference}"
            service_name = f"{SERVICE_PREFIX}{entry.reference}"
            locations.append(Location(name=location_name, latitude=entry.latitude, longitude=entry.longitude))
            services.append(Service(name=service_name, location=location_name, duration=self.service_duration_seconds))
            service_references[service_name] = entry.reference

        request = OptimizationRequest(
            locations=locations,
            vehicles=[Vehicle(name=VEHICLE_NAME, start_location=DEPOT_LOCATION, end_location=DEPOT_LOCATION)],
            services=services,
            service_references=service_references,
        )
        return request, unrouted

    def _timed_out(self, submission_id: str, attempts: int) -> OptimizeError:
        return OptimizeError(
            OptimizeErrorKind.TIMEOUT,
            f"No solution for {submission_id} after {self.max_wait_seconds}s ({attempts} polls).",
        )

    async def _await_solution(self, submission: SubmissionResult) -> dict:
        """Poll until solved. Each poll is bounded by what is left of ``max_wait_seconds``."""
        deadline = time.monotonic() + self.max_wait_seconds
        attempts = 0
        while isinstance(submission, Pending):
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise self._timed_out(submission.submission_id, attempts)
            await asyncio.sleep(min(self.poll_interval_seconds, remaining))
            attempts += 1
            logger.debug(f"Polling {self.provider.name} for {submission.submission_id} (attempt {attempts})")
            remaining = deadline - time.monotonic()
            try:
                submission = await asyncio.wait_for(
                    self.provider.poll(submission.submission_id), timeout=max(remaining, 0)
                )
            except asyncio.TimeoutError as exc:
                raise self._timed_out(submission.submission_id, attempts) from exc
        return submission.solution

    async def optimize(self, manifest: Sequence[PackageManifestEntry], depot: Depot) -> OptimizationResult:
        if not manifest:
            return OptimizationResult(stops=[], unrouted=[], provider=self.provider.name)

        request, unrouted = self.build_request(manifest, depot)
        if not request.services:
            raise OptimizeError(
                OptimizeErrorKind.ALL_DROPPED,
                f"None of the {len(manifest)} packages has coordinates to route.",
            )

        started = time.monotonic()
        submission = await self.provider.submit(request)
        if isinstance(submission, Pending):
            logger.info(f"Waiting for {self.provider.name} solution {submission.submission_id}")
        solution = await self._await_solution(submission)

        result = map_solution(solution, request, unrouted, provider=self.provider.name)
        result.metadata["duration_seconds"] = round(time.monotonic() - started, 3)
        if not result.stops:
            raise OptimizeError(
                OptimizeErrorKind.ALL_DROPPED,
                f"Provider routed none of the {len(request.services)} submitted packages.",
            )
        logger.info(
            f"Optimization via {self.provider.name} routed {len(result.stops)} packages, "
            f"{len(result.unrouted)} unrouted"
        )
        return result


def _service_reference(stop: dict, request: OptimizationRequest) -> str | None:
    for service_name in stop.get("services") or []:
        reference = request.service_references.get(service_name)
        if reference is not None:
            return reference
    location = stop.get("location")
    if isinstance(location, str) and location.startswith(LOCATION_PREFIX):
        reference = location[len(LOCATION_PREFIX) :]
        if f"{SERVICE_PREFIX}{reference}" in request.service_references:
            return reference
    return None


def map_solution(
    solution: dict,
    request: OptimizationRequest,
    unrouted: list[UnroutedPackage],
    provider: str,
) -> OptimizationResult:
    """Turn a provider solution into ordered stops plus unrouted packages.

    Every submitted package ends up in exactly one of the two lists.
    """
    stops: list[OptimizedStop] = []
    routed: set[str] = set()

    for route in solution.get("routes") or []:
        for stop in route.get("stops") or []:
            if stop.get("type") != "service":
                continue
            reference = _service_reference(stop, request)
            if reference is None or reference in routed:
                continue
            routed.add(reference)
            stops.append(
                OptimizedStop(
                    reference=reference,
                    service_name=f"{SERVICE_PREFIX}{reference}",
                    order=len(stops) + 1,
                    eta=stop.get("eta"),
                    location=stop.get("location"),
                )
            )

    unrouted = list(unrouted)
    dropped = (solution.get("dropped") or {}).get("services") or []
    dropped_references = {request.service_references[name] for name in dropped if name in request.service_references}
    for service in request.services:
        reference = request.service_references[service.name]
        if reference in routed:
            continue
        reason = UNROUTED_DROPPED if reference in dropped_references else UNROUTED_NOT_IN_SOLUTION
        unrouted.append(UnroutedPackage(reference=reference, reason=reason))

    if unrouted:
        logger.warning(f"{len(unrouted)} packages left out of the optimized route")
    return OptimizationResult(
        stops=stops,
        unrouted=unrouted,
        provider=provider,
        metadata={"vehicles": len(solution.get("routes") or [])},
    )
