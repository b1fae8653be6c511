"""End-to-end tour optimization: login, tour, details, route."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Sequence

from ...config import settings
from ...models.domain import Depot, DetailResult, PackageManifestEntry, SessionToken, compose_matricule
from ...models.errors import (
    AuthError,
    FetchError,
    FetchErrorKind,
    OptimizeError,
    PipelineError,
    PipelineStage,
)
from ..carrier.client import CarrierClient, normalize_tour_date
from ..optimization.models import OptimizationResult
from ..optimization.service import RouteOptimizer, depot_from_settings
from .models import (
    DETAIL_FAILED,
    DETAIL_OK,
    DETAIL_SKIPPED,
    DETAIL_TIMEOUT_REASON,
    ROUTED,
    UNROUTED,
    AnnotatedPackage,
    PipelineRequest,
    PipelineResult,
)

logger = logging.getLogger(__name__)


@dataclass
class _Run:
    """Mutable state of one pipeline execution."""

    request: PipelineRequest
    stage: PipelineStage = PipelineStage.IDLE
    token: SessionToken | None = None
    authentications: int = 0
    reauthenticated: bool = False
    details: dict[str, DetailResult] = field(default_factory=dict)

    def enter(self, stage: PipelineStage) -> None:
        self.stage = stage
        logger.info(f"Pipeline stage -> {stage.value}")


class TourneePipeline:
    """Runs one driver's tour through authentication, retrieval, enrichment and optimization."""

    def __init__(
        self,
        carrier: CarrierClient,
        optimizer: RouteOptimizer,
        depot: Depot | None = None,
        enrichment_timeout_seconds: float | None = None,
        deadline_seconds: float | None = None,
    ) -> None:
        self.carrier = carrier
        self.optimizer = optimizer
        self.depot = depot or depot_from_settings()
        self.enrichment_timeout_seconds = (
            enrichment_timeout_seconds if enrichment_timeout_seconds is not None else settings.enrichment_timeout_seconds
        )
        self.deadline_seconds = deadline_seconds if deadline_seconds is not None else settings.pipeline_deadline_seconds

    async def run(self, request: PipelineRequest) -> PipelineResult:
        """Execute the pipeline; every failure surfaces as ``PipelineError``."""
        # Validate before any network traffic.
        tour_date = normalize_tour_date(request.tour_date)
        run = _Run(request=request)
        started = time.monotonic()
        try:
            result = await asyncio.wait_for(self._execute(run, tour_date), timeout=self.deadline_seconds)
        except asyncio.TimeoutError:
            logger.error(f"Pipeline deadline of {self.deadline_seconds}s exceeded while {run.stage.value}")
            raise PipelineError(run.stage, timed_out=True) from None
        result.metadata["duration_seconds"] = round(time.monotonic() - started, 3)
        return result

    async def _execute(self, run: _Run, tour_date: str) -> PipelineResult:
        request = run.request
        run.enter(PipelineStage.AUTHENTICATING)
        await self._authenticate(run)

        run.enter(PipelineStage.FETCHING_MANIFEST)
        manifest = await self._fetch_manifest(run, tour_date)

        if request.enrich_details and manifest:
            run.enter(PipelineStage.ENRICHING_DETAILS)
            await self._enrich(run, manifest)

        run.enter(PipelineStage.OPTIMIZING)
        try:
            optimization = await self.optimizer.optimize(manifest, self.depot)
        except OptimizeError as exc:
            raise PipelineError(run.stage, exc) from exc

        run.enter(PipelineStage.DONE)
        packages = assemble_packages(manifest, optimization, run.details if request.enrich_details else None)
        return PipelineResult(
            matricule=compose_matricule(request.company_code, request.effective_driver_id),
            tour_date=tour_date,
            provider=optimization.provider,
            packages=packages,
            authentications=run.authentications,
            metadata={"reauthenticated": run.reauthenticated, **optimization.metadata},
        )

    async def _authenticate(self, run: _Run) -> SessionToken:
        request = run.request
        try:
            run.token = await self.carrier.authenticate(request.username, request.password, request.company_code)
        except AuthError as exc:
            raise PipelineError(PipelineStage.AUTHENTICATING, exc) from exc
        run.authentications += 1
        return run.token

    async def _reauthenticate(self, run: _Run, why: str) -> SessionToken:
        logger.warning(f"Re-authenticating with the carrier: {why}")
        run.reauthenticated = True
        return await self._authenticate(run)

    async def _fetch_manifest(self, run: _Run, tour_date: str) -> list[PackageManifestEntry]:
        request = run.request
        if run.token.is_expired() and not run.reauthenticated:
            await self._reauthenticate(run, "session token expired")
        try:
            return await self.carrier.get_manifest(
                request.effective_driver_id, request.company_code, tour_date, run.token
            )
        except FetchError as exc:
            if exc.kind is not FetchErrorKind.UNAUTHORIZED or run.reauthenticated:
                raise PipelineError(run.stage, exc) from exc

        await self._reauthenticate(run, "tour request unauthorized")
        try:
            return await self.carrier.get_manifest(
                request.effective_driver_id, request.company_code, tour_date, run.token
            )
        except FetchError as exc:
            raise PipelineError(run.stage, exc) from exc

    async def _enrich(self, run: _Run, manifest: Sequence[PackageManifestEntry]) -> None:
        references = [entry.reference for entry in manifest]
        if run.token.is_expired() and not run.reauthenticated:
            try:
                await self._reauthenticate(run, "session token expired")
            except PipelineError as exc:
                logger.warning(f"Skipping detail enrichment, re-authentication failed: {exc}")
                for reference in references:
                    run.details[reference] = DetailResult.failed(reference, f"re-authentication failed: {exc.code}")
                return
        try:
            await asyncio.wait_for(
                self.carrier.fetch_details(references, run.token, into=run.details),
                timeout=self.enrichment_timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(
                f"Detail enrichment stopped after {self.enrichment_timeout_seconds}s with "
                f"{len(run.details)}/{len(references)} packages answered"
            )
        for reference in references:
            if reference not in run.details:
                run.details[reference] = DetailResult.failed(reference, DETAIL_TIMEOUT_REASON)


def _annotate(entry: PackageManifestEntry, details: dict[str, DetailResult] | None) -> AnnotatedPackage:
    if details is None:
        return AnnotatedPackage(entry=entry, detail_status=DETAIL_SKIPPED, optimization_status=UNROUTED)
    outcome = details.get(entry.reference)
    if outcome is not None and outcome.ok:
        return AnnotatedPackage(
            entry=entry, detail_status=DETAIL_OK, optimization_status=UNROUTED, detail=outcome.detail
        )
    return AnnotatedPackage(
        entry=entry,
        detail_status=DETAIL_FAILED,
        optimization_status=UNROUTED,
        detail_failure=outcome.failure_reason if outcome is not None else DETAIL_TIMEOUT_REASON,
    )


def assemble_packages(
    manifest: Sequence[PackageManifestEntry],
    optimization: OptimizationResult,
    details: dict[str, DetailResult] | None,
) -> list[AnnotatedPackage]:
    """Routed packages in visiting order, then unrouted ones in manifest order."""
    by_reference = {entry.reference: entry for entry in manifest}
    packages: list[AnnotatedPackage] = []

    for stop in optimization.stops:
        package = _annotate(by_reference[stop.reference], details)
        package.optimization_status = ROUTED
        package.position = stop.order
        package.eta = stop.eta
        packages.append(package)

    reasons = {item.reference: item.reason for item in optimization.unrouted}
    routed = {stop.reference for stop in optimization.stops}
    for entry in manifest:
        if entry.reference in routed:
            continue
        package = _annotate(entry, details)
        package.unrouted_reason = reasons.get(entry.reference)
        packages.append(package)
    return packages
