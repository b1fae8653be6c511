"""Pipeline request and result models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional

from ...models.domain import PackageDetail, PackageManifestEntry

DETAIL_OK = "ok"
DETAIL_FAILED = "failed"
DETAIL_SKIPPED = "skipped"

ROUTED = "routed"
UNROUTED = "unrouted"

DETAIL_TIMEOUT_REASON = "timeout"


@dataclass(slots=True)
class PipelineRequest:
    username: str
    password: str
    company_code: str
    driver_id: Optional[str] = None
    tour_date: date | str | None = None
    enrich_details: bool = True

    @property
    def effective_driver_id(self) -> str:
        return self.driver_id or self.username


@dataclass(slots=True)
class AnnotatedPackage:
    """A manifest entry with everything the pipeline learned about it."""

    entry: PackageManifestEntry
    detail_status: str
    optimization_status: str
    detail: Optional[PackageDetail] = None
    detail_failure: Optional[str] = None
    position: Optional[int] = None
    eta: Optional[str] = None
    unrouted_reason: Optional[str] = None

    @property
    def reference(self) -> str:
        return self.entry.reference


@dataclass(slots=True)
class PipelineResult:
    matricule: str
    tour_date: str
    provider: str
    packages: List[AnnotatedPackage]
    authentications: int = 1
    metadata: dict = field(default_factory=dict)

    @property
    def routed(self) -> List[AnnotatedPackage]:
        return [package for package in self.packages if package.optimization_status == ROUTED]

    @property
    def unrouted(self) -> List[AnnotatedPackage]:
        return [package for package in self.packages if package.optimization_status == UNROUTED]
