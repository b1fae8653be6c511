"""Full tour optimization schemas."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field

from ..services.pipeline.models import AnnotatedPackage, PipelineRequest, PipelineResult
from .carrier import ManifestEntryModel, PackageDetailModel, PackagesRequest


class TourneeOptimizeRequest(PackagesRequest):
    enrich_details: bool = Field(default=True, description="Look up each package's tracking detail.")

    def to_pipeline_request(self) -> PipelineRequest:
        return PipelineRequest(
            username=self.username,
            password=self.password,
            company_code=self.company_code,
            driver_id=self.driver_id,
            tour_date=self.tour_date,
            enrich_details=self.enrich_details,
        )


class AnnotatedPackageModel(BaseModel):
    reference: str
    package: ManifestEntryModel
    detail_status: str
    detail: Optional[PackageDetailModel] = None
    detail_failure: Optional[str] = None
    optimization_status: str
    position: Optional[int] = None
    eta: Optional[str] = None
    unrouted_reason: Optional[str] = None

    @classmethod
    def from_package(cls, package: AnnotatedPackage) -> "AnnotatedPackageModel":
        return cls(
            reference=package.reference,
            package=ManifestEntryModel.from_entry(package.entry),
            detail_status=package.detail_status,
            detail=PackageDetailModel.from_detail(package.detail) if package.detail is not None else None,
            detail_failure=package.detail_failure,
            optimization_status=package.optimization_status,
            position=package.position,
            eta=package.eta,
            unrouted_reason=package.unrouted_reason,
        )


class TourneeOptimizeResponse(BaseModel):
    matricule: str
    tour_date: str
    provider: str
    total: int
    routed_count: int
    unrouted_count: int
    authentications: int
    packages: List[AnnotatedPackageModel]
    metadata: dict

    @classmethod
    def from_result(cls, result: PipelineResult) -> "TourneeOptimizeResponse":
        return cls(
            matricule=result.matricule,
            tour_date=result.tour_date,
            provider=result.provider,
            total=len(result.packages),
            routed_count=len(result.routed),
            unrouted_count=len(result.unrouted),
            authentications=result.authentications,
            packages=[AnnotatedPackageModel.from_package(package) for package in result.packages],
            metadata=result.metadata,
        )
