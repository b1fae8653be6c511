"""Optimization request/response schemas."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field

from ..models.domain import Depot, PackageManifestEntry
from ..services.optimization.models import DEPOT_LOCATION, OptimizationResult


class PackageInput(BaseModel):
    reference: str = Field(..., min_length=1)
    recipient_name: str = ""
    address_lines: List[str] = Field(default_factory=list)
    postal_code: Optional[str] = None
    city: Optional[str] = None
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    status: Optional[str] = None
    sequence_hint: Optional[int] = None

    def to_entry(self) -> PackageManifestEntry:
        return PackageManifestEntry(
            reference=self.reference,
            recipient_name=self.recipient_name,
            address_lines=tuple(self.address_lines),
            postal_code=self.postal_code,
            city=self.city,
            latitude=self.latitude,
            longitude=self.longitude,
            status=self.status,
            sequence_hint=self.sequence_hint,
        )


class DepotInput(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)

    def to_depot(self) -> Depot:
        return Depot(code=DEPOT_LOCATION, latitude=self.latitude, longitude=self.longitude)


class OptimizeRequest(BaseModel):
    packages: List[PackageInput] = Field(default_factory=list)
    depot: Optional[DepotInput] = Field(default=None, description="Defaults to the configured depot.")


class StopModel(BaseModel):
    reference: str
    position: int
    eta: Optional[str] = None
    location: Optional[str] = None


class UnroutedModel(BaseModel):
    reference: str
    reason: str


class OptimizeResponse(BaseModel):
    provider: str
    stops: List[StopModel]
    unrouted: List[UnroutedModel]
    metadata: dict

    @classmethod
    def from_result(cls, result: OptimizationResult) -> "OptimizeResponse":
        return cls(
            provider=result.provider,
            stops=[
                StopModel(reference=stop.reference, position=stop.order, eta=stop.eta, location=stop.location)
                for stop in result.stops
            ],
            unrouted=[UnroutedModel(reference=item.reference, reason=item.reason) for item in result.unrouted],
            metadata=result.metadata,
        )
