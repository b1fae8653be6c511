"""Route optimization domain models."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Union

DEPOT_LOCATION = "depot"
VEHICLE_NAME = "vehicle-1"
LOCATION_PREFIX = "package-"
SERVICE_PREFIX = "delivery-"
DEFAULT_OBJECTIVES = ("min-schedule-completion-time",)

UNROUTED_MISSING_COORDINATES = "missing_coordinates"
UNROUTED_DROPPED = "dropped_by_provider"
UNROUTED_NOT_IN_SOLUTION = "not_in_solution"


@dataclass(slots=True)
class Location:
    name: str
    latitude: float
    longitude: float

    def to_payload(self) -> dict:
        return {"name": self.name, "coordinates": [self.longitude, self.latitude]}


@dataclass(slots=True)
class Vehicle:
    name: str
    start_location: str
    end_location: str

    def to_payload(self) -> dict:
        return {"name": self.name, "start_location": self.start_location, "end_location": self.end_location}


@dataclass(slots=True)
class Service:
    name: str
    location: str
    duration: int

    def to_payload(self) -> dict:
        return {"name": self.name, "location": self.location, "duration": self.duration}


@dataclass(slots=True)
class OptimizationRequest:
    locations: List[Location]
    vehicles: List[Vehicle]
    services: List[Service]
    objectives: tuple[str, ...] = DEFAULT_OBJECTIVES
    # service name -> package reference
    service_references: dict[str, str] = field(default_factory=dict)

    def to_payload(self) -> dict:
        return {
            "version": 1,
            "locations": [location.to_payload() for location in self.locations],
            "vehicles": [vehicle.to_payload() for vehicle in self.vehicles],
            "services": [service.to_payload() for service in self.services],
            "options": {"objectives": list(self.objectives)},
        }


@dataclass(slots=True)
class Immediate:
    """Provider answered with the solution inline."""

    solution: dict


@dataclass(slots=True)
class Pending:
    """Provider accepted the problem; the solution must be polled for."""

    submission_id: str


SubmissionResult = Union[Immediate, Pending]


@dataclass(slots=True)
class OptimizedStop:
    reference: str
    service_name: str
    order: int
    eta: Optional[str]
    location: Optional[str] = None


@dataclass(slots=True)
class UnroutedPackage:
    reference: str
    reason: str


@dataclass(slots=True)
class OptimizationResult:
    stops: List[OptimizedStop]
    unrouted: List[UnroutedPackage]
    provider: str
    metadata: dict = field(default_factory=dict)

    @property
    def unrouted_references(self) -> set[str]:
        return {package.reference for package in self.unrouted}
