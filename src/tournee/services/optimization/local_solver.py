"""In-process sequence optimization with OR-Tools.

Used when no external optimization provider is configured. The problem is the
same one sent to Mapbox (one vehicle, depot start/end, one service per parcel)
and the answer is shaped like a Mapbox solution, so the caller cannot tell the
two providers apart.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone

from ortools.constraint_solver import pywrapcp, routing_enums_pb2

from ...config import settings
from ...models.errors import OptimizeError, OptimizeErrorKind
from ..geospatial import travel_time_matrix
from .models import Immediate, OptimizationRequest, SubmissionResult

logger = logging.getLogger(__name__)

HORIZON_SECONDS = 7 * 24 * 3600


def _format_eta(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def solve_sequence(
    request: OptimizationRequest,
    *,
    average_speed_kmh: float,
    time_limit_seconds: int,
    departure: datetime,
) -> dict:
    """Order the request's services for its single vehicle.

    Returns ``{"routes": [...], "dropped": {...}}`` with ``start``, ``service``
    and ``end`` stops carrying ISO-8601 ETAs.
    """
    if len(request.vehicles) != 1:
        raise OptimizeError(OptimizeErrorKind.PROVIDER_REJECTED, "Local solver handles exactly one vehicle.")
    vehicle = request.vehicles[0]
    locations = {location.name: location for location in request.locations}
    if vehicle.start_location not in locations:
        raise OptimizeError(OptimizeErrorKind.PROVIDER_REJECTED, f"Unknown start location '{vehicle.start_location}'.")
    for service in request.services:
        if service.location not in locations:
            raise OptimizeError(OptimizeErrorKind.PROVIDER_REJECTED, f"Unknown service location '{service.location}'.")

    # Node 0 is the depot, node i (i >= 1) is request.services[i - 1].
    depot = locations[vehicle.start_location]
    points = [(depot.latitude, depot.longitude)] + [
        (locations[service.location].latitude, locations[service.location].longitude) for service in request.services
    ]
    service_times = [0] + [service.duration for service in request.services]
    travel = travel_time_matrix(points, average_speed_kmh)

    order = list(range(1, len(points)))
    arrivals: dict[int, int] = {}
    return_time = 0

    if request.services:
        manager = pywrapcp.RoutingIndexManager(len(points), 1, 0)
        routing = pywrapcp.RoutingModel(manager)

        def time_callback(from_index: int, to_index: int) -> int:
            from_node = manager.IndexToNode(from_index)
            to_node = manager.IndexToNode(to_index)
            return travel[from_node][to_node] + service_times[from_node]

        transit_callback_index = routing.RegisterTransitCallback(time_callback)
        routing.SetArcCostEvaluatorOfAllVehicles(transit_callback_index)
        routing.AddDimension(transit_callback_index, 0, HORIZON_SECONDS, True, "Time")
        time_dimension = routing.GetDimensionOrDie("Time")

        search_parameters = pywrapcp.DefaultRoutingSearchParameters()
        search_parameters.first_solution_strategy = routing_enums_pb2.FirstSolutionStrategy.PATH_CHEAPEST_ARC
        search_parameters.local_search_metaheuristic = (
            routing_enums_pb2.LocalSearchMetaheuristic.GUIDED_LOCAL_SEARCH
        )
        search_parameters.time_limit.FromSeconds(time_limit_seconds)

        assignment = routing.SolveWithParameters(search_parameters)
        if assignment:
            order = []
            index = routing.Start(0)
            while not routing.IsEnd(index):
                node = manager.IndexToNode(index)
                if node != 0:
                    order.append(node)
                    arrivals[node] = assignment.Value(time_dimension.CumulVar(index))
                index = assignment.Value(routing.NextVar(index))
            return_time = assignment.Value(time_dimension.CumulVar(index))
        else:
            logger.warning("OR-Tools found no sequence, keeping manifest order")

    if not arrivals:
        elapsed = 0
        previous = 0
        for node in order:
            elapsed += service_times[previous] + travel[previous][node]
            arrivals[node] = elapsed
            previous = node
        return_time = elapsed + service_times[previous] + travel[previous][0]

    stops = [{"type": "start", "location": vehicle.start_location, "eta": _format_eta(departure), "odometer": 0}]
    for node in order:
        service = request.services[node - 1]
        stops.append(
            {
                "type": "service",
                "location": service.location,
                "eta": _format_eta(departure + timedelta(seconds=arrivals[node])),
                "duration": service.duration,
                "services": [service.name],
            }
        )
    stops.append(
        {
            "type": "end",
            "location": vehicle.end_location,
            "eta": _format_eta(departure + timedelta(seconds=return_time)),
        }
    )
    return {"routes": [{"vehicle": vehicle.name, "stops": stops}], "dropped": {"services": [], "shipments": []}}


class LocalOptimizationProvider:
    """Synchronous provider: every submission is answered immediately."""

    name = "local"

    def __init__(
        self,
        average_speed_kmh: float | None = None,
        time_limit_seconds: int | None = None,
        departure: datetime | None = None,
    ) -> None:
        self.average_speed_kmh = average_speed_kmh or settings.local_average_speed_kmh
        self.time_limit_seconds = time_limit_seconds or settings.solver_time_limit_seconds
        self.departure = departure

    async def submit(self, request: OptimizationRequest) -> SubmissionResult:
        departure = self.departure or datetime.now(timezone.utc).replace(second=0, microsecond=0)
        logger.info(f"Solving {len(request.services)} stops locally with OR-Tools")
        # OR-Tools is CPU bound; keep the event loop free.
        solution = await asyncio.to_thread(
            solve_sequence,
            request,
            average_speed_kmh=self.average_speed_kmh,
            time_limit_seconds=self.time_limit_seconds,
            departure=departure,
        )
        return Immediate(solution=solution)

    async def poll(self, submission_id: str) -> SubmissionResult:
        raise OptimizeError(
            OptimizeErrorKind.PROVIDER_REJECTED,
            f"Local solver has no pending submissions (asked for {submission_id}).",
        )
