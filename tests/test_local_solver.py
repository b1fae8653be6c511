import asyncio
from datetime import datetime, timezone

import pytest

from src.tournee.models.domain import Depot, PackageManifestEntry
from src.tournee.models.errors import OptimizeError
from src.tournee.services.optimization.local_solver import LocalOptimizationProvider, solve_sequence
from src.tournee.services.optimization.models import Immediate
from src.tournee.services.optimization.service import RouteOptimizer

DEPOT = Depot(code="depot", latitude=48.8566, longitude=2.3522)
DEPARTURE = datetime(2025, 9, 11, 8, 0, tzinfo=timezone.utc)


def _entry(ref: str, lat: float, lon: float) -> PackageManifestEntry:
    return PackageManifestEntry(
        reference=ref,
        recipient_name=ref,
        address_lines=(),
        postal_code=None,
        city=None,
        latitude=lat,
        longitude=lon,
        status=None,
        sequence_hint=None,
    )


def _provider() -> LocalOptimizationProvider:
    return LocalOptimizationProvider(average_speed_kmh=30, time_limit_seconds=1, departure=DEPARTURE)


def test_solution_has_provider_shape():
    optimizer = RouteOptimizer(_provider(), service_duration_seconds=300)
    request, _ = optimizer.build_request([_entry("P1", 48.87, 2.36), _entry("P2", 48.84, 2.32)], DEPOT)

    solution = solve_sequence(request, average_speed_kmh=30, time_limit_seconds=1, departure=DEPARTURE)

    stops = solution["routes"][0]["stops"]
    assert [stop["type"] for stop in stops] == ["start", "service", "service", "end"]
    assert stops[0]["eta"] == "2025-09-11T08:00:00Z"
    assert sorted(service for stop in stops[1:-1] for service in stop["services"]) == ["delivery-P1", "delivery-P2"]
    assert solution["dropped"] == {"services": [], "shipments": []}
    etas = [stop["eta"] for stop in stops]
    assert etas == sorted(etas)


def test_visiting_order_follows_geography():
    # Corners of a rectangle with the depot on the fourth one, given out of
    # order. Walking the perimeter is the only shortest tour, in either direction.
    manifest = [
        _entry("NORTH_EAST", 48.8866, 2.3922),
        _entry("EAST", 48.8566, 2.3922),
        _entry("NORTH", 48.8866, 2.3522),
    ]
    result = asyncio.run(RouteOptimizer(_provider()).optimize(manifest, DEPOT))

    order = [stop.reference for stop in result.stops]
    assert order in (["EAST", "NORTH_EAST", "NORTH"], ["NORTH", "NORTH_EAST", "EAST"])
    assert result.provider == "local"
    assert result.unrouted == []
    assert all(stop.eta.endswith("Z") for stop in result.stops)


def test_submit_is_immediate():
    optimizer = RouteOptimizer(_provider())
    request, _ = optimizer.build_request([_entry("P1", 48.87, 2.36)], DEPOT)

    submission = asyncio.run(_provider().submit(request))
    assert isinstance(submission, Immediate)


def test_poll_is_rejected():
    with pytest.raises(OptimizeError):
        asyncio.run(_provider().poll("anything"))
