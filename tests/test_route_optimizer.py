import asyncio
import json
import time

import httpx
import pytest

from src.tournee.models.domain import Depot, PackageManifestEntry
from src.tournee.models.errors import OptimizeError, OptimizeErrorKind
from src.tournee.services.optimization.mapbox_client import MapboxOptimizationProvider
from src.tournee.services.optimization.models import Immediate, Pending
from src.tournee.services.optimization.service import RouteOptimizer, map_solution

DEPOT = Depot(code="depot", latitude=48.8566, longitude=2.3522)


def _entry(ref: str, lat: float | None = 48.86, lon: float | None = 2.34) -> PackageManifestEntry:
    return PackageManifestEntry(
        reference=ref,
        recipient_name=f"Client {ref}",
        address_lines=("1 rue de la Paix",),
        postal_code="75002",
        city="Paris",
        latitude=lat,
        longitude=lon,
        status=None,
        sequence_hint=None,
    )


def _service_stop(ref: str, eta: str) -> dict:
    return {"type": "service", "location": f"package-{ref}", "eta": eta, "services": [f"delivery-{ref}"]}


def _solution(*stops: dict, dropped: list[str] | None = None) -> dict:
    return {
        "routes": [
            {
                "vehicle": "vehicle-1",
                "stops": [
                    {"type": "start", "location": "depot", "eta": "2025-09-11T08:00:00Z"},
                    *stops,
                    {"type": "end", "location": "depot", "eta": "2025-09-11T12:00:00Z"},
                ],
            }
        ],
        "dropped": {"services": dropped or [], "shipments": []},
    }


class ScriptedProvider:
    """Returns queued submission results in order."""

    name = "scripted"

    def __init__(self, submit_result, poll_results=()):
        self.submit_result = submit_result
        self.poll_results = list(poll_results)
        self.submitted = []
        self.polls = 0

    async def submit(self, request):
        self.submitted.append(request)
        return self.submit_result

    async def poll(self, submission_id):
        self.polls += 1
        if self.poll_results:
            return self.poll_results.pop(0)
        return Pending(submission_id=submission_id)


def _optimize(optimizer: RouteOptimizer, manifest):
    return asyncio.run(optimizer.optimize(manifest, DEPOT))


def test_request_payload_shape():
    optimizer = RouteOptimizer(ScriptedProvider(Immediate({})), service_duration_seconds=300)
    request, unrouted = optimizer.build_request([_entry("P1", 48.86, 2.34)], DEPOT)

    assert unrouted == []
    assert request.to_payload() == {
        "version": 1,
        "locations": [
            {"name": "depot", "coordinates": [2.3522, 48.8566]},
            {"name": "package-P1", "coordinates": [2.34, 48.86]},
        ],
        "vehicles": [{"name": "vehicle-1", "start_location": "depot", "end_location": "depot"}],
        "services": [{"name": "delivery-P1", "location": "package-P1", "duration": 300}],
        "options": {"objectives": ["min-schedule-completion-time"]},
    }


def test_immediate_solution_keeps_visiting_order():
    solution = _solution(
        _service_stop("P2", "2025-09-11T08:10:00Z"),
        _service_stop("P1", "2025-09-11T08:25:00Z"),
    )
    provider = ScriptedProvider(Immediate(solution))
    result = _optimize(RouteOptimizer(provider), [_entry("P1"), _entry("P2")])

    assert [(stop.reference, stop.order, stop.eta) for stop in result.stops] == [
        ("P2", 1, "2025-09-11T08:10:00Z"),
        ("P1", 2, "2025-09-11T08:25:00Z"),
    ]
    assert result.unrouted == []
    assert result.provider == "scripted"


def test_dropped_services_are_unrouted():
    solution = _solution(
        _service_stop("P1", "2025-09-11T08:10:00Z"),
        _service_stop("P2", "2025-09-11T08:25:00Z"),
        dropped=["delivery-P3"],
    )
    manifest = [_entry("P1"), _entry("P2"), _entry("P3")]
    result = _optimize(RouteOptimizer(ScriptedProvider(Immediate(solution))), manifest)

    assert [stop.reference for stop in result.stops] == ["P1", "P2"]
    assert [(item.reference, item.reason) for item in result.unrouted] == [("P3", "dropped_by_provider")]
    assert len(result.stops) == len(manifest) - len(result.unrouted)


def test_missing_coordinates_are_not_submitted():
    solution = _solution(_service_stop("P1", "2025-09-11T08:10:00Z"))
    provider = ScriptedProvider(Immediate(solution))
    result = _optimize(RouteOptimizer(provider), [_entry("P1"), _entry("P2", lat=None, lon=None)])

    assert [service.name for service in provider.submitted[0].services] == ["delivery-P1"]
    assert [(item.reference, item.reason) for item in result.unrouted] == [("P2", "missing_coordinates")]


def test_package_absent_from_solution_is_reported():
    solution = _solution(_service_stop("P1", "2025-09-11T08:10:00Z"))
    result = _optimize(RouteOptimizer(ScriptedProvider(Immediate(solution))), [_entry("P1"), _entry("P2")])
    assert [(item.reference, item.reason) for item in result.unrouted] == [("P2", "not_in_solution")]


def test_pending_submission_is_polled_until_solved():
    solution = _solution(_service_stop("P1", "2025-09-11T08:10:00Z"))
    provider = ScriptedProvider(
        Pending("job-1"),
        poll_results=[Pending("job-1"), Pending("job-1"), Immediate(solution)],
    )
    optimizer = RouteOptimizer(provider, poll_interval_seconds=0, max_wait_seconds=5)

    result = _optimize(optimizer, [_entry("P1")])

    assert provider.polls == 3
    assert [stop.reference for stop in result.stops] == ["P1"]


def test_polling_times_out():
    provider = ScriptedProvider(Pending("job-1"))
    optimizer = RouteOptimizer(provider, poll_interval_seconds=0.01, max_wait_seconds=0.05)

    with pytest.raises(OptimizeError) as excinfo:
        _optimize(optimizer, [_entry("P1")])
    assert excinfo.value.kind is OptimizeErrorKind.TIMEOUT
    assert provider.polls >= 1


def test_slow_poll_is_cut_at_the_wait_limit():
    class HangingProvider(ScriptedProvider):
        async def poll(self, submission_id):
            self.polls += 1
            await asyncio.sleep(5)
            return Pending(submission_id=submission_id)

    provider = HangingProvider(Pending("job-1"))
    optimizer = RouteOptimizer(provider, poll_interval_seconds=0, max_wait_seconds=0.1)

    started = time.monotonic()
    with pytest.raises(OptimizeError) as excinfo:
        _optimize(optimizer, [_entry("P1")])
    assert excinfo.value.kind is OptimizeErrorKind.TIMEOUT
    assert provider.polls == 1
    assert time.monotonic() - started < 2


def test_everything_dropped_is_an_error():
    solution = _solution(dropped=["delivery-P1", "delivery-P2"])
    with pytest.raises(OptimizeError) as excinfo:
        _optimize(RouteOptimizer(ScriptedProvider(Immediate(solution))), [_entry("P1"), _entry("P2")])
    assert excinfo.value.kind is OptimizeErrorKind.ALL_DROPPED


def test_no_routable_package_is_all_dropped_without_provider_call():
    provider = ScriptedProvider(Immediate(_solution()))
    with pytest.raises(OptimizeError) as excinfo:
        _optimize(RouteOptimizer(provider), [_entry("P1", lat=None, lon=None)])
    assert excinfo.value.kind is OptimizeErrorKind.ALL_DROPPED
    assert provider.submitted == []


def test_empty_manifest_is_empty_result():
    provider = ScriptedProvider(Immediate(_solution()))
    result = _optimize(RouteOptimizer(provider), [])
    assert result.stops == [] and result.unrouted == []
    assert provider.submitted == []


def test_map_solution_falls_back_to_stop_location():
    optimizer = RouteOptimizer(ScriptedProvider(Immediate({})))
    request, unrouted = optimizer.build_request([_entry("P1")], DEPOT)
    solution = {"routes": [{"stops": [{"type": "service", "location": "package-P1", "eta": None}]}]}

    result = map_solution(solution, request, unrouted, provider="mapbox")
    assert [stop.reference for stop in result.stops] == ["P1"]


def _mapbox(handler) -> MapboxOptimizationProvider:
    return MapboxOptimizationProvider(
        httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        access_token="pk.test",
        base_url="https://mapbox.test",
    )


def test_mapbox_submit_and_poll():
    solution = _solution(_service_stop("P1", "2025-09-11T08:10:00Z"))
    seen = []
    polls = iter([httpx.Response(202, json={"status": "processing"}), httpx.Response(200, json=solution)])

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if request.method == "POST":
            return httpx.Response(200, json={"id": "job-42", "status": "ok"})
        return next(polls)

    optimizer = RouteOptimizer(_mapbox(handler), poll_interval_seconds=0, max_wait_seconds=5)
    result = _optimize(optimizer, [_entry("P1")])

    assert [stop.reference for stop in result.stops] == ["P1"]
    submit = seen[0]
    assert submit.url.path == "/optimized-trips/v2"
    assert submit.url.params["access_token"] == "pk.test"
    assert json.loads(submit.content)["version"] == 1
    assert [request.url.path for request in seen[1:]] == ["/optimized-trips/v2/job-42"] * 2


@pytest.mark.parametrize(
    "response, kind",
    [
        (httpx.Response(422, json={"message": "invalid location"}), OptimizeErrorKind.PROVIDER_REJECTED),
        (httpx.Response(503, text="unavailable"), OptimizeErrorKind.NETWORK),
        (httpx.Response(200, json={"id": "job-1", "status": "failed"}), OptimizeErrorKind.PROVIDER_REJECTED),
    ],
)
def test_mapbox_failures(response, kind):
    def handler(request: httpx.Request) -> httpx.Response:
        return response

    request, _ = RouteOptimizer(ScriptedProvider(None)).build_request([_entry("P1")], DEPOT)
    with pytest.raises(OptimizeError) as excinfo:
        asyncio.run(_mapbox(handler).submit(request))
    assert excinfo.value.kind is kind


def test_mapbox_transport_failure_is_network():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("dns failure", request=request)

    with pytest.raises(OptimizeError) as excinfo:
        asyncio.run(_mapbox(handler).poll("job-1"))
    assert excinfo.value.kind is OptimizeErrorKind.NETWORK


def test_mapbox_requires_token(monkeypatch):
    from src.tournee.config import settings

    monkeypatch.setattr(settings, "mapbox_token", None)
    with pytest.raises(ValueError):
        MapboxOptimizationProvider(httpx.AsyncClient())
