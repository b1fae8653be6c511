import httpx
import pytest
from fastapi.testclient import TestClient

from src.tournee.api import deps
from src.tournee.config import settings
from src.tournee.main import create_app
from src.tournee.services.cache.detail_cache import DetailCache


def _article(ref: str, lat: float, lon: float) -> dict:
    return {
        "metier": "COLIS",
        "refExterneArticle": ref,
        "nomDestinataire": f"Client {ref}",
        "LibelleVoieOrigineDestinataire": "RUE TEST",
        "codePostalOrigineDestinataire": "75001",
        "LibelleLocaliteOrigineDestinataire": "PARIS",
        "coordXDestinataire": lon,
        "coordYDestinataire": lat,
    }


class CarrierStub:
    """Answers like the carrier and Mapbox, with switchable failures."""

    def __init__(self) -> None:
        self.auth_status = 200
        self.tour_status = 200
        self.articles = [_article("PKG1", 48.86, 2.34), _article("PKG2", 48.87, 2.35)]
        self.dropped: list[str] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        host = request.url.host
        if host == "auth.carrier.test":
            if self.auth_status != 200:
                return httpx.Response(self.auth_status, text="denied")
            return httpx.Response(200, json={"tokens": {"SsoHopps": "sso-api-token"}})
        if host == "tour.carrier.test" and "getTournee" in request.url.path:
            if self.tour_status != 200:
                return httpx.Response(self.tour_status, text="no tour")
            return httpx.Response(200, json={"LstLieuArticle": self.articles})
        if host == "tour.carrier.test":
            reference = request.url.path.rsplit("/", 1)[-1]
            return httpx.Response(200, json={"success": True, "data": {"ref_colis": reference, "ville": "Paris"}})
        if host == "mapbox.test":
            stops = [
                {
                    "type": "service",
                    "location": f"package-{ref}",
                    "eta": f"2025-09-11T08:{10 + i}:00Z",
                    "services": [f"delivery-{ref}"],
                }
                for i, ref in enumerate(article["refExterneArticle"] for article in self.articles)
                if f"delivery-{ref}" not in self.dropped
            ]
            return httpx.Response(
                200,
                json={
                    "routes": [{"vehicle": "vehicle-1", "stops": stops}],
                    "dropped": {"services": self.dropped, "shipments": []},
                },
            )
        raise AssertionError(f"unexpected request {request.url}")


@pytest.fixture
def stub() -> CarrierStub:
    return CarrierStub()


@pytest.fixture
def api_client(stub: CarrierStub, monkeypatch: pytest.MonkeyPatch) -> TestClient:
    monkeypatch.setattr(settings, "carrier_auth_url", "https://auth.carrier.test")
    monkeypatch.setattr(settings, "carrier_tournee_url", "https://tour.carrier.test")
    monkeypatch.setattr(settings, "carrier_detail_url", None)
    monkeypatch.setattr(settings, "detail_batch_delay_seconds", 0)
    monkeypatch.setattr(settings, "optimization_provider", "mapbox")
    monkeypatch.setattr(settings, "mapbox_token", "pk.test")
    monkeypatch.setattr(settings, "mapbox_base_url", "https://mapbox.test")
    monkeypatch.setattr(settings, "optimization_poll_interval_seconds", 0)

    app = create_app()
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(stub))
    cache = DetailCache(ttl_seconds=3600, max_entries=100)
    app.dependency_overrides[deps.get_http_client] = lambda: http_client
    app.dependency_overrides[deps.get_cache] = lambda: cache
    return TestClient(app)


LOGIN = {"username": "U", "password": "P", "company_code": "C"}


def test_root_and_health(api_client: TestClient):
    assert api_client.get("/").json()["status"] == "running"
    assert api_client.get("/api/health").json() == {"status": "ok"}


def test_optimizer_health_reports_active_provider(api_client: TestClient, monkeypatch: pytest.MonkeyPatch):
    assert api_client.get("/api/health/optimizer").json()["active_provider"] == "mapbox"
    monkeypatch.setattr(settings, "optimization_provider", "local")
    assert api_client.get("/api/health/optimizer").json()["active_provider"] == "local"


def test_carrier_auth(api_client: TestClient):
    response = api_client.post("/api/carrier/auth", json=LOGIN)
    assert response.status_code == 200
    body = response.json()
    assert body["matricule"] == "C_U"
    assert body["token"] == "sso-api-token"


def test_carrier_auth_rejected(api_client: TestClient, stub: CarrierStub):
    stub.auth_status = 401
    response = api_client.post("/api/carrier/auth", json=LOGIN)
    assert response.status_code == 401
    assert response.json()["detail"]["code"] == "INVALID_CREDENTIALS"


def test_carrier_auth_validation(api_client: TestClient):
    response = api_client.post("/api/carrier/auth", json={"username": " ", "password": "P", "company_code": "C"})
    assert response.status_code == 422


def test_carrier_packages(api_client: TestClient):
    response = api_client.post("/api/carrier/packages", json={**LOGIN, "tour_date": "2025-09-11"})
    assert response.status_code == 200
    body = response.json()
    assert body["matricule"] == "C_U"
    assert body["tour_date"] == "2025-09-11"
    assert body["count"] == 2
    assert [package["reference"] for package in body["packages"]] == ["PKG1", "PKG2"]


def test_carrier_packages_not_found(api_client: TestClient, stub: CarrierStub):
    stub.tour_status = 404
    response = api_client.post("/api/carrier/packages", json={**LOGIN, "tour_date": "2025-09-11"})
    assert response.status_code == 404
    assert response.json()["detail"]["code"] == "NOT_FOUND"


def test_carrier_details_and_cache_endpoints(api_client: TestClient):
    response = api_client.post("/api/carrier/details", json={"token": "sso-api-token", "references": ["PKG1", "PKG2"]})
    assert response.status_code == 200
    body = response.json()
    assert body["succeeded"] == 2 and body["failed"] == 0
    assert body["results"][0]["detail"]["city"] == "Paris"

    stats = api_client.get("/api/health/cache").json()
    assert stats["size"] == 2

    cleared = api_client.delete("/api/health/cache").json()
    assert cleared == {"status": "cleared", "removed": 2}


def test_optimization_endpoint_with_local_solver(api_client: TestClient, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(settings, "optimization_provider", "local")
    monkeypatch.setattr(settings, "solver_time_limit_seconds", 1)
    payload = {
        "packages": [
            {"reference": "A", "latitude": 48.86, "longitude": 2.34},
            {"reference": "B", "latitude": 48.87, "longitude": 2.35},
            {"reference": "C"},
        ]
    }
    response = api_client.post("/api/optimization/optimize", json=payload)
    assert response.status_code == 200
    body = response.json()
    assert body["provider"] == "local"
    assert sorted(stop["reference"] for stop in body["stops"]) == ["A", "B"]
    assert body["unrouted"] == [{"reference": "C", "reason": "missing_coordinates"}]


def test_optimization_endpoint_all_dropped(api_client: TestClient):
    response = api_client.post("/api/optimization/optimize", json={"packages": [{"reference": "A"}]})
    assert response.status_code == 422
    assert response.json()["detail"]["code"] == "ALL_DROPPED"


def test_tournee_pipeline_endpoint(api_client: TestClient, stub: CarrierStub):
    stub.dropped = ["delivery-PKG2"]
    response = api_client.post("/api/tournees/optimize", json={**LOGIN, "tour_date": "2025-09-11"})
    assert response.status_code == 200
    body = response.json()
    assert body["matricule"] == "C_U"
    assert body["total"] == 2
    assert body["routed_count"] == 1
    assert [(package["reference"], package["optimization_status"]) for package in body["packages"]] == [
        ("PKG1", "routed"),
        ("PKG2", "unrouted"),
    ]
    assert body["packages"][1]["unrouted_reason"] == "dropped_by_provider"
    assert body["packages"][0]["detail_status"] == "ok"


def test_tournee_pipeline_failure_reports_stage(api_client: TestClient, stub: CarrierStub):
    stub.auth_status = 401
    response = api_client.post("/api/tournees/optimize", json={**LOGIN, "tour_date": "2025-09-11"})
    assert response.status_code == 401
    detail = response.json()["detail"]
    assert detail["code"] == "INVALID_CREDENTIALS"
    assert detail["stage"] == "authenticating"


def test_carrier_not_configured(api_client: TestClient, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(settings, "carrier_auth_url", None)
    response = api_client.post("/api/carrier/auth", json=LOGIN)
    assert response.status_code == 503
    assert response.json()["detail"]["code"] == "NOT_CONFIGURED"
