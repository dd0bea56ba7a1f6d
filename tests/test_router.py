import pytest
from fastapi.testclient import TestClient

from styleme.core.entitlements import EntitlementGate
from styleme.core.errors import EntitlementError, RateLimitError
from styleme.core.preferences_ops import TryOnPreferencesStore
from styleme.core.storage_ops import InMemoryStorage
from styleme.core.user_history_ops import HISTORY_COLLECTION, TryOnHistory
from styleme.main import app
from styleme.models import GarmentType, HistoryEntry, SubscriptionPackage, TryOnResult
from styleme.routers.dependencies import (
    get_gate,
    get_history,
    get_orchestrator,
    get_preferences,
)

from .conftest import FakeOracle

RESULT = TryOnResult(
    uri="https://cdn.example.com/r.jpg",
    confidence=0.95,
    processing_time_ms=30000,
    provider="fashn.ai",
    model="tryon-max",
    job_id="abc",
)

PAYLOAD = {
    "user_image": {"uri": "/photos/me.jpg", "width": 1024, "height": 1024},
    "garment_image": {"uri": "/photos/shirt.png", "width": 1024, "height": 1024},
    "garment_type": "upper_body",
}


class StubOrchestrator:
    def __init__(self, error=None):
        self.error = error
        self.requests = []

    async def run(self, request):
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return RESULT


@pytest.fixture
def storage() -> InMemoryStorage:
    return InMemoryStorage()


@pytest.fixture
def client(storage: InMemoryStorage):
    package = SubscriptionPackage(
        identifier="$rc_monthly", product_id="premium_monthly", offering_id="default"
    )
    gate = EntitlementGate(storage, FakeOracle(subscribed=True, packages=[package]))
    preferences = TryOnPreferencesStore(storage)
    history = TryOnHistory(storage, preferences=preferences)
    app.dependency_overrides[get_gate] = lambda: gate
    app.dependency_overrides[get_history] = lambda: history
    app.dependency_overrides[get_preferences] = lambda: preferences
    app.dependency_overrides[get_orchestrator] = lambda: StubOrchestrator()
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_tryon_success(client: TestClient) -> None:
    response = client.post("/api/v1/tryon", json=PAYLOAD)

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["result"]["uri"] == RESULT.uri
    assert body["usage"]["limit"] == 50


def test_entitlement_error_maps_to_402(client: TestClient) -> None:
    app.dependency_overrides[get_orchestrator] = lambda: StubOrchestrator(
        EntitlementError("Upgrade to Premium", can_upgrade=True)
    )

    response = client.post("/api/v1/tryon", json=PAYLOAD)

    assert response.status_code == 402
    detail = response.json()["detail"]
    assert detail["kind"] == "entitlement"
    assert detail["action"] == "upgrade"
    assert detail["can_upgrade"] is True


def test_rate_limit_error_maps_to_429(client: TestClient) -> None:
    app.dependency_overrides[get_orchestrator] = lambda: StubOrchestrator(
        RateLimitError("slow down")
    )

    response = client.post("/api/v1/tryon", json=PAYLOAD)

    assert response.status_code == 429
    assert response.json()["detail"]["action"] == "retry_later"


def test_rejects_unknown_garment_type(client: TestClient) -> None:
    response = client.post("/api/v1/tryon", json={**PAYLOAD, "garment_type": "hat"})

    assert response.status_code == 422


def test_usage_and_outfit_allowance(client: TestClient) -> None:
    usage = client.get("/api/v1/usage").json()
    assert (usage["used"], usage["remaining"], usage["is_subscribed"]) == (0, 50, True)

    allowance = client.get("/api/v1/outfits/allowance", params={"current_count": 5}).json()
    assert allowance["can_create"] is True


def test_subscription_purchase_and_restore(client: TestClient) -> None:
    assert client.get("/api/v1/subscription").json()["is_subscribed"] is True

    purchase = client.post(
        "/api/v1/subscription/purchase",
        json={"package_id": "premium_monthly", "fetch_token": "tok"},
    )
    assert purchase.json()["success"] is True

    restore = client.post("/api/v1/subscription/restore")
    assert restore.json()["is_subscribed"] is True


def test_history_endpoints(client: TestClient, storage: InMemoryStorage) -> None:
    entry = HistoryEntry(
        id="entry-1",
        timestamp="2026-10-17T12:00:00",
        user_image="/photos/me.jpg",
        garment_image="/photos/shirt.png",
        result_image=RESULT.uri,
        garment_type=GarmentType.DRESS,
        confidence=RESULT.confidence,
        provider=RESULT.provider,
        model=RESULT.model,
        job_id=RESULT.job_id,
    )
    storage._collections[HISTORY_COLLECTION] = [entry.model_dump(mode="json")]

    items = client.get("/api/v1/history").json()["items"]
    assert [item["id"] for item in items] == ["entry-1"]

    favorite = client.post("/api/v1/history/entry-1/favorite").json()
    assert favorite["is_favorite"] is True
    favorites = client.get("/api/v1/history", params={"favorites_only": True}).json()
    assert len(favorites["items"]) == 1

    assert client.delete("/api/v1/history/missing").status_code == 404
    assert client.delete("/api/v1/history/entry-1").status_code == 200
    assert client.delete("/api/v1/history").json()["success"] is True
    assert client.get("/api/v1/history").json()["items"] == []


def test_health(client: TestClient) -> None:
    assert client.get("/api/v1/health").json()["status"] == "healthy"


def test_subscription_packages(client: TestClient) -> None:
    body = client.get("/api/v1/subscription/packages").json()

    assert body["success"] is True
    assert [p["product_id"] for p in body["packages"]] == ["premium_monthly"]


def test_preferences_read_and_partial_update(client: TestClient) -> None:
    assert client.get("/api/v1/preferences").json()["save_to_history"] is True

    updated = client.patch("/api/v1/preferences", json={"save_to_history": False})
    assert updated.status_code == 200
    assert updated.json()["save_to_history"] is False
    assert updated.json()["max_history_items"] == 20

    prefs = client.get("/api/v1/preferences").json()
    assert (prefs["save_to_history"], prefs["enhance_quality"]) == (False, True)

    assert client.patch("/api/v1/preferences", json={"max_history_items": 0}).status_code == 422
