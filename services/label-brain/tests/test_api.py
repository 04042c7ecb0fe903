"""Tests for the HTTP surface: envelopes, status codes and the deadline."""

import asyncio
import sys
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from fastapi.testclient import TestClient

sys.path.insert(0, str(Path(__file__).parent.parent))

import main
from conftest import OWNER
from firestore_store import FirestoreExtractionRepository, FirestoreInventoryStore
from matching import LinearScanMatcher
from models import OcrResult
from ocr_client import OcrClient, OcrServiceUnavailable
from stores import InMemoryExtractionRepository

IMAGE_URL = "https://storage.example.com/users/user-123/labels/abc.jpg"


@pytest.fixture
def api(monkeypatch, ocr_client, llm_client, inventory, repository) -> TestClient:
    """TestClient wired to stub providers; lifespan is not run."""
    monkeypatch.setattr(main, "_ocr_client", ocr_client)
    monkeypatch.setattr(main, "_llm_client", llm_client)
    monkeypatch.setattr(main, "_inventory", inventory)
    monkeypatch.setattr(main, "_repository", repository)
    monkeypatch.setattr(main, "_matcher", LinearScanMatcher(inventory))
    return TestClient(main.app)


def _post(api: TestClient, user: str | None = OWNER, body: dict | None = None):
    headers = {"X-Authenticated-User": user} if user else {}
    payload = body if body is not None else {"photoReference": IMAGE_URL, "requesterId": OWNER}
    return api.post("/api/v1/extract", json=payload, headers=headers)


class TestExtractEndpoint:
    def test_success_envelope(self, api: TestClient):
        resp = _post(api)
        assert resp.status_code == 200

        data = resp.json()
        assert data["success"] is True
        assert "error" not in data
        extraction = data["extraction"]
        assert extraction["rawOcrText"].startswith("BAROLO")
        assert extraction["wasManuallyEdited"] is False
        assert 0.0 <= extraction["overallConfidence"] <= 1.0
        assert extraction["extractedFields"]["name"]["value"] == "Barolo Monfortino"
        assert "grapes" not in extraction["extractedFields"]
        assert data["suggestedMatches"][0]["id"] == "wine-1"
        assert data["suggestedMatches"][0]["createdBy"] == OWNER

    def test_no_text_is_ok_but_unsuccessful(self, api: TestClient, ocr_client: MagicMock, repository):
        ocr_client.detect_text = AsyncMock(return_value=OcrResult())
        resp = _post(api)
        assert resp.status_code == 200
        assert resp.json()["success"] is False
        assert resp.json()["error"]
        assert len(repository) == 0

    def test_unauthenticated(self, api: TestClient):
        resp = _post(api, user=None)
        assert resp.status_code == 401
        assert resp.json() == {"success": False, "error": "User must be authenticated"}

    def test_permission_denied(self, api: TestClient):
        resp = _post(api, user="someone-else")
        assert resp.status_code == 403
        assert resp.json()["success"] is False

    def test_malformed_body(self, api: TestClient):
        resp = _post(api, body={"photoReference": IMAGE_URL})
        assert resp.status_code == 400
        assert resp.json() == {"success": False, "error": "Invalid request"}

    def test_bad_reference(self, api: TestClient):
        resp = _post(api, body={"photoReference": "label.jpg", "requesterId": OWNER})
        assert resp.status_code == 400

    def test_ocr_outage_hides_provider_detail(self, api: TestClient, ocr_client: MagicMock):
        ocr_client.detect_text = AsyncMock(side_effect=OcrServiceUnavailable("10.0.0.7 refused connection"))
        resp = _post(api)
        assert resp.status_code == 502
        assert resp.json()["success"] is False
        assert "10.0.0.7" not in resp.json()["error"]

    def test_deadline_exceeded(self, api: TestClient, monkeypatch, llm_client: MagicMock, repository):
        async def slow_complete(prompt: str) -> str:
            await asyncio.sleep(5)
            return "{}"

        llm_client.complete = slow_complete
        monkeypatch.setattr(main.settings, "REQUEST_TIMEOUT_SECONDS", 0.05)

        resp = _post(api)

        assert resp.status_code == 504
        assert resp.json()["success"] is False
        assert len(repository) == 0

    def test_unconfigured_ocr(self, api: TestClient, monkeypatch):
        monkeypatch.setattr(main, "_ocr_client", None)
        resp = _post(api)
        assert resp.status_code == 503

    def test_slow_matching_still_returns_saved_extraction(self, api: TestClient, monkeypatch, repository):
        async def slow_find(fields, owner_id):
            await asyncio.sleep(5)
            return []

        matcher = MagicMock()
        matcher.find_candidates = slow_find
        monkeypatch.setattr(main, "_matcher", matcher)
        monkeypatch.setattr(main.settings, "REQUEST_TIMEOUT_SECONDS", 0.2)
        monkeypatch.setattr(main.settings, "MATCH_TIMEOUT_SECONDS", 0.05)

        resp = _post(api)

        assert resp.status_code == 200
        data = resp.json()
        assert data["success"] is True
        assert data["suggestedMatches"] == []
        assert len(repository) == 1
        assert repository.get(data["extraction"]["id"]) is not None

    def test_malformed_ocr_body_is_enveloped(self, api: TestClient, monkeypatch):
        client = OcrClient(base_url="http://fake-vision", api_key="test-key", retry_attempts=1)
        response = httpx.Response(200, json={"responses": [{"error": "quota"}]})
        monkeypatch.setattr(client._client, "post", AsyncMock(return_value=response))
        monkeypatch.setattr(main, "_ocr_client", client)

        resp = _post(api)

        assert resp.status_code == 502
        assert resp.headers["content-type"].startswith("application/json")
        assert resp.json()["success"] is False

    def test_unexpected_error_is_enveloped(self, api: TestClient, ocr_client: MagicMock):
        ocr_client.detect_text = AsyncMock(side_effect=RuntimeError("boom at 10.0.0.7"))
        client = TestClient(main.app, raise_server_exceptions=False)

        resp = _post(client)

        assert resp.status_code == 500
        assert resp.json() == {"success": False, "error": "Label extraction failed"}


class TestHealth:
    def test_health_reports_services(self, api: TestClient, ocr_client: MagicMock, llm_client: MagicMock):
        ocr_client.health = AsyncMock(return_value="configured")
        llm_client.health = AsyncMock(return_value="configured")

        resp = api.get("/health")

        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "ok"
        assert data["services"] == {"ocr": "configured", "llm": "configured", "store": "ok"}
        assert "store" in data["latency"]

    def test_health_degraded_without_store(self, api: TestClient, monkeypatch, ocr_client: MagicMock, llm_client: MagicMock):
        ocr_client.health = AsyncMock(return_value="configured")
        llm_client.health = AsyncMock(return_value="configured")
        monkeypatch.setattr(main, "_inventory", None)

        data = api.get("/health").json()

        assert data["status"] == "degraded"
        assert data["services"]["store"] == "not_configured"


class TestLifespan:
    @pytest.fixture(autouse=True)
    def _reset_globals(self, monkeypatch):
        for name in ("_ocr_client", "_llm_client", "_store_client", "_inventory", "_repository", "_matcher"):
            monkeypatch.setattr(main, name, None)
        monkeypatch.setattr(main.settings, "VISION_API_KEY", "test-key")

    def test_firestore_backend_wired(self, monkeypatch):
        monkeypatch.setattr(main.settings, "STORE_BACKEND", "firestore")
        monkeypatch.setattr(main.settings, "FIRESTORE_PROJECT_ID", "cellar-test")

        with TestClient(main.app):
            assert isinstance(main._inventory, FirestoreInventoryStore)
            assert isinstance(main._repository, FirestoreExtractionRepository)
            assert main._matcher is not None

    def test_memory_backend_is_opt_in(self, monkeypatch):
        monkeypatch.setattr(main.settings, "STORE_BACKEND", "memory")

        with TestClient(main.app):
            assert isinstance(main._repository, InMemoryExtractionRepository)

    def test_missing_store_disables_extraction(self, monkeypatch):
        monkeypatch.setattr(main.settings, "STORE_BACKEND", "firestore")
        monkeypatch.setattr(main.settings, "FIRESTORE_PROJECT_ID", "")

        with TestClient(main.app) as client:
            resp = _post(client)
            store_status = client.get("/health").json()["services"]["store"]

        assert resp.status_code == 503
        assert resp.json()["success"] is False
        assert store_status == "not_configured"
