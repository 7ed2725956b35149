"""
Integration tests for the HTTP API.

The app runs its real lifespan against the in-memory backend, with a fake
content detector for the upload gate.
"""

import pytest
from fastapi.testclient import TestClient

from conftest import FakeContentTypeDetector
from extension_guard.main import create_app


@pytest.fixture
def detector():
    return FakeContentTypeDetector()


@pytest.fixture
def client(memory_backend_env, detector):
    app = create_app(detector=detector)
    with TestClient(app) as test_client:
        yield test_client


def fixed_by_name(client, name):
    body = client.get("/api/extensions/fixed").json()
    return next(item for item in body["data"] if item["extension"] == name)


class TestFixedExtensionRoutes:
    """Test suite for fixed extension endpoints."""

    def test_list_fixed_after_startup_seed(self, client):
        response = client.get("/api/extensions/fixed")

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert [item["extension"] for item in body["data"]] == ["bat", "cmd", "com", "cpl", "exe", "scr", "js"]
        assert all(item["blocked"] is False for item in body["data"])

    def test_toggle_fixed(self, client):
        response = client.patch("/api/extensions/fixed", json={"extension": "EXE", "blocked": True})

        assert response.status_code == 200
        assert response.json()["data"]["blocked"] is True
        assert fixed_by_name(client, "exe")["version"] == 1

    def test_stale_version_conflict(self, client):
        client.patch("/api/extensions/fixed", json={"extension": "exe", "blocked": True, "version": 0})

        response = client.patch("/api/extensions/fixed", json={"extension": "exe", "blocked": False, "version": 0})

        assert response.status_code == 409
        body = response.json()
        assert body["success"] is False
        assert body["error"]["code"] == "3007"

    def test_unknown_fixed_extension(self, client):
        response = client.patch("/api/extensions/fixed", json={"extension": "zip", "blocked": True})

        assert response.status_code == 404

    def test_invalid_extension_format(self, client):
        response = client.patch("/api/extensions/fixed", json={"extension": "ex.e", "blocked": True})

        assert response.status_code == 422
        assert response.json()["success"] is False

    def test_bulk_toggle(self, client):
        response = client.patch("/api/extensions/fixed/bulk", params={"blocked": "true"})

        assert response.status_code == 200
        assert response.json()["data"]["count"] == 7
        assert client.get("/api/extensions/blocked").json()["data"] == sorted(
            ["bat", "cmd", "com", "cpl", "exe", "scr", "js"]
        )


class TestCustomExtensionRoutes:
    """Test suite for custom extension endpoints."""

    def test_add_and_list(self, client):
        response = client.post("/api/extensions/custom", json={"extensions": "  PY, py ,Java"})

        assert response.status_code == 201
        assert [item["extension"] for item in response.json()["data"]] == ["py", "java"]

        listed = client.get("/api/extensions/custom").json()["data"]
        assert {item["extension"] for item in listed} == {"py", "java"}

    def test_fixed_name_conflict(self, client):
        response = client.post("/api/extensions/custom", json={"extensions": "exe"})

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "3004"

    def test_duplicate(self, client):
        client.post("/api/extensions/custom", json={"extensions": "py"})

        response = client.post("/api/extensions/custom", json={"extensions": "py"})

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "3003"

    def test_separator_only_input(self, client):
        response = client.post("/api/extensions/custom", json={"extensions": " , ,"})

        assert response.status_code == 422
        assert response.json()["message"] == "Please enter an extension."

    def test_delete_one(self, client):
        created = client.post("/api/extensions/custom", json={"extensions": "py, sh"}).json()["data"]

        response = client.delete(f"/api/extensions/custom/{created[0]['id']}")

        assert response.status_code == 200
        assert [item["extension"] for item in client.get("/api/extensions/custom").json()["data"]] == ["sh"]

    def test_delete_unknown(self, client):
        response = client.delete("/api/extensions/custom/does-not-exist")

        assert response.status_code == 404

    def test_delete_fixed_via_custom_route(self, client):
        exe_id = fixed_by_name(client, "exe")["id"]

        response = client.delete(f"/api/extensions/custom/{exe_id}")

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "3006"

    def test_delete_all(self, client):
        client.post("/api/extensions/custom", json={"extensions": "py, sh, rb"})

        response = client.delete("/api/extensions/custom")

        assert response.json()["data"]["count"] == 3
        assert client.get("/api/extensions/custom").json()["data"] == []

    def test_filler_then_quota(self, client):
        response = client.post("/api/extensions/filler-data")

        assert response.status_code == 200
        assert response.json()["data"]["count"] == 200

        response = client.post("/api/extensions/custom", json={"extensions": "one"})
        assert response.status_code == 429
        assert response.json()["error"]["details"]["limit"] == 200

    def test_reset(self, client):
        client.patch("/api/extensions/fixed", json={"extension": "exe", "blocked": True})
        client.post("/api/extensions/custom", json={"extensions": "py, sh"})

        response = client.post("/api/extensions/reset")

        assert response.status_code == 200
        assert client.get("/api/extensions/custom").json()["data"] == []
        assert client.get("/api/extensions/blocked").json()["data"] == []


class TestUploadRoute:
    """Test suite for the upload endpoint."""

    def test_accepts_clean_batch(self, client):
        response = client.post(
            "/api/extensions/upload",
            files=[("files", ("a.txt", b"hello", "text/plain")), ("files", ("b.csv", b"x,y", "text/csv"))]
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data == {"total_files": 2, "accepted_files": 2, "accepted_file_names": ["a.txt", "b.csv"]}

    def test_rejects_batch_with_blocked_file(self, client):
        client.patch("/api/extensions/fixed", json={"extension": "exe", "blocked": True})

        response = client.post(
            "/api/extensions/upload",
            files=[("files", ("a.txt", b"hello", "text/plain")), ("files", ("b.EXE", b"MZ", "application/octet-stream"))]
        )

        assert response.status_code == 403
        body = response.json()
        assert "b.EXE (extension blocked: .exe)" in body["message"]
        assert "a.txt" not in body["message"]
        assert body["error"]["details"]["reasons"] == ["b.EXE (extension blocked: .exe)"]

    def test_rejects_disguised_content(self, client, detector):
        client.patch("/api/extensions/fixed", json={"extension": "exe", "blocked": True})
        detector.types["photo.jpg"] = "application/x-dosexec"

        response = client.post(
            "/api/extensions/upload",
            files=[("files", ("photo.jpg", b"MZ\x90\x00", "image/jpeg"))]
        )

        assert response.status_code == 403
        assert "content/extension mismatch" in response.json()["message"]

    def test_empty_batch(self, client):
        response = client.post("/api/extensions/upload")

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "4001"


class TestAmbientRoutes:
    """Test suite for health and correlation behavior."""

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert response.json()["repository"] == "memory"

    def test_correlation_id_echoed(self, client):
        response = client.get("/api/extensions/fixed", headers={"X-Correlation-ID": "req-123"})

        assert response.headers["X-Correlation-ID"] == "req-123"

    def test_error_carries_correlation_id(self, client):
        response = client.patch(
            "/api/extensions/fixed",
            json={"extension": "zip", "blocked": True},
            headers={"X-Correlation-ID": "req-456"}
        )

        assert response.json()["error"]["correlation_id"] == "req-456"

    def test_correlation_id_generated_when_absent(self, client):
        response = client.get("/api/extensions/fixed")

        assert response.headers["X-Correlation-ID"].startswith("req_")
