"""
Agency Hub
Tests — health probes, stored files, request guards and API-key auth.

Covers:
    - /health, /health/ready, /health/live
    - X-Request-ID / X-Request-Duration-Ms headers + metrics buffer
    - JSON 404 / 405 for API paths
    - Content-Type guard (415)
    - /files/<path> traversal guard
    - API keys + roles (401 / 403)
"""

import pytest

from agencyhub.middleware.timing import get_recent_metrics


class TestHealth:
    def test_health(self, client):
        res = client.get("/api/v1/health")
        assert res.status_code == 200
        assert res.get_json() == {"status": "ok"}

    def test_ready(self, client):
        assert client.get("/api/v1/health/ready").get_json()["status"] == "ok"

    def test_live(self, client):
        res = client.get("/api/v1/health/live")
        assert res.status_code == 200
        data = res.get_json()
        assert data["status"] == "ok"
        checks = data["checks"]
        assert checks["database"]["status"] == "ok"
        assert checks["redis"]["status"] == "skipped"
        assert checks["storage"]["status"] == "ok"
        assert checks["app"]["name"] == "Agency Hub"
        assert checks["app"]["testing"] is True


class TestRequestMiddleware:
    def test_request_id_generated(self, client):
        res = client.get("/api/v1/companies")
        assert len(res.headers["X-Request-ID"]) == 12
        assert float(res.headers["X-Request-Duration-Ms"]) >= 0

    def test_request_id_echoed(self, client):
        res = client.get("/api/v1/companies", headers={"X-Request-ID": "trace-abc"})
        assert res.headers["X-Request-ID"] == "trace-abc"

    def test_metrics_recorded(self, client):
        client.get("/api/v1/companies")
        paths = [m["path"] for m in get_recent_metrics()]
        assert "/api/v1/companies" in paths

    def test_api_404_is_json(self, client):
        res = client.get("/api/v1/nothing-here")
        assert res.status_code == 404
        assert res.get_json() == {"error": "Not found", "path": "/api/v1/nothing-here"}

    def test_api_405_is_json(self, client):
        res = client.put("/api/v1/search", json={})
        assert res.status_code == 405
        assert res.get_json()["error"] == "Method not allowed"

    def test_non_json_body_rejected(self, client):
        res = client.post("/api/v1/companies", data="name=Acme", content_type="text/plain")
        assert res.status_code == 415


class TestStoredFiles:
    def test_escape_upload_root(self, client):
        res = client.get("/files/..%2F..%2Fetc%2Fpasswd")
        assert res.status_code == 404

    def test_missing_file(self, client):
        assert client.get("/files/projects/1/missing.pdf").status_code == 404


# ═════════════════════════════════════════════════════════════════════════════
# API KEYS
# ═════════════════════════════════════════════════════════════════════════════


@pytest.fixture()
def auth_on(monkeypatch):
    monkeypatch.setenv("API_AUTH_ENABLED", "true")
    monkeypatch.setenv("API_KEYS", "admin-key:admin,editor-key:editor,viewer-key:viewer")


class TestApiKeys:
    def test_missing_key(self, client, auth_on):
        assert client.get("/api/v1/companies").status_code == 401

    def test_invalid_key(self, client, auth_on):
        res = client.get("/api/v1/companies", headers={"X-API-Key": "nope"})
        assert res.status_code == 401
        assert res.get_json()["error"] == "Invalid API key"

    def test_health_stays_open(self, client, auth_on):
        assert client.get("/api/v1/health").status_code == 200

    def test_viewer_reads_but_cannot_write(self, client, auth_on):
        headers = {"X-API-Key": "viewer-key"}
        assert client.get("/api/v1/companies", headers=headers).status_code == 200
        res = client.post("/api/v1/companies", json={"name": "Acme"}, headers=headers)
        assert res.status_code == 403

    def test_editor_cannot_delete_company(self, client, auth_on):
        created = client.post("/api/v1/companies", json={"name": "Acme"}, headers={"X-API-Key": "editor-key"})
        assert created.status_code == 201
        cid = created.get_json()["id"]
        res = client.delete(f"/api/v1/companies/{cid}", headers={"X-API-Key": "editor-key"})
        assert res.status_code == 403
        res = client.delete(f"/api/v1/companies/{cid}", headers={"X-API-Key": "admin-key"})
        assert res.status_code == 200

    def test_keys_not_configured(self, client, monkeypatch):
        monkeypatch.setenv("API_AUTH_ENABLED", "true")
        monkeypatch.delenv("API_KEYS", raising=False)
        res = client.get("/api/v1/companies", headers={"X-API-Key": "anything"})
        assert res.status_code == 500
