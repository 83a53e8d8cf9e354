"""Tests for the shared-secret middleware."""

import pytest
from fastapi.testclient import TestClient

from spriteforge import config
from spriteforge.main import create_app


@pytest.fixture
def client(make_service, tmp_path, monkeypatch):
    monkeypatch.setattr(config, "OUTPUT_DIR", str(tmp_path))
    with TestClient(create_app(service=make_service())) as c:
        yield c


@pytest.fixture
def secret(monkeypatch):
    monkeypatch.setattr(config, "WORKER_SHARED_SECRET", "s3cret")
    return "s3cret"


class TestWorkerAuthMiddleware:
    def test_run_requires_secret(self, client, secret):
        resp = client.post("/pipeline/run", json={"prompt": "a knight"})
        assert resp.status_code == 401

    def test_wrong_secret(self, client, secret):
        resp = client.post("/pipeline/run", json={"prompt": "a knight"}, headers={"X-Worker-Secret": "nope"})
        assert resp.status_code == 401

    def test_valid_secret(self, client, secret):
        resp = client.post("/pipeline/run", json={"prompt": "a knight"}, headers={"X-Worker-Secret": secret})
        assert resp.status_code == 200

    def test_batch_run_protected(self, client, secret, tmp_path):
        resp = client.post("/batch/run", json={"characters": [], "outputDir": str(tmp_path)})
        assert resp.status_code == 401

    def test_reads_stay_public(self, client, secret):
        assert client.get("/health").status_code == 200
        assert client.get("/pipeline/rate-limits").status_code == 200
        assert client.get("/batch/template").status_code == 200
        assert client.post("/pipeline/estimate", json={}).status_code == 200

    def test_development_without_secret_allows(self, client, monkeypatch):
        monkeypatch.setattr(config, "WORKER_SHARED_SECRET", "")
        monkeypatch.setattr(config, "ENVIRONMENT", "development")
        assert client.post("/pipeline/run", json={"prompt": "a knight"}).status_code == 200

    def test_production_without_secret_refuses(self, client, monkeypatch):
        monkeypatch.setattr(config, "WORKER_SHARED_SECRET", "")
        monkeypatch.setattr(config, "ENVIRONMENT", "production")
        assert client.post("/pipeline/run", json={"prompt": "a knight"}).status_code == 500
