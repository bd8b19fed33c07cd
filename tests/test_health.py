"""Test health endpoint"""
import pytest
from fastapi.testclient import TestClient

from gazette_sync import main
from gazette_sync.main import app


@pytest.fixture
def client():
    """Create test client"""
    with TestClient(app) as c:
        yield c


def test_health_check(client):
    """Test health endpoint returns healthy status"""
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert "version" in data


def test_root(client):
    """Test root endpoint returns API info"""
    response = client.get("/")
    assert response.status_code == 200
    data = response.json()
    assert data["name"] == "GazetteSync API"


def test_scheduler_disabled_in_tests(client):
    """Test the lifespan honors SCHEDULER_ENABLED=false"""
    assert client.app.state.scheduler is None
    assert client.app.state.sync_engine is not None


def test_shutdown_drains_sync_engine_before_closing_db(monkeypatch):
    """Test the lifespan hands the engine its shutdown before the database goes away"""
    calls = []

    class RecordingEngine:
        async def shutdown(self, grace_seconds=None):
            calls.append("sync_engine")

    async def recording_close_db():
        calls.append("close_db")

    monkeypatch.setattr(main, "close_db", recording_close_db)
    with TestClient(app) as c:
        c.app.state.sync_engine = RecordingEngine()

    assert calls == ["sync_engine", "close_db"]
