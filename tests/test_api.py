"""
HTTP surface tests using FastAPI's TestClient with in-memory services.
"""
import pytest
from fastapi.testclient import TestClient

from matchday.errors import ContentionError
from matchday.main import app, get_services
from matchday.services import build_in_memory_services


@pytest.fixture
def services(settings):
    return build_in_memory_services(settings)


@pytest.fixture
def client(services):
    app.dependency_overrides[get_services] = lambda: services
    yield TestClient(app)
    app.dependency_overrides.clear()


def post(client, match_id, row):
    return client.post(f"/matches/{match_id}/events", json=row)


class TestServiceEndpoints:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["database"] == "memory"

    def test_version(self, client):
        data = client.get("/version").json()
        assert data["name"] == "Matchday Core"
        assert data["payload_version"] == "1.0"

    def test_cache_stats(self, client):
        data = client.get("/cache/stats").json()
        assert "hit_rate_percent" in data


class TestEvents:
    def test_goal_flow(self, client):
        assert post(client, "m-1", {"Event": "Kick Off", "Minute": 0, "Player": "Smith"}).status_code == 200
        response = post(client, "m-1", {"Event": "Goal", "Minute": 12, "Player": "Smith"})
        assert response.status_code == 200
        data = response.json()
        assert data["event_type"] == "goal"
        assert data["payload"]["event_type"] == "goal_scored"
        assert data["skipped"] is False
        assert data["delivered"] is None

    def test_replay_is_skipped(self, client):
        post(client, "m-1", {"Event": "Kick Off", "Minute": 0, "Player": "Smith"})
        row = {"Event": "Goal", "Minute": 12, "Player": "Smith"}
        first = post(client, "m-1", row).json()
        second = post(client, "m-1", row).json()
        assert second["skipped"] is True
        assert second["fingerprint"] == first["fingerprint"]
        assert client.get("/matches/m-1/scoreline").json() == {"home_score": 1, "away_score": 0}

    def test_validation_error_is_422(self, client):
        response = post(client, "m-1", {"Event": "Goal", "Minute": "soon", "Player": "Smith"})
        assert response.status_code == 422
        detail = response.json()["detail"]
        assert detail["field"] == "Minute"
        assert detail["raw_value"] == "soon"

    def test_rule_violation_is_409(self, client):
        response = post(client, "m-1", {"Event": "Goal", "Minute": 5, "Player": "Smith"})
        assert response.status_code == 409
        assert response.json()["detail"]["error"] == "rule_violation"

    def test_contention_is_503_with_retry_after(self, client, services, monkeypatch):
        def busy(match_id, row):
            raise ContentionError(match_id)

        monkeypatch.setattr(services.processor, "process_row", busy)
        response = post(client, "m-1", {"Event": "Kick Off", "Minute": 0})
        assert response.status_code == 503
        assert response.headers["Retry-After"] == "1"
        assert response.json()["detail"]["error"] == "contention"


class TestMatchViews:
    def test_lineup_then_snapshot(self, client):
        response = client.put(
            "/matches/m-1/lineup",
            json={"starters": ["Smith", "Jones"], "substitutes": ["Brown"], "opponent": "Rovers"},
        )
        assert response.status_code == 200
        assert response.json()["opponent"] == "Rovers"

        post(client, "m-1", {"Event": "Kick Off", "Minute": 0})
        post(client, "m-1", {"Event": "Substitution", "Minute": 60, "Player Off": "Jones", "Player On": "Brown"})
        post(client, "m-1", {"Event": "Goal", "Minute": 70, "Player": "Brown"})

        snapshot = client.get("/matches/m-1").json()
        assert snapshot["home_score"] == 1
        assert snapshot["player_minutes"] == {"Smith": 70, "Jones": 60, "Brown": 10}

        minutes = client.get("/matches/m-1/minutes").json()
        assert minutes["minutes"]["Brown"] == 10

    def test_discipline_view(self, client):
        post(client, "m-1", {"Event": "Kick Off", "Minute": 0, "Player": "Smith"})
        post(client, "m-1", {"Event": "Red Card", "Minute": 30, "Player": "Opposition"})
        data = client.get("/matches/m-1/discipline").json()
        assert data["opposition"]["red"] == 1
        assert data["players"] == {}

    def test_unknown_match_is_404(self, client):
        assert client.get("/matches/none").status_code == 404
        assert client.get("/matches/none/minutes").status_code == 404

    def test_bad_lineup_side_is_422(self, client):
        response = client.put("/matches/m-1/lineup", json={"starters": ["Smith"], "team_side": "left"})
        assert response.status_code == 422


class TestSeason:
    def test_season_stats_after_full_time(self, client):
        post(client, "m-1", {"Event": "Kick Off", "Minute": 0, "Player": "Smith"})
        post(client, "m-1", {"Event": "Goal", "Minute": 12, "Player": "Smith"})
        post(client, "m-1", {"Event": "Full Time", "Minute": 90})

        data = client.get("/players/Smith/season").json()
        assert data["goals"] == 1
        assert data["minutes"] == 90
        assert data["appearances"] == 1

    def test_unknown_player_is_404(self, client):
        assert client.get("/players/Nobody/season").status_code == 404
