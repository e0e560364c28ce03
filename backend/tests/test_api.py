"""
Tests for the HTTP API.
"""

import time

import httpx
import pytest
from fastapi.testclient import TestClient

from history_guesser.constants import SNAPSHOT_STORAGE_KEY
from history_guesser.main import create_app
from history_guesser.services.engine import GameEngine
from history_guesser.services.immich import ImmichClient
from history_guesser.services.storage import FileKeyValueStore, SnapshotStore

from .conftest import SUBJECTS, FailingSubjectSource, ListSubjectSource


@pytest.fixture
def client(engine):
    with TestClient(create_app(engine=engine, init_database=False)) as test_client:
        yield test_client


def guess_exactly(client, index):
    subject = SUBJECTS[index]
    return client.post("/api/game/guess", json={
        "latitude": subject.true_coordinates.lat,
        "longitude": subject.true_coordinates.lng,
        "year": subject.true_year,
        "time_taken_seconds": 20,
    })


class TestHealth:
    def test_health(self, client):
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}

    def test_root(self, client):
        assert client.get("/").json()["docs"] == "/docs"


class TestSession:
    def test_no_current_game(self, client):
        assert client.get("/api/game/current").status_code == 404
        assert client.get("/api/game/summary").status_code == 404
        assert client.get("/api/game/subject").status_code == 409

    def test_start(self, client):
        response = client.post("/api/game/start")

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "active"
        assert data["rounds_total"] == 5
        assert data["rounds_completed"] == 0
        assert data["round_timer_seconds"] == 60
        assert client.get("/api/game/current").json()["session_id"] == data["session_id"]

    def test_start_with_config(self, client):
        response = client.post("/api/game/start", json={"rounds": 2, "timer_seconds": 30, "hints_per_game": 4})

        data = response.json()
        assert data["rounds_total"] == 2
        assert data["round_timer_seconds"] == 30
        assert data["hints_allowed_per_game"] == 4

    def test_start_rejects_bad_config(self, client):
        assert client.post("/api/game/start", json={"rounds": 0}).status_code == 422

    def test_start_failure(self, snapshot_store, settings, clock):
        engine = GameEngine(FailingSubjectSource(), snapshot_store, settings=settings, clock=clock)
        with TestClient(create_app(engine=engine, init_database=False)) as client:
            response = client.post("/api/game/start")

            assert response.status_code == 502
            assert response.json()["detail"] == "Photo library unavailable"
            current = client.get("/api/game/current").json()
            assert current["status"] == "error"
            assert current["last_error"]["code"] == "SUBJECT_FETCH_ERROR"

    def test_delete_current(self, client):
        client.post("/api/game/start")

        assert client.delete("/api/game/current").status_code == 204
        assert client.get("/api/game/current").status_code == 404

    def test_starts_with_corrupt_snapshot_file(self, tmp_path, settings, clock):
        (tmp_path / f"{SNAPSHOT_STORAGE_KEY}.json").write_bytes(b"\xff\xfe{bad")
        store = SnapshotStore(FileKeyValueStore(tmp_path), clock=clock)
        engine = GameEngine(ListSubjectSource(SUBJECTS), store, settings=settings, clock=clock, tick_interval=None)

        with TestClient(create_app(engine=engine, init_database=False)) as client:
            assert client.get("/api/game/current").status_code == 404
            assert client.post("/api/game/start").status_code == 201


class TestRounds:
    def test_subject_hides_answer(self, client):
        client.post("/api/game/start")

        data = client.get("/api/game/subject").json()

        assert data["subject_id"] == "paris"
        assert data["round_number"] == 1
        assert data["rounds_total"] == 5
        assert data["can_select_hint"] is True
        assert "true_year" not in data
        assert "true_coordinates" not in data

    def test_perfect_guess(self, client):
        client.post("/api/game/start")

        response = guess_exactly(client, 0)

        assert response.status_code == 200
        data = response.json()
        assert data["result"]["accuracy_percent"] == 100
        assert data["result"]["xp_earned"] == 150
        assert data["actual_year"] == 1889
        assert data["location_label"] == "Paris, France"
        assert data["game_completed"] is False
        assert client.get("/api/game/subject").json()["round_number"] == 2

    def test_guess_without_map_interaction(self, client):
        client.post("/api/game/start")

        response = client.post("/api/game/guess", json={"year": 1890})

        assert response.status_code == 200
        assert response.json()["result"]["guess_coordinates"] is None

    def test_invalid_guess(self, client):
        client.post("/api/game/start")

        response = client.post("/api/game/guess", json={"latitude": 91, "longitude": 0, "year": 1900})

        assert response.status_code == 422
        assert client.get("/api/game/subject").json()["round_number"] == 1

    def test_half_coordinates_rejected(self, client):
        client.post("/api/game/start")

        response = client.post("/api/game/guess", json={"latitude": 45, "year": 1900})

        assert response.status_code == 422

    def test_stale_round_index(self, client):
        client.post("/api/game/start")
        guess_exactly(client, 0)

        response = client.post("/api/game/guess", json={"year": 1900, "round_index": 0})

        assert response.status_code == 409

    def test_timeout(self, client):
        client.post("/api/game/start")

        response = client.post("/api/game/timeout")

        assert response.status_code == 200
        result = response.json()["result"]
        assert result["timed_out"] is True
        assert result["guess_coordinates"] == {"lat": 0.0, "lng": 0.0}
        assert result["time_taken_seconds"] == 60

    def test_full_game_and_summary(self, client):
        client.post("/api/game/start")

        for index in range(5):
            last = guess_exactly(client, index)

        assert last.json()["game_completed"] is True
        assert client.get("/api/game/current").json()["status"] == "completed"
        assert client.post("/api/game/guess", json={"year": 1900}).status_code == 409
        assert len(client.get("/api/game/rounds").json()) == 5
        summary = client.get("/api/game/summary").json()
        assert summary["final_xp"] == 750
        assert summary["final_percent"] == 100


class TestLiveTimer:
    def test_round_times_out_on_its_own(self, subject_source, snapshot_store, settings, clock):
        engine = GameEngine(subject_source, snapshot_store, settings=settings, clock=clock, tick_interval=0.02)

        with TestClient(create_app(engine=engine, init_database=False)) as client:
            client.post("/api/game/start", json={"timer_seconds": 1})
            time.sleep(0.3)
            assert client.get("/api/game/subject").json()["remaining_seconds"] < 1

            rounds = []
            for _ in range(50):
                rounds = client.get("/api/game/rounds").json()
                if rounds:
                    break
                time.sleep(0.1)

            assert rounds[0]["timed_out"] is True
            assert rounds[0]["guess_coordinates"] == {"lat": 0.0, "lng": 0.0}
            assert rounds[0]["time_taken_seconds"] == 1
            late = client.post("/api/game/guess", json={"latitude": 48.8, "longitude": 2.3, "year": 1889, "round_index": 0})
            assert late.status_code == 409
            client.delete("/api/game/current")


class TestHints:
    def test_buy_hints(self, client):
        client.post("/api/game/start")

        where = client.post("/api/game/hints/where")
        when = client.post("/api/game/hints/when")

        assert where.status_code == 200
        assert where.json()["content"] == "Western Europe"
        assert when.json()["content"] == "1880s"
        assert when.json()["hints_used_this_round"] == 2
        assert when.json()["can_select_hint"] is False
        assert client.post("/api/game/hints/where").status_code == 409
        subject = client.get("/api/game/subject").json()
        assert subject["revealed_hints"] == {"where": "Western Europe", "when": "1880s"}

    def test_unknown_hint_type(self, client):
        client.post("/api/game/start")
        assert client.post("/api/game/hints/who").status_code == 422

    def test_hints_cost_xp(self, client):
        client.post("/api/game/start")
        client.post("/api/game/hints/where")

        result = guess_exactly(client, 0).json()["result"]

        assert result["hints_used_this_round"] == 1
        assert result["xp_earned"] == 120


class TestPhotoProxy:
    def test_without_library(self, client):
        assert client.get("/api/game/photo/a1/preview").status_code == 404

    def test_proxies_immich(self, snapshot_store, settings, clock):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, content=b"jpeg-bytes"))
        source = ImmichClient("http://immich.local/api", "secret", transport=transport)
        engine = GameEngine(source, snapshot_store, settings=settings, clock=clock)

        with TestClient(create_app(engine=engine, init_database=False)) as client:
            response = client.get("/api/game/photo/a1/preview")

        assert response.status_code == 200
        assert response.content == b"jpeg-bytes"
        assert response.headers["content-type"] == "image/jpeg"
