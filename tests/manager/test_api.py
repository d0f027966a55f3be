"""Tests for the translation API endpoints."""

import time

import pytest
from fastapi.testclient import TestClient

from common.config import settings
from manager.main import app

FAST_CONFIG = {
    "soft_token_limit": 10,
    "hard_token_limit": 20,
    "max_retries": 0,
    "retry_base_delay": 0,
    "inter_chunk_delay": 0,
}


def _segments(count: int):
    return [
        {"start": f"0:{i:02d}", "text": f"Sentence {i} ".ljust(39, "x") + "."}
        for i in range(count)
    ]


def _translate_body(count: int = 3, **overrides):
    body = {
        "content_id": "vid",
        "target_lang": "Korean",
        "segments": _segments(count),
        "config": FAST_CONFIG,
    }
    body.update(overrides)
    return body


def _wait_until_idle(client: TestClient, session_key: str, timeout: float = 5.0):
    """Poll the session until no job is running."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        response = client.get(f"/translations/{session_key}")
        if response.status_code == 200 and not response.json()["is_running"]:
            return response.json()
        time.sleep(0.01)
    pytest.fail(f"Session {session_key} did not finish in time")


@pytest.fixture
def client(tmp_path, monkeypatch):
    """Test client running the app with a file store and the mock translator."""
    monkeypatch.setattr(settings, "job_store_backend", "file")
    monkeypatch.setattr(settings, "job_store_path", str(tmp_path / "jobs"))
    monkeypatch.setattr(settings, "openai_api_key", None)
    with TestClient(app) as test_client:
        yield test_client


class TestRootAndHealth:
    def test_root(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert response.json()["health"] == "/health"

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["store_backend"] == "file"
        assert data["mock_translator"] is True
        assert data["active_sessions"] == 0


@pytest.mark.integration
class TestTranslations:
    """Test translation job endpoints."""

    def test_start_translation_runs_to_completion(self, client):
        # Act
        response = client.post("/translations", json=_translate_body(3))

        # Assert
        assert response.status_code == 202
        data = response.json()
        assert data["session_key"] == "vid_Korean"
        assert data["task_id"].startswith("translate-")

        state = _wait_until_idle(client, "vid_Korean")
        snapshot = state["snapshot"]
        assert snapshot["is_partial"] is False
        assert snapshot["completed_chunk_count"] == 3
        assert snapshot["translations"][0]["text"].startswith("[TRANSLATED to Korean]")
        assert state["last_event"]["event_type"] == "job.completed"

    def test_second_request_is_served_from_cache(self, client):
        client.post("/translations", json=_translate_body(2))
        _wait_until_idle(client, "vid_Korean")

        client.post("/translations", json=_translate_body(2))
        state = _wait_until_idle(client, "vid_Korean")

        assert state["last_event"]["payload"]["from_cache"] is True

    def test_rejects_missing_segments(self, client):
        response = client.post(
            "/translations", json={"content_id": "vid", "target_lang": "Korean"}
        )

        assert response.status_code == 422

    def test_rejects_empty_content_id(self, client):
        response = client.post("/translations", json=_translate_body(content_id=""))

        assert response.status_code == 422

    @pytest.mark.parametrize(
        "config_overrides",
        [
            {"soft_token_limit": 0},
            {"soft_token_limit": 50, "hard_token_limit": 20},
            {"max_retries": -1},
        ],
    )
    def test_rejects_invalid_job_config(self, client, config_overrides):
        body = _translate_body(config={**FAST_CONFIG, **config_overrides})

        response = client.post("/translations", json=body)

        assert response.status_code == 422
        assert client.get("/translations/vid_Korean").status_code == 404

    def test_list_translations(self, client):
        client.post("/translations", json=_translate_body(2))
        _wait_until_idle(client, "vid_Korean")

        response = client.get("/translations")

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 1
        assert data["sessions"][0]["session_key"] == "vid_Korean"

    def test_unknown_session_is_404(self, client):
        response = client.get("/translations/missing_Korean")

        assert response.status_code == 404

    def test_corrupted_snapshot_is_500(self, client, tmp_path):
        (tmp_path / "jobs" / "broken_Korean.snapshot.json").write_text(
            "{oops", encoding="utf-8"
        )

        response = client.get("/translations/broken_Korean")

        assert response.status_code == 500

    def test_abort_without_running_job(self, client):
        response = client.post("/translations/vid_Korean/abort")

        assert response.status_code == 200
        assert response.json() == {"session_key": "vid_Korean", "aborted": False}

    def test_delete_translation(self, client):
        client.post("/translations", json=_translate_body(2))
        _wait_until_idle(client, "vid_Korean")

        response = client.delete("/translations/vid_Korean")

        assert response.status_code == 204
        assert client.get("/translations").json()["total"] == 0

    def test_delete_running_job_is_not_written_back(self, client):
        # Arrange
        slow_config = {**FAST_CONFIG, "inter_chunk_delay": 0.2}
        client.post("/translations", json=_translate_body(5, config=slow_config))
        deadline = time.monotonic() + 5.0
        while time.monotonic() < deadline:
            response = client.get("/translations/vid_Korean")
            if response.status_code == 200 and response.json()["snapshot"]:
                break
            time.sleep(0.01)

        # Act
        response = client.delete("/translations/vid_Korean")
        time.sleep(0.3)

        # Assert
        assert response.status_code == 204
        assert client.get("/translations/vid_Korean").status_code == 404
        assert client.get("/translations").json()["total"] == 0
        assert "vid_Korean" not in client.app.state.last_events

    def test_delete_unknown_session_is_404(self, client):
        response = client.delete("/translations/missing_Korean")

        assert response.status_code == 404


@pytest.mark.integration
class TestRefine:
    def test_refine_with_draft_segments(self, client):
        body = {
            "content_id": "vid",
            "target_lang": "Korean",
            "original_segments": _segments(2),
            "draft_segments": [
                {"start": "0:00", "text": "하나 둘"},
                {"start": "0:01", "text": "셋 넷"},
            ],
            "config": FAST_CONFIG,
        }

        response = client.post("/translations/refine", json=body)

        assert response.status_code == 202
        assert response.json()["task_id"].startswith("refine-")
        state = _wait_until_idle(client, "vid_Korean")
        assert state["snapshot"]["is_refined"] is True
        assert [s["text"] for s in state["snapshot"]["translations"]] == [
            "하나 둘",
            "셋 넷",
        ]


class TestUsage:
    def test_usage_starts_empty(self, client):
        response = client.get("/usage")

        assert response.status_code == 200
        data = response.json()
        assert data["today"] == {"input_tokens": 0, "output_tokens": 0}
        assert data["today_display"] == "0"
        assert data["monthly_cost_usd"] == 0
