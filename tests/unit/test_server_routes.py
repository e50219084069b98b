# pylint: disable=missing-module-docstring,missing-function-docstring

import asyncio
import importlib
from typing import Any

import pytest
from fastapi.testclient import TestClient

from config import AppConfig
from observability import logger
from orchestrator.runtime import SessionController
import server.app as server_app
from server.app import create_app

from fakes import FakeMicrophone, FakeVoiceService, make_controller


def _config() -> AppConfig:
    return AppConfig(
        env="test",
        log_level="INFO",
        agent_id="agent-123",
        transport_mode="websocket",
        elevenlabs_api_key=None,
        elevenlabs_base_url="https://api.elevenlabs.io",
        mic_sample_rate_hz=16000,
        enable_json_logs=False,
    )


@pytest.fixture(autouse=True)
def _restore_logger(monkeypatch: pytest.MonkeyPatch) -> None:
    # create_app() toggles the process-wide flag
    monkeypatch.setattr(logger, "_enabled", True)


def _client(controller: SessionController) -> TestClient:
    return TestClient(create_app(config=_config(), controller=controller))


def test_health() -> None:
    client = _client(make_controller())

    resp = client.get("/health")

    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


def test_session_view_when_idle() -> None:
    client = _client(make_controller())

    body = client.get("/session").json()

    assert body["status"] == "IDLE"
    assert body["settings_visible"] is True
    assert body["can_send_feedback"] is False
    assert body["agent_id"] == "agent-123"
    assert body["transport_mode"] == "websocket"


def test_call_lifecycle_over_http() -> None:
    service = FakeVoiceService(conversation_id="conv-9")
    client = _client(make_controller(service))

    started = client.post("/call/start")
    assert started.status_code == 200
    assert started.json()["status"] == "CONNECTED"
    assert started.json()["conversation_id"] == "conv-9"
    assert started.json()["settings_visible"] is False

    again = client.post("/call/start")
    assert again.status_code == 409
    assert again.json()["error"] == "InvalidStateError"

    locked = client.put("/settings", json={"agent_id": "other"})
    assert locked.status_code == 409

    ended = client.post("/call/end")
    assert ended.status_code == 200
    assert ended.json()["status"] == "DISCONNECTED"
    assert ended.json()["settings_visible"] is True

    transcript = client.get("/transcript").json()
    assert [m["content"] for m in transcript] == ["Connected to voice agent"]
    assert transcript[0]["role"] == "system"


def test_end_call_when_idle_is_noop() -> None:
    client = _client(make_controller())

    resp = client.post("/call/end")

    assert resp.status_code == 200
    assert resp.json()["status"] == "IDLE"


def test_settings_update_applies_to_next_call() -> None:
    service = FakeVoiceService()
    client = _client(make_controller(service))

    resp = client.put("/settings", json={"agent_id": "agent-new"})
    assert resp.status_code == 200
    assert resp.json()["agent_id"] == "agent-new"

    client.post("/call/start")

    assert service.open_calls[0][0] == "agent-new"


def test_blank_agent_id_is_bad_request() -> None:
    client = _client(make_controller(agent_id=" "))

    resp = client.post("/call/start")

    assert resp.status_code == 400
    assert resp.json()["error"] == "ConfigurationError"
    assert client.get("/session").json()["status"] == "IDLE"


def test_microphone_denial_is_forbidden_with_kind() -> None:
    client = _client(make_controller(microphone=FakeMicrophone(raw_error="NotAllowedError")))

    resp = client.post("/call/start")

    assert resp.status_code == 403
    assert resp.json()["kind"] == "PermissionDenied"
    assert client.get("/session").json()["status"] == "FAILED"


def test_remote_rejection_is_bad_gateway() -> None:
    client = _client(make_controller(FakeVoiceService(open_error=RuntimeError("agent not found"))))

    resp = client.post("/call/start")

    assert resp.status_code == 502
    assert "agent not found" in resp.json()["detail"]
    assert client.get("/transcript").json()[-1]["content"] == "Failed to connect: agent not found"


def test_feedback_gated_on_eligibility() -> None:
    service = FakeVoiceService()
    client = _client(make_controller(service))
    client.post("/call/start")

    rejected = client.post("/feedback", json={"positive": True})
    assert rejected.status_code == 409
    assert rejected.json()["error"] == "FeedbackNotAcceptedError"

    asyncio.run(service.listener.on_feedback_eligibility(True))

    accepted = client.post("/feedback", json={"positive": False})
    assert accepted.status_code == 200
    assert accepted.json() == {"result": {"accepted": True, "positive": False}}
    assert service.feedback_calls == [False]


def test_asgi_module_builds_app_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ELEVENLABS_AGENT_ID", "agent-from-env")
    monkeypatch.setenv("ENABLE_JSON_LOGS", "0")
    configs: list[AppConfig] = []

    def build(config: AppConfig | None = None, controller: SessionController | None = None) -> Any:
        assert config is not None and controller is None
        configs.append(config)
        return create_app(config=config, controller=make_controller())

    monkeypatch.setattr(server_app, "create_app", build)
    module = importlib.reload(importlib.import_module("server.asgi"))

    assert configs[-1].agent_id == "agent-from-env"
    assert module.app.state.config is configs[-1]
