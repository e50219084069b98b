"""
Route registration for the call controller API.

Responsibilities:
- Define HTTP endpoints over the single SessionController
- Map controller errors to HTTP status codes
- Pull dependencies from app.state
"""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from errors import (
    CallError,
    ConfigurationError,
    InvalidStateError,
    MicrophonePermissionError,
    RemoteConnectionError,
)
from observability.logger import log_event
from orchestrator.reducer import STARTABLE_STATUSES
from orchestrator.runtime import SessionController


class SettingsBody(BaseModel):
    agent_id: str | None = None
    transport_mode: str | None = None


class FeedbackBody(BaseModel):
    positive: bool


# Most specific first; FeedbackNotAcceptedError is an InvalidStateError.
_ERROR_STATUS: tuple[tuple[type[CallError], int], ...] = (
    (ConfigurationError, 400),
    (MicrophonePermissionError, 403),
    (RemoteConnectionError, 502),
    (InvalidStateError, 409),
)


def register_routes(app: FastAPI) -> None:
    """Register all routes on the FastAPI app."""

    def controller() -> SessionController:
        return app.state.controller

    @app.exception_handler(CallError)
    async def call_error_handler(_: Request, exc: CallError) -> JSONResponse: # pyright: ignore[reportUnusedFunction]
        return _error_response(exc)

    @app.get("/health")
    async def health() -> dict[str, str]: # pyright: ignore[reportUnusedFunction]
        return {"status": "ok"}

    @app.get("/session")
    async def session() -> dict[str, Any]: # pyright: ignore[reportUnusedFunction]
        return _session_view(controller())

    @app.get("/transcript")
    async def transcript() -> list[dict[str, object]]: # pyright: ignore[reportUnusedFunction]
        return controller().transcript.serialize()

    @app.put("/settings")
    async def settings(body: SettingsBody) -> dict[str, Any]: # pyright: ignore[reportUnusedFunction]
        ctrl = controller()
        if ctrl.status not in STARTABLE_STATUSES:
            raise InvalidStateError(
                f"settings cannot change while the call is {ctrl.status.value}"
            )
        ctrl.configure(agent_id=body.agent_id, transport_mode=body.transport_mode)
        return _session_view(ctrl)

    @app.post("/call/start")
    async def start_call() -> dict[str, Any]: # pyright: ignore[reportUnusedFunction]
        ctrl = controller()
        await ctrl.start_call()
        return _session_view(ctrl)

    @app.post("/call/end")
    async def end_call() -> dict[str, Any]: # pyright: ignore[reportUnusedFunction]
        ctrl = controller()
        await ctrl.end_call()
        return _session_view(ctrl)

    @app.post("/feedback")
    async def feedback(body: FeedbackBody) -> dict[str, Any]: # pyright: ignore[reportUnusedFunction]
        result = await controller().send_feedback(body.positive)
        return {"result": jsonable_encoder(result)}


def _session_view(ctrl: SessionController) -> dict[str, Any]:
    state = ctrl.state
    transport = ctrl.transport_mode
    return {
        "status": state.status.value,
        "mode": state.mode,
        "conversation_id": state.conversation_id,
        "remote_status": state.remote_status,
        "can_send_feedback": state.can_send_feedback,
        "settings_visible": state.status in STARTABLE_STATUSES,
        "agent_id": ctrl.agent_id,
        "transport_mode": getattr(transport, "value", transport),
        "last_error": state.last_error,
    }


def _error_response(exc: CallError) -> JSONResponse:
    status_code = 500
    for error_type, code in _ERROR_STATUS:
        if isinstance(exc, error_type):
            status_code = code
            break

    body: dict[str, Any] = {"error": type(exc).__name__, "detail": str(exc)}
    if isinstance(exc, MicrophonePermissionError):
        body["kind"] = exc.kind.value
        body["detail"] = exc.message

    log_event({
        "event_type": "HTTP_CALL_ERROR",
        "error": body["error"],
        "status_code": status_code,
        "detail": body["detail"],
    })
    return JSONResponse(status_code=status_code, content=body)
