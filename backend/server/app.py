"""
FastAPI app factory.

Responsibilities:
- Create and configure FastAPI app
- Set up middleware
- Initialize shared resources (one SessionController per process)
- Register routes
"""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from adapters.voice.elevenlabs import ElevenLabsConversationClient
from audio.microphone import CaptureConstraints, SoundDeviceMicrophone
from config import AppConfig
from observability import logger
from orchestrator.runtime import SessionController
from session.permission_gate import PermissionGate

from server.routes import register_routes


def create_app(
    config: AppConfig | None = None,
    controller: SessionController | None = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    This is the app factory pattern that allows:
    - Testing with an injected controller (fake service / microphone)
    - Environment-specific setup
    - ASGI server compatibility
    """
    config = config or AppConfig.load_from_env()
    logger.configure(enabled=config.enable_json_logs)

    app = FastAPI(title="Voice Call Controller API")

    app.state.config = config

    # Middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # tighten later
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # One call session per process
    app.state.controller = controller or build_controller(config)

    # Routes
    register_routes(app)

    return app


def build_controller(config: AppConfig) -> SessionController:
    """Wire the controller to the ElevenLabs client and the local microphone."""
    service = ElevenLabsConversationClient(
        api_key=config.elevenlabs_api_key,
        api_base_url=config.elevenlabs_base_url,
    )
    gate = PermissionGate(
        SoundDeviceMicrophone(),
        constraints=CaptureConstraints(sample_rate_hz=config.mic_sample_rate_hz),
    )
    return SessionController(
        service=service,
        gate=gate,
        agent_id=config.agent_id,
        transport_mode=config.transport_mode,
    )
