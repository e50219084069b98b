"""
Application configuration.

Responsibilities:
- Load deployment-specific configuration
- Read environment variables
- Provide a typed, immutable config object
- Validate the call configuration surface (agent id, transport mode)

Non-responsibilities:
- No orchestration logic
- No behavioral constants (see constants.py)
- No runtime mutation
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from constants import ELEVENLABS_API_BASE_URL, MIC_PROBE_SAMPLE_RATE_HZ
from errors import ConfigurationError
from orchestrator.enums.transport import TransportMode


@dataclass(frozen=True)
class AppConfig:
    """
    Immutable application configuration.

    Constructed once at process startup.
    Passed downward to the server factory and controller wiring.
    """

    # ------------------------------------------------------------------
    # Environment
    # ------------------------------------------------------------------

    env: str
    log_level: str

    # ------------------------------------------------------------------
    # Call
    # ------------------------------------------------------------------

    # May be blank at startup; the presentation layer can supply it later.
    agent_id: str
    transport_mode: str

    # ------------------------------------------------------------------
    # Remote voice service
    # ------------------------------------------------------------------

    elevenlabs_api_key: str | None
    elevenlabs_base_url: str

    # ------------------------------------------------------------------
    # Microphone
    # ------------------------------------------------------------------

    mic_sample_rate_hz: int

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    enable_json_logs: bool

    # ------------------------------------------------------------------
    # Factory
    # ------------------------------------------------------------------

    @staticmethod
    def load_from_env() -> AppConfig:
        """
        Load configuration from environment variables.

        Missing call settings are not an error here; they are checked
        when a call is started.
        """
        return AppConfig(
            env=os.environ.get("ENV", "dev"),
            log_level=os.environ.get("LOG_LEVEL", "INFO"),

            agent_id=os.environ.get("ELEVENLABS_AGENT_ID", ""),
            transport_mode=os.environ.get("TRANSPORT_MODE", TransportMode.WEBSOCKET.value),

            elevenlabs_api_key=os.environ.get("ELEVENLABS_API_KEY") or None,
            elevenlabs_base_url=os.environ.get("ELEVENLABS_BASE_URL", ELEVENLABS_API_BASE_URL),

            mic_sample_rate_hz=int(
                os.environ.get("MIC_SAMPLE_RATE_HZ", str(MIC_PROBE_SAMPLE_RATE_HZ))
            ),

            enable_json_logs=os.environ.get("ENABLE_JSON_LOGS", "1") == "1",
        )


def validate_call_settings(agent_id: str | None, transport_mode: str | TransportMode) -> TransportMode:
    """
    Fail fast on an unusable call configuration.

    Returns the parsed transport mode.

    Raises:
        ConfigurationError if the agent id is missing/blank or the
        transport mode is not one of webrtc | websocket.
    """
    if agent_id is None or not agent_id.strip():
        raise ConfigurationError("agent identifier is required before starting a call")

    try:
        return TransportMode(transport_mode)
    except ValueError as e:
        allowed = ", ".join(m.value for m in TransportMode)
        raise ConfigurationError(
            f"unsupported transport mode {transport_mode!r} (expected one of: {allowed})"
        ) from e
