"""
BEHAVIOR-AS-CONSTANTS
---------------------
Single source of truth for tunable behavior of the call controller.

Rules:
- If changing a value changes runtime behavior, it belongs here.
- No magic numbers or user-facing strings elsewhere in the codebase.
- Other modules MUST import from this file.
"""

from __future__ import annotations

from typing import Final

# =============================================================================
# Remote voice service (ElevenLabs Conversational AI)
# =============================================================================

ELEVENLABS_API_BASE_URL: Final[str] = "https://api.elevenlabs.io"
ELEVENLABS_CONVERSATION_PATH: Final[str] = "/v1/convai/conversation"
ELEVENLABS_SIGNED_URL_PATH: Final[str] = "/v1/convai/conversation/get_signed_url"

# Upper bound on waiting for conversation_initiation_metadata after connect
SESSION_INIT_TIMEOUT_S: Final[float] = 10.0
SIGNED_URL_TIMEOUT_S: Final[float] = 10.0
WS_MAX_MESSAGE_BYTES: Final[int] = 2**22

MODE_SPEAKING: Final[str] = "speaking"
MODE_LISTENING: Final[str] = "listening"

FEEDBACK_SCORE_POSITIVE: Final[str] = "like"
FEEDBACK_SCORE_NEGATIVE: Final[str] = "dislike"

# =============================================================================
# Microphone probe
# =============================================================================

MIC_PROBE_SAMPLE_RATE_HZ: Final[int] = 16_000
MIC_PROBE_CHANNELS: Final[int] = 1

# =============================================================================
# Transcript
# =============================================================================

TRANSCRIPT_TIMESTAMP_FORMAT: Final[str] = "%H:%M:%S"

MSG_CONNECTED: Final[str] = "Connected to voice agent"
MSG_DISCONNECTED: Final[str] = "Disconnected from voice agent"
MSG_ERROR_PREFIX: Final[str] = "Error: "
MSG_CONNECT_FAILED_PREFIX: Final[str] = "Failed to connect: "
MSG_END_FAILED_PREFIX: Final[str] = "Failed to end conversation: "
MSG_MICROPHONE_PREFIX: Final[str] = "Microphone error: "

# =============================================================================
# Microphone failure guidance (shown to the user alongside the kind)
# =============================================================================

MIC_GUIDANCE_DEVICE_NOT_FOUND: Final[str] = (
    "No microphone found. Please connect a microphone and try again."
)
MIC_GUIDANCE_PERMISSION_DENIED: Final[str] = (
    "Microphone access denied. Please allow microphone access "
    "in your system settings and try again."
)
MIC_GUIDANCE_DEVICE_BUSY: Final[str] = (
    "Microphone is being used by another application. "
    "Please close other apps using the microphone and try again."
)
MIC_GUIDANCE_UNSUPPORTED: Final[str] = (
    "This platform does not support microphone access."
)
MIC_GUIDANCE_UNKNOWN: Final[str] = "Failed to access microphone."
