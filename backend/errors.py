"""
Call controller error taxonomy.

Rules:
- Every failure the controller surfaces is one of these types.
- Permission and connection failures are session events: they are also
  recorded in the transcript before being raised.
- Invalid-state and feedback rejections are caller misuse: raised only,
  never recorded.
"""

from __future__ import annotations

from orchestrator.enums.permission import PermissionErrorKind


class CallError(Exception):
    """Base class for all call controller errors."""


class ConfigurationError(CallError):
    """Missing or invalid agent identifier / transport mode."""


class MicrophonePermissionError(CallError):
    """
    Normalized microphone probe failure.

    kind is one of the five stable PermissionErrorKind values; the raw
    platform error name is kept for logging only.
    """

    def __init__(
        self,
        kind: PermissionErrorKind,
        message: str,
        *,
        raw_name: str | None = None,
    ) -> None:
        super().__init__(f"{kind.value}: {message}")
        self.kind = kind
        self.message = message
        self.raw_name = raw_name


class RemoteConnectionError(CallError):
    """Remote session open/close rejected, or remote reported an error."""


class InvalidStateError(CallError):
    """Operation not allowed in the current session status."""


class FeedbackNotAcceptedError(InvalidStateError):
    """Feedback sent while the remote service does not accept it."""
