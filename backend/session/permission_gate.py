"""
Microphone permission gate.

Responsibilities:
- Confirm a usable microphone exists before any network cost is paid
- Release the probe handle immediately (the probe never keeps the device)
- Normalize raw platform failures into PermissionErrorKind

Guarantees:
- probe() either returns (device confirmed AND released) or raises
  MicrophonePermissionError; no handle outlives the call
"""

from __future__ import annotations

from typing import Final

from audio.microphone import CaptureConstraints, CaptureFailure, MicrophoneBackend
from constants import (
    MIC_GUIDANCE_DEVICE_BUSY,
    MIC_GUIDANCE_DEVICE_NOT_FOUND,
    MIC_GUIDANCE_PERMISSION_DENIED,
    MIC_GUIDANCE_UNKNOWN,
    MIC_GUIDANCE_UNSUPPORTED,
)
from errors import MicrophonePermissionError
from observability.logger import log_event
from orchestrator.enums.permission import PermissionErrorKind


K = PermissionErrorKind

# Raw platform error name -> normalized kind. Anything absent is UNKNOWN.
RAW_ERROR_KINDS: Final[dict[str, PermissionErrorKind]] = {
    "NotFoundError": K.DEVICE_NOT_FOUND,
    "NotFound": K.DEVICE_NOT_FOUND,
    "DevicesNotFoundError": K.DEVICE_NOT_FOUND,
    "NotAllowedError": K.PERMISSION_DENIED,
    "PermissionDeniedError": K.PERMISSION_DENIED,
    "PermissionDenied": K.PERMISSION_DENIED,
    "SecurityError": K.PERMISSION_DENIED,
    "NotReadableError": K.DEVICE_BUSY,
    "NotReadable": K.DEVICE_BUSY,
    "TrackStartError": K.DEVICE_BUSY,
    "Unsupported": K.UNSUPPORTED,
    "NotSupportedError": K.UNSUPPORTED,
}

GUIDANCE: Final[dict[PermissionErrorKind, str]] = {
    K.DEVICE_NOT_FOUND: MIC_GUIDANCE_DEVICE_NOT_FOUND,
    K.PERMISSION_DENIED: MIC_GUIDANCE_PERMISSION_DENIED,
    K.DEVICE_BUSY: MIC_GUIDANCE_DEVICE_BUSY,
    K.UNSUPPORTED: MIC_GUIDANCE_UNSUPPORTED,
    K.UNKNOWN: MIC_GUIDANCE_UNKNOWN,
}


def normalize_capture_error(raw_name: str | None) -> PermissionErrorKind:
    """Fold a raw platform error name into one of the five kinds."""
    if raw_name is None:
        return K.UNKNOWN
    return RAW_ERROR_KINDS.get(raw_name, K.UNKNOWN)


class PermissionGate:
    """
    Probe microphone availability through a MicrophoneBackend.

    backend=None means the platform has no capture capability at all;
    every probe then fails with UNSUPPORTED.
    """

    def __init__(
        self,
        backend: MicrophoneBackend | None,
        *,
        constraints: CaptureConstraints | None = None,
    ) -> None:
        self._backend = backend
        self._constraints = constraints or CaptureConstraints()

    async def probe(self) -> None:
        """
        Acquire and immediately release a microphone.

        Raises:
            MicrophonePermissionError with the normalized kind.
        """
        if self._backend is None:
            raise self._failure(K.UNSUPPORTED, raw_name=None, detail="no capture backend")

        try:
            handle = await self._backend.request_microphone(self._constraints)
        except CaptureFailure as e:
            raise self._failure(
                normalize_capture_error(e.name), raw_name=e.name, detail=e.message,
            ) from e
        except Exception as e:  # pylint: disable=broad-exception-caught
            raise self._failure(
                K.UNKNOWN, raw_name=type(e).__name__, detail=str(e),
            ) from e

        try:
            handle.release()
        except Exception as e:  # pylint: disable=broad-exception-caught
            raise self._failure(
                K.UNKNOWN, raw_name=type(e).__name__, detail=f"release failed: {e}",
            ) from e

        log_event({
            "event_type": "mic_probe_ok",
        })

    def _failure(
        self,
        kind: PermissionErrorKind,
        *,
        raw_name: str | None,
        detail: str,
    ) -> MicrophonePermissionError:
        log_event({
            "event_type": "mic_probe_failed",
            "kind": kind.value,
            "raw_name": raw_name,
            "detail": detail,
        })
        return MicrophonePermissionError(kind, GUIDANCE[kind], raw_name=raw_name)
