"""
Microphone capture collaborator.

Responsibilities:
- Define the capture boundary the permission gate talks to
  (MicrophoneBackend / CaptureHandle)
- Provide a PortAudio-backed implementation via sounddevice

Failures are raised as CaptureFailure carrying a raw platform error
name. Normalizing those names is the permission gate's job, not ours.

Non-responsibilities:
- No audio streaming, resampling or codec work
- No retry
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from constants import MIC_PROBE_CHANNELS, MIC_PROBE_SAMPLE_RATE_HZ
from observability.logger import log_event


# ---------------------------------------------------------------------
# Boundary types
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class CaptureConstraints:
    """
    Requested capture properties.

    The three processing flags are hints: a backend that cannot honor
    them still succeeds.
    """
    echo_cancellation: bool = True
    noise_suppression: bool = True
    auto_gain_control: bool = True
    sample_rate_hz: int = MIC_PROBE_SAMPLE_RATE_HZ
    channels: int = MIC_PROBE_CHANNELS


class CaptureFailure(Exception):
    """
    Raw capture failure as reported by the platform.

    name is the platform's error name, e.g. "NotFoundError",
    "NotAllowedError", "NotReadableError", "Unsupported".
    """

    def __init__(self, name: str, message: str = "") -> None:
        super().__init__(f"{name}: {message}" if message else name)
        self.name = name
        self.message = message


@runtime_checkable
class CaptureHandle(Protocol):
    def release(self) -> None: ...


@runtime_checkable
class MicrophoneBackend(Protocol):
    async def request_microphone(self, constraints: CaptureConstraints) -> CaptureHandle: ...


# ---------------------------------------------------------------------
# sounddevice implementation
# ---------------------------------------------------------------------

# PortAudio error text -> raw name. Checked in order, first match wins.
_PORTAUDIO_ERROR_NAMES: tuple[tuple[str, str], ...] = (
    ("device unavailable", "NotReadableError"),
    ("device busy", "NotReadableError"),
    ("-9985", "NotReadableError"),
    ("invalid device", "NotFoundError"),
    ("no default input device", "NotFoundError"),
    ("error querying device -1", "NotFoundError"),
    ("-9996", "NotFoundError"),
    ("invalid number of channels", "NotFoundError"),
    ("-9998", "NotFoundError"),
    ("permission", "NotAllowedError"),
    ("not authorized", "NotAllowedError"),
)


def classify_portaudio_error(message: str) -> str:
    """Map a PortAudio error message to a raw capture error name."""
    lowered = message.lower()
    for needle, name in _PORTAUDIO_ERROR_NAMES:
        if needle in lowered:
            return name
    return "PortAudioError"


class _SoundDeviceHandle:
    """Started sounddevice InputStream; release() stops and closes it."""

    def __init__(self, stream: Any) -> None:
        self._stream = stream
        self._released = False

    def release(self) -> None:
        if self._released:
            return
        self._released = True
        self._stream.stop()
        self._stream.close()


class SoundDeviceMicrophone:
    """
    MicrophoneBackend on top of sounddevice (PortAudio).

    PortAudio offers no echo cancellation / noise suppression / AGC
    switches; those hints are logged and otherwise ignored.
    """

    def __init__(self, *, device: int | str | None = None) -> None:
        self._device = device

    async def request_microphone(self, constraints: CaptureConstraints) -> CaptureHandle:
        return await asyncio.to_thread(self._open_blocking, constraints)

    def _open_blocking(self, constraints: CaptureConstraints) -> CaptureHandle:
        try:
            import sounddevice as sd  # pylint: disable=import-outside-toplevel
        except OSError as e:
            # PortAudio shared library missing: no capture on this platform
            raise CaptureFailure("Unsupported", str(e)) from e

        log_event({
            "event_type": "mic_open_requested",
            "device": self._device,
            "sample_rate_hz": constraints.sample_rate_hz,
            "channels": constraints.channels,
            "hints": {
                "echo_cancellation": constraints.echo_cancellation,
                "noise_suppression": constraints.noise_suppression,
                "auto_gain_control": constraints.auto_gain_control,
            },
        })

        try:
            stream = sd.InputStream(
                device=self._device,
                samplerate=int(constraints.sample_rate_hz),
                channels=int(constraints.channels),
                dtype="int16",
            )
        except sd.PortAudioError as e:
            raise CaptureFailure(classify_portaudio_error(str(e)), str(e)) from e
        except ValueError as e:
            # sounddevice raises ValueError for unknown device names/indices
            raise CaptureFailure("NotFoundError", str(e)) from e

        try:
            stream.start()
        except sd.PortAudioError as e:
            stream.close()
            raise CaptureFailure(classify_portaudio_error(str(e)), str(e)) from e

        return _SoundDeviceHandle(stream)
