"""
Transport mode enumeration for the remote voice service.
"""

from __future__ import annotations

from enum import Enum


class TransportMode(str, Enum):
    """How the remote service carries the realtime session."""

    WEBRTC = "webrtc"
    WEBSOCKET = "websocket"
