"""
Authoritative session status enumeration.

Rules:
- This enum defines ONLY the lifecycle statuses.
- No behavior, no helper methods, no side effects.
- Transitions are defined exclusively in the reducer.
"""

from __future__ import annotations

from enum import Enum


class SessionStatus(str, Enum):
    """
    Lifecycle status of the single voice session owned by a controller.

    Exactly one status is active at a time.
    """

    IDLE = "IDLE"
    ACQUIRING_PERMISSION = "ACQUIRING_PERMISSION"
    CONNECTING = "CONNECTING"
    CONNECTED = "CONNECTED"
    DISCONNECTING = "DISCONNECTING"
    DISCONNECTED = "DISCONNECTED"
    FAILED = "FAILED"
