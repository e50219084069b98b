"""
Unified event definitions for the session reducer.

Rules:
- Events describe facts that have occurred (or intents that were issued).
- Events carry data only (no behavior).
- All reducer decisions are based on these events.
- No clocks, no async, no side effects.

The set is closed: every event the reducer understands is listed in
EventType, and every EventType has exactly one dataclass here.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from orchestrator.enums.permission import PermissionErrorKind
from orchestrator.enums.role import Role
from orchestrator.enums.transport import TransportMode


# =============================================================================
# Event Type Enumeration
# =============================================================================

class EventType(str, Enum):
    """
    Canonical event types understood by the reducer.

    Every (status, event_type) pair must be explicitly handled
    or explicitly ignored by the reducer.
    """

    # ------------------------------------------------------------------
    # Caller intents
    # ------------------------------------------------------------------
    START_REQUESTED = "START_REQUESTED"
    END_REQUESTED = "END_REQUESTED"

    # ------------------------------------------------------------------
    # Command outcomes (attempt-scoped)
    # ------------------------------------------------------------------
    PERMISSION_GRANTED = "PERMISSION_GRANTED"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    SESSION_OPENED = "SESSION_OPENED"
    SESSION_OPEN_FAILED = "SESSION_OPEN_FAILED"
    SESSION_CLOSED = "SESSION_CLOSED"
    SESSION_CLOSE_FAILED = "SESSION_CLOSE_FAILED"

    # ------------------------------------------------------------------
    # Remote voice service pushes
    # ------------------------------------------------------------------
    REMOTE_CONNECTED = "REMOTE_CONNECTED"
    REMOTE_DISCONNECTED = "REMOTE_DISCONNECTED"
    REMOTE_MESSAGE = "REMOTE_MESSAGE"
    REMOTE_ERROR = "REMOTE_ERROR"
    REMOTE_STATUS_CHANGED = "REMOTE_STATUS_CHANGED"
    REMOTE_MODE_CHANGED = "REMOTE_MODE_CHANGED"
    FEEDBACK_ELIGIBILITY_CHANGED = "FEEDBACK_ELIGIBILITY_CHANGED"


# =============================================================================
# Base Event
# =============================================================================

@dataclass(frozen=True)
class Event:
    """
    Base event type.

    All events must specify:
    - event_type: discriminant
    - ts_ms: timestamp provided by the source (or fake in tests)
    """

    event_type: EventType
    ts_ms: int


@dataclass(frozen=True)
class AttemptEvent(Event):
    """
    Base class for outcomes of commands issued for one start attempt.

    The reducer MUST ignore outcomes whose attempt does not match the
    current attempt.
    """

    attempt: int


# =============================================================================
# Caller Intents
# =============================================================================

@dataclass(frozen=True)
class StartRequested(Event):
    """Caller asked to start a call with a validated configuration."""
    agent_id: str
    transport_mode: TransportMode


@dataclass(frozen=True)
class EndRequested(Event):
    """Caller asked to end the current call."""


# =============================================================================
# Permission Outcomes
# =============================================================================

@dataclass(frozen=True)
class PermissionGranted(AttemptEvent):
    """Microphone probe confirmed a usable device (already released)."""


@dataclass(frozen=True)
class PermissionDenied(AttemptEvent):
    """Microphone probe failed with a normalized kind."""
    kind: PermissionErrorKind
    reason: str


# =============================================================================
# Remote Session Call Outcomes
# =============================================================================

@dataclass(frozen=True)
class SessionOpened(AttemptEvent):
    """open_session resolved."""
    conversation_id: str


@dataclass(frozen=True)
class SessionOpenFailed(AttemptEvent):
    """open_session rejected."""
    reason: str


@dataclass(frozen=True)
class SessionClosed(AttemptEvent):
    """close_session resolved."""


@dataclass(frozen=True)
class SessionCloseFailed(AttemptEvent):
    """close_session rejected (close is best-effort)."""
    reason: str


# =============================================================================
# Remote Pushes
# =============================================================================

@dataclass(frozen=True)
class RemoteConnected(Event):
    """Remote reports the session is connected."""
    conversation_id: str | None = None


@dataclass(frozen=True)
class RemoteDisconnected(Event):
    """Remote reports the session transport is gone."""


@dataclass(frozen=True)
class RemoteMessage(Event):
    """A user or agent utterance relayed by the remote."""
    role: Role
    content: str


@dataclass(frozen=True)
class RemoteError(Event):
    """Remote reports a session error."""
    detail: str


@dataclass(frozen=True)
class RemoteStatusChanged(Event):
    """Remote's own status string changed (informational)."""
    status: str


@dataclass(frozen=True)
class RemoteModeChanged(Event):
    """Remote speaking/listening mode changed."""
    mode: str


@dataclass(frozen=True)
class FeedbackEligibilityChanged(Event):
    """Remote opened or closed the feedback window."""
    can_send: bool
