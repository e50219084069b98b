"""
Authoritative session state container.

Rules:
- This dataclass is a pure data model.
- It contains ALL state the reducer may ever need.
- No behavior, no helpers, no derived logic.
"""
from __future__ import annotations

from dataclasses import dataclass

from orchestrator.enums.permission import PermissionErrorKind
from orchestrator.enums.status import SessionStatus
from orchestrator.enums.transport import TransportMode


@dataclass(frozen=True)
class SessionState:
    """Immutable snapshot of all controller-owned session state."""

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    status: SessionStatus = SessionStatus.IDLE

    # Bumped on every accepted start; 0 means "never started".
    # Command outcomes carrying an older attempt are stale.
    attempt: int = 0

    # ------------------------------------------------------------------
    # Remote session
    # ------------------------------------------------------------------
    agent_id: str | None = None
    transport_mode: TransportMode | None = None

    # Set on connect, cleared on disconnect and on a new attempt
    conversation_id: str | None = None

    # Meaningful only while CONNECTED
    mode: str | None = None

    # Last status string reported by the remote (informational only)
    remote_status: str | None = None

    # ------------------------------------------------------------------
    # Deferred end (end_call while CONNECTING)
    # ------------------------------------------------------------------
    end_requested: bool = False

    # ------------------------------------------------------------------
    # Feedback
    # ------------------------------------------------------------------
    can_send_feedback: bool = False

    # ------------------------------------------------------------------
    # Error handling
    # ------------------------------------------------------------------
    last_error: str | None = None
    last_error_kind: PermissionErrorKind | None = None
