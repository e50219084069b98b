"""
Side-effect command definitions for the session reducer.

Rules:
- Commands are declarative requests for side effects.
- Commands are emitted by the reducer and executed by the runtime.
- No behavior, no async, no I/O, no clocks.
Invariant:
    - All concrete Command subclasses MUST be frozen dataclasses.
    - Commands are immutable value objects emitted by the reducer.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from orchestrator.enums.role import Role
from orchestrator.enums.transport import TransportMode

# =============================================================================
# Command Type Enumeration
# =============================================================================

class CommandType(str, Enum):
    """
    Canonical command types emitted by the reducer.

    These are stable discriminants used for logging and runtime dispatch.
    """

    # Microphone
    PROBE_MICROPHONE = "PROBE_MICROPHONE"

    # Remote session
    OPEN_SESSION = "OPEN_SESSION"
    CLOSE_SESSION = "CLOSE_SESSION"

    # Transcript
    APPEND_TRANSCRIPT = "APPEND_TRANSCRIPT"

    # Caller
    REJECT_INTENT = "REJECT_INTENT"

    # Observability
    LOG_EVENT = "LOG_EVENT"


# =============================================================================
# Base Command
# =============================================================================

class Command:
    """
    Base command type.

    command_type is an explicit discriminant and must never be inferred
    from Python type identity.
    """

    command_type: CommandType


# =============================================================================
# Microphone
# =============================================================================

@dataclass(frozen=True)
class ProbeMicrophone(Command):
    """Run the permission gate probe for an attempt."""
    attempt: int
    command_type: CommandType = CommandType.PROBE_MICROPHONE


# =============================================================================
# Remote Session
# =============================================================================

@dataclass(frozen=True)
class OpenSession(Command):
    """Open a remote session; outcome returns as SessionOpened/SessionOpenFailed."""
    attempt: int
    agent_id: str
    transport_mode: TransportMode
    command_type: CommandType = CommandType.OPEN_SESSION


@dataclass(frozen=True)
class CloseSession(Command):
    """
    Close the remote session; outcome returns as SessionClosed/SessionCloseFailed.

    conversation_id names a specific late-opened session to tear down;
    None means whatever session is current.
    """
    attempt: int
    conversation_id: str | None = None
    command_type: CommandType = CommandType.CLOSE_SESSION


# =============================================================================
# Transcript
# =============================================================================

@dataclass(frozen=True)
class AppendTranscript(Command):
    """Append one entry to the transcript log."""
    role: Role
    content: str
    command_type: CommandType = CommandType.APPEND_TRANSCRIPT


# =============================================================================
# Caller
# =============================================================================

@dataclass(frozen=True)
class RejectIntent(Command):
    """
    The caller's intent is not allowed in the current status.

    The runtime turns this into InvalidStateError for the immediate
    caller; it never reaches the transcript or the remote service.
    """
    reason: str
    command_type: CommandType = CommandType.REJECT_INTENT


# =============================================================================
# Observability
# =============================================================================

@dataclass(frozen=True)
class LogEvent(Command):
    """Structured log line; executed via observability.logger."""
    event: dict[str, Any]
    command_type: CommandType = CommandType.LOG_EVENT
