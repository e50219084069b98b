"""
Pure session reducer.

(state, event) -> (new_state, commands)

Rules:
- Pure: no side effects, no IO, no clocks.
- Deterministic: output depends only on inputs.
- Total: every (status, event) pair is handled or explicitly ignored (logged).
- Every status change goes through _transition(), which only admits the
  edges in ALLOWED_TRANSITIONS.
- Log commands come before effect commands: the runtime awaits effects,
  and the log line for a transition must precede the lines its effects
  produce.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any, Callable

from constants import (
    MSG_CONNECT_FAILED_PREFIX,
    MSG_CONNECTED,
    MSG_DISCONNECTED,
    MSG_END_FAILED_PREFIX,
    MSG_ERROR_PREFIX,
    MSG_MICROPHONE_PREFIX,
)
from orchestrator.commands import (
    AppendTranscript,
    CloseSession,
    Command,
    LogEvent,
    OpenSession,
    ProbeMicrophone,
    RejectIntent,
)
from orchestrator.enums.role import Role
from orchestrator.enums.status import SessionStatus
from orchestrator.events import (
    AttemptEvent,
    EndRequested,
    Event,
    EventType,
    FeedbackEligibilityChanged,
    PermissionDenied,
    PermissionGranted,
    RemoteConnected,
    RemoteDisconnected,
    RemoteError,
    RemoteMessage,
    RemoteModeChanged,
    RemoteStatusChanged,
    SessionCloseFailed,
    SessionClosed,
    SessionOpenFailed,
    SessionOpened,
    StartRequested,
)
from orchestrator.state_dataclass import SessionState


Result = tuple[SessionState, tuple[Command, ...]]

# =============================================================================
# Transition table
# =============================================================================

S = SessionStatus

ALLOWED_TRANSITIONS: frozenset[tuple[SessionStatus, SessionStatus]] = frozenset({
    (S.IDLE, S.ACQUIRING_PERMISSION),
    (S.ACQUIRING_PERMISSION, S.CONNECTING),
    (S.ACQUIRING_PERMISSION, S.FAILED),
    (S.CONNECTING, S.CONNECTED),
    (S.CONNECTING, S.FAILED),
    (S.CONNECTED, S.DISCONNECTING),
    (S.CONNECTED, S.FAILED),
    (S.DISCONNECTING, S.DISCONNECTED),
    (S.DISCONNECTED, S.ACQUIRING_PERMISSION),
    (S.FAILED, S.ACQUIRING_PERMISSION),
})

STARTABLE_STATUSES: frozenset[SessionStatus] = frozenset({
    S.IDLE, S.DISCONNECTED, S.FAILED,
})

ENDABLE_STATUSES: frozenset[SessionStatus] = frozenset({
    S.CONNECTING, S.CONNECTED,
})


# =============================================================================
# Small helpers
# =============================================================================

def _log(
    state: SessionState,
    event: Event,
    decision: str,
    details: dict[str, Any] | None = None,
) -> LogEvent:
    return LogEvent(
        event={
            "ts_ms": event.ts_ms,
            "status": state.status.value,
            "attempt": state.attempt,
            "event_type": event.event_type.value,
            "decision": decision,
            "details": details or {},
        }
    )


def _ignore(state: SessionState, event: Event, reason: str) -> Result:
    return state, (_log(state, event, "ignore", {"reason": reason}),)


def _transition(
    old: SessionState,
    new: SessionState,
    event: Event,
    source: str,
) -> LogEvent:
    edge = (old.status, new.status)
    assert edge in ALLOWED_TRANSITIONS, (
        f"illegal transition {old.status.value} -> {new.status.value} on {event.event_type.value}"
    )
    return _log(
        new,
        event,
        "state_changed",
        {
            "from_status": old.status.value,
            "to_status": new.status.value,
            "source": source,
        },
    )


def _system(content: str) -> AppendTranscript:
    return AppendTranscript(role=Role.SYSTEM, content=content)


def _enter_connected(
    state: SessionState,
    event: Event,
    conversation_id: str | None,
    source: str,
) -> Result:
    """
    CONNECTING -> CONNECTED.

    If end_call was deferred while connecting, continue straight into
    DISCONNECTING and close the freshly opened session.
    """
    connected = replace(
        state,
        status=S.CONNECTED,
        conversation_id=conversation_id or state.conversation_id,
        end_requested=False,
    )
    commands: list[Command] = [
        _transition(state, connected, event, source),
        _system(MSG_CONNECTED),
    ]

    if not state.end_requested:
        return connected, tuple(commands)

    closing = replace(connected, status=S.DISCONNECTING, mode=None)
    commands.append(_transition(connected, closing, event, "deferred_end_call"))
    commands.append(CloseSession(attempt=closing.attempt))
    return closing, tuple(commands)


def _enter_disconnected(state: SessionState, event: Event, source: str) -> Result:
    new_state = replace(
        state,
        status=S.DISCONNECTED,
        conversation_id=None,
        mode=None,
        end_requested=False,
    )
    return new_state, (_transition(state, new_state, event, source),)


# =============================================================================
# Caller intents
# =============================================================================

def _on_start_requested(state: SessionState, event: StartRequested) -> Result:
    if state.status not in STARTABLE_STATUSES:
        return state, (
            _log(state, event, "start_rejected", {"reason": "status_not_startable"}),
            RejectIntent(reason=f"start_call is not allowed while {state.status.value}"),
        )

    # New attempt: everything from the previous attempt is discarded.
    new_state = SessionState(
        status=S.ACQUIRING_PERMISSION,
        attempt=state.attempt + 1,
        agent_id=event.agent_id,
        transport_mode=event.transport_mode,
    )
    return new_state, (
        _transition(state, new_state, event, "start_call"),
        ProbeMicrophone(attempt=new_state.attempt),
    )


def _on_end_requested(state: SessionState, event: EndRequested) -> Result:
    if state.status is S.CONNECTED:
        new_state = replace(state, status=S.DISCONNECTING, mode=None)
        return new_state, (
            _transition(state, new_state, event, "end_call"),
            CloseSession(attempt=new_state.attempt),
        )

    if state.status is S.CONNECTING:
        if state.end_requested:
            return _ignore(state, event, "end_already_deferred")
        new_state = replace(state, end_requested=True)
        return new_state, (_log(new_state, event, "end_deferred_until_connected"),)

    return _ignore(state, event, f"end_call_noop_while_{state.status.value}")


# =============================================================================
# Permission outcomes
# =============================================================================

def _on_permission_granted(state: SessionState, event: PermissionGranted) -> Result:
    if state.status is not S.ACQUIRING_PERMISSION:
        return _ignore(state, event, "not_acquiring_permission")

    assert state.agent_id is not None and state.transport_mode is not None
    new_state = replace(state, status=S.CONNECTING)
    return new_state, (
        _transition(state, new_state, event, "permission_granted"),
        OpenSession(
            attempt=new_state.attempt,
            agent_id=state.agent_id,
            transport_mode=state.transport_mode,
        ),
    )


def _on_permission_denied(state: SessionState, event: PermissionDenied) -> Result:
    if state.status is not S.ACQUIRING_PERMISSION:
        return _ignore(state, event, "not_acquiring_permission")

    new_state = replace(
        state,
        status=S.FAILED,
        last_error=event.reason,
        last_error_kind=event.kind,
    )
    return new_state, (
        _transition(state, new_state, event, "permission_denied"),
        _system(f"{MSG_MICROPHONE_PREFIX}{event.kind.value} - {event.reason}"),
    )


# =============================================================================
# Remote session call outcomes
# =============================================================================

def _on_session_opened(state: SessionState, event: SessionOpened) -> Result:
    if state.status is S.CONNECTING:
        return _enter_connected(state, event, event.conversation_id, "open_session_resolved")

    if state.status is S.CONNECTED:
        if state.conversation_id is None:
            new_state = replace(state, conversation_id=event.conversation_id)
            return new_state, (_log(new_state, event, "conversation_id_recorded"),)
        return _ignore(state, event, "already_connected")

    if state.status is S.FAILED:
        # The attempt failed while the open was in flight; tear down
        # whatever the late open produced.
        return state, (
            _log(state, event, "late_open_closed"),
            CloseSession(attempt=state.attempt, conversation_id=event.conversation_id),
        )

    return _ignore(state, event, "not_connecting")


def _on_session_open_failed(state: SessionState, event: SessionOpenFailed) -> Result:
    if state.status is not S.CONNECTING:
        return _ignore(state, event, "not_connecting")

    new_state = replace(
        state,
        status=S.FAILED,
        end_requested=False,
        last_error=event.reason,
        last_error_kind=None,
    )
    return new_state, (
        _transition(state, new_state, event, "open_session_rejected"),
        _system(f"{MSG_CONNECT_FAILED_PREFIX}{event.reason}"),
    )


def _on_session_closed(state: SessionState, event: SessionClosed) -> Result:
    if state.status is not S.DISCONNECTING:
        return _ignore(state, event, "not_disconnecting")
    return _enter_disconnected(state, event, "close_session_resolved")


def _on_session_close_failed(state: SessionState, event: SessionCloseFailed) -> Result:
    if state.status is not S.DISCONNECTING:
        return _ignore(state, event, "not_disconnecting")

    # Close is best-effort: record the failure, still advance.
    new_state, commands = _enter_disconnected(state, event, "close_session_rejected")
    return new_state, commands + (_system(f"{MSG_END_FAILED_PREFIX}{event.reason}"),)


# =============================================================================
# Remote pushes
# =============================================================================

def _on_remote_connected(state: SessionState, event: RemoteConnected) -> Result:
    if state.status is S.CONNECTING:
        return _enter_connected(state, event, event.conversation_id, "remote_connected")

    if state.status is S.CONNECTED and state.conversation_id is None and event.conversation_id:
        new_state = replace(state, conversation_id=event.conversation_id)
        return new_state, (_log(new_state, event, "conversation_id_recorded"),)

    return _ignore(state, event, f"connect_while_{state.status.value}")


def _on_remote_disconnected(state: SessionState, event: RemoteDisconnected) -> Result:
    if state.status is S.CONNECTED:
        # Remote hung up: release the local side through the normal close path.
        new_state = replace(state, status=S.DISCONNECTING, mode=None)
        return new_state, (
            _transition(state, new_state, event, "remote_disconnected"),
            _system(MSG_DISCONNECTED),
            CloseSession(attempt=new_state.attempt),
        )

    if state.status is S.DISCONNECTING:
        return _enter_disconnected(state, event, "remote_disconnected")

    return _ignore(state, event, f"disconnect_while_{state.status.value}")


def _on_remote_message(state: SessionState, event: RemoteMessage) -> Result:
    # Messages are appended in every status (they may arrive while closing).
    return state, (
        _log(state, event, "message_appended", {
            "role": event.role.value,
            "chars": len(event.content),
        }),
        AppendTranscript(role=event.role, content=event.content),
    )


def _on_remote_error(state: SessionState, event: RemoteError) -> Result:
    entry = _system(f"{MSG_ERROR_PREFIX}{event.detail}")

    if state.status in (S.CONNECTING, S.CONNECTED):
        new_state = replace(
            state,
            status=S.FAILED,
            mode=None,
            end_requested=False,
            last_error=event.detail,
            last_error_kind=None,
        )
        return new_state, (
            _transition(state, new_state, event, "remote_error"),
            entry,
            CloseSession(attempt=new_state.attempt),
        )

    return state, (_log(state, event, "error_recorded"), entry)


def _on_remote_status_changed(state: SessionState, event: RemoteStatusChanged) -> Result:
    if state.remote_status == event.status:
        return _ignore(state, event, "remote_status_unchanged")
    new_state = replace(state, remote_status=event.status)
    return new_state, (
        _log(new_state, event, "remote_status_changed", {
            "from": state.remote_status,
            "to": event.status,
        }),
    )


def _on_remote_mode_changed(state: SessionState, event: RemoteModeChanged) -> Result:
    if state.status is not S.CONNECTED:
        return _ignore(state, event, "mode_outside_connected")
    if state.mode == event.mode:
        return _ignore(state, event, "mode_unchanged")
    new_state = replace(state, mode=event.mode)
    return new_state, (
        _log(new_state, event, "mode_changed", {"from": state.mode, "to": event.mode}),
    )


def _on_feedback_eligibility(state: SessionState, event: FeedbackEligibilityChanged) -> Result:
    if state.can_send_feedback == event.can_send:
        return _ignore(state, event, "feedback_eligibility_unchanged")
    new_state = replace(state, can_send_feedback=event.can_send)
    return new_state, (
        _log(new_state, event, "feedback_eligibility_changed", {"can_send": event.can_send}),
    )


# =============================================================================
# Dispatch
# =============================================================================

_HANDLERS: dict[EventType, Callable[[SessionState, Any], Result]] = {
    EventType.START_REQUESTED: _on_start_requested,
    EventType.END_REQUESTED: _on_end_requested,
    EventType.PERMISSION_GRANTED: _on_permission_granted,
    EventType.PERMISSION_DENIED: _on_permission_denied,
    EventType.SESSION_OPENED: _on_session_opened,
    EventType.SESSION_OPEN_FAILED: _on_session_open_failed,
    EventType.SESSION_CLOSED: _on_session_closed,
    EventType.SESSION_CLOSE_FAILED: _on_session_close_failed,
    EventType.REMOTE_CONNECTED: _on_remote_connected,
    EventType.REMOTE_DISCONNECTED: _on_remote_disconnected,
    EventType.REMOTE_MESSAGE: _on_remote_message,
    EventType.REMOTE_ERROR: _on_remote_error,
    EventType.REMOTE_STATUS_CHANGED: _on_remote_status_changed,
    EventType.REMOTE_MODE_CHANGED: _on_remote_mode_changed,
    EventType.FEEDBACK_ELIGIBILITY_CHANGED: _on_feedback_eligibility,
}


def reduce(state: SessionState, event: Event) -> Result:
    """
    Pure reducer for the call session state machine.

    Given the current session state and a single event, returns:
    - the next state
    - a tuple of commands describing required side effects

    Properties:
    - Deterministic: no IO, clocks, or randomness
    - Total: every (status, event) pair is handled or explicitly ignored
    - Attempt-safe: ignores outcomes from earlier attempts, except that a
      late successful open is closed
    """
    if isinstance(event, SessionOpened) and event.attempt != state.attempt:
        # An earlier attempt's open resolved after a newer start; close it.
        return state, (
            _log(state, event, "stale_open_closed", {"stale_attempt": event.attempt}),
            CloseSession(attempt=event.attempt, conversation_id=event.conversation_id),
        )

    if isinstance(event, AttemptEvent) and event.attempt != state.attempt:
        return _ignore(state, event, "stale_attempt")

    handler = _HANDLERS.get(event.event_type)
    if handler is None:
        return _ignore(state, event, "unhandled_event_type")

    return handler(state, event)
