# pylint: disable=missing-module-docstring,missing-function-docstring
from collections.abc import Sequence
from dataclasses import replace

import pytest

from orchestrator.reducer import ALLOWED_TRANSITIONS, reduce
from orchestrator.state_dataclass import SessionState
from orchestrator.enums.permission import PermissionErrorKind
from orchestrator.enums.role import Role
from orchestrator.enums.status import SessionStatus
from orchestrator.enums.transport import TransportMode

from orchestrator.events import (
    EndRequested,
    Event,
    EventType,
    PermissionDenied,
    PermissionGranted,
    RemoteConnected,
    RemoteDisconnected,
    RemoteError,
    RemoteMessage,
    RemoteModeChanged,
    SessionCloseFailed,
    SessionClosed,
    SessionOpenFailed,
    SessionOpened,
    StartRequested,
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

S = SessionStatus


# ---------------------------------------------------------------------
# Event helpers (mirror runtime construction)
# ---------------------------------------------------------------------

def start(agent_id: str = "agent-1") -> StartRequested:
    return StartRequested(
        event_type=EventType.START_REQUESTED,
        ts_ms=0,
        agent_id=agent_id,
        transport_mode=TransportMode.WEBSOCKET,
    )


def end() -> EndRequested:
    return EndRequested(event_type=EventType.END_REQUESTED, ts_ms=0)


def granted(attempt: int = 1) -> PermissionGranted:
    return PermissionGranted(event_type=EventType.PERMISSION_GRANTED, ts_ms=0, attempt=attempt)


def denied(attempt: int = 1) -> PermissionDenied:
    return PermissionDenied(
        event_type=EventType.PERMISSION_DENIED,
        ts_ms=0,
        attempt=attempt,
        kind=PermissionErrorKind.DEVICE_NOT_FOUND,
        reason="no mic",
    )


def opened(attempt: int = 1, conversation_id: str = "conv-1") -> SessionOpened:
    return SessionOpened(
        event_type=EventType.SESSION_OPENED,
        ts_ms=0,
        attempt=attempt,
        conversation_id=conversation_id,
    )


def open_failed(attempt: int = 1) -> SessionOpenFailed:
    return SessionOpenFailed(
        event_type=EventType.SESSION_OPEN_FAILED, ts_ms=0, attempt=attempt, reason="rejected",
    )


def closed(attempt: int = 1) -> SessionClosed:
    return SessionClosed(event_type=EventType.SESSION_CLOSED, ts_ms=0, attempt=attempt)


def close_failed(attempt: int = 1) -> SessionCloseFailed:
    return SessionCloseFailed(
        event_type=EventType.SESSION_CLOSE_FAILED, ts_ms=0, attempt=attempt, reason="gone",
    )


def remote_connected() -> RemoteConnected:
    return RemoteConnected(event_type=EventType.REMOTE_CONNECTED, ts_ms=0, conversation_id="conv-1")


def remote_disconnected() -> RemoteDisconnected:
    return RemoteDisconnected(event_type=EventType.REMOTE_DISCONNECTED, ts_ms=0)


def remote_error(detail: str = "boom") -> RemoteError:
    return RemoteError(event_type=EventType.REMOTE_ERROR, ts_ms=0, detail=detail)


def message(role: Role, content: str) -> RemoteMessage:
    return RemoteMessage(event_type=EventType.REMOTE_MESSAGE, ts_ms=0, role=role, content=content)


def state_at(status: SessionStatus, attempt: int = 1) -> SessionState:
    return SessionState(
        status=status,
        attempt=attempt,
        agent_id="agent-1",
        transport_mode=TransportMode.WEBSOCKET,
    )


def effects(commands: Sequence[Command]) -> list[Command]:
    return [c for c in commands if not isinstance(c, LogEvent)]


def appended(commands: Sequence[Command]) -> list[str]:
    return [c.content for c in commands if isinstance(c, AppendTranscript)]


def run(state: SessionState, *events: Event) -> tuple[SessionState, list[Command]]:
    """Feed events in order, collecting every emitted command."""
    out: list[Command] = []
    for ev in events:
        state, commands = reduce(state, ev)
        out.extend(commands)
    return state, out


def transitions(commands: list[Command]) -> list[tuple[SessionStatus, SessionStatus]]:
    return [
        (S(c.event["details"]["from_status"]), S(c.event["details"]["to_status"]))
        for c in commands
        if isinstance(c, LogEvent) and c.event["decision"] == "state_changed"
    ]


# ---------------------------------------------------------------------
# Start
# ---------------------------------------------------------------------

@pytest.mark.parametrize("status", [S.IDLE, S.DISCONNECTED, S.FAILED])
def test_start_from_startable_status_probes_microphone(status: SessionStatus) -> None:
    state = replace(state_at(status, attempt=3), last_error="old", conversation_id="old")

    new_state, commands = reduce(state, start())

    assert new_state.status is S.ACQUIRING_PERMISSION
    assert new_state.attempt == 4
    assert new_state.last_error is None
    assert new_state.conversation_id is None
    assert effects(commands) == [ProbeMicrophone(attempt=4)]


@pytest.mark.parametrize(
    "status", [S.ACQUIRING_PERMISSION, S.CONNECTING, S.CONNECTED, S.DISCONNECTING],
)
def test_start_while_busy_is_rejected(status: SessionStatus) -> None:
    state = state_at(status)

    new_state, commands = reduce(state, start())

    assert new_state == state
    fx = effects(commands)
    assert len(fx) == 1
    assert isinstance(fx[0], RejectIntent)


# ---------------------------------------------------------------------
# Permission / open / close outcomes
# ---------------------------------------------------------------------

def test_granted_opens_session() -> None:
    new_state, commands = reduce(state_at(S.ACQUIRING_PERMISSION), granted())

    assert new_state.status is S.CONNECTING
    assert effects(commands) == [
        OpenSession(attempt=1, agent_id="agent-1", transport_mode=TransportMode.WEBSOCKET),
    ]


def test_denied_fails_and_records_kind() -> None:
    new_state, commands = reduce(state_at(S.ACQUIRING_PERMISSION), denied())

    assert new_state.status is S.FAILED
    assert new_state.last_error_kind is PermissionErrorKind.DEVICE_NOT_FOUND
    assert appended(commands) == ["Microphone error: DeviceNotFound - no mic"]


def test_opened_connects_once() -> None:
    state, commands = run(state_at(S.CONNECTING), opened(), remote_connected())

    assert state.status is S.CONNECTED
    assert state.conversation_id == "conv-1"
    assert appended(commands) == ["Connected to voice agent"]


def test_open_failed_records_reason() -> None:
    new_state, commands = reduce(state_at(S.CONNECTING), open_failed())

    assert new_state.status is S.FAILED
    assert appended(commands) == ["Failed to connect: rejected"]


def test_close_failed_still_disconnects() -> None:
    new_state, commands = reduce(state_at(S.DISCONNECTING), close_failed())

    assert new_state.status is S.DISCONNECTED
    assert appended(commands) == ["Failed to end conversation: gone"]


def test_stale_attempt_outcomes_are_ignored() -> None:
    state = state_at(S.CONNECTING, attempt=2)

    for ev in (granted(1), denied(1), open_failed(1), closed(1), close_failed(1)):
        new_state, commands = reduce(state, ev)
        assert new_state == state
        assert not effects(commands)


def test_late_open_after_failure_is_closed() -> None:
    new_state, commands = reduce(state_at(S.FAILED), opened())

    assert new_state.status is S.FAILED
    assert effects(commands) == [CloseSession(attempt=1, conversation_id="conv-1")]


@pytest.mark.parametrize("status", [S.CONNECTING, S.CONNECTED, S.FAILED, S.DISCONNECTED])
def test_open_from_earlier_attempt_is_closed_by_id(status: SessionStatus) -> None:
    state = state_at(status, attempt=2)

    new_state, commands = reduce(state, opened(1, conversation_id="conv-old"))

    assert new_state == state
    assert effects(commands) == [CloseSession(attempt=1, conversation_id="conv-old")]


# ---------------------------------------------------------------------
# End
# ---------------------------------------------------------------------

@pytest.mark.parametrize("status", [S.IDLE, S.DISCONNECTED, S.FAILED, S.DISCONNECTING])
def test_end_outside_call_is_noop(status: SessionStatus) -> None:
    state = state_at(status)

    new_state, commands = reduce(state, end())

    assert new_state == state
    assert not effects(commands)


def test_end_while_connected_closes() -> None:
    new_state, commands = reduce(state_at(S.CONNECTED), end())

    assert new_state.status is S.DISCONNECTING
    assert effects(commands) == [CloseSession(attempt=1)]


def test_mode_is_cleared_when_disconnecting_starts() -> None:
    speaking = replace(state_at(S.CONNECTED), conversation_id="conv-1", mode="speaking")

    for ev in (end(), remote_disconnected()):
        new_state, _ = reduce(speaking, ev)
        assert new_state.status is S.DISCONNECTING
        assert new_state.mode is None


def test_end_while_connecting_defers_close() -> None:
    state, commands = run(state_at(S.CONNECTING), end())

    assert state.status is S.CONNECTING
    assert state.end_requested
    assert not effects(commands)

    state, commands = run(state, opened(), closed())

    assert state.status is S.DISCONNECTED
    assert transitions(commands) == [
        (S.CONNECTING, S.CONNECTED),
        (S.CONNECTED, S.DISCONNECTING),
        (S.DISCONNECTING, S.DISCONNECTED),
    ]
    assert CloseSession(attempt=1) in commands


# ---------------------------------------------------------------------
# Remote pushes
# ---------------------------------------------------------------------

def test_remote_error_while_connected_fails_and_closes() -> None:
    state, commands = run(state_at(S.CONNECTED), remote_error("lost"), remote_disconnected())

    assert state.status is S.FAILED
    assert appended(commands) == ["Error: lost"]
    assert effects(commands).count(CloseSession(attempt=1)) == 1


def test_remote_error_outside_call_only_records() -> None:
    new_state, commands = reduce(state_at(S.DISCONNECTED), remote_error("late"))

    assert new_state.status is S.DISCONNECTED
    assert effects(commands) == [AppendTranscript(role=Role.SYSTEM, content="Error: late")]


def test_remote_hangup_goes_through_disconnecting() -> None:
    state, commands = run(state_at(S.CONNECTED), remote_disconnected(), closed())

    assert state.status is S.DISCONNECTED
    assert appended(commands) == ["Disconnected from voice agent"]
    assert transitions(commands) == [
        (S.CONNECTED, S.DISCONNECTING),
        (S.DISCONNECTING, S.DISCONNECTED),
    ]


def test_messages_are_appended_in_any_status() -> None:
    for status in S:
        _, commands = reduce(state_at(status), message(Role.USER, "hi"))
        assert appended(commands) == ["hi"]


def test_mode_only_tracked_while_connected() -> None:
    mode = RemoteModeChanged(event_type=EventType.REMOTE_MODE_CHANGED, ts_ms=0, mode="speaking")

    connected, _ = reduce(state_at(S.CONNECTED), mode)
    connecting, _ = reduce(state_at(S.CONNECTING), mode)

    assert connected.mode == "speaking"
    assert connecting.mode is None


# ---------------------------------------------------------------------
# Transition table
# ---------------------------------------------------------------------

def test_every_observed_transition_is_allowed() -> None:
    """Walk the main paths and check each edge against the table."""
    paths: list[tuple[SessionState, tuple[Event, ...]]] = [
        (SessionState(), (start(), granted(), opened(), end(), closed(), start())),
        (SessionState(), (start(), denied(), start())),
        (SessionState(), (start(), granted(), open_failed(), start())),
        (SessionState(), (start(), granted(), opened(), remote_error())),
        (SessionState(), (start(), granted(), remote_error())),
        (SessionState(), (start(), granted(), opened(), remote_disconnected(), close_failed())),
    ]

    seen: set[tuple[SessionStatus, SessionStatus]] = set()
    for state, events in paths:
        _, commands = run(state, *events)
        edges = transitions(commands)
        assert set(edges) <= ALLOWED_TRANSITIONS
        seen.update(edges)

    assert seen == ALLOWED_TRANSITIONS


def test_log_commands_precede_effects() -> None:
    _, commands = reduce(state_at(S.CONNECTED), remote_disconnected())

    assert isinstance(commands[0], LogEvent)
    assert isinstance(commands[-1], CloseSession)
