"""
Runtime execution shell for a single call session.

Responsibilities:
- Own the authoritative session state and the transcript
- Call the pure reducer
- Execute commands with side effects (microphone probe, remote
  open/close, transcript appends, logging)
- Convert command outcomes and remote pushes into events

Non-responsibilities:
- No transition logic (reducer only)
- No transport or audio details (adapters only)
- No presentation concerns (server only)
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable

from adapters.voice.base import VoiceService
from config import validate_call_settings
from context.transcript import TranscriptLog
from errors import (
    CallError,
    InvalidStateError,
    MicrophonePermissionError,
    RemoteConnectionError,
)
from observability.logger import log_event
from observability.metrics import timed
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
from orchestrator.enums.transport import TransportMode
from orchestrator.events import (
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
from orchestrator.reducer import reduce
from orchestrator.state_dataclass import SessionState
from session.feedback import FeedbackCoordinator
from session.permission_gate import PermissionGate


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


@dataclass(frozen=True)
class StatusChange:
    """One edge taken by the state machine, as reported to listeners."""
    from_status: SessionStatus
    to_status: SessionStatus
    source: str


StatusListener = Callable[[StatusChange], None]


class SessionController:
    """
    Runtime boundary for one voice call session.

    Architectural role:
    SessionController is the bridge between the pure state machine
    (reducer + immutable SessionState) and the imperative world
    (microphone, remote voice service, logging, transcript).

    Guarantees:
    - The reducer is called exactly once per incoming event
    - State is swapped before any command executes
    - Commands are executed in reducer-emitted order
    - Every event source (caller intents, command outcomes, remote
      pushes) converges on handle_event()

    The reducer is synchronous, so each transition is atomic on the event
    loop even while probe/open/close are suspended.
    """

    def __init__(
        self,
        *,
        service: VoiceService,
        gate: PermissionGate,
        agent_id: str = "",
        transport_mode: TransportMode | str = TransportMode.WEBSOCKET,
        transcript: TranscriptLog | None = None,
        clock_ms: Callable[[], int] = _now_ms,
    ) -> None:
        self._state = SessionState()
        self._service = service
        self._gate = gate
        self._clock_ms = clock_ms
        self._status_listeners: list[StatusListener] = []
        # attempt -> reason it failed while its start_call() was still running
        self._start_failures: dict[int, str | None] = {}

        self.agent_id = agent_id
        self.transport_mode = transport_mode
        self.transcript = transcript or TranscriptLog()
        self.feedback = FeedbackCoordinator(
            can_send=lambda: self._state.can_send_feedback,
            service=service,
        )

        service.bind(self)

    # ------------------------------------------------------------------
    # Read access (presentation)
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        """
        Current immutable session state.

        Only the runtime replaces it (via the reducer); consumers must
        treat it as read-only.
        """
        return self._state

    @property
    def status(self) -> SessionStatus:
        return self._state.status

    @property
    def mode(self) -> str | None:
        return self._state.mode

    @property
    def conversation_id(self) -> str | None:
        return self._state.conversation_id

    @property
    def can_send_feedback(self) -> bool:
        return self._state.can_send_feedback

    def add_status_listener(self, listener: StatusListener) -> None:
        self._status_listeners.append(listener)

    # ------------------------------------------------------------------
    # Caller intents
    # ------------------------------------------------------------------

    def configure(
        self,
        *,
        agent_id: str | None = None,
        transport_mode: TransportMode | str | None = None,
    ) -> None:
        """Update call settings used by the next start_call()."""
        if agent_id is not None:
            self.agent_id = agent_id
        if transport_mode is not None:
            self.transport_mode = transport_mode

    async def start_call(self) -> None:
        """
        Probe the microphone, then open a remote session.

        Raises:
            ConfigurationError: agent id / transport invalid (nothing happens)
            InvalidStateError: a call is already in progress (nothing happens)
            MicrophonePermissionError: probe failed (recorded, status FAILED)
            RemoteConnectionError: open failed or remote errored while
                connecting (recorded, status FAILED)
        """
        transport_mode = validate_call_settings(self.agent_id, self.transport_mode)
        attempt = self._state.attempt + 1

        self._start_failures[attempt] = None
        try:
            await self.handle_event(
                StartRequested(
                    event_type=EventType.START_REQUESTED,
                    ts_ms=self._clock_ms(),
                    agent_id=self.agent_id.strip(),
                    transport_mode=transport_mode,
                )
            )
        finally:
            failure = self._start_failures.pop(attempt, None)

        # A remote error can fail the attempt while open_session was still
        # pending; the open then resolves quietly, so surface it here. The
        # record is per attempt since a newer call may already be running.
        if failure is not None:
            raise RemoteConnectionError(failure)

    async def end_call(self) -> None:
        """
        End the current call.

        No-op unless CONNECTING or CONNECTED. While CONNECTING the request
        is deferred until the open resolves. Close failures are recorded
        in the transcript and never raised.
        """
        await self.handle_event(
            EndRequested(event_type=EventType.END_REQUESTED, ts_ms=self._clock_ms())
        )

    async def send_feedback(self, positive: bool) -> Any:
        return await self.feedback.send_feedback(positive)

    # ------------------------------------------------------------------
    # Remote pushes (VoiceServiceListener)
    # ------------------------------------------------------------------

    async def on_connect(self, conversation_id: str | None = None) -> None:
        await self.handle_event(
            RemoteConnected(
                event_type=EventType.REMOTE_CONNECTED,
                ts_ms=self._clock_ms(),
                conversation_id=conversation_id,
            )
        )

    async def on_disconnect(self) -> None:
        await self.handle_event(
            RemoteDisconnected(event_type=EventType.REMOTE_DISCONNECTED, ts_ms=self._clock_ms())
        )

    async def on_message(self, role: str, content: str) -> None:
        await self.handle_event(
            RemoteMessage(
                event_type=EventType.REMOTE_MESSAGE,
                ts_ms=self._clock_ms(),
                role=self._message_role(role),
                content=content,
            )
        )

    async def on_error(self, detail: str) -> None:
        await self.handle_event(
            RemoteError(event_type=EventType.REMOTE_ERROR, ts_ms=self._clock_ms(), detail=detail)
        )

    async def on_status_change(self, status: str) -> None:
        await self.handle_event(
            RemoteStatusChanged(
                event_type=EventType.REMOTE_STATUS_CHANGED,
                ts_ms=self._clock_ms(),
                status=status,
            )
        )

    async def on_mode_change(self, mode: str) -> None:
        await self.handle_event(
            RemoteModeChanged(event_type=EventType.REMOTE_MODE_CHANGED, ts_ms=self._clock_ms(), mode=mode)
        )

    async def on_feedback_eligibility(self, can_send: bool) -> None:
        await self.handle_event(
            FeedbackEligibilityChanged(
                event_type=EventType.FEEDBACK_ELIGIBILITY_CHANGED,
                ts_ms=self._clock_ms(),
                can_send=can_send,
            )
        )

    # ------------------------------------------------------------------
    # Event pipeline
    # ------------------------------------------------------------------

    async def handle_event(self, event: Event) -> None:
        """
        Process a single event.

        1. Pass the current state and event to the pure reducer
        2. Swap in the new state
        3. Execute all emitted commands sequentially

        Errors raised by command execution (invalid intent, probe or open
        failure) propagate to whoever dispatched the event, after the
        corresponding outcome has already been reduced.
        """
        new_state, commands = reduce(self._state, event)
        self._state = new_state

        for cmd in commands:
            await self._execute_command(cmd)

    async def _execute_command(self, cmd: Command) -> None:
        if isinstance(cmd, LogEvent):
            log_event(cmd.event)
            if cmd.event.get("decision") == "state_changed":
                self._record_start_failure(cmd.event)
                self._notify_status(cmd.event["details"])

        elif isinstance(cmd, AppendTranscript):
            self.transcript.append(cmd.role, cmd.content)

        elif isinstance(cmd, RejectIntent):
            raise InvalidStateError(cmd.reason)

        elif isinstance(cmd, ProbeMicrophone):
            await self._probe(cmd)

        elif isinstance(cmd, OpenSession):
            await self._open(cmd)

        elif isinstance(cmd, CloseSession):
            await self._close(cmd)

        else:
            log_event({
                "event_type": "UNKNOWN_COMMAND",
                "command_type": getattr(cmd, "command_type", None),
            })

    # ------------------------------------------------------------------
    # Command executors
    # ------------------------------------------------------------------

    async def _probe(self, cmd: ProbeMicrophone) -> None:
        try:
            with timed("mic_probe_latency", attempt=cmd.attempt):
                await self._gate.probe()
        except MicrophonePermissionError as e:
            await self.handle_event(
                PermissionDenied(
                    event_type=EventType.PERMISSION_DENIED,
                    ts_ms=self._clock_ms(),
                    attempt=cmd.attempt,
                    kind=e.kind,
                    reason=e.message,
                )
            )
            raise

        await self.handle_event(
            PermissionGranted(
                event_type=EventType.PERMISSION_GRANTED,
                ts_ms=self._clock_ms(),
                attempt=cmd.attempt,
            )
        )

    async def _open(self, cmd: OpenSession) -> None:
        try:
            with timed(
                "open_session_latency",
                attempt=cmd.attempt,
                details={"transport_mode": cmd.transport_mode.value},
            ):
                conversation_id = await self._service.open_session(cmd.agent_id, cmd.transport_mode)
        except Exception as e:  # pylint: disable=broad-exception-caught
            reason = _reason(e)
            await self.handle_event(
                SessionOpenFailed(
                    event_type=EventType.SESSION_OPEN_FAILED,
                    ts_ms=self._clock_ms(),
                    attempt=cmd.attempt,
                    reason=reason,
                )
            )
            if isinstance(e, CallError):
                raise
            raise RemoteConnectionError(reason) from e

        await self.handle_event(
            SessionOpened(
                event_type=EventType.SESSION_OPENED,
                ts_ms=self._clock_ms(),
                attempt=cmd.attempt,
                conversation_id=conversation_id,
            )
        )

    async def _close(self, cmd: CloseSession) -> None:
        # Best-effort: failures become an event, never an exception.
        try:
            with timed("close_session_latency", attempt=cmd.attempt):
                await self._service.close_session(conversation_id=cmd.conversation_id)
        except Exception as e:  # pylint: disable=broad-exception-caught
            await self.handle_event(
                SessionCloseFailed(
                    event_type=EventType.SESSION_CLOSE_FAILED,
                    ts_ms=self._clock_ms(),
                    attempt=cmd.attempt,
                    reason=_reason(e),
                )
            )
            return

        await self.handle_event(
            SessionClosed(
                event_type=EventType.SESSION_CLOSED,
                ts_ms=self._clock_ms(),
                attempt=cmd.attempt,
            )
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _record_start_failure(self, entry: dict[str, Any]) -> None:
        attempt = entry.get("attempt")
        if attempt not in self._start_failures:
            return
        if entry["details"].get("to_status") == SessionStatus.FAILED.value:
            self._start_failures[attempt] = (
                self._state.last_error or "session failed while connecting"
            )

    def _message_role(self, role: str) -> Role:
        """Map a provider role name onto Role; unknown names are kept as agent lines."""
        alias = _ROLE_ALIASES.get(str(role).strip().lower())
        if alias is not None:
            return alias
        log_event({"event_type": "UNKNOWN_MESSAGE_ROLE", "role": role})
        return Role.AGENT

    def _notify_status(self, details: dict[str, Any]) -> None:
        change = StatusChange(
            from_status=SessionStatus(details["from_status"]),
            to_status=SessionStatus(details["to_status"]),
            source=details.get("source", ""),
        )
        for listener in tuple(self._status_listeners):
            try:
                listener(change)
            except Exception as e:  # pylint: disable=broad-exception-caught
                log_event({
                    "event_type": "STATUS_LISTENER_ERROR",
                    "exception": type(e).__name__,
                    "message": str(e),
                })


_ROLE_ALIASES: dict[str, Role] = {
    "ai": Role.AGENT,
    "assistant": Role.AGENT,
    "bot": Role.AGENT,
    "agent": Role.AGENT,
    "user": Role.USER,
    "human": Role.USER,
    "system": Role.SYSTEM,
}


def _reason(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__
