"""
ElevenLabs Conversational AI client (WebSocket transport).

Core model:
- One WebSocket per conversation, opened by open_session() and torn down
  by close_session() or by the remote.
- open_session() completes only after conversation_initiation_metadata
  arrives; its conversation_id is the return value.
- A background receive loop translates provider messages into listener
  pushes. Pushes are fire-and-forget tasks so the loop never waits on
  the controller (which may call back into close_session()).

Message handling:
- ping                 -> pong (same event_id)
- user_transcript      -> message("user", text), mode "listening"
- agent_response       -> message("agent", text)
- audio                -> mode "speaking", feedback eligibility for its event_id
- interruption         -> mode "listening"
- error                -> error(detail)
- anything else        -> ignored

Design constraints:
- Audio payloads are not decoded or played; only their event ids matter.
- Only the websocket transport is implemented; webrtc is rejected.
- No retries or reconnects.
"""

from __future__ import annotations

import asyncio
import json
import urllib.parse
from typing import Any, Coroutine

import httpx
from websockets.asyncio.client import ClientConnection, connect as ws_connect
from websockets.exceptions import ConnectionClosedOK

from adapters.voice.base import VoiceService, VoiceServiceListener
from constants import (
    ELEVENLABS_API_BASE_URL,
    ELEVENLABS_CONVERSATION_PATH,
    ELEVENLABS_SIGNED_URL_PATH,
    FEEDBACK_SCORE_NEGATIVE,
    FEEDBACK_SCORE_POSITIVE,
    MODE_LISTENING,
    MODE_SPEAKING,
    SESSION_INIT_TIMEOUT_S,
    SIGNED_URL_TIMEOUT_S,
    WS_MAX_MESSAGE_BYTES,
)
from errors import RemoteConnectionError
from observability.logger import log_event
from orchestrator.enums.role import Role
from orchestrator.enums.transport import TransportMode


def _ws_base_url(api_base_url: str) -> str:
    """https://host -> wss://host, http://host -> ws://host."""
    if api_base_url.startswith("https://"):
        return "wss://" + api_base_url[len("https://"):]
    if api_base_url.startswith("http://"):
        return "ws://" + api_base_url[len("http://"):]
    return api_base_url


class ElevenLabsConversationClient(VoiceService):
    """
    VoiceService over the ElevenLabs Conversational AI WebSocket API.

    Public agents connect with agent_id only. With an api_key, a signed
    URL is requested first (private agents).
    """

    def __init__(
        self,
        *,
        api_key: str | None = None,
        api_base_url: str = ELEVENLABS_API_BASE_URL,
        init_timeout_s: float = SESSION_INIT_TIMEOUT_S,
    ) -> None:
        super().__init__()
        self._api_key = api_key
        self._api_base_url = api_base_url.rstrip("/")
        self._init_timeout_s = init_timeout_s

        self._ws: ClientConnection | None = None
        self._recv_task: asyncio.Task[None] | None = None
        self._emit_tasks: set[asyncio.Task[None]] = set()

        self._conversation_id: str | None = None
        self._closing: bool = False
        self._opening: bool = False
        self._disconnect_emitted: bool = True

        self._mode: str | None = None
        self._last_audio_event_id: int = 0
        self._last_feedback_event_id: int = 0
        self._can_send_feedback: bool = False

    # -------------------------------------------------------------------------
    # VoiceService
    # -------------------------------------------------------------------------

    async def open_session(self, agent_id: str, transport_mode: TransportMode) -> str:
        if transport_mode is not TransportMode.WEBSOCKET:
            raise RemoteConnectionError(
                f"transport {transport_mode.value!r} is not supported by the ElevenLabs "
                f"websocket client"
            )
        if self._ws is not None or self._opening:
            raise RemoteConnectionError("a conversation is already open")

        self._opening = True
        try:
            return await self._open(agent_id)
        finally:
            self._opening = False

    async def _open(self, agent_id: str) -> str:
        self._reset_conversation()
        self._emit_status("connecting")

        url = await self._conversation_url(agent_id)

        try:
            ws = await ws_connect(url, max_size=WS_MAX_MESSAGE_BYTES)
        except Exception as e:  # pylint: disable=broad-exception-caught
            self._emit_status("disconnected")
            raise RemoteConnectionError(f"elevenlabs_connect_failed: {e!r}") from e

        try:
            await ws.send(json.dumps({"type": "conversation_initiation_client_data"}))
            conversation_id = await asyncio.wait_for(
                self._await_initiation(ws), timeout=self._init_timeout_s,
            )
        except Exception as e:  # pylint: disable=broad-exception-caught
            await self._close_quietly(ws)
            self._emit_status("disconnected")
            if isinstance(e, RemoteConnectionError):
                raise
            if isinstance(e, asyncio.TimeoutError):
                raise RemoteConnectionError("elevenlabs_init_timeout") from e
            raise RemoteConnectionError(f"elevenlabs_init_failed: {e!r}") from e

        self._ws = ws
        self._conversation_id = conversation_id
        self._disconnect_emitted = False
        self._recv_task = asyncio.create_task(self._recv_loop(ws))

        log_event({
            "event_type": "elevenlabs_conversation_opened",
            "agent_id": agent_id,
            "conversation_id": conversation_id,
        })

        self._emit(self._require_listener().on_connect(conversation_id))
        self._emit_status("connected")
        return conversation_id

    async def close_session(self, conversation_id: str | None = None) -> None:
        ws = self._ws
        if ws is None:
            return
        if conversation_id is not None and conversation_id != self._conversation_id:
            # Already gone; a newer conversation must not be touched.
            return

        self._closing = True
        self._emit_status("disconnecting")
        try:
            await self._drop_connection()
        finally:
            self._closing = False

        self._emit_disconnect()
        self._emit_status("disconnected")

    async def send_feedback(self, positive: bool) -> None:
        ws = self._ws
        if ws is None:
            raise RemoteConnectionError("no open conversation to send feedback for")

        event_id = self._last_audio_event_id
        await ws.send(json.dumps({
            "type": "feedback",
            "score": FEEDBACK_SCORE_POSITIVE if positive else FEEDBACK_SCORE_NEGATIVE,
            "event_id": event_id,
        }))
        self._last_feedback_event_id = event_id
        self._set_feedback_eligibility(False)

    # -------------------------------------------------------------------------
    # Connection management
    # -------------------------------------------------------------------------

    async def _conversation_url(self, agent_id: str) -> str:
        if self._api_key is None:
            qs = urllib.parse.urlencode({"agent_id": agent_id})
            return f"{_ws_base_url(self._api_base_url)}{ELEVENLABS_CONVERSATION_PATH}?{qs}"

        try:
            async with httpx.AsyncClient(
                base_url=self._api_base_url, timeout=SIGNED_URL_TIMEOUT_S,
            ) as client:
                resp = await client.get(
                    ELEVENLABS_SIGNED_URL_PATH,
                    params={"agent_id": agent_id},
                    headers={"xi-api-key": self._api_key},
                )
                resp.raise_for_status()
                return str(resp.json()["signed_url"])
        except (httpx.HTTPError, KeyError, ValueError) as e:
            self._emit_status("disconnected")
            raise RemoteConnectionError(f"elevenlabs_signed_url_failed: {e!r}") from e

    async def _await_initiation(self, ws: ClientConnection) -> str:
        while True:
            data = json.loads(await ws.recv())
            msg_type = data.get("type")

            if msg_type == "conversation_initiation_metadata":
                meta = data.get("conversation_initiation_metadata_event") or {}
                conversation_id = meta.get("conversation_id")
                if not conversation_id:
                    raise RemoteConnectionError("elevenlabs_init_missing_conversation_id")
                return str(conversation_id)

            if msg_type == "ping":
                await self._pong(ws, data)
            elif msg_type == "error":
                raise RemoteConnectionError(f"elevenlabs_error: {_error_detail(data)}")

    async def _drop_connection(self) -> None:
        ws = self._ws
        self._ws = None

        task = self._recv_task
        self._recv_task = None
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        if ws is not None:
            await ws.close()

    @staticmethod
    async def _close_quietly(ws: ClientConnection) -> None:
        try:
            await ws.close()
        except Exception as e:  # pylint: disable=broad-exception-caught
            log_event({
                "event_type": "elevenlabs_close_failed",
                "error": repr(e),
            })

    # -------------------------------------------------------------------------
    # Background loop
    # -------------------------------------------------------------------------

    async def _recv_loop(self, ws: ClientConnection) -> None:
        """Translate provider messages until the socket closes."""
        try:
            async for raw in ws:
                try:
                    data = json.loads(raw)
                except ValueError as e:
                    log_event({
                        "event_type": "elevenlabs_bad_message",
                        "error": str(e),
                    })
                    continue
                await self._handle_message(ws, data)
        except asyncio.CancelledError:
            return
        except ConnectionClosedOK:
            pass
        except Exception as e:  # pylint: disable=broad-exception-caught
            if self._closing:
                return
            log_event({
                "event_type": "elevenlabs_recv_failed",
                "conversation_id": self._conversation_id,
                "error": repr(e),
            })
            self._emit(self._require_listener().on_error(f"connection lost: {e}"))

        if self._closing or self._ws is not ws:
            return

        # Remote ended the conversation
        self._ws = None
        self._recv_task = None
        self._emit_disconnect()
        self._emit_status("disconnected")

    async def _handle_message(self, ws: ClientConnection, data: dict[str, Any]) -> None:
        listener = self._require_listener()
        msg_type = data.get("type")

        if msg_type == "ping":
            await self._pong(ws, data)

        elif msg_type == "user_transcript":
            event = data.get("user_transcription_event") or {}
            text = event.get("user_transcript")
            if isinstance(text, str):
                self._emit(listener.on_message(Role.USER.value, text))
            self._set_mode(MODE_LISTENING)

        elif msg_type == "agent_response":
            event = data.get("agent_response_event") or {}
            text = event.get("agent_response")
            if isinstance(text, str):
                self._emit(listener.on_message(Role.AGENT.value, text))

        elif msg_type == "audio":
            event = data.get("audio_event") or {}
            event_id = event.get("event_id")
            if isinstance(event_id, int):
                self._last_audio_event_id = max(self._last_audio_event_id, event_id)
                if self._last_audio_event_id > self._last_feedback_event_id:
                    self._set_feedback_eligibility(True)
            self._set_mode(MODE_SPEAKING)

        elif msg_type == "interruption":
            self._set_mode(MODE_LISTENING)

        elif msg_type == "error":
            self._emit(listener.on_error(_error_detail(data)))

    async def _pong(self, ws: ClientConnection, data: dict[str, Any]) -> None:
        event = data.get("ping_event") or {}
        await ws.send(json.dumps({"type": "pong", "event_id": event.get("event_id")}))

    # -------------------------------------------------------------------------
    # Push helpers
    # -------------------------------------------------------------------------

    def _reset_conversation(self) -> None:
        self._conversation_id = None
        self._mode = None
        self._last_audio_event_id = 0
        self._last_feedback_event_id = 0
        self._can_send_feedback = False

    def _set_mode(self, mode: str) -> None:
        if self._mode == mode:
            return
        self._mode = mode
        self._emit(self._require_listener().on_mode_change(mode))

    def _set_feedback_eligibility(self, can_send: bool) -> None:
        if self._can_send_feedback == can_send:
            return
        self._can_send_feedback = can_send
        self._emit(self._require_listener().on_feedback_eligibility(can_send))

    def _emit_status(self, status: str) -> None:
        if self._listener is not None:
            self._emit(self._listener.on_status_change(status))

    def _emit_disconnect(self) -> None:
        if self._disconnect_emitted:
            return
        self._disconnect_emitted = True
        self._set_feedback_eligibility(False)
        self._emit(self._require_listener().on_disconnect())

    def _emit(self, coro: Coroutine[Any, Any, None]) -> None:
        # Fire-and-forget; tasks start in creation order.
        task = asyncio.create_task(coro)
        self._emit_tasks.add(task)
        task.add_done_callback(self._on_emit_done)

    def _on_emit_done(self, task: asyncio.Task[None]) -> None:
        self._emit_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log_event({
                "event_type": "elevenlabs_listener_failed",
                "exception": type(exc).__name__,
                "message": str(exc),
            })

    def _require_listener(self) -> VoiceServiceListener:
        assert self._listener is not None, "listener must be bound before use"
        return self._listener


def _error_detail(data: dict[str, Any]) -> str:
    event = data.get("error_event") or {}
    detail = event.get("message") or data.get("message") or data.get("error")
    return str(detail) if detail else json.dumps(data, ensure_ascii=False)
