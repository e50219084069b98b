"""
Remote voice service contract.

This module defines the *interface only*; transport details and state
machine decisions live elsewhere.

Key invariants:
- The adapter never calls the reducer or makes state transitions.
- Pushes (connect, disconnect, message, error, status, mode, feedback
  eligibility) are delivered only through the bound listener, and may
  arrive at any time, including while open/close is still pending.
- close_session() is idempotent: closing with nothing open is a no-op.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Protocol, runtime_checkable

from orchestrator.enums.transport import TransportMode


@runtime_checkable
class VoiceServiceListener(Protocol):
    """Receiver of remote pushes (implemented by SessionController)."""

    async def on_connect(self, conversation_id: str | None = None) -> None: ...

    async def on_disconnect(self) -> None: ...

    async def on_message(self, role: str, content: str) -> None: ...

    async def on_error(self, detail: str) -> None: ...

    async def on_status_change(self, status: str) -> None: ...

    async def on_mode_change(self, mode: str) -> None: ...

    async def on_feedback_eligibility(self, can_send: bool) -> None: ...


class VoiceService(ABC):
    """
    Abstract interface for a realtime conversational voice service.

    Implementations are responsible for:
    - Opening/closing one remote conversation at a time
    - Translating provider messages into listener callbacks
    - Reporting whether feedback is currently accepted

    Non-responsibilities:
    - No session status tracking beyond what the transport needs
    - No transcript bookkeeping
    """

    def __init__(self) -> None:
        self._listener: VoiceServiceListener | None = None

    def bind(self, listener: VoiceServiceListener) -> None:
        """Attach the push receiver. Called once by the controller."""
        self._listener = listener

    @abstractmethod
    async def open_session(self, agent_id: str, transport_mode: TransportMode) -> str:
        """
        Open a conversation with the given agent.

        Returns:
            The conversation id assigned by the remote.

        Raises:
            Any exception on rejection; the runtime records the reason.
        """
        raise NotImplementedError

    @abstractmethod
    async def close_session(self, conversation_id: str | None = None) -> None:
        """
        Close a conversation (best-effort, idempotent).

        With conversation_id, only that conversation is closed and no
        disconnect push is owed for it; None means the current one.
        """
        raise NotImplementedError

    @abstractmethod
    async def send_feedback(self, positive: bool) -> Any:
        """
        Forward a like/dislike signal for the current conversation.

        The result is returned to the caller unchanged.
        """
        raise NotImplementedError
