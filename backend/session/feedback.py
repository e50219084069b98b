"""
Feedback coordinator.

Gates the post-call like/dislike signal on the remote's feedback
eligibility and forwards it unchanged. No retries, no dedup: two calls
while eligible are two forwards.
"""

from __future__ import annotations

from typing import Any, Callable

from adapters.voice.base import VoiceService
from errors import FeedbackNotAcceptedError
from observability.logger import log_event


class FeedbackCoordinator:
    """
    Forward feedback when the remote currently accepts it.

    can_send is a read-only view of the controller's capability flag;
    this class keeps no state of its own.
    """

    def __init__(self, *, can_send: Callable[[], bool], service: VoiceService) -> None:
        self._can_send = can_send
        self._service = service

    @property
    def can_send(self) -> bool:
        return self._can_send()

    async def send_feedback(self, positive: bool) -> Any:
        if not self._can_send():
            log_event({
                "event_type": "feedback_rejected",
                "positive": positive,
            })
            raise FeedbackNotAcceptedError("the voice service is not accepting feedback right now")

        log_event({
            "event_type": "feedback_forwarded",
            "positive": positive,
        })
        return await self._service.send_feedback(positive)
