"""
Transcript log.

Responsibilities:
- Store user/agent/system messages in arrival order
- Assign each message a monotonic id and a display timestamp
- Hand out snapshots that later appends cannot disturb

Non-responsibilities:
- No reducer logic
- No deletion, truncation or compaction
- No persistence
"""

from __future__ import annotations

import itertools
from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, overload

from constants import TRANSCRIPT_TIMESTAMP_FORMAT
from orchestrator.enums.role import Role


@dataclass(frozen=True)
class Message:
    """Single transcript entry. Immutable once created."""
    id: int
    role: Role
    content: str
    timestamp: str


class TranscriptSnapshot(Sequence[Message]):
    """
    Read-only view of the first `length` entries of a transcript.

    The underlying list is append-only and its entries are frozen, so the
    prefix this view covers never changes: iterating it lazily is safe
    while the owner keeps appending, and it can be iterated any number
    of times.
    """

    def __init__(self, entries: list[Message], length: int) -> None:
        self._entries = entries
        self._length = length

    def __len__(self) -> int:
        return self._length

    @overload
    def __getitem__(self, index: int) -> Message: ...

    @overload
    def __getitem__(self, index: slice) -> Sequence[Message]: ...

    def __getitem__(self, index: int | slice) -> Message | Sequence[Message]:
        if isinstance(index, slice):
            return tuple(self._entries[:self._length][index])
        if index < 0:
            index += self._length
        if not 0 <= index < self._length:
            raise IndexError("transcript snapshot index out of range")
        return self._entries[index]

    def __iter__(self) -> Iterator[Message]:
        return itertools.islice(self._entries, self._length)

    def __repr__(self) -> str:
        return f"TranscriptSnapshot(len={self._length})"


class TranscriptLog:
    """
    Append-only transcript owned by one session controller.

    Invariants:
    - Entries are stored in append order; iteration order == append order
    - Entries are never mutated or removed
    - ids are strictly increasing and never reused
    """

    def __init__(self, clock: Callable[[], datetime] = datetime.now) -> None:
        self._clock = clock
        self._ids = itertools.count(1)
        self._messages: list[Message] = []

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def append(self, role: Role | str, content: str) -> Message:
        """Append a message; content is kept verbatim (empty allowed)."""
        message = Message(
            id=next(self._ids),
            role=Role(role),
            content=content,
            timestamp=self._clock().strftime(TRANSCRIPT_TIMESTAMP_FORMAT),
        )
        self._messages.append(message)
        return message

    def snapshot(self) -> TranscriptSnapshot:
        """Entries present right now; later appends are not visible."""
        return TranscriptSnapshot(self._messages, len(self._messages))

    def serialize(self) -> list[dict[str, object]]:
        """
        Serialize entries for the presentation layer.

        Output format:
        [
          {"id": 1, "role": "system", "content": "...", "timestamp": "12:00:00"},
        ]
        """
        return [
            {
                "id": m.id,
                "role": m.role.value,
                "content": m.content,
                "timestamp": m.timestamp,
            }
            for m in self.snapshot()
        ]

    def __len__(self) -> int:
        return len(self._messages)
