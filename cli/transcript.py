"""Client-side transcript reconciliation.

The CLI shows one transcript built from two sources: ``loaded`` entries that
came from a history reload and ``live`` entries produced in this process.
Ids differ between the two sources, so ``merge`` deduplicates on
``(role, content)`` and keeps the first occurrence.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field

COPIED_FLAG_SECONDS = 2.0


@dataclass(frozen=True)
class TranscriptEntry:
    id: str
    role: str
    content: str
    created_at: str | None = None

    @property
    def key(self) -> tuple[str, str]:
        return (self.role, self.content)


def merge(loaded: Sequence[TranscriptEntry], live: Sequence[TranscriptEntry]) -> list[TranscriptEntry]:
    """Merge history and live entries into one duplicate-free, ordered list.

    With nothing loaded the live entries are returned as they are, and with
    nothing live the loaded ones are. Otherwise loaded entries come first and
    any later entry repeating an earlier ``(role, content)`` pair is dropped,
    which makes the merge idempotent.
    """
    if not loaded:
        return list(live)
    if not live:
        return list(loaded)

    seen: set[tuple[str, str]] = set()
    merged = []
    for entry in [*loaded, *live]:
        if entry.key in seen:
            continue
        seen.add(entry.key)
        merged.append(entry)
    return merged


class CopiedFlags:
    """Short-lived "copied" markers keyed by message id; never persisted."""

    def __init__(self, lifetime: float = COPIED_FLAG_SECONDS, clock: Callable[[], float] = time.monotonic):
        self.lifetime = lifetime
        self.clock = clock
        self._expires: dict[str, float] = {}

    def mark(self, message_id: str) -> None:
        self._expires[message_id] = self.clock() + self.lifetime

    def is_copied(self, message_id: str) -> bool:
        expires = self._expires.get(message_id)
        if expires is None:
            return False
        if self.clock() >= expires:
            del self._expires[message_id]
            return False
        return True

    def prune(self, present_ids: Iterable[str]) -> None:
        """Drop flags of messages that left the transcript."""
        present = set(present_ids)
        for message_id in list(self._expires):
            if message_id not in present:
                del self._expires[message_id]

    def clear(self) -> None:
        self._expires.clear()


@dataclass
class ConversationState:
    """Conversation owned by the caller and passed to every chat command."""

    session_id: str | None = None
    loaded: list[TranscriptEntry] = field(default_factory=list)
    live: list[TranscriptEntry] = field(default_factory=list)
    copied: CopiedFlags = field(default_factory=CopiedFlags)
    _live_counter: int = 0

    def transcript(self) -> list[TranscriptEntry]:
        """The merged view; flags of vanished messages are reset."""
        merged = merge(self.loaded, self.live)
        self.copied.prune(entry.id for entry in merged)
        return merged

    def add_live(self, role: str, content: str) -> TranscriptEntry:
        self._live_counter += 1
        entry = TranscriptEntry(id=f"live-{self._live_counter}", role=role, content=content)
        self.live.append(entry)
        return entry

    def reset(self) -> None:
        """Start a new conversation."""
        self.session_id = None
        self.loaded = []
        self.live = []
        self.copied.clear()

    def adopt_session(self, session_id: str) -> None:
        """Switch to ``session_id``; a different existing session discards the view."""
        if session_id == self.session_id:
            return
        if self.session_id is not None:
            self.reset()
        self.session_id = session_id
