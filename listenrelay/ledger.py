"""
Listened-time ledger for the tracked track.

A span is opened when playback is observed at some position and closed (flushed)
on pause, stop, seek or track change. Only wall-clock time inside spans counts
as heard. Times are seconds from a monotonic clock.
"""

from __future__ import annotations
import threading
import time
from dataclasses import dataclass
from typing import Callable

# Position drift at or above this is a seek, not jitter
SEEK_THRESHOLD = 2.0

Clock = Callable[[], float]


class LedgerError(RuntimeError):
    """Ledger misuse, e.g. opening a span while one is open."""


@dataclass(frozen=True)
class Span:
    anchor: float             # clock reading when the span opened
    position_at_anchor: float


@dataclass(frozen=True)
class LedgerSnapshot:
    total_heard: float
    expected_position: float | None
    span_open: bool


class ListenedSession:
    def __init__(self, clock: Clock = time.monotonic):
        self._clock = clock
        self.current: Span | None = None
        self.accumulated: float = 0.0

    @classmethod
    def with_current(cls, position: float, clock: Clock = time.monotonic) -> "ListenedSession":
        session = cls(clock)
        session.set_new_current(position)
        return session

    def _elapsed(self) -> float:
        if self.current is None:
            return 0.0
        return max(0.0, self._clock() - self.current.anchor)

    def set_new_current(self, position: float) -> None:
        if self.current is not None:
            raise LedgerError("a listening span is already open; flush it first")
        self.current = Span(anchor=self._clock(), position_at_anchor=float(position))

    def flush_current(self) -> None:
        if self.current is None:
            return
        self.accumulated += self._elapsed()
        self.current = None

    def get_expected_song_position(self) -> float | None:
        if self.current is None:
            return None
        return self.current.position_at_anchor + self._elapsed()

    def total_heard(self) -> float:
        return self.accumulated + self._elapsed()

    def is_discontinuous(self, position: float) -> bool:
        expected = self.get_expected_song_position()
        if expected is None:
            return False
        return abs(expected - position) >= SEEK_THRESHOLD

    def snapshot(self) -> LedgerSnapshot:
        return LedgerSnapshot(
            total_heard=self.total_heard(),
            expected_position=self.get_expected_song_position(),
            span_open=self.current is not None,
        )


class SharedLedger:
    """A ListenedSession behind a lock.

    Use `with ledger as session:` for short read/mutate sections and never
    dispatch or do network I/O while holding it.
    """

    def __init__(self, session: ListenedSession | None = None):
        self._session = session or ListenedSession()
        self._lock = threading.Lock()

    @classmethod
    def empty(cls, clock: Clock = time.monotonic) -> "SharedLedger":
        return cls(ListenedSession(clock))

    @classmethod
    def with_current(cls, position: float, clock: Clock = time.monotonic) -> "SharedLedger":
        return cls(ListenedSession.with_current(position, clock))

    def __enter__(self) -> ListenedSession:
        self._lock.acquire()
        return self._session

    def __exit__(self, *exc) -> None:
        self._lock.release()

    def snapshot(self) -> LedgerSnapshot:
        with self as session:
            return session.snapshot()

    def total_heard(self) -> float:
        with self as session:
            return session.total_heard()
