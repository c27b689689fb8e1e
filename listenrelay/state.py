from __future__ import annotations
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import Any

from listenrelay.dispatch import BackendContext, BackendDispatcher
from listenrelay.enrichment import ArtworkHost, EnrichmentBundle, EnrichmentProvider
from listenrelay.ledger import Clock, SharedLedger
from listenrelay.poll import PollError, PollErrorKind, PollSource

log = logging.getLogger("tracker")

# Consecutive Paused samples (including the current one) before we believe it;
# players report a brief pause while buffering.
PAUSE_THRESHOLD = 3


class PlayerState(Enum):
    STOPPED = "stopped"
    PAUSED = "paused"
    PLAYING = "playing"
    FAST_FORWARDING = "fast_forwarding"
    REWINDING = "rewinding"


# -------------------------
# Identity for a track; only persistent_id is compared across polls
# -------------------------
@dataclass(frozen=True)
class TrackIdentity:
    persistent_id: str
    title: str
    artist: str | None
    album: str | None
    duration: float | None  # seconds
    track_number: int | None = None
    album_artist: str | None = None
    start: float = 0.0      # nominal start offset within the file
    artwork_url: str | None = None


@dataclass(frozen=True)
class PlayerSnapshot:
    state: PlayerState
    position: float | None = None  # seconds
    track: TrackIdentity | None = None


class PlaybackTracker:
    """Consumes one poll sample per cycle and drives the ledger and dispatch.

    The tracker owns the ledger of the tracked track. Destinations only get the
    shared handle through a BackendContext, and the lock is never held while
    dispatching.
    """

    def __init__(self, source: PollSource, dispatcher: BackendDispatcher, enrichment: EnrichmentProvider,
                 terminating: threading.Event | None = None, clock: Clock = time.monotonic,
                 library: Any = None, artwork_host: ArtworkHost | None = None):
        self.source = source
        self.dispatcher = dispatcher
        self.enrichment = enrichment
        self.terminating = terminating or threading.Event()
        self.clock = clock
        self.library = library
        self.artwork_host = artwork_host

        self.last_track: TrackIdentity | None = None
        self.ledger = SharedLedger.empty(clock)
        self.polls = 0
        self.sequential_pauses = 0
        self._pool = ThreadPoolExecutor(max_workers=2, thread_name_prefix="track-change")

    def run(self, interval: float) -> None:
        while not self.terminating.is_set():
            self.poll_once()
            self.terminating.wait(interval)
        self._pool.shutdown(wait=False)

    def _handle_poll_error(self, err: PollError) -> None:
        if err.kind in (PollErrorKind.NO_DATA, PollErrorKind.NOT_PLAYING):
            return
        if err.kind is PollErrorKind.DESERIALIZATION_FAILED and self.terminating.is_set():
            return  # poll source torn down under us during shutdown
        log.error("Poll failed: %s", err)

    def poll_once(self) -> None:
        self.polls += 1
        try:
            snapshot = self.source.get_application_data()
        except PollError as e:
            self._handle_poll_error(e)
            return

        state = snapshot.state
        self.sequential_pauses = self.sequential_pauses + 1 if state is PlayerState.PAUSED else 0

        if state is PlayerState.STOPPED:
            self._on_stopped(snapshot)
        elif state is PlayerState.PAUSED:
            if self.sequential_pauses >= PAUSE_THRESHOLD:
                self.dispatcher.clear_presence()
                with self.ledger as session:
                    session.flush_current()
        elif state is PlayerState.PLAYING:
            try:
                track = snapshot.track or self.source.get_current_track()
            except PollError as e:
                self._handle_poll_error(e)
                return
            if self.last_track is not None and self.last_track.persistent_id == track.persistent_id:
                self._on_same_track(snapshot, track)
            else:
                self._on_new_track(snapshot, track)
        else:
            # Seeking via fast-forward/rewind: leave everything as is; the next
            # Playing sample will show the jump and be handled as a seek.
            log.debug("Ignoring transient player state %s", state.value)

    def _on_stopped(self, snapshot: PlayerSnapshot) -> None:
        self.dispatcher.clear_presence()
        with self.ledger as session:
            session.flush_current()

        if self.last_track is not None:
            previous, ledger = self.last_track, self.ledger
            self.ledger = SharedLedger.empty(self.clock)
            self.last_track = None
            self.dispatcher.dispatch_track_ended(BackendContext(previous, snapshot, ledger))

    def _on_same_track(self, snapshot: PlayerSnapshot, track: TrackIdentity) -> None:
        position = snapshot.position
        if position is None:
            log.debug("No position reported for %s; skipping cycle", track.title)
            return

        moved = False
        with self.ledger as session:
            if session.current is None:
                # Resumed after a pause. Beyond opening the span, also send a
                # progress event: presence was cleared and needs redrawing.
                session.set_new_current(position)
                moved = True
            elif session.is_discontinuous(position):
                log.debug("Seek detected: expected %.1fs, got %.1fs",
                          session.get_expected_song_position(), position)
                session.flush_current()
                session.set_new_current(position)
                moved = True

        if moved:
            self.dispatcher.dispatch_current_progress(BackendContext(track, snapshot, self.ledger))

    def _solicit(self, track: TrackIdentity) -> EnrichmentBundle:
        kinds = self.dispatcher.get_solicitations()
        try:
            return self.enrichment.solicit(kinds, track, self.library, self.artwork_host)
        except Exception:
            log.exception("Enrichment failed for %s", track.title)
            return EnrichmentBundle()

    def _on_new_track(self, snapshot: PlayerSnapshot, track: TrackIdentity) -> None:
        log.info("Now playing: %s — %s", track.artist, track.title)

        pending_data = self._pool.submit(self._solicit, track)
        if self.last_track is not None:
            previous, ledger = self.last_track, self.ledger
            with ledger as session:
                session.flush_current()
            pending_end = self._pool.submit(
                self.dispatcher.dispatch_track_ended, BackendContext(previous, snapshot, ledger)
            )
            pending_end.result()
        data = pending_data.result()

        # Right after a track change the reported position is unreliable, so use
        # the nominal start. On the first poll the user may be mid-track.
        if self.polls == 1 and snapshot.position is not None:
            start = snapshot.position
        else:
            start = track.start

        self.ledger = SharedLedger.with_current(start, self.clock)
        self.last_track = track
        self.dispatcher.dispatch_track_started(BackendContext(track, snapshot, self.ledger, data))
