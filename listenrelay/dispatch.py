"""
Fan-out of playback events to the enabled destinations.

Every destination runs on its own worker; a failure in one is logged and does
not touch the others. Nothing is retried.
"""

from __future__ import annotations
import logging
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Generic, TypeVar

from listenrelay.enrichment import EnrichmentKind, Solicitation
from listenrelay.ledger import SharedLedger

if TYPE_CHECKING:
    from listenrelay.state import PlayerSnapshot, TrackIdentity

log = logging.getLogger("dispatch")

T = TypeVar("T")

# Last.fm scrobbling policy, also used for ListenBrainz
MIN_ELIGIBLE_DURATION = 30.0
MAX_REQUIRED_LISTEN = 240.0


def is_eligible_listen(duration: float | None, heard: float) -> bool:
    if not duration or duration < MIN_ELIGIBLE_DURATION:
        return False
    return heard >= min(MAX_REQUIRED_LISTEN, duration / 2)


@dataclass(frozen=True)
class BackendContext(Generic[T]):
    track: "TrackIdentity"
    snapshot: "PlayerSnapshot"
    ledger: SharedLedger
    data: T = None  # type: ignore[assignment]


class Destination:
    """A reporting destination. Subclasses override what they support."""

    name = "destination"

    def __init__(self, enabled: bool = True):
        self.enabled = enabled

    def solicit_enrichment(self) -> Solicitation:
        return frozenset()

    def dispatch_started(self, ctx: BackendContext) -> None:
        pass

    def dispatch_ended(self, ctx: BackendContext) -> None:
        pass

    def dispatch_progress(self, ctx: BackendContext) -> None:
        pass

    def check_eligibility(self, ctx: BackendContext) -> bool:
        return False

    def clear(self) -> None:
        """Withdraw anything currently shown; only presence-style destinations show anything."""


class BackendDispatcher:
    def __init__(self, lastfm: Destination | None = None, listenbrainz: Destination | None = None,
                 presence: Destination | None = None, max_workers: int = 4):
        self.lastfm = lastfm
        self.listenbrainz = listenbrainz
        self.presence = presence
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="dispatch")

    def all(self) -> list[Destination]:
        return [d for d in (self.lastfm, self.listenbrainz, self.presence) if d is not None and d.enabled]

    def get_solicitations(self) -> frozenset[EnrichmentKind]:
        kinds: set[EnrichmentKind] = set()
        for dest in self.all():
            kinds.update(dest.solicit_enrichment())
        return frozenset(kinds)

    def _run_isolated(self, label: str, dest: Destination, fn: Callable[[], Any]) -> None:
        try:
            fn()
        except Exception:
            log.exception("%s failed for %s", label, dest.name)

    def _fan_out(self, label: str, make_call: Callable[[Destination], Callable[[], Any]]) -> None:
        futures = [
            self._pool.submit(self._run_isolated, label, dest, make_call(dest))
            for dest in self.all()
        ]
        wait(futures)

    def dispatch_track_started(self, ctx: BackendContext) -> None:
        log.debug("track started: %s", ctx.track.title)
        self._fan_out("track-started dispatch", lambda d: lambda: d.dispatch_started(ctx))

    def dispatch_track_ended(self, ctx: BackendContext) -> None:
        def record_if_eligible(dest: Destination) -> None:
            if dest.check_eligibility(ctx):
                dest.dispatch_ended(ctx)
            else:
                log.debug("%s: %s not eligible to be recorded", dest.name, ctx.track.title)

        log.debug("track ended: %s", ctx.track.title)
        self._fan_out("track-ended dispatch", lambda d: lambda: record_if_eligible(d))

    def dispatch_current_progress(self, ctx: BackendContext) -> None:
        self._fan_out("progress dispatch", lambda d: lambda: d.dispatch_progress(ctx))

    def clear_presence(self) -> None:
        presence = self.presence
        if presence is None or not presence.enabled:
            return
        try:
            presence.clear()
        except Exception:
            log.exception("unable to clear presence")

    def close(self) -> None:
        self._pool.shutdown(wait=False, cancel_futures=True)
