from __future__ import annotations

import pytest

from listenrelay.dispatch import Destination
from listenrelay.enrichment import EnrichmentBundle
from listenrelay.ledger import SharedLedger
from listenrelay.state import TrackIdentity


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeResponse:
    def __init__(self, status_code: int = 200, body=None, text: str = ""):
        self.status_code = status_code
        self._body = body
        self.text = text

    def json(self):
        if self._body is None:
            raise ValueError("no JSON")
        return self._body


class FakeHttp:
    """Stands in for requests.Session; replies are queued per call."""

    def __init__(self, *responses: FakeResponse):
        self.responses = list(responses)
        self.calls: list[dict] = []

    def _reply(self, method, url, **kwargs):
        self.calls.append({"method": method, "url": url, **kwargs})
        return self.responses.pop(0)

    def post(self, url, **kwargs):
        return self._reply("POST", url, **kwargs)

    def get(self, url, **kwargs):
        return self._reply("GET", url, **kwargs)


class RecordingDestination(Destination):
    def __init__(self, name: str = "recorder", eligible: bool = True, fail: bool = False, enabled: bool = True):
        super().__init__(enabled)
        self.name = name
        self.eligible = eligible
        self.fail = fail
        self.events: list[tuple[str, str]] = []

    def _record(self, event, ctx):
        if self.fail:
            raise RuntimeError(f"{self.name} is down")
        self.events.append((event, ctx.track.persistent_id))

    def dispatch_started(self, ctx):
        self._record("started", ctx)

    def dispatch_ended(self, ctx):
        self._record("ended", ctx)

    def dispatch_progress(self, ctx):
        self._record("progress", ctx)

    def check_eligibility(self, ctx):
        return self.eligible


def make_track(pid: str = "A1", duration: float | None = 200.0, **kwargs) -> TrackIdentity:
    defaults = dict(title=f"Song {pid}", artist="Artist", album="Album")
    defaults.update(kwargs)
    return TrackIdentity(persistent_id=pid, duration=duration, **defaults)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def empty_bundle() -> EnrichmentBundle:
    return EnrichmentBundle()


def ledger_with(heard: float, clock: FakeClock) -> SharedLedger:
    """A closed ledger holding exactly `heard` seconds."""
    ledger = SharedLedger.with_current(0.0, clock)
    clock.advance(heard)
    with ledger as session:
        session.flush_current()
    return ledger
