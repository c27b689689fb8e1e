"""Tests for listened-time accounting."""

from __future__ import annotations

import pytest

from listenrelay.ledger import LedgerError, ListenedSession, SharedLedger


def test_total_heard_sums_each_span_after_final_flush(clock) -> None:
    session = ListenedSession(clock)
    for position, length in [(0.0, 30.0), (95.0, 12.5), (10.0, 4.0)]:
        session.set_new_current(position)
        clock.advance(length)
        session.flush_current()
        clock.advance(100.0)  # paused time never counts

    assert session.total_heard() == pytest.approx(46.5)
    assert session.current is None


def test_expected_position_right_after_opening_is_the_anchor(clock) -> None:
    session = ListenedSession(clock)
    session.set_new_current(42.0)
    assert session.get_expected_song_position() == pytest.approx(42.0, abs=0.5)

    clock.advance(3.0)
    assert session.get_expected_song_position() == pytest.approx(45.0)


def test_expected_position_with_real_clock() -> None:
    session = ListenedSession()
    session.set_new_current(17.0)
    assert session.get_expected_song_position() == pytest.approx(17.0, abs=0.5)


def test_opening_a_second_span_is_an_error(clock) -> None:
    session = ListenedSession.with_current(0.0, clock)
    with pytest.raises(LedgerError):
        session.set_new_current(5.0)


def test_flush_is_idempotent(clock) -> None:
    session = ListenedSession.with_current(0.0, clock)
    clock.advance(10.0)
    session.flush_current()
    clock.advance(10.0)
    session.flush_current()
    assert session.accumulated == pytest.approx(10.0)


def test_total_heard_includes_open_span(clock) -> None:
    session = ListenedSession.with_current(0.0, clock)
    clock.advance(5.0)
    session.flush_current()
    session.set_new_current(60.0)
    clock.advance(7.0)
    assert session.total_heard() == pytest.approx(12.0)


def test_clock_going_backwards_counts_as_zero(clock) -> None:
    session = ListenedSession.with_current(0.0, clock)
    clock.advance(-5.0)
    session.flush_current()
    assert session.accumulated == 0.0


@pytest.mark.parametrize(
    ("reported", "seek"),
    [(10.0, False), (11.9, False), (8.5, False), (12.0, True), (7.9, True), (120.0, True)],
)
def test_discontinuity_threshold(clock, reported: float, seek: bool) -> None:
    session = ListenedSession.with_current(0.0, clock)
    clock.advance(10.0)
    assert session.is_discontinuous(reported) is seek


def test_no_discontinuity_without_open_span(clock) -> None:
    assert ListenedSession(clock).is_discontinuous(500.0) is False


def test_shared_ledger_snapshot(clock) -> None:
    ledger = SharedLedger.with_current(30.0, clock)
    clock.advance(4.0)
    snap = ledger.snapshot()
    assert snap.span_open is True
    assert snap.expected_position == pytest.approx(34.0)
    assert snap.total_heard == pytest.approx(4.0)

    with ledger as session:
        session.flush_current()
    snap = ledger.snapshot()
    assert snap.span_open is False
    assert snap.expected_position is None
    assert ledger.total_heard() == pytest.approx(4.0)


def test_shared_ledger_releases_lock_on_error(clock) -> None:
    ledger = SharedLedger.with_current(0.0, clock)
    with pytest.raises(LedgerError):
        with ledger as session:
            session.set_new_current(1.0)
    # lock released, so this does not block
    assert ledger.total_heard() == 0.0
