"""Tests for the BluOS poll source."""

from __future__ import annotations

import pytest
import requests

import listenrelay.bluos as bluos_module
from listenrelay.bluos import BluOSClient
from listenrelay.poll import PollError, PollErrorKind
from listenrelay.state import PlayerState

STATUS = """<?xml version="1.0" encoding="UTF-8"?>
<status etag="abc">
  <album>Blue Train</album>
  <artist>John Coltrane</artist>
  <name>Moment's Notice</name>
  <image>/Artwork?service=LocalMusic&amp;songid=42</image>
  <secs>75</secs>
  <songid>42</songid>
  <state>play</state>
  <totlen>550</totlen>
</status>"""


class Resp:
    def __init__(self, text, status=200):
        self.text = text
        self.status_code = status

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code}")


def serve(monkeypatch, text, status=200):
    urls = []

    def fake_get(url, timeout):
        urls.append(url)
        return Resp(text, status)

    monkeypatch.setattr(bluos_module.requests, "get", fake_get)
    return urls


def test_status_maps_to_snapshot_and_track(monkeypatch) -> None:
    urls = serve(monkeypatch, STATUS)
    client = BluOSClient("player.local")

    snapshot = client.get_application_data()
    track = client.get_current_track()

    assert snapshot.state is PlayerState.PLAYING
    assert snapshot.position == 75.0
    assert track.persistent_id == "42"
    assert track.title == "Moment's Notice"
    assert track.artist == "John Coltrane"
    assert track.album == "Blue Train"
    assert track.duration == 550.0
    assert track.artwork_url == "http://player.local:11000/Artwork?service=LocalMusic&songid=42"
    assert urls == ["http://player.local:11000/Status"]


@pytest.mark.parametrize(("raw", "state"), [("pause", PlayerState.PAUSED), ("stop", PlayerState.STOPPED),
                                            ("stream", PlayerState.PLAYING), ("connecting", PlayerState.PAUSED)])
def test_state_mapping(monkeypatch, raw, state) -> None:
    serve(monkeypatch, f"<status><state>{raw}</state></status>")
    assert BluOSClient("h").get_application_data().state is state


def test_persistent_id_falls_back_to_metadata_hash(monkeypatch) -> None:
    serve(monkeypatch, "<status><state>play</state><title1>T</title1><title2>A</title2></status>")
    client = BluOSClient("h")
    client.get_application_data()
    first = client.get_current_track().persistent_id
    assert first == client.get_current_track().persistent_id
    assert len(first) == 16


@pytest.mark.parametrize(
    ("text", "status", "kind"),
    [
        ("<status><state>play", 200, PollErrorKind.DESERIALIZATION_FAILED),
        ("<status><state>warp</state></status>", 200, PollErrorKind.DESERIALIZATION_FAILED),
        ("", 200, PollErrorKind.NO_DATA),
        ("<status/>", 200, PollErrorKind.NO_DATA),
        ("oops", 500, PollErrorKind.APP_COMMAND_FAILED),
    ],
)
def test_failures_are_classified(monkeypatch, text, status, kind) -> None:
    serve(monkeypatch, text, status)
    with pytest.raises(PollError) as info:
        BluOSClient("h").get_application_data()
    assert info.value.kind is kind


def test_missing_title_is_not_playing(monkeypatch) -> None:
    serve(monkeypatch, "<status><state>play</state></status>")
    client = BluOSClient("h")
    client.get_application_data()
    with pytest.raises(PollError) as info:
        client.get_current_track()
    assert info.value.kind is PollErrorKind.NOT_PLAYING
