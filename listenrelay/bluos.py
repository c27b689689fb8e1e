import hashlib
import requests
import xml.etree.ElementTree as ET

from listenrelay.poll import PollError, PollErrorKind
from listenrelay.state import PlayerSnapshot, PlayerState, TrackIdentity

_STATES = {
    "play": PlayerState.PLAYING,
    "stream": PlayerState.PLAYING,
    "pause": PlayerState.PAUSED,
    "connecting": PlayerState.PAUSED,  # buffering
    "stop": PlayerState.STOPPED,
}


class BluOSClient:
    """
    Poll source for BluOS players, reading /Status (XML).
    Uses recursive lookup + tag fallbacks: name/title1, artist/title2, album/title3, secs, totlen, state.
    Each poll fetches once; get_current_track() reuses that fetch.
    """
    def __init__(self, host: str, port: int = 11000, timeout: int = 5):
        self.base = f"http://{host}:{port}"
        self.timeout = timeout
        self._last: ET.Element | None = None

    def _findtext_any(self, root: ET.Element, *tags: str):
        for t in tags:
            el = root.find(f".//{t}")
            if el is not None and el.text:
                return el.text.strip()
        return None

    def _to_float(self, s):
        if s is None: return None
        try:
            return float(s)
        except ValueError:
            return None

    def _fetch(self) -> ET.Element:
        try:
            resp = requests.get(f"{self.base}/Status", timeout=self.timeout)
            resp.raise_for_status()
        except requests.RequestException as e:
            raise PollError(PollErrorKind.APP_COMMAND_FAILED, str(e)) from e

        if not resp.text.strip():
            raise PollError(PollErrorKind.NO_DATA, "empty /Status body")
        try:
            return ET.fromstring(resp.text)
        except ET.ParseError as e:
            raise PollError(PollErrorKind.DESERIALIZATION_FAILED, str(e)) from e

    def get_application_data(self) -> PlayerSnapshot:
        root = self._fetch()
        self._last = root

        raw_state = self._findtext_any(root, "state", "status", "mode")
        if raw_state is None:
            raise PollError(PollErrorKind.NO_DATA, "no player state in /Status")
        state = _STATES.get(raw_state.lower())
        if state is None:
            raise PollError(PollErrorKind.DESERIALIZATION_FAILED, f"unknown player state {raw_state!r}")

        position = self._to_float(self._findtext_any(root, "secs", "elapsed", "position", "time"))
        return PlayerSnapshot(state=state, position=position)

    def get_current_track(self) -> TrackIdentity:
        root = self._last if self._last is not None else self._fetch()

        title  = self._findtext_any(root, "name", "title1", "title", "song")
        if not title:
            raise PollError(PollErrorKind.NOT_PLAYING, "no title in /Status")
        artist = self._findtext_any(root, "artist", "title2")
        album  = self._findtext_any(root, "album", "title3")
        duration = self._to_float(self._findtext_any(root, "totlen", "duration", "total", "trackLength", "length"))

        persistent_id = self._findtext_any(root, "songid", "id")
        if not persistent_id:
            digest = hashlib.sha1(f"{artist}\x00{album}\x00{title}".encode("utf-8"))
            persistent_id = digest.hexdigest()[:16]

        image = self._findtext_any(root, "image")
        if image and image.startswith("/"):
            image = f"{self.base}{image}"

        return TrackIdentity(
            persistent_id=persistent_id,
            title=title,
            artist=artist,
            album=album,
            duration=duration,
            artwork_url=image,
        )
