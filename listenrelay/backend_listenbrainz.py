"""
ListenBrainz listen submission (POST /1/submit-listens).

- "playing_now" on track start, "single" with listened_at once a track qualifies.
- Same eligibility rule as Last.fm.
"""

from __future__ import annotations
import logging
import time

import requests

from listenrelay import __version__
from listenrelay.dispatch import BackendContext, Destination, is_eligible_listen

log = logging.getLogger("listenbrainz")

API_ROOT = "https://api.listenbrainz.org"


class ListenBrainzError(Exception): ...


class ListenBrainzBackend(Destination):
    name = "listenbrainz"

    def __init__(self, token: str, session: requests.Session | None = None,
                 api_root: str = API_ROOT, timeout: int = 10, enabled: bool = True):
        super().__init__(enabled)
        if not token:
            raise ValueError("Missing ListenBrainz user token")
        self.token = token.strip()
        self.api_root = api_root.rstrip("/")
        self.timeout = timeout
        self._http = session or requests.Session()

    @staticmethod
    def track_metadata(track) -> dict | None:
        if not track.artist or not track.title:
            return None
        additional = {
            "submission_client": "listenrelay",
            "submission_client_version": __version__,
        }
        if track.duration:
            additional["duration_ms"] = int(track.duration * 1000)
        if track.track_number is not None:
            additional["tracknumber"] = track.track_number
        meta = {"artist_name": track.artist, "track_name": track.title, "additional_info": additional}
        if track.album:
            meta["release_name"] = track.album
        return meta

    def _submit(self, listen_type: str, listen: dict) -> None:
        body = {"listen_type": listen_type, "payload": [listen]}
        headers = {"Authorization": f"Token {self.token}"}
        resp = self._http.post(f"{self.api_root}/1/submit-listens", json=body,
                               headers=headers, timeout=self.timeout)
        if resp.status_code != 200:
            try:
                detail = resp.json().get("error", resp.text)
            except ValueError:
                detail = resp.text
            raise ListenBrainzError(f"submit-listens ({listen_type}) returned {resp.status_code}: {detail}")

    def check_eligibility(self, ctx: BackendContext) -> bool:
        return is_eligible_listen(ctx.track.duration, ctx.ledger.total_heard())

    def dispatch_started(self, ctx: BackendContext) -> None:
        meta = self.track_metadata(ctx.track)
        if meta is None:
            log.warning("playing_now skipped; track is missing artist or title")
            return
        self._submit("playing_now", {"track_metadata": meta})

    def dispatch_ended(self, ctx: BackendContext) -> None:
        meta = self.track_metadata(ctx.track)
        if meta is None:
            log.warning("Listen skipped; track is missing artist or title")
            return
        listened_at = int(time.time() - ctx.ledger.total_heard())
        self._submit("single", {"listened_at": listened_at, "track_metadata": meta})
        log.info("Submitted listen: %s — %s", ctx.track.artist, ctx.track.title)
