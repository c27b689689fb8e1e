import logging
from datetime import timedelta

from listenrelay.alerts import AlertFanout
from listenrelay.dispatch import BackendContext, Destination, is_eligible_listen
from listenrelay.lastfm_client import AuthorizedClient, HeardTrack, LastFMAuthError, Scrobble, utcnow

log = logging.getLogger("lastfm")

_ALBUM_SUFFIXES = (" - Single", " - EP")


def clean_album(album: str | None) -> str | None:
    if not album:
        return album
    for suffix in _ALBUM_SUFFIXES:
        if album.endswith(suffix):
            album = album[: -len(suffix)]
    return album


def track_to_heard(track) -> HeardTrack | None:
    """None if the track lacks the fields Last.fm requires."""
    if not track.artist or not track.title:
        return None
    album_artist = track.album_artist if track.album_artist and track.album_artist != track.artist else None
    return HeardTrack(
        artist=track.artist,
        track=track.title,
        album=clean_album(track.album),
        album_artist=album_artist,
        duration=int(track.duration) if track.duration else None,
        track_number=track.track_number,
    )


class LastFMBackend(Destination):
    name = "last.fm"

    def __init__(self, client: AuthorizedClient, alerts: AlertFanout | None = None, enabled: bool = True):
        super().__init__(enabled)
        self.client = client
        self.alerts = alerts

    def _auth_failed(self, what: str, err: LastFMAuthError) -> None:
        log.error("%s failed (auth): %s", what, err)
        if self.alerts is not None:
            self.alerts.send("ERROR", "Last.fm authentication failed", str(err), {"cause": err.cause.name})

    def check_eligibility(self, ctx: BackendContext) -> bool:
        # https://www.last.fm/api/scrobbling#scrobble-requests
        return is_eligible_listen(ctx.track.duration, ctx.ledger.total_heard())

    def dispatch_started(self, ctx: BackendContext) -> None:
        info = track_to_heard(ctx.track)
        if info is None:
            log.warning("Now playing skipped; track is missing artist or title")
            return
        try:
            resp = self.client.update_now_playing(info)
        except LastFMAuthError as e:
            self._auth_failed("update_now_playing", e)
            return
        if resp.ignored is not None:
            log.info("Now playing ignored by Last.fm: %s", resp.ignored.name)

    def dispatch_ended(self, ctx: BackendContext) -> None:
        info = track_to_heard(ctx.track)
        if info is None:
            log.warning("Scrobble skipped; track is missing artist or title")
            return
        started_at = utcnow() - timedelta(seconds=ctx.ledger.total_heard())
        try:
            resp = self.client.scrobble([Scrobble(info=info, timestamp=started_at)])
        except LastFMAuthError as e:
            self._auth_failed("Scrobble", e)
            return
        if resp.accepted:
            log.info("Scrobbled: %s — %s%s", info.artist, info.track, f" [{info.album}]" if info.album else "")
        for result in resp.results:
            if result.ignored is not None:
                log.warning("Scrobble ignored by Last.fm: %s — %s (%s)",
                            result.artist, result.track, result.ignored.name)
