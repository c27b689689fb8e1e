"""
Last.fm web service client.

Two client types: UnauthorizedClient can only run the authorization handshake;
AuthorizedClient (obtained via into_authorized) is the only one that can scrobble
or update now-playing. There is no "is authorized" flag to check.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Sequence

import requests

from listenrelay.auth import AuthorizationToken, ClientIdentity, SessionKey
from listenrelay.parameters import RequestParameterMap

log = logging.getLogger("lastfm")

API_URL = "https://ws.audioscrobbler.com/2.0/"
MAX_SCROBBLE_BATCH = 50


class RemoteErrorCause(Enum):
    INVALID_SERVICE = 2
    INVALID_METHOD = 3
    AUTHENTICATION_FAILED = 4
    MISSING_PARAMETER = 6
    INVALID_RESOURCE = 7
    UNKNOWN_ERROR = 8
    INVALID_SESSION_KEY = 9
    INVALID_API_KEY = 10
    SERVICE_OFFLINE = 11
    INVALID_SIGNATURE = 13
    TEMPORARY_ERROR = 16
    SUSPENDED_API_KEY = 26
    RATE_LIMIT_EXCEEDED = 29
    UNKNOWN_CAUSE = -1  # any code not listed above

    @classmethod
    def from_code(cls, code: int) -> "RemoteErrorCause":
        try:
            cause = cls(code)
        except ValueError:
            return cls.UNKNOWN_CAUSE
        return cls.UNKNOWN_CAUSE if cause is cls.UNKNOWN_CAUSE else cause


class IgnoredReason(Enum):
    ARTIST_IGNORED = 1
    TRACK_IGNORED = 2
    TIMESTAMP_TOO_OLD = 3
    TIMESTAMP_TOO_NEW = 4
    DAILY_LIMIT_EXCEEDED = 5
    UNKNOWN_CAUSE = -1

    @classmethod
    def from_code(cls, code: int) -> "IgnoredReason | None":
        if code == 0:
            return None
        try:
            reason = cls(code)
        except ValueError:
            return cls.UNKNOWN_CAUSE
        return cls.UNKNOWN_CAUSE if reason is cls.UNKNOWN_CAUSE else reason


# Custom error classes so callers can branch
class LastFMError(Exception): ...
class LastFMNetworkError(LastFMError): ...
class LastFMResponseError(LastFMError): ...


class LastFMApiError(LastFMError):
    def __init__(self, code: int, message: str):
        self.code = code
        self.cause = RemoteErrorCause.from_code(code)
        self.message = message
        super().__init__(f"Last.fm API error {code} ({self.cause.name.lower()}): {message}")


class LastFMAuthError(LastFMApiError): ...
class LastFMRateLimitError(LastFMApiError): ...
class LastFMUnavailableError(LastFMApiError): ...


_AUTH_CAUSES = {
    RemoteErrorCause.AUTHENTICATION_FAILED,
    RemoteErrorCause.INVALID_SESSION_KEY,
    RemoteErrorCause.INVALID_API_KEY,
    RemoteErrorCause.INVALID_SIGNATURE,
    RemoteErrorCause.SUSPENDED_API_KEY,
}
_UNAVAILABLE_CAUSES = {RemoteErrorCause.SERVICE_OFFLINE, RemoteErrorCause.TEMPORARY_ERROR}


def api_error(code: int, message: str) -> LastFMApiError:
    cause = RemoteErrorCause.from_code(code)
    if cause in _AUTH_CAUSES:
        return LastFMAuthError(code, message)
    if cause is RemoteErrorCause.RATE_LIMIT_EXCEEDED:
        return LastFMRateLimitError(code, message)
    if cause in _UNAVAILABLE_CAUSES:
        return LastFMUnavailableError(code, message)
    return LastFMApiError(code, message)


@dataclass(frozen=True)
class HeardTrack:
    artist: str
    track: str
    album: str | None = None
    album_artist: str | None = None  # only sent when it differs from artist
    duration: int | None = None      # seconds
    track_number: int | None = None
    mbid: str | None = None

    def parameters(self, suffix: str = "") -> dict[str, object]:
        params: dict[str, object] = {f"artist{suffix}": self.artist, f"track{suffix}": self.track}
        optional = {
            "album": self.album,
            "albumArtist": self.album_artist,
            "duration": self.duration,
            "trackNumber": self.track_number,
            "mbid": self.mbid,
        }
        for name, value in optional.items():
            if value is not None and value != "":
                params[f"{name}{suffix}"] = value
        return params


@dataclass(frozen=True)
class Scrobble:
    info: HeardTrack
    timestamp: datetime  # when the track started playing
    chosen_by_user: bool | None = None

    def parameters(self, index: int) -> dict[str, object]:
        suffix = f"[{index}]"
        params = self.info.parameters(suffix)
        params[f"timestamp{suffix}"] = int(self.timestamp.timestamp())
        if self.chosen_by_user is not None:
            params[f"chosenByUser{suffix}"] = self.chosen_by_user
        return params


@dataclass(frozen=True)
class ScrobbleResult:
    artist: str | None
    track: str | None
    ignored: IgnoredReason | None = None


@dataclass(frozen=True)
class ScrobbleResponse:
    accepted: int
    ignored: int
    results: list[ScrobbleResult] = field(default_factory=list)


@dataclass(frozen=True)
class NowPlayingResponse:
    artist: str | None
    track: str | None
    ignored: IgnoredReason | None = None


def _text(node: Any) -> str | None:
    if isinstance(node, dict):
        return node.get("#text")
    return node if isinstance(node, str) else None


def _ignored(entry: dict) -> IgnoredReason | None:
    message = entry.get("ignoredMessage") or {}
    try:
        code = int(message.get("code", 0))
    except (TypeError, ValueError):
        raise LastFMResponseError(f"malformed ignoredMessage: {message!r}")
    return IgnoredReason.from_code(code)


class _Transport:
    """Shared plumbing: HTTP session, identity and response decoding. No credentials."""

    def __init__(self, identity: ClientIdentity, session: requests.Session | None = None, timeout: float = 10):
        self.identity = identity
        self.timeout = timeout
        self._http = session or requests.Session()

    def _request(self, params: RequestParameterMap, http_method: str = "POST") -> dict:
        params["format"] = "json"
        headers = {"User-Agent": self.identity.user_agent}
        try:
            if http_method == "GET":
                resp = self._http.get(API_URL, params=params.to_form(), headers=headers, timeout=self.timeout)
            else:
                resp = self._http.post(API_URL, data=params.to_form(), headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            raise LastFMNetworkError(str(e)) from e

        try:
            body = resp.json()
        except ValueError as e:
            raise LastFMResponseError(f"HTTP {resp.status_code}: response is not JSON") from e
        if not isinstance(body, dict):
            raise LastFMResponseError(f"HTTP {resp.status_code}: unexpected JSON body")

        if "error" in body:
            try:
                code = int(body["error"])
            except (TypeError, ValueError) as e:
                raise LastFMResponseError(f"malformed error code: {body['error']!r}") from e
            raise api_error(code, str(body.get("message", "")))
        if resp.status_code >= 400:
            raise LastFMResponseError(f"HTTP {resp.status_code} without an error payload")
        return body


class UnauthorizedClient(_Transport):
    """Can only obtain credentials. Convert with into_authorized() once a session key exists."""

    def __init__(self, identity: ClientIdentity, session: requests.Session | None = None, timeout: float = 10):
        super().__init__(identity, session, timeout)
        self._spent = False

    def _check_usable(self):
        if self._spent:
            raise RuntimeError("client was converted with into_authorized() and can no longer be used")

    def request_authorization_token(self) -> AuthorizationToken:
        """Step 1 of the handshake; unsigned, only the API key is sent."""
        self._check_usable()
        params = RequestParameterMap({"method": "auth.getToken", "api_key": self.identity.api_key})
        body = self._request(params, http_method="GET")
        token = body.get("token")
        if not isinstance(token, str) or not token:
            raise LastFMResponseError("auth.getToken response has no token")
        return AuthorizationToken(token)

    def request_session_key(self, token: AuthorizationToken) -> SessionKey:
        """Step 3: exchange a user-confirmed token for a permanent session key."""
        self._check_usable()
        params = RequestParameterMap({
            "method": "auth.getSession",
            "api_key": self.identity.api_key,
            "token": token.consume(),
        })
        params.sign(self.identity.api_secret)
        body = self._request(params)
        session = body.get("session") or {}
        key = session.get("key")
        if not isinstance(key, str) or not key:
            raise LastFMResponseError("auth.getSession response has no session key")
        log.info("Obtained Last.fm session key for %s", session.get("name"))
        return SessionKey(key, name=session.get("name"))

    def into_authorized(self, session_key: SessionKey) -> "AuthorizedClient":
        self._check_usable()
        self._spent = True
        return AuthorizedClient(self.identity, session_key, session=self._http, timeout=self.timeout)


class AuthorizedClient(_Transport):
    """Holds a session key; the only client that can submit listening data."""

    def __init__(self, identity: ClientIdentity, session_key: SessionKey,
                 session: requests.Session | None = None, timeout: float = 10):
        if not isinstance(session_key, SessionKey):
            raise TypeError("AuthorizedClient requires a SessionKey")
        super().__init__(identity, session, timeout)
        self._session_key = session_key

    @property
    def session_key(self) -> SessionKey:
        return self._session_key

    def _signed(self, method: str, params: RequestParameterMap) -> dict:
        params["sk"] = self._session_key.key
        params["method"] = method
        params["api_key"] = self.identity.api_key
        params.sign(self.identity.api_secret)
        return self._request(params)

    def scrobble(self, scrobbles: Sequence[Scrobble]) -> ScrobbleResponse:
        if not 1 <= len(scrobbles) <= MAX_SCROBBLE_BATCH:
            raise ValueError(f"scrobble batch must hold 1..{MAX_SCROBBLE_BATCH} entries, got {len(scrobbles)}")
        params = RequestParameterMap()
        for i, s in enumerate(scrobbles):
            params.extend(s.parameters(i))
        body = self._signed("track.scrobble", params)

        try:
            root = body["scrobbles"]
            attr = root.get("@attr", {})
            entries = root.get("scrobble", [])
            if isinstance(entries, dict):
                entries = [entries]
            results = [
                ScrobbleResult(_text(e.get("artist")), _text(e.get("track")), _ignored(e))
                for e in entries
            ]
            return ScrobbleResponse(int(attr.get("accepted", 0)), int(attr.get("ignored", 0)), results)
        except (KeyError, AttributeError, TypeError, ValueError) as e:
            raise LastFMResponseError(f"unexpected track.scrobble response: {e}") from e

    def update_now_playing(self, track: HeardTrack) -> NowPlayingResponse:
        body = self._signed("track.updateNowPlaying", RequestParameterMap(track.parameters()))
        try:
            entry = body["nowplaying"]
            return NowPlayingResponse(_text(entry.get("artist")), _text(entry.get("track")), _ignored(entry))
        except (KeyError, AttributeError) as e:
            raise LastFMResponseError(f"unexpected track.updateNowPlaying response: {e}") from e


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
