"""Last.fm credentials: client identity, one-shot authorization tokens, session keys."""

from __future__ import annotations
import re
from dataclasses import dataclass, field
from urllib.parse import urlencode

AUTH_URL = "https://www.last.fm/api/auth/"

_HEX32 = re.compile(r"^[0-9a-fA-F]{32}$")


class TokenConsumedError(RuntimeError):
    """An authorization token was exchanged more than once."""


@dataclass(frozen=True)
class ClientIdentity:
    user_agent: str
    api_key: str
    api_secret: str = field(repr=False)

    def __post_init__(self):
        if not _HEX32.match(self.api_key or ""):
            raise ValueError("Last.fm API key must be 32 hexadecimal characters")
        if not _HEX32.match(self.api_secret or ""):
            raise ValueError("Last.fm API secret must be 32 hexadecimal characters")


@dataclass
class AuthorizationToken:
    """Short-lived token; the user confirms it in a browser, then it is exchanged once."""
    token: str
    consumed: bool = False

    def authorization_url(self, identity: ClientIdentity) -> str:
        return f"{AUTH_URL}?{urlencode({'api_key': identity.api_key, 'token': self.token})}"

    def consume(self) -> str:
        if self.consumed:
            raise TokenConsumedError("authorization token has already been exchanged")
        self.consumed = True
        return self.token


@dataclass(frozen=True)
class SessionKey:
    key: str = field(repr=False)
    name: str | None = None  # account the key was issued for

    def __post_init__(self):
        if not self.key:
            raise ValueError("empty Last.fm session key")

    def __str__(self) -> str:
        return f"SessionKey(name={self.name!r})"
