"""Boundary to whatever samples the player (one snapshot per poll cycle)."""

from __future__ import annotations
from enum import Enum
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from listenrelay.state import PlayerSnapshot, TrackIdentity


class PollErrorKind(Enum):
    NO_DATA = "no_data"
    NOT_PLAYING = "not_playing"
    DESERIALIZATION_FAILED = "deserialization_failed"
    APP_COMMAND_FAILED = "app_command_failed"


class PollError(Exception):
    def __init__(self, kind: PollErrorKind, detail: str = ""):
        self.kind = kind
        self.detail = detail
        super().__init__(f"{kind.value}: {detail}" if detail else kind.value)


class PollSource(Protocol):
    def get_application_data(self) -> "PlayerSnapshot": ...

    def get_current_track(self) -> "TrackIdentity": ...
