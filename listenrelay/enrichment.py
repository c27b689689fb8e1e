"""
Extra per-track data that destinations may ask for before a track-started dispatch.

Destinations solicit kinds; the provider fills a bundle once per track change.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, AbstractSet, Any, Protocol

if TYPE_CHECKING:
    from listenrelay.state import TrackIdentity

log = logging.getLogger("enrichment")


class EnrichmentKind(Enum):
    ARTWORK = "artwork"
    ALBUM_ARTIST = "album_artist"


Solicitation = AbstractSet[EnrichmentKind]


@dataclass(frozen=True)
class EnrichmentBundle:
    artwork_url: str | None = None
    album_artist: str | None = None


class ArtworkHost(Protocol):
    def host(self, url: str) -> str | None: ...


class EnrichmentProvider(Protocol):
    def solicit(self, kinds: Solicitation, track: "TrackIdentity",
                library: Any = None, artwork_host: ArtworkHost | None = None) -> EnrichmentBundle: ...


class TrackMetadataEnrichment:
    """Fills the bundle from what the poll source already knows about the track."""

    def solicit(self, kinds, track, library=None, artwork_host=None) -> EnrichmentBundle:
        artwork = None
        if EnrichmentKind.ARTWORK in kinds and track.artwork_url:
            artwork = track.artwork_url
            if artwork_host is not None:
                # re-host so that remote viewers can reach a LAN-only image
                artwork = artwork_host.host(artwork) or artwork
        album_artist = track.album_artist if EnrichmentKind.ALBUM_ARTIST in kinds else None
        log.debug("Enrichment for %s: artwork=%s album_artist=%s", track.persistent_id, artwork, album_artist)
        return EnrichmentBundle(artwork_url=artwork, album_artist=album_artist)
