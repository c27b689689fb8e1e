"""
Rich presence ("now listening" status) through a pypresence-style RPC object:
anything with update(**fields) and clear().
"""

from __future__ import annotations
import logging
import time

from listenrelay.dispatch import BackendContext, Destination
from listenrelay.enrichment import EnrichmentKind

log = logging.getLogger("presence")


class PresenceBackend(Destination):
    name = "presence"

    def __init__(self, rpc, enabled: bool = True):
        super().__init__(enabled)
        self.rpc = rpc
        self.active = False
        self._artwork: str | None = None

    def solicit_enrichment(self):
        return frozenset({EnrichmentKind.ARTWORK})

    def _timestamps(self, ctx: BackendContext) -> dict:
        position = ctx.ledger.snapshot().expected_position
        if position is None:
            return {}
        start = int(time.time() - position)
        stamps = {"start": start}
        if ctx.track.duration:
            stamps["end"] = int(start + ctx.track.duration)
        return stamps

    def _show(self, ctx: BackendContext, artwork: str | None) -> None:
        fields = {
            "details": ctx.track.title,
            "state": f"by {ctx.track.artist}" if ctx.track.artist else None,
            "large_text": ctx.track.album or None,
            **self._timestamps(ctx),
        }
        if artwork:
            fields["large_image"] = artwork
        self.rpc.update(**{k: v for k, v in fields.items() if v is not None})
        self.active = True
        self._artwork = artwork

    def dispatch_started(self, ctx: BackendContext) -> None:
        artwork = ctx.data.artwork_url if ctx.data is not None else None
        self._show(ctx, artwork)

    def dispatch_progress(self, ctx: BackendContext) -> None:
        # seek: only the timestamps move
        self._show(ctx, self._artwork)

    def clear(self) -> None:
        if not self.active:
            return
        self.rpc.clear()
        self.active = False
        log.debug("Presence cleared")
