"""
Operator alerts for problems a human has to fix (e.g. a revoked Last.fm session).

- Webhook: POST JSON to ALERT_WEBHOOK_URL.
- Gotify: POST /message with an app token (GOTIFY_URL, GOTIFY_TOKEN, GOTIFY_PRIORITY).
- Each channel drops alerts below its minimum level.
- Best-effort: a failed send is logged at DEBUG and never raised.
"""

from __future__ import annotations
import os
import logging
import requests

_LEVELS = {"DEBUG": 10, "INFO": 20, "WARNING": 30, "ERROR": 40, "CRITICAL": 50}

log = logging.getLogger("alerts")


def _level(name: str) -> int:
    return _LEVELS.get(name.upper(), 30)


class WebhookAlerter:
    def __init__(self, url: str | None, min_level: str = "WARNING", app_tag: str = "listenrelay"):
        self.url = url.strip() if url else None
        self.min_level = _level(min_level)
        self.app_tag = app_tag

    def send(self, level: str, title: str, message: str, extra: dict | None = None):
        if not self.url or _level(level) < self.min_level:
            return
        payload = {
            "level": level.upper(),
            "title": f"{self.app_tag}: {title}",
            "message": message,
            "extra": extra or {},
        }
        try:
            requests.post(self.url, json=payload, timeout=5)
        except requests.RequestException as e:
            log.debug("Webhook alert failed: %s", e)


class GotifyAlerter:
    def __init__(self, url: str | None, token: str | None, min_level: str = "WARNING",
                 priority: int = 5, app_tag: str = "listenrelay"):
        self.url = url.rstrip("/") if url else None
        self.token = token.strip() if token else None
        self.min_level = _level(min_level)
        self.priority = priority
        self.app_tag = app_tag

    def send(self, level: str, title: str, message: str, extra: dict | None = None):
        if not self.url or not self.token or _level(level) < self.min_level:
            return
        body = {
            "title": f"{self.app_tag}: {title}",
            "message": f"{message}\n\n{extra}" if extra else message,
            "priority": self.priority,
        }
        try:
            requests.post(f"{self.url}/message", json=body, headers={"X-Gotify-Key": self.token}, timeout=5)
        except requests.RequestException as e:
            log.debug("Gotify alert failed: %s", e)


class AlertFanout:
    def __init__(self, *channels):
        self.channels = channels

    def send(self, level: str, title: str, message: str, extra: dict | None = None):
        for channel in self.channels:
            channel.send(level, title, message, extra)


def alerts_from_env() -> AlertFanout:
    app_tag = os.getenv("APP_TAG", "listenrelay")
    return AlertFanout(
        WebhookAlerter(
            os.getenv("ALERT_WEBHOOK_URL"),
            min_level=os.getenv("ALERT_MIN_LEVEL", "WARNING"),
            app_tag=app_tag,
        ),
        GotifyAlerter(
            os.getenv("GOTIFY_URL"),
            os.getenv("GOTIFY_TOKEN"),
            min_level=os.getenv("GOTIFY_MIN_LEVEL", "WARNING"),
            priority=int(os.getenv("GOTIFY_PRIORITY", "5")),
            app_tag=app_tag,
        ),
    )
