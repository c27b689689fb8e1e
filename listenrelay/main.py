import os
import sys
import argparse
import signal
import logging
import threading

from listenrelay import __version__
from listenrelay.alerts import alerts_from_env
from listenrelay.auth import ClientIdentity, SessionKey
from listenrelay.backend_lastfm import LastFMBackend
from listenrelay.backend_listenbrainz import ListenBrainzBackend
from listenrelay.backend_presence import PresenceBackend
from listenrelay.bluos import BluOSClient
from listenrelay.dispatch import BackendDispatcher
from listenrelay.enrichment import TrackMetadataEnrichment
from listenrelay.lastfm_client import AuthorizedClient, LastFMError, UnauthorizedClient
from listenrelay.state import PlaybackTracker

# -------------------------
# Configuration via ENV VARS
# -------------------------
BLUOS_HOST = os.getenv("BLUOS_HOST", "127.0.0.1")
BLUOS_PORT = int(os.getenv("BLUOS_PORT", "11000"))
POLL_INTERVAL = max(1.0, float(os.getenv("POLL_INTERVAL", "3")))
SHUTDOWN_GRACE = float(os.getenv("SHUTDOWN_GRACE", "1"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

LASTFM_API_KEY = os.getenv("LASTFM_API_KEY")
LASTFM_API_SECRET = os.getenv("LASTFM_API_SECRET")
LASTFM_SESSION_KEY = os.getenv("LASTFM_SESSION_KEY")

LISTENBRAINZ_TOKEN = os.getenv("LISTENBRAINZ_TOKEN")
DISCORD_CLIENT_ID = os.getenv("DISCORD_CLIENT_ID")

USER_AGENT = f"listenrelay/{__version__}"

log = logging.getLogger("listenrelay")


def setup_logging():
    logging.basicConfig(
        level=getattr(logging, LOG_LEVEL, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        force=True,  # ensure our config is used even if libs pre-configure logging
    )


def client_identity() -> ClientIdentity:
    if not LASTFM_API_KEY or not LASTFM_API_SECRET:
        raise SystemExit("LASTFM_API_KEY and LASTFM_API_SECRET are required for Last.fm")
    try:
        return ClientIdentity(USER_AGENT, LASTFM_API_KEY, LASTFM_API_SECRET)
    except ValueError as e:
        raise SystemExit(str(e))


def connect_presence(client_id: str):
    # pypresence is an optional extra
    from pypresence import Presence

    rpc = Presence(client_id)
    rpc.connect()
    return rpc


def build_dispatcher(alerts) -> BackendDispatcher:
    lastfm = listenbrainz = presence = None

    if LASTFM_SESSION_KEY:
        client = AuthorizedClient(client_identity(), SessionKey(LASTFM_SESSION_KEY))
        lastfm = LastFMBackend(client, alerts=alerts)
    else:
        log.info("LASTFM_SESSION_KEY not set; Last.fm disabled (run `listenrelay authorize`)")

    if LISTENBRAINZ_TOKEN:
        listenbrainz = ListenBrainzBackend(LISTENBRAINZ_TOKEN)

    if DISCORD_CLIENT_ID:
        try:
            presence = PresenceBackend(connect_presence(DISCORD_CLIENT_ID))
        except Exception as e:
            log.warning("Rich presence disabled: %s", e)

    dispatcher = BackendDispatcher(lastfm=lastfm, listenbrainz=listenbrainz, presence=presence)
    if not dispatcher.all():
        raise SystemExit("No destination configured: set LASTFM_SESSION_KEY, LISTENBRAINZ_TOKEN or DISCORD_CLIENT_ID")
    return dispatcher


def watch_for_termination(terminating: threading.Event):
    """First signal asks the loop to stop; a timer force-exits if it hangs in a network call."""
    def handler(signum, frame):
        if terminating.is_set():
            return
        log.info("Received %s; shutting down…", signal.Signals(signum).name)
        terminating.set()
        timer = threading.Timer(SHUTDOWN_GRACE, os._exit, args=(1,))
        timer.daemon = True
        timer.start()

    for sig in (signal.SIGINT, signal.SIGTERM, signal.SIGHUP, signal.SIGQUIT):
        signal.signal(sig, handler)


def authorize(prompt=input) -> SessionKey | None:
    """Interactive Last.fm handshake; prints the session key to store in LASTFM_SESSION_KEY."""
    identity = client_identity()
    client = UnauthorizedClient(identity)
    try:
        token = client.request_authorization_token()
    except LastFMError as e:
        print(f"Could not get an authorization token: {e}", file=sys.stderr)
        return None

    print(f"Continue after authorizing the application: {token.authorization_url(identity)}")
    if prompt("Have you authorized the application? (y/n) ").strip().lower() not in ("y", "yes"):
        return None
    try:
        key = client.request_session_key(token)
    except LastFMError as e:
        raise SystemExit(f"couldn't create session key: {e}")

    print(f"Authorized as {key.name}. Set LASTFM_SESSION_KEY={key.key}")
    return key


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="listenrelay",
        description="Relay what a BluOS player is playing to Last.fm, ListenBrainz and rich presence.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    commands = parser.add_subparsers(dest="command")
    commands.add_parser("run", help="Poll the player and relay playback (default)")
    commands.add_parser("authorize", help="Obtain a Last.fm session key interactively")
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    setup_logging()
    if args.command == "authorize":
        authorize()
        return

    alerts = alerts_from_env()
    dispatcher = build_dispatcher(alerts)
    terminating = threading.Event()
    watch_for_termination(terminating)

    tracker = PlaybackTracker(
        source=BluOSClient(BLUOS_HOST, BLUOS_PORT),
        dispatcher=dispatcher,
        enrichment=TrackMetadataEnrichment(),
        terminating=terminating,
    )
    log.info("Starting listenrelay %s. Poll interval: %ss", __version__, POLL_INTERVAL)
    log.info("BluOS device: %s:%s | destinations: %s",
             BLUOS_HOST, BLUOS_PORT, ", ".join(d.name for d in dispatcher.all()))
    alerts.send("INFO", "Relay started", f"Polling {BLUOS_HOST}:{BLUOS_PORT}.")

    try:
        tracker.run(POLL_INTERVAL)
    finally:
        dispatcher.close()
    log.info("Stopped")


if __name__ == "__main__":
    main()
