import logging
import signal
import time

import config
import display as display_sinks
import notifier as notifiers
from bluos import BluOSClient, PlaybackWatcher
from connectivity import ConnectivityMonitor
from events import Ban, Love
from lastfm_client import LastFMClient
from lifetime import ServiceHost
from service import ScrobblerService
from store import StateStore

log = logging.getLogger("scrobbler.main")


def setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        force=True,  # ensure our config is used even if libs pre-configure logging
    )


def build_host(settings: config.Settings, client: LastFMClient) -> ServiceHost:
    store = StateStore(settings.data_dir)
    sink = display_sinks.from_settings(settings)
    alerts = notifiers.from_settings(settings)

    def make_service() -> ScrobblerService:
        return ScrobblerService(
            client, store,
            display=sink,
            queue_limit=settings.queue_limit,
            scrobble_music_player=settings.scrobble_music_player,
            alert=alerts.send,
        )

    return ServiceHost(make_service)


def main():
    settings = config.from_env()
    setup_logging(settings.log_level)
    settings.validate()

    blu = BluOSClient(settings.bluos_host, settings.bluos_port)
    lfm = LastFMClient(
        api_key=settings.lastfm_api_key,
        api_secret=settings.lastfm_api_secret,
        session_key=settings.lastfm_session_key,
        username=settings.lastfm_username,
        password_md5=settings.lastfm_password_md5,
    )
    host = build_host(settings, lfm)
    watcher = PlaybackWatcher()
    monitor = ConnectivityMonitor(settings.connectivity_url)

    # Ratings arrive from outside: `kill -USR1 <pid>` loves, `kill -USR2 <pid>` bans
    ratings = []
    if hasattr(signal, "SIGUSR1"):
        signal.signal(signal.SIGUSR1, lambda *_: ratings.append(Love()))
        signal.signal(signal.SIGUSR2, lambda *_: ratings.append(Ban()))

    log.info("Starting BluOS → Last.fm scrobbler. Poll interval: %ss", settings.poll_interval)
    log.info("BluOS device: %s:%s | State dir: %s (queue limit=%s)",
             settings.bluos_host, settings.bluos_port, settings.data_dir, settings.queue_limit)

    try:
        host.deliver(watcher.initial_query(blu.get_status()))
        next_probe = 0.0
        while True:
            now = time.monotonic()
            if now >= next_probe:
                change = monitor.poll()
                if change is not None:
                    host.deliver(change)
                next_probe = now + settings.connectivity_interval

            for event in watcher.poll(blu.get_status()):
                host.deliver(event)

            while ratings:
                host.deliver(ratings.pop(0))

            time.sleep(settings.poll_interval)
    except KeyboardInterrupt:
        log.info("Shutting down…")
    finally:
        host.close()


if __name__ == "__main__":
    main()
