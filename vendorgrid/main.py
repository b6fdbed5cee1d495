"""Entry point for vendorgrid application."""

import logging
import sys
from pathlib import Path

from castella import App
from castella.frame import Frame

from .config.loader import load_config
from .db import LocalCache, get_connection
from .state.session import EditorSession
from .store import ConnectivityMonitor, ScorecardStore
from .ui import VendorGridApp


def main():
    """Run vendorgrid application."""
    # Project directory from command line or current directory
    project_path = Path(sys.argv[1]).resolve() if len(sys.argv) > 1 else None

    config = load_config(project_path)
    logging.basicConfig(
        level=config.settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    store = ScorecardStore.from_settings(config.store)
    cache = LocalCache(get_connection(config.cache.path))
    session = EditorSession(store, cache, autosave=config.autosave)

    monitor = None
    if config.connectivity.enabled:
        monitor = ConnectivityMonitor(store.ping, interval=config.connectivity.poll_interval)
        monitor.subscribe(session.set_online)
        monitor.start()

    app = App(
        Frame("vendorgrid - Retailer Scorecards", width=1400, height=900),
        VendorGridApp(session),
    )
    try:
        app.run()
    finally:
        if monitor is not None:
            monitor.stop()
        session.close()


if __name__ == "__main__":
    main()
