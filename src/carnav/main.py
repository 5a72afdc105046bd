from __future__ import annotations

import asyncio
import logging
import signal

from carnav.config import load_config
from carnav.logging_setup import setup_logging
from carnav.event_bus import EventBus

from carnav.modules.sensors.gps import GPSReader
from carnav.modules.navigation.geocoder import NominatimGeocoder
from carnav.modules.navigation.router import OsrmRouter
from carnav.modules.navigation.session import NavigationSession
from carnav.modules.navigation.nav import Navigation
from carnav.modules.web.server import WebServer


async def main_async() -> None:
    cfg = load_config()
    setup_logging(cfg.log_dir)
    logger = logging.getLogger("carnav")
    logger.info("CarNav starting up")

    events = EventBus()

    gps = GPSReader(cfg.gps_serial_port, cfg.gps_baud, events, min_distance_m=cfg.gps_min_distance_m)
    geocoder = NominatimGeocoder(
        cfg.geocoder_base_url,
        max_results=cfg.geocoder_max_results,
        timeout_s=cfg.http_timeout_s,
        user_agent=cfg.http_user_agent,
    )
    router = OsrmRouter(
        cfg.osrm_base_url,
        profile=cfg.osrm_profile,
        timeout_s=cfg.http_timeout_s,
        user_agent=cfg.http_user_agent,
    )
    session = NavigationSession(
        gps,
        geocoder,
        router,
        fit_padding_px=cfg.map_fit_padding_px,
        navigate_zoom=cfg.map_navigate_zoom,
        route_refresh_interval_s=cfg.route_refresh_interval_s,
    )

    nav = Navigation(events, session)
    nav.start()

    webserver = WebServer(events, nav.snapshot, host=cfg.web_host, port=cfg.web_port, default_zoom=cfg.map_default_zoom)
    webserver.start()

    stop_event = asyncio.Event()

    def _signal_handler() -> None:
        logger.info("Shutdown signal received")
        stop_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _signal_handler)
        except NotImplementedError:
            # Windows fallback
            pass

    await stop_event.wait()

    # Graceful shutdown
    await nav.stop()
    await gps.stop()
    await webserver.stop()
    await geocoder.close()
    await router.close()
    logger.info("CarNav shut down")


def run() -> None:
    try:
        asyncio.run(main_async())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
