from __future__ import annotations

import os
from dataclasses import dataclass
from dotenv import load_dotenv


@dataclass
class AppConfig:
    log_dir: str
    gps_serial_port: str
    gps_baud: int
    gps_min_distance_m: float
    osrm_base_url: str
    osrm_profile: str
    geocoder_base_url: str
    geocoder_max_results: int
    http_timeout_s: float
    http_user_agent: str
    route_refresh_interval_s: float
    map_default_zoom: float
    map_navigate_zoom: float
    map_fit_padding_px: int
    web_host: str
    web_port: int


def load_config() -> AppConfig:
    load_dotenv(os.getenv("ENV_FILE", "/opt/carnav/.env"), override=False)

    log_dir = os.getenv("CARNAV_LOG_DIR", "/var/log/carnav")
    gps_serial_port = os.getenv("GPS_SERIAL_PORT", "/dev/ttyS0")
    gps_baud = int(os.getenv("GPS_BAUD", "9600"))
    gps_min_distance_m = float(os.getenv("GPS_MIN_DISTANCE_M", "5.0"))
    osrm_base_url = os.getenv("OSRM_BASE_URL", "https://router.project-osrm.org").rstrip("/")
    osrm_profile = os.getenv("OSRM_PROFILE", "driving")
    geocoder_base_url = os.getenv("GEOCODER_BASE_URL", "https://nominatim.openstreetmap.org").rstrip("/")
    geocoder_max_results = int(os.getenv("GEOCODER_MAX_RESULTS", "5"))
    http_timeout_s = float(os.getenv("HTTP_TIMEOUT_S", "10.0"))
    http_user_agent = os.getenv("HTTP_USER_AGENT", "carnav/0.1 (+https://www.openstreetmap.org/copyright)")
    # 0 disables throttling: every applied fix recomputes the route
    route_refresh_interval_s = float(os.getenv("ROUTE_REFRESH_INTERVAL_S", "0.0"))
    map_default_zoom = float(os.getenv("MAP_DEFAULT_ZOOM", "15.0"))
    map_navigate_zoom = float(os.getenv("MAP_NAVIGATE_ZOOM", "18.0"))
    map_fit_padding_px = int(os.getenv("MAP_FIT_PADDING_PX", "100"))
    web_host = os.getenv("WEB_HOST", "0.0.0.0")
    web_port = int(os.getenv("WEB_PORT", "8080"))

    return AppConfig(
        log_dir=log_dir,
        gps_serial_port=gps_serial_port,
        gps_baud=gps_baud,
        gps_min_distance_m=gps_min_distance_m,
        osrm_base_url=osrm_base_url,
        osrm_profile=osrm_profile,
        geocoder_base_url=geocoder_base_url,
        geocoder_max_results=geocoder_max_results,
        http_timeout_s=http_timeout_s,
        http_user_agent=http_user_agent,
        route_refresh_interval_s=route_refresh_interval_s,
        map_default_zoom=map_default_zoom,
        map_navigate_zoom=map_navigate_zoom,
        map_fit_padding_px=map_fit_padding_px,
        web_host=web_host,
        web_port=web_port,
    )
