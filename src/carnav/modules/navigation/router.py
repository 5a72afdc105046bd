from __future__ import annotations

import logging
from typing import Any, Optional

import aiohttp

from ...errors import RouteError
from ...models import Coordinate, RouteResult
from .http_client import JsonHttpClient

logger = logging.getLogger(__name__)


class OsrmRouter(JsonHttpClient):
    """Driving routes from an OSRM `/route/v1` service.

    OSRM speaks [lon, lat]; everything leaving this class is (lat, lon).
    """

    error_cls = RouteError

    def __init__(
        self,
        base_url: str = "https://router.project-osrm.org",
        profile: str = "driving",
        timeout_s: float = 10.0,
        user_agent: str = "carnav",
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        super().__init__(base_url, timeout_s=timeout_s, user_agent=user_agent, session=session)
        self._profile = profile

    async def route(self, origin: Coordinate, destination: Coordinate) -> RouteResult:
        path = (
            f"/route/v1/{self._profile}/"
            f"{origin.longitude},{origin.latitude};"
            f"{destination.longitude},{destination.latitude}"
        )
        data = await self._get_json(path, params={"overview": "full", "geometries": "geojson"})
        result = parse_route_response(data)
        logger.debug(
            "Route %s -> %s: %.0f m, %.0f s, %d points",
            origin, destination, result.distance_m, result.duration_s, len(result.points),
        )
        return result


def parse_route_response(data: Any) -> RouteResult:
    if not isinstance(data, dict):
        raise RouteError("Unexpected router response shape")
    code = data.get("code", "Ok")
    if code != "Ok":
        message = data.get("message")
        raise RouteError(f"Router returned {code}: {message}" if message else f"Router returned {code}")
    routes = data.get("routes") or []
    if not routes:
        raise RouteError("Router returned no routes")
    first = routes[0]
    try:
        coordinates = first["geometry"]["coordinates"]
        points = tuple(Coordinate(float(lat), float(lon)) for lon, lat, *_ in coordinates)
        return RouteResult(
            points=points,
            distance_m=float(first["distance"]),
            duration_s=float(first["duration"]),
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise RouteError(f"Malformed route: {exc}") from exc
