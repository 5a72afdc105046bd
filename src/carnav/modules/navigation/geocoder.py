from __future__ import annotations

import logging
from typing import Any, List, Optional

import aiohttp

from ...errors import AddressLookupError
from ...models import Coordinate
from .http_client import JsonHttpClient

logger = logging.getLogger(__name__)


class NominatimGeocoder(JsonHttpClient):
    """Forward geocoding against a Nominatim-compatible `/search` endpoint.

    Candidates come back in the service's relevance order. No match is an
    empty list; only transport or service failures raise.
    """

    error_cls = AddressLookupError

    def __init__(
        self,
        base_url: str = "https://nominatim.openstreetmap.org",
        max_results: int = 5,
        timeout_s: float = 10.0,
        user_agent: str = "carnav",
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        super().__init__(base_url, timeout_s=timeout_s, user_agent=user_agent, session=session)
        self._max_results = max_results

    async def resolve(self, address: str) -> List[Coordinate]:
        params = {"q": address, "format": "json", "limit": str(self._max_results)}
        data = await self._get_json("/search", params=params)
        candidates = parse_search_results(data)
        logger.info("Geocoded %r to %d candidate(s)", address, len(candidates))
        return candidates


def parse_search_results(data: Any) -> List[Coordinate]:
    if not isinstance(data, list):
        raise AddressLookupError("Unexpected geocoder response shape")
    candidates: List[Coordinate] = []
    for item in data:
        try:
            candidates.append(Coordinate(float(item["lat"]), float(item["lon"])))
        except (KeyError, TypeError, ValueError) as exc:
            raise AddressLookupError(f"Malformed geocoder candidate: {exc}") from exc
    return candidates
