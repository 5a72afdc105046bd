from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional, Type

import aiohttp

from ...errors import NavigationError

logger = logging.getLogger(__name__)


class JsonHttpClient:
    """Shared aiohttp plumbing for the geocoder and router clients.

    Every transport failure, non-200 status or undecodable body is re-raised
    as `error_cls` so callers only deal with one exception type per service.
    """

    error_cls: Type[NavigationError] = NavigationError

    def __init__(
        self,
        base_url: str,
        timeout_s: float = 10.0,
        user_agent: str = "carnav",
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = aiohttp.ClientTimeout(total=timeout_s)
        self._headers = {"User-Agent": user_agent, "Accept": "application/json"}
        self._session = session
        self._owns_session = session is None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout, headers=self._headers)
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def _get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        url = f"{self._base_url}{path}"
        session = self._get_session()
        try:
            async with session.get(url, params=params, timeout=self._timeout, headers=self._headers) as resp:
                if resp.status != 200:
                    body = await resp.text(errors="replace")
                    raise self.error_cls(f"HTTP {resp.status} from {url}: {body[:200]}")
                try:
                    return await resp.json(content_type=None)
                except ValueError as exc:
                    raise self.error_cls(f"Malformed JSON from {url}: {exc}") from exc
        except asyncio.TimeoutError as exc:
            raise self.error_cls(f"Timed out requesting {url}") from exc
        except aiohttp.ClientError as exc:
            raise self.error_cls(f"Request to {url} failed: {exc}") from exc
