from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, List, Optional, Protocol, Set

from ...errors import RouteError
from ...models import (
    Coordinate,
    ErrorKind,
    ErrorNotice,
    FitBounds,
    Fix,
    Recenter,
    RouteResult,
    SessionEvent,
    SessionSnapshot,
    StateChanged,
    ZoomTo,
)
from .formatting import format_distance, format_duration

logger = logging.getLogger(__name__)

Listener = Callable[[SessionEvent], None]


class Subscription(Protocol):
    def cancel(self) -> None: ...


class PositionSource(Protocol):
    async def request_permission(self) -> bool: ...

    def subscribe(
        self, on_fix: Callable[[Fix], None], on_error: Callable[[Exception], None]
    ) -> Subscription: ...


class Geocoder(Protocol):
    async def resolve(self, address: str) -> List[Coordinate]: ...


class Router(Protocol):
    async def route(self, origin: Coordinate, destination: Coordinate) -> RouteResult: ...


class NavigationSession:
    """State machine behind the navigation screen.

    Owns the current position, destination, route and the tracking/started
    flags, and decides when the geocoder and router are called. It holds no
    reference to any UI: listeners receive `StateChanged` snapshots, camera
    commands (`Recenter`, `FitBounds`, `ZoomTo`) and `ErrorNotice` values.

    All transitions run on one event loop. Geocode and route requests carry a
    sequence number; a response is applied only if it belongs to the latest
    request and the session has not been closed.
    """

    def __init__(
        self,
        position_source: PositionSource,
        geocoder: Geocoder,
        router: Router,
        fit_padding_px: int = 100,
        navigate_zoom: float = 18.0,
        route_refresh_interval_s: float = 0.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._position_source = position_source
        self._geocoder = geocoder
        self._router = router
        self._fit_padding_px = fit_padding_px
        self._navigate_zoom = navigate_zoom
        self._route_refresh_interval_s = route_refresh_interval_s
        self._clock = clock

        self._current_position: Optional[Coordinate] = None
        self._destination: Optional[Coordinate] = None
        self._route: Optional[RouteResult] = None
        self._tracking = True
        self._started = False
        self._searching = False
        self._loading = True
        self._permission_denied = False
        self._last_error: Optional[ErrorNotice] = None

        self._geocode_seq = 0
        self._route_seq = 0
        self._last_route_request: Optional[float] = None
        self._subscription: Optional[Subscription] = None
        self._listeners: List[Listener] = []
        self._tasks: Set[asyncio.Task[Any]] = set()
        self._closed = False

    # ------------------------------------------------------------------
    # Observable state
    # ------------------------------------------------------------------

    @property
    def current_position(self) -> Optional[Coordinate]:
        return self._current_position

    @property
    def destination(self) -> Optional[Coordinate]:
        return self._destination

    @property
    def route(self) -> Optional[RouteResult]:
        return self._route

    @property
    def tracking(self) -> bool:
        return self._tracking

    @property
    def started(self) -> bool:
        return self._started

    @property
    def searching(self) -> bool:
        return self._searching

    @property
    def loading(self) -> bool:
        return self._loading

    @property
    def permission_denied(self) -> bool:
        return self._permission_denied

    @property
    def last_error(self) -> Optional[ErrorNotice]:
        return self._last_error

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def subscribed(self) -> bool:
        return self._subscription is not None

    def snapshot(self) -> SessionSnapshot:
        route = self._route
        return SessionSnapshot(
            current_position=self._current_position,
            destination=self._destination,
            route=route,
            tracking=self._tracking,
            started=self._started,
            searching=self._searching,
            loading=self._loading,
            permission_denied=self._permission_denied,
            last_error=self._last_error,
            distance_text=format_distance(route.distance_m) if route else None,
            duration_text=format_duration(route.duration_s) if route else None,
        )

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, event: SessionEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Session listener failed on %s", type(event).__name__)

    def _changed(self) -> None:
        self._emit(StateChanged(self.snapshot()))

    def _report(self, kind: ErrorKind, message: str) -> None:
        notice = ErrorNotice(kind, message)
        self._last_error = notice
        logger.warning("%s: %s", kind.value, message)
        self._emit(notice)

    def _clear_error(self, *kinds: ErrorKind) -> None:
        if self._last_error is not None and self._last_error.kind in kinds:
            self._last_error = None

    def _reset_destination(self) -> None:
        self._destination = None
        self._route = None
        self._started = False

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def submit_destination(self, text: str) -> None:
        if self._closed:
            return
        query = (text or "").strip()
        self._geocode_seq += 1
        seq = self._geocode_seq

        if not query:
            self._reset_destination()
            self._searching = False
            self._changed()
            return

        self._searching = True
        self._changed()
        try:
            candidates = await self._geocoder.resolve(query)
        except LookupError as exc:
            if not self._is_latest_geocode(seq):
                return
            self._reset_destination()
            self._searching = False
            self._report(ErrorKind.LOOKUP, f"Search error: {exc}")
            self._changed()
            return

        if not self._is_latest_geocode(seq):
            logger.debug("Discarding stale geocode result for %r", query)
            return

        self._searching = False
        self._started = False
        self._clear_error(ErrorKind.LOOKUP, ErrorKind.NO_CANDIDATES)
        if not candidates:
            self._reset_destination()
            self._report(ErrorKind.NO_CANDIDATES, f"No match found for {query!r}")
            self._changed()
            return

        target = candidates[0]
        if target != self._destination:
            # A route computed for another destination must not be shown for this one
            self._route = None
        self._destination = target
        self._changed()
        await self.fetch_route()

    def _is_latest_geocode(self, seq: int) -> bool:
        return not self._closed and seq == self._geocode_seq

    async def fetch_route(self) -> None:
        if self._closed or self._destination is None or self._current_position is None:
            return
        self._route_seq += 1
        seq = self._route_seq
        origin = self._current_position
        destination = self._destination
        self._last_route_request = self._clock()

        try:
            result = await self._router.route(origin, destination)
        except RouteError as exc:
            if self._is_latest_route(seq, destination):
                self._report(ErrorKind.ROUTE, f"Route error: {exc}")
                self._changed()
            return

        if not self._is_latest_route(seq, destination):
            logger.debug("Discarding stale route response #%d", seq)
            return

        self._route = result
        self._clear_error(ErrorKind.ROUTE)
        self._changed()
        if not self._started and self._current_position is not None:
            self._emit(FitBounds(self._current_position, destination, self._fit_padding_px))

    def _is_latest_route(self, seq: int, destination: Coordinate) -> bool:
        return not self._closed and seq == self._route_seq and self._destination == destination

    async def on_position_update(self, fix: Fix) -> None:
        if self._closed or self._permission_denied or not self._tracking:
            return
        self._current_position = fix.coordinate
        self._loading = False
        self._changed()

        if self._destination is None:
            self._emit(Recenter(self._current_position))
            return
        if self._started:
            self._emit(Recenter(self._current_position))
        if self._refresh_throttled():
            return
        await self.fetch_route()

    def _refresh_throttled(self) -> bool:
        if self._route_refresh_interval_s <= 0 or self._last_route_request is None:
            return False
        return self._clock() - self._last_route_request < self._route_refresh_interval_s

    def toggle_tracking(self) -> None:
        if self._closed:
            return
        self._tracking = not self._tracking
        logger.info("Position tracking %s", "resumed" if self._tracking else "paused")
        self._changed()

    def clear_destination(self) -> None:
        if self._closed:
            return
        # Also invalidates any search still in flight
        self._geocode_seq += 1
        self._searching = False
        self._reset_destination()
        self._changed()

    async def start(self) -> None:
        if self._closed or self._destination is None:
            return
        self._started = True
        self._changed()
        if self._current_position is not None:
            self._emit(ZoomTo(self._current_position, self._navigate_zoom))
        await self.fetch_route()

    def center_on_me(self) -> None:
        if self._current_position is not None:
            self._emit(Recenter(self._current_position))

    async def request_permission_and_begin(self) -> bool:
        if self._closed:
            return False
        if self._subscription is not None:
            return True
        granted = await self._position_source.request_permission()
        if self._closed:
            return False
        if not granted:
            self._loading = False
            self._permission_denied = True
            self._report(ErrorKind.PERMISSION_DENIED, "Location permission required")
            self._changed()
            return False

        self._permission_denied = False
        self._clear_error(ErrorKind.PERMISSION_DENIED)
        self._subscription = self._position_source.subscribe(self._handle_fix, self._handle_stream_error)
        logger.info("Subscribed to position updates")
        self._changed()
        return True

    def _handle_fix(self, fix: Fix) -> None:
        self._spawn(self.on_position_update(fix))

    def _handle_stream_error(self, exc: Exception) -> None:
        if self._closed:
            return
        self._loading = False
        self._report(ErrorKind.LOCATION_STREAM, f"Location error: {exc}")
        self._changed()

    def _spawn(self, coro: Awaitable[None]) -> None:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Session task failed", exc_info=task.exception())

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._subscription is not None:
            self._subscription.cancel()
            self._subscription = None
        self._listeners.clear()
        logger.info("Navigation session closed")
