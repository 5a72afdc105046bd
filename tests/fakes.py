"""Fakes for the navigation collaborators.

The fakes stand in for the GPS receiver, geocoder and router so session
tests run without hardware or network. Geocoder and router calls can be
held open with `asyncio.Event` gates to simulate slow or out-of-order
responses.
"""

from __future__ import annotations

import asyncio
from collections import deque
from typing import Any, Callable, Deque, Dict, List, Optional, Tuple, Union

from carnav.models import Coordinate, Fix, RouteResult, SessionEvent, StateChanged


class FakeSubscription:
    def __init__(self, on_fix: Callable[[Fix], None], on_error: Callable[[Exception], None]) -> None:
        self.on_fix = on_fix
        self.on_error = on_error
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class FakePositionSource:
    def __init__(self, granted: bool = True) -> None:
        self.granted = granted
        self.permission_requests = 0
        self.subscriptions: List[FakeSubscription] = []

    async def request_permission(self) -> bool:
        self.permission_requests += 1
        return self.granted

    def subscribe(self, on_fix: Callable[[Fix], None], on_error: Callable[[Exception], None]) -> FakeSubscription:
        sub = FakeSubscription(on_fix, on_error)
        self.subscriptions.append(sub)
        return sub

    def emit(self, fix: Fix) -> None:
        for sub in self.subscriptions:
            if not sub.cancelled:
                sub.on_fix(fix)

    def fail(self, exc: Exception) -> None:
        for sub in self.subscriptions:
            if not sub.cancelled:
                sub.on_error(exc)


GeocodeOutcome = Union[List[Coordinate], Exception]


class FakeGeocoder:
    def __init__(self) -> None:
        self.results: Dict[str, GeocodeOutcome] = {}
        self.gates: Dict[str, asyncio.Event] = {}
        self.calls: List[str] = []

    async def resolve(self, address: str) -> List[Coordinate]:
        self.calls.append(address)
        gate = self.gates.get(address)
        if gate is not None:
            await gate.wait()
        result = self.results.get(address, [])
        if isinstance(result, Exception):
            raise result
        return list(result)


RouteOutcome = Union[RouteResult, Exception]


class FakeRouter:
    """Returns queued outcomes in call order, then `default`."""

    def __init__(self, default: Optional[RouteOutcome] = None) -> None:
        self.default: Optional[RouteOutcome] = default
        self.outcomes: Deque[RouteOutcome] = deque()
        self.gates: Deque[Optional[asyncio.Event]] = deque()
        self.calls: List[Tuple[Coordinate, Coordinate]] = []

    async def route(self, origin: Coordinate, destination: Coordinate) -> RouteResult:
        self.calls.append((origin, destination))
        outcome = self.outcomes.popleft() if self.outcomes else self.default
        gate = self.gates.popleft() if self.gates else None
        if gate is not None:
            await gate.wait()
        if outcome is None:
            raise AssertionError("FakeRouter has no outcome configured")
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class EventRecorder:
    def __init__(self) -> None:
        self.events: List[SessionEvent] = []

    def __call__(self, event: SessionEvent) -> None:
        self.events.append(event)

    def of_type(self, cls: Any) -> List[Any]:
        return [e for e in self.events if isinstance(e, cls)]

    @property
    def states(self) -> List[Any]:
        return [e.snapshot for e in self.events if isinstance(e, StateChanged)]

    def clear(self) -> None:
        self.events.clear()


def make_route(distance_m: float = 1200.0, duration_s: float = 300.0, *points: Tuple[float, float]) -> RouteResult:
    pts = points or ((40.0, -73.0), (40.01, -73.01))
    return RouteResult(
        points=tuple(Coordinate(lat, lon) for lat, lon in pts),
        distance_m=distance_m,
        duration_s=duration_s,
    )


def fix_at(lat: float, lon: float) -> Fix:
    return Fix(coordinate=Coordinate(lat, lon), accuracy_m=3.0)


async def settle(rounds: int = 10) -> None:
    """Let spawned tasks that never truly block run to completion."""
    for _ in range(rounds):
        await asyncio.sleep(0)


