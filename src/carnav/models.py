from __future__ import annotations

import datetime as dt
import enum
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple, Union


@dataclass(frozen=True)
class Coordinate:
    latitude: float
    longitude: float

    def __post_init__(self) -> None:
        if not -90.0 <= self.latitude <= 90.0:
            raise ValueError(f"latitude out of range: {self.latitude}")
        if not -180.0 <= self.longitude <= 180.0:
            raise ValueError(f"longitude out of range: {self.longitude}")

    def to_dict(self) -> Dict[str, float]:
        return {"lat": self.latitude, "lon": self.longitude}


@dataclass(frozen=True)
class Fix:
    """One Position Source sample."""

    coordinate: Coordinate
    accuracy_m: Optional[float] = None
    timestamp: dt.datetime = field(default_factory=lambda: dt.datetime.now(dt.timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            **self.coordinate.to_dict(),
            "accuracy_m": self.accuracy_m,
            "ts": self.timestamp.isoformat(),
        }


@dataclass(frozen=True)
class RouteResult:
    points: Tuple[Coordinate, ...]
    distance_m: float
    duration_s: float

    def __post_init__(self) -> None:
        if self.distance_m < 0 or self.duration_s < 0:
            raise ValueError("route distance and duration must be non-negative")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "points": [[p.latitude, p.longitude] for p in self.points],
            "distance_m": self.distance_m,
            "duration_s": self.duration_s,
        }


class NavMode(str, enum.Enum):
    IDLE = "idle"
    SEARCHING = "searching"
    PREVIEWING = "previewing"
    NAVIGATING = "navigating"


class ErrorKind(str, enum.Enum):
    PERMISSION_DENIED = "permission_denied"
    LOCATION_STREAM = "location_stream"
    LOOKUP = "lookup"
    ROUTE = "route"
    NO_CANDIDATES = "no_candidates"


@dataclass(frozen=True)
class ErrorNotice:
    kind: ErrorKind
    message: str

    def to_dict(self) -> Dict[str, str]:
        return {"kind": self.kind.value, "message": self.message}


# --- Camera commands: one-shot values executed by the presentation layer ---

@dataclass(frozen=True)
class Recenter:
    point: Coordinate
    zoom: Optional[float] = None  # None keeps the current zoom

    def to_dict(self) -> Dict[str, Any]:
        return {"command": "recenter", "point": self.point.to_dict(), "zoom": self.zoom}


@dataclass(frozen=True)
class FitBounds:
    first: Coordinate
    second: Coordinate
    padding_px: int = 100

    def to_dict(self) -> Dict[str, Any]:
        return {
            "command": "fit_bounds",
            "points": [self.first.to_dict(), self.second.to_dict()],
            "padding_px": self.padding_px,
        }


@dataclass(frozen=True)
class ZoomTo:
    point: Coordinate
    zoom: float

    def to_dict(self) -> Dict[str, Any]:
        return {"command": "zoom_to", "point": self.point.to_dict(), "zoom": self.zoom}


CameraCommand = Union[Recenter, FitBounds, ZoomTo]


@dataclass(frozen=True)
class SessionSnapshot:
    current_position: Optional[Coordinate]
    destination: Optional[Coordinate]
    route: Optional[RouteResult]
    tracking: bool
    started: bool
    searching: bool
    loading: bool
    permission_denied: bool
    last_error: Optional[ErrorNotice]
    distance_text: Optional[str]
    duration_text: Optional[str]

    @property
    def mode(self) -> NavMode:
        if self.searching:
            return NavMode.SEARCHING
        if self.destination is None:
            return NavMode.IDLE
        if self.started:
            return NavMode.NAVIGATING
        return NavMode.PREVIEWING

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mode": self.mode.value,
            "current_position": self.current_position.to_dict() if self.current_position else None,
            "destination": self.destination.to_dict() if self.destination else None,
            "route": self.route.to_dict() if self.route else None,
            "tracking": self.tracking,
            "started": self.started,
            "searching": self.searching,
            "loading": self.loading,
            "permission_denied": self.permission_denied,
            "last_error": self.last_error.to_dict() if self.last_error else None,
            "distance_text": self.distance_text,
            "duration_text": self.duration_text,
        }


@dataclass(frozen=True)
class StateChanged:
    snapshot: SessionSnapshot


SessionEvent = Union[StateChanged, Recenter, FitBounds, ZoomTo, ErrorNotice]
