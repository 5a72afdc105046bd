from __future__ import annotations

import asyncio
import logging
import os
from typing import Callable, List, Optional

import serial
import pynmea2

from ...errors import LocationStreamError
from ...event_bus import EventBus, TOPIC_GPS
from ...geo import haversine_m
from ...models import Coordinate, Fix

logger = logging.getLogger(__name__)

# Rough user-equivalent range error used to turn HDOP into metres
UERE_M = 5.0

FixCallback = Callable[[Fix], None]
ErrorCallback = Callable[[Exception], None]


def fix_from_sentence(msg: pynmea2.NMEASentence) -> Optional[Fix]:
    """Extract a position fix from a GGA or RMC sentence, or None if it carries no valid fix."""
    if isinstance(msg, pynmea2.GGA):
        if not msg.gps_qual or not msg.lat:
            return None
        accuracy: Optional[float] = None
        try:
            accuracy = float(msg.horizontal_dil) * UERE_M
        except (TypeError, ValueError):
            pass
        coordinate = Coordinate(msg.latitude, msg.longitude)
        return Fix(coordinate=coordinate, accuracy_m=accuracy)
    if isinstance(msg, pynmea2.RMC):
        if msg.status != "A" or not msg.lat:
            return None
        return Fix(coordinate=Coordinate(msg.latitude, msg.longitude))
    return None


class MinDistanceFilter:
    def __init__(self, min_distance_m: float) -> None:
        self._min_distance_m = min_distance_m
        self._last: Optional[Coordinate] = None

    def accept(self, fix: Fix) -> bool:
        if self._last is not None and haversine_m(self._last, fix.coordinate) < self._min_distance_m:
            return False
        self._last = fix.coordinate
        return True

    def reset(self) -> None:
        self._last = None


class GPSSubscription:
    def __init__(self, reader: "GPSReader", on_fix: FixCallback, on_error: ErrorCallback) -> None:
        self._reader = reader
        self.on_fix = on_fix
        self.on_error = on_error
        self.active = True

    def cancel(self) -> None:
        if self.active:
            self.active = False
            self._reader._remove(self)


class GPSReader:
    """NMEA serial GPS used as the navigation Position Source.

    - `request_permission()` grants access when the serial device is present and readable
    - `subscribe(on_fix, on_error)` starts the reader on first use
    - Fixes closer than `min_distance_m` to the last delivered one are dropped
    - Every delivered fix is also published on `sensor.gps`
    """

    def __init__(self, serial_port: str, baud: int, bus_events: EventBus, min_distance_m: float = 5.0) -> None:
        self._port = serial_port
        self._baud = baud
        self._events = bus_events
        self._filter = MinDistanceFilter(min_distance_m)
        self._subscriptions: List[GPSSubscription] = []
        self._task: asyncio.Task | None = None
        self._stopping = False

    async def request_permission(self) -> bool:
        granted = os.path.exists(self._port) and os.access(self._port, os.R_OK | os.W_OK)
        if not granted:
            logger.warning("GPS device %s is not accessible", self._port)
        return granted

    def subscribe(self, on_fix: FixCallback, on_error: ErrorCallback) -> GPSSubscription:
        sub = GPSSubscription(self, on_fix, on_error)
        self._subscriptions.append(sub)
        self.start()
        return sub

    def _remove(self, sub: GPSSubscription) -> None:
        if sub in self._subscriptions:
            self._subscriptions.remove(sub)

    def start(self) -> None:
        if self._task is None:
            self._stopping = False
            self._filter.reset()
            self._task = asyncio.create_task(self._run(), name="gps-reader")

    async def stop(self) -> None:
        self._stopping = True
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def _deliver_fix(self, fix: Fix) -> None:
        if not self._filter.accept(fix):
            return
        for sub in list(self._subscriptions):
            try:
                sub.on_fix(fix)
            except Exception:
                logger.exception("GPS fix subscriber failed")
        await self._events.publish(TOPIC_GPS, fix.to_dict())

    def _deliver_error(self, exc: Exception) -> None:
        for sub in list(self._subscriptions):
            try:
                sub.on_error(exc)
            except Exception:
                logger.exception("GPS error subscriber failed")

    def _read_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        try:
            with serial.Serial(self._port, self._baud, timeout=1) as ser:
                logger.info("GPS opened on %s @ %s", self._port, self._baud)
                while not self._stopping:
                    line = ser.readline().decode(errors="ignore").strip()
                    if not line:
                        continue
                    try:
                        msg = pynmea2.parse(line, check=True)
                    except pynmea2.ParseError:
                        continue
                    try:
                        fix = fix_from_sentence(msg)
                    except (ValueError, AttributeError, TypeError) as exc:
                        logger.debug("Skipping unusable NMEA sentence %r: %s", line, exc)
                        continue
                    if fix is None:
                        continue
                    asyncio.run_coroutine_threadsafe(self._deliver_fix(fix), loop)
        except (serial.SerialException, OSError) as exc:
            logger.warning("GPS reader error: %s", exc)
            loop.call_soon_threadsafe(self._deliver_error, LocationStreamError(str(exc)))

    async def _run(self) -> None:
        # Run blocking reader in a thread
        loop = asyncio.get_running_loop()
        while not self._stopping:
            try:
                await loop.run_in_executor(None, self._read_loop, loop)
            except Exception as exc:
                logger.exception("GPS read loop crashed; reopening")
                self._deliver_error(LocationStreamError(str(exc)))
            await asyncio.sleep(1)
