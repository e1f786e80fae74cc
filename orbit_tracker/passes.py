"""
Pass Prediction

Bounded forward time search for the next visibility window of one object
over one ground station.

The search steps forward from ``from_time`` at a fixed resolution and tracks
whether the object is above the horizon. The first step above the horizon is
the rise, the first later step at or below it is the set, and the search
stops there. No interpolation is done between steps, so rise and set carry up
to one step of error.

PassPredictionMonitor re-runs the prediction on a fixed interval for the
currently selected object and station, and drops results computed for inputs
that have since been replaced.
"""

import asyncio
import enum
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional
from zoneinfo import ZoneInfo

from timezonefinder import TimezoneFinder

from orbit_tracker.config import config
from orbit_tracker.propagation import to_utc
from orbit_tracker.tle_parser import TleRecord
from orbit_tracker.visibility import GroundStation, LookAngles, VisibilityEngine

logger = logging.getLogger(__name__)

_timezone_finder: Optional[TimezoneFinder] = None


def _finder() -> TimezoneFinder:
    global _timezone_finder
    if _timezone_finder is None:
        _timezone_finder = TimezoneFinder()
    return _timezone_finder


def format_local_label(dt: datetime) -> str:
    """Short US-style date and time, e.g. ``10/19/26, 6:33 PM``."""
    hour = dt.hour % 12 or 12
    suffix = "AM" if dt.hour < 12 else "PM"
    return f"{dt.month}/{dt.day}/{dt:%y}, {hour}:{dt:%M} {suffix}"


def local_start_label(start_time: datetime, station: GroundStation) -> Optional[str]:
    """
    Format ``start_time`` in the station's local time zone.

    Returns:
        Label string, or None when the time zone cannot be determined
    """
    try:
        zone_name = _finder().timezone_at(lng=station.lon, lat=station.lat)
        if zone_name is None:
            logger.warning(f"No time zone found for station at {station.lat}, {station.lon}")
            return None
        local = to_utc(start_time).astimezone(ZoneInfo(zone_name))
    except Exception as e:
        logger.warning(f"Time zone lookup failed for {station.lat}, {station.lon}: {e}")
        return None

    return format_local_label(local)


class PassStatus(enum.Enum):
    FOUND = "found"
    INCOMPLETE = "incomplete"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class PassWindow:
    start_time: datetime
    local_start_label: Optional[str]
    duration_seconds: float
    end_time: datetime
    max_elevation_deg: float


@dataclass(frozen=True)
class PassSearch:
    """
    Result of one forward search.

    ``start_time`` is set for both FOUND and INCOMPLETE; ``window`` only for FOUND.
    """

    status: PassStatus
    window: Optional[PassWindow] = None
    start_time: Optional[datetime] = None


@dataclass(frozen=True)
class GroundTrackResult:
    """Current look angles plus the next pass, as shown for a selected object."""

    look_angles: LookAngles
    next_pass: Optional[PassWindow] = None

    @property
    def next_pass_start(self) -> Optional[datetime]:
        return self.next_pass.start_time if self.next_pass else None

    @property
    def next_pass_start_local(self) -> Optional[str]:
        return self.next_pass.local_start_label if self.next_pass else None

    @property
    def next_pass_duration(self) -> Optional[float]:
        return self.next_pass.duration_seconds if self.next_pass else None


class PassPredictor:
    """
    Time-stepped rise/set search.

    Args:
        engine: VisibilityEngine providing elevations
        label_fn: Maps (start_time, station) to a local-time label
    """

    def __init__(self, engine: Optional[VisibilityEngine] = None,
                 label_fn: Callable[[datetime, GroundStation], Optional[str]] = local_start_label):
        self.engine = engine or VisibilityEngine()
        self.label_fn = label_fn

    def search(self, tle: TleRecord, station: GroundStation, from_time: datetime,
               horizon_seconds: float = config.PASS_HORIZON_SECONDS,
               step_seconds: float = config.PASS_STEP_SECONDS) -> PassSearch:
        """
        Search forward for the next complete pass.

        Args:
            tle: Element set of the object
            station: Observer
            from_time: Search start; a pass already in progress here starts at ``from_time``
            horizon_seconds: Length of the search window
            step_seconds: Sampling resolution

        Returns:
            PassSearch with status FOUND, INCOMPLETE (rose, did not set within
            the horizon) or NOT_FOUND
        """
        if step_seconds <= 0:
            raise ValueError(f"step_seconds must be positive, got {step_seconds}")

        from_time = to_utc(from_time)
        max_steps = int(horizon_seconds // step_seconds)
        step = timedelta(seconds=step_seconds)

        in_pass = False
        pass_start: Optional[datetime] = None
        peak_elevation = float("-inf")

        for i in range(max_steps):
            when = from_time + i * step
            angles = self.engine.look_angles(tle, station, when)
            if angles is None:
                continue

            elevation = angles.elevation_deg

            if elevation > 0 and not in_pass:
                in_pass = True
                pass_start = when
                peak_elevation = elevation
            elif elevation > 0:
                peak_elevation = max(peak_elevation, elevation)
            elif in_pass:
                window = PassWindow(
                    start_time=pass_start,
                    local_start_label=self.label_fn(pass_start, station),
                    duration_seconds=(when - pass_start).total_seconds(),
                    end_time=when,
                    max_elevation_deg=peak_elevation,
                )
                return PassSearch(PassStatus.FOUND, window, pass_start)

        if in_pass:
            logger.info(
                f"Pass of {tle.name} starting {pass_start.isoformat()} "
                f"does not end within {horizon_seconds}s"
            )
            return PassSearch(PassStatus.INCOMPLETE, None, pass_start)

        return PassSearch(PassStatus.NOT_FOUND)

    def next_pass(self, tle: TleRecord, station: GroundStation, from_time: datetime,
                  horizon_seconds: float = config.PASS_HORIZON_SECONDS,
                  step_seconds: float = config.PASS_STEP_SECONDS) -> Optional[PassWindow]:
        """Next complete pass, or None if none completes within the horizon."""
        return self.search(tle, station, from_time, horizon_seconds, step_seconds).window

    def ground_track(self, tle: TleRecord, station: GroundStation,
                     when: Optional[datetime] = None) -> Optional[GroundTrackResult]:
        """
        Look angles at ``when`` plus the next pass searched from ``when``.

        Returns:
            GroundTrackResult, or None if the object cannot be propagated at ``when``
        """
        when = when or datetime.now(timezone.utc)
        angles = self.engine.look_angles(tle, station, when)
        if angles is None:
            logger.warning(f"Ground track unavailable for {tle.name}")
            return None

        return GroundTrackResult(angles, self.next_pass(tle, station, when))


class PassPredictionMonitor:
    """
    Keeps the ground-track result of the selected object fresh.

    ``set_inputs`` replaces the object/station pair; ``run`` recomputes on a
    fixed interval and hands each result to ``on_result``. A computation whose
    inputs were replaced while it ran is discarded.
    """

    def __init__(self, predictor: Optional[PassPredictor] = None,
                 on_result: Optional[Callable[[Optional[GroundTrackResult]], None]] = None,
                 interval: float = config.PASS_INTERVAL):
        self.predictor = predictor or PassPredictor()
        self.on_result = on_result
        self.interval = interval
        self.result: Optional[GroundTrackResult] = None
        self._tle: Optional[TleRecord] = None
        self._station: Optional[GroundStation] = None
        self._generation = 0
        self._inputs_changed = asyncio.Event()

    @property
    def generation(self) -> int:
        return self._generation

    def set_inputs(self, tle: Optional[TleRecord], station: Optional[GroundStation]) -> None:
        if tle == self._tle and station == self._station:
            return

        self._tle = tle
        self._station = station
        self._generation += 1
        self._inputs_changed.set()

        if tle is None or station is None:
            logger.debug("Pass prediction idle: missing object or station")
            self._publish(None)

    def _publish(self, result: Optional[GroundTrackResult]) -> None:
        self.result = result
        if self.on_result is not None:
            self.on_result(result)

    async def update(self) -> Optional[GroundTrackResult]:
        """
        Recompute once for the current inputs.

        Returns:
            The published result, or None if inputs are missing or were
            superseded during the computation
        """
        tle, station, generation = self._tle, self._station, self._generation
        if tle is None or station is None:
            return None

        loop = asyncio.get_running_loop()
        result = await loop.run_in_executor(
            None, self.predictor.ground_track, tle, station, datetime.now(timezone.utc)
        )

        if generation != self._generation:
            logger.debug(f"Discarding stale pass prediction for {tle.name}")
            return None

        if result is not None:
            self._publish(result)
        return result

    async def run(self, stop_event: asyncio.Event) -> None:
        while not stop_event.is_set():
            self._inputs_changed.clear()
            await self.update()

            waiters = [
                asyncio.ensure_future(stop_event.wait()),
                asyncio.ensure_future(self._inputs_changed.wait()),
            ]
            try:
                await asyncio.wait(waiters, timeout=self.interval,
                                   return_when=asyncio.FIRST_COMPLETED)
            finally:
                for waiter in waiters:
                    waiter.cancel()
