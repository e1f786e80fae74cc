"""
Live Catalog Tracking

Two polling loops on one asyncio event loop:

- CatalogTracker re-reads the active catalog source (about once per second),
  skips all work when the text is byte-identical to the last parsed text,
  and otherwise parses it, diffs the tracked ids and publishes the new set.
- PositionSampler re-propagates the latest published element sets at a
  sub-second cadence, whether or not the catalog changed.

The loops share state only through SnapshotChannel values that are replaced
wholesale, so a reader always sees one complete snapshot.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, FrozenSet, Generic, Iterable, List, Optional, Tuple, TypeVar

from orbit_tracker.catalog import FetchError, fetch_catalog_text
from orbit_tracker.config import config
from orbit_tracker.propagation import (
    CoordinateConverter,
    GeoPoint,
    OrbitalPropagator,
    PropagationError,
    gmst,
)
from orbit_tracker.tle_parser import TleRecord, parse_tle_entries

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SnapshotChannel(Generic[T]):
    """Single-slot holder of the latest published value, with subscribers."""

    def __init__(self):
        self._value: Optional[T] = None
        self._subscribers: List[Callable[[T], None]] = []

    @property
    def latest(self) -> Optional[T]:
        return self._value

    def subscribe(self, callback: Callable[[T], None]) -> Callable[[], None]:
        """Register ``callback``; returns a function that unregisters it."""
        self._subscribers.append(callback)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def publish(self, value: T) -> None:
        self._value = value
        for callback in list(self._subscribers):
            try:
                callback(value)
            except Exception:
                logger.exception(f"Subscriber {callback!r} failed")


@dataclass(frozen=True)
class TrackedObject:
    id: str
    name: str
    position: Optional[GeoPoint]
    tle: TleRecord


@dataclass(frozen=True)
class CatalogUpdate:
    """One published catalog change."""

    objects: Tuple[TrackedObject, ...]
    added: FrozenSet[str]
    removed: FrozenSet[str]
    skipped: int = 0


def diff_ids(old: Iterable[str], new: Iterable[str]) -> Tuple[FrozenSet[str], FrozenSet[str]]:
    """
    Set difference between two id snapshots.

    Returns:
        Tuple of (added, removed) where added = new - old and removed = old - new
    """
    old, new = frozenset(old), frozenset(new)
    return new - old, old - new


def unique_by_id(records: Iterable[TleRecord]) -> Tuple[TleRecord, ...]:
    """Keep the first record for each catalog id; later duplicates are dropped."""
    seen = set()
    unique = []
    for record in records:
        catalog_id = record.catalog_id
        if catalog_id in seen:
            logger.warning(f"Duplicate catalog id {catalog_id} ({record.name}), keeping first entry")
            continue
        seen.add(catalog_id)
        unique.append(record)
    return tuple(unique)


def track_objects(records: Iterable[TleRecord], when: Optional[datetime] = None,
                  propagator: Optional[OrbitalPropagator] = None,
                  converter: Optional[CoordinateConverter] = None) -> Tuple[TrackedObject, ...]:
    """
    Propagate every record to ``when``.

    A record that fails to propagate gets ``position=None``; the batch continues.
    """
    when = when or datetime.now(timezone.utc)
    propagator = propagator or OrbitalPropagator()
    converter = converter or CoordinateConverter()
    theta = gmst(when)

    objects = []
    for record in records:
        try:
            state = propagator.propagate(record, when)
            position = converter.eci_to_geodetic(state.position, theta)
        except PropagationError as e:
            logger.debug(str(e))
            position = None
        objects.append(TrackedObject(record.catalog_id, record.name, position, record))

    return tuple(objects)


async def _wait_or_stop(stop_event: asyncio.Event, interval: float) -> None:
    try:
        await asyncio.wait_for(stop_event.wait(), timeout=interval)
    except asyncio.TimeoutError:
        pass


class CatalogTracker:
    """
    Polls the active catalog source and publishes tracked-object changes.

    Args:
        source: URL or path of the active catalog; swap it with ``set_source``
        fetcher: Callable returning the raw text of a source (blocking; run in
            the loop's executor)
        on_update: Called with each CatalogUpdate
        on_error: Called with the FetchError of a failed tick
        interval: Seconds between polls
    """

    def __init__(self, source: str = config.SOURCE,
                 fetcher: Callable[[str], str] = fetch_catalog_text,
                 on_update: Optional[Callable[[CatalogUpdate], None]] = None,
                 on_error: Optional[Callable[[FetchError], None]] = None,
                 interval: float = config.CATALOG_INTERVAL,
                 propagator: Optional[OrbitalPropagator] = None,
                 converter: Optional[CoordinateConverter] = None):
        self._source = source
        self.fetcher = fetcher
        self.on_error = on_error
        self.interval = interval
        self.propagator = propagator or OrbitalPropagator()
        self.converter = converter or CoordinateConverter()

        self.tles: SnapshotChannel[Tuple[TleRecord, ...]] = SnapshotChannel()
        self.updates: SnapshotChannel[CatalogUpdate] = SnapshotChannel()
        if on_update is not None:
            self.updates.subscribe(on_update)

        self._tracked_ids: FrozenSet[str] = frozenset()
        self._last_text: Optional[str] = None
        self._rejected_text: Optional[str] = None

    @property
    def source(self) -> str:
        return self._source

    def set_source(self, source: str) -> None:
        """Point the tracker at another catalog; takes effect on the next tick."""
        logger.info(f"Active TLE source set to: {source}")
        self._source = source

    @property
    def tracked_ids(self) -> FrozenSet[str]:
        return self._tracked_ids

    def _report(self, error: FetchError) -> None:
        logger.error(f"Failed to load TLE catalog: {error}")
        if self.on_error is not None:
            self.on_error(error)

    async def refresh(self) -> Optional[CatalogUpdate]:
        """
        Run one polling tick.

        Returns:
            The published CatalogUpdate, or None when the text was unchanged
            or the tick failed
        """
        source = self._source
        loop = asyncio.get_running_loop()
        try:
            text = await loop.run_in_executor(None, self.fetcher, source)
        except FetchError as e:
            self._report(e)
            return None
        except Exception as e:
            self._report(FetchError(f"Failed to fetch {source}: {e}"))
            return None

        if text == self._last_text or text == self._rejected_text:
            return None

        parsed = parse_tle_entries(text)
        records = unique_by_id(parsed.records)

        if not records and parsed.skipped:
            self._rejected_text = text
            self._report(FetchError(
                f"No valid TLE entries in {source} ({len(parsed.skipped)} skipped)"
            ))
            return None

        objects = track_objects(records, propagator=self.propagator, converter=self.converter)
        new_ids = frozenset(obj.id for obj in objects)
        added, removed = diff_ids(self._tracked_ids, new_ids)

        if added or removed:
            logger.info(f"Updating satellites: {len(added)} added, {len(removed)} removed")

        self._last_text = text
        self._rejected_text = None
        self._tracked_ids = new_ids
        self.tles.publish(records)

        update = CatalogUpdate(objects, added, removed, len(parsed.skipped))
        self.updates.publish(update)
        return update

    async def run(self, stop_event: asyncio.Event) -> None:
        while not stop_event.is_set():
            await self.refresh()
            await _wait_or_stop(stop_event, self.interval)


class PositionSampler:
    """
    Re-propagates the latest published element sets on every tick.

    Args:
        tles: Channel carrying the current element sets (CatalogTracker.tles)
        on_sample: Called with each fresh tuple of TrackedObjects
        interval: Seconds between samples
    """

    def __init__(self, tles: SnapshotChannel,
                 on_sample: Optional[Callable[[Tuple[TrackedObject, ...]], None]] = None,
                 interval: float = config.POSITION_INTERVAL,
                 propagator: Optional[OrbitalPropagator] = None,
                 converter: Optional[CoordinateConverter] = None):
        self.tles = tles
        self.interval = interval
        self.propagator = propagator or OrbitalPropagator()
        self.converter = converter or CoordinateConverter()
        self.positions: SnapshotChannel[Tuple[TrackedObject, ...]] = SnapshotChannel()
        if on_sample is not None:
            self.positions.subscribe(on_sample)

    def sample(self, when: Optional[datetime] = None) -> Optional[Tuple[TrackedObject, ...]]:
        """Propagate the current snapshot to ``when``; no-op before the first catalog."""
        records = self.tles.latest
        if records is None:
            return None

        objects = track_objects(records, when, self.propagator, self.converter)
        self.positions.publish(objects)
        return objects

    async def run(self, stop_event: asyncio.Event) -> None:
        while not stop_event.is_set():
            self.sample()
            await _wait_or_stop(stop_event, self.interval)


class LiveTracker:
    """CatalogTracker and PositionSampler wired together and run side by side."""

    def __init__(self, source: str = config.SOURCE,
                 fetcher: Callable[[str], str] = fetch_catalog_text,
                 catalog_interval: float = config.CATALOG_INTERVAL,
                 position_interval: float = config.POSITION_INTERVAL):
        self.catalog = CatalogTracker(source, fetcher=fetcher, interval=catalog_interval)
        self.sampler = PositionSampler(
            self.catalog.tles,
            interval=position_interval,
            propagator=self.catalog.propagator,
            converter=self.catalog.converter,
        )

    def set_source(self, source: str) -> None:
        self.catalog.set_source(source)

    @property
    def positions(self) -> SnapshotChannel:
        return self.sampler.positions

    async def run(self, stop_event: asyncio.Event) -> None:
        await asyncio.gather(
            self.catalog.run(stop_event),
            self.sampler.run(stop_event),
        )
