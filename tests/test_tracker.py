"""
Tests for the catalog polling loop and the position sampler

Run with:
    python -m pytest tests/test_tracker.py -v
"""

import asyncio
import unittest
from datetime import datetime, timezone

from orbit_tracker.catalog import FetchError
from orbit_tracker.propagation import GeoPoint, OrbitalPropagator, PropagationError
from orbit_tracker.tle_parser import TleRecord
from orbit_tracker.tracker import (
    CatalogTracker,
    LiveTracker,
    PositionSampler,
    SnapshotChannel,
    diff_ids,
    track_objects,
    unique_by_id,
)

ISS = (
    "ISS (ZARYA)",
    "1 25544U 98067A   23259.57580000  .00012022  00000-0  21844-3 0  9995",
    "2 25544  51.6416 220.9944 0004263 122.0101 312.2755 15.49541986415598",
)
NOAA = (
    "NOAA 19",
    "1 33591U 09005A   23259.50000000  .00000100  00000-0  80000-4 0  9991",
    "2 33591  99.1900 250.0000 0014000  90.0000 270.0000 14.12500000750000",
)
ISS_EPOCH = datetime(2023, 9, 16, 13, 49, 9, tzinfo=timezone.utc)


def catalog(*entries):
    return "\n".join(line for entry in entries for line in entry) + "\n"


class FakeSource:
    """Maps source names to catalog text; a missing name fails like an unreachable URL."""

    def __init__(self, texts):
        self.texts = dict(texts)
        self.requested = []

    def __call__(self, source):
        self.requested.append(source)
        if source not in self.texts:
            raise FetchError(f"404 for {source}")
        return self.texts[source]


class FlakyPropagator(OrbitalPropagator):
    """Fails for objects named DEAD, propagates everything else normally."""

    def propagate(self, tle, when):
        if tle.name == "DEAD":
            raise PropagationError("Satellite has decayed")
        return super().propagate(tle, when)


class TestDiffIds(unittest.TestCase):

    def test_added_and_removed(self):
        added, removed = diff_ids({"1", "2", "3"}, {"2", "3", "4", "5"})
        self.assertEqual(added, {"4", "5"})
        self.assertEqual(removed, {"1"})

    def test_diff_reconstructs_new_set(self):
        cases = [
            (set(), {"a"}),
            ({"a"}, set()),
            ({"a", "b"}, {"a", "b"}),
            ({"a", "b", "c"}, {"c", "d"}),
        ]
        for old, new in cases:
            added, removed = diff_ids(old, new)
            self.assertFalse(added & removed)
            self.assertEqual((old | added) - removed, new)


class TestHelpers(unittest.TestCase):

    def test_first_duplicate_wins(self):
        first = TleRecord("ISS A", ISS[1], ISS[2])
        second = TleRecord("ISS B", ISS[1], ISS[2])

        self.assertEqual(unique_by_id([first, second, TleRecord(*NOAA)]),
                         (first, TleRecord(*NOAA)))

    def test_failure_only_affects_one_object(self):
        records = [TleRecord(*ISS), TleRecord("DEAD", NOAA[1], NOAA[2])]

        objects = track_objects(records, ISS_EPOCH, propagator=FlakyPropagator())

        self.assertIsInstance(objects[0].position, GeoPoint)
        self.assertEqual(objects[0].id, "25544")
        self.assertIsNone(objects[1].position)
        self.assertEqual(objects[1].id, "33591")

    def test_snapshot_channel(self):
        channel = SnapshotChannel()
        seen = []
        unsubscribe = channel.subscribe(seen.append)

        self.assertIsNone(channel.latest)
        channel.publish((1, 2))
        unsubscribe()
        channel.publish((3,))

        self.assertEqual(channel.latest, (3,))
        self.assertEqual(seen, [(1, 2)])

    def test_failing_subscriber_does_not_block_others(self):
        channel = SnapshotChannel()
        seen = []

        def broken(value):
            raise RuntimeError("boom")

        channel.subscribe(broken)
        channel.subscribe(seen.append)
        with self.assertLogs("orbit_tracker.tracker", level="ERROR"):
            channel.publish("value")

        self.assertEqual(seen, ["value"])


class TestCatalogTracker(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self.updates = []
        self.errors = []
        self.source = FakeSource({"active": catalog(ISS, NOAA)})
        self.tracker = CatalogTracker(
            "active",
            fetcher=self.source,
            on_update=self.updates.append,
            on_error=self.errors.append,
        )

    async def test_first_load_adds_everything(self):
        update = await self.tracker.refresh()

        self.assertEqual(update.added, {"25544", "33591"})
        self.assertEqual(update.removed, frozenset())
        self.assertEqual([obj.id for obj in update.objects], ["25544", "33591"])
        self.assertEqual(self.tracker.tracked_ids, {"25544", "33591"})
        self.assertEqual(self.tracker.tles.latest, (TleRecord(*ISS), TleRecord(*NOAA)))
        self.assertEqual(self.updates, [update])

    async def test_identical_text_is_not_republished(self):
        await self.tracker.refresh()
        second = await self.tracker.refresh()

        self.assertIsNone(second)
        self.assertEqual(len(self.updates), 1)
        self.assertEqual(len(self.source.requested), 2)

    async def test_removed_object(self):
        await self.tracker.refresh()
        self.source.texts["active"] = catalog(NOAA)

        update = await self.tracker.refresh()

        self.assertEqual(update.removed, {"25544"})
        self.assertEqual(update.added, frozenset())
        self.assertEqual(self.tracker.tracked_ids, {"33591"})

    async def test_changed_text_with_same_ids_republishes(self):
        await self.tracker.refresh()
        renamed = ("ISS", ISS[1], ISS[2])
        self.source.texts["active"] = catalog(renamed, NOAA)

        update = await self.tracker.refresh()

        self.assertIsNotNone(update)
        self.assertFalse(update.added or update.removed)
        self.assertEqual(update.objects[0].name, "ISS")
        self.assertEqual(len(self.updates), 2)

    async def test_fetch_failure_keeps_last_catalog(self):
        await self.tracker.refresh()
        del self.source.texts["active"]

        with self.assertLogs("orbit_tracker.tracker", level="ERROR"):
            update = await self.tracker.refresh()

        self.assertIsNone(update)
        self.assertEqual(len(self.errors), 1)
        self.assertIsInstance(self.errors[0], FetchError)
        self.assertEqual(self.tracker.tracked_ids, {"25544", "33591"})
        self.assertEqual(len(self.tracker.tles.latest), 2)

    async def test_unexpected_fetch_exception_is_reported(self):
        def exploding(source):
            raise OSError("connection reset")

        self.tracker.fetcher = exploding
        with self.assertLogs("orbit_tracker.tracker", level="ERROR"):
            self.assertIsNone(await self.tracker.refresh())

        self.assertIsInstance(self.errors[0], FetchError)

    async def test_unparsable_catalog_keeps_last_catalog(self):
        await self.tracker.refresh()
        self.source.texts["active"] = "<html>\n<body>Service unavailable</body>\n</html>\n"

        with self.assertLogs("orbit_tracker.tracker", level="ERROR"):
            self.assertIsNone(await self.tracker.refresh())
        self.assertIsNone(await self.tracker.refresh())

        self.assertEqual(len(self.errors), 1)
        self.assertEqual(self.tracker.tracked_ids, {"25544", "33591"})

    async def test_malformed_entries_are_counted(self):
        self.source.texts["active"] = catalog(ISS) + "JUNK\n" + catalog(NOAA)

        update = await self.tracker.refresh()

        self.assertEqual(update.skipped, 1)
        self.assertEqual(len(update.objects), 2)

    async def test_set_source_switches_catalog(self):
        self.source.texts["starlink"] = catalog(NOAA)
        await self.tracker.refresh()

        self.tracker.set_source("starlink")
        update = await self.tracker.refresh()

        self.assertEqual(self.source.requested, ["active", "starlink"])
        self.assertEqual(update.removed, {"25544"})

    async def test_empty_catalog_removes_everything(self):
        await self.tracker.refresh()
        self.source.texts["active"] = ""

        update = await self.tracker.refresh()

        self.assertEqual(update.removed, {"25544", "33591"})
        self.assertEqual(update.objects, ())

    async def test_run_polls_until_stopped(self):
        stop_event = asyncio.Event()
        self.tracker.interval = 0.01
        self.tracker.updates.subscribe(lambda update: stop_event.set())

        await asyncio.wait_for(self.tracker.run(stop_event), timeout=5)

        self.assertEqual(len(self.updates), 1)


class TestPositionSampler(unittest.IsolatedAsyncioTestCase):

    def test_no_catalog_is_noop(self):
        published = []
        sampler = PositionSampler(SnapshotChannel(), on_sample=published.append)

        self.assertIsNone(sampler.sample())
        self.assertEqual(published, [])

    def test_samples_latest_snapshot(self):
        channel = SnapshotChannel()
        published = []
        sampler = PositionSampler(channel, on_sample=published.append, propagator=FlakyPropagator())
        channel.publish((TleRecord(*ISS), TleRecord("DEAD", NOAA[1], NOAA[2])))

        objects = sampler.sample(ISS_EPOCH)

        self.assertEqual(published, [objects])
        self.assertIsNotNone(objects[0].position)
        self.assertIsNone(objects[1].position)

    def test_positions_move_between_samples(self):
        channel = SnapshotChannel()
        sampler = PositionSampler(channel)
        channel.publish((TleRecord(*ISS),))

        first = sampler.sample(ISS_EPOCH)[0].position
        later = sampler.sample(ISS_EPOCH.replace(minute=59))[0].position

        self.assertNotEqual(first, later)

    def test_empty_catalog_clears_positions(self):
        channel = SnapshotChannel()
        published = []
        sampler = PositionSampler(channel, on_sample=published.append)
        channel.publish((TleRecord(*ISS),))
        sampler.sample(ISS_EPOCH)

        channel.publish(())
        objects = sampler.sample(ISS_EPOCH)

        self.assertEqual(objects, ())
        self.assertEqual(published[-1], ())
        self.assertEqual(sampler.positions.latest, ())

    async def test_live_tracker_drops_positions_when_source_empties(self):
        source = FakeSource({"active": catalog(ISS)})
        tracker = LiveTracker("active", fetcher=source)

        await tracker.catalog.refresh()
        self.assertEqual([obj.id for obj in tracker.sampler.sample(ISS_EPOCH)], ["25544"])

        source.texts["active"] = ""
        update = await tracker.catalog.refresh()
        tracker.sampler.sample(ISS_EPOCH)

        self.assertEqual(update.objects, ())
        self.assertEqual(tracker.positions.latest, ())

    async def test_live_tracker_runs_both_loops(self):
        source = FakeSource({"active": catalog(ISS, NOAA)})
        tracker = LiveTracker("active", fetcher=source,
                              catalog_interval=0.05, position_interval=0.01)
        samples = []
        stop_event = asyncio.Event()

        def on_sample(objects):
            samples.append(objects)
            if len(samples) >= 3:
                stop_event.set()

        tracker.positions.subscribe(on_sample)
        await asyncio.wait_for(tracker.run(stop_event), timeout=5)

        self.assertGreaterEqual(len(samples), 3)
        self.assertEqual({obj.id for obj in samples[-1]}, {"25544", "33591"})
        self.assertEqual(set(source.requested), {"active"})


if __name__ == "__main__":
    unittest.main()
