"""
Live Tracking Demonstration

This script demonstrates the key capabilities of the orbit tracker:
- Tolerant parsing of a TLE catalog
- The catalog polling loop and the position sampling loop running together
- Look angles from a ground station to a selected object
- Forward search for the next pass, with a local-time label

Usage:
    python demo.py [--source PATH_OR_URL] [--seconds N] [--lat LAT --lon LON] [--verbose]

Arguments:
    --source: Catalog file or URL (default: fallback ISS TLE written to a temp file)
    --seconds: How long to run the live loops
    --lat/--lon/--alt: Ground station (default: Darmstadt, Germany)
    --verbose: Enable debug logging
"""

import argparse
import asyncio
import logging
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Tuple

from logging_config import configure_logging, get_logger
from orbit_tracker.config import FALLBACK_ISS_TLE
from orbit_tracker.passes import PassPredictor
from orbit_tracker.tle_parser import TleRecord
from orbit_tracker.tracker import CatalogUpdate, LiveTracker, TrackedObject
from orbit_tracker.visibility import GroundStation

logger = get_logger(__name__)


def write_fallback_catalog() -> str:
    """Write the fallback ISS TLE to a temporary catalog file."""
    directory = Path(tempfile.mkdtemp(prefix="orbit_tracker_"))
    path = directory / "active_tles.txt"
    path.write_text(
        "\n".join([FALLBACK_ISS_TLE["name"], FALLBACK_ISS_TLE["line1"], FALLBACK_ISS_TLE["line2"]]),
        encoding="utf-8",
    )
    return str(path)


def log_update(update: CatalogUpdate) -> None:
    located = sum(1 for obj in update.objects if obj.position is not None)
    logger.info(
        f"Catalog: {len(update.objects)} objects ({located} located), "
        f"{len(update.added)} added, {len(update.removed)} removed, {update.skipped} skipped"
    )


def log_sample(objects: Tuple[TrackedObject, ...]) -> None:
    for obj in objects[:3]:
        if obj.position is None:
            logger.debug(f"{obj.id} {obj.name}: no position")
            continue
        logger.debug(
            f"{obj.id} {obj.name}: {obj.position.latitude_deg:.3f}, "
            f"{obj.position.longitude_deg:.3f}, {obj.position.altitude_km:.1f} km"
        )


async def run_live(tracker: LiveTracker, seconds: float) -> None:
    stop_event = asyncio.Event()
    task = asyncio.create_task(tracker.run(stop_event))
    await asyncio.sleep(seconds)
    stop_event.set()
    await task


def demonstrate_pass_prediction(tle: TleRecord, station: GroundStation) -> None:
    predictor = PassPredictor()
    now = datetime.now(timezone.utc)

    result = predictor.ground_track(tle, station, now)
    if result is None:
        logger.warning(f"Cannot propagate {tle.name} at {now.isoformat()}")
        return

    angles = result.look_angles
    logger.info(f"Look angles for {tle.name}:")
    logger.info(f"  Azimuth:   {angles.azimuth_deg:.2f} degrees")
    logger.info(f"  Elevation: {angles.elevation_deg:.2f} degrees")
    logger.info(f"  Range:     {angles.range_km:.1f} km")
    logger.info(f"  Visible:   {angles.visible}")

    if result.next_pass is None:
        logger.info("No complete pass within the search horizon")
        return

    window = result.next_pass
    logger.info(f"Next pass starts {window.start_time.isoformat()} "
                f"({window.local_start_label or 'local time unavailable'})")
    logger.info(f"  Duration: {window.duration_seconds:.0f} s, "
                f"max elevation {window.max_elevation_deg:.1f} degrees")


def main() -> None:
    """Main demonstration entry point."""
    parser = argparse.ArgumentParser(description="Live Orbital Tracking Demonstration")
    parser.add_argument("--source", help="Catalog file path or URL")
    parser.add_argument("--seconds", type=float, default=3.0, help="Live loop duration")
    parser.add_argument("--lat", type=float, default=49.8728, help="Station latitude (deg)")
    parser.add_argument("--lon", type=float, default=8.6512, help="Station longitude (deg)")
    parser.add_argument("--alt", type=float, default=0.0, help="Station altitude (m)")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")

    args = parser.parse_args()

    configure_logging(
        level=logging.INFO,
        package_level=logging.DEBUG if args.verbose else None,
    )

    logger.info("Live Orbital Tracking Demonstration")
    logger.info("=" * 60)

    source = args.source or write_fallback_catalog()
    tracker = LiveTracker(source)
    tracker.catalog.updates.subscribe(log_update)
    tracker.positions.subscribe(log_sample)

    asyncio.run(run_live(tracker, args.seconds))

    records = tracker.catalog.tles.latest
    if not records:
        logger.error(f"No TLEs loaded from {source}")
        return

    logger.info("")
    demonstrate_pass_prediction(records[0], GroundStation(args.lat, args.lon, args.alt))

    logger.info("=" * 60)
    logger.info("Demonstration complete")


if __name__ == "__main__":
    main()
