"""
Live Orbital Tracking Package

Tracks a continuously refreshed TLE catalog and predicts ground-station passes.

Modules:
    tle_parser: Tolerant parsing of multi-line TLE catalog text
    propagation: SGP4 propagation (sgp4 library) and frame transforms
    catalog: Catalog source fetching, NORAD lookups and collection index
    tracker: Catalog polling loop, position sampling loop and snapshots
    visibility: Look angles and line-of-sight tests against a ground station
    passes: Forward pass search and periodic pass prediction

References:
    Vallado, D. A., Crawford, P., Hujsak, R., & Kelso, T. S. (2006).
    Revisiting Spacetrack Report #3. AIAA 2006-6753.
"""

from orbit_tracker.catalog import FetchError
from orbit_tracker.passes import PassPredictor, PassWindow
from orbit_tracker.propagation import PropagationError
from orbit_tracker.tle_parser import TleRecord, parse_tle_text
from orbit_tracker.tracker import CatalogTracker, LiveTracker, PositionSampler
from orbit_tracker.visibility import GroundStation, LookAngles, VisibilityEngine

__version__ = "1.0.0"

__all__ = [
    "CatalogTracker",
    "FetchError",
    "GroundStation",
    "LiveTracker",
    "LookAngles",
    "PassPredictor",
    "PassWindow",
    "PositionSampler",
    "PropagationError",
    "TleRecord",
    "VisibilityEngine",
    "parse_tle_text",
]
