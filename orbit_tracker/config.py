"""
Tracker Configuration and Constants

This module contains the physical constants, the fallback TLE and the
runtime settings used throughout the tracking engine.

Constants:
    The WGS-84 ellipsoid used for geodetic output. SGP4 itself runs on the
    WGS-72 constants built into the sgp4 library, and observer positions use
    skyfield's wgs84 model.

Runtime settings:
    TrackerConfig reads its values from environment variables so a deployment
    can tune polling cadences without code changes.

Fallback TLE Data:
    Hardcoded ISS TLE data for demonstrations and testing when live data is unavailable.

    IMPORTANT: Update this TLE data periodically for accuracy.
    - Low Earth Orbit (LEO) satellites: Update weekly
    - Medium Earth Orbit (MEO): Update monthly
    - Geostationary (GEO): Update quarterly

References:
    Vallado, D. A., Crawford, P., Hujsak, R., & Kelso, T. S. (2006).
    Revisiting Spacetrack Report #3. AIAA 2006-6753.
"""

import os
from typing import Dict, Any

# WGS-84 ellipsoid, used for geodetic output
WGS84_A_KM: float = 6378.137
WGS84_F: float = 1.0 / 298.257223563
WGS84_E2: float = 2.0 * WGS84_F - WGS84_F * WGS84_F

# Fallback ISS TLE for demonstrations and testing
FALLBACK_ISS_TLE: Dict[str, Any] = {
    'name': 'ISS (ZARYA)',
    'norad_id': 25544,
    'line1': '1 25544U 98067A   23259.57580000  .00012022  00000-0  21844-3 0  9995',
    'line2': '2 25544  51.6416 220.9944 0004263 122.0101 312.2755 15.49541986415598',
    'epoch': '2023-09-16T13:49:09Z',
}


class TrackerConfig:
    """Polling cadences and search parameters, overridable from the environment."""

    SOURCE = os.getenv('ORBIT_TRACKER_SOURCE', 'data/active_tles.txt')
    CATALOG_INTERVAL = float(os.getenv('ORBIT_TRACKER_CATALOG_INTERVAL', '1.0'))
    POSITION_INTERVAL = float(os.getenv('ORBIT_TRACKER_POSITION_INTERVAL', '0.1'))
    PASS_INTERVAL = float(os.getenv('ORBIT_TRACKER_PASS_INTERVAL', '10.0'))
    PASS_HORIZON_SECONDS = int(os.getenv('ORBIT_TRACKER_PASS_HORIZON', '86400'))
    PASS_STEP_SECONDS = int(os.getenv('ORBIT_TRACKER_PASS_STEP', '30'))
    ELEVATION_THRESHOLD_DEG = float(os.getenv('ORBIT_TRACKER_ELEVATION_THRESHOLD', '5.0'))
    REQUEST_TIMEOUT = float(os.getenv('ORBIT_TRACKER_REQUEST_TIMEOUT', '30'))
    CELESTRAK_BASE = os.getenv('CELESTRAK_API_BASE', 'https://celestrak.org')


config = TrackerConfig()
