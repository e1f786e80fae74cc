"""
Ground-Station Visibility

Look angles from a ground station to a tracked object, and a cheaper
line-of-sight test used for map highlighting.

The two answers are intentionally different: ``look_angles`` is the
authoritative topocentric computation (visible when elevation > 0), while
``is_visible`` only checks the angle between the station's local vertical
and the line of sight against ``90 - elevation_threshold``. Near the horizon
they may disagree.
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

import numpy as np

from orbit_tracker.config import config
from orbit_tracker.propagation import (
    CoordinateConverter,
    OrbitalPropagator,
    PropagationError,
    gmst,
)
from orbit_tracker.tle_parser import TleRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GroundStation:
    """Observer location: latitude/longitude in degrees, altitude in meters."""

    lat: float
    lon: float
    alt: float = 0.0

    def __post_init__(self):
        if not -90.0 <= self.lat <= 90.0:
            raise ValueError(f"Latitude out of range: {self.lat}")
        if not -180.0 <= self.lon <= 180.0:
            raise ValueError(f"Longitude out of range: {self.lon}")

    @property
    def alt_km(self) -> float:
        return self.alt / 1000.0


@dataclass(frozen=True)
class LookAngles:
    azimuth_deg: float
    elevation_deg: float
    range_km: float

    @property
    def visible(self) -> bool:
        return self.elevation_deg > 0.0


class VisibilityEngine:
    """
    Look-angle and line-of-sight computations against a ground station.

    Args:
        propagator: TLE propagator (default: OrbitalPropagator)
        converter: Frame converter (default: CoordinateConverter)
        elevation_threshold_deg: Minimum elevation for ``is_visible``
    """

    def __init__(self, propagator: Optional[OrbitalPropagator] = None,
                 converter: Optional[CoordinateConverter] = None,
                 elevation_threshold_deg: float = config.ELEVATION_THRESHOLD_DEG):
        self.propagator = propagator or OrbitalPropagator()
        self.converter = converter or CoordinateConverter()
        self.elevation_threshold_deg = elevation_threshold_deg

    def look_angles(self, tle: TleRecord, station: GroundStation,
                    when: datetime) -> Optional[LookAngles]:
        """
        Azimuth, elevation and range from ``station`` to the object at ``when``.

        Returns:
            LookAngles (negative elevations included), or None if
            propagation fails at ``when``
        """
        try:
            state = self.propagator.propagate(tle, when)
        except PropagationError as e:
            logger.debug(f"No look angles for {tle.name} at {when.isoformat()}: {e}")
            return None

        r_ecf = self.converter.eci_to_ecf(state.position, gmst(when))
        azimuth, elevation, range_km = self.converter.ecf_to_look_angles(
            station.lat, station.lon, station.alt_km, r_ecf, when
        )

        return LookAngles(azimuth, elevation, range_km)

    def is_visible(self, sat_eci: np.ndarray, station: GroundStation, when: datetime,
                   elevation_threshold_deg: Optional[float] = None) -> bool:
        """
        Coarse line-of-sight test for visual cueing.

        Args:
            sat_eci: Satellite position in the inertial frame (km)
            station: Observer
            when: Instant of ``sat_eci``, used to place the station in the inertial frame
            elevation_threshold_deg: Overrides the engine threshold

        Returns:
            True when the zenith angle of the satellite is below 90 - threshold
        """
        threshold = (
            self.elevation_threshold_deg
            if elevation_threshold_deg is None
            else elevation_threshold_deg
        )
        theta = gmst(when)

        station_eci = self.converter.ecf_to_eci(
            self.converter.geodetic_to_ecf(station.lat, station.lon, station.alt_km), theta
        )
        vertical_eci = self.converter.ecf_to_eci(
            self.converter.local_vertical(station.lat, station.lon), theta
        )

        line_of_sight = np.asarray(sat_eci, dtype=float) - station_eci
        distance = np.linalg.norm(line_of_sight)
        if distance == 0.0:
            return True

        cos_zenith = float(np.dot(line_of_sight, vertical_eci) / distance)
        zenith_deg = math.degrees(math.acos(max(-1.0, min(1.0, cos_zenith))))

        return zenith_deg < 90.0 - threshold
