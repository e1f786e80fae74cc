"""
Orbital Propagation and Coordinate Conversion

Thin layer over the sgp4 library plus the frame transforms the tracking
engine needs:

- OrbitalPropagator: TLE + instant -> TEME position/velocity, or PropagationError
- CoordinateConverter: TEME -> ECEF, ECEF -> geodetic, geodetic -> ECEF and
  ECEF + observer -> look angles (azimuth, elevation, range). Observers are
  skyfield WGS-84 positions and look angles come from skyfield altaz()

The sgp4 library owns the SGP4/SDP4 physics and the element validity rules;
this module only converts its output into ground-relative geometry.
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import lru_cache
from typing import Optional, Tuple

import numpy as np
from sgp4.api import Satrec, jday
from skyfield.api import load, wgs84
from skyfield.toposlib import ITRSPosition
from skyfield.units import Distance

from orbit_tracker.config import WGS84_A_KM, WGS84_E2
from orbit_tracker.tle_parser import TleRecord

logger = logging.getLogger(__name__)

ts = load.timescale()

# Topocentric geometry between two Earth-fixed points does not depend on the
# instant, so callers without one are evaluated at J2000
_J2000 = ts.tt_jd(2451545.0)


# SGP4 error code meanings
SGP4_ERROR_CODES = {
    0: "No error",
    1: "Mean eccentricity < 0.0 or > 1.0",
    2: "Mean motion < 0.0",
    3: "Perturbed eccentricity < 0.0 or > 1.0",
    4: "Semi-latus rectum < 0.0",
    5: "Satellite has decayed",
    6: "Satellite has decayed (low altitude)",
}


class PropagationError(RuntimeError):
    """The propagator produced no usable state for this TLE at this instant."""


@dataclass(frozen=True)
class StateVector:
    """TEME position (km) and velocity (km/s) at ``timestamp``."""

    timestamp: datetime
    position: np.ndarray
    velocity: np.ndarray


@dataclass(frozen=True)
class GeoPoint:
    latitude_deg: float
    longitude_deg: float
    altitude_km: float


@dataclass(frozen=True)
class OrbitalState:
    """Sub-satellite point and inertial speed of one object."""

    latitude_deg: float
    longitude_deg: float
    altitude_km: float
    speed_kms: float


def to_utc(dt: datetime) -> datetime:
    """Return ``dt`` as an aware UTC datetime; naive values are taken as UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def datetime_to_jd_fr(dt: datetime) -> Tuple[float, float]:
    """
    Convert datetime to Julian date and fraction.

    Args:
        dt: Datetime object (naive values are treated as UTC)

    Returns:
        Tuple of (julian_day, fraction)
    """
    dt = to_utc(dt)
    return jday(
        dt.year, dt.month, dt.day,
        dt.hour, dt.minute, dt.second + dt.microsecond / 1e6,
    )


def gmst(dt: datetime) -> float:
    """
    Greenwich Mean Sidereal Time (IAU-82) in radians.

    Args:
        dt: Instant (UT1 approximated by UTC)

    Returns:
        GMST angle in [0, 2*pi)
    """
    jd, fr = datetime_to_jd_fr(dt)
    T = (jd - 2451545.0 + fr) / 36525.0

    gmst_sec = (
        67310.54841 +
        (876600.0 * 3600.0 + 8640184.812866) * T +
        0.093104 * T * T -
        6.2e-6 * T * T * T
    )

    return (gmst_sec % 86400.0) * (2.0 * math.pi / 86400.0)


@lru_cache(maxsize=4096)
def _satrec(line1: str, line2: str) -> Satrec:
    return Satrec.twoline2rv(line1, line2)


class OrbitalPropagator:
    """
    SGP4/SDP4 propagation through the sgp4 library.

    Satrec objects are cached per (line1, line2) pair so a forward pass
    search does not re-parse the element set at every step.
    """

    def propagate(self, tle: TleRecord, when: datetime) -> StateVector:
        """
        Propagate a TLE to an instant.

        Args:
            tle: Element set
            when: Target time

        Returns:
            StateVector in the TEME frame

        Raises:
            PropagationError: If the lines cannot be parsed, SGP4 reports an
                error code, or the output is not finite
        """
        try:
            satellite = _satrec(tle.line1, tle.line2)
        except Exception as e:
            raise PropagationError(f"Unparsable TLE for {tle.name}: {e}") from e

        jd, fr = datetime_to_jd_fr(when)
        error, position, velocity = satellite.sgp4(jd, fr)

        if error != 0:
            message = SGP4_ERROR_CODES.get(error, f"Unknown error code {error}")
            raise PropagationError(f"SGP4 error {error} for {tle.name}: {message}")

        r = np.array(position, dtype=float)
        v = np.array(velocity, dtype=float)
        if not (np.all(np.isfinite(r)) and np.all(np.isfinite(v))):
            raise PropagationError(f"Non-finite SGP4 state for {tle.name}")

        return StateVector(to_utc(when), r, v)


class CoordinateConverter:
    """Frame transforms between TEME, ECEF, geodetic and topocentric coordinates."""

    def __init__(self, a: float = WGS84_A_KM, e2: float = WGS84_E2):
        self.a = a
        self.e2 = e2

    def eci_to_ecf(self, r_eci: np.ndarray, gmst_rad: float) -> np.ndarray:
        """
        Rotate an inertial (TEME) position into the Earth-fixed frame.

        Args:
            r_eci: Position vector in TEME coordinates [x, y, z] (km)
            gmst_rad: Greenwich sidereal angle (rad)

        Returns:
            Position vector in ECEF coordinates (km)
        """
        cos_g = math.cos(gmst_rad)
        sin_g = math.sin(gmst_rad)
        return np.array([
            cos_g * r_eci[0] + sin_g * r_eci[1],
            -sin_g * r_eci[0] + cos_g * r_eci[1],
            r_eci[2],
        ])

    def ecf_to_eci(self, r_ecf: np.ndarray, gmst_rad: float) -> np.ndarray:
        return self.eci_to_ecf(r_ecf, -gmst_rad)

    def ecf_to_geodetic(self, r_ecef: np.ndarray) -> GeoPoint:
        """
        Accurate ECEF to geodetic conversion using Bowring's method.

        Args:
            r_ecef: Position vector in ECEF coordinates [x, y, z] (km)

        Returns:
            GeoPoint with latitude/longitude in degrees and altitude in km
        """
        a = self.a
        e2 = self.e2
        b = a * math.sqrt(1.0 - e2)
        ep2 = e2 / (1.0 - e2)

        x, y, z = (float(c) for c in r_ecef)
        lon = math.atan2(y, x)
        p = math.sqrt(x * x + y * y)

        # Pole
        if p < 1e-10:
            lat = math.pi / 2.0 if z > 0 else -math.pi / 2.0
            return GeoPoint(math.degrees(lat), math.degrees(lon), abs(z) - b)

        theta = math.atan2(z * a, p * b)
        lat = theta
        for _ in range(5):
            sin_theta = math.sin(theta)
            cos_theta = math.cos(theta)

            lat = math.atan2(
                z + ep2 * b * sin_theta ** 3,
                p - e2 * a * cos_theta ** 3,
            )

            sin_lat = math.sin(lat)
            N = a / math.sqrt(1.0 - e2 * sin_lat * sin_lat)
            new_theta = math.atan2(z + e2 * N * sin_lat, p)
            if abs(new_theta - theta) < 1e-12:
                break
            theta = new_theta

        cos_lat = math.cos(lat)
        sin_lat = math.sin(lat)
        N = a / math.sqrt(1.0 - e2 * sin_lat * sin_lat)

        if cos_lat > 1e-10:
            alt = p / cos_lat - N
        else:
            alt = z / sin_lat - N * (1.0 - e2)

        return GeoPoint(math.degrees(lat), math.degrees(lon), alt)

    def eci_to_geodetic(self, r_eci: np.ndarray, gmst_rad: float) -> GeoPoint:
        return self.ecf_to_geodetic(self.eci_to_ecf(r_eci, gmst_rad))

    def observer(self, lat_deg: float, lon_deg: float, alt_km: float):
        """Ground observer on the WGS-84 ellipsoid as a skyfield GeographicPosition."""
        return wgs84.latlon(lat_deg, lon_deg, elevation_m=alt_km * 1000.0)

    def geodetic_to_ecf(self, lat_deg: float, lon_deg: float, alt_km: float) -> np.ndarray:
        """Observer position on the WGS-84 ellipsoid, in ECEF km."""
        return np.array(self.observer(lat_deg, lon_deg, alt_km).itrs_xyz.km, dtype=float)

    def local_vertical(self, lat_deg: float, lon_deg: float) -> np.ndarray:
        """Unit ellipsoid normal (geodetic up) at a point, in ECEF."""
        lat = math.radians(lat_deg)
        lon = math.radians(lon_deg)
        return np.array([
            math.cos(lat) * math.cos(lon),
            math.cos(lat) * math.sin(lon),
            math.sin(lat),
        ])

    def ecf_to_look_angles(self, lat_deg: float, lon_deg: float, alt_km: float,
                           r_sat_ecf: np.ndarray,
                           when: Optional[datetime] = None) -> Tuple[float, float, float]:
        """
        Topocentric look angles from an observer to a target.

        Args:
            lat_deg: Observer geodetic latitude (deg)
            lon_deg: Observer longitude (deg)
            alt_km: Observer height above the ellipsoid (km)
            r_sat_ecf: Target position in ECEF coordinates (km)
            when: Instant of ``r_sat_ecf`` (optional)

        Returns:
            Tuple of (azimuth_deg in [0, 360), elevation_deg, range_km)
        """
        site = self.observer(lat_deg, lon_deg, alt_km)
        r_sat_ecf = np.asarray(r_sat_ecf, dtype=float)
        if np.array_equal(r_sat_ecf, site.itrs_xyz.km):
            return 0.0, 90.0, 0.0

        target = ITRSPosition(Distance(km=r_sat_ecf))
        t = ts.from_datetime(to_utc(when)) if when is not None else _J2000

        alt, az, distance = (target - site).at(t).altaz()

        return float(az.degrees) % 360.0, float(alt.degrees), float(distance.km)


def orbital_state(tle: TleRecord, when: Optional[datetime] = None,
                  propagator: Optional[OrbitalPropagator] = None,
                  converter: Optional[CoordinateConverter] = None) -> Optional[OrbitalState]:
    """
    Sub-satellite point and speed of one object.

    Args:
        tle: Element set
        when: Target time (default: now)
        propagator: Propagator to use (default: a new OrbitalPropagator)
        converter: Converter to use (default: a new CoordinateConverter)

    Returns:
        OrbitalState, or None if propagation fails
    """
    when = when or datetime.now(timezone.utc)
    propagator = propagator or OrbitalPropagator()
    converter = converter or CoordinateConverter()

    try:
        state = propagator.propagate(tle, when)
    except PropagationError as e:
        logger.warning(f"Orbital state unavailable: {e}")
        return None

    point = converter.eci_to_geodetic(state.position, gmst(when))

    return OrbitalState(
        latitude_deg=point.latitude_deg,
        longitude_deg=point.longitude_deg,
        altitude_km=point.altitude_km,
        speed_kms=float(np.linalg.norm(state.velocity)),
    )
