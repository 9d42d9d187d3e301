from __future__ import annotations

from dataclasses import dataclass
from math import asin, cos, isfinite, radians, sin, sqrt

from workforce.models import Company
from workforce.settings import get_settings

EARTH_RADIUS_M = 6371000.0


@dataclass(frozen=True, slots=True)
class GeofenceCheck:
    distance_m: float
    radius_m: int

    @property
    def outside(self) -> bool:
        return self.distance_m > self.radius_m


def distance_in_meters(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    lat1_rad = radians(lat1)
    lon1_rad = radians(lon1)
    lat2_rad = radians(lat2)
    lon2_rad = radians(lon2)

    delta_lat = lat2_rad - lat1_rad
    delta_lon = lon2_rad - lon1_rad

    a = sin(delta_lat / 2) ** 2 + cos(lat1_rad) * cos(lat2_rad) * sin(delta_lon / 2) ** 2
    # Rounding can push a slightly above 1 for antipodal points.
    c = 2 * asin(sqrt(min(1.0, a)))
    return EARTH_RADIUS_M * c


def is_finite_coordinate(lat: float | None, lon: float | None) -> bool:
    if lat is None or lon is None:
        return False
    try:
        return isfinite(float(lat)) and isfinite(float(lon))
    except (TypeError, ValueError):
        return False


def has_office_location(company: Company | None) -> bool:
    if company is None:
        return False
    return is_finite_coordinate(company.office_latitude, company.office_longitude)


def company_radius_m(company: Company) -> int:
    return int(company.allowed_radius or get_settings().default_geofence_radius_m)


def evaluate_geofence(
    company: Company | None,
    lat: float | None,
    lon: float | None,
) -> GeofenceCheck | None:
    """Distance from the company office, or None when the check does not apply."""
    if not is_finite_coordinate(lat, lon) or not has_office_location(company):
        return None

    distance_value = distance_in_meters(
        float(lat),  # type: ignore[arg-type]
        float(lon),  # type: ignore[arg-type]
        float(company.office_latitude),  # type: ignore[union-attr, arg-type]
        float(company.office_longitude),  # type: ignore[union-attr, arg-type]
    )
    return GeofenceCheck(distance_m=distance_value, radius_m=company_radius_m(company))  # type: ignore[arg-type]
