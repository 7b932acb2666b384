import math
from typing import Optional, Tuple

EARTH_RADIUS_M = 6371000.0


def is_finite_number(value) -> bool:
    if value is None or isinstance(value, bool):
        return False
    try:
        return math.isfinite(float(value))
    except (TypeError, ValueError):
        return False


class GeofenceService:
    @staticmethod
    def calculate_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
        """
        Calculate the great circle distance between two points
        on the earth (specified in decimal degrees) using Haversine formula.
        Returns distance in meters. Callers reject non-finite input first.
        """
        lat1, lon1, lat2, lon2 = map(float, [lat1, lon1, lat2, lon2])

        phi1 = math.radians(lat1)
        phi2 = math.radians(lat2)
        dphi = math.radians(lat2 - lat1)
        dlambda = math.radians(lon2 - lon1)

        a = math.sin(dphi / 2.0)**2 + \
            math.cos(phi1) * math.cos(phi2) * \
            math.sin(dlambda / 2.0)**2

        # float error can push a a hair outside [0, 1] for antipodal points
        a = min(1.0, max(0.0, a))
        c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

        return EARTH_RADIUS_M * c

    @staticmethod
    def check_geofence(user_lat: Optional[float], user_lon: Optional[float],
                       site_lat: float, site_lon: float, radius_m: float) -> Tuple[bool, Optional[float]]:
        """
        Returns (is_inside, distance_m); distance is None when the
        reported point is missing or not a finite number.
        """
        if not (is_finite_number(user_lat) and is_finite_number(user_lon)):
            return False, None
        dist = GeofenceService.calculate_distance(user_lat, user_lon, site_lat, site_lon)
        return dist <= radius_m, dist
