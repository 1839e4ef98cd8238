"""Great-circle distance and coordinate parsing."""
import math
from typing import Iterable, Optional, Tuple

EARTH_RADIUS_KM = 6371.0

Point = Tuple[float, float]


def _valid(point) -> bool:
    if point is None:
        return False
    try:
        lat, lng = point
    except (TypeError, ValueError):
        return False
    if lat is None or lng is None:
        return False
    try:
        lat, lng = float(lat), float(lng)
    except (TypeError, ValueError):
        return False
    if not (math.isfinite(lat) and math.isfinite(lng)):
        return False
    return -90.0 <= lat <= 90.0 and -180.0 <= lng <= 180.0


def haversine_distance(point_a: Optional[Point], point_b: Optional[Point]) -> float:
    """Calculate great-circle distance (km) between two (lat, lng) points.

    Returns NaN when either point is missing or out of range; callers treat
    NaN as incomparable.
    """
    if not (_valid(point_a) and _valid(point_b)):
        return math.nan
    lat1, lon1 = float(point_a[0]), float(point_a[1])
    lat2, lon2 = float(point_b[0]), float(point_b[1])
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lon2 - lon1)
    haversine_a = (
        math.sin(dphi / 2) ** 2 +
        math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    )
    return 2 * EARTH_RADIUS_KM * math.atan2(
        math.sqrt(haversine_a), math.sqrt(1 - haversine_a)
    )


def _to_float(value) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(str(value).strip())
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def parse_location(text) -> Optional[Point]:
    """Parse a "lat,lng" string; extra trailing parts are ignored. Anything unparseable yields None."""
    """Parse a "lat,lng" string. Anything unparseable yields None."""
    if not isinstance(text, str) or "," not in text:
        return None
    parts = text.split(",")
    if len(parts) < 2:
        return None
    lat, lng = _to_float(parts[0]), _to_float(parts[1])
    if lat is None or lng is None:
        return None
    point = (lat, lng)
    return point if _valid(point) else None


def hospital_coordinates(profile: dict) -> Tuple[Optional[float], Optional[float]]:
    """Resolve a hospital's coordinate from its registration profile.

    The combined ``hospitalLocation`` field wins when it holds a comma;
    otherwise separate ``lat``/``lng`` fields are used.
    """
    combined = profile.get("hospitalLocation")
    if isinstance(combined, str) and "," in combined:
        point = parse_location(combined)
    elif profile.get("lat") not in (None, "") and profile.get("lng") not in (None, ""):
        point = (_to_float(profile.get("lat")), _to_float(profile.get("lng")))
        if not _valid(point):
            point = None
    else:
        point = None
    if point is None:
        return None, None
    return point


def nearest(origin: Optional[Point], candidates: Iterable[Tuple[object, Optional[Point]]]):
    """Linear scan for the candidate closest to ``origin``.

    ``candidates`` yields ``(item, point)`` pairs. Ties keep the first
    candidate seen; points with no comparable distance are skipped.
    Returns ``(item, distance_km)`` or ``(None, None)``.
    """
    if not _valid(origin):
        return None, None
    best, best_distance = None, math.inf
    for item, point in candidates:
        dist = haversine_distance(origin, point)
        if math.isnan(dist):
            continue
        if dist < best_distance:
            best, best_distance = item, dist
    if best is None:
        return None, None
    return best, best_distance
