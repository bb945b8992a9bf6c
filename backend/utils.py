"""
Utility functions for Taaja News API
"""
import math
import re
import time
from urllib.parse import urlparse

from unidecode import unidecode

import config

EARTH_RADIUS_M = 6371008.8


def timestamp_suffix():
    """Millisecond timestamp used to de-duplicate slugs"""
    return str(int(time.time() * 1000))


def isoformat(value):
    return value.isoformat() if value else None


def slugify(text, transliterate=True):
    """
    Convert text to a URL-friendly slug.

    Args:
        text: Text to convert
        transliterate: Map non-ASCII letters to ASCII first (హైదరాబాద్ -> haidarabad)

    Returns:
        str: Lowercase slug with single hyphens, or '' if nothing survives
    """
    if not text:
        return ''

    text = str(text)
    if transliterate:
        text = unidecode(text)

    text = text.lower().strip()
    text = re.sub(r'\s+', '-', text)
    text = re.sub(r'[^a-z0-9_\-]+', '', text)
    text = re.sub(r'-{2,}', '-', text)
    return text.strip('-')


def parse_bool(value, default=None):
    """Interpret query-string booleans ('true', '1', 'yes')"""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ('true', '1', 'yes', 'on')


def parse_int(value, default, minimum=None, maximum=None):
    try:
        number = int(value)
    except (TypeError, ValueError):
        number = default
    if minimum is not None:
        number = max(minimum, number)
    if maximum is not None:
        number = min(maximum, number)
    return number


def parse_float(value):
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def get_pagination(args, default_limit=None):
    """
    Read page/limit from request args.

    Returns:
        tuple: (page, limit) clamped to sane bounds
    """
    page = parse_int(args.get('page'), 1, minimum=1)
    limit = parse_int(
        args.get('limit'),
        default_limit or config.DEFAULT_PAGE_SIZE,
        minimum=1,
        maximum=config.MAX_PAGE_SIZE,
    )
    return page, limit


def pagination_meta(page, limit, total):
    return {
        'page': page,
        'limit': limit,
        'total': total,
        'pages': math.ceil(total / limit) if limit else 0,
    }


def hostname_from_url(url):
    """Extract hostname from URL, 'unknown' if it cannot be parsed"""
    try:
        host = urlparse(url).hostname
    except (ValueError, AttributeError):
        return 'unknown'
    return host or 'unknown'


# ==================== Geospatial ====================

def haversine_m(lng1, lat1, lng2, lat2):
    """
    Great-circle distance between two [lng, lat] points.

    Returns:
        float: Distance in meters
    """
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.asin(min(1.0, math.sqrt(a)))


def bounding_box(lng, lat, distance_m):
    """
    Lat/lng box that contains every point within distance_m of (lng, lat).
    Used to prefilter rows in SQL before the exact haversine check.

    Returns:
        tuple: (min_lng, min_lat, max_lng, max_lat)
    """
    d_lat = math.degrees(distance_m / EARTH_RADIUS_M)
    cos_lat = math.cos(math.radians(lat))
    if cos_lat < 1e-6:
        d_lng = 180.0
    else:
        d_lng = min(180.0, math.degrees(distance_m / (EARTH_RADIUS_M * cos_lat)))
    return lng - d_lng, lat - d_lat, lng + d_lng, lat + d_lat


def _point_in_ring(lng, lat, ring):
    inside = False
    count = len(ring)
    if count < 3:
        return False
    j = count - 1
    for i in range(count):
        xi, yi = ring[i][0], ring[i][1]
        xj, yj = ring[j][0], ring[j][1]
        if (yi > lat) != (yj > lat):
            x_cross = (xj - xi) * (lat - yi) / (yj - yi) + xi
            if lng < x_cross:
                inside = not inside
        j = i
    return inside


def point_in_polygon(lng, lat, polygon):
    """
    Ray-casting containment test for a GeoJSON Polygon.

    Args:
        polygon: GeoJSON dict {'type': 'Polygon', 'coordinates': [outer, *holes]}
                 or the bare coordinates list

    Returns:
        bool: True if the point is inside the outer ring and outside every hole
    """
    if not polygon:
        return False
    rings = polygon.get('coordinates') if isinstance(polygon, dict) else polygon
    if not rings:
        return False

    if not _point_in_ring(lng, lat, rings[0]):
        return False
    return not any(_point_in_ring(lng, lat, hole) for hole in rings[1:])


def geojson_point(lng, lat):
    if lng is None or lat is None:
        return None
    return {'type': 'Point', 'coordinates': [lng, lat]}
