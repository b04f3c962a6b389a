"""Input validation for boundary operations.

Checks run before a request leaves the process, so bad coordinates never
reach the backend and are never retried.
"""

from __future__ import annotations

import math
from typing import Any

from boundaries.lib.constants import (
    LAT_MAX,
    LAT_MIN,
    LNG_MAX,
    LNG_MIN,
    MAX_ZOOM,
    MIN_ZOOM,
)
from boundaries.lib.errors import InvalidInputError
from boundaries.lib.models import BBox

__all__ = [
    "validate_bbox",
    "validate_coordinates",
    "validate_tile",
    "validate_zoom",
]


def _as_number(value: Any, field: str) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise InvalidInputError(f"{field} must be a number", field=field, value=value)
    if math.isnan(number) or math.isinf(number):
        raise InvalidInputError(f"{field} must be finite", field=field, value=value)
    return number


def validate_coordinates(lat: Any, lng: Any) -> None:
    """Require -90 <= lat <= 90 and -180 <= lng <= 180."""
    lat = _as_number(lat, "lat")
    lng = _as_number(lng, "lng")
    if not LAT_MIN <= lat <= LAT_MAX:
        raise InvalidInputError(
            f"Latitude must be between {LAT_MIN:g} and {LAT_MAX:g}",
            field="lat",
            value=lat,
        )
    if not LNG_MIN <= lng <= LNG_MAX:
        raise InvalidInputError(
            f"Longitude must be between {LNG_MIN:g} and {LNG_MAX:g}",
            field="lng",
            value=lng,
        )


def validate_bbox(bbox: BBox) -> None:
    """Require every corner in range and south <= north.

    West may exceed east: boxes crossing the antimeridian are legal.
    """
    validate_coordinates(bbox.south, bbox.west)
    validate_coordinates(bbox.north, bbox.east)
    if bbox.south > bbox.north:
        raise InvalidInputError(
            "Bounding box south edge must not exceed north edge",
            field="bbox",
            value=f"south={bbox.south}, north={bbox.north}",
        )


def validate_zoom(zoom: Any) -> float:
    zoom = _as_number(zoom, "zoom")
    if not MIN_ZOOM <= zoom <= MAX_ZOOM:
        raise InvalidInputError(
            f"Zoom must be between {MIN_ZOOM} and {MAX_ZOOM}",
            field="zoom",
            value=zoom,
        )
    return zoom


def validate_tile(z: int, x: int, y: int) -> None:
    """Require a valid slippy-map tile address: 0 <= x, y < 2**z."""
    if not isinstance(z, int) or not MIN_ZOOM <= z <= MAX_ZOOM:
        raise InvalidInputError(
            f"Tile zoom must be an integer between {MIN_ZOOM} and {MAX_ZOOM}",
            field="z",
            value=z,
        )
    limit = 2**z
    for name, value in (("x", x), ("y", y)):
        if not isinstance(value, int) or not 0 <= value < limit:
            raise InvalidInputError(
                f"Tile {name} must be between 0 and {limit - 1} at zoom {z}",
                field=name,
                value=value,
            )
