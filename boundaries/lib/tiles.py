"""Vector-tile delivery.

Tiles are an alternative to bounding-box delivery. Requests go through the
same RequestCoordinator, so deduplication, retry and caching apply
identically.
"""

from __future__ import annotations

import asyncio
import logging
import math
from typing import Dict, List, Optional, Tuple, Union

from boundaries.lib.backend import SpatialBackend
from boundaries.lib.constants import COUNTRY_TO_STATE_ZOOM, MAX_ZOOM
from boundaries.lib.coordinator import RequestCoordinator
from boundaries.lib.errors import classify_error
from boundaries.lib.models import BBox, RegionKind
from boundaries.lib.validate import validate_bbox, validate_coordinates, validate_tile

logger = logging.getLogger(__name__)

__all__ = ["TileService", "kind_for_zoom", "lat_lng_to_tile", "tiles_for_bbox"]

TileAddress = Tuple[int, int, int]
KindOrAuto = Union[RegionKind, str]

# Web Mercator is undefined at the poles
MERCATOR_MAX_LAT = 85.05112878


def kind_for_zoom(z: float) -> RegionKind:
    """Country tiles up to the country/state switch zoom, state tiles beyond."""
    return RegionKind.COUNTRY if z <= COUNTRY_TO_STATE_ZOOM else RegionKind.STATE


def lat_lng_to_tile(lat: float, lng: float, zoom: int) -> Tuple[int, int]:
    """Return the (x, y) slippy-map tile containing a point.

    Example:
        >>> lat_lng_to_tile(0.0, 0.0, 1)
        (1, 1)
    """
    validate_coordinates(lat, lng)
    n = 2**zoom
    lat = max(-MERCATOR_MAX_LAT, min(MERCATOR_MAX_LAT, lat))
    lat_rad = math.radians(lat)

    x = int((lng + 180.0) / 360.0 * n)
    y = int((1.0 - math.log(math.tan(lat_rad) + 1.0 / math.cos(lat_rad)) / math.pi) / 2.0 * n)
    return min(max(x, 0), n - 1), min(max(y, 0), n - 1)


def tiles_for_bbox(bbox: BBox, zoom: float) -> List[TileAddress]:
    """List the tiles covering ``bbox`` at ``zoom`` (truncated to an integer).

    A box whose west edge exceeds its east edge crosses the antimeridian and
    wraps around.
    """
    validate_bbox(bbox)
    z = max(0, min(int(zoom), MAX_ZOOM))
    n = 2**z

    x_min, y_min = lat_lng_to_tile(bbox.north, bbox.west, z)
    x_max, y_max = lat_lng_to_tile(bbox.south, bbox.east, z)

    if x_min <= x_max:
        xs = list(range(x_min, x_max + 1))
    else:
        xs = list(range(x_min, n)) + list(range(0, x_max + 1))

    return [(z, x, y) for x in xs for y in range(y_min, y_max + 1)]


class TileService:
    """Fetches vector tiles through a RequestCoordinator.

    ``kind`` may be a RegionKind or ``"auto"``, which picks country tiles at
    low zoom and state tiles above.
    """

    def __init__(self, backend: SpatialBackend, coordinator: RequestCoordinator) -> None:
        self.backend = backend
        self.coordinator = coordinator

    @staticmethod
    def _resolve_kind(kind: KindOrAuto, z: int) -> RegionKind:
        if isinstance(kind, str) and not isinstance(kind, RegionKind) and kind.lower() == "auto":
            return kind_for_zoom(z)
        return RegionKind.parse(kind)

    async def get_tile(self, kind: KindOrAuto, z: int, x: int, y: int) -> Optional[bytes]:
        validate_tile(z, x, y)
        resolved = self._resolve_kind(kind, z)
        key = f"tile_{resolved.value}_{z}_{x}_{y}"
        return await self.coordinator.execute_request(
            key, lambda: self.backend.get_tile(resolved, z, x, y)
        )

    async def tile_exists(self, kind: KindOrAuto, z: int, x: int, y: int) -> bool:
        validate_tile(z, x, y)
        resolved = self._resolve_kind(kind, z)
        key = f"tile_exists_{resolved.value}_{z}_{x}_{y}"
        return bool(
            await self.coordinator.execute_request(
                key, lambda: self.backend.tile_exists(resolved, z, x, y)
            )
        )

    async def preload(
        self,
        bbox: BBox,
        zoom: float,
        kind: KindOrAuto = "auto",
        *,
        raise_on_failure: bool = False,
    ) -> Dict[TileAddress, Optional[bytes]]:
        """Fetch every tile covering ``bbox`` concurrently.

        Individual failures are logged and reported as None. With
        ``raise_on_failure`` the first permanent failure is raised, as is
        the first failure when no tile could be fetched at all.
        """
        addresses = tiles_for_bbox(bbox, zoom)
        results = await asyncio.gather(
            *(self.get_tile(kind, z, x, y) for z, x, y in addresses),
            return_exceptions=True,
        )

        tiles: Dict[TileAddress, Optional[bytes]] = {}
        errors: List[Exception] = []
        for address, result in zip(addresses, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                errors.append(result)
                logger.warning("Failed to preload tile %s: %s", address, result)
                tiles[address] = None
            else:
                tiles[address] = result

        failed = len(errors)
        logger.info("Preloaded %d tiles (%d failed)", len(addresses) - failed, failed)

        if raise_on_failure and errors:
            permanent = [e for e in errors if not classify_error(e).recoverable]
            if permanent:
                raise permanent[0]
            if failed == len(addresses):
                raise errors[0]
        return tiles
