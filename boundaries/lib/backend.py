"""Abstract base class for spatial backends.

Defines the query contract the boundary layer consumes. Implementations own
point-in-polygon lookups and polygon simplification; callers never simplify
geometry themselves.

Implementations must raise BackendError subclasses (see
``boundaries.lib.errors``) so failures can be classified for retry without
inspecting message text.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, List, Optional

from boundaries.lib.models import AdminRegion, BBox, Feature, RegionKind

logger = logging.getLogger(__name__)

__all__ = ["SpatialBackend"]


class SpatialBackend(ABC):
    """Async query interface to a spatial database.

    Subclasses must implement all abstract methods. Tile methods are
    optional: the defaults report that no tiles exist.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Short backend identifier, used to select an error mapper."""
        pass

    @abstractmethod
    async def find_country_at_point(self, lat: float, lng: float) -> Optional[AdminRegion]:
        """Return the country containing the point, or None."""
        pass

    @abstractmethod
    async def find_state_at_point(
        self,
        lat: float,
        lng: float,
        country_id: Optional[str] = None,
    ) -> Optional[AdminRegion]:
        """Return the state containing the point, or None.

        Args:
            lat: Latitude
            lng: Longitude
            country_id: Restrict the lookup to states of this country
        """
        pass

    @abstractmethod
    async def get_boundaries_in_bbox(
        self,
        kind: RegionKind,
        zoom: float,
        bbox: BBox,
        country_filter: Optional[str] = None,
    ) -> List[Feature]:
        """Return boundaries intersecting ``bbox``, simplified for ``zoom``.

        Args:
            kind: Country or state level
            zoom: Map zoom; selects the simplification tier
            bbox: Visible area
            country_filter: Restrict states to one country (ISO code)

        Returns:
            Features; empty when nothing intersects
        """
        pass

    async def tile_exists(self, kind: RegionKind, z: int, x: int, y: int) -> bool:
        return False

    async def get_tile(self, kind: RegionKind, z: int, x: int, y: int) -> Optional[bytes]:
        return None

    async def aclose(self) -> None:
        """Release transport resources."""
        return None

    async def __aenter__(self) -> "SpatialBackend":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()
