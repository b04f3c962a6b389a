"""Resolve the country and state enclosing a point.

The country is always looked up. The state is looked up only once the map
is zoomed in far enough to show state-level distinctions, and a failed
state lookup still returns the country.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from boundaries.lib.backend import SpatialBackend
from boundaries.lib.constants import STATE_MIN_ZOOM
from boundaries.lib.coordinator import RequestCoordinator
from boundaries.lib.models import AdminRegion
from boundaries.lib.validate import validate_coordinates

logger = logging.getLogger(__name__)

__all__ = ["HierarchyResult", "PointHierarchyResolver"]


@dataclass(frozen=True)
class HierarchyResult:
    country: Optional[AdminRegion] = None
    state: Optional[AdminRegion] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "country": self.country.to_dict() if self.country else None,
            "state": self.state.to_dict() if self.state else None,
        }


class PointHierarchyResolver:
    """Point-in-polygon lookups routed through a RequestCoordinator.

    Repeated clicks near the same point within the cache window reuse the
    cached answer.

    Example:
        resolver = PointHierarchyResolver(backend, coordinator)
        result = await resolver.resolve(48.8566, 2.3522, zoom=6)
        print(result.country.name, result.state.name if result.state else "-")
    """

    def __init__(
        self,
        backend: SpatialBackend,
        coordinator: RequestCoordinator,
        *,
        state_min_zoom: float = STATE_MIN_ZOOM,
    ) -> None:
        self.backend = backend
        self.coordinator = coordinator
        self.state_min_zoom = state_min_zoom

    async def resolve_country(self, lat: float, lng: float) -> Optional[AdminRegion]:
        key = self.coordinator.key("country_at", {"lat": lat, "lng": lng})
        return await self.coordinator.execute_request(
            key, lambda: self.backend.find_country_at_point(lat, lng)
        )

    async def resolve_state(
        self,
        lat: float,
        lng: float,
        country_id: Optional[str] = None,
    ) -> Optional[AdminRegion]:
        key = self.coordinator.key(
            "state_at", {"lat": lat, "lng": lng, "country": country_id}
        )
        return await self.coordinator.execute_request(
            key, lambda: self.backend.find_state_at_point(lat, lng, country_id)
        )

    async def resolve(self, lat: float, lng: float, zoom: float) -> HierarchyResult:
        """Resolve the regions enclosing (lat, lng).

        Args:
            lat: Latitude, -90..90
            lng: Longitude, -180..180
            zoom: Current map zoom; below ``state_min_zoom`` no state lookup
                is issued

        Returns:
            HierarchyResult; ``state`` is None when skipped, not found or
            when its lookup failed

        Raises:
            InvalidInputError: Coordinates out of range
            BackendError: The country lookup failed
        """
        validate_coordinates(lat, lng)

        country = await self.resolve_country(lat, lng)
        if country is None:
            logger.debug("No country at (%.4f, %.4f)", lat, lng)
            return HierarchyResult()

        if zoom < self.state_min_zoom:
            return HierarchyResult(country=country)

        try:
            state = await self.resolve_state(lat, lng, country.id)
        except Exception as exc:
            logger.warning(
                "State lookup at (%.4f, %.4f) failed; returning country only: %s",
                lat,
                lng,
                exc,
            )
            state = None

        return HierarchyResult(country=country, state=state)
