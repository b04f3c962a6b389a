"""Administrative boundary delivery for interactive maps.

Loads country and state boundaries for the visible viewport at a level of
detail matched to the zoom, while deduplicating, debouncing, retrying and
caching the queries sent to the spatial backend.

Usage:
    python -m boundaries viewport -10 35 30 60 --zoom 5
    python -m boundaries resolve 48.8566 2.3522 --zoom 6
"""

from boundaries.lib.manager import BoundaryManager
from boundaries.lib.coordinator import RequestCoordinator
from boundaries.lib.hierarchy import PointHierarchyResolver
from boundaries.lib.models import BBox, RegionKind, Viewport
from boundaries.lib.resilience import RetryExecutor

__all__ = [
    "BoundaryManager",
    "RequestCoordinator",
    "PointHierarchyResolver",
    "RetryExecutor",
    "BBox",
    "RegionKind",
    "Viewport",
]
