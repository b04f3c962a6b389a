"""Boundary manager: zoom-gated layers plus selection and hover state.

The manager is driven by plain method calls from whatever owns the map:

- ``on_viewport_changed`` after every pan/zoom
- ``on_feature_hovered`` / ``on_feature_hover_out`` / ``on_feature_clicked``
  for pointer events on boundary features
- ``on_map_clicked`` for clicks on the map itself (marks a location)

Each region kind has its own layer with the state machine
Hidden -> Loading -> Loaded, gated by the kind's zoom band. Loads go through
one RequestCoordinator owned by the manager. Failures never propagate out of
``on_viewport_changed``; they are reported as ``boundary-load-error`` events
and the layer keeps its last good features.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

from boundaries.lib.backend import SpatialBackend
from boundaries.lib.config import BoundaryConfig
from boundaries.lib.coordinator import RequestCoordinator
from boundaries.lib.errors import DebounceSignal, InvalidInputError
from boundaries.lib.events import (
    LOCATION_MARKED,
    LOCATION_REMOVED,
    BoundaryEvent,
    BoundaryLoadFailed,
    EventEmitter,
    Listener,
)
from boundaries.lib.hierarchy import HierarchyResult, PointHierarchyResolver
from boundaries.lib.logging import get_boundary_logger
from boundaries.lib.models import Feature, MarkedLocation, RegionKind, Viewport
from boundaries.lib.resilience import RetryExecutor
from boundaries.lib.selection import SelectionChange, SelectionState
from boundaries.lib.styles import FeatureStyle, feature_style
from boundaries.lib.tiles import TileService
from boundaries.lib.validate import validate_bbox, validate_coordinates, validate_zoom

logger = logging.getLogger(__name__)

__all__ = ["BoundaryLayer", "BoundaryManager", "LayerStatus"]

KindLike = Union[RegionKind, str]


class LayerStatus(str, Enum):
    HIDDEN = "hidden"
    LOADING = "loading"
    LOADED = "loaded"


@dataclass
class BoundaryLayer:
    """Render state for one region kind."""

    kind: RegionKind
    status: LayerStatus = LayerStatus.HIDDEN
    features: List[Feature] = field(default_factory=list)
    tiles: Dict[Tuple[int, int, int], Optional[bytes]] = field(default_factory=dict)
    viewport: Optional[Viewport] = None
    last_error: Optional[BaseException] = None
    generation: int = 0

    @property
    def visible(self) -> bool:
        return self.status is not LayerStatus.HIDDEN

    def feature_ids(self) -> List[str]:
        return [feature.id for feature in self.features]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "status": self.status.value,
            "feature_count": len(self.features),
            "tile_count": len(self.tiles),
            "last_error": str(self.last_error) if self.last_error else None,
        }


class BoundaryManager:
    """Orchestrates boundary loading, selection and marked locations.

    Example:
        manager = BoundaryManager(backend, config)
        manager.subscribe("boundary-load-error", show_toast)
        await manager.on_viewport_changed(Viewport(BBox(-10, 35, 30, 60), zoom=5))
        manager.on_feature_clicked("state", state_id)
        await manager.close()
    """

    def __init__(
        self,
        backend: SpatialBackend,
        config: Optional[BoundaryConfig] = None,
        *,
        coordinator: Optional[RequestCoordinator] = None,
        resolver: Optional[PointHierarchyResolver] = None,
        country_filter: Optional[str] = None,
        name: str = "boundaries",
    ) -> None:
        self.backend = backend
        self.config = config or BoundaryConfig()
        self.country_filter = country_filter
        self.name = name

        cache = self.config.cache
        self.coordinator = coordinator or RequestCoordinator(
            RetryExecutor(self.config.retry.to_options()),
            max_age=cache.max_age,
            max_pending=cache.max_pending,
            max_entries=cache.max_entries,
            debounce_delay=cache.debounce_delay,
            key_precision=cache.key_precision,
        )
        self.resolver = resolver or PointHierarchyResolver(
            backend, self.coordinator, state_min_zoom=self.config.states.min_zoom
        )
        self.tiles = TileService(backend, self.coordinator)
        self.selection = SelectionState()
        self.events = EventEmitter()
        self.marked_locations: Dict[str, MarkedLocation] = {}

        self._layers: Dict[RegionKind, BoundaryLayer] = {
            kind: BoundaryLayer(kind) for kind in RegionKind
        }
        self._state_parents: Dict[str, str] = {}
        self._log = get_boundary_logger(__name__)
        self._log.set_context(manager=name)

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    def layer(self, kind: KindLike) -> BoundaryLayer:
        return self._layers[RegionKind.parse(kind)]

    def subscribe(self, name: str, listener: Listener) -> Any:
        return self.events.subscribe(name, listener)

    def parent_of(self, state_id: str) -> Optional[str]:
        return self._state_parents.get(state_id)

    def style_for(self, kind: KindLike, region_id: str) -> FeatureStyle:
        kind = RegionKind.parse(kind)
        return feature_style(
            self.config.styles.for_kind(kind),
            selected=self.selection.is_selected(kind, region_id),
            hovered=self.selection.hovered(kind) == region_id,
        )

    def _emit(self, name: str, **payload: Any) -> None:
        self.events.emit(BoundaryEvent(name=name, payload=payload))

    def _emit_changes(self, changes: List[SelectionChange]) -> None:
        for change in changes:
            action = "selected" if change.selected else "deselected"
            self._emit(f"{change.kind.value}-{action}", id=change.region_id, cause=change.cause)

    # ------------------------------------------------------------------
    # Viewport handling
    # ------------------------------------------------------------------

    async def on_viewport_changed(self, viewport: Viewport) -> None:
        """Show, hide or reload each layer for the new viewport.

        Never raises for load failures; those become ``boundary-load-error``
        events.
        """
        try:
            validate_zoom(viewport.zoom)
            validate_bbox(viewport.bbox)
        except InvalidInputError as exc:
            kinds = [k for k in RegionKind if self._in_band(k, viewport.zoom)] or list(RegionKind)
            for kind in kinds:
                self._record_failure(self._layers[kind], exc, viewport)
            return

        await asyncio.gather(*(self._update_layer(kind, viewport) for kind in RegionKind))

    def _in_band(self, kind: RegionKind, zoom: Any) -> bool:
        try:
            return self.config.band(kind).contains(float(zoom))
        except (TypeError, ValueError):
            return False

    def _viewport_key(self, kind: RegionKind, viewport: Viewport) -> str:
        params: Dict[str, Any] = dict(viewport.bbox.as_params(), zoom=viewport.zoom)
        if kind is RegionKind.STATE:
            params["country"] = self.country_filter
        if self.config.use_vector_tiles:
            params["tiles"] = True
        return self.coordinator.key(kind.plural, params)

    async def _fetch(self, kind: RegionKind, viewport: Viewport) -> Any:
        if self.config.use_vector_tiles:
            return await self.tiles.preload(
                viewport.bbox, viewport.zoom, kind, raise_on_failure=True
            )

        country_filter = self.country_filter if kind is RegionKind.STATE else None

        def operation() -> Any:
            return self.backend.get_boundaries_in_bbox(
                kind, viewport.zoom, viewport.bbox, country_filter
            )

        key = self._viewport_key(kind, viewport)
        debounce = self.config.cache.viewport_debounce
        if debounce > 0:
            return await self.coordinator.execute_debounced(
                f"{kind.plural}_viewport", operation, debounce, request_key=key
            )
        return await self.coordinator.execute_request(key, operation)

    async def _update_layer(self, kind: RegionKind, viewport: Viewport) -> None:
        layer = self._layers[kind]
        if not self._in_band(kind, viewport.zoom):
            self._hide(layer)
            return

        layer.generation += 1
        generation = layer.generation
        layer.status = LayerStatus.LOADING
        layer.viewport = viewport
        started = time.monotonic()

        try:
            result = await self._fetch(kind, viewport)
        except DebounceSignal:
            # A newer viewport took over this layer's load
            return
        except Exception as exc:
            if layer.generation != generation:
                logger.debug("Discarding stale %s failure: %s", kind.plural, exc)
                return
            self._record_failure(layer, exc, viewport)
            return

        if layer.generation != generation:
            logger.debug("Discarding stale %s response", kind.plural)
            return

        if self.config.use_vector_tiles:
            layer.tiles = dict(result or {})
            layer.features = []
            count = len(layer.tiles)
        else:
            layer.features = list(result or [])
            layer.tiles = {}
            for feature in layer.features:
                if kind is RegionKind.STATE and feature.parent_id:
                    self._state_parents[feature.id] = feature.parent_id
            count = len(layer.features)

        layer.status = LayerStatus.LOADED
        layer.last_error = None
        self._log.metric("features_loaded", count, unit="features", kind=kind.value)
        self._log.metric("load_seconds", round(time.monotonic() - started, 3), unit="seconds", kind=kind.value)
        self._emit(f"{kind.plural}-loaded", count=count, zoom=viewport.zoom)

    def _record_failure(self, layer: BoundaryLayer, exc: BaseException, viewport: Viewport) -> None:
        layer.last_error = exc
        # Keep the last good features (possibly none) on screen
        if layer.status is LayerStatus.LOADING:
            layer.status = LayerStatus.LOADED
        logger.warning("%s load failed: %s", layer.kind.plural, exc)
        self.events.emit(BoundaryLoadFailed.from_error(layer.kind, exc, viewport))

    def _hide(self, layer: BoundaryLayer) -> None:
        # Invalidate any load still in flight or waiting for this layer
        layer.generation += 1
        self.coordinator.cancel_debounced(f"{layer.kind.plural}_viewport")
        if layer.status is LayerStatus.HIDDEN and not layer.features and not layer.tiles:
            return
        layer.status = LayerStatus.HIDDEN
        layer.features = []
        layer.tiles = {}
        layer.last_error = None
        cleared = self.selection.clear_hover(layer.kind)
        if cleared is not None:
            self._emit(f"{layer.kind.value}-hover-out", id=cleared)
        self._emit(f"{layer.kind.plural}-hidden")

    # ------------------------------------------------------------------
    # Pointer interaction
    # ------------------------------------------------------------------

    def on_feature_hovered(self, kind: KindLike, region_id: str) -> None:
        kind = RegionKind.parse(kind)
        if self.selection.hovered(kind) == region_id:
            return
        cleared = self.selection.hover(kind, region_id)
        if cleared is not None:
            self._emit(f"{kind.value}-hover-out", id=cleared)
        self._emit(f"{kind.value}-hover", id=region_id)

    def on_feature_hover_out(self, kind: KindLike) -> None:
        kind = RegionKind.parse(kind)
        cleared = self.selection.clear_hover(kind)
        if cleared is not None:
            self._emit(f"{kind.value}-hover-out", id=cleared)

    def on_feature_clicked(
        self, kind: KindLike, region_id: str, parent_id: Optional[str] = None
    ) -> List[SelectionChange]:
        """Toggle selection of a clicked feature, applying cascade rules.

        ``parent_id`` is the clicked state's country, taken from the
        feature's properties. Without it the parent recorded by the last
        bounding-box load is used; tile features need it passed in.
        """
        kind = RegionKind.parse(kind)
        self._emit(f"{kind.value}-click", id=region_id)
        return self.toggle_select(kind, region_id, parent_id)

    def toggle_select(
        self, kind: KindLike, region_id: str, parent_id: Optional[str] = None
    ) -> List[SelectionChange]:
        kind = RegionKind.parse(kind)
        changes = self.selection.toggle_select(kind, region_id, self._parent_for(kind, region_id, parent_id))
        self._emit_changes(changes)
        return changes

    def select(
        self, kind: KindLike, region_id: str, parent_id: Optional[str] = None
    ) -> List[SelectionChange]:
        kind = RegionKind.parse(kind)
        changes = self.selection.select(kind, region_id, self._parent_for(kind, region_id, parent_id))
        self._emit_changes(changes)
        return changes

    def deselect(self, kind: KindLike, region_id: str) -> List[SelectionChange]:
        changes = self.selection.deselect(RegionKind.parse(kind), region_id)
        self._emit_changes(changes)
        return changes

    def clear_selections(self) -> List[SelectionChange]:
        changes = self.selection.clear()
        self._emit_changes(changes)
        return changes

    def _parent_for(
        self, kind: RegionKind, region_id: str, parent_id: Optional[str] = None
    ) -> Optional[str]:
        if kind is not RegionKind.STATE:
            return None
        if parent_id:
            self._state_parents[region_id] = parent_id
            return parent_id
        return self._state_parents.get(region_id)

    # ------------------------------------------------------------------
    # Marked locations
    # ------------------------------------------------------------------

    async def on_map_clicked(self, lat: float, lng: float, zoom: float) -> Optional[MarkedLocation]:
        """Mark a location when zoomed in far enough.

        The enclosing regions are resolved once and kept on the location.
        The resolved state (or, failing that, country) is selected.

        Returns:
            The new MarkedLocation, or None below the location zoom threshold

        Raises:
            InvalidInputError: Coordinates out of range
        """
        if zoom < self.config.location_zoom_threshold:
            return None
        validate_coordinates(lat, lng)

        try:
            hierarchy = await self.resolver.resolve(lat, lng, zoom)
        except InvalidInputError:
            raise
        except Exception as exc:
            logger.warning("Could not resolve regions at (%.4f, %.4f): %s", lat, lng, exc)
            hierarchy = HierarchyResult()

        location = MarkedLocation(
            lat=lat,
            lng=lng,
            parent_state=hierarchy.state,
            parent_country=hierarchy.country,
        )
        self.marked_locations[location.id] = location

        changes: List[SelectionChange] = []
        if hierarchy.state is not None:
            state = hierarchy.state
            parent_id = state.parent_id or (hierarchy.country.id if hierarchy.country else None)
            if parent_id:
                self._state_parents[state.id] = parent_id
            changes = self.selection.select(RegionKind.STATE, state.id, parent_id)
        elif hierarchy.country is not None:
            changes = self.selection.select(RegionKind.COUNTRY, hierarchy.country.id)

        self._emit(LOCATION_MARKED, **location.to_dict())
        self._emit_changes(changes)
        return location

    def remove_marked_location(self, location_id: str) -> List[SelectionChange]:
        """Remove a marked location and unwind the selection it caused.

        The parent state is deselected (when ``cascade_location_to_state``)
        only if no remaining location lies in it. The parent country is
        deselected only if no remaining location lies in it and none of its
        states is still selected.
        """
        location = self.marked_locations.pop(location_id, None)
        if location is None:
            return []

        remaining = list(self.marked_locations.values())
        changes: List[SelectionChange] = []

        state = location.parent_state
        if state is not None and self.config.selection.cascade_location_to_state:
            if not any(loc.parent_state and loc.parent_state.id == state.id for loc in remaining):
                changes.extend(self.selection.deselect(RegionKind.STATE, state.id))

        country = location.parent_country
        if country is not None:
            referenced = any(
                loc.parent_country and loc.parent_country.id == country.id for loc in remaining
            )
            if not referenced and not self.selection.states_under(country.id):
                changes.extend(self.selection.deselect(RegionKind.COUNTRY, country.id))

        self._emit(LOCATION_REMOVED, **location.to_dict())
        self._emit_changes(changes)
        return changes

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def close(self) -> None:
        """Tear down: dispose the coordinator and reset all state.

        The backend is not closed; its owner closes it.
        """
        self.coordinator.close()
        for layer in self._layers.values():
            layer.generation += 1
            layer.status = LayerStatus.HIDDEN
            layer.features = []
            layer.tiles = {}
            layer.last_error = None
        self.selection.reset()
        self.marked_locations.clear()
        self._state_parents.clear()
        self.events.clear()

    async def __aenter__(self) -> "BoundaryManager":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()
