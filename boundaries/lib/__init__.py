"""Boundary delivery library modules.

This package contains the request coordination layer, the boundary manager
and point hierarchy resolver, and the spatial backend adapters they use.
"""

from boundaries.lib.backend import SpatialBackend
from boundaries.lib.config import (
    BoundaryConfig,
    BoundarySettings,
    CacheSettings,
    RetrySettings,
    SelectionPolicy,
    StyleSettings,
    ZoomBand,
)
from boundaries.lib.config_loader import config_from_dict, load_config
from boundaries.lib.coordinator import (
    CacheEntry,
    CoordinatorStats,
    DebounceSlot,
    PendingRequest,
    RequestCoordinator,
    generate_cache_key,
)
from boundaries.lib.diagnostics import SetupReport, check_backend_setup
from boundaries.lib.env import expand_env_vars, expand_options, load_env_file
from boundaries.lib.errors import (
    BackendError,
    BackendNetworkError,
    BoundaryError,
    Classification,
    ConfigurationError,
    DebounceSignal,
    ErrorType,
    FunctionMissingError,
    InvalidInputError,
    NoBackendError,
    PermissionDeniedError,
    RequestCancelled,
    RequestSuperseded,
    SchemaMissingError,
    TableMissingError,
    UnknownBackendError,
    classify_error,
    list_error_mappers,
    register_error_mapper,
    to_backend_error,
)
from boundaries.lib.events import BoundaryEvent, BoundaryLoadFailed, EventEmitter
from boundaries.lib.hierarchy import HierarchyResult, PointHierarchyResolver
from boundaries.lib.logging import (
    BoundaryLogger,
    JSONFormatter,
    get_boundary_logger,
    setup_logging,
)
from boundaries.lib.manager import BoundaryLayer, BoundaryManager, LayerStatus
from boundaries.lib.models import (
    AdminRegion,
    BBox,
    Feature,
    MarkedLocation,
    RegionKind,
    Viewport,
    features_to_geojson,
)
from boundaries.lib.resilience import RetryExecutor, RetryOptions, compute_backoff
from boundaries.lib.selection import SelectionChange, SelectionState
from boundaries.lib.styles import FeatureStyle, LayerStyle, feature_style
from boundaries.lib.supabase import SupabaseBackend, map_postgrest_error
from boundaries.lib.tiles import TileService, kind_for_zoom, lat_lng_to_tile, tiles_for_bbox
from boundaries.lib.validate import (
    validate_bbox,
    validate_coordinates,
    validate_tile,
    validate_zoom,
)

__all__ = [
    # Models
    "AdminRegion",
    "BBox",
    "Feature",
    "MarkedLocation",
    "RegionKind",
    "Viewport",
    "features_to_geojson",
    # Errors
    "BackendError",
    "BackendNetworkError",
    "BoundaryError",
    "Classification",
    "ConfigurationError",
    "DebounceSignal",
    "ErrorType",
    "FunctionMissingError",
    "InvalidInputError",
    "NoBackendError",
    "PermissionDeniedError",
    "RequestCancelled",
    "RequestSuperseded",
    "SchemaMissingError",
    "TableMissingError",
    "UnknownBackendError",
    "classify_error",
    "list_error_mappers",
    "register_error_mapper",
    "to_backend_error",
    # Retry and coordination
    "RetryExecutor",
    "RetryOptions",
    "compute_backoff",
    "CacheEntry",
    "CoordinatorStats",
    "DebounceSlot",
    "PendingRequest",
    "RequestCoordinator",
    "generate_cache_key",
    # Backends
    "SpatialBackend",
    "SupabaseBackend",
    "map_postgrest_error",
    "TileService",
    "kind_for_zoom",
    "lat_lng_to_tile",
    "tiles_for_bbox",
    # Manager and resolver
    "BoundaryLayer",
    "BoundaryManager",
    "LayerStatus",
    "BoundaryEvent",
    "BoundaryLoadFailed",
    "EventEmitter",
    "HierarchyResult",
    "PointHierarchyResolver",
    "SelectionChange",
    "SelectionState",
    "FeatureStyle",
    "LayerStyle",
    "feature_style",
    "SetupReport",
    "check_backend_setup",
    # Configuration
    "BoundaryConfig",
    "BoundarySettings",
    "CacheSettings",
    "RetrySettings",
    "SelectionPolicy",
    "StyleSettings",
    "ZoomBand",
    "config_from_dict",
    "load_config",
    "expand_env_vars",
    "expand_options",
    "load_env_file",
    # Logging
    "BoundaryLogger",
    "JSONFormatter",
    "get_boundary_logger",
    "setup_logging",
    # Validation
    "validate_bbox",
    "validate_coordinates",
    "validate_tile",
    "validate_zoom",
]
