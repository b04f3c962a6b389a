"""Default values shared across the boundary library.

Zoom thresholds, retry and cache defaults, and style defaults live here so
the config models, the coordinator and the manager agree on them.
"""

# =============================================================================
# Zoom Thresholds
# =============================================================================

# Zoom at or below which "auto" tile requests are served from country tiles
COUNTRY_TO_STATE_ZOOM: int = 4

MIN_ZOOM: int = 0
MAX_ZOOM: int = 22

COUNTRY_MIN_ZOOM: float = 1
COUNTRY_MAX_ZOOM: float = 18

# Also the threshold below which point lookups skip the state query
STATE_MIN_ZOOM: float = 4
STATE_MAX_ZOOM: float = 18

# Clicks at or above this zoom create marked locations
LOCATION_ZOOM_THRESHOLD: float = 8


# =============================================================================
# Retry Defaults
# =============================================================================

DEFAULT_MAX_RETRIES: int = 3

# Seconds
DEFAULT_BASE_DELAY: float = 1.0
DEFAULT_MAX_DELAY: float = 30.0

# Fraction of the capped delay applied as symmetric jitter
DEFAULT_JITTER: float = 0.3


# =============================================================================
# Request Coordination Defaults
# =============================================================================

# Seconds a completed result stays valid
DEFAULT_CACHE_MAX_AGE: float = 30.0

DEFAULT_MAX_PENDING: int = 50

DEFAULT_MAX_CACHE_ENTRIES: int = 500

# Seconds
DEFAULT_DEBOUNCE_DELAY: float = 0.1

# 4 decimals is roughly 11 metres
DEFAULT_KEY_PRECISION: int = 4


# =============================================================================
# Coordinate Bounds
# =============================================================================

LAT_MIN: float = -90.0
LAT_MAX: float = 90.0
LNG_MIN: float = -180.0
LNG_MAX: float = 180.0


# =============================================================================
# Style Defaults
# =============================================================================

DEFAULT_BORDER_COLOR: str = "#666666"
DEFAULT_BORDER_WIDTH: float = 1
DEFAULT_BORDER_OPACITY: float = 0.5
DEFAULT_HOVER_COLOR: str = "#ff0000"
DEFAULT_HOVER_OPACITY: float = 0.3
DEFAULT_SELECTED_COLOR: str = "#0000ff"
DEFAULT_SELECTED_OPACITY: float = 0.5


__all__ = [
    "COUNTRY_TO_STATE_ZOOM",
    "MIN_ZOOM",
    "MAX_ZOOM",
    "COUNTRY_MIN_ZOOM",
    "COUNTRY_MAX_ZOOM",
    "STATE_MIN_ZOOM",
    "STATE_MAX_ZOOM",
    "LOCATION_ZOOM_THRESHOLD",
    "DEFAULT_MAX_RETRIES",
    "DEFAULT_BASE_DELAY",
    "DEFAULT_MAX_DELAY",
    "DEFAULT_JITTER",
    "DEFAULT_CACHE_MAX_AGE",
    "DEFAULT_MAX_PENDING",
    "DEFAULT_MAX_CACHE_ENTRIES",
    "DEFAULT_DEBOUNCE_DELAY",
    "DEFAULT_KEY_PRECISION",
    "LAT_MIN",
    "LAT_MAX",
    "LNG_MIN",
    "LNG_MAX",
    "DEFAULT_BORDER_COLOR",
    "DEFAULT_BORDER_WIDTH",
    "DEFAULT_BORDER_OPACITY",
    "DEFAULT_HOVER_COLOR",
    "DEFAULT_HOVER_OPACITY",
    "DEFAULT_SELECTED_COLOR",
    "DEFAULT_SELECTED_OPACITY",
]
