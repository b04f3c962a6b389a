"""Backend setup diagnostics.

Probes the spatial backend's functions and reports missing pieces as
errors (required) or warnings (optional) instead of raising.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List

from boundaries.lib.backend import SpatialBackend
from boundaries.lib.errors import BackendError, ErrorType, to_backend_error
from boundaries.lib.models import BBox, RegionKind

logger = logging.getLogger(__name__)

__all__ = ["SetupReport", "check_backend_setup"]

# Small box around (0, 0); any populated database has a country near it
PROBE_BBOX = BBox(west=-1.0, south=-1.0, east=1.0, north=1.0)

_HINTS: Dict[ErrorType, str] = {
    ErrorType.NO_BACKEND: "backend is not configured",
    ErrorType.SCHEMA_MISSING: "GIS schema not found; run the SQL migrations",
    ErrorType.TABLE_MISSING: "GIS tables not found; run the SQL migrations",
    ErrorType.FUNCTION_MISSING: "function not found; create the RPC functions",
    ErrorType.PERMISSION_DENIED: "permission denied; check row-level security policies",
    ErrorType.INVALID_INPUT: "rejected the probe input",
    ErrorType.NETWORK_ERROR: "backend unreachable",
    ErrorType.UNKNOWN: "unexpected error",
}


@dataclass
class SetupReport:
    """Outcome of check_backend_setup."""

    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors

    def to_dict(self) -> Dict[str, Any]:
        return {"valid": self.valid, "errors": self.errors, "warnings": self.warnings}


async def _probe(
    backend: SpatialBackend,
    label: str,
    call: Callable[[], Awaitable[Any]],
) -> Any:
    try:
        return await call()
    except BackendError as exc:
        logger.debug("Probe %s failed: %s", label, exc)
        raise
    except Exception as exc:
        logger.debug("Probe %s failed: %s", label, exc)
        raise to_backend_error(exc, backend.name, label) from exc


def _describe(label: str, error: BackendError) -> str:
    return f"{label}: {_HINTS[error.error_type]} ({error.message})"


async def check_backend_setup(backend: SpatialBackend) -> SetupReport:
    """Check that the backend exposes everything boundary delivery needs.

    Required: point lookups and bounding-box queries. Optional: vector tiles.

    Example:
        report = await check_backend_setup(backend)
        if not report.valid:
            for line in report.errors:
                print(line)
    """
    report = SetupReport()

    required = [
        ("find_country_at_point", lambda: backend.find_country_at_point(0.0, 0.0)),
        ("find_state_at_point", lambda: backend.find_state_at_point(0.0, 0.0)),
    ]
    for label, call in required:
        try:
            await _probe(backend, label, call)
        except BackendError as error:
            report.errors.append(_describe(label, error))

    try:
        features = await _probe(
            backend,
            "boundaries_in_bbox",
            lambda: backend.get_boundaries_in_bbox(RegionKind.COUNTRY, 1, PROBE_BBOX),
        )
        if not features:
            report.warnings.append(
                "boundaries_in_bbox: no countries near (0, 0); load boundary data"
            )
    except BackendError as error:
        report.errors.append(_describe("boundaries_in_bbox", error))

    try:
        await _probe(
            backend,
            "tile_exists",
            lambda: backend.tile_exists(RegionKind.COUNTRY, 0, 0, 0),
        )
    except BackendError as error:
        report.warnings.append(
            _describe("tile_exists", error) + "; vector tiles unavailable"
        )

    if report.valid:
        logger.info("Backend setup OK (%d warning(s))", len(report.warnings))
    else:
        logger.error("Backend setup has %d error(s)", len(report.errors))
    return report
