"""Supabase (PostgREST) spatial backend over httpx.

Calls the GIS schema's RPC functions:

- ``find_country_at_point(point_lat, point_lng)``
- ``find_state_at_point(point_lat, point_lng, p_country_id)``
- ``get_simplified_boundaries_in_bbox(boundary_type, zoom_level, bbox_*, country_filter)``
  with ``get_countries_as_geojson`` / ``get_states_as_geojson`` as fallback
- ``get_country_mvt_tile`` / ``get_states_mvt_tile`` / ``tile_has_data``

Failures are mapped to the boundary error taxonomy from the PostgreSQL
SQLSTATE or PostgREST error code and the HTTP status. Message text is never
inspected.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional

import httpx

from boundaries.lib.backend import SpatialBackend
from boundaries.lib.errors import (
    BackendError,
    ErrorType,
    FunctionMissingError,
    NoBackendError,
    error_for_type,
    register_error_mapper,
    to_backend_error,
)
from boundaries.lib.models import AdminRegion, BBox, Feature, RegionKind, decode_geometry
from boundaries.lib.validate import (
    validate_bbox,
    validate_coordinates,
    validate_tile,
    validate_zoom,
)

logger = logging.getLogger(__name__)

__all__ = ["SupabaseBackend", "map_postgrest_error"]

BACKEND_NAME = "supabase"
DEFAULT_SCHEMA = "gis"

_CODE_TYPES: Dict[str, ErrorType] = {
    "3F000": ErrorType.SCHEMA_MISSING,  # invalid_schema_name
    "PGRST106": ErrorType.SCHEMA_MISSING,  # schema not exposed
    "42P01": ErrorType.TABLE_MISSING,  # undefined_table
    "PGRST205": ErrorType.TABLE_MISSING,
    "42883": ErrorType.FUNCTION_MISSING,  # undefined_function
    "PGRST202": ErrorType.FUNCTION_MISSING,
    "42501": ErrorType.PERMISSION_DENIED,  # insufficient_privilege
    "P0001": ErrorType.INVALID_INPUT,  # raise_exception from input checks
}

_TILE_FUNCTIONS = {
    RegionKind.COUNTRY: "get_country_mvt_tile",
    RegionKind.STATE: "get_states_mvt_tile",
}

_FALLBACK_FUNCTIONS = {
    RegionKind.COUNTRY: "get_countries_as_geojson",
    RegionKind.STATE: "get_states_as_geojson",
}

# Columns that are not feature properties in RPC rows
_RESERVED_COLUMNS = frozenset({"id", "name", "geometry", "geometry_geojson", "properties"})


def _error_type_for(status_code: int, code: Optional[str]) -> ErrorType:
    if code:
        if code in _CODE_TYPES:
            return _CODE_TYPES[code]
        # Class 22: data exception (out-of-range values, bad casts)
        if code.startswith("22"):
            return ErrorType.INVALID_INPUT
    if status_code in (401, 403):
        return ErrorType.PERMISSION_DENIED
    if status_code == 429 or status_code >= 500:
        return ErrorType.NETWORK_ERROR
    return ErrorType.UNKNOWN


def map_postgrest_error(
    status_code: int,
    payload: Optional[Mapping[str, Any]] = None,
    *,
    operation: Optional[str] = None,
) -> BackendError:
    """Map a PostgREST error response to a BackendError.

    Args:
        status_code: HTTP status of the response
        payload: Decoded JSON error body (``code``, ``message``, ``details``, ``hint``)
        operation: RPC function name, for context

    Returns:
        BackendError subclass matching the error code, falling back to the
        HTTP status class
    """
    payload = payload or {}
    code = payload.get("code")
    code = str(code) if code is not None else None
    error_type = _error_type_for(status_code, code)

    details: Dict[str, Any] = {"status": status_code}
    if code:
        details["code"] = code
    for field in ("details", "hint"):
        if payload.get(field):
            details[field] = payload[field]

    message = payload.get("message") or f"HTTP {status_code}"
    return error_for_type(error_type, str(message), operation=operation, details=details)


@register_error_mapper(BACKEND_NAME)
def _map_supabase_exception(exc: Exception, operation: str) -> BackendError:
    if isinstance(exc, httpx.HTTPStatusError):
        try:
            payload = exc.response.json()
        except ValueError:
            payload = None
        return map_postgrest_error(
            exc.response.status_code,
            payload if isinstance(payload, dict) else None,
            operation=operation,
        )
    if isinstance(exc, httpx.TransportError):
        return error_for_type(
            ErrorType.NETWORK_ERROR,
            f"Request to spatial backend failed: {type(exc).__name__}",
            operation=operation,
            cause=exc,
        )
    return error_for_type(
        ErrorType.UNKNOWN,
        f"Unexpected error: {type(exc).__name__}: {exc}",
        operation=operation,
        cause=exc,
    )


def _row_to_feature(row: Mapping[str, Any]) -> Feature:
    properties: Dict[str, Any] = dict(row.get("properties") or {})
    for column, value in row.items():
        if column not in _RESERVED_COLUMNS and value is not None:
            properties.setdefault(column, value)

    raw_geometry = row.get("geometry_geojson") or row.get("geometry")
    geometry = decode_geometry(raw_geometry)
    return Feature(
        id=str(row["id"]),
        name=str(row.get("name") or row.get("name_en") or ""),
        geometry=geometry if geometry is not None else raw_geometry,
        properties=properties,
    )


class SupabaseBackend(SpatialBackend):
    """Spatial backend backed by Supabase RPC functions.

    Example:
        async with SupabaseBackend(url, key) as backend:
            country = await backend.find_country_at_point(48.85, 2.35)
    """

    def __init__(
        self,
        url: str,
        key: str,
        *,
        schema: str = DEFAULT_SCHEMA,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        if not url or not key:
            raise NoBackendError("Supabase URL and key are required")

        self.url = url.rstrip("/")
        self.schema = schema
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=self.url,
            timeout=timeout,
            transport=transport,
            headers={
                "apikey": key,
                "Authorization": f"Bearer {key}",
            },
        )

    @classmethod
    def from_settings(cls, settings: Any, **kwargs: Any) -> "SupabaseBackend":
        """Build from BoundarySettings (``backend_url``, ``backend_key``, ...)."""
        if not settings.backend_url or not settings.backend_key:
            raise NoBackendError(
                "Spatial backend is not configured",
                details={"backend_url": settings.backend_url or "(unset)"},
            )
        return cls(
            settings.backend_url,
            settings.backend_key,
            schema=settings.backend_schema,
            timeout=settings.timeout,
            **kwargs,
        )

    @property
    def name(self) -> str:
        return BACKEND_NAME

    async def rpc(
        self,
        function: str,
        params: Optional[Dict[str, Any]] = None,
        *,
        binary: bool = False,
    ) -> Any:
        """Call an RPC function in the configured schema.

        Args:
            function: Function name
            params: Named arguments
            binary: Return the raw body (for ``bytea`` results)

        Returns:
            Decoded JSON (or bytes when ``binary``); None for an empty body

        Raises:
            BackendError: Mapped from the transport failure or error response
        """
        headers = {
            "Accept-Profile": self.schema,
            "Content-Profile": self.schema,
            "Accept": "application/octet-stream" if binary else "application/json",
        }
        logger.debug("RPC %s.%s %s", self.schema, function, params)

        try:
            response = await self._client.post(
                f"/rest/v1/rpc/{function}", json=params or {}, headers=headers
            )
        except httpx.HTTPError as exc:
            raise to_backend_error(exc, BACKEND_NAME, operation=function) from exc

        if response.status_code >= 400:
            try:
                payload = response.json()
            except ValueError:
                payload = None
            raise map_postgrest_error(
                response.status_code,
                payload if isinstance(payload, dict) else None,
                operation=function,
            )

        if not response.content:
            return None
        if binary:
            return response.content
        try:
            return response.json()
        except ValueError as exc:
            raise error_for_type(
                ErrorType.UNKNOWN,
                "Backend returned a body that is not JSON",
                operation=function,
                cause=exc,
            ) from exc

    async def _first_row(self, function: str, params: Dict[str, Any]) -> Optional[Mapping[str, Any]]:
        data = await self.rpc(function, params)
        if isinstance(data, list):
            return data[0] if data else None
        return data or None

    async def find_country_at_point(self, lat: float, lng: float) -> Optional[AdminRegion]:
        validate_coordinates(lat, lng)
        row = await self._first_row(
            "find_country_at_point", {"point_lat": lat, "point_lng": lng}
        )
        return AdminRegion.from_row(row, RegionKind.COUNTRY) if row else None

    async def find_state_at_point(
        self,
        lat: float,
        lng: float,
        country_id: Optional[str] = None,
    ) -> Optional[AdminRegion]:
        validate_coordinates(lat, lng)
        params: Dict[str, Any] = {"point_lat": lat, "point_lng": lng}
        if country_id is not None:
            params["p_country_id"] = country_id
        row = await self._first_row("find_state_at_point", params)
        if not row:
            return None
        return AdminRegion.from_row(row, RegionKind.STATE, parent_id=country_id)

    async def get_boundaries_in_bbox(
        self,
        kind: RegionKind,
        zoom: float,
        bbox: BBox,
        country_filter: Optional[str] = None,
    ) -> List[Feature]:
        validate_bbox(bbox)
        zoom = validate_zoom(zoom)

        try:
            rows = await self.rpc(
                "get_simplified_boundaries_in_bbox",
                {
                    "boundary_type": kind.plural,
                    "zoom_level": int(zoom),
                    "bbox_west": bbox.west,
                    "bbox_south": bbox.south,
                    "bbox_east": bbox.east,
                    "bbox_north": bbox.north,
                    "country_filter": country_filter,
                },
            )
        except FunctionMissingError:
            fallback = _FALLBACK_FUNCTIONS[kind]
            logger.info(
                "get_simplified_boundaries_in_bbox unavailable; falling back to %s", fallback
            )
            params = {"country_code": country_filter} if kind is RegionKind.STATE else {}
            rows = await self.rpc(fallback, params)

        return [_row_to_feature(row) for row in rows or []]

    async def tile_exists(self, kind: RegionKind, z: int, x: int, y: int) -> bool:
        validate_tile(z, x, y)
        result = await self.rpc(
            "tile_has_data", {"table_name": kind.plural, "z": z, "x": x, "y": y}
        )
        return result is True

    async def get_tile(self, kind: RegionKind, z: int, x: int, y: int) -> Optional[bytes]:
        validate_tile(z, x, y)
        return await self.rpc(_TILE_FUNCTIONS[kind], {"z": z, "x": x, "y": y}, binary=True)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
