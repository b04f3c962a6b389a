"""Data model for administrative boundaries.

Regions are immutable once fetched. A region's ``id`` is stable across zoom
levels even though the geometry delivered for it varies in simplification
detail.
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional

logger = logging.getLogger(__name__)

__all__ = [
    "RegionKind",
    "BBox",
    "Viewport",
    "AdminRegion",
    "Feature",
    "MarkedLocation",
    "decode_geometry",
    "features_to_geojson",
]


class RegionKind(str, Enum):
    """Administrative level of a region."""

    COUNTRY = "country"
    STATE = "state"

    @property
    def plural(self) -> str:
        return "countries" if self is RegionKind.COUNTRY else "states"

    @classmethod
    def parse(cls, value: Any) -> "RegionKind":
        """Accept a RegionKind, its value, or its plural form."""
        if isinstance(value, RegionKind):
            return value
        text = str(value).strip().lower()
        for kind in cls:
            if text in (kind.value, kind.plural):
                return kind
        raise ValueError(f"Unknown region kind: {value!r}")


@dataclass(frozen=True)
class BBox:
    """Axis-aligned latitude/longitude rectangle."""

    west: float
    south: float
    east: float
    north: float

    def as_params(self) -> Dict[str, float]:
        return {
            "west": self.west,
            "south": self.south,
            "east": self.east,
            "north": self.north,
        }

    @classmethod
    def from_sequence(cls, values: Iterable[float]) -> "BBox":
        west, south, east, north = (float(v) for v in values)
        return cls(west=west, south=south, east=east, north=north)


@dataclass(frozen=True)
class Viewport:
    """Visible map area plus zoom, as delivered by the map's move events."""

    bbox: BBox
    zoom: float


@dataclass(frozen=True)
class AdminRegion:
    """A country or state with its (possibly simplified) geometry."""

    id: str
    kind: RegionKind
    name: str
    codes: Mapping[str, str] = field(default_factory=dict)
    parent_id: Optional[str] = None
    geometry: Optional[Mapping[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "name": self.name,
            "codes": dict(self.codes),
            "parent_id": self.parent_id,
            "geometry": self.geometry,
        }

    @classmethod
    def from_row(
        cls,
        row: Mapping[str, Any],
        kind: RegionKind,
        *,
        parent_id: Optional[str] = None,
    ) -> "AdminRegion":
        """Build a region from a backend row.

        Recognised code columns are ``iso_a2``/``iso_a3`` for countries and
        ``adm1_code`` for states; the parent comes from ``country_id`` when
        the row carries one.
        """
        codes = {}
        for column, code in (
            ("iso_a2", "iso2"),
            ("iso_a3", "iso3"),
            ("iso2", "iso2"),
            ("iso3", "iso3"),
            ("adm1_code", "adm1"),
        ):
            if row.get(column):
                codes[code] = str(row[column])

        if kind is RegionKind.STATE and parent_id is None and row.get("country_id") is not None:
            parent_id = str(row["country_id"])

        return cls(
            id=str(row["id"]),
            kind=kind,
            name=str(row.get("name") or ""),
            codes=codes,
            parent_id=parent_id if kind is RegionKind.STATE else None,
            geometry=decode_geometry(row.get("geometry") or row.get("geometry_geojson")),
        )


@dataclass(frozen=True)
class Feature:
    """A renderable boundary returned by a bounding-box query."""

    id: str
    name: str
    geometry: Any
    properties: Mapping[str, Any] = field(default_factory=dict)

    @property
    def parent_id(self) -> Optional[str]:
        value = self.properties.get("country_id")
        return None if value is None else str(value)

    def to_region(self, kind: RegionKind) -> AdminRegion:
        row = dict(self.properties)
        row.update({"id": self.id, "name": self.name, "geometry": self.geometry})
        return AdminRegion.from_row(row, kind)


@dataclass(frozen=True)
class MarkedLocation:
    """A user-marked point with its enclosing regions resolved once at creation."""

    lat: float
    lng: float
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    parent_state: Optional[AdminRegion] = None
    parent_country: Optional[AdminRegion] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "lat": self.lat,
            "lng": self.lng,
            "timestamp": self.timestamp.isoformat(),
            "parent_state": self.parent_state.id if self.parent_state else None,
            "parent_country": self.parent_country.id if self.parent_country else None,
        }


def decode_geometry(value: Any) -> Optional[Dict[str, Any]]:
    """Return GeoJSON geometry as a dict, or None when it cannot be decoded."""
    if value is None:
        return None
    if isinstance(value, Mapping):
        return dict(value)
    if isinstance(value, (str, bytes)):
        try:
            decoded = json.loads(value)
        except ValueError:
            return None
        return decoded if isinstance(decoded, dict) else None
    return None


def features_to_geojson(features: Iterable[Feature]) -> Dict[str, Any]:
    """Convert features to a GeoJSON FeatureCollection.

    Geometry may arrive as a dict or a JSON string. Features whose geometry
    cannot be decoded are dropped.
    """
    collection: List[Dict[str, Any]] = []
    for feature in features:
        geometry = decode_geometry(feature.geometry)
        if geometry is None:
            logger.warning("Dropping feature %s: undecodable geometry", feature.id)
            continue

        properties = {"id": feature.id, "name": feature.name}
        properties.update(feature.properties)
        collection.append(
            {
                "type": "Feature",
                "id": feature.id,
                "geometry": geometry,
                "properties": properties,
            }
        )

    return {"type": "FeatureCollection", "features": collection}
