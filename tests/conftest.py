"""Pytest configuration and fixtures."""

import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import pytest

# Add the project root to the Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from boundaries.lib.backend import SpatialBackend  # noqa: E402
from boundaries.lib.config import BoundaryConfig, RetrySettings  # noqa: E402
from boundaries.lib.models import AdminRegion, BBox, Feature, RegionKind  # noqa: E402
from boundaries.lib.resilience import RetryExecutor, RetryOptions  # noqa: E402


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast tests without I/O")
    config.addinivalue_line("markers", "integration: tests touching files or subprocesses")


EUROPE = BBox(west=-10.0, south=35.0, east=30.0, north=60.0)


def make_country(region_id: str = "C1", name: str = "Country One") -> AdminRegion:
    return AdminRegion(id=region_id, kind=RegionKind.COUNTRY, name=name, codes={"iso2": region_id[:2]})


def make_state(region_id: str = "S1", parent_id: Optional[str] = "C1", name: str = "State One") -> AdminRegion:
    return AdminRegion(id=region_id, kind=RegionKind.STATE, name=name, parent_id=parent_id)


def make_feature(region_id: str, parent_id: Optional[str] = None) -> Feature:
    properties: Dict[str, Any] = {}
    if parent_id is not None:
        properties["country_id"] = parent_id
    return Feature(
        id=region_id,
        name=f"Region {region_id}",
        geometry={"type": "Polygon", "coordinates": [[[0, 0], [1, 0], [1, 1], [0, 0]]]},
        properties=properties,
    )


class ManualClock:
    """Monotonic clock advanced explicitly by the test."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class SleepRecorder:
    """Stand-in for asyncio.sleep that records delays and returns immediately."""

    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class FakeBackend(SpatialBackend):
    """In-memory spatial backend that records every call.

    ``fail(method, *errors)`` queues exceptions raised by the next calls of
    ``method``. Set ``gate`` to an asyncio.Event (created inside the running
    loop) to hold calls until it is set.
    """

    def __init__(
        self,
        *,
        country: Optional[AdminRegion] = None,
        state: Optional[AdminRegion] = None,
        features: Optional[Dict[RegionKind, List[Feature]]] = None,
        tiles: Optional[Dict[Tuple[str, int, int, int], bytes]] = None,
        tile_data: bool = True,
    ) -> None:
        self.country = country
        self.state = state
        self.features = features or {}
        self.tiles = tiles or {}
        self.tile_data = tile_data
        self.calls: List[Tuple[str, Tuple[Any, ...]]] = []
        self.failures: Dict[str, List[BaseException]] = {}
        self.gate = None
        self.closed = False

    @property
    def name(self) -> str:
        return "fake"

    def fail(self, method: str, *errors: BaseException) -> None:
        self.failures.setdefault(method, []).extend(errors)

    def count(self, method: str) -> int:
        return sum(1 for name, _ in self.calls if name == method)

    async def _call(self, method: str, *args: Any) -> None:
        self.calls.append((method, args))
        if self.gate is not None:
            await self.gate.wait()
        queued = self.failures.get(method)
        if queued:
            raise queued.pop(0)

    async def find_country_at_point(self, lat, lng):
        await self._call("find_country_at_point", lat, lng)
        return self.country

    async def find_state_at_point(self, lat, lng, country_id=None):
        await self._call("find_state_at_point", lat, lng, country_id)
        return self.state

    async def get_boundaries_in_bbox(self, kind, zoom, bbox, country_filter=None):
        # Snapshot before waiting so a held call returns what was current when it started
        features = list(self.features.get(kind, []))
        await self._call("get_boundaries_in_bbox", kind, zoom, bbox, country_filter)
        return features

    async def tile_exists(self, kind, z, x, y):
        await self._call("tile_exists", kind, z, x, y)
        return self.tile_data

    async def get_tile(self, kind, z, x, y):
        await self._call("get_tile", kind, z, x, y)
        if (kind.value, z, x, y) in self.tiles:
            return self.tiles[(kind.value, z, x, y)]
        return f"{kind.value}/{z}/{x}/{y}".encode() if self.tile_data else None

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def sleeps():
    return SleepRecorder()


@pytest.fixture
def executor(sleeps):
    """RetryExecutor with no jitter and instant sleeps."""
    return RetryExecutor(RetryOptions(max_retries=3, base_delay=1.0, max_delay=30.0, jitter=0.0), sleep=sleeps)


@pytest.fixture
def backend():
    return FakeBackend(
        country=make_country(),
        state=make_state(),
        features={
            RegionKind.COUNTRY: [make_feature("C1"), make_feature("C2")],
            RegionKind.STATE: [make_feature("S1", "C1"), make_feature("S2", "C1"), make_feature("S3", "C2")],
        },
    )


@pytest.fixture
def fast_config():
    """Default configuration with a single immediate retry."""
    return BoundaryConfig(retry=RetrySettings(max_retries=1, base_delay=0.0, max_delay=0.0, jitter=0.0))
