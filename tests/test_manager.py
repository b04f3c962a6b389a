"""Tests for BoundaryManager layers, events, selection and marked locations."""

import asyncio

import pytest

from boundaries.lib.config import BoundaryConfig, CacheSettings, RetrySettings, SelectionPolicy, ZoomBand
from boundaries.lib.errors import (
    BackendNetworkError,
    ErrorType,
    FunctionMissingError,
    InvalidInputError,
    PermissionDeniedError,
)
from boundaries.lib.events import ALL_EVENTS, LOAD_ERROR, BoundaryLoadFailed
from boundaries.lib.manager import BoundaryManager, LayerStatus
from boundaries.lib.models import BBox, RegionKind, Viewport
from tests.conftest import EUROPE, FakeBackend, make_country, make_feature, make_state

COUNTRY = RegionKind.COUNTRY
STATE = RegionKind.STATE


@pytest.fixture
def manager(backend, fast_config):
    return BoundaryManager(backend, fast_config)


@pytest.fixture
def events(manager):
    received = []
    manager.subscribe(ALL_EVENTS, received.append)
    return received


def names(events):
    return [event.name for event in events]


@pytest.fixture
def events_for():
    def subscribe(manager):
        received = []
        manager.subscribe(ALL_EVENTS, received.append)
        return received

    return subscribe


class TestZoomGating:
    def test_low_zoom_loads_countries_only(self, manager, backend, events):
        asyncio.run(manager.on_viewport_changed(Viewport(EUROPE, zoom=3)))

        assert manager.layer(COUNTRY).status is LayerStatus.LOADED
        assert manager.layer(COUNTRY).feature_ids() == ["C1", "C2"]
        assert manager.layer(STATE).status is LayerStatus.HIDDEN
        assert backend.count("get_boundaries_in_bbox") == 1
        assert "countries-loaded" in names(events)

    def test_both_layers_in_band(self, manager, backend):
        asyncio.run(manager.on_viewport_changed(Viewport(EUROPE, zoom=6)))

        assert manager.layer("countries").status is LayerStatus.LOADED
        assert manager.layer("states").feature_ids() == ["S1", "S2", "S3"]
        assert manager.parent_of("S3") == "C2"

    def test_zooming_out_hides_states(self, manager, events):
        async def scenario():
            await manager.on_viewport_changed(Viewport(EUROPE, zoom=6))
            await manager.on_viewport_changed(Viewport(EUROPE, zoom=2))

        asyncio.run(scenario())
        states = manager.layer(STATE)
        assert states.status is LayerStatus.HIDDEN
        assert states.features == []
        assert names(events).count("states-hidden") == 1

    def test_hidden_layer_does_not_emit_hidden_again(self, manager, events):
        async def scenario():
            await manager.on_viewport_changed(Viewport(EUROPE, zoom=2))
            await manager.on_viewport_changed(Viewport(EUROPE, zoom=3))

        asyncio.run(scenario())
        assert "states-hidden" not in names(events)

    def test_disabled_band_never_loads(self, backend):
        config = BoundaryConfig(states=ZoomBand(min_zoom=4, max_zoom=18, enabled=False))
        manager = BoundaryManager(backend, config)
        asyncio.run(manager.on_viewport_changed(Viewport(EUROPE, zoom=8)))
        assert manager.layer(STATE).status is LayerStatus.HIDDEN
        assert all(call[1][0] is COUNTRY for call in backend.calls)

    def test_country_filter_applies_to_states(self, backend, fast_config):
        manager = BoundaryManager(backend, fast_config, country_filter="FR")
        asyncio.run(manager.on_viewport_changed(Viewport(EUROPE, zoom=6)))
        filters = {call[1][0]: call[1][3] for call in backend.calls}
        assert filters == {COUNTRY: None, STATE: "FR"}

    def test_same_viewport_is_served_from_cache(self, manager, backend):
        async def scenario():
            await manager.on_viewport_changed(Viewport(EUROPE, zoom=3))
            await manager.on_viewport_changed(Viewport(EUROPE, zoom=3))

        asyncio.run(scenario())
        assert backend.count("get_boundaries_in_bbox") == 1

    def test_empty_result_is_loaded_with_no_features(self, fast_config):
        manager = BoundaryManager(FakeBackend(), fast_config)
        asyncio.run(manager.on_viewport_changed(Viewport(EUROPE, zoom=3)))
        layer = manager.layer(COUNTRY)
        assert layer.status is LayerStatus.LOADED
        assert layer.features == []


class TestLoadFailures:
    def test_failure_emits_typed_event_and_keeps_features(self, manager, backend, events):
        async def scenario():
            await manager.on_viewport_changed(Viewport(EUROPE, zoom=3))
            backend.fail("get_boundaries_in_bbox", FunctionMissingError("no rpc"))
            await manager.on_viewport_changed(Viewport(BBox(0, 0, 10, 10), zoom=3))

        asyncio.run(scenario())

        failures = [e for e in events if e.name == LOAD_ERROR]
        assert len(failures) == 1
        failure = failures[0]
        assert isinstance(failure, BoundaryLoadFailed)
        assert failure.kind is COUNTRY
        assert failure.error_type is ErrorType.FUNCTION_MISSING
        assert failure.recoverable is False

        layer = manager.layer(COUNTRY)
        assert layer.feature_ids() == ["C1", "C2"]
        assert layer.status is LayerStatus.LOADED
        assert isinstance(layer.last_error, FunctionMissingError)

    def test_transient_failure_is_retried(self, manager, backend, events):
        backend.fail("get_boundaries_in_bbox", BackendNetworkError("reset"))
        asyncio.run(manager.on_viewport_changed(Viewport(EUROPE, zoom=3)))
        assert backend.count("get_boundaries_in_bbox") == 2
        assert LOAD_ERROR not in names(events)

    def test_invalid_viewport_is_reported_not_raised(self, manager, backend, events):
        asyncio.run(manager.on_viewport_changed(Viewport(BBox(0, 50, 10, 40), zoom=3)))
        failures = [e for e in events if e.name == LOAD_ERROR]
        assert [f.kind for f in failures] == [COUNTRY]
        assert failures[0].error_type is ErrorType.INVALID_INPUT
        assert backend.calls == []

    def test_listener_error_does_not_break_loading(self, manager):
        def broken(event):
            raise RuntimeError("listener bug")

        manager.subscribe("countries-loaded", broken)
        asyncio.run(manager.on_viewport_changed(Viewport(EUROPE, zoom=3)))
        assert manager.layer(COUNTRY).status is LayerStatus.LOADED

    def test_stale_response_is_discarded(self, fast_config):
        backend = FakeBackend(features={COUNTRY: [make_feature("C1")]})
        manager = BoundaryManager(backend, fast_config)

        async def scenario():
            gate = asyncio.Event()
            backend.gate = gate
            slow = asyncio.ensure_future(manager.on_viewport_changed(Viewport(EUROPE, zoom=3)))
            while backend.count("get_boundaries_in_bbox") < 1:
                await asyncio.sleep(0)

            backend.gate = None
            backend.features = {COUNTRY: [make_feature("C9")]}
            await manager.on_viewport_changed(Viewport(BBox(100, 0, 120, 20), zoom=3))
            gate.set()
            await slow

        asyncio.run(scenario())
        # The first response lands after the newer load started and is ignored
        assert manager.layer(COUNTRY).feature_ids() == ["C9"]


class TestDebouncedViewport:
    def test_rapid_pans_load_once(self, backend):
        config = BoundaryConfig(
            retry=RetrySettings(max_retries=0),
            cache=CacheSettings(viewport_debounce=0.02),
        )
        manager = BoundaryManager(backend, config)

        async def scenario():
            await asyncio.gather(
                *(
                    manager.on_viewport_changed(Viewport(BBox(i, 35, 30 + i, 60), zoom=3))
                    for i in range(4)
                )
            )

        asyncio.run(scenario())
        assert backend.count("get_boundaries_in_bbox") == 1
        assert backend.calls[0][1][2] == BBox(3, 35, 33, 60)
        assert manager.layer(COUNTRY).status is LayerStatus.LOADED

    def test_zooming_out_cancels_waiting_state_load(self, backend):
        config = BoundaryConfig(
            retry=RetrySettings(max_retries=0),
            cache=CacheSettings(viewport_debounce=0.05),
        )
        manager = BoundaryManager(backend, config)

        async def scenario():
            zoomed_in = asyncio.ensure_future(manager.on_viewport_changed(Viewport(EUROPE, zoom=6)))
            while manager.coordinator.get_stats().debounced < 2:
                await asyncio.sleep(0)

            await manager.on_viewport_changed(Viewport(EUROPE, zoom=2))
            await zoomed_in
            await asyncio.sleep(0.1)

        asyncio.run(scenario())

        state_calls = [call for call in backend.calls if call[1][0] is STATE]
        assert state_calls == []
        assert manager.layer(STATE).status is LayerStatus.HIDDEN
        assert manager.coordinator.get_stats().debounced == 0


class TestVectorTiles:
    def test_tile_mode_loads_tiles(self, backend):
        manager = BoundaryManager(backend, BoundaryConfig(use_vector_tiles=True))
        asyncio.run(manager.on_viewport_changed(Viewport(BBox(-10, 35, 10, 55), zoom=2)))

        layer = manager.layer(COUNTRY)
        assert layer.status is LayerStatus.LOADED
        assert layer.features == []
        assert layer.tiles
        assert all(isinstance(data, bytes) for data in layer.tiles.values())
        assert layer.tiles[(2, 1, 1)] == b"country/2/1/1"
        assert backend.count("get_boundaries_in_bbox") == 0
        assert all(call[0] == "get_tile" for call in backend.calls)

    def test_permanent_tile_failure_is_reported(self, backend, events_for):
        manager = BoundaryManager(backend, BoundaryConfig(use_vector_tiles=True))
        received = events_for(manager)
        backend.fail("get_tile", PermissionDeniedError("row-level security"))

        asyncio.run(manager.on_viewport_changed(Viewport(BBox(-10, 35, 10, 55), zoom=2)))

        layer = manager.layer(COUNTRY)
        assert layer.status is LayerStatus.LOADED
        assert isinstance(layer.last_error, PermissionDeniedError)
        failures = [e for e in received if e.name == LOAD_ERROR]
        assert [f.error_type for f in failures] == [ErrorType.PERMISSION_DENIED]
        assert "countries-loaded" not in names(received)

    def test_partial_transient_tile_failure_still_loads(self, backend, events_for):
        config = BoundaryConfig(use_vector_tiles=True, retry=RetrySettings(max_retries=0))
        manager = BoundaryManager(backend, config)
        received = events_for(manager)
        backend.fail("get_tile", BackendNetworkError("reset"))

        asyncio.run(manager.on_viewport_changed(Viewport(BBox(-10, 35, 10, 55), zoom=2)))

        layer = manager.layer(COUNTRY)
        assert layer.last_error is None
        assert list(layer.tiles.values()).count(None) == 1
        assert LOAD_ERROR not in names(received)

    def test_all_tiles_failing_is_reported(self, backend, events_for):
        config = BoundaryConfig(use_vector_tiles=True, retry=RetrySettings(max_retries=0))
        manager = BoundaryManager(backend, config)
        received = events_for(manager)
        backend.fail("get_tile", *(BackendNetworkError("reset") for _ in range(20)))

        asyncio.run(manager.on_viewport_changed(Viewport(BBox(-10, 35, 10, 55), zoom=2)))

        assert isinstance(manager.layer(COUNTRY).last_error, BackendNetworkError)
        assert [e.name for e in received].count(LOAD_ERROR) == 1

    def test_state_click_in_tile_mode_uses_feature_parent(self, backend):
        manager = BoundaryManager(backend, BoundaryConfig(use_vector_tiles=True))
        asyncio.run(manager.on_viewport_changed(Viewport(EUROPE, zoom=6)))

        manager.on_feature_clicked("state", "S1", parent_id="C1")

        assert manager.selection.selected_states == {"S1"}
        assert manager.selection.selected_countries == {"C1"}
        assert manager.parent_of("S1") == "C1"


class TestPointerInteraction:
    def test_hover_switch_emits_hover_out_first(self, manager, events):
        manager.on_feature_hovered(COUNTRY, "C1")
        manager.on_feature_hovered(COUNTRY, "C2")
        manager.on_feature_hovered(COUNTRY, "C2")
        manager.on_feature_hover_out(COUNTRY)

        assert [(e.name, e.payload["id"]) for e in events] == [
            ("country-hover", "C1"),
            ("country-hover-out", "C1"),
            ("country-hover", "C2"),
            ("country-hover-out", "C2"),
        ]

    def test_click_on_loaded_state_selects_parent(self, manager, events):
        asyncio.run(manager.on_viewport_changed(Viewport(EUROPE, zoom=6)))
        events.clear()

        manager.on_feature_clicked("state", "S3")

        assert names(events) == ["state-click", "state-selected", "country-selected"]
        assert events[2].payload == {"id": "C2", "cause": "parent"}
        assert manager.selection.selected_countries == {"C2"}

    def test_country_click_cascades(self, manager, events):
        asyncio.run(manager.on_viewport_changed(Viewport(EUROPE, zoom=6)))
        manager.select(STATE, "S1")
        manager.select(STATE, "S2")
        events.clear()

        manager.on_feature_clicked(COUNTRY, "C1")

        assert names(events) == ["country-click", "country-deselected", "state-deselected", "state-deselected"]
        assert manager.selection.selected_states == set()

    def test_style_for_reflects_state(self, manager):
        manager.on_feature_hovered(STATE, "S1")
        hovered = manager.style_for(STATE, "S1")
        manager.select(STATE, "S1")
        selected = manager.style_for(STATE, "S1")

        assert hovered.fill_color == manager.config.styles.state.hover_color
        assert selected.fill_color == manager.config.styles.state.selected_color

    def test_hiding_layer_clears_hover(self, manager, events):
        async def scenario():
            await manager.on_viewport_changed(Viewport(EUROPE, zoom=6))
            manager.on_feature_hovered(STATE, "S1")
            await manager.on_viewport_changed(Viewport(EUROPE, zoom=2))

        asyncio.run(scenario())
        assert manager.selection.hovered(STATE) is None
        assert "state-hover-out" in names(events)


class TestMarkedLocations:
    def test_click_below_threshold_does_nothing(self, manager, backend):
        assert asyncio.run(manager.on_map_clicked(48.85, 2.35, zoom=5)) is None
        assert backend.calls == []

    def test_click_marks_location_and_selects_state(self, manager, events):
        location = asyncio.run(manager.on_map_clicked(48.85, 2.35, zoom=10))

        assert location.parent_state.id == "S1"
        assert location.parent_country.id == "C1"
        assert manager.marked_locations == {location.id: location}
        assert manager.selection.selected_states == {"S1"}
        assert manager.selection.selected_countries == {"C1"}
        assert names(events) == ["location-marked", "state-selected", "country-selected"]

    def test_removing_last_location_unwinds_selection(self, manager):
        async def scenario():
            first = await manager.on_map_clicked(48.85, 2.35, zoom=10)
            second = await manager.on_map_clicked(48.86, 2.36, zoom=10)
            return first, second

        first, second = asyncio.run(scenario())

        assert manager.remove_marked_location(first.id) == []
        assert manager.selection.selected_states == {"S1"}

        changes = manager.remove_marked_location(second.id)
        assert [(c.kind, c.region_id, c.selected) for c in changes] == [
            (STATE, "S1", False),
            (COUNTRY, "C1", False),
        ]
        assert manager.remove_marked_location(second.id) == []

    def test_country_stays_while_other_states_selected(self, manager):
        location = asyncio.run(manager.on_map_clicked(48.85, 2.35, zoom=10))
        manager.selection.select(STATE, "S2", "C1")

        manager.remove_marked_location(location.id)

        assert manager.selection.selected_countries == {"C1"}
        assert manager.selection.selected_states == {"S2"}

    def test_policy_can_keep_state_selected(self, backend):
        config = BoundaryConfig(selection=SelectionPolicy(cascade_location_to_state=False))
        manager = BoundaryManager(backend, config)
        location = asyncio.run(manager.on_map_clicked(48.85, 2.35, zoom=10))

        assert manager.remove_marked_location(location.id) == []
        assert manager.selection.selected_states == {"S1"}

    def test_country_only_location(self, fast_config):
        backend = FakeBackend(country=make_country("C7"), state=None)
        manager = BoundaryManager(backend, fast_config)
        location = asyncio.run(manager.on_map_clicked(10.0, 10.0, zoom=9))

        assert location.parent_state is None
        assert manager.selection.selected_countries == {"C7"}

    def test_resolver_failure_still_marks_location(self, fast_config):
        backend = FakeBackend(country=make_country(), state=make_state())
        backend.fail("find_country_at_point", FunctionMissingError("no rpc"))
        manager = BoundaryManager(backend, fast_config)

        location = asyncio.run(manager.on_map_clicked(10.0, 10.0, zoom=9))

        assert location.parent_country is None
        assert manager.selection.selected_countries == set()

    def test_invalid_coordinates_raise(self, manager):
        with pytest.raises(InvalidInputError):
            asyncio.run(manager.on_map_clicked(120.0, 0.0, zoom=10))


class TestLifecycle:
    def test_close_resets_everything(self, manager, backend):
        async def scenario():
            async with manager:
                await manager.on_viewport_changed(Viewport(EUROPE, zoom=6))
                await manager.on_map_clicked(48.85, 2.35, zoom=10)

        asyncio.run(scenario())

        assert manager.layer(COUNTRY).status is LayerStatus.HIDDEN
        assert manager.marked_locations == {}
        assert manager.selection.selected_states == set()
        assert manager.coordinator.get_stats().cached == 0
        assert backend.closed is False
