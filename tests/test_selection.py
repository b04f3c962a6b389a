"""Tests for hierarchical selection, hover state and feature styling."""

import random

from boundaries.lib.models import RegionKind
from boundaries.lib.selection import AUTO_PARENT, CASCADE, EXPLICIT, SelectionChange, SelectionState
from boundaries.lib.styles import LayerStyle, feature_style

COUNTRY = RegionKind.COUNTRY
STATE = RegionKind.STATE


class TestSelectionCascade:
    def test_selecting_state_selects_parent_then_country_deselect_cascades(self):
        selection = SelectionState()

        selection.toggle_select(STATE, "S1", "C1")
        assert selection.selected_countries == {"C1"}
        assert selection.selected_states == {"S1"}

        selection.toggle_select(COUNTRY, "C1")
        assert selection.selected_countries == set()
        assert selection.selected_states == set()

    def test_select_state_reports_parent_change(self):
        changes = SelectionState().select(STATE, "S1", "C1")
        assert changes == [
            SelectionChange(STATE, "S1", True, EXPLICIT),
            SelectionChange(COUNTRY, "C1", True, AUTO_PARENT),
        ]

    def test_parent_already_selected_is_not_reported(self):
        selection = SelectionState()
        selection.select(COUNTRY, "C1")
        assert selection.select(STATE, "S1", "C1") == [SelectionChange(STATE, "S1", True)]

    def test_deselecting_state_keeps_country(self):
        selection = SelectionState()
        selection.select(STATE, "S1", "C1")
        changes = selection.toggle_select(STATE, "S1")
        assert changes == [SelectionChange(STATE, "S1", False)]
        assert selection.selected_countries == {"C1"}

    def test_country_cascade_only_touches_its_own_states(self):
        selection = SelectionState()
        selection.select(STATE, "S1", "C1")
        selection.select(STATE, "S2", "C1")
        selection.select(STATE, "S3", "C2")

        changes = selection.deselect(COUNTRY, "C1")

        assert changes == [
            SelectionChange(COUNTRY, "C1", False),
            SelectionChange(STATE, "S1", False, CASCADE),
            SelectionChange(STATE, "S2", False, CASCADE),
        ]
        assert selection.selected_states == {"S3"}
        assert selection.selected_countries == {"C2"}

    def test_state_without_known_parent(self):
        selection = SelectionState()
        assert selection.select(STATE, "S9") == [SelectionChange(STATE, "S9", True)]
        assert selection.selected_countries == set()

    def test_repeat_select_is_a_no_op(self):
        selection = SelectionState()
        selection.select(COUNTRY, "C1")
        assert selection.select(COUNTRY, "C1") == []
        assert selection.deselect(STATE, "missing") == []

    def test_clear_deselects_states_first(self):
        selection = SelectionState()
        selection.select(STATE, "S1", "C1")
        changes = selection.clear()
        assert [c.kind for c in changes] == [STATE, COUNTRY]
        assert selection.to_dict()["selected_countries"] == []

    def test_cascade_invariant_holds_for_random_operations(self):
        rng = random.Random(1234)
        parents = {"S1": "C1", "S2": "C1", "S3": "C2", "S4": "C3"}
        selection = SelectionState()

        for _ in range(500):
            if rng.random() < 0.6:
                state = rng.choice(sorted(parents))
                selection.toggle_select(STATE, state, parents[state])
            else:
                selection.toggle_select(COUNTRY, rng.choice(["C1", "C2", "C3"]))

            for state in selection.selected_states:
                assert parents[state] in selection.selected_countries
                assert selection.parent_of(state) == parents[state]


class TestHover:
    def test_hover_switch_reports_cleared_id(self):
        selection = SelectionState()
        assert selection.hover(COUNTRY, "C1") is None
        assert selection.hover(COUNTRY, "C2") == "C1"
        assert selection.hovered(COUNTRY) == "C2"

    def test_hover_kinds_are_independent(self):
        selection = SelectionState()
        selection.hover(COUNTRY, "C1")
        selection.hover(STATE, "S1")
        assert selection.clear_hover(STATE) == "S1"
        assert selection.hovered(COUNTRY) == "C1"

    def test_same_id_hover_is_idempotent(self):
        selection = SelectionState()
        selection.hover(STATE, "S1")
        assert selection.hover(STATE, "S1") is None
        assert selection.hovered(STATE) == "S1"

    def test_reset_clears_hover_and_selection(self):
        selection = SelectionState()
        selection.select(STATE, "S1", "C1")
        selection.hover(STATE, "S1")
        selection.reset()
        assert selection.to_dict() == {
            "selected_countries": [],
            "selected_states": [],
            "hovered_country": None,
            "hovered_state": None,
        }


class TestFeatureStyle:
    def test_selected_wins_over_hovered(self):
        style = LayerStyle()
        result = feature_style(style, selected=True, hovered=True)
        assert result.fill_color == style.selected_color
        assert result.fill_opacity == style.selected_opacity

    def test_hovered_only(self):
        result = feature_style(LayerStyle(hover_color="#00FF00"), selected=False, hovered=True)
        assert result.fill_color == "#00ff00"

    def test_idle_feature_is_transparent(self):
        result = feature_style(LayerStyle(), selected=False, hovered=False).to_dict()
        assert result["fillColor"] == "transparent"
        assert result["fillOpacity"] == 0.0
        assert result["color"] == "#666666"
