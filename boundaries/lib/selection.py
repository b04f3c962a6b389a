"""Hierarchical selection and hover state.

Pure state transitions, independent of network state:

- Selecting a state also selects its parent country.
- Deselecting a country also deselects every state under it.
- Deselecting a state never touches its country.

Each mutation returns the list of SelectionChange records it produced, in
order, so the owner can emit events for them.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Set

from boundaries.lib.models import RegionKind

__all__ = ["SelectionChange", "SelectionState"]

EXPLICIT = "explicit"
AUTO_PARENT = "parent"
CASCADE = "cascade"


@dataclass(frozen=True)
class SelectionChange:
    """One id entering or leaving a selection set."""

    kind: RegionKind
    region_id: str
    selected: bool
    cause: str = EXPLICIT


class SelectionState:
    """Selected and hovered regions for one map.

    ``selected_countries`` and ``selected_states`` hold region ids. Each
    selected state remembers the parent recorded when it was selected.
    """

    def __init__(self) -> None:
        self.selected_countries: Set[str] = set()
        self.selected_states: Set[str] = set()
        self.hovered_country: Optional[str] = None
        self.hovered_state: Optional[str] = None
        self._state_parents: Dict[str, Optional[str]] = {}

    def _selected(self, kind: RegionKind) -> Set[str]:
        return self.selected_countries if kind is RegionKind.COUNTRY else self.selected_states

    def is_selected(self, kind: RegionKind, region_id: str) -> bool:
        return region_id in self._selected(kind)

    def parent_of(self, state_id: str) -> Optional[str]:
        return self._state_parents.get(state_id)

    def states_under(self, country_id: str) -> List[str]:
        return sorted(
            state_id
            for state_id in self.selected_states
            if self._state_parents.get(state_id) == country_id
        )

    # ------------------------------------------------------------------
    # Hover
    # ------------------------------------------------------------------

    def hovered(self, kind: RegionKind) -> Optional[str]:
        return self.hovered_country if kind is RegionKind.COUNTRY else self.hovered_state

    def _set_hovered(self, kind: RegionKind, region_id: Optional[str]) -> None:
        if kind is RegionKind.COUNTRY:
            self.hovered_country = region_id
        else:
            self.hovered_state = region_id

    def hover(self, kind: RegionKind, region_id: str) -> Optional[str]:
        """Set the hovered id for ``kind``.

        Returns the previously hovered id when a different one had to be
        cleared first, else None.
        """
        previous = self.hovered(kind)
        if previous == region_id:
            return None
        cleared = self.clear_hover(kind) if previous is not None else None
        self._set_hovered(kind, region_id)
        return cleared

    def clear_hover(self, kind: RegionKind) -> Optional[str]:
        """Clear the hovered id for ``kind``; returns the id that was cleared."""
        previous = self.hovered(kind)
        self._set_hovered(kind, None)
        return previous

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def select(
        self,
        kind: RegionKind,
        region_id: str,
        parent_id: Optional[str] = None,
    ) -> List[SelectionChange]:
        changes: List[SelectionChange] = []

        if kind is RegionKind.STATE:
            if region_id in self.selected_states:
                return changes
            self.selected_states.add(region_id)
            self._state_parents[region_id] = parent_id
            changes.append(SelectionChange(kind, region_id, True))
            if parent_id is not None and parent_id not in self.selected_countries:
                self.selected_countries.add(parent_id)
                changes.append(SelectionChange(RegionKind.COUNTRY, parent_id, True, AUTO_PARENT))
            return changes

        if region_id not in self.selected_countries:
            self.selected_countries.add(region_id)
            changes.append(SelectionChange(kind, region_id, True))
        return changes

    def deselect(self, kind: RegionKind, region_id: str) -> List[SelectionChange]:
        changes: List[SelectionChange] = []

        if kind is RegionKind.STATE:
            if region_id in self.selected_states:
                self.selected_states.discard(region_id)
                self._state_parents.pop(region_id, None)
                changes.append(SelectionChange(kind, region_id, False))
            return changes

        if region_id not in self.selected_countries:
            return changes
        self.selected_countries.discard(region_id)
        changes.append(SelectionChange(kind, region_id, False))
        for state_id in self.states_under(region_id):
            self.selected_states.discard(state_id)
            self._state_parents.pop(state_id, None)
            changes.append(SelectionChange(RegionKind.STATE, state_id, False, CASCADE))
        return changes

    def toggle_select(
        self,
        kind: RegionKind,
        region_id: str,
        parent_id: Optional[str] = None,
    ) -> List[SelectionChange]:
        if self.is_selected(kind, region_id):
            return self.deselect(kind, region_id)
        return self.select(kind, region_id, parent_id)

    def clear(self) -> List[SelectionChange]:
        """Deselect everything, states first."""
        changes = [
            SelectionChange(RegionKind.STATE, state_id, False)
            for state_id in sorted(self.selected_states)
        ]
        changes.extend(
            SelectionChange(RegionKind.COUNTRY, country_id, False)
            for country_id in sorted(self.selected_countries)
        )
        self.selected_states.clear()
        self.selected_countries.clear()
        self._state_parents.clear()
        return changes

    def reset(self) -> None:
        self.clear()
        self.hovered_country = None
        self.hovered_state = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "selected_countries": sorted(self.selected_countries),
            "selected_states": sorted(self.selected_states),
            "hovered_country": self.hovered_country,
            "hovered_state": self.hovered_state,
        }
