"""Outbound events from the boundary manager.

Listeners are plain callables registered by event name (or ``"*"`` for all
events). Dispatch is synchronous; a listener that raises is logged and
never breaks the caller.

Event names:
    countries-loaded, states-loaded         features for a layer arrived
    countries-hidden, states-hidden         layer left its zoom band
    boundary-load-error                     BoundaryLoadFailed
    country-selected, country-deselected    (and state-*) selection changes
    country-click, country-hover, country-hover-out  (and state-*)
    location-marked, location-removed
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional

from boundaries.lib.errors import ErrorType, classify_error
from boundaries.lib.models import RegionKind, Viewport

logger = logging.getLogger(__name__)

__all__ = [
    "ALL_EVENTS",
    "LOAD_ERROR",
    "BoundaryEvent",
    "BoundaryLoadFailed",
    "EventEmitter",
    "Listener",
    "LOCATION_MARKED",
    "LOCATION_REMOVED",
]

ALL_EVENTS = "*"
LOAD_ERROR = "boundary-load-error"
LOCATION_MARKED = "location-marked"
LOCATION_REMOVED = "location-removed"


@dataclass(frozen=True)
class BoundaryEvent:
    name: str
    payload: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class BoundaryLoadFailed(BoundaryEvent):
    """A layer failed to load; the layer keeps its last good features."""

    name: str = LOAD_ERROR
    kind: Optional[RegionKind] = None
    error: Optional[BaseException] = None
    error_type: ErrorType = ErrorType.UNKNOWN
    recoverable: bool = False
    viewport: Optional[Viewport] = None

    @classmethod
    def from_error(
        cls,
        kind: RegionKind,
        error: BaseException,
        viewport: Optional[Viewport] = None,
    ) -> "BoundaryLoadFailed":
        classification = classify_error(error)
        return cls(
            kind=kind,
            error=error,
            error_type=classification.error_type,
            recoverable=classification.recoverable,
            viewport=viewport,
            payload={"kind": kind.value, "message": str(error)},
        )


Listener = Callable[[BoundaryEvent], None]


class EventEmitter:
    """Name-keyed synchronous event dispatch."""

    def __init__(self) -> None:
        self._listeners: Dict[str, List[Listener]] = {}

    def subscribe(self, name: str, listener: Listener) -> Callable[[], None]:
        """Register ``listener`` for ``name``; returns a function that unregisters it."""
        self._listeners.setdefault(name, []).append(listener)

        def unsubscribe() -> None:
            self.unsubscribe(name, listener)

        return unsubscribe

    def unsubscribe(self, name: str, listener: Listener) -> None:
        listeners = self._listeners.get(name, [])
        if listener in listeners:
            listeners.remove(listener)

    def emit(self, event: BoundaryEvent) -> None:
        targets = list(self._listeners.get(event.name, []))
        if event.name != ALL_EVENTS:
            targets.extend(self._listeners.get(ALL_EVENTS, []))

        for listener in targets:
            try:
                listener(event)
            except Exception:
                logger.exception("Listener for %s raised", event.name)

    def clear(self) -> None:
        self._listeners.clear()
