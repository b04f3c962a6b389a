"""Per-feature visual state.

A feature's style is a pure function of (selected, hovered): selected takes
precedence over hovered, and neither implies refetching geometry.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Dict

from pydantic import BaseModel, Field, field_validator

from boundaries.lib.constants import (
    DEFAULT_BORDER_COLOR,
    DEFAULT_BORDER_OPACITY,
    DEFAULT_BORDER_WIDTH,
    DEFAULT_HOVER_COLOR,
    DEFAULT_HOVER_OPACITY,
    DEFAULT_SELECTED_COLOR,
    DEFAULT_SELECTED_OPACITY,
)

__all__ = ["FeatureStyle", "LayerStyle", "feature_style"]

_HEX_COLOR = re.compile(r"^#(?:[0-9a-fA-F]{3}|[0-9a-fA-F]{6}|[0-9a-fA-F]{8})$")


class LayerStyle(BaseModel):
    """Colours and opacities for one boundary layer.

    Example YAML:
        styles:
          country:
            border_color: "#333333"
            selected_color: "#1d4ed8"
    """

    border_color: str = Field(default=DEFAULT_BORDER_COLOR, description="Outline colour")
    border_width: float = Field(default=DEFAULT_BORDER_WIDTH, ge=0, description="Outline width in pixels")
    border_opacity: float = Field(default=DEFAULT_BORDER_OPACITY, ge=0, le=1, description="Outline opacity")
    hover_color: str = Field(default=DEFAULT_HOVER_COLOR, description="Fill colour while hovered")
    hover_opacity: float = Field(default=DEFAULT_HOVER_OPACITY, ge=0, le=1, description="Fill opacity while hovered")
    selected_color: str = Field(default=DEFAULT_SELECTED_COLOR, description="Fill colour while selected")
    selected_opacity: float = Field(default=DEFAULT_SELECTED_OPACITY, ge=0, le=1, description="Fill opacity while selected")

    @field_validator("border_color", "hover_color", "selected_color")
    @classmethod
    def validate_color(cls, v: str) -> str:
        """Validate colours are hex strings (#rgb, #rrggbb or #rrggbbaa)."""
        if not _HEX_COLOR.match(v):
            raise ValueError(f"colour must be a hex string like '#ff0000', got {v!r}")
        return v.lower()


@dataclass(frozen=True)
class FeatureStyle:
    """Render parameters for a single feature."""

    color: str
    weight: float
    opacity: float
    fill_color: str
    fill_opacity: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "color": self.color,
            "weight": self.weight,
            "opacity": self.opacity,
            "fillColor": self.fill_color,
            "fillOpacity": self.fill_opacity,
        }


def feature_style(style: LayerStyle, *, selected: bool, hovered: bool) -> FeatureStyle:
    """Compute the style of a feature from its selection and hover flags.

    Unselected, unhovered features get a transparent fill.
    """
    if selected:
        fill_color, fill_opacity = style.selected_color, style.selected_opacity
    elif hovered:
        fill_color, fill_opacity = style.hover_color, style.hover_opacity
    else:
        fill_color, fill_opacity = "transparent", 0.0

    return FeatureStyle(
        color=style.border_color,
        weight=style.border_width,
        opacity=style.border_opacity,
        fill_color=fill_color,
        fill_opacity=fill_opacity,
    )
