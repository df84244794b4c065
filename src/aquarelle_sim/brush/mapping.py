"""
Aquarelle Sim.

Copyright (c) 2026 Shuoqi Chen
SPDX-License-Identifier: MIT OR Apache-2.0
"""
import math
from dataclasses import dataclass
from typing import NamedTuple, Tuple

from .configs import BrushSettings, ToolType

GRID_W = 400
GRID_H = 300


class CanvasBounds(NamedTuple):
    """On-screen bounding box of the canvas, in display pixels."""
    left: float
    top: float
    width: float
    height: float


@dataclass(frozen=True)
class BrushStroke:
    """One stamp worth of brush input, already in grid space."""
    tool: ToolType
    center_x: int
    center_y: int
    radius: float
    pressure: float
    water_load: float
    pigment_load: float
    color: Tuple[float, float, float]


def to_grid(px: float, py: float, bounds: CanvasBounds, grid_w: int = GRID_W, grid_h: int = GRID_H) -> Tuple[int, int]:
    """Maps a pointer position to a grid cell. Out-of-canvas positions are not rejected."""
    rel_x = (px - bounds.left) / bounds.width
    rel_y = (py - bounds.top) / bounds.height
    return int(math.floor(rel_x * grid_w)), int(math.floor(rel_y * grid_h))


def grid_radius(size_px: float, display_width: float, grid_w: int = GRID_W) -> float:
    return max(1.0, (size_px / display_width) * grid_w)


def make_stroke(brush: BrushSettings, px: float, py: float, bounds: CanvasBounds) -> BrushStroke:
    cx, cy = to_grid(px, py, bounds)
    return BrushStroke(
        tool=brush.tool,
        center_x=cx,
        center_y=cy,
        radius=grid_radius(brush.size, bounds.width),
        pressure=brush.pressure,
        water_load=brush.water_load,
        pigment_load=brush.pigment_load,
        color=tuple(brush.color),
    )
