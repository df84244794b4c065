"""
Aquarelle Sim.

Copyright (c) 2026 Shuoqi Chen
SPDX-License-Identifier: MIT OR Apache-2.0
"""
from typing import Optional

import numpy as np

from .brush import FluidEngine, BrushSettings, SimulationSettings
from .brush.configs import clamp_to_range
from .brush.mapping import CanvasBounds, BrushStroke, make_stroke


class FrameScheduler:
    """Drives one engine: a tick per display frame, plus pointer-driven stamps.

    Both entry points run on the caller's thread and each completes before
    returning, so a stamp never lands in the middle of a transport sweep.
    """

    def __init__(self, engine: FluidEngine, brush: Optional[BrushSettings] = None, sim: Optional[SimulationSettings] = None):
        self.engine = engine
        self.brush = brush if brush is not None else BrushSettings()
        if sim is not None:
            self.engine.set_params(sim)
        self.drawing = False
        self.ticks = 0

    @property
    def sim(self) -> SimulationSettings:
        return self.engine.sim

    def tick(self) -> np.ndarray:
        """Runs transport unless paused, then refreshes and returns the (h, w, 4) frame."""
        self.engine.update_params()
        if not self.sim.paused:
            self.engine.step()
        self.engine.composite(self.sim.show_wetness)
        self.ticks += 1
        return self.engine.frame_numpy()

    def pointer_down(self, px: float, py: float, bounds: CanvasBounds) -> BrushStroke:
        self.drawing = True
        return self._apply(px, py, bounds)

    def pointer_move(self, px: float, py: float, bounds: CanvasBounds) -> Optional[BrushStroke]:
        if not self.drawing:
            return None
        return self._apply(px, py, bounds)

    def pointer_up(self):
        self.drawing = False

    def _apply(self, px, py, bounds):
        clamp_to_range(self.brush)
        stroke = make_stroke(self.brush, px, py, bounds)
        self.engine.apply_stroke(stroke)
        return stroke
