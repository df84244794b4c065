"""
Aquarelle Sim.

Copyright (c) 2026 Shuoqi Chen
SPDX-License-Identifier: MIT OR Apache-2.0
"""
from .brush.fluid_engine import FluidEngine
from .brush.configs import BrushSettings, SimulationSettings, ToolType
from .scheduler import FrameScheduler
from .viewer import launch_viewer

__version__ = "1.0.0"
__author__ = "Shuoqi Chen"
__license__ = "MIT"
__all__ = ["FluidEngine", "BrushSettings", "SimulationSettings", "ToolType", "FrameScheduler", "launch_viewer"]
