"""Wet-media engine, tool settings and coordinate mapping."""
from .configs import BrushSettings, SimulationSettings, ToolType
from .fluid_engine import FluidEngine

__all__ = ["FluidEngine", "BrushSettings", "SimulationSettings", "ToolType"]
