"""
Aquarelle Sim.

Copyright (c) 2026 Shuoqi Chen
SPDX-License-Identifier: MIT OR Apache-2.0
"""
import argparse
from dataclasses import dataclass, field, fields
from enum import IntEnum
from typing import Tuple

PAPER_TEXTURES = ("smooth", "rough", "cold-press")


class ToolType(IntEnum):
    """Closed set of brush tools. Values are the ids passed to the stamp kernel."""
    BRUSH = 0   # Adds pigment + water
    WATER = 1   # Adds water only
    DRY = 2     # Removes water
    ERASER = 3  # Removes pigment + water
    BLOW = 4    # Reserved, leaves the grid untouched

    @classmethod
    def parse(cls, name: str) -> "ToolType":
        return cls[str(name).strip().upper()]


@dataclass
class BrushSettings:
    """Brush properties driven by the toolbar and the paint panel."""

    tool: ToolType = field(default=ToolType.BRUSH, metadata={"help": "Active tool.", "category": "Brush", "choices": [t.name for t in ToolType]})
    size: float = field(default=20.0, metadata={"help": "Brush diameter in display pixels.", "category": "Brush", "min": 1.0, "max": 100.0})
    pressure: float = field(default=0.5, metadata={"help": "Flow/opacity of each stamp.", "category": "Brush", "min": 0.0, "max": 1.0})
    water_load: float = field(default=60.0, metadata={"help": "How much water a stamp adds.", "category": "Brush", "min": 0.0, "max": 100.0})
    pigment_load: float = field(default=80.0, metadata={"help": "How much colour a stamp adds.", "category": "Brush", "min": 0.0, "max": 100.0})
    color: Tuple[float, float, float] = field(default=(40.0, 150.0, 250.0), metadata={"help": "Brush colour (RGB, 0-255).", "category": "Brush", "min": 0.0, "max": 255.0})


@dataclass
class SimulationSettings:
    """Transport and display parameters, read by the engine once per tick."""

    diffusion_speed: float = field(default=0.15, metadata={"help": "Fraction of a cell's water that may flow out per tick.", "category": "Simulation", "min": 0.0, "max": 0.5})
    evaporation_rate: float = field(default=0.002, metadata={"help": "Water lost by every wet cell per tick.", "category": "Simulation", "min": 0.0, "max": 0.05})
    gravity_x: float = field(default=0.0, metadata={"help": "Horizontal flow bias (positive pulls left).", "category": "Simulation", "min": -0.2, "max": 0.2})
    gravity_y: float = field(default=0.05, metadata={"help": "Vertical flow bias (positive drips down).", "category": "Simulation", "min": -0.2, "max": 0.2})
    paper_texture: str = field(default="rough", metadata={"help": "Decorative paper overlay.", "category": "Display", "choices": list(PAPER_TEXTURES)})
    paused: bool = field(default=False, metadata={"help": "Freeze transport (brushes still paint).", "category": "Display"})
    show_wetness: bool = field(default=False, metadata={"help": "Show the water debug view.", "category": "Display"})


def _clamp(v, lo, hi):
    return max(lo, min(hi, v))


def clamp_to_range(settings):
    """Clamps every numeric field of a settings dataclass into its metadata range, in place."""
    for f in fields(settings):
        val = getattr(settings, f.name)
        lo = f.metadata.get("min")
        hi = f.metadata.get("max")
        choices = f.metadata.get("choices")

        if f.name == "tool":
            if not isinstance(val, ToolType):
                try:
                    val = ToolType.parse(val) if isinstance(val, str) else ToolType(int(val))
                except (KeyError, ValueError):
                    val = f.default
        elif choices is not None:
            if val not in choices:
                val = f.default
        elif isinstance(f.default, bool):
            val = bool(val)
        elif isinstance(f.default, tuple):
            val = tuple(float(_clamp(float(c), lo, hi)) for c in val)
        elif lo is not None and hi is not None:
            val = float(_clamp(float(val), lo, hi))
        setattr(settings, f.name, val)
    return settings


def add_arguments(parser: argparse.ArgumentParser, cls) -> None:
    """Adds one CLI flag per dataclass field, using its metadata for help and choices."""
    group = parser.add_argument_group(cls.__name__)
    for f in fields(cls):
        arg_name = f"--{f.name.replace('_', '-')}"
        help_text = f.metadata.get("help", "")
        if isinstance(f.default, bool):
            group.add_argument(arg_name, action=argparse.BooleanOptionalAction, default=f.default, help=help_text)
        elif f.name == "tool":
            group.add_argument(arg_name, type=ToolType.parse, default=f.default, help=help_text)
        elif isinstance(f.default, tuple):
            group.add_argument(arg_name, type=float, nargs=len(f.default), default=f.default, help=help_text)
        elif "choices" in f.metadata:
            group.add_argument(arg_name, choices=f.metadata["choices"], default=f.default, help=help_text)
        else:
            group.add_argument(arg_name, type=type(f.default), default=f.default, help=help_text)


def from_args(cls, args: argparse.Namespace):
    """Builds a clamped settings instance from parsed CLI arguments."""
    kwargs = {f.name: getattr(args, f.name) for f in fields(cls) if hasattr(args, f.name)}
    if "color" in kwargs:
        kwargs["color"] = tuple(kwargs["color"])
    return clamp_to_range(cls(**kwargs))
