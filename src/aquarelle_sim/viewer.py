"""
Aquarelle Sim.

Copyright (c) 2026 Shuoqi Chen
SPDX-License-Identifier: MIT OR Apache-2.0
"""
import argparse
import time

import taichi as ti

from .brush import FluidEngine, BrushSettings, SimulationSettings, ToolType
from .brush.configs import PAPER_TEXTURES, add_arguments, from_args
from .brush.mapping import CanvasBounds
from .scheduler import FrameScheduler
from . import inspiration

TOOL_KEYS = {"1": ToolType.BRUSH, "2": ToolType.WATER, "3": ToolType.DRY, "4": ToolType.ERASER, "5": ToolType.BLOW}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Aquarelle: real-time watercolor canvas")
    parser.add_argument("--width", type=int, default=800, help="Window width in pixels (default: 800)")
    parser.add_argument("--height", type=int, default=600, help="Window height in pixels (default: 600)")
    parser.add_argument("-f", "--fps", type=int, default=60, help="Target FPS cap (default: 60)")
    parser.add_argument("-a", "--arch", default="gpu", choices=["cpu", "gpu", "cuda", "vulkan", "metal"], help="Taichi backend (default: gpu)")
    parser.add_argument("--timing", action="store_true", help="Print transport timings every 30 ticks")

    # One flag per settings field
    add_arguments(parser, BrushSettings)
    add_arguments(parser, SimulationSettings)
    return parser


def launch_viewer(argv=None):
    args = build_parser().parse_args(argv)

    win_w, win_h = args.width, args.height
    brush = from_args(BrushSettings, args)
    sim = from_args(SimulationSettings, args)

    print(f"\n[Aquarelle] Starting watercolor canvas")
    print(f" - Grid:       400x300")
    print(f" - Window:     {win_w}x{win_h}")
    print(f" - Backend:    {args.arch.upper()}")
    print(f" - FPS Cap:    {args.fps}")
    print(f"--------------------------------")

    engine = FluidEngine(arch=args.arch)
    engine.timing_mode = args.timing
    scheduler = FrameScheduler(engine, brush=brush, sim=sim)
    bounds = CanvasBounds(0.0, 0.0, float(win_w), float(win_h))

    window = ti.ui.Window("Aquarelle: Watercolor Canvas", (win_w, win_h))
    canvas = window.get_canvas()
    gui = window.get_gui()

    # Shared with the inspiration worker thread; only ever holds display text
    ai_state = {"prompt": None, "reference": None, "busy": False}

    def _on_prompt(text):
        ai_state["prompt"] = text or inspiration.ERROR_PROMPT
        ai_state["busy"] = False

    def _on_reference(uri):
        try:
            path = inspiration.save_reference(uri) if uri else None
            ai_state["reference"] = path or "No image available"
        finally:
            ai_state["busy"] = False

    last_pos = None
    total_stamps = 0
    last_stat_time = time.time()

    print("\n[Controls]")
    print(" - Mouse Left (LMB): Paint with the active tool")
    print(" - 1-5: Brush / Water / Dry / Eraser / Blow")
    print(" - Space: Clear Canvas")
    print(" - S: Save Screenshot")
    print(" - P: Pause simulation | W: Wetness view")
    print(" - Toggle UI: [Tab] | Safe Move: [Hold Shift]")

    fps_limit = args.fps
    show_ui = True

    while window.running:
        frame_start = time.time()

        is_painting = window.is_pressed(ti.ui.LMB)
        safe_mode = window.is_pressed(ti.ui.SHIFT)

        for e in window.get_events(ti.ui.PRESS):
            if e.key == ti.ui.SPACE:
                engine.clear()
            elif e.key in TOOL_KEYS:
                brush.tool = TOOL_KEYS[e.key]
                print(f"Tool: {brush.tool.name}")
            elif e.key == 's':
                engine.save_screenshot(f"render_{int(time.time())}.png")
            elif e.key == 'p':
                sim.paused = not sim.paused
            elif e.key == 'w':
                sim.show_wetness = not sim.show_wetness
            elif e.key == ti.ui.TAB:
                show_ui = not show_ui
            elif e.key == ti.ui.ESCAPE:
                window.running = False

        if is_painting and not safe_mode:
            # GGUI cursor is [0,1] with origin at BOTTOM-LEFT
            mx, my = window.get_cursor_pos()
            px, py = mx * win_w, (1.0 - my) * win_h
            if last_pos is None:
                scheduler.pointer_down(px, py, bounds)
                total_stamps += 1
            elif (px, py) != last_pos:
                scheduler.pointer_move(px, py, bounds)
                total_stamps += 1
            last_pos = (px, py)
        elif last_pos is not None:
            scheduler.pointer_up()
            last_pos = None

        if show_ui:
            with gui.sub_window("Controls", 0.02, 0.02, 0.32, 0.96):
                gui.text("--- Tools ---")
                for tool in ToolType:
                    label = f"> {tool.name}" if brush.tool == tool else tool.name
                    if gui.button(label):
                        brush.tool = tool

                gui.text("--- Brush ---")
                c = gui.color_edit_3("Color", tuple(ch / 255.0 for ch in brush.color))
                brush.color = tuple(float(ch) * 255.0 for ch in c)
                brush.size = gui.slider_float("Size", brush.size, 1.0, 100.0)
                brush.pressure = gui.slider_float("Pressure", brush.pressure, 0.0, 1.0)
                brush.water_load = gui.slider_float("Water Load", brush.water_load, 0.0, 100.0)
                brush.pigment_load = gui.slider_float("Pigment Load", brush.pigment_load, 0.0, 100.0)

                gui.text("--- Simulation ---")
                sim.paused = gui.checkbox("Paused [P]", sim.paused)
                sim.show_wetness = gui.checkbox("Show Wetness [W]", sim.show_wetness)
                sim.diffusion_speed = gui.slider_float("Diffusion", sim.diffusion_speed, 0.0, 0.5)
                sim.evaporation_rate = gui.slider_float("Evaporation", sim.evaporation_rate, 0.0, 0.05)
                sim.gravity_x = gui.slider_float("Gravity X", sim.gravity_x, -0.2, 0.2)
                sim.gravity_y = gui.slider_float("Gravity Y", sim.gravity_y, -0.2, 0.2)

                gui.text(f"Paper: {sim.paper_texture}")
                for texture in PAPER_TEXTURES:
                    if gui.button(texture):
                        sim.paper_texture = texture

                if gui.button("Clear Canvas"):
                    engine.clear()
                if gui.button("Save Screenshot"):
                    engine.save_screenshot(f"render_{int(time.time())}.png")

                gui.text("--- Inspiration ---")
                if not ai_state["busy"]:
                    if gui.button("Inspire Me"):
                        ai_state["busy"] = True
                        inspiration.run_in_background(inspiration.generate_inspiration_prompt, _on_prompt)
                    if ai_state["prompt"] and gui.button("Generate Reference"):
                        ai_state["busy"] = True
                        prompt = ai_state["prompt"]
                        inspiration.run_in_background(lambda: inspiration.generate_reference_image(prompt), _on_reference)
                else:
                    gui.text("AI Thinking...")
                if ai_state["prompt"]:
                    gui.text(ai_state["prompt"])
                if ai_state["reference"]:
                    gui.text(f"Reference: {ai_state['reference']}")

        scheduler.tick()
        canvas.set_image(engine.present())
        window.show()

        now = time.time()
        if now - last_stat_time > 2.0:
            elapsed_total = now - last_stat_time
            print(f"[Stats] Stamps/sec: {total_stamps / elapsed_total:.1f} | Ticks: {scheduler.ticks} | {'PAUSED' if sim.paused else 'RUNNING'}")
            total_stamps = 0
            last_stat_time = now

        # Enforce FPS cap to prevent resource hogging
        elapsed = time.time() - frame_start
        if elapsed < 1.0 / fps_limit:
            time.sleep(1.0 / fps_limit - elapsed)


if __name__ == "__main__":
    launch_viewer()
