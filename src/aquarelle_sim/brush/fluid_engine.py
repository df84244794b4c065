"""
A cellular wet-media simulator on a fixed 400x300 grid.

High-level approach:
- Five flat scalar fields (water, wetness, pigment R/G/B) indexed row-major
- Radial brush stamps with a quadratic falloff; one pure rule per tool
- A single serial sweep per tick that evaporates and pushes water (and the
  pigment it carries) to the 4-neighbourhood, biased by gravity
- Pigment is stored as unbounded mass and only clamped when composited
  over the paper colour

The sweep updates cells in place, so a cell sees the flow its upper and left
neighbours pushed into it earlier in the same tick. Its outer loop is
serialized on every backend; the right/left/down/up order decides who gets
water first when the outflow budget runs out.
"""


import time
from typing import Optional, Tuple

import numpy as np
import taichi as ti

from .configs import SimulationSettings, ToolType, clamp_to_range
from .mapping import GRID_W, GRID_H, BrushStroke

# =============================================================================
# GLOBAL CONSTANTS & SIMULATION LIMITS
# =============================================================================
MAX_WATER = 10.0          # Saturation cap per cell
WET_THRESHOLD = 0.01      # Cells at or below this are skipped by transport
MIN_FLOW = 0.001          # Transfers at or below this are dropped
GRAVITY_GAIN = 5.0
FLOW_GAIN = 0.1
WETNESS_VIEW_THRESHOLD = 0.1
PAPER_RGB = (250.0, 246.0, 235.0)
PAPER_TEXTURE_SCALE = 2.0
PAPER_OVERLAY_OPACITY = 0.4

TOOL_BRUSH = int(ToolType.BRUSH)
TOOL_WATER = int(ToolType.WATER)
TOOL_DRY = int(ToolType.DRY)
TOOL_ERASER = int(ToolType.ERASER)


def _clip(v, lo, hi) -> float:
    return min(hi, max(lo, float(v)))


_GLOBAL_TAICHI_INITIALIZED = False

def _initialize_taichi_backend(arch: str, use_profiler: bool = False):
    """Initializes the Taichi runtime with the best available backend."""
    global _GLOBAL_TAICHI_INITIALIZED
    if _GLOBAL_TAICHI_INITIALIZED:
        return

    init_kwargs = {
        "offline_cache": True,
        "kernel_profiler": use_profiler,
    }

    ti_arch = ti.cpu
    if arch == "gpu":
        if ti.core.with_cuda():
            ti_arch = ti.cuda
        elif ti.core.with_metal():
            ti_arch = ti.metal
        elif ti.core.with_vulkan():
            ti_arch = ti.vulkan
    elif arch == "vulkan":
        ti_arch = ti.vulkan
    elif arch == "metal":
        ti_arch = ti.metal
    elif arch == "cuda":
        ti_arch = ti.cuda

    print(f"[FluidEngine] Initializing Taichi with backend: {ti_arch}")
    ti.init(arch=ti_arch, **init_kwargs)

    print(f"[FluidEngine] Taichi initialized. Backend: {ti.cfg.arch} | Profiler: {use_profiler}")
    _GLOBAL_TAICHI_INITIALIZED = True


@ti.func
def _hash21(p: ti.math.vec2) -> ti.f32:
    q = ti.math.fract(p * 0.1031)
    q += ti.math.dot(q, q.yx + 33.33)
    return ti.math.fract((q.x + q.y) * q.x)


@ti.func
def _to_byte(v: ti.f32) -> ti.u8:
    """Rounds a [0, 255] channel value to the nearest byte."""
    return ti.cast(ti.floor(ti.min(255.0, ti.max(0.0, v)) + 0.5), ti.u8)


# -----------------------------------------------------------------------------
# Tool rules. Each takes a cell snapshot (water, wetness, r, g, b) and the
# stamp amount at that cell, and returns the new snapshot.
# -----------------------------------------------------------------------------

@ti.func
def _brush_rule(cell, amount: ti.f32, water_load: ti.f32, pigment_load: ti.f32, col: ti.math.vec3):
    w = ti.min(MAX_WATER, cell[0] + amount * (water_load / 20.0))
    alpha = amount * (pigment_load / 100.0) * 0.5
    r = cell[2] * (1.0 - alpha) + col.x * alpha
    g = cell[3] * (1.0 - alpha) + col.y * alpha
    b = cell[4] * (1.0 - alpha) + col.z * alpha
    return ti.Vector([w, 1.0, r, g, b])


@ti.func
def _water_rule(cell, amount: ti.f32, water_load: ti.f32):
    w = ti.min(MAX_WATER, cell[0] + amount * (water_load / 10.0))
    return ti.Vector([w, 1.0, cell[2], cell[3], cell[4]])


@ti.func
def _dry_rule(cell, amount: ti.f32):
    w = ti.max(0.0, cell[0] - amount * 2.0)
    wet = ti.max(0.0, cell[1] - amount * 2.0)
    return ti.Vector([w, wet, cell[2], cell[3], cell[4]])


@ti.func
def _eraser_rule(cell, amount: ti.f32):
    keep = 1.0 - amount * 0.5
    return ti.Vector([cell[0] * keep, cell[1], cell[2] * keep, cell[3] * keep, cell[4] * keep])


@ti.data_oriented
class FluidEngine:
    """Taichi wet-media simulation on a fixed grid.

    Fields (flat, length w*h, index y*w + x):
    - water: water mass [0, 10]
    - wetness: flow/visualization marker [0, 1]
    - pigment_r/g/b: pigment mass per channel, >= 0, unbounded

    The RGBA frame (h, w, 4) and the GGUI display image are allocated once
    and refreshed in place.
    """

    def __init__(self, arch: str = "cpu", use_profiler: bool = False, warmup: bool = True):
        try:
            _initialize_taichi_backend(arch, use_profiler=use_profiler)
        except Exception as e:
            print(f"[FluidEngine] GPU Init failed: {e}. Falling back to CPU.")
            _initialize_taichi_backend("cpu", use_profiler=use_profiler)

        self.w = GRID_W
        self.h = GRID_H
        self.n = self.w * self.h

        self.timing_mode = False
        self._frame_count = 0

        self.sim = SimulationSettings()
        self._set_params_fields()

        self.water = ti.field(dtype=ti.f32, shape=self.n)
        self.wetness = ti.field(dtype=ti.f32, shape=self.n)
        self.pigment_r = ti.field(dtype=ti.f32, shape=self.n)
        self.pigment_g = ti.field(dtype=ti.f32, shape=self.n)
        self.pigment_b = ti.field(dtype=ti.f32, shape=self.n)

        self._frame = ti.field(dtype=ti.u8, shape=(self.h, self.w, 4))
        self._img = ti.Vector.field(3, dtype=ti.f32, shape=(self.w, self.h))
        self.T = ti.field(dtype=ti.f32, shape=(self.w, self.h))

        self._build_paper_texture(PAPER_TEXTURE_SCALE)
        self.reset()
        if warmup:
            self.warmup()

    def _set_params_fields(self):
        self._diffusion = ti.field(dtype=ti.f32, shape=())
        self._evaporation = ti.field(dtype=ti.f32, shape=())
        self._gravity_x = ti.field(dtype=ti.f32, shape=())
        self._gravity_y = ti.field(dtype=ti.f32, shape=())

    def set_params(self, params: SimulationSettings):
        self.sim = clamp_to_range(params)
        self._upload_params()

    def update_params(self, **kwargs):
        for k, v in kwargs.items():
            if hasattr(self.sim, k):
                setattr(self.sim, k, v)
        clamp_to_range(self.sim)
        self._upload_params()

    def _upload_params(self):
        """Synchronizes Python-side settings to the Taichi-side scalars read by transport."""
        self._diffusion[None] = float(self.sim.diffusion_speed)
        self._evaporation[None] = float(self.sim.evaporation_rate)
        self._gravity_x[None] = float(self.sim.gravity_x)
        self._gravity_y[None] = float(self.sim.gravity_y)

    def reset(self):
        self._upload_params()
        self._clear()

    def clear(self):
        """Clears all simulation fields."""
        self._clear()

    # ===============================
    # Grid access (Python scope)
    # ===============================

    def index(self, x: int, y: int) -> int:
        """Row-major index with x, y clamped to the grid."""
        x = min(self.w - 1, max(0, int(x)))
        y = min(self.h - 1, max(0, int(y)))
        return y * self.w + x

    def cell(self, x: int, y: int) -> Tuple[float, float, float, float, float]:
        """Returns (water, wetness, r, g, b) of one cell."""
        i = self.index(x, y)
        return (
            float(self.water[i]),
            float(self.wetness[i]),
            float(self.pigment_r[i]),
            float(self.pigment_g[i]),
            float(self.pigment_b[i]),
        )

    def set_cell(self, x: int, y: int, water: Optional[float] = None, wetness: Optional[float] = None, pigment: Optional[Tuple[float, float, float]] = None):
        i = self.index(x, y)
        if water is not None:
            self.water[i] = float(water)
        if wetness is not None:
            self.wetness[i] = float(wetness)
        if pigment is not None:
            self.pigment_r[i] = float(pigment[0])
            self.pigment_g[i] = float(pigment[1])
            self.pigment_b[i] = float(pigment[2])

    def water_numpy(self) -> np.ndarray:
        return self.water.to_numpy().reshape(self.h, self.w)

    def wetness_numpy(self) -> np.ndarray:
        return self.wetness.to_numpy().reshape(self.h, self.w)

    def pigment_numpy(self) -> np.ndarray:
        """Pigment mass as an (h, w, 3) array."""
        return np.stack([
            self.pigment_r.to_numpy(),
            self.pigment_g.to_numpy(),
            self.pigment_b.to_numpy(),
        ], axis=-1).reshape(self.h, self.w, 3)

    def totals(self) -> Tuple[float, float]:
        """Total water and total pigment mass, summed in float64."""
        water = float(self.water.to_numpy().astype(np.float64).sum())
        pigment = float(self.pigment_numpy().astype(np.float64).sum())
        return water, pigment

    # ===============================
    # Entry points
    # ===============================

    def stamp(self, tool, cx, cy, radius, pressure, water_load, pigment_load, color):
        """Applies one brush stamp centred on grid cell (cx, cy)."""
        tool = ToolType(int(tool))
        if tool == ToolType.BLOW:
            return
        pressure = _clip(pressure, 0.0, 1.0)
        water_load = _clip(water_load, 0.0, 100.0)
        pigment_load = _clip(pigment_load, 0.0, 100.0)
        color = [_clip(c, 0.0, 255.0) for c in color]
        r = float(radius)
        x0 = max(0, int(np.floor(cx - r)))
        x1 = min(self.w, int(np.ceil(cx + r)))
        y0 = max(0, int(np.floor(cy - r)))
        y1 = min(self.h, int(np.ceil(cy + r)))
        if x1 <= x0 or y1 <= y0:
            return
        self._stamp_kernel(
            int(tool), float(cx), float(cy), r,
            x0, x1, y0, y1,
            pressure, water_load, pigment_load,
            color[0], color[1], color[2],
        )

    def apply_stroke(self, stroke: BrushStroke):
        self.stamp(stroke.tool, stroke.center_x, stroke.center_y, stroke.radius,
                   stroke.pressure, stroke.water_load, stroke.pigment_load, stroke.color)

    def step(self, steps: int = 1):
        """Advances transport by the given number of sweeps."""
        for _ in range(int(steps)):
            t0 = time.perf_counter() if self.timing_mode else 0

            self._transport_step()
            self._frame_count += 1

            if self.timing_mode and self._frame_count % 30 == 0:
                ti.sync()
                t1 = time.perf_counter()
                print(f"[FluidEngine] Transport: {(t1-t0)*1000:4.1f}ms")

    def composite(self, show_wetness: Optional[bool] = None):
        """Refreshes the RGBA frame field from the grid."""
        if show_wetness is None:
            show_wetness = self.sim.show_wetness
        self._draw_frame(int(bool(show_wetness)))

    def render(self, show_wetness: Optional[bool] = None) -> np.ndarray:
        """Composites and returns the current frame as an (h, w, 4) uint8 array."""
        self.composite(show_wetness)
        return self._frame.to_numpy()

    def frame_numpy(self) -> np.ndarray:
        return self._frame.to_numpy()

    def present(self, paper_texture: Optional[str] = None):
        """Fills the GGUI display image from the last composited frame."""
        if paper_texture is None:
            paper_texture = self.sim.paper_texture
        self._draw_display(int(paper_texture == "rough"))
        return self._img

    def save_screenshot(self, path: str):
        import PIL.Image
        PIL.Image.fromarray(self.frame_numpy()).save(path)
        print(f"[FluidEngine] Saved screenshot: {path}")

    def warmup(self):
        """Trigger JIT compilation of all kernels by running a small dummy simulation."""
        self.clear()
        for tool in (ToolType.BRUSH, ToolType.WATER, ToolType.DRY, ToolType.ERASER):
            self.stamp(tool, self.w // 2, self.h // 2, 4.0, 0.5, 60.0, 80.0, (40.0, 150.0, 250.0))
        self._transport_step()
        self._draw_frame(0)
        self._draw_frame(1)
        self._draw_display(1)
        self.clear()
        ti.sync()
        print(f"[FluidEngine] Warmup complete.")

    def check_integrity(self, steps: int = 10) -> bool:
        """Paints a test stamp, runs a few sweeps, and verifies ranges and finiteness."""
        self.clear()
        self.stamp(ToolType.BRUSH, self.w // 2, self.h // 2, 10.0, 1.0, 100.0, 100.0, (255.0, 255.0, 255.0))
        self.step(steps)

        ok = True
        w = self.water.to_numpy()
        p = self.pigment_numpy()
        if np.any(np.isnan(w)) or np.any(np.isnan(p)):
            print("[FluidEngine] INTEGRITY ERROR: NaN detected in grid!")
            ok = False
        if np.any((w < 0.0) | (w > MAX_WATER)):
            print(f"[FluidEngine] INTEGRITY ERROR: Water out of range: [{w.min()}, {w.max()}]")
            ok = False
        if np.any(p < 0.0):
            print(f"[FluidEngine] INTEGRITY ERROR: Negative pigment: {p.min()}")
            ok = False
        if ok:
            print("[FluidEngine] Integrity test passed.")
        self.clear()
        return ok

    # ===============================
    # Taichi kernels
    # ===============================

    @ti.func
    def _index(self, x: ti.i32, y: ti.i32) -> ti.i32:
        cx = ti.min(self.w - 1, ti.max(0, x))
        cy = ti.min(self.h - 1, ti.max(0, y))
        return cy * self.w + cx

    @ti.kernel
    def _clear(self):
        for i in self.water:
            self.water[i] = 0.0
            self.wetness[i] = 0.0
            self.pigment_r[i] = 0.0
            self.pigment_g[i] = 0.0
            self.pigment_b[i] = 0.0
        for y, x, c in self._frame:
            self._frame[y, x, c] = ti.cast(0, ti.u8)

    @ti.kernel
    def _build_paper_texture(self, scale: ti.f32):
        """Generates a procedural multi-octave noise texture for the rough paper overlay."""
        for i, j in self.T:
            p = ti.Vector([ti.cast(i, ti.f32), ti.cast(j, ti.f32)])

            n0 = _hash21(p * (0.35 * scale) + 7.1)
            n1 = _hash21(p * (0.65 * scale) + 19.7)
            n2 = _hash21(p * (1.30 * scale) + 41.3)

            self.T[i, j] = ti.min(1.0, ti.max(0.0, 0.50 * n0 + 0.35 * n1 + 0.15 * n2))

    @ti.kernel
    def _stamp_kernel(self, tool: ti.i32, cx: ti.f32, cy: ti.f32, radius: ti.f32,
                      x0: ti.i32, x1: ti.i32, y0: ti.i32, y1: ti.i32,
                      pressure: ti.f32, water_load: ti.f32, pigment_load: ti.f32,
                      cr: ti.f32, cg: ti.f32, cb: ti.f32):
        """Stamps one tool over the disc of `radius` around (cx, cy)."""
        r_sq = radius * radius
        col = ti.Vector([cr, cg, cb])

        for y, x in ti.ndrange((y0, y1), (x0, x1)):
            dx = ti.cast(x, ti.f32) - cx
            dy = ti.cast(y, ti.f32) - cy
            dist_sq = dx * dx + dy * dy
            if dist_sq <= r_sq:
                i = y * self.w + x
                amount = (1.0 - dist_sq / r_sq) * pressure

                cell = ti.Vector([self.water[i], self.wetness[i], self.pigment_r[i], self.pigment_g[i], self.pigment_b[i]])
                out = cell
                if tool == TOOL_BRUSH:
                    out = _brush_rule(cell, amount, water_load, pigment_load, col)
                elif tool == TOOL_WATER:
                    out = _water_rule(cell, amount, water_load)
                elif tool == TOOL_DRY:
                    out = _dry_rule(cell, amount)
                elif tool == TOOL_ERASER:
                    out = _eraser_rule(cell, amount)

                self.water[i] = out[0]
                self.wetness[i] = out[1]
                self.pigment_r[i] = out[2]
                self.pigment_g[i] = out[3]
                self.pigment_b[i] = out[4]

    @ti.func
    def _move_pigment(self, f: ti.template(), src: ti.i32, dst: ti.i32, ratio: ti.f32):
        moved = f[src] * ratio
        f[src] -= moved
        f[dst] += moved

    @ti.kernel
    def _transport_step(self):
        """One row-major sweep: evaporation, then gravity-biased outflow to right/left/down/up."""
        diff = self._diffusion[None]
        evap = self._evaporation[None]
        gx = self._gravity_x[None]
        gy = self._gravity_y[None]

        ti.loop_config(serialize=True)
        for i in range(self.n):
            if self.water[i] > WET_THRESHOLD:
                x = i % self.w
                y = i // self.w

                w = ti.max(0.0, self.water[i] - evap)
                self.water[i] = w
                if w <= 0.0:
                    self.wetness[i] = 0.0
                else:
                    available = w * diff
                    local = w
                    for k in range(4):
                        if available <= 0.0:
                            break
                        nx = x
                        ny = y
                        bias = 0.0
                        if k == 0:
                            nx = x + 1
                            bias = -gx
                        elif k == 1:
                            nx = x - 1
                            bias = gx
                        elif k == 2:
                            ny = y + 1
                            bias = gy
                        else:
                            ny = y - 1
                            bias = -gy
                        j = self._index(nx, ny)

                        gradient = (local - self.water[j]) + bias * GRAVITY_GAIN
                        if gradient > 0.0:
                            # Gravity can push past the cap; limit to the receiver's headroom
                            headroom = MAX_WATER - self.water[j]
                            if j == i:
                                headroom = MAX_WATER
                            flow = ti.min(ti.min(available, gradient * FLOW_GAIN), headroom)
                            if flow > MIN_FLOW:
                                # A clamped border neighbour can be the cell itself: mass stays put
                                if j != i:
                                    ratio = flow / local
                                    self.water[i] -= flow
                                    self.water[j] += flow
                                    self._move_pigment(self.pigment_r, i, j, ratio)
                                    self._move_pigment(self.pigment_g, i, j, ratio)
                                    self._move_pigment(self.pigment_b, i, j, ratio)
                                self.wetness[j] = 1.0
                                available -= flow
                                local -= flow

    @ti.kernel
    def _draw_frame(self, show_wetness: ti.i32):
        """Composites the grid into the RGBA frame (paint view or water debug view)."""
        paper = ti.Vector([PAPER_RGB[0], PAPER_RGB[1], PAPER_RGB[2]])

        for y, x in ti.ndrange(self.h, self.w):
            i = y * self.w + x
            if show_wetness != 0:
                w = self.water[i]
                if w > WETNESS_VIEW_THRESHOLD:
                    self._frame[y, x, 0] = ti.cast(0, ti.u8)
                    self._frame[y, x, 1] = ti.cast(0, ti.u8)
                    self._frame[y, x, 2] = ti.cast(255, ti.u8)
                    self._frame[y, x, 3] = _to_byte(ti.min(255.0, w * 50.0))
                else:
                    for c in ti.static(range(4)):
                        self._frame[y, x, c] = ti.cast(0, ti.u8)
            else:
                final = ti.Vector([
                    ti.min(255.0, self.pigment_r[i]),
                    ti.min(255.0, self.pigment_g[i]),
                    ti.min(255.0, self.pigment_b[i]),
                ])
                total_mass = (final.x + final.y + final.z) / 3.0
                alpha = ti.min(1.0, total_mass / 100.0)
                col = paper * (1.0 - alpha) + final * alpha
                self._frame[y, x, 0] = _to_byte(col.x)
                self._frame[y, x, 1] = _to_byte(col.y)
                self._frame[y, x, 2] = _to_byte(col.z)
                self._frame[y, x, 3] = ti.cast(255, ti.u8)

    @ti.kernel
    def _draw_display(self, rough: ti.i32):
        """Flips the frame into GGUI's bottom-left image space, over paper, with optional grain."""
        paper = ti.Vector([PAPER_RGB[0], PAPER_RGB[1], PAPER_RGB[2]]) / 255.0

        for i, j in self._img:
            y = self.h - 1 - j
            rgb = ti.Vector([
                ti.cast(self._frame[y, i, 0], ti.f32),
                ti.cast(self._frame[y, i, 1], ti.f32),
                ti.cast(self._frame[y, i, 2], ti.f32),
            ]) / 255.0
            a = ti.cast(self._frame[y, i, 3], ti.f32) / 255.0
            col = paper * (1.0 - a) + rgb * a

            # Multiply-blended grain, decorative only
            if rough != 0:
                col = col * (1.0 - PAPER_OVERLAY_OPACITY + PAPER_OVERLAY_OPACITY * self.T[i, j])

            self._img[i, j] = col
