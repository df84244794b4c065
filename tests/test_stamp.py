import numpy as np
import pytest

from aquarelle_sim.brush import ToolType

CX, CY = 200, 150
BLUE = (40.0, 150.0, 250.0)


def test_brush_center_cell(engine):
    engine.stamp(ToolType.BRUSH, CX, CY, 5.0, 0.5, 60.0, 80.0, BLUE)
    water, wetness, r, g, b = engine.cell(CX, CY)

    amount = 1.0 * 0.5
    alpha = amount * 0.8 * 0.5
    assert water == pytest.approx(amount * 60.0 / 20.0)
    assert wetness == 1.0
    assert (r, g, b) == pytest.approx(tuple(c * alpha for c in BLUE))


def test_brush_lerps_existing_pigment(engine):
    engine.set_cell(CX, CY, pigment=(200.0, 100.0, 0.0))
    engine.stamp(ToolType.BRUSH, CX, CY, 3.0, 1.0, 0.0, 100.0, (0.0, 0.0, 100.0))
    _, _, r, g, b = engine.cell(CX, CY)
    # alpha = 1 * 1.0 * 0.5
    assert (r, g, b) == pytest.approx((100.0, 50.0, 50.0))


def test_falloff_is_quadratic_in_distance(engine):
    engine.stamp(ToolType.WATER, CX, CY, 5.0, 1.0, 10.0, 0.0, BLUE)
    # distSq = 9, r^2 = 25
    assert engine.cell(CX + 3, CY)[0] == pytest.approx(1.0 - 9.0 / 25.0)
    assert engine.cell(CX, CY + 3)[0] == pytest.approx(1.0 - 9.0 / 25.0)
    assert engine.cell(CX + 4, CY + 4)[0] == 0.0


def test_bounding_box_excludes_upper_edge(engine):
    engine.stamp(ToolType.WATER, CX, CY, 5.0, 1.0, 100.0, 0.0, BLUE)
    # Both edge cells have zero falloff; only the lower bound is inside the box
    assert engine.cell(CX - 5, CY)[1] == 1.0
    assert engine.cell(CX + 5, CY)[1] == 0.0
    assert engine.cell(CX - 5, CY)[0] == 0.0


def test_repeated_brush_saturates_at_cap(engine):
    for _ in range(6):
        engine.stamp(ToolType.BRUSH, CX, CY, 4.0, 1.0, 100.0, 100.0, BLUE)
    assert engine.cell(CX, CY)[0] == 10.0
    assert engine.water_numpy().max() == 10.0


def test_water_tool_leaves_pigment(engine):
    engine.set_cell(CX, CY, pigment=(10.0, 20.0, 30.0))
    engine.stamp(ToolType.WATER, CX, CY, 4.0, 0.5, 60.0, 80.0, BLUE)
    water, wetness, r, g, b = engine.cell(CX, CY)
    assert water == pytest.approx(3.0)
    assert wetness == 1.0
    assert (r, g, b) == pytest.approx((10.0, 20.0, 30.0))


def test_dry_tool_floors_at_zero(engine):
    engine.set_cell(CX, CY, water=1.0, wetness=1.0, pigment=(5.0, 5.0, 5.0))
    engine.stamp(ToolType.DRY, CX, CY, 4.0, 1.0, 0.0, 0.0, BLUE)
    water, wetness, r, _, _ = engine.cell(CX, CY)
    assert water == 0.0
    assert wetness == 0.0
    assert r == pytest.approx(5.0)


def test_eraser_halves_at_full_amount(engine):
    engine.set_cell(CX, CY, water=4.0, wetness=1.0, pigment=(100.0, 50.0, 20.0))
    engine.stamp(ToolType.ERASER, CX, CY, 4.0, 1.0, 0.0, 0.0, BLUE)
    assert engine.cell(CX, CY) == pytest.approx((2.0, 1.0, 50.0, 25.0, 10.0))


def test_iterated_eraser_never_reaches_zero(engine):
    engine.set_cell(CX, CY, water=4.0, pigment=(100.0, 50.0, 20.0))
    for _ in range(30):
        engine.stamp(ToolType.ERASER, CX, CY, 4.0, 1.0, 0.0, 0.0, BLUE)
    water, _, r, g, b = engine.cell(CX, CY)
    assert min(water, r, g, b) > 0.0


def test_blow_is_a_no_op(engine):
    engine.stamp(ToolType.BRUSH, CX, CY, 8.0, 1.0, 60.0, 80.0, BLUE)
    before_w = engine.water_numpy().copy()
    before_p = engine.pigment_numpy().copy()
    engine.stamp(ToolType.BLOW, CX, CY, 8.0, 1.0, 60.0, 80.0, BLUE)
    np.testing.assert_array_equal(engine.water_numpy(), before_w)
    np.testing.assert_array_equal(engine.pigment_numpy(), before_p)


def test_stamp_clips_at_grid_border(engine):
    engine.stamp(ToolType.WATER, 0, 0, 5.0, 1.0, 100.0, 0.0, BLUE)
    assert engine.cell(0, 0)[0] == pytest.approx(10.0)
    assert engine.cell(399, 299)[0] == 0.0


def test_stamp_outside_grid_changes_nothing(engine):
    engine.stamp(ToolType.BRUSH, -50, -50, 5.0, 1.0, 100.0, 100.0, BLUE)
    engine.stamp(ToolType.BRUSH, 1000, 150, 5.0, 1.0, 100.0, 100.0, BLUE)
    assert engine.water_numpy().sum() == 0.0
    assert engine.wetness_numpy().sum() == 0.0


def test_index_clamps_coordinates(engine):
    assert engine.index(-5, -5) == 0
    assert engine.index(1000, 0) == 399
    assert engine.index(0, 1000) == 299 * 400
    assert engine.index(3, 2) == 2 * 400 + 3


def test_out_of_range_eraser_pressure_is_clamped(engine):
    engine.set_cell(CX, CY, water=4.0, pigment=(100.0, 100.0, 100.0))
    engine.stamp(ToolType.ERASER, CX, CY, 3.0, 4.0, 60.0, 80.0, BLUE)
    water, _, r, g, b = engine.cell(CX, CY)
    # pressure clamps to 1, so the centre loses half
    assert water == pytest.approx(2.0)
    assert (r, g, b) == pytest.approx((50.0, 50.0, 50.0))
    assert engine.water_numpy().min() >= 0.0
    assert engine.pigment_numpy().min() >= 0.0


def test_out_of_range_brush_loads_and_color_are_clamped(engine):
    engine.set_cell(CX, CY, pigment=(200.0, 200.0, 200.0))
    engine.stamp(ToolType.BRUSH, CX, CY, 3.0, 1.0, 500.0, 300.0, (-50.0, 0.0, 400.0))
    water, _, r, g, b = engine.cell(CX, CY)
    # loads clamp to 100: water += 100/20, alpha = 1 * 1.0 * 0.5
    assert water == pytest.approx(5.0)
    assert (r, g, b) == pytest.approx((100.0, 100.0, 227.5))
    assert engine.pigment_numpy().min() >= 0.0
