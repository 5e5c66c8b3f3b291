import math

import pytest

import facesvg as fsvg

V = fsvg.Vec2


def _arc(a, b, start, end, center=(0.0, 0.0)):
    return fsvg.ArcElement(V(*center), V(*a), V(*b), start, end)


def test_circle_radius_equals_axis_length():
    p = fsvg.ellipse_parameters(_arc((2, 0), (0, 2), 0.0, math.pi / 3, center=(5, 5)))
    assert p.rx == pytest.approx(2.0)
    assert p.ry == pytest.approx(2.0)
    assert p.rotation == pytest.approx(0.0)


def test_quarter_circle():
    p = fsvg.ellipse_parameters(_arc((1, 0), (0, 1), 0.0, math.pi / 2))
    assert (p.rx, p.ry) == (pytest.approx(1.0), pytest.approx(1.0))
    assert p.start == V(1, 0)
    assert p.end == V(0, 1)
    assert p.mid == V(math.sqrt(0.5), math.sqrt(0.5))
    assert p.sweep == "1"
    assert not p.large_arc


def test_reversed_arc_swaps_ends_and_sweep_only():
    arc = _arc((1, 0), (0, 1), 0.0, math.pi / 2)
    fwd = fsvg.ellipse_parameters(arc)
    rev = fsvg.ellipse_parameters(arc.reversed_copy())
    assert rev.start == fwd.end
    assert rev.end == fwd.start
    assert rev.mid == fwd.mid
    assert rev.sweep == "0"
    assert (rev.rx, rev.ry, rev.rotation) == (fwd.rx, fwd.ry, fwd.rotation)


def test_rotated_ellipse_rotation_in_degrees():
    c, s = math.cos(math.radians(30)), math.sin(math.radians(30))
    p = fsvg.ellipse_parameters(_arc((2 * c, 2 * s), (-s, c), 0.0, 1.0))
    assert p.rx == pytest.approx(2.0)
    assert p.ry == pytest.approx(1.0)
    assert p.rotation == pytest.approx(30.0)


def test_major_axis_along_second_axis():
    p = fsvg.ellipse_parameters(_arc((1, 0), (0, 2), 0.0, 1.0))
    assert p.rx == pytest.approx(2.0)
    assert p.ry == pytest.approx(1.0)
    assert p.rotation == pytest.approx(90.0)


def test_oblique_axes_give_principal_radii():
    # Conjugate semi-diameters keep area (rx*ry = |A x B|) and |A|^2 + |B|^2.
    a, b = V(1.0, 0.0), V(0.4, 0.6)
    p = fsvg.ellipse_parameters(fsvg.ArcElement(V(0, 0), a, b, 0.0, 2.0))
    assert p.rx >= p.ry
    assert p.rx * p.ry == pytest.approx(abs(a.cross(b)))
    assert p.rx ** 2 + p.ry ** 2 == pytest.approx(a.dot(a) + b.dot(b))


def test_large_arc_flag_and_midpoint():
    p = fsvg.ellipse_parameters(_arc((1, 0), (0, 1), 0.0, 1.5 * math.pi))
    assert p.large_arc
    assert p.mid == V(math.cos(0.75 * math.pi), math.sin(0.75 * math.pi))
    assert p.end == V(0, -1)


def test_end_before_start_wraps_a_full_turn():
    arc = _arc((1, 0), (0, 1), 1.5 * math.pi, 0.25 * math.pi)
    assert arc.span() == pytest.approx(0.75 * math.pi)
    p = fsvg.ellipse_parameters(arc)
    assert p.start == V(0, -1)
    assert p.end == V(math.sqrt(0.5), math.sqrt(0.5))
    assert p.sweep == "1"
    assert not p.large_arc


def test_full_circle_sweep_follows_axis_handedness():
    arc = _arc((1, 0), (0, 1), 0.0, 2 * math.pi)
    assert fsvg.ellipse_parameters(arc).sweep == "1"
    assert fsvg.ellipse_parameters(arc.reversed_copy()).sweep == "0"

    mirrored = _arc((1, 0), (0, -1), 0.0, 2 * math.pi)
    assert fsvg.ellipse_parameters(mirrored).sweep == "0"


@pytest.mark.parametrize(
    "a,b,start,end",
    [
        ((0, 0), (0, 1), 0.0, 1.0),
        ((1, 0), (2, 0), 0.0, 1.0),
        ((1, 0), (0, 1), 1.0, 1.0),
        ((1, 0), (0, 1), 0.0, float("nan")),
    ],
)
def test_degenerate_arcs_raise(a, b, start, end):
    with pytest.raises(fsvg.DegenerateEllipseError):
        fsvg.ellipse_parameters(_arc(a, b, start, end))


def test_arc_extreme_points_cover_bulge():
    half = fsvg.ArcElement(V(3, 1), V(1, 0), V(0, 1), -math.pi / 2, math.pi / 2)
    box = fsvg.BoundingBox.empty().update(*half.extreme_points())
    assert (box.minx, box.miny, box.maxx, box.maxy) == (
        pytest.approx(3.0),
        pytest.approx(0.0),
        pytest.approx(4.0),
        pytest.approx(2.0),
    )
