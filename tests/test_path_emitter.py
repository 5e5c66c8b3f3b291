import math

import facesvg as fsvg

V = fsvg.Vec2


def _seg(a, b):
    return fsvg.Segment(V(*a), V(*b))


def _triangle_loop():
    return fsvg.reorder([_seg((0, 0), (1, 0)), _seg((0, 1), (0, 0)), _seg((1, 0), (0, 1))])


def test_triangle_path_data():
    assert fsvg.loop_path_data(_triangle_loop()) == (
        "M 0.000 0.000 L 1.000 0.000 L 0.000 1.000 L 0.000 0.000 Z"
    )


def test_offset_is_applied_to_every_point():
    assert fsvg.loop_path_data(_triangle_loop(), dx=10, dy=-1) == (
        "M 10.000 -1.000 L 11.000 -1.000 L 10.000 0.000 L 10.000 -1.000 Z"
    )


def test_pie_slice_with_quarter_arc():
    quarter = fsvg.ArcElement(V(0, 0), V(1, 0), V(0, 1), 0.0, math.pi / 2)
    loop = fsvg.reorder([_seg((0, 0), (1, 0)), _seg((0, 0), (0, 1)), quarter])
    assert fsvg.loop_path_data(loop) == (
        "M 0.000 0.000 L 1.000 0.000 A 1.000 1.000 0.000 0 1 0.000 1.000 L 0.000 0.000 Z"
    )


def test_large_arc_is_split_at_midpoint():
    three_quarters = fsvg.ArcElement(V(0, 0), V(1, 0), V(0, 1), 0.0, 1.5 * math.pi)
    assert fsvg.element_path_data(three_quarters) == (
        " A 1.000 1.000 0.000 0 1 -0.707 0.707"
        " A 1.000 1.000 0.000 0 1 0.000 -1.000"
    )


def test_full_circle_loop_renders_two_arcs():
    circle = fsvg.ArcElement(V(2, 3), V(1, 0), V(0, 1), 0.0, 2 * math.pi)
    d = fsvg.loop_path_data(fsvg.reorder([circle]))
    assert d == (
        "M 3.000 3.000"
        " A 1.000 1.000 0.000 0 1 1.000 3.000"
        " A 1.000 1.000 0.000 0 1 3.000 3.000 Z"
    )


def test_large_arc_flag_is_never_set():
    arcs = [
        fsvg.ArcElement(V(0, 0), V(2, 0), V(0.5, 1), 0.0, span)
        for span in (0.5, math.pi, 4.0, 2 * math.pi)
    ]
    for arc in arcs:
        d = fsvg.element_path_data(arc)
        commands = d.split(" A ")[1:]
        assert len(commands) == (2 if arc.span() > math.pi else 1)
        for cmd in commands:
            assert cmd.split()[3] == "0"


def test_fmt_three_decimals_without_negative_zero():
    assert fsvg.fmt(1.23456) == "1.235"
    assert fsvg.fmt(-0.0001) == "0.000"
    assert fsvg.fmt(-2.5) == "-2.500"
