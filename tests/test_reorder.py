import math

import pytest

import facesvg as fsvg

V = fsvg.Vec2


def _seg(a, b):
    return fsvg.Segment(V(*a), V(*b))


def _triangle():
    return [_seg((0, 0), (1, 0)), _seg((0, 1), (0, 0)), _seg((1, 0), (0, 1))]


def _starts(loop):
    return [e.start_position() for e in loop]


def test_triangle_chains_without_reversal():
    loop = fsvg.reorder(_triangle())
    assert _starts(loop) == [V(0, 0), V(1, 0), V(0, 1)]
    assert [e.reversed for e in loop] == [False, False, False]


def test_mismatched_direction_is_reversed():
    loop = fsvg.reorder([_seg((0, 0), (1, 0)), _seg((0, 1), (1, 0)), _seg((0, 0), (0, 1))])
    assert [e.reversed for e in loop] == [False, True, True]
    assert _starts(loop) == [V(0, 0), V(1, 0), V(0, 1)]
    # reversing never touches the stored geometry
    assert loop.elements[1].start == V(0, 1)


def test_every_seed_gives_closed_cycle():
    edges = _triangle()
    for k in range(len(edges)):
        loop = fsvg.reorder(edges[k:] + edges[:k])
        assert len(loop) == 3
        assert loop.is_closed()


def test_reorder_is_deterministic():
    a = fsvg.reorder(_triangle())
    b = fsvg.reorder(_triangle())
    assert repr(a.elements) == repr(b.elements)


def test_arc_and_segments_chain():
    quarter = fsvg.ArcElement(V(0, 0), V(1, 0), V(0, 1), 0.0, math.pi / 2)
    loop = fsvg.reorder([_seg((0, 0), (1, 0)), _seg((0, 0), (0, 1)), quarter])
    assert isinstance(loop.elements[1], fsvg.ArcElement)
    assert loop.elements[2].reversed
    assert loop.is_closed()


def test_single_full_circle_is_a_loop():
    circle = fsvg.ArcElement(V(2, 3), V(1, 0), V(0, 1), 0.0, 2 * math.pi)
    loop = fsvg.reorder([circle])
    assert len(loop) == 1
    assert loop.is_closed()


def test_small_endpoint_drift_is_tolerated():
    loop = fsvg.reorder([_seg((0, 0), (1, 0)), _seg((1.01, 0), (0, 1)), _seg((0, 1.02), (0, 0))])
    assert len(loop) == 3


def test_gap_mid_chain_raises_with_context():
    with pytest.raises(fsvg.DisconnectedBoundaryError) as ei:
        fsvg.reorder([_seg((0, 0), (1, 0)), _seg((5, 5), (6, 6))], loop_name="plate/exterior0")
    err = ei.value
    assert err.loop_name == "plate/exterior0"
    assert err.point == V(1, 0)
    assert "plate/exterior0" in str(err)


def test_open_chain_fails_closing_check():
    open_square = [_seg((0, 0), (1, 0)), _seg((1, 0), (1, 1)), _seg((1, 1), (0, 1))]
    with pytest.raises(fsvg.DisconnectedBoundaryError) as ei:
        fsvg.reorder(open_square)
    assert ei.value.point == V(0, 1)


def test_gap_beyond_tolerance_raises():
    with pytest.raises(fsvg.DisconnectedBoundaryError):
        fsvg.reorder([_seg((0, 0), (1, 0)), _seg((1.1, 0), (0, 1)), _seg((0, 1), (0, 0))])


def test_empty_loop_raises():
    with pytest.raises(fsvg.FaceSVGError):
        fsvg.reorder([])


def test_reversed_loop_runs_backwards():
    loop = fsvg.reorder(_triangle()).reversed_loop()
    assert _starts(loop) == [V(0, 0), V(0, 1), V(1, 0)]
    assert loop.is_closed()
