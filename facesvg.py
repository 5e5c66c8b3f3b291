#!/usr/bin/env python3
"""facesvg.py

Convert the boundary loops of planar faces into Shaper Origin style SVG cut files.

Faces arrive as loops of independently reported edge records (straight lines and
circular / elliptical arcs), already flattened onto the working plane, in no
particular order and with no consistent direction. For every loop we:

- group the raw records into typed elements (one Segment per line edge, one
  ArcElement per curve, however many edges the curve was reported as),
- chain the elements end-to-start into a closed cycle, reversing elements
  where needed,
- classify the loop (exterior / interior / pocket / guide),
- emit SVG path data with M / L / A commands.

Faces are laid out left-to-right on a sheet with a greedy shelf packer and
written to one SVG (or one SVG per face).

Notes:
- SVG coordinates: +y is down. Arc sweep flags are computed in that frame.
- Arcs spanning more than half an ellipse are drawn as two arcs through the
  midpoint instead of using the large-arc flag, so closed full-circle loops
  (start == end) still render.
- pyclipper supplies polygon area, winding and point-in-polygon tests for the
  flattened loops.
"""

from __future__ import annotations

import argparse
import json
import logging
import math
import os
import sys
import tempfile
from dataclasses import dataclass, field, fields, replace
from enum import Enum
from typing import Any, Callable, Dict, IO, Iterable, Iterator, List, Optional, Sequence, Tuple, Union
from xml.sax.saxutils import escape, quoteattr

import pyclipper

__version__ = "0.3"

logger = logging.getLogger(__name__)

Point = Tuple[float, float]

FMT = "%0.3f"

# Geometric equality (matches the host model's length tolerance).
POINT_TOLERANCE = 0.0005
# Endpoint matching while chaining; regenerated arc endpoints drift by ~0.01.
MATCH_TOLERANCE = 0.05

UNITS = ("in", "cm", "mm")
EXPORT_MODES = ("single_svg", "per_face_svgs")

SVG_NS = "http://www.w3.org/2000/svg"
XLINK_NS = "http://www.w3.org/1999/xlink"
SHAPER_NS = "http://www.shapertools.com/namespaces/shaper"

CLIPPER_SCALE = float(1 << 20)


# ---------------------- Errors ----------------------

class FaceSVGError(ValueError):
    """Raised for malformed face geometry, bad settings or unusable output."""


class DisconnectedBoundaryError(FaceSVGError):
    """No element continues the chain: the loop is open or malformed."""

    def __init__(self, loop_name: Optional[str], tail: "PathElement", point: "Vec2"):
        self.loop_name = loop_name
        self.tail = tail
        self.point = point
        super().__init__(
            f"Unexpected: no edge/arc connected to {tail!r} at {point!r} in loop {loop_name or '?'}"
        )


class DegenerateEllipseError(FaceSVGError):
    """Arc axes or angles that do not define a drawable ellipse."""


class SinkUnavailableError(FaceSVGError):
    """The output destination could not be opened or written."""


@dataclass
class WarningMsg:
    severity: str  # error|warn|info
    code: str
    message: str
    fix: str


def _warn_dicts(warns: List[WarningMsg]) -> List[dict]:
    return [w.__dict__.copy() for w in (warns or [])]


# ---------------------- Vectors ----------------------

def fmt(n: float) -> str:
    s = FMT % n
    return "0.000" if s == "-0.000" else s


def fmt_depth(d: float) -> str:
    # plain decimal, no exponent
    s = ("%.10f" % d).rstrip("0").rstrip(".")
    return "0" if s in ("", "-0") else s


class Vec2:
    """Minimal 2D vector. Equality is within POINT_TOLERANCE."""

    __slots__ = ("x", "y")

    def __init__(self, x: float, y: float):
        self.x = float(x)
        self.y = float(y)

    @classmethod
    def of(cls, value: Union["Vec2", Sequence[float]]) -> "Vec2":
        # Accepts (x, y) or (x, y, z); z is already flattened away.
        if isinstance(value, Vec2):
            return value
        return cls(value[0], value[1])

    def __add__(self, other: "Vec2") -> "Vec2":
        return Vec2(self.x + other.x, self.y + other.y)

    def __sub__(self, other: "Vec2") -> "Vec2":
        return Vec2(self.x - other.x, self.y - other.y)

    def __mul__(self, scalar: float) -> "Vec2":
        return Vec2(self.x * scalar, self.y * scalar)

    __rmul__ = __mul__

    def __neg__(self) -> "Vec2":
        return Vec2(-self.x, -self.y)

    def dot(self, other: "Vec2") -> float:
        return self.x * other.x + self.y * other.y

    def cross(self, other: "Vec2") -> float:
        return self.x * other.y - self.y * other.x

    def length(self) -> float:
        return math.hypot(self.x, self.y)

    def cw_normal(self) -> "Vec2":
        # Clockwise normal in SVG space (+y down).
        return Vec2(-self.y, self.x)

    def as_tuple(self) -> Point:
        return (self.x, self.y)

    def __iter__(self) -> Iterator[float]:
        yield self.x
        yield self.y

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Vec2):
            return NotImplemented
        return (self - other).length() < POINT_TOLERANCE

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"({fmt(self.x)},{fmt(self.y)})"


def same_position(p: Vec2, q: Vec2, tolerance: float = MATCH_TOLERANCE) -> bool:
    return (p - q).length() < tolerance


# ---------------------- Path elements ----------------------

@dataclass(frozen=True)
class Segment:
    start: Vec2
    end: Vec2
    reversed: bool = False

    def start_position(self) -> Vec2:
        return self.end if self.reversed else self.start

    def end_position(self) -> Vec2:
        return self.start if self.reversed else self.end

    def reversed_copy(self) -> "Segment":
        return replace(self, reversed=not self.reversed)

    def translated(self, dx: float, dy: float) -> "Segment":
        d = Vec2(dx, dy)
        return replace(self, start=self.start + d, end=self.end + d)

    def extreme_points(self) -> List[Vec2]:
        return [self.start, self.end]

    def points(self) -> List[Point]:
        return [self.start_position().as_tuple(), self.end_position().as_tuple()]

    def __repr__(self) -> str:
        return f"Edge {self.start_position()!r}->{self.end_position()!r}{'R' if self.reversed else ''}"


@dataclass(frozen=True)
class ArcElement:
    """Arc of the ellipse point(t) = center + axis_a*cos(t) + axis_b*sin(t).

    The angles are in the ellipse's own parametric frame. ``reversed`` only
    swaps which end reports as the start; the curve itself never changes.
    """

    center: Vec2
    axis_a: Vec2
    axis_b: Vec2
    start_angle: float
    end_angle: float
    reversed: bool = False
    curve: Optional[str] = None

    def __post_init__(self):
        values = (self.center.x, self.center.y, self.axis_a.x, self.axis_a.y,
                  self.axis_b.x, self.axis_b.y, self.start_angle, self.end_angle)
        if not all(math.isfinite(v) for v in values):
            raise DegenerateEllipseError(
                f"Arc has non-finite parameters: center {self.center!r}, xaxis {self.axis_a!r}, "
                f"yaxis {self.axis_b!r}, angles {self.start_angle} -> {self.end_angle}"
            )

    def angles(self) -> Tuple[float, float]:
        start, end = self.start_angle, self.end_angle
        if end < start:
            end += 2 * math.pi
        return start, end

    def span(self) -> float:
        start, end = self.angles()
        return end - start

    def point_at(self, angle: float, *, absolute: bool = True) -> Vec2:
        p = self.axis_a * math.cos(angle) + self.axis_b * math.sin(angle)
        return p + self.center if absolute else p

    def start_position(self) -> Vec2:
        start, end = self.angles()
        return self.point_at(end if self.reversed else start)

    def end_position(self) -> Vec2:
        start, end = self.angles()
        return self.point_at(start if self.reversed else end)

    def reversed_copy(self) -> "ArcElement":
        return replace(self, reversed=not self.reversed)

    def translated(self, dx: float, dy: float) -> "ArcElement":
        return replace(self, center=self.center + Vec2(dx, dy))

    def extreme_points(self) -> List[Vec2]:
        """End points plus the x / y extrema of the ellipse that fall inside the arc."""
        start, end = self.angles()
        pts = [self.point_at(start), self.point_at(end)]
        a, b = self.axis_a, self.axis_b
        for t0 in (math.atan2(b.x, a.x), math.atan2(b.y, a.y)):
            for t in (t0, t0 + math.pi):
                t = start + (t - start) % (2 * math.pi)
                if t <= end:
                    pts.append(self.point_at(t))
        return pts

    def points(self, step: float = math.pi / 16) -> List[Point]:
        start, end = self.angles()
        n = max(2, int(math.ceil((end - start) / step)))
        pts = [self.point_at(start + (end - start) * i / n).as_tuple() for i in range(n + 1)]
        if self.reversed:
            pts.reverse()
        return pts

    def __repr__(self) -> str:
        return f"Arc {self.start_position()!r}->{self.end_position()!r}{'R' if self.reversed else ''}"


PathElement = Union[Segment, ArcElement]


def group_records(records: Sequence[Any], *, where: str = "loop") -> List[PathElement]:
    """Turn raw edge records into typed elements.

    Several records may describe the edges of one curve; records sharing a
    ``curve`` id become a single ArcElement built from the first of them.
    """
    if not isinstance(records, (list, tuple)):
        raise FaceSVGError(f"{where}: loop must be a list of edge records")
    elements: List[PathElement] = []
    seen_curves = set()
    for i, rec in enumerate(records):
        if not isinstance(rec, dict):
            raise FaceSVGError(f"{where}: record {i} is not an object")
        kind = rec.get("kind", "line")
        try:
            if kind == "line":
                elements.append(Segment(Vec2.of(rec["start"]), Vec2.of(rec["end"])))
            elif kind == "arc":
                curve = rec.get("curve")
                if curve is not None:
                    curve = str(curve)
                    if curve in seen_curves:
                        continue
                    seen_curves.add(curve)
                elements.append(
                    ArcElement(
                        center=Vec2.of(rec["center"]),
                        axis_a=Vec2.of(rec["xaxis"]),
                        axis_b=Vec2.of(rec["yaxis"]),
                        start_angle=float(rec["start_angle"]),
                        end_angle=float(rec["end_angle"]),
                        curve=curve,
                    )
                )
            else:
                raise FaceSVGError(f"{where}: record {i} has unknown kind {kind!r}")
        except FaceSVGError:
            raise
        except KeyError as e:
            raise FaceSVGError(f"{where}: {kind} record {i} is missing {e}") from e
        except (TypeError, ValueError, IndexError) as e:
            raise FaceSVGError(f"{where}: {kind} record {i} is malformed: {e}") from e
    if not elements:
        raise FaceSVGError(f"{where}: loop has no edges")
    return elements


# ---------------------- Reordering ----------------------

@dataclass
class OrderedLoop:
    elements: List[PathElement]

    def __post_init__(self):
        if not self.elements:
            raise FaceSVGError("A loop needs at least one element")

    def __len__(self) -> int:
        return len(self.elements)

    def __iter__(self) -> Iterator[PathElement]:
        return iter(self.elements)

    def is_closed(self, tolerance: float = MATCH_TOLERANCE) -> bool:
        n = len(self.elements)
        return all(
            same_position(self.elements[i].end_position(), self.elements[(i + 1) % n].start_position(), tolerance)
            for i in range(n)
        )

    def reversed_loop(self) -> "OrderedLoop":
        return OrderedLoop([e.reversed_copy() for e in reversed(self.elements)])

    def translated(self, dx: float, dy: float) -> "OrderedLoop":
        return OrderedLoop([e.translated(dx, dy) for e in self.elements])

    def bounds(self) -> "BoundingBox":
        box = BoundingBox.empty()
        for e in self.elements:
            box.update(*e.extreme_points())
        return box


def reorder(
    elements: Sequence[PathElement],
    *,
    tolerance: float = MATCH_TOLERANCE,
    loop_name: Optional[str] = None,
) -> OrderedLoop:
    """Chain elements end-to-start: (e0,e1),(e1,e2)...(eN,e0).

    Starts from element 0. A candidate whose start meets the chain tail is
    taken as is; failing that, one whose end meets the tail is taken reversed.
    """
    remaining = list(elements)
    if not remaining:
        raise FaceSVGError(f"Loop {loop_name or '?'} has no edges")

    ordered: List[PathElement] = [remaining.pop(0)]
    while remaining:
        tail = ordered[-1]
        tail_end = tail.end_position()
        match = next((i for i, e in enumerate(remaining) if same_position(tail_end, e.start_position(), tolerance)), None)
        if match is not None:
            ordered.append(remaining.pop(match))
        else:
            match = next((i for i, e in enumerate(remaining) if same_position(tail_end, e.end_position(), tolerance)), None)
            if match is None:
                raise DisconnectedBoundaryError(loop_name, tail, tail_end)
            ordered.append(remaining.pop(match).reversed_copy())
        logger.debug("Chained %r after %r", ordered[-1], tail)

    last_end = ordered[-1].end_position()
    if not same_position(last_end, ordered[0].start_position(), tolerance):
        raise DisconnectedBoundaryError(loop_name, ordered[-1], last_end)
    return OrderedLoop(ordered)


# ---------------------- Ellipse parameters ----------------------

@dataclass(frozen=True)
class ArcParams:
    rx: float
    ry: float
    rotation: float  # degrees
    start: Vec2
    end: Vec2
    mid: Vec2
    sweep: str
    large_arc: bool


def ellipse_parameters(arc: ArcElement) -> ArcParams:
    """SVG arc parameters for a general (possibly oblique-axis) ellipse arc.

    For conjugate semi-diameters A, B the principal axes sit at
    cot(2t) = (A.A - B.B) / (2 A.B), see "Ellipse as an affine image".
    """
    a, b = arc.axis_a, arc.axis_b
    len_a, len_b = a.length(), b.length()
    if len_a < POINT_TOLERANCE or len_b < POINT_TOLERANCE:
        raise DegenerateEllipseError(f"Arc axis has zero length: xaxis {a!r}, yaxis {b!r}")
    if abs(a.cross(b)) <= 1e-9 * len_a * len_b:
        raise DegenerateEllipseError(f"Arc axes are collinear: xaxis {a!r}, yaxis {b!r}")
    span = arc.span()
    if span <= 1e-12:
        raise DegenerateEllipseError(f"Arc has zero span: {arc.start_angle} -> {arc.end_angle}")
    if span > 2 * math.pi + 1e-9:
        raise DegenerateEllipseError(f"Arc spans more than a full turn: {arc.start_angle} -> {arc.end_angle}")

    if abs(a.dot(b)) <= 1e-9 * len_a * len_b and abs(len_a - len_b) < POINT_TOLERANCE:
        # circle
        vx = a
        rx = ry = len_a
    else:
        vertex_angle = 0.5 * math.atan2(2 * a.dot(b), a.dot(a) - b.dot(b))
        vx = arc.point_at(vertex_angle, absolute=False)
        vy = arc.point_at(vertex_angle + math.pi / 2, absolute=False)
        rx = vx.length()
        ry = vy.length()
    rotation = math.degrees(math.atan2(vx.y, vx.x))

    start_angle, end_angle = arc.angles()
    mid = arc.point_at((start_angle + end_angle) / 2.0)
    start = arc.start_position()
    end = arc.end_position()

    c_to_s = start - arc.center
    c_to_m = mid - arc.center
    turn = c_to_m.dot(c_to_s.cw_normal())
    if abs(turn) <= 1e-9 * len_a * len_b:
        # mid is diametrically opposite start (full turn); fall back to the frame handedness
        turn = -a.cross(b) if arc.reversed else a.cross(b)
    sweep = "1" if turn > 0 else "0"

    logger.debug(
        "Arc center %r vx %r rx %.3f ry %.3f rot %.3f angles %.3f,%.3f",
        arc.center, vx, rx, ry, rotation, start_angle, end_angle,
    )
    return ArcParams(
        rx=rx, ry=ry, rotation=rotation,
        start=start, end=end, mid=mid,
        sweep=sweep, large_arc=span > math.pi,
    )


# ---------------------- Path data ----------------------

def _arc_command(params: ArcParams, to: Vec2) -> str:
    # Large-arc flag is always 0; large arcs are split at the midpoint.
    return (
        f" A {fmt(params.rx)} {fmt(params.ry)} {fmt(params.rotation)} 0 {params.sweep}"
        f" {fmt(to.x)} {fmt(to.y)}"
    )


def element_path_data(elt: PathElement) -> str:
    if isinstance(elt, Segment):
        end = elt.end_position()
        logger.debug("Line to %r", end)
        return f" L {fmt(end.x)} {fmt(end.y)}"
    params = ellipse_parameters(elt)
    out = []
    if params.large_arc:
        logger.debug("Arc to mid %r", params.mid)
        out.append(_arc_command(params, params.mid))
    logger.debug("Arc to %r", params.end)
    out.append(_arc_command(params, params.end))
    return "".join(out)


def loop_path_data(loop: OrderedLoop, dx: float = 0.0, dy: float = 0.0) -> str:
    """M to the first start, one L / A (or two A) per element, then Z."""
    if dx or dy:
        loop = loop.translated(dx, dy)
    first = loop.elements[0].start_position()
    logger.debug("Move to %r", first)
    d = [f"M {fmt(first.x)} {fmt(first.y)}"]
    d.extend(element_path_data(e) for e in loop)
    d.append(" Z")
    return "".join(d)


# ---------------------- Polygon helpers (pyclipper) ----------------------

def loop_polygon(loop: OrderedLoop) -> List[Point]:
    pts: List[Point] = []
    for e in loop:
        pts.extend(e.points()[:-1])
    return pts


def _clipper_path(points: Sequence[Point]) -> List[List[int]]:
    return pyclipper.scale_to_clipper([list(p) for p in points], CLIPPER_SCALE)


def loop_area(loop: OrderedLoop) -> float:
    """Signed area; positive is clockwise on screen (+y down)."""
    return pyclipper.Area(_clipper_path(loop_polygon(loop))) / (CLIPPER_SCALE * CLIPPER_SCALE)


def loop_is_clockwise(loop: OrderedLoop) -> bool:
    return pyclipper.Orientation(_clipper_path(loop_polygon(loop)))


def orient_loop(loop: OrderedLoop, *, clockwise: bool) -> OrderedLoop:
    if loop_is_clockwise(loop) == clockwise:
        return loop
    return loop.reversed_loop()


# ---------------------- Classification ----------------------

class LoopRole(Enum):
    OUTER = "exterior"
    INNER = "interior"
    POCKET = "pocket"
    GUIDE = "guide"


BLACK = "rgb(0,0,0)"
WHITE = "rgb(255,255,255)"
GRAY = "rgb(128,128,128)"
GUIDE_BLUE = "rgb(20,110,255)"


@dataclass(frozen=True)
class PathAttributes:
    path_type: str
    cut_depth: Optional[float] = None
    fill: Optional[str] = None
    stroke: Optional[str] = None
    stroke_width: Optional[str] = None
    vector_effect: str = "non-scaling-stroke"


def attributes_for_role(role: LoopRole, depth: Optional[float]) -> PathAttributes:
    if role is LoopRole.OUTER:
        return PathAttributes(role.value, depth, fill=BLACK)
    if role is LoopRole.POCKET:
        return PathAttributes(role.value, depth, fill=GRAY, stroke=GRAY, stroke_width="2")
    if role is LoopRole.INNER:
        return PathAttributes(role.value, depth, fill=WHITE, stroke=BLACK, stroke_width="2")
    # Guides stay unfilled and carry no depth.
    return PathAttributes(role.value, None, stroke=GUIDE_BLUE, stroke_width="2")


@dataclass
class Face:
    """One planar face as reported by the modelling host.

    ``loops[0]`` is the outer boundary, the rest are cutouts. Each loop is a
    list of raw edge records (see ``group_records``).
    """

    name: str
    loops: List[List[dict]]
    pocket: bool = False
    pocket_depth: Optional[float] = None
    guides: List[List[dict]] = field(default_factory=list)

    @classmethod
    def from_mapping(cls, payload: Dict[str, Any], index: int = 0) -> "Face":
        if not isinstance(payload, dict):
            raise FaceSVGError(f"face {index}: must be an object")
        name = str(payload.get("name") or f"face{index}")
        loops = payload.get("loops")
        if not isinstance(loops, list) or not loops:
            raise FaceSVGError(f"face {name}: needs a non-empty 'loops' list")
        depth = payload.get("pocket_depth")
        try:
            depth = None if depth is None else float(depth)
        except (TypeError, ValueError) as e:
            raise FaceSVGError(f"face {name}: pocket_depth must be a number") from e
        guides = payload.get("guides")
        if guides is None:
            guides = []
        if not isinstance(guides, list):
            raise FaceSVGError(f"face {name}: 'guides' must be a list of loops")
        pocket = payload.get("pocket")
        if pocket is None:
            pocket = False
        if not isinstance(pocket, bool):
            raise FaceSVGError(f"face {name}: pocket must be true or false")
        return cls(name=name, loops=loops, pocket=pocket,
                   pocket_depth=depth, guides=guides)


DepthLookup = Callable[[Face], float]


def face_pocket_depth(face: Face) -> float:
    if face.pocket_depth is None:
        raise FaceSVGError(f"face {face.name}: pocket face has no pocket_depth")
    return float(face.pocket_depth)


def classify_face(
    face: Face,
    config: "ExportConfig",
    depth_lookup: Optional[DepthLookup] = None,
) -> List[Tuple[List[dict], LoopRole, Optional[float]]]:
    """Role and depth for every loop of a face.

    Pocket faces only cut their outer loop, at the looked-up pocket depth.
    """
    if face.pocket:
        lookup = depth_lookup or face_pocket_depth
        out = [(face.loops[0], LoopRole.POCKET, lookup(face))]
    else:
        out = [(face.loops[0], LoopRole.OUTER, config.cut_depth)]
        out += [(lp, LoopRole.INNER, config.cut_depth) for lp in face.loops[1:]]
    out += [(g, LoopRole.GUIDE, None) for g in face.guides]
    return out


# ---------------------- Layout ----------------------

@dataclass
class BoundingBox:
    minx: float
    miny: float
    maxx: float
    maxy: float

    @classmethod
    def empty(cls) -> "BoundingBox":
        return cls(math.inf, math.inf, -math.inf, -math.inf)

    def update(self, *points: Union[Vec2, Point]) -> "BoundingBox":
        for p in points:
            x, y = p
            self.minx = min(self.minx, x)
            self.miny = min(self.miny, y)
            self.maxx = max(self.maxx, x)
            self.maxy = max(self.maxy, y)
        return self

    def union(self, other: "BoundingBox") -> "BoundingBox":
        if not other.is_empty():
            self.update((other.minx, other.miny), (other.maxx, other.maxy))
        return self

    def is_empty(self) -> bool:
        return self.minx > self.maxx or self.miny > self.maxy

    @property
    def width(self) -> float:
        return self.maxx - self.minx

    @property
    def height(self) -> float:
        return self.maxy - self.miny


@dataclass(frozen=True)
class Placement:
    offset_x: float
    offset_y: float


class ShelfPacker:
    """Greedy left-to-right, top-to-bottom shelf packing.

    Each box's minimum corner lands on the cursor. A row wraps after the box
    that pushes the cursor past ``max_width``. Input order is kept.
    """

    def __init__(self, spacing: float, max_width: float):
        if spacing < 0:
            raise FaceSVGError("layout spacing must be >= 0")
        if max_width <= 0:
            raise FaceSVGError("layout width must be > 0")
        self.spacing = float(spacing)
        self.max_width = float(max_width)
        self.reset()

    def reset(self) -> None:
        self.cursor_x = self.spacing
        self.cursor_y = self.spacing
        self.row_height = 0.0
        self.extent_x = 0.0
        self.extent_y = 0.0

    def place(self, box: BoundingBox) -> Placement:
        if box.is_empty():
            raise FaceSVGError("cannot place an empty bounding box")
        placement = Placement(self.cursor_x - box.minx, self.cursor_y - box.miny)
        logger.debug("Place box %.3fx%.3f at %.3f,%.3f", box.width, box.height, self.cursor_x, self.cursor_y)

        self.cursor_x += box.width + self.spacing
        self.extent_x = max(self.extent_x, self.cursor_x)
        self.row_height = max(self.row_height, box.height)
        self.extent_y = max(self.extent_y, self.cursor_y + self.row_height)
        if self.cursor_x > self.max_width:
            self.cursor_x = self.spacing
            self.cursor_y += self.row_height + self.spacing
            self.row_height = 0.0
        return placement

    def pack(self, boxes: Iterable[BoundingBox]) -> List[Placement]:
        self.reset()
        return [self.place(b) for b in boxes]

    def viewport(self) -> Tuple[float, float, float, float]:
        # extent_x already carries the trailing spacing; add the same below the last row
        return (0.0, 0.0, self.extent_x, self.extent_y + self.spacing)


# ---------------------- Document ----------------------

@dataclass
class RenderedLoop:
    loop: OrderedLoop
    role: LoopRole
    data: str
    attributes: PathAttributes
    face: Optional[str] = None


def render_loop(loop: OrderedLoop, role: LoopRole, depth: Optional[float], *, face: Optional[str] = None) -> RenderedLoop:
    return RenderedLoop(loop=loop, role=role, data=loop_path_data(loop),
                        attributes=attributes_for_role(role, depth), face=face)


def _attr(name: str, value: str) -> str:
    return f" {name}={quoteattr(value)}"


@dataclass
class Document:
    viewport: Tuple[float, float, float, float]
    unit: str = "in"
    version: str = __version__
    title: Optional[str] = None
    description: Optional[str] = None
    loops: List[RenderedLoop] = field(default_factory=list)

    def add(self, rendered: RenderedLoop) -> None:
        self.loops.append(rendered)

    def svg_root_attributes(self) -> List[Tuple[str, str]]:
        minx, miny, maxx, maxy = self.viewport
        u = self.unit
        return [
            ("enable-background", f"new {fmt(minx)} {fmt(miny)} {fmt(maxx)} {fmt(maxy)}"),
            ("height", f"{fmt(maxy - miny)}{u}"),
            ("width", f"{fmt(maxx - minx)}{u}"),
            ("version", "1.1"),
            ("viewBox", f"{fmt(minx)} {fmt(miny)} {fmt(maxx - minx)} {fmt(maxy - miny)}"),
            ("x", f"{fmt(minx)}{u}"),
            ("y", f"{fmt(miny)}{u}"),
            ("xmlns", SVG_NS),
            ("xmlns:xlink", XLINK_NS),
            ("xmlns:shaper", SHAPER_NS),
            ("shaper:facesvg", self.version),
        ]

    def to_svg(self) -> str:
        out = [
            '<?xml version="1.0" encoding="UTF-8"?>\n',
            "<!-- ARC is A xrad yrad xrotation-degrees largearc sweep end_x end_y -->\n",
            "<svg" + "".join(_attr(k, v) for k, v in self.svg_root_attributes()) + ">\n",
        ]
        if self.title:
            out.append(f"  <title>{escape(self.title)}</title>\n")
        if self.description:
            out.append(f"  <desc>{escape(self.description)}</desc>\n")
        for r in self.loops:
            a = r.attributes
            attrs = [("d", r.data), ("vector-effect", a.vector_effect)]
            if a.cut_depth is not None:
                attrs.append(("shaper:cutDepth", fmt_depth(a.cut_depth)))
            attrs.append(("shaper:pathType", a.path_type))
            if a.fill:
                attrs.append(("fill", a.fill))
            if a.stroke:
                attrs.append(("stroke", a.stroke))
            if a.stroke_width:
                attrs.append(("stroke-width", a.stroke_width))
            out.append("  <path" + "".join(_attr(k, v) for k, v in attrs) + "/>\n")
        out.append("</svg>\n")
        return "".join(out)

    def write(self, stream: IO[str]) -> None:
        try:
            stream.write(self.to_svg())
        except OSError as e:
            raise SinkUnavailableError(f"Cannot write SVG: {e}") from e


def _discard(path: str) -> None:
    try:
        os.unlink(path)
    except FileNotFoundError:
        pass


def write_svg(document: Document, path: str) -> str:
    """Write via a temp file in the target directory, then rename into place."""
    directory = os.path.dirname(os.path.abspath(path))
    try:
        fd, tmp = tempfile.mkstemp(prefix=".facesvg-", suffix=".svg", dir=directory)
    except OSError as e:
        raise SinkUnavailableError(f"Cannot write {path}: {e}") from e
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            document.write(f)
        os.replace(tmp, path)
    except SinkUnavailableError:
        _discard(tmp)
        raise
    except OSError as e:
        _discard(tmp)
        raise SinkUnavailableError(f"Cannot write {path}: {e}") from e
    except BaseException:
        _discard(tmp)
        raise
    logger.info("Wrote %s (%d paths)", path, len(document.loops))
    return path


# ---------------------- Configuration ----------------------

@dataclass
class ExportConfig:
    units: str = "in"
    layout_spacing: float = 0.5
    layout_width: float = 20.0
    cut_depth: float = 0.0125
    export: str = "single_svg"  # single_svg | per_face_svgs
    title: str = "facesvg"
    description: Optional[str] = None
    orient_loops: bool = False
    version: str = __version__

    @classmethod
    def from_dict(cls, params: Dict[str, Any]) -> "ExportConfig":
        if not isinstance(params, dict):
            raise FaceSVGError("params must be a dict")
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(params) - known)
        if unknown:
            raise FaceSVGError(f"Unknown config keys: {', '.join(unknown)}")
        try:
            return cls(**params)
        except TypeError as e:
            raise FaceSVGError(f"Bad config: {e}") from e

    def validate(self) -> List[WarningMsg]:
        warns: List[WarningMsg] = []
        if self.units not in UNITS:
            warns.append(WarningMsg("error", "CFG_UNITS", f"Unknown units {self.units!r}.", "Use one of: in, cm, mm."))
        if self.export not in EXPORT_MODES:
            warns.append(WarningMsg("error", "CFG_EXPORT", f"Unknown export mode {self.export!r}.",
                                    "Use single_svg or per_face_svgs."))
        if not isinstance(self.layout_spacing, (int, float)) or not math.isfinite(self.layout_spacing) or self.layout_spacing < 0:
            warns.append(WarningMsg("error", "CFG_SPACING", "Layout spacing must be >= 0.", "Set layout_spacing."))
        if not isinstance(self.layout_width, (int, float)) or not math.isfinite(self.layout_width) or self.layout_width <= 0:
            warns.append(WarningMsg("error", "CFG_WIDTH", "Layout width must be > 0.", "Set layout_width."))
        if not isinstance(self.cut_depth, (int, float)) or not math.isfinite(self.cut_depth) or self.cut_depth <= 0:
            warns.append(WarningMsg("error", "CFG_DEPTH", "Cut depth must be > 0.", "Set cut_depth."))
        elif self.units == "in" and self.cut_depth > 2.0:
            warns.append(WarningMsg("warn", "CFG_DEPTH_LARGE", "Cut depth is over 2 inches (check units).",
                                    "Reduce cut_depth or change units."))
        return warns

    def check(self) -> List[WarningMsg]:
        """validate(), raising on errors; returns the remaining warnings."""
        warns = self.validate()
        errors = [w for w in warns if w.severity == "error"]
        if errors:
            raise FaceSVGError("; ".join(w.message for w in errors))
        return warns


# ---------------------- Faces -> documents ----------------------

Prepared = List[Tuple[OrderedLoop, LoopRole, Optional[float]]]


def prepare_face(face: Face, config: ExportConfig, depth_lookup: Optional[DepthLookup] = None) -> Prepared:
    prepared: Prepared = []
    for i, (records, role, depth) in enumerate(classify_face(face, config, depth_lookup)):
        name = f"{face.name}/{role.value}{i}"
        loop = reorder(group_records(records, where=name), loop_name=name)
        if config.orient_loops and role is not LoopRole.GUIDE:
            loop = orient_loop(loop, clockwise=role in (LoopRole.OUTER, LoopRole.POCKET))
        logger.debug("Profile %s, %d elements, %s %s", name, len(loop), role.value, depth)
        prepared.append((loop, role, depth))
    return prepared


def face_bounds(prepared: Prepared) -> BoundingBox:
    box = BoundingBox.empty()
    for loop, _, _ in prepared:
        box.union(loop.bounds())
    return box


def validate_face(name: str, prepared: Prepared) -> List[WarningMsg]:
    warns: List[WarningMsg] = []
    outer = next((lp for lp, role, _ in prepared if role in (LoopRole.OUTER, LoopRole.POCKET)), None)
    if outer is None:
        return warns
    outer_path = _clipper_path(loop_polygon(outer))
    for i, (loop, role, _) in enumerate(prepared):
        if role is LoopRole.GUIDE:
            continue
        if abs(loop_area(loop)) < POINT_TOLERANCE * POINT_TOLERANCE:
            warns.append(WarningMsg("warn", "LOOP_ZERO_AREA", f"Face {name}: loop {i} encloses no area.",
                                    "Check for doubled-back edges."))
        if role is LoopRole.INNER:
            probe = _clipper_path(loop_polygon(loop)[:1])[0]
            if pyclipper.PointInPolygon(probe, outer_path) == 0:
                warns.append(WarningMsg("warn", "INNER_OUTSIDE_OUTER",
                                        f"Face {name}: inner loop {i} lies outside the outer loop.",
                                        "The first loop of a face must be its outer boundary."))
    return warns


def build_document(
    placed: Iterable[Tuple[Face, Prepared, Placement]],
    viewport: Tuple[float, float, float, float],
    config: ExportConfig,
    *,
    title: Optional[str] = None,
) -> Document:
    """Render every placed loop, shifted by its face's offset, into a Document."""
    doc = Document(
        viewport=viewport,
        unit=config.units,
        version=config.version,
        title=title or f"{config.title} cut profile",
        description=config.description or f"Shaper cut profile from model {config.title}",
    )
    for face, prepared, placement in placed:
        for loop, role, depth in prepared:
            moved = loop.translated(placement.offset_x, placement.offset_y)
            doc.add(render_loop(moved, role, depth, face=face.name))
    return doc


def render_faces(
    faces: Sequence[Face],
    config: ExportConfig,
    depth_lookup: Optional[DepthLookup] = None,
) -> Tuple[Document, List[WarningMsg]]:
    """Lay out all faces on one sheet. Any loop error aborts the document."""
    warns = config.check()
    if not faces:
        raise FaceSVGError("No faces to export")
    packer = ShelfPacker(config.layout_spacing, config.layout_width)
    placed = []
    for face in faces:
        prepared = prepare_face(face, config, depth_lookup)
        warns += validate_face(face.name, prepared)
        placement = packer.place(face_bounds(prepared))
        logger.debug("Face %s layout offset %.3f,%.3f", face.name, placement.offset_x, placement.offset_y)
        placed.append((face, prepared, placement))
    return build_document(placed, packer.viewport(), config), warns


def render_face_document(
    face: Face,
    config: ExportConfig,
    index: int,
    depth_lookup: Optional[DepthLookup] = None,
) -> Tuple[Document, List[WarningMsg]]:
    """One face on its own sheet, minimum corner at the origin."""
    config.check()
    prepared = prepare_face(face, config, depth_lookup)
    warns = validate_face(face.name, prepared)
    box = face_bounds(prepared)
    placed = [(face, prepared, Placement(-box.minx, -box.miny))]
    doc = build_document(placed, (0.0, 0.0, box.width, box.height), config,
                         title=f"{config.title} cut profile {index}")
    return doc, warns


def export_faces(
    faces: Sequence[Face],
    config: ExportConfig,
    out: str,
    depth_lookup: Optional[DepthLookup] = None,
) -> Tuple[List[str], List[WarningMsg]]:
    """Write one SVG at ``out``, or one per face into directory ``out``."""
    config_warns = config.check()
    if config.export == "single_svg":
        doc, warns = render_faces(faces, config, depth_lookup)
        return [write_svg(doc, out)], warns

    if not faces:
        raise FaceSVGError("No faces to export")
    try:
        os.makedirs(out, exist_ok=True)
    except OSError as e:
        raise SinkUnavailableError(f"Cannot create output directory {out}: {e}") from e
    # Render everything before writing anything.
    docs = []
    warns = list(config_warns)
    for i, face in enumerate(faces):
        doc, w = render_face_document(face, config, i, depth_lookup)
        docs.append(doc)
        warns += w
    paths = [write_svg(doc, os.path.join(out, f"{config.title}{i}.svg")) for i, doc in enumerate(docs)]
    return paths, warns


# ---------------------- Input ----------------------

def faces_from_payload(payload: Dict[str, Any]) -> List[Face]:
    if not isinstance(payload, dict):
        raise FaceSVGError("payload must be an object with a 'faces' list")
    faces = payload.get("faces")
    if not isinstance(faces, list):
        raise FaceSVGError("payload must contain a 'faces' list")
    return [Face.from_mapping(f, i) for i, f in enumerate(faces)]


def load_payload(path: str) -> Dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except OSError as e:
        raise FaceSVGError(f"Cannot read {path}: {e}") from e
    except UnicodeDecodeError as e:
        raise FaceSVGError(f"{path}: not UTF-8: {e}") from e
    except json.JSONDecodeError as e:
        raise FaceSVGError(f"{path}: invalid JSON: {e}") from e


def load_faces(path: str) -> List[Face]:
    return faces_from_payload(load_payload(path))


def generate_svg(payload: Dict[str, Any], params: Optional[Dict[str, Any]] = None) -> dict:
    """Public API for scripted / browser use.

    Returns a JSON-serializable dict:
      {"svg": str, "warnings": [{severity, code, message, fix}, ...], "meta": dict}
    """
    params = dict(params or {})
    if isinstance(payload, dict) and payload.get("title") and "title" not in params:
        params["title"] = str(payload["title"])
    config = ExportConfig.from_dict(params)
    faces = faces_from_payload(payload)
    doc, warns = render_faces(faces, config)

    roles: Dict[str, int] = {}
    for r in doc.loops:
        roles[r.role.value] = roles.get(r.role.value, 0) + 1
    meta = {
        "generator": f"facesvg {__version__}",
        "title": config.title,
        "units": config.units,
        "viewport": list(doc.viewport),
        "faces": len(faces),
        "paths": len(doc.loops),
        "roles": roles,
    }
    return {"svg": doc.to_svg(), "warnings": _warn_dicts(warns), "meta": meta}


# ---------------------- CLI ----------------------

def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.WARNING
    log = logging.getLogger(__name__)
    log.setLevel(level)
    log.handlers.clear()
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s", datefmt="%H:%M:%S"))
    log.addHandler(handler)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    ap = argparse.ArgumentParser(
        formatter_class=argparse.RawTextHelpFormatter,
        description=(
            "Convert planar face boundaries (JSON) into Shaper Origin SVG cut files.\n\n"
            "Exports: single_svg (all faces laid out on one sheet), per_face_svgs\n"
        ),
    )
    ap.add_argument("--faces", required=True, help="Face description JSON")
    ap.add_argument("--out", required=True, help="Output path (single_svg) or directory (per_face_svgs)")
    ap.add_argument("--config", default=None, help="JSON file with export settings")
    ap.add_argument("--units", choices=UNITS, default=None)
    ap.add_argument("--spacing", type=float, default=None, help="Layout spacing between faces")
    ap.add_argument("--layout-width", type=float, default=None, help="Row wrap width")
    ap.add_argument("--cut-depth", type=float, default=None, help="Default cut depth for exterior/interior cuts")
    ap.add_argument("--export", choices=EXPORT_MODES, default=None)
    ap.add_argument("--title", default=None)
    ap.add_argument("--orient", action="store_true", help="Exterior loops clockwise, interior counter-clockwise")
    ap.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return ap.parse_args(argv)


def build_config(args: argparse.Namespace, payload: Dict[str, Any]) -> ExportConfig:
    params: Dict[str, Any] = {}
    if args.config:
        cfg = load_payload(args.config)
        if not isinstance(cfg, dict):
            raise FaceSVGError(f"{args.config}: settings must be an object")
        params.update(cfg)
    if "title" not in params and isinstance(payload, dict) and payload.get("title"):
        params["title"] = str(payload["title"])
    overrides = {
        "units": args.units,
        "layout_spacing": args.spacing,
        "layout_width": args.layout_width,
        "cut_depth": args.cut_depth,
        "export": args.export,
        "title": args.title,
    }
    params.update({k: v for k, v in overrides.items() if v is not None})
    if args.orient:
        params["orient_loops"] = True
    return ExportConfig.from_dict(params)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    setup_logging(args.verbose)

    try:
        payload = load_payload(args.faces)
        faces = faces_from_payload(payload)
        config = build_config(args, payload)
        paths, warns = export_faces(faces, config, args.out)
    except FaceSVGError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    if warns:
        print("Warnings:")
        for w in warns:
            print("-", w.severity, w.code, w.message, "| fix:", w.fix)
    for p in paths:
        print(f"Wrote {p}")
    print("OK")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
